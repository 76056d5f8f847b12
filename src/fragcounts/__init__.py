"""FragCounts: read-to-restriction-fragment counting for Hi-C style assays.

Public API is intentionally small; most users should use the CLI:

    fragcounts count --bam ... --fragments ... --mode inner --outdir ...

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
