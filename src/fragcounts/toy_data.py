from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import pysam

from .utils import ensure_outdir, write_json

_CONTIGS = [("chr1", 1000), ("chr2", 500)]

# (name, contig index, 0-based start, length, flag)
_TOY_READS = [
    ("f1_a", 0, 109, 30, 0),
    ("f1_b", 0, 149, 30, 0),
    ("f1_b_dup", 0, 149, 30, 1024),
    ("f1_c", 0, 189, 30, 0),
    ("f2_5p", 0, 309, 30, 0),
    ("f2_rev", 0, 440, 80, 16),  # 5' end at 520, inside the 3' window
    ("f2_mid", 0, 449, 30, 0),
    ("f2_3p", 0, 519, 30, 0),
    ("gap", 0, 249, 30, 0),
    ("chr2_read", 1, 99, 30, 0),
]

# BED, 0-based half-open: chr1:100-199 and chr1:300-599 in 1-based coordinates
_TOY_FRAGMENTS = [("chr1", 99, 199), ("chr1", 299, 599)]


def _make_read(name: str, ref_id: int, start0: int, length: int, flag: int) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = "A" * length
    a.flag = flag
    a.reference_id = ref_id
    a.reference_start = start0
    a.mapping_quality = 60
    a.cigartuples = [(0, length)]
    a.query_qualities = pysam.qualitystring_to_array("I" * length)
    return a


def _make_unmapped(name: str, length: int = 30) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = "C" * length
    a.flag = 4
    a.reference_id = -1
    a.reference_start = -1
    a.query_qualities = pysam.qualitystring_to_array("I" * length)
    return a


def make_toy_data(*, outdir: str | Path) -> Dict[str, str]:
    """Create a tiny BAM and fragment BED suitable for quick demos/tests.

    Two fragments on chr1: ``chr1:100-199`` (as wide as the default flank, so its windows
    collapse) and ``chr1:300-599``. Expected counts are INNER 3 and 4, FLANK 3 and 3; the
    duplicate, the read between fragments, the chr2 read and the unmapped read are not counted.

    The outputs include:
    - toy.bam (+ .bai)
    - fragments.bed

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)

    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": name, "LN": length} for name, length in _CONTIGS],
    }

    reads: List[pysam.AlignedSegment] = [_make_read(*rec) for rec in _TOY_READS]
    reads.sort(key=lambda r: (r.reference_id, r.reference_start))
    reads.append(_make_unmapped("unmapped_1"))

    bam_path = outdir_p / "toy.bam"
    with pysam.AlignmentFile(str(bam_path), "wb", header=header) as bam:
        for r in reads:
            bam.write(r)
    pysam.index(str(bam_path))

    bed_path = outdir_p / "fragments.bed"
    bed_path.write_text(
        "".join(f"{chrom}\t{start}\t{end}\n" for chrom, start, end in _TOY_FRAGMENTS),
        encoding="utf-8",
    )

    summary = {
        "bam": str(bam_path),
        "fragments_bed": str(bed_path),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
