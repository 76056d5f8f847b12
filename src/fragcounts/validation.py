from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List

import pysam

from .errors import ContigMismatchError

logger = logging.getLogger(__name__)


_UCSC_PREFIX = "chr"


def bam_index_path(bam_path: str | Path) -> Path | None:
    """Return the existing index path of a BAM (``x.bam.bai`` or ``x.bai``), if any."""
    bam = Path(bam_path)
    bai1 = bam.with_suffix(bam.suffix + ".bai")
    bai2 = bam.with_suffix(".bai")
    for bai in (bai1, bai2):
        if bai.exists():
            return bai
    return None


def ensure_bam_index(bam_path: str | Path, *, create: bool = True) -> Path:
    """Ensure a BAM has an index, creating ``<bam>.bai`` with pysam when allowed.

    Raises ValueError with fix instructions when the index is missing and ``create`` is False.
    """
    existing = bam_index_path(bam_path)
    if existing is not None:
        return existing
    bam = Path(bam_path)
    if not create:
        raise ValueError("BAM is not indexed. Run: samtools index " + str(bam))
    logger.info("Indexing %s", bam)
    pysam.index(str(bam))
    return bam.with_suffix(bam.suffix + ".bai")


def bam_contigs(bam_path: str | Path) -> List[str]:
    with pysam.AlignmentFile(str(bam_path), "rb") as bam:
        return list(bam.header.references)


def detect_contig_style(contigs: Iterable[str]) -> str:
    """Infer contig style: 'ucsc' if most contigs start with 'chr', else 'ensembl'."""
    names = [c for c in contigs if c]
    if not names:
        return "unknown"
    chr_like = [c for c in names if c.startswith(_UCSC_PREFIX)]
    if len(chr_like) >= max(1, int(0.5 * len(names))):
        return "ucsc"
    return "ensembl"


def remap_contig(contig: str, style: str) -> str:
    """Remap a contig name to the requested style (ucsc or ensembl)."""
    if style == "ucsc":
        if contig.startswith(_UCSC_PREFIX):
            return contig
        if contig == "MT":
            return "chrM"
        return f"{_UCSC_PREFIX}{contig}"
    if style == "ensembl":
        if contig.startswith(_UCSC_PREFIX):
            core = contig[len(_UCSC_PREFIX) :]
            if core == "M":
                return "MT"
            return core
        return contig
    return contig


def check_contigs(
    fragment_chroms: Iterable[str],
    bam_chroms: Iterable[str],
    *,
    bam_path: str | Path = "",
) -> None:
    """Fail when a BAM shares no chromosome with the fragment set.

    Partial overlap is allowed (reads elsewhere are simply not counted) but logged.
    """
    frag_set = set(fragment_chroms)
    bam_set = set(bam_chroms)
    shared = frag_set.intersection(bam_set)
    if not shared:
        raise ContigMismatchError(
            f"Contig mismatch between BAM {bam_path} and fragments (e.g., chr1 vs 1): "
            f"fragments use {sorted(frag_set)[:5]}, BAM uses {sorted(bam_set)[:5]}. "
            "Use --contig-style {ucsc,ensembl,auto} to override."
        )
    missing = sorted(frag_set - bam_set)
    if missing:
        logger.warning(
            "%d fragment chromosome(s) absent from %s header (e.g. %s); their fragments will be zero.",
            len(missing),
            bam_path,
            ", ".join(missing[:5]),
        )
