from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple

from .errors import InvalidFragmentError
from .models import Fragment
from .utils import open_textmaybe_gzip
from .validation import remap_contig

logger = logging.getLogger(__name__)

_SKIP_PREFIXES = ("#", "track", "browser")


def _check_interval(chrom: str, start: int, end: int, *, record: object, index: int, line: int | None = None) -> None:
    where = f"line {line}" if line is not None else f"fragment {index}"
    if not chrom:
        raise InvalidFragmentError(
            f"Empty chromosome name at {where}: {record!r}", record=record, index=index, line=line
        )
    if start < 1:
        raise InvalidFragmentError(
            f"Fragment start must be >= 1 (1-based) at {where}: {record!r}",
            record=record,
            index=index,
            line=line,
        )
    if start > end:
        raise InvalidFragmentError(
            f"Malformed fragment (start > end) at {where}: {record!r}",
            record=record,
            index=index,
            line=line,
        )


def fragments_from_intervals(intervals: Iterable[Tuple[str, int, int]]) -> List[Fragment]:
    """Build fragments from ordered ``(chrom, start, end)`` triples.

    Coordinates are 1-based inclusive. Fragment ids are assigned 1..N in input order.
    An empty set or a malformed interval raises InvalidFragmentError.
    """
    fragments: List[Fragment] = []
    for i, rec in enumerate(intervals, start=1):
        try:
            chrom, start, end = rec
            chrom, start, end = str(chrom), int(start), int(end)
        except (TypeError, ValueError) as e:
            raise InvalidFragmentError(
                f"Fragment {i} is not a (chrom, start, end) triple: {rec!r}", record=rec, index=i
            ) from e
        _check_interval(chrom, start, end, record=rec, index=i)
        fragments.append(Fragment(fragment_id=i, chrom=chrom, start=start, end=end))

    if not fragments:
        raise InvalidFragmentError("Fragment set is empty.")
    return fragments


def load_fragments_bed(path: str | Path) -> Tuple[List[Fragment], Dict[str, int]]:
    """Load restriction fragments from a BED file (optionally gzipped).

    BED intervals are 0-based half-open; they are converted to 1-based inclusive so that
    ``chr1 99 199`` becomes the fragment ``chr1:100-199``. Extra BED columns are ignored.

    Returns
    -------
    fragments:
        Fragments in file order, ids 1..N.
    stats:
        Simple line counters.
    """
    stats: Dict[str, int] = {
        "lines_total": 0,
        "lines_skipped": 0,
        "fragments_loaded": 0,
    }
    fragments: List[Fragment] = []

    with open_textmaybe_gzip(path, "rt") as fh:
        for lineno, raw in enumerate(fh, start=1):
            stats["lines_total"] += 1
            line = raw.rstrip("\r\n")
            if not line.strip() or line.startswith(_SKIP_PREFIXES):
                stats["lines_skipped"] += 1
                continue
            fields = line.split("\t")
            if len(fields) < 3:
                fields = line.split()
            if len(fields) < 3:
                raise InvalidFragmentError(
                    f"{path}: line {lineno} has fewer than 3 columns: {line!r}",
                    record=line,
                    line=lineno,
                )
            chrom = fields[0]
            try:
                start0 = int(fields[1])
                end0 = int(fields[2])
            except ValueError as e:
                raise InvalidFragmentError(
                    f"{path}: line {lineno} has non-integer coordinates: {line!r}",
                    record=line,
                    line=lineno,
                ) from e

            idx = len(fragments) + 1
            _check_interval(chrom, start0 + 1, end0, record=line, index=idx, line=lineno)
            fragments.append(Fragment(fragment_id=idx, chrom=chrom, start=start0 + 1, end=end0))

    if not fragments:
        raise InvalidFragmentError(f"Fragment set is empty: no intervals found in {path}")

    stats["fragments_loaded"] = len(fragments)
    logger.info("Loaded %d fragments from %s", len(fragments), path)
    return fragments, stats


def fragment_chroms(fragments: Sequence[Fragment]) -> List[str]:
    """Chromosome names in order of first appearance."""
    seen: Dict[str, None] = {}
    for f in fragments:
        seen.setdefault(f.chrom, None)
    return list(seen)


def remap_fragments(fragments: Sequence[Fragment], style: str) -> List[Fragment]:
    remapped = []
    for f in fragments:
        remapped.append(
            Fragment(
                fragment_id=f.fragment_id,
                chrom=remap_contig(f.chrom, style),
                start=f.start,
                end=f.end,
            )
        )
    return remapped
