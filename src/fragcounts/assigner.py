from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Sequence

import pysam

from .errors import ReadSourceError
from .flanks import DEFAULT_FLANK_SIZE, build_flank_index
from .fragment_index import FragmentIndex
from .models import CountMode, Fragment, ReadAlignment

logger = logging.getLogger(__name__)

UNASSIGNED: Optional[int] = None


@dataclass(frozen=True)
class CountIndex:
    """The lookup structure for one counting run, with its mode bound at build time."""

    mode: CountMode
    index: FragmentIndex
    n_fragments: int
    flank_size: Optional[int] = None


def build_count_index(
    fragments: Sequence[Fragment],
    mode: CountMode | str,
    flank_size: int = DEFAULT_FLANK_SIZE,
) -> CountIndex:
    """Select the counting mode once and build the matching index.

    INNER indexes the fragments themselves; FLANK indexes both end windows of every fragment,
    labelled with the parent fragment id.
    """
    mode = CountMode.parse(mode)
    if mode is CountMode.INNER:
        return CountIndex(mode=mode, index=FragmentIndex.build(fragments), n_fragments=len(fragments))
    return CountIndex(
        mode=mode,
        index=build_flank_index(fragments, flank_size),
        n_fragments=len(fragments),
        flank_size=int(flank_size),
    )


def five_prime_position(read: pysam.AlignedSegment) -> int:
    """1-based reference coordinate of the read's 5' end.

    Forward reads start at their leftmost aligned base; reverse reads at their rightmost one.
    Soft clips are not part of the alignment and are ignored.
    """
    if read.is_reverse:
        # reference_end is 0-based exclusive, i.e. the 1-based position of the last aligned base
        return int(read.reference_end)
    return int(read.reference_start) + 1


def read_from_segment(read: pysam.AlignedSegment, sample: Optional[str] = None) -> ReadAlignment:
    return ReadAlignment(
        chrom=str(read.reference_name),
        pos5=five_prime_position(read),
        strand="-" if read.is_reverse else "+",
        is_duplicate=bool(read.is_duplicate),
        sample=sample,
    )


def assign_read(read: ReadAlignment, count_index: CountIndex) -> Optional[int]:
    """Return the fragment id a read is counted in, or UNASSIGNED.

    Duplicates are never counted. When several fragments (or windows of different fragments)
    contain the 5' position, the lowest fragment id wins. In FLANK mode a read inside both
    windows of one small fragment matches that fragment once.
    """
    if read.is_duplicate:
        return UNASSIGNED
    return count_index.index.first(read.chrom, read.pos5)


def iter_bam_reads(
    bam_path: str,
    *,
    sample: str,
    include_secondary: bool = False,
    include_supplementary: bool = False,
    counters: Optional[Dict[str, int]] = None,
) -> Iterator[ReadAlignment]:
    """Stream a BAM in file order as ReadAlignment records.

    Unmapped records are dropped; secondary and supplementary alignments are dropped unless
    requested. Dropped records are tallied in ``counters`` when given. Any failure to open or
    read the file is raised as ReadSourceError naming the sample.
    """
    if counters is None:
        counters = {}
    for key in ("records_total", "records_unmapped", "records_skipped_secondary", "records_skipped_supplementary"):
        counters.setdefault(key, 0)

    try:
        bam = pysam.AlignmentFile(bam_path, "rb")
    except (OSError, ValueError) as e:
        raise ReadSourceError(
            f"Cannot open reads for sample '{sample}' ({bam_path}): {e}", sample=sample, path=bam_path
        ) from e

    failure: Optional[ReadSourceError] = None
    try:
        for read in bam.fetch(until_eof=True):
            counters["records_total"] += 1
            if read.is_unmapped or read.reference_name is None or read.reference_end is None:
                counters["records_unmapped"] += 1
                continue
            if read.is_secondary and not include_secondary:
                counters["records_skipped_secondary"] += 1
                continue
            if read.is_supplementary and not include_supplementary:
                counters["records_skipped_supplementary"] += 1
                continue
            yield read_from_segment(read, sample)
    except (OSError, ValueError) as e:
        failure = ReadSourceError(
            f"Failed reading sample '{sample}' ({bam_path}) after {counters['records_total']} records: {e}",
            sample=sample,
            path=bam_path,
        )
        raise failure from e
    finally:
        try:
            bam.close()
        except OSError as e:
            # htslib reports a broken stream again on close; keep the read error
            if failure is None:
                raise ReadSourceError(
                    f"Cannot close reads for sample '{sample}' ({bam_path}): {e}", sample=sample, path=bam_path
                ) from e
            logger.debug("Closing %s after a read error also failed: %s", bam_path, e)

