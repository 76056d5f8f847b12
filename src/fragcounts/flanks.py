from __future__ import annotations

import logging
from typing import Iterator, Sequence, Tuple

from .fragment_index import FragmentIndex
from .models import FlankWindow, Fragment, Side

logger = logging.getLogger(__name__)

# End region width commonly used for restriction fragments in chromatin conformation assays.
DEFAULT_FLANK_SIZE = 100


def _check_flank_size(flank_size: int) -> int:
    if isinstance(flank_size, bool) or int(flank_size) != flank_size or flank_size < 1:
        raise ValueError(f"flank_size must be a positive integer, got {flank_size!r}")
    return int(flank_size)


def build_flank_windows(fragment: Fragment, flank_size: int = DEFAULT_FLANK_SIZE) -> Tuple[FlankWindow, FlankWindow]:
    """Return the 5' and 3' end windows of a fragment.

    The 5' window is the first ``flank_size`` bases from the fragment start, the 3' window the
    last ``flank_size`` bases before its end. Both are clipped to the fragment, so a fragment
    narrower than ``flank_size`` yields two windows spanning the whole fragment.
    """
    flank = _check_flank_size(flank_size)
    w5 = FlankWindow(
        parent_id=fragment.fragment_id,
        side=Side.FIVE_PRIME,
        chrom=fragment.chrom,
        start=fragment.start,
        end=min(fragment.end, fragment.start + flank - 1),
    )
    w3 = FlankWindow(
        parent_id=fragment.fragment_id,
        side=Side.THREE_PRIME,
        chrom=fragment.chrom,
        start=max(fragment.start, fragment.end - flank + 1),
        end=fragment.end,
    )
    return w5, w3


def iter_flank_windows(fragments: Sequence[Fragment], flank_size: int = DEFAULT_FLANK_SIZE) -> Iterator[FlankWindow]:
    """Yield windows interleaved per fragment: 5' then 3', in fragment order."""
    for fragment in fragments:
        w5, w3 = build_flank_windows(fragment, flank_size)
        yield w5
        yield w3


def build_flank_index(fragments: Sequence[Fragment], flank_size: int = DEFAULT_FLANK_SIZE) -> FragmentIndex:
    """Index all flank windows; hits resolve to parent fragment ids."""
    flank = _check_flank_size(flank_size)
    collapsed = sum(1 for f in fragments if f.width <= 2 * flank)
    if collapsed:
        logger.debug(
            "%d of %d fragments are at most %d bp wide; their flank windows touch or overlap",
            collapsed,
            len(fragments),
            2 * flank,
        )
    return FragmentIndex.from_windows(iter_flank_windows(fragments, flank))
