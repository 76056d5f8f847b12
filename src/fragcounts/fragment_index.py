from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .models import FlankWindow, Fragment

logger = logging.getLogger(__name__)

_EMPTY: FrozenSet[int] = frozenset()
_NO_CHILD = -1


@dataclass(frozen=True)
class ContigIntervals:
    """Nested containment list for the intervals of one contig.

    Intervals are grouped into sublists. Sublist 0 holds every interval not contained in
    another one; ``children[k][i]`` is the sublist holding the intervals directly contained
    in interval ``i`` of sublist ``k`` (or -1). No interval of a sublist contains a sibling,
    so starts and ends are both ascending and the siblings containing a position form one
    contiguous run found with two bisects. A long interval spanning many short ones only
    adds one level instead of lengthening every scan.
    """

    starts: List[List[int]]  # 1-based inclusive
    ends: List[List[int]]
    labels: List[List[int]]
    children: List[List[int]]

    def overlapping(self, pos: int) -> List[int]:
        """Labels of all intervals containing ``pos``."""
        hits: List[int] = []
        pending = [0]
        while pending:
            k = pending.pop()
            lo = bisect.bisect_left(self.ends[k], pos)
            hi = bisect.bisect_right(self.starts[k], pos)
            for i in range(lo, hi):
                hits.append(self.labels[k][i])
                child = self.children[k][i]
                if child != _NO_CHILD:
                    pending.append(child)
        return hits

    @property
    def depth(self) -> int:
        """Number of nesting levels (1 when no interval contains another)."""
        best = 0
        pending = [(0, 1)]
        while pending:
            k, level = pending.pop()
            best = max(best, level)
            pending.extend((c, level + 1) for c in self.children[k] if c != _NO_CHILD)
        return best


def _build_contig(records: List[Tuple[int, int, int]]) -> ContigIntervals:
    # Containers sort before what they contain: start ascending, end descending, then label.
    records = sorted(records, key=lambda r: (r[0], -r[1], r[2]))
    starts: List[List[int]] = [[]]
    ends: List[List[int]] = [[]]
    labels: List[List[int]] = [[]]
    children: List[List[int]] = [[]]

    # chain of open containers as (end, sublist, position)
    open_chain: List[Tuple[int, int, int]] = []
    for start, end, label in records:
        while open_chain and open_chain[-1][0] < end:
            open_chain.pop()
        sub = 0
        if open_chain:
            _, k, i = open_chain[-1]
            if children[k][i] == _NO_CHILD:
                children[k][i] = len(starts)
                for lst in (starts, ends, labels, children):
                    lst.append([])
            sub = children[k][i]
        starts[sub].append(start)
        ends[sub].append(end)
        labels[sub].append(label)
        children[sub].append(_NO_CHILD)
        open_chain.append((end, sub, len(starts[sub]) - 1))

    return ContigIntervals(starts=starts, ends=ends, labels=labels, children=children)


class FragmentIndex:
    """Answers "which fragments contain position P on chromosome C".

    Each interval carries an integer label. For an index over fragments the label is the
    fragment id; for an index over flank windows it is the parent fragment id, so a hit on
    either window resolves straight to the fragment.

    The index is read-only once built and can be shared between worker processes.
    """

    def __init__(self, by_contig: Dict[str, ContigIntervals], n_intervals: int) -> None:
        self._by_contig = by_contig
        self._n_intervals = n_intervals

    @classmethod
    def _from_records(cls, records: Iterable[Tuple[str, int, int, int]]) -> "FragmentIndex":
        by_contig: Dict[str, List[Tuple[int, int, int]]] = {}
        n = 0
        for chrom, start, end, label in records:
            by_contig.setdefault(chrom, []).append((start, end, label))
            n += 1
        index = {chrom: _build_contig(lst) for chrom, lst in by_contig.items()}
        return cls(index, n)

    @classmethod
    def build(cls, fragments: Sequence[Fragment]) -> "FragmentIndex":
        """Build an index whose labels are fragment ids."""
        idx = cls._from_records((f.chrom, f.start, f.end, f.fragment_id) for f in fragments)
        logger.debug("Fragment index: %d fragments on %d contigs", idx.n_intervals, len(idx.contigs))
        return idx

    @classmethod
    def from_windows(cls, windows: Iterable[FlankWindow]) -> "FragmentIndex":
        """Build an index over flank windows whose labels are parent fragment ids."""
        idx = cls._from_records((w.chrom, w.start, w.end, w.parent_id) for w in windows)
        logger.debug("Window index: %d windows on %d contigs", idx.n_intervals, len(idx.contigs))
        return idx

    @property
    def contigs(self) -> List[str]:
        return list(self._by_contig)

    @property
    def n_intervals(self) -> int:
        return self._n_intervals

    def __contains__(self, chrom: object) -> bool:
        return chrom in self._by_contig

    def intervals(self, chrom: str) -> Optional[ContigIntervals]:
        return self._by_contig.get(chrom)

    def query(self, chrom: str, pos: int) -> FrozenSet[int]:
        """Labels of every interval on ``chrom`` containing ``pos`` (empty if none)."""
        ivs = self._by_contig.get(chrom)
        if ivs is None:
            return _EMPTY
        return frozenset(ivs.overlapping(pos))

    def first(self, chrom: str, pos: int) -> Optional[int]:
        """Lowest label containing ``pos``, or None.

        This is the tie-break used when intervals overlap: the fragment listed first wins.
        """
        ivs = self._by_contig.get(chrom)
        if ivs is None:
            return None
        hits = ivs.overlapping(pos)
        if not hits:
            return None
        return min(hits)
