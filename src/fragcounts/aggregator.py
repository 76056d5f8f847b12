from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .assigner import CountIndex, assign_read
from .models import ReadAlignment

logger = logging.getLogger(__name__)


class CountMatrix:
    """Fragment x sample integer counts, rows in fragment id order, columns in sample order."""

    def __init__(self, counts: np.ndarray, samples: Sequence[str]) -> None:
        if counts.ndim != 2 or counts.shape[1] != len(samples):
            raise ValueError(f"counts shape {counts.shape} does not match {len(samples)} samples")
        self.counts = counts
        self.samples = list(samples)

    @property
    def n_fragments(self) -> int:
        return int(self.counts.shape[0])

    @property
    def n_samples(self) -> int:
        return int(self.counts.shape[1])

    def column(self, sample: str) -> np.ndarray:
        return self.counts[:, self.samples.index(sample)]

    def get(self, fragment_id: int, sample: str) -> int:
        if not 1 <= fragment_id <= self.n_fragments:
            raise KeyError(f"Unknown fragment id: {fragment_id}")
        return int(self.counts[fragment_id - 1, self.samples.index(sample)])

    def totals(self) -> Dict[str, int]:
        """Total assigned reads per sample."""
        sums = self.counts.sum(axis=0)
        return {s: int(v) for s, v in zip(self.samples, sums)}


def aggregate(assignments: Iterable[Optional[int]], n_fragments: int) -> np.ndarray:
    """Tally per-read assignments (fragment ids or None) into a zero-initialized vector.

    Index ``i`` of the result holds the count of fragment id ``i + 1``.
    """
    vec = np.zeros(n_fragments, dtype=np.int64)
    for fid in assignments:
        if fid is None:
            continue
        vec[fid - 1] += 1
    return vec


def merge(vectors: Sequence[np.ndarray], samples: Sequence[str]) -> CountMatrix:
    """Stack per-sample vectors into a matrix, one column per sample in the given order."""
    if len(vectors) != len(samples):
        raise ValueError(f"Got {len(vectors)} count vectors for {len(samples)} samples")
    if not vectors:
        raise ValueError("No samples to merge")
    lengths = {int(v.shape[0]) for v in vectors}
    if len(lengths) != 1:
        raise ValueError(f"Per-sample count vectors differ in length: {sorted(lengths)}")
    counts = np.column_stack([np.asarray(v, dtype=np.int64) for v in vectors])
    return CountMatrix(counts, samples)


def count_sample(
    reads: Iterable[ReadAlignment],
    count_index: CountIndex,
) -> Tuple[np.ndarray, Dict[str, int]]:
    """Assign and tally one sample's reads in a single streaming pass.

    Returns the per-fragment count vector and read counters for the sample.
    """
    stats: Dict[str, int] = {
        "reads_total": 0,
        "reads_skipped_duplicates": 0,
        "reads_assigned": 0,
        "reads_unassigned": 0,
        "reads_unknown_contig": 0,
    }
    index = count_index.index

    def _assignments() -> Iterator[Optional[int]]:
        for read in reads:
            stats["reads_total"] += 1
            fid = assign_read(read, count_index)
            if fid is not None:
                stats["reads_assigned"] += 1
            elif read.is_duplicate:
                stats["reads_skipped_duplicates"] += 1
            else:
                stats["reads_unassigned"] += 1
                if read.chrom not in index:
                    stats["reads_unknown_contig"] += 1
            yield fid

    vec = aggregate(_assignments(), count_index.n_fragments)
    return vec, stats


def sample_stats_table(stats_by_sample: Dict[str, Dict[str, int]]) -> List[Dict[str, object]]:
    """Flatten per-sample counters into rows for reporting."""
    rows: List[Dict[str, object]] = []
    for sample, stats in stats_by_sample.items():
        row: Dict[str, object] = {"sample": sample}
        row.update(stats)
        rows.append(row)
    return rows
