from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import numpy as np


class CountMode(str, Enum):
    """Read counting mode."""

    INNER = "inner"
    FLANK = "flank"

    @classmethod
    def parse(cls, value: "CountMode | str") -> "CountMode":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ValueError(f'mode should be one of "inner" or "flank", got {value!r}')


class Side(str, Enum):
    FIVE_PRIME = "5p"
    THREE_PRIME = "3p"


@dataclass(frozen=True)
class Fragment:
    """A restriction fragment.

    Coordinates are 1-based inclusive, matching the fragment table given by the caller.

    Attributes
    ----------
    fragment_id:
        Positive integer identifier; fragments are numbered 1..N in input order.
    chrom:
        Contig name as present in the BAM header.
    start, end:
        First and last base of the fragment (``start <= end``).
    """

    fragment_id: int
    chrom: str
    start: int
    end: int

    @property
    def width(self) -> int:
        return self.end - self.start + 1


@dataclass(frozen=True)
class FlankWindow:
    """One end region of a fragment, clipped to the parent fragment bounds."""

    parent_id: int
    side: Side
    chrom: str
    start: int
    end: int

    @property
    def width(self) -> int:
        return self.end - self.start + 1


@dataclass(frozen=True)
class ReadAlignment:
    """The part of an alignment record the counter looks at.

    ``pos5`` is the 1-based reference coordinate of the read's 5' end: the leftmost
    aligned base on the forward strand, the rightmost aligned base on the reverse strand.
    """

    chrom: str
    pos5: int
    strand: str  # '+' or '-'
    is_duplicate: bool = False
    sample: Optional[str] = None


@dataclass
class FragmentCounts:
    """Fragment x sample count matrix with its row and column labels.

    ``counts[i, j]`` is the number of reads of ``samples[j]`` assigned to ``fragments[i]``.
    """

    counts: np.ndarray
    fragments: List[Fragment]
    samples: List[str]
    bam_paths: List[str]
    mode: CountMode
    flank_size: Optional[int] = None
    read_stats: Dict[str, Dict[str, int]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        expected = (len(self.fragments), len(self.samples))
        if self.counts.shape != expected:
            raise ValueError(
                f"counts has shape {self.counts.shape}, expected {expected} (fragments x samples)"
            )

    @property
    def shape(self) -> tuple:
        return self.counts.shape

    def sample_counts(self, sample: str) -> np.ndarray:
        return self.counts[:, self.samples.index(sample)]
