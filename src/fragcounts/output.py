from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

import numpy as np

from .models import Fragment, FragmentCounts
from .utils import open_textmaybe_gzip, write_json

logger = logging.getLogger(__name__)

_FIXED_COLUMNS = ["fragment_id", "chrom", "start", "end"]


def write_counts_tsv(result: FragmentCounts, path: str | Path) -> Path:
    """Write the count matrix as TSV (gzipped if the path ends in .gz).

    One row per fragment in id order; coordinates are 1-based inclusive.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open_textmaybe_gzip(path, "wt") as fh:
        fh.write("\t".join(_FIXED_COLUMNS + list(result.samples)) + "\n")
        for frag, row in zip(result.fragments, result.counts):
            fh.write(
                f"{frag.fragment_id}\t{frag.chrom}\t{frag.start}\t{frag.end}\t"
                + "\t".join(str(int(v)) for v in row)
                + "\n"
            )
    logger.info("Counts written: %s", path)
    return path


def read_counts_tsv(path: str | Path) -> Tuple[List[Fragment], List[str], np.ndarray]:
    """Read a matrix written by ``write_counts_tsv``."""
    fragments: List[Fragment] = []
    rows: List[List[int]] = []
    with open_textmaybe_gzip(path, "rt") as fh:
        header = fh.readline().rstrip("\n").split("\t")
        if header[: len(_FIXED_COLUMNS)] != _FIXED_COLUMNS:
            raise ValueError(f"{path} is not a fragment counts table (header: {header[:4]})")
        samples = header[len(_FIXED_COLUMNS) :]
        for line in fh:
            fields = line.rstrip("\n").split("\t")
            if len(fields) != len(header):
                raise ValueError(f"{path}: expected {len(header)} columns, got {len(fields)}")
            fragments.append(
                Fragment(fragment_id=int(fields[0]), chrom=fields[1], start=int(fields[2]), end=int(fields[3]))
            )
            rows.append([int(v) for v in fields[len(_FIXED_COLUMNS) :]])
    counts = np.array(rows, dtype=np.int64).reshape(len(fragments), len(samples))
    return fragments, samples, counts


def summarize(result: FragmentCounts) -> Dict[str, Any]:
    totals = result.counts.sum(axis=0)
    nonzero = (result.counts > 0).sum(axis=0)
    return {
        "mode": result.mode.value,
        "flank_size": result.flank_size,
        "n_fragments": len(result.fragments),
        "samples": list(result.samples),
        "bam_paths": list(result.bam_paths),
        "assigned_totals": {s: int(v) for s, v in zip(result.samples, totals)},
        "fragments_with_reads": {s: int(v) for s, v in zip(result.samples, nonzero)},
        "read_stats": result.read_stats,
    }


def write_summary(result: FragmentCounts, path: str | Path, **extra: Any) -> Dict[str, Any]:
    summary = summarize(result)
    summary.update(extra)
    write_json(path, summary)
    return summary
