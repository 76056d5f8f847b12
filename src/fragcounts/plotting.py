from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Sequence

import matplotlib.pyplot as plt
import numpy as np

logger = logging.getLogger(__name__)


def plot_sample_totals(
    *,
    totals: Dict[str, int],
    out_png: str | Path,
    title: str = "Assigned reads per sample",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = list(totals)
    values = [int(totals[s]) for s in labels]

    plt.figure()
    plt.bar(labels, values)
    plt.ylabel("Read count")
    plt.title(title)
    plt.xticks(rotation=15, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_read_fates(
    *,
    read_stats: Dict[str, Dict[str, int]],
    out_png: str | Path,
    title: str = "Read fates",
) -> None:
    """Stacked bars: assigned, unassigned and duplicate reads per sample."""
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    samples = list(read_stats)
    keys = [
        ("reads_assigned", "Assigned"),
        ("reads_unassigned", "Unassigned"),
        ("reads_skipped_duplicates", "Duplicates"),
    ]
    bottom = np.zeros(len(samples))

    plt.figure()
    for key, label in keys:
        vals = np.array([int(read_stats[s].get(key, 0)) for s in samples], dtype=float)
        plt.bar(samples, vals, bottom=bottom, label=label)
        bottom += vals
    plt.ylabel("Read count")
    plt.title(title)
    plt.legend()
    plt.xticks(rotation=15, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_fragment_count_hist(
    *,
    counts: np.ndarray,
    samples: Sequence[str],
    out_png: str | Path,
    title: str = "Reads per fragment",
    max_bin: int = 50,
) -> None:
    """Histogram of per-fragment counts, tail collapsed into ``max_bin+``."""
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    xs = list(range(0, max_bin + 2))
    xticklabels: List[str] = [str(x) for x in range(0, max_bin + 1)] + [f"{max_bin + 1}+"]

    plt.figure()
    for j, sample in enumerate(samples):
        col = np.minimum(np.asarray(counts[:, j], dtype=np.int64), max_bin + 1)
        ys = np.bincount(col, minlength=max_bin + 2)
        plt.step(xs, ys, where="mid", label=sample)
    plt.xlabel("Reads per fragment")
    plt.ylabel("Fragments")
    plt.title(title)
    step = max(1, (max_bin + 2) // 10)
    plt.xticks(xs[::step], xticklabels[::step])
    if len(samples) > 1:
        plt.legend()
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
