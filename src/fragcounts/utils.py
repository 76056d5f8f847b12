from __future__ import annotations

import gzip
import json
import logging
from pathlib import Path
from typing import Any, Iterable, List, TextIO

logger = logging.getLogger(__name__)


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def open_textmaybe_gzip(path: str | Path, mode: str = "rt") -> TextIO:
    p = str(path)
    if p.endswith(".gz"):
        return gzip.open(p, mode)  # type: ignore[return-value]
    return open(p, mode)


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)


def sample_name_from_path(path: str | Path) -> str:
    """Default sample label for a BAM: file name without the .bam suffix."""
    name = Path(path).name
    if name.endswith(".bam"):
        name = name[: -len(".bam")]
    return name


def unique_labels(labels: Iterable[str]) -> List[str]:
    """Return ``labels`` as a list, raising ValueError on duplicates."""
    out = list(labels)
    seen = set()
    dups = []
    for lab in out:
        if lab in seen:
            dups.append(lab)
        seen.add(lab)
    if dups:
        raise ValueError(f"Sample labels must be unique; duplicated: {sorted(set(dups))}")
    return out
