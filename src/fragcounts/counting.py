"""Top-level counting runs.

``count_reads`` works on in-memory read iterables; ``fragment_counts`` is the BAM-based entry
point used by the CLI. Both build the lookup index once, count every sample independently
against it, then stack the per-sample vectors into the fragment x sample matrix.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from functools import partial
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from pysam.utils import SamtoolsError
from tqdm import tqdm

from .aggregator import count_sample, merge
from .assigner import CountIndex, build_count_index, iter_bam_reads
from .errors import InvalidFragmentError, ReadSourceError
from .flanks import DEFAULT_FLANK_SIZE
from .fragments import fragment_chroms, remap_fragments
from .models import CountMode, Fragment, FragmentCounts, ReadAlignment
from .utils import sample_name_from_path, unique_labels
from .validation import bam_contigs, check_contigs, detect_contig_style, ensure_bam_index

logger = logging.getLogger(__name__)


def count_reads(
    read_sources: Mapping[str, Iterable[ReadAlignment]],
    fragments: Sequence[Fragment],
    mode: CountMode | str,
    flank_size: int = DEFAULT_FLANK_SIZE,
) -> FragmentCounts:
    """Count in-memory reads per sample.

    ``read_sources`` maps sample labels to single-pass read iterables; its iteration order
    defines the matrix column order.
    """
    if not fragments:
        raise InvalidFragmentError("Fragment set is empty.")
    if not read_sources:
        raise ValueError("At least one read source is required")
    mode = CountMode.parse(mode)
    count_index = build_count_index(fragments, mode, flank_size)

    samples = unique_labels(read_sources)
    vectors: List[np.ndarray] = []
    stats_by_sample: Dict[str, Dict[str, int]] = {}
    for sample in samples:
        vec, stats = count_sample(read_sources[sample], count_index)
        vectors.append(vec)
        stats_by_sample[sample] = stats

    matrix = merge(vectors, samples)
    return FragmentCounts(
        counts=matrix.counts,
        fragments=list(fragments),
        samples=samples,
        bam_paths=[],
        mode=mode,
        flank_size=count_index.flank_size,
        read_stats=stats_by_sample,
    )


def _count_bam(
    bam_path: str,
    sample: str,
    *,
    count_index: CountIndex,
    include_secondary: bool,
    include_supplementary: bool,
    progress: bool,
) -> Tuple[str, np.ndarray, Dict[str, int]]:
    """Count one BAM; runs in a worker process when threads > 1."""
    t0 = time.time()
    counters: Dict[str, int] = {}
    reads: Iterable[ReadAlignment] = iter_bam_reads(
        bam_path,
        sample=sample,
        include_secondary=include_secondary,
        include_supplementary=include_supplementary,
        counters=counters,
    )
    if progress:
        reads = tqdm(reads, unit="read", desc=f"Counting {sample}")

    vec, stats = count_sample(reads, count_index)
    stats.update(counters)
    logger.info(
        "%s: %d of %d reads assigned (%.1fs)",
        sample,
        stats["reads_assigned"],
        stats["reads_total"],
        time.time() - t0,
    )
    return sample, vec, stats


def _prepare_fragments(
    fragments: Sequence[Fragment],
    bam_paths: Sequence[str],
    samples: Sequence[str],
    contig_style: str,
) -> List[Fragment]:
    """Reconcile fragment chromosome names with the BAM headers and check they overlap."""
    contigs_by_bam: Dict[str, List[str]] = {}
    for path, sample in zip(bam_paths, samples):
        try:
            contigs_by_bam[path] = bam_contigs(path)
        except (OSError, ValueError) as e:
            raise ReadSourceError(
                f"Cannot read header for sample '{sample}' ({path}): {e}", sample=sample, path=path
            ) from e
    frag_style = detect_contig_style(fragment_chroms(fragments))

    bam_style = detect_contig_style(contigs_by_bam[bam_paths[0]])
    target = contig_style
    if contig_style == "auto":
        target = bam_style if bam_style != "unknown" else frag_style

    out = list(fragments)
    if target in ("ucsc", "ensembl") and frag_style != target:
        logger.warning(
            "Contig style mismatch detected (fragments=%s, BAM=%s). Remapping fragments to %s style.",
            frag_style,
            bam_style,
            target,
        )
        out = remap_fragments(out, target)

    chroms = fragment_chroms(out)
    for path, contigs in contigs_by_bam.items():
        check_contigs(chroms, contigs, bam_path=path)
    return out


def fragment_counts(
    bam_paths: Sequence[str | Path],
    fragments: Sequence[Fragment],
    mode: CountMode | str,
    flank_size: int = DEFAULT_FLANK_SIZE,
    *,
    samples: Optional[Sequence[str]] = None,
    threads: int = 1,
    index_missing: bool = True,
    include_secondary: bool = False,
    include_supplementary: bool = False,
    contig_style: str = "auto",
    progress: bool = False,
) -> FragmentCounts:
    """Count reads from BAM files into restriction fragments.

    Parameters
    ----------
    bam_paths:
        One BAM per sample; the order defines the matrix columns.
    fragments:
        Fragments with ids 1..N (see ``load_fragments_bed``); the order defines the rows.
    mode:
        ``inner`` counts 5' ends inside the fragment, ``flank`` counts 5' ends inside the
        ``flank_size`` bp windows at either fragment end and merges both into the fragment.
    samples:
        Column labels; defaults to BAM file names without ``.bam``.
    threads:
        Number of BAMs counted concurrently (one worker process per BAM).
    index_missing:
        Create missing ``.bai`` files instead of failing.
    contig_style:
        ``auto`` follows the first BAM's naming; ``ucsc``/``ensembl`` force a style.

    All inputs are validated before any read is counted; the first failure aborts the run.
    """
    if not fragments:
        raise InvalidFragmentError("Fragment set is empty.")
    mode = CountMode.parse(mode)
    paths = [str(p) for p in bam_paths]
    if not paths:
        raise ValueError("At least one BAM file is required")
    if threads < 1:
        raise ValueError(f"threads must be >= 1, got {threads}")

    labels = unique_labels(samples if samples is not None else [sample_name_from_path(p) for p in paths])
    if len(labels) != len(paths):
        raise ValueError(f"Got {len(labels)} sample labels for {len(paths)} BAM files")

    missing = [(s, p) for s, p in zip(labels, paths) if not Path(p).exists()]
    if missing:
        sample, path = missing[0]
        text = "\n".join(f"* {p}" for _, p in missing)
        raise ReadSourceError(f"Each BAM file must exist:\n{text}", sample=sample, path=path)

    for sample, path in zip(labels, paths):
        try:
            ensure_bam_index(path, create=index_missing)
        except SamtoolsError as e:
            raise ReadSourceError(
                f"Cannot index reads for sample '{sample}' ({path}): {e}", sample=sample, path=path
            ) from e

    fragments = _prepare_fragments(fragments, paths, labels, contig_style)
    count_index = build_count_index(fragments, mode, flank_size)
    logger.info(
        "Counting %d BAM(s) into %d fragments (mode=%s%s)",
        len(paths),
        len(fragments),
        mode.value,
        f", flank={count_index.flank_size}" if count_index.flank_size is not None else "",
    )

    worker = partial(
        _count_bam,
        count_index=count_index,
        include_secondary=include_secondary,
        include_supplementary=include_supplementary,
        progress=progress,
    )

    results: Dict[str, Tuple[np.ndarray, Dict[str, int]]] = {}
    if threads == 1 or len(paths) == 1:
        for path, sample in zip(paths, labels):
            _, vec, stats = worker(path, sample)
            results[sample] = (vec, stats)
    else:
        with ProcessPoolExecutor(max_workers=min(threads, len(paths))) as executor:
            futures = {executor.submit(worker, path, sample): sample for path, sample in zip(paths, labels)}
            for future in as_completed(futures):
                sample = futures[future]
                try:
                    _, vec, stats = future.result()
                except Exception:
                    logger.error("Counting failed for sample %s", sample)
                    for f in futures:
                        f.cancel()
                    raise
                results[sample] = (vec, stats)

    matrix = merge([results[s][0] for s in labels], labels)
    return FragmentCounts(
        counts=matrix.counts,
        fragments=list(fragments),
        samples=labels,
        bam_paths=paths,
        mode=mode,
        flank_size=count_index.flank_size,
        read_stats={s: results[s][1] for s in labels},
    )
