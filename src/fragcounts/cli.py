from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .counting import fragment_counts
from .flanks import DEFAULT_FLANK_SIZE
from .fragments import load_fragments_bed
from .models import CountMode
from .output import write_counts_tsv, write_summary
from .plotting import plot_fragment_count_hist, plot_read_fates, plot_sample_totals
from .report import render_report
from .toy_data import make_toy_data
from .utils import ensure_outdir, sample_name_from_path


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _positive_int(v: str) -> int:
    try:
        n = int(v)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected a positive integer, got {v!r}")
    if n < 1:
        raise argparse.ArgumentTypeError(f"Expected a positive integer, got {v!r}")
    return n


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    msg = f"{err.__class__.__name__}: {err}"
    logging.getLogger("fragcounts").debug("Run aborted", exc_info=err)

    sys.stderr.write(msg + "\n")
    if log_path is not None and log_path.exists():
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="fragcounts",
        description=(
            "FragCounts: count aligned reads into restriction fragments (Hi-C style) "
            "and write a fragment x sample count matrix."
        ),
    )
    p.add_argument("--version", action="version", version=f"fragcounts {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny BAM and fragment BED for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # count
    # -----------------
    c = sub.add_parser(
        "count",
        help="Count reads from one or more BAMs into restriction fragments.",
    )
    c.add_argument(
        "--bam",
        required=True,
        nargs="+",
        type=_path_exists,
        help="Input BAM(s), one per sample. Missing .bai indices are created.",
    )
    c.add_argument(
        "--fragments",
        required=True,
        type=_path_exists,
        help="Restriction fragments as BED (.bed/.bed.gz, 0-based half-open).",
    )
    c.add_argument(
        "--mode",
        choices=[m.value for m in CountMode],
        default=CountMode.INNER.value,
        help="inner: 5' end inside the fragment; flank: 5' end inside either fragment end window.",
    )
    c.add_argument(
        "--flank-size",
        type=_positive_int,
        default=DEFAULT_FLANK_SIZE,
        help="Width (bp) of each fragment end window in flank mode.",
    )
    c.add_argument(
        "--sample",
        nargs="+",
        default=None,
        help="Sample labels, one per BAM (default: BAM file names).",
    )
    c.add_argument("--outdir", required=True, help="Output directory.")
    c.add_argument("--threads", type=_positive_int, default=1, help="BAMs counted in parallel.")
    c.add_argument("--include-secondary", action="store_true", help="Count secondary alignments.")
    c.add_argument(
        "--include-supplementary", action="store_true", help="Count supplementary alignments."
    )
    c.add_argument(
        "--no-index",
        action="store_true",
        help="Fail instead of creating missing BAM indices.",
    )
    c.add_argument(
        "--contig-style",
        choices=["ucsc", "ensembl", "auto"],
        default="auto",
        help="Contig naming style to reconcile BAM headers and fragments.",
    )
    c.add_argument("--no-report", action="store_true", help="Skip plots and the HTML report.")
    c.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    c.add_argument("--resume", action="store_true", help="Skip if outputs already exist.")
    c.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


# -----------------
# Command handlers
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "FragCounts quickstart (copy/paste):",
        "",
        "1) Count reads into whole fragments:",
        "   fragcounts count \\",
        "     --bam sample1.bam sample2.bam \\",
        "     --fragments fragments.bed \\",
        "     --mode inner \\",
        "     --outdir results/",
        "   Outputs: results/counts.tsv.gz, results/summary.json, results/report.html",
        "",
        "2) Count reads near fragment ends (100 bp windows):",
        "   fragcounts count \\",
        "     --bam sample1.bam sample2.bam \\",
        "     --fragments fragments.bed \\",
        "     --mode flank --flank-size 100 \\",
        "     --threads 2 \\",
        "     --outdir results_flank/",
        "",
        "3) Try it on toy data:",
        "   fragcounts make-toy-data --outdir toy/",
        "   fragcounts count --bam toy/toy.bam --fragments toy/fragments.bed --outdir toy_out/",
        "",
        "Tip: use --dry-run to validate inputs without counting.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def cmd_count(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "count.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("fragcounts")
    logger.info("fragcounts %s", __version__)

    try:
        samples = args.sample
        if samples is not None and len(samples) != len(args.bam):
            raise ValueError(f"Got {len(samples)} --sample labels for {len(args.bam)} --bam files")

        fragments, fragment_stats = load_fragments_bed(args.fragments)
        mode = CountMode.parse(args.mode)

        counts_path = outdir / "counts.tsv.gz"
        summary_path = outdir / "summary.json"

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"Fragments: {len(fragments)}")
            print(f"Mode: {mode.value}" + (f" (flank {args.flank_size} bp)" if mode is CountMode.FLANK else ""))
            for bam, sample in zip(args.bam, samples or [sample_name_from_path(b) for b in args.bam]):
                print(f"  {sample}: {bam}")
            print("Planned outputs:")
            print(f"  counts.tsv.gz -> {counts_path}")
            print(f"  summary.json -> {summary_path}")
            if not args.no_report:
                print(f"  report.html -> {outdir / 'report.html'}")
            return 0

        outdir = ensure_outdir(outdir)

        if args.resume and summary_path.exists() and counts_path.exists():
            logger.info("Resume enabled: summary.json already exists in %s", outdir)
            print(str(counts_path))
            return 0

        result = fragment_counts(
            args.bam,
            fragments,
            mode,
            int(args.flank_size),
            samples=samples,
            threads=int(args.threads),
            index_missing=not bool(args.no_index),
            include_secondary=bool(args.include_secondary),
            include_supplementary=bool(args.include_supplementary),
            contig_style=args.contig_style,
            progress=True,
        )

        write_counts_tsv(result, counts_path)
        summary = write_summary(
            result,
            summary_path,
            fragments_path=str(args.fragments),
            fragment_stats=fragment_stats,
            version=__version__,
        )

        if args.no_report:
            print(str(counts_path))
            return 0

        plots_dir = outdir / "plots"
        plots_dir.mkdir(parents=True, exist_ok=True)

        totals_png = plots_dir / "sample_totals.png"
        fates_png = plots_dir / "read_fates.png"
        hist_png = plots_dir / "fragment_hist.png"

        plot_sample_totals(totals=summary["assigned_totals"], out_png=totals_png)
        plot_read_fates(read_stats=result.read_stats, out_png=fates_png)
        plot_fragment_count_hist(counts=result.counts, samples=result.samples, out_png=hist_png)

        plots_rel = {
            "sample_totals": str(Path("plots") / totals_png.name),
            "read_fates": str(Path("plots") / fates_png.name),
            "fragment_hist": str(Path("plots") / hist_png.name),
        }

        report_path = render_report(
            outdir=outdir,
            version=__version__,
            summary=summary,
            fragments_path=str(args.fragments),
            counts_path=str(counts_path),
            plots=plots_rel,
        )

        logger.info("Report written: %s", report_path)
        print(str(counts_path))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=None if args.dry_run else log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "count":
        return cmd_count(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
