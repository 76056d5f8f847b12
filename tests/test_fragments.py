import gzip
from pathlib import Path

import pytest

from fragcounts.errors import InvalidFragmentError
from fragcounts.fragments import (
    fragment_chroms,
    fragments_from_intervals,
    load_fragments_bed,
    remap_fragments,
)


def test_ids_follow_input_order() -> None:
    frags = fragments_from_intervals([("chr2", 5, 10), ("chr1", 1, 4), ("chr2", 1, 4)])
    assert [f.fragment_id for f in frags] == [1, 2, 3]
    assert [f.chrom for f in frags] == ["chr2", "chr1", "chr2"]
    assert frags[0].width == 6
    assert fragment_chroms(frags) == ["chr2", "chr1"]


def test_single_base_fragment_is_valid() -> None:
    frags = fragments_from_intervals([("chr1", 7, 7)])
    assert frags[0].width == 1


@pytest.mark.parametrize(
    "intervals",
    [
        [],
        [("chr1", 200, 100)],
        [("chr1", 0, 10)],
        [("", 1, 10)],
        [("chr1", "a", 10)],
        [("chr1", 1)],
    ],
)
def test_invalid_intervals(intervals) -> None:
    with pytest.raises(InvalidFragmentError):
        fragments_from_intervals(intervals)


def test_error_carries_offending_record() -> None:
    with pytest.raises(InvalidFragmentError) as exc:
        fragments_from_intervals([("chr1", 1, 10), ("chr1", 30, 20)])
    assert exc.value.index == 2
    assert exc.value.record == ("chr1", 30, 20)
    assert "start > end" in str(exc.value)


def test_load_bed_converts_to_one_based(tmp_path: Path) -> None:
    bed = tmp_path / "frags.bed"
    bed.write_text(
        "track name=frags\n"
        "# comment\n"
        "\n"
        "chr1\t99\t199\tHindIII_1\n"
        "chr1\t299\t599\n",
        encoding="utf-8",
    )
    frags, stats = load_fragments_bed(bed)
    assert [(f.fragment_id, f.chrom, f.start, f.end) for f in frags] == [
        (1, "chr1", 100, 199),
        (2, "chr1", 300, 599),
    ]
    assert stats == {"lines_total": 5, "lines_skipped": 3, "fragments_loaded": 2}


def test_load_gzipped_bed(tmp_path: Path) -> None:
    bed = tmp_path / "frags.bed.gz"
    with gzip.open(bed, "wt") as fh:
        fh.write("chr1 0 50\nchr1 50 100\n")
    frags, _ = load_fragments_bed(bed)
    assert [(f.start, f.end) for f in frags] == [(1, 50), (51, 100)]


def test_load_bed_reports_line(tmp_path: Path) -> None:
    bed = tmp_path / "bad.bed"
    bed.write_text("chr1\t0\t50\nchr1\t80\t60\n", encoding="utf-8")
    with pytest.raises(InvalidFragmentError) as exc:
        load_fragments_bed(bed)
    assert exc.value.line == 2


def test_load_empty_bed(tmp_path: Path) -> None:
    bed = tmp_path / "empty.bed"
    bed.write_text("# nothing here\n", encoding="utf-8")
    with pytest.raises(InvalidFragmentError):
        load_fragments_bed(bed)


def test_remap_fragments_keeps_ids() -> None:
    frags = fragments_from_intervals([("1", 1, 10), ("MT", 1, 10)])
    remapped = remap_fragments(frags, "ucsc")
    assert [(f.fragment_id, f.chrom) for f in remapped] == [(1, "chr1"), (2, "chrM")]
