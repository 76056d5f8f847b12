import random

import numpy as np
import pysam
import pytest

from fragcounts.aggregator import aggregate, count_sample, merge
from fragcounts.assigner import (
    UNASSIGNED,
    assign_read,
    build_count_index,
    five_prime_position,
    read_from_segment,
)
from fragcounts.counting import count_reads
from fragcounts.errors import InvalidFragmentError
from fragcounts.fragments import fragments_from_intervals
from fragcounts.models import CountMode, ReadAlignment


HEADER = pysam.AlignmentHeader.from_dict({"SQ": [{"SN": "chr1", "LN": 10000}]})


def make_read(start: int = 100, length: int = 30, *, reverse: bool = False, cigar=None) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment(HEADER)
    a.query_name = "r1"
    a.query_sequence = "A" * length
    a.flag = 16 if reverse else 0
    a.reference_id = 0
    a.reference_start = start
    a.mapping_quality = 60
    a.cigartuples = cigar if cigar is not None else [(0, length)]  # M
    a.query_qualities = pysam.qualitystring_to_array("I" * length)
    return a


def fwd(pos: int, dup: bool = False) -> ReadAlignment:
    return ReadAlignment(chrom="chr1", pos5=pos, strand="+", is_duplicate=dup)


SCENARIO = [("chr1", 100, 199), ("chr1", 300, 599)]


def test_five_prime_forward_and_reverse():
    assert five_prime_position(make_read(start=99, length=30)) == 100
    assert five_prime_position(make_read(start=99, length=30, reverse=True)) == 129


def test_five_prime_ignores_soft_clips_and_counts_deletions():
    # 5S 20M 3D 5M 4S: aligned span covers 28 reference bases
    cigar = [(4, 5), (0, 20), (2, 3), (0, 5), (4, 4)]
    read = make_read(start=199, length=34, cigar=cigar)
    assert five_prime_position(read) == 200
    read_rev = make_read(start=199, length=34, reverse=True, cigar=cigar)
    assert five_prime_position(read_rev) == 227


def test_read_from_segment():
    seg = make_read(start=99, length=30, reverse=True)
    seg.is_duplicate = True
    r = read_from_segment(seg, sample="s1")
    assert r.chrom == "chr1"
    assert r.pos5 == 129
    assert r.strand == "-"
    assert r.is_duplicate
    assert r.sample == "s1"


def test_scenario_inner_and_flank():
    frags = fragments_from_intervals(SCENARIO)
    reads = [fwd(110), fwd(150), fwd(190), fwd(310), fwd(520)]

    inner = count_reads({"s1": reads}, frags, "inner")
    flank = count_reads({"s1": reads}, frags, "flank", 100)
    assert inner.counts[:, 0].tolist() == [3, 2]
    assert flank.counts[:, 0].tolist() == [3, 2]

    reads_mid = reads + [fwd(450)]
    inner = count_reads({"s1": reads_mid}, frags, CountMode.INNER)
    flank = count_reads({"s1": reads_mid}, frags, CountMode.FLANK, 100)
    assert inner.counts[:, 0].tolist() == [3, 3]
    assert flank.counts[:, 0].tolist() == [3, 2]
    assert flank.flank_size == 100
    assert inner.flank_size is None


def test_small_fragment_read_counted_once_in_flank_mode():
    frags = fragments_from_intervals([("chr1", 100, 149)])
    ci = build_count_index(frags, CountMode.FLANK, 100)
    for pos in range(100, 150):
        assert ci.index.query("chr1", pos) == {1}
        assert assign_read(fwd(pos), ci) == 1
    res = count_reads({"s": [fwd(p) for p in range(100, 150)]}, frags, "flank")
    assert int(res.counts[0, 0]) == 50


def test_duplicates_never_counted():
    frags = fragments_from_intervals(SCENARIO)
    for mode in CountMode:
        ci = build_count_index(frags, mode)
        assert assign_read(fwd(110, dup=True), ci) is UNASSIGNED
        res = count_reads({"s": [fwd(110, dup=True), fwd(310, dup=True)]}, frags, mode)
        assert res.counts.sum() == 0
        assert res.read_stats["s"]["reads_skipped_duplicates"] == 2


def test_flank_overlap_between_parents_lowest_id():
    # Fragment 2 overlaps the 3' window of fragment 1
    frags = fragments_from_intervals([("chr1", 1, 1000), ("chr1", 950, 1200)])
    ci = build_count_index(frags, "flank", 100)
    assert ci.index.query("chr1", 960) == {1, 2}
    assert assign_read(fwd(960), ci) == 1
    assert assign_read(fwd(1150), ci) == 2


def test_disjoint_inner_counts_match_brute_force():
    rng = random.Random(11)
    intervals = []
    pos = 1
    for _ in range(40):
        start = pos + rng.randint(0, 30)
        end = start + rng.randint(0, 200)
        intervals.append(("chr1", start, end))
        pos = end + 1
    frags = fragments_from_intervals(intervals)
    reads = [fwd(rng.randint(1, pos + 50), dup=rng.random() < 0.1) for _ in range(3000)]

    res = count_reads({"s": reads}, frags, "inner")
    for f in frags:
        expected = sum(1 for r in reads if not r.is_duplicate and f.start <= r.pos5 <= f.end)
        assert int(res.counts[f.fragment_id - 1, 0]) == expected
    in_any = sum(
        1 for r in reads if not r.is_duplicate and any(f.start <= r.pos5 <= f.end for f in frags)
    )
    assert int(res.counts.sum()) == in_any


def test_flank_counts_monotone_in_flank_size_and_saturate():
    rng = random.Random(5)
    frags = fragments_from_intervals([("chr1", 1, 1000), ("chr1", 1001, 1300), ("chr1", 1301, 1350)])
    reads = [fwd(rng.randint(1, 1350)) for _ in range(2000)]
    inner = count_reads({"s": reads}, frags, "inner").counts[:, 0]

    prev = np.zeros(len(frags), dtype=np.int64)
    for flank in (1, 10, 25, 50, 100, 150, 300, 500, 1000):
        cur = count_reads({"s": reads}, frags, "flank", flank).counts[:, 0]
        assert np.all(cur >= prev)
        assert np.all(cur <= inner)
        prev = cur
    assert prev.tolist() == inner.tolist()


def test_order_invariance_and_idempotence():
    rng = random.Random(3)
    frags = fragments_from_intervals(SCENARIO)
    reads = [fwd(rng.randint(50, 650), dup=rng.random() < 0.2) for _ in range(500)]
    shuffled = list(reads)
    rng.shuffle(shuffled)

    for mode in ("inner", "flank"):
        a = count_reads({"s": reads}, frags, mode)
        b = count_reads({"s": shuffled}, frags, mode)
        c = count_reads({"s": reads}, frags, mode)
        assert a.counts.tolist() == b.counts.tolist() == c.counts.tolist()
        first = build_count_index(frags, mode)
        again = build_count_index(frags, mode)
        assert [assign_read(r, first) for r in reads] == [assign_read(r, again) for r in reads]
        assert aggregate([assign_read(r, first) for r in reads], len(frags)).tolist() == a.counts[:, 0].tolist()


def test_sample_order_permutes_columns_only():
    frags = fragments_from_intervals(SCENARIO)
    s1 = [fwd(110), fwd(310)]
    s2 = [fwd(150), fwd(150), fwd(520), fwd(450)]
    ab = count_reads({"a": s1, "b": s2}, frags, "inner")
    ba = count_reads({"b": s2, "a": s1}, frags, "inner")
    assert ab.samples == ["a", "b"]
    assert ba.samples == ["b", "a"]
    assert ab.counts[:, 0].tolist() == ba.counts[:, 1].tolist()
    assert ab.counts[:, 1].tolist() == ba.counts[:, 0].tolist()
    assert ab.sample_counts("b").tolist() == [2, 2]


def test_zero_rows_are_explicit():
    frags = fragments_from_intervals(SCENARIO + [("chr2", 1, 100)])
    res = count_reads({"s": [fwd(110)]}, frags, "inner")
    assert res.counts.shape == (3, 1)
    assert res.counts[:, 0].tolist() == [1, 0, 0]


def test_count_sample_stats():
    frags = fragments_from_intervals(SCENARIO)
    ci = build_count_index(frags, "inner")
    reads = [
        fwd(110),
        fwd(250),
        fwd(110, dup=True),
        ReadAlignment(chrom="chrUn", pos5=5, strand="+"),
    ]
    vec, stats = count_sample(reads, ci)
    assert vec.tolist() == [1, 0]
    assert stats == {
        "reads_total": 4,
        "reads_skipped_duplicates": 1,
        "reads_assigned": 1,
        "reads_unassigned": 2,
        "reads_unknown_contig": 1,
    }


def test_aggregate_and_merge():
    v1 = aggregate([1, 1, None, 3], 3)
    v2 = aggregate([], 3)
    assert v1.tolist() == [2, 0, 1]
    assert v2.tolist() == [0, 0, 0]
    m = merge([v1, v2], ["x", "y"])
    assert m.n_fragments == 3
    assert m.n_samples == 2
    assert m.get(1, "x") == 2
    assert m.get(3, "y") == 0
    assert m.totals() == {"x": 3, "y": 0}
    with pytest.raises(KeyError):
        m.get(4, "x")
    with pytest.raises(ValueError):
        merge([v1, np.zeros(2, dtype=np.int64)], ["x", "y"])
    with pytest.raises(ValueError):
        merge([v1], ["x", "y"])


def test_mode_is_required_and_validated():
    frags = fragments_from_intervals(SCENARIO)
    with pytest.raises(ValueError):
        build_count_index(frags, "both")
    assert CountMode.parse("FLANK") is CountMode.FLANK


def test_empty_fragment_set_rejected():
    with pytest.raises(InvalidFragmentError):
        count_reads({"s": []}, [], "inner")


def test_read_sources_required():
    frags = fragments_from_intervals(SCENARIO)
    with pytest.raises(ValueError):
        count_reads({}, frags, "inner")
