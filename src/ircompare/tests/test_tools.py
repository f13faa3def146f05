import itertools

import numpy as np
import numpy.testing as npt
import pandas as pd
import pandas.testing as pdt
import pytest

import ircompare as irc
from ircompare.exceptions import EmptyRepertoireError, IncompatibleRepertoireError

from .util import _is_symmetric, _make_repertoire


@pytest.mark.parametrize("n", [1, 2, 5, 100])
def test_diversity_uniform(n):
    counts = np.full(n, 3)
    npt.assert_almost_equal(irc.tl.shannon_entropy(counts), np.log(n))
    npt.assert_almost_equal(irc.tl.true_diversity(counts), n)
    npt.assert_almost_equal(irc.tl.gini_coefficient(counts), 0)
    npt.assert_almost_equal(irc.tl.normalized_shannon_entropy(counts), 0 if n == 1 else 1)
    assert irc.tl.richness(counts) == n


@pytest.mark.parametrize("counts", [[1, 2, 3], [100, 1], [5, 5, 5, 1], [1, 0, 0, 7]])
def test_true_diversity_bounded(counts):
    assert irc.tl.true_diversity(counts) < len(counts)


@pytest.mark.parametrize("n", [2, 10, 1000])
def test_gini_single_clonotype(n):
    counts = np.zeros(n)
    counts[0] = 10
    npt.assert_almost_equal(irc.tl.gini_coefficient(counts), (n - 1) / n)


def test_gini():
    # sorted: [1/3, 2/3] -> 2 * (1/3 + 4/3) / 2 - 3/2
    npt.assert_almost_equal(irc.tl.gini_coefficient([10, 5]), 1 / 6)
    # proportions give the same result as counts
    npt.assert_almost_equal(irc.tl.gini_coefficient([2 / 3, 1 / 3]), 1 / 6)


@pytest.mark.parametrize(
    "counts,percentage,expected",
    [
        ([10, 5, 5, 80], 25, 1),
        ([10, 5, 5, 80], 80, 1),
        ([10, 5, 5, 80], 90, 2),
        ([10, 5, 5, 80], 95, 3),
        ([10, 5, 5, 80], 100, 4),
        ([1, 1, 1, 1], 50, 2),
        ([1], 1, 1),
    ],
)
def test_clonal_proportion(counts, percentage, expected):
    assert irc.tl.clonal_proportion(counts, percentage=percentage) == expected


@pytest.mark.parametrize("percentage", [0, -5, 101])
def test_clonal_proportion_invalid(percentage):
    with pytest.raises(ValueError):
        irc.tl.clonal_proportion([1, 2], percentage=percentage)


@pytest.mark.parametrize(
    "func",
    [
        irc.tl.shannon_entropy,
        irc.tl.true_diversity,
        irc.tl.gini_coefficient,
        irc.tl.clonal_proportion,
        irc.tl.normalized_shannon_entropy,
    ],
)
@pytest.mark.parametrize("counts", [[], [0, 0]])
def test_diversity_empty(func, counts):
    with pytest.raises(EmptyRepertoireError):
        func(counts)


def test_alpha_diversity(rep_a, rep_b):
    res = irc.tl.alpha_diversity([rep_a, rep_b])
    assert res.columns.tolist() == ["shannon"]
    npt.assert_almost_equal(res.loc["A", "shannon"], -(2 / 3 * np.log(2 / 3) + 1 / 3 * np.log(1 / 3)))
    npt.assert_almost_equal(res.loc["B", "shannon"], 0)

    res = irc.tl.alpha_diversity([rep_a, rep_b], metric=["gini", "true_diversity", "richness"])
    npt.assert_almost_equal(res["gini"].values, [1 / 6, 0])
    npt.assert_almost_equal(res["richness"].values, [2, 1])
    assert np.all(res["true_diversity"] <= res["richness"])

    res = irc.tl.alpha_diversity([rep_a, rep_b], metric="clonal_proportion", percentage=90)
    assert res.to_dict(orient="index") == {"A": {"clonal_proportion": 2}, "B": {"clonal_proportion": 1}}

    # custom metric function simply returns the # of unique clonotypes
    def n_clonotypes(counts):
        return len(counts)

    res = irc.tl.alpha_diversity([rep_a, rep_b], metric=n_clonotypes)
    assert res.to_dict(orient="index") == {"A": {"n_clonotypes": 2}, "B": {"n_clonotypes": 1}}


def test_alpha_diversity_kwargs(rep_a, rep_b):
    def n_clonotypes(counts):
        return len(counts)

    def n_above(counts, **kwargs):
        return int(np.sum(counts >= kwargs.get("percentage", 0)))

    res = irc.tl.alpha_diversity([rep_a, rep_b], metric=["clonal_proportion", n_clonotypes, n_above], percentage=8)
    assert res.to_dict(orient="index") == {
        "A": {"clonal_proportion": 1, "n_clonotypes": 2, "n_above": 1},
        "B": {"clonal_proportion": 1, "n_clonotypes": 1, "n_above": 1},
    }


def test_alpha_diversity_errors(rep_a, rep_empty):
    with pytest.raises(EmptyRepertoireError) as excinfo:
        irc.tl.alpha_diversity([rep_a, rep_empty])
    assert excinfo.value.sample_id == "empty"

    with pytest.raises(ValueError, match="Unknown metric"):
        irc.tl.alpha_diversity([rep_a], metric="foo")


def test_overlap(rep_a, rep_b):
    npt.assert_almost_equal(irc.tl.overlap(rep_a, rep_b), 1 / np.sqrt(2))
    npt.assert_almost_equal(irc.tl.overlap(rep_b, rep_a), 1 / np.sqrt(2))
    assert irc.tl.overlap(rep_a, rep_a) == 1
    npt.assert_almost_equal(irc.tl.overlap(rep_a, rep_b, sequence="aa"), 1 / np.sqrt(2))


def test_overlap_empty(rep_a, rep_empty):
    assert irc.tl.overlap(rep_a, rep_empty) == 0
    assert irc.tl.overlap(rep_empty, rep_empty) == 0


def test_overlap_incompatible(rep_a, rep_tra):
    with pytest.raises(IncompatibleRepertoireError):
        irc.tl.overlap(rep_a, rep_tra)


def test_repertoire_overlap(rep_a, rep_b, rep_empty):
    rep_c = _make_repertoire("C", [("CASSLR", 1), ("CASSQQ", 1), ("CASSPP", 1), ("CASSGG", 1)])
    res = irc.tl.repertoire_overlap([rep_a, rep_b, rep_c, rep_empty])
    expected = pd.DataFrame(
        [
            [1, 1 / np.sqrt(2), 1 / np.sqrt(8), 0],
            [1 / np.sqrt(2), 1, 0, 0],
            [1 / np.sqrt(8), 0, 1, 0],
            [0, 0, 0, 0],
        ],
        index=pd.Index(["A", "B", "C", "empty"], name="sample_id"),
        columns=["A", "B", "C", "empty"],
    )
    pdt.assert_frame_equal(res, expected)
    assert _is_symmetric(res.values)


def test_repertoire_overlap_repertoire_type(rep_a, rep_b, rep_tra):
    with pytest.raises(IncompatibleRepertoireError):
        irc.tl.repertoire_overlap([rep_a, rep_b, rep_tra])

    res = irc.tl.repertoire_overlap([rep_a, rep_b, rep_tra], repertoire_type="TRB")
    assert res.index.tolist() == ["A", "B"]

    res = irc.tl.repertoire_overlap([rep_a, rep_b, rep_tra], repertoire_type="TRA")
    assert res.values.tolist() == [[1.0]]


def test_overlap_linkage(rep_a, rep_b):
    rep_c = _make_repertoire("C", [("CASSLR", 1), ("CASSQQ", 1)])
    linkage = irc.tl.overlap_linkage(irc.tl.repertoire_overlap([rep_a, rep_b, rep_c]))
    assert linkage.shape == (2, 4)
    # A and B have the largest overlap and are merged first
    assert set(linkage[0, :2]) == {0, 1}

    with pytest.raises(ValueError):
        irc.tl.overlap_linkage(irc.tl.repertoire_overlap([rep_a]))


def test_jensen_shannon_divergence():
    npt.assert_almost_equal(irc.tl.jensen_shannon_divergence([1, 0], [0, 1]), np.log(2))
    npt.assert_almost_equal(irc.tl.jensen_shannon_divergence([1, 0], [0, 1], normalize=True), 1)
    npt.assert_almost_equal(irc.tl.jensen_shannon_divergence([1, 2, 3], [2, 4, 6]), 0)

    # p = (1/2, 1/2), q = (1, 0), m = (3/4, 1/4)
    expected = 0.5 * (0.5 * np.log(0.5 / 0.75) + 0.5 * np.log(0.5 / 0.25)) + 0.5 * np.log(1 / 0.75)
    npt.assert_almost_equal(irc.tl.jensen_shannon_divergence([1, 1], [1, 0]), expected)


def test_jensen_shannon_divergence_properties():
    rng = np.random.default_rng(0)
    for _ in range(20):
        p, q = rng.random(10), rng.random(10)
        p[rng.integers(10)] = 0
        jsd = irc.tl.jensen_shannon_divergence(p, q)
        assert 0 <= jsd <= np.log(2)
        npt.assert_almost_equal(jsd, irc.tl.jensen_shannon_divergence(q, p))
        npt.assert_almost_equal(irc.tl.jensen_shannon_divergence(p, p), 0)


def test_jensen_shannon_divergence_errors():
    with pytest.raises(ValueError):
        irc.tl.jensen_shannon_divergence([1, 0], [1, 0, 0])
    with pytest.raises(ValueError):
        irc.tl.jensen_shannon_divergence([1, -1], [1, 0])
    with pytest.raises(ValueError, match="missing"):
        irc.tl.jensen_shannon_divergence([0.5, np.nan, 0.5], [0.2, 0.3, 0.5])
    with pytest.raises(ValueError, match="missing"):
        irc.tl.jensen_shannon_divergence([1, 0], [np.nan, np.nan])
    with pytest.raises(EmptyRepertoireError):
        irc.tl.jensen_shannon_divergence([0, 0], [1, 0])


def test_jsd_matrix():
    usage = pd.DataFrame(
        {"S1": [0.5, 0.5, np.nan], "S2": [0.5, 0.5, np.nan], "S3": [np.nan, np.nan, 1.0]},
        index=["TRBV1", "TRBV2", "TRBV3"],
    )
    res = irc.tl.jsd_matrix(usage, normalize=True)
    npt.assert_almost_equal(res.values, [[0, 0, 1], [0, 0, 1], [1, 1, 0]])
    assert res.index.tolist() == res.columns.tolist() == ["S1", "S2", "S3"]

    usage["S4"] = np.nan
    with pytest.raises(EmptyRepertoireError) as excinfo:
        irc.tl.jsd_matrix(usage)
    assert excinfo.value.sample_id == "S4"


def test_clonotype_jsd(rep_a, rep_b, rep_empty):
    rep_a2 = _make_repertoire("A2", [("CASSLR", 1), ("CASSLK", 2)])
    res = irc.tl.clonotype_jsd([rep_a, rep_a2, rep_b])
    npt.assert_almost_equal(res.loc["A", "A2"], 0)
    assert res.loc["A", "B"] > 0
    assert _is_symmetric(res.values)

    with pytest.raises(EmptyRepertoireError):
        irc.tl.clonotype_jsd([rep_a, rep_empty])


def test_top_cross():
    rep_x = _make_repertoire("X", [("CASSA", 10), ("CASSB", 5), ("CASSC", 1)])
    rep_y = _make_repertoire("Y", [("CASSB", 8), ("CASSA", 1)])
    rep_z = _make_repertoire("Z", [("CASSA", 3)])
    res = irc.tl.top_cross([rep_x, rep_y, rep_z], top_n=[1, 2, 3])
    assert res.index.names == ["sample_a", "sample_b"]
    assert res.index.tolist() == [("X", "Y"), ("X", "Z"), ("Y", "Z")]
    assert res.columns.tolist() == [1, 2, 3]
    npt.assert_almost_equal(
        res.values,
        [
            [0, 1, 2 / np.sqrt(6)],
            [1, 1 / np.sqrt(2), 1 / np.sqrt(3)],
            [0, 1 / np.sqrt(2), 1 / np.sqrt(2)],
        ],
    )


def test_top_cross_default_thresholds(rep_a, rep_b):
    res = irc.tl.top_cross([rep_a, rep_b])
    assert res.columns.tolist() == list(range(500, 10001, 500))
    npt.assert_almost_equal(res.values, np.full((1, 20), 1 / np.sqrt(2)))

    with pytest.raises(ValueError):
        irc.tl.top_cross([rep_a, rep_b], top_n=[0])


def test_spectratype(rep_a):
    rep_c = _make_repertoire("C", [("CASSLRR", 5), ("CAS", 5), ("CAT", 10)])
    res = irc.tl.spectratype([rep_a, rep_c])
    expected = pd.DataFrame(
        {"A": [0, 1.0, 0], "C": [0.75, 0, 0.25]},
        index=pd.Index([3, 6, 7], name="cdr3_length"),
    )
    pdt.assert_frame_equal(res, expected, check_dtype=False)

    res = irc.tl.spectratype([rep_c], weight="clonotypes")
    npt.assert_almost_equal(res["C"].values, [2 / 3, 1 / 3])


def test_clonal_expansion():
    rep = _make_repertoire("S1", [("CASSA", 1), ("CASSB", 2), ("CASSC", 10)])
    res = irc.tl.clonal_expansion([rep])
    assert res.columns.tolist() == ["<= 1", "<= 2", "<= 5", "> 5"]
    npt.assert_almost_equal(res.loc["S1"].values, [1 / 13, 2 / 13, 0, 10 / 13])

    res = irc.tl.clonal_expansion([rep], breakpoints=(2,), normalize=False)
    npt.assert_equal(res.loc["S1"].values, [3, 10])

    with pytest.raises(ValueError):
        irc.tl.clonal_expansion([rep], breakpoints=())
    with pytest.raises(ValueError):
        irc.tl.clonal_expansion([rep], breakpoints=(5, 2))


def test_overlap_symmetric_random():
    rng = np.random.default_rng(42)
    alphabet = list("ACDEFG")
    reps = [
        _make_repertoire(
            f"S{i}",
            [("CAS" + "".join(rng.choice(alphabet, 2)), int(rng.integers(1, 10))) for _ in range(15)],
        )
        for i in range(4)
    ]
    res = irc.tl.repertoire_overlap(reps, sequence="aa")
    for a, b in itertools.combinations(reps, 2):
        npt.assert_almost_equal(res.loc[a.sample_id, b.sample_id], irc.tl.overlap(b, a, sequence="aa"))
    npt.assert_almost_equal(np.diag(res.values), 1)
