import numpy as np
import numpy.testing as npt
import pytest

import ircompare as irc
from ircompare.exceptions import InvalidDepthError

from .util import _make_repertoire


@pytest.fixture
def rep_100():
    return _make_repertoire("S100", [("CASSA", 50), ("CASSB", 30), ("CASSC", 15), ("CASSD", 4), ("CASSE", 1)])


def test_normalize(rep_100):
    npt.assert_almost_equal(irc.pp.normalize(rep_100), [0.5, 0.3, 0.15, 0.04, 0.01])
    npt.assert_equal(irc.pp.normalize(rep_100, "count"), [50, 30, 15, 4, 1])
    with pytest.raises(ValueError):
        irc.pp.normalize(rep_100, "foo")


@pytest.mark.parametrize("n_reads", [0, 1, 10, 37, 99, 100])
def test_downsample(rep_100, n_reads):
    res = irc.pp.downsample(rep_100, n_reads, random_state=42)
    assert res.total_reads == n_reads
    assert res.sample_id == rep_100.sample_id
    assert res.repertoire_type == rep_100.repertoire_type
    if n_reads:
        npt.assert_almost_equal(np.sum(res.proportions), 1)
    original = {c.cdr3_aa: c.read_count for c in rep_100}
    for c in res:
        assert 0 < c.read_count <= original[c.cdr3_aa]


def test_downsample_reproducible(rep_100):
    res1 = irc.pp.downsample(rep_100, 20, random_state=0)
    res2 = irc.pp.downsample(rep_100, 20, random_state=0)
    assert res1.clonotypes == res2.clonotypes


def test_downsample_invalid_depth(rep_100):
    with pytest.raises(InvalidDepthError) as excinfo:
        irc.pp.downsample(rep_100, 150)
    assert excinfo.value.sample_id == "S100"
    assert excinfo.value.total_reads == 100

    with pytest.raises(InvalidDepthError):
        irc.pp.downsample(rep_100, -1)


def test_downsample_to_min(rep_100, rep_a, rep_b):
    res = irc.pp.downsample_to_min([rep_100, rep_a, rep_b])
    assert [r.sample_id for r in res] == ["S100", "A", "B"]
    assert [r.total_reads for r in res] == [8, 8, 8]
    assert irc.pp.downsample_to_min([]) == []


def test_downsample_to_min_unique_samples(rep_a):
    with pytest.raises(ValueError, match="unique"):
        irc.pp.downsample_to_min([rep_a, rep_a])
