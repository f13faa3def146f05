import igraph as ig
import numpy as np
import numpy.testing as npt
import pytest

from ircompare.util import _check_unique_samples, _doc_params, _is_na2, inject_param_docs
from ircompare.util.graph import igraph_from_edges, layout_igraph

from .util import _is_symmetric, _make_repertoire


def test_is_symmetric():
    M = np.array([[1, 2, 2], [2, 1, 3], [2, 3, 1]])
    assert _is_symmetric(M)

    M = np.array([[1, 2, 2], [2, 1, np.nan], [2, np.nan, np.nan]])
    assert _is_symmetric(M)

    M = np.array([[1, 2, 2], [2, 1, 3], [3, 2, 1]])
    assert not _is_symmetric(M)


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, True),
        (np.nan, True),
        ("nan", True),
        ("None", True),
        ("", True),
        (42, False),
        (0, False),
        ("Foobar", False),
    ],
)
def test_is_na(value, expected):
    assert _is_na2(value) == expected


def test_check_unique_samples():
    reps = [_make_repertoire("S1", [("CASSA", 1)]), _make_repertoire("S2", [("CASSA", 1)])]
    _check_unique_samples(reps)
    _check_unique_samples([])
    with pytest.raises(ValueError, match="S1"):
        _check_unique_samples(reps + [_make_repertoire("S1", [("CASSB", 2)])])


def test_doc_params():
    @_doc_params(foo="foo\n    The foo parameter")
    def func(foo):
        """\
        Summary.

        {foo}
        """

    assert "The foo parameter" in func.__doc__
    assert "{foo}" in func.__orig_doc__

    @inject_param_docs()
    def func2(repertoires, sequence):
        """\
        Summary.

        Parameters
        ----------
        {repertoires}
        {sequence}
        """

    assert "Sample ids must be unique" in func2.__doc__
    assert "{" not in func2.__doc__


def test_igraph_from_edges():
    g = igraph_from_edges(4, np.array([[0, 1], [1, 2]]), weights=[3, 5])
    assert isinstance(g, ig.Graph)
    assert g.vcount() == 4
    assert g.ecount() == 2
    assert not g.is_directed()
    assert g.es["weight"] == [3, 5]
    assert g.degree() == [1, 2, 1, 0]

    g = igraph_from_edges(3, np.zeros((0, 2)), weights=[])
    assert g.vcount() == 3
    assert g.ecount() == 0


def test_layout_igraph():
    g = igraph_from_edges(4, np.array([[0, 1], [1, 2], [2, 3]]))
    coords = layout_igraph(g)
    assert coords.shape == (4, 2)
    npt.assert_equal(coords, layout_igraph(g))
    assert layout_igraph(ig.Graph()).shape == (0, 2)
