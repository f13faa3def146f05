import pandas as pd
import pytest

from ircompare.io import Repertoire, SampleMetadata

from .util import _make_repertoire


@pytest.fixture
def rep_a():
    return _make_repertoire(
        "A",
        [
            ("CASSLK", 10, "TRBV5-1", "TRBJ2-7"),
            ("CASSLR", 5, "TRBV5-1", "TRBJ1-1"),
        ],
    )


@pytest.fixture
def rep_b():
    return _make_repertoire("B", [("CASSLK", 8, "TRBV6-1", "TRBJ2-7")])


@pytest.fixture
def rep_empty():
    return Repertoire("empty", [], repertoire_type="TRB")


@pytest.fixture
def rep_tra():
    return _make_repertoire("TRA1", [("CAVRDK", 3, "TRAV1-2", "TRAJ33")], repertoire_type="TRA")


@pytest.fixture
def reps_usage():
    """Repertoires with ambiguous and missing gene assignments"""
    s1 = _make_repertoire(
        "S1",
        [
            ("CASSA", 6, "TRBV1", "TRBJ1"),
            ("CASSB", 2, ["TRBV2", "TRBV3"], "TRBJ1"),
            ("CASSC", 2, None, "TRBJ2"),
        ],
    )
    # does not report V genes
    s2 = _make_repertoire("S2", [("CASSD", 3, None, "TRBJ1")])
    s3 = _make_repertoire("S3", [("CASSE", 4, "TRBV1", "TRBJ2")])
    return [s1, s2, s3]


@pytest.fixture
def reps_network():
    return [
        _make_repertoire("P1", [("CASSLK", 10), ("CASSLR", 5), ("CASSQQ", 2), ("CASRL", 1)]),
        _make_repertoire("P2", [("CASSLK", 8), ("CASSLR", 1), ("CASSL", 3)]),
        _make_repertoire("P3", [("CASSQQ", 4), ("CASSL", 2), ("CASRL", 7)]),
    ]


@pytest.fixture
def metadata():
    return {
        "P1": SampleMetadata("P1", condition="disease", tissue="blood", repertoire_type="TRB"),
        "P2": SampleMetadata("P2", condition="healthy", tissue="blood", repertoire_type="TRB"),
        "P3": SampleMetadata("P3", condition="disease", tissue="tumor", repertoire_type="TRB"),
    }


@pytest.fixture
def clonotype_table():
    return pd.DataFrame(
        # fmt: off
        [
            [10, 0.5, "TGTGCCAGCAGCCTGAAA", "CASSLK", "TRBV5-1*01", "TRBJ2-7*01"],
            [5, 0.25, "TGTGCCAGCAGCCTGAGA", "CASSLR", "TRBV5-1*01(1200),TRBV5-6*01(1100)", "TRBJ1-1"],
            [3, 0.15, "TGTGCCAGCAGCCTGAAA", "CASSLK", "TRBV5-1*01", "TRBJ2-7*01"],
            [2, 0.1, "TGTGCCAGCAGCCAGCAG", "CASSQQ", ".", "TRBJ2-1"],
        ],
        # fmt: on
        columns=["count", "freq", "cdr3nt", "cdr3aa", "v", "j"],
    )
