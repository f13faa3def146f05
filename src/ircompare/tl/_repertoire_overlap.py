import itertools
from collections.abc import Iterable, Sequence
from typing import Literal

import numpy as np
import pandas as pd
from scanpy import logging
from scipy.cluster import hierarchy as sc_hierarchy
from scipy.spatial import distance as sc_distance
from scipy.special import rel_entr

from ircompare.exceptions import EmptyRepertoireError, IncompatibleRepertoireError
from ircompare.io import Repertoire
from ircompare.util import _check_unique_samples, inject_param_docs


def _check_compatible(repertoires: Iterable[Repertoire]) -> None:
    """Raise an IncompatibleRepertoireError if repertoires with different, known types are compared."""
    types = {r.repertoire_type: r.sample_id for r in repertoires if r.repertoire_type is not None}
    if len(types) > 1:
        raise IncompatibleRepertoireError(sorted(types), sample_id=list(types.values())[-1])


def _select_type(repertoires: Sequence[Repertoire], repertoire_type: str | None) -> list[Repertoire]:
    """Restrict repertoires to a single repertoire type."""
    _check_unique_samples(repertoires)
    if repertoire_type is None:
        _check_compatible(repertoires)
        return list(repertoires)
    selected = [r for r in repertoires if r.repertoire_type == repertoire_type]
    if len(selected) < len(repertoires):
        logging.info(
            f"Skipping {len(repertoires) - len(selected)} repertoires that are not of type {repertoire_type}."
        )  # type: ignore
    return selected


def _overlap(seqs_a: set, seqs_b: set) -> float:
    if not len(seqs_a) or not len(seqs_b):
        return 0.0
    return len(seqs_a & seqs_b) / np.sqrt(len(seqs_a) * len(seqs_b))


@inject_param_docs()
def overlap(a: Repertoire, b: Repertoire, *, sequence: Literal["nt", "aa"] = "nt") -> float:
    """\
    Normalized overlap of two repertoires.

    The number of shared unique :term:`CDR3` sequences, divided by the geometric mean
    of the number of unique sequences of each repertoire:

    .. math::
        O(A, B) = \\frac{{|A \\cap B|}}{{\\sqrt{{|A| |B|}}}}

    The overlap with an empty repertoire is `0`.

    Parameters
    ----------
    a
        First repertoire
    b
        Second repertoire
    {sequence}

    Returns
    -------
    Overlap between 0 and 1.
    """
    _check_compatible([a, b])
    return _overlap(a.sequences(sequence), b.sequences(sequence))


@inject_param_docs()
def repertoire_overlap(
    repertoires: Sequence[Repertoire],
    *,
    sequence: Literal["nt", "aa"] = "nt",
    repertoire_type: str | None = None,
) -> pd.DataFrame:
    """\
    Pairwise normalized overlap between repertoires.

    See :func:`~ircompare.tl.overlap`.

    Parameters
    ----------
    {repertoires}
    {sequence}
    repertoire_type
        Only compare repertoires of this type and skip all others. If `None`,
        all repertoires need to be of the same type.

    Returns
    -------
    Symmetric sample x sample data frame.
    """
    repertoires = _select_type(repertoires, repertoire_type)
    seqs = [r.sequences(sequence) for r in repertoires]
    sample_ids = [r.sample_id for r in repertoires]
    mat = np.zeros((len(repertoires), len(repertoires)))
    for i, j in itertools.combinations_with_replacement(range(len(repertoires)), 2):
        mat[i, j] = mat[j, i] = _overlap(seqs[i], seqs[j])
    return pd.DataFrame(mat, index=pd.Index(sample_ids, name="sample_id"), columns=sample_ids)


def overlap_linkage(overlap_df: pd.DataFrame, *, method: str = "average") -> np.ndarray:
    """\
    Hierarchical clustering of samples based on their overlap.

    Uses `1 - overlap` as distance.

    Parameters
    ----------
    overlap_df
        Result of :func:`~ircompare.tl.repertoire_overlap`
    method
        Any linkage method accepted by :func:`scipy.cluster.hierarchy.linkage`

    Returns
    -------
    Linkage matrix.
    """
    if overlap_df.shape[0] < 2:
        raise ValueError("At least two samples are required for clustering.")
    dist = 1 - overlap_df.values
    np.fill_diagonal(dist, 0)
    return sc_hierarchy.linkage(sc_distance.squareform(dist, checks=False), method=method)


def _validate_distribution(x) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    if x.ndim != 1:
        raise ValueError("Expected a one-dimensional distribution.")
    if np.any(np.isnan(x)):
        raise ValueError("Distributions must not contain missing values.")
    if np.any(x < 0):
        raise ValueError("Distributions must not contain negative values.")
    total = np.sum(x)
    if total == 0:
        raise EmptyRepertoireError("Cannot compute the divergence of an empty distribution.")
    return x / total


def jensen_shannon_divergence(p, q, *, normalize: bool = False) -> float:
    """\
    Jensen-Shannon divergence between two distributions over the same support.

    .. math::
        JSD(p, q) = \\frac{1}{2} KL(p, m) + \\frac{1}{2} KL(q, m), \\quad m = \\frac{1}{2}(p + q)

    with the convention :math:`0 \\log \\frac{0}{x} = 0`. Inputs are normalized to sum to 1.
    Missing values raise a `ValueError`. :func:`~ircompare.tl.jsd_matrix` treats them as `0`.

    Parameters
    ----------
    p
        First distribution (e.g. gene usage or clonotype proportions)
    q
        Second distribution, aligned with `p`
    normalize
        If `True`, divide by :math:`\\log 2` to obtain a value in :math:`[0, 1]`.
        Otherwise the value is within :math:`[0, \\log 2]`.
    """
    p = _validate_distribution(p)
    q = _validate_distribution(q)
    if p.shape != q.shape:
        raise ValueError(f"Distributions need to have the same support, got lengths {len(p)} and {len(q)}.")
    m = 0.5 * (p + q)
    jsd = 0.5 * np.sum(rel_entr(p, m)) + 0.5 * np.sum(rel_entr(q, m))
    # clip rounding errors
    jsd = float(min(max(jsd, 0.0), np.log(2)))
    return jsd / np.log(2) if normalize else jsd


def jsd_matrix(distributions: pd.DataFrame, *, normalize: bool = False) -> pd.DataFrame:
    """\
    Pairwise Jensen-Shannon divergence between samples.

    Parameters
    ----------
    distributions
        Feature x sample data frame, e.g. the output of
        :func:`~ircompare.tl.segment_usage_matrix`. Missing values count as `0`.
    normalize
        See :func:`~ircompare.tl.jensen_shannon_divergence`.

    Returns
    -------
    Symmetric sample x sample data frame with zeros on the diagonal.
    """
    values = distributions.fillna(0).values.astype(float)
    n = values.shape[1]
    mat = np.zeros((n, n))
    for i, j in itertools.combinations(range(n), 2):
        try:
            mat[i, j] = mat[j, i] = jensen_shannon_divergence(values[:, i], values[:, j], normalize=normalize)
        except EmptyRepertoireError:
            sample_id = distributions.columns[j] if np.sum(values[:, i]) > 0 else distributions.columns[i]
            raise EmptyRepertoireError(
                "Cannot compute the divergence of an empty distribution.", sample_id=sample_id
            ) from None
    return pd.DataFrame(mat, index=pd.Index(distributions.columns, name="sample_id"), columns=distributions.columns)


@inject_param_docs()
def clonotype_jsd(
    repertoires: Sequence[Repertoire],
    *,
    sequence: Literal["nt", "aa"] = "nt",
    repertoire_type: str | None = None,
    normalize: bool = False,
) -> pd.DataFrame:
    """\
    Pairwise Jensen-Shannon divergence of clonotype proportions.

    Clonotype proportions are summed per unique :term:`CDR3` sequence and aligned
    across repertoires on the union of all sequences.

    Parameters
    ----------
    {repertoires}
    {sequence}
    repertoire_type
        Only compare repertoires of this type, see :func:`~ircompare.tl.repertoire_overlap`.
    normalize
        See :func:`~ircompare.tl.jensen_shannon_divergence`.

    Returns
    -------
    Symmetric sample x sample data frame.
    """
    repertoires = _select_type(repertoires, repertoire_type)
    for r in repertoires:
        if not len(r):
            raise EmptyRepertoireError(sample_id=r.sample_id)
    props = pd.concat(
        {
            r.sample_id: pd.Series(r.proportions, index=[c.sequence(sequence) for c in r]).groupby(level=0).sum()
            for r in repertoires
        },
        axis=1,
    )
    return jsd_matrix(props, normalize=normalize)


@inject_param_docs()
def top_cross(
    repertoires: Sequence[Repertoire],
    *,
    top_n: Iterable[int] = range(500, 10001, 500),
    sequence: Literal["nt", "aa"] = "nt",
    repertoire_type: str | None = None,
) -> pd.DataFrame:
    """\
    Overlap of the most abundant clonotypes between pairs of repertoires.

    For each rank threshold `N`, computes the :func:`~ircompare.tl.overlap` of the
    `N` most abundant clonotypes of each repertoire. This shows whether dominant clonotypes
    are shared, independent of the size of the repertoires. If a repertoire has fewer than
    `N` clonotypes, all of them are used.

    Parameters
    ----------
    {repertoires}
    top_n
        Rank thresholds
    {sequence}
    repertoire_type
        Only compare repertoires of this type, see :func:`~ircompare.tl.repertoire_overlap`.

    Returns
    -------
    Data frame with one row per pair of samples (multi-index `sample_a`, `sample_b`) and
    one column per rank threshold.
    """
    repertoires = _select_type(repertoires, repertoire_type)
    top_n = list(top_n)
    if any(n < 1 for n in top_n):
        raise ValueError("Rank thresholds must be positive.")

    # order by abundance once, top-N subsets are prefixes
    ranked = {}
    for r in repertoires:
        order = np.argsort(-r.counts, kind="stable")
        ranked[r.sample_id] = [r.clonotypes[i].sequence(sequence) for i in order]

    res = {}
    for a, b in itertools.combinations(repertoires, 2):
        res[(a.sample_id, b.sample_id)] = [
            _overlap(set(ranked[a.sample_id][:n]), set(ranked[b.sample_id][:n])) for n in top_n
        ]

    return pd.DataFrame(
        list(res.values()),
        index=pd.MultiIndex.from_tuples(list(res), names=["sample_a", "sample_b"]),
        columns=top_n,
    )
