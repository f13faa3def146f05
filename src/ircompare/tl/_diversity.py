import inspect
from collections.abc import Callable, Sequence

import numpy as np
import pandas as pd

from ircompare.exceptions import EmptyRepertoireError
from ircompare.io import Repertoire
from ircompare.util import _check_unique_samples, inject_param_docs


def _to_freqs(counts, *, sample_id: str | None = None) -> np.ndarray:
    """Normalize a count or proportion vector such that it sums to 1."""
    counts = np.asarray(counts, dtype=float)
    if counts.ndim != 1:
        raise ValueError("Expected a one-dimensional count vector.")
    if np.any(counts < 0):
        raise ValueError("Counts must be non-negative.")
    total = np.sum(counts)
    if not len(counts) or total == 0:
        raise EmptyRepertoireError(sample_id=sample_id)
    freqs = counts / total
    np.testing.assert_almost_equal(np.sum(freqs), 1)
    return freqs


def shannon_entropy(counts: np.ndarray) -> float:
    """Shannon entropy :math:`H = -\\sum_i p_i \\log p_i` (natural logarithm).

    Parameters
    ----------
    counts
        Read counts or proportions of each clonotype. Will be normalized to proportions.
    """
    freqs = _to_freqs(counts)
    freqs = freqs[freqs > 0]
    return float(-np.sum(freqs * np.log(freqs)))


def normalized_shannon_entropy(counts: np.ndarray) -> float:
    """Shannon entropy normalized to the number of clonotypes according to
    https://math.stackexchange.com/a/945172
    """
    freqs = _to_freqs(counts)
    if len(freqs) == 1:
        # the formula below is not defined for n==1
        return 0.0
    return shannon_entropy(freqs) / np.log(len(freqs))


def true_diversity(counts: np.ndarray) -> float:
    """Effective number of clonotypes, :math:`D = \\exp(H)`.

    The number of equally abundant clonotypes that results in the same
    Shannon entropy as the observed distribution. Never exceeds the number
    of clonotypes.
    """
    return float(np.exp(shannon_entropy(counts)))


def gini_coefficient(counts: np.ndarray) -> float:
    """Gini coefficient of the clonotype abundance distribution.

    Computed over the values sorted in ascending order with ranks :math:`i = 1..n`:

    .. math::
        G = \\frac{2 \\sum_i i p_i}{n \\sum_i p_i} - \\frac{n + 1}{n}

    `0` means all clonotypes are equally abundant. Approaches `1` if all reads
    belong to a single clonotype.
    """
    freqs = np.sort(_to_freqs(counts))
    n = len(freqs)
    ranks = np.arange(1, n + 1)
    # clip rounding errors of an even distribution
    return float(max(2 * np.sum(ranks * freqs) / (n * np.sum(freqs)) - (n + 1) / n, 0.0))


def clonal_proportion(counts: np.ndarray, *, percentage: float = 25) -> int:
    """Minimum number of most abundant clonotypes that together hold
    `percentage` % of all reads.

    Clonotypes are ranked by abundance, ties are broken by their position
    in `counts`. Similar to the D50 index of
    https://patents.google.com/patent/WO2012097374A1/en, but reported as
    absolute number.

    Parameters
    ----------
    counts
        Read counts or proportions of each clonotype
    percentage
        Percentage of reads, in the interval (0, 100].
    """
    if not 0 < percentage <= 100:
        raise ValueError(f"`percentage` must be within (0, 100], got {percentage}.")
    freqs = _to_freqs(counts)
    freqs = freqs[np.argsort(-freqs, kind="stable")]
    # tolerate rounding errors in the cumulative sum
    cumulative = np.cumsum(freqs)
    return int(min(np.searchsorted(cumulative, percentage / 100 - 1e-12) + 1, len(freqs)))


def richness(counts: np.ndarray) -> int:
    """Number of clonotypes with non-zero abundance"""
    return int(np.sum(_to_freqs(counts) > 0))


_METRICS: dict[str, Callable] = {
    "shannon": shannon_entropy,
    "normalized_shannon": normalized_shannon_entropy,
    "true_diversity": true_diversity,
    "gini": gini_coefficient,
    "clonal_proportion": clonal_proportion,
    "richness": richness,
}


def _apply_metric(func: Callable, counts: np.ndarray, kwargs: dict):
    """Call a metric function. Keyword arguments are only passed to metrics that accept them."""
    params = inspect.signature(func).parameters.values()
    if not any(p.kind == inspect.Parameter.VAR_KEYWORD for p in params):
        names = {p.name for p in params if p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY)}
        kwargs = {k: v for k, v in kwargs.items() if k in names}
    return func(counts, **kwargs)


@inject_param_docs()
def alpha_diversity(
    repertoires: Sequence[Repertoire],
    *,
    metric: str | Callable[[np.ndarray], int | float] | Sequence[str | Callable] = "shannon",
    **kwargs,
) -> pd.DataFrame:
    """\
    Computes the alpha diversity of each repertoire.

    Use a metric out of

    shannon
        `Shannon Entropy <https://mathworld.wolfram.com/Entropy.html>`__ with natural logarithm
    normalized_shannon
        Shannon entropy `normalized to the number of clonotypes <https://math.stackexchange.com/a/945172>`__
    true_diversity
        Effective number of clonotypes (exponential of the Shannon entropy)
    gini
        Gini coefficient of clonotype abundances
    clonal_proportion
        Minimum number of top clonotypes that account for `percentage` (default: 25) %
        of all reads.
    richness
        Number of clonotypes

    Alternatively, provide a custom function that computes the diversity from a count vector.

    Parameters
    ----------
    {repertoires}
    metric
        A metric name, a custom function, or a list of both.
    **kwargs
        Additional arguments passed to the metric function(s), e.g. `percentage`
        for `clonal_proportion`. Each function only receives the arguments its
        signature accepts.

    Returns
    -------
    Data frame with one row per sample and one column per metric.
    """
    _check_unique_samples(repertoires)
    metrics = [metric] if isinstance(metric, str) or callable(metric) else list(metric)
    funcs = {}
    for m in metrics:
        if isinstance(m, str):
            try:
                funcs[m] = _METRICS[m]
            except KeyError:
                raise ValueError(f"Unknown metric: {m}. Use one of {', '.join(_METRICS)} or a callable.") from None
        else:
            funcs[m.__name__] = m

    diversity = {}
    for rep in repertoires:
        if not len(rep):
            raise EmptyRepertoireError(sample_id=rep.sample_id)
        diversity[rep.sample_id] = {name: _apply_metric(f, rep.counts, kwargs) for name, f in funcs.items()}

    return pd.DataFrame.from_dict(diversity, orient="index", columns=list(funcs))
