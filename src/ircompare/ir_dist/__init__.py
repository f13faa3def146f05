"""Compute distances between immune receptor sequences"""

from typing import Literal

from . import metrics

MetricType = Literal["hamming", "levenshtein"] | metrics.DistanceCalculator


def _get_distance_calculator(metric: MetricType, cutoff: int | None, *, n_jobs=-1, **kwargs):
    """Returns an instance of :class:`~ircompare.ir_dist.metrics.DistanceCalculator`
    given a metric.

    Instances of :class:`~ircompare.ir_dist.metrics.DistanceCalculator` are returned
    unchanged, i.e. they keep their own cutoff.
    """
    # Let's rely on the default set by the class if cutoff is None
    if cutoff is not None:
        kwargs["cutoff"] = cutoff

    if isinstance(metric, metrics.DistanceCalculator):
        dist_calc = metric
    elif metric == "hamming":
        dist_calc = metrics.HammingDistanceCalculator(n_jobs=n_jobs, **kwargs)
    elif metric == "levenshtein":
        dist_calc = metrics.LevenshteinDistanceCalculator(n_jobs=n_jobs, **kwargs)
    else:
        raise ValueError(f"Invalid distance metric: {metric}. Use one of 'hamming', 'levenshtein'.")

    return dist_calc


__all__ = ["metrics", "MetricType"]
