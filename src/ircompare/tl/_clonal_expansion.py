from collections.abc import Sequence

import numpy as np
import pandas as pd

from ircompare.io import Repertoire
from ircompare.util import _check_unique_samples, inject_param_docs


@inject_param_docs()
def clonal_expansion(
    repertoires: Sequence[Repertoire],
    *,
    breakpoints: Sequence[int] = (1, 2, 5),
    normalize: bool = True,
) -> pd.DataFrame:
    """\
    Summarizes the reads of each repertoire by the size of their clonotypes.

    Clonotypes are assigned to size classes `<= b` for each breakpoint `b` and
    `> b` for the last breakpoint, based on their read count.

    Parameters
    ----------
    {repertoires}
    breakpoints
        Increasing clonotype sizes at which the classes are split.
    normalize
        If `True`, report the fraction of reads in each class. Otherwise
        report the number of reads.

    Returns
    -------
    Data frame with samples as rows and size classes as columns.
    """
    _check_unique_samples(repertoires)
    if not len(breakpoints):
        raise ValueError("Need to specify at least one breakpoint.")
    breakpoints = list(breakpoints)
    if np.any(np.diff(breakpoints) <= 0):
        raise ValueError("Breakpoints must be strictly increasing.")

    categories = [f"<= {b}" for b in breakpoints] + [f"> {breakpoints[-1]}"]
    res = {}
    for rep in repertoires:
        counts = rep.counts
        # index of the first breakpoint >= count, len(breakpoints) if above all
        classes = np.searchsorted(breakpoints, counts, side="left")
        reads = np.bincount(classes, weights=counts, minlength=len(categories)).astype(float)
        if normalize and rep.total_reads > 0:
            reads = reads / rep.total_reads
        res[rep.sample_id] = reads

    return pd.DataFrame.from_dict(res, orient="index", columns=categories)
