from collections.abc import Sequence
from typing import Literal

import pandas as pd

from ircompare.io import Repertoire
from ircompare.util import _check_unique_samples, inject_param_docs


@inject_param_docs()
def spectratype(
    repertoires: Sequence[Repertoire],
    *,
    sequence: Literal["nt", "aa"] = "aa",
    weight: Literal["reads", "clonotypes"] = "reads",
) -> pd.DataFrame:
    """\
    Summarizes the distribution of :term:`CDR3` region lengths.

    Parameters
    ----------
    {repertoires}
    {sequence}
    weight
        Whether each clonotype contributes its number of reads (`"reads"`) or
        counts once (`"clonotypes"`).

    Returns
    -------
    Data frame with CDR3 lengths as rows and samples as columns. Each column sums
    to 1. Lengths not observed in a sample are 0.
    """
    _check_unique_samples(repertoires)
    if weight not in ("reads", "clonotypes"):
        raise ValueError(f"Invalid value for `weight`: {weight}. Use one of 'reads', 'clonotypes'.")

    columns = {}
    for rep in repertoires:
        lengths = pd.Series(
            rep.counts if weight == "reads" else 1,
            index=[len(c.sequence(sequence)) for c in rep],
            dtype=float,
        )
        dist = lengths.groupby(level=0).sum()
        columns[rep.sample_id] = dist / dist.sum() if len(dist) else dist

    res = pd.DataFrame(columns).fillna(0).sort_index()
    res.index.name = "cdr3_length"
    return res
