from collections.abc import Sequence
from typing import Literal

import numpy as np
from scanpy import logging

from ircompare.exceptions import InvalidDepthError
from ircompare.io import Repertoire
from ircompare.util import _check_unique_samples, inject_param_docs


@inject_param_docs()
def normalize(repertoire: Repertoire, mode: Literal["proportion", "count"] = "proportion") -> np.ndarray:
    """\
    Per-clonotype weights of a repertoire.

    Parameters
    ----------
    {repertoire}
    mode
        `"proportion"` returns the fraction of reads of each clonotype (sums to 1),
        `"count"` returns the raw read counts.

    Returns
    -------
    Array of weights, in the order of `repertoire.clonotypes`.
    """
    if mode == "proportion":
        return repertoire.proportions
    elif mode == "count":
        return repertoire.counts
    else:
        raise ValueError(f"Invalid value for `mode`: {mode}. Use one of 'proportion', 'count'.")


@inject_param_docs()
def downsample(
    repertoire: Repertoire, n_reads: int, *, random_state: int | np.random.Generator | None = 0
) -> Repertoire:
    """\
    Randomly subsample the reads of a repertoire to a fixed sequencing depth.

    Reads are drawn without replacement, i.e. the read counts of the result
    follow a multivariate hypergeometric distribution. Clonotypes that do not
    receive any read are removed. Use this to compare diversity and overlap of
    samples with different sequencing depths.

    Parameters
    ----------
    {repertoire}
    n_reads
        Target number of reads. Must not exceed `repertoire.total_reads`.
    random_state
        Seed or :class:`numpy.random.Generator` used for sampling.

    Returns
    -------
    A new repertoire with `n_reads` total reads.
    """
    if n_reads < 0 or n_reads > repertoire.total_reads:
        raise InvalidDepthError(n_reads, repertoire.total_reads, sample_id=repertoire.sample_id)
    if n_reads == repertoire.total_reads:
        return repertoire._derive(repertoire.clonotypes)

    rng = np.random.default_rng(random_state)
    sampled = rng.multivariate_hypergeometric(repertoire.counts, n_reads)
    logging.debug(
        f"Downsampled sample {repertoire.sample_id} from {repertoire.total_reads} to {n_reads} reads"
    )  # type: ignore
    return repertoire._derive(
        c._replace(read_count=int(n)) for c, n in zip(repertoire.clonotypes, sampled, strict=True) if n > 0
    )


@inject_param_docs()
def downsample_to_min(
    repertoires: Sequence[Repertoire], *, random_state: int | np.random.Generator | None = 0
) -> list[Repertoire]:
    """\
    Downsample all repertoires to the sequencing depth of the smallest one.

    Parameters
    ----------
    {repertoires}
    random_state
        Seed or :class:`numpy.random.Generator` used for sampling. The same
        generator is used for all repertoires in turn.

    Returns
    -------
    List of downsampled repertoires, in the input order.
    """
    _check_unique_samples(repertoires)
    if not len(repertoires):
        return []
    rng = np.random.default_rng(random_state)
    depth = min(r.total_reads for r in repertoires)
    logging.info(f"Downsampling {len(repertoires)} repertoires to {depth} reads.")  # type: ignore
    return [downsample(r, depth, random_state=rng) for r in repertoires]
