from collections import defaultdict
from collections.abc import Sequence
from typing import Literal

import numpy as np
import pandas as pd
from scanpy import logging

from ircompare.io import Clonotype, Repertoire
from ircompare.util import _check_unique_samples, inject_param_docs

from ._diversity import shannon_entropy

#: Separator of V and J gene in the row labels of a paired usage matrix
PAIR_SEP = "|"


class SingleGene:
    """Usage of a single gene segment.

    Parameters
    ----------
    segment
        `"v"` or `"j"`
    genes
        Reference list of genes. Restricts and orders the result. If `None`,
        all observed genes are reported in alphabetical order.
    """

    def __init__(self, segment: Literal["v", "j"] = "v", genes: Sequence[str] | None = None):
        if segment not in ("v", "j"):
            raise ValueError(f"Invalid value for `segment`: {segment}. Use one of 'v', 'j'.")
        self.segment = segment
        self.genes = None if genes is None else list(dict.fromkeys(genes))

    def __repr__(self):
        return f"SingleGene(segment={self.segment!r}, genes={self.genes!r})"


class PairedGenes:
    """Joint usage of V and J gene segments.

    Parameters
    ----------
    v_genes
        Reference list of V genes. If `None`, use all observed V genes.
    j_genes
        Reference list of J genes. If `None`, use all observed J genes.
    """

    def __init__(self, v_genes: Sequence[str] | None = None, j_genes: Sequence[str] | None = None):
        self.v_genes = None if v_genes is None else list(dict.fromkeys(v_genes))
        self.j_genes = None if j_genes is None else list(dict.fromkeys(j_genes))

    def __repr__(self):
        return f"PairedGenes(v_genes={self.v_genes!r}, j_genes={self.j_genes!r})"


GeneDimension = SingleGene | PairedGenes

_doc_usage = """\
dimension
    :class:`~ircompare.tl.SingleGene` for the usage of V or J genes, or
    :class:`~ircompare.tl.PairedGenes` for the joint V x J usage. Defaults to
    `SingleGene("v")`.
weight
    Whether each clonotype contributes its number of reads (`"reads"`) or
    counts once (`"clonotypes"`).
"""


def _clonotype_weight(c: Clonotype, weight: str) -> float:
    if weight == "reads":
        return c.read_count
    elif weight == "clonotypes":
        return 1
    else:
        raise ValueError(f"Invalid value for `weight`: {weight}. Use one of 'reads', 'clonotypes'.")


def _restrict(genes: frozenset, reference: Sequence[str] | None) -> frozenset:
    return genes if reference is None else genes.intersection(reference)


def _single_usage(repertoire: Repertoire, dimension: SingleGene, weight: str) -> pd.Series:
    usage = defaultdict(float)
    for c in repertoire:
        genes = _restrict(c.v_segment if dimension.segment == "v" else c.j_segment, dimension.genes)
        # ambiguous assignments are split equally between the candidate genes
        for gene in genes:
            usage[gene] += _clonotype_weight(c, weight) / len(genes)

    index = dimension.genes if dimension.genes is not None else sorted(usage)
    res = pd.Series(usage, index=index, dtype=float, name=repertoire.sample_id)
    total = sum(usage.values())
    if total > 0:
        res = res / total
    else:
        logging.debug(
            f"Sample {repertoire.sample_id} does not report {dimension.segment.upper()} genes"
        )  # type: ignore
    # genes that were not observed stay NaN
    res.index.name = f"{dimension.segment}_gene"
    return res


def _paired_usage(repertoire: Repertoire, dimension: PairedGenes, weight: str) -> pd.DataFrame:
    usage = defaultdict(float)
    for c in repertoire:
        v_genes = _restrict(c.v_segment, dimension.v_genes)
        j_genes = _restrict(c.j_segment, dimension.j_genes)
        n_pairs = len(v_genes) * len(j_genes)
        for v in v_genes:
            for j in j_genes:
                usage[(v, j)] += _clonotype_weight(c, weight) / n_pairs

    v_index = dimension.v_genes if dimension.v_genes is not None else sorted({v for v, _ in usage})
    j_index = dimension.j_genes if dimension.j_genes is not None else sorted({j for _, j in usage})
    res = pd.DataFrame(np.nan, index=pd.Index(v_index, name="v_gene"), columns=pd.Index(j_index, name="j_gene"))
    total = sum(usage.values())
    for (v, j), w in usage.items():
        res.loc[v, j] = w / total
    return res


@inject_param_docs(usage=_doc_usage)
def segment_usage(
    repertoire: Repertoire,
    dimension: GeneDimension | None = None,
    *,
    weight: Literal["reads", "clonotypes"] = "reads",
) -> pd.Series | pd.DataFrame:
    """\
    Gene segment usage frequencies of a single repertoire.

    Clonotypes with an ambiguous gene assignment contribute to each of their
    genes equally. Clonotypes without a gene assignment for the requested segment
    do not count towards the total. Genes that are not observed in the sample are
    reported as `NaN`. If the sample does not report the segment at all, all
    values are `NaN`.

    Parameters
    ----------
    {repertoire}
    {usage}

    Returns
    -------
    For :class:`~ircompare.tl.SingleGene`, a Series indexed by gene. For
    :class:`~ircompare.tl.PairedGenes`, a V x J data frame. The non-missing
    values sum to 1.
    """
    dimension = SingleGene("v") if dimension is None else dimension
    if isinstance(dimension, SingleGene):
        return _single_usage(repertoire, dimension, weight)
    elif isinstance(dimension, PairedGenes):
        return _paired_usage(repertoire, dimension, weight)
    else:
        raise TypeError(f"Unsupported gene dimension: {type(dimension)}. Use `SingleGene` or `PairedGenes`.")


def _flatten_pairs(usage: pd.DataFrame, sample_id: str) -> pd.Series:
    if usage.empty:
        return pd.Series(dtype=float, name=sample_id, index=pd.Index([], name="vj_pair"))
    flat = usage.stack(future_stack=True)
    flat.index = [f"{v}{PAIR_SEP}{j}" for v, j in flat.index]
    flat.index.name = "vj_pair"
    flat.name = sample_id
    return flat


@inject_param_docs(usage=_doc_usage)
def segment_usage_matrix(
    repertoires: Sequence[Repertoire],
    dimension: GeneDimension | None = None,
    *,
    weight: Literal["reads", "clonotypes"] = "reads",
) -> pd.DataFrame:
    """\
    Gene segment usage of multiple repertoires.

    Columns of samples that do not report the segment and rows of genes that are
    missing in all samples are removed. Partially missing values remain `NaN`.

    Parameters
    ----------
    {repertoires}
    {usage}

    Returns
    -------
    Data frame with genes (or `V|J` pairs) as rows and samples as columns.
    """
    _check_unique_samples(repertoires)
    dimension = SingleGene("v") if dimension is None else dimension
    columns = []
    for rep in repertoires:
        usage = segment_usage(rep, dimension, weight=weight)
        if isinstance(dimension, PairedGenes):
            usage = _flatten_pairs(usage, rep.sample_id)
        columns.append(usage)

    if not columns:
        return pd.DataFrame()

    mat = pd.concat(columns, axis=1, sort=False)
    missing_samples = mat.columns[mat.isna().all(axis=0)]
    if len(missing_samples):
        logging.info(
            f"Removing {len(missing_samples)} samples without gene segment information: "
            f"{', '.join(map(str, missing_samples))}"
        )  # type: ignore
    mat = mat.loc[:, ~mat.isna().all(axis=0)]
    return mat.loc[~mat.isna().all(axis=1), :]


@inject_param_docs(usage=_doc_usage)
def segment_usage_entropy(
    repertoires: Sequence[Repertoire],
    dimension: GeneDimension | None = None,
    *,
    weight: Literal["reads", "clonotypes"] = "reads",
) -> pd.DataFrame:
    """\
    Shannon entropy of the gene segment usage of each repertoire.

    For :class:`~ircompare.tl.PairedGenes`, the entropy of the V and J marginal
    distributions as well as the entropy of the joint distribution are reported.
    Missing values are ignored. Samples that do not report the segment get `NaN`.

    Parameters
    ----------
    {repertoires}
    {usage}

    Returns
    -------
    Data frame with one row per sample.
    """
    _check_unique_samples(repertoires)
    dimension = SingleGene("v") if dimension is None else dimension

    def _entropy(freqs) -> float:
        freqs = np.asarray(freqs, dtype=float)
        freqs = freqs[~np.isnan(freqs)]
        return shannon_entropy(freqs) if np.sum(freqs) > 0 else np.nan

    res = {}
    for rep in repertoires:
        usage = segment_usage(rep, dimension, weight=weight)
        if isinstance(dimension, SingleGene):
            res[rep.sample_id] = {"entropy": _entropy(usage.values)}
        else:
            res[rep.sample_id] = {
                "v_entropy": _entropy(usage.sum(axis=1, min_count=1).values),
                "j_entropy": _entropy(usage.sum(axis=0, min_count=1).values),
                "joint_entropy": _entropy(usage.values.ravel()),
            }

    columns = ["entropy"] if isinstance(dimension, SingleGene) else ["v_entropy", "j_entropy", "joint_entropy"]
    return pd.DataFrame.from_dict(res, orient="index", columns=columns)


def segment_usage_pca(usage_matrix: pd.DataFrame, *, n_components: int = 2) -> pd.DataFrame:
    """\
    Embed samples based on their gene segment usage using a principal component analysis.

    The usage matrix is transposed (samples become observations), mean-centered
    and decomposed with a singular value decomposition. Genes with a missing value in
    any sample are excluded. The sign of each component is chosen such that the
    loading with the largest absolute value is positive, making the result deterministic.

    Parameters
    ----------
    usage_matrix
        Gene x sample usage matrix as returned by :func:`~ircompare.tl.segment_usage_matrix`.
    n_components
        Number of principal components.

    Returns
    -------
    Data frame with samples as rows and the principal components `PC1`, `PC2`, ...
    as columns. The explained variance ratio of each component is stored in
    `.attrs["explained_variance_ratio"]`, the genes used in `.attrs["features"]`.
    """
    if usage_matrix.shape[1] < 2:
        raise ValueError("At least two samples are required to compute a PCA.")
    complete = ~usage_matrix.isna().any(axis=1)
    if not complete.all():
        logging.info(f"Excluding {int((~complete).sum())} genes with missing values from the PCA.")  # type: ignore
    X = usage_matrix.loc[complete, :].T.values.astype(float)
    if X.shape[1] == 0:
        raise ValueError("No gene segment is observed in all samples.")

    max_components = min(X.shape)
    if n_components > max_components:
        logging.warning(f"Can compute at most {max_components} principal components.")  # type: ignore
        n_components = max_components

    X = X - X.mean(axis=0)
    U, S, Vt = np.linalg.svd(X, full_matrices=False)
    # deterministic output, equivalent to sklearn's svd_flip
    signs = np.sign(Vt[np.arange(Vt.shape[0]), np.argmax(np.abs(Vt), axis=1)])
    signs[signs == 0] = 1
    U, Vt = U * signs, Vt * signs[:, np.newaxis]

    variance = S**2
    total_variance = np.sum(variance)
    ratio = variance / total_variance if total_variance > 0 else np.zeros_like(variance)

    res = pd.DataFrame(
        U[:, :n_components] * S[:n_components],
        index=usage_matrix.columns,
        columns=[f"PC{i + 1}" for i in range(n_components)],
    )
    res.attrs["explained_variance_ratio"] = ratio[:n_components].tolist()
    res.attrs["features"] = usage_matrix.index[complete].tolist()
    return res
