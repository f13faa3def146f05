from collections import defaultdict
from collections.abc import Callable, Mapping, Sequence
from typing import Literal

import igraph as ig
import numpy as np
import pandas as pd
import scipy.sparse as sp
from scanpy import logging

from ircompare.exceptions import PoolSizeError
from ircompare.io import Repertoire, SampleMetadata
from ircompare.ir_dist import MetricType, _get_distance_calculator
from ircompare.util import _check_unique_samples, inject_param_docs
from ircompare.util.graph import igraph_from_edges, layout_igraph

from ._repertoire_overlap import _check_compatible


class SharedClonotype:
    """A CDR3 sequence pooled across samples.

    Parameters
    ----------
    sequence
        Nucleotide or amino-acid CDR3 sequence, identifying the entry
    sample_ids
        Samples in which the sequence was observed
    read_count
        Sum of reads over all samples
    v_segment
        Union of the V genes of all pooled clonotypes
    j_segment
        Union of the J genes of all pooled clonotypes
    n_clonotypes
        Number of clonotypes pooled into this entry
    """

    __slots__ = ("_sequence", "_sample_ids", "_read_count", "_v_segment", "_j_segment", "_n_clonotypes")

    def __init__(
        self,
        sequence: str,
        sample_ids: frozenset,
        read_count: int,
        v_segment: frozenset = frozenset(),
        j_segment: frozenset = frozenset(),
        n_clonotypes: int = 1,
    ):
        self._sequence = sequence
        self._sample_ids = frozenset(sample_ids)
        self._read_count = read_count
        self._v_segment = frozenset(v_segment)
        self._j_segment = frozenset(j_segment)
        self._n_clonotypes = n_clonotypes

    sequence = property(lambda self: self._sequence)
    sample_ids = property(lambda self: self._sample_ids)
    read_count = property(lambda self: self._read_count)
    v_segment = property(lambda self: self._v_segment)
    j_segment = property(lambda self: self._j_segment)
    n_clonotypes = property(lambda self: self._n_clonotypes)

    @property
    def sample_count(self) -> int:
        """Number of distinct samples the sequence was observed in"""
        return len(self._sample_ids)

    def __repr__(self):
        return f"SharedClonotype {self._sequence} in {self.sample_count} samples ({self._read_count} reads)"


class SimilarityGraph:
    """Graph of shared clonotypes connected by sequence similarity.

    Nodes are stored in an arena, a node is referred to by its position in
    :attr:`nodes`. Edges are stored as pairs of node ids `(i, j)` with `i < j`.
    The graph is undirected and does not contain loops. An adjacency index is
    built once on construction.

    Parameters
    ----------
    nodes
        Shared clonotypes, the node ids are their positions
    edges
        `(n_edges, 2)` array of node ids
    distances
        Sequence distance for each edge
    metadata
        Sample metadata used to annotate nodes, see :meth:`nodes_df`.
    """

    def __init__(
        self,
        nodes: Sequence[SharedClonotype],
        edges: np.ndarray | None = None,
        distances: np.ndarray | None = None,
        *,
        metadata: Mapping[str, SampleMetadata] | None = None,
    ):
        self._nodes = tuple(nodes)
        edges = np.zeros((0, 2), dtype=np.int64) if edges is None else np.asarray(edges, dtype=np.int64)
        edges = edges.reshape(-1, 2)
        distances = np.zeros(len(edges), dtype=np.int64) if distances is None else np.asarray(distances)
        if len(distances) != len(edges):
            raise ValueError("Need exactly one distance per edge.")
        if np.any(edges[:, 0] == edges[:, 1]):
            raise ValueError("The graph must not contain loops.")
        if len(edges) and (edges.min() < 0 or edges.max() >= len(self._nodes)):
            raise ValueError("Edges refer to nodes that are not part of the graph.")

        # canonical orientation and order of the edges
        edges = np.sort(edges, axis=1)
        order = np.lexsort((edges[:, 1], edges[:, 0]))
        self._edges = edges[order]
        self._distances = distances[order]
        self._edges.setflags(write=False)
        self._distances.setflags(write=False)
        self._metadata = metadata

        # adjacency index: neighbors of node i are _adj_targets[_adj_ptr[i]:_adj_ptr[i+1]]
        sources = np.concatenate([self._edges[:, 0], self._edges[:, 1]])
        targets = np.concatenate([self._edges[:, 1], self._edges[:, 0]])
        adj_order = np.lexsort((targets, sources))
        self._adj_targets = targets[adj_order]
        self._adj_ptr = np.concatenate([[0], np.cumsum(np.bincount(sources, minlength=len(self._nodes)))])

    @property
    def nodes(self) -> tuple[SharedClonotype, ...]:
        return self._nodes

    @property
    def edges(self) -> np.ndarray:
        """`(n_edges, 2)` array of node ids, `i < j`, sorted."""
        return self._edges

    @property
    def distances(self) -> np.ndarray:
        """Sequence distance of each edge"""
        return self._distances

    @property
    def n_nodes(self) -> int:
        return len(self._nodes)

    @property
    def n_edges(self) -> int:
        return len(self._edges)

    def neighbors(self, node_id: int) -> np.ndarray:
        """Ids of all nodes connected to `node_id`, in ascending order."""
        if not 0 <= node_id < len(self._nodes):
            raise IndexError(f"Node {node_id} is not part of the graph.")
        return self._adj_targets[self._adj_ptr[node_id] : self._adj_ptr[node_id + 1]]

    def degree(self) -> np.ndarray:
        """Number of neighbors of each node"""
        return np.diff(self._adj_ptr)

    def has_edge(self, i: int, j: int) -> bool:
        return j in set(self.neighbors(i).tolist())

    def __repr__(self):
        return f"SimilarityGraph with {self.n_nodes} nodes and {self.n_edges} edges"

    def nodes_df(self, metadata: Mapping[str, SampleMetadata] | None = None) -> pd.DataFrame:
        """\
        Node list with the samples each node originates from.

        Parameters
        ----------
        metadata
            Sample metadata. Defaults to the metadata the graph was built with. If
            available, the conditions and tissues of the originating samples are
            added as comma-separated, sorted lists.

        Returns
        -------
        Data frame indexed by node id.
        """
        metadata = self._metadata if metadata is None else metadata
        records = []
        for node in self._nodes:
            record = {
                "sequence": node.sequence,
                "sample_count": node.sample_count,
                "read_count": node.read_count,
                "samples": ",".join(sorted(map(str, node.sample_ids))),
                "v_segment": ",".join(sorted(node.v_segment)),
                "j_segment": ",".join(sorted(node.j_segment)),
            }
            if metadata is not None:
                annotations = [metadata[s] for s in node.sample_ids if s in metadata]
                if len(annotations) < node.sample_count:
                    logging.warning(
                        f"No metadata for samples {', '.join(sorted(s for s in node.sample_ids if s not in metadata))}"
                    )  # type: ignore
                for attr, col in [("condition", "conditions"), ("tissue", "tissues")]:
                    values = {getattr(m, attr) for m in annotations if getattr(m, attr) is not None}
                    record[col] = ",".join(sorted(values)) if values else None
            records.append(record)

        columns = ["sequence", "sample_count", "read_count", "samples", "v_segment", "j_segment"]
        if metadata is not None:
            columns += ["conditions", "tissues"]
        return pd.DataFrame.from_records(records, columns=columns).rename_axis(index="node_id")

    def edges_df(self) -> pd.DataFrame:
        """Edge list with the columns `source`, `target` and `distance`."""
        return pd.DataFrame(
            {"source": self._edges[:, 0], "target": self._edges[:, 1], "distance": self._distances},
        )

    def to_igraph(self) -> ig.Graph:
        """Get an `igraph` object of the graph.

        Vertices have the attributes `sequence`, `sample_count` and `size`
        (number of reads), edges the attribute `distance`.
        """
        graph = igraph_from_edges(self.n_nodes, self._edges, weights=self._distances.tolist(), weight_attr="distance")
        graph.vs["sequence"] = [n.sequence for n in self._nodes]
        graph.vs["sample_count"] = [n.sample_count for n in self._nodes]
        graph.vs["size"] = [n.read_count for n in self._nodes]
        return graph

    def layout(
        self,
        layout: str | Callable[["SimilarityGraph"], np.ndarray] = "fr",
        *,
        random_state=42,
        **kwargs,
    ) -> pd.DataFrame:
        """\
        Compute 2D coordinates of the nodes.

        The layout is computed by an external algorithm and not used by
        any other computation.

        Parameters
        ----------
        layout
            Name of a layout algorithm supported by `igraph.Graph.layout`,
            or a function that maps the graph to an `(n_nodes, 2)` array of coordinates.
        random_state
            Random seed set before computing an igraph layout.
        **kwargs
            Passed to the igraph layout function.

        Returns
        -------
        Data frame with columns `x` and `y`, indexed by node id.
        """
        if callable(layout):
            coords = layout(self)
        else:
            coords = layout_igraph(self.to_igraph(), layout, random_state=random_state, **kwargs)
        return pd.DataFrame(np.asarray(coords, dtype=float), columns=["x", "y"]).rename_axis(index="node_id")


@inject_param_docs()
def shared_repertoire(
    repertoires: Sequence[Repertoire],
    *,
    min_samples: int = 2,
    sequence: Literal["nt", "aa"] = "aa",
    head: int | None = None,
) -> tuple[SharedClonotype, ...]:
    """\
    Pool clonotypes that are shared between samples.

    Clonotypes of all repertoires are grouped by their :term:`CDR3` sequence.
    Sequences observed in fewer than `min_samples` different samples are removed.

    Parameters
    ----------
    {repertoires}
    min_samples
        Minimal number of samples a sequence needs to be observed in.
    {sequence}
    head
        Only keep the `head` most abundant sequences (by pooled read count).

    Returns
    -------
    Shared clonotypes, ordered by pooled read count (descending) and sequence.
    """
    _check_unique_samples(repertoires)
    _check_compatible(repertoires)
    if min_samples < 1:
        raise ValueError("`min_samples` must be at least 1.")
    if head is not None and head < 0:
        raise ValueError("`head` must be non-negative.")

    samples = defaultdict(set)
    reads = defaultdict(int)
    v_genes = defaultdict(set)
    j_genes = defaultdict(set)
    n_clonotypes = defaultdict(int)
    for rep in repertoires:
        for c in rep:
            seq = c.sequence(sequence)
            samples[seq].add(rep.sample_id)
            reads[seq] += c.read_count
            v_genes[seq].update(c.v_segment)
            j_genes[seq].update(c.j_segment)
            n_clonotypes[seq] += 1

    shared = [
        SharedClonotype(
            seq, frozenset(s), reads[seq], frozenset(v_genes[seq]), frozenset(j_genes[seq]), n_clonotypes[seq]
        )
        for seq, s in samples.items()
        if len(s) >= min_samples
    ]
    shared.sort(key=lambda x: (-x.read_count, x.sequence))
    logging.info(
        f"{len(shared)} of {len(samples)} unique sequences are observed in at least {min_samples} samples."
    )  # type: ignore
    if head is not None:
        shared = shared[:head]
    return tuple(shared)


@inject_param_docs()
def mutation_network(
    repertoires: Sequence[Repertoire],
    *,
    min_samples: int = 2,
    max_errors: int = 1,
    sequence: Literal["nt", "aa"] = "aa",
    metric: MetricType = "hamming",
    head: int | None = None,
    max_pool_size: int | None = 20000,
    metadata: Mapping[str, SampleMetadata] | None = None,
    n_jobs: int = -1,
) -> SimilarityGraph:
    """\
    Build a mutation network of clonotypes shared between samples.

    Nodes are the shared clonotypes as computed by :func:`~ircompare.tl.shared_repertoire`.
    Two nodes are connected if their sequences differ in at least one and at most
    `max_errors` positions. By default, the Hamming distance is used, i.e. only sequences of
    identical length are compared and sequences of different length are never connected.
    Use `metric="levenshtein"` to also allow insertions and deletions, which changes the
    topology of the network considerably.

    The pairwise comparison scales quadratically with the number of shared clonotypes and
    is parallelized with :mod:`joblib`.

    Parameters
    ----------
    {repertoires}
    min_samples
        Minimal number of samples a sequence needs to be observed in.
    max_errors
        Maximum distance between two connected sequences.
    {sequence}
    metric
        `"hamming"` (equal length only), `"levenshtein"`, or an instance of
        :class:`~ircompare.ir_dist.metrics.DistanceCalculator`. Pairs are
        connected only if their distance is within both the cutoff of the calculator
        and `max_errors`. An invalid metric name raises a `ValueError`.
    head
        Only keep the `head` most abundant shared sequences.
    max_pool_size
        Raise a :class:`~ircompare.exceptions.PoolSizeError` if there are more shared
        sequences than this after applying `head`. `None` disables the check.
    metadata
        Sample metadata, used to annotate the nodes. See :meth:`SimilarityGraph.nodes_df`.
    {n_jobs}

    Returns
    -------
    The similarity graph.
    """
    pool = shared_repertoire(repertoires, min_samples=min_samples, sequence=sequence, head=head)
    if max_pool_size is not None and len(pool) > max_pool_size:
        raise PoolSizeError(len(pool), max_pool_size)

    dist_calc = _get_distance_calculator(metric, max_errors, n_jobs=n_jobs)
    if not len(pool):
        logging.warning("No clonotypes are shared between the samples. The network is empty.")  # type: ignore
        return SimilarityGraph(pool, metadata=metadata)

    start = logging.info(f"Computing pairwise distances between {len(pool)} shared clonotypes.")  # type: ignore
    dist_mat = dist_calc.calc_dist_mat([node.sequence for node in pool])
    logging.hint("Done computing pairwise distances.", time=start)  # type: ignore

    # distances are offset by one, only keep pairs of different sequences
    upper = sp.triu(dist_mat, k=1).tocoo()
    # a custom calculator may use a cutoff above `max_errors`
    mask = (upper.data > 1) & (upper.data - 1 <= max_errors)
    edges = np.column_stack([upper.row[mask], upper.col[mask]])
    graph = SimilarityGraph(pool, edges, upper.data[mask].astype(np.int64) - 1, metadata=metadata)
    logging.info(f"Built {graph!r}")  # type: ignore
    return graph
