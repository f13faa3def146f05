import random
from collections.abc import Sequence

import igraph as ig
import numpy as np
from scanpy import logging


def igraph_from_edges(
    n_nodes: int,
    edges: np.ndarray,
    *,
    weights: Sequence[float] | None = None,
    weight_attr: str = "weight",
) -> ig.Graph:
    """
    Get an undirected igraph object from an edge list.

    Parameters
    ----------
    n_nodes
        Number of vertices. Vertex ids are `0..n_nodes-1`.
    edges
        `(n_edges, 2)` array of vertex index pairs.
    weights
        Optional value for each edge, stored as edge attribute.
    weight_attr
        Name of the edge attribute.

    Returns
    -------
    igraph object
    """
    edges = np.asarray(edges, dtype=np.int64).reshape(-1, 2)
    g = ig.Graph(directed=False)
    g.add_vertices(n_nodes)
    g.add_edges([tuple(e) for e in edges.tolist()])
    if weights is not None and len(edges):
        g.es[weight_attr] = list(weights)

    if g.vcount() != n_nodes:
        logging.warning(f"The constructed graph has only {g.vcount()} nodes.")  # type: ignore

    return g


def layout_igraph(graph: ig.Graph, layout: str = "fr", *, random_state=42, **kwargs) -> np.ndarray:
    """
    Compute 2D coordinates for all vertices of a graph.

    Parameters
    ----------
    graph
        igraph object
    layout
        Any layout algorithm supported by `igraph.Graph.layout`, e.g. `fr`
        (Fruchterman-Reingold) or `kk` (Kamada-Kawai).
    random_state
        Random seed set before computing the layout.
    **kwargs
        Passed to the layout function.

    Returns
    -------
    `(n_vertices, 2)` array of coordinates.
    """
    random.seed(random_state)
    np.random.seed(random_state)
    if graph.vcount() == 0:
        return np.zeros((0, 2))
    coords = graph.layout(layout, **kwargs).coords
    return np.array(coords, dtype=float).reshape(-1, 2)
