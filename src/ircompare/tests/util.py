from collections.abc import Sequence

import numpy as np

from ircompare.io import Clonotype, Repertoire


def _make_repertoire(
    sample_id: str,
    rows: Sequence[tuple],
    repertoire_type: str | None = "TRB",
) -> Repertoire:
    """Generate a repertoire from a list of `(cdr3_aa, read_count, v_genes, j_genes)` tuples.

    V and J genes are optional. The nucleotide sequence is derived from the
    amino-acid sequence, such that every amino-acid sequence corresponds to exactly
    one clonotype.
    """
    clonotypes = []
    for row in rows:
        cdr3_aa, read_count, *genes = row
        v_genes = genes[0] if len(genes) > 0 else None
        j_genes = genes[1] if len(genes) > 1 else None
        clonotypes.append(
            Clonotype(
                cdr3_nt=f"nt_{cdr3_aa}",
                cdr3_aa=cdr3_aa,
                v_segment=v_genes,
                j_segment=j_genes,
                read_count=read_count,
            )
        )
    return Repertoire(sample_id, clonotypes, repertoire_type=repertoire_type)


def _squarify(matrix: list[list] | np.ndarray):
    """Squarify a upper triangular matrix"""
    matrix = np.array(matrix)
    assert matrix.shape[0] == matrix.shape[1], "only works for square matrices"
    i_lower = np.tril_indices(matrix.shape[0], -1)
    matrix[i_lower] = matrix.T[i_lower]
    assert np.allclose(matrix.T, matrix)
    return matrix


def _is_symmetric(M) -> bool:
    """Check if matrix M is symmetric"""
    return np.allclose(M, M.T, 1e-6, 1e-6, equal_nan=True)
