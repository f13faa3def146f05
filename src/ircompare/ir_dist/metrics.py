import abc
import itertools
from collections import defaultdict
from collections.abc import Sequence

import joblib
import numpy as np
import scipy.sparse
from Levenshtein import distance as levenshtein_dist
from scanpy import logging
from scipy.sparse import csr_matrix

from ircompare.util import _doc_params, _parallelize_with_joblib

_doc_params_parallel_distance_calculator = """\
n_jobs
    Number of jobs to use for the pairwise distance calculation, passed to
    :class:`joblib.Parallel`. If -1, use all CPUs.
    Via the :class:`joblib.parallel_config` context manager, another backend (e.g. `dask`)
    can be selected.
"""


_doc_dist_mat = """\
Calculates the full pairwise distance matrix.

.. important::
  * Distances are offset by 1 to allow efficient use of sparse matrices
    (:math:`d' = d+1`).
  * That means, a `distance > cutoff` is represented as `0`, a `distance == 0`
    is represented as `1`, a `distance == 1` is represented as `2` and so on.
  * Only returns distances `<= cutoff`. Larger distances are eliminated
    from the sparse matrix.
  * Distances are non-negative.

"""


class DistanceCalculator(abc.ABC):
    """\
    Abstract base class for a :term:`CDR3`-sequence distance calculator.

    Parameters
    ----------
    cutoff:
        Distances > cutoff will be eliminated to make efficient use of sparse matrices.
    """

    #: The sparse matrix dtype. Defaults to uint8, constraining the max distance to 255.
    DTYPE = "uint8"

    def __init__(self, cutoff: int):
        if cutoff < 0:
            raise ValueError("The cutoff must be non-negative.")
        if cutoff > 254:
            raise ValueError("Using a cutoff > 254 is not possible due to the `uint8` dtype used")
        self.cutoff = cutoff

    @_doc_params(dist_mat=_doc_dist_mat)
    @abc.abstractmethod
    def calc_dist_mat(self, seqs: Sequence[str], seqs2: Sequence[str] | None = None) -> csr_matrix:
        """\
        Calculate pairwise distance matrix of all sequences in `seqs` and `seqs2`.

        When `seqs2` is omitted, computes the pairwise distance of `seqs` against
        itself.

        {dist_mat}

        Parameters
        ----------
        seqs
            array containing CDR3 sequences. Must not contain duplicates.
        seqs2
            second array containing CDR3 sequences. Must not contain
            duplicates either.

        Returns
        -------
        Sparse pairwise distance matrix.
        """

    @staticmethod
    def squarify(triangular_matrix: csr_matrix) -> csr_matrix:
        """Mirror a triangular matrix at the diagonal to make it a square matrix.

        The input matrix *must* be upper triangular to begin with, otherwise
        the results will be incorrect. No guard rails!
        """
        assert triangular_matrix.shape[0] == triangular_matrix.shape[1], "needs to be square matrix"
        # The matrix is already upper diagonal. Use the transpose method, see
        # https://stackoverflow.com/a/58806735/2340703.
        return triangular_matrix + triangular_matrix.T - scipy.sparse.diags(triangular_matrix.diagonal())


@_doc_params(params=_doc_params_parallel_distance_calculator)
class ParallelDistanceCalculator(DistanceCalculator):
    """
    Abstract base class for a DistanceCalculator that computes distances in parallel.

    It does so in a blockwise fashion. The function computing distances
    for a single block needs to be overriden. As each block yields an
    independent list of entries, the results of the blocks can be
    combined in any order.

    Parameters
    ----------
    {params}
    """

    #: Upper limit of the automatically determined block size
    MAX_BLOCK_SIZE = 5000

    def __init__(self, cutoff: int, *, n_jobs: int = -1):
        super().__init__(cutoff)
        self.n_jobs = n_jobs

    @abc.abstractmethod
    def _compute_block(
        self,
        seqs1: Sequence[str],
        seqs2: Sequence[str] | None,
        origin: tuple[int, int],
    ) -> list[tuple[int, int, int]]:
        """Compute the distances for a block of the matrix

        Parameters
        ----------
        seqs1
            array containing sequences
        seqs2
            other array containing sequences. If `None` compute the square matrix
            of `seqs1` and iterator over the upper triangle including the diagonal only.
        origin
            row, col coordinates of the origin of the block.

        Returns
        -------
        List of (distance, row, col) tuples for all elements with distance != 0.
        row, col must be the coordinates in the final matrix (they can be derived using
        `origin`). Can't be a generator because this needs to be picklable.
        """

    @staticmethod
    def _block_iter(
        seqs1: Sequence[str],
        seqs2: Sequence[str] | None = None,
        block_size: int = 50,
    ):
        """Iterate over sequences in blocks.

        Parameters
        ----------
        seqs1
            array containing (unique) sequences
        seqs2
            array containing other sequences. If `None` compute
            the square matrix of `seqs1` and iterate over the upper triangle (including
            the diagonal) only.
        block_size
            side length of a block (will have `block_size ** 2` elements.)

        Yields
        ------
        seqs1
            subset of length `block_size` of seqs1
        seqs2
            subset of length `block_size` of seqs2. If seqs2 is None, this will
            be `None` if the block is on the diagonal, or a subset of seqs1 otherwise.
        origin
            (row, col) coordinates of the origin of the block.
        """
        square_mat = seqs2 is None
        if square_mat:
            seqs2 = seqs1
        for row in range(0, len(seqs1), block_size):
            start_col = row if square_mat else 0
            for col in range(start_col, len(seqs2), block_size):
                if row == col and square_mat:
                    # block on the diagonal.
                    # yield None for seqs2 to indicate that we only want the upper
                    # diagonal.
                    yield seqs1[row : row + block_size], None, (row, row)
                else:
                    yield seqs1[row : row + block_size], seqs2[col : col + block_size], (row, col)

    def calc_dist_mat(
        self, seqs: Sequence[str], seqs2: Sequence[str] | None = None, *, block_size: int | None = None
    ) -> csr_matrix:
        """Calculate the distance matrix.

        See :meth:`DistanceCalculator.calc_dist_mat`.

        Parameters
        ----------
        seqs
            array containing CDR3 sequences. Must not contain duplicates.
        seqs2
            second array containing CDR3 sequences. Must not contain
            duplicates either.
        block_size
            The width of a block that's sent to a worker. A block contains
            `block_size ** 2` elements. If `None` the block
            size is determined automatically based on the problem size.

        Returns
        -------
        Sparse pairwise distance matrix.
        """
        if block_size is None:
            problem_size = len(seqs) * len(seqs2) if seqs2 is not None else len(seqs) ** 2
            # dynamically adjust the block size such that there are ~1000 blocks within a range of 50 and MAX_BLOCK_SIZE
            block_size = int(np.ceil(min(max(np.sqrt(problem_size / 1000), 50), self.MAX_BLOCK_SIZE)))
        logging.info(f"block size set to {block_size}")  # type: ignore

        # precompute blocks as list to have total number of blocks for progressbar
        blocks = list(self._block_iter(seqs, seqs2, block_size=block_size))

        block_results = _parallelize_with_joblib(
            (joblib.delayed(self._compute_block)(*block) for block in blocks), total=len(blocks), n_jobs=self.n_jobs
        )

        entries = list(itertools.chain.from_iterable(block_results))
        if entries:
            dists, rows, cols = zip(*entries, strict=True)
        else:
            # no pair within the cutoff
            dists, rows, cols = (), (), ()

        shape = (len(seqs), len(seqs2)) if seqs2 is not None else (len(seqs), len(seqs))
        score_mat = scipy.sparse.coo_matrix((dists, (rows, cols)), dtype=self.DTYPE, shape=shape)
        score_mat.eliminate_zeros()
        score_mat = score_mat.tocsr()

        if seqs2 is None:
            score_mat = self.squarify(score_mat)

        return score_mat


@_doc_params(params=_doc_params_parallel_distance_calculator)
class HammingDistanceCalculator(ParallelDistanceCalculator):
    """\
    Calculates the Hamming distance between sequences of identical length.

    The Hamming distance is the number of positions at which two sequences of
    the same length differ. Sequences of different length are never within the
    cutoff, i.e. insertions and deletions are not considered.

    Parameters
    ----------
    cutoff
        Will eleminate distances > cutoff to make efficient
        use of sparse matrices. The default cutoff is `2`.
    {params}
    """

    #: Blocks are compared position by position, requiring `block_size ** 2` integers of memory.
    MAX_BLOCK_SIZE = 2000

    def __init__(self, cutoff: int = 2, **kwargs):
        super().__init__(cutoff, **kwargs)

    @staticmethod
    def _group_by_length(seqs: Sequence[str]) -> dict[int, tuple[np.ndarray, np.ndarray]]:
        """Encode sequences as matrices of unicode code points, one per sequence length.

        Returns a dictionary mapping the length to the indices of the sequences and
        the `(n_seqs, length)` code point matrix.
        """
        by_length = defaultdict(list)
        for i, s in enumerate(seqs):
            by_length[len(s)].append(i)
        return {
            length: (
                np.array(idx, dtype=np.int64),
                # a fixed-width unicode array stores one uint32 code point per character
                np.array([seqs[i] for i in idx], dtype=f"<U{max(length, 1)}")
                .view(np.uint32)
                .reshape(len(idx), -1)[:, :length],
            )
            for length, idx in by_length.items()
        }

    def _compute_block(self, seqs1, seqs2, origin):
        origin_row, origin_col = origin
        upper_only = seqs2 is None
        groups1 = self._group_by_length(seqs1)
        groups2 = groups1 if upper_only else self._group_by_length(seqs2)

        result = []
        for length, (idx1, mat1) in groups1.items():
            if length not in groups2:
                continue
            idx2, mat2 = groups2[length]
            dist = np.zeros((len(idx1), len(idx2)), dtype=np.int32)
            for pos in range(length):
                dist += mat1[:, pos, np.newaxis] != mat2[np.newaxis, :, pos]
            rows, cols = np.nonzero(dist <= self.cutoff)
            rows, cols = idx1[rows], idx2[cols]
            d = dist[dist <= self.cutoff]
            if upper_only:
                mask = rows <= cols
                rows, cols, d = rows[mask], cols[mask], d[mask]
            result.extend(
                zip(
                    (d + 1).tolist(),
                    (rows + origin_row).tolist(),
                    (cols + origin_col).tolist(),
                    strict=True,
                )
            )

        return result


@_doc_params(params=_doc_params_parallel_distance_calculator)
class LevenshteinDistanceCalculator(ParallelDistanceCalculator):
    """\
    Calculates the Levenshtein edit-distance between sequences.

    The edit distance is the total number of deletion, addition and modification
    events. Unlike :class:`HammingDistanceCalculator`, sequences of different length
    can be within the cutoff.

    This class relies on `Levenshtein <https://github.com/rapidfuzz/Levenshtein>`_
    to calculate the distances.

    Parameters
    ----------
    cutoff
        Will eleminate distances > cutoff to make efficient
        use of sparse matrices. The default cutoff is `2`.
    {params}
    """

    def __init__(self, cutoff: int = 2, **kwargs):
        super().__init__(cutoff, **kwargs)

    def _compute_block(self, seqs1, seqs2, origin):
        origin_row, origin_col = origin
        if seqs2 is not None:
            # compute the full matrix
            coord_iterator = itertools.product(enumerate(seqs1), enumerate(seqs2))
        else:
            # compute only upper triangle in this case
            coord_iterator = itertools.combinations_with_replacement(enumerate(seqs1), r=2)

        result = []
        for (row, s1), (col, s2) in coord_iterator:
            # the edit distance is at least the difference in length
            if abs(len(s1) - len(s2)) > self.cutoff:
                continue
            d = levenshtein_dist(s1, s2)
            if d <= self.cutoff:
                result.append((d + 1, origin_row + row, origin_col + col))

        return result
