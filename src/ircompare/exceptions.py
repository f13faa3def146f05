"""Exceptions raised by ircompare.

All exceptions derive from :class:`IrCompareError`, which itself is a
:class:`ValueError`, as they all signal a defect in the input data or
in the parameters a computation was started with.
"""


class IrCompareError(ValueError):
    """Base class for all errors raised by ircompare.

    Parameters
    ----------
    message
        Human readable description of the problem.
    sample_id
        Identifier of the sample the problem was detected in, if applicable.
    """

    def __init__(self, message: str, *, sample_id: str | None = None):
        self.sample_id = sample_id
        if sample_id is not None:
            message = f"[sample {sample_id}] {message}"
        super().__init__(message)


class InvalidDepthError(IrCompareError):
    """Raised when a repertoire is downsampled to more reads than it contains."""

    def __init__(self, n_reads: int, total_reads: int, *, sample_id: str | None = None):
        self.n_reads = n_reads
        self.total_reads = total_reads
        super().__init__(
            f"Cannot downsample to {n_reads} reads: the repertoire only contains {total_reads} reads.",
            sample_id=sample_id,
        )


class EmptyRepertoireError(IrCompareError):
    """Raised when a metric is requested on a repertoire without clonotypes."""

    def __init__(self, message: str = "The repertoire does not contain any clonotypes.", *, sample_id=None):
        super().__init__(message, sample_id=sample_id)


class IncompatibleRepertoireError(IrCompareError):
    """Raised when repertoires of different receptor loci are compared."""

    def __init__(self, repertoire_types, *, sample_id: str | None = None):
        self.repertoire_types = tuple(repertoire_types)
        super().__init__(
            "Cannot compare repertoires of different types: " + ", ".join(map(str, self.repertoire_types)),
            sample_id=sample_id,
        )


class MalformedRecordError(IrCompareError):
    """Raised when an input row lacks a required field or holds an invalid value.

    Parameters
    ----------
    message
        Description of the defect
    field
        Name of the offending column
    row
        Position of the offending row in the input table
    sample_id
        Sample the table belongs to
    """

    def __init__(self, message: str, *, field: str | None = None, row: int | None = None, sample_id=None):
        self.field = field
        self.row = row
        location = []
        if row is not None:
            location.append(f"row {row}")
        if field is not None:
            location.append(f"field `{field}`")
        if location:
            message = f"{message} ({', '.join(location)})"
        super().__init__(message, sample_id=sample_id)


class PoolSizeError(IrCompareError):
    """Raised when the pool of shared clonotypes is too large for pairwise comparison."""

    def __init__(self, pool_size: int, max_pool_size: int):
        self.pool_size = pool_size
        self.max_pool_size = max_pool_size
        super().__init__(
            f"The shared repertoire contains {pool_size} clonotypes, which exceeds `max_pool_size={max_pool_size}`. "
            "Increase `min_samples`, restrict the pool with `head`, or raise `max_pool_size`."
        )
