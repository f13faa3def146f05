from importlib.metadata import version

from . import exceptions, io, ir_dist, pp, tl, util
from .exceptions import (
    EmptyRepertoireError,
    IncompatibleRepertoireError,
    InvalidDepthError,
    IrCompareError,
    MalformedRecordError,
    PoolSizeError,
)

__all__ = [
    "exceptions",
    "io",
    "ir_dist",
    "pp",
    "tl",
    "util",
    "EmptyRepertoireError",
    "IncompatibleRepertoireError",
    "InvalidDepthError",
    "IrCompareError",
    "MalformedRecordError",
    "PoolSizeError",
]

__version__ = version("ircompare")
