from ._datastructures import Clonotype, Repertoire, SampleMetadata
from ._io import DEFAULT_COLUMNS, from_records, parse_genes, read_clonotype_table, read_metadata

__all__ = [
    "Clonotype",
    "Repertoire",
    "SampleMetadata",
    "DEFAULT_COLUMNS",
    "from_records",
    "parse_genes",
    "read_clonotype_table",
    "read_metadata",
]
