import re
from collections.abc import Iterable, Mapping
from os import PathLike

import numpy as np
import pandas as pd
from scanpy import logging

from ircompare.exceptions import MalformedRecordError
from ircompare.util import _doc_params, _is_na2

from ._datastructures import Clonotype, Repertoire, SampleMetadata

#: Default mapping of :class:`Clonotype` attributes to columns of the input table.
#: Corresponds to the VDJtools clonotype table format.
DEFAULT_COLUMNS = {
    "read_count": "count",
    "cdr3_nt": "cdr3nt",
    "cdr3_aa": "cdr3aa",
    "v_segment": "v",
    "j_segment": "j",
}

_REQUIRED_FIELDS = ("read_count", "cdr3_nt", "cdr3_aa")

#: Matches alignment scores such as in `TRBV5-1*00(1234.5)`
_SCORE_RE = re.compile(r"\(.*?\)")

_doc_table_params = """\
sample_id
    Identifier of the sample. Must be unique across all repertoires that are
    compared with each other.
repertoire_type
    Locus of the repertoire (e.g. `TRA`, `TRB`).
columns
    Mapping from :class:`~ircompare.io.Clonotype` attributes to column names
    in the table. Attributes that are not specified fall back to
    :data:`~ircompare.io.DEFAULT_COLUMNS`.
"""


def parse_genes(value) -> frozenset:
    """Parse the gene assignment of a clonotype into a set of gene names.

    Multiple genes are separated by `,` or `;`. Alignment scores in
    parentheses (e.g. `TRBV5-1*00(1234.5)`) and allele designations
    (e.g. `*01`) are removed. NA values and `.` are parsed as empty set.

    Parameters
    ----------
    value
        String or iterable of strings

    Returns
    -------
    frozenset of gene names
    """
    if not isinstance(value, str) and isinstance(value, Iterable):
        return frozenset(g for v in value for g in parse_genes(v))
    if _is_na2(value) or value == ".":
        return frozenset()
    genes = set()
    for gene in re.split(r"[,;]", _SCORE_RE.sub("", str(value))):
        gene = gene.split("*")[0].strip()
        if gene and gene != ".":
            genes.add(gene)
    return frozenset(genes)


def _parse_count(value, *, row: int, field: str, sample_id: str) -> int:
    if _is_na2(value):
        raise MalformedRecordError("Missing read count", field=field, row=row, sample_id=sample_id)
    try:
        count = float(value)
    except (TypeError, ValueError):
        raise MalformedRecordError(
            f"Read count is not a number: {value!r}", field=field, row=row, sample_id=sample_id
        ) from None
    if count < 0 or not count.is_integer():
        raise MalformedRecordError(
            f"Read count must be a non-negative integer, got {value!r}", field=field, row=row, sample_id=sample_id
        )
    return int(count)


@_doc_params(table_params=_doc_table_params)
def read_clonotype_table(
    table: pd.DataFrame | str | PathLike,
    sample_id: str,
    *,
    repertoire_type: str | None = None,
    columns: Mapping[str, str] | None = None,
    sep: str = "\t",
) -> Repertoire:
    """\
    Build a :class:`~ircompare.io.Repertoire` from a clonotype table.

    The table needs to provide a read count, the :term:`CDR3` nucleotide and
    amino-acid sequences for each clonotype. V and J gene columns are optional and
    can contain multiple, comma-separated genes. A missing read count or CDR3
    sequence is considered a defect of the input and raises a
    :class:`~ircompare.exceptions.MalformedRecordError`. Rows are never skipped.

    Duplicate clonotypes are merged by summing their read counts.
    Read proportions are always derived from the read counts, a frequency column
    of the table (such as `freq`) is ignored.

    Parameters
    ----------
    table
        A data frame or a path to a delimited text file
    {table_params}
    sep
        Delimiter, if `table` is a path.

    Returns
    -------
    The repertoire of the sample.
    """
    columns = {**DEFAULT_COLUMNS, **(columns if columns is not None else {})}
    if not isinstance(table, pd.DataFrame):
        logging.info(f"Reading clonotype table of sample {sample_id} from {table}")  # type: ignore
        table = pd.read_csv(table, sep=sep, dtype=str, keep_default_na=False)

    for field in _REQUIRED_FIELDS:
        if columns[field] not in table.columns:
            raise MalformedRecordError("Required column is missing", field=columns[field], sample_id=sample_id)
    has_v = columns["v_segment"] in table.columns
    has_j = columns["j_segment"] in table.columns
    if not (has_v or has_j):
        logging.warning(f"No gene segment columns found in the table of sample {sample_id}.")  # type: ignore

    clonotypes = []
    for row, record in enumerate(table.to_dict(orient="records")):
        read_count = _parse_count(
            record[columns["read_count"]], row=row, field=columns["read_count"], sample_id=sample_id
        )
        seqs = {}
        for field in ("cdr3_nt", "cdr3_aa"):
            value = record[columns[field]]
            if _is_na2(value):
                raise MalformedRecordError("Missing CDR3 sequence", field=columns[field], row=row, sample_id=sample_id)
            seqs[field] = str(value).strip()
        clonotypes.append(
            Clonotype(
                **seqs,
                v_segment=parse_genes(record[columns["v_segment"]]) if has_v else None,
                j_segment=parse_genes(record[columns["j_segment"]]) if has_j else None,
                read_count=read_count,
                sample_id=sample_id,
            )
        )

    repertoire = Repertoire(sample_id, clonotypes, repertoire_type=repertoire_type)
    logging.debug(f"Built {repertoire!r}")  # type: ignore
    return repertoire


@_doc_params(table_params=_doc_table_params)
def from_records(
    records: Iterable[Mapping],
    sample_id: str,
    *,
    repertoire_type: str | None = None,
    columns: Mapping[str, str] | None = None,
) -> Repertoire:
    """\
    Build a :class:`~ircompare.io.Repertoire` from a list of dictionaries.

    See :func:`~ircompare.io.read_clonotype_table`.

    Parameters
    ----------
    records
        One dictionary per clonotype
    {table_params}
    """
    return read_clonotype_table(
        pd.DataFrame.from_records(list(records)),
        sample_id,
        repertoire_type=repertoire_type,
        columns=columns,
    )


def read_metadata(table: pd.DataFrame | str | PathLike, *, sep: str = "\t") -> dict[str, SampleMetadata]:
    """\
    Build the sample metadata lookup from a table.

    The table must contain a `sample_id` column. The columns `condition`,
    `tissue` and `repertoire_type` are optional.

    Parameters
    ----------
    table
        A data frame or a path to a delimited text file
    sep
        Delimiter, if `table` is a path.

    Returns
    -------
    Dictionary mapping sample ids to :class:`~ircompare.io.SampleMetadata`.
    """
    if not isinstance(table, pd.DataFrame):
        table = pd.read_csv(table, sep=sep, dtype=str, keep_default_na=False)
    if "sample_id" not in table.columns:
        raise MalformedRecordError("Required column is missing", field="sample_id")
    if table["sample_id"].duplicated().any():
        duplicated = table.loc[table["sample_id"].duplicated(), "sample_id"].unique()
        raise ValueError(f"Sample ids in metadata are not unique: {', '.join(map(str, duplicated))}")

    metadata = {}
    for row, record in enumerate(table.to_dict(orient="records")):
        if _is_na2(record["sample_id"]):
            raise MalformedRecordError("Missing sample id", field="sample_id", row=row)
        metadata[str(record["sample_id"])] = SampleMetadata(
            str(record["sample_id"]),
            **{
                k: None if _is_na2(record.get(k, np.nan)) else str(record[k])
                for k in ("condition", "tissue", "repertoire_type")
            },
        )
    return metadata
