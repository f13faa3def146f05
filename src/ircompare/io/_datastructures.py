"""Datastructures for immune receptor repertoires.

All objects are immutable value objects. Derived results are recomputed
from them rather than stored on them.
"""

from collections.abc import Collection, Iterable, Iterator

import numpy as np
import pandas as pd
from scanpy import logging

from ircompare.exceptions import MalformedRecordError


def _as_gene_set(genes) -> frozenset:
    if genes is None:
        return frozenset()
    if isinstance(genes, str):
        return frozenset([genes]) if genes else frozenset()
    return frozenset(genes)


class Clonotype:
    """A unique receptor sequence observed in one sample.

    Within a sample, a clonotype is identified by the tuple
    (`cdr3_nt`, `v_segment`, `j_segment`), see :attr:`key`.

    Parameters
    ----------
    cdr3_nt
        :term:`CDR3` nucleotide sequence
    cdr3_aa
        :term:`CDR3` amino-acid sequence
    v_segment
        V gene(s) assigned to the clonotype. Multiple genes if the assignment is
        ambiguous, empty if unknown.
    j_segment
        J gene(s) assigned to the clonotype.
    read_count
        Number of reads supporting the clonotype.
    sample_id
        Sample the clonotype was observed in.
    read_proportion
        Fraction of the sample's reads. Set by :class:`Repertoire`.
    """

    __slots__ = ("_cdr3_nt", "_cdr3_aa", "_v_segment", "_j_segment", "_read_count", "_sample_id", "_read_proportion")

    def __init__(
        self,
        cdr3_nt: str,
        cdr3_aa: str,
        v_segment: Collection[str] | str | None = None,
        j_segment: Collection[str] | str | None = None,
        read_count: int = 1,
        sample_id: str | None = None,
        *,
        read_proportion: float | None = None,
    ):
        if read_count < 0:
            raise MalformedRecordError(
                f"`read_count` must be non-negative, got {read_count}", field="read_count", sample_id=sample_id
            )
        self._cdr3_nt = cdr3_nt
        self._cdr3_aa = cdr3_aa
        self._v_segment = _as_gene_set(v_segment)
        self._j_segment = _as_gene_set(j_segment)
        self._read_count = int(read_count)
        self._sample_id = sample_id
        self._read_proportion = read_proportion

    cdr3_nt = property(lambda self: self._cdr3_nt)
    cdr3_aa = property(lambda self: self._cdr3_aa)
    v_segment = property(lambda self: self._v_segment)
    j_segment = property(lambda self: self._j_segment)
    read_count = property(lambda self: self._read_count)
    sample_id = property(lambda self: self._sample_id)
    read_proportion = property(lambda self: self._read_proportion)

    @property
    def key(self) -> tuple[str, frozenset, frozenset]:
        """Tuple that uniquely identifies a clonotype within a sample."""
        return (self._cdr3_nt, self._v_segment, self._j_segment)

    def sequence(self, sequence: str = "nt") -> str:
        """Get the nucleotide (`"nt"`) or amino-acid (`"aa"`) CDR3 sequence."""
        if sequence == "nt":
            return self._cdr3_nt
        elif sequence == "aa":
            return self._cdr3_aa
        else:
            raise ValueError(f"Invalid value for `sequence`: {sequence}. Use one of 'nt', 'aa'.")

    def _replace(self, **kwargs) -> "Clonotype":
        attrs = {
            "cdr3_nt": self._cdr3_nt,
            "cdr3_aa": self._cdr3_aa,
            "v_segment": self._v_segment,
            "j_segment": self._j_segment,
            "read_count": self._read_count,
            "sample_id": self._sample_id,
            "read_proportion": self._read_proportion,
        }
        attrs.update(kwargs)
        return Clonotype(**attrs)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Clonotype):
            return NotImplemented
        return (
            self.key == other.key
            and self._cdr3_aa == other._cdr3_aa
            and self._read_count == other._read_count
            and self._sample_id == other._sample_id
        )

    def __hash__(self) -> int:
        return hash((self.key, self._sample_id))

    def __repr__(self):
        return (
            f"Clonotype {self._cdr3_aa} ({self._cdr3_nt}) "
            f"V={','.join(sorted(self._v_segment)) or '-'} J={','.join(sorted(self._j_segment)) or '-'} "
            f"reads={self._read_count}"
        )


class Repertoire:
    """All clonotypes observed in one sample.

    Clonotypes sharing the same :attr:`Clonotype.key` are merged by summing
    their read counts. Clonotypes without reads are not part of the repertoire.
    Read proportions are (re-)computed relative to :attr:`total_reads`.

    The order of clonotypes is the order in which they were first encountered.

    Parameters
    ----------
    sample_id
        Unique identifier of the sample
    clonotypes
        Clonotypes observed in the sample. Their `sample_id` is overwritten.
    repertoire_type
        Locus of the receptor chain (e.g. `TRA` or `TRB`). Only repertoires
        of the same type can be compared with each other.
    """

    def __init__(self, sample_id: str, clonotypes: Iterable[Clonotype] = (), *, repertoire_type: str | None = None):
        self._sample_id = sample_id
        self._repertoire_type = repertoire_type

        merged: dict[tuple, Clonotype] = {}
        n_input = 0
        for c in clonotypes:
            n_input += 1
            if c.key in merged:
                merged[c.key] = merged[c.key]._replace(read_count=merged[c.key].read_count + c.read_count)
            else:
                merged[c.key] = c
        if len(merged) < n_input:
            logging.debug(f"Merged {n_input - len(merged)} duplicate clonotypes in sample {sample_id}")  # type: ignore

        n_merged = len(merged)
        merged = {k: c for k, c in merged.items() if c.read_count > 0}
        if len(merged) < n_merged:
            logging.debug(
                f"Removed {n_merged - len(merged)} clonotypes without reads from sample {sample_id}"
            )  # type: ignore

        self._total_reads = sum(c.read_count for c in merged.values())
        self._clonotypes = tuple(
            c._replace(sample_id=sample_id, read_proportion=c.read_count / self._total_reads) for c in merged.values()
        )

    @property
    def sample_id(self) -> str:
        """Identifier of the sample"""
        return self._sample_id

    @property
    def repertoire_type(self) -> str | None:
        """Locus of the receptor chain"""
        return self._repertoire_type

    @property
    def clonotypes(self) -> tuple[Clonotype, ...]:
        return self._clonotypes

    @property
    def total_reads(self) -> int:
        """Sum of the read counts of all clonotypes"""
        return self._total_reads

    @property
    def counts(self) -> np.ndarray:
        """Read counts of all clonotypes"""
        return np.array([c.read_count for c in self._clonotypes], dtype=np.int64)

    @property
    def proportions(self) -> np.ndarray:
        """Read proportions of all clonotypes. Sums to 1."""
        return np.array([c.read_proportion for c in self._clonotypes], dtype=float)

    def __len__(self) -> int:
        return len(self._clonotypes)

    def __iter__(self) -> Iterator[Clonotype]:
        return iter(self._clonotypes)

    def __repr__(self):
        return (
            f"Repertoire {self._sample_id} ({self._repertoire_type or 'unknown type'}) "
            f"with {len(self)} clonotypes and {self._total_reads} reads"
        )

    def sequences(self, sequence: str = "nt") -> set[str]:
        """Set of unique CDR3 sequences in the repertoire."""
        return {c.sequence(sequence) for c in self._clonotypes}

    def top(self, n: int) -> "Repertoire":
        """Repertoire restricted to the `n` most abundant clonotypes.

        Clonotypes are ranked by read count, ties are broken by the order in
        which clonotypes were encountered.
        """
        if n < 0:
            raise ValueError(f"`n` must be non-negative, got {n}.")
        order = np.argsort(-self.counts, kind="stable")[:n]
        return self._derive([self._clonotypes[i] for i in order])

    def _derive(self, clonotypes: Iterable[Clonotype]) -> "Repertoire":
        return Repertoire(self._sample_id, clonotypes, repertoire_type=self._repertoire_type)

    def to_df(self) -> pd.DataFrame:
        """Convert the repertoire into a data frame with one row per clonotype."""
        return pd.DataFrame.from_records(
            [
                {
                    "sample_id": c.sample_id,
                    "cdr3_nt": c.cdr3_nt,
                    "cdr3_aa": c.cdr3_aa,
                    "v_segment": ",".join(sorted(c.v_segment)),
                    "j_segment": ",".join(sorted(c.j_segment)),
                    "read_count": c.read_count,
                    "read_proportion": c.read_proportion,
                }
                for c in self._clonotypes
            ],
            columns=["sample_id", "cdr3_nt", "cdr3_aa", "v_segment", "j_segment", "read_count", "read_proportion"],
        )


class SampleMetadata:
    """Annotation of a sample, as provided by the experimental design.

    Parameters
    ----------
    sample_id
        Identifier of the sample
    condition
        Biological condition (e.g. disease or healthy)
    tissue
        Tissue the sample was taken from
    repertoire_type
        Receptor locus of the sample (e.g. TRA or TRB)
    """

    __slots__ = ("_sample_id", "_condition", "_tissue", "_repertoire_type")

    def __init__(
        self,
        sample_id: str,
        condition: str | None = None,
        tissue: str | None = None,
        repertoire_type: str | None = None,
    ):
        self._sample_id = sample_id
        self._condition = condition
        self._tissue = tissue
        self._repertoire_type = repertoire_type

    sample_id = property(lambda self: self._sample_id)
    condition = property(lambda self: self._condition)
    tissue = property(lambda self: self._tissue)
    repertoire_type = property(lambda self: self._repertoire_type)

    def to_dict(self) -> dict:
        return {
            "sample_id": self._sample_id,
            "condition": self._condition,
            "tissue": self._tissue,
            "repertoire_type": self._repertoire_type,
        }

    def __eq__(self, other) -> bool:
        if not isinstance(other, SampleMetadata):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash(tuple(self.to_dict().values()))

    def __repr__(self):
        return (
            f"SampleMetadata {self._sample_id}: condition={self._condition}, "
            f"tissue={self._tissue}, repertoire_type={self._repertoire_type}"
        )
