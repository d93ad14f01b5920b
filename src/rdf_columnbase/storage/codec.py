"""
Triple codec: maps triples to rows and back.

Layout of the primary column family:

    {subject key => {predicate => {sha1(object) => object}}}

Older rows may instead hold a single bare value per predicate:

    {subject key => {predicate => object}}

Both shapes are read back. A stored column is first classified into a
ColumnValue (SingleValue or MultiValue) by whether it carries nested
columns, and every later step works on that variant.

Decode policy: a stored object that cannot be parsed is skipped. The
skip is logged with its row and column and counted in
``TripleCodec.decode_errors``; the rest of the scan continues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, Mapping, Optional, Union

from rdf_columnbase.models import Triple
from rdf_columnbase.storage.structures import (
    ColumnOrSuperColumn,
    KeySlice,
    Mutation,
    column,
    mutation,
    super_column,
)
from rdf_columnbase.storage.terms import Term, TermParseError, content_hash

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SingleValue:
    """A predicate column holding one bare serialised object."""
    value: bytes


@dataclass(frozen=True)
class MultiValue:
    """A predicate column holding ``{content hash: serialised object}``."""
    values: Mapping[bytes, bytes] = field(default_factory=dict)


ColumnValue = Union[SingleValue, MultiValue]


@dataclass(frozen=True)
class EncodedTriple:
    """Where and how a triple is stored."""
    key: bytes
    column: bytes
    sub_key: bytes
    value: bytes


class TripleCodec:
    """
    Encodes triples into store coordinates and decodes scanned rows.

    Example:
        codec = TripleCodec()
        enc = codec.encode(triple)
        client.insert("RDF", enc.key, {enc.column: {enc.sub_key: enc.value}})
    """

    def __init__(self):
        self.decode_errors = 0

    # ========== Encoding ==========

    @staticmethod
    def encode(triple: Triple) -> EncodedTriple:
        value = triple.object.canonical_bytes()
        return EncodedTriple(
            key=triple.subject.to_key(),
            column=triple.predicate.lex.encode("utf-8"),
            sub_key=content_hash(value),
            value=value,
        )

    @staticmethod
    def row_data(triple: Triple) -> dict[bytes, dict[bytes, bytes]]:
        """``{predicate: {hash: object}}`` for :meth:`StoreClient.insert`."""
        enc = TripleCodec.encode(triple)
        return {enc.column: {enc.sub_key: enc.value}}

    @staticmethod
    def insert_mutation(triple: Triple, timestamp: Optional[int] = None) -> Mutation:
        enc = TripleCodec.encode(triple)
        return mutation(super_column(enc.column, [column(enc.sub_key, enc.value, timestamp)]))

    # ========== Decoding ==========

    @staticmethod
    def column_value(cosc: ColumnOrSuperColumn) -> ColumnValue:
        """Classify a stored column by whether it has nested columns."""
        if cosc.super_column is not None:
            return MultiValue({c.name: c.value for c in cosc.super_column.columns})
        return SingleValue(cosc.column.value)

    def decode_object(self, key: bytes, column_name: bytes, raw: bytes) -> Optional[Term]:
        try:
            return Term.from_ntriples(raw)
        except TermParseError as e:
            self.decode_errors += 1
            logger.warning(f"Skipping undecodable object in row {key!r} column {column_name!r}: {e}")
            return None

    def decode_objects(self, key: bytes, column_name: bytes, value: ColumnValue) -> Iterator[Term]:
        if isinstance(value, SingleValue):
            raws = [value.value]
        else:
            raws = list(value.values.values())
        for raw in raws:
            term = self.decode_object(key, column_name, raw)
            if term is not None:
                yield term

    def decode_column(self, key: bytes, cosc: ColumnOrSuperColumn) -> Iterator[Triple]:
        subject = Term.from_key(key)
        predicate = Term.iri(cosc.name.decode("utf-8"))
        for obj in self.decode_objects(key, cosc.name, self.column_value(cosc)):
            yield Triple(subject=subject, predicate=predicate, object=obj)

    def decode_slice(self, key_slice: KeySlice) -> Iterator[Triple]:
        """Flatten one scanned row into its triples."""
        for cosc in key_slice.columns:
            yield from self.decode_column(key_slice.key, cosc)

    @staticmethod
    def contains_object(value: ColumnValue, obj: Term) -> bool:
        """Whether a stored column already holds ``obj``."""
        serialized = obj.canonical_bytes()
        if isinstance(value, SingleValue):
            return value.value == serialized
        return content_hash(serialized) in value.values
