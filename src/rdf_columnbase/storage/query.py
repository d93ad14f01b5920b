"""
Triple pattern evaluation over the primary column families.

A bound subject becomes a one-row fetch (page width 1, result cap 1)
through the ordinary pagination path; anything else is a full scan.
A bound predicate restricts each fetched row to that one column by
name; otherwise whole rows are read, however wide. Predicate and object
bindings are then applied as filters on the scanned rows. Secondary indexes are never consulted here.
"""

from __future__ import annotations

import logging
from typing import Iterator, Optional, Sequence

from rdf_columnbase.models import Triple, TriplePattern
from rdf_columnbase.storage.client import StoreClient
from rdf_columnbase.storage.codec import TripleCodec
from rdf_columnbase.storage.pagination import ALL_COLUMNS
from rdf_columnbase.storage.structures import ConsistencyLevel, KeySlice, SlicePredicate, slice_predicate
from rdf_columnbase.storage.terms import TermKind

logger = logging.getLogger(__name__)


class QueryEngine:
    """
    Evaluates triple patterns by scanning.

    Each call to :meth:`query` returns a new lazy iterator; nothing is
    cached between calls, so every iteration observes the store as it
    is at that moment.

    Example:
        engine = QueryEngine(client, codec, ["RDF"])
        for triple in engine.query(TriplePattern.of(predicate="http://xmlns.com/foaf/0.1/name")):
            print(triple)
    """

    def __init__(
        self,
        client: StoreClient,
        codec: TripleCodec,
        column_families: Sequence[str],
    ):
        self.client = client
        self.codec = codec
        self.column_families = list(column_families)

    def rows(
        self,
        pattern: TriplePattern,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> Iterator[KeySlice]:
        """Rows that may hold matches for ``pattern``, across all monitored families."""
        # Literals never appear as subjects or predicates
        if pattern.subject is not None and pattern.subject.kind == TermKind.LITERAL:
            return
        if pattern.predicate is not None and pattern.predicate.kind != TermKind.IRI:
            return

        columns = self.column_selection(pattern)
        for column_family in self.column_families:
            if pattern.subject is not None:
                key = pattern.subject.to_key()
                for key_slice in self.client.each_key_slice(
                    column_family,
                    first_key=key,
                    count=1,
                    slice_size=1,
                    predicate=columns,
                    consistency=consistency,
                ):
                    # The scan starts at the key; a missing row yields its successor
                    if key_slice.key == key:
                        yield key_slice
            else:
                yield from self.client.each_key_slice(
                    column_family,
                    predicate=columns,
                    consistency=consistency,
                )

    @staticmethod
    def column_selection(pattern: TriplePattern) -> SlicePredicate:
        """The bound predicate column by name, otherwise every column of the row."""
        if pattern.predicate is not None:
            return slice_predicate([pattern.predicate.lex.encode("utf-8")])
        return slice_predicate({"count": ALL_COLUMNS})

    def _match_row(self, key_slice: KeySlice, pattern: TriplePattern) -> Iterator[Triple]:
        predicate = pattern.predicate.lex.encode("utf-8") if pattern.predicate is not None else None
        for cosc in key_slice.columns:
            if predicate is not None and cosc.name != predicate:
                continue
            for triple in self.codec.decode_column(key_slice.key, cosc):
                if pattern.object is None or triple.object == pattern.object:
                    yield triple

    def query(
        self,
        pattern: Optional[TriplePattern] = None,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> Iterator[Triple]:
        """Lazily yield every stored triple matching ``pattern``."""
        pattern = pattern or TriplePattern()
        logger.debug(f"Evaluating pattern {pattern!r}")
        for key_slice in self.rows(pattern, consistency):
            yield from self._match_row(key_slice, pattern)

    def first(
        self,
        pattern: Optional[TriplePattern] = None,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> Optional[Triple]:
        return next(self.query(pattern, consistency), None)

    def exists(
        self,
        pattern: Optional[TriplePattern] = None,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> bool:
        return self.first(pattern, consistency) is not None
