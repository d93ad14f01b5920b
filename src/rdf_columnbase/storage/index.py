"""
Secondary index maintenance.

Three optional directions are supported:

    ps: predicate -> subjects using it
    os: object    -> subjects pointing at it
    op: object    -> predicates pointing at it

Each index row is keyed by the hash of the indexed term and holds two
super columns:

    {hash(term) => {"info": {hash(term) => term},
                    "<direction>": {hash(member) => member}}}

``info`` is written once and never removed. A membership entry is
removed on delete only after the primary store shows no remaining triple
that would justify it.

The check and the removal are separate store calls. A concurrent insert
landing between them can lose its membership, and a concurrent delete
can leave a stale one behind. Stale entries are reported by
:meth:`IndexMaintainer.find_drift`; nothing here repairs them
automatically.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Optional

from rdf_columnbase.models import Triple, TriplePattern
from rdf_columnbase.storage.client import StoreClient
from rdf_columnbase.storage.query import QueryEngine
from rdf_columnbase.storage.structures import (
    ConsistencyLevel,
    MutationMap,
    column,
    column_parent,
    column_path,
    merge_mutations,
    mutation,
    slice_predicate,
    super_column,
)
from rdf_columnbase.storage.terms import Term, TermParseError, content_hash

logger = logging.getLogger(__name__)

INFO_COLUMN = b"info"
DEFAULT_PREDICATE_INDEX_FAMILY = "RDF.predicates"
DEFAULT_OBJECT_INDEX_FAMILY = "RDF.objects"


class IndexDirection(Enum):
    """Index direction, named by (indexed component, member component)."""
    PS = "ps"
    OS = "os"
    OP = "op"

    @classmethod
    def coerce(cls, value) -> "IndexDirection":
        if isinstance(value, cls):
            return value
        return cls(str(value).lower())

    @property
    def column_name(self) -> bytes:
        return self.value.encode("ascii")

    def indexed(self, triple: Triple) -> Term:
        return triple.predicate if self is IndexDirection.PS else triple.object

    def member(self, triple: Triple) -> Term:
        return triple.predicate if self is IndexDirection.OP else triple.subject

    def justifying_pattern(self, triple: Triple) -> TriplePattern:
        """Pattern whose matches keep this triple's membership alive."""
        if self is IndexDirection.PS:
            return TriplePattern(subject=triple.subject, predicate=triple.predicate)
        if self is IndexDirection.OS:
            return TriplePattern(subject=triple.subject, object=triple.object)
        return TriplePattern(predicate=triple.predicate, object=triple.object)

    def member_pattern(self, indexed: Term, member: Term) -> TriplePattern:
        if self is IndexDirection.PS:
            return TriplePattern(subject=member, predicate=indexed)
        if self is IndexDirection.OS:
            return TriplePattern(subject=member, object=indexed)
        return TriplePattern(predicate=member, object=indexed)


@dataclass
class IndexStats:
    """Counters for index maintenance."""
    memberships_written: int = 0
    memberships_removed: int = 0
    memberships_retained: int = 0
    drift_detected: int = 0


class IndexMaintainer:
    """
    Keeps the enabled secondary indexes in step with primary writes.

    Example:
        index = IndexMaintainer(client, engine, directions=["ps"])
        index.on_insert(triple)
        index.has_member(IndexDirection.PS, triple.predicate)  # True
    """

    def __init__(
        self,
        client: StoreClient,
        engine: QueryEngine,
        directions: Iterable = (),
        predicate_family: str = DEFAULT_PREDICATE_INDEX_FAMILY,
        object_family: str = DEFAULT_OBJECT_INDEX_FAMILY,
    ):
        self.client = client
        self.engine = engine
        self.directions = frozenset(IndexDirection.coerce(d) for d in directions)
        self.predicate_family = predicate_family
        self.object_family = object_family
        self._stats = IndexStats()

    @property
    def enabled(self) -> bool:
        return bool(self.directions)

    def is_enabled(self, direction: IndexDirection) -> bool:
        return direction in self.directions

    def family(self, direction: IndexDirection) -> str:
        if direction is IndexDirection.PS:
            return self.predicate_family
        return self.object_family

    @property
    def column_families(self) -> list[str]:
        return sorted({self.family(d) for d in self.directions})

    @staticmethod
    def row_key(term: Term) -> bytes:
        return term.compute_hash()

    # ========== Insert ==========

    def insert_mutations(self, triple: Triple, timestamp: Optional[int] = None) -> MutationMap:
        """Index writes for ``triple`` as a mutation map fragment."""
        mutations: MutationMap = {}
        for direction in sorted(self.directions, key=lambda d: d.value):
            indexed = direction.indexed(triple)
            member = direction.member(triple)
            indexed_value = indexed.canonical_bytes()
            member_value = member.canonical_bytes()
            merge_mutations(mutations, {
                content_hash(indexed_value): {
                    self.family(direction): [
                        mutation(super_column(INFO_COLUMN, [
                            column(content_hash(indexed_value), indexed_value, timestamp),
                        ])),
                        mutation(super_column(direction.column_name, [
                            column(content_hash(member_value), member_value, timestamp),
                        ])),
                    ],
                },
            })
        return mutations

    def on_insert(self, triple: Triple, consistency: Optional[ConsistencyLevel] = None) -> None:
        if not self.directions:
            return
        self.client.batch_mutate(self.insert_mutations(triple), consistency)
        self._stats.memberships_written += len(self.directions)

    def count_inserted(self, triples: int) -> None:
        """Record memberships written through an external batch."""
        self._stats.memberships_written += triples * len(self.directions)

    # ========== Delete ==========

    def on_delete(self, triple: Triple, consistency: Optional[ConsistencyLevel] = None) -> None:
        """
        Drop memberships no longer justified by any stored triple.

        Must run after the primary delete has been applied.
        """
        for direction in sorted(self.directions, key=lambda d: d.value):
            if self.engine.exists(direction.justifying_pattern(triple), consistency):
                self._stats.memberships_retained += 1
                logger.debug(f"Keeping {direction.value} membership for {triple}: still referenced")
                continue
            indexed = direction.indexed(triple)
            member = direction.member(triple)
            family = self.family(direction)
            self.client.remove(
                family,
                self.row_key(indexed),
                column_path(family, super_column=direction.column_name, column=member.compute_hash()),
                consistency,
            )
            self._stats.memberships_removed += 1
            logger.debug(f"Removed {direction.value} membership {member} from {indexed}")

    # ========== Lookups ==========

    def has_member(
        self,
        direction: IndexDirection,
        term: Term,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> bool:
        """Whether any membership is recorded for ``term`` in this direction."""
        family = self.family(direction)
        return self.client.get_count(
            self.row_key(term),
            column_parent(family, direction.column_name),
            consistency,
        ) > 0

    def info(self, term_hash: bytes, direction: IndexDirection = IndexDirection.PS) -> Optional[Term]:
        """Resolve an index row key back to the term it was written for."""
        family = self.family(direction)
        found = self.client.get(term_hash, column_path(family, super_column=INFO_COLUMN, column=term_hash))
        if found is None:
            return None
        return Term.from_ntriples(found.column.value)

    def members(
        self,
        direction: IndexDirection,
        term: Term,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> Iterator[Term]:
        """Recorded members for ``term``; unreadable entries are skipped."""
        family = self.family(direction)
        columns = self.client.get_slice(
            self.row_key(term),
            column_parent(family, direction.column_name),
            slice_predicate({"count": -1}),
            consistency,
        )
        for cosc in columns:
            try:
                yield Term.from_ntriples(cosc.column.value)
            except TermParseError as e:
                logger.warning(f"Skipping undecodable {direction.value} member of {term}: {e}")

    def find_drift(
        self,
        direction: IndexDirection,
        term: Term,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> list[Term]:
        """
        Members recorded for ``term`` that no stored triple justifies.

        Each one is logged; none is removed.
        """
        stale = []
        for member in self.members(direction, term, consistency):
            if not self.engine.exists(direction.member_pattern(term, member), consistency):
                stale.append(member)
                self._stats.drift_detected += 1
                logger.warning(f"Index drift: {direction.value} row for {term} lists {member} without a backing triple")
        return stale

    def stats(self) -> IndexStats:
        return IndexStats(
            memberships_written=self._stats.memberships_written,
            memberships_removed=self._stats.memberships_removed,
            memberships_retained=self._stats.memberships_retained,
            drift_detected=self._stats.drift_detected,
        )

    def clear(self) -> None:
        for family in self.column_families:
            self.client.truncate(family)
