"""
Repository: RDF triples persisted in a wide-column store.

Primary layout, one row per subject:

    {column family => {subject => {predicate => {sha1(object) => object}}}}

The Repository composes the storage components and layers the derived
operations (count, containment, enumeration, export) over two
primitives: pattern scans and existence checks.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Union

import polars as pl

from rdf_columnbase.models import Triple, TriplePattern
from rdf_columnbase.storage.backends import MemoryBackend, StoreBackend
from rdf_columnbase.storage.batch import BatchMutationBuilder
from rdf_columnbase.storage.client import StoreClient
from rdf_columnbase.storage.codec import TripleCodec
from rdf_columnbase.storage.config import ConfigValidator, StoreConfig, load_config
from rdf_columnbase.storage.index import IndexDirection, IndexMaintainer
from rdf_columnbase.storage.pagination import ALL_COLUMNS
from rdf_columnbase.storage.query import QueryEngine
from rdf_columnbase.storage.structures import ConsistencyLevel, column_path
from rdf_columnbase.storage.terms import Term

logger = logging.getLogger(__name__)

TripleLike = Union[Triple, tuple]


def _as_triple(value: TripleLike) -> Triple:
    if isinstance(value, Triple):
        return value
    subject, predicate, obj = value
    return Triple.of(subject, predicate, obj)


class Repository:
    """
    An RDF repository on a wide-column store.

    Without a backend the repository runs on an in-process MemoryBackend;
    pass a CassandraBackend (or any StoreBackend) for a real cluster, or
    use :meth:`from_config` to connect to the configured servers.

    Example:
        repo = Repository(StoreConfig(indexes={"ps"}))
        repo.insert("http://example.org/alice", "http://xmlns.com/foaf/0.1/name", "Alice")
        repo.has_predicate("http://xmlns.com/foaf/0.1/name")  # True
        df = repo.to_dataframe()
    """

    def __init__(
        self,
        config: Optional[StoreConfig] = None,
        backend: Optional[StoreBackend] = None,
    ):
        self.config = config or StoreConfig()
        ConfigValidator.validate_or_raise(self.config)

        self.client = StoreClient(
            backend if backend is not None else MemoryBackend(),
            keyspace=self.config.keyspace,
            slice_size=self.config.slice_size,
            consistency_level=self.config.consistency_level,
        )
        self.codec = TripleCodec()
        self.engine = QueryEngine(self.client, self.codec, self.config.column_families)
        self.index = IndexMaintainer(
            self.client,
            self.engine,
            directions=self.config.indexes,
            predicate_family=self.config.predicate_index_family,
            object_family=self.config.object_index_family,
        )
        self.batch = BatchMutationBuilder(
            self.client,
            self.codec,
            self.config.column_family,
            index=self.index,
            batch_size=self.config.batch_size,
        )

    @classmethod
    def from_config(
        cls,
        config: Union[StoreConfig, str, Path],
        setup: bool = True,
        replication_factor: int = 1,
    ) -> "Repository":
        """
        Connect to the cluster named by a configuration (or configuration file).

        With ``setup`` the keyspace and every primary and index table are
        created if missing.

        Example:
            repo = Repository.from_config("store.yaml")
            ...
            repo.close()
        """
        # The driver is only loaded when a cluster is actually used
        from rdf_columnbase.storage.cassandra import CassandraBackend

        if not isinstance(config, StoreConfig):
            config = load_config(config)
        ConfigValidator.validate_or_raise(config)

        backend = CassandraBackend.from_servers(config.servers, config.keyspace)
        if setup:
            backend.setup(config.column_families + config.index_families, replication_factor)
        return cls(config, backend=backend)

    def close(self) -> None:
        """Release the backend's connections, if it holds any."""
        close = getattr(self.client.backend, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "Repository":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def column_family(self) -> str:
        return self.config.column_family

    @property
    def column_families(self) -> list[str]:
        return self.config.column_families

    # ========== Mutation ==========

    def insert(
        self,
        subject: Any,
        predicate: Any = None,
        obj: Any = None,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> Triple:
        """
        Insert one triple. Re-inserting an identical triple is a no-op.

        Accepts a Triple or its three components.
        """
        triple = subject if isinstance(subject, Triple) else Triple.of(subject, predicate, obj)
        return self.insert_statement(triple, consistency)

    def insert_statement(self, triple: Triple, consistency: Optional[ConsistencyLevel] = None) -> Triple:
        self.client.insert(
            self.column_family,
            triple.subject.to_key(),
            self.codec.row_data(triple),
            consistency,
        )
        self.index.on_insert(triple, consistency)
        return triple

    def insert_statements(
        self,
        triples: Iterable[TripleLike],
        batch_size: Optional[int] = None,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> int:
        """Bulk insert; returns the number of triples processed."""
        return self.batch.insert(
            (_as_triple(t) for t in triples),
            consistency=consistency,
            batch_size=batch_size,
        )

    def delete(
        self,
        subject: Any,
        predicate: Any = None,
        obj: Any = None,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> bool:
        """
        Delete one triple.

        Returns:
            True if the triple was stored in the primary family
        """
        triple = subject if isinstance(subject, Triple) else Triple.of(subject, predicate, obj)
        return self.delete_statement(triple, consistency)

    def delete_statement(self, triple: Triple, consistency: Optional[ConsistencyLevel] = None) -> bool:
        enc = self.codec.encode(triple)
        found = self.client.get(
            enc.key,
            column_path(self.column_family, super_column=enc.column),
            consistency,
        )
        removed = False
        if found is not None and self.codec.contains_object(self.codec.column_value(found), triple.object):
            if found.super_column is not None:
                path = column_path(self.column_family, super_column=enc.column, column=enc.sub_key)
            else:
                path = column_path(self.column_family, column=enc.column)
            self.client.remove(self.column_family, enc.key, path, consistency)
            removed = True
        else:
            logger.debug(f"Delete of absent triple {triple}")

        # Index entries may outlive their triple after an interrupted delete
        self.index.on_delete(triple, consistency)
        return removed

    def delete_statements(self, triples: Iterable[TripleLike], consistency: Optional[ConsistencyLevel] = None) -> int:
        return sum(1 for t in triples if self.delete_statement(_as_triple(t), consistency))

    def clear(self) -> None:
        """Drop every triple and every index row."""
        for column_family in self.column_families:
            self.client.truncate(column_family)
        self.index.clear()

    # ========== Query ==========

    def query(
        self,
        pattern: Optional[TriplePattern] = None,
        subject: Any = None,
        predicate: Any = None,
        obj: Any = None,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> Iterator[Triple]:
        """Lazily yield triples matching a pattern (or the given components)."""
        if pattern is None:
            pattern = TriplePattern.of(subject, predicate, obj)
        return self.engine.query(pattern, consistency)

    def each_statement(self) -> Iterator[Triple]:
        return self.engine.query(TriplePattern())

    def __iter__(self) -> Iterator[Triple]:
        return self.each_statement()

    def each_subject(self) -> Iterator[Term]:
        """Subjects of non-empty rows; each row is visited once."""
        for column_family in self.column_families:
            for key_slice in self.client.each_key_slice(column_family, column_count=1):
                if key_slice.columns:
                    yield Term.from_key(key_slice.key)

    def each_predicate(self) -> Iterator[Term]:
        seen = set()
        for column_family in self.column_families:
            for key_slice in self.client.each_key_slice(column_family, column_count=ALL_COLUMNS):
                for cosc in key_slice.columns:
                    if cosc.name not in seen:
                        seen.add(cosc.name)
                        yield Term.iri(cosc.name.decode("utf-8"))

    def each_object(self) -> Iterator[Term]:
        seen = set()
        for triple in self.each_statement():
            if triple.object not in seen:
                seen.add(triple.object)
                yield triple.object

    # ========== Derived checks ==========

    def has_statement(self, triple: TripleLike, consistency: Optional[ConsistencyLevel] = None) -> bool:
        # A pattern, not a Triple: impossible statements are simply absent
        subject, predicate, obj = triple
        pattern = TriplePattern.of(subject, predicate, obj)
        if pattern.subject is None or pattern.predicate is None or pattern.object is None:
            return False
        return self.engine.exists(pattern, consistency)

    def __contains__(self, triple: TripleLike) -> bool:
        return self.has_statement(triple)

    def has_subject(self, subject: Any, consistency: Optional[ConsistencyLevel] = None) -> bool:
        return self.engine.exists(TriplePattern.of(subject=subject), consistency)

    def has_predicate(self, predicate: Any, consistency: Optional[ConsistencyLevel] = None) -> bool:
        """Answered from the ps index when enabled, otherwise by scanning."""
        term = Term.coerce(predicate)
        if self.index.is_enabled(IndexDirection.PS):
            return self.index.has_member(IndexDirection.PS, term, consistency)
        return self.engine.exists(TriplePattern(predicate=term), consistency)

    def has_object(self, obj: Any, consistency: Optional[ConsistencyLevel] = None) -> bool:
        """Answered from the os or op index when enabled, otherwise by scanning."""
        term = Term.coerce(obj)
        for direction in (IndexDirection.OS, IndexDirection.OP):
            if self.index.is_enabled(direction):
                return self.index.has_member(direction, term, consistency)
        return self.engine.exists(TriplePattern(object=term), consistency)

    def count(self, pattern: Optional[TriplePattern] = None) -> int:
        return sum(1 for _ in self.engine.query(pattern))

    def __len__(self) -> int:
        return self.count()

    def is_empty(self) -> bool:
        # Emptied rows survive as tombstones, so look for a column, not a key
        return not self.engine.exists(TriplePattern())

    # ========== Export ==========

    def to_dataframe(self, pattern: Optional[TriplePattern] = None) -> pl.DataFrame:
        """Matching triples as a DataFrame with subject/predicate/object string columns."""
        rows = {"subject": [], "predicate": [], "object": []}
        for triple in self.engine.query(pattern):
            rows["subject"].append(triple.subject.to_python())
            rows["predicate"].append(triple.predicate.lex)
            rows["object"].append(triple.object.to_python())
        return pl.DataFrame(rows, schema={"subject": pl.Utf8, "predicate": pl.Utf8, "object": pl.Utf8})

    def stats(self) -> dict[str, Any]:
        """Statistics about the repository (scans the whole store)."""
        df = self.to_dataframe()
        index_stats = self.index.stats()
        return {
            "triples": df.height,
            "unique_subjects": df.select("subject").unique().height,
            "unique_predicates": df.select("predicate").unique().height,
            "indexes": sorted(d.value for d in self.index.directions),
            "index": {
                "memberships_written": index_stats.memberships_written,
                "memberships_removed": index_stats.memberships_removed,
                "memberships_retained": index_stats.memberships_retained,
                "drift_detected": index_stats.drift_detected,
            },
            "decode_errors": self.codec.decode_errors,
        }

    def __repr__(self) -> str:
        return (
            f"Repository(keyspace={self.config.keyspace!r}, "
            f"column_family={self.column_family!r}, "
            f"indexes={sorted(d.value for d in self.index.directions)})"
        )
