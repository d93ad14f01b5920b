"""
Cassandra / ScyllaDB backend.

Super column families are emulated on CQL with one table per family:

    CREATE TABLE <family> (
        key   blob,
        super blob,
        name  blob,
        value blob,
        PRIMARY KEY ((key), super, name)
    )

A standard column is stored with an empty ``name``; every column of a
super column shares its ``super`` value. Range scans walk partitions in
token order starting at ``token(start_key)`` inclusive, which keeps the
paginator's resume-and-skip contract intact.

Driver failures are translated into the store exception hierarchy and
never retried here.
"""

from __future__ import annotations

import logging
import re
from collections import OrderedDict
from typing import Any, Iterable, Optional

from cassandra import (
    ConsistencyLevel as DriverConsistencyLevel,
    DriverException,
    OperationTimedOut,
    RequestValidationException,
    Timeout,
    Unavailable,
)
from cassandra.cluster import Cluster, NoHostAvailable, Session
from cassandra.query import BatchStatement, BatchType, SimpleStatement

from rdf_columnbase.storage.backends import (
    NotFoundError,
    StoreProtocolError,
    StoreTimeoutError,
    StoreUnavailableError,
    apply_predicate,
)
from rdf_columnbase.storage.structures import (
    Column,
    ColumnOrSuperColumn,
    ColumnParent,
    ColumnPath,
    ConsistencyLevel,
    Deletion,
    KeyRange,
    KeySlice,
    MutationMap,
    SlicePredicate,
    SuperColumn,
)

logger = logging.getLogger(__name__)

DEFAULT_PORT = 9042

_SELECT = "SELECT key, super, name, value, writetime(value) AS ts FROM {table}"


def table_name(column_family: str) -> str:
    """CQL table name for a column family (non-word characters become ``_``)."""
    return re.sub(r"\W", "_", column_family)


def parse_servers(servers: Iterable[str]) -> tuple[list[str], int]:
    """Split ``host:port`` entries into contact points and a shared port."""
    hosts = []
    port = DEFAULT_PORT
    for server in servers:
        host, _, port_str = server.rpartition(":")
        if host and port_str.isdigit():
            hosts.append(host)
            port = int(port_str)
        else:
            hosts.append(server)
    return hosts, port


class CassandraBackend:
    """
    StoreBackend over a cassandra-driver session.

    Example:
        backend = CassandraBackend.from_servers(["127.0.0.1:9042"], "RDF")
        backend.setup(["RDF", "RDF.predicates"])
        repo = Repository(config, backend=backend)
    """

    def __init__(self, session: Session, keyspace: str, cluster: Optional[Cluster] = None):
        self.session = session
        self.keyspace = keyspace
        self._cluster = cluster

    @classmethod
    def from_servers(cls, servers: Iterable[str], keyspace: str, **cluster_options: Any) -> "CassandraBackend":
        hosts, port = parse_servers(servers)
        cluster = Cluster(contact_points=hosts, port=port, **cluster_options)
        try:
            session = cluster.connect()
        except NoHostAvailable as e:
            cluster.shutdown()
            raise StoreUnavailableError(f"No store host reachable at {hosts}:{port}") from e
        logger.info(f"Connected to {hosts} (port {port}), keyspace {keyspace}")
        return cls(session, keyspace, cluster)

    def close(self) -> None:
        if self._cluster is not None:
            self._cluster.shutdown()
            self._cluster = None

    def __enter__(self) -> "CassandraBackend":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ========== Schema ==========

    def setup(self, column_families: Iterable[str], replication_factor: int = 1) -> None:
        """Create the keyspace and one table per column family if missing."""
        self._execute(
            f"CREATE KEYSPACE IF NOT EXISTS {self.keyspace} WITH replication = "
            f"{{'class': 'SimpleStrategy', 'replication_factor': {int(replication_factor)}}}",
            (),
            ConsistencyLevel.ONE,
        )
        for column_family in column_families:
            self._execute(
                f"CREATE TABLE IF NOT EXISTS {self._table(column_family)} ("
                "key blob, super blob, name blob, value blob, "
                "PRIMARY KEY ((key), super, name))",
                (),
                ConsistencyLevel.ONE,
            )
            logger.info(f"Ensured table for column family {column_family}")

    # ========== Plumbing ==========

    def _table(self, column_family: str) -> str:
        return f"{self.keyspace}.{table_name(column_family)}"

    @staticmethod
    def _level(consistency: ConsistencyLevel) -> int:
        return getattr(DriverConsistencyLevel, ConsistencyLevel.coerce(consistency).name)

    def _execute(self, query: str, params: tuple, consistency: ConsistencyLevel):
        statement = SimpleStatement(query, consistency_level=self._level(consistency))
        try:
            return self.session.execute(statement, params)
        except (Unavailable, NoHostAvailable) as e:
            raise StoreUnavailableError(str(e)) from e
        except (Timeout, OperationTimedOut) as e:
            raise StoreTimeoutError(str(e)) from e
        except RequestValidationException as e:
            raise StoreProtocolError(str(e)) from e
        except DriverException as e:
            raise StoreProtocolError(str(e)) from e

    @staticmethod
    def _column(row: Any, name: bytes) -> Column:
        return Column(name=name, value=bytes(row.value), timestamp=row.ts or 0)

    def _entries(self, rows: Iterable[Any]) -> "OrderedDict[bytes, Any]":
        """Group CQL rows of one partition into standard columns and super columns."""
        entries: OrderedDict[bytes, Any] = OrderedDict()
        for row in rows:
            sup = bytes(row.super)
            name = bytes(row.name) if row.name is not None else b""
            if not name:
                entries[sup] = self._column(row, sup)
            else:
                group = entries.get(sup)
                if not isinstance(group, list):
                    group = []
                    entries[sup] = group
                group.append(self._column(row, name))
        return entries

    @staticmethod
    def _to_cosc(name: bytes, entry: Any) -> ColumnOrSuperColumn:
        if isinstance(entry, Column):
            return ColumnOrSuperColumn(column=entry)
        return ColumnOrSuperColumn(super_column=SuperColumn(name=name, columns=tuple(entry)))

    def _slice(
        self,
        key: bytes,
        parent: ColumnParent,
        predicate: Optional[SlicePredicate],
        consistency: ConsistencyLevel,
    ) -> list[ColumnOrSuperColumn]:
        table = self._table(parent.column_family)
        if parent.super_column is not None:
            rows = self._execute(
                _SELECT.format(table=table) + " WHERE key = %s AND super = %s",
                (key, parent.super_column),
                consistency,
            )
            columns = {bytes(r.name): self._column(r, bytes(r.name)) for r in rows if r.name}
            names = apply_predicate(sorted(columns), predicate)
            return [ColumnOrSuperColumn(column=columns[n]) for n in names]

        rows = self._execute(_SELECT.format(table=table) + " WHERE key = %s", (key,), consistency)
        entries = self._entries(rows)
        names = apply_predicate(sorted(entries), predicate)
        return [self._to_cosc(n, entries[n]) for n in names]

    # ========== Primitives ==========

    def get(self, key: bytes, path: ColumnPath, consistency: ConsistencyLevel) -> ColumnOrSuperColumn:
        table = self._table(path.column_family)
        name = path.super_column if path.super_column is not None else path.column
        if name is None:
            raise NotFoundError(f"{path.column_family}[{key!r}]: no column addressed")

        if path.super_column is not None and path.column is not None:
            rows = list(self._execute(
                _SELECT.format(table=table) + " WHERE key = %s AND super = %s AND name = %s",
                (key, path.super_column, path.column),
                consistency,
            ))
            if not rows:
                raise NotFoundError(f"{path.column_family}[{key!r}][{name!r}][{path.column!r}]")
            return ColumnOrSuperColumn(column=self._column(rows[0], path.column))

        rows = self._execute(
            _SELECT.format(table=table) + " WHERE key = %s AND super = %s",
            (key, name),
            consistency,
        )
        entries = self._entries(rows)
        if name not in entries:
            raise NotFoundError(f"{path.column_family}[{key!r}][{name!r}]")
        return self._to_cosc(name, entries[name])

    def get_slice(
        self,
        key: bytes,
        parent: ColumnParent,
        predicate: SlicePredicate,
        consistency: ConsistencyLevel,
    ) -> list[ColumnOrSuperColumn]:
        return self._slice(key, parent, predicate, consistency)

    def get_count(self, key: bytes, parent: ColumnParent, consistency: ConsistencyLevel) -> int:
        return len(self._slice(key, parent, None, consistency))

    def get_range_slices(
        self,
        parent: ColumnParent,
        predicate: SlicePredicate,
        key_range: KeyRange,
        consistency: ConsistencyLevel,
    ) -> list[KeySlice]:
        table = self._table(parent.column_family)
        clauses = []
        params: list[Any] = []
        if key_range.start_key:
            clauses.append("token(key) >= token(%s)")
            params.append(key_range.start_key)
        if key_range.end_key:
            clauses.append("token(key) <= token(%s)")
            params.append(key_range.end_key)
        query = f"SELECT DISTINCT key FROM {table}"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " LIMIT %s"
        params.append(key_range.count)

        keys = [bytes(r.key) for r in self._execute(query, tuple(params), consistency)]
        return [KeySlice(key=k, columns=self._slice(k, parent, predicate, consistency)) for k in keys]

    def _deletion_statements(self, table: str, key: bytes, removal: Deletion) -> list[tuple[str, tuple]]:
        prefix = f"DELETE FROM {table} USING TIMESTAMP %s WHERE key = %s"
        ts = removal.timestamp
        names = None
        if removal.predicate is not None and removal.predicate.column_names is not None:
            names = removal.predicate.column_names

        if removal.super_column is not None:
            if names is None:
                return [(prefix + " AND super = %s", (ts, key, removal.super_column))]
            return [
                (prefix + " AND super = %s AND name = %s", (ts, key, removal.super_column, n))
                for n in names
            ]
        if names is None:
            return [(prefix, (ts, key))]
        return [(prefix + " AND super = %s", (ts, key, n)) for n in names]

    def batch_mutate(self, mutation_map: MutationMap, consistency: ConsistencyLevel) -> None:
        batch = BatchStatement(batch_type=BatchType.LOGGED, consistency_level=self._level(consistency))
        insert = "INSERT INTO {table} (key, super, name, value) VALUES (%s, %s, %s, %s) USING TIMESTAMP %s"

        for key, families in mutation_map.items():
            for column_family, mutations in families.items():
                table = self._table(column_family)
                for m in mutations:
                    if m.deletion is not None:
                        for query, params in self._deletion_statements(table, key, m.deletion):
                            batch.add(SimpleStatement(query), params)
                        continue
                    cosc = m.column_or_supercolumn
                    if cosc.column is not None:
                        col = cosc.column
                        batch.add(
                            SimpleStatement(insert.format(table=table)),
                            (key, col.name, b"", col.value, col.timestamp),
                        )
                    else:
                        for col in cosc.super_column.columns:
                            batch.add(
                                SimpleStatement(insert.format(table=table)),
                                (key, cosc.super_column.name, col.name, col.value, col.timestamp),
                            )

        try:
            self.session.execute(batch)
        except (Unavailable, NoHostAvailable) as e:
            raise StoreUnavailableError(str(e)) from e
        except (Timeout, OperationTimedOut) as e:
            raise StoreTimeoutError(str(e)) from e
        except DriverException as e:
            raise StoreProtocolError(str(e)) from e

    def truncate(self, column_family: str) -> None:
        self._execute(f"TRUNCATE {self._table(column_family)}", (), ConsistencyLevel.ALL)
        logger.info(f"Truncated column family {column_family}")
