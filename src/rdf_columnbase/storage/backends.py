"""
Store backends.

A backend executes the wide-column primitives against an actual store.
StoreClient is written against the StoreBackend protocol only, so any
object with these methods can sit underneath it.

MemoryBackend is an in-process, ordered implementation with last-write-wins
timestamps. It is used for embedded repositories and throughout the tests.
"""

from __future__ import annotations

import logging
import threading
from bisect import bisect_left, bisect_right
from typing import Optional, Protocol, Union, runtime_checkable

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


class StoreError(Exception):
    """Base class for failures reported by a store backend."""
    pass


class NotFoundError(StoreError):
    """Raised by a backend when a point lookup addresses nothing."""
    pass


class StoreUnavailableError(StoreError):
    """Not enough replicas or hosts were reachable to serve the request."""
    pass


class StoreTimeoutError(StoreError):
    """The store did not answer within its timeout."""
    pass


class StoreProtocolError(StoreError):
    """The store rejected or could not understand the request."""
    pass


@runtime_checkable
class StoreBackend(Protocol):
    """The primitives a wide-column store must offer."""

    def get(
        self, key: bytes, path: ColumnPath, consistency: ConsistencyLevel
    ) -> ColumnOrSuperColumn: ...

    def get_slice(
        self,
        key: bytes,
        parent: ColumnParent,
        predicate: SlicePredicate,
        consistency: ConsistencyLevel,
    ) -> list[ColumnOrSuperColumn]: ...

    def get_count(
        self, key: bytes, parent: ColumnParent, consistency: ConsistencyLevel
    ) -> int: ...

    def get_range_slices(
        self,
        parent: ColumnParent,
        predicate: SlicePredicate,
        key_range: KeyRange,
        consistency: ConsistencyLevel,
    ) -> list[KeySlice]: ...

    def batch_mutate(
        self, mutation_map: MutationMap, consistency: ConsistencyLevel
    ) -> None: ...

    def truncate(self, column_family: str) -> None: ...


# A stored entry is either a standard column or the sub-columns of a super column
_Entry = Union[Column, dict[bytes, Column]]
_Row = dict[bytes, _Entry]


def apply_predicate(names: list[bytes], predicate: Optional[SlicePredicate]) -> list[bytes]:
    """Select sorted column names according to a slice predicate."""
    if predicate is None:
        return names
    if predicate.column_names is not None:
        wanted = set(predicate.column_names)
        return [n for n in names if n in wanted]
    rng = predicate.slice_range
    if rng is None:
        return names
    selected = names
    if rng.reversed:
        selected = list(reversed(selected))
        if rng.start:
            selected = [n for n in selected if n <= rng.start]
        if rng.finish:
            selected = [n for n in selected if n >= rng.finish]
    else:
        if rng.start:
            selected = [n for n in selected if n >= rng.start]
        if rng.finish:
            selected = [n for n in selected if n <= rng.finish]
    return selected[: rng.count] if rng.count >= 0 else selected


def _to_cosc(name: bytes, entry: _Entry) -> ColumnOrSuperColumn:
    if isinstance(entry, Column):
        return ColumnOrSuperColumn(column=entry)
    columns = tuple(entry[n] for n in sorted(entry))
    return ColumnOrSuperColumn(super_column=SuperColumn(name=name, columns=columns))


class MemoryBackend:
    """
    Ordered in-memory wide-column store.

    Rows are kept sorted by key and columns by name. Writes carry
    timestamps and an older write never replaces a newer column. A row
    whose columns are all deleted stays behind as an empty tombstone,
    just like in a distributed store.

    Example:
        backend = MemoryBackend()
        client = StoreClient(backend)
    """

    def __init__(self):
        self._families: dict[str, dict[bytes, _Row]] = {}
        self._sorted_keys: dict[str, list[bytes]] = {}
        self._lock = threading.RLock()
        # Every batch applied, in order, for inspection
        self.mutation_log: list[MutationMap] = []

    # ========== Reads ==========

    def _row(self, column_family: str, key: bytes) -> Optional[_Row]:
        return self._families.get(column_family, {}).get(key)

    def get(
        self,
        key: bytes,
        path: ColumnPath,
        consistency: ConsistencyLevel = ConsistencyLevel.ONE,
    ) -> ColumnOrSuperColumn:
        with self._lock:
            row = self._row(path.column_family, key)
            name = path.super_column if path.super_column is not None else path.column
            if row is None or name is None or name not in row:
                raise NotFoundError(f"{path.column_family}[{key!r}][{name!r}]")
            entry = row[name]
            if isinstance(entry, Column):
                if path.super_column is not None and path.column is not None:
                    raise NotFoundError(f"{path.column_family}[{key!r}][{name!r}] is not a super column")
                return ColumnOrSuperColumn(column=entry)
            if path.super_column is not None and path.column is not None:
                if path.column not in entry:
                    raise NotFoundError(f"{path.column_family}[{key!r}][{name!r}][{path.column!r}]")
                return ColumnOrSuperColumn(column=entry[path.column])
            return _to_cosc(name, entry)

    def _slice_row(
        self,
        row: _Row,
        parent: ColumnParent,
        predicate: Optional[SlicePredicate],
    ) -> list[ColumnOrSuperColumn]:
        if parent.super_column is not None:
            entry = row.get(parent.super_column)
            if not isinstance(entry, dict):
                return []
            names = apply_predicate(sorted(entry), predicate)
            return [ColumnOrSuperColumn(column=entry[n]) for n in names]
        names = apply_predicate(sorted(row), predicate)
        return [_to_cosc(n, row[n]) for n in names]

    def get_slice(
        self,
        key: bytes,
        parent: ColumnParent,
        predicate: SlicePredicate,
        consistency: ConsistencyLevel = ConsistencyLevel.ONE,
    ) -> list[ColumnOrSuperColumn]:
        with self._lock:
            row = self._row(parent.column_family, key)
            if row is None:
                return []
            return self._slice_row(row, parent, predicate)

    def get_count(
        self,
        key: bytes,
        parent: ColumnParent,
        consistency: ConsistencyLevel = ConsistencyLevel.ONE,
    ) -> int:
        with self._lock:
            row = self._row(parent.column_family, key)
            if row is None:
                return 0
            return len(self._slice_row(row, parent, None))

    def get_range_slices(
        self,
        parent: ColumnParent,
        predicate: SlicePredicate,
        key_range: KeyRange,
        consistency: ConsistencyLevel = ConsistencyLevel.ONE,
    ) -> list[KeySlice]:
        with self._lock:
            rows = self._families.get(parent.column_family, {})
            keys = self._sorted_keys.get(parent.column_family, [])
            lo = bisect_left(keys, key_range.start_key) if key_range.start_key else 0
            hi = bisect_right(keys, key_range.end_key) if key_range.end_key else len(keys)
            selected = keys[lo:hi][: key_range.count]
            return [
                KeySlice(key=k, columns=self._slice_row(rows[k], parent, predicate))
                for k in selected
            ]

    # ========== Writes ==========

    def _ensure_row(self, column_family: str, key: bytes) -> _Row:
        rows = self._families.setdefault(column_family, {})
        if key not in rows:
            rows[key] = {}
            keys = self._sorted_keys.setdefault(column_family, [])
            keys.insert(bisect_left(keys, key), key)
        return rows[key]

    @staticmethod
    def _put(target: dict[bytes, Column], col: Column) -> None:
        current = target.get(col.name)
        if current is None or current.timestamp <= col.timestamp:
            target[col.name] = col

    def _insert(self, row: _Row, cosc: ColumnOrSuperColumn) -> None:
        if cosc.column is not None:
            current = row.get(cosc.column.name)
            if isinstance(current, dict) or current is None or current.timestamp <= cosc.column.timestamp:
                row[cosc.column.name] = cosc.column
            return
        sc = cosc.super_column
        entry = row.get(sc.name)
        if not isinstance(entry, dict):
            entry = {}
            row[sc.name] = entry
        for col in sc.columns:
            self._put(entry, col)

    @staticmethod
    def _expire(entry: dict[bytes, Column], names, timestamp: int) -> None:
        for name in list(names):
            col = entry.get(name)
            if col is not None and col.timestamp <= timestamp:
                del entry[name]

    def _delete(self, row: _Row, deletion: Deletion) -> None:
        names = None
        if deletion.predicate is not None and deletion.predicate.column_names is not None:
            names = deletion.predicate.column_names

        if deletion.super_column is not None:
            entry = row.get(deletion.super_column)
            if entry is None:
                return
            if isinstance(entry, Column):
                if names is None and entry.timestamp <= deletion.timestamp:
                    del row[deletion.super_column]
                return
            self._expire(entry, names if names is not None else list(entry), deletion.timestamp)
            if not entry:
                del row[deletion.super_column]
            return

        for name in list(names if names is not None else row):
            entry = row.get(name)
            if entry is None:
                continue
            if isinstance(entry, Column):
                if entry.timestamp <= deletion.timestamp:
                    del row[name]
            else:
                self._expire(entry, list(entry), deletion.timestamp)
                if not entry:
                    del row[name]

    def batch_mutate(
        self,
        mutation_map: MutationMap,
        consistency: ConsistencyLevel = ConsistencyLevel.ONE,
    ) -> None:
        with self._lock:
            self.mutation_log.append(mutation_map)
            for key, families in mutation_map.items():
                for column_family, mutations in families.items():
                    row = self._ensure_row(column_family, key)
                    for m in mutations:
                        if m.deletion is not None:
                            self._delete(row, m.deletion)
                        else:
                            self._insert(row, m.column_or_supercolumn)

    def truncate(self, column_family: str) -> None:
        with self._lock:
            self._families.pop(column_family, None)
            self._sorted_keys.pop(column_family, None)
            logger.info(f"Truncated column family {column_family}")

    # ========== Introspection ==========

    def row_keys(self, column_family: str) -> list[bytes]:
        """All row keys of a family, tombstones included."""
        with self._lock:
            return list(self._sorted_keys.get(column_family, []))
