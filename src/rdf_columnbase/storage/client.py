"""
Store client.

Thin wrapper over a StoreBackend that issues the store primitives at the
configured consistency level (or a per-call override), translates
not-found lookups into ``None``, and offers the insert/remove
convenience forms. Failures other than not-found propagate unchanged;
there is no retry at this layer.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Mapping, Optional, Union

from rdf_columnbase.storage.backends import (
    NotFoundError,
    StoreBackend,
    StoreError,
    StoreProtocolError,
    StoreTimeoutError,
    StoreUnavailableError,
)
from rdf_columnbase.storage.pagination import DEFAULT_SLICE_SIZE, KeySlicePaginator
from rdf_columnbase.storage.structures import (
    ColumnOrSuperColumn,
    ColumnParent,
    ColumnPath,
    ConsistencyLevel,
    KeyRange,
    KeySlice,
    Mutation,
    MutationMap,
    SlicePredicate,
    column,
    deletion,
    mutation,
    super_column,
    timestamp_now,
    to_bytes,
)

logger = logging.getLogger(__name__)

DEFAULT_CONSISTENCY_LEVEL = ConsistencyLevel.ONE

__all__ = [
    "StoreClient",
    "StoreError",
    "NotFoundError",
    "StoreUnavailableError",
    "StoreTimeoutError",
    "StoreProtocolError",
    "DEFAULT_CONSISTENCY_LEVEL",
]


class StoreClient:
    """
    Issues store primitives against one keyspace.

    Example:
        client = StoreClient(MemoryBackend(), keyspace="RDF")
        client.insert("RDF", b"http://example.org/s", {"http://example.org/p": {"h": "v"}})
        for key_slice in client.each_key_slice("RDF"):
            ...
    """

    def __init__(
        self,
        backend: StoreBackend,
        keyspace: str = "RDF",
        slice_size: int = DEFAULT_SLICE_SIZE,
        consistency_level: Union[ConsistencyLevel, int, str] = DEFAULT_CONSISTENCY_LEVEL,
    ):
        self.backend = backend
        self.keyspace = keyspace
        self.slice_size = int(slice_size)
        self.consistency_level = ConsistencyLevel.coerce(consistency_level)
        self._paginator = KeySlicePaginator(self, slice_size=self.slice_size)

    def _level(self, consistency: Optional[Union[ConsistencyLevel, int, str]]) -> ConsistencyLevel:
        if consistency is None:
            return self.consistency_level
        return ConsistencyLevel.coerce(consistency)

    @property
    def paginator(self) -> KeySlicePaginator:
        return self._paginator

    # ========== Primitives ==========

    def get(
        self,
        key: Any,
        path: ColumnPath,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> Optional[ColumnOrSuperColumn]:
        """Point lookup; ``None`` when the addressed column does not exist."""
        level = self._level(consistency)
        logger.debug(f"get {path.column_family}[{key!r}] at {level.name}")
        try:
            return self.backend.get(to_bytes(key), path, level)
        except NotFoundError:
            return None

    def get_slice(
        self,
        key: Any,
        parent: ColumnParent,
        predicate: SlicePredicate,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> list[ColumnOrSuperColumn]:
        level = self._level(consistency)
        logger.debug(f"get_slice {parent.column_family}[{key!r}] at {level.name}")
        try:
            return self.backend.get_slice(to_bytes(key), parent, predicate, level)
        except NotFoundError:
            return []

    def get_count(
        self,
        key: Any,
        parent: ColumnParent,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> int:
        level = self._level(consistency)
        logger.debug(f"get_count {parent.column_family}[{key!r}] at {level.name}")
        try:
            return self.backend.get_count(to_bytes(key), parent, level)
        except NotFoundError:
            return 0

    def get_range_slices(
        self,
        parent: ColumnParent,
        predicate: SlicePredicate,
        key_range: KeyRange,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> list[KeySlice]:
        level = self._level(consistency)
        logger.debug(
            f"get_range_slices {parent.column_family} from {key_range.start_key!r} "
            f"count={key_range.count} at {level.name}"
        )
        return self.backend.get_range_slices(parent, predicate, key_range, level)

    def batch_mutate(
        self,
        mutation_map: MutationMap,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> None:
        if not mutation_map:
            return
        level = self._level(consistency)
        logger.debug(f"batch_mutate {len(mutation_map)} rows at {level.name}")
        self.backend.batch_mutate(mutation_map, level)

    # ========== Convenience forms ==========

    def each_key_slice(self, column_family: str, **options: Any) -> Iterator[KeySlice]:
        """
        Lazily iterate every row of a column family.

        Accepts the options of :meth:`KeySlicePaginator.iterate`.
        """
        return self._paginator.iterate(column_family, **options)

    @staticmethod
    def _row_mutations(
        data: Mapping[Any, Any],
        timestamp: int,
    ) -> list[Mutation]:
        mutations = []
        for name, value in data.items():
            if isinstance(value, Mapping):
                mutations.append(mutation(super_column(
                    name,
                    [column(n, v, timestamp) for n, v in value.items()],
                )))
            else:
                mutations.append(mutation(column(name, value, timestamp)))
        return mutations

    def insert(
        self,
        column_family: str,
        key: Any,
        data: Mapping[Any, Any],
        consistency: Optional[ConsistencyLevel] = None,
    ) -> None:
        """
        Write columns to one row.

        ``data`` maps column names to values, or super column names to
        ``{column name: value}`` maps.
        """
        timestamp = timestamp_now()
        self.batch_mutate(
            {to_bytes(key): {column_family: self._row_mutations(data, timestamp)}},
            consistency,
        )

    def insert_data(
        self,
        data: Mapping[str, Mapping[Any, Mapping[Any, Any]]],
        consistency: Optional[ConsistencyLevel] = None,
    ) -> None:
        """
        Write several families in one batch with a shared timestamp.

        ``data`` is ``{family: {key: {super column: {column: value}}}}``.
        """
        timestamp = timestamp_now()
        mutations: MutationMap = {}
        for column_family, rows in data.items():
            for key, columns in rows.items():
                row = mutations.setdefault(to_bytes(key), {})
                row.setdefault(column_family, []).extend(self._row_mutations(columns, timestamp))
        self.batch_mutate(mutations, consistency)

    def remove(
        self,
        column_family: str,
        key: Any,
        path: Optional[ColumnPath] = None,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> None:
        """
        Delete a whole row, a super column, or a single column.

        The row key itself survives as an empty tombstone.
        """
        if path is None:
            removal = deletion()
        elif path.super_column is not None:
            removal = deletion(
                super_column=path.super_column,
                column_names=[path.column] if path.column is not None else None,
            )
        else:
            removal = deletion(column_names=[path.column] if path.column is not None else None)
        self.batch_mutate({to_bytes(key): {column_family: [mutation(removal)]}}, consistency)

    def truncate(self, column_family: str) -> None:
        logger.info(f"Truncating {self.keyspace}.{column_family}")
        self.backend.truncate(column_family)
