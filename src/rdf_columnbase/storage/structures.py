"""
Wide-column store structures.

Plain value objects describing what travels across the store boundary:
columns, super columns, column paths and parents, slice predicates,
key ranges, key slices and mutations. Builders accept either a ready
object or keyword options and fill in the store's documented defaults.

Row keys and column names are always ``bytes``.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Optional, Union


class ConsistencyLevel(IntEnum):
    """
    Replica acknowledgement level for reads and writes.

    Values follow the wire numbering used by the store's RPC interface.
    """
    ONE = 1
    QUORUM = 2
    LOCAL_QUORUM = 3
    EACH_QUORUM = 4
    ALL = 5
    ANY = 6
    TWO = 7
    THREE = 8

    @classmethod
    def coerce(cls, value: Union["ConsistencyLevel", int, str]) -> "ConsistencyLevel":
        """Accept an enum member, its integer value, or its name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown consistency level: {value!r}")
        return cls(int(value))


_clock_lock = threading.Lock()
_last_timestamp = 0


def timestamp_now() -> int:
    """
    Current time in microseconds, the store's timestamp unit.

    Strictly increasing within the process, so a write issued after a
    delete never ties with it (the store lets a delete win a tie).
    """
    global _last_timestamp
    with _clock_lock:
        _last_timestamp = max(time.time_ns() // 1000, _last_timestamp + 1)
        return _last_timestamp


def to_bytes(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    return str(value).encode("utf-8")


@dataclass(frozen=True)
class Column:
    """A named value with a write timestamp."""
    name: bytes
    value: bytes
    timestamp: int = field(default_factory=timestamp_now)


@dataclass(frozen=True)
class SuperColumn:
    """A named, ordered group of columns."""
    name: bytes
    columns: tuple[Column, ...] = ()

    def has_column(self, name: Any) -> bool:
        return self[name] is not None

    def __getitem__(self, name: Any) -> Optional[Column]:
        name = to_bytes(name)
        for column in self.columns:
            if column.name == name:
                return column
        return None


@dataclass(frozen=True)
class ColumnOrSuperColumn:
    """Holds exactly one of a column or a super column."""
    column: Optional[Column] = None
    super_column: Optional[SuperColumn] = None

    def __post_init__(self):
        if (self.column is None) == (self.super_column is None):
            raise ValueError("Exactly one of column or super_column must be set")

    @property
    def name(self) -> bytes:
        return (self.column or self.super_column).name


@dataclass(frozen=True)
class ColumnPath:
    """Addresses a column family, optionally narrowed to a super column and column."""
    column_family: str
    super_column: Optional[bytes] = None
    column: Optional[bytes] = None


@dataclass(frozen=True)
class ColumnParent:
    """Addresses the columns of a family, or of one super column within it."""
    column_family: str
    super_column: Optional[bytes] = None


@dataclass(frozen=True)
class SliceRange:
    """A contiguous run of column names; empty bounds are open."""
    start: bytes = b""
    finish: bytes = b""
    reversed: bool = False
    count: int = 100


@dataclass(frozen=True)
class SlicePredicate:
    """Selects columns either by explicit names or by a range."""
    column_names: Optional[tuple[bytes, ...]] = None
    slice_range: Optional[SliceRange] = None


@dataclass(frozen=True)
class KeyRange:
    """A contiguous run of row keys. The start key is inclusive; an empty end key is open."""
    start_key: bytes = b""
    end_key: bytes = b""
    count: int = 100


@dataclass(frozen=True)
class KeySlice:
    """One row returned by a range scan."""
    key: bytes
    columns: list[ColumnOrSuperColumn] = field(default_factory=list)


@dataclass(frozen=True)
class Deletion:
    """Removes a whole row, a super column, or named columns within either."""
    timestamp: int = field(default_factory=timestamp_now)
    super_column: Optional[bytes] = None
    predicate: Optional[SlicePredicate] = None


@dataclass(frozen=True)
class Mutation:
    """Holds exactly one of an insertion or a deletion."""
    column_or_supercolumn: Optional[ColumnOrSuperColumn] = None
    deletion: Optional[Deletion] = None

    def __post_init__(self):
        if (self.column_or_supercolumn is None) == (self.deletion is None):
            raise ValueError("Exactly one of column_or_supercolumn or deletion must be set")


# {row key => {column family => [mutation, ...]}}
MutationMap = dict[bytes, dict[str, list[Mutation]]]


# =============================================================================
# Builders
# =============================================================================

def column(name: Any, value: Any, timestamp: Optional[int] = None) -> Column:
    return Column(
        name=to_bytes(name),
        value=to_bytes(value),
        timestamp=timestamp if timestamp is not None else timestamp_now(),
    )


def super_column(name: Any, columns: Any = ()) -> SuperColumn:
    return SuperColumn(name=to_bytes(name), columns=tuple(columns))


def column_or_supercolumn(value: Union[Column, SuperColumn]) -> ColumnOrSuperColumn:
    if isinstance(value, SuperColumn):
        return ColumnOrSuperColumn(super_column=value)
    return ColumnOrSuperColumn(column=value)


def column_path(
    column_family: str,
    super_column: Any = None,
    column: Any = None,
) -> ColumnPath:
    return ColumnPath(
        column_family=column_family,
        super_column=to_bytes(super_column) if super_column is not None else None,
        column=to_bytes(column) if column is not None else None,
    )


def column_parent(column_family: str, super_column: Any = None) -> ColumnParent:
    return ColumnParent(
        column_family=column_family,
        super_column=to_bytes(super_column) if super_column is not None else None,
    )


def slice_range(
    start: Any = b"",
    finish: Any = b"",
    reversed: bool = False,
    count: int = 100,
) -> SliceRange:
    return SliceRange(to_bytes(start), to_bytes(finish), reversed, count)


def slice_predicate(names_or_options: Any = None) -> SlicePredicate:
    """
    Build a slice predicate.

    A list or tuple selects columns by name. A dict either carries
    ``column_names``/``slice_range`` directly or is treated as options
    for :func:`slice_range`. ``None`` selects the default range.
    """
    if isinstance(names_or_options, SlicePredicate):
        return names_or_options
    if names_or_options is None:
        return SlicePredicate(slice_range=slice_range())
    if isinstance(names_or_options, (list, tuple)):
        return SlicePredicate(column_names=tuple(to_bytes(n) for n in names_or_options))
    if isinstance(names_or_options, dict):
        if "column_names" in names_or_options or "slice_range" in names_or_options:
            names = names_or_options.get("column_names")
            return SlicePredicate(
                column_names=tuple(to_bytes(n) for n in names) if names is not None else None,
                slice_range=names_or_options.get("slice_range"),
            )
        return SlicePredicate(slice_range=slice_range(**names_or_options))
    raise TypeError(f"Cannot build slice predicate from {type(names_or_options).__name__}")


def key_range(start_key: Any = b"", end_key: Any = b"", count: int = 100) -> KeyRange:
    return KeyRange(to_bytes(start_key), to_bytes(end_key), count)


def mutation(value: Union[ColumnOrSuperColumn, Deletion, Column, SuperColumn]) -> Mutation:
    if isinstance(value, Deletion):
        return Mutation(deletion=value)
    if isinstance(value, (Column, SuperColumn)):
        value = column_or_supercolumn(value)
    return Mutation(column_or_supercolumn=value)


def deletion(
    timestamp: Optional[int] = None,
    super_column: Any = None,
    column_names: Any = None,
) -> Deletion:
    return Deletion(
        timestamp=timestamp if timestamp is not None else timestamp_now(),
        super_column=to_bytes(super_column) if super_column is not None else None,
        predicate=slice_predicate(list(column_names)) if column_names is not None else None,
    )


def merge_mutations(target: MutationMap, fragment: MutationMap) -> MutationMap:
    """Append every mutation of ``fragment`` into ``target`` in place."""
    for key, families in fragment.items():
        row = target.setdefault(key, {})
        for column_family, mutations in families.items():
            row.setdefault(column_family, []).extend(mutations)
    return target
