"""
Key slice pagination.

The store only answers bounded range requests. KeySlicePaginator chains
them into one lazy, resumable sequence of rows covering an unbounded
keyspace. Every full scan in the repository goes through it, including
the single-row fetch used when a query binds its subject.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Optional, Protocol

from rdf_columnbase.storage.structures import (
    ColumnParent,
    ConsistencyLevel,
    KeyRange,
    KeySlice,
    SlicePredicate,
    column_parent,
    key_range,
    slice_predicate,
    to_bytes,
)

logger = logging.getLogger(__name__)

DEFAULT_SLICE_SIZE = 100
DEFAULT_COLUMN_COUNT = 1_000
# Column count meaning "every column of the row"
ALL_COLUMNS = -1


class RangeSource(Protocol):
    def get_range_slices(
        self,
        parent: ColumnParent,
        predicate: SlicePredicate,
        key_range: KeyRange,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> list[KeySlice]: ...


class KeySlicePaginator:
    """
    Turns bounded range scans into one logical sequence of key slices.

    Each page starts at the last key of the previous page. The store's
    start bound is inclusive, so every page after the first re-reads that
    key and drops it before yielding; to keep pages at full width those
    requests ask for one extra row. Iteration stops on an empty page, on a
    short page, or once ``count`` rows have been yielded.

    Nothing is fetched until the sequence is consumed, and the consumer
    may stop pulling at any time. A page request already issued always
    completes.

    Example:
        paginator = KeySlicePaginator(client, slice_size=100)
        for key_slice in paginator.iterate("RDF"):
            print(key_slice.key)
    """

    def __init__(self, source: RangeSource, slice_size: int = DEFAULT_SLICE_SIZE):
        if slice_size < 1:
            raise ValueError("slice_size must be at least 1")
        self._source = source
        self.slice_size = slice_size
        self.pages_fetched = 0

    def iterate(
        self,
        column_family: str,
        first_key: Any = None,
        count: Optional[int] = None,
        slice_size: Optional[int] = None,
        super_column: Any = None,
        predicate: Optional[SlicePredicate] = None,
        start_column: Any = b"",
        end_column: Any = b"",
        column_count: int = DEFAULT_COLUMN_COUNT,
        consistency: Optional[ConsistencyLevel] = None,
    ) -> Iterator[KeySlice]:
        """
        Iterate rows of a column family in key order.

        Args:
            column_family: Family to scan
            first_key: Resume cursor; the scan starts at this key (inclusive)
            count: Stop after this many rows; zero yields nothing and fetches nothing
            slice_size: Rows per page (defaults to the paginator's width)
            super_column: Restrict columns to one super column
            predicate: Column selection; built from the column bounds when omitted
            start_column: First column name to return
            end_column: Last column name to return
            column_count: Maximum columns per row
            consistency: Per-call consistency level
        """
        if count is not None and count <= 0:
            return
        width = slice_size or self.slice_size
        if width < 1:
            raise ValueError("slice_size must be at least 1")

        parent = column_parent(column_family, super_column)
        if predicate is None:
            predicate = slice_predicate({
                "start": start_column,
                "finish": end_column,
                "count": column_count,
            })

        cursor = to_bytes(first_key) if first_key is not None else b""
        start_key: Optional[bytes] = None
        remaining = count

        while True:
            requested = width if start_key is None else width + 1
            page = self._source.get_range_slices(
                parent,
                predicate,
                key_range(start_key if start_key is not None else cursor, b"", requested),
                consistency,
            )
            self.pages_fetched += 1
            fetched = len(page)
            logger.debug(
                f"Fetched page of {fetched} rows from {column_family} "
                f"starting at {start_key if start_key is not None else cursor!r}"
            )

            # start key is inclusive
            if start_key is not None and page and page[0].key == start_key:
                page = page[1:]
            if not page:
                return

            for key_slice in page:
                yield key_slice
                if remaining is not None:
                    remaining -= 1
                    if remaining == 0:
                        return

            if fetched < requested:
                return
            start_key = page[-1].key
