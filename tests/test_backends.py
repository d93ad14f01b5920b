"""
Tests for the in-memory store backend.
"""

import pytest

from rdf_columnbase.storage.backends import MemoryBackend, NotFoundError, StoreBackend, apply_predicate
from rdf_columnbase.storage.structures import (
    column,
    column_parent,
    column_path,
    deletion,
    key_range,
    mutation,
    slice_predicate,
    super_column,
)


@pytest.fixture
def backend():
    """Backend holding one row with a super column and a standard column."""
    b = MemoryBackend()
    b.batch_mutate({
        b"row1": {"CF": [
            mutation(super_column("p", [column("h1", "v1", 10), column("h2", "v2", 10)])),
            mutation(column("plain", "value", 10)),
        ]},
    })
    return b


class TestProtocol:
    def test_memory_backend_is_a_store_backend(self):
        assert isinstance(MemoryBackend(), StoreBackend)


class TestApplyPredicate:
    """Tests for slice predicate selection."""

    NAMES = [b"a", b"b", b"c", b"d"]

    def test_none_selects_all(self):
        assert apply_predicate(self.NAMES, None) == self.NAMES

    def test_by_names(self):
        assert apply_predicate(self.NAMES, slice_predicate(["d", "b", "x"])) == [b"b", b"d"]

    def test_by_range(self):
        predicate = slice_predicate({"start": "b", "finish": "c"})
        assert apply_predicate(self.NAMES, predicate) == [b"b", b"c"]

    def test_count_limits(self):
        assert apply_predicate(self.NAMES, slice_predicate({"count": 2})) == [b"a", b"b"]

    def test_negative_count_is_unlimited(self):
        assert apply_predicate(self.NAMES, slice_predicate({"count": -1})) == self.NAMES

    def test_reversed(self):
        predicate = slice_predicate({"start": "c", "reversed": True, "count": 2})
        assert apply_predicate(self.NAMES, predicate) == [b"c", b"b"]


class TestReads:
    """Tests for point and slice reads."""

    def test_get_super_column(self, backend):
        found = backend.get(b"row1", column_path("CF", super_column="p"))
        assert found.super_column is not None
        assert [c.name for c in found.super_column.columns] == [b"h1", b"h2"]

    def test_get_sub_column(self, backend):
        found = backend.get(b"row1", column_path("CF", super_column="p", column="h2"))
        assert found.column.value == b"v2"

    def test_get_standard_column(self, backend):
        found = backend.get(b"row1", column_path("CF", super_column="plain"))
        assert found.column.value == b"value"

    def test_get_missing_raises(self, backend):
        with pytest.raises(NotFoundError):
            backend.get(b"row1", column_path("CF", super_column="missing"))
        with pytest.raises(NotFoundError):
            backend.get(b"nope", column_path("CF", super_column="p"))
        with pytest.raises(NotFoundError):
            backend.get(b"row1", column_path("CF", super_column="p", column="h9"))

    def test_get_slice_of_super_column(self, backend):
        columns = backend.get_slice(b"row1", column_parent("CF", "p"), slice_predicate())
        assert [c.column.name for c in columns] == [b"h1", b"h2"]

    def test_get_slice_of_missing_row(self, backend):
        assert backend.get_slice(b"nope", column_parent("CF"), slice_predicate()) == []

    def test_get_count(self, backend):
        assert backend.get_count(b"row1", column_parent("CF")) == 2
        assert backend.get_count(b"row1", column_parent("CF", "p")) == 2
        assert backend.get_count(b"nope", column_parent("CF")) == 0


class TestRangeSlices:
    """Tests for ordered range scans."""

    def test_keys_in_order_with_inclusive_start(self):
        b = MemoryBackend()
        for key in (b"c", b"a", b"b", b"d"):
            b.batch_mutate({key: {"CF": [mutation(column("x", "1"))]}})
        result = b.get_range_slices(column_parent("CF"), slice_predicate(), key_range("b", "", 2))
        assert [ks.key for ks in result] == [b"b", b"c"]

    def test_end_key_is_inclusive(self):
        b = MemoryBackend()
        for key in (b"a", b"b", b"c"):
            b.batch_mutate({key: {"CF": [mutation(column("x", "1"))]}})
        result = b.get_range_slices(column_parent("CF"), slice_predicate(), key_range("", "b", 10))
        assert [ks.key for ks in result] == [b"a", b"b"]

    def test_unknown_family_is_empty(self):
        assert MemoryBackend().get_range_slices(column_parent("CF"), slice_predicate(), key_range()) == []


class TestWrites:
    """Tests for timestamps and deletions."""

    def test_older_write_does_not_replace_newer(self, backend):
        backend.batch_mutate({b"row1": {"CF": [mutation(super_column("p", [column("h1", "old", 5)]))]}})
        assert backend.get(b"row1", column_path("CF", "p", "h1")).column.value == b"v1"

    def test_newer_write_replaces(self, backend):
        backend.batch_mutate({b"row1": {"CF": [mutation(super_column("p", [column("h1", "new", 20)]))]}})
        assert backend.get(b"row1", column_path("CF", "p", "h1")).column.value == b"new"

    def test_delete_sub_column(self, backend):
        backend.batch_mutate({b"row1": {"CF": [mutation(deletion(super_column="p", column_names=["h1"]))]}})
        columns = backend.get_slice(b"row1", column_parent("CF", "p"), slice_predicate())
        assert [c.column.name for c in columns] == [b"h2"]

    def test_emptied_super_column_disappears(self, backend):
        backend.batch_mutate({b"row1": {"CF": [mutation(deletion(super_column="p", column_names=["h1", "h2"]))]}})
        with pytest.raises(NotFoundError):
            backend.get(b"row1", column_path("CF", super_column="p"))

    def test_delete_older_than_column_is_ignored(self, backend):
        backend.batch_mutate({b"row1": {"CF": [mutation(deletion(timestamp=1, super_column="p"))]}})
        assert backend.get_count(b"row1", column_parent("CF", "p")) == 2

    def test_row_deletion_leaves_tombstone(self, backend):
        backend.batch_mutate({b"row1": {"CF": [mutation(deletion())]}})
        assert backend.row_keys("CF") == [b"row1"]
        result = backend.get_range_slices(column_parent("CF"), slice_predicate(), key_range())
        assert result[0].columns == []

    def test_mutation_log_records_batches(self, backend):
        assert len(backend.mutation_log) == 1

    def test_truncate(self, backend):
        backend.truncate("CF")
        assert backend.row_keys("CF") == []
