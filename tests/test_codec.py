"""
Tests for the triple codec.
"""

import logging

import pytest

from rdf_columnbase.models import Triple
from rdf_columnbase.storage.codec import MultiValue, SingleValue, TripleCodec
from rdf_columnbase.storage.structures import (
    KeySlice,
    column,
    column_or_supercolumn,
    super_column,
)
from rdf_columnbase.storage.terms import Term, content_hash

ALICE = "http://example.org/alice"
NAME = "http://xmlns.com/foaf/0.1/name"


@pytest.fixture
def codec():
    return TripleCodec()


class TestEncode:
    """Tests for encoding triples into store coordinates."""

    def test_coordinates(self, codec):
        enc = codec.encode(Triple.of(ALICE, NAME, "Alice"))
        assert enc.key == ALICE.encode()
        assert enc.column == NAME.encode()
        assert enc.value == b'"Alice"'
        assert enc.sub_key == content_hash(b'"Alice"')

    def test_row_data(self, codec):
        data = codec.row_data(Triple.of(ALICE, NAME, "Alice"))
        assert data == {NAME.encode(): {content_hash(b'"Alice"'): b'"Alice"'}}

    def test_insert_mutation_is_super_column(self, codec):
        m = codec.insert_mutation(Triple.of(ALICE, NAME, "Alice"), timestamp=5)
        sc = m.column_or_supercolumn.super_column
        assert sc.name == NAME.encode()
        assert sc.columns[0].timestamp == 5


class TestColumnValue:
    """Tests for classifying stored columns."""

    def test_super_column_is_multi_value(self, codec):
        cosc = column_or_supercolumn(super_column(NAME, [column("h", '"Alice"')]))
        assert codec.column_value(cosc) == MultiValue({b"h": b'"Alice"'})

    def test_standard_column_is_single_value(self, codec):
        cosc = column_or_supercolumn(column(NAME, '"Alice"'))
        assert codec.column_value(cosc) == SingleValue(b'"Alice"')

    def test_contains_object(self, codec):
        alice = Term.literal("Alice")
        multi = MultiValue({alice.compute_hash(): alice.canonical_bytes()})
        assert codec.contains_object(multi, alice)
        assert not codec.contains_object(multi, Term.literal("Bob"))
        assert codec.contains_object(SingleValue(b'"Alice"'), alice)
        assert not codec.contains_object(SingleValue(b'"Bob"'), alice)


class TestDecode:
    """Tests for decoding scanned rows."""

    def test_multi_value_row(self, codec):
        row = KeySlice(key=ALICE.encode(), columns=[
            column_or_supercolumn(super_column(NAME, [
                column("h1", '"Alice"'),
                column("h2", '"Ally"@en'),
            ])),
        ])
        triples = list(codec.decode_slice(row))
        assert [t.object for t in triples] == [Term.literal("Alice"), Term.literal("Ally", lang="en")]
        assert all(t.subject == Term.iri(ALICE) for t in triples)

    def test_single_value_row(self, codec):
        row = KeySlice(key=ALICE.encode(), columns=[column_or_supercolumn(column(NAME, '"Alice"'))])
        assert list(codec.decode_slice(row)) == [Triple.of(ALICE, NAME, "Alice")]

    def test_blank_node_subject(self, codec):
        row = KeySlice(key=b"_:b1", columns=[column_or_supercolumn(column(NAME, '"Anon"'))])
        (triple,) = codec.decode_slice(row)
        assert triple.subject == Term.bnode("b1")

    def test_undecodable_object_is_skipped(self, codec, caplog):
        row = KeySlice(key=ALICE.encode(), columns=[
            column_or_supercolumn(super_column(NAME, [
                column("h1", "not a term <<"),
                column("h2", '"Alice"'),
            ])),
        ])
        with caplog.at_level(logging.WARNING):
            triples = list(codec.decode_slice(row))
        assert [t.object for t in triples] == [Term.literal("Alice")]
        assert codec.decode_errors == 1
        assert "Skipping undecodable object" in caplog.text

    def test_empty_row(self, codec):
        assert list(codec.decode_slice(KeySlice(key=ALICE.encode()))) == []
