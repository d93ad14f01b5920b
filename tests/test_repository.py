"""
Tests for the Repository facade.
"""

from unittest.mock import patch

import polars as pl
import pytest

from rdf_columnbase import Repository, StoreConfig, Triple, TriplePattern
from rdf_columnbase.storage.cassandra import CassandraBackend
from rdf_columnbase.storage.config import ConfigValidationError
from rdf_columnbase.storage.terms import Term

EX = "http://example.org/"
NAME = "http://xmlns.com/foaf/0.1/name"
KNOWS = "http://xmlns.com/foaf/0.1/knows"
AGE = "http://xmlns.com/foaf/0.1/age"


@pytest.fixture
def repo():
    return Repository()


@pytest.fixture
def indexed_repo():
    return Repository(StoreConfig(indexes={"ps", "os", "op"}))


@pytest.fixture
def people(repo):
    repo.insert(EX + "alice", NAME, "Alice")
    repo.insert(EX + "alice", KNOWS, EX + "bob")
    repo.insert(EX + "bob", NAME, "Bob")
    return repo


class TestInsert:
    """Tests for inserting triples."""

    def test_insert_then_query(self, repo):
        repo.insert(EX + "alice", NAME, "Alice")
        assert list(repo.query(subject=EX + "alice")) == [Triple.of(EX + "alice", NAME, "Alice")]

    def test_insert_is_idempotent(self, repo):
        repo.insert(EX + "alice", NAME, "Alice")
        repo.insert(EX + "alice", NAME, "Alice")
        assert repo.count() == 1

    def test_multiple_objects_per_predicate(self, repo):
        repo.insert(EX + "alice", NAME, "Alice")
        repo.insert(EX + "alice", NAME, "Ally")
        assert len(repo) == 2

    def test_insert_triple_object(self, repo):
        triple = Triple.of(EX + "alice", AGE, 30)
        assert repo.insert(triple) == triple
        assert triple in repo

    def test_literal_subject_rejected(self, repo):
        with pytest.raises(ValueError):
            repo.insert("just text", NAME, "Alice")

    def test_insert_statements(self, repo):
        triples = [(f"{EX}s{i}", NAME, f"Name {i}") for i in range(25)]
        assert repo.insert_statements(triples, batch_size=10) == 25
        assert repo.count() == 25
        assert repo.batch.batch_sizes == [10, 10, 5]


class TestDelete:
    """Tests for deleting triples."""

    def test_delete_stored_triple(self, people):
        assert people.delete(EX + "alice", NAME, "Alice") is True
        assert not people.has_statement((EX + "alice", NAME, "Alice"))
        assert people.count() == 2

    def test_delete_missing_triple(self, people):
        assert people.delete(EX + "alice", NAME, "Nobody") is False
        assert people.count() == 3

    def test_delete_keeps_sibling_objects(self, repo):
        repo.insert(EX + "alice", NAME, "Alice")
        repo.insert(EX + "alice", NAME, "Ally")
        repo.delete(EX + "alice", NAME, "Alice")
        assert [t.object for t in repo.query(subject=EX + "alice")] == [Term.literal("Ally")]

    def test_reinsert_right_after_delete(self, repo):
        for _ in range(50):
            repo.insert(EX + "alice", NAME, "Alice")
            repo.delete(EX + "alice", NAME, "Alice")
            repo.insert(EX + "alice", NAME, "Alice")
            assert repo.has_statement((EX + "alice", NAME, "Alice"))

    def test_delete_statements(self, people):
        removed = people.delete_statements([
            (EX + "alice", NAME, "Alice"),
            (EX + "bob", NAME, "Bob"),
            (EX + "carol", NAME, "Carol"),
        ])
        assert removed == 2
        assert people.count() == 1

    def test_clear(self, people):
        people.clear()
        assert people.is_empty()


class TestEmptiness:
    """Tests for counts and emptiness with tombstoned rows."""

    def test_new_repository_is_empty(self, repo):
        assert repo.is_empty()
        assert repo.count() == 0

    def test_deleted_row_is_empty(self, repo):
        repo.insert(EX + "alice", NAME, "Alice")
        repo.delete(EX + "alice", NAME, "Alice")
        # row key survives in the store
        assert repo.client.backend.row_keys("RDF") == [(EX + "alice").encode()]
        assert repo.is_empty()
        assert repo.count() == 0
        assert list(repo.each_subject()) == []

    def test_count(self, people):
        assert people.count() == 3
        assert people.count(TriplePattern.of(predicate=NAME)) == 2


class TestEnumeration:
    """Tests for subject, predicate and object enumeration."""

    def test_each_subject(self, people):
        assert list(people.each_subject()) == [Term.iri(EX + "alice"), Term.iri(EX + "bob")]

    def test_each_predicate(self, people):
        assert set(people.each_predicate()) == {Term.iri(NAME), Term.iri(KNOWS)}

    def test_each_object(self, people):
        people.insert(EX + "carol", NAME, "Alice")
        objects = list(people.each_object())
        assert len(objects) == len(set(objects)) == 3

    def test_iteration(self, people):
        assert len(list(people)) == 3


class TestContainment:
    """Tests for derived existence checks."""

    def test_has_statement(self, people):
        assert people.has_statement(Triple.of(EX + "alice", KNOWS, EX + "bob"))
        assert (EX + "bob", NAME, "Bob") in people
        assert (EX + "bob", NAME, "Robert") not in people

    def test_has_subject(self, people):
        assert people.has_subject(EX + "alice")
        assert not people.has_subject(EX + "carol")

    def test_has_predicate_by_scan(self, people):
        assert people.has_predicate(NAME)
        assert not people.has_predicate(AGE)

    def test_has_object_by_scan(self, people):
        assert people.has_object("Bob")
        assert people.has_object(EX + "bob")
        assert not people.has_object("Carol")

    def test_has_predicate_by_index(self, indexed_repo):
        indexed_repo.insert(EX + "alice", NAME, "Alice")
        assert indexed_repo.has_predicate(NAME)
        indexed_repo.delete(EX + "alice", NAME, "Alice")
        assert not indexed_repo.has_predicate(NAME)

    def test_has_object_by_index(self, indexed_repo):
        indexed_repo.insert(EX + "alice", KNOWS, EX + "bob")
        assert indexed_repo.has_object(EX + "bob")
        assert not indexed_repo.has_object(EX + "carol")


class TestLegacyRows:
    """Tests for rows holding a single bare value per predicate."""

    @pytest.fixture
    def legacy(self, repo):
        repo.client.insert("RDF", EX + "dave", {NAME: '"Dave"'})
        return repo

    def test_single_value_is_read(self, legacy):
        assert list(legacy.query(subject=EX + "dave")) == [Triple.of(EX + "dave", NAME, "Dave")]

    def test_single_value_can_be_deleted(self, legacy):
        assert legacy.delete(EX + "dave", NAME, "Dave") is True
        assert legacy.is_empty()


class TestCorruptData:
    def test_bad_object_is_skipped(self, people):
        people.client.insert("RDF", EX + "alice", {NAME: {"deadbeef": "not a term <<"}})
        assert people.count() == 3
        assert people.codec.decode_errors == 1


class TestExport:
    """Tests for DataFrame export and statistics."""

    def test_to_dataframe(self, people):
        df = people.to_dataframe()
        assert isinstance(df, pl.DataFrame)
        assert df.columns == ["subject", "predicate", "object"]
        assert df.height == 3
        assert df.filter(pl.col("object") == "Bob")["subject"].to_list() == [EX + "bob"]

    def test_empty_dataframe_has_schema(self, repo):
        df = repo.to_dataframe()
        assert df.height == 0
        assert df.schema["subject"] == pl.Utf8

    def test_stats(self, people):
        stats = people.stats()
        assert stats["triples"] == 3
        assert stats["unique_subjects"] == 2
        assert stats["unique_predicates"] == 2
        assert stats["decode_errors"] == 0

    def test_repr(self, indexed_repo):
        assert "indexes=['op', 'os', 'ps']" in repr(indexed_repo)


class TestConfiguration:
    def test_invalid_config_rejected(self):
        with pytest.raises(ConfigValidationError):
            Repository(StoreConfig(slice_size=0))

    def test_small_pages(self):
        repo = Repository(StoreConfig(slice_size=2))
        for i in range(7):
            repo.insert(f"{EX}s{i}", NAME, f"N{i}")
        assert repo.count() == 7
        assert len(list(repo.each_subject())) == 7


class TestPredicateIndexConsistency:
    """Predicate existence tracks the live triples using it."""

    @pytest.fixture
    def repo(self):
        repo = Repository(StoreConfig(indexes={"ps"}))
        repo.insert(EX + "s1", NAME, "o1")
        repo.insert(EX + "s2", NAME, "o2")
        return repo

    def test_inserted_predicate_exists(self, repo):
        assert repo.has_predicate(NAME)

    def test_delete_one_keeps_predicate(self, repo):
        repo.delete(EX + "s1", NAME, "o1")
        assert repo.has_predicate(NAME)

    def test_delete_both_removes_predicate(self, repo):
        repo.delete(EX + "s1", NAME, "o1")
        repo.delete(EX + "s2", NAME, "o2")
        assert not repo.has_predicate(NAME)
        assert repo.index.stats().memberships_removed == 2


class TestWideSubjects:
    """Subjects with more predicates than one default column page."""

    WIDTH = 1001

    @pytest.fixture
    def wide(self):
        repo = Repository(StoreConfig(indexes={"ps"}))
        repo.insert_statements((EX + "s", f"{EX}p{i:05d}", "v") for i in range(self.WIDTH))
        return repo

    def test_count(self, wide):
        assert wide.count() == self.WIDTH
        assert len(list(wide.each_predicate())) == self.WIDTH
        assert wide.to_dataframe().height == self.WIDTH

    def test_delete_keeps_membership_justified_past_first_page(self, wide):
        last = f"{EX}p{self.WIDTH - 1:05d}"
        wide.insert(EX + "s", last, "w")
        wide.delete(EX + "s", last, "w")
        assert wide.has_statement((EX + "s", last, "v"))
        assert wide.has_predicate(last)
        assert wide.index.stats().memberships_retained == 1


class TestLiteralInputs:
    """Literal values in positions that only resources can hold."""

    def test_has_subject_literal(self, people):
        assert not people.has_subject("Alice")
        assert list(people.query(subject="Alice")) == []

    def test_has_statement_with_literal_subject(self, people):
        assert not people.has_statement(("Alice", NAME, "Alice"))
        assert ("Alice", NAME, "Alice") not in people

    def test_prose_with_url_is_a_literal(self, repo):
        text = "see https://example.org for info"
        repo.insert(EX + "alice", NAME, text)
        assert repo.has_object(text)
        assert [t.object for t in repo.query(subject=EX + "alice")] == [Term.literal(text)]


class TestFromConfig:
    """Tests for connecting to the servers named in a configuration."""

    @pytest.fixture
    def cluster_cls(self):
        with patch("rdf_columnbase.storage.cassandra.Cluster") as cluster_cls:
            cluster_cls.return_value.connect.return_value.execute.return_value = []
            yield cluster_cls

    def test_connects_to_configured_servers(self, cluster_cls):
        config = StoreConfig(servers=["db1:9160", "db2:9160"], keyspace="Library")
        repo = Repository.from_config(config)
        assert isinstance(repo.client.backend, CassandraBackend)
        assert repo.client.backend.keyspace == "Library"
        cluster_cls.assert_called_once_with(contact_points=["db1", "db2"], port=9160)

    def test_creates_primary_and_index_tables(self, cluster_cls):
        config = StoreConfig(keyspace="Library", indexes={"ps", "os"})
        Repository.from_config(config)
        session = cluster_cls.return_value.connect.return_value
        queries = [c.args[0].query_string for c in session.execute.call_args_list]
        assert queries[0].startswith("CREATE KEYSPACE IF NOT EXISTS Library")
        tables = [q for q in queries if q.startswith("CREATE TABLE")]
        assert len(tables) == 3
        assert any("Library.RDF_predicates" in q for q in tables)
        assert any("Library.RDF_objects" in q for q in tables)

    def test_skip_setup(self, cluster_cls):
        Repository.from_config(StoreConfig(), setup=False)
        cluster_cls.return_value.connect.return_value.execute.assert_not_called()

    def test_from_config_file(self, cluster_cls, tmp_path):
        path = tmp_path / "store.yaml"
        path.write_text("servers: db9:9042\nkeyspace: Files\n")
        repo = Repository.from_config(path, setup=False)
        assert repo.config.keyspace == "Files"
        cluster_cls.assert_called_once_with(contact_points=["db9"], port=9042)

    def test_close_shuts_down_cluster(self, cluster_cls):
        with Repository.from_config(StoreConfig(), setup=False):
            pass
        cluster_cls.return_value.shutdown.assert_called_once()

    def test_memory_repository_close_is_noop(self, repo):
        repo.close()
