"""
RDF-ColumnBase: RDF triples on a distributed wide-column store.

Triples are stored one row per subject with content-addressed objects,
scanned through bounded range requests, and optionally mirrored into
predicate and object membership indexes.
"""

__version__ = "0.1.0"

from rdf_columnbase.models import Triple, TriplePattern
from rdf_columnbase.repository import Repository
from rdf_columnbase.storage.config import (
    StoreConfig,
    ConfigValidator,
    ConfigValidationError,
    load_config,
)
from rdf_columnbase.storage.index import IndexDirection
from rdf_columnbase.storage.terms import Term, TermKind

__all__ = [
    "Triple",
    "TriplePattern",
    "Repository",
    "StoreConfig",
    "ConfigValidator",
    "ConfigValidationError",
    "load_config",
    "IndexDirection",
    "Term",
    "TermKind",
    # Cassandra backend (requires a reachable cluster at runtime)
    "CassandraBackend",
]


# Lazy import so the driver is only loaded when the backend is used
def __getattr__(name):
    if name == "CassandraBackend":
        from rdf_columnbase.storage.cassandra import CassandraBackend
        return CassandraBackend
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
