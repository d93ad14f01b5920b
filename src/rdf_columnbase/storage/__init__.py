"""
RDF-ColumnBase Storage Layer.

Wide-column store structures, RDF terms, store backends, the store
client and key slice pagination. The triple-level components (codec,
query engine, index maintainer, batch builder, configuration) live in
their own modules and are imported from there.
"""

from rdf_columnbase.storage.structures import (
    Column,
    SuperColumn,
    ColumnOrSuperColumn,
    ColumnPath,
    ColumnParent,
    SlicePredicate,
    SliceRange,
    KeyRange,
    KeySlice,
    Mutation,
    Deletion,
    MutationMap,
    ConsistencyLevel,
)
from rdf_columnbase.storage.terms import (
    Term,
    TermKind,
    TermParseError,
    content_hash,
)
from rdf_columnbase.storage.backends import (
    StoreBackend,
    MemoryBackend,
    StoreError,
    NotFoundError,
    StoreUnavailableError,
    StoreTimeoutError,
    StoreProtocolError,
)
from rdf_columnbase.storage.client import StoreClient
from rdf_columnbase.storage.pagination import KeySlicePaginator

__all__ = [
    # Structures
    "Column",
    "SuperColumn",
    "ColumnOrSuperColumn",
    "ColumnPath",
    "ColumnParent",
    "SlicePredicate",
    "SliceRange",
    "KeyRange",
    "KeySlice",
    "Mutation",
    "Deletion",
    "MutationMap",
    "ConsistencyLevel",
    # Terms
    "Term",
    "TermKind",
    "TermParseError",
    "content_hash",
    # Backends
    "StoreBackend",
    "MemoryBackend",
    "StoreError",
    "NotFoundError",
    "StoreUnavailableError",
    "StoreTimeoutError",
    "StoreProtocolError",
    # Client
    "StoreClient",
    "KeySlicePaginator",
]
