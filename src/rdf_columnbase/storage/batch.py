"""
Batched bulk insertion.

Triples are grouped into ``{row => {family => [writes]}}`` maps and sent
with one batch_mutate call per ``batch_size`` triples; any remainder is
sent when the input runs out. Every write gets its own timestamp when it
is built and conflicts are left to the store (last write wins).
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from rdf_columnbase.models import Triple
from rdf_columnbase.storage.client import StoreClient
from rdf_columnbase.storage.codec import TripleCodec
from rdf_columnbase.storage.index import IndexMaintainer
from rdf_columnbase.storage.structures import ConsistencyLevel, MutationMap, merge_mutations

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100


class BatchMutationBuilder:
    """
    Accumulates triple inserts and flushes them in bounded batches.

    Index writes for each triple ride in the same batch as the triple.

    Example:
        builder = BatchMutationBuilder(client, codec, "RDF", batch_size=100)
        builder.insert(triples)  # returns number of triples written
    """

    def __init__(
        self,
        client: StoreClient,
        codec: TripleCodec,
        column_family: str,
        index: Optional[IndexMaintainer] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.client = client
        self.codec = codec
        self.column_family = column_family
        self.index = index
        self.batch_size = batch_size
        # Triples per flush, in order
        self.batch_sizes: list[int] = []

    def _flush(self, mutations: MutationMap, pending: int, consistency: Optional[ConsistencyLevel]) -> None:
        self.client.batch_mutate(mutations, consistency)
        self.batch_sizes.append(pending)
        if self.index is not None:
            self.index.count_inserted(pending)
        logger.debug(f"Flushed batch of {pending} triples over {len(mutations)} rows")

    def insert(
        self,
        triples: Iterable[Triple],
        consistency: Optional[ConsistencyLevel] = None,
        batch_size: Optional[int] = None,
    ) -> int:
        """
        Write ``triples`` in batches.

        Returns:
            Total number of triples processed
        """
        limit = batch_size or self.batch_size
        mutations: MutationMap = {}
        pending = 0
        total = 0
        flushes = len(self.batch_sizes)

        for triple in triples:
            key = triple.subject.to_key()
            row = mutations.setdefault(key, {})
            row.setdefault(self.column_family, []).append(self.codec.insert_mutation(triple))
            if self.index is not None and self.index.enabled:
                merge_mutations(mutations, self.index.insert_mutations(triple))
            pending += 1
            total += 1

            if pending >= limit:
                self._flush(mutations, pending, consistency)
                mutations = {}
                pending = 0

        if pending:
            self._flush(mutations, pending, consistency)

        logger.info(f"Bulk inserted {total} triples in {len(self.batch_sizes) - flushes} batches")
        return total
