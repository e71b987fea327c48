"""End-to-end ingest pipeline: parse -> chunk -> embed -> upsert."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path

from rag_pipeline.ingest.orchestrator import EmbeddingOrchestrator
from rag_pipeline.ingest.parser import ParserRegistry
from rag_pipeline.obs.tracing import Timer
from rag_pipeline.retrieval.filters import Filter
from rag_pipeline.retrieval.vector_store import VectorStore
from rag_pipeline.types import Document, IngestResult, PointMetadata, UsageReport

logger = logging.getLogger(__name__)


class IngestPipeline:
    """Coordinates parser/orchestrator/vector store stages.

    A document is either fully indexed or not indexed at all: decoding and
    chunking errors abort before any network call, a failed embedding batch
    aborts before the store is touched, and success is reported only after
    the store acknowledges the upsert.
    """

    def __init__(
        self,
        parser_registry: ParserRegistry,
        orchestrator: EmbeddingOrchestrator,
        vector_store: VectorStore,
        *,
        collection: str,
    ) -> None:
        self._parser_registry = parser_registry
        self._orchestrator = orchestrator
        self._vector_store = vector_store
        self.collection = collection

    async def ingest_path(self, path: str | Path, *, doc_id: str | None = None) -> IngestResult:
        """Ingest a single source file."""

        document = self._parser_registry.parse_path(path, doc_id=doc_id)
        return await self.ingest_document(document)

    async def ingest_bytes(
        self, raw: bytes, *, name: str, doc_id: str | None = None
    ) -> IngestResult:
        """Ingest raw bytes; `name` selects the parser by its extension."""

        document = self._parser_registry.parse_bytes(raw, name=name, doc_id=doc_id)
        return await self.ingest_document(document)

    async def ingest_document(self, document: Document) -> IngestResult:
        batch_id = str(uuid.uuid4())
        if not document.chunks:
            logger.info("Document %s produced no chunks; nothing to index", document.name)
            return IngestResult(
                document_id=document.document_id,
                name=document.name,
                batch_id=batch_id,
                chunk_count=0,
                usage=UsageReport(),
            )

        with Timer() as timer:
            batch = await self._orchestrator.embed_batch(document.chunks)
            points = [
                (
                    vector,
                    PointMetadata(
                        document_id=document.document_id,
                        raw_text=document.chunks[vector.index],
                        token_count=batch.usage.records[vector.index].prompt_tokens,
                        batch_id=batch_id,
                    ),
                )
                for vector in batch.vectors
            ]
            await self._vector_store.create_collection(
                self.collection, batch.vectors[0].dimension
            )
            ack = await self._vector_store.upsert(self.collection, points)

        logger.info(
            "Indexed %s (%s): %d points in %s, %d tokens, %.1f ms",
            document.name,
            document.document_id,
            len(ack.point_ids),
            self.collection,
            batch.usage.total_tokens,
            timer.elapsed_ms,
        )
        return IngestResult(
            document_id=document.document_id,
            name=document.name,
            batch_id=batch_id,
            chunk_count=len(points),
            usage=batch.usage,
        )

    async def delete_document(self, document_id: str) -> int:
        """Remove every point stored for `document_id`."""

        removed = await self._vector_store.delete(
            self.collection, Filter.for_document(document_id)
        )
        logger.info("Deleted %d points of document %s", removed, document_id)
        return removed
