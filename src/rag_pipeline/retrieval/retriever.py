"""Document-scoped retrieval and context assembly."""

from __future__ import annotations

import logging

from rag_pipeline.config import RetrievalConfig
from rag_pipeline.retrieval.filters import Filter
from rag_pipeline.retrieval.vector_store import VectorStore
from rag_pipeline.types import RetrievedContext, ScoredPoint

logger = logging.getLogger(__name__)


class RetrievalAssembler:
    """Turns a query embedding into the literal context block of a prompt.

    Context policy:
    1. Hits are used in the store's ranked order.
    2. `raw_text` is read from each payload; a missing or non-string value
       contributes nothing rather than failing the query.
    3. Empty fragments are skipped and, with `deduplicate`, exact repeats of
       an earlier fragment are dropped.
    4. Fragments are joined with `separator`. When `max_context_chars` is set,
       fragments are appended whole while they fit; a first fragment that is
       already too long is cut to the limit so the context is never empty
       while hits exist.
    """

    def __init__(self, vector_store: VectorStore, config: RetrievalConfig | None = None) -> None:
        self.vector_store = vector_store
        self.config = config or RetrievalConfig()

    async def retrieve(
        self,
        query_embedding: list[float],
        document_id: str | None = None,
        *,
        top_k: int | None = None,
    ) -> list[ScoredPoint]:
        metadata_filter = Filter.for_document(document_id) if document_id is not None else None
        hits = await self.vector_store.query(
            self.config.collection,
            query_embedding,
            metadata_filter,
            limit=top_k or self.config.top_k,
        )
        if document_id is None:
            return hits

        scoped = [hit for hit in hits if hit.payload.get("document_id") == document_id]
        if len(scoped) != len(hits):
            logger.warning(
                "Dropped %d hits outside document %s", len(hits) - len(scoped), document_id
            )
        return scoped

    async def assemble(
        self,
        query_embedding: list[float],
        document_id: str | None = None,
        *,
        top_k: int | None = None,
    ) -> RetrievedContext:
        hits = await self.retrieve(query_embedding, document_id, top_k=top_k)
        fragments = self._fit(self._select_fragments(hits))
        text = self.config.separator.join(fragments)
        logger.info(
            "Assembled context from %d hits (%d fragments, %d chars)",
            len(hits),
            len(fragments),
            len(text),
        )
        return RetrievedContext(text=text, fragments=fragments, hits=hits)

    async def assemble_context(
        self, query_embedding: list[float], document_id: str | None = None
    ) -> str:
        return (await self.assemble(query_embedding, document_id)).text

    def _select_fragments(self, hits: list[ScoredPoint]) -> list[str]:
        fragments: list[str] = []
        seen: set[str] = set()
        for hit in hits:
            fragment = _raw_text(hit)
            if not fragment:
                continue
            if self.config.deduplicate:
                if fragment in seen:
                    continue
                seen.add(fragment)
            fragments.append(fragment)
        return fragments

    def _fit(self, fragments: list[str]) -> list[str]:
        limit = self.config.max_context_chars
        separator = self.config.separator
        if limit is None:
            return fragments

        kept: list[str] = []
        length = 0
        for fragment in fragments:
            extra = len(fragment) + (len(separator) if kept else 0)
            if length + extra > limit:
                if not kept:
                    kept.append(fragment[:limit])
                break
            kept.append(fragment)
            length += extra
        return kept


def _raw_text(hit: ScoredPoint) -> str:
    value = hit.payload.get("raw_text")
    return value if isinstance(value, str) else ""
