"""Question answering over indexed documents."""

from __future__ import annotations

import logging

from rag_pipeline.chat.composer import ContextualChatComposer
from rag_pipeline.ingest.orchestrator import EmbeddingOrchestrator
from rag_pipeline.obs.tracing import Timer
from rag_pipeline.retrieval.retriever import RetrievalAssembler
from rag_pipeline.types import Answer

logger = logging.getLogger(__name__)


class QuestionAnswerer:
    """Embeds a question, assembles scoped context and asks the chat service.

    An empty retrieval is a successful call with `context_found=False`; the
    chat request is still sent so the model can state that the material has
    no answer. Embedding, store and chat errors propagate unchanged. Since
    ingestion is independent, a failed chat step can be retried on its own.
    """

    def __init__(
        self,
        orchestrator: EmbeddingOrchestrator,
        assembler: RetrievalAssembler,
        composer: ContextualChatComposer,
    ) -> None:
        self.orchestrator = orchestrator
        self.assembler = assembler
        self.composer = composer

    async def ask(self, question: str, *, document_id: str | None = None) -> Answer:
        with Timer() as timer:
            query_vector = await self.orchestrator.embed_one(question)
            context = await self.assembler.assemble(query_vector.values, document_id)
            text = await self.composer.compose_and_ask(question, context.text)

        logger.info(
            "Answered question scoped to %s in %.1f ms (context_found=%s)",
            document_id or "all documents",
            timer.elapsed_ms,
            bool(context.text),
        )
        return Answer(
            text=text,
            context=context.text,
            context_found=bool(context.text),
            hits=context.hits,
        )
