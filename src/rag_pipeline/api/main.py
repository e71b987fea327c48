"""FastAPI entrypoint for ingest/query/conversation endpoints."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from rag_pipeline.chat.client import ChatClient, LangChainChatClient
from rag_pipeline.chat.composer import ContextualChatComposer
from rag_pipeline.chat.conversation import ConversationService
from rag_pipeline.chat.fallback import ExtractiveChatClient
from rag_pipeline.chat.qa import QuestionAnswerer
from rag_pipeline.chat.transcript import SqliteTranscriptStore
from rag_pipeline.config import ChunkingConfig, Settings
from rag_pipeline.errors import (
    BatchIncomplete,
    ConversationNotFound,
    EmbeddingRequestFailed,
    EncodingError,
    RagPipelineError,
    ServiceError,
    StoreError,
    TransportError,
)
from rag_pipeline.ingest.embedder import EmbeddingClient, HashingEmbeddingClient, OpenAIEmbeddingClient
from rag_pipeline.ingest.orchestrator import EmbeddingOrchestrator
from rag_pipeline.ingest.parser import ParserRegistry
from rag_pipeline.ingest.pipeline import IngestPipeline
from rag_pipeline.obs.logger import configure_logging
from rag_pipeline.retrieval.retriever import RetrievalAssembler
from rag_pipeline.retrieval.vector_store import FaissVectorStore, InMemoryVectorStore, VectorStore

logger = logging.getLogger(__name__)


class IngestRequest(BaseModel):
    path: str = Field(min_length=1)
    doc_id: str | None = None


class QueryRequest(BaseModel):
    question: str = Field(min_length=1)
    document_id: str | None = None


class SourceSearchRequest(BaseModel):
    query: str = Field(min_length=1)
    top_k: int = Field(default=5, ge=1, le=20)
    document_id: str | None = None


class ConversationRequest(BaseModel):
    user_id: str = Field(min_length=1)


class MessageRequest(BaseModel):
    content: str = Field(min_length=1)


@dataclass(slots=True)
class Services:
    settings: Settings
    llm_configured: bool
    ingest: IngestPipeline
    orchestrator: EmbeddingOrchestrator
    assembler: RetrievalAssembler
    answerer: QuestionAnswerer
    conversations: ConversationService


def build_services(
    settings: Settings,
    *,
    embedding_client: EmbeddingClient | None = None,
    chat_client: ChatClient | None = None,
    vector_store: VectorStore | None = None,
    chunking: ChunkingConfig | None = None,
) -> Services:
    """Wire every component from settings; explicit clients take precedence."""

    api_key = settings.openai_api_key
    if embedding_client is None:
        embedding_client = (
            OpenAIEmbeddingClient(
                api_key=api_key,
                model=settings.embedding_model,
                base_url=settings.openai_base_url,
                timeout_seconds=settings.request_timeout_seconds,
            )
            if api_key
            else HashingEmbeddingClient(dimension=settings.embedding_dimension)
        )
    if chat_client is None:
        chat_client = (
            LangChainChatClient.from_config(
                settings.chat_config(),
                api_key=api_key,
                base_url=settings.openai_base_url,
                timeout_seconds=settings.request_timeout_seconds,
            )
            if api_key
            else ExtractiveChatClient()
        )
    if vector_store is None:
        vector_store = FaissVectorStore() if settings.vector_store == "faiss" else InMemoryVectorStore()

    retrieval_config = settings.retrieval_config()
    orchestrator = EmbeddingOrchestrator(embedding_client, settings.embedding_config())
    assembler = RetrievalAssembler(vector_store, retrieval_config)
    return Services(
        settings=settings,
        llm_configured=bool(api_key),
        ingest=IngestPipeline(
            ParserRegistry(config=chunking),
            orchestrator,
            vector_store,
            collection=retrieval_config.collection,
        ),
        orchestrator=orchestrator,
        assembler=assembler,
        answerer=QuestionAnswerer(orchestrator, assembler, ContextualChatComposer(chat_client)),
        conversations=ConversationService(
            SqliteTranscriptStore(settings.transcript_db_path), chat_client
        ),
    )


def create_app(services: Services | None = None) -> FastAPI:
    if services is None:
        settings = Settings()
        configure_logging(settings.log_level)
        services = build_services(settings)

    app = FastAPI(title="Document QA", version="0.1.0")

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "llm_configured": services.llm_configured,
            "vector_store": services.settings.vector_store,
            "collection": services.ingest.collection,
        }

    @app.post("/ingest")
    async def ingest(request: IngestRequest) -> dict[str, Any]:
        try:
            result = await services.ingest.ingest_path(request.path, doc_id=request.doc_id)
        except (OSError, RagPipelineError, ValueError) as exc:
            raise _to_http_exception(exc) from exc
        return {
            "document_id": result.document_id,
            "name": result.name,
            "batch_id": result.batch_id,
            "chunks_created": result.chunk_count,
            "prompt_tokens": result.usage.prompt_tokens,
            "total_tokens": result.usage.total_tokens,
        }

    @app.post("/query")
    async def query(request: QueryRequest) -> dict[str, Any]:
        try:
            answer = await services.answerer.ask(request.question, document_id=request.document_id)
        except RagPipelineError as exc:
            raise _to_http_exception(exc) from exc
        return {
            "answer": answer.text,
            "context": answer.context,
            "context_found": answer.context_found,
            "hits": [asdict(hit) for hit in answer.hits],
        }

    @app.post("/sources/search")
    async def source_search(request: SourceSearchRequest) -> dict[str, Any]:
        try:
            query_vector = await services.orchestrator.embed_one(request.query)
            hits = await services.assembler.retrieve(
                query_vector.values, request.document_id, top_k=request.top_k
            )
        except RagPipelineError as exc:
            raise _to_http_exception(exc) from exc
        return {"items": [asdict(hit) for hit in hits]}

    @app.delete("/documents/{document_id}")
    async def delete_document(document_id: str) -> dict[str, Any]:
        try:
            removed = await services.ingest.delete_document(document_id)
        except RagPipelineError as exc:
            raise _to_http_exception(exc) from exc
        return {"document_id": document_id, "deleted": removed}

    @app.post("/conversations")
    async def start_conversation(request: ConversationRequest) -> dict[str, Any]:
        return services.conversations.start(request.user_id).model_dump()

    @app.post("/conversations/{conversation_id}/messages")
    async def send_message(conversation_id: str, request: MessageRequest) -> dict[str, Any]:
        try:
            reply = await services.conversations.send(conversation_id, request.content)
        except RagPipelineError as exc:
            raise _to_http_exception(exc) from exc
        return reply.model_dump()

    @app.get("/conversations/{conversation_id}/messages")
    async def list_messages(conversation_id: str) -> dict[str, Any]:
        try:
            messages = services.conversations.history(conversation_id)
        except RagPipelineError as exc:
            raise _to_http_exception(exc) from exc
        return {"items": [message.model_dump() for message in messages]}

    return app


def _to_http_exception(exc: Exception) -> HTTPException:
    if isinstance(exc, ConversationNotFound):
        status_code = 404
    elif isinstance(exc, FileNotFoundError):
        status_code = 404
    elif isinstance(exc, (EncodingError, ValueError, OSError)):
        status_code = 400
    elif isinstance(exc, TransportError):
        status_code = 504
    elif isinstance(exc, EmbeddingRequestFailed):
        status_code = 504 if isinstance(exc.cause, TransportError) else 502
    elif isinstance(exc, (BatchIncomplete, StoreError, ServiceError)):
        status_code = 502
    else:
        status_code = 500
    logger.warning("Request failed with %d: %s", status_code, exc)
    return HTTPException(status_code=status_code, detail=str(exc))


app = create_app()
