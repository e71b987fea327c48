import pytest

from rag_pipeline.chat.composer import NO_CONTEXT_NOTICE, ContextualChatComposer
from rag_pipeline.chat.qa import QuestionAnswerer
from rag_pipeline.config import ChunkingConfig, EmbeddingConfig, RetrievalConfig
from rag_pipeline.errors import BatchIncomplete, EmbeddingServiceError
from rag_pipeline.ingest.embedder import HashingEmbeddingClient
from rag_pipeline.ingest.orchestrator import EmbeddingOrchestrator
from rag_pipeline.ingest.parser import ParserRegistry
from rag_pipeline.ingest.pipeline import IngestPipeline
from rag_pipeline.retrieval.retriever import RetrievalAssembler
from rag_pipeline.retrieval.vector_store import InMemoryVectorStore
from rag_pipeline.types import ChatCompletion, ChatMessage, EmbeddingResponse

DIMENSION = 64

POLICY = (
    "Customer records must be encrypted at rest.\n"
    "Encryption keys rotate every ninety days.\n"
    "Backups are stored in a separate region.\n"
)
HANDBOOK = (
    "Employees receive twenty days of paid leave.\n"
    "Leave requests go to the line manager.\n"
)


class RecordingChatClient:
    def __init__(self) -> None:
        self.prompts: list[str] = []

    async def complete(self, messages: list[ChatMessage]) -> ChatCompletion:
        self.prompts.append(messages[-1].content)
        return ChatCompletion(choices=["recorded"])


class FlakyEmbeddingClient(HashingEmbeddingClient):
    async def embed(self, text: str) -> EmbeddingResponse:
        if "Backups" in text:
            raise EmbeddingServiceError("upstream rejected input", status_code=400)
        return await super().embed(text)


def _build(embedding_client=None):
    store = InMemoryVectorStore()
    orchestrator = EmbeddingOrchestrator(
        embedding_client or HashingEmbeddingClient(dimension=DIMENSION),
        EmbeddingConfig(dimension=DIMENSION, pacing_seconds=0.0),
    )
    registry = ParserRegistry(config=ChunkingConfig(text_budget=40))
    pipeline = IngestPipeline(registry, orchestrator, store, collection="docs")
    chat = RecordingChatClient()
    answerer = QuestionAnswerer(
        orchestrator,
        RetrievalAssembler(store, RetrievalConfig(collection="docs", top_k=3)),
        ContextualChatComposer(chat),
    )
    return store, pipeline, answerer, chat


@pytest.mark.asyncio
async def test_ingest_stores_raw_chunk_text_with_metadata() -> None:
    store, pipeline, _, _ = _build()

    result = await pipeline.ingest_bytes(POLICY.encode("utf-8"), name="policy.txt", doc_id="doc-A")
    points = await store.scroll("docs")

    assert result.chunk_count == 3
    assert sorted(point.payload["raw_text"] for point in points) == sorted(POLICY.splitlines(keepends=True))
    assert {point.payload["document_id"] for point in points} == {"doc-A"}
    assert {point.payload["batch_id"] for point in points} == {result.batch_id}
    assert all(point.payload["token_count"] > 0 for point in points)
    assert result.usage.prompt_tokens == sum(point.payload["token_count"] for point in points)


@pytest.mark.asyncio
async def test_failed_batch_stores_nothing() -> None:
    store, pipeline, _, _ = _build(FlakyEmbeddingClient(dimension=DIMENSION))
    await store.create_collection("docs", DIMENSION)

    with pytest.raises(BatchIncomplete) as excinfo:
        await pipeline.ingest_bytes(POLICY.encode("utf-8"), name="policy.txt", doc_id="doc-A")

    assert excinfo.value.failed_indices == [2]
    assert await store.scroll("docs") == []


@pytest.mark.asyncio
async def test_document_without_content_makes_no_calls() -> None:
    store, pipeline, _, _ = _build()

    result = await pipeline.ingest_bytes(b"\n \n", name="empty.txt")

    assert result.chunk_count == 0
    assert result.usage.total_tokens == 0


@pytest.mark.asyncio
async def test_scoped_question_only_sees_its_document() -> None:
    _, pipeline, answerer, chat = _build()
    await pipeline.ingest_bytes(POLICY.encode("utf-8"), name="policy.txt", doc_id="doc-A")
    await pipeline.ingest_bytes(HANDBOOK.encode("utf-8"), name="handbook.txt", doc_id="doc-B")

    answer = await answerer.ask("How many days of paid leave?", document_id="doc-A")

    assert answer.context_found
    assert answer.text == "recorded"
    assert all(hit.payload["document_id"] == "doc-A" for hit in answer.hits)
    assert "paid leave" not in answer.context
    assert answer.context in chat.prompts[0]


@pytest.mark.asyncio
async def test_empty_store_still_asks_with_no_basis_notice() -> None:
    store, _, answerer, chat = _build()
    await store.create_collection("docs", DIMENSION)

    answer = await answerer.ask("What is the retention period?")

    assert not answer.context_found
    assert answer.context == ""
    assert len(chat.prompts) == 1
    assert NO_CONTEXT_NOTICE in chat.prompts[0]


@pytest.mark.asyncio
async def test_deleted_document_is_no_longer_retrieved() -> None:
    store, pipeline, answerer, _ = _build()
    await pipeline.ingest_bytes(POLICY.encode("utf-8"), name="policy.txt", doc_id="doc-A")

    assert await pipeline.delete_document("doc-A") == 3
    answer = await answerer.ask("encryption", document_id="doc-A")

    assert not answer.context_found
    assert await store.scroll("docs") == []
