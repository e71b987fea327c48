"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class Document:
    """A source document after chunking."""

    document_id: str
    name: str
    chunks: tuple[str, ...]


@dataclass(slots=True)
class EmbeddingResponse:
    """Raw answer of the embedding service for one input text."""

    values: list[float]
    prompt_tokens: int
    total_tokens: int


@dataclass(slots=True)
class EmbeddingVector:
    """An embedding tied to the position of its source chunk in a batch."""

    index: int
    values: list[float]

    @property
    def dimension(self) -> int:
        return len(self.values)


@dataclass(slots=True)
class UsageRecord:
    index: int
    prompt_tokens: int
    total_tokens: int


@dataclass(slots=True)
class UsageReport:
    """Token usage of one batch, one record per chunk in batch order."""

    records: list[UsageRecord] = field(default_factory=list)

    @property
    def prompt_tokens(self) -> int:
        return sum(record.prompt_tokens for record in self.records)

    @property
    def total_tokens(self) -> int:
        return sum(record.total_tokens for record in self.records)


@dataclass(slots=True)
class EmbeddingBatch:
    """A complete, successful batch of embeddings."""

    vectors: list[EmbeddingVector]
    usage: UsageReport


@dataclass(slots=True)
class PointMetadata:
    """Payload stored alongside every vector."""

    document_id: str
    raw_text: str
    token_count: int
    batch_id: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "raw_text": self.raw_text,
            "token_count": self.token_count,
            "batch_id": self.batch_id,
        }


@dataclass(slots=True)
class ScoredPoint:
    """A similarity search hit."""

    point_id: str
    score: float
    payload: dict[str, Any]
    rank: int = 0


@dataclass(slots=True)
class UpsertAck:
    collection: str
    point_ids: list[str]


@dataclass(slots=True)
class ChatMessage:
    role: str
    content: str


@dataclass(slots=True)
class ChatCompletion:
    """All choices returned for one chat request."""

    choices: list[str]
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def text(self) -> str:
        return "".join(self.choices)


@dataclass(slots=True)
class IngestResult:
    document_id: str
    name: str
    batch_id: str
    chunk_count: int
    usage: UsageReport


@dataclass(slots=True)
class RetrievedContext:
    """Context block assembled from ranked hits."""

    text: str
    fragments: list[str]
    hits: list[ScoredPoint]


@dataclass(slots=True)
class Answer:
    text: str
    context: str
    context_found: bool
    hits: list[ScoredPoint] = field(default_factory=list)
