"""Configuration models for the document QA pipeline."""

from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChunkingConfig(BaseModel):
    """Configures how raw sources are decoded and cut into chunks."""

    text_budget: int = Field(default=700, ge=1)
    text_budget_unit: Literal["bytes", "chars"] = "bytes"
    lines_per_chunk: int = Field(default=10, ge=1)
    line_separator: str = "\r\n"
    source_encoding: str | None = None
    fallback_encodings: list[str] = Field(default_factory=lambda: ["gb18030"])


class EmbeddingConfig(BaseModel):
    """Configures request fan-out toward the embedding service."""

    model: str = "text-embedding-ada-002"
    dimension: int | None = Field(default=1536, ge=1)
    max_concurrency: int = Field(default=8, ge=1)
    pacing_seconds: float = Field(default=0.1, ge=0.0)
    fail_fast: bool = True


class RetrievalConfig(BaseModel):
    """Configures vector search and context assembly."""

    collection: str = "gpt_embeddings"
    top_k: int = Field(default=5, ge=1)
    separator: str = "\n"
    deduplicate: bool = True
    max_context_chars: int | None = Field(default=6000, ge=1)


class ChatConfig(BaseModel):
    """Configures the chat-completion request."""

    model: str = "gpt-3.5-turbo"
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    choices: int = Field(default=1, ge=1)


class Settings(BaseSettings):
    """Process-level settings read from the environment and `.env`."""

    model_config = SettingsConfigDict(
        env_prefix="RAG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_API_KEY", "RAG_OPENAI_API_KEY"),
    )
    openai_base_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_BASE_URL", "RAG_OPENAI_BASE_URL"),
    )
    embedding_model: str = "text-embedding-ada-002"
    embedding_dimension: int = Field(default=1536, ge=1)
    embedding_concurrency: int = Field(default=8, ge=1)
    embedding_pacing_seconds: float = Field(default=0.1, ge=0.0)
    chat_model: str = "gpt-3.5-turbo"
    collection: str = "gpt_embeddings"
    top_k: int = Field(default=5, ge=1)
    vector_store: Literal["memory", "faiss"] = "memory"
    transcript_db_path: str = "transcripts.db"
    request_timeout_seconds: float = Field(default=60.0, gt=0.0)
    log_level: str = "INFO"

    def embedding_config(self) -> EmbeddingConfig:
        return EmbeddingConfig(
            model=self.embedding_model,
            dimension=self.embedding_dimension,
            max_concurrency=self.embedding_concurrency,
            pacing_seconds=self.embedding_pacing_seconds,
        )

    def retrieval_config(self) -> RetrievalConfig:
        return RetrievalConfig(collection=self.collection, top_k=self.top_k)

    def chat_config(self) -> ChatConfig:
        return ChatConfig(model=self.chat_model)
