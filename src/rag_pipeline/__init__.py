"""Document question answering over an embedding-backed vector store."""

from .config import ChatConfig, ChunkingConfig, EmbeddingConfig, RetrievalConfig, Settings

__all__ = ["ChatConfig", "ChunkingConfig", "EmbeddingConfig", "RetrievalConfig", "Settings"]
