"""Embedding service clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt

import openai
from openai import AsyncOpenAI

from rag_pipeline.errors import EmbeddingServiceError, TransportError
from rag_pipeline.obs.tracing import estimate_token_count
from rag_pipeline.types import EmbeddingResponse


class EmbeddingClient(ABC):
    """One embedding request per call; batching is the orchestrator's job."""

    @abstractmethod
    async def embed(self, text: str) -> EmbeddingResponse:
        """Embed one text."""


class HashingEmbeddingClient(EmbeddingClient):
    """Deterministic sparse-like embedding without external model calls.

    Used by tests and by the API when no OpenAI key is configured. Identical
    text always yields an identical vector.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    async def embed(self, text: str) -> EmbeddingResponse:
        tokens = estimate_token_count(text)
        return EmbeddingResponse(
            values=self._embed(text), prompt_tokens=tokens, total_tokens=tokens
        )

    def _embed(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class OpenAIEmbeddingClient(EmbeddingClient):
    """`POST /embeddings` through the official async SDK.

    SDK retries are disabled by default: the orchestrator reports failed items
    and the caller owns the retry policy.
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "text-embedding-ada-002",
        base_url: str | None = None,
        timeout_seconds: float = 60.0,
        max_retries: int = 0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.model = model
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
            max_retries=max_retries,
        )

    async def embed(self, text: str) -> EmbeddingResponse:
        try:
            response = await self._client.embeddings.create(model=self.model, input=text)
        except openai.APIConnectionError as exc:
            raise TransportError(f"Embedding request failed to reach service: {exc}") from exc
        except openai.APIStatusError as exc:
            raise EmbeddingServiceError(
                str(exc.message),
                status_code=exc.status_code,
                error_type=_error_type(exc.body),
            ) from exc

        if not response.data:
            raise EmbeddingServiceError("Embedding response contained no data")
        usage = response.usage
        return EmbeddingResponse(
            values=list(response.data[0].embedding),
            prompt_tokens=usage.prompt_tokens if usage else 0,
            total_tokens=usage.total_tokens if usage else 0,
        )


def _error_type(body: object) -> str | None:
    if isinstance(body, dict):
        value = body.get("type")
        return str(value) if value else None
    return None
