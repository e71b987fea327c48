"""Exception hierarchy for the ingestion and retrieval pipeline.

Every error carries a human-readable message plus a `details` mapping with
the structured context callers need to decide on retry policy.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class RagPipelineError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class EncodingError(RagPipelineError):
    """Raised when document bytes cannot be decoded losslessly."""

    def __init__(self, message: str, encodings: Sequence[str]) -> None:
        super().__init__(message, {"encodings": list(encodings)})
        self.encodings = list(encodings)


class TransportError(RagPipelineError):
    """Raised on network failures and timeouts talking to an upstream service."""


class ServiceError(RagPipelineError):
    """Raised when an upstream service answers with an error response."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_type: str | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        if error_type:
            details["error_type"] = error_type
        super().__init__(message, details)
        self.status_code = status_code
        self.error_type = error_type


class EmbeddingServiceError(ServiceError):
    """The embedding API rejected a request."""


class ChatRequestError(ServiceError):
    """The chat-completion API rejected a request."""


class EmbeddingRequestFailed(RagPipelineError):
    """A single embedding request inside a batch failed."""

    def __init__(self, index: int, cause: BaseException) -> None:
        super().__init__(
            f"Embedding request for item {index} failed: {cause}",
            {"index": index, "cause": type(cause).__name__},
        )
        self.index = index
        self.cause = cause


class BatchIncomplete(RagPipelineError):
    """One or more items of an embedding batch failed; nothing was stored."""

    def __init__(self, failures: Sequence[EmbeddingRequestFailed], total: int) -> None:
        self.failures = sorted(failures, key=lambda failure: failure.index)
        self.total = total
        super().__init__(
            f"Embedding batch incomplete: {len(self.failures)} of {total} items failed",
            {"failed_indices": self.failed_indices, "total": total},
        )

    @property
    def failed_indices(self) -> list[int]:
        return [failure.index for failure in self.failures]


class StoreError(RagPipelineError):
    """The vector store rejected an operation."""

    def __init__(self, message: str, *, operation: str, collection: str) -> None:
        super().__init__(message, {"operation": operation, "collection": collection})
        self.operation = operation
        self.collection = collection


class ConversationNotFound(RagPipelineError):
    """No transcript exists for the requested conversation id."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id
