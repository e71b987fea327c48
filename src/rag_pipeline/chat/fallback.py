"""Deterministic fallback chat client when no external LLM is configured."""

from __future__ import annotations

from rag_pipeline.chat.client import ChatClient
from rag_pipeline.chat.composer import CONTEXT_HEADER, NO_CONTEXT_NOTICE, QUESTION_HEADER
from rag_pipeline.obs.tracing import estimate_token_count
from rag_pipeline.types import ChatCompletion, ChatMessage

CANNOT_ANSWER = "I cannot answer this from the provided material."


class ExtractiveChatClient(ChatClient):
    """Answers by quoting the reference content of the last user message.

    Keeps the `ChatClient` contract for local/offline environments where
    `OPENAI_API_KEY` is not configured. Messages without reference content
    get a fixed refusal.
    """

    def __init__(self, max_lines: int = 3) -> None:
        self.max_lines = max_lines

    async def complete(self, messages: list[ChatMessage]) -> ChatCompletion:
        prompt = next(
            (message.content for message in reversed(messages) if message.role == "user"),
            "",
        )
        answer = _build_answer(_reference_lines(prompt)[: self.max_lines])
        return ChatCompletion(
            choices=[answer],
            prompt_tokens=sum(estimate_token_count(m.content) for m in messages),
            completion_tokens=estimate_token_count(answer),
        )


def _reference_lines(prompt: str) -> list[str]:
    _, found, rest = prompt.partition(CONTEXT_HEADER)
    if not found:
        return []
    reference, _, _ = rest.rpartition(QUESTION_HEADER)
    if reference.strip() == NO_CONTEXT_NOTICE:
        return []
    return [line.strip() for line in reference.splitlines() if line.strip()]


def _build_answer(lines: list[str]) -> str:
    if not lines:
        return CANNOT_ANSWER
    return "\n".join(f"{idx}. {line}" for idx, line in enumerate(lines, start=1))
