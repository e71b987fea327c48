"""Chat-completion clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import openai
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from rag_pipeline.config import ChatConfig
from rag_pipeline.errors import ChatRequestError, TransportError
from rag_pipeline.types import ChatCompletion, ChatMessage


class ChatClient(ABC):
    """Sends one conversation and returns every completion choice."""

    @abstractmethod
    async def complete(self, messages: list[ChatMessage]) -> ChatCompletion:
        """Run one chat-completion request."""


class LangChainChatClient(ChatClient):
    """`ChatOpenAI`-backed client.

    OpenAI SDK errors are translated at this seam: connection problems and
    timeouts become `TransportError`, error responses become
    `ChatRequestError`. Nothing is retried here.
    """

    def __init__(self, llm: Any) -> None:
        self.llm = llm

    @classmethod
    def from_config(
        cls,
        config: ChatConfig,
        *,
        api_key: str,
        base_url: str | None = None,
        timeout_seconds: float = 60.0,
    ) -> "LangChainChatClient":
        from langchain_openai import ChatOpenAI

        return cls(
            ChatOpenAI(
                model=config.model,
                temperature=config.temperature,
                n=config.choices,
                api_key=api_key,
                base_url=base_url,
                timeout=timeout_seconds,
                max_retries=0,
            )
        )

    async def complete(self, messages: list[ChatMessage]) -> ChatCompletion:
        try:
            result = await self.llm.agenerate([[_to_langchain(m) for m in messages]])
        except openai.APIConnectionError as exc:
            raise TransportError(f"Chat request failed to reach service: {exc}") from exc
        except openai.APIStatusError as exc:
            body = exc.body if isinstance(exc.body, dict) else {}
            raise ChatRequestError(
                str(exc.message),
                status_code=exc.status_code,
                error_type=body.get("type"),
            ) from exc

        generations = result.generations[0] if result.generations else []
        usage = (result.llm_output or {}).get("token_usage") or {}
        return ChatCompletion(
            choices=[generation.text for generation in generations],
            prompt_tokens=int(usage.get("prompt_tokens", 0)),
            completion_tokens=int(usage.get("completion_tokens", 0)),
        )


def _to_langchain(message: ChatMessage) -> BaseMessage:
    if message.role == "system":
        return SystemMessage(content=message.content)
    if message.role == "assistant":
        return AIMessage(content=message.content)
    return HumanMessage(content=message.content)
