"""Prompt composition around retrieved context."""

from __future__ import annotations

import logging

from langchain_core.prompts import PromptTemplate

from rag_pipeline.chat.client import ChatClient
from rag_pipeline.types import ChatMessage

logger = logging.getLogger(__name__)

CONTEXT_HEADER = "Reference content:"
QUESTION_HEADER = "Question:"
NO_CONTEXT_NOTICE = (
    "(No reference content was found for this question, "
    "so there is no basis for an answer.)"
)

_PROMPT = PromptTemplate.from_template(
    "You are a careful reading assistant. Answer strictly from the reference "
    "content below and do not rely on outside knowledge. If the question cannot "
    "be answered from that content, say so plainly.\n"
    "\n"
    f"{CONTEXT_HEADER}\n"
    "{context}\n"
    "\n"
    f"{QUESTION_HEADER} "
    "{question}"
)


class ContextualChatComposer:
    """Builds a single grounded user message and asks the chat service."""

    def __init__(self, chat_client: ChatClient) -> None:
        self.chat_client = chat_client

    def build_prompt(self, question: str, context: str) -> str:
        return _PROMPT.format(
            context=context if context.strip() else NO_CONTEXT_NOTICE,
            question=question,
        )

    async def compose_and_ask(self, question: str, context: str) -> str:
        """Return the concatenated text of every completion choice."""

        prompt = self.build_prompt(question, context)
        completion = await self.chat_client.complete([ChatMessage(role="user", content=prompt)])
        logger.info(
            "Chat answered with %d choices (%d prompt tokens)",
            len(completion.choices),
            completion.prompt_tokens,
        )
        return completion.text
