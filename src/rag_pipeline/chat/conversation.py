"""Multi-turn conversations backed by the transcript store."""

from __future__ import annotations

import logging
import uuid

from rag_pipeline.chat.client import ChatClient
from rag_pipeline.chat.transcript import Conversation, SqliteTranscriptStore, TranscriptMessage
from rag_pipeline.errors import ConversationNotFound
from rag_pipeline.types import ChatMessage

logger = logging.getLogger(__name__)


class ConversationService:
    def __init__(self, store: SqliteTranscriptStore, chat_client: ChatClient) -> None:
        self.store = store
        self.chat_client = chat_client

    def start(self, user_id: str, *, conversation_id: str | None = None) -> Conversation:
        conversation = Conversation(
            conversation_id=conversation_id or str(uuid.uuid4()), user_id=user_id
        )
        self.store.save_conversation(conversation)
        return conversation

    def history(self, conversation_id: str) -> list[TranscriptMessage]:
        self._require(conversation_id)
        return self.store.messages(conversation_id)

    def add_message(self, conversation_id: str, role: str, content: str) -> TranscriptMessage:
        conversation = self._require(conversation_id)
        message = TranscriptMessage(
            sequence=len(self.store.messages(conversation_id)) + 1,
            conversation_id=conversation_id,
            role=role,
            content=content,
        )
        self.store.append(message)
        conversation.updated_at = message.timestamp
        self.store.save_conversation(conversation)
        return message

    async def send(self, conversation_id: str, content: str) -> TranscriptMessage:
        """Ask with a new user message; both turns are stored only on success.

        A failed chat call leaves the transcript untouched, so resending the
        same content never duplicates the user turn.
        """

        history = self.history(conversation_id)
        completion = await self.chat_client.complete(
            [ChatMessage(role=m.role, content=m.content) for m in history]
            + [ChatMessage(role="user", content=content)]
        )
        self.add_message(conversation_id, "user", content)
        return self.add_message(conversation_id, "assistant", completion.text)

    async def reply(self, conversation_id: str) -> TranscriptMessage:
        """Send the whole transcript to the chat service and record the answer.

        The transcript is only extended after the chat call succeeds, so a
        failed reply can simply be retried.
        """

        history = self.history(conversation_id)
        completion = await self.chat_client.complete(
            [ChatMessage(role=m.role, content=m.content) for m in history]
        )
        logger.info(
            "Conversation %s: replied after %d messages", conversation_id, len(history)
        )
        return self.add_message(conversation_id, "assistant", completion.text)

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self.store.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)
        return conversation

