from pathlib import Path

import pytest

from rag_pipeline.chat.conversation import ConversationService
from rag_pipeline.chat.transcript import Conversation, SqliteTranscriptStore, TranscriptMessage
from rag_pipeline.errors import ChatRequestError, ConversationNotFound
from rag_pipeline.types import ChatCompletion, ChatMessage


class EchoChatClient:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.requests: list[list[ChatMessage]] = []

    async def complete(self, messages: list[ChatMessage]) -> ChatCompletion:
        self.requests.append(list(messages))
        if self.error is not None:
            raise self.error
        return ChatCompletion(choices=[f"echo: {messages[-1].content}"])


def test_store_round_trips_conversations_and_messages(tmp_path: Path) -> None:
    store = SqliteTranscriptStore(tmp_path / "t.db")
    store.save_conversation(Conversation(conversation_id="c1", user_id="u1"))
    store.append(TranscriptMessage(sequence=1, conversation_id="c1", role="user", content="hi"))
    store.append(TranscriptMessage(sequence=2, conversation_id="c1", role="assistant", content="hello"))

    reopened = SqliteTranscriptStore(tmp_path / "t.db")

    assert reopened.get_conversation("c1").user_id == "u1"
    assert [m.content for m in reopened.messages("c1")] == ["hi", "hello"]
    assert reopened.get_conversation("missing") is None
    assert reopened.messages("missing") == []


def test_put_overwrites_existing_key(tmp_path: Path) -> None:
    store = SqliteTranscriptStore(tmp_path / "t.db")
    store.put("k", "v1")
    store.put("k", "v2")

    assert store.get("k") == "v2"


@pytest.mark.asyncio
async def test_reply_sends_full_history_and_appends_answer(tmp_path: Path) -> None:
    chat = EchoChatClient()
    service = ConversationService(SqliteTranscriptStore(tmp_path / "t.db"), chat)
    conversation = service.start("u1", conversation_id="c1")

    service.add_message("c1", "user", "first")
    await service.reply("c1")
    service.add_message("c1", "user", "second")
    reply = await service.reply("c1")

    assert conversation.conversation_id == "c1"
    assert reply.sequence == 4
    assert reply.content == "echo: second"
    assert [m.content for m in chat.requests[1]] == ["first", "echo: first", "second"]
    assert [m.role for m in service.history("c1")] == ["user", "assistant", "user", "assistant"]


@pytest.mark.asyncio
async def test_failed_reply_leaves_transcript_unchanged(tmp_path: Path) -> None:
    service = ConversationService(
        SqliteTranscriptStore(tmp_path / "t.db"),
        EchoChatClient(error=ChatRequestError("bad request", status_code=400)),
    )
    service.start("u1", conversation_id="c1")
    service.add_message("c1", "user", "question")

    with pytest.raises(ChatRequestError):
        await service.reply("c1")

    assert len(service.history("c1")) == 1


def test_unknown_conversation_is_reported(tmp_path: Path) -> None:
    service = ConversationService(SqliteTranscriptStore(tmp_path / "t.db"), EchoChatClient())

    with pytest.raises(ConversationNotFound):
        service.add_message("nope", "user", "hello")


@pytest.mark.asyncio
async def test_send_stores_both_turns_only_after_success(tmp_path: Path) -> None:
    store = SqliteTranscriptStore(tmp_path / "t.db")
    failing = ConversationService(store, EchoChatClient(error=ChatRequestError("overloaded", status_code=503)))
    failing.start("u1", conversation_id="c1")

    with pytest.raises(ChatRequestError):
        await failing.send("c1", "question")
    assert failing.history("c1") == []

    chat = EchoChatClient()
    reply = await ConversationService(store, chat).send("c1", "question")

    assert reply.sequence == 2
    assert reply.content == "echo: question"
    assert [m.content for m in chat.requests[0]] == ["question"]
    assert [(m.role, m.content) for m in store.messages("c1")] == [
        ("user", "question"),
        ("assistant", "echo: question"),
    ]
