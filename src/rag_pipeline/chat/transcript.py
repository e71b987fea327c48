"""Key-value transcript persistence on SQLite."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Conversation(BaseModel):
    conversation_id: str = Field(min_length=1)
    user_id: str
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)


class TranscriptMessage(BaseModel):
    sequence: int = Field(ge=1)
    conversation_id: str
    role: str
    content: str
    timestamp: str = Field(default_factory=utc_now)


class SqliteTranscriptStore:
    """Append-only transcripts in a flat `kv` table.

    Keys:
    - `"{conversation_id}"` holds the JSON conversation record.
    - `"{conversation_id}:{sequence}"` holds one JSON message, numbered from 1.

    Reading a transcript walks sequence numbers upward until a key is
    missing, so messages must be appended without gaps.
    """

    def __init__(self, db_path: str | Path = "transcripts.db") -> None:
        self.db_path = Path(db_path)
        _ensure_kv_table(self.db_path)

    def get(self, key: str) -> str | None:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def put(self, key: str, value: str) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "INSERT INTO kv(key, value) VALUES(?, ?) ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (key, value),
            )
            conn.commit()

    def save_conversation(self, conversation: Conversation) -> None:
        self.put(conversation.conversation_id, conversation.model_dump_json())

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        raw = self.get(conversation_id)
        return Conversation.model_validate_json(raw) if raw is not None else None

    def append(self, message: TranscriptMessage) -> None:
        self.put(f"{message.conversation_id}:{message.sequence}", message.model_dump_json())

    def messages(self, conversation_id: str) -> list[TranscriptMessage]:
        messages: list[TranscriptMessage] = []
        sequence = 1
        while True:
            raw = self.get(f"{conversation_id}:{sequence}")
            if raw is None:
                return messages
            messages.append(TranscriptMessage.model_validate_json(raw))
            sequence += 1


def _ensure_kv_table(db_path: Path) -> None:
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
        )
        conn.commit()
