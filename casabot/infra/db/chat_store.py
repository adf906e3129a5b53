"""Data layer: SQLite persistence for chat messages and captured lead conversations."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Literal
from uuid import uuid4

MessageRole = Literal["user", "assistant"]


class ChatStoreError(RuntimeError):
    """Raised when a read or write against the chat database fails."""


class ConversationExistsError(ChatStoreError):
    """Raised when a lead was already captured for the session."""


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


@dataclass
class ChatMessageRecord:
    """One stored chat line; `item_ids` lists listings shown with it."""

    id: str
    session_id: str
    role: MessageRole
    content: str
    item_ids: list[str] = field(default_factory=list)
    created_at: str = field(default_factory=_utc_now_iso)


@dataclass
class ConversationRecord:
    """Captured lead plus the transcript snapshot attached to it."""

    id: str
    session_id: str
    lead_name: str
    lead_whatsapp: str
    privacy_accepted: bool
    messages: list[dict[str, Any]]
    created_at: str
    updated_at: str


_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS chat_messages (
        id TEXT PRIMARY KEY,
        session_id TEXT NOT NULL,
        role TEXT NOT NULL,
        content TEXT NOT NULL,
        item_ids TEXT NOT NULL,      -- JSON list
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS ix_chat_messages_session
    ON chat_messages(session_id, created_at)
    """,
    """
    CREATE TABLE IF NOT EXISTS conversations (
        id TEXT PRIMARY KEY,
        session_id TEXT NOT NULL UNIQUE,
        lead_name TEXT NOT NULL,
        lead_whatsapp TEXT NOT NULL,
        privacy_accepted INTEGER NOT NULL DEFAULT 1,
        messages TEXT NOT NULL,      -- JSON list
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
)


def message_to_entry(record: ChatMessageRecord) -> dict[str, Any]:
    """Shape stored in a conversation's `messages` column."""
    return {
        "role": record.role,
        "content": record.content,
        "item_ids": list(record.item_ids),
        "created_at": record.created_at,
    }


class ChatStore:
    """Thread-safe SQLite store; pass `:memory:` for an ephemeral database."""

    def __init__(self, database: str) -> None:
        if database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        self._database = database
        self._lock = Lock()
        self._conn = sqlite3.connect(database, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._lock:
            for statement in _SCHEMA:
                self._conn.execute(statement)
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def health(self) -> dict[str, Any]:
        with self._lock:
            try:
                messages = self._conn.execute("SELECT COUNT(*) FROM chat_messages").fetchone()[0]
                leads = self._conn.execute("SELECT COUNT(*) FROM conversations").fetchone()[0]
            except sqlite3.Error as exc:
                raise ChatStoreError(str(exc)) from exc
        return {"database": self._database, "messages": messages, "conversations": leads}

    def create_message(
        self,
        *,
        session_id: str,
        role: MessageRole,
        content: str,
        item_ids: list[str] | None = None,
    ) -> ChatMessageRecord:
        record = ChatMessageRecord(
            id=uuid4().hex,
            session_id=session_id,
            role=role,
            content=content,
            item_ids=list(item_ids or []),
        )
        with self._lock:
            try:
                self._conn.execute(
                    """
                    INSERT INTO chat_messages (id, session_id, role, content, item_ids, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        record.session_id,
                        record.role,
                        record.content,
                        json.dumps(record.item_ids),
                        record.created_at,
                    ),
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                raise ChatStoreError(str(exc)) from exc
        return record

    def get_history(self, session_id: str) -> list[ChatMessageRecord]:
        """Messages of one session in chronological order."""
        with self._lock:
            try:
                rows = self._conn.execute(
                    """
                    SELECT id, session_id, role, content, item_ids, created_at
                    FROM chat_messages
                    WHERE session_id = ?
                    ORDER BY created_at ASC, rowid ASC
                    """,
                    (session_id,),
                ).fetchall()
            except sqlite3.Error as exc:
                raise ChatStoreError(str(exc)) from exc
        return [
            ChatMessageRecord(
                id=row["id"],
                session_id=row["session_id"],
                role=row["role"],
                content=row["content"],
                item_ids=json.loads(row["item_ids"] or "[]"),
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def save_conversation(
        self,
        *,
        session_id: str,
        lead_name: str,
        lead_whatsapp: str,
        privacy_accepted: bool = True,
        messages: list[dict[str, Any]] | None = None,
    ) -> ConversationRecord:
        now = _utc_now_iso()
        record = ConversationRecord(
            id=uuid4().hex,
            session_id=session_id,
            lead_name=lead_name,
            lead_whatsapp=lead_whatsapp,
            privacy_accepted=privacy_accepted,
            messages=list(messages or []),
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            try:
                self._conn.execute(
                    """
                    INSERT INTO conversations
                        (id, session_id, lead_name, lead_whatsapp, privacy_accepted, messages, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        record.session_id,
                        record.lead_name,
                        record.lead_whatsapp,
                        int(record.privacy_accepted),
                        json.dumps(record.messages, ensure_ascii=False),
                        record.created_at,
                        record.updated_at,
                    ),
                )
                self._conn.commit()
            except sqlite3.IntegrityError as exc:
                raise ConversationExistsError(f"conversation for '{session_id}' already exists") from exc
            except sqlite3.Error as exc:
                raise ChatStoreError(str(exc)) from exc
        return record

    def get_conversation(self, session_id: str) -> ConversationRecord | None:
        with self._lock:
            try:
                row = self._conn.execute(
                    """
                    SELECT id, session_id, lead_name, lead_whatsapp, privacy_accepted,
                           messages, created_at, updated_at
                    FROM conversations
                    WHERE session_id = ?
                    """,
                    (session_id,),
                ).fetchone()
            except sqlite3.Error as exc:
                raise ChatStoreError(str(exc)) from exc
        if row is None:
            return None
        return ConversationRecord(
            id=row["id"],
            session_id=row["session_id"],
            lead_name=row["lead_name"],
            lead_whatsapp=row["lead_whatsapp"],
            privacy_accepted=bool(row["privacy_accepted"]),
            messages=json.loads(row["messages"] or "[]"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def update_conversation(self, session_id: str, entries: list[dict[str, Any]]) -> int:
        """Replace the transcript snapshot; returns the number of rows touched."""
        with self._lock:
            try:
                cursor = self._conn.execute(
                    """
                    UPDATE conversations
                    SET messages = ?, updated_at = ?
                    WHERE session_id = ?
                    """,
                    (json.dumps(entries, ensure_ascii=False), _utc_now_iso(), session_id),
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                raise ChatStoreError(str(exc)) from exc
        return cursor.rowcount
