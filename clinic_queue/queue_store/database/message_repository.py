"""Chat message repository (append-only)."""

import uuid
from dataclasses import dataclass
from pathlib import Path

from clinic_queue.state_machine import SenderRole

from .connection import get_connection


@dataclass
class ChatMessage:
    id: str
    entry_id: str
    sender: SenderRole
    text: str
    sent_at: str


class MessageRepository:
    """Repository for the operator/doctor conversation attached to an entry."""

    def __init__(self, db_path: Path | str | None = None, timeout: float | None = None):
        self.db_path = db_path
        self.timeout = timeout

    def append(self, cursor, entry_id: str, sender: SenderRole, text: str, now: str) -> ChatMessage:
        """Append a message after the last one in the conversation."""
        cursor.execute(
            "SELECT COALESCE(MAX(seq), 0) FROM messages WHERE entry_id = ?",
            (entry_id,),
        )
        seq = cursor.fetchone()[0] + 1
        message = ChatMessage(
            id=str(uuid.uuid4()),
            entry_id=entry_id,
            sender=sender,
            text=text,
            sent_at=now,
        )
        cursor.execute("""
            INSERT INTO messages (id, entry_id, sender, text, sent_at, seq)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (message.id, entry_id, sender.value, text, now, seq))
        return message

    def get_for_entry(self, entry_id: str) -> list[ChatMessage]:
        """Get the conversation for an entry, oldest first."""
        conn = get_connection(self.db_path, self.timeout)
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM messages WHERE entry_id = ? ORDER BY seq",
            (entry_id,),
        )
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_message(row) for row in rows]

    def _row_to_message(self, row) -> ChatMessage:
        return ChatMessage(
            id=row["id"],
            entry_id=row["entry_id"],
            sender=SenderRole(row["sender"]),
            text=row["text"],
            sent_at=row["sent_at"],
        )
