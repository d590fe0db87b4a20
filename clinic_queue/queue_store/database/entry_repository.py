"""Entry repository: durable record of every queue entry."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from clinic_queue.state_machine import Category, EntryType, Status, is_pinned

from .connection import get_connection


@dataclass
class Entry:
    id: str
    day: str
    name: str
    type: EntryType
    category: Category
    status: Status = Status.WAITING
    queue_number: int = 0
    sort_position: int = 0
    age: int | None = None
    gender: str | None = None
    city: str | None = None
    mobile: str | None = None
    person_id: str | None = None
    vitals: str | None = None
    notes: str | None = None
    medicines: str | None = None
    has_unread_alert: bool = False
    created_at: str | None = None
    in_time: str | None = None
    out_time: str | None = None
    updated_at: str | None = None

    @property
    def pinned(self) -> bool:
        return is_pinned(self.type)


class EntryRepository:
    """Repository for queue entry rows.

    Reads open their own connection, waiting up to `timeout` seconds on a
    busy database. Writes take the cursor of an open transaction so they
    commit or roll back together with the ordering and sequence changes
    around them.
    """

    # Fields that can be updated
    ENTRY_FIELDS = [
        "type", "category", "status", "sort_position",
        "name", "age", "gender", "city", "mobile", "person_id",
        "vitals", "notes", "medicines", "has_unread_alert",
        "in_time", "out_time",
    ]

    def __init__(self, db_path: Path | str | None = None, timeout: float | None = None):
        self.db_path = db_path
        self.timeout = timeout

    def get_by_id(self, entry_id: str) -> Entry | None:
        """Get an entry by ID."""
        conn = get_connection(self.db_path, self.timeout)
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM entries WHERE id = ?", (entry_id,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_entry(row) if row else None

    def get_all(self, day: str) -> list[Entry]:
        """Get every entry registered on a day, oldest first."""
        conn = get_connection(self.db_path, self.timeout)
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM entries WHERE day = ? ORDER BY created_at, rowid",
            (day,),
        )
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_entry(row) for row in rows]

    def get_by_person(self, person_id: str) -> list[Entry]:
        """Get all visits linked to a person, newest first."""
        conn = get_connection(self.db_path, self.timeout)
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM entries WHERE person_id = ? ORDER BY created_at DESC, rowid DESC",
            (person_id,),
        )
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_entry(row) for row in rows]

    # Transactional writes

    def insert(self, cursor, entry: Entry) -> Entry:
        """Insert a new entry row."""
        cursor.execute("""
            INSERT INTO entries (
                id, day, queue_number, category, type, status, sort_position,
                name, age, gender, city, mobile, person_id,
                vitals, notes, medicines, has_unread_alert,
                created_at, in_time, out_time, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            entry.id, entry.day, entry.queue_number, entry.category.value,
            entry.type.value, entry.status.value, entry.sort_position,
            entry.name, entry.age, entry.gender, entry.city, entry.mobile,
            entry.person_id, entry.vitals, entry.notes, entry.medicines,
            int(entry.has_unread_alert), entry.created_at, entry.in_time,
            entry.out_time, entry.updated_at or entry.created_at,
        ))
        return entry

    def fetch(self, cursor, entry_id: str) -> Entry | None:
        """Read an entry inside an open transaction."""
        cursor.execute("SELECT * FROM entries WHERE id = ?", (entry_id,))
        row = cursor.fetchone()
        return self._row_to_entry(row) if row else None

    def update_fields(self, cursor, entry_id: str, updates: dict, now: str) -> bool:
        """Write the given fields. Unknown fields are ignored."""
        valid_updates = {
            field: self._to_db(value)
            for field, value in updates.items()
            if field in self.ENTRY_FIELDS
        }
        if not valid_updates:
            return False

        set_clause = ", ".join(f"{field} = ?" for field in valid_updates)
        set_clause += ", updated_at = ?"
        values = list(valid_updates.values()) + [now, entry_id]

        cursor.execute(f"UPDATE entries SET {set_clause} WHERE id = ?", values)
        return cursor.rowcount > 0

    def delete(self, cursor, entry_id: str) -> bool:
        """Delete an entry and its chat history."""
        cursor.execute("DELETE FROM messages WHERE entry_id = ?", (entry_id,))
        cursor.execute("DELETE FROM entries WHERE id = ?", (entry_id,))
        return cursor.rowcount > 0

    # Private helpers

    def _to_db(self, value):
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, bool):
            return int(value)
        return value

    def _row_to_entry(self, row) -> Entry:
        """Convert a database row to an Entry object."""
        return Entry(
            id=row["id"],
            day=row["day"],
            name=row["name"],
            type=EntryType(row["type"]),
            category=Category(row["category"]),
            status=Status(row["status"]),
            queue_number=row["queue_number"],
            sort_position=row["sort_position"],
            age=row["age"],
            gender=row["gender"],
            city=row["city"],
            mobile=row["mobile"],
            person_id=row["person_id"],
            vitals=row["vitals"],
            notes=row["notes"],
            medicines=row["medicines"],
            has_unread_alert=bool(row["has_unread_alert"]),
            created_at=row["created_at"],
            in_time=row["in_time"],
            out_time=row["out_time"],
            updated_at=row["updated_at"],
        )
