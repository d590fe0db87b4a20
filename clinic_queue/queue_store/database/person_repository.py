"""Person repository: longitudinal records linking repeat visits."""

import uuid
from dataclasses import dataclass
from pathlib import Path

from .connection import get_connection


@dataclass
class Person:
    id: str
    name: str
    age: int | None = None
    gender: str | None = None
    city: str | None = None
    mobile: str | None = None
    created_at: str | None = None


class PersonRepository:
    """Repository for person lookups and creation."""

    def __init__(self, db_path: Path | str | None = None, timeout: float | None = None):
        self.db_path = db_path
        self.timeout = timeout

    def get_by_id(self, person_id: str) -> Person | None:
        """Get a person by ID."""
        conn = get_connection(self.db_path, self.timeout)
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM persons WHERE id = ?", (person_id,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_person(row) if row else None

    def find_existing(self, cursor, name: str, mobile: str) -> Person | None:
        """Find a person by mobile number and case-insensitive name."""
        cursor.execute(
            "SELECT * FROM persons WHERE mobile = ? AND LOWER(name) = LOWER(?) ORDER BY created_at LIMIT 1",
            (mobile, name),
        )
        row = cursor.fetchone()
        return self._row_to_person(row) if row else None

    def find_or_create(
        self,
        cursor,
        name: str,
        mobile: str,
        now: str,
        age: int | None = None,
        gender: str | None = None,
        city: str | None = None,
    ) -> Person:
        """Link a registration to an existing person, creating one if needed.

        Demographics on an existing record are refreshed with the latest visit's values.
        """
        person = self.find_existing(cursor, name, mobile)
        if person:
            cursor.execute(
                "UPDATE persons SET age = ?, gender = ?, city = ? WHERE id = ?",
                (age, gender, city, person.id),
            )
            person.age, person.gender, person.city = age, gender, city
            return person

        person = Person(
            id=str(uuid.uuid4()),
            name=name,
            age=age,
            gender=gender,
            city=city,
            mobile=mobile,
            created_at=now,
        )
        cursor.execute("""
            INSERT INTO persons (id, name, age, gender, city, mobile, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (person.id, person.name, person.age, person.gender, person.city, person.mobile, now))
        return person

    def exists(self, cursor, person_id: str) -> bool:
        cursor.execute("SELECT 1 FROM persons WHERE id = ?", (person_id,))
        return cursor.fetchone() is not None

    def _row_to_person(self, row) -> Person:
        """Convert a database row to a Person object."""
        return Person(
            id=row["id"],
            name=row["name"],
            age=row["age"],
            gender=row["gender"],
            city=row["city"],
            mobile=row["mobile"],
            created_at=row["created_at"],
        )
