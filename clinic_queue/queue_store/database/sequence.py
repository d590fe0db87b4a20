"""Daily queue number allocation for PATIENT-category entries."""

from clinic_queue.state_machine import Category


def next_queue_number(cursor, day: str) -> int:
    """Allocate the next queue number for a day.

    Must run inside the transaction that inserts the entry, so the write
    lock covers both the read and the insert. The per-day counter keeps a
    number from being handed out again after the newest entry is deleted.
    """
    cursor.execute(
        "SELECT COALESCE(MAX(queue_number), 0) FROM entries WHERE day = ? AND category = ?",
        (day, Category.PATIENT.value),
    )
    highest_live = cursor.fetchone()[0]

    cursor.execute("SELECT last_number FROM queue_counters WHERE day = ?", (day,))
    row = cursor.fetchone()
    highest_issued = row[0] if row else 0

    number = max(highest_live, highest_issued) + 1
    cursor.execute("""
        INSERT INTO queue_counters (day, last_number) VALUES (?, ?)
        ON CONFLICT(day) DO UPDATE SET last_number = excluded.last_number
    """, (day, number))
    return number
