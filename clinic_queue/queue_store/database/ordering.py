"""Dense sort positions for the WAITING pool.

Every non-pinned WAITING entry of a day holds a position in 1..N with no
gaps or duplicates. Pinned entries and entries outside WAITING hold 0.
All functions take the cursor of an open write transaction and read
positions from the store each time.
"""

from dataclasses import dataclass

from clinic_queue.state_machine import PINNED_TYPES, Status

from .entry_repository import Entry

PINNED_TYPE = "pinned-type"
AT_BOUNDARY = "at-boundary"
NO_NEIGHBOR = "no-neighbor"
NOT_WAITING = "not-waiting"
SAME_POSITION = "same-position"
DIFFERENT_DAY = "different-day"

UP = "up"
DOWN = "down"

_PINNED_VALUES = tuple(sorted(t.value for t in PINNED_TYPES))

# Filter selecting the ordered pool of a day; binds (day,)
POOL_FILTER = (
    "day = ? AND status = '{waiting}' AND type NOT IN ({pinned})".format(
        waiting=Status.WAITING.value,
        pinned=", ".join(f"'{t}'" for t in _PINNED_VALUES),
    )
)


@dataclass
class MoveResult:
    success: bool
    reason: str | None = None


def max_position(cursor, day: str) -> int:
    cursor.execute(f"SELECT COALESCE(MAX(sort_position), 0) FROM entries WHERE {POOL_FILTER}", (day,))
    return cursor.fetchone()[0]


def pool_positions(cursor, day: str) -> list[tuple[str, int]]:
    """(id, position) pairs of the ordered pool, front first."""
    cursor.execute(
        f"SELECT id, sort_position FROM entries WHERE {POOL_FILTER} ORDER BY sort_position",
        (day,),
    )
    return [(row[0], row[1]) for row in cursor.fetchall()]


def append_back(cursor, day: str) -> int:
    """Position for a newly registered entry: behind everyone already waiting."""
    return max_position(cursor, day) + 1


def insert_front(cursor, day: str, entry_id: str, now: str) -> int:
    """Make room at position 1 for an entry returning to WAITING.

    Shifts every other pool member back by one. The caller writes the
    returned position onto the entry.
    """
    cursor.execute(
        f"""UPDATE entries SET sort_position = sort_position + 1, updated_at = ?
            WHERE {POOL_FILTER} AND id != ?""",
        (now, day, entry_id),
    )
    return 1


def remove(cursor, day: str, position: int, now: str) -> None:
    """Close the gap left by an entry leaving the pool at `position`."""
    if position <= 0:
        return
    cursor.execute(
        f"""UPDATE entries SET sort_position = sort_position - 1, updated_at = ?
            WHERE {POOL_FILTER} AND sort_position > ?""",
        (now, day, position),
    )


def swap_adjacent(cursor, entry: Entry, direction: str, now: str) -> MoveResult:
    """Exchange an entry's position with its neighbour above or below."""
    if entry.pinned:
        return MoveResult(False, PINNED_TYPE)
    if entry.status != Status.WAITING:
        return MoveResult(False, NOT_WAITING)

    position = entry.sort_position
    if direction == UP:
        if position <= 1:
            return MoveResult(False, AT_BOUNDARY)
        target = position - 1
    else:
        if position >= max_position(cursor, entry.day):
            return MoveResult(False, AT_BOUNDARY)
        target = position + 1

    cursor.execute(
        f"SELECT id FROM entries WHERE {POOL_FILTER} AND sort_position = ? AND id != ?",
        (entry.day, target, entry.id),
    )
    neighbour = cursor.fetchone()
    if neighbour is None:
        return MoveResult(False, NO_NEIGHBOR)

    cursor.execute(
        "UPDATE entries SET sort_position = ?, updated_at = ? WHERE id = ?",
        (position, now, neighbour[0]),
    )
    cursor.execute(
        "UPDATE entries SET sort_position = ?, updated_at = ? WHERE id = ?",
        (target, now, entry.id),
    )
    return MoveResult(True)


def move_to_target(cursor, source: Entry, target: Entry, now: str) -> MoveResult:
    """Move `source` into `target`'s position, sliding the entries in between."""
    if source.pinned or target.pinned:
        return MoveResult(False, PINNED_TYPE)
    if source.status != Status.WAITING or target.status != Status.WAITING:
        return MoveResult(False, NOT_WAITING)
    if source.day != target.day:
        return MoveResult(False, DIFFERENT_DAY)

    s, t = source.sort_position, target.sort_position
    if s == t:
        return MoveResult(False, SAME_POSITION)

    if s < t:
        cursor.execute(
            f"""UPDATE entries SET sort_position = sort_position - 1, updated_at = ?
                WHERE {POOL_FILTER} AND sort_position > ? AND sort_position <= ?""",
            (now, source.day, s, t),
        )
    else:
        cursor.execute(
            f"""UPDATE entries SET sort_position = sort_position + 1, updated_at = ?
                WHERE {POOL_FILTER} AND sort_position >= ? AND sort_position < ?""",
            (now, source.day, t, s),
        )
    cursor.execute(
        "UPDATE entries SET sort_position = ?, updated_at = ? WHERE id = ?",
        (t, now, source.id),
    )
    return MoveResult(True)
