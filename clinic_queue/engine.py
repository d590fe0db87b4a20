"""Queue engine: the commands operator and doctor terminals call.

Every command that reads then writes ordering, queue numbers or status
runs in one write transaction, recomputing from the store. Lock timeouts
are retried here with exponential backoff before reaching the caller.
Change events go out only after the transaction commits.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

from clinic_queue import config
from clinic_queue.broadcaster import ChangeBroadcaster, ChangeEvent, EventType, Observer, Outbox
from clinic_queue.errors import ConflictError, LockTimeoutError, NotFoundError, ValidationError
from clinic_queue.intake_gate import IntakeGate, IntakeState
from clinic_queue.queue_store.database import (
    ChatMessage,
    Entry,
    EntryRepository,
    MessageRepository,
    Person,
    PersonRepository,
    init_database,
    transaction,
)
from clinic_queue.queue_store.database import ordering
from clinic_queue.queue_store.database.ordering import MoveResult
from clinic_queue.queue_store.database.sequence import next_queue_number
from clinic_queue.schemas import ChatMessageIn, ClinicalFields, EntryDraft, EntryUpdate, parse
from clinic_queue.state_machine import (
    Category,
    OutTimeEffect,
    PoolEffect,
    Status,
    Transition,
    category_for,
    get_transition,
    is_pinned,
)

logger = logging.getLogger(__name__)

SAME_STATUS = "same-status"
PAUSED = "paused"

# Fields an edit may not blank out
REQUIRED_FIELDS = {"name", "age", "gender", "city", "type"}


@dataclass
class CreatedEntry:
    id: str
    queue_number: int


@dataclass
class StatusChangeResult:
    changed: bool
    reason: str | None = None


@dataclass
class QueueSnapshot:
    """Today's board: the three columns plus intake state."""
    day: str
    waiting: list[Entry] = field(default_factory=list)
    in_consultation: list[Entry] = field(default_factory=list)
    completed: list[Entry] = field(default_factory=list)
    active_patient_count: int = 0
    intake: IntakeState = field(default_factory=IntakeState)


@dataclass
class PersonHistory:
    person: Person
    visits: list[Entry]
    total_visits: int


def _stamp(value: datetime | str) -> str:
    if isinstance(value, datetime):
        return value.isoformat(timespec="microseconds")
    return value


class QueueEngine:
    """Commands and queries over the clinic queue."""

    def __init__(
        self,
        db_path: Path | str | None = None,
        clock: Callable[[], datetime] | None = None,
        lock_timeout: float | None = None,
        lock_retries: int | None = None,
        retry_backoff: float | None = None,
        broadcaster: ChangeBroadcaster | None = None,
        intake_gate: IntakeGate | None = None,
    ):
        self.db_path = db_path or config.DB_PATH
        self.clock = clock or datetime.now
        self.lock_timeout = config.LOCK_TIMEOUT if lock_timeout is None else lock_timeout
        self.lock_retries = config.LOCK_RETRIES if lock_retries is None else lock_retries
        self.retry_backoff = config.RETRY_BACKOFF if retry_backoff is None else retry_backoff
        self.broadcaster = broadcaster or ChangeBroadcaster()
        self.intake_gate = intake_gate or IntakeGate()

        self.entries = EntryRepository(self.db_path, self.lock_timeout)
        self.persons = PersonRepository(self.db_path, self.lock_timeout)
        self.messages = MessageRepository(self.db_path, self.lock_timeout)

        init_database(self.db_path)

    # Registration

    def create_entry(self, draft: EntryDraft | dict) -> CreatedEntry:
        """Register a new entry at the back of today's WAITING pool."""
        draft = parse(EntryDraft, draft)
        now = self.clock()
        stamp = _stamp(now)
        day = now.date().isoformat()
        category = category_for(draft.type)

        def work(cursor, outbox: Outbox) -> Entry:
            person_id = draft.person_id
            if person_id:
                if not self.persons.exists(cursor, person_id):
                    raise NotFoundError(f"Person {person_id} not found")
            elif draft.mobile:
                person = self.persons.find_or_create(
                    cursor, draft.name, draft.mobile, stamp,
                    age=draft.age, gender=draft.gender, city=draft.city,
                )
                person_id = person.id

            queue_number = next_queue_number(cursor, day) if category == Category.PATIENT else 0
            position = 0 if is_pinned(draft.type) else ordering.append_back(cursor, day)

            entry = Entry(
                id=str(uuid.uuid4()),
                day=day,
                name=draft.name,
                type=draft.type,
                category=category,
                status=Status.WAITING,
                queue_number=queue_number,
                sort_position=position,
                age=draft.age,
                gender=draft.gender,
                city=draft.city,
                mobile=draft.mobile,
                person_id=person_id,
                created_at=stamp,
                in_time=stamp,
            )
            self.entries.insert(cursor, entry)
            outbox.add(EventType.ENTRY_ADDED, entry.id, day=day, queue_number=queue_number)
            return entry

        entry = self._write("create entry", work)
        logger.info(
            f"Registered {entry.type.value} {entry.id} queue #{entry.queue_number} at position {entry.sort_position}"
        )
        return CreatedEntry(entry.id, entry.queue_number)

    # Status transitions

    def change_status(
        self,
        entry_id: str,
        target_status: Status | str,
        out_time_override: datetime | str | None = None,
    ) -> StatusChangeResult:
        """Move an entry to another status, applying the transition's side effects.

        Same-status requests and WAITING -> IN_CONSULTATION while intake is
        paused are no-ops reported in the result, not errors.
        """
        target = self._coerce_status(target_status)
        out_time = self._coerce_out_time(out_time_override)
        stamp = _stamp(self.clock())

        def work(cursor, outbox: Outbox) -> StatusChangeResult:
            entry = self._fetch(cursor, entry_id)
            transition = get_transition(entry.status, target)
            if transition is None:
                return StatusChangeResult(False, SAME_STATUS)
            if transition.gated_by_intake and self.intake_gate.is_paused:
                return StatusChangeResult(False, PAUSED)

            self._apply_transition(cursor, outbox, entry, transition, stamp, out_time)
            return StatusChangeResult(True)

        result = self._write("change status", work)
        if result.changed:
            logger.info(f"Entry {entry_id} moved to {target.value}")
        else:
            logger.debug(f"Status change of {entry_id} to {target.value} ignored: {result.reason}")
        return result

    def finalize_consultation(self, entry_id: str, clinical_fields: ClinicalFields | dict) -> Entry:
        """Save consultation output and complete the visit in one transaction."""
        clinical = parse(ClinicalFields, clinical_fields)
        stamp = _stamp(self.clock())

        def work(cursor, outbox: Outbox) -> Entry:
            entry = self._fetch(cursor, entry_id)
            self.entries.update_fields(cursor, entry.id, clinical.model_dump(exclude_none=True), stamp)
            transition = get_transition(entry.status, Status.COMPLETED)
            if transition is not None:
                self._apply_transition(cursor, outbox, entry, transition, stamp, None, finalized=True)
            else:
                outbox.add(EventType.ENTRY_UPDATED, entry.id, finalized=True)
            return self._fetch(cursor, entry.id)

        entry = self._write("finalize consultation", work)
        logger.info(f"Consultation for {entry_id} finalized")
        return entry

    # Ordering

    def move_adjacent(self, entry_id: str, direction: str) -> MoveResult:
        """Swap an entry with its neighbour above ("up") or below ("down")."""
        direction = (direction or "").strip().lower()
        if direction not in (ordering.UP, ordering.DOWN):
            raise ValidationError(f"direction must be '{ordering.UP}' or '{ordering.DOWN}'")
        stamp = _stamp(self.clock())

        def work(cursor, outbox: Outbox) -> MoveResult:
            entry = self._fetch(cursor, entry_id)
            result = ordering.swap_adjacent(cursor, entry, direction, stamp)
            if result.success:
                outbox.add(EventType.ENTRY_REORDERED, entry.id, day=entry.day, direction=direction)
            return result

        result = self._write("move entry", work)
        self._log_move(entry_id, direction, result)
        return result

    def move_to_target(self, entry_id: str, target_id: str) -> MoveResult:
        """Drag an entry onto another entry's position."""
        stamp = _stamp(self.clock())

        def work(cursor, outbox: Outbox) -> MoveResult:
            source = self._fetch(cursor, entry_id)
            target = self._fetch(cursor, target_id)
            result = ordering.move_to_target(cursor, source, target, stamp)
            if result.success:
                outbox.add(EventType.ENTRY_REORDERED, source.id, day=source.day, target_id=target.id)
            return result

        result = self._write("reorder entry", work)
        self._log_move(entry_id, f"onto {target_id}", result)
        return result

    # Edits and deletion

    def update_entry(self, entry_id: str, partial: EntryUpdate | dict) -> Entry:
        """Edit demographics, type or clinical notes of an entry."""
        update = parse(EntryUpdate, partial)
        changes = update.model_dump(exclude_unset=True)
        for name in REQUIRED_FIELDS & changes.keys():
            if changes[name] is None:
                raise ValidationError(f"{name} cannot be cleared")
        stamp = _stamp(self.clock())

        def work(cursor, outbox: Outbox) -> Entry:
            entry = self._fetch(cursor, entry_id)
            updates = dict(changes)

            new_type = updates.get("type")
            if new_type is not None and new_type != entry.type:
                if category_for(new_type) != entry.category:
                    raise ConflictError(
                        f"Cannot change {entry.type.value} to {new_type.value}: queue number eligibility would change"
                    )
                if entry.status == Status.WAITING and is_pinned(new_type) != entry.pinned:
                    if is_pinned(new_type):
                        ordering.remove(cursor, entry.day, entry.sort_position, stamp)
                        updates["sort_position"] = 0
                    else:
                        updates["sort_position"] = ordering.append_back(cursor, entry.day)
                    outbox.add(EventType.ENTRY_REORDERED, entry.id, day=entry.day)

            if updates:
                self.entries.update_fields(cursor, entry.id, updates, stamp)
                outbox.add(EventType.ENTRY_UPDATED, entry.id, fields=sorted(changes))
            return self._fetch(cursor, entry.id)

        return self._write("update entry", work)

    def delete_entry(self, entry_id: str) -> None:
        """Remove an entry and close its gap in the WAITING pool."""
        stamp = _stamp(self.clock())

        def work(cursor, outbox: Outbox) -> None:
            entry = self._fetch(cursor, entry_id)
            self.entries.delete(cursor, entry.id)
            outbox.add(EventType.ENTRY_DELETED, entry.id, day=entry.day)
            if entry.status == Status.WAITING and not entry.pinned:
                ordering.remove(cursor, entry.day, entry.sort_position, stamp)
                outbox.add(EventType.ENTRY_REORDERED, entry.id, day=entry.day)

        self._write("delete entry", work)
        logger.info(f"Deleted entry {entry_id}")

    # Chat

    def add_message(self, entry_id: str, sender: str, text: str) -> ChatMessage:
        """Append a chat message and raise the entry's unread alert."""
        message_in = parse(ChatMessageIn, {"sender": sender, "text": text})
        stamp = _stamp(self.clock())

        def work(cursor, outbox: Outbox) -> ChatMessage:
            entry = self._fetch(cursor, entry_id)
            message = self.messages.append(cursor, entry.id, message_in.sender, message_in.text, stamp)
            self.entries.update_fields(cursor, entry.id, {"has_unread_alert": True}, stamp)
            outbox.add(
                EventType.CHAT_MESSAGE_ADDED, entry.id,
                message_id=message.id, sender=message.sender.value,
            )
            return message

        return self._write("add message", work)

    def mark_chat_read(self, entry_id: str) -> None:
        """Clear the unread alert when the recipient opens the conversation."""
        stamp = _stamp(self.clock())

        def work(cursor, outbox: Outbox) -> None:
            entry = self._fetch(cursor, entry_id)
            if entry.has_unread_alert:
                self.entries.update_fields(cursor, entry.id, {"has_unread_alert": False}, stamp)
                outbox.add(EventType.ENTRY_UPDATED, entry.id, fields=["has_unread_alert"])

        self._write("mark chat read", work)

    def get_messages(self, entry_id: str) -> list[ChatMessage]:
        self.get_entry(entry_id)
        return self.messages.get_for_entry(entry_id)

    # Intake pause

    def set_intake_pause(self, is_paused: bool, reason: str = "") -> IntakeState:
        """Pause or resume consultation intake and tell every observer."""
        # The last intake event observers see must match the gate
        with self.broadcaster.emitting():
            changed = self.intake_gate.set(is_paused, reason)
            state = self.intake_gate.state
            if changed:
                if state.is_paused:
                    logger.info(f"Consultation intake paused: {state.reason or 'no reason given'}")
                else:
                    logger.info("Consultation intake resumed")
                self.broadcaster.publish(ChangeEvent(
                    EventType.INTAKE_PAUSED_CHANGED,
                    payload={"is_paused": state.is_paused, "reason": state.reason},
                ))
        return state

    def get_intake_state(self) -> IntakeState:
        return self.intake_gate.state

    def subscribe(self, callback: Observer) -> Callable[[], None]:
        """Receive change events. Returns the unsubscribe handle."""
        return self.broadcaster.subscribe(callback)

    # Queries

    def today(self) -> str:
        return self.clock().date().isoformat()

    def get_entry(self, entry_id: str) -> Entry:
        entry = self.entries.get_by_id(entry_id)
        if entry is None:
            raise NotFoundError(f"Entry {entry_id} not found")
        return entry

    def get_entries(self, day: str | None = None) -> list[Entry]:
        return self.entries.get_all(day or self.today())

    def get_queue(self, day: str | None = None) -> QueueSnapshot:
        """Build the board for a day, ordered the way terminals render it."""
        day = day or self.today()
        entries = self.entries.get_all(day)

        waiting = [e for e in entries if e.status == Status.WAITING]
        pinned = sorted((e for e in waiting if e.pinned), key=lambda e: e.created_at)
        ordered = sorted((e for e in waiting if not e.pinned), key=lambda e: e.sort_position)

        in_consultation = [e for e in entries if e.status == Status.IN_CONSULTATION]
        completed = sorted(
            (e for e in entries if e.status == Status.COMPLETED),
            key=lambda e: e.created_at,
            reverse=True,
        )
        active = sum(
            1 for e in entries
            if e.category == Category.PATIENT and e.status != Status.COMPLETED
        )
        return QueueSnapshot(
            day=day,
            waiting=pinned + ordered,
            in_consultation=in_consultation,
            completed=completed,
            active_patient_count=active,
            intake=self.intake_gate.state,
        )

    def get_person_history(self, person_id: str) -> PersonHistory:
        """All visits of a person across days, newest first."""
        person = self.persons.get_by_id(person_id)
        if person is None:
            raise NotFoundError(f"Person {person_id} not found")
        visits = self.entries.get_by_person(person_id)
        return PersonHistory(person=person, visits=visits, total_visits=len(visits))

    # Private helpers

    def _write(self, action: str, work):
        """Run `work(cursor, outbox)` in a write transaction, retrying on lock timeout."""
        attempt = 0
        while True:
            outbox = self.broadcaster.outbox()
            try:
                with transaction(self.db_path, self.lock_timeout) as cursor:
                    result = work(cursor, outbox)
                    outbox.seal()
                outbox.deliver()
                return result
            except LockTimeoutError:
                if attempt >= self.lock_retries:
                    logger.error(f"{action}: write lock still busy after {attempt + 1} attempts")
                    raise
                delay = self.retry_backoff * (2 ** attempt)
                attempt += 1
                logger.warning(
                    f"{action}: write lock busy, retrying in {delay:.2f}s ({attempt}/{self.lock_retries})"
                )
                time.sleep(delay)
            finally:
                outbox.release()

    def _fetch(self, cursor, entry_id: str) -> Entry:
        entry = self.entries.fetch(cursor, entry_id)
        if entry is None:
            raise NotFoundError(f"Entry {entry_id} not found")
        return entry

    def _coerce_status(self, value: Status | str) -> Status:
        if isinstance(value, Status):
            return value
        try:
            return Status(str(value).strip().upper())
        except ValueError:
            allowed = ", ".join(s.value for s in Status)
            raise ValidationError(f"Unknown status {value!r}, expected one of {allowed}") from None

    def _coerce_out_time(self, value: datetime | str | None) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            try:
                value = datetime.fromisoformat(value.strip())
            except ValueError:
                raise ValidationError(f"out_time must be an ISO timestamp, got {value!r}") from None
        if not isinstance(value, datetime):
            raise ValidationError(f"out_time must be a datetime or ISO timestamp, got {type(value).__name__}")
        return _stamp(value)

    def _apply_transition(
        self,
        cursor,
        outbox: Outbox,
        entry: Entry,
        transition: Transition,
        stamp: str,
        out_time_override: str | None,
        finalized: bool = False,
    ) -> None:
        updates = {"status": transition.target, "sort_position": 0}
        reordered = False

        if transition.pool == PoolEffect.REMOVE and not entry.pinned:
            ordering.remove(cursor, entry.day, entry.sort_position, stamp)
            reordered = True
        elif transition.pool == PoolEffect.FRONT_INSERT and not entry.pinned:
            updates["sort_position"] = ordering.insert_front(cursor, entry.day, entry.id, stamp)
            reordered = True

        if transition.out_time == OutTimeEffect.SET:
            updates["out_time"] = out_time_override or stamp
        elif transition.out_time == OutTimeEffect.CLEAR:
            updates["out_time"] = None

        self.entries.update_fields(cursor, entry.id, updates, stamp)

        payload = {"status": transition.target.value, "previous": transition.source.value}
        if finalized:
            payload["finalized"] = True
        outbox.add(EventType.ENTRY_UPDATED, entry.id, **payload)
        if reordered:
            outbox.add(EventType.ENTRY_REORDERED, entry.id, day=entry.day)

    def _log_move(self, entry_id: str, how: str, result: MoveResult) -> None:
        if result.success:
            logger.info(f"Moved {entry_id} {how}")
        else:
            logger.debug(f"Move of {entry_id} {how} refused: {result.reason}")
