"""Tests for the entry, person and message repositories."""

import pytest

from clinic_queue.errors import LockTimeoutError
from clinic_queue.queue_store.database import (
    Entry,
    EntryRepository,
    MessageRepository,
    PersonRepository,
    get_connection,
    init_database,
    transaction,
)
from clinic_queue.queue_store.database.sequence import next_queue_number
from clinic_queue.state_machine import Category, EntryType, SenderRole, Status


@pytest.fixture
def db(db_path):
    """Initialize an empty database."""
    init_database(db_path)
    return db_path


@pytest.fixture
def repo(db):
    return EntryRepository(db)


def make_entry(entry_id: str, day: str = "2026-10-19", **overrides) -> Entry:
    fields = dict(
        id=entry_id,
        day=day,
        name=f"Entry {entry_id}",
        type=EntryType.GENERAL_PATIENT,
        category=Category.PATIENT,
        sort_position=1,
        queue_number=1,
        created_at=f"{day}T09:00:00.000000",
        in_time=f"{day}T09:00:00.000000",
    )
    fields.update(overrides)
    return Entry(**fields)


class TestEntryCRUD:
    """Tests for entry CRUD operations."""

    def test_insert_and_get_by_id(self, repo, db):
        with transaction(db) as cursor:
            repo.insert(cursor, make_entry("e-1", age=30, gender="Female", city="Pune"))

        entry = repo.get_by_id("e-1")
        assert entry is not None
        assert entry.status == Status.WAITING
        assert entry.type == EntryType.GENERAL_PATIENT
        assert entry.city == "Pune"
        assert entry.has_unread_alert is False
        assert entry.updated_at == entry.created_at

    def test_get_by_id_not_found(self, repo):
        assert repo.get_by_id("nonexistent-id") is None

    def test_get_all_is_scoped_to_day(self, repo, db):
        with transaction(db) as cursor:
            repo.insert(cursor, make_entry("today-1"))
            repo.insert(cursor, make_entry("yesterday-1", day="2026-10-18"))

        today = repo.get_all("2026-10-19")
        assert [e.id for e in today] == ["today-1"]
        assert [e.id for e in repo.get_all("2026-10-18")] == ["yesterday-1"]
        assert repo.get_all("2026-10-20") == []

    def test_update_fields(self, repo, db):
        with transaction(db) as cursor:
            repo.insert(cursor, make_entry("e-upd"))

        with transaction(db) as cursor:
            updated = repo.update_fields(
                cursor, "e-upd",
                {"status": Status.COMPLETED, "sort_position": 0, "has_unread_alert": True,
                 "out_time": "2026-10-19T10:00:00.000000"},
                now="2026-10-19T10:00:00.000000",
            )
        assert updated

        entry = repo.get_by_id("e-upd")
        assert entry.status == Status.COMPLETED
        assert entry.sort_position == 0
        assert entry.has_unread_alert is True
        assert entry.updated_at == "2026-10-19T10:00:00.000000"

    def test_update_ignores_unknown_fields(self, repo, db):
        with transaction(db) as cursor:
            repo.insert(cursor, make_entry("e-ign"))
            assert repo.update_fields(cursor, "e-ign", {"id": "hijack", "queue_number": 99}, now="x") is False

        entry = repo.get_by_id("e-ign")
        assert entry.queue_number == 1

    def test_delete_removes_entry_and_messages(self, repo, db):
        messages = MessageRepository(db)
        with transaction(db) as cursor:
            repo.insert(cursor, make_entry("e-del"))
            messages.append(cursor, "e-del", SenderRole.OPERATOR, "hello", "2026-10-19T09:01:00")

        with transaction(db) as cursor:
            assert repo.delete(cursor, "e-del")

        assert repo.get_by_id("e-del") is None
        assert messages.get_for_entry("e-del") == []


class TestTransaction:
    """Tests for the write transaction helper."""

    def test_rolls_back_on_error(self, repo, db):
        with pytest.raises(RuntimeError):
            with transaction(db) as cursor:
                repo.insert(cursor, make_entry("e-rollback"))
                raise RuntimeError("boom")

        assert repo.get_by_id("e-rollback") is None

    def test_lock_timeout_when_writer_holds_lock(self, db):
        holder = get_connection(db)
        holder.execute("BEGIN IMMEDIATE")
        try:
            with pytest.raises(LockTimeoutError) as exc_info:
                with transaction(db, timeout=0.05):
                    pass
            assert exc_info.value.retryable
        finally:
            holder.rollback()
            holder.close()


class TestSequenceAllocator:
    """Tests for daily queue number allocation."""

    def test_first_number_is_one(self, db):
        with transaction(db) as cursor:
            assert next_queue_number(cursor, "2026-10-19") == 1

    def test_numbers_are_per_day(self, repo, db):
        with transaction(db) as cursor:
            repo.insert(cursor, make_entry("a", queue_number=next_queue_number(cursor, "2026-10-19")))
            repo.insert(cursor, make_entry("b", queue_number=next_queue_number(cursor, "2026-10-19")))
            other_day = next_queue_number(cursor, "2026-10-20")

        assert [e.queue_number for e in repo.get_all("2026-10-19")] == [1, 2]
        assert other_day == 1

    def test_ignores_visitor_rows(self, repo, db):
        with transaction(db) as cursor:
            repo.insert(cursor, make_entry(
                "v", queue_number=0, type=EntryType.VISITOR, category=Category.VISITOR,
            ))
            assert next_queue_number(cursor, "2026-10-19") == 1

    def test_number_not_reused_after_newest_deleted(self, repo, db):
        with transaction(db) as cursor:
            repo.insert(cursor, make_entry("a", queue_number=next_queue_number(cursor, "2026-10-19")))
            repo.insert(cursor, make_entry("b", queue_number=next_queue_number(cursor, "2026-10-19")))
        with transaction(db) as cursor:
            repo.delete(cursor, "b")
        with transaction(db) as cursor:
            assert next_queue_number(cursor, "2026-10-19") == 3


class TestPersonRepository:
    """Tests for person lookup and linking."""

    def test_find_or_create_reuses_matching_person(self, db):
        persons = PersonRepository(db)
        with transaction(db) as cursor:
            first = persons.find_or_create(cursor, "Ravi Kumar", "9876500001", "2026-10-19T09:00", age=34)
        with transaction(db) as cursor:
            again = persons.find_or_create(cursor, "ravi kumar", "9876500001", "2026-10-20T09:00", age=35)

        assert again.id == first.id
        assert persons.get_by_id(first.id).age == 35

    def test_different_name_same_mobile_is_new_person(self, db):
        persons = PersonRepository(db)
        with transaction(db) as cursor:
            father = persons.find_or_create(cursor, "Ravi Kumar", "9876500001", "t")
            daughter = persons.find_or_create(cursor, "Meera Kumar", "9876500001", "t")

        assert father.id != daughter.id

    def test_get_by_id_not_found(self, db):
        assert PersonRepository(db).get_by_id("missing") is None


class TestMessageRepository:
    """Tests for chat message storage."""

    def test_messages_keep_append_order(self, repo, db):
        messages = MessageRepository(db)
        with transaction(db) as cursor:
            repo.insert(cursor, make_entry("e-chat"))
            messages.append(cursor, "e-chat", SenderRole.OPERATOR, "first", "2026-10-19T09:05")
            messages.append(cursor, "e-chat", SenderRole.DOCTOR, "second", "2026-10-19T09:05")

        conversation = messages.get_for_entry("e-chat")
        assert [m.text for m in conversation] == ["first", "second"]
        assert conversation[1].sender == SenderRole.DOCTOR
