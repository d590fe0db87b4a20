"""Seed the database with a demo day of queue entries."""

import argparse

from clinic_queue.engine import QueueEngine
from clinic_queue.logging_config import setup_logging
from clinic_queue.state_machine import Status


MOCK_ENTRIES = [
    {"name": "Ravi Kumar", "age": 34, "gender": "Male", "city": "Pune", "mobile": "9876500001"},
    {"name": "Sunita Patil", "age": 52, "gender": "Female", "city": "Satara", "mobile": "9876500002",
     "type": "REFERRED_PATIENT"},
    {"name": "Anil Deshmukh", "age": 61, "gender": "Male", "city": "Pune", "type": "FAMILY"},
    {"name": "Meera Joshi", "age": 8, "gender": "Female", "city": "Wai", "mobile": "9876500003"},
    {"name": "Prakash Rao", "age": 45, "gender": "Male", "city": "Pune", "type": "MEDICAL_REP"},
    {"name": "Kavita Shinde", "age": 29, "gender": "Female", "city": "Baramati", "mobile": "9876500004",
     "type": "RELATIVE_OF_PATIENT"},
    {"name": "Lata Kulkarni", "age": 70, "gender": "Female", "city": "Pune", "type": "RELATIVE"},
]


def seed_database(engine: QueueEngine | None = None) -> None:
    """Register the demo entries and move a couple of them along."""
    engine = engine or QueueEngine()

    if engine.get_entries():
        print(f"Skipping seed: {len(engine.get_entries())} entries already registered today")
        return

    created = [engine.create_entry(draft) for draft in MOCK_ENTRIES]
    for c, draft in zip(created, MOCK_ENTRIES):
        number = f"#{c.queue_number}" if c.queue_number else "visitor"
        print(f"  Registered {draft['name']} ({number})")

    # First patient is with the doctor, the second one is already done
    engine.change_status(created[0].id, Status.IN_CONSULTATION)
    engine.change_status(created[1].id, Status.IN_CONSULTATION)
    engine.finalize_consultation(created[1].id, {
        "vitals": "BP 130/85, pulse 78",
        "notes": "Follow-up for hypertension, stable",
        "medicines": "Amlodipine 5mg OD x 30 days",
    })
    engine.add_message(created[0].id, "OPERATOR", "Reports from the lab are at the desk")

    snapshot = engine.get_queue()
    print("\nDatabase seeded successfully!")
    print(f"  - {len(snapshot.waiting)} waiting")
    print(f"  - {len(snapshot.in_consultation)} in consultation")
    print(f"  - {len(snapshot.completed)} completed")


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--db", help="sqlite file to seed (defaults to CLINIC_QUEUE_DB)")
    args = parser.parse_args()
    setup_logging()
    seed_database(QueueEngine(db_path=args.db))


if __name__ == "__main__":
    main()
