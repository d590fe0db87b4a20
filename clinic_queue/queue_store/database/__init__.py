from .connection import get_connection, init_database, transaction
from .entry_repository import Entry, EntryRepository
from .message_repository import ChatMessage, MessageRepository
from .person_repository import Person, PersonRepository

__all__ = [
    "get_connection", "init_database", "transaction",
    "Entry", "EntryRepository",
    "ChatMessage", "MessageRepository",
    "Person", "PersonRepository",
]
