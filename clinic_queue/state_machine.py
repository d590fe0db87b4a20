"""Entry states, types and the status transition table."""

from dataclasses import dataclass
from enum import Enum


class Status(Enum):
    """Where an entry currently sits in the clinic flow."""
    WAITING = "WAITING"
    IN_CONSULTATION = "IN_CONSULTATION"
    COMPLETED = "COMPLETED"


class Category(Enum):
    """Coarse class deciding queue number eligibility."""
    PATIENT = "PATIENT"
    VISITOR = "VISITOR"


class EntryType(Enum):
    GENERAL_PATIENT = "GENERAL_PATIENT"
    REFERRED_PATIENT = "REFERRED_PATIENT"
    RELATIVE_OF_PATIENT = "RELATIVE_OF_PATIENT"
    VISITOR = "VISITOR"
    RELATIVE = "RELATIVE"
    FAMILY = "FAMILY"
    MEDICAL_REP = "MEDICAL_REP"
    DOCTOR = "DOCTOR"
    SOCIAL = "SOCIAL"


class SenderRole(Enum):
    OPERATOR = "OPERATOR"
    DOCTOR = "DOCTOR"


TYPE_CATEGORY = {
    EntryType.GENERAL_PATIENT: Category.PATIENT,
    EntryType.REFERRED_PATIENT: Category.PATIENT,
    EntryType.RELATIVE_OF_PATIENT: Category.PATIENT,
    EntryType.VISITOR: Category.VISITOR,
    EntryType.RELATIVE: Category.VISITOR,
    EntryType.FAMILY: Category.VISITOR,
    EntryType.MEDICAL_REP: Category.VISITOR,
    EntryType.DOCTOR: Category.VISITOR,
    EntryType.SOCIAL: Category.VISITOR,
}

# Excluded from manual reordering, always shown first by creation time
PINNED_TYPES = frozenset({EntryType.FAMILY, EntryType.RELATIVE})


def category_for(entry_type: EntryType) -> Category:
    return TYPE_CATEGORY[entry_type]


def is_pinned(entry_type: EntryType) -> bool:
    return entry_type in PINNED_TYPES


class PoolEffect(Enum):
    """What a transition does to the ordered WAITING pool."""
    NONE = "none"
    REMOVE = "remove"
    FRONT_INSERT = "front_insert"


class OutTimeEffect(Enum):
    KEEP = "keep"
    SET = "set"
    CLEAR = "clear"


@dataclass(frozen=True)
class Transition:
    """Side effects of moving an entry from one status to another."""
    source: Status
    target: Status
    pool: PoolEffect
    out_time: OutTimeEffect
    # Refused (as a no-op) while consultation intake is paused
    gated_by_intake: bool = False


TRANSITIONS = {
    (Status.WAITING, Status.IN_CONSULTATION): Transition(
        Status.WAITING, Status.IN_CONSULTATION,
        pool=PoolEffect.REMOVE, out_time=OutTimeEffect.KEEP, gated_by_intake=True,
    ),
    (Status.WAITING, Status.COMPLETED): Transition(
        Status.WAITING, Status.COMPLETED,
        pool=PoolEffect.REMOVE, out_time=OutTimeEffect.SET,
    ),
    (Status.IN_CONSULTATION, Status.WAITING): Transition(
        Status.IN_CONSULTATION, Status.WAITING,
        pool=PoolEffect.FRONT_INSERT, out_time=OutTimeEffect.KEEP,
    ),
    (Status.IN_CONSULTATION, Status.COMPLETED): Transition(
        Status.IN_CONSULTATION, Status.COMPLETED,
        pool=PoolEffect.NONE, out_time=OutTimeEffect.SET,
    ),
    (Status.COMPLETED, Status.WAITING): Transition(
        Status.COMPLETED, Status.WAITING,
        pool=PoolEffect.FRONT_INSERT, out_time=OutTimeEffect.CLEAR,
    ),
    (Status.COMPLETED, Status.IN_CONSULTATION): Transition(
        Status.COMPLETED, Status.IN_CONSULTATION,
        pool=PoolEffect.NONE, out_time=OutTimeEffect.CLEAR,
    ),
}


def get_transition(source: Status, target: Status) -> Transition | None:
    """Look up the transition between two statuses.

    Returns None when source and target are the same status; every pair of
    distinct statuses has an entry.
    """
    return TRANSITIONS.get((source, target))
