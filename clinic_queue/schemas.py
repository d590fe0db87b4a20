"""Input models for queue commands, validated with Pydantic."""

import re

import pydantic
from pydantic import BaseModel, Field, field_validator

from clinic_queue.errors import ValidationError
from clinic_queue.state_machine import EntryType, SenderRole

GENDERS = ("Male", "Female", "Other")


def _strip_or_none(v):
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


def _normalize_gender(v):
    if isinstance(v, str):
        for g in GENDERS:
            if v.strip().lower() in (g.lower(), g[0].lower()):
                return g
    return v


def _normalize_mobile(v):
    if not v:
        return None
    digits = re.sub(r"\D", "", str(v))
    return digits or None


def _normalize_type(v):
    if isinstance(v, str):
        return v.strip().upper().replace(" ", "_").replace("-", "_")
    return v


class EntryDraft(BaseModel):
    """Registration form for a new queue entry."""

    name: str = Field(..., min_length=1, description="Full name as shown on the queue")
    age: int = Field(..., ge=0, le=150)
    gender: str
    city: str = Field(..., min_length=1)
    mobile: str | None = Field(None, description="Contact number, digits only")
    type: EntryType = EntryType.GENERAL_PATIENT
    person_id: str | None = Field(None, description="Existing longitudinal person record")

    @field_validator("name", "city", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip_or_none(v)

    @field_validator("gender", mode="before")
    @classmethod
    def normalize_gender(cls, v):
        return _normalize_gender(v)

    @field_validator("gender")
    @classmethod
    def check_gender(cls, v):
        if v not in GENDERS:
            raise ValueError(f"gender must be one of {', '.join(GENDERS)}")
        return v

    @field_validator("mobile", mode="before")
    @classmethod
    def normalize_mobile(cls, v):
        return _normalize_mobile(v)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        return _normalize_type(v)


class EntryUpdate(BaseModel):
    """Partial edit of an existing entry. Unset fields are left alone."""

    name: str | None = Field(None, min_length=1)
    age: int | None = Field(None, ge=0, le=150)
    gender: str | None = None
    city: str | None = Field(None, min_length=1)
    mobile: str | None = None
    type: EntryType | None = None
    notes: str | None = None
    medicines: str | None = None
    vitals: str | None = None

    @field_validator("name", "city", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip_or_none(v)

    @field_validator("gender", mode="before")
    @classmethod
    def normalize_gender(cls, v):
        return _normalize_gender(v)

    @field_validator("gender")
    @classmethod
    def check_gender(cls, v):
        if v is not None and v not in GENDERS:
            raise ValueError(f"gender must be one of {', '.join(GENDERS)}")
        return v

    @field_validator("mobile", mode="before")
    @classmethod
    def normalize_mobile(cls, v):
        return _normalize_mobile(v)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        return _normalize_type(v)


class ClinicalFields(BaseModel):
    """Consultation output saved when a doctor finalizes a visit."""

    vitals: str | None = Field(None, description="Free-text vitals, e.g. BP 120/80, pulse 72")
    notes: str | None = Field(None, description="Diagnosis and examination notes")
    medicines: str | None = Field(None, description="Prescription")


class ChatMessageIn(BaseModel):
    sender: SenderRole
    text: str = Field(..., min_length=1)

    @field_validator("sender", mode="before")
    @classmethod
    def normalize_sender(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("text", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip_or_none(v)


def parse(model: type[BaseModel], data) -> BaseModel:
    """Validate raw input into a model, raising the engine's ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(problems) from e
