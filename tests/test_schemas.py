"""Tests for command input validation."""

import pytest

from clinic_queue.errors import ValidationError
from clinic_queue.schemas import ChatMessageIn, ClinicalFields, EntryDraft, EntryUpdate, parse
from clinic_queue.state_machine import EntryType, SenderRole


class TestEntryDraft:
    """Tests for the registration form."""

    def test_defaults_to_general_patient(self):
        draft = parse(EntryDraft, {"name": "Ravi", "age": 34, "gender": "male", "city": "Pune"})
        assert draft.type == EntryType.GENERAL_PATIENT
        assert draft.gender == "Male"
        assert draft.mobile is None

    @pytest.mark.parametrize("raw,expected", [
        ("F", "Female"),
        ("female", "Female"),
        (" o ", "Other"),
        ("MALE", "Male"),
    ])
    def test_gender_normalization(self, raw, expected):
        draft = parse(EntryDraft, {"name": "X", "age": 1, "gender": raw, "city": "Pune"})
        assert draft.gender == expected

    def test_unknown_gender(self):
        with pytest.raises(ValidationError, match="gender"):
            parse(EntryDraft, {"name": "X", "age": 1, "gender": "unknown", "city": "Pune"})

    def test_type_normalization(self):
        draft = parse(EntryDraft, {"name": "X", "age": 1, "gender": "M", "city": "Pune", "type": "medical rep"})
        assert draft.type == EntryType.MEDICAL_REP

    def test_mobile_keeps_digits_only(self):
        draft = parse(EntryDraft, {
            "name": "X", "age": 1, "gender": "M", "city": "Pune", "mobile": "+91 98765-00001",
        })
        assert draft.mobile == "919876500001"

    @pytest.mark.parametrize("age", [-1, 151, "old"])
    def test_age_bounds(self, age):
        with pytest.raises(ValidationError, match="age"):
            parse(EntryDraft, {"name": "X", "age": age, "gender": "M", "city": "Pune"})

    def test_reports_every_problem(self):
        with pytest.raises(ValidationError) as exc_info:
            parse(EntryDraft, {"gender": "M"})
        for name in ("name", "age", "city"):
            assert name in exc_info.value.reason


class TestOtherModels:
    """Tests for edits, clinical fields and chat input."""

    def test_update_tracks_only_given_fields(self):
        update = parse(EntryUpdate, {"city": "Satara"})
        assert update.model_dump(exclude_unset=True) == {"city": "Satara"}

    def test_clinical_fields_are_optional(self):
        fields = parse(ClinicalFields, {"notes": "Cough"})
        assert fields.model_dump(exclude_none=True) == {"notes": "Cough"}

    def test_chat_sender_normalized(self):
        message = parse(ChatMessageIn, {"sender": " doctor ", "text": " ok "})
        assert message.sender == SenderRole.DOCTOR
        assert message.text == "ok"

    def test_model_instance_passes_through(self):
        fields = ClinicalFields(notes="x")
        assert parse(ClinicalFields, fields) is fields
