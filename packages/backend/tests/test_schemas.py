"""Profile schema tests — merge semantics and required fields."""

import pytest
from pydantic import ValidationError

from accountflow.schemas.profile import (
    EXTENDED_REQUIRED_FIELDS,
    REQUIRED_FIELDS,
    AccountType,
    ProfilePatch,
    ProfileRecord,
    merge_patch,
    missing_required_fields,
)


# ═══════════════════════════════════════════════════════════
# ProfilePatch
# ═══════════════════════════════════════════════════════════


def test_patch_changes_drop_nulls_and_unset():
    patch = ProfilePatch.model_validate({"displayName": "Ana", "phone": None})
    assert patch.changes() == {"display_name": "Ana"}


def test_patch_to_wire_is_camel_case():
    patch = ProfilePatch(birth_date="1990-01-01", account_type=AccountType.ADMIN)
    assert patch.to_wire() == {"birthDate": "1990-01-01", "accountType": "admin"}


def test_patch_ignores_unknown_keys():
    patch = ProfilePatch.model_validate({"subjectId": "x", "favouriteColour": "red"})
    assert patch.is_empty()


def test_patch_rejects_unknown_account_type():
    with pytest.raises(ValidationError):
        ProfilePatch.model_validate({"accountType": "superuser"})


# ═══════════════════════════════════════════════════════════
# merge_patch
# ═══════════════════════════════════════════════════════════


def test_merge_over_nothing_uses_defaults():
    merged = merge_patch(None, ProfilePatch(phone="1"))
    assert merged == {
        "display_name": "",
        "email": "",
        "phone": "1",
        "account_type": AccountType.CLIENT,
        "gender": "",
        "birth_date": "",
    }


def test_merge_keeps_absent_fields():
    current = {"display_name": "Ana", "phone": "1", "subject_id": "ignored"}
    merged = merge_patch(current, ProfilePatch(phone="2"))
    assert merged["display_name"] == "Ana"
    assert merged["phone"] == "2"
    assert "subject_id" not in merged


def test_record_with_patch_returns_new_record():
    record = ProfileRecord(subject_id="s", display_name="Ana")
    updated = record.with_patch(ProfilePatch(phone="1"))
    assert updated is not record
    assert record.phone == ""
    assert updated.phone == "1"
    assert updated.subject_id == "s"
    assert updated.display_name == "Ana"


# ═══════════════════════════════════════════════════════════
# Required fields
# ═══════════════════════════════════════════════════════════


def test_missing_required_fields_basic():
    assert missing_required_fields(ProfileRecord(), REQUIRED_FIELDS) == ("phone",)
    assert missing_required_fields(ProfileRecord(phone="1"), REQUIRED_FIELDS) == ()


def test_whitespace_does_not_count_as_filled():
    assert ProfileRecord(phone="   ").missing_fields(REQUIRED_FIELDS) == ("phone",)


def test_missing_required_fields_extended_keeps_order():
    record = ProfileRecord(gender="f")
    assert record.missing_fields(EXTENDED_REQUIRED_FIELDS) == ("phone", "birth_date")
