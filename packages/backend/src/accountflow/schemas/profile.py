"""Pydantic schemas for the profile transfer protocol.

Learn: One read model (ProfileRecord) and one write model (ProfilePatch)
shared by the service and the client, so both sides agree on the JSON
shape. Keys travel as camelCase (subjectId, displayName, birthDate);
the service also accepts snake_case on input.

Merge-patch semantics live in merge_patch() and nowhere else: a field
absent from the patch (or sent as null) keeps its current value, a
field present replaces it.
"""

from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from accountflow.config import settings


class AccountType(str, Enum):
    CLIENT = "client"
    STAFF = "staff"
    ADMIN = "admin"


# Field sets — the basic variant only insists on a phone number,
# the extended variant also wants gender and birth date.
PROFILE_FIELDS = ("display_name", "email", "phone", "account_type", "gender", "birth_date")
REQUIRED_FIELDS: tuple[str, ...] = ("phone",)
EXTENDED_REQUIRED_FIELDS: tuple[str, ...] = ("phone", "gender", "birth_date")

PROFILE_DEFAULTS: dict[str, Any] = {
    "display_name": "",
    "email": "",
    "phone": "",
    "account_type": AccountType.CLIENT,
    "gender": "",
    "birth_date": "",
}


def default_required_fields() -> tuple[str, ...]:
    """Required-field set for the configured profile variant."""
    return EXTENDED_REQUIRED_FIELDS if settings.extended_profile else REQUIRED_FIELDS


_wire_config = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    from_attributes=True,
)


class ProfilePatch(BaseModel):
    """Write model — every field optional, only supplied fields change.

    Unknown keys are ignored; in particular a client-supplied subjectId
    never reaches the store.
    """

    display_name: Optional[str] = Field(None, max_length=200)
    email: Optional[str] = Field(None, max_length=320)
    phone: Optional[str] = Field(None, max_length=50)
    account_type: Optional[AccountType] = None
    gender: Optional[str] = Field(None, max_length=50)
    birth_date: Optional[str] = Field(None, max_length=50)

    model_config = {**_wire_config, "extra": "ignore"}

    def changes(self) -> dict[str, Any]:
        """Fields this patch actually sets (null means not supplied)."""
        return {
            name: value
            for name, value in self.model_dump(exclude_unset=True).items()
            if value is not None
        }

    def to_wire(self) -> dict[str, Any]:
        """camelCase JSON body with only the supplied fields."""
        return {
            to_camel(name): (value.value if isinstance(value, AccountType) else value)
            for name, value in self.changes().items()
        }

    def is_empty(self) -> bool:
        return not self.changes()


class ProfileRecord(BaseModel):
    """Read model — the full stored profile."""

    subject_id: str = ""
    display_name: str = ""
    email: str = ""
    phone: str = ""
    account_type: AccountType = AccountType.CLIENT
    gender: str = ""
    birth_date: str = ""
    email_verified_mirror: bool = False

    model_config = {**_wire_config, "frozen": True}

    def with_patch(self, patch: ProfilePatch) -> "ProfileRecord":
        """Return a new record with the patch merged in."""
        merged = merge_patch(self.model_dump(include=set(PROFILE_FIELDS)), patch)
        return self.model_copy(update=merged)

    def missing_fields(self, required: tuple[str, ...]) -> tuple[str, ...]:
        return missing_required_fields(self, required)


class EmailVerificationRead(BaseModel):
    """Response for POST /profile/verify-email."""

    subject_id: str
    email_verified: bool = True
    mirrored: bool

    model_config = _wire_config


def merge_patch(current: Optional[Mapping[str, Any]], patch: ProfilePatch) -> dict[str, Any]:
    """Merge a patch over current field values (or defaults when absent).

    Returns the complete field dict for the resulting record. This is
    the single definition of merge semantics: the store uses it to
    build inserted rows, the client uses it for its local copy.
    """
    merged = dict(PROFILE_DEFAULTS)
    if current:
        merged.update({k: v for k, v in current.items() if k in PROFILE_DEFAULTS})
    merged.update(patch.changes())
    return merged


def missing_required_fields(record: ProfileRecord, required: tuple[str, ...]) -> tuple[str, ...]:
    """Names of required fields that are empty on the record, in order."""
    return tuple(name for name in required if not str(getattr(record, name, "") or "").strip())
