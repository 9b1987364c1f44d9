"""AuthState — the one value the UI renders from.

Learn: A tagged union of frozen dataclasses. Each transition replaces
the whole value; nothing is ever mutated in place, so a listener that
holds on to a state object sees exactly what was current when it was
notified.

    SignedOut ─signUp─────────────▶ NeedsEmailVerification ─refresh(verified)─▶ Authenticated
        │ └─login(verified)──────────────────────────────────────────────────────▶ │
        └─federated(incomplete)─▶ NeedsAdditionalInfo ─completeProfile─────────▶ │
                                                                                    │
    any ─error─▶ Failed ─dismiss─▶ recover_to | SignedOut     Authenticated ─logout─▶ SignedOut
"""

from dataclasses import dataclass, field
from typing import ClassVar, Optional, Union


@dataclass(frozen=True)
class SignedOut:
    name: ClassVar[str] = "signed_out"


@dataclass(frozen=True)
class SigningIn:
    name: ClassVar[str] = "signing_in"


@dataclass(frozen=True)
class NeedsAdditionalInfo:
    missing_fields: tuple[str, ...] = ()
    name: ClassVar[str] = "needs_additional_info"


@dataclass(frozen=True)
class Authenticating:
    name: ClassVar[str] = "authenticating"


@dataclass(frozen=True)
class Authenticated:
    name: ClassVar[str] = "authenticated"


@dataclass(frozen=True)
class NeedsEmailVerification:
    name: ClassVar[str] = "needs_email_verification"


@dataclass(frozen=True)
class Failed:
    """An operation failed. recover_to is where dismissing the error goes."""

    message: str
    recover_to: Optional["AuthState"] = field(default=None, compare=False)
    name: ClassVar[str] = "failed"


AuthState = Union[
    SignedOut,
    SigningIn,
    NeedsAdditionalInfo,
    Authenticating,
    Authenticated,
    NeedsEmailVerification,
    Failed,
]
