"""Identity provider contracts.

Learn: The identity provider is an external system. We only consume it
through two narrow interfaces:

- CredentialGateway: the client SDK surface (create/authenticate
  credentials, federated token exchange, session state, verification
  emails, minting bearer tokens). Used by the SessionController.
- IdentityAdmin: the server-side admin surface (verify a bearer token,
  flip the email-verified flag). Used by the Profile Service.

Every method fails with GatewayError(code, message).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

# GatewayError codes the client reacts to (others are shown as-is).
EMAIL_ALREADY_IN_USE = "email-already-in-use"


@dataclass(frozen=True)
class Identity:
    """The provider's authoritative view of a user. Read-only to us."""

    subject_id: str
    email: str = ""
    email_verified: bool = False


@dataclass(frozen=True)
class ProfileHint:
    """Profile details a federated provider shares on sign-in."""

    display_name: str = ""
    email: str = ""


@dataclass(frozen=True)
class FederatedCredential:
    """What the federated sign-in SDK hands back."""

    id_token: str
    email: str = ""
    display_name: str = ""


@dataclass(frozen=True)
class FederatedSession:
    """Result of exchanging a federated credential for a provider session."""

    identity: Identity
    profile_hint: ProfileHint = field(default_factory=ProfileHint)


class CredentialGateway(ABC):
    """Client-side identity provider SDK."""

    @abstractmethod
    async def create_identity(self, email: str, password: str) -> Identity:
        ...

    @abstractmethod
    async def authenticate(self, email: str, password: str) -> Identity:
        ...

    @abstractmethod
    async def exchange_federated_token(self, token: str) -> FederatedSession:
        ...

    @abstractmethod
    async def current_session(self) -> Optional[Identity]:
        """The signed-in identity as last seen by the SDK, or None."""

    @abstractmethod
    async def send_verification_email(self) -> None:
        ...

    @abstractmethod
    async def reload_verification_status(self) -> bool:
        """Re-read the identity from the provider; returns email_verified."""

    @abstractmethod
    async def sign_out(self) -> None:
        ...

    @abstractmethod
    async def mint_bearer_token(self) -> str:
        """Short-lived token proving the current identity."""


class IdentityAdmin(ABC):
    """Server-side identity provider API."""

    @abstractmethod
    async def verify_bearer_token(self, token: str) -> Identity:
        ...

    @abstractmethod
    async def mark_email_verified(self, subject_id: str) -> None:
        ...
