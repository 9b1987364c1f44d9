"""In-process identity provider for development and tests.

Learn: Stands in for a hosted identity provider. One LocalIdentityProvider
holds the account directory and implements the server-side IdentityAdmin;
any number of LocalCredentialGateway objects (one per client session)
talk to it the way a mobile SDK talks to the hosted service.

Bearer tokens are JWTs signed with settings.token_secret, passwords are
bcrypt hashes. Verification emails are not sent. They land in
provider.outbox, and confirm_email() plays the role of the user
clicking the link.
"""

import uuid
from dataclasses import dataclass, field
from typing import Optional

import structlog

from accountflow.auth.passwords import MIN_PASSWORD_LENGTH, hash_password, verify_password
from accountflow.auth.tokens import (
    FEDERATED_TOKEN,
    TokenError,
    create_id_token,
    verify_token,
)
from accountflow.errors import GatewayError
from accountflow.gateway.base import (
    EMAIL_ALREADY_IN_USE,
    CredentialGateway,
    FederatedSession,
    Identity,
    IdentityAdmin,
    ProfileHint,
)

logger = structlog.get_logger()


@dataclass
class LocalAccount:
    subject_id: str
    email: str
    password_hash: Optional[str] = None
    email_verified: bool = False
    display_name: str = ""
    providers: set[str] = field(default_factory=set)

    def identity(self) -> Identity:
        return Identity(
            subject_id=self.subject_id,
            email=self.email,
            email_verified=self.email_verified,
        )


@dataclass(frozen=True)
class VerificationEmail:
    subject_id: str
    email: str


class LocalIdentityProvider(IdentityAdmin):
    """Account directory + token issuer."""

    def __init__(self, password_rounds: int = 12):
        self.password_rounds = password_rounds
        self.outbox: list[VerificationEmail] = []
        self._accounts: dict[str, LocalAccount] = {}
        self._by_email: dict[str, str] = {}

    # ─── Directory ───────────────────────────────────────

    def create_account(self, email: str, password: str) -> LocalAccount:
        email = email.strip().lower()
        if "@" not in email:
            raise GatewayError("invalid-email", "The email address is badly formatted.")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise GatewayError(
                "weak-password",
                f"Password should be at least {MIN_PASSWORD_LENGTH} characters.",
            )
        if email in self._by_email:
            raise GatewayError(
                EMAIL_ALREADY_IN_USE,
                "The email address is already in use by another account.",
            )

        account = LocalAccount(
            subject_id=uuid.uuid4().hex,
            email=email,
            password_hash=hash_password(password, rounds=self.password_rounds),
            providers={"password"},
        )
        self._accounts[account.subject_id] = account
        self._by_email[email] = account.subject_id
        logger.info("identity.created", subject_id=account.subject_id)
        return account

    def check_password(self, email: str, password: str) -> LocalAccount:
        subject_id = self._by_email.get(email.strip().lower())
        account = self._accounts.get(subject_id) if subject_id else None
        if (
            account is None
            or account.password_hash is None
            or not verify_password(password, account.password_hash)
        ):
            raise GatewayError("invalid-credential", "The email or password is incorrect.")
        return account

    def link_federated(self, token: str) -> tuple[LocalAccount, ProfileHint]:
        """Sign in with a federated credential, creating or linking the account.

        Federated providers vouch for the email, so the account comes out verified.
        """
        try:
            claims = verify_token(token, expected_type=FEDERATED_TOKEN)
        except TokenError as e:
            raise GatewayError("invalid-credential", str(e))

        email = str(claims.get("email", "")).strip().lower()
        if not email:
            raise GatewayError("invalid-credential", "Federated credential has no email")
        hint = ProfileHint(display_name=str(claims.get("name", "")), email=email)

        subject_id = self._by_email.get(email)
        if subject_id is None:
            account = LocalAccount(subject_id=uuid.uuid4().hex, email=email)
            self._accounts[account.subject_id] = account
            self._by_email[email] = account.subject_id
            logger.info("identity.created", subject_id=account.subject_id, provider="federated")
        else:
            account = self._accounts[subject_id]

        account.providers.add("federated")
        account.email_verified = True
        account.display_name = account.display_name or hint.display_name
        return account, hint

    def get_account(self, subject_id: str) -> LocalAccount:
        account = self._accounts.get(subject_id)
        if account is None:
            raise GatewayError("user-not-found", "There is no user record for this identifier.")
        return account

    def issue_id_token(self, subject_id: str) -> str:
        account = self.get_account(subject_id)
        return create_id_token(account.subject_id, account.email, account.email_verified)

    def queue_verification_email(self, subject_id: str) -> None:
        account = self.get_account(subject_id)
        self.outbox.append(VerificationEmail(subject_id=subject_id, email=account.email))
        logger.info("identity.verification_email_queued", subject_id=subject_id)

    def confirm_email(self, subject_id: str) -> None:
        """The user followed the verification link (out-of-band)."""
        self.get_account(subject_id).email_verified = True

    # ─── IdentityAdmin ───────────────────────────────────

    async def verify_bearer_token(self, token: str) -> Identity:
        try:
            claims = verify_token(token)
        except TokenError as e:
            raise GatewayError("invalid-token", str(e))
        account = self._accounts.get(claims["sub"])
        if account is None:
            account = self._adopt(claims)
        return account.identity()

    def _adopt(self, claims: dict) -> LocalAccount:
        """Register an identity first seen in a token signed with our secret.

        Tokens minted by another process sharing token_secret (for example
        `accountflow token mint`) are as good as our own.
        """
        email = str(claims.get("email", "")).strip().lower()
        account = LocalAccount(
            subject_id=claims["sub"],
            email=email,
            email_verified=bool(claims.get("email_verified", False)),
        )
        self._accounts[account.subject_id] = account
        if email and email not in self._by_email:
            self._by_email[email] = account.subject_id
        logger.info("identity.adopted", subject_id=account.subject_id)
        return account

    async def mark_email_verified(self, subject_id: str) -> None:
        self.confirm_email(subject_id)
        logger.info("identity.email_marked_verified", subject_id=subject_id)


class LocalCredentialGateway(CredentialGateway):
    """Client SDK view of a LocalIdentityProvider.

    Learn: Like a real SDK, the gateway caches the signed-in identity.
    email_verified on that cache only changes when reload_verification_status()
    is called, even if the user verified from another device.
    """

    def __init__(self, provider: LocalIdentityProvider):
        self.provider = provider
        self._session: Optional[Identity] = None

    def _require_session(self) -> Identity:
        if self._session is None:
            raise GatewayError("no-current-user", "No user is signed in.")
        return self._session

    async def create_identity(self, email: str, password: str) -> Identity:
        self._session = self.provider.create_account(email, password).identity()
        return self._session

    async def authenticate(self, email: str, password: str) -> Identity:
        self._session = self.provider.check_password(email, password).identity()
        return self._session

    async def exchange_federated_token(self, token: str) -> FederatedSession:
        account, hint = self.provider.link_federated(token)
        self._session = account.identity()
        return FederatedSession(identity=self._session, profile_hint=hint)

    async def current_session(self) -> Optional[Identity]:
        return self._session

    async def send_verification_email(self) -> None:
        self.provider.queue_verification_email(self._require_session().subject_id)

    async def reload_verification_status(self) -> bool:
        session = self._require_session()
        self._session = self.provider.get_account(session.subject_id).identity()
        return self._session.email_verified

    async def sign_out(self) -> None:
        self._session = None

    async def mint_bearer_token(self) -> str:
        return self.provider.issue_id_token(self._require_session().subject_id)
