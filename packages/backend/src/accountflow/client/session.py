"""Session controller — the client-side authentication state machine.

Learn: This is the CORE of the client. It reconciles three independently
failing systems into one AuthState:

1. the identity provider session (CredentialGateway)
2. the federated sign-in SDK (FederatedSignIn)
3. the profile record held by the Profile Service (ProfileClient)

Rules every operation follows:
- Guard: each operation declares the states it may start from
  (ALLOWED_SOURCES). Anything else raises PreconditionError and leaves
  the state alone.
- Ticket: each operation takes a monotonically increasing ticket. When
  it finishes, its result is applied only if no newer operation started
  in the meantime, so a slow response can never resurrect an obsolete
  state (e.g. a login that completes after the user logged out).
- Terminate: every path ends in exactly one AuthState. Expected failures
  become Failed(message); unexpected ones are logged with a traceback
  and also become Failed.

The profile copy held here is replaced together with the state, never
patched in place.
"""

from typing import Any, Callable, Mapping, Optional, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from accountflow.client.federated import FederatedSignIn
from accountflow.client.state import (
    Authenticated,
    Authenticating,
    AuthState,
    Failed,
    NeedsAdditionalInfo,
    NeedsEmailVerification,
    SignedOut,
    SigningIn,
)
from accountflow.client.transfer import ProfileClient
from accountflow.errors import (
    AccountFlowError,
    GatewayError,
    PreconditionError,
    ValidationError,
)
from accountflow.gateway.base import EMAIL_ALREADY_IN_USE, CredentialGateway, Identity
from accountflow.schemas.profile import (
    ProfilePatch,
    ProfileRecord,
    default_required_fields,
)

logger = structlog.get_logger()

Listener = Callable[[AuthState], None]
ProfileFields = Union[ProfilePatch, Mapping[str, Any], None]


# ═══════════════════════════════════════════════════════════
# State Machine
# ═══════════════════════════════════════════════════════════

ALLOWED_SOURCES: dict[str, tuple[type, ...]] = {
    "restore_session": (SignedOut,),
    "sign_up": (SignedOut, Failed),
    "login": (SignedOut, Failed),
    "sign_in_with_federated_provider": (SignedOut, Failed),
    "complete_profile": (NeedsAdditionalInfo,),
    "refresh_verification_status": (NeedsEmailVerification,),
    "resend_verification_email": (NeedsEmailVerification,),
    "update_profile": (Authenticated,),
    "dismiss_error": (Failed,),
    # logout is allowed from every state
}


def to_patch(fields: ProfileFields) -> ProfilePatch:
    """Coerce caller-supplied fields into a ProfilePatch, validating locally."""
    if fields is None:
        return ProfilePatch()
    if isinstance(fields, ProfilePatch):
        return fields
    try:
        return ProfilePatch.model_validate(dict(fields))
    except PydanticValidationError as e:
        problems = []
        for err in e.errors():
            field = ".".join(str(part) for part in err["loc"])
            if field in ("account_type", "accountType"):
                problems.append(f"Invalid account type: {err.get('input')!r}")
            else:
                problems.append(f"{field}: {err['msg']}")
        raise ValidationError("; ".join(problems)) from e


class SessionController:
    """Drives sign-up, login, verification, and profile completion."""

    def __init__(
        self,
        gateway: CredentialGateway,
        profiles: ProfileClient,
        federated: Optional[FederatedSignIn] = None,
        required_fields: Optional[tuple[str, ...]] = None,
    ):
        self.gateway = gateway
        self.profiles = profiles
        self.federated = federated
        self.required_fields = required_fields or default_required_fields()

        self._state: AuthState = SignedOut()
        self._profile = ProfileRecord()
        self._profile_stored = False
        self._listeners: list[Listener] = []
        self._ticket = 0

    # ─── Observation ─────────────────────────────────────

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def profile(self) -> ProfileRecord:
        return self._profile

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener with every new state. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ─── Transition plumbing ─────────────────────────────

    def _guard(self, operation: str) -> None:
        allowed = ALLOWED_SOURCES[operation]
        if not isinstance(self._state, allowed):
            logger.warning("session.precondition_failed", operation=operation, state=self._state.name)
            raise PreconditionError(operation, self._state.name)

    def _begin(self) -> int:
        self._ticket += 1
        return self._ticket

    def _set(self, state: AuthState) -> None:
        previous, self._state = self._state, state
        logger.info("session.state_changed", from_state=previous.name, to_state=state.name)
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("session.listener_failed", state=state.name)

    def _finish(
        self,
        ticket: int,
        state: AuthState,
        profile: Optional[ProfileRecord] = None,
        stored: Optional[bool] = None,
    ) -> AuthState:
        """Apply an operation's result unless a newer operation superseded it."""
        if ticket != self._ticket:
            logger.info("session.stale_result", ticket=ticket, current=self._ticket, dropped=state.name)
            return self._state
        if profile is not None:
            self._profile = profile
        if stored is not None:
            self._profile_stored = stored
        self._set(state)
        return state

    def _fail(
        self,
        ticket: int,
        operation: str,
        error: Exception,
        recover_to: Optional[AuthState] = None,
    ) -> AuthState:
        if isinstance(error, AccountFlowError):
            message = error.message
            logger.warning(
                f"session.{operation}_failed",
                error_type=type(error).__name__,
                error=message,
            )
        else:
            message = "Something went wrong. Please try again."
            logger.exception(f"session.{operation}_crashed", exc_info=error)
        return self._finish(ticket, Failed(message, recover_to=recover_to))

    async def _drop_superseded_session(self, ticket: int) -> None:
        """Sign the gateway out if a logout overtook this sign-in.

        The provider call may have opened a session after logout ran;
        without this a later restore_session would bring it back.
        """
        if ticket == self._ticket or not isinstance(self._state, SignedOut):
            return
        try:
            await self.gateway.sign_out()
        except Exception as e:
            logger.warning("session.stale_sign_out_failed", error=str(e))
        else:
            logger.info("session.stale_session_dropped", ticket=ticket)

    async def _load_profile(self, identity: Identity) -> Optional[ProfileRecord]:
        """Fetch the stored profile; repair a stale verification mirror.

        Learn: The service's email_verified column is a cache of the
        provider's flag. When we hold a verified identity but the record
        still says unverified, we ask the service to re-mirror. Best-effort:
        a failure here only means the cache stays stale a while longer.
        """
        record = await self.profiles.fetch_profile()
        if record is None or not identity.email_verified or record.email_verified_mirror:
            return record
        try:
            result = await self.profiles.confirm_email_verified()
        except AccountFlowError as e:
            logger.warning("session.mirror_repair_failed", error=e.message)
            return record
        if result.mirrored:
            record = record.model_copy(update={"email_verified_mirror": True})
        return record

    # ─── Startup ─────────────────────────────────────────

    async def restore_session(self) -> AuthState:
        """Rebuild state from the provider's persisted session at startup."""
        self._guard("restore_session")
        ticket = self._begin()
        try:
            identity = await self.gateway.current_session()
            if identity is None:
                return self._finish(ticket, SignedOut())
            local = ProfileRecord(subject_id=identity.subject_id, email=identity.email)
            if not identity.email_verified:
                return self._finish(ticket, NeedsEmailVerification(), profile=local, stored=False)

            record = await self._load_profile(identity)
            return self._finish(
                ticket,
                Authenticated(),
                profile=record or local,
                stored=record is not None,
            )
        except Exception as e:
            return self._fail(ticket, "restore_session", e)

    # ─── Email / password ────────────────────────────────

    async def sign_up(
        self,
        email: str,
        password: str,
        profile_fields: ProfileFields = None,
    ) -> AuthState:
        """Create a credential, write the initial profile, send verification.

        Learn: No rollback if the profile write fails after the credential
        exists. Instead the flow is resumable: a retry with the same email and
        password signs in to the unverified, profile-less credential left
        behind and reuses its subject id; the service's upsert is idempotent.
        """
        self._guard("sign_up")
        ticket = self._begin()
        try:
            if not email.strip() or not password:
                raise ValidationError("Email and password are required")
            patch = to_patch(profile_fields)
        except ValidationError as e:
            return self._fail(ticket, "sign_up", e)

        self._set(SigningIn())
        try:
            email = email.strip()
            try:
                identity = await self.gateway.create_identity(email, password)
            except GatewayError as e:
                if e.code != EMAIL_ALREADY_IN_USE:
                    raise
                identity = await self._resume_sign_up(email, password, e)

            record = await self.profiles.upsert_profile(
                ProfilePatch(**{**patch.changes(), "email": email})
            )
            await self.gateway.send_verification_email()
            logger.info("session.signed_up", subject_id=identity.subject_id)
            return self._finish(ticket, NeedsEmailVerification(), profile=record, stored=True)
        except Exception as e:
            return self._fail(ticket, "sign_up", e)
        finally:
            await self._drop_superseded_session(ticket)

    async def _resume_sign_up(self, email: str, password: str, in_use: GatewayError) -> Identity:
        """Pick up a sign-up whose credential exists but whose profile was never written.

        Only the owner of the credential (right password) may resume, and
        only while the identity is unverified and has no profile. Anything
        else is a genuine "email already in use".
        """
        try:
            identity = await self.gateway.authenticate(email, password)
        except GatewayError:
            raise in_use
        if identity.email_verified or await self.profiles.fetch_profile() is not None:
            await self.gateway.sign_out()
            raise in_use
        logger.info("session.sign_up_resumed", subject_id=identity.subject_id)
        return identity

    async def login(self, email: str, password: str) -> AuthState:
        self._guard("login")
        ticket = self._begin()
        self._set(SigningIn())
        try:
            identity = await self.gateway.authenticate(email, password)
            local = ProfileRecord(subject_id=identity.subject_id, email=identity.email)
            if not identity.email_verified:
                return self._finish(ticket, NeedsEmailVerification(), profile=local, stored=False)

            # A missing record is not fatal here: the user is still signed in.
            record = await self._load_profile(identity)
            logger.info("session.logged_in", subject_id=identity.subject_id, has_profile=record is not None)
            return self._finish(
                ticket,
                Authenticated(),
                profile=record or local,
                stored=record is not None,
            )
        except Exception as e:
            return self._fail(ticket, "login", e)
        finally:
            await self._drop_superseded_session(ticket)

    # ─── Federated ───────────────────────────────────────

    async def sign_in_with_federated_provider(self) -> AuthState:
        """Federated sign-in, then decide whether the profile is complete."""
        self._guard("sign_in_with_federated_provider")
        ticket = self._begin()
        self._set(SigningIn())
        try:
            if self.federated is None:
                raise GatewayError("federated-unavailable", "Federated sign-in is not configured")
            credential = await self.federated.sign_in()
            session = await self.gateway.exchange_federated_token(credential.id_token)
            identity = session.identity

            record = await self._load_profile(identity)
            if record is not None:
                missing = record.missing_fields(self.required_fields)
                state = NeedsAdditionalInfo(missing) if missing else Authenticated()
                logger.info("session.federated_signed_in", subject_id=identity.subject_id, missing=list(missing))
                return self._finish(ticket, state, profile=record, stored=True)

            # New identity: seed the local copy from the federated profile.
            local = ProfileRecord(
                subject_id=identity.subject_id,
                display_name=session.profile_hint.display_name or credential.display_name,
                email=session.profile_hint.email or credential.email or identity.email,
            )
            missing = local.missing_fields(self.required_fields)
            logger.info("session.federated_new_identity", subject_id=identity.subject_id)
            return self._finish(ticket, NeedsAdditionalInfo(missing), profile=local, stored=False)
        except Exception as e:
            return self._fail(ticket, "federated_sign_in", e)
        finally:
            await self._drop_superseded_session(ticket)

    async def complete_profile(self, fields: ProfileFields) -> AuthState:
        """Fill the missing required fields, upsert, and confirm by re-fetching."""
        self._guard("complete_profile")
        ticket = self._begin()
        origin = self._state
        try:
            patch = to_patch(fields)
            merged = self._profile.with_patch(patch)
            missing = merged.missing_fields(self.required_fields)
            if missing:
                raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        except ValidationError as e:
            return self._fail(ticket, "complete_profile", e, recover_to=origin)

        self._set(Authenticating())
        try:
            if self._profile_stored:
                body = patch
            else:
                # First write for this identity: carry what the federated
                # profile told us along with the new fields.
                seed = {
                    name: value
                    for name, value in (("display_name", merged.display_name), ("email", merged.email))
                    if value
                }
                body = ProfilePatch(**{**seed, **patch.changes()})

            written = await self.profiles.upsert_profile(body)
            # The re-fetch can miss a write that has not propagated; fall
            # back to what the upsert returned.
            identity = await self.gateway.current_session()
            confirmed = await self._load_profile(identity) if identity is not None else None
            record = confirmed or written
            logger.info("session.profile_completed", subject_id=record.subject_id)
            return self._finish(ticket, Authenticated(), profile=record, stored=True)
        except Exception as e:
            return self._fail(ticket, "complete_profile", e, recover_to=origin)

    # ─── Verification ────────────────────────────────────

    async def refresh_verification_status(self) -> AuthState:
        """Re-poll the provider; move to Authenticated once verified."""
        self._guard("refresh_verification_status")
        ticket = self._begin()
        try:
            identity = await self.gateway.current_session()
            if identity is None:
                return self._finish(ticket, SignedOut(), profile=ProfileRecord(), stored=False)

            if not await self.gateway.reload_verification_status():
                logger.info("session.still_unverified", subject_id=identity.subject_id)
                return self._state

            identity = await self.gateway.current_session() or identity
            record = await self._load_profile(identity)
            return self._finish(
                ticket,
                Authenticated(),
                profile=record or self._profile,
                stored=record is not None or self._profile_stored,
            )
        except Exception as e:
            return self._fail(ticket, "refresh_verification", e, recover_to=NeedsEmailVerification())

    async def resend_verification_email(self) -> AuthState:
        """Fire-and-forget resend. Success does not change the state."""
        self._guard("resend_verification_email")
        ticket = self._begin()
        try:
            await self.gateway.send_verification_email()
            logger.info("session.verification_email_resent")
            return self._state
        except Exception as e:
            return self._fail(ticket, "resend_verification", e, recover_to=NeedsEmailVerification())

    # ─── Signed-in ───────────────────────────────────────

    async def update_profile(self, patch: ProfileFields) -> AuthState:
        """Merge-patch the stored profile.

        Learn: A failed edit must not sign the user out. The state stays
        Authenticated and the error is re-raised for the UI to show.
        """
        self._guard("update_profile")
        patch = to_patch(patch)
        ticket = self._begin()
        try:
            record = await self.profiles.upsert_profile(patch)
        except AccountFlowError as e:
            logger.warning("session.update_profile_failed", error=e.message)
            raise
        return self._finish(ticket, Authenticated(), profile=record, stored=True)

    async def logout(self) -> AuthState:
        """Best-effort sign-out everywhere; always ends SignedOut."""
        ticket = self._begin()
        steps = [("gateway", self.gateway.sign_out)]
        if self.federated is not None:
            steps.append(("federated", self.federated.sign_out))
        for name, sign_out in steps:
            try:
                await sign_out()
            except Exception as e:
                logger.warning("session.logout_step_failed", step=name, error=str(e))
        logger.info("session.logged_out")
        return self._finish(ticket, SignedOut(), profile=ProfileRecord(), stored=False)

    def dismiss_error(self) -> AuthState:
        """Leave Failed: back to where the failure said to go, else SignedOut."""
        self._guard("dismiss_error")
        target = self._state.recover_to or SignedOut()
        return self._finish(self._begin(), target)
