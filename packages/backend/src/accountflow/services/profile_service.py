"""Profile service — business logic behind the /profile routes.

Learn: Service layer separates business logic from HTTP routing.
Routes resolve the identity and hand it in; the service never looks
at a client-supplied subject id.

Three operations:
- get_profile: None when no record exists (a normal "new identity" answer)
- upsert_profile: idempotent create-or-merge, delegated to the store's
  atomic upsert
- verify_email: flip the identity provider's flag, then mirror it into
  the profile. The provider is authoritative; a failed mirror write is
  logged and reported, not raised, and the client re-issues the call the
  next time it sees a verified identity with a stale mirror.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from accountflow.db.models import Profile
from accountflow.errors import StoreError
from accountflow.gateway.base import Identity, IdentityAdmin
from accountflow.schemas.profile import ProfilePatch
from accountflow.store.profile_store import ProfileStore

logger = structlog.get_logger()


@dataclass
class UpsertResult:
    profile: Profile
    created: bool


@dataclass
class VerificationResult:
    subject_id: str
    mirrored: bool


class ProfileService:
    """Read / merge / write profile records for an authenticated identity."""

    def __init__(self, db: AsyncSession, identity_admin: IdentityAdmin):
        self.db = db
        self.store = ProfileStore(db)
        self.identity_admin = identity_admin

    async def get_profile(self, identity: Identity) -> Optional[Profile]:
        profile = await self.store.find_by_key(identity.subject_id)
        if profile is None:
            logger.info("profile.not_found", subject_id=identity.subject_id)
        return profile

    async def upsert_profile(self, identity: Identity, patch: ProfilePatch) -> UpsertResult:
        """Create the record if absent, else merge-patch the supplied fields.

        Learn: The email defaults to the token's email claim on insert,
        so a client that only sends {"phone": ...} still gets a usable record.
        """
        defaults = {"email": identity.email} if identity.email else None
        profile, created = await self.store.upsert(identity.subject_id, patch, defaults)
        logger.info(
            "profile.upserted",
            subject_id=identity.subject_id,
            created=created,
            fields=sorted(patch.changes()),
        )
        return UpsertResult(profile=profile, created=created)

    async def verify_email(self, identity: Identity) -> VerificationResult:
        """Mark the identity verified at the provider, then mirror the flag.

        GatewayError propagates (nothing was changed). A StoreError after
        the provider call succeeded is swallowed into mirrored=False.
        """
        log = logger.bind(subject_id=identity.subject_id)
        await self.identity_admin.mark_email_verified(identity.subject_id)

        try:
            mirrored = await self.store.set_email_verified(identity.subject_id)
        except StoreError:
            log.warning("profile.mirror_stale", reason="store_error")
            return VerificationResult(subject_id=identity.subject_id, mirrored=False)

        if not mirrored:
            log.info("profile.mirror_skipped", reason="no_profile")
        else:
            log.info("profile.email_verified")
        return VerificationResult(subject_id=identity.subject_id, mirrored=mirrored)
