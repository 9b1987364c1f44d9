"""Profile store adapter — get / atomic upsert / mirror flag by subject id.

Learn: The upsert never reads a row and writes it back from Python.
Two statements, each atomic at the row level:

1. INSERT ... ON CONFLICT (subject_id) DO NOTHING RETURNING subject_id
   A returned row means we created the record (defaults + patch).
2. Otherwise UPDATE profiles SET <only the patched columns>.
   The database applies the SET against the current row, so two
   concurrent patches touching different columns both survive.

PostgreSQL and SQLite both speak ON CONFLICT; we pick the dialect's
insert() construct at runtime so the same code serves production and tests.
"""

from typing import Any, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from accountflow.db.models import Profile, utcnow
from accountflow.errors import StoreError
from accountflow.schemas.profile import AccountType, ProfilePatch, merge_patch

logger = structlog.get_logger()

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _column_values(fields: dict[str, Any]) -> dict[str, Any]:
    """Enums are stored by value."""
    return {
        name: (value.value if isinstance(value, AccountType) else value)
        for name, value in fields.items()
    }


class ProfileStore:
    """Persistence for Profile rows, scoped to a single session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        try:
            return _INSERTS[dialect]
        except KeyError:
            raise StoreError(f"Unsupported profile store dialect: {dialect}")

    async def _fetch(self, subject_id: str) -> Optional[Profile]:
        result = await self.db.execute(
            select(Profile)
            .where(Profile.subject_id == subject_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    # ─── Read ────────────────────────────────────────────

    async def find_by_key(self, subject_id: str) -> Optional[Profile]:
        """Return the profile for subject_id, or None if none exists."""
        try:
            return await self._fetch(subject_id)
        except SQLAlchemyError as e:
            logger.exception("store.read_failed", subject_id=subject_id)
            raise StoreError("Failed to read profile") from e

    # ─── Write ───────────────────────────────────────────

    async def upsert(
        self,
        subject_id: str,
        patch: ProfilePatch,
        defaults: Optional[dict[str, Any]] = None,
    ) -> tuple[Profile, bool]:
        """Create-if-absent, else merge-patch. Returns (profile, created).

        defaults fill fields the patch leaves out, for inserts only.
        """
        insert = self._insert()
        row = _column_values(merge_patch(defaults, patch))
        changes = _column_values(patch.changes())

        try:
            result = await self.db.execute(
                insert(Profile)
                .values(subject_id=subject_id, **row)
                .on_conflict_do_nothing(index_elements=[Profile.subject_id])
                .returning(Profile.subject_id)
            )
            created = result.scalar_one_or_none() is not None

            if not created and changes:
                await self.db.execute(
                    update(Profile)
                    .where(Profile.subject_id == subject_id)
                    .values(**changes, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )

            profile = await self._fetch(subject_id)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception("store.upsert_failed", subject_id=subject_id)
            raise StoreError("Failed to write profile") from e

        if profile is None:
            raise StoreError("Profile vanished during upsert")
        return profile, created

    async def set_email_verified(self, subject_id: str, verified: bool = True) -> bool:
        """Write the verification mirror. Returns False if no profile exists."""
        try:
            result = await self.db.execute(
                update(Profile)
                .where(Profile.subject_id == subject_id)
                .values({Profile.email_verified_mirror: verified, Profile.updated_at: utcnow()})
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception("store.mirror_write_failed", subject_id=subject_id)
            raise StoreError("Failed to write verification mirror") from e
        return result.rowcount > 0
