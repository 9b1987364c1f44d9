"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
One table, keyed by the identity provider's user id. Column types are
portable (String/Boolean/DateTime) so the same model runs on PostgreSQL
in production and SQLite in tests.

Key concepts:
- subject_id is the primary key and is never updated after insert
- server_default for DB-level defaults (work even for raw SQL inserts)
- email_verified is a cache of the identity provider's flag, written
  only by the explicit verification-confirmation call
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String, func, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Profile(Base):
    """Application profile for one identity.

    Learn: Absence of a row is meaningful: it means "new identity,
    profile not written yet", not an error.
    """

    __tablename__ = "profiles"

    subject_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False, server_default="")
    email: Mapped[str] = mapped_column(String(320), nullable=False, server_default="")
    phone: Mapped[str] = mapped_column(String(50), nullable=False, server_default="")
    account_type: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default="client"
    )
    gender: Mapped[str] = mapped_column(String(50), nullable=False, server_default="")
    birth_date: Mapped[str] = mapped_column(String(50), nullable=False, server_default="")
    email_verified_mirror: Mapped[bool] = mapped_column(
        "email_verified", Boolean, nullable=False, server_default=text("false")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<Profile {self.subject_id} type={self.account_type}>"
