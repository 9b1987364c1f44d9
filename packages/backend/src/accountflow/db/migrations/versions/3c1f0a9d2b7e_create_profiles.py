"""create profiles table

The profile store: one row per identity, keyed by the identity
provider's user id. email_verified mirrors the provider's flag.

Revision ID: 3c1f0a9d2b7e
Revises:
Create Date: 2026-10-19 09:12:44.102311
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f0a9d2b7e'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("subject_id", sa.String(length=128), primary_key=True),
        sa.Column("display_name", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=320), nullable=False, server_default=""),
        sa.Column("phone", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("account_type", sa.String(length=20), nullable=False, server_default="client"),
        sa.Column("gender", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("birth_date", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("profiles")
