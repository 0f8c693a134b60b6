"""user register

Revision ID: 5c1d2a7e9b40
Revises:
Create Date: 2026-10-17 09:12:44.318205

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5c1d2a7e9b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the member issuance ledger."""
    op.create_table(
        "user_register",
        sa.Column("discord_user_id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("transaction_id", sa.Text(), nullable=True),
        sa.Column("metadata_transaction_id", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("discord_user_id"),
    )


def downgrade() -> None:
    """Drop the member issuance ledger."""
    op.drop_table("user_register")
