"""create_idm_cache_table

Revision ID: 001
Revises:
Create Date: 2026-10-16 10:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the idm_cache table and its expiry index."""
    op.create_table(
        "idm_cache",
        sa.Column("segment", sa.Text(), nullable=False),
        sa.Column("key_hash", sa.Text(), nullable=False),
        sa.Column("encrypted_value", sa.Text(), nullable=False),
        sa.Column("nonce", sa.Text(), nullable=False),
        sa.Column("expires_at_ms", sa.BigInteger(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("segment", "key_hash"),
    )

    # Expired rows are purged by range scans on the expiry column
    op.create_index("idm_cache_expires_at_idx", "idm_cache", ["expires_at_ms"])


def downgrade() -> None:
    """Drop the idm_cache table."""
    op.drop_index("idm_cache_expires_at_idx", table_name="idm_cache")
    op.drop_table("idm_cache")
