"""Create kv_entries table

Revision ID: 001
Revises: None
Create Date: 2026-10-18

What:  Creates the table behind SqlKeyValueStore.
Why:   Holds the pending Drafts queue and the Gemini model catalog cache,
       each as one JSON document under a fixed key.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "kv_entries",
        sa.Column("key", sa.String(255), primary_key=True, comment="Store key, e.g. 'pendingDrafts'"),
        sa.Column("value", sa.Text(), nullable=False, comment="Serialized value (JSON for every key the app writes)"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            comment="When the value was last written (UTC)",
        ),
    )


def downgrade() -> None:
    op.drop_table("kv_entries")
