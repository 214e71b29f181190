"""add_confirmed_application_index

Revision ID: 002
Revises: 001
Create Date: 2026-03-09 09:30:00.000000

Add a partial unique index so a slot can never hold two confirmed
applications, even if two confirmations race past the slot version check.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import text


# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

INDEX_NAME = "uq_applications_slot_confirmed"


def _index_exists(conn, table_name: str, index_name: str) -> bool:
    """Check if an index exists."""
    return any(ix["name"] == index_name for ix in sa.inspect(conn).get_indexes(table_name))


def upgrade() -> None:
    """Create the partial unique index on confirmed applications."""
    conn = op.get_bind()
    if _index_exists(conn, "applications", INDEX_NAME):
        return

    op.create_index(
        INDEX_NAME,
        "applications",
        ["slot_id"],
        unique=True,
        postgresql_where=text("status = 'confirmed'"),
        sqlite_where=text("status = 'confirmed'"),
    )


def downgrade() -> None:
    """Drop the partial unique index."""
    conn = op.get_bind()
    if _index_exists(conn, "applications", INDEX_NAME):
        op.drop_index(INDEX_NAME, table_name="applications")
