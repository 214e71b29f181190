"""add_match_version

Revision ID: 003
Revises: 002
Create Date: 2026-03-16 11:00:00.000000

Add a version counter to matches. Confirming a slot compare-and-swaps it so
two slots of one match cannot be confirmed by concurrent requests.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _column_exists(conn, table_name: str, column_name: str) -> bool:
    """Check if a column exists."""
    return any(col["name"] == column_name for col in sa.inspect(conn).get_columns(table_name))


def upgrade() -> None:
    """Add matches.version."""
    conn = op.get_bind()
    if _column_exists(conn, "matches", "version"):
        return

    op.add_column(
        "matches",
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
    )


def downgrade() -> None:
    """Drop matches.version."""
    conn = op.get_bind()
    if _column_exists(conn, "matches", "version"):
        op.drop_column("matches", "version")
