"""sync queue backoff

Revision ID: 0002_sync_queue_backoff
Revises: 0001_init
Create Date: 2026-10-18 12:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

revision = "0002_sync_queue_backoff"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def _column_names(conn, table: str) -> set[str]:
    rows = conn.execute(sa.text(f"PRAGMA table_info({table})")).fetchall()
    return {row[1] for row in rows}


def upgrade() -> None:
    conn = op.get_bind()
    if "next_retry_at" not in _column_names(conn, "sync_queue"):
        op.execute("ALTER TABLE sync_queue ADD COLUMN next_retry_at DATETIME NULL")


def downgrade() -> None:
    with op.batch_alter_table("sync_queue") as batch_op:
        batch_op.drop_column("next_retry_at")
