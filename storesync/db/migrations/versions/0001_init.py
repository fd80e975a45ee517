"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "stores",
        sa.Column("store_id", sa.String(length=36), primary_key=True),
        sa.Column("company_id", sa.String(length=36), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False, server_default=sa.text("'UTC'")),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'ACTIVE'")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "sync_queue",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("store_id", sa.String(length=36), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("operation", sa.String(length=16), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("synced", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("sync_attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default=sa.text("5")),
        sa.Column("last_sync_error", sa.Text(), nullable=True),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("api_endpoint", sa.String(length=255), nullable=True),
        sa.Column("http_status", sa.Integer(), nullable=True),
        sa.Column("response_body", sa.Text(), nullable=True),
        sa.Column("error_category", sa.String(length=16), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_sync_queue_store_id", "sync_queue", ["store_id"])
    op.create_index("ix_sync_queue_entity_type", "sync_queue", ["entity_type"])
    op.create_index("ix_sync_queue_drain", "sync_queue", ["store_id", "synced", "priority", "created_at"])

    op.create_table(
        "sync_log",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("store_id", sa.String(length=36), nullable=False),
        sa.Column("sync_type", sa.String(length=8), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'RUNNING'")),
        sa.Column("outcome", sa.String(length=16), nullable=True),
        sa.Column("records_sent", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("records_succeeded", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("records_failed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=True),
    )
    op.create_index("ix_sync_log_store_id", "sync_log", ["store_id"])
    op.create_index("ix_sync_log_started_at", "sync_log", ["started_at"])

    op.create_table(
        "lottery_games",
        sa.Column("game_id", sa.String(length=36), primary_key=True),
        sa.Column("store_id", sa.String(length=36), nullable=True),
        sa.Column("game_code", sa.String(length=8), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("price", sa.Integer(), nullable=True),
        sa.Column("tickets_per_pack", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'ACTIVE'")),
    )
    op.create_index("ix_lottery_games_store_id", "lottery_games", ["store_id"])

    op.create_table(
        "users",
        sa.Column("user_id", sa.String(length=36), primary_key=True),
        sa.Column("store_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("pin_hash", sa.String(length=255), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
    )
    op.create_index("ix_users_store_id", "users", ["store_id"])

    op.create_table(
        "lottery_business_days",
        sa.Column("day_id", sa.String(length=36), primary_key=True),
        sa.Column("store_id", sa.String(length=36), nullable=False),
        sa.Column("business_date", sa.String(length=10), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'OPEN'")),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("opened_by", sa.String(length=36), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_lottery_business_days_store_id", "lottery_business_days", ["store_id"])
    op.create_index("ix_lottery_business_days_business_date", "lottery_business_days", ["business_date"])


def downgrade() -> None:
    op.drop_index("ix_lottery_business_days_business_date", table_name="lottery_business_days")
    op.drop_index("ix_lottery_business_days_store_id", table_name="lottery_business_days")
    op.drop_table("lottery_business_days")
    op.drop_index("ix_users_store_id", table_name="users")
    op.drop_table("users")
    op.drop_index("ix_lottery_games_store_id", table_name="lottery_games")
    op.drop_table("lottery_games")
    op.drop_index("ix_sync_log_started_at", table_name="sync_log")
    op.drop_index("ix_sync_log_store_id", table_name="sync_log")
    op.drop_table("sync_log")
    op.drop_index("ix_sync_queue_drain", table_name="sync_queue")
    op.drop_index("ix_sync_queue_entity_type", table_name="sync_queue")
    op.drop_index("ix_sync_queue_store_id", table_name="sync_queue")
    op.drop_table("sync_queue")
    op.drop_table("stores")
