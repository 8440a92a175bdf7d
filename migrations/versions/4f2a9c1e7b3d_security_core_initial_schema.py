"""Security core: initial schema

Revision ID: 4f2a9c1e7b3d
Revises:
Create Date: 2026-10-19 10:12:41.118302

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4f2a9c1e7b3d'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("username", sa.String(length=80), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("account_locked_until", sa.DateTime(), nullable=True),
        sa.Column("two_factor_enabled", sa.Boolean(), nullable=False),
        sa.Column("two_factor_secret", sa.String(length=64), nullable=True),
        sa.Column("recovery_code_hashes", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_account_locked_until", "users", ["account_locked_until"])

    op.create_table(
        "security_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("ip", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=255), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
    )
    op.create_index("ix_security_events_created_at", "security_events", ["created_at"])
    op.create_index("ix_security_events_event_type", "security_events", ["event_type"])
    op.create_index("ix_security_events_user_id", "security_events", ["user_id"])
    op.create_index("ix_security_events_ip", "security_events", ["ip"])

    op.create_table(
        "blocked_ips",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ip", sa.String(length=64), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_blocked_ips_ip", "blocked_ips", ["ip"], unique=True)
    op.create_index("ix_blocked_ips_expires_at", "blocked_ips", ["expires_at"])

    op.create_table(
        "rate_limit_configs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("endpoint", sa.String(length=255), nullable=False),
        sa.Column("window_ms", sa.Integer(), nullable=False),
        sa.Column("max_requests", sa.Integer(), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        sa.Column("block_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_rate_limit_configs_endpoint", "rate_limit_configs", ["endpoint"], unique=True)

    op.create_table(
        "rate_limit_violations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ip", sa.String(length=64), nullable=False),
        sa.Column("endpoint", sa.String(length=255), nullable=False),
        sa.Column("request_count", sa.Integer(), nullable=False),
        sa.Column("limit", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_rate_limit_violations_ip", "rate_limit_violations", ["ip"])
    op.create_index("ix_rate_limit_violations_endpoint", "rate_limit_violations", ["endpoint"])
    op.create_index("ix_rate_limit_violations_created_at", "rate_limit_violations", ["created_at"])

    op.create_table(
        "rate_ledger_hits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ip", sa.String(length=64), nullable=False),
        sa.Column("endpoint", sa.String(length=255), nullable=False),
        sa.Column("ts", sa.Float(), nullable=False),
    )
    op.create_index("ix_rate_ledger_hits_ts", "rate_ledger_hits", ["ts"])
    op.create_index("ix_rate_ledger_hits_key", "rate_ledger_hits", ["ip", "endpoint", "ts"])

    op.create_table(
        "password_policies",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("min_length", sa.Integer(), nullable=False),
        sa.Column("require_upper", sa.Boolean(), nullable=False),
        sa.Column("require_lower", sa.Boolean(), nullable=False),
        sa.Column("require_digit", sa.Boolean(), nullable=False),
        sa.Column("require_special", sa.Boolean(), nullable=False),
        sa.Column("expiration_days", sa.Integer(), nullable=True),
        sa.Column("prevent_reuse", sa.Integer(), nullable=False),
        sa.Column("check_breached", sa.Boolean(), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "password_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_password_history_user_id", "password_history", ["user_id"])
    op.create_index("ix_password_history_created_at", "password_history", ["created_at"])

    op.create_table(
        "user_sessions",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("ip", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=255), nullable=True),
        sa.Column("last_activity", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_user_sessions_user_id", "user_sessions", ["user_id"])
    op.create_index("ix_user_sessions_last_activity", "user_sessions", ["last_activity"])
    op.create_index("ix_user_sessions_expires_at", "user_sessions", ["expires_at"])

    op.create_table(
        "integrity_baselines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("files", sa.JSON(), nullable=False),
        sa.Column("generated_at", sa.DateTime(), nullable=False),
    )


def downgrade():
    op.drop_table("integrity_baselines")
    op.drop_table("user_sessions")
    op.drop_table("password_history")
    op.drop_table("password_policies")
    op.drop_table("rate_ledger_hits")
    op.drop_table("rate_limit_violations")
    op.drop_table("rate_limit_configs")
    op.drop_table("blocked_ips")
    op.drop_table("security_events")
    op.drop_table("users")
