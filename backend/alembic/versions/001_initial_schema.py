"""Initial schema: users, churches, memberships, credit ledger, progress, kv store

Revision ID: 001
Revises: None
Create Date: 2025-03-02 00:00:00.000000+00:00

Constraint names follow pilsa.database.NAMING_CONVENTION so later
autogenerated revisions can refer to them.

Rollback: downgrade() drops every table (all data lost).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP"),
        nullable=False,
    )


def _user_fk(table: str) -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(
        ["user_id"],
        ["users.id"],
        name=f"fk_{table}_user_id_users",
        ondelete="CASCADE",
    )


def upgrade() -> None:
    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("auth_user_id", postgresql.UUID(as_uuid=True), nullable=False, comment="Supabase auth.users id"),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("provider", sa.String(50), nullable=True),
        sa.Column("church", sa.String(200), nullable=True, comment="Display name of the primary church"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("auth_user_id", name="uq_users_auth_user_id"),
    )

    op.create_table(
        "churches",
        _uuid_pk(),
        sa.Column("church_code", sa.String(6), nullable=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("address", sa.Text(), nullable=False),
        sa.Column("city", sa.String(50), nullable=False),
        sa.Column("district", sa.String(50), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("member_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("pastor", sa.String(100), nullable=True),
        sa.Column("denomination", sa.String(100), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_churches"),
        sa.UniqueConstraint("church_code", name="uq_churches_church_code"),
    )
    op.create_index("idx_churches_active_name", "churches", ["is_active", "name"])
    op.create_index("idx_churches_city", "churches", ["city"])

    op.create_table(
        "user_church_memberships",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("church_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("is_primary", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'approved'"), nullable=False),
        _timestamp("joined_at"),
        sa.PrimaryKeyConstraint("id", name="pk_user_church_memberships"),
        _user_fk("user_church_memberships"),
        sa.ForeignKeyConstraint(
            ["church_id"],
            ["churches.id"],
            name="fk_user_church_memberships_church_id_churches",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("user_id", "church_id", name="uq_user_church_memberships_user_church"),
    )
    # At most one primary membership per user
    op.create_index(
        "uq_user_church_memberships_primary",
        "user_church_memberships",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("is_primary"),
    )
    op.create_index(
        "idx_user_church_memberships_user_joined",
        "user_church_memberships",
        ["user_id", "joined_at"],
    )

    op.create_table(
        "daily_credits",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("credits_earned", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("credits_spent", sa.Integer(), server_default=sa.text("0"), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id", name="pk_daily_credits"),
        _user_fk("daily_credits"),
        sa.UniqueConstraint("user_id", "date", name="uq_daily_credits_user_date"),
    )

    op.create_table(
        "transcriptions_progress",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("book", sa.String(100), nullable=False),
        sa.Column("chapter", sa.Integer(), nullable=False),
        sa.Column("verse", sa.Integer(), nullable=False),
        sa.Column(
            "progress_json",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id", name="pk_transcriptions_progress"),
        _user_fk("transcriptions_progress"),
        sa.UniqueConstraint("user_id", "book", name="uq_transcriptions_progress_user_book"),
    )

    op.create_table(
        "kv_store",
        sa.Column("key", sa.Text(), nullable=False),
        sa.Column("value", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.PrimaryKeyConstraint("key", name="pk_kv_store"),
    )


def downgrade() -> None:
    op.drop_table("kv_store")
    op.drop_table("transcriptions_progress")
    op.drop_table("daily_credits")
    op.drop_index("idx_user_church_memberships_user_joined", table_name="user_church_memberships")
    op.drop_index("uq_user_church_memberships_primary", table_name="user_church_memberships")
    op.drop_table("user_church_memberships")
    op.drop_index("idx_churches_city", table_name="churches")
    op.drop_index("idx_churches_active_name", table_name="churches")
    op.drop_table("churches")
    op.drop_table("users")
