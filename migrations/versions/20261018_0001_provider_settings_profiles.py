"""provider settings profiles

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "provider_settings_profiles",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("provider_id", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("base_settings_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("specific_settings_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.Column("updated_by", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("provider_id", "name", name="uq_provider_settings_profiles_provider_name"),
    )
    # At most one default profile per provider.
    op.create_index(
        "uq_provider_settings_profiles_one_default",
        "provider_settings_profiles",
        ["provider_id"],
        unique=True,
        postgresql_where=sa.text("is_default"),
        sqlite_where=sa.text("is_default"),
    )
    op.create_index(
        "ix_provider_settings_profiles_provider_active",
        "provider_settings_profiles",
        ["provider_id", "is_active", "updated_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_provider_settings_profiles_provider_active", table_name="provider_settings_profiles")
    op.drop_index("uq_provider_settings_profiles_one_default", table_name="provider_settings_profiles")
    op.drop_table("provider_settings_profiles")
