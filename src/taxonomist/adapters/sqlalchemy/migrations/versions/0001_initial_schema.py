"""initial taxonomy schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2025-02-03 09:12:44.518204
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_STATUS = sa.Enum(
    "ACTIVE",
    "PENDING_REVIEW",
    "ARCHIVED",
    name="entitystatus",
    native_enum=False,
)
_LIVE_ONLY = "status != 'ARCHIVED'"


def upgrade() -> None:
    op.create_table(
        "business_unit",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("name_key", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_business_unit"),
        sa.UniqueConstraint("name_key", name="uq_business_unit_business_unit_name_key"),
    )
    op.create_table(
        "category",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("name_key", sa.String(), nullable=False),
        sa.Column("business_unit_id", sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(
            ["business_unit_id"],
            ["business_unit.id"],
            name="fk_category_category_business_unit_id_business_unit",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_category"),
        sa.UniqueConstraint("name_key", name="uq_category_category_name_key"),
    )
    op.create_table(
        "range",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("name_key", sa.String(), nullable=False),
        sa.Column("status", _STATUS, nullable=False),
        sa.Column("provenance", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_range"),
    )
    op.create_index(
        "uq_range_live_name_key",
        "range",
        ["name_key"],
        unique=True,
        sqlite_where=sa.text(_LIVE_ONLY),
        postgresql_where=sa.text(_LIVE_ONLY),
    )
    op.create_table(
        "campaign",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("name_key", sa.String(), nullable=False),
        sa.Column("status", _STATUS, nullable=False),
        sa.Column("provenance", sa.String(), nullable=True),
        sa.Column("range_id", sa.Uuid(), nullable=True),
        sa.ForeignKeyConstraint(
            ["range_id"],
            ["range.id"],
            name="fk_campaign_campaign_range_id_range",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_campaign"),
    )
    op.create_index(
        "uq_campaign_live_name_key",
        "campaign",
        ["name_key"],
        unique=True,
        sqlite_where=sa.text(_LIVE_ONLY),
        postgresql_where=sa.text(_LIVE_ONLY),
    )
    op.create_table(
        "category_range",
        sa.Column("category_id", sa.Uuid(), nullable=False),
        sa.Column("range_id", sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(
            ["category_id"],
            ["category.id"],
            name="fk_category_range_category_range_category_id_category",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["range_id"],
            ["range.id"],
            name="fk_category_range_category_range_range_id_range",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("category_id", "range_id", name="pk_category_range"),
    )
    op.create_table(
        "spend_record",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("session_id", sa.String(), nullable=False),
        sa.Column("row_number", sa.Integer(), nullable=False),
        sa.Column("business_unit", sa.String(), nullable=False),
        sa.Column("category_id", sa.Uuid(), nullable=False),
        sa.Column("range_id", sa.Uuid(), nullable=True),
        sa.Column("campaign_id", sa.Uuid(), nullable=True),
        sa.Column("company", sa.String(), nullable=True),
        sa.Column("metrics", sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(
            ["category_id"],
            ["category.id"],
            name="fk_spend_record_spend_record_category_id_category",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["range_id"],
            ["range.id"],
            name="fk_spend_record_spend_record_range_id_range",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["campaign_id"],
            ["campaign.id"],
            name="fk_spend_record_spend_record_campaign_id_campaign",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_spend_record"),
        sa.UniqueConstraint("session_id", "row_number", name="uq_spend_record_row"),
    )
    op.create_table(
        "master_data_version",
        sa.Column("version", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("author", sa.String(), nullable=True),
        sa.Column("document", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("version", name="pk_master_data_version"),
    )


def downgrade() -> None:
    op.drop_table("master_data_version")
    op.drop_table("spend_record")
    op.drop_table("category_range")
    op.drop_index("uq_campaign_live_name_key", table_name="campaign")
    op.drop_table("campaign")
    op.drop_index("uq_range_live_name_key", table_name="range")
    op.drop_table("range")
    op.drop_table("category")
    op.drop_table("business_unit")
