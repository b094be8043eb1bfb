"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    bind = op.get_bind()
    is_postgres = bind.dialect.name == "postgresql"

    json_type = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")

    op.create_table(
        "sync_configs",
        sa.Column("merchant_id", sa.String(length=100), primary_key=True),
        sa.Column("sync_type", sa.String(length=16), nullable=False),
        sa.Column("schedule", sa.String(length=64), nullable=True),
        sa.Column("source", json_type, nullable=False, server_default=sa.text("'{}'")),
        sa.Column("field_mapping", json_type, nullable=False, server_default=sa.text("'{}'")),
        sa.Column("incremental_sync_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("apply_deletions", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("webhook_secret", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "product_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("merchant_id", sa.String(length=100), nullable=False),
        sa.Column("sku", sa.String(length=256), nullable=False),
        sa.Column("payload", json_type, nullable=False, server_default=sa.text("'{}'")),
        sa.Column("content_hash", sa.String(length=64), nullable=False),
        sa.Column("last_sync_id", sa.String(length=64), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("merchant_id", "sku", name="uq_snapshot_merchant_sku"),
    )

    op.create_table(
        "sync_runs",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("merchant_id", sa.String(length=100), nullable=False),
        sa.Column("trigger", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("items_total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("items_created", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("items_updated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("items_skipped", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("items_failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("items_deleted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("errors", json_type, nullable=False, server_default=sa.text("'[]'")),
        sa.Column("missing_skus", json_type, nullable=False, server_default=sa.text("'[]'")),
        sa.Column("error_summary", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "sync_locks",
        sa.Column("merchant_id", sa.String(length=100), primary_key=True),
        sa.Column("sync_id", sa.String(length=64), nullable=False),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "catalog_documents",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("merchant_id", sa.String(length=100), nullable=False),
        sa.Column("sku", sa.String(length=256), nullable=False),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=256), nullable=True),
        sa.Column("attributes", json_type, nullable=False, server_default=sa.text("'{}'")),
        sa.Column("searchable_text", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("merchant_id", "sku", name="uq_document_merchant_sku"),
    )

    op.create_index("ix_sync_configs_status", "sync_configs", ["status"])
    op.create_index("ix_product_snapshots_merchant_id", "product_snapshots", ["merchant_id"])
    op.create_index("ix_sync_runs_merchant_id", "sync_runs", ["merchant_id"])
    op.create_index("ix_sync_runs_status", "sync_runs", ["status"])
    op.create_index("ix_sync_runs_started_at", "sync_runs", ["started_at"])
    op.create_index("ix_catalog_documents_merchant_id", "catalog_documents", ["merchant_id"])
    op.create_index("ix_catalog_documents_sku", "catalog_documents", ["sku"])
    op.create_index("ix_catalog_documents_category", "catalog_documents", ["category"])

    if is_postgres:
        op.create_index(
            "ix_catalog_documents_attributes_gin",
            "catalog_documents",
            ["attributes"],
            postgresql_using="gin",
        )


def downgrade() -> None:
    bind = op.get_bind()
    is_postgres = bind.dialect.name == "postgresql"

    if is_postgres:
        op.drop_index("ix_catalog_documents_attributes_gin", table_name="catalog_documents")

    op.drop_index("ix_catalog_documents_category", table_name="catalog_documents")
    op.drop_index("ix_catalog_documents_sku", table_name="catalog_documents")
    op.drop_index("ix_catalog_documents_merchant_id", table_name="catalog_documents")
    op.drop_index("ix_sync_runs_started_at", table_name="sync_runs")
    op.drop_index("ix_sync_runs_status", table_name="sync_runs")
    op.drop_index("ix_sync_runs_merchant_id", table_name="sync_runs")
    op.drop_index("ix_product_snapshots_merchant_id", table_name="product_snapshots")
    op.drop_index("ix_sync_configs_status", table_name="sync_configs")

    op.drop_table("catalog_documents")
    op.drop_table("sync_locks")
    op.drop_table("sync_runs")
    op.drop_table("product_snapshots")
    op.drop_table("sync_configs")
