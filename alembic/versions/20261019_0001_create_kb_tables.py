# mypy: ignore-errors
"""
Migration Alembic initiale de la base de connaissances.

Crée les tables content_units (chunks versionnés avec embedding binaire), kb_links (liens entre
tenants et leur cycle de vie) et change_records (journal append-only des changements).
"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "content_units",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("source_id", sa.String(length=512), nullable=False),
        sa.Column("chunk_index", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=512), nullable=True),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("source_type", sa.String(length=32), nullable=False),
        sa.Column("content_type", sa.String(length=64), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("embedding", sa.LargeBinary(), nullable=False),
        sa.Column("content_hash", sa.String(length=128), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "tenant_id", "source_id", "version", "chunk_index", name="uq_unit_source_version_chunk"
        ),
    )
    op.create_index(
        "ix_content_units_tenant_active", "content_units", ["tenant_id", "is_active"]
    )
    op.create_index("ix_content_units_source", "content_units", ["tenant_id", "source_id"])

    op.create_table(
        "kb_links",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("source_tenant_id", sa.String(length=64), nullable=False),
        sa.Column("target_tenant_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("target_name", sa.String(length=255), nullable=True),
        sa.Column("access_level", sa.String(length=20), nullable=False),
        sa.Column("include_tags", sa.JSON(), nullable=False),
        sa.Column("exclude_tags", sa.JSON(), nullable=False),
        sa.Column("include_content_types", sa.JSON(), nullable=False),
        sa.Column("exclude_content_types", sa.JSON(), nullable=False),
        sa.Column("weight", sa.Float(), nullable=False),
        sa.Column("max_results", sa.Integer(), nullable=False),
        sa.Column("min_similarity", sa.Float(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("auto_approve", sa.Boolean(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_kb_links_source_status", "kb_links", ["source_tenant_id", "status"])

    op.create_table(
        "change_records",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("source_id", sa.String(length=512), nullable=False),
        sa.Column("change_type", sa.String(length=32), nullable=False),
        sa.Column("old_version", sa.Integer(), nullable=True),
        sa.Column("new_version", sa.Integer(), nullable=True),
        sa.Column("old_content_hash", sa.String(length=128), nullable=True),
        sa.Column("new_content_hash", sa.String(length=128), nullable=True),
        sa.Column("change_percentage", sa.Float(), nullable=False),
        sa.Column("change_summary", sa.Text(), nullable=False),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_change_records_source", "change_records", ["tenant_id", "source_id"])


def downgrade() -> None:
    op.drop_index("ix_change_records_source", table_name="change_records")
    op.drop_table("change_records")
    op.drop_index("ix_kb_links_source_status", table_name="kb_links")
    op.drop_table("kb_links")
    op.drop_index("ix_content_units_source", table_name="content_units")
    op.drop_index("ix_content_units_tenant_active", table_name="content_units")
    op.drop_table("content_units")
