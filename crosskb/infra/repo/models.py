"""SQLAlchemy models for persistence layer (content units, links, change records)."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase


def _now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Classe de base pour tous les modèles SQLAlchemy."""

    metadata = MetaData()


class ContentUnitORM(Base):
    """Modèle ORM pour les unités de contenu (chunks versionnés)."""

    __tablename__ = "content_units"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(64), nullable=False)
    source_id = Column(String(512), nullable=False)
    chunk_index = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)
    title = Column(String(512), nullable=True)
    text = Column(Text, nullable=False)
    source_type = Column(String(32), nullable=False)
    content_type = Column(String(64), nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    embedding = Column(LargeBinary, nullable=False)
    content_hash = Column(String(128), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "source_id", "version", "chunk_index", name="uq_unit_source_version_chunk"
        ),
        Index("ix_content_units_tenant_active", "tenant_id", "is_active"),
        Index("ix_content_units_source", "tenant_id", "source_id"),
    )


class KnowledgeBaseLinkORM(Base):
    """Modèle ORM pour les liens entre bases de connaissances."""

    __tablename__ = "kb_links"

    id = Column(String(36), primary_key=True)
    source_tenant_id = Column(String(64), nullable=False)
    target_tenant_id = Column(String(64), nullable=False)
    name = Column(String(255), nullable=False, default="")
    description = Column(Text, nullable=True)
    target_name = Column(String(255), nullable=True)
    access_level = Column(String(20), nullable=False, default="read")
    include_tags = Column(JSON, nullable=False, default=list)
    exclude_tags = Column(JSON, nullable=False, default=list)
    include_content_types = Column(JSON, nullable=False, default=list)
    exclude_content_types = Column(JSON, nullable=False, default=list)
    weight = Column(Float, nullable=False, default=1.0)
    max_results = Column(Integer, nullable=False, default=5)
    min_similarity = Column(Float, nullable=False, default=0.1)
    status = Column(String(20), nullable=False, default="pending")
    auto_approve = Column(Boolean, nullable=False, default=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (Index("ix_kb_links_source_status", "source_tenant_id", "status"),)


class ChangeRecordORM(Base):
    """Modèle ORM pour le journal des changements (append-only)."""

    __tablename__ = "change_records"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(64), nullable=False)
    source_id = Column(String(512), nullable=False)
    change_type = Column(String(32), nullable=False)
    old_version = Column(Integer, nullable=True)
    new_version = Column(Integer, nullable=True)
    old_content_hash = Column(String(128), nullable=True)
    new_content_hash = Column(String(128), nullable=True)
    change_percentage = Column(Float, nullable=False, default=0.0)
    change_summary = Column(Text, nullable=False, default="")
    detected_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (Index("ix_change_records_source", "tenant_id", "source_id"),)
