# ============================================================
# Module : crosskb/infra/repo/content_unit_repo.py
# Objet  : Store de contenu SQL (SQLAlchemy) conforme à ContentStore.
# Notes  : similarité calculée en Python via le codec (brute force).
# ============================================================

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence

import numpy as np
from sqlalchemy import select, update
from sqlalchemy.engine import Engine

from crosskb.app.metrics import VECSTORE_OP_LATENCY, VECSTORE_SEARCH
from crosskb.domain.models import (
    ChangeRecord,
    ChangeType,
    ContentUnit,
    ScoredUnit,
    SearchFilters,
    SourceType,
    utcnow,
)
from crosskb.domain.vector_codec import VectorCodec
from crosskb.infra.repo.db import as_aware, session_scope
from crosskb.infra.repo.models import ChangeRecordORM, ContentUnitORM


class SqlContentStore:
    """Store de contenu persistant (une table `content_units` partitionnée par tenant)."""

    backend_name = "sql"

    def __init__(self, engine: Engine, codec: VectorCodec) -> None:
        """Construit le store avec un moteur SQLAlchemy et le codec de vecteurs."""
        self._engine = engine
        self.codec = codec

    def _to_unit(self, row: ContentUnitORM, with_vector: bool = True) -> ContentUnit:
        return ContentUnit(
            id=row.id,
            tenant_id=row.tenant_id,
            source_id=row.source_id,
            chunk_index=row.chunk_index,
            version=row.version,
            title=row.title,
            text=row.text,
            source_type=SourceType(row.source_type),
            content_type=row.content_type,
            tags=list(row.tags or []),
            embedding=self.codec.decode(row.embedding) if with_vector else None,
            content_hash=row.content_hash,
            is_active=row.is_active,
            created_at=as_aware(row.created_at),
            updated_at=as_aware(row.updated_at),
        )

    def _search_sync(
        self,
        tenant_id: str,
        vector: Sequence[float],
        filters: SearchFilters | None,
        top_k: int,
    ) -> list[ScoredUnit]:
        with session_scope(self._engine) as session:
            rows = (
                session.execute(
                    select(ContentUnitORM).where(
                        ContentUnitORM.tenant_id == tenant_id,
                        ContentUnitORM.is_active.is_(True),
                    )
                )
                .scalars()
                .all()
            )
            blobs = [r.embedding for r in rows]
            units = [self._to_unit(r, with_vector=False) for r in rows]
        keep = [i for i, u in enumerate(units) if filters is None or filters.matches(u)]
        if not keep or top_k <= 0:
            return []
        matrix = np.vstack([np.asarray(self.codec.decode(blobs[i])) for i in keep])
        sims = self.codec.similarities(vector, matrix)
        scored = [
            ScoredUnit(unit=units[i], score=float(s)) for i, s in zip(keep, sims, strict=True)
        ]
        scored.sort(key=lambda s: (-s.score, -s.unit.updated_at.timestamp(), s.unit.id))
        return scored[:top_k]

    async def search_by_vector(
        self,
        tenant_id: str,
        vector: Sequence[float],
        filters: SearchFilters | None,
        top_k: int,
    ) -> list[ScoredUnit]:
        """Recherche vectorielle exécutée hors de la boucle d'événements."""
        start = time.perf_counter()
        try:
            return await asyncio.to_thread(self._search_sync, tenant_id, vector, filters, top_k)
        finally:
            VECSTORE_SEARCH.labels(backend=self.backend_name).inc()
            VECSTORE_OP_LATENCY.labels(op="search", backend=self.backend_name).observe(
                time.perf_counter() - start
            )

    def get_active_units(self, tenant_id: str, source_id: str) -> list[ContentUnit]:
        stmt = (
            select(ContentUnitORM)
            .where(
                ContentUnitORM.tenant_id == tenant_id,
                ContentUnitORM.source_id == source_id,
                ContentUnitORM.is_active.is_(True),
            )
            .order_by(ContentUnitORM.chunk_index)
        )
        with session_scope(self._engine) as session:
            return [self._to_unit(r) for r in session.execute(stmt).scalars().all()]

    def list_units(self, tenant_id: str, source_id: str, version: int) -> list[ContentUnit]:
        stmt = (
            select(ContentUnitORM)
            .where(
                ContentUnitORM.tenant_id == tenant_id,
                ContentUnitORM.source_id == source_id,
                ContentUnitORM.version == version,
            )
            .order_by(ContentUnitORM.chunk_index)
        )
        with session_scope(self._engine) as session:
            return [self._to_unit(r) for r in session.execute(stmt).scalars().all()]

    def list_versions(self, tenant_id: str, source_id: str) -> list[int]:
        stmt = (
            select(ContentUnitORM.version)
            .where(
                ContentUnitORM.tenant_id == tenant_id,
                ContentUnitORM.source_id == source_id,
            )
            .distinct()
            .order_by(ContentUnitORM.version)
        )
        with session_scope(self._engine) as session:
            return list(session.execute(stmt).scalars().all())

    def replace_active_version(
        self, tenant_id: str, source_id: str, units: Sequence[ContentUnit]
    ) -> None:
        """Insère la nouvelle version et désactive l'ancienne dans une même transaction.

        Lève IntegrityError sur doublon (tenant, source, version, chunk).
        """
        start = time.perf_counter()
        rows = []
        for u in units:
            if u.embedding is None:
                raise ValueError(f"unit {u.id} has no embedding")
            rows.append(
                ContentUnitORM(
                    id=u.id,
                    tenant_id=tenant_id,
                    source_id=source_id,
                    chunk_index=u.chunk_index,
                    version=u.version,
                    title=u.title,
                    text=u.text,
                    source_type=u.source_type.value,
                    content_type=u.content_type,
                    tags=list(u.tags),
                    embedding=self.codec.encode(u.embedding),
                    content_hash=u.content_hash,
                    is_active=True,
                    created_at=u.created_at,
                    updated_at=u.updated_at,
                )
            )
        with session_scope(self._engine) as session:
            session.execute(
                update(ContentUnitORM)
                .where(
                    ContentUnitORM.tenant_id == tenant_id,
                    ContentUnitORM.source_id == source_id,
                    ContentUnitORM.is_active.is_(True),
                )
                .values(is_active=False, updated_at=utcnow())
            )
            session.add_all(rows)
        VECSTORE_OP_LATENCY.labels(op="upsert", backend=self.backend_name).observe(
            time.perf_counter() - start
        )

    def activate_version(self, tenant_id: str, source_id: str, version: int) -> None:
        now = utcnow()
        with session_scope(self._engine) as session:
            base = (ContentUnitORM.tenant_id == tenant_id, ContentUnitORM.source_id == source_id)
            session.execute(
                update(ContentUnitORM)
                .where(*base, ContentUnitORM.version != version, ContentUnitORM.is_active.is_(True))
                .values(is_active=False, updated_at=now)
            )
            session.execute(
                update(ContentUnitORM)
                .where(*base, ContentUnitORM.version == version)
                .values(is_active=True, updated_at=now)
            )

    def deactivate_source(self, tenant_id: str, source_id: str) -> None:
        with session_scope(self._engine) as session:
            session.execute(
                update(ContentUnitORM)
                .where(
                    ContentUnitORM.tenant_id == tenant_id,
                    ContentUnitORM.source_id == source_id,
                    ContentUnitORM.is_active.is_(True),
                )
                .values(is_active=False, updated_at=utcnow())
            )

    def append_change_record(self, record: ChangeRecord) -> None:
        with session_scope(self._engine) as session:
            session.add(
                ChangeRecordORM(
                    id=record.id,
                    tenant_id=record.tenant_id,
                    source_id=record.source_id,
                    change_type=record.change_type.value,
                    old_version=record.old_version,
                    new_version=record.new_version,
                    old_content_hash=record.old_content_hash,
                    new_content_hash=record.new_content_hash,
                    change_percentage=record.change_percentage,
                    change_summary=record.change_summary,
                    detected_at=record.detected_at,
                )
            )

    def list_change_records(
        self, tenant_id: str, source_id: str | None = None
    ) -> list[ChangeRecord]:
        stmt = select(ChangeRecordORM).where(ChangeRecordORM.tenant_id == tenant_id)
        if source_id is not None:
            stmt = stmt.where(ChangeRecordORM.source_id == source_id)
        stmt = stmt.order_by(ChangeRecordORM.detected_at, ChangeRecordORM.id)
        with session_scope(self._engine) as session:
            rows = session.execute(stmt).scalars().all()
            return [
                ChangeRecord(
                    id=r.id,
                    tenant_id=r.tenant_id,
                    source_id=r.source_id,
                    change_type=ChangeType(r.change_type),
                    old_version=r.old_version,
                    new_version=r.new_version,
                    old_content_hash=r.old_content_hash,
                    new_content_hash=r.new_content_hash,
                    change_percentage=r.change_percentage,
                    change_summary=r.change_summary,
                    detected_at=as_aware(r.detected_at),
                )
                for r in rows
            ]
