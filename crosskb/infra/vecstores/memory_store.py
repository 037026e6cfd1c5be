"""
In-memory multi-tenant content store.

Implements ContentStore for tests, demos and single-process deployments. Provides isolation per
tenant, stores embeddings through the vector codec and integrates with vecstore metrics.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Sequence

import numpy as np

from crosskb.app.metrics import VECSTORE_OP_LATENCY, VECSTORE_SEARCH
from crosskb.domain.models import ChangeRecord, ContentUnit, ScoredUnit, SearchFilters, utcnow
from crosskb.domain.vector_codec import VectorCodec


class MemoryContentStore:
    """In-memory store with per-tenant isolation and brute-force cosine search."""

    backend_name = "memory"

    def __init__(self, codec: VectorCodec) -> None:
        """Initialize in-memory content store."""
        self.codec = codec
        self._units: dict[str, dict[str, ContentUnit]] = {}
        self._vectors: dict[str, bytes] = {}
        self._changes: list[ChangeRecord] = []
        self._lock = threading.Lock()

    def _tenant(self, tenant_id: str) -> dict[str, ContentUnit]:
        return self._units.setdefault(tenant_id, {})

    async def search_by_vector(
        self,
        tenant_id: str,
        vector: Sequence[float],
        filters: SearchFilters | None,
        top_k: int,
    ) -> list[ScoredUnit]:
        """
        Recherche les unités actives d'un tenant par similarité cosinus.

        Args:
            tenant_id: Identifiant du tenant.
            vector: Vecteur de requête.
            filters: Filtres tags/types appliqués avant la coupe top-K.
            top_k: Nombre maximal de résultats.

        Returns:
            list[ScoredUnit]: Résultats triés par score décroissant.
        """
        start = time.perf_counter()
        with self._lock:
            candidates = [
                u
                for u in self._tenant(tenant_id).values()
                if u.is_active
                and u.id in self._vectors
                and (filters is None or filters.matches(u))
            ]
            blobs = [self._vectors[u.id] for u in candidates]
        scored: list[ScoredUnit] = []
        if candidates and top_k > 0:
            matrix = np.vstack([np.asarray(self.codec.decode(b)) for b in blobs])
            sims = self.codec.similarities(vector, matrix)
            scored = [
                ScoredUnit(unit=u, score=float(s)) for u, s in zip(candidates, sims, strict=True)
            ]
            scored.sort(key=lambda s: (-s.score, -s.unit.updated_at.timestamp(), s.unit.id))
            scored = scored[:top_k]
        VECSTORE_SEARCH.labels(backend=self.backend_name).inc()
        VECSTORE_OP_LATENCY.labels(op="search", backend=self.backend_name).observe(
            time.perf_counter() - start
        )
        return scored

    def _with_vector(self, unit: ContentUnit) -> ContentUnit:
        blob = self._vectors.get(unit.id)
        if blob is None:
            return unit
        return unit.model_copy(update={"embedding": self.codec.decode(blob)})

    def get_active_units(self, tenant_id: str, source_id: str) -> list[ContentUnit]:
        with self._lock:
            units = [
                self._with_vector(u)
                for u in self._tenant(tenant_id).values()
                if u.source_id == source_id and u.is_active
            ]
        return sorted(units, key=lambda u: u.chunk_index)

    def list_units(self, tenant_id: str, source_id: str, version: int) -> list[ContentUnit]:
        with self._lock:
            units = [
                self._with_vector(u)
                for u in self._tenant(tenant_id).values()
                if u.source_id == source_id and u.version == version
            ]
        return sorted(units, key=lambda u: u.chunk_index)

    def list_versions(self, tenant_id: str, source_id: str) -> list[int]:
        with self._lock:
            return sorted(
                {u.version for u in self._tenant(tenant_id).values() if u.source_id == source_id}
            )

    def replace_active_version(
        self, tenant_id: str, source_id: str, units: Sequence[ContentUnit]
    ) -> None:
        """
        Insère une nouvelle version active et désactive la précédente.

        Les vecteurs sont encodés avant toute mutation: une dimension invalide laisse le store
        inchangé.
        """
        start = time.perf_counter()
        encoded: dict[str, bytes] = {}
        for u in units:
            if u.embedding is None:
                raise ValueError(f"unit {u.id} has no embedding")
            encoded[u.id] = self.codec.encode(u.embedding)
        now = utcnow()
        with self._lock:
            bucket = self._tenant(tenant_id)
            for existing in list(bucket.values()):
                if existing.source_id == source_id and existing.is_active:
                    bucket[existing.id] = existing.model_copy(
                        update={"is_active": False, "updated_at": now}
                    )
            for u in units:
                bucket[u.id] = u.model_copy(update={"embedding": None, "is_active": True})
            self._vectors.update(encoded)
        VECSTORE_OP_LATENCY.labels(op="upsert", backend=self.backend_name).observe(
            time.perf_counter() - start
        )

    def activate_version(self, tenant_id: str, source_id: str, version: int) -> None:
        now = utcnow()
        with self._lock:
            bucket = self._tenant(tenant_id)
            for u in list(bucket.values()):
                if u.source_id != source_id:
                    continue
                active = u.version == version
                if u.is_active != active:
                    bucket[u.id] = u.model_copy(update={"is_active": active, "updated_at": now})

    def deactivate_source(self, tenant_id: str, source_id: str) -> None:
        now = utcnow()
        with self._lock:
            bucket = self._tenant(tenant_id)
            for u in list(bucket.values()):
                if u.source_id == source_id and u.is_active:
                    bucket[u.id] = u.model_copy(update={"is_active": False, "updated_at": now})

    def append_change_record(self, record: ChangeRecord) -> None:
        with self._lock:
            self._changes.append(record)

    def list_change_records(
        self, tenant_id: str, source_id: str | None = None
    ) -> list[ChangeRecord]:
        with self._lock:
            return [
                r
                for r in self._changes
                if r.tenant_id == tenant_id and (source_id is None or r.source_id == source_id)
            ]
