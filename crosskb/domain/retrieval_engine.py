# ============================================================
# Module : crosskb/domain/retrieval_engine.py
# Objet  : Recherche multi-sources (tenant propre + liens actifs).
# Étapes : embed -> fan-out -> merge -> rank -> truncate.
# Invariants :
#  - Seuil appliqué au score brut, poids appliqué ensuite.
#  - Plafond par lien appliqué avant le plafond global.
#  - Ordre final déterministe: score desc, updated_at desc, id asc.
#  - Une source en échec n'interrompt pas la requête (sauf si toutes échouent).
# ============================================================
"""Moteur de retrieval inter-tenants.

Le vecteur de la requête est calculé une seule fois, puis chaque store (tenant propre et cible de
chaque lien actif) est interrogé en parallèle sous une échéance commune. Les résultats sont
fusionnés, pondérés par le poids du lien, classés puis tronqués.
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from crosskb.app.metrics import (
    RETRIEVAL_LATENCY,
    RETRIEVAL_QUERIES_TOTAL,
    RETRIEVAL_RESULTS_TOTAL,
    RETRIEVAL_SOURCE_FAILURES,
    labelize_tenant,
)
from crosskb.core.constants import OWN_SOURCE_LABEL
from crosskb.domain.errors import (
    EmbeddingUnavailable,
    InvalidVectorDimensionality,
    NoSourcesAvailable,
    PermanentEmbeddingError,
    SourceUnreachable,
    TransientEmbeddingError,
)
from crosskb.domain.link_registry import LinkRegistry
from crosskb.domain.models import (
    AccessLevel,
    KnowledgeBaseLink,
    RankedResult,
    RetrieveOptions,
    ScoredUnit,
    SearchFilters,
)
from crosskb.infra.embeddings.gateway import EmbeddingGateway
from crosskb.infra.vecstores.base import ContentStore


@dataclass(frozen=True)
class _Source:
    """Une cible du fan-out (tenant propre ou lien résolu)."""

    tenant_id: str
    weight: float
    min_similarity: float
    max_results: int | None
    filters: SearchFilters | None
    link: KnowledgeBaseLink | None = None

    @property
    def label(self) -> str:
        return self.link.label if self.link is not None else OWN_SOURCE_LABEL


@dataclass
class RetrievalOutcome:
    """Résultat d'une requête: résultats classés et métadonnées de sources."""

    results: list[RankedResult]
    unreachable_sources: list[str] = field(default_factory=list)
    references_used: list[dict[str, Any]] = field(default_factory=list)
    timings: dict[str, float] = field(default_factory=dict)


def rank_key(result: RankedResult) -> tuple[float, float, str]:
    return (-result.score, -result.unit.updated_at.timestamp(), result.unit.id)


class RetrievalEngine:
    """Orchestration d'une requête de retrieval sur plusieurs stores."""

    def __init__(
        self,
        gateway: EmbeddingGateway,
        registry: LinkRegistry,
        store: ContentStore,
        *,
        max_results: int = 15,
        timeout_s: float = 10.0,
        own_min_similarity: float = 0.1,
        allowed_tenants: list[str] | None = None,
    ) -> None:
        """Initialise le moteur.

        Args:
            gateway: Passerelle d'embeddings (vecteur de la requête).
            registry: Registre des liens (résolution des liens actifs, filtres).
            store: Store de contenu partitionné par tenant.
            max_results: Plafond global par défaut.
            timeout_s: Échéance commune du fan-out.
            own_min_similarity: Seuil de similarité du tenant propre.
            allowed_tenants: Liste blanche des labels tenant pour les métriques.
        """
        self.gateway = gateway
        self.registry = registry
        self.store = store
        self.max_results = max_results
        self.timeout_s = timeout_s
        self.own_min_similarity = own_min_similarity
        self.allowed_tenants = allowed_tenants
        self._log = structlog.get_logger(__name__).bind(component="retrieval_engine")

    async def retrieve(
        self,
        source_tenant_id: str,
        query_text: str,
        options: RetrieveOptions | None = None,
    ) -> RetrievalOutcome:
        """Exécute une requête pour `source_tenant_id`.

        Raises:
            EmbeddingUnavailable: le vecteur de la requête n'a pas pu être calculé.
            NoSourcesAvailable: aucun store n'a répondu avant l'échéance.
        """
        options = options or RetrieveOptions()
        cap = options.max_results or self.max_results
        tenant_label = labelize_tenant(source_tenant_id, self.allowed_tenants)
        log = self._log.bind(tenant=source_tenant_id)
        started = time.perf_counter()

        try:
            vector = await self.gateway.embed_one(query_text)
        except (TransientEmbeddingError, PermanentEmbeddingError) as exc:
            RETRIEVAL_QUERIES_TOTAL.labels(tenant=tenant_label, outcome="embedding_failed").inc()
            log.warning("retrieval_embedding_failed", code=exc.code, query_len=len(query_text))
            raise EmbeddingUnavailable(
                "query embedding unavailable",
                retryable=exc.retryable,
                details={"cause": exc.code},
            ) from exc
        embedded = time.perf_counter()

        links: list[KnowledgeBaseLink] = []
        if options.include_links:
            links = self.registry.resolve_active_links(source_tenant_id)
        sources = [
            _Source(
                tenant_id=source_tenant_id,
                weight=1.0,
                min_similarity=self.own_min_similarity,
                max_results=None,
                filters=None,
            )
        ]
        sources.extend(self._link_source(link, options) for link in links)

        per_source, failures = await self._fan_out(sources, vector, cap)
        searched = time.perf_counter()

        unreachable: list[str] = []
        for failure in failures:
            RETRIEVAL_SOURCE_FAILURES.labels(reason=failure.reason).inc()
            log.warning(
                "retrieval_source_unreachable", source=failure.tenant_id, reason=failure.reason
            )
            if failure.tenant_id not in unreachable:
                unreachable.append(failure.tenant_id)

        if not per_source:
            RETRIEVAL_QUERIES_TOTAL.labels(tenant=tenant_label, outcome="no_sources").inc()
            raise NoSourcesAvailable(
                "no content store responded before the deadline",
                {"unreachable_sources": unreachable},
            )

        merged = self.merge(per_source)
        ranked = sorted(merged, key=rank_key)
        link_caps = {
            src.link.id: src.max_results
            for src, _ in per_source
            if src.link is not None and src.max_results is not None
        }
        results = self.truncate(ranked, cap, link_caps)

        counts = Counter(r.link_id for r in results)
        references = [
            {
                "link_id": src.link.id,
                "target_tenant_id": src.tenant_id,
                "label": src.label,
                "weight": src.weight,
                "results": counts.get(src.link.id, 0),
            }
            for src, _ in per_source
            if src.link is not None
        ]
        own_count = counts.get(None, 0)
        if own_count:
            RETRIEVAL_RESULTS_TOTAL.labels(origin="own").inc(own_count)
        if len(results) - own_count:
            RETRIEVAL_RESULTS_TOTAL.labels(origin="linked").inc(len(results) - own_count)

        finished = time.perf_counter()
        RETRIEVAL_QUERIES_TOTAL.labels(
            tenant=tenant_label, outcome="partial" if unreachable else "ok"
        ).inc()
        RETRIEVAL_LATENCY.labels(tenant=tenant_label).observe(finished - started)
        timings = {
            "embedding_ms": round((embedded - started) * 1000, 3),
            "search_ms": round((searched - embedded) * 1000, 3),
            "total_ms": round((finished - started) * 1000, 3),
        }
        log.info(
            "retrieval_done",
            links=len(links),
            results=len(results),
            unreachable=len(unreachable),
            **timings,
        )
        return RetrievalOutcome(
            results=results,
            unreachable_sources=unreachable,
            references_used=references,
            timings=timings,
        )

    def _link_source(self, link: KnowledgeBaseLink, options: RetrieveOptions) -> _Source:
        override = options.per_link_overrides.get(link.target_tenant_id)
        weight = link.weight
        max_results = link.max_results
        min_similarity = link.min_similarity
        if override is not None:
            if override.weight is not None:
                weight = override.weight
            if override.max_results is not None:
                max_results = override.max_results
            if override.min_similarity is not None:
                min_similarity = override.min_similarity
        return _Source(
            tenant_id=link.target_tenant_id,
            weight=weight,
            min_similarity=min_similarity,
            max_results=max_results,
            filters=None if link.filters.is_empty else link.filters,
            link=link,
        )

    async def _search(
        self, source: _Source, vector: Sequence[float], top_k: int
    ) -> list[ScoredUnit]:
        hits = await self.store.search_by_vector(source.tenant_id, vector, source.filters, top_k)
        if source.link is None:
            return list(hits)
        return [h for h in hits if self.registry.is_link_satisfied_by(source.link, h.unit)]

    async def _fan_out(
        self, sources: list[_Source], vector: Sequence[float], top_k: int
    ) -> tuple[list[tuple[_Source, list[ScoredUnit]]], list[SourceUnreachable]]:
        """Lance une tâche par source sous une échéance commune.

        Les tâches non terminées à l'échéance sont annulées et comptées comme injoignables.
        """
        tasks = [asyncio.create_task(self._search(src, vector, top_k)) for src in sources]
        done, pending = await asyncio.wait(tasks, timeout=self.timeout_s)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        ok: list[tuple[_Source, list[ScoredUnit]]] = []
        failures: list[SourceUnreachable] = []
        for src, task in zip(sources, tasks, strict=True):
            if task not in done:
                failures.append(SourceUnreachable(src.tenant_id, "timeout"))
                continue
            exc = task.exception()
            if isinstance(exc, InvalidVectorDimensionality):
                raise exc
            if exc is not None:
                failures.append(SourceUnreachable(src.tenant_id, type(exc).__name__))
                continue
            ok.append((src, task.result()))
        return ok, failures

    @staticmethod
    def merge(per_source: list[tuple[_Source, list[ScoredUnit]]]) -> list[RankedResult]:
        """Pondère chaque score brut et écarte ceux sous le seuil de la source."""
        merged: list[RankedResult] = []
        for src, hits in per_source:
            for hit in hits:
                if hit.score < src.min_similarity:
                    continue
                merged.append(
                    RankedResult(
                        unit=hit.unit,
                        score=hit.score * src.weight,
                        raw_score=hit.score,
                        origin_tenant_id=src.tenant_id,
                        weight=src.weight,
                        link_id=src.link.id if src.link is not None else None,
                        label=src.label,
                        access_level=(
                            src.link.access_level if src.link is not None else AccessLevel.READ
                        ),
                    )
                )
        return merged

    @staticmethod
    def truncate(
        ranked: list[RankedResult],
        cap: int,
        link_caps: dict[str, int] | None = None,
    ) -> list[RankedResult]:
        """Applique le plafond par lien, puis le plafond global, sur une liste déjà classée."""
        seen: Counter[str] = Counter()
        kept: list[RankedResult] = []
        for result in ranked:
            if result.link_id is not None:
                limit = (link_caps or {}).get(result.link_id)
                if limit is not None and seen[result.link_id] >= limit:
                    continue
                seen[result.link_id] += 1
            kept.append(result)
        return kept[:cap]
