# ============================================================
# Module : crosskb/domain/link_registry.py
# Objet  : Registre des liens inter-tenants (résolution + cycle de vie).
# Invariants :
#  - Au plus un lien actif par paire (source, cible).
#  - Un lien non actif ou expiré ne contribue à aucun résultat.
# ============================================================
"""Registre des liens entre bases de connaissances.

Résout les liens actifs d'un tenant pour une requête, évalue les filtres d'un lien sur une unité
de contenu, et porte les transitions de statut (demande, approbation, rejet, suspension, reprise).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from pydantic import ValidationError

from crosskb.domain.errors import (
    InvalidLinkTransition,
    InvalidOperation,
    LinkConflict,
    LinkNotFound,
)
from crosskb.domain.models import (
    AccessLevel,
    ContentUnit,
    KnowledgeBaseLink,
    LinkStatus,
    utcnow,
)
from crosskb.infra.repo.link_repo import LinkRepository

_UPDATABLE = frozenset(
    {
        "name",
        "description",
        "target_name",
        "access_level",
        "include_tags",
        "exclude_tags",
        "include_content_types",
        "exclude_content_types",
        "weight",
        "max_results",
        "min_similarity",
        "expires_at",
    }
)


class LinkRegistry:
    """Règles métier des liens au-dessus d'un `LinkRepository`."""

    def __init__(
        self,
        repo: LinkRepository,
        *,
        default_weight: float = 1.0,
        default_max_results: int = 5,
        default_min_similarity: float = 0.1,
    ) -> None:
        self.repo = repo
        self.default_weight = default_weight
        self.default_max_results = default_max_results
        self.default_min_similarity = default_min_similarity
        self._log = structlog.get_logger(__name__).bind(component="link_registry")

    # ---- Résolution ----

    def resolve_active_links(
        self, source_tenant_id: str, now: datetime | None = None
    ) -> list[KnowledgeBaseLink]:
        """Liens actifs et non expirés, triés par poids décroissant puis par id.

        La liste retournée est un instantané: une approbation ou suspension concurrente ne la
        modifie pas.
        """
        now = now or utcnow()
        links = [
            link
            for link in self.repo.list_by_source(source_tenant_id)
            if link.status == LinkStatus.ACTIVE and not link.is_expired(now)
        ]
        links.sort(key=lambda link: (-link.weight, link.id))
        return links

    def is_link_satisfied_by(self, link: KnowledgeBaseLink, unit: ContentUnit) -> bool:
        """Évalue les filtres tags/types du lien; l'exclusion l'emporte sur l'inclusion."""
        reason = link.filters.rejection_reason(unit)
        if reason is None:
            return True
        self._log.debug("link_filter_rejected", link_id=link.id, unit_id=unit.id, reason=reason)
        return False

    # ---- Cycle de vie ----

    def _get(self, link_id: str) -> KnowledgeBaseLink:
        link = self.repo.get(link_id)
        if link is None:
            raise LinkNotFound(f"link {link_id} not found", {"link_id": link_id})
        return link

    def _active_for_pair(
        self, source: str, target: str, exclude_id: str | None = None
    ) -> KnowledgeBaseLink | None:
        for link in self.repo.list_by_source(source):
            if (
                link.target_tenant_id == target
                and link.status == LinkStatus.ACTIVE
                and link.id != exclude_id
            ):
                return link
        return None

    def request_link(
        self,
        source_tenant_id: str,
        target_tenant_id: str,
        *,
        name: str = "",
        description: str | None = None,
        target_name: str | None = None,
        access_level: AccessLevel = AccessLevel.READ,
        include_tags: list[str] | None = None,
        exclude_tags: list[str] | None = None,
        include_content_types: list[str] | None = None,
        exclude_content_types: list[str] | None = None,
        weight: float | None = None,
        max_results: int | None = None,
        min_similarity: float | None = None,
        auto_approve: bool = False,
        expires_at: datetime | None = None,
    ) -> KnowledgeBaseLink:
        """Crée une demande de lien (statut `pending`, ou `active` si auto-approuvée).

        Raises:
            LinkConflict: auto-référence, ou demande déjà en attente/active pour la paire.
        """
        if source_tenant_id == target_tenant_id:
            raise LinkConflict("a tenant cannot link to itself", {"tenant_id": source_tenant_id})
        for existing in self.repo.list_by_source(source_tenant_id):
            if existing.target_tenant_id == target_tenant_id and existing.status in (
                LinkStatus.PENDING,
                LinkStatus.ACTIVE,
            ):
                raise LinkConflict(
                    "a pending or active link already exists for this pair",
                    {"link_id": existing.id, "status": existing.status.value},
                )
        link = KnowledgeBaseLink(
            source_tenant_id=source_tenant_id,
            target_tenant_id=target_tenant_id,
            name=name,
            description=description,
            target_name=target_name,
            access_level=access_level,
            include_tags=include_tags or [],
            exclude_tags=exclude_tags or [],
            include_content_types=include_content_types or [],
            exclude_content_types=exclude_content_types or [],
            weight=self.default_weight if weight is None else weight,
            max_results=self.default_max_results if max_results is None else max_results,
            min_similarity=(
                self.default_min_similarity if min_similarity is None else min_similarity
            ),
            status=LinkStatus.ACTIVE if auto_approve else LinkStatus.PENDING,
            auto_approve=auto_approve,
            expires_at=expires_at,
        )
        self.repo.save(link)
        self._log.info(
            "link_requested",
            link_id=link.id,
            source=source_tenant_id,
            target=target_tenant_id,
            status=link.status.value,
        )
        return link

    def _transition(
        self, link_id: str, allowed_from: tuple[LinkStatus, ...], to: LinkStatus
    ) -> KnowledgeBaseLink:
        link = self._get(link_id)
        if link.status not in allowed_from:
            raise InvalidLinkTransition(
                f"cannot move link from {link.status.value} to {to.value}",
                {"link_id": link_id, "status": link.status.value},
            )
        if to == LinkStatus.ACTIVE:
            other = self._active_for_pair(
                link.source_tenant_id, link.target_tenant_id, exclude_id=link.id
            )
            if other is not None:
                raise LinkConflict(
                    "another active link exists for this pair", {"link_id": other.id}
                )
        updated = link.model_copy(update={"status": to, "updated_at": utcnow()})
        self.repo.save(updated)
        self._log.info("link_status_changed", link_id=link_id, status=to.value)
        return updated

    def approve_link(self, link_id: str) -> KnowledgeBaseLink:
        return self._transition(link_id, (LinkStatus.PENDING,), LinkStatus.ACTIVE)

    def reject_link(self, link_id: str) -> KnowledgeBaseLink:
        return self._transition(link_id, (LinkStatus.PENDING,), LinkStatus.REJECTED)

    def suspend_link(self, link_id: str) -> KnowledgeBaseLink:
        return self._transition(link_id, (LinkStatus.ACTIVE,), LinkStatus.SUSPENDED)

    def resume_link(self, link_id: str) -> KnowledgeBaseLink:
        return self._transition(link_id, (LinkStatus.SUSPENDED,), LinkStatus.ACTIVE)

    def update_link(self, link_id: str, **changes: Any) -> KnowledgeBaseLink:
        """Met à jour poids, plafonds, filtres ou métadonnées (jamais le statut ni la paire).

        Seules les clés fournies sont appliquées; `None` explicite efface un champ optionnel
        (`expires_at=None` rend le lien permanent).
        """
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise InvalidOperation("fields cannot be updated", {"fields": sorted(unknown)})
        link = self._get(link_id)
        data = link.model_dump()
        data.update(changes)
        data["updated_at"] = utcnow()
        try:
            updated = KnowledgeBaseLink.model_validate(data)
        except ValidationError as exc:
            errors = [
                {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
                for err in exc.errors()
            ]
            raise InvalidOperation("invalid link update", {"errors": errors}) from exc
        self.repo.save(updated)
        self._log.info("link_updated", link_id=link_id, fields=sorted(changes))
        return updated

    def get_link(self, link_id: str) -> KnowledgeBaseLink:
        return self._get(link_id)

    def list_links(
        self, source_tenant_id: str, status: LinkStatus | None = None
    ) -> list[KnowledgeBaseLink]:
        links = self.repo.list_by_source(source_tenant_id)
        if status is not None:
            links = [link for link in links if link.status == status]
        return sorted(links, key=lambda link: (link.created_at, link.id))

    def list_pending_requests(self, target_tenant_id: str) -> list[KnowledgeBaseLink]:
        """Demandes entrantes en attente pour le tenant cible."""
        links = [
            link
            for link in self.repo.list_by_target(target_tenant_id)
            if link.status == LinkStatus.PENDING
        ]
        return sorted(links, key=lambda link: (link.created_at, link.id))
