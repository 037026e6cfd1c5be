"""Dépôts de liens entre bases de connaissances (mémoire et SQLAlchemy).

Les deux implémentations respectent le protocole `LinkRepository`; le registre de liens applique
les règles métier (unicité du lien actif, transitions de statut) au-dessus.
"""

from __future__ import annotations

import threading
from typing import Protocol

from sqlalchemy import select

from crosskb.domain.models import AccessLevel, KnowledgeBaseLink, LinkStatus
from crosskb.infra.repo.db import as_aware, session_scope
from crosskb.infra.repo.models import KnowledgeBaseLinkORM


class LinkRepository(Protocol):
    """Persistance des liens (aucune règle métier ici)."""

    def get(self, link_id: str) -> KnowledgeBaseLink | None: ...

    def save(self, link: KnowledgeBaseLink) -> KnowledgeBaseLink: ...

    def list_by_source(self, source_tenant_id: str) -> list[KnowledgeBaseLink]: ...

    def list_by_target(self, target_tenant_id: str) -> list[KnowledgeBaseLink]: ...


class InMemoryLinkRepository:
    """Dépôt en mémoire (tests, démo)."""

    def __init__(self) -> None:
        self._links: dict[str, KnowledgeBaseLink] = {}
        self._lock = threading.Lock()

    def get(self, link_id: str) -> KnowledgeBaseLink | None:
        with self._lock:
            return self._links.get(link_id)

    def save(self, link: KnowledgeBaseLink) -> KnowledgeBaseLink:
        with self._lock:
            self._links[link.id] = link
        return link

    def list_by_source(self, source_tenant_id: str) -> list[KnowledgeBaseLink]:
        with self._lock:
            return [
                link for link in self._links.values() if link.source_tenant_id == source_tenant_id
            ]

    def list_by_target(self, target_tenant_id: str) -> list[KnowledgeBaseLink]:
        with self._lock:
            return [
                link for link in self._links.values() if link.target_tenant_id == target_tenant_id
            ]


_FIELDS = (
    "source_tenant_id",
    "target_tenant_id",
    "name",
    "description",
    "target_name",
    "include_tags",
    "exclude_tags",
    "include_content_types",
    "exclude_content_types",
    "weight",
    "max_results",
    "min_similarity",
    "auto_approve",
    "expires_at",
    "created_at",
    "updated_at",
)


def _to_link(row: KnowledgeBaseLinkORM) -> KnowledgeBaseLink:
    return KnowledgeBaseLink(
        id=row.id,
        source_tenant_id=row.source_tenant_id,
        target_tenant_id=row.target_tenant_id,
        name=row.name or "",
        description=row.description,
        target_name=row.target_name,
        access_level=AccessLevel(row.access_level),
        include_tags=list(row.include_tags or []),
        exclude_tags=list(row.exclude_tags or []),
        include_content_types=list(row.include_content_types or []),
        exclude_content_types=list(row.exclude_content_types or []),
        weight=row.weight,
        max_results=row.max_results,
        min_similarity=row.min_similarity,
        status=LinkStatus(row.status),
        auto_approve=row.auto_approve,
        expires_at=as_aware(row.expires_at),
        created_at=as_aware(row.created_at),
        updated_at=as_aware(row.updated_at),
    )


class SqlLinkRepository:
    """Dépôt SQLAlchemy (table `kb_links`)."""

    def __init__(self, engine) -> None:
        self._engine = engine

    def get(self, link_id: str) -> KnowledgeBaseLink | None:
        with session_scope(self._engine) as session:
            row = session.get(KnowledgeBaseLinkORM, link_id)
            return _to_link(row) if row is not None else None

    def save(self, link: KnowledgeBaseLink) -> KnowledgeBaseLink:
        with session_scope(self._engine) as session:
            row = session.get(KnowledgeBaseLinkORM, link.id)
            if row is None:
                row = KnowledgeBaseLinkORM(id=link.id)
                session.add(row)
            for name in _FIELDS:
                value = getattr(link, name)
                setattr(row, name, list(value) if isinstance(value, list) else value)
            row.access_level = link.access_level.value
            row.status = link.status.value
        return link

    def list_by_source(self, source_tenant_id: str) -> list[KnowledgeBaseLink]:
        stmt = select(KnowledgeBaseLinkORM).where(
            KnowledgeBaseLinkORM.source_tenant_id == source_tenant_id
        )
        with session_scope(self._engine) as session:
            return [_to_link(r) for r in session.execute(stmt).scalars().all()]

    def list_by_target(self, target_tenant_id: str) -> list[KnowledgeBaseLink]:
        stmt = select(KnowledgeBaseLinkORM).where(
            KnowledgeBaseLinkORM.target_tenant_id == target_tenant_id
        )
        with session_scope(self._engine) as session:
            return [_to_link(r) for r in session.execute(stmt).scalars().all()]
