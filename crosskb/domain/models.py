"""
Types de données du moteur de retrieval inter-tenants.

Ce module définit les modèles Pydantic pour les unités de contenu et les liens entre bases de
connaissances, ainsi que les objets immuables produits par requête (résultats classés) ou par
l'ingestion (enregistrements de changement).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from crosskb.core.constants import OWN_SOURCE_LABEL


def utcnow() -> datetime:
    """Horodatage UTC courant (timezone-aware)."""
    return datetime.now(UTC)


def new_id() -> str:
    """Identifiant opaque (UUID4 texte)."""
    return str(uuid4())


class SourceType(str, Enum):
    """Origine d'une unité de contenu."""

    DOCUMENT = "document"
    WEB_PAGE = "web_page"


class LinkStatus(str, Enum):
    """Cycle de vie d'un lien: pending -> active -> suspended, ou pending -> rejected."""

    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    REJECTED = "rejected"


class AccessLevel(str, Enum):
    """Niveau d'accès accordé par un lien."""

    READ = "read"
    SEARCH_ONLY = "search_only"


class ChangeType(str, Enum):
    """Nature d'un changement détecté à l'ingestion."""

    CREATED = "created"
    UPDATED = "updated"
    CONTENT_CHANGED = "content_changed"
    TITLE_CHANGED = "title_changed"
    DELETED = "deleted"


class ContentUnit(BaseModel):
    """
    Unité de contenu indexée (chunk de document ou extrait de page web).

    Une source (`source_id`) produit plusieurs chunks par version; seule la dernière version
    ingérée avec succès est active.
    """

    id: str = Field(default_factory=new_id)
    tenant_id: str
    source_id: str
    chunk_index: int = 0
    text: str
    title: str | None = None
    source_type: SourceType = SourceType.DOCUMENT
    content_type: str | None = None
    tags: list[str] = Field(default_factory=list)
    embedding: list[float] | None = None
    version: int = 1
    is_active: bool = True
    content_hash: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SearchFilters(BaseModel):
    """Filtres d'inclusion/exclusion (tags et types de contenu).

    Listes vides: aucune contrainte. Une exclusion l'emporte toujours sur une inclusion.
    """

    include_tags: list[str] = Field(default_factory=list)
    exclude_tags: list[str] = Field(default_factory=list)
    include_content_types: list[str] = Field(default_factory=list)
    exclude_content_types: list[str] = Field(default_factory=list)

    def rejection_reason(self, unit: ContentUnit) -> str | None:
        """Retourne la raison du rejet, ou None si l'unité passe les filtres."""
        tags = set(unit.tags)
        ctype = unit.content_type or "unknown"
        if self.exclude_tags and tags.intersection(self.exclude_tags):
            return "excluded_tag"
        if self.exclude_content_types and ctype in self.exclude_content_types:
            return "excluded_content_type"
        if self.include_tags and not tags.intersection(self.include_tags):
            return "missing_required_tag"
        if self.include_content_types and ctype not in self.include_content_types:
            return "content_type_not_included"
        return None

    def matches(self, unit: ContentUnit) -> bool:
        return self.rejection_reason(unit) is None

    @property
    def is_empty(self) -> bool:
        return not (
            self.include_tags
            or self.exclude_tags
            or self.include_content_types
            or self.exclude_content_types
        )


class KnowledgeBaseLink(BaseModel):
    """
    Lien orienté: le tenant source peut interroger le store du tenant cible.

    Le poids multiplie le score brut; `max_results` plafonne la contribution du lien et
    `min_similarity` s'applique au score brut.
    """

    id: str = Field(default_factory=new_id)
    source_tenant_id: str
    target_tenant_id: str
    name: str = ""
    description: str | None = None
    target_name: str | None = None
    access_level: AccessLevel = AccessLevel.READ
    include_tags: list[str] = Field(default_factory=list)
    exclude_tags: list[str] = Field(default_factory=list)
    include_content_types: list[str] = Field(default_factory=list)
    exclude_content_types: list[str] = Field(default_factory=list)
    weight: float = Field(default=1.0, ge=0.0)
    max_results: int = Field(default=5, ge=0)
    min_similarity: float = Field(default=0.1, ge=-1.0, le=1.0)
    status: LinkStatus = LinkStatus.PENDING
    auto_approve: bool = False
    expires_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def filters(self) -> SearchFilters:
        return SearchFilters(
            include_tags=self.include_tags,
            exclude_tags=self.exclude_tags,
            include_content_types=self.include_content_types,
            exclude_content_types=self.exclude_content_types,
        )

    @property
    def label(self) -> str:
        return f"linked: {self.target_name or self.target_tenant_id}"

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or utcnow()
        expires = self.expires_at
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=UTC)
        return expires <= now


class LinkOverride(BaseModel):
    """Surcharge ponctuelle (par requête) du poids et des plafonds d'un lien."""

    weight: float | None = Field(default=None, ge=0.0)
    max_results: int | None = Field(default=None, ge=0)
    min_similarity: float | None = Field(default=None, ge=-1.0, le=1.0)


class RetrieveOptions(BaseModel):
    """Options d'une requête de retrieval."""

    max_results: int | None = Field(default=None, ge=1)
    include_links: bool = True
    # clé: tenant cible du lien
    per_link_overrides: dict[str, LinkOverride] = Field(default_factory=dict)


@dataclass(frozen=True)
class ScoredUnit:
    """Résultat brut d'un store: unité + similarité cosinus."""

    unit: ContentUnit
    score: float


@dataclass(frozen=True)
class RankedResult:
    """Unité classée: score pondéré, origine (propre ou liée) et poids appliqué."""

    unit: ContentUnit
    score: float
    raw_score: float
    origin_tenant_id: str
    weight: float = 1.0
    link_id: str | None = None
    label: str = OWN_SOURCE_LABEL
    access_level: AccessLevel = AccessLevel.READ

    @property
    def is_own(self) -> bool:
        return self.link_id is None


@dataclass(frozen=True)
class ChangeRecord:
    """Enregistrement de changement (append-only, jamais modifié)."""

    tenant_id: str
    source_id: str
    change_type: ChangeType
    new_version: int | None
    old_version: int | None = None
    old_content_hash: str | None = None
    new_content_hash: str | None = None
    change_percentage: float = 0.0
    change_summary: str = ""
    id: str = field(default_factory=new_id)
    detected_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "source_id": self.source_id,
            "change_type": self.change_type.value,
            "old_version": self.old_version,
            "new_version": self.new_version,
            "old_content_hash": self.old_content_hash,
            "new_content_hash": self.new_content_hash,
            "change_percentage": self.change_percentage,
            "change_summary": self.change_summary,
            "detected_at": self.detected_at.isoformat(),
        }
