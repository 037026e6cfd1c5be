# Schémas Pydantic exposés par l'API (requêtes).

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from crosskb.domain.models import AccessLevel, LinkOverride, SourceType
from crosskb.domain.tenancy import TENANT_PATTERN


class _TenantScoped(BaseModel):
    # None: tenant résolu depuis l'en-tête X-Tenant
    tenant_id: str | None = None


class RetrieveRequest(_TenantScoped):
    """Requête de retrieval.

    Champs:
    - query: texte de la requête
    - max_results: plafond global (défaut: RETRIEVAL_MAX_RESULTS)
    - include_links: interroger aussi les bases liées
    - per_link_overrides: surcharges par tenant cible (weight, max_results, min_similarity)
    """

    query: str
    max_results: int | None = None
    include_links: bool = True
    per_link_overrides: dict[str, LinkOverride] = Field(default_factory=dict)


class ContextRequest(RetrieveRequest):
    budget: int | None = None


class AnswerRequest(_TenantScoped):
    question: str
    max_results: int | None = None
    include_links: bool = True
    per_link_overrides: dict[str, LinkOverride] = Field(default_factory=dict)
    budget: int | None = None


class IngestRequest(_TenantScoped):
    """Ingestion d'un document ou d'une page web (texte brut déjà extrait)."""

    source_id: str
    text: str
    title: str | None = None
    source_type: SourceType = SourceType.DOCUMENT
    content_type: str | None = None
    tags: list[str] = Field(default_factory=list)


class RevertRequest(_TenantScoped):
    version: int = Field(ge=1)


class LinkCreateRequest(_TenantScoped):
    """Demande de lien du tenant appelant (source) vers `target_tenant_id`."""

    target_tenant_id: str = Field(pattern=TENANT_PATTERN)
    name: str = ""
    description: str | None = None
    target_name: str | None = None
    access_level: AccessLevel = AccessLevel.READ
    include_tags: list[str] = Field(default_factory=list)
    exclude_tags: list[str] = Field(default_factory=list)
    include_content_types: list[str] = Field(default_factory=list)
    exclude_content_types: list[str] = Field(default_factory=list)
    weight: float | None = Field(default=None, ge=0.0)
    max_results: int | None = Field(default=None, ge=0)
    min_similarity: float | None = Field(default=None, ge=-1.0, le=1.0)
    auto_approve: bool = False
    expires_at: datetime | None = None


class LinkUpdateRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    target_name: str | None = None
    access_level: AccessLevel | None = None
    include_tags: list[str] | None = None
    exclude_tags: list[str] | None = None
    include_content_types: list[str] | None = None
    exclude_content_types: list[str] | None = None
    weight: float | None = Field(default=None, ge=0.0)
    max_results: int | None = Field(default=None, ge=0)
    min_similarity: float | None = Field(default=None, ge=-1.0, le=1.0)
    expires_at: datetime | None = None


class AgentExecuteRequest(_TenantScoped):
    """Exécution d'une opération par un agent: `operation` + charge utile `data`."""

    operation: str
    data: dict = Field(default_factory=dict)
