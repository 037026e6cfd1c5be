# ============================================================
# Module : crosskb/domain/operations.py
# Objet  : Variantes typées des opérations acceptées par les agents.
# Notes  : validation à la frontière (API/agents), jamais dans le cœur.
# ============================================================
"""Opérations (union discriminée sur `type`).

Chaque variante porte sa charge utile typée; `parse_operation` convertit un payload brut en
variante validée ou lève `InvalidOperation`.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from crosskb.core.constants import (
    MAX_INGEST_CHARS,
    MAX_MAX_RESULTS,
    MAX_QUERY_LEN,
    MIN_MAX_RESULTS,
)
from crosskb.domain.errors import InvalidOperation
from crosskb.domain.ingestion import SourceMetadata
from crosskb.domain.models import LinkOverride, RetrieveOptions
from crosskb.domain.tenancy import TENANT_PATTERN

TenantId = Annotated[str, Field(pattern=TENANT_PATTERN)]
QueryText = Annotated[str, Field(min_length=1, max_length=MAX_QUERY_LEN)]
MaxResults = Annotated[int, Field(ge=MIN_MAX_RESULTS, le=MAX_MAX_RESULTS)]


class _QueryOperation(BaseModel):
    tenant_id: TenantId
    max_results: MaxResults | None = None
    include_links: bool = True
    per_link_overrides: dict[str, LinkOverride] = Field(default_factory=dict)

    def retrieve_options(self) -> RetrieveOptions:
        return RetrieveOptions(
            max_results=self.max_results,
            include_links=self.include_links,
            per_link_overrides=self.per_link_overrides,
        )


class SearchOperation(_QueryOperation):
    type: Literal["search"] = "search"
    query: QueryText


class ContextOperation(_QueryOperation):
    type: Literal["context"] = "context"
    query: QueryText
    budget: int | None = Field(default=None, ge=0)


class AnswerOperation(_QueryOperation):
    type: Literal["answer"] = "answer"
    question: QueryText
    budget: int | None = Field(default=None, ge=0)


class IngestOperation(BaseModel):
    type: Literal["ingest"] = "ingest"
    tenant_id: TenantId
    text: str = Field(max_length=MAX_INGEST_CHARS)
    metadata: SourceMetadata


class RefreshOperation(BaseModel):
    type: Literal["refresh"] = "refresh"
    tenant_id: TenantId
    source_id: str = Field(min_length=1)
    text: str = Field(max_length=MAX_INGEST_CHARS)
    title: str | None = None


Operation = Annotated[
    SearchOperation | ContextOperation | AnswerOperation | IngestOperation | RefreshOperation,
    Field(discriminator="type"),
]

_ADAPTER: TypeAdapter[Operation] = TypeAdapter(Operation)


def parse_operation(payload: dict[str, Any]) -> Operation:
    """Valide un payload brut.

    Raises:
        InvalidOperation: type inconnu ou charge utile invalide.
    """
    try:
        return _ADAPTER.validate_python(payload)
    except ValidationError as exc:
        errors = [
            {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
            for err in exc.errors()
        ]
        raise InvalidOperation("invalid operation payload", {"errors": errors}) from exc
