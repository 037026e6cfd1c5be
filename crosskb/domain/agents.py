# ============================================================
# Module : crosskb/domain/agents.py
# Objet  : Agents (interface commune) et registre injecté.
# Notes  : pas d'état mutable partagé entre agents; le registre est construit par le conteneur.
# ============================================================
"""Agents exécutant des opérations typées.

`KnowledgeBaseAgent` couvre search/context/answer, `IngestionAgent` couvre ingest/refresh. Chaque
agent valide le payload à la frontière (`validate_request`), l'exécute (`process_request`) et
publie son état (`get_health_status`).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

import structlog

from crosskb.domain.errors import AgentNotFound, InvalidOperation
from crosskb.domain.models import AccessLevel, RankedResult, utcnow
from crosskb.domain.operations import (
    AnswerOperation,
    ContextOperation,
    IngestOperation,
    Operation,
    RefreshOperation,
    SearchOperation,
    parse_operation,
)
from crosskb.services.knowledge_service import KnowledgeService

log = structlog.get_logger(__name__)


@dataclass
class HealthStatus:
    agent_id: str
    status: str
    checks: dict[str, Any] = field(default_factory=dict)
    checked_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "status": self.status,
            "checks": self.checks,
            "checked_at": self.checked_at.isoformat(),
        }


class Agent(Protocol):
    agent_id: str
    operations: frozenset[str]

    def validate_request(self, payload: dict[str, Any]) -> Operation: ...

    async def process_request(self, payload: dict[str, Any]) -> dict[str, Any]: ...

    async def get_health_status(self) -> HealthStatus: ...


def _validate(agent_id: str, operations: frozenset[str], payload: dict[str, Any]) -> Operation:
    op = parse_operation(payload)
    if op.type not in operations:
        raise InvalidOperation(
            f"operation {op.type!r} not supported by agent {agent_id}",
            {"supported": sorted(operations)},
        )
    return op


def ranked_as_dict(result: RankedResult) -> dict[str, Any]:
    """Vue sérialisable d'un `RankedResult` (le texte des liens search_only est masqué)."""
    unit = result.unit
    return {
        "id": unit.id,
        "source_id": unit.source_id,
        "title": unit.title,
        "text": unit.text if result.access_level == AccessLevel.READ else None,
        "score": result.score,
        "raw_score": result.raw_score,
        "weight": result.weight,
        "origin_tenant_id": result.origin_tenant_id,
        "link_id": result.link_id,
        "label": result.label,
        "access_level": result.access_level.value,
        "updated_at": unit.updated_at.isoformat(),
    }


class KnowledgeBaseAgent:
    """Agent de recherche, d'assemblage de contexte et de réponse."""

    agent_id = "knowledge-base"
    operations = frozenset({"search", "context", "answer"})

    def __init__(self, service: KnowledgeService) -> None:
        self.service = service

    def validate_request(self, payload: dict[str, Any]) -> Operation:
        return _validate(self.agent_id, self.operations, payload)

    async def process_request(self, payload: dict[str, Any]) -> dict[str, Any]:
        op = self.validate_request(payload)
        started = time.perf_counter()
        if isinstance(op, SearchOperation):
            outcome = await self.service.retrieve(op.tenant_id, op.query, op.retrieve_options())
            data: dict[str, Any] = {
                "results": [ranked_as_dict(r) for r in outcome.results],
                "unreachable_sources": outcome.unreachable_sources,
                "references_used": outcome.references_used,
            }
        elif isinstance(op, ContextOperation):
            outcome, ctx = await self.service.context(
                op.tenant_id, op.query, op.retrieve_options(), op.budget
            )
            data = {
                "context": ctx.text,
                "sources": ctx.sources,
                "unreachable_sources": outcome.unreachable_sources,
            }
        elif isinstance(op, AnswerOperation):
            ans = await self.service.answer(
                op.tenant_id, op.question, op.retrieve_options(), op.budget
            )
            data = {
                "answer": ans.answer,
                "sources": ans.sources,
                "unreachable_sources": ans.unreachable_sources,
            }
        else:
            raise InvalidOperation(f"unsupported operation {op.type!r}")
        elapsed_ms = round((time.perf_counter() - started) * 1000, 3)
        log.info("agent_request_done", agent=self.agent_id, operation=op.type, ms=elapsed_ms)
        return {"operation": op.type, "data": data, "duration_ms": elapsed_ms}

    async def get_health_status(self) -> HealthStatus:
        engine = self.service.engine
        checks = {
            "store_backend": engine.store.backend_name,
            "generation": self.service.llm is not None,
            "max_results": engine.max_results,
            "timeout_s": engine.timeout_s,
        }
        status = "healthy" if self.service.llm is not None else "degraded"
        return HealthStatus(agent_id=self.agent_id, status=status, checks=checks)


class IngestionAgent:
    """Agent d'ingestion et de re-fetch."""

    agent_id = "ingestion"
    operations = frozenset({"ingest", "refresh"})

    def __init__(self, service: KnowledgeService) -> None:
        self.service = service

    def validate_request(self, payload: dict[str, Any]) -> Operation:
        return _validate(self.agent_id, self.operations, payload)

    async def process_request(self, payload: dict[str, Any]) -> dict[str, Any]:
        op = self.validate_request(payload)
        started = time.perf_counter()
        if isinstance(op, IngestOperation):
            result = await self.service.ingest(op.tenant_id, op.text, op.metadata)
        elif isinstance(op, RefreshOperation):
            result = await self.service.refresh(op.tenant_id, op.source_id, op.text, op.title)
        else:
            raise InvalidOperation(f"unsupported operation {op.type!r}")
        elapsed_ms = round((time.perf_counter() - started) * 1000, 3)
        log.info("agent_request_done", agent=self.agent_id, operation=op.type, ms=elapsed_ms)
        return {"operation": op.type, "data": result.as_dict(), "duration_ms": elapsed_ms}

    async def get_health_status(self) -> HealthStatus:
        pipeline = self.service.pipeline
        checks = {
            "store_backend": pipeline.store.backend_name,
            "chunk_max_chars": pipeline.chunker.max_chars,
            "embedding_batch_size": pipeline.gateway.batch_size,
        }
        return HealthStatus(agent_id=self.agent_id, status="healthy", checks=checks)


class AgentRegistry:
    """Registre d'agents construit explicitement (aucun singleton de module)."""

    def __init__(self, agents: list[Agent] | None = None) -> None:
        self._agents: dict[str, Agent] = {}
        for agent in agents or []:
            self.register(agent)

    def register(self, agent: Agent) -> None:
        self._agents[agent.agent_id] = agent

    def get(self, agent_id: str) -> Agent:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFound(f"agent {agent_id} not found", {"agent_id": agent_id})
        return agent

    def list_ids(self) -> list[str]:
        return sorted(self._agents)
