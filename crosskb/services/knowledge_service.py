"""Façade métier du moteur de connaissances.

Responsabilités:
- Exposer `retrieve`, `assemble_context`, `ingest` et `answer` aux points d'entrée (API, agents,
  tâches Celery, CLI).
- Composer retrieval, assemblage de contexte et génération pour `answer`.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import structlog

from crosskb.domain.context_assembler import AssembledContext, ContextAssembler
from crosskb.domain.errors import GenerationUnavailable
from crosskb.domain.ingestion import IngestionPipeline, IngestResult, SourceMetadata
from crosskb.domain.models import RankedResult, RetrieveOptions
from crosskb.domain.retrieval_engine import RetrievalEngine, RetrievalOutcome
from crosskb.infra.llm.base import LLM

SYSTEM = (
    "You answer questions using only the numbered context passages provided. "
    "Cite passages by their index, e.g. [1]. If the context says no relevant context was "
    "found, say that you do not have enough information."
)


@dataclass
class AnswerResult:
    answer: str
    sources: list[dict[str, Any]] = field(default_factory=list)
    unreachable_sources: list[str] = field(default_factory=list)
    usage: dict[str, int] = field(default_factory=dict)


class KnowledgeService:
    """Service métier (retrieval, contexte, ingestion, génération)."""

    def __init__(
        self,
        engine: RetrievalEngine,
        assembler: ContextAssembler,
        pipeline: IngestionPipeline,
        llm: LLM | None = None,
        system_prompt: str = SYSTEM,
    ) -> None:
        """Initialise le service avec ses dépendances.

        Paramètres:
        - engine: moteur de retrieval inter-tenants.
        - assembler: assembleur de contexte borné.
        - pipeline: pipeline d'ingestion versionnée.
        - llm: client de génération (None: `answer` indisponible).
        """
        self.engine = engine
        self.assembler = assembler
        self.pipeline = pipeline
        self.llm = llm
        self.system_prompt = system_prompt
        self._log = structlog.get_logger(__name__).bind(component="knowledge_service")

    async def retrieve(
        self, tenant_id: str, query: str, options: RetrieveOptions | None = None
    ) -> RetrievalOutcome:
        return await self.engine.retrieve(tenant_id, query, options)

    def assemble_context(
        self, results: list[RankedResult], budget: int | None = None
    ) -> AssembledContext:
        return self.assembler.assemble(results, budget)

    async def context(
        self,
        tenant_id: str,
        query: str,
        options: RetrieveOptions | None = None,
        budget: int | None = None,
    ) -> tuple[RetrievalOutcome, AssembledContext]:
        """Retrieval puis assemblage."""
        outcome = await self.retrieve(tenant_id, query, options)
        return outcome, self.assemble_context(outcome.results, budget)

    async def ingest(
        self, tenant_id: str, raw_text: str, metadata: SourceMetadata
    ) -> IngestResult:
        return await self.pipeline.ingest(tenant_id, raw_text, metadata)

    async def refresh(
        self, tenant_id: str, source_id: str, raw_text: str, title: str | None = None
    ) -> IngestResult:
        return await self.pipeline.refresh(tenant_id, source_id, raw_text, title)

    async def answer(
        self,
        tenant_id: str,
        question: str,
        options: RetrieveOptions | None = None,
        budget: int | None = None,
    ) -> AnswerResult:
        """Retrieval, assemblage puis génération.

        Raises:
            GenerationUnavailable: aucun LLM configuré, ou échec du fournisseur.
        """
        if self.llm is None:
            raise GenerationUnavailable("no generation provider configured")
        outcome, ctx = await self.context(tenant_id, question, options, budget)
        messages = [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": f"Context:\n{ctx.text}\n\nQuestion: {question}"},
        ]
        generation = await asyncio.to_thread(self.llm.generate, messages)
        self._log.info(
            "answer_generated",
            tenant=tenant_id,
            sources=len(ctx.sources),
            degraded=ctx.is_empty,
            total_tokens=generation.total_tokens,
        )
        return AnswerResult(
            answer=generation.text,
            sources=ctx.sources,
            unreachable_sources=outcome.unreachable_sources,
            usage=generation.usage,
        )
