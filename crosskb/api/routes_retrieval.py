# ============================================================
# Module : crosskb/api/routes_retrieval.py
# Objet  : Endpoints /v1/retrieve, /v1/context, /v1/answer.
# Notes  : validation via les opérations typées; jamais de texte de requête dans les logs.
# ============================================================
"""Routes de retrieval, d'assemblage de contexte et de réponse.

Chaque endpoint construit l'opération typée correspondante et la confie à l'agent
`knowledge-base` du conteneur.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Request

from crosskb.api.deps import get_container, resolve_tenant
from crosskb.api.schemas import AnswerRequest, ContextRequest, RetrieveRequest

router = APIRouter(prefix="/v1", tags=["retrieval"])

KNOWLEDGE_AGENT = "knowledge-base"


async def _run(request: Request, payload: dict[str, Any]) -> dict[str, Any]:
    request_id = request.headers.get("X-Request-ID")
    logger = structlog.get_logger(__name__).bind(request_id=request_id)
    logger.info("api_operation", operation=payload["type"], tenant=payload["tenant_id"])
    agent = get_container(request).agents.get(KNOWLEDGE_AGENT)
    result = await agent.process_request(payload)
    return result["data"]


@router.post("/retrieve")
async def retrieve(req: RetrieveRequest, request: Request) -> dict:
    """Recherche sur la base du tenant et ses bases liées.

    Returns:
        dict: {"results": [...], "unreachable_sources": [...], "references_used": [...]}
    """
    payload = req.model_dump(exclude={"tenant_id"})
    payload.update(type="search", tenant_id=resolve_tenant(request, req.tenant_id))
    return await _run(request, payload)


@router.post("/context")
async def context(req: ContextRequest, request: Request) -> dict:
    """Retrieval puis assemblage du contexte attribué.

    Returns:
        dict: {"context": str, "sources": [...], "unreachable_sources": [...]}
    """
    payload = req.model_dump(exclude={"tenant_id"})
    payload.update(type="context", tenant_id=resolve_tenant(request, req.tenant_id))
    return await _run(request, payload)


@router.post("/answer")
async def answer(req: AnswerRequest, request: Request) -> dict:
    """Réponse générée à partir du contexte assemblé."""
    payload = req.model_dump(exclude={"tenant_id"})
    payload.update(type="answer", tenant_id=resolve_tenant(request, req.tenant_id))
    return await _run(request, payload)
