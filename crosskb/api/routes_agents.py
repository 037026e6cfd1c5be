"""Routes des agents: exécution d'une opération et état de santé."""

from __future__ import annotations

from fastapi import APIRouter, Request

from crosskb.api.deps import get_container, resolve_tenant
from crosskb.api.schemas import AgentExecuteRequest

router = APIRouter(prefix="/v1/agents", tags=["agents"])


@router.get("")
def list_agents(request: Request) -> dict:
    return {"agents": get_container(request).agents.list_ids()}


@router.post("/{agent_id}/execute")
async def execute(agent_id: str, req: AgentExecuteRequest, request: Request) -> dict:
    """Valide puis exécute `operation` avec la charge utile `data`."""
    agent = get_container(request).agents.get(agent_id)
    payload = {
        **req.data,
        "type": req.operation,
        "tenant_id": resolve_tenant(request, req.tenant_id),
    }
    result = await agent.process_request(payload)
    return {"agent_id": agent_id, **result}


@router.get("/{agent_id}/health")
async def health(agent_id: str, request: Request) -> dict:
    agent = get_container(request).agents.get(agent_id)
    status = await agent.get_health_status()
    return status.as_dict()
