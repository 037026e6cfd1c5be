"""Routes d'ingestion et d'historique des sources.

- POST /v1/ingest: ingestion (ou ré-ingestion) d'une source.
- POST /v1/sources/{source_id}/retire: retrait (historique conservé).
- POST /v1/sources/{source_id}/revert: réactivation d'une version conservée.
- GET  /v1/sources/{source_id}/changes: journal des changements.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from crosskb.api.deps import get_container, resolve_tenant
from crosskb.api.schemas import IngestRequest, RevertRequest

router = APIRouter(prefix="/v1", tags=["ingestion"])

INGESTION_AGENT = "ingestion"


@router.post("/ingest")
async def ingest(req: IngestRequest, request: Request) -> dict:
    """Ingestion via l'agent `ingestion`.

    Returns:
        dict: {"unit_ids", "change_records", "version", "skipped", "failure"}
    """
    payload = {
        "type": "ingest",
        "tenant_id": resolve_tenant(request, req.tenant_id),
        "text": req.text,
        "metadata": {
            "source_id": req.source_id,
            "title": req.title,
            "source_type": req.source_type,
            "content_type": req.content_type,
            "tags": req.tags,
        },
    }
    agent = get_container(request).agents.get(INGESTION_AGENT)
    result = await agent.process_request(payload)
    return result["data"]


@router.post("/sources/{source_id}/retire")
def retire(source_id: str, request: Request, tenant_id: str | None = None) -> dict:
    tenant = resolve_tenant(request, tenant_id)
    return get_container(request).pipeline.retire(tenant, source_id).as_dict()


@router.post("/sources/{source_id}/revert")
def revert(source_id: str, req: RevertRequest, request: Request) -> dict:
    tenant = resolve_tenant(request, req.tenant_id)
    return get_container(request).pipeline.revert(tenant, source_id, req.version).as_dict()


@router.get("/sources/{source_id}/changes")
def changes(source_id: str, request: Request, tenant_id: str | None = None) -> dict:
    tenant = resolve_tenant(request, tenant_id)
    records = get_container(request).store.list_change_records(tenant, source_id)
    return {"source_id": source_id, "changes": [r.as_dict() for r in records]}
