"""Routes de gestion des liens entre bases de connaissances.

L'autorité qui approuve un lien (administrateur du tenant cible) est vérifiée en amont par la
couche d'authentification; ces routes appliquent uniquement les règles du cycle de vie.
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Request

from crosskb.api.deps import get_container, resolve_tenant
from crosskb.api.schemas import LinkCreateRequest, LinkUpdateRequest
from crosskb.core.constants import HTTP_CREATED
from crosskb.domain.models import KnowledgeBaseLink, LinkStatus

router = APIRouter(prefix="/v1/links", tags=["links"])


def _out(link: KnowledgeBaseLink) -> dict:
    return link.model_dump(mode="json")


@router.post("", status_code=HTTP_CREATED)
def request_link(req: LinkCreateRequest, request: Request) -> dict:
    """Crée une demande de lien (pending, ou active si auto_approve)."""
    source = resolve_tenant(request, req.tenant_id)
    fields = req.model_dump(exclude={"tenant_id", "target_tenant_id"})
    link = get_container(request).registry.request_link(source, req.target_tenant_id, **fields)
    return _out(link)


@router.get("")
def list_links(
    request: Request, tenant_id: str | None = None, status: LinkStatus | None = None
) -> dict:
    """Liens sortants du tenant appelant."""
    tenant = resolve_tenant(request, tenant_id)
    links = get_container(request).registry.list_links(tenant, status)
    return {"links": [_out(link) for link in links]}


@router.get("/pending")
def list_pending(request: Request, tenant_id: str | None = None) -> dict:
    """Demandes entrantes en attente pour le tenant appelant (cible)."""
    tenant = resolve_tenant(request, tenant_id)
    links = get_container(request).registry.list_pending_requests(tenant)
    return {"links": [_out(link) for link in links]}


@router.get("/{link_id}")
def get_link(link_id: str, request: Request) -> dict:
    return _out(get_container(request).registry.get_link(link_id))


@router.patch("/{link_id}")
def update_link(link_id: str, req: LinkUpdateRequest, request: Request) -> dict:
    changes = req.model_dump(exclude_unset=True)
    return _out(get_container(request).registry.update_link(link_id, **changes))


@router.post("/{link_id}/{action}")
def transition(
    link_id: str,
    action: Literal["approve", "reject", "suspend", "resume"],
    request: Request,
) -> dict:
    registry = get_container(request).registry
    handlers = {
        "approve": registry.approve_link,
        "reject": registry.reject_link,
        "suspend": registry.suspend_link,
        "resume": registry.resume_link,
    }
    return _out(handlers[action](link_id))
