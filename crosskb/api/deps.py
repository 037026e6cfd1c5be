"""Dépendances partagées pour les routes de l'API.

But du module
-------------
- Donner aux endpoints accès au conteneur construit par `create_app` (stocké dans
  `app.state.container`), sans singleton de module.
- Résoudre le tenant appelant (corps de requête, sinon en-tête `X-Tenant` posé par un proxy
  d'authentification de confiance).
"""

from __future__ import annotations

from fastapi import Request

from crosskb.core.container import Container
from crosskb.domain.tenancy import tenant_from_context

TENANT_HEADER = "X-Tenant"


def get_container(request: Request) -> Container:
    return request.app.state.container


def resolve_tenant(request: Request, body_tenant: str | None = None) -> str:
    """Tenant appelant; lève InvalidOperation s'il est absent ou invalide."""
    return tenant_from_context(body_tenant, request.headers.get(TENANT_HEADER))
