"""Tenancy utilities.

Provides helpers to validate tenant identifiers received at the boundary and to derive the acting
tenant from the request body or a header set by a trusted auth proxy.
"""

from __future__ import annotations

import re

from crosskb.domain.errors import InvalidOperation

TENANT_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"
_SAFE_TENANT_RE = re.compile(TENANT_PATTERN)


def normalize_tenant(value: str | None) -> str | None:
    """Return the trimmed tenant id if it matches the safe pattern, else None."""
    if not value:
        return None
    t = value.strip()
    if _SAFE_TENANT_RE.match(t):
        return t
    return None


def tenant_from_context(body_tenant: str | None, header_tenant: str | None) -> str:
    """Return the acting tenant.

    Preference order:
    1) body_tenant (explicit in the payload)
    2) header_tenant (e.g., injected by trusted auth proxy)

    Raises:
        InvalidOperation: no tenant, or a tenant id with unexpected characters.
    """
    raw = body_tenant if body_tenant and body_tenant.strip() else header_tenant
    tenant = normalize_tenant(raw)
    if tenant is None:
        raise InvalidOperation("missing or invalid tenant id", {"tenant_id": raw})
    return tenant
