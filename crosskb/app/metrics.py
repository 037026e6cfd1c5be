"""
Métriques Prometheus pour l'application.

Ce module définit les métriques Prometheus du moteur de retrieval inter-tenants (requêtes, sources
injoignables, embeddings, ingestion) et expose `/metrics` ainsi qu'un middleware HTTP.
"""

import time
from collections.abc import Iterable

from fastapi import APIRouter, Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

metrics_router = APIRouter()

REQUEST_COUNT = Counter(
    "http_requests_total", "Total HTTP requests", ["method", "route", "status"]
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds", "Latency of HTTP requests", ["route"]
)

# Retrieval-specific metrics
RETRIEVAL_QUERIES_TOTAL = Counter(
    "retrieval_queries_total",
    "Total retrieval queries",
    ["tenant", "outcome"],
)
RETRIEVAL_LATENCY = Histogram(
    "retrieval_latency_seconds",
    "Latency of retrieval queries (embedding + fan-out + ranking)",
    ["tenant"],
)
RETRIEVAL_SOURCE_FAILURES = Counter(
    "retrieval_source_failures_total",
    "Per-store search failures absorbed by the partial-result policy",
    ["reason"],
)
RETRIEVAL_RESULTS_TOTAL = Counter(
    "retrieval_results_total",
    "Results returned after truncation",
    ["origin"],
)

# Embeddings
EMBEDDING_REQUESTS = Counter(
    "embedding_requests_total",
    "Embedding provider batch calls",
    ["outcome"],
)
EMBEDDING_RETRIES = Counter(
    "embedding_retries_total",
    "Embedding batch retries after transient failures",
)

# Ingestion
INGEST_OPERATIONS = Counter(
    "ingest_operations_total",
    "Ingestion operations",
    ["outcome"],
)
CHANGE_RECORDS_TOTAL = Counter(
    "change_records_total",
    "Change records appended",
    ["change_type"],
)

# Vector store ops
VECSTORE_SEARCH = Counter(
    "vecstore_search_total",
    "Total search operations",
    ["backend"],
)
VECSTORE_OP_LATENCY = Histogram(
    "vecstore_op_latency_seconds",
    "Latency of vecstore operations",
    ["op", "backend"],
)


HTTP_TENANT_REQUESTS = Counter(
    "http_tenant_requests_total",
    "HTTP requests per calling tenant (whitelisted label)",
    ["tenant"],
)
HTTP_IN_FLIGHT = Gauge("http_requests_in_flight", "HTTP requests being processed")

TENANT_HEADER = "X-Tenant"
DEFAULT_TENANT_LABEL = "default"
UNKNOWN_TENANT_LABEL = "unknown"


def labelize_tenant(tenant: str | None, allowed: Iterable[str] | None) -> str:
    """Label Prometheus d'un tenant: sa valeur si whitelistée, sinon 'unknown'.

    Tenant absent: 'default'. Sans whitelist, aucun identifiant brut ne devient un label.
    """
    name = (tenant or "").strip()
    if not name:
        return DEFAULT_TENANT_LABEL
    whitelist = {a.strip() for a in allowed or () if a and a.strip()}
    return name if name in whitelist else UNKNOWN_TENANT_LABEL


@metrics_router.get("/metrics")
def metrics():
    """Expose les métriques Prometheus au format texte."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Compte les requêtes HTTP par route (gabarit FastAPI, pas le chemin brut) et par tenant.

    Le tenant vient de l'en-tête `X-Tenant`; son label passe par la whitelist `allowed_tenants`
    pour borner la cardinalité.
    """

    def __init__(self, app: ASGIApp, allowed_tenants: Iterable[str] | None = None) -> None:
        super().__init__(app)
        self.allowed_tenants = list(allowed_tenants or [])

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        HTTP_IN_FLIGHT.inc()
        status = "500"
        try:
            response: Response = await call_next(request)
            status = str(response.status_code)
            return response
        finally:
            HTTP_IN_FLIGHT.dec()
            route = getattr(request.scope.get("route"), "path", None) or "unmatched"
            REQUEST_COUNT.labels(request.method, route, status).inc()
            REQUEST_LATENCY.labels(route).observe(time.perf_counter() - start)
            tenant = request.headers.get(TENANT_HEADER)
            HTTP_TENANT_REQUESTS.labels(labelize_tenant(tenant, self.allowed_tenants)).inc()
