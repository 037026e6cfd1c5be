"""Tests pour les métriques Prometheus.

Vérifie l'exposition de /metrics et la projection des tenants en labels bornés.
"""

from fastapi.testclient import TestClient

from crosskb.app.main import create_app
from crosskb.app.metrics import labelize_tenant
from crosskb.core.constants import HTTP_OK
from crosskb.core.container import Container
from crosskb.core.settings import Settings
from tests.fakes import FakeEmbeddings


def test_metrics_exposed(test_settings, fake_llm):
    """Les compteurs HTTP et métier sont exposés après quelques requêtes."""
    settings = test_settings.model_copy(update={"ALLOWED_TENANTS": ["acme"]})
    container = Container(
        settings, embeddings=FakeEmbeddings(dim=settings.EMBEDDING_DIM), llm=fake_llm
    )
    c = TestClient(create_app(container))
    c.post("/v1/retrieve", json={"query": "bonjour"}, headers={"X-Tenant": "acme"})
    r = c.get("/metrics")
    assert r.status_code == HTTP_OK
    assert b"http_requests_total" in r.content
    assert b'route="/v1/retrieve"' in r.content
    assert b'http_tenant_requests_total{tenant="acme"}' in r.content
    assert b"retrieval_queries_total" in r.content


def test_raw_tenant_never_labelled_without_whitelist(container):
    c = TestClient(create_app(container))
    c.post("/v1/retrieve", json={"query": "bonjour"}, headers={"X-Tenant": "tenant-x9z"})
    r = c.get("/metrics")
    assert b"tenant-x9z" not in r.content
    assert b'http_tenant_requests_total{tenant="unknown"}' in r.content


def test_labelize_tenant_whitelist():
    assert labelize_tenant("acme", None) == "unknown"
    assert labelize_tenant("acme", []) == "unknown"
    assert labelize_tenant(None, []) == "default"
    assert labelize_tenant(" ", ["acme"]) == "default"
    assert labelize_tenant(" acme ", ["acme", "beta"]) == "acme"
    assert labelize_tenant("zeta", ["acme", "beta"]) == "unknown"


def test_allowed_tenants_accepts_csv(monkeypatch):
    monkeypatch.setenv("ALLOWED_TENANTS", "acme, beta,")
    assert Settings().ALLOWED_TENANTS == ["acme", "beta"]
