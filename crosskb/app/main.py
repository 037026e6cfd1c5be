"""
Application principale FastAPI.

Ce module assemble tous les composants de l'application : conteneur de dépendances, middlewares,
routes, métriques et gestion d'erreurs.

Responsabilités du module:
- Initialiser le logging structuré
- Construire (ou recevoir) le conteneur et le publier dans `app.state.container`
- Ajouter les middlewares (request id, métriques Prometheus)
- Monter les routers (santé, retrieval, ingestion, liens, agents, métriques)
"""

from __future__ import annotations

from fastapi import FastAPI

from crosskb.api.routes_agents import router as agents_router
from crosskb.api.routes_health import router as health_router
from crosskb.api.routes_ingest import router as ingest_router
from crosskb.api.routes_links import router as links_router
from crosskb.api.routes_retrieval import router as retrieval_router
from crosskb.app.errors import install_error_handlers
from crosskb.app.metrics import PrometheusMiddleware, metrics_router
from crosskb.core.container import Container
from crosskb.core.logging import setup_logging
from crosskb.middlewares.request_id import RequestIDMiddleware


def create_app(container: Container | None = None) -> FastAPI:
    """
    Construit et retourne l'application FastAPI prête à l'usage.

    Étapes:
    - Configure le logging structuré (structlog)
    - Construit le conteneur à partir des settings si aucun n'est fourni
    - Ajoute les middlewares utiles au debug/traçabilité
    - Publie les routes
    """
    container = container or Container()
    settings = container.settings
    setup_logging(settings.APP_ENV, settings.LOG_LEVEL)
    app = FastAPI(title=settings.APP_NAME, debug=settings.APP_DEBUG)
    app.state.container = container
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(PrometheusMiddleware, allowed_tenants=settings.ALLOWED_TENANTS)
    install_error_handlers(app)
    app.include_router(health_router)
    app.include_router(retrieval_router)
    app.include_router(ingest_router)
    app.include_router(links_router)
    app.include_router(agents_router)
    app.include_router(metrics_router)
    return app
