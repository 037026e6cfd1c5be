"""
Tâches Celery de re-scrape des sources web.

Récupère la page d'une source `web_page`, en extrait le texte visible et le repasse dans le
pipeline d'ingestion: un contenu inchangé ne coûte aucun appel d'embeddings, un contenu modifié
produit une nouvelle version et un ChangeRecord.
"""

from __future__ import annotations

import asyncio
from functools import lru_cache

import structlog

from crosskb.app.celery_app import celery_app
from crosskb.core.container import Container
from crosskb.core.logging import setup_logging
from crosskb.domain.errors import CrossKBError
from crosskb.domain.ingestion import IngestionPipeline, IngestResult
from crosskb.infra.http_clients import WebPageClient

log = structlog.get_logger(__name__)


@lru_cache(maxsize=1)
def _container() -> Container:
    container = Container()
    setup_logging(container.settings.APP_ENV, container.settings.LOG_LEVEL)
    return container


class RefreshFailed(CrossKBError):
    """Échec d'ingestion remonté par le pipeline lors d'un re-scrape."""

    code = "REFRESH_FAILED"

    def __init__(self, message: str, *, retryable: bool, details: dict | None = None):
        super().__init__(message, details)
        self.retryable = retryable


def run_refresh(
    pipeline: IngestionPipeline,
    client: WebPageClient,
    tenant_id: str,
    source_id: str,
    url: str,
) -> IngestResult:
    """Fetch + ingestion; lève `RefreshFailed` si le pipeline a enregistré un échec."""
    page = client.fetch(url)
    result = asyncio.run(pipeline.refresh(tenant_id, source_id, page.text, page.title))
    if result.failure is not None:
        raise RefreshFailed(
            result.failure["message"],
            retryable=result.failure["retryable"],
            details={"source_id": source_id, "cause": result.failure["code"]},
        )
    log.info(
        "refresh_done",
        tenant_id=tenant_id,
        source_id=source_id,
        skipped=result.skipped,
        version=result.version,
    )
    return result


@celery_app.task(
    bind=True,
    name="crosskb.tasks.refresh_web_source",
    max_retries=5,
    default_retry_delay=30,
)
def refresh_web_source(self, tenant_id: str, source_id: str, url: str) -> dict:
    container = _container()
    client = WebPageClient(timeout_s=container.settings.REFRESH_HTTP_TIMEOUT_S)
    try:
        result = run_refresh(container.pipeline, client, tenant_id, source_id, url)
    except CrossKBError as exc:
        log.warning(
            "refresh_failed",
            tenant_id=tenant_id,
            source_id=source_id,
            code=exc.code,
            retryable=exc.retryable,
        )
        if exc.retryable:
            raise self.retry(exc=exc, countdown=min(60 * 2**self.request.retries, 900)) from exc
        raise
    finally:
        client.close()
    return result.as_dict()
