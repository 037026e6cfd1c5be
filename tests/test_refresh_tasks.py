"""Tests du re-scrape programmé (fetch + pipeline d'ingestion), sans broker Celery."""

from __future__ import annotations

import pytest

from crosskb.domain.errors import PermanentEmbeddingError
from crosskb.domain.models import ChangeType, SourceType
from crosskb.infra.embeddings.gateway import EmbeddingGateway
from crosskb.infra.http_clients import FetchedPage
from crosskb.tasks.refresh_tasks import RefreshFailed, run_refresh
from tests.fakes import FailingEmbeddings, no_sleep

TENANT = "acme"
URL = "https://example.test/faq"


class StubPageClient:
    """Renvoie successivement les textes fournis."""

    def __init__(self, *texts: str, title: str | None = "FAQ") -> None:
        self._texts = list(texts)
        self.title = title
        self.fetched: list[str] = []

    def fetch(self, url: str) -> FetchedPage:
        self.fetched.append(url)
        return FetchedPage(url=url, title=self.title, text=self._texts.pop(0), status_code=200)


def test_first_refresh_creates_web_source(container) -> None:
    client = StubPageClient("Question un. Réponse un.")
    result = run_refresh(container.pipeline, client, TENANT, "faq", URL)
    assert result.version == 1
    assert client.fetched == [URL]
    active = container.store.get_active_units(TENANT, "faq")
    assert {u.source_type for u in active} == {SourceType.WEB_PAGE}
    assert {u.title for u in active} == {"FAQ"}


def test_unchanged_page_is_skipped(container) -> None:
    client = StubPageClient("Question un. Réponse un.", "Question un. Réponse un.  \n")
    run_refresh(container.pipeline, client, TENANT, "faq", URL)
    calls = len(container.embeddings.calls)
    result = run_refresh(container.pipeline, client, TENANT, "faq", URL)
    assert result.skipped
    assert len(container.embeddings.calls) == calls


def test_changed_page_creates_new_version(container) -> None:
    client = StubPageClient("Question un. Réponse un.", "Question un. Réponse deux.")
    run_refresh(container.pipeline, client, TENANT, "faq", URL)
    result = run_refresh(container.pipeline, client, TENANT, "faq", URL)
    assert result.version == 2
    assert result.change_records[0].change_type == ChangeType.CONTENT_CHANGED


def test_embedding_failure_raises_refresh_failed(container, codec) -> None:
    container.pipeline.gateway = EmbeddingGateway(
        FailingEmbeddings(PermanentEmbeddingError("quota"), dim=8), codec, sleep=no_sleep
    )
    with pytest.raises(RefreshFailed) as exc_info:
        run_refresh(container.pipeline, StubPageClient("texte"), TENANT, "faq", URL)
    assert exc_info.value.retryable is False
    assert exc_info.value.details["cause"] == "INGESTION_EMBED_FAILED"
