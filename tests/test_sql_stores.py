"""Tests des dépôts SQLAlchemy (SQLite en mémoire): contenu versionné, liens, journal."""

from __future__ import annotations

import pytest

from crosskb.domain.chunker import TextChunker
from crosskb.domain.ingestion import IngestionPipeline, SourceMetadata
from crosskb.domain.link_registry import LinkRegistry
from crosskb.domain.models import (
    AccessLevel,
    ChangeType,
    ContentUnit,
    LinkStatus,
    SearchFilters,
)
from crosskb.infra.repo.content_unit_repo import SqlContentStore
from crosskb.infra.repo.db import create_schema, get_engine
from crosskb.infra.repo.link_repo import SqlLinkRepository

TENANT = "acme"


@pytest.fixture
def engine():
    eng = get_engine("sqlite+pysqlite:///:memory:")
    create_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def sql_store(engine, codec) -> SqlContentStore:
    return SqlContentStore(engine, codec)


@pytest.fixture
def sql_pipeline(sql_store, gateway) -> IngestionPipeline:
    return IngestionPipeline(sql_store, gateway, TextChunker(max_chars=60, tolerance=10))


async def test_ingest_and_search(sql_pipeline, sql_store, gateway) -> None:
    await sql_pipeline.ingest(
        TENANT, "chats siamois et persans", SourceMetadata(source_id="cats", tags=["pets"])
    )
    await sql_pipeline.ingest(
        TENANT, "moteurs diesel", SourceMetadata(source_id="cars", content_type="text/plain")
    )
    vector = await gateway.embed_one("chats siamois")
    hits = await sql_store.search_by_vector(TENANT, vector, None, 5)
    assert hits[0].unit.source_id == "cats"
    assert hits[0].unit.embedding is None

    filtered = await sql_store.search_by_vector(
        TENANT, vector, SearchFilters(exclude_tags=["pets"]), 5
    )
    assert [h.unit.source_id for h in filtered] == ["cars"]
    assert await sql_store.search_by_vector("other", vector, None, 5) == []


async def test_versions_and_change_log(sql_pipeline, sql_store) -> None:
    meta = SourceMetadata(source_id="doc", title="T")
    await sql_pipeline.ingest(TENANT, "version un du texte", meta)
    await sql_pipeline.ingest(TENANT, "version deux du texte", meta)
    assert sql_store.list_versions(TENANT, "doc") == [1, 2]
    active = sql_store.get_active_units(TENANT, "doc")
    assert {u.version for u in active} == {2}
    assert active[0].embedding is not None

    sql_pipeline.revert(TENANT, "doc", 1)
    assert {u.version for u in sql_store.get_active_units(TENANT, "doc")} == {1}

    sql_pipeline.retire(TENANT, "doc")
    assert sql_store.get_active_units(TENANT, "doc") == []
    types = [r.change_type for r in sql_store.list_change_records(TENANT, "doc")]
    assert types[0] == ChangeType.CREATED
    assert types[-1] == ChangeType.DELETED
    assert len(types) == 4


def test_replace_requires_embeddings(sql_store) -> None:
    with pytest.raises(ValueError):
        sql_store.replace_active_version(
            TENANT, "doc", [ContentUnit(tenant_id=TENANT, source_id="doc", text="x")]
        )


def test_link_repository_roundtrip(engine) -> None:
    registry = LinkRegistry(SqlLinkRepository(engine))
    link = registry.request_link(
        "a",
        "b",
        access_level=AccessLevel.SEARCH_ONLY,
        include_tags=["faq"],
        weight=0.5,
        auto_approve=True,
    )
    stored = registry.get_link(link.id)
    assert stored.status == LinkStatus.ACTIVE
    assert stored.access_level == AccessLevel.SEARCH_ONLY
    assert stored.include_tags == ["faq"]
    assert stored.created_at.tzinfo is not None

    registry.suspend_link(link.id)
    assert registry.resolve_active_links("a") == []
    assert [x.id for x in registry.list_links("a", LinkStatus.SUSPENDED)] == [link.id]
