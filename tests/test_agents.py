"""Tests des opérations typées et des agents (validation, exécution, santé)."""

from __future__ import annotations

import pytest

from crosskb.domain.agents import AgentRegistry, ranked_as_dict
from crosskb.domain.errors import AgentNotFound, GenerationUnavailable, InvalidOperation
from crosskb.domain.ingestion import SourceMetadata
from crosskb.domain.models import AccessLevel, RankedResult
from crosskb.domain.operations import IngestOperation, SearchOperation, parse_operation
from crosskb.domain.tenancy import normalize_tenant, tenant_from_context
from tests.fakes import unit


def test_parse_operation_variants() -> None:
    op = parse_operation({"type": "search", "tenant_id": "acme", "query": "bonjour"})
    assert isinstance(op, SearchOperation)
    op = parse_operation(
        {"type": "ingest", "tenant_id": "acme", "text": "x", "metadata": {"source_id": "d"}}
    )
    assert isinstance(op, IngestOperation)


@pytest.mark.parametrize(
    "payload",
    [
        {"type": "delete_everything", "tenant_id": "acme"},
        {"type": "search", "tenant_id": "acme", "query": ""},
        {"type": "search", "tenant_id": "bad tenant!", "query": "q"},
        {"type": "search", "tenant_id": "acme", "query": "q", "max_results": 0},
    ],
)
def test_parse_operation_rejects(payload) -> None:
    with pytest.raises(InvalidOperation) as exc_info:
        parse_operation(payload)
    assert exc_info.value.details["errors"]


def test_tenant_resolution() -> None:
    assert tenant_from_context("acme", "other") == "acme"
    assert tenant_from_context(None, " other ") == "other"
    assert normalize_tenant("../etc") is None
    with pytest.raises(InvalidOperation):
        tenant_from_context(None, None)


def test_registry_lookup(container) -> None:
    assert container.agents.list_ids() == ["ingestion", "knowledge-base"]
    with pytest.raises(AgentNotFound):
        container.agents.get("nope")
    assert AgentRegistry().list_ids() == []


async def test_agent_rejects_foreign_operation(container) -> None:
    agent = container.agents.get("ingestion")
    with pytest.raises(InvalidOperation):
        await agent.process_request({"type": "search", "tenant_id": "acme", "query": "q"})


async def test_ingest_then_search_through_agents(container) -> None:
    ingestion = container.agents.get("ingestion")
    kb = container.agents.get("knowledge-base")
    res = await ingestion.process_request(
        {
            "type": "ingest",
            "tenant_id": "acme",
            "text": "Les chats siamois aiment dormir.",
            "metadata": {"source_id": "cats", "title": "Chats"},
        }
    )
    assert res["operation"] == "ingest"
    assert res["data"]["version"] == 1

    out = await kb.process_request({"type": "search", "tenant_id": "acme", "query": "chats"})
    assert out["data"]["results"][0]["source_id"] == "cats"
    assert out["data"]["unreachable_sources"] == []

    ctx = await kb.process_request({"type": "context", "tenant_id": "acme", "query": "chats"})
    assert ctx["data"]["context"].startswith("[1] (own) Chats")


async def test_answer_uses_llm(container, fake_llm) -> None:
    await container.service.ingest("acme", "Le siège est à Lyon.", SourceMetadata(source_id="hq"))
    out = await container.agents.get("knowledge-base").process_request(
        {"type": "answer", "tenant_id": "acme", "question": "Où est le siège ?"}
    )
    assert out["data"]["answer"] == fake_llm.answer
    user_msg = fake_llm.messages[-1][-1]["content"]
    assert "Le siège est à Lyon." in user_msg


async def test_answer_without_llm(container) -> None:
    container.service.llm = None
    with pytest.raises(GenerationUnavailable):
        await container.service.answer("acme", "question")


async def test_health_status(container) -> None:
    health = await container.agents.get("knowledge-base").get_health_status()
    assert health.status == "healthy"
    assert health.as_dict()["checks"]["store_backend"] == "memory"
    container.service.llm = None
    assert (await container.agents.get("knowledge-base").get_health_status()).status == "degraded"


def test_search_only_text_is_masked() -> None:
    result = RankedResult(
        unit=unit("u1", "B", text="confidentiel"),
        score=0.4,
        raw_score=0.8,
        origin_tenant_id="B",
        weight=0.5,
        link_id="l1",
        access_level=AccessLevel.SEARCH_ONLY,
    )
    data = ranked_as_dict(result)
    assert data["text"] is None
    assert data["access_level"] == "search_only"
