"""Tests de la passerelle d'embeddings (batching, retry borné, erreurs permanentes)."""

from __future__ import annotations

import httpx
import openai
import pytest

from crosskb.domain.errors import (
    InvalidVectorDimensionality,
    PermanentEmbeddingError,
    TransientEmbeddingError,
)
from crosskb.domain.vector_codec import VectorCodec
from crosskb.infra.embeddings.gateway import EmbeddingGateway
from crosskb.infra.embeddings.openai_embedder import classify_openai_error
from tests.fakes import FailingEmbeddings, FakeEmbeddings, no_sleep, transient

DIM = 8
EXPECTED_BATCHES = 3
MAX_ATTEMPTS = 3


async def test_batches_preserve_order() -> None:
    """10 textes en lots de 4 -> 3 appels, un vecteur par texte dans l'ordre."""
    provider = FakeEmbeddings(dim=DIM)
    gw = EmbeddingGateway(provider, VectorCodec(DIM), batch_size=4, sleep=no_sleep)
    texts = [f"texte numero {i}" for i in range(10)]
    vectors = await gw.embed(texts)
    assert len(provider.calls) == EXPECTED_BATCHES
    assert vectors == provider.embed(texts)


async def test_empty_input_makes_no_call() -> None:
    provider = FakeEmbeddings(dim=DIM)
    gw = EmbeddingGateway(provider, VectorCodec(DIM), sleep=no_sleep)
    assert await gw.embed([]) == []
    assert provider.calls == []


async def test_transient_error_is_retried() -> None:
    """Deux échecs transitoires puis succès: le lot aboutit."""
    delays: list[float] = []

    async def record(delay: float) -> None:
        delays.append(delay)

    provider = FailingEmbeddings(transient(), failures=2, dim=DIM)
    gw = EmbeddingGateway(
        provider, VectorCodec(DIM), max_attempts=MAX_ATTEMPTS, backoff_base_s=0.1, sleep=record
    )
    vectors = await gw.embed(["bonjour"])
    assert len(vectors) == 1
    assert provider.attempts == MAX_ATTEMPTS
    assert len(delays) == 2
    assert all(d <= gw.backoff_max_s for d in delays)


async def test_transient_error_exhausts_attempts() -> None:
    provider = FailingEmbeddings(transient(), dim=DIM)
    gw = EmbeddingGateway(provider, VectorCodec(DIM), max_attempts=MAX_ATTEMPTS, sleep=no_sleep)
    with pytest.raises(TransientEmbeddingError):
        await gw.embed(["bonjour"])
    assert provider.attempts == MAX_ATTEMPTS


async def test_permanent_error_is_not_retried() -> None:
    provider = FailingEmbeddings(PermanentEmbeddingError("bad input"), dim=DIM)
    gw = EmbeddingGateway(provider, VectorCodec(DIM), max_attempts=MAX_ATTEMPTS, sleep=no_sleep)
    with pytest.raises(PermanentEmbeddingError):
        await gw.embed(["bonjour"])
    assert provider.attempts == 1


async def test_wrong_dimension_from_provider() -> None:
    gw = EmbeddingGateway(FakeEmbeddings(dim=4), VectorCodec(DIM), sleep=no_sleep)
    with pytest.raises(InvalidVectorDimensionality):
        await gw.embed(["bonjour"])


def test_batch_size_bounded_by_provider() -> None:
    provider = FakeEmbeddings(dim=DIM)
    provider.max_batch_size = 2
    gw = EmbeddingGateway(provider, VectorCodec(DIM), batch_size=100)
    assert gw.batch_size == 2


def test_backoff_is_capped() -> None:
    gw = EmbeddingGateway(
        FakeEmbeddings(dim=DIM), VectorCodec(DIM), backoff_base_s=1.0, backoff_max_s=3.0
    )
    assert gw.backoff_delay(10) == 3.0


def _request() -> httpx.Request:
    return httpx.Request("POST", "https://api.openai.com/v1/embeddings")


def test_classify_openai_errors() -> None:
    """Réseau/timeout/rate-limit -> transitoire; quota épuisé et 4xx -> permanent."""
    req = _request()
    assert isinstance(
        classify_openai_error(openai.APITimeoutError(request=req)), TransientEmbeddingError
    )
    assert isinstance(
        classify_openai_error(openai.APIConnectionError(request=req)), TransientEmbeddingError
    )
    limited = openai.RateLimitError(
        "slow down", response=httpx.Response(429, request=req), body=None
    )
    assert isinstance(classify_openai_error(limited), TransientEmbeddingError)
    quota = openai.RateLimitError(
        "quota",
        response=httpx.Response(429, request=req),
        body={"code": "insufficient_quota"},
    )
    assert isinstance(classify_openai_error(quota), PermanentEmbeddingError)
    bad = openai.BadRequestError(
        "bad", response=httpx.Response(400, request=req), body=None
    )
    assert isinstance(classify_openai_error(bad), PermanentEmbeddingError)
