"""Tests du client de génération OpenAI (transport httpx simulé, aucun appel réseau)."""

from __future__ import annotations

import httpx
import pytest
from openai import OpenAI

from crosskb.domain.errors import GenerationUnavailable
from crosskb.infra.llm.openai_client import OpenAILLM

COMPLETION = {
    "id": "chatcmpl-1",
    "object": "chat.completion",
    "created": 0,
    "model": "gpt-4o-mini",
    "choices": [
        {
            "index": 0,
            "message": {"role": "assistant", "content": "Le siège est à Lyon [1]."},
            "finish_reason": "stop",
        }
    ],
    "usage": {"prompt_tokens": 12, "completion_tokens": 8, "total_tokens": 20},
}


def _llm(handler) -> OpenAILLM:
    llm = OpenAILLM(api_key="sk-test")
    llm.client = OpenAI(
        api_key="sk-test",
        max_retries=0,
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    return llm


def test_generate_returns_text_and_usage() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=COMPLETION)

    generation = _llm(handler).generate([{"role": "user", "content": "Où est le siège ?"}])
    assert generation.text == "Le siège est à Lyon [1]."
    assert generation.total_tokens == 20
    assert generation.model == "gpt-4o-mini"
    assert seen[0].url.path.endswith("/chat/completions")


def test_provider_error_becomes_generation_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"message": "bad", "type": "invalid"}})

    with pytest.raises(GenerationUnavailable) as exc_info:
        _llm(handler).generate([{"role": "user", "content": "q"}])
    assert exc_info.value.retryable is True
    assert exc_info.value.details["error"] == "BadRequestError"
