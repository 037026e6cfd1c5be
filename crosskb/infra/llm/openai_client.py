"""
Client LLM basé sur l'API OpenAI (chat.completions).

Les erreurs du SDK sont converties en `GenerationUnavailable`; la clé API est résolue par le SDK
(variable OPENAI_API_KEY) lorsqu'elle n'est pas fournie.
"""

from __future__ import annotations

from typing import Any

import openai
from openai import OpenAI

from crosskb.domain.errors import GenerationUnavailable
from crosskb.infra.llm.base import LLM, Generation, Message


class OpenAILLM(LLM):
    """LLM OpenAI (chat.completions)."""

    def __init__(
        self, api_key: str | None = None, model: str = "gpt-4o-mini", timeout_s: float = 60.0
    ) -> None:
        """Initialize the OpenAILLM client."""
        self.model = model
        self.client = OpenAI(api_key=api_key, timeout=timeout_s)

    def generate(self, messages: list[Message], **kwargs: Any) -> Generation:
        """Appelle chat.completions; les erreurs du SDK deviennent `GenerationUnavailable`."""
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                **kwargs,
            )
        except openai.OpenAIError as exc:
            raise GenerationUnavailable(
                "generation provider failed", {"error": type(exc).__name__}
            ) from exc
        choice = resp.choices[0]
        text = str(getattr(getattr(choice, "message", None), "content", None) or "")
        return Generation(text=text, usage=_usage_of(resp), model=getattr(resp, "model", None))


def _usage_of(resp: Any) -> dict[str, int]:
    usage = getattr(resp, "usage", None)
    if not usage:
        return {}
    keys = ("prompt_tokens", "completion_tokens", "total_tokens")
    return {k: int(getattr(usage, k, 0) or 0) for k in keys}
