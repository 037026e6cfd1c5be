"""
Fakes et mocks pour les tests unitaires.

Ce module fournit des implémentations factices des fournisseurs d'embeddings, du LLM et des stores
de contenu, avec un comportement déterministe (scores scriptés, délais et pannes contrôlés).
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from crosskb.domain.errors import TransientEmbeddingError
from crosskb.domain.models import ContentUnit, ScoredUnit, SearchFilters
from crosskb.infra.embeddings.base import Embeddings
from crosskb.infra.llm.base import LLM, Generation, Message

FIXED_TS = datetime(2026, 1, 1, tzinfo=UTC)


class FakeEmbeddings(Embeddings):
    """
    Implémentation factice d'Embeddings pour les tests.

    Chaque mot incrémente une composante choisie par la somme de ses caractères: deux textes qui
    partagent des mots sont proches. Les lots reçus sont conservés dans `calls`.
    """

    def __init__(self, dim: int = 8) -> None:
        self.dim = dim
        self.calls: list[list[str]] = []

    def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        out = []
        for t in texts:
            vec = [0.0] * self.dim
            for word in t.lower().split():
                vec[sum(map(ord, word)) % self.dim] += 1.0
            vec[0] += 0.01
            out.append(vec)
        return out

    @property
    def texts_embedded(self) -> int:
        return sum(len(batch) for batch in self.calls)


class FailingEmbeddings(FakeEmbeddings):
    """Lève `error` sur les `failures` premiers appels, puis se comporte comme FakeEmbeddings."""

    def __init__(self, error: Exception, failures: int = 1_000_000, dim: int = 8) -> None:
        super().__init__(dim)
        self.error = error
        self.failures = failures
        self.attempts = 0

    def embed(self, texts: list[str]) -> list[list[float]]:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise self.error
        return super().embed(texts)


def transient() -> TransientEmbeddingError:
    return TransientEmbeddingError("provider timeout")


class FakeLLM(LLM):
    """
    Implémentation factice de LLM pour les tests.

    Retourne une réponse prédéfinie et conserve les messages reçus.
    """

    def __init__(self, answer: str = "fake answer [1]") -> None:
        self.answer = answer
        self.messages: list[list[dict[str, str]]] = []

    def generate(self, messages: list[Message], **kwargs: Any) -> Generation:
        self.messages.append(messages)
        usage = {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}
        return Generation(text=self.answer, usage=usage, model="fake")


def unit(
    unit_id: str,
    tenant_id: str,
    *,
    text: str | None = None,
    tags: list[str] | None = None,
    content_type: str | None = None,
    title: str | None = None,
    updated_at: datetime = FIXED_TS,
) -> ContentUnit:
    return ContentUnit(
        id=unit_id,
        tenant_id=tenant_id,
        source_id=f"src-{unit_id}",
        text=text if text is not None else f"text of {unit_id}",
        title=title,
        tags=tags or [],
        content_type=content_type,
        created_at=updated_at,
        updated_at=updated_at,
    )


class ScriptedStore:
    """
    Store de contenu factice: scores scriptés par tenant, sans calcul vectoriel.

    - `hits[tenant]`: liste de (ContentUnit, score)
    - `delays[tenant]`: attente avant réponse (secondes)
    - `errors[tenant]`: exception levée à la recherche
    """

    backend_name = "scripted"

    def __init__(
        self,
        hits: dict[str, list[tuple[ContentUnit, float]]] | None = None,
        delays: dict[str, float] | None = None,
        errors: dict[str, Exception] | None = None,
    ) -> None:
        self.hits = hits or {}
        self.delays = delays or {}
        self.errors = errors or {}
        self.searched: list[tuple[str, SearchFilters | None, int]] = []

    async def search_by_vector(
        self,
        tenant_id: str,
        vector: Sequence[float],
        filters: SearchFilters | None,
        top_k: int,
    ) -> list[ScoredUnit]:
        self.searched.append((tenant_id, filters, top_k))
        if tenant_id in self.delays:
            await asyncio.sleep(self.delays[tenant_id])
        if tenant_id in self.errors:
            raise self.errors[tenant_id]
        scored = [
            ScoredUnit(unit=u, score=s)
            for u, s in self.hits.get(tenant_id, [])
            if filters is None or filters.matches(u)
        ]
        scored.sort(key=lambda s: -s.score)
        return scored[:top_k]


async def no_sleep(_delay: float) -> None:
    return None
