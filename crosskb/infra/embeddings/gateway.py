# ============================================================
# Module : crosskb/infra/embeddings/gateway.py
# Objet  : Passerelle vers le fournisseur d'embeddings (batching + retry).
# Invariants :
#  - len(sortie) == len(entrée), ordre conservé.
#  - Aucune mise en cache des vecteurs ici.
#  - Seules les erreurs transitoires sont réessayées.
# ============================================================
"""Passerelle d'embeddings.

Découpe les textes en lots (limite du fournisseur), appelle le fournisseur hors de la boucle
d'événements et réessaie les échecs transitoires avec un backoff exponentiel borné.
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Awaitable, Callable, Sequence

import structlog

from crosskb.app.metrics import EMBEDDING_REQUESTS, EMBEDDING_RETRIES
from crosskb.domain.errors import PermanentEmbeddingError, TransientEmbeddingError
from crosskb.domain.vector_codec import VectorCodec
from crosskb.infra.embeddings.base import Embeddings

Sleep = Callable[[float], Awaitable[None]]


class EmbeddingGateway:
    """Encapsule le fournisseur d'embeddings avec batching et retry."""

    def __init__(
        self,
        provider: Embeddings,
        codec: VectorCodec,
        *,
        batch_size: int = 100,
        max_attempts: int = 3,
        backoff_base_s: float = 0.5,
        backoff_max_s: float = 8.0,
        sleep: Sleep | None = None,
    ) -> None:
        """Initialise la passerelle.

        Args:
            provider: Fournisseur d'embeddings.
            codec: Codec utilisé pour valider la dimension des vecteurs retournés.
            batch_size: Taille de lot souhaitée (bornée par la limite du fournisseur).
            max_attempts: Nombre total de tentatives par lot.
            backoff_base_s: Délai de base du backoff exponentiel.
            backoff_max_s: Délai maximal entre deux tentatives.
            sleep: Fonction d'attente (injectable pour les tests).
        """
        self.provider = provider
        self.codec = codec
        self.batch_size = max(1, min(batch_size, getattr(provider, "max_batch_size", batch_size)))
        self.max_attempts = max(1, max_attempts)
        self.backoff_base_s = backoff_base_s
        self.backoff_max_s = backoff_max_s
        self._sleep = sleep or asyncio.sleep
        self._log = structlog.get_logger(__name__).bind(component="embedding_gateway")

    def backoff_delay(self, attempt: int) -> float:
        """Délai avant la tentative `attempt + 1` (attempt >= 1), avec jitter."""
        base = self.backoff_base_s * (2 ** (attempt - 1))
        return min(self.backoff_max_s, base + random.random() * self.backoff_base_s)

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Retourne un vecteur par texte, dans le même ordre.

        Raises:
            TransientEmbeddingError: tentatives épuisées sur un échec transitoire.
            PermanentEmbeddingError: échec non réessayable (remonté immédiatement).
        """
        if not texts:
            return []
        out: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = list(texts[start : start + self.batch_size])
            vectors = await self._embed_batch(batch)
            if len(vectors) != len(batch):
                EMBEDDING_REQUESTS.labels(outcome="invalid").inc()
                raise PermanentEmbeddingError(
                    "provider returned a mismatched number of vectors",
                    {"expected": len(batch), "got": len(vectors)},
                )
            for v in vectors:
                self.codec.validate(v)
            out.extend(vectors)
        return out

    async def embed_one(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    async def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        attempt = 0
        while True:
            attempt += 1
            start = time.perf_counter()
            try:
                vectors = await asyncio.to_thread(self.provider.embed, batch)
            except TransientEmbeddingError as exc:
                if attempt >= self.max_attempts:
                    EMBEDDING_REQUESTS.labels(outcome="transient_exhausted").inc()
                    self._log.warning(
                        "embedding_retries_exhausted", attempts=attempt, error=exc.message
                    )
                    raise
                delay = self.backoff_delay(attempt)
                EMBEDDING_RETRIES.inc()
                self._log.info(
                    "embedding_retry", attempt=attempt, delay_s=round(delay, 3), error=exc.message
                )
                await self._sleep(delay)
                continue
            except PermanentEmbeddingError as exc:
                EMBEDDING_REQUESTS.labels(outcome="permanent").inc()
                self._log.warning("embedding_failed", error=exc.message, code=exc.code)
                raise
            EMBEDDING_REQUESTS.labels(outcome="ok").inc()
            self._log.debug(
                "embedding_batch_ok",
                size=len(batch),
                attempts=attempt,
                latency_s=round(time.perf_counter() - start, 4),
            )
            return vectors
