"""
Embedder OpenAI pour la génération d'embeddings.

Ce module implémente un fournisseur d'embeddings utilisant l'API OpenAI et traduit les erreurs du
SDK en erreurs transitoires (réseau, timeout, rate-limit, 5xx) ou permanentes (entrée invalide,
authentification, quota épuisé).
"""

from __future__ import annotations

import openai
from openai import OpenAI

from crosskb.domain.errors import PermanentEmbeddingError, TransientEmbeddingError
from crosskb.infra.embeddings.base import Embeddings

_QUOTA_CODES = {"insufficient_quota", "billing_hard_limit_reached"}


def classify_openai_error(exc: Exception) -> Exception:
    """Convertit une exception du SDK OpenAI en erreur de domaine."""
    if isinstance(exc, openai.RateLimitError):
        code = getattr(exc, "code", None)
        if code in _QUOTA_CODES:
            return PermanentEmbeddingError("embedding quota exhausted", {"code": code})
        return TransientEmbeddingError("embedding provider rate-limited")
    if isinstance(exc, openai.APITimeoutError | openai.APIConnectionError):
        return TransientEmbeddingError(f"embedding provider unreachable: {type(exc).__name__}")
    if isinstance(exc, openai.InternalServerError):
        return TransientEmbeddingError("embedding provider server error")
    if isinstance(exc, openai.APIStatusError):
        return PermanentEmbeddingError(
            "embedding request rejected", {"status_code": exc.status_code}
        )
    return PermanentEmbeddingError(f"embedding failed: {type(exc).__name__}")


class OpenAIEmbedder(Embeddings):
    """
    Embedder OpenAI pour la génération d'embeddings.

    Le client est construit une fois; les retries sont gérés par la passerelle
    (`EmbeddingGateway`), le SDK est donc configuré sans retry interne.
    """

    max_batch_size = 2048

    def __init__(
        self,
        api_key: str | None,
        model: str = "text-embedding-3-small",
        dimensions: int | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        """
        Initialise l'embedder OpenAI.

        Args:
            api_key: Clé API (None: résolution par le SDK via OPENAI_API_KEY).
            model: Modèle d'embedding.
            dimensions: Dimension demandée au modèle (None: dimension native).
            timeout_s: Timeout par appel.
        """
        self.model = model
        self.dimensions = dimensions
        self._api_key = api_key
        self._timeout_s = timeout_s
        self._client: OpenAI | None = None

    @property
    def client(self) -> OpenAI:
        """Client SDK construit au premier appel (la clé peut manquer au démarrage)."""
        if self._client is None:
            self._client = OpenAI(api_key=self._api_key, max_retries=0, timeout=self._timeout_s)
        return self._client

    def embed(self, texts: list[str]) -> list[list[float]]:
        """
        Génère des embeddings vectoriels via l'API OpenAI.

        Args:
            texts: Liste des textes à convertir en embeddings.

        Returns:
            list[list[float]]: Liste des vecteurs d'embedding, dans l'ordre des entrées.
        """
        kwargs = {"model": self.model, "input": texts}
        if self.dimensions:
            kwargs["dimensions"] = self.dimensions
        try:
            resp = self.client.embeddings.create(**kwargs)
        except openai.OpenAIError as exc:
            raise classify_openai_error(exc) from exc
        data = sorted(resp.data, key=lambda d: d.index)
        return [d.embedding for d in data]
