# ============================================================
# Module : crosskb/domain/errors.py
# Objet  : Taxonomie des erreurs du moteur de retrieval inter-tenants.
# Invariants :
#  - `retryable` distingue "réessayer" de "configuration à corriger".
#  - InvalidVectorDimensionality n'est jamais rattrapée.
# ============================================================
"""Exceptions du domaine.

Chaque erreur porte un `code` stable (repris dans l'enveloppe d'erreur HTTP) et un indicateur
`retryable`.
"""

from __future__ import annotations

from typing import Any


class CrossKBError(Exception):
    """Erreur racine du domaine."""

    code = "CROSSKB_ERROR"
    retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidVectorDimensionality(CrossKBError, ValueError):
    """Vecteurs de dimensions différentes ou inattendues (erreur de programmation)."""

    code = "INVALID_VECTOR_DIMENSIONALITY"


class TransientEmbeddingError(CrossKBError):
    """Échec transitoire du fournisseur (réseau, timeout, rate-limit)."""

    code = "EMBEDDING_TRANSIENT"
    retryable = True


class PermanentEmbeddingError(CrossKBError):
    """Échec non transitoire du fournisseur (entrée invalide, quota épuisé)."""

    code = "EMBEDDING_PERMANENT"


class EmbeddingUnavailable(CrossKBError):
    """Impossible d'obtenir le vecteur de la requête: la requête échoue."""

    code = "EMBEDDING_UNAVAILABLE"

    def __init__(self, message: str, *, retryable: bool = True, details: dict | None = None):
        super().__init__(message, details)
        self.retryable = retryable


class NoSourcesAvailable(CrossKBError):
    """Aucun store (propre ou lié) n'a répondu avant l'échéance."""

    code = "NO_SOURCES_AVAILABLE"
    retryable = True


class SourceUnreachable(CrossKBError):
    """Un store n'a pas répondu; enregistré puis exclu des résultats."""

    code = "SOURCE_UNREACHABLE"
    retryable = True

    def __init__(self, tenant_id: str, reason: str) -> None:
        super().__init__(f"source {tenant_id} unreachable: {reason}", {"tenant_id": tenant_id})
        self.tenant_id = tenant_id
        self.reason = reason


class IngestionEmbedFailed(CrossKBError):
    """L'embedding a échoué pendant l'ingestion; la version active précédente reste en place."""

    code = "INGESTION_EMBED_FAILED"
    retryable = True


class LinkNotFound(CrossKBError):
    """Lien inconnu."""

    code = "LINK_NOT_FOUND"


class LinkConflict(CrossKBError):
    """Lien en double pour une paire (source, cible) ou auto-référence."""

    code = "LINK_CONFLICT"


class InvalidLinkTransition(CrossKBError):
    """Transition de statut interdite (ex. approuver un lien rejeté)."""

    code = "INVALID_LINK_TRANSITION"


class InvalidOperation(CrossKBError):
    """Requête d'opération invalide ou non supportée par l'agent."""

    code = "INVALID_OPERATION"


class SourceNotFound(CrossKBError):
    """Aucune version connue pour la source demandée."""

    code = "SOURCE_NOT_FOUND"


class GenerationUnavailable(CrossKBError):
    """Le fournisseur LLM n'a pas pu produire de réponse."""

    code = "GENERATION_UNAVAILABLE"
    retryable = True


class AgentNotFound(CrossKBError):
    """Agent inconnu du registre."""

    code = "AGENT_NOT_FOUND"
