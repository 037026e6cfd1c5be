"""
Interface de génération de réponses.

Le moteur ne consomme qu'une capacité opaque `generate(messages) -> Generation`; le fournisseur
concret (OpenAI ou fake de test) est choisi par le conteneur.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

Message = dict[str, str]


@dataclass(frozen=True)
class Generation:
    """Texte généré et compteurs d'usage rapportés par le fournisseur (vides si inconnus)."""

    text: str
    usage: dict[str, int] = field(default_factory=dict)
    model: str | None = None

    @property
    def total_tokens(self) -> int | None:
        return self.usage.get("total_tokens")


class LLM(ABC):
    """Fournisseur de génération appelé avec le contexte assemblé."""

    model: str | None = None

    @abstractmethod
    def generate(self, messages: list[Message], **kwargs: Any) -> Generation:
        """Génère une réponse; lève `GenerationUnavailable` si le fournisseur échoue."""
        ...
