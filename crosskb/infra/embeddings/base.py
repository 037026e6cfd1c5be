"""
Interface de base pour les générateurs d'embeddings.

Ce module définit l'interface abstraite que doivent implémenter tous les fournisseurs d'embeddings
vectoriels. Un fournisseur lève `TransientEmbeddingError` pour les échecs réessayables et
`PermanentEmbeddingError` pour les autres.
"""

from abc import ABC, abstractmethod


class Embeddings(ABC):
    """Interface abstraite pour les générateurs d'embeddings."""

    #: nombre maximal de textes par appel imposé par le fournisseur
    max_batch_size: int = 100

    @abstractmethod
    def embed(self, texts: list[str]) -> list[list[float]]:
        """Génère des embeddings vectoriels pour une liste de textes (même ordre)."""
        ...
