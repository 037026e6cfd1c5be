"""Interface de base pour les stores de contenu.

Ce module définit le protocole que doivent implémenter les stores de contenu (collaborateur de
persistance): recherche vectorielle par tenant, bascule atomique de version et journal des
changements.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from crosskb.domain.models import ChangeRecord, ContentUnit, ScoredUnit, SearchFilters


class ContentStore(Protocol):
    """Protocole des stores de contenu multi-tenant."""

    backend_name: str

    async def search_by_vector(
        self,
        tenant_id: str,
        vector: Sequence[float],
        filters: SearchFilters | None,
        top_k: int,
    ) -> list[ScoredUnit]:
        """Recherche les unités actives d'un tenant les plus proches du vecteur.

        Les filtres s'appliquent avant la coupe top-K; les résultats sont triés par score
        décroissant.
        """

    def get_active_units(self, tenant_id: str, source_id: str) -> list[ContentUnit]:
        """Retourne les chunks de la version active d'une source (ordonnés par index)."""

    def list_units(self, tenant_id: str, source_id: str, version: int) -> list[ContentUnit]:
        """Retourne les chunks d'une version donnée (active ou non)."""

    def list_versions(self, tenant_id: str, source_id: str) -> list[int]:
        """Retourne les numéros de version connus, croissants."""

    def replace_active_version(
        self, tenant_id: str, source_id: str, units: Sequence[ContentUnit]
    ) -> None:
        """Insère une nouvelle version active et désactive la précédente, atomiquement."""

    def activate_version(self, tenant_id: str, source_id: str, version: int) -> None:
        """Réactive une version conservée et désactive la version courante."""

    def deactivate_source(self, tenant_id: str, source_id: str) -> None:
        """Désactive tous les chunks d'une source (historique conservé)."""

    def append_change_record(self, record: ChangeRecord) -> None:
        """Ajoute un enregistrement de changement (jamais modifié ensuite)."""

    def list_change_records(
        self, tenant_id: str, source_id: str | None = None
    ) -> list[ChangeRecord]:
        """Liste les changements d'un tenant (ordre d'insertion)."""
