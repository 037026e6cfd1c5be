"""
Endpoint de santé pour vérifier la disponibilité de l'API et du backend.

Expose `/health` pour signaler l'état général de l'application et du stockage.
"""

from fastapi import APIRouter, Request

from crosskb.api.deps import get_container

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request):
    """Vérifie la disponibilité de l'API et le backend de stockage."""
    container = get_container(request)
    return {
        "status": "ok",
        "storage": container.storage_backend,
        "generation": container.llm is not None,
        "agents": container.agents.list_ids(),
    }
