"""Définition et chargement des paramètres de configuration applicative.

Objectif du module
------------------
- Centraliser les paramètres (env/.env) via Pydantic Settings
- Résoudre le fichier `.env` à utiliser selon la stratégie: ENV_FILE > .env.{APP_ENV} > .env
"""

import os
from pathlib import Path
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Détermination du fichier .env à utiliser avec priorité:
# 1) ENV_FILE (chemin explicite)
# 2) .env.{APP_ENV} si présent
# 3) .env (défaut)
_cwd = Path.cwd()
_env_file_from_env = os.getenv("ENV_FILE")
if _env_file_from_env:
    _ENV_FILE_PATH = _env_file_from_env
else:
    _app_env = os.getenv("APP_ENV", "dev")
    _candidate_specific = _cwd / f".env.{_app_env}"
    _candidate_default = _cwd / ".env"
    if _candidate_specific.exists():
        _ENV_FILE_PATH = _candidate_specific
    else:
        _ENV_FILE_PATH = _candidate_default


class Settings(BaseSettings):
    """Modèle de configuration chargé depuis l'environnement et .env."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE_PATH,
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
    )
    APP_NAME: str = "crosskb"
    APP_ENV: str = "dev"
    APP_DEBUG: bool = True
    LOG_LEVEL: str = "DEBUG"

    # Persistance: sans DATABASE_URL, les stores restent en mémoire
    DATABASE_URL: str | None = None
    VECSTORE_BACKEND: str = "memory"  # "memory" | "sql"

    # Embeddings
    OPENAI_API_KEY: str | None = None
    EMBEDDINGS_PROVIDER: str = "openai"
    EMBEDDINGS_MODEL: str = "text-embedding-3-small"
    EMBEDDING_DIM: int = 1536
    EMBEDDING_BATCH_SIZE: int = 100
    EMBEDDING_MAX_ATTEMPTS: int = 3
    EMBEDDING_BACKOFF_BASE_S: float = 0.5
    EMBEDDING_BACKOFF_MAX_S: float = 8.0

    # Génération
    LLM_MODEL: str = "gpt-4o-mini"

    # Retrieval
    RETRIEVAL_MAX_RESULTS: int = 15
    RETRIEVAL_QUERY_TIMEOUT_S: float = 10.0
    RETRIEVAL_OWN_MIN_SIMILARITY: float = 0.1

    # Valeurs par défaut des liens inter-tenants
    LINK_DEFAULT_WEIGHT: float = 1.0
    LINK_DEFAULT_MAX_RESULTS: int = 5
    LINK_DEFAULT_MIN_SIMILARITY: float = 0.1

    # Découpage
    CHUNK_MAX_CHARS: int = 1000
    CHUNK_TOLERANCE_CHARS: int = 200

    # Contexte: budget exprimé en caractères ou en tokens
    CONTEXT_BUDGET: int = 6000
    CONTEXT_BUDGET_UNIT: str = "chars"  # "chars" | "tokens"
    # Token counting strategy: auto | tiktoken | words
    TOKEN_COUNT_STRATEGY: str = "auto"

    # Celery (re-scrape périodique)
    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/1"
    REFRESH_HTTP_TIMEOUT_S: float = 15.0

    # Limitation de cardinalité des labels métriques (CSV via .env, peut être vide)
    ALLOWED_TENANTS: Annotated[list[str], NoDecode] = []

    @field_validator("ALLOWED_TENANTS", mode="before")
    @classmethod
    def _split_tenants(cls, value: object) -> object:
        if isinstance(value, str):
            return [t.strip() for t in value.split(",") if t.strip()]
        return value


def get_settings() -> Settings:
    """Construit et retourne la configuration de l'application."""
    return Settings()
