"""
Environnement Alembic des tables de la base de connaissances.

L'URL vient de `-x db_url=...`, sinon des settings crosskb (`DATABASE_URL`, `.env` compris);
sans URL configurée, on migre un fichier SQLite local. `prepend_sys_path` (alembic.ini) rend le
package importable depuis la racine du dépôt.
"""

from __future__ import annotations

from logging.config import fileConfig

from sqlalchemy import create_engine, pool

from alembic import context  # type: ignore[attr-defined]
from crosskb.core.settings import get_settings
from crosskb.infra.repo.db import get_engine
from crosskb.infra.repo.models import Base

LOCAL_SQLITE_URL = "sqlite:///./crosskb.db"

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    return context.get_x_argument(as_dictionary=True).get("db_url") or (
        get_settings().DATABASE_URL or LOCAL_SQLITE_URL
    )


def run_migrations_offline() -> None:
    """Émet le SQL sans connexion (`alembic upgrade head --sql`)."""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = _database_url()
    if url.startswith("sqlite"):
        engine = get_engine(url)
    else:
        engine = create_engine(url, poolclass=pool.NullPool, future=True)
    with engine.connect() as connection:
        # SQLite ne gère pas ALTER complet: mode batch
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
