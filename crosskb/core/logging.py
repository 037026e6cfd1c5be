"""Configuration de logging basée sur structlog.

Objectif du module
------------------
- Logs structurés lisibles en développement, JSON en production (agrégateurs de logs).
- Contexte de requête (`request_id`) fusionné depuis les contextvars.
- Loggers stdlib (uvicorn, sqlalchemy, celery) ramenés au même niveau et sur la même sortie.
"""

import logging
import sys

import structlog

_STDLIB_LOGGERS = ("uvicorn", "uvicorn.access", "celery", "httpx")


def parse_level(level: int | str) -> int:
    """'info' / 'INFO' / 20 -> 20; un nom inconnu retombe sur INFO."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logging(app_env: str = "dev", level: int | str = logging.DEBUG) -> None:
    """Configure structlog pour produire des logs détaillés et filtrables."""
    lvl = parse_level(level)
    json_output = app_env == "prod"
    renderer = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(lvl),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(stream=sys.stdout, level=lvl, format="%(levelname)s %(name)s %(message)s")
    for name in _STDLIB_LOGGERS:
        logging.getLogger(name).setLevel(lvl)
    # jamais de paramètres SQL liés dans les logs
    logging.getLogger("sqlalchemy.engine").setLevel(max(lvl, logging.WARNING))
