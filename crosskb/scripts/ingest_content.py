"""
Script d'ingestion de contenus dans la base de connaissances d'un tenant.

Trois formes d'entrée:
- un fichier JSON {source_id -> {"text": str, "title": str?, "tags": [str]?}}
- un fichier texte/markdown (source_id = nom du fichier sans extension)
- une URL (`--url`), récupérée puis ingérée comme source `web_page`

Le conteneur est construit depuis les settings: avec `VECSTORE_BACKEND=sql`, les unités sont
persistées dans DATABASE_URL.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Permet l'exécution du script en direct (python crosskb/scripts/ingest_content.py)
SYS_ROOT = Path(__file__).resolve().parents[2]
if str(SYS_ROOT) not in sys.path:
    sys.path.append(str(SYS_ROOT))

from crosskb.core.container import Container  # noqa: E402
from crosskb.core.logging import setup_logging  # noqa: E402
from crosskb.domain.ingestion import IngestResult, SourceMetadata  # noqa: E402
from crosskb.domain.models import SourceType  # noqa: E402
from crosskb.domain.tenancy import tenant_from_context  # noqa: E402
from crosskb.infra.http_clients import WebPageClient  # noqa: E402


def load_sources(path: Path) -> list[tuple[str, SourceMetadata]]:
    """
    Charge les sources depuis `path`.

    Les entrées JSON sans texte sont ignorées; retourne une liste vide si le fichier n'existe pas.
    """
    if not path.exists():
        return []
    if path.suffix.lower() != ".json":
        meta = SourceMetadata(source_id=path.stem, title=path.stem, content_type="text/plain")
        return [(path.read_text(encoding="utf-8"), meta)]
    raw = json.loads(path.read_text(encoding="utf-8"))
    sources: list[tuple[str, SourceMetadata]] = []
    if isinstance(raw, dict):
        for key, val in raw.items():
            if not isinstance(val, dict) or not val.get("text"):
                continue
            meta = SourceMetadata(
                source_id=str(val.get("id") or key),
                title=val.get("title"),
                tags=[str(t) for t in val.get("tags", [])],
            )
            sources.append((str(val["text"]), meta))
    return sources


async def _ingest_all(
    container: Container, tenant_id: str, sources: list[tuple[str, SourceMetadata]]
) -> list[IngestResult]:
    results = []
    for text, meta in sources:
        results.append(await container.pipeline.ingest(tenant_id, text, meta))
    return results


def main(argv: list[str] | None = None) -> int:
    """Point d'entrée: ingère les sources et affiche un résumé par source."""
    parser = argparse.ArgumentParser(description="Ingestion de contenus pour un tenant")
    parser.add_argument("tenant", help="Identifiant du tenant propriétaire")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--path", type=Path, help="Fichier JSON ou texte à ingérer")
    group.add_argument("--url", help="Page web à récupérer et ingérer")
    parser.add_argument("--source-id", help="Identifiant de source (défaut: l'URL)")
    args = parser.parse_args(argv)

    tenant_id = tenant_from_context(args.tenant, None)
    container = Container()
    setup_logging(container.settings.APP_ENV, container.settings.LOG_LEVEL)

    if args.url:
        client = WebPageClient(timeout_s=container.settings.REFRESH_HTTP_TIMEOUT_S)
        try:
            page = client.fetch(args.url)
        finally:
            client.close()
        meta = SourceMetadata(
            source_id=args.source_id or args.url,
            title=page.title,
            source_type=SourceType.WEB_PAGE,
            content_type="text/html",
        )
        sources = [(page.text, meta)]
    else:
        sources = load_sources(args.path)
        if not sources:
            print(f"[ingest] aucune source chargée depuis {args.path}")
            return 1

    failed = 0
    for res in asyncio.run(_ingest_all(container, tenant_id, sources)):
        if res.ok:
            state = "unchanged" if res.skipped else f"v{res.version} ({len(res.unit_ids)} units)"
        else:
            failed += 1
            state = f"failed: {res.failure['code']}"
        print(f"[ingest] {tenant_id}/{res.source_id}: {state}")
    return 1 if failed else 0


if __name__ == "__main__":  # pragma: no cover - script entry
    raise SystemExit(main())
