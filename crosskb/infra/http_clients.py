"""Clients HTTP externes (récupération de pages web pour le re-fetch programmé).

Objectif du module
------------------
- Encapsuler les appels réseau vers les sources web suivies.
- Extraire le texte visible d'une page HTML (beautifulsoup4) avant ingestion.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx
import structlog
from bs4 import BeautifulSoup

from crosskb.domain.errors import CrossKBError

_NON_VISIBLE_TAGS = ("script", "style", "noscript", "template", "svg", "iframe", "head")

log = structlog.get_logger(__name__)


class WebFetchError(CrossKBError):
    """Échec de récupération d'une page (réseau ou statut HTTP)."""

    code = "WEB_FETCH_FAILED"
    retryable = True


@dataclass(frozen=True)
class FetchedPage:
    url: str
    title: str | None
    text: str
    status_code: int


def extract_visible_text(html: str) -> tuple[str | None, str]:
    """Retourne (titre, texte visible) d'un document HTML.

    Les blocs non visibles sont supprimés; les lignes vides consécutives sont réduites.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else None
    for tag in soup(_NON_VISIBLE_TAGS):
        tag.decompose()
    root = soup.body or soup
    lines = [line.strip() for line in root.get_text("\n").splitlines()]
    return title or None, "\n".join(line for line in lines if line)


class WebPageClient:
    """Client httpx synchrone pour les pages web suivies."""

    def __init__(self, timeout_s: float = 15.0, user_agent: str = "crosskb-refresh/1.0") -> None:
        timeout = httpx.Timeout(connect=5.0, read=timeout_s, write=5.0, pool=5.0)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        self._client = httpx.Client(
            headers={"User-Agent": user_agent},
            timeout=timeout,
            limits=limits,
            follow_redirects=True,
        )

    def fetch(self, url: str) -> FetchedPage:
        """Télécharge `url` et en extrait le texte visible.

        Raises:
            WebFetchError: erreur réseau ou statut HTTP >= 400.
        """
        try:
            resp = self._client.get(url)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code if exc.response is not None else 0
            log.warning("web_fetch_http_error", url=url, status_code=status)
            raise WebFetchError(f"fetch failed with status {status}", {"url": url}) from exc
        except httpx.HTTPError as exc:
            log.warning("web_fetch_network_error", url=url, error=type(exc).__name__)
            raise WebFetchError("fetch failed", {"url": url}) from exc
        title, text = extract_visible_text(resp.text)
        log.debug("web_fetch_ok", url=url, status_code=resp.status_code, chars=len(text))
        return FetchedPage(url=url, title=title, text=text, status_code=resp.status_code)

    def close(self) -> None:
        self._client.close()
