"""Tests du client de pages web (httpx MockTransport) et de l'extraction de texte visible."""

from __future__ import annotations

import httpx
import pytest

from crosskb.infra.http_clients import WebFetchError, WebPageClient, extract_visible_text

HTML = """
<html>
  <head><title> Notre offre </title><style>body { color: red; }</style></head>
  <body>
    <script>var tracking = 1;</script>
    <h1>Tarifs</h1>

    <p>Le forfait de base coûte 10 euros.</p>
    <noscript>Activez JavaScript</noscript>
  </body>
</html>
"""


def _client(handler) -> WebPageClient:
    client = WebPageClient(timeout_s=1.0)
    client._client.close()
    client._client = httpx.Client(transport=httpx.MockTransport(handler))
    return client


def test_extract_visible_text_drops_hidden_blocks() -> None:
    title, text = extract_visible_text(HTML)
    assert title == "Notre offre"
    assert text == "Tarifs\nLe forfait de base coûte 10 euros."
    assert "tracking" not in text


def test_extract_visible_text_without_markup() -> None:
    assert extract_visible_text("") == (None, "")
    assert extract_visible_text("simple texte") == (None, "simple texte")


def test_fetch_returns_page() -> None:
    client = _client(lambda request: httpx.Response(200, text=HTML))
    page = client.fetch("https://example.test/offre")
    client.close()
    assert page.status_code == 200
    assert page.title == "Notre offre"
    assert page.text.startswith("Tarifs")


def test_fetch_http_error_is_retryable() -> None:
    client = _client(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(WebFetchError) as exc_info:
        client.fetch("https://example.test/down")
    assert exc_info.value.retryable is True
    assert exc_info.value.details["url"] == "https://example.test/down"


def test_fetch_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = _client(handler)
    with pytest.raises(WebFetchError):
        client.fetch("https://example.test/offline")
