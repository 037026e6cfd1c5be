"""Tests du chargement des sources du script d'ingestion."""

from __future__ import annotations

import json

from crosskb.scripts.ingest_content import load_sources


def test_load_json_sources(tmp_path) -> None:
    path = tmp_path / "kb.json"
    path.write_text(
        json.dumps(
            {
                "tarifs": {
                    "text": "Le forfait coûte 10 euros.",
                    "title": "Tarifs",
                    "tags": ["faq"],
                },
                "vide": {"text": ""},
                "autre": "pas un objet",
                "x": {"id": "contact", "text": "Écrivez-nous."},
            }
        ),
        encoding="utf-8",
    )
    sources = load_sources(path)
    assert [meta.source_id for _, meta in sources] == ["tarifs", "contact"]
    text, meta = sources[0]
    assert text == "Le forfait coûte 10 euros."
    assert meta.tags == ["faq"]


def test_load_text_file(tmp_path) -> None:
    path = tmp_path / "guide.md"
    path.write_text("# Guide\n\nBienvenue.", encoding="utf-8")
    ((text, meta),) = load_sources(path)
    assert meta.source_id == "guide"
    assert meta.content_type == "text/plain"
    assert text.startswith("# Guide")


def test_missing_file_yields_nothing(tmp_path) -> None:
    assert load_sources(tmp_path / "absent.json") == []
