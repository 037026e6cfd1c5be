"""Tests du découpage de texte en chunks contigus."""

import pytest

from crosskb.domain.chunker import TextChunker

MAX_CHARS = 50
TOLERANCE = 15


def _texts(chunker: TextChunker, text: str) -> list[str]:
    return [c.text for c in chunker.chunks(text)]


def test_empty_text_gives_no_chunk() -> None:
    assert _texts(TextChunker(MAX_CHARS, TOLERANCE), "") == []


def test_short_text_single_chunk() -> None:
    assert _texts(TextChunker(MAX_CHARS, TOLERANCE), "Bonjour.") == ["Bonjour."]


def test_chunks_rejoin_to_original_and_respect_max() -> None:
    """Aucun recouvrement: la concaténation redonne le texte d'origine."""
    text = ("Une phrase assez courte. " * 20) + "\n\nUn second paragraphe plus loin."
    chunker = TextChunker(MAX_CHARS, TOLERANCE)
    parts = _texts(chunker, text)
    assert "".join(parts) == text
    assert all(len(p) <= MAX_CHARS for p in parts)
    assert len(parts) > 1


def test_prefers_paragraph_boundary() -> None:
    """Une frontière de paragraphe dans la fenêtre de tolérance est préférée."""
    first = "a" * 40 + "\n\n"
    text = first + "b" * 30
    parts = _texts(TextChunker(MAX_CHARS, TOLERANCE), text)
    assert parts[0] == first


def test_hard_cut_without_boundary() -> None:
    text = "x" * 120
    parts = _texts(TextChunker(MAX_CHARS, TOLERANCE), text)
    assert [len(p) for p in parts] == [50, 50, 20]


def test_sequence_is_reiterable() -> None:
    """La séquence peut être parcourue plusieurs fois avec le même résultat."""
    seq = TextChunker(MAX_CHARS, TOLERANCE).chunks("mot " * 40)
    first = [(c.index, c.start, c.end) for c in seq]
    second = [(c.index, c.start, c.end) for c in seq]
    assert first == second
    assert [i for i, _, _ in first] == list(range(len(first)))


def test_invalid_parameters() -> None:
    with pytest.raises(ValueError):
        TextChunker(max_chars=0)
    with pytest.raises(ValueError):
        TextChunker(max_chars=10, tolerance=-1)
