# ============================================================
# Module : crosskb/domain/chunker.py
# Objet  : Découpage de texte brut en chunks bornés pour l'embedding.
# Invariants :
#  - "".join(chunk.text) == texte d'origine (aucun recouvrement).
#  - len(chunk.text) <= max_chars pour tout chunk.
# ============================================================
"""Découpage de texte en chunks contigus.

La coupe se fait de préférence après une frontière de paragraphe, puis de phrase, puis de ligne,
puis d'espace, à condition qu'elle tombe dans la fenêtre de tolérance en fin de chunk. À défaut,
la coupe est franche à `max_chars`.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

# Frontières par ordre de préférence; la coupe a lieu juste après le séparateur.
_BOUNDARIES: tuple[str, ...] = ("\n\n", ". ", "! ", "? ", ".\n", "\n", " ")


@dataclass(frozen=True)
class Chunk:
    """Chunk de texte et ses offsets dans le texte d'origine."""

    index: int
    text: str
    start: int
    end: int


class ChunkSequence:
    """Séquence paresseuse et ré-itérable de chunks.

    Chaque itération recalcule les chunks depuis le début: la séquence peut être parcourue
    plusieurs fois sans état partagé.
    """

    def __init__(self, text: str, max_chars: int, tolerance: int) -> None:
        self._text = text
        self._max = max_chars
        self._tol = tolerance

    def __iter__(self) -> Iterator[Chunk]:
        text = self._text
        n = len(text)
        pos = 0
        index = 0
        while pos < n:
            end = self._cut(pos)
            yield Chunk(index=index, text=text[pos:end], start=pos, end=end)
            index += 1
            pos = end

    def _cut(self, pos: int) -> int:
        n = len(self._text)
        hard = pos + self._max
        if hard >= n:
            return n
        window_start = max(pos + 1, hard - self._tol)
        for sep in _BOUNDARIES:
            idx = self._text.rfind(sep, window_start, hard)
            if idx == -1:
                continue
            cut = idx + len(sep)
            if pos < cut <= hard:
                return cut
        return hard


class TextChunker:
    """
    Découpe un texte en chunks d'au plus `max_chars` caractères.

    Exemple:
        >>> chunker = TextChunker(max_chars=1000, tolerance=200)
        >>> [c.text for c in chunker.chunks("Bonjour.")]
        ['Bonjour.']
    """

    def __init__(self, max_chars: int = 1000, tolerance: int = 200) -> None:
        if max_chars <= 0:
            raise ValueError("max_chars must be positive")
        if tolerance < 0:
            raise ValueError("tolerance must be non-negative")
        self.max_chars = max_chars
        self.tolerance = min(tolerance, max_chars - 1)

    def chunks(self, text: str) -> ChunkSequence:
        """Retourne la séquence (vide si le texte est vide)."""
        return ChunkSequence(text or "", self.max_chars, self.tolerance)
