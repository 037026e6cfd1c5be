# ============================================================
# Module : crosskb/domain/context_assembler.py
# Objet  : Assemblage d'un bloc de contexte attribué et borné.
# Invariants :
#  - Jamais de résultat partiel: une entrée est incluse entière ou pas du tout.
#  - Bloc vide -> marqueur explicite "pas de contexte".
#  - Les résultats `search_only` ne fournissent jamais leur texte.
# ============================================================
"""Assemblage du contexte pour l'étape de génération.

Chaque entrée est préfixée par son index (à partir de 1) et un label de source (`own` ou
`linked: <cible>`). Les entrées sont ajoutées dans l'ordre de classement tant que le budget
(caractères ou tokens, séparateurs compris) n'est pas dépassé.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog
import tiktoken

from crosskb.core.constants import NO_CONTEXT_MARKER
from crosskb.domain.models import AccessLevel, RankedResult

DEFAULT_MODEL_ENCODING = "cl100k_base"
ENTRY_SEPARATOR = "\n\n"

_WS_RE = re.compile(r"\s+")

log = structlog.get_logger(__name__)


def token_counter(strategy: str = "auto", model: str | None = None) -> Callable[[str], int]:
    """Compteur de tokens selon la stratégie: auto|tiktoken|words."""
    strategy = (strategy or "auto").lower()

    def _from_words(text: str) -> int:
        return max(0, len((text or "").split()))

    if strategy == "words":
        return _from_words

    try:
        enc = (
            tiktoken.encoding_for_model(model)
            if model
            else tiktoken.get_encoding(DEFAULT_MODEL_ENCODING)
        )
    except Exception as exc:
        log.warning("token_encoding_unavailable", strategy=strategy, error=type(exc).__name__)
        return _from_words

    def _from_tiktoken(text: str) -> int:
        return len(enc.encode(text or ""))

    return _from_tiktoken


def _normalized(text: str) -> str:
    return _WS_RE.sub(" ", text or "").strip().lower()


def render_entry(index: int, result: RankedResult) -> str:
    """Rend une entrée attribuée: `[i] (label) titre` puis le texte."""
    header = f"[{index}] ({result.label})"
    if result.unit.title:
        header = f"{header} {result.unit.title}"
    return f"{header}\n{result.unit.text}"


@dataclass
class AssembledContext:
    """Bloc de contexte et les résultats effectivement inclus."""

    text: str
    included: list[RankedResult] = field(default_factory=list)
    sources: list[dict[str, Any]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.included


class ContextAssembler:
    """Assemble un contexte attribué sous budget."""

    def __init__(
        self,
        budget: int = 6000,
        unit: str = "chars",
        counter: Callable[[str], int] | None = None,
        renderer: Callable[[int, RankedResult], str] = render_entry,
    ) -> None:
        if unit not in ("chars", "tokens"):
            raise ValueError(f"unknown budget unit: {unit}")
        self.budget = budget
        self.unit = unit
        if counter is None:
            counter = len if unit == "chars" else token_counter()
        self._count = counter
        self._render = renderer

    def measure(self, text: str) -> int:
        return self._count(text)

    def assemble(
        self, results: Sequence[RankedResult], budget: int | None = None
    ) -> AssembledContext:
        """Ajoute les entrées dans l'ordre jusqu'à la première qui dépasserait le budget."""
        budget = self.budget if budget is None else budget
        sep_cost = self._count(ENTRY_SEPARATOR)
        seen_ids: set[str] = set()
        seen_texts: set[str] = set()
        parts: list[str] = []
        included: list[RankedResult] = []
        used = 0
        withheld = 0
        for result in results:
            if result.access_level == AccessLevel.SEARCH_ONLY:
                withheld += 1
                continue
            key = _normalized(result.unit.text)
            if result.unit.id in seen_ids or key in seen_texts:
                continue
            entry = self._render(len(included) + 1, result)
            cost = self._count(entry) + (sep_cost if parts else 0)
            if used + cost > budget:
                break
            used += cost
            parts.append(entry)
            included.append(result)
            seen_ids.add(result.unit.id)
            seen_texts.add(key)

        sources = [
            {
                "index": i,
                "label": r.label,
                "unit_id": r.unit.id,
                "source_id": r.unit.source_id,
                "title": r.unit.title,
                "origin_tenant_id": r.origin_tenant_id,
                "score": round(r.score, 6),
            }
            for i, r in enumerate(included, start=1)
        ]
        log.debug(
            "context_assembled",
            included=len(included),
            candidates=len(results),
            withheld=withheld,
            used=used,
            budget=budget,
            unit=self.unit,
        )
        if not parts:
            return AssembledContext(text=NO_CONTEXT_MARKER, included=[], sources=[])
        return AssembledContext(
            text=ENTRY_SEPARATOR.join(parts), included=included, sources=sources
        )
