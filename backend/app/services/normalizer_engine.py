"""
Line Normalizer — turns raw quote lines into classified, flagged items.

Consumes the cleaned text lines produced by the file parsers and emits one
``NormalizedItem`` per meaningful line with:
  - a work category from the ontology (keyword scoring, see rules_engine)
  - the largest euro amount found on the line, if any
  - flags for missing or ambiguous information (brand, quantity, disposal,
    exclusions, authorization paperwork)
  - a heuristic confidence score

The normalizer never raises on textual input.  Blank or too-short lines are
dropped silently; everything else produces an item, in input order.

Public API:
    items = normalize_lines(lines)
"""
from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Iterable, Optional

from app.config import MIN_LINE_LENGTH, NORMALIZED_MAX_WORDS
from app.services.ontology import Category, ItemFlag
from app.services.perf_monitor import timed
from app.services.rules_engine import (
    CATEGORY_KEYWORDS,
    EXCLUSION_TOKENS,
    compute_confidence,
    extract_euro_amount,
    find_likely_category,
    has_any_token,
    strip_accents,
)
from app.services.text_utils import normalize_spaces, truncate_words

logger = logging.getLogger("housewise-normalizer")


# ── FLAG RULE TABLES ──────────────────────────────────────────────────────────

# Root word that counts as "disposal mentioned"
DISPOSAL_ROOT = "smaltiment"


def _comparable(text: str) -> str:
    return strip_accents(text.lower()).strip()


# Demolition keywords that do not themselves mention disposal
DEMOLITION_CORE_KEYWORDS: tuple[str, ...] = tuple(
    _comparable(kw)
    for kw in CATEGORY_KEYWORDS[Category.DEMOLIZIONI_SMALTIMENTI]
    if DISPOSAL_ROOT not in kw.lower()
)

QUANTITY_TOKENS: tuple[str, ...] = (
    "punti", "kwp", "kwh", "n.", "n°", "pz", "pezzi", "nr", "punti luce",
    "metri", "mq", "mt", "coppi",
)

AUTHORIZATION_TOKENS: tuple[str, ...] = (
    "pratica", "pratiche", "connessione", "gse", "terna", "gaudi",
    "autorizzazione", "autorizzazioni", "e-distribuzione", "enel distribuzione",
)

QUANTITY_SENSITIVE_CATEGORIES: frozenset[Category] = frozenset({
    Category.IMPIANTO_ELETTRICO,
    Category.IMPIANTO_IDRICO_SANITARIO,
    Category.IMPIANTO_TERMICO_RISCALDAMENTO_CALDAIA,
    Category.CONDIZIONAMENTO_VENTILAZIONE,
    Category.IMPIANTO_FOTOVOLTAICO_PANNELLI,
    Category.INVERTER_FOTOVOLTAICO,
    Category.BATTERIA_ACCUMULO,
    Category.POMPE_DI_CALORE,
    Category.GAS,
})

AUTHORIZATION_SENSITIVE_CATEGORIES: frozenset[Category] = frozenset({
    Category.IMPIANTO_FOTOVOLTAICO_PANNELLI,
    Category.INVERTER_FOTOVOLTAICO,
    Category.BATTERIA_ACCUMULO,
    Category.POMPE_DI_CALORE,
})

_SUPPLY_RE = re.compile(r"\bfornitur[ae]\b")
_BRAND_OR_MODEL_RE = re.compile(r"\b(?:marca|modello)\b")
_DIGIT_RE = re.compile(r"\d")


# ── DATA CLASSES ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class NormalizedItem:
    """One classified quote line.  Immutable once created."""
    original_text: str
    normalized_text: str
    category: Category
    amount_eur: Optional[float]
    flags: frozenset = field(default_factory=frozenset)   # frozenset[ItemFlag]
    confidence: float = 0.5
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "original_text": self.original_text,
            "normalized_text": self.normalized_text,
            "category": self.category.value,
            "amount_eur": round(self.amount_eur, 2) if self.amount_eur is not None else None,
            "flags": sorted(f.value for f in self.flags),
            "confidence": self.confidence,
        }


# ── FLAG DETECTION ────────────────────────────────────────────────────────────

def detect_flags(line: str, category: Category) -> frozenset:
    """Return the set of ItemFlag values raised by ``line`` for ``category``."""
    flags: set[ItemFlag] = set()
    comparable = _comparable(line)
    lower = line.lower()

    if has_any_token(line, EXCLUSION_TOKENS):
        flags.add(ItemFlag.ESCLUSIONI_PRESENTI)

    if category is Category.DEMOLIZIONI_SMALTIMENTI:
        mentions_demolition = any(kw in comparable for kw in DEMOLITION_CORE_KEYWORDS)
        if mentions_demolition and DISPOSAL_ROOT not in comparable:
            flags.add(ItemFlag.SMALTIMENTO_NON_MENZIONATO)

    if _SUPPLY_RE.search(lower) and not _BRAND_OR_MODEL_RE.search(lower):
        flags.add(ItemFlag.MARCA_MATERIALE_MANCANTE)

    if category in QUANTITY_SENSITIVE_CATEGORIES:
        has_numbers = bool(_DIGIT_RE.search(line))
        has_quantity_token = any(tok in lower for tok in QUANTITY_TOKENS)
        if not has_numbers and not has_quantity_token:
            flags.add(ItemFlag.QUANTITA_NON_CHIARA)

    if category in AUTHORIZATION_SENSITIVE_CATEGORIES:
        if not any(tok in lower for tok in AUTHORIZATION_TOKENS):
            flags.add(ItemFlag.PRATICHE_AUTORIZZATIVE_NON_MENZIONATE)

    return frozenset(flags)


# ── NORMALIZATION ─────────────────────────────────────────────────────────────

def normalize_line(raw_line: Optional[str]) -> Optional[NormalizedItem]:
    """Classify a single line; None when the line is noise."""
    cleaned = normalize_spaces(raw_line)
    if len(cleaned) < MIN_LINE_LENGTH:
        return None

    match = find_likely_category(cleaned)
    amount = extract_euro_amount(cleaned)

    return NormalizedItem(
        original_text=cleaned,
        normalized_text=truncate_words(cleaned, NORMALIZED_MAX_WORDS),
        category=match.category,
        amount_eur=amount,
        flags=detect_flags(cleaned, match.category),
        confidence=compute_confidence(match.hits, amount is not None),
    )


@timed
def normalize_lines(lines: Optional[Iterable[Optional[str]]]) -> list[NormalizedItem]:
    """
    Normalize an ordered sequence of raw lines.

    Output order follows input order; duplicate lines are kept.  An empty
    input yields an empty list.
    """
    items: list[NormalizedItem] = []
    skipped = 0
    for raw_line in lines or ():
        item = normalize_line(raw_line)
        if item is None:
            skipped += 1
            continue
        items.append(item)

    unknown = sum(1 for i in items if i.category is Category.UNKNOWN)
    logger.debug(
        f"Normalized {len(items)} lines ({skipped} skipped, {unknown} unknown)"
    )
    return items
