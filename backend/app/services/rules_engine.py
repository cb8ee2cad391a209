"""
Rule Engine — keyword scoring, euro amount extraction and confidence.

Every quote line is matched against a static keyword dictionary
(``CATEGORY_KEYWORDS``).  Matching works on a normalized form of the text:
lowercase, accents stripped, punctuation other than ``.`` and ``-`` replaced by
spaces.  Keywords are plain substrings of that form, so "Demolizione
pavimenti," and "DEMOLIZIONE PAVIMENTI" score identically.

Public API:
    find_likely_category(line)  -> CategoryMatch(category, hits)
    extract_euro_amount(line)   -> float | None
    has_any_token(line, tokens) -> bool
    compute_confidence(hits, has_amount) -> float

All module-level tables are read-only and shared; the functions are pure.
"""
from __future__ import annotations

import math
import re
import unicodedata
from types import MappingProxyType
from typing import Iterable, Mapping, NamedTuple, Optional

from app.config import (
    CONFIDENCE_AMOUNT_BONUS,
    CONFIDENCE_BASE,
    CONFIDENCE_HITS_CAP,
    CONFIDENCE_PER_HIT,
)
from app.services.ontology import ALL_CATEGORIES, Category


# ── KEYWORD DICTIONARY ────────────────────────────────────────────────────────
#
# Lower-case Italian phrases as they appear in renovation quotes.  Accents are
# allowed here; they are stripped at match time.

CATEGORY_KEYWORDS: Mapping[Category, tuple[str, ...]] = MappingProxyType({
    Category.DEMOLIZIONI_SMALTIMENTI: (
        "demolizione", "demolizioni", "smaltimento", "macerie", "rimozione",
        "scarico", "trasporto in discarica", "abbattimento", "strip out",
        "taglio", "carico a discarica",
    ),
    Category.IMPIANTO_ELETTRICO: (
        "impianto elettrico", "quadro elettrico", "punti luce",
        "linee elettriche", "salvavita", "cavi", "corrugati", "prese",
        "frutti", "impianto di terra", "cavidotti", "cassetta derivazione",
    ),
    Category.IMPIANTO_IDRICO_SANITARIO: (
        "impianto idrico", "sanitari", "scarichi", "tubazioni acqua",
        "multistrato", "collettore", "scarico wc", "scarico lavabo",
        "sifone", "acqua calda", "acqua fredda",
    ),
    Category.IMPIANTO_TERMICO_RISCALDAMENTO_CALDAIA: (
        "riscaldamento", "caldaia", "termico", "radiatori", "termosifoni",
        "valvole", "cronotermostato", "pannelli radianti", "circolatore",
        "impianto termico",
    ),
    Category.GAS: (
        "impianto gas", "tubazioni gas", "valvola gas", "prova tenuta gas",
        "contatore gas", "allaccio gas",
    ),
    Category.PAVIMENTI_RIVESTIMENTI_MASSETTI: (
        "posa", "pavimento", "pavimenti", "rivestimenti", "piastrelle",
        "gres", "massetto", "battiscopa", "laminato", "parquet",
        "rasopietra", "sottofondo",
    ),
    Category.BAGNO_FORNITURE_SANITARI_RUBINETTERIA: (
        "fornitura sanitari", "rubinetteria", "box doccia", "wc", "bidet",
        "lavabo", "piatto doccia", "mobile bagno", "scarico doccia",
        "set bagno",
    ),
    Category.CUCINA_LAVORI_IDRICI_ELETTRICI: (
        "cucina", "attacchi", "gas cucina", "lavello", "lavastoviglie",
        "predisposizione cucina", "forno", "piano cottura", "schienale",
    ),
    Category.PORTE_INTERNE: (
        "porte interne", "controtelai", "cerniere", "maniglie",
        "sostituzione porte", "porta tamburata", "anta",
    ),
    Category.SERRAMENTI_INFISSI: (
        "infissi", "serramenti", "doppi vetri", "telaio", "monoblocco",
        "cassonetto", "vetrocamera", "oscuro", "persiane",
    ),
    Category.PITTURA_CARTONGESSO_CONTROSSOFFITTI: (
        "pittura", "imbiancatura", "rasatura", "cartongesso",
        "controsoffitto", "stuccatura", "finitura", "tinteggiatura",
        "intonaco",
    ),
    Category.PRATICHE_TECNICHE_PERMESSI_DICO: (
        "dichiarazione di conformità", "dico", "cila", "scia", "pratiche",
        "collaudo", "agibilità", "asseverazione", "direzione lavori",
    ),
    Category.CONDIZIONAMENTO_VENTILAZIONE: (
        "climatizzatore", "condizionatore", "split", "predisposizione clima",
        "ventilazione", "unità interna", "unità esterna", "aria condizionata",
        "canalizzato",
    ),
    Category.IMPIANTO_FOTOVOLTAICO_PANNELLI: (
        "fotovoltaico", "pannelli", "moduli", "kwp", "stringa", "campo fv",
        "campo fotovoltaico", "impianto fv",
    ),
    Category.BATTERIA_ACCUMULO: (
        "accumulo", "batteria", "sistema di accumulo", "storage", "kwh",
        "modulo batterie",
    ),
    Category.INVERTER_FOTOVOLTAICO: (
        "inverter", "inverter ibrido", "mppt", "convertitore",
    ),
    Category.PRATICHE_AUTORIZZATIVE_FOTOVOLTAICO_GSE: (
        "gse", "terna", "pratiche connessione", "pratica gse", "gaudi",
        "e-distribuzione", "enel distribuzione", "richiesta connessione",
    ),
    Category.POMPE_DI_CALORE: (
        "pompa di calore", "pdc", "unità esterna", "unità interna",
        "monoblocco", "split pdc", "sistema aria acqua",
    ),
    Category.ALTRI_EXTRA: (
        "extra", "varie ed eventuali", "opere accessorie", "diverse",
        "opere complementari",
    ),
    Category.UNKNOWN: (),
})

# Phrases marking exclusions or customer responsibilities
EXCLUSION_TOKENS: tuple[str, ...] = ("escluso", "non incluso", "a carico del cliente")


# ── AMOUNT PATTERNS ───────────────────────────────────────────────────────────
#
# European notation: 1.250,00 / 1 250,00 / 800 / 99,90, with an optional
# currency marker before or after.  Group 1 is the numeric token.

EURO_AMOUNT_RE = re.compile(
    r"(?:€|eur|euro)?\s*"
    r"(\d{1,3}(?:[.\s]\d{3})*(?:[.,]\d{2})?|\d+(?:[.,]\d{2})?)"
    r"(?:\s*(?:€|eur|euro))?",
    re.IGNORECASE,
)

_CURRENCY_RE = re.compile(r"€|euro|eur", re.IGNORECASE)
_THOUSANDS_DOT_RE = re.compile(r"\.(?=\d{3}(?:[.,]|$))")
_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")
_LEADING_FLOAT_RE = re.compile(r"-?(?:\d+\.?\d*|\.\d+)")

_MATCH_STRIP_RE = re.compile(r"[^a-z0-9\s.\-]")
_WHITESPACE_RE = re.compile(r"\s+")


class CategoryMatch(NamedTuple):
    category: Category
    hits: int


# ── NORMALIZATION ─────────────────────────────────────────────────────────────

def strip_accents(value: str) -> str:
    """Decompose to NFD and drop combining marks."""
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_for_matching(value: Optional[str]) -> str:
    """Lowercase, accent-free, punctuation-light form used for all matching."""
    if not value:
        return ""
    text = strip_accents(value.lower())
    text = _MATCH_STRIP_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


# Keywords normalized once; empty results are dropped
_NORMALIZED_KEYWORDS: Mapping[Category, tuple[str, ...]] = MappingProxyType({
    category: tuple(
        kw for kw in (normalize_for_matching(k) for k in CATEGORY_KEYWORDS[category]) if kw
    )
    for category in ALL_CATEGORIES
})


# ── CATEGORY SCORING ──────────────────────────────────────────────────────────

def count_keyword_hits(normalized_line: str, keywords: Iterable[str]) -> int:
    """Number of (already normalized) keywords contained in the line."""
    return sum(1 for kw in keywords if kw and kw in normalized_line)


def find_likely_category(line: Optional[str]) -> CategoryMatch:
    """
    Score ``line`` against every category and return the best one.

    Categories are scanned in enumeration order and only a strictly higher
    hit count replaces the current best, so ties go to the earlier category.
    A line with no keyword hit is ``Category.UNKNOWN`` with 0 hits.
    """
    normalized = normalize_for_matching(line)
    if not normalized:
        return CategoryMatch(Category.UNKNOWN, 0)

    best_category = Category.UNKNOWN
    best_hits = 0
    for category in ALL_CATEGORIES:
        keywords = _NORMALIZED_KEYWORDS[category]
        if not keywords:
            continue
        hits = count_keyword_hits(normalized, keywords)
        if hits > best_hits:
            best_category = category
            best_hits = hits

    if best_hits == 0:
        return CategoryMatch(Category.UNKNOWN, 0)
    return CategoryMatch(best_category, best_hits)


# ── AMOUNT EXTRACTION ─────────────────────────────────────────────────────────

def parse_amount_token(raw: str) -> Optional[float]:
    """
    Convert a European-formatted numeric token to a float.

    "1.250,00" -> 1250.0, "1 250" -> 1250.0, "12.50" -> 12.5.
    Returns None when nothing numeric is left.
    """
    cleaned = _CURRENCY_RE.sub("", raw)
    cleaned = _WHITESPACE_RE.sub("", cleaned)
    cleaned = _THOUSANDS_DOT_RE.sub("", cleaned)
    cleaned = cleaned.replace(",", ".")
    cleaned = _NON_NUMERIC_RE.sub("", cleaned)

    match = _LEADING_FLOAT_RE.match(cleaned)
    if not match:
        return None
    try:
        value = float(match.group(0))
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def extract_euro_amount(line: Optional[str]) -> Optional[float]:
    """
    Largest euro amount mentioned in ``line``, or None.

    Lines often carry quantities and unit prices next to the total; taking the
    maximum favours the total.  "3 x 120€ = 360€" yields 360.
    """
    if not line:
        return None

    best: Optional[float] = None
    for match in EURO_AMOUNT_RE.finditer(line):
        token = match.group(1)
        if not token:
            continue
        amount = parse_amount_token(token)
        if amount is None:
            continue
        if best is None or amount > best:
            best = amount
    return best


# ── TOKEN PRESENCE ────────────────────────────────────────────────────────────

def has_any_token(line: Optional[str], tokens: Iterable[str]) -> bool:
    """True if any token, normalized like the line, occurs in it."""
    if not line:
        return False
    normalized_line = normalize_for_matching(line)
    for token in tokens:
        normalized_token = normalize_for_matching(token)
        if normalized_token and normalized_token in normalized_line:
            return True
    return False


# ── CONFIDENCE ────────────────────────────────────────────────────────────────

def compute_confidence(keyword_hits: int, has_amount: bool) -> float:
    """
    Heuristic certainty in [0, 1] for a classified line.

    0.5 baseline, +0.15 per keyword hit capped at +0.3, +0.2 when an amount
    was extracted.  Rounded to 2 decimals.
    """
    keyword_bonus = min(CONFIDENCE_HITS_CAP, max(0, keyword_hits) * CONFIDENCE_PER_HIT)
    amount_bonus = CONFIDENCE_AMOUNT_BONUS if has_amount else 0.0
    score = round(CONFIDENCE_BASE + keyword_bonus + amount_bonus, 2)
    return min(1.0, max(0.0, score))
