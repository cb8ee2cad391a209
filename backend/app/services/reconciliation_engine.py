"""
Reconciliation Engine — per-category totals and summary bullets for a quote.

Totals are always recomputed from the classified items.  Externally proposed
totals (for instance from a model that read the same document) are only a
fallback for a category whose computed value is not finite, so the grand
total always equals the sum of the line amounts.

Bullet lists (inclusions / exclusions) supplied from outside are kept as-is;
when empty they are filled from simple keyword and flag heuristics.

Public API:
    result  = reconcile_totals(items, external_totals)
    summary = reconcile_summary(items, ExternalSummary(...))
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence

from app.services.normalizer_engine import NormalizedItem
from app.services.ontology import ALL_CATEGORIES, Category, ItemFlag

logger = logging.getLogger("housewise-reconciliation")


# ── BULLET HEURISTICS ─────────────────────────────────────────────────────────
# (substring in lowercase original text, bullet)

INCLUSION_HINTS: tuple[tuple[str, str], ...] = (
    ("smaltimento", "Smaltimento incluso"),
    ("tinteggiatura", "Tinteggiatura inclusa"),
    ("faretti", "Illuminazione/parete doccia inclusa"),
)

# (flag on any item, bullet)
EXCLUSION_HINTS: tuple[tuple[ItemFlag, str], ...] = (
    (ItemFlag.MARCA_MATERIALE_MANCANTE, "Marche/materiali non specificati"),
    (ItemFlag.QUANTITA_NON_CHIARA, "Quantità non definite con precisione"),
)


# ── DATA CLASSES ──────────────────────────────────────────────────────────────

@dataclass
class ReconciledTotals:
    totals: dict            # Category -> float, every category present
    grand_total: float = 0.0

    def to_dict(self) -> dict:
        return {
            "totals": {c.value: round(v, 2) for c, v in self.totals.items()},
            "grand_total": round(self.grand_total, 2),
        }


@dataclass
class ExternalSummary:
    """Per-quote summary proposed by an external source; every field optional."""
    totals: dict = field(default_factory=dict)     # category id -> number (unvalidated)
    inclusions: list = field(default_factory=list)
    exclusions: list = field(default_factory=list)
    missing_checklist: list = field(default_factory=list)
    ambiguous_points: list = field(default_factory=list)


@dataclass
class QuoteSummary:
    totals: dict
    grand_total: float
    inclusions: list = field(default_factory=list)
    exclusions: list = field(default_factory=list)
    missing_checklist: list = field(default_factory=list)
    ambiguous_points: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "totals": {c.value: round(v, 2) for c, v in self.totals.items()},
            "grand_total": round(self.grand_total, 2),
            "inclusions": list(self.inclusions),
            "exclusions": list(self.exclusions),
            "missing_checklist": list(self.missing_checklist),
            "ambiguous_points": list(self.ambiguous_points),
        }


# ── TOTALS ────────────────────────────────────────────────────────────────────

def empty_totals() -> dict:
    """Fresh totals dict with every category at 0.0."""
    return {category: 0.0 for category in ALL_CATEGORIES}


def _as_finite(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def compute_totals_from_items(items: Iterable[NormalizedItem]) -> dict:
    """Sum amounts per category; items without a finite amount add nothing."""
    totals = empty_totals()
    for item in items:
        amount = _as_finite(item.amount_eur)
        if amount is None:
            continue
        totals[item.category] += amount
    return totals


def pick_total(computed: Any, external: Any) -> float:
    """
    Three-tier fallback for one category total.

    1. the value computed from the items, when finite
    2. the externally proposed value, when finite
    3. 0.0
    """
    value = _as_finite(computed)
    if value is not None:
        return value
    value = _as_finite(external)
    if value is not None:
        return value
    return 0.0


def _external_by_category(external_totals: Optional[Mapping]) -> dict:
    """Keep only entries whose key is a known category id."""
    by_category: dict = {}
    for key, value in (external_totals or {}).items():
        try:
            category = key if isinstance(key, Category) else Category(key)
        except ValueError:
            logger.debug(f"Ignoring external total for unknown category {key!r}")
            continue
        by_category[category] = value
    return by_category


def reconcile_totals(
    items: Iterable[NormalizedItem],
    external_totals: Optional[Mapping] = None,
) -> ReconciledTotals:
    """
    Per-category totals for ``items`` plus their grand total.

    ``grand_total`` is the sum of the returned per-category totals.
    """
    computed = compute_totals_from_items(items)
    external = _external_by_category(external_totals)

    merged = empty_totals()
    for category in ALL_CATEGORIES:
        merged[category] = pick_total(computed[category], external.get(category))

        ext_value = _as_finite(external.get(category))
        if ext_value is not None and abs(ext_value - merged[category]) > 0.005:
            logger.debug(
                f"External total for {category.value} ({ext_value:.2f}) "
                f"replaced by computed {merged[category]:.2f}"
            )

    return ReconciledTotals(totals=merged, grand_total=sum(merged.values()))


# ── BULLETS ───────────────────────────────────────────────────────────────────

def _clean_bullets(values: Optional[Sequence]) -> list:
    if not values:
        return []
    return [str(v).strip() for v in values if v is not None and str(v).strip()]


def enrich_bullets_if_empty(
    inclusions: Optional[Sequence[str]],
    exclusions: Optional[Sequence[str]],
    items: Sequence[NormalizedItem],
) -> tuple[list, list]:
    """
    Fill empty inclusion / exclusion lists from item heuristics.

    Non-empty lists are returned unchanged (as new lists).
    """
    inclusions = list(inclusions or [])
    exclusions = list(exclusions or [])

    if not inclusions:
        texts = [item.original_text.lower() for item in items]
        for hint, bullet in INCLUSION_HINTS:
            if any(hint in text for text in texts):
                inclusions.append(bullet)

    if not exclusions:
        for flag, bullet in EXCLUSION_HINTS:
            if any(flag in item.flags for item in items):
                exclusions.append(bullet)

    return inclusions, exclusions


def reconcile_summary(
    items: Sequence[NormalizedItem],
    external: Optional[ExternalSummary] = None,
) -> QuoteSummary:
    """Reconcile totals and bullets for one quote."""
    external = external or ExternalSummary()
    reconciled = reconcile_totals(items, external.totals)
    inclusions, exclusions = enrich_bullets_if_empty(
        _clean_bullets(external.inclusions),
        _clean_bullets(external.exclusions),
        items,
    )
    return QuoteSummary(
        totals=reconciled.totals,
        grand_total=reconciled.grand_total,
        inclusions=inclusions,
        exclusions=exclusions,
        missing_checklist=_clean_bullets(external.missing_checklist),
        ambiguous_points=_clean_bullets(external.ambiguous_points),
    )
