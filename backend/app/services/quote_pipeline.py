"""
Quote Pipeline — normalize one quote's lines and reconcile its summary.

    quote = process_quote(lines, source_label="B", file_name="offerta.pdf")
    quote.to_dict()
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence

from app.services.normalizer_engine import NormalizedItem, normalize_lines
from app.services.perf_monitor import tracker
from app.services.reconciliation_engine import (
    ExternalSummary,
    QuoteSummary,
    reconcile_summary,
)

logger = logging.getLogger("housewise-pipeline")


@dataclass
class ProcessedQuote:
    source_label: str
    items: list                      # list[NormalizedItem]
    summary: QuoteSummary
    meta: dict = field(default_factory=dict)

    @property
    def totals(self) -> dict:
        return self.summary.totals

    @property
    def grand_total(self) -> float:
        return self.summary.grand_total

    def to_dict(self) -> dict:
        return {
            "source_label": self.source_label,
            "items": [item.to_dict() for item in self.items],
            "summary": self.summary.to_dict(),
            "meta": dict(self.meta),
        }


def process_quote(
    lines: Sequence[str],
    source_label: str = "A",
    file_name: str = "",
    external: Optional[ExternalSummary] = None,
    parsing_notes: Optional[list] = None,
) -> ProcessedQuote:
    start = time.perf_counter()

    items: list[NormalizedItem] = normalize_lines(lines)
    normalized_at = time.perf_counter()
    summary = reconcile_summary(items, external)
    done = time.perf_counter()

    normalize_ms = round((normalized_at - start) * 1000, 2)
    reconcile_ms = round((done - normalized_at) * 1000, 2)
    total_ms = round((done - start) * 1000, 2)
    tracker.record_stage_duration("normalize", normalize_ms)
    tracker.record_stage_duration("reconcile", reconcile_ms)
    tracker.record_quote_complete(total_ms, item_count=len(items))

    meta = {"file_name": file_name or f"Quote {source_label}"}
    if parsing_notes:
        meta["parsing_notes"] = list(parsing_notes)
    quote = ProcessedQuote(source_label=source_label, items=items, summary=summary, meta=meta)

    priced_categories = sum(1 for total in quote.totals.values() if total)
    logger.info(
        f"[{source_label}] {len(items)} items in {priced_categories} categories, total {quote.grand_total:.2f} EUR",
        extra={"source_label": source_label, "duration_ms": total_ms},
    )
    return quote
