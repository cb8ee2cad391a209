"""
Quote normalizer configuration — single source of truth for thresholds,
limits and scoring constants.

Import from here in services and routes rather than hardcoding values.
Only the limits that make sense to tune per deployment read the environment.
"""
from __future__ import annotations

import os

API_VERSION: str = "1.0.0"


# ── Line normalization ─────────────────────────────────────────────────────────

# Cleaned lines shorter than this are treated as noise (page numbers, bullets)
MIN_LINE_LENGTH: int = 3

# normalized_text keeps at most this many words
NORMALIZED_MAX_WORDS: int = 15


# ── Confidence scoring ─────────────────────────────────────────────────────────
# score = BASE + min(HITS_CAP, hits * PER_HIT) + (AMOUNT_BONUS if amount)

CONFIDENCE_BASE: float = 0.5
CONFIDENCE_PER_HIT: float = 0.15
CONFIDENCE_HITS_CAP: float = 0.3
CONFIDENCE_AMOUNT_BONUS: float = 0.2


# ── Ingestion limits ───────────────────────────────────────────────────────────

# At most three quotes per batch, labelled A, B, C
MAX_QUOTES: int = 3
SOURCE_LABELS: tuple[str, ...] = ("A", "B", "C")

MAX_FILE_BYTES: int = int(os.getenv("MAX_FILE_BYTES", str(20 * 1024 * 1024)))

# A PDF text layer shorter than this is probably a scanned document
PDF_MIN_TEXT_CHARS: int = 30
