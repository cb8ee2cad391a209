"""
Quote File Parser — turns uploaded PDF / TXT / CSV / XLSX bytes into clean
text lines for the normalizer.

Only the PDF text layer is read (pdfplumber); scanned PDFs without text are
reported as empty rather than OCR'd.  Spreadsheet rows are flattened by
joining their non-blank cells with " - "; CSV and XLSX are read through
pandas (all cells as text for CSV, raw cell values for XLSX).

Unlike the normalizer, this layer treats an unreadable or empty document as
fatal and raises a ``QuoteParseError`` subclass.
"""
from __future__ import annotations

import csv
import io
import logging
import os
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

import pdfplumber
import pandas as pd

from app.config import MAX_FILE_BYTES, MAX_QUOTES, PDF_MIN_TEXT_CHARS, SOURCE_LABELS
from app.services.text_utils import normalize_spaces

logger = logging.getLogger("housewise-parser")

SUPPORTED_EXTENSIONS: tuple[str, ...] = (".pdf", ".txt", ".csv", ".xlsx")

MIME_PDF = "application/pdf"
MIME_TEXT = "text/plain"
MIME_CSV = "text/csv"
MIME_XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

MIME_BY_EXTENSION: dict[str, str] = {
    ".pdf": MIME_PDF,
    ".txt": MIME_TEXT,
    ".csv": MIME_CSV,
    ".xlsx": MIME_XLSX,
}

_NEWLINE_RE = re.compile(r"\r\n?")
CELL_SEPARATOR = " - "
CSV_DELIMITERS = ",;\t"


# ── ERRORS ────────────────────────────────────────────────────────────────────

class QuoteParseError(Exception):
    """Base class for fatal ingestion errors."""


class UnsupportedFormatError(QuoteParseError):
    """File type is not one of SUPPORTED_EXTENSIONS."""


class EmptyDocumentError(QuoteParseError):
    """File is empty or yields no usable lines."""


class FileTooLargeError(QuoteParseError):
    """File exceeds MAX_FILE_BYTES."""


class TooManyQuotesError(QuoteParseError):
    """More than MAX_QUOTES files in one batch."""


@dataclass
class ParsedSource:
    source_label: str                 # "A" | "B" | "C"
    lines: list
    meta: dict = field(default_factory=dict)   # file_name, mime, size, parsing_notes


# ── FILE HELPERS ──────────────────────────────────────────────────────────────

def get_file_extension(name: Optional[str]) -> str:
    """Lowercased extension including the dot, or "" when there is none."""
    if not name:
        return ""
    ext = os.path.splitext(name)[1]
    return ext.lower() if len(ext) > 1 else ""


def is_supported_extension(ext: Optional[str]) -> bool:
    if not ext:
        return False
    normalized = ext.lower() if ext.startswith(".") else f".{ext.lower()}"
    return normalized in SUPPORTED_EXTENSIONS


def bytes_to_readable(size: Optional[float]) -> str:
    """1536 -> '1.5 KB'.  Returns '' for missing or negative sizes."""
    if size is None or isinstance(size, bool) or size < 0:
        return ""
    if size < 1024:
        return f"{int(size)} B"
    for unit in ("KB", "MB", "GB"):
        size /= 1024
        if size < 1024 or unit == "GB":
            return f"{size:.1f} {unit}"
    return ""


def resolve_mime(file_name: str, content_type: Optional[str] = None) -> Optional[str]:
    """Trust a known content type first, then fall back to the extension."""
    direct = (content_type or "").split(";")[0].strip().lower()
    if direct in MIME_BY_EXTENSION.values():
        return direct
    return MIME_BY_EXTENSION.get(get_file_extension(file_name))


def _is_punctuation_only(text: str) -> bool:
    return all(unicodedata.category(ch)[0] in ("P", "S") for ch in text if not ch.isspace())


def clean_lines(lines: Iterable[Optional[str]]) -> list:
    """Whitespace-normalize and drop blank entries."""
    cleaned = []
    for line in lines:
        normalized = normalize_spaces(line)
        if normalized:
            cleaned.append(normalized)
    return cleaned


# ── FORMAT PARSERS ────────────────────────────────────────────────────────────

def parse_text_to_lines(text: Optional[str]) -> list:
    """Split plain text into cleaned lines, dropping punctuation-only lines."""
    if not text:
        return []
    lines = []
    for raw in _NEWLINE_RE.sub("\n", text).split("\n"):
        cleaned = normalize_spaces(raw)
        if not cleaned or _is_punctuation_only(cleaned):
            continue
        lines.append(cleaned)
    return lines


def _cell_to_text(cell) -> str:
    if cell is None or (not isinstance(cell, str) and pd.isna(cell)):
        return ""
    if isinstance(cell, bool):
        return "TRUE" if cell else "FALSE"
    if isinstance(cell, float) and cell.is_integer():
        return str(int(cell))
    return str(cell)


def _rows_to_lines(rows: Iterable[Sequence]) -> list:
    lines = []
    for row in rows:
        if not row:
            continue
        values = [v for v in (_cell_to_text(c) for c in row) if v.strip()]
        if not values:
            continue
        joined = CELL_SEPARATOR.join(values)
        for segment in re.split(r"\n+", _NEWLINE_RE.sub("\n", joined)):
            cleaned = normalize_spaces(segment)
            if cleaned:
                lines.append(cleaned)
    return lines


def _decode_text(data: bytes, notes: Optional[list] = None) -> str:
    # utf-8-sig drops the BOM Excel adds to exported CSVs
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.warning("File is not valid UTF-8; decoding as latin-1")
        if notes is not None:
            notes.append("File is not valid UTF-8; decoded as latin-1")
        return data.decode("latin-1")


def _sniff_delimiter(sample: str) -> str:
    """Comma, semicolon or tab; comma when the sample has none of them."""
    try:
        return csv.Sniffer().sniff(sample, delimiters=CSV_DELIMITERS).delimiter
    except csv.Error:
        pass
    # Ragged rows defeat the sniffer; take the most frequent candidate
    best = max(CSV_DELIMITERS, key=sample.count)
    return best if sample.count(best) else ","


def parse_csv_to_lines(data: bytes, notes: Optional[list] = None) -> list:
    """Flatten CSV rows (comma, semicolon or tab separated) into lines."""
    if not data:
        raise EmptyDocumentError("CSV file is empty or unreadable")
    text = _decode_text(data, notes)
    if not text.strip():
        return []

    sep = _sniff_delimiter(text[:4096])
    # Rows may be ragged; size the frame to the widest one
    width = max(line.count(sep) for line in text.splitlines()) + 1
    try:
        frame = pd.read_csv(
            io.StringIO(text),
            sep=sep,
            header=None,
            names=list(range(width)),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            engine="python",
        )
    except (pd.errors.ParserError, csv.Error) as e:
        raise UnsupportedFormatError(f"Cannot read CSV: {e}") from e
    return _rows_to_lines(frame.itertuples(index=False, name=None))


def parse_xlsx_to_lines(data: bytes) -> list:
    """Flatten every row of every worksheet into lines."""
    if not data:
        raise EmptyDocumentError("XLSX file is empty or unreadable")
    try:
        sheets = pd.read_excel(io.BytesIO(data), sheet_name=None, header=None, dtype=object)
    except Exception as e:
        raise UnsupportedFormatError(f"Cannot read XLSX workbook: {e}") from e

    lines = []
    for sheet_name, frame in sheets.items():
        sheet_lines = _rows_to_lines(frame.itertuples(index=False, name=None))
        logger.debug(f"Sheet {sheet_name!r}: {len(sheet_lines)} lines")
        lines.extend(sheet_lines)
    return lines


def parse_pdf_to_lines(data: bytes, notes: Optional[list] = None) -> list:
    """Extract the text layer of every PDF page as cleaned lines."""
    if not data:
        raise EmptyDocumentError("PDF file is empty or unreadable")

    pages_text = []
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            for page in pdf.pages:
                pages_text.append(page.extract_text() or "")
    except Exception as e:
        raise UnsupportedFormatError(f"Cannot read PDF: {e}") from e

    raw_text = "\n".join(pages_text)
    text_chars = len(raw_text.strip())
    if text_chars < PDF_MIN_TEXT_CHARS:
        logger.warning(
            f"PDF text layer has only {text_chars} chars; "
            "probably a scanned document (OCR not supported)"
        )
        if notes is not None:
            notes.append(
                f"PDF text layer has only {text_chars} characters: "
                "probably a scanned document, OCR is not supported"
            )
    return clean_lines(_NEWLINE_RE.sub("\n", raw_text).split("\n"))


# ── DISPATCH ──────────────────────────────────────────────────────────────────

def parse_file_to_lines(
    data: bytes,
    file_name: str,
    content_type: Optional[str] = None,
    notes: Optional[list] = None,
) -> list:
    """
    Parse an uploaded file into cleaned lines.

    Non-fatal observations (scanned PDF, latin-1 fallback) are appended to
    ``notes`` when a list is given.

    Raises UnsupportedFormatError, FileTooLargeError or EmptyDocumentError.
    """
    label = file_name or "unnamed file"
    mime = resolve_mime(file_name, content_type)
    if mime is None:
        ext = get_file_extension(file_name)
        raise UnsupportedFormatError(
            f"Unsupported format: {ext or label} (accepted: {', '.join(SUPPORTED_EXTENSIONS)})"
        )
    if not data:
        raise EmptyDocumentError(f"Empty file: {label}")
    if len(data) > MAX_FILE_BYTES:
        raise FileTooLargeError(
            f"File too large ({bytes_to_readable(len(data))}). "
            f"Maximum allowed {bytes_to_readable(MAX_FILE_BYTES)}"
        )

    if mime == MIME_PDF:
        raw_lines = parse_pdf_to_lines(data, notes)
    elif mime == MIME_TEXT:
        raw_lines = parse_text_to_lines(_decode_text(data, notes))
    elif mime == MIME_CSV:
        raw_lines = parse_csv_to_lines(data, notes)
    else:
        raw_lines = parse_xlsx_to_lines(data)

    lines = clean_lines(raw_lines)
    if not lines:
        raise EmptyDocumentError(f"Empty or unreadable document: {label}")

    logger.info(f"Parsed {len(lines)} lines from {label} ({mime})")
    return lines


def parse_to_lines(
    data: Optional[bytes] = None,
    file_name: str = "",
    content_type: Optional[str] = None,
    text: Optional[str] = None,
) -> list:
    """Parse a file when given, otherwise raw text."""
    if data is not None:
        return parse_file_to_lines(data, file_name, content_type)
    if text:
        return clean_lines(parse_text_to_lines(text))
    raise EmptyDocumentError("Nothing to parse: no file or text provided")


def infer_source_label(index: int) -> str:
    """Batch position -> "A" | "B" | "C"."""
    if 0 <= index < len(SOURCE_LABELS):
        return SOURCE_LABELS[index]
    raise TooManyQuotesError(f"At most {MAX_QUOTES} quotes are supported (A, B, C)")


def parse_uploaded_files(files: Sequence[tuple]) -> list:
    """
    Parse a batch of 1..MAX_QUOTES ``(file_name, data, content_type)`` tuples.

    Each source is labelled by position.  A failure on any file aborts the
    batch with the offending file name in the message.
    """
    if not files:
        raise EmptyDocumentError("Upload at least one quote")
    if len(files) > MAX_QUOTES:
        raise TooManyQuotesError(f"You can upload at most {MAX_QUOTES} quotes")

    parsed = []
    for index, (file_name, data, content_type) in enumerate(files):
        source_label = infer_source_label(index)
        notes: list = []
        try:
            lines = parse_file_to_lines(data, file_name, content_type, notes)
        except QuoteParseError as e:
            name = file_name or f"file {index + 1}"
            raise type(e)(f"Error while parsing {name}: {e}") from e
        parsed.append(ParsedSource(
            source_label=source_label,
            lines=lines,
            meta={
                "file_name": file_name or f"Quote {source_label}",
                "mime": content_type or None,
                "size": len(data),
                "parsing_notes": notes,
            },
        ))
    return parsed
