"""Quote API — parse uploaded quotes, classify lines, normalize and reconcile."""
import logging
from typing import List

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from pydantic import ValidationError
from starlette.datastructures import UploadFile as StarletteUploadFile

from app.config import MAX_FILE_BYTES, MAX_QUOTES
from app.models.quote_schema import (
    ClassifyRequest,
    ClassifyResponse,
    NormalizeRequest,
    ParseResponse,
    ProcessedQuoteResponse,
    TextParseRequest,
)
from app.services.perf_monitor import tracker
from app.services.quote_parser import (
    EmptyDocumentError,
    FileTooLargeError,
    QuoteParseError,
    TooManyQuotesError,
    UnsupportedFormatError,
    parse_to_lines,
    parse_uploaded_files,
)
from app.services.quote_pipeline import process_quote
from app.services.rules_engine import extract_euro_amount, find_likely_category

logger = logging.getLogger("housewise-quotes")

router = APIRouter(prefix="/api", tags=["Quotes"])


def _http_error(exc: QuoteParseError) -> HTTPException:
    """Map a parser error to its HTTP status."""
    if isinstance(exc, UnsupportedFormatError):
        status = 415
    elif isinstance(exc, FileTooLargeError):
        status = 413
    elif isinstance(exc, EmptyDocumentError):
        status = 422
    else:
        status = 400
    return HTTPException(status_code=status, detail=str(exc))


async def _read_upload(upload: StarletteUploadFile) -> bytes:
    # Read one byte past the limit so oversize files are detected without buffering them whole
    data = await upload.read(MAX_FILE_BYTES + 1)
    if len(data) > MAX_FILE_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"File too large: {upload.filename}. Maximum {MAX_FILE_BYTES // (1024 * 1024)}MB",
        )
    return data


# ─── Parse ────────────────────────────────────────────────────────────────────

@router.post("/parse", response_model=ParseResponse)
async def parse_quote(request: Request):
    """
    Accept a file (PDF/XLSX/CSV/TXT) or raw text and return cleaned lines.

    multipart/form-data: fields ``file`` and/or ``text`` (file wins).
    application/json:    ``{"text": "..."}``.
    """
    content_type = request.headers.get("content-type", "")

    try:
        if "multipart/form-data" in content_type:
            form = await request.form()
            upload = form.get("file")
            text = form.get("text")
            if not isinstance(upload, StarletteUploadFile):
                upload = None
            if not isinstance(text, str):
                text = None
            if upload is None and not text:
                raise HTTPException(400, "No file or text provided for parsing")

            if upload is not None:
                data = await _read_upload(upload)
                lines = parse_to_lines(
                    data=data,
                    file_name=upload.filename or "",
                    content_type=upload.content_type,
                )
            else:
                lines = parse_to_lines(text=text)
            return ParseResponse(lines=lines)

        if "application/json" in content_type:
            try:
                body = TextParseRequest.model_validate(await request.json())
            except (ValueError, ValidationError):
                raise HTTPException(400, 'Invalid JSON request: missing "text" field')
            if not body.text:
                raise HTTPException(400, 'Invalid JSON request: missing "text" field')
            return ParseResponse(lines=parse_to_lines(text=body.text))

    except QuoteParseError as e:
        tracker.record_error("parse")
        logger.warning(f"Parse failed: {e}")
        raise _http_error(e)

    raise HTTPException(415, "Unsupported Content-Type. Use multipart/form-data or JSON.")


# ─── Classify / Normalize ─────────────────────────────────────────────────────

@router.post("/quotes/classify", response_model=ClassifyResponse)
async def classify_line(req: ClassifyRequest):
    """Classify a single line and extract its amount."""
    match = find_likely_category(req.line)
    return ClassifyResponse(
        category=match.category,
        hits=match.hits,
        amount_eur=extract_euro_amount(req.line),
    )


@router.post("/quotes/normalize", response_model=ProcessedQuoteResponse)
async def normalize_quote(req: NormalizeRequest):
    """Normalize already-extracted lines of one quote and reconcile its totals."""
    external = req.external.to_engine() if req.external else None
    quote = process_quote(
        req.lines,
        source_label=req.source_label,
        file_name=req.file_name,
        external=external,
    )
    return ProcessedQuoteResponse.from_quote(quote)


@router.post("/quotes/upload", response_model=List[ProcessedQuoteResponse])
async def upload_quotes(files: List[UploadFile] = File(...)):
    """
    Upload 1 to 3 quote files; each is parsed, normalized and labelled A/B/C
    by upload position.
    """
    if not files:
        raise HTTPException(400, "Upload at least one quote")
    if len(files) > MAX_QUOTES:
        raise HTTPException(400, f"You can upload at most {MAX_QUOTES} quotes")

    batch = []
    for upload in files:
        data = await _read_upload(upload)
        batch.append((upload.filename or "", data, upload.content_type))

    try:
        sources = parse_uploaded_files(batch)
    except TooManyQuotesError as e:
        raise HTTPException(400, str(e))
    except QuoteParseError as e:
        tracker.record_error("parse")
        logger.warning(f"Upload parse failed: {e}")
        raise _http_error(e)

    return [
        ProcessedQuoteResponse.from_quote(
            process_quote(
                source.lines,
                source_label=source.source_label,
                file_name=source.meta.get("file_name", ""),
                parsing_notes=source.meta.get("parsing_notes"),
            )
        )
        for source in sources
    ]
