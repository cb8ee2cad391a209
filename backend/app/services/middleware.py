"""Request tracing, timing and body-size guard for the quote normalizer API."""
import re
import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.config import MAX_FILE_BYTES, MAX_QUOTES
from app.services.logging_config import request_id_ctx

logger = logging.getLogger("housewise-api.middleware")

SKIP_LOG_PATHS = {"/health", "/metrics"}

# A full upload batch plus room for multipart boundaries and form fields
MAX_BODY_BYTES = MAX_QUOTES * MAX_FILE_BYTES + 1024 * 1024

_CLIENT_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def _resolve_request_id(request: Request) -> str:
    """Reuse a well-formed X-Request-ID from the caller, else mint a uuid4."""
    incoming = request.headers.get("x-request-id", "")
    if _CLIENT_REQUEST_ID_RE.match(incoming):
        return incoming
    return str(uuid.uuid4())


def _declared_length(request: Request):
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that:
    - Assigns an X-Request-ID to every request/response and exposes it to
      all loggers through ``request_id_ctx``.
    - Rejects bodies whose declared Content-Length exceeds MAX_BODY_BYTES
      with 413 before any upload is read.
    - Adds X-Process-Time (ms) to every response.
    - Emits one structured log line per request (except health and metrics polling).
    """

    def __init__(self, app, max_body_bytes: int = MAX_BODY_BYTES):
        super().__init__(app)
        self.max_body_bytes = max_body_bytes

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = _resolve_request_id(request)
        token = request_id_ctx.set(request_id)
        start_time = time.perf_counter()
        request.state.request_id = request_id

        try:
            length = _declared_length(request)
            if length is not None and length > self.max_body_bytes:
                logger.warning(f"Rejected {length} byte body on {request.url.path}")
                response: Response = JSONResponse(
                    status_code=413,
                    content={"detail": f"Request body too large (max {self.max_body_bytes} bytes)"},
                )
            else:
                response = await call_next(request)

            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = str(duration_ms)

            if request.url.path not in SKIP_LOG_PATHS:
                level = logging.WARNING if response.status_code >= 400 else logging.INFO
                logger.log(
                    level,
                    f"{request.method} {request.url.path} -> {response.status_code}",
                    extra={
                        "http_method": request.method,
                        "http_path": request.url.path,
                        "http_status": response.status_code,
                        "duration_ms": duration_ms,
                    },
                )
            return response
        finally:
            request_id_ctx.reset(token)
