"""Callcoach - sales call recording, transcription and coaching API."""

import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.config import get_settings
from app.rate_limit import limiter
from app.routers import analysis_router, auth_router, groups_router, recordings_router, transcription_router
from app.worker import recover_stale_jobs

# Logging
logger = logging.getLogger("callcoach")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="Callcoach", version="0.1.0")
app.state.limiter = limiter


# --- Security headers middleware ---
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


# --- Request size limit middleware ---
class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        # Slightly above the upload cap to leave room for multipart framing
        max_body = get_settings().max_upload_bytes + 5 * 1024 * 1024
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > max_body:
            return JSONResponse(status_code=413, content={"error": "Request body too large", "code": "FILE_TOO_LARGE"})
        return await call_next(request)


# --- Audit logging middleware ---
class AuditLogMiddleware(BaseHTTPMiddleware):
    AUDIT_PATHS = (
        "/api/v1/upload-audio",
        "/api/v1/transcribe-audio",
        "/api/v1/analyze-conversation",
        "/api/v1/recordings/",
        "/api/v1/auth/register",
        "/api/v1/auth/login",
    )

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start) * 1000

        path = request.url.path
        method = request.method
        if method in ("POST", "PATCH", "DELETE") and path.startswith(self.AUDIT_PATHS):
            logger.info(
                "AUDIT %s %s -> %d (%.0fms) from %s",
                method,
                path,
                response.status_code,
                duration_ms,
                request.client.host if request.client else "unknown",
            )

        return response


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestSizeLimitMiddleware)
app.add_middleware(AuditLogMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

# API routers
app.include_router(auth_router)
app.include_router(recordings_router)
app.include_router(transcription_router)
app.include_router(analysis_router)
app.include_router(groups_router)


# --- Error handlers: every error body is {"error": ..., "code"?: ...} ---
def error_response(status_code: int, error: str, code: str | None = None, headers: dict | None = None) -> JSONResponse:
    content = {"error": error}
    if code:
        content["code"] = code
    return JSONResponse(status_code=status_code, content=content, headers=headers)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Handle rate limit exceeded."""
    return error_response(429, "Rate limit exceeded. Try again later.", "RATE_LIMITED")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors (including ApiError) in the API error format."""
    return error_response(exc.status_code, str(exc.detail), getattr(exc, "code", None), exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected request body on %s: %s", request.url.path, exc.errors())
    return error_response(422, "Invalid request body", "INVALID_REQUEST")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "Internal server error", "SERVER_ERROR")


# --- Startup ---
@app.on_event("startup")
def on_startup() -> None:
    settings = get_settings()
    for warning in settings.validate():
        logger.warning(warning)
    if settings.TRANSCRIPTION_INLINE_WORKER:
        recover_stale_jobs()


# --- Health checks ---
@app.get("/api/health")
def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok", "app": "callcoach", "version": "0.1.0"}


@app.get("/api/health/api-key")
def api_key_health() -> dict:
    """Report whether the server-side OpenAI key is configured and well-formed."""
    key = get_settings().OPENAI_API_KEY
    return {"apiKeyExists": bool(key), "apiKeyValid": bool(key) and key.startswith("sk-")}
