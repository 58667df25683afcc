"""Error taxonomy and FastAPI handlers.

Every error body is a flat JSON object: ``{"error": CODE, "message": ..., "request_id": ...}``
plus any extra fields the error carries (``usage``, ``rateLimit``, ``upgradeUrl``).
"""

import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from ltgvault.core.logging import get_request_id


class AppError(Exception):
    code = "APP_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id
        self.extra = extra or {}
        self.headers = headers or {}


class ValidationError(AppError, ValueError):
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(AppError, ValueError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(AppError):
    code = "CONFLICT"
    status_code = 409


class AuthenticationError(AppError):
    """Missing, invalid, or revoked credential.

    The message never says whether a key was revoked or never existed.
    """
    code = "INVALID_API_KEY"
    status_code = 401


class QuotaExceededError(AppError):
    code = "LIMIT_EXCEEDED"
    status_code = 429


class FeatureLockedError(AppError):
    """Valid credential, but the tier does not include the resource or template."""
    code = "FEATURE_LOCKED"
    status_code = 403


class RateLimitedError(AppError):
    code = "RATE_LIMITED"
    status_code = 429


class UpstreamError(AppError):
    """Third-party API failure. Messages are generic; provider details stay in logs."""
    code = "UPSTREAM_ERROR"
    status_code = 502


class UpstreamTimeoutError(UpstreamError):
    code = "UPSTREAM_TIMEOUT"
    status_code = 504


class StoreError(AppError):
    code = "STORE_ERROR"
    status_code = 500


class ServiceUnavailableError(AppError):
    code = "SERVICE_UNAVAILABLE"
    status_code = 503


class UnknownFeatureError(AppError, LookupError):
    """A feature name outside the known set reached the entitlement layer."""
    code = "UNKNOWN_FEATURE"
    status_code = 500


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def error_payload(code: str, message: str, request_id: str, extra: Optional[Dict[str, Any]] = None) -> dict:
    payload = {"error": code, "message": message, "request_id": request_id}
    if extra:
        payload.update(extra)
    return payload


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = error_payload(exc.code, exc.message, rid, exc.extra)
    logger = logging.getLogger("ltgvault")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "status": exc.status_code},
    )
    response = JSONResponse(status_code=exc.status_code, content=payload)
    for name, value in exc.headers.items():
        response.headers[name] = value
    response.headers["x-request-id"] = rid
    return response


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR"
    message = exc.detail if isinstance(exc.detail, str) and exc.detail else "HTTP error"
    payload = error_payload(code, message, rid)
    logger = logging.getLogger("ltgvault")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def request_validation_handler(request: Request, exc: RequestValidationError):
    rid = _extract_request_id(request)
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg', 'invalid value')}" if field else first.get("msg", "Invalid request")
    payload = error_payload(ValidationError.code, message, rid)
    logging.getLogger("ltgvault").warning(
        "request.invalid", extra={"request_id": rid, "error_code": ValidationError.code, "status": 400}
    )
    response = JSONResponse(status_code=400, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("ltgvault")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "INTERNAL_ERROR"})
    payload = error_payload("INTERNAL_ERROR", "Unexpected error", rid)
    response = JSONResponse(status_code=500, content=payload)
    response.headers["x-request-id"] = rid
    return response
