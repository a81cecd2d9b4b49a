"""Error types shared by the request handlers and the provider adapters.

Provider adapters raise :class:`ProviderError` subclasses tagged with an
:class:`ErrorKind`. Errors that reach a handler without a kind (SDK errors an
adapter did not translate, network errors from lower layers) are classified
from their message text, which is how upstream failures were recognised
before the adapters existed.
"""
import enum
import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

TRANSIENT_MARKERS = ("socket hang up", "Connection error", "ECONNRESET", "ETIMEDOUT")


class ErrorKind(str, enum.Enum):
    TRANSIENT = "transient"
    AUTH = "auth"
    QUOTA = "quota"
    INVALID_INPUT = "invalid_input"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class ProviderError(Exception):
    kind = ErrorKind.UNKNOWN

    def __init__(self, message: str, provider: Optional[str] = None, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        self.provider = provider
        if kind is not None:
            self.kind = kind


class TransientProviderError(ProviderError):
    kind = ErrorKind.TRANSIENT


class ProviderAuthError(ProviderError):
    kind = ErrorKind.AUTH


class ProviderQuotaError(ProviderError):
    kind = ErrorKind.QUOTA


class ProviderInputError(ProviderError):
    kind = ErrorKind.INVALID_INPUT


class ProviderTimeoutError(ProviderError):
    kind = ErrorKind.TIMEOUT


class StorageError(Exception):
    """Raised when an asset cannot be uploaded, fetched or deleted."""


class ApiError(HTTPException):
    """An HTTP error rendered as ``{"error": ..., "details": ...}``."""

    def __init__(self, status_code: int, error: str, details: Optional[str] = None, **extra: Any):
        super().__init__(status_code=status_code, detail=error)
        self.details = details
        self.extra = extra


def is_transient_message(message: str) -> bool:
    return any(marker in message for marker in TRANSIENT_MARKERS)


def classify_message(message: str) -> ErrorKind:
    if is_transient_message(message):
        return ErrorKind.TRANSIENT
    if "API key" in message or "API token" in message:
        return ErrorKind.AUTH
    if "quota" in message or "billing" in message:
        return ErrorKind.QUOTA
    if "mask" in message or "dimensions" in message:
        return ErrorKind.INVALID_INPUT
    if "timeout" in message:
        return ErrorKind.TIMEOUT
    return ErrorKind.UNKNOWN


def classify_error(exc: BaseException) -> ErrorKind:
    if isinstance(exc, ProviderError):
        return exc.kind
    return classify_message(str(exc))


_KIND_STATUS = {
    ErrorKind.TRANSIENT: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.AUTH: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.QUOTA: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.TIMEOUT: status.HTTP_408_REQUEST_TIMEOUT,
}


def provider_error(exc: BaseException, provider: str, action: str, messages: Optional[Dict[ErrorKind, str]] = None) -> ApiError:
    """Map a failed provider call to the ApiError a handler should raise."""
    kind = classify_error(exc)
    defaults = {
        ErrorKind.TRANSIENT: f"Unable to connect to {provider} API. Please check your internet connection and try again.",
        ErrorKind.AUTH: f"Invalid {provider} credentials. Please check your configuration.",
        ErrorKind.QUOTA: f"{provider} API quota exceeded. Please check your billing settings.",
        ErrorKind.INVALID_INPUT: f"{provider} rejected the request: {exc}",
        ErrorKind.TIMEOUT: f"{provider} request timed out. Please try again.",
    }
    defaults.update(messages or {})
    if kind in _KIND_STATUS:
        return ApiError(_KIND_STATUS[kind], defaults[kind])
    return ApiError(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        f"Failed to {action}. Please try again later.",
        details=str(exc),
    )


def error_payload(error: str, details: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"error": error}
    if details:
        payload["details"] = details
    payload.update(extra)
    return payload


async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(exc.detail, exc.details, **exc.extra),
        headers=exc.headers,
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info(f"Rejected request to {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_payload("Invalid request", details=str(exc.errors())),
    )


def register_error_handlers(app):
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
