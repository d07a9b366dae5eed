import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from marketplace.config import get_settings
from marketplace.policy.errors import LessonErrorKind, LessonServiceError

# Every tagged error kind must appear here; unknown kinds fall through to a 500.
LESSON_ERROR_RESPONSES: dict[LessonErrorKind, tuple[int, str]] = {
  LessonErrorKind.NOT_FOUND: (status.HTTP_404_NOT_FOUND, "LESSON_NOT_FOUND"),
  LessonErrorKind.PERMISSION_DENIED: (status.HTTP_403_FORBIDDEN, "LESSON_PERMISSION_DENIED"),
  LessonErrorKind.NOT_PUBLISHED: (status.HTTP_403_FORBIDDEN, "LESSON_NOT_PUBLISHED"),
  LessonErrorKind.VALIDATION: (status.HTTP_400_BAD_REQUEST, "LESSON_VALIDATION_ERROR"),
  LessonErrorKind.INVALID_PRICE: (status.HTTP_400_BAD_REQUEST, "INVALID_LESSON_PRICE"),
  LessonErrorKind.HAS_PURCHASES: (status.HTTP_409_CONFLICT, "LESSON_HAS_PURCHASES"),
  LessonErrorKind.PURCHASE_REQUIRED: (status.HTTP_403_FORBIDDEN, "VIDEO_ACCESS_DENIED"),
}


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  # Serialize exception instances explicitly to avoid leaking non-serializable objects.
  if isinstance(value, BaseException):
    error_message = str(value)
    if error_message:
      return f"{type(value).__name__}: {error_message}"
    return type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  """Build a safe error payload that avoids leaking internal details to clients."""
  payload: dict[str, Any] = {"detail": detail}
  # Attach a request id so support can correlate client reports to server logs.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key not in {"input", "url"}}
    # Remove nested input values from context payloads as well.
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx

    sanitized.append(_coerce_json_safe(scrubbed))

  return sanitized


def _sanitize_http_detail(detail: Any) -> Any:
  """Return an HTTPException detail payload safe for logs."""
  if isinstance(detail, dict):
    return {key: _sanitize_http_detail(value) for key, value in detail.items() if key not in {"input", "body", "payload", "content"}}
  if isinstance(detail, list):
    return [_sanitize_http_detail(item) for item in detail]
  return detail


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Global exception handler to catch unhandled errors."""
  logger = logging.getLogger("uvicorn.error")
  request_id = getattr(request.state, "request_id", None)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Reject malformed requests with 400 and the scrubbed field errors."""
  request_id = getattr(request.state, "request_id", None)
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger = logging.getLogger("uvicorn.error")
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  detail = {"error": "VALIDATION_ERROR", "message": "Request validation failed", "errors": sanitized_errors}
  return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_payload(detail, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Handle FastAPI HTTPExceptions while avoiding leaking internal diagnostics."""
  settings = get_settings()
  request_id = getattr(request.state, "request_id", None)
  headers = getattr(exc, "headers", None)
  # Log 5xx HTTPExceptions with a traceback for diagnostics; do not expose `exc.detail` to callers.
  if exc.status_code >= 500:
    logger = logging.getLogger("uvicorn.error")
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail, exc_info=True)
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  if settings.log_http_4xx:
    logger = logging.getLogger("uvicorn.error")
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, _sanitize_http_detail(exc.detail))

  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=headers)


async def lesson_error_handler(request: Request, exc: LessonServiceError) -> JSONResponse:
  """Translate a tagged lesson error into its HTTP status and error code."""
  request_id = getattr(request.state, "request_id", None)
  mapping = LESSON_ERROR_RESPONSES.get(exc.kind)
  if mapping is None:
    return await global_exception_handler(request, exc)

  status_code, code = mapping
  detail: dict[str, Any] = {"error": code, "message": exc.error.message}
  if exc.error.field is not None:
    detail["field"] = exc.error.field
  if exc.error.count is not None:
    detail["purchaseCount"] = exc.error.count
  return JSONResponse(status_code=status_code, content=_error_payload(detail, request_id=request_id))
