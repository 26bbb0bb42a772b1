import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from provenance_engine.config import get_settings
from provenance_engine.core.errors import HashMismatchError, InvalidTransitionError, NotFoundError, ProvenanceError, StorageError, TransactionError, ValidationError

# Most specific first; DispatchError resolves through StorageError.
_STATUS_BY_ERROR: tuple[tuple[type[ProvenanceError], int], ...] = (
  (ValidationError, status.HTTP_400_BAD_REQUEST),
  (HashMismatchError, status.HTTP_400_BAD_REQUEST),
  (NotFoundError, status.HTTP_404_NOT_FOUND),
  (InvalidTransitionError, status.HTTP_409_CONFLICT),
  (StorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
  (TransactionError, status.HTTP_502_BAD_GATEWAY),
)


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  return str(value)


def _error_payload(error: Any, *, request_id: str | None = None, **extra: Any) -> dict[str, Any]:
  """Build a safe error payload that avoids leaking internal details to clients."""
  payload: dict[str, Any] = {"error": error}
  payload.update({key: value for key, value in extra.items() if value is not None})
  # Attach a request id so support can correlate client reports to server logs.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx

    sanitized.append(_coerce_json_safe(scrubbed))

  return sanitized


def status_for_error(exc: ProvenanceError) -> int:
  for error_type, status_code in _STATUS_BY_ERROR:
    if isinstance(exc, error_type):
      return status_code
  return status.HTTP_500_INTERNAL_SERVER_ERROR


async def provenance_exception_handler(request: Request, exc: ProvenanceError) -> JSONResponse:
  """Translate domain errors into JSON responses."""
  request_id = getattr(request.state, "request_id", None)
  status_code = status_for_error(exc)
  logger = logging.getLogger("uvicorn.error")
  extra: dict[str, Any] = {}
  if isinstance(exc, StorageError):
    extra["jobId"] = exc.job_id
  if isinstance(exc, TransactionError):
    extra["retryable"] = exc.retryable
    extra["transactionId"] = exc.transaction_id

  if status_code >= 500:
    logger.error("Domain failure request_id=%s path=%s error_type=%s error=%s", request_id, request.url.path, type(exc).__name__, exc)
  elif get_settings().log_http_4xx:
    logger.warning("Domain rejection request_id=%s path=%s status_code=%s error=%s", request_id, request.url.path, status_code, exc)

  if status_code == status.HTTP_500_INTERNAL_SERVER_ERROR:
    return JSONResponse(status_code=status_code, content=_error_payload("Internal Server Error", request_id=request_id))
  return JSONResponse(status_code=status_code, content=_error_payload(str(exc), request_id=request_id, **extra))


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Global exception handler to catch unhandled errors."""
  logger = logging.getLogger("uvicorn.error")
  request_id = getattr(request.state, "request_id", None)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Log request validation errors for debugging without leaking payloads."""
  request_id = getattr(request.state, "request_id", None)
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger = logging.getLogger("uvicorn.error")
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized_errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Handle FastAPI HTTPExceptions while avoiding leaking internal diagnostics."""
  request_id = getattr(request.state, "request_id", None)
  if exc.status_code >= 500:
    logger = logging.getLogger("uvicorn.error")
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  if get_settings().log_http_4xx:
    logger = logging.getLogger("uvicorn.error")
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)

  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=getattr(exc, "headers", None))
