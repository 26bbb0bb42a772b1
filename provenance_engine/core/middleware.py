import logging
import re
import time
import uuid
from typing import Any

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("provenance_engine.core.middleware")

# Caller-supplied ids are echoed back only when they are short opaque tokens.
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{8,64}$")

# Status reads are polled; intermediaries must never serve a stale job state.
_NO_STORE_PREFIXES = ("/v1/jobs", "/internal/")


def _header(scope: Scope, name: bytes) -> str | None:
  for key, value in scope.get("headers", []):
    if key.lower() == name:
      return value.decode("latin-1")
  return None


def _resolve_request_id(scope: Scope) -> str:
  supplied = _header(scope, b"x-request-id")
  if supplied and _REQUEST_ID_PATTERN.match(supplied):
    return supplied
  return uuid.uuid4().hex


class RequestLoggingMiddleware:
  """Tag each HTTP request with an id and log method, path, status and latency.

  Bodies and query strings are never logged: uploads can be large and executor
  callbacks carry result payloads.
  """

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    request_id = _resolve_request_id(scope)
    # Exception handlers read it back from request.state.
    scope.setdefault("state", {})["request_id"] = request_id

    method = scope.get("method", "UNKNOWN")
    path = scope.get("path", "")
    started = time.perf_counter()
    status_code = 0

    async def send_with_request_id(message: Message) -> None:
      nonlocal status_code
      if message["type"] == "http.response.start":
        status_code = message["status"]
        headers = MutableHeaders(scope=message)
        headers["x-request-id"] = request_id
      await send(message)

    try:
      await self.app(scope, receive, send_with_request_id)
    finally:
      elapsed_ms = (time.perf_counter() - started) * 1000
      level = logging.WARNING if status_code >= 500 or status_code == 0 else logging.INFO
      logger.log(level, "%s %s -> %s in %.1fms request_id=%s size=%s", method, path, status_code or "aborted", elapsed_ms, request_id, _header(scope, b"content-length") or "-")


class ResponseHeadersMiddleware:
  """Drop server fingerprints and mark job status responses as uncacheable."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    no_store = scope.get("path", "").startswith(_NO_STORE_PREFIXES)

    async def send_with_headers(message: dict[str, Any]) -> None:
      if message["type"] == "http.response.start":
        headers = MutableHeaders(scope=message)
        for name in ("server", "x-powered-by"):
          if name in headers:
            del headers[name]
        headers["x-content-type-options"] = "nosniff"
        if no_store:
          headers["cache-control"] = "no-store"
      await send(message)

    await self.app(scope, receive, send_with_headers)
