"""ASGI middleware guarding the backup service's request bodies."""

from __future__ import annotations

import logging

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .errors import ERROR_DEFINITIONS, ServiceError
from .http import ensure_trace_id, service_error_response

LOGGER = logging.getLogger(__name__)

PAYLOAD_TOO_LARGE = ERROR_DEFINITIONS["PAYLOAD_TOO_LARGE"]


class BodySizeLimitMiddleware:
    """Reject requests whose bodies exceed ``limit`` bytes.

    The declared ``content-length`` is checked up front; chunked bodies are
    counted as they stream in. Rejections use the service error envelope.
    """

    def __init__(self, app: ASGIApp, *, limit: int) -> None:
        if limit <= 0:
            raise ValueError("limit must be greater than zero.")
        self.app = app
        self._limit = limit

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        declared = _declared_length(scope)
        if declared is not None and declared > self._limit:
            await self._reject(scope, receive, send, received=declared)
            return

        consumed = 0
        rejected = False

        async def limited_receive() -> Message:
            nonlocal consumed, rejected
            message = await receive()
            if message["type"] == "http.request" and not rejected:
                consumed += len(message.get("body", b""))
                if consumed > self._limit:
                    rejected = True
                    await self._reject(scope, receive, send, received=consumed)
                    return {"type": "http.disconnect"}
            return message

        await self.app(scope, limited_receive, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send, *, received: int) -> None:
        LOGGER.warning(
            "Rejected %s %s: body of %d bytes exceeds %d",
            scope.get("method", "?"),
            scope.get("path", "?"),
            received,
            self._limit,
        )
        error = ServiceError(
            code=PAYLOAD_TOO_LARGE.code,
            status_code=PAYLOAD_TOO_LARGE.status_code,
            message=PAYLOAD_TOO_LARGE.message,
            details={"limit_bytes": self._limit},
        )
        response = service_error_response(error, ensure_trace_id())
        await response(scope, receive, send)


def _declared_length(scope: Scope) -> int | None:
    for key, value in scope.get("headers", ()):
        if key.lower() == b"content-length":
            try:
                return int(value.decode("latin-1"))
            except ValueError:
                return None
    return None


__all__ = ["BodySizeLimitMiddleware"]
