"""ASGI middleware for the tic-tac-toe server."""

from __future__ import annotations

import json
import time
import uuid
from http import HTTPStatus
from typing import TYPE_CHECKING

import structlog

from tictactoe.server.rate_limit import MINUTE_SECONDS

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Receive, Scope, Send

    from tictactoe.server.rate_limit import SlidingWindowLimiter

logger = structlog.get_logger()

RATE_LIMIT_EXEMPT_PATHS = frozenset({"/health"})


def _header(scope: Scope, name: bytes) -> str | None:
    for key, value in scope.get("headers", []):
        if key == name:
            return value.decode("latin-1")
    return None


def client_address(scope: Scope, *, trust_forwarded_for: bool) -> str:
    """Client key: first X-Forwarded-For entry, then X-Real-IP, then the socket peer."""
    if trust_forwarded_for:
        forwarded = _header(scope, b"x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
        real_ip = _header(scope, b"x-real-ip")
        if real_ip:
            return real_ip.strip()
    client = scope.get("client")
    return client[0] if client else "unknown"


class RequestContextMiddleware:
    """Bind a request id and the client address into structlog contextvars per request."""

    def __init__(self, app: ASGIApp, *, trust_forwarded_for: bool = True) -> None:
        self.app = app
        self._trust_forwarded_for = trust_forwarded_for

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = _header(scope, b"x-request-id") or uuid.uuid4().hex[:12]
        with structlog.contextvars.bound_contextvars(
            request_id=request_id,
            client=client_address(scope, trust_forwarded_for=self._trust_forwarded_for),
            method=scope["method"],
            path=scope["path"],
        ):
            await self.app(scope, receive, send)


class RateLimitMiddleware:
    """Reject requests over the per-client limits with 429 and a JSON error body.

    Idle clients are pruned at most once a minute.
    """

    def __init__(self, app: ASGIApp, *, limiter: SlidingWindowLimiter, trust_forwarded_for: bool = True) -> None:
        self.app = app
        self._limiter = limiter
        self._trust_forwarded_for = trust_forwarded_for
        self._last_prune = time.monotonic()

    def _maybe_prune(self) -> None:
        now = time.monotonic()
        if now - self._last_prune >= MINUTE_SECONDS:
            self._last_prune = now
            dropped = self._limiter.prune_idle()
            if dropped:
                logger.debug("pruned idle rate limit entries", count=dropped)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] in RATE_LIMIT_EXEMPT_PATHS:
            await self.app(scope, receive, send)
            return

        self._maybe_prune()
        client = client_address(scope, trust_forwarded_for=self._trust_forwarded_for)
        exceeded = self._limiter.check(client)
        if exceeded is None:
            await self.app(scope, receive, send)
            return

        logger.warning("rate limit exceeded", client=client, window=exceeded.window, limit=exceeded.limit)
        body = json.dumps({"error": exceeded.message}).encode("utf-8")
        await send(
            {
                "type": "http.response.start",
                "status": HTTPStatus.TOO_MANY_REQUESTS.value,
                "headers": [
                    (b"content-type", b"application/json"),
                    (b"content-length", str(len(body)).encode()),
                ],
            },
        )
        await send({"type": "http.response.body", "body": body})
