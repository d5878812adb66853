"""
Security middleware for the legalai server.

Defenses:
    1. **Bearer token** -- random 32-byte hex token generated per session.
       Required on all ``/api/`` and ``/ws/`` requests via ``Authorization``
       header or ``?token=`` query param.  Websockets presenting a bad
       token are closed with code 4401 before the handshake completes.
    2. **Host header validation** -- rejects HTTP requests whose ``Host``
       header isn't ``127.0.0.1:<port>`` or ``localhost:<port>``.
"""

from __future__ import annotations

import logging
import secrets
from typing import Optional, Set
from urllib.parse import parse_qs

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.websockets import WebSocket

from legalai_engine.core.constants import WS_CLOSE_UNAUTHORIZED

logger = logging.getLogger(__name__)

_PROTECTED_PREFIXES = ("/api/", "/ws/")


def generate_token() -> str:
    """Generate a cryptographically random session token."""
    return secrets.token_hex(32)


def _is_protected(path: str) -> bool:
    return path.startswith(_PROTECTED_PREFIXES)


def extract_token(scope: dict) -> Optional[str]:
    """Extract token from Authorization header or ?token= query param."""
    for name, value in scope.get("headers", []):
        if name == b"authorization":
            auth = value.decode("latin-1", errors="ignore")
            if auth.startswith("Bearer "):
                return auth[7:]

    qs = scope.get("query_string", b"").decode("latin-1", errors="ignore")
    values = parse_qs(qs).get("token")
    return values[0] if values else None


def _token_matches(provided: Optional[str], expected: str) -> bool:
    return provided is not None and secrets.compare_digest(provided, expected)


class TokenAuthMiddleware(BaseHTTPMiddleware):
    """Reject /api/ requests without a valid bearer token."""

    def __init__(self, app, token: str) -> None:
        super().__init__(app)
        self._token = token

    async def dispatch(self, request: Request, call_next) -> Response:
        if _is_protected(request.url.path):
            provided = extract_token(request.scope)
            if not _token_matches(provided, self._token):
                logger.warning(
                    "[TokenAuth] 401 path=%s provided=%s",
                    request.url.path,
                    "yes" if provided else "no",
                )
                return JSONResponse({"error": "Unauthorized"}, status_code=401)
        return await call_next(request)


class TokenAuthWSMiddleware:
    """ASGI middleware that also validates WebSocket connections."""

    def __init__(self, app, token: str) -> None:
        self.app = app
        self._token = token

    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] == "websocket" and _is_protected(scope.get("path", "")):
            provided = extract_token(scope)
            if not _token_matches(provided, self._token):
                logger.warning("[TokenAuth] Rejected websocket path=%s", scope.get("path"))
                ws = WebSocket(scope, receive, send)
                await ws.close(code=WS_CLOSE_UNAUTHORIZED)
                return
        await self.app(scope, receive, send)


class HostValidationMiddleware(BaseHTTPMiddleware):
    """Reject requests where Host header isn't a known localhost variant."""

    def __init__(self, app, port: int) -> None:
        super().__init__(app)
        self._allowed: Set[str] = {
            f"127.0.0.1:{port}",
            f"localhost:{port}",
            f"[::1]:{port}",
            "127.0.0.1",
            "localhost",
            "[::1]",
        }

    async def dispatch(self, request: Request, call_next) -> Response:
        host = request.headers.get("host", "")
        if host not in self._allowed:
            logger.warning("[HostValidation] 403 path=%s host=%r", request.url.path, host)
            return JSONResponse({"error": "Forbidden: invalid Host header"}, status_code=403)
        return await call_next(request)
