"""Security utilities: caller identification and API key middleware."""

import hmac
import logging
from typing import Callable, Iterable

from fastapi import Request, status
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

USER_AGENT_PREFIX = 50


def client_identifier(request: Request) -> str:
    """
    Opaque rate-limit key for the caller.

    Combines the network origin (first X-Forwarded-For hop, then
    X-Real-IP, then the socket peer) with a truncated User-Agent.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip() or "unknown"
    else:
        ip = request.headers.get("x-real-ip") or (
            request.client.host if request.client else "unknown"
        )

    user_agent = request.headers.get("user-agent") or "unknown"
    return f"{ip}-{user_agent[:USER_AGENT_PREFIX]}"


PUBLIC_PATHS = frozenset({"/health", "/", "/docs", "/redoc", "/openapi.json"})


def _unauthorized(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"error": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """
    Require ``Authorization: Bearer <api_key>`` outside the public paths.

    Installed by create_app only when an API key is configured.
    """

    def __init__(
        self,
        app,
        api_key: str,
        public_paths: Iterable[str] = PUBLIC_PATHS,
    ) -> None:
        super().__init__(app)
        self._expected = api_key.encode()
        self._public_paths = frozenset(public_paths)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self._public_paths:
            return await call_next(request)

        header = request.headers.get("Authorization")
        if not header:
            return _unauthorized("Missing Authorization header")

        scheme, _, token = header.partition(" ")
        if scheme != "Bearer" or not token:
            return _unauthorized("Invalid Authorization header format. Use: Bearer <token>")

        if not hmac.compare_digest(token.encode(), self._expected):
            logger.warning(f"Rejected API key from {client_identifier(request)}")
            return _unauthorized("Invalid API key")

        return await call_next(request)


class AdminAccessDenied(Exception):
    """Administrative endpoint called on an app without an API key."""

    def __init__(self, message: str = "Administrative endpoints require an API key to be configured") -> None:
        self.message = message
        super().__init__(message)
