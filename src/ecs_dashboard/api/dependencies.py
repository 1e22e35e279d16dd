"""FastAPI dependencies shared by the routes."""

import logging
from typing import Awaitable, Callable

from fastapi import Request

from ecs_dashboard.governance.limiter import RateLimiter, RateLimitExceeded
from ecs_dashboard.security import AdminAccessDenied, client_identifier
from ecs_dashboard.services.dashboard import DashboardService

logger = logging.getLogger(__name__)

METRICS_LIMITER = "metrics"
SERVICES_LIMITER = "services"


def get_dashboard(request: Request) -> DashboardService:
    """Dashboard service attached to the running app."""
    return request.app.state.dashboard


def get_limiters(request: Request) -> dict[str, RateLimiter]:
    return request.app.state.limiters


def require_admin(request: Request) -> None:
    """
    Allow administrative routes only on apps with an API key.

    With a key configured, ApiKeyMiddleware has already authenticated
    the request.
    """
    if not request.app.state.config.api_key:
        logger.warning(f"Admin request refused from {client_identifier(request)}: no API key configured")
        raise AdminAccessDenied()


def rate_limited(limiter_name: str) -> Callable[[Request], Awaitable[str]]:
    """
    Build a dependency that counts the request against a named limiter.

    The dependency returns the caller identifier, or raises
    RateLimitExceeded before the route body runs.
    """

    async def check_rate_limit(request: Request) -> str:
        limiter = request.app.state.limiters[limiter_name]
        identifier = client_identifier(request)
        decision = await limiter.check(identifier)
        if not decision.allowed:
            raise RateLimitExceeded(decision, limiter_name)
        return identifier

    return check_rate_limit
