"""API package for the ECS dashboard."""

from ecs_dashboard.api.app import create_app
from ecs_dashboard.api.routes import router

__all__ = ["create_app", "router"]
