"""Main entry point for the ECS dashboard API server."""

import logging

import uvicorn

from ecs_dashboard.config import settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def main() -> None:
    """Serve the API until interrupted."""
    from ecs_dashboard.api.app import create_app

    app = create_app()
    logger.info(
        f"Serving ECS dashboard on {settings.api_host}:{settings.api_port} "
        f"(region {settings.aws_region}, {len(settings.allowed_clusters)} clusters)"
    )
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
