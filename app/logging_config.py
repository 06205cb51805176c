import logging

from app.config import settings


def configure_logging() -> None:
    """Configure logging defaults for the application."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
