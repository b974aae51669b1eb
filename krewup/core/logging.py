import logging
import os


def configure_logging() -> None:
    """Configure structured logging defaults for the application."""
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # The Stripe SDK logs every request at INFO.
    logging.getLogger("stripe").setLevel(logging.WARNING)
