"""Logging configuration for hulunote-outline.

The sync core logs through loguru; the HTTP client uses the stdlib ``api`` logger,
so both are set up here at the same level.
"""

import logging
import sys

from loguru import logger


def configure_logging(*, verbose: bool = False) -> None:
    """Configure loguru and the stdlib ``api`` logger."""
    logger.remove()
    level = "DEBUG" if verbose else "INFO"
    logger.add(sys.stderr, level=level, format="{level.icon} {message}")

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="[%(levelname).1s] %(name)s: %(message)s",
    )
    logging.getLogger("api").setLevel(logging.DEBUG if verbose else logging.INFO)
