"""Logging utilities for the lead-magnet service.

The actual logging setup (level, handlers, format) is done through
``logging.basicConfig()`` in the entry point to avoid duplicate handlers.

Example::

    from leadmagnet_service.logger import get_logger

    logger = get_logger("Dispatcher")
    logger.info("Lead captured")
"""

import logging


def get_logger(name: str = "LeadMagnetService") -> logging.Logger:
    """Return the standard library logger bound to ``name``."""
    return logging.getLogger(name)
