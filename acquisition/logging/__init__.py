"""Structured logging for the acquisition pipeline.

Every module obtains its logger through :func:`get_logger` so that records
carry a ``component`` field (``pipeline``, ``runner``, ``scheduler``...).
"""

import logging
from typing import Optional

SERVICE_NAME = "acquisition-pipeline"


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges its component field into each call's extra."""

    def process(self, msg, kwargs):
        # Fields passed at the call site win over the adapter defaults
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str, component: Optional[str] = None):
    """Get a logger, optionally tagging every record with a component.

    Args:
        name: Logger name (typically __name__)
        component: Component identifier injected into all records

    Returns:
        Logger or ComponentLoggerAdapter instance

    Example:
        >>> logger = get_logger(__name__, component="pipeline")
        >>> logger.info("Run accepted", extra={"event": "pipeline.run.accepted"})
    """
    logger = logging.getLogger(name)

    if component:
        return ComponentLoggerAdapter(logger, {"component": component})

    return logger
