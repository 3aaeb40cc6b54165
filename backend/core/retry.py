"""Retry helper for operations that hit transient database failures."""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from django.conf import settings
from django.db import InterfaceError, OperationalError

from core.errors import ServiceUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_DB_ERRORS = (OperationalError, InterfaceError)


def call_with_retry(func: Callable[..., T], *args, retries: int = 1, **kwargs) -> T:
    """
    Run ``func`` and retry it once when the database reports a transient error.

    ``func`` is expected to open its own transaction so each attempt starts
    from a clean state. When the retry budget is exhausted ServiceUnavailable
    is raised with the last database error chained.
    """
    attempt = 0
    while True:
        try:
            return func(*args, **kwargs)
        except TRANSIENT_DB_ERRORS as exc:
            if attempt >= retries:
                logger.error(
                    "persistence: giving up after %s attempt(s)",
                    attempt + 1,
                    extra={"operation": getattr(func, "__name__", repr(func))},
                )
                raise ServiceUnavailable() from exc
            attempt += 1
            delay = float(getattr(settings, "PERSISTENCE_RETRY_BACKOFF_SECONDS", 0)) * attempt
            logger.warning(
                "persistence: transient database error, retrying in %.2fs",
                delay,
                extra={"operation": getattr(func, "__name__", repr(func)), "error": str(exc)},
            )
            if delay > 0:
                time.sleep(delay)
