"""Transaction boundary helpers.

``run_atomic`` is the only place the core retries anything: a transaction that
failed with ``StorageUnavailable`` has been rolled back in full, so running it
again cannot double-apply.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Callable, TypeVar

from django.conf import settings
from django.db import DatabaseError, IntegrityError, connection, transaction

from emergency.exceptions import StorageUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@contextmanager
def storage_errors(operation: str):
    """Translate driver failures into ``StorageUnavailable``.

    ``IntegrityError`` is left alone: constraint violations are domain outcomes
    the caller maps itself.
    """

    try:
        yield
    except IntegrityError:
        raise
    except DatabaseError as exc:
        logger.warning("Storage failure during %s: %s", operation, exc)
        raise StorageUnavailable(f"Storage unavailable during {operation}") from exc


def run_atomic(func: Callable[..., T], *args, **kwargs) -> T:
    """Run ``func`` in one transaction, retrying on ``StorageUnavailable``.

    Retries only happen when this is the outermost transaction; inside an
    enclosing atomic block the failure propagates so the owner of that block
    decides.
    """

    attempts = max(int(getattr(settings, "EMERGENCY_STORAGE_RETRY_ATTEMPTS", 3)), 1)
    backoff = float(getattr(settings, "EMERGENCY_STORAGE_RETRY_BACKOFF_SECONDS", 0.2))
    operation = getattr(func, "__name__", "transaction")
    if connection.in_atomic_block:
        attempts = 1

    for attempt in range(1, attempts + 1):
        try:
            with storage_errors(operation), transaction.atomic():
                return func(*args, **kwargs)
        except StorageUnavailable:
            if attempt >= attempts:
                logger.error("%s failed after %s attempt(s); storage unavailable", operation, attempt)
                raise
            delay = backoff * (2 ** (attempt - 1))
            logger.warning("Retrying %s in %.2fs (attempt %s/%s)", operation, delay, attempt + 1, attempts)
            time.sleep(delay)
    raise StorageUnavailable(f"Storage unavailable during {operation}")  # pragma: no cover
