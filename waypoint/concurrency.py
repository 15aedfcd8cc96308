"""Optimistic-concurrency retry helper."""
from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from loguru import logger

from waypoint.errors import PersistenceConflictError

T = TypeVar("T")


def retry_once_on_conflict(operation: Callable[[], T], description: str) -> T:
    """
    Run a read-modify-write operation, retrying once on a version conflict.

    ``operation`` must re-read its inputs so the retry works on fresh state.
    A second conflict propagates to the caller.
    """
    try:
        return operation()
    except PersistenceConflictError as e:
        logger.warning(f"Write conflict during {description}, retrying with a fresh read: {e.message}")
        return operation()
