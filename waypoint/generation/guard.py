"""Bounded calls into the untrusted generation collaborator."""
from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, TypeVar

from waypoint.errors import GenerationUnavailableError

T = TypeVar("T")


def call_with_timeout(
    func: Callable[..., T],
    timeout_seconds: float,
    *args: Any,
    description: str = "generation call",
    **kwargs: Any,
) -> T:
    """
    Run ``func`` on a worker thread and wait at most ``timeout_seconds``.

    The worker is abandoned on timeout; the caller never waits for it.

    Raises:
        GenerationUnavailableError: On timeout or any error raised by ``func``
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="waypoint-generation")
    future = executor.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout_seconds)
    except FutureTimeoutError as e:
        future.cancel()
        raise GenerationUnavailableError(
            f"{description} timed out after {timeout_seconds}s",
            details={"timeout_seconds": timeout_seconds},
        ) from e
    except GenerationUnavailableError:
        raise
    except Exception as e:  # Intentionally broad: any collaborator failure means fallback
        raise GenerationUnavailableError(f"{description} failed: {e}") from e
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
