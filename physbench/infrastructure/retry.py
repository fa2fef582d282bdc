"""
Retry policy for transient backend failures.

Only `BackendUnavailable` is retried: constraint violations, conflicts and
timeouts are deterministic and retrying them would only repeat the failure.
"""

from __future__ import annotations

from typing import Optional

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from physbench.config import Settings, get_settings
from physbench.errors import BackendUnavailable
from physbench.utils.logging import get_logger

log = get_logger(__name__)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    log.warning(
        f"[RETRY] backend unavailable, attempt {retry_state.attempt_number}",
        extra={"attempt": retry_state.attempt_number, "error": str(exc)},
    )


def backend_retrying(settings: Optional[Settings] = None) -> Retrying:
    """
    Build a tenacity `Retrying` from the configured attempt limit and backoff.

    Usage:
        backend_retrying(settings)(backend.insert_rows, table, columns, rows)
    """
    settings = settings or get_settings()
    return Retrying(
        stop=stop_after_attempt(settings.retry_attempts),
        wait=wait_exponential(
            multiplier=settings.retry_backoff_seconds,
            max=settings.retry_backoff_max_seconds,
        ),
        retry=retry_if_exception_type(BackendUnavailable),
        before_sleep=_log_retry,
        reraise=True,
    )


__all__ = ["backend_retrying"]
