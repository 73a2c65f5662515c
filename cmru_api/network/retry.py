"""Bounded retry on transport timeouts for login protocol calls."""

import time
from typing import Callable, TypeVar

import requests

from ..config import LOGIN_BACKOFF_SECONDS, LOGIN_RETRIES
from ..logging_setup import log

T = TypeVar("T")


class LoginTimeoutError(requests.Timeout):
    """Every attempt of a login step timed out."""


def retry_on_timeout(
    func: Callable[[], T],
    retries: int = LOGIN_RETRIES,
    backoff: float = LOGIN_BACKOFF_SECONDS,
    what: str = "request",
    sleep: Callable[[float], None] | None = None,
) -> T:
    """
    Call *func* up to *retries* times, retrying only on ``requests.Timeout``.

    Waits ``attempt * backoff`` seconds between attempts.  Any other
    exception propagates immediately: a rejected password is never retried.
    """
    retries = max(1, retries)
    for attempt in range(1, retries + 1):
        try:
            return func()
        except requests.Timeout as exc:
            if attempt >= retries:
                raise LoginTimeoutError(
                    f"{what} timeout after {retries} attempt(s): {exc}"
                ) from exc
            delay = attempt * backoff
            log.warning("[RETRY] %s timed out (attempt %d/%d), retrying in %.1fs",
                        what, attempt, retries, delay)
            (sleep or time.sleep)(delay)
    raise AssertionError("unreachable")
