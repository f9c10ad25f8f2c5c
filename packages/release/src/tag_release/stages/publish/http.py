from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, TypeVar

import httpx
import structlog
from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt
from tenacity.wait import wait_base

from tag_release import __version__
from tag_release.core import RegistryUnavailable

_RETRYABLE_STATUSES: set[int] = {408, 429, 500, 502, 503, 504}

log = structlog.get_logger(__name__)

T = TypeVar("T")


def make_http_client(
    *,
    base_url: str,
    timeout_s: float = 60.0,
    user_agent: str = f"tag-release/{__version__}",
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    t = httpx.Timeout(timeout_s, connect=10.0, pool=10.0)
    return httpx.Client(
        base_url=base_url,
        timeout=t,
        follow_redirects=True,
        headers={"User-Agent": user_agent, "Accept": "application/json"},
        transport=transport,
    )


def is_retryable_status(code: int) -> bool:
    return code in _RETRYABLE_STATUSES


class DeterministicExponentialBackoff(wait_base):
    def __init__(self, *, base: float = 0.5, cap: float = 4.0) -> None:
        self._base = float(base)
        self._cap = float(cap)

    def __call__(self, retry_state) -> float:
        n = retry_state.attempt_number
        if n <= 1:
            return 0.0
        return min(self._cap, self._base * (2 ** (n - 2)))


@dataclass(frozen=True, slots=True)
class RetryableHttpStatus(Exception):
    method: str
    url: str
    status_code: int


def body_snippet(resp: httpx.Response, *, limit: int = 200) -> str | None:
    try:
        s = (resp.text or "")[:limit].strip()
        return s or None
    except Exception:
        return None


def query_with_retries(
    fn: Callable[[], T],
    *,
    method: str,
    url: str,
    max_attempts: int = 3,
    backoff_base: float = 0.5,
    backoff_cap: float = 4.0,
) -> T:
    """
    Run a read-only request, retrying timeouts, transport errors and
    retryable statuses. Exhaustion raises RegistryUnavailable.

    Never use this for submissions: they are not idempotent.
    """

    def _before_sleep(retry_state) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        sleep = retry_state.next_action.sleep if retry_state.next_action else None
        log.warning(
            "http.retry",
            method=method,
            url=url,
            attempt=retry_state.attempt_number,
            sleep_s=sleep,
            error=repr(exc) if exc else None,
        )

    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=DeterministicExponentialBackoff(base=backoff_base, cap=backoff_cap),
        retry=retry_if_exception_type(
            (httpx.TimeoutException, httpx.TransportError, RetryableHttpStatus)
        ),
        reraise=False,
        before_sleep=_before_sleep,
    )

    try:
        for attempt in retrying:
            with attempt:
                return fn()
    except RetryError as re:
        last = re.last_attempt.exception()
        raise RegistryUnavailable(
            f"{method} {url} failed after {re.last_attempt.attempt_number} attempts: {last}"
        ) from last

    raise RuntimeError("unreachable")
