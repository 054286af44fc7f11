"""HTTP health check for freshly deployed staging environments."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import requests

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HealthCheckResult:
    url: str
    healthy: bool
    attempts: int
    status_code: int | None
    message: str


class HealthChecker:
    """Polls a URL until it answers with a non-error status.

    A session passed in is borrowed and left open; otherwise a session is
    opened and closed for each ``wait_until_healthy`` call.
    """

    def __init__(
        self,
        attempts: int = 10,
        interval_seconds: float = 6.0,
        timeout_seconds: float = 5.0,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self._attempts = attempts
        self._interval_seconds = interval_seconds
        self._timeout_seconds = timeout_seconds
        self._session = session
        self._sleep = sleep
        self._clock = clock

    def wait_until_healthy(self, url: str, max_seconds: float | None = None) -> HealthCheckResult:
        """Poll ``url``; ``max_seconds`` bounds the total time spent polling."""
        if self._session is not None:
            return self._poll(self._session, url, max_seconds)
        with requests.Session() as session:
            return self._poll(session, url, max_seconds)

    def _poll(
        self, session: requests.Session, url: str, max_seconds: float | None,
    ) -> HealthCheckResult:
        deadline = None if max_seconds is None else self._clock() + max_seconds
        status_code: int | None = None
        message = ""
        attempts_made = 0
        for attempt in range(1, self._attempts + 1):
            timeout = self._timeout_seconds
            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    message = message or "no time left for health check"
                    logger.warning("Health check for %s stopped at the pipeline deadline", url)
                    break
                timeout = min(timeout, remaining)

            attempts_made = attempt
            try:
                response = session.get(url, timeout=timeout)
            except requests.RequestException as exc:
                status_code = None
                message = str(exc)
            else:
                status_code = response.status_code
                if status_code < 400:
                    logger.info("%s healthy (HTTP %d, attempt %d)", url, status_code, attempt)
                    return HealthCheckResult(
                        url=url,
                        healthy=True,
                        attempts=attempt,
                        status_code=status_code,
                        message=f"HTTP {status_code}",
                    )
                message = f"HTTP {status_code}"

            logger.info("Health check %d/%d for %s: %s", attempt, self._attempts, url, message)
            if attempt < self._attempts:
                pause = self._interval_seconds
                if deadline is not None:
                    pause = min(pause, max(deadline - self._clock(), 0.0))
                self._sleep(pause)

        logger.error("%s not healthy after %d attempts", url, attempts_made)
        return HealthCheckResult(
            url=url,
            healthy=False,
            attempts=attempts_made,
            status_code=status_code,
            message=message,
        )


__all__ = ["HealthChecker", "HealthCheckResult"]
