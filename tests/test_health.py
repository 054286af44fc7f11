"""Tests for the staging health check."""

from __future__ import annotations

import pytest
import requests

from devsecflow.cicd.health import HealthChecker


class _FakeResponse:
    def __init__(self, status_code: int) -> None:
        self.status_code = status_code


class _FakeSession:
    def __init__(self, outcomes: list) -> None:
        self._outcomes = list(outcomes)
        self.calls: list[str] = []
        self.timeouts: list[float] = []
        self.closed = False

    def __enter__(self) -> _FakeSession:
        return self

    def __exit__(self, *exc_info) -> None:
        self.closed = True

    def get(self, url: str, timeout: float) -> _FakeResponse:
        self.calls.append(url)
        self.timeouts.append(timeout)
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return _FakeResponse(outcome)


def _checker(outcomes: list, attempts: int = 3) -> tuple[HealthChecker, _FakeSession, list]:
    session = _FakeSession(outcomes)
    sleeps: list[float] = []
    checker = HealthChecker(
        attempts=attempts, interval_seconds=2.0, session=session, sleep=sleeps.append,
    )
    return checker, session, sleeps


def test_healthy_first_attempt():
    checker, session, sleeps = _checker([200])
    result = checker.wait_until_healthy("http://staging")
    assert result.healthy
    assert result.attempts == 1
    assert result.status_code == 200
    assert sleeps == []


def test_healthy_after_retries():
    checker, session, sleeps = _checker([requests.ConnectionError("refused"), 503, 204])
    result = checker.wait_until_healthy("http://staging")
    assert result.healthy
    assert result.attempts == 3
    assert sleeps == [2.0, 2.0]


def test_redirect_status_is_healthy():
    checker, _, _ = _checker([302])
    assert checker.wait_until_healthy("http://staging").healthy


def test_unhealthy_after_all_attempts():
    checker, session, sleeps = _checker([500, 500, 404])
    result = checker.wait_until_healthy("http://staging")
    assert not result.healthy
    assert result.status_code == 404
    assert result.message == "HTTP 404"
    assert len(session.calls) == 3
    assert len(sleeps) == 2


def test_unhealthy_connection_errors():
    checker, _, _ = _checker([requests.Timeout("slow")] * 2, attempts=2)
    result = checker.wait_until_healthy("http://staging")
    assert not result.healthy
    assert result.status_code is None
    assert "slow" in result.message


def test_invalid_attempts():
    with pytest.raises(ValueError):
        HealthChecker(attempts=0)


# --- Deadline Tests ---


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_polling_stops_at_max_seconds():
    clock = _FakeClock()
    session = _FakeSession([503] * 10)
    checker = HealthChecker(
        attempts=10, interval_seconds=2.0, timeout_seconds=5.0,
        session=session, sleep=clock.sleep, clock=clock,
    )
    result = checker.wait_until_healthy("http://staging", max_seconds=5.0)
    assert not result.healthy
    assert result.attempts == 3
    assert session.timeouts == [5.0, 3.0, 1.0]
    assert clock.sleeps == [2.0, 2.0, 1.0]
    assert clock.now == 5.0


def test_no_time_left_makes_no_request():
    clock = _FakeClock()
    session = _FakeSession([200])
    checker = HealthChecker(session=session, sleep=clock.sleep, clock=clock)
    result = checker.wait_until_healthy("http://staging", max_seconds=0.0)
    assert not result.healthy
    assert result.attempts == 0
    assert session.calls == []
    assert result.message == "no time left for health check"


# --- Session lifecycle Tests ---


def test_owned_session_closed(monkeypatch):
    opened: list[_FakeSession] = []

    def _session_factory() -> _FakeSession:
        session = _FakeSession([200])
        opened.append(session)
        return session

    monkeypatch.setattr("devsecflow.cicd.health.requests.Session", _session_factory)
    result = HealthChecker(sleep=lambda _: None).wait_until_healthy("http://staging")
    assert result.healthy
    assert len(opened) == 1
    assert opened[0].closed


def test_borrowed_session_left_open():
    checker, session, _ = _checker([200])
    checker.wait_until_healthy("http://staging")
    assert not session.closed
