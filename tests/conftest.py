"""Shared test fixtures with dual-mode support (mocked vs live cloud eval).

Usage:
    pytest tests/              # Fast, mocked HTTP session and clock
    pytest tests/ --e2e        # Also run tests against the live Lichess API

Fixtures:
    fake_clock         - Manually advanced clock for cache TTL tests.
    http_session       - MagicMock standing in for requests.Session.
    sleep_calls        - MagicMock recording every sleep the client makes.
    eval_client        - CloudEvalClient wired to the three fixtures above.
    enable_validation  - Sets GAME_REVIEW_VALIDATE=1 for schema validation.
"""

from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest

from gamereview.cloud_eval import CloudEvalClient, EvalCache

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"

INVALID_JSON = object()


# ---------------------------------------------------------------------------
# CLI option and marker registration
# ---------------------------------------------------------------------------


def pytest_addoption(parser):
    """Register --e2e CLI flag for live cloud-eval tests."""
    parser.addoption(
        "--e2e",
        action="store_true",
        default=False,
        help="Run tests that call the live Lichess cloud-eval API.",
    )


def pytest_configure(config):
    """Register the e2e marker."""
    config.addinivalue_line(
        "markers", "e2e: mark test as end-to-end (requires network access)"
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--e2e"):
        return
    skip_e2e = pytest.mark.skip(reason="needs --e2e to run")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def make_response(status: int = 200, payload=None):
    """Build a mock requests.Response with the given status and JSON body."""
    response = MagicMock()
    response.status_code = status
    if payload is INVALID_JSON:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = payload if payload is not None else {}
    return response


def cloud_payload(fen: str, cp: int | None = None, mate: int | None = None, moves: str = "e2e4 e7e5") -> dict:
    """A cloud-eval payload shaped like the Lichess response."""
    line = {"moves": moves}
    if mate is not None:
        line["mate"] = mate
    else:
        line["cp"] = cp if cp is not None else 0
    return {"fen": fen, "knodes": 1024, "depth": 36, "pvs": [line]}


# ---------------------------------------------------------------------------
# Client fixtures
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def fake_clock():
    return FakeClock()


@pytest.fixture()
def http_session():
    """Mock session; tests set .get.return_value or .get.side_effect."""
    session = MagicMock()
    session.get.return_value = make_response(200, cloud_payload(START_FEN, cp=20))
    return session


@pytest.fixture()
def sleep_calls():
    return MagicMock()


@pytest.fixture()
def eval_client(fake_clock, http_session, sleep_calls):
    """CloudEvalClient with a fake clock, mocked session and no real sleeping."""
    cache = EvalCache(ttl=86400, sweep_interval=3600, clock=fake_clock)
    return CloudEvalClient(
        cache=cache,
        session=http_session,
        base_url="https://lichess.test/api/cloud-eval",
        timeout=5.0,
        max_attempts=3,
        rate_limit_delay=0.1,
        sleep=sleep_calls,
    )


# ---------------------------------------------------------------------------
# Schema validation fixture
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def enable_validation():
    """Set GAME_REVIEW_VALIDATE=1 for the test session.

    Restores the original env var value after the test.
    """
    original = os.environ.get("GAME_REVIEW_VALIDATE")
    os.environ["GAME_REVIEW_VALIDATE"] = "1"
    yield
    if original is None:
        os.environ.pop("GAME_REVIEW_VALIDATE", None)
    else:
        os.environ["GAME_REVIEW_VALIDATE"] = original
