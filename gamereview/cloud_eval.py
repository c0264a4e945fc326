"""Cached, rate-limited client for the Lichess cloud evaluation service.

Each position goes through the same small state machine:

    cache check -> request -> ok            (cache, return)
                           -> not found     (unavailable, no retry)
                           -> rate limited  \
                           -> timeout        > back off 2**attempt s, retry
                           -> other error   /
    retries exhausted -> timeout: unavailable result
                      -> otherwise: CloudEvalError

Batches are evaluated sequentially; only positions that actually hit the
network are followed by the inter-request delay.

Usage:
    from gamereview.cloud_eval import CloudEvalClient
    client = CloudEvalClient()
    batch = client.evaluate_positions([fen1, fen2], multi_pv=3)
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from functools import lru_cache

import requests

from gamereview.config import (
    CLOUD_EVAL_URL,
    DEFAULT_MULTI_PV,
    EVAL_CACHE_SWEEP_SECONDS,
    EVAL_CACHE_TTL_SECONDS,
    EVAL_MAX_ATTEMPTS,
    EVAL_RATE_LIMIT_DELAY,
    EVAL_REQUEST_TIMEOUT,
    MAX_BATCH_POSITIONS,
    USER_AGENT,
)
from gamereview.models import (
    BatchRequestError,
    BatchResult,
    CloudEvalError,
    Evaluation,
    PositionEval,
)

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Position not in cloud database"
TIMEOUT_MESSAGE = "Evaluation unavailable: request timed out"

# Attempt outcomes
OK = "ok"
NOT_FOUND = "not_found"
RATE_LIMITED = "rate_limited"
TIMEOUT = "timeout"
ERROR = "error"


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class EvalCache:
    """Time-bounded in-memory cache keyed by (fen, multi_pv).

    Expired entries are never returned. They are dropped when read and by
    a sweep that runs at most once per sweep interval on get/put, so the
    cache cannot grow without bound. A single lock guards the dict;
    concurrent writers of the same key simply last-write-win.
    """

    def __init__(
        self,
        ttl: float = EVAL_CACHE_TTL_SECONDS,
        sweep_interval: float = EVAL_CACHE_SWEEP_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl = ttl
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[tuple[str, int], tuple[dict, float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()
        self.hits = 0
        self.misses = 0

    def get(self, fen: str, multi_pv: int) -> dict | None:
        """Return the cached payload, or None if absent or expired."""
        key = (fen, multi_pv)
        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            payload, stored_at = entry
            if now - stored_at >= self._ttl:
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return payload

    def put(self, fen: str, multi_pv: int, payload: dict) -> None:
        """Store a payload stamped with the current time."""
        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            self._entries[(fen, multi_pv)] = (payload, now)

    def sweep(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep >= self._sweep_interval:
            self._sweep_locked(now)

    def _sweep_locked(self, now: float) -> int:
        expired = [
            key for key, (_, stored_at) in self._entries.items()
            if now - stored_at >= self._ttl
        ]
        for key in expired:
            del self._entries[key]
        self._last_sweep = now
        if expired:
            logger.debug("Swept %d expired evaluations", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def stats(self) -> dict:
        with self._lock:
            return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# ---------------------------------------------------------------------------
# Retry state
# ---------------------------------------------------------------------------


@dataclass
class RetryState:
    """Attempt bookkeeping for one position fetch."""

    max_attempts: int
    attempt: int = 0
    last_outcome: str | None = None
    last_error: str | None = None

    @property
    def exhausted(self) -> bool:
        return self.attempt + 1 >= self.max_attempts

    def backoff_seconds(self) -> float:
        return float(2 ** self.attempt)

    def record(self, outcome: str, detail: str | None) -> None:
        self.last_outcome = outcome
        self.last_error = detail

    def advance(self) -> None:
        self.attempt += 1


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def _top_line(payload: dict) -> dict | None:
    pvs = payload.get("pvs")
    if isinstance(pvs, list) and pvs and isinstance(pvs[0], dict):
        return pvs[0]
    return None


def evaluation_from_payload(payload: dict) -> Evaluation | None:
    """Extract the top-line score from a cloud-eval payload.

    Top-level cp/mate keys win over the first principal variation.

    Returns:
        Evaluation, or None if the payload carries no usable score
        (missing, non-numeric or non-finite).
    """
    for source in (payload, _top_line(payload) or {}):
        try:
            if source.get("mate") is not None:
                return Evaluation.mate_in(source["mate"])
            if source.get("cp") is not None:
                return Evaluation.centipawns(source["cp"])
        except (TypeError, ValueError, OverflowError):
            return None
    return None


def best_move_from_payload(payload: dict) -> str | None:
    """First move of the top principal variation (UCI), or an explicit best_move."""
    if payload.get("best_move"):
        return str(payload["best_move"])
    line = _top_line(payload)
    if line is None:
        return None
    moves = line.get("moves")
    if isinstance(moves, str) and moves.strip():
        return moves.split()[0]
    if isinstance(moves, list) and moves:
        return str(moves[0])
    return None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


def _validate_batch(fens, multi_pv) -> list[str]:
    if isinstance(fens, (str, bytes)) or not isinstance(fens, Sequence):
        raise BatchRequestError("fens must be a list of FEN strings")
    if len(fens) == 0:
        raise BatchRequestError("fens list is required and must not be empty")
    if len(fens) > MAX_BATCH_POSITIONS:
        raise BatchRequestError(f"Maximum {MAX_BATCH_POSITIONS} positions per request")
    for i, fen in enumerate(fens):
        if not isinstance(fen, str) or not fen.strip():
            raise BatchRequestError(f"Position {i} is not a FEN string")
    if isinstance(multi_pv, bool) or not isinstance(multi_pv, int) or multi_pv < 1:
        raise BatchRequestError("multi_pv must be a positive integer")
    return list(fens)


class CloudEvalClient:
    """Fetches position evaluations with caching, backoff and rate limiting."""

    def __init__(
        self,
        cache: EvalCache | None = None,
        session: requests.Session | None = None,
        base_url: str = CLOUD_EVAL_URL,
        timeout: float = EVAL_REQUEST_TIMEOUT,
        max_attempts: int = EVAL_MAX_ATTEMPTS,
        rate_limit_delay: float = EVAL_RATE_LIMIT_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._cache = cache if cache is not None else EvalCache()
        self._session = session or requests.Session()
        self._base_url = base_url
        self._timeout = timeout
        self._max_attempts = max(1, max_attempts)
        self._rate_limit_delay = rate_limit_delay
        self._sleep = sleep

    @property
    def cache(self) -> EvalCache:
        return self._cache

    def fetch(self, fen: str, multi_pv: int = DEFAULT_MULTI_PV) -> PositionEval:
        """Evaluate one position, from cache when possible.

        Args:
            fen: Position to evaluate.
            multi_pv: Number of principal variations requested.

        Returns:
            PositionEval. Unknown positions and timeouts that outlast every
            retry come back with available=False.

        Raises:
            CloudEvalError: If rate limiting or another transient error
                persists through every attempt.
        """
        cached = self._cache.get(fen, multi_pv)
        if cached is not None:
            logger.debug("Cache hit for %s (multi_pv=%d)", fen, multi_pv)
            return PositionEval(fen=fen, available=True, from_cache=True, payload=cached)

        state = RetryState(max_attempts=self._max_attempts)
        while True:
            outcome, payload, detail = self._attempt(fen, multi_pv)

            if outcome == OK:
                self._cache.put(fen, multi_pv, payload)
                return PositionEval(fen=fen, available=True, payload=payload)

            if outcome == NOT_FOUND:
                logger.debug("Position not in cloud database: %s", fen)
                return PositionEval(fen=fen, available=False, error=NOT_FOUND_MESSAGE)

            state.record(outcome, detail)
            if state.exhausted:
                return self._give_up(fen, state)

            delay = state.backoff_seconds()
            logger.warning(
                "Attempt %d/%d for %s failed (%s); retrying in %.0fs",
                state.attempt + 1, state.max_attempts, fen, detail, delay,
            )
            self._sleep(delay)
            state.advance()

    def _attempt(self, fen: str, multi_pv: int) -> tuple[str, dict | None, str | None]:
        """Issue one bounded-time request and map it to an outcome."""
        try:
            response = self._session.get(
                self._base_url,
                params={"fen": fen, "multiPv": multi_pv},
                headers={"Accept": "application/json", "User-Agent": USER_AGENT},
                timeout=self._timeout,
            )
        except requests.Timeout:
            return TIMEOUT, None, f"timed out after {self._timeout}s"
        except requests.RequestException as exc:
            return ERROR, None, str(exc)

        status = response.status_code
        if status == 404:
            return NOT_FOUND, None, None
        if status == 429:
            return RATE_LIMITED, None, "rate limited (HTTP 429)"
        if status < 200 or status >= 300:
            return ERROR, None, f"Cloud eval API error: {status}"

        try:
            payload = response.json()
        except ValueError:
            return ERROR, None, "Cloud eval API returned invalid JSON"
        if not isinstance(payload, dict):
            return ERROR, None, "Cloud eval API returned an unexpected payload"
        return OK, payload, None

    def _give_up(self, fen: str, state: RetryState) -> PositionEval:
        if state.last_outcome == TIMEOUT:
            logger.warning("Giving up on %s after %d timed-out attempts", fen, state.max_attempts)
            return PositionEval(fen=fen, available=False, error=TIMEOUT_MESSAGE)
        logger.error("Giving up on %s after %d attempts: %s", fen, state.max_attempts, state.last_error)
        raise CloudEvalError(state.last_error or "Cloud eval request failed")

    def evaluate_positions(
        self,
        fens: Sequence[str],
        multi_pv: int = DEFAULT_MULTI_PV,
        trailing_delay: bool = False,
    ) -> BatchResult:
        """Evaluate up to MAX_BATCH_POSITIONS positions in order.

        A failure on one position is recorded against that position only.

        Args:
            fens: Positions to evaluate.
            multi_pv: Number of principal variations requested.
            trailing_delay: Also wait after the last position if it hit the
                network, for callers that send another batch straight after.

        Returns:
            BatchResult with one PositionEval per input, index set.

        Raises:
            BatchRequestError: Before any request, if the batch is empty,
                larger than MAX_BATCH_POSITIONS, or malformed.
        """
        positions = _validate_batch(fens, multi_pv)
        result = BatchResult()
        last = len(positions) - 1

        for index, fen in enumerate(positions):
            try:
                evaluation = self.fetch(fen, multi_pv)
            except CloudEvalError as exc:
                logger.warning("Evaluation failed for position %d: %s", index, exc)
                evaluation = PositionEval(fen=fen, available=False, error=str(exc))
            evaluation.index = index
            result.evaluations.append(evaluation)

            if not evaluation.from_cache and (index < last or trailing_delay):
                self._sleep(self._rate_limit_delay)

        logger.info(
            "Evaluated %d positions (%d cached, %d unavailable)",
            result.count, result.cached, result.unavailable,
        )
        return result


@lru_cache(maxsize=1)
def get_default_client() -> CloudEvalClient:
    """Return the process-wide client, sharing one cache across requests."""
    return CloudEvalClient()


def evaluate_positions(
    fens: Sequence[str],
    multi_pv: int = DEFAULT_MULTI_PV,
    client: CloudEvalClient | None = None,
    trailing_delay: bool = False,
) -> BatchResult:
    """Evaluate a batch with the default client unless one is given."""
    client = client or get_default_client()
    return client.evaluate_positions(fens, multi_pv, trailing_delay=trailing_delay)
