"""Configuration for the game review core.

Values come from the environment (optionally a .env file) with sensible
defaults, so the cache, retry and rate-limit behaviour can be tuned
without code changes.

Usage:
    from gamereview.config import EVAL_CACHE_TTL_SECONDS, configure_logging
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    """Read a float env var, falling back to the default if malformed."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s=%r, using %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    """Read an int env var, falling back to the default if malformed."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s=%r, using %s", name, raw, default)
        return default


# ---------------------------------------------------------------------------
# Evaluation service
# ---------------------------------------------------------------------------

CLOUD_EVAL_URL = os.environ.get(
    "GAME_REVIEW_CLOUD_EVAL_URL", "https://lichess.org/api/cloud-eval"
)
USER_AGENT = "chess-game-review/1.0"

EVAL_CACHE_TTL_SECONDS = _env_float("GAME_REVIEW_CACHE_TTL", 24 * 60 * 60)
EVAL_CACHE_SWEEP_SECONDS = _env_float("GAME_REVIEW_CACHE_SWEEP", 60 * 60)
EVAL_REQUEST_TIMEOUT = _env_float("GAME_REVIEW_REQUEST_TIMEOUT", 5.0)
EVAL_MAX_ATTEMPTS = _env_int("GAME_REVIEW_MAX_ATTEMPTS", 3)
EVAL_RATE_LIMIT_DELAY = _env_float("GAME_REVIEW_RATE_LIMIT_DELAY", 0.1)
DEFAULT_MULTI_PV = _env_int("GAME_REVIEW_MULTI_PV", 3)

# Hard ceiling, not configurable: the evaluation service is shared.
MAX_BATCH_POSITIONS = 100

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOGGING_CONFIG = {
    "level": os.environ.get("GAME_REVIEW_LOG_LEVEL", "INFO").upper(),
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}


def configure_logging(stream=None) -> None:
    """Apply LOGGING_CONFIG to the root logger.

    Called by entry points only (CLI, MCP server).

    Args:
        stream: Optional stream for log output (defaults to stderr).
    """
    level = getattr(logging, LOGGING_CONFIG["level"], logging.INFO)
    logging.basicConfig(level=level, format=LOGGING_CONFIG["format"], stream=stream)
