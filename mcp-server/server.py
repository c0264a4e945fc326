"""MCP server for the chess game review core.

Exposes move classification, cloud evaluation and opening tools via
FastMCP. The evaluation cache and opening catalog live for the life of
the process and are shared by every tool call.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Add project root and mcp-server dir to path for imports
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MCP_SERVER_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(_PROJECT_ROOT))
sys.path.insert(0, str(_MCP_SERVER_DIR))

from mcp.server.fastmcp import FastMCP

from gamereview.analysis import analyze_game as _analyze_game
from gamereview.analysis import review_pgn as _review_pgn
from gamereview.cloud_eval import get_default_client
from gamereview.config import DEFAULT_MULTI_PV, configure_logging
from gamereview.models import GameReviewError
from gamereview.openings import get_default_book

from openings_tools import register_openings_tools  # noqa: E402
from response_schemas import minify_batch, minify_report  # noqa: E402

logger = logging.getLogger(__name__)

mcp = FastMCP("chess-game-review")

# Shared for the process: one evaluation cache, one catalog
_client = get_default_client()
_book = get_default_book()

register_openings_tools(mcp, _book)


@mcp.tool()
def analyze_game(moves: list[str | dict], evaluations: list[dict | int | None]) -> dict:
    """Classify every move of a game and identify its opening.

    Args:
        moves: SAN strings or {san, from, to, color} dicts, one per ply.
        evaluations: One more entry than moves; entry i is the evaluation
            of the position before move i ({cp}, {mate}, a cloud-eval
            payload, or null when unavailable).

    Returns:
        Dict with move_list, moves, opening, tier_counts, total_moves,
        or an error dict if the input is malformed.
    """
    try:
        report = _analyze_game(moves, evaluations, book=_book)
    except GameReviewError as exc:
        return {"error": str(exc)}
    return minify_report(report.to_dict())


@mcp.tool()
def review_pgn(pgn: str, multi_pv: int = DEFAULT_MULTI_PV) -> dict:
    """Review a PGN game end to end using Lichess cloud evaluations.

    Positions missing from the cloud database leave the adjacent moves
    unclassified rather than failing the review.

    Args:
        pgn: PGN text of the game.
        multi_pv: Principal variations to request per position.

    Returns:
        Dict with move_list, moves, opening, tier_counts, total_moves,
        or an error dict.
    """
    try:
        report = _review_pgn(pgn, multi_pv=multi_pv, client=_client, book=_book)
    except GameReviewError as exc:
        return {"error": str(exc)}
    return minify_report(report.to_dict())


@mcp.tool()
def evaluate_positions(fens: list[str], multi_pv: int = DEFAULT_MULTI_PV) -> dict:
    """Fetch cloud evaluations for up to 100 positions.

    Args:
        fens: FEN strings, evaluated in order.
        multi_pv: Principal variations to request per position.

    Returns:
        Dict with evaluations (one per FEN, flagged available/from_cache),
        count and cached, or an error dict for an invalid batch.
    """
    try:
        batch = _client.evaluate_positions(fens, multi_pv=multi_pv)
    except GameReviewError as exc:
        return {"error": str(exc)}
    return minify_batch(batch.to_dict())


@mcp.tool()
def evaluation_cache_stats() -> dict:
    """Report evaluation cache size and hit/miss counters."""
    return _client.cache.stats()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    configure_logging(stream=sys.stderr)
    mcp.run()
