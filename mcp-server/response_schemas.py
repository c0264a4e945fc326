"""Response schemas and minification for MCP tool responses.

Minifies review reports and evaluation batches so LLM clients get the
verdicts without raw principal variations or long narrative lists.

Move lists are rendered as PGN strings (1.e4 c5 2.Nf3 ...), which read
naturally for the agent.
"""

from __future__ import annotations

import os

from gamereview.cloud_eval import best_move_from_payload, evaluation_from_payload


# ---------------------------------------------------------------------------
# Minification functions
# ---------------------------------------------------------------------------


def minify_report(report: dict) -> dict:
    """Minify a GameReport dict for MCP response.

    Drops square/UCI detail from moves, keeps verdict fields, adds the
    PGN move string, and trims famous games to two.

    Args:
        report: Full report (as produced by GameReport.to_dict).

    Returns:
        Minified dict.
    """
    moves = []
    for move in report.get("moves", []):
        compact = {"ply": move.get("ply"), "san": move.get("san")}
        for key in ("classification", "cp_loss", "eval_swing", "evaluation", "best_move"):
            if move.get(key) is not None:
                compact[key] = move[key]
        moves.append(compact)

    result = {
        "move_list": _moves_to_pgn_string([m.get("san", "") for m in report.get("moves", [])]),
        "moves": moves,
        "opening": minify_opening(report.get("opening")),
        "tier_counts": report.get("tier_counts", {}),
        "total_moves": report.get("total_moves", len(moves)),
    }
    return result


def minify_opening(opening: dict | None) -> dict | None:
    """Minify an opening match: keep identity, trim famous games to 2."""
    if opening is None or not isinstance(opening, dict):
        return None
    result = {
        "eco": opening.get("eco"),
        "name": opening.get("name"),
        "ply": opening.get("ply"),
    }
    if opening.get("fun_fact"):
        result["fun_fact"] = opening["fun_fact"]
    games = opening.get("famous_games") or []
    if games:
        result["famous_games"] = games[:2]
    if opening.get("wiki_url"):
        result["wiki_url"] = opening["wiki_url"]
    return result


def minify_batch(batch: dict) -> dict:
    """Minify an evaluation batch dict for MCP response.

    Replaces raw pvs with the top-line score and best move.

    Args:
        batch: Full batch (as produced by BatchResult.to_dict).

    Returns:
        Minified dict with count and cached totals.
    """
    evaluations = []
    for entry in batch.get("evaluations", []):
        compact = {
            "index": entry.get("index"),
            "fen": entry.get("fen"),
            "available": entry.get("available", False),
            "from_cache": entry.get("from_cache", False),
        }
        if compact["available"]:
            score = evaluation_from_payload(entry)
            if score is not None:
                compact[score.kind] = score.value
            best = best_move_from_payload(entry)
            if best is not None:
                compact["best_move"] = best
            if entry.get("depth") is not None:
                compact["depth"] = entry["depth"]
        elif entry.get("error"):
            compact["error"] = entry["error"]
        evaluations.append(compact)

    return {
        "evaluations": evaluations,
        "count": batch.get("count", len(evaluations)),
        "cached": batch.get("cached", 0),
    }


# ---------------------------------------------------------------------------
# Helper: move list to PGN string
# ---------------------------------------------------------------------------


def _moves_to_pgn_string(moves: list[str]) -> str:
    """Convert a list of SAN moves to a PGN move string.

    E.g., ['e4', 'e5', 'Nf3', 'Nc6'] -> '1.e4 e5 2.Nf3 Nc6'
    """
    if not moves:
        return ""

    parts = []
    for i, move in enumerate(moves):
        if i % 2 == 0:
            parts.append(f"{i // 2 + 1}.{move}")
        else:
            parts.append(move)

    return " ".join(parts)


# ---------------------------------------------------------------------------
# Validation schemas (dict-based)
# ---------------------------------------------------------------------------

REPORT_SCHEMA = {
    "move_list": str,
    "moves": list,
    "opening": (dict, type(None)),
    "tier_counts": dict,
    "total_moves": int,
}

BATCH_SCHEMA = {
    "evaluations": list,
    "count": int,
    "cached": int,
}

OPENING_SCHEMA = {
    "eco": str,
    "name": str,
    "family": str,
    "ply": int,
}

ERROR_SCHEMA = {
    "error": str,
}

# Required keys of each entry in a report's moves / a batch's evaluations
_ITEM_SCHEMAS = {
    "moves": {"ply": int, "san": str},
    "evaluations": {"index": int, "fen": str, "available": bool},
}


def validate_response(response: dict, schema: dict) -> list[str]:
    """Return schema violations for a tool response (empty = valid).

    `schema` maps required keys to a type or tuple of types. Entries of
    `moves` and `evaluations` lists are checked too. Only runs when
    GAME_REVIEW_VALIDATE=1 is set.
    """
    if os.environ.get("GAME_REVIEW_VALIDATE") != "1":
        return []
    if not isinstance(response, dict):
        return [f"Response is not a dict: {type(response).__name__}"]

    errors = _check_keys(response, schema, "")
    for key, item_schema in _ITEM_SCHEMAS.items():
        if key in schema and isinstance(response.get(key), list):
            for i, item in enumerate(response[key]):
                if not isinstance(item, dict):
                    errors.append(f"{key}[{i}]: expected dict, got {type(item).__name__}")
                else:
                    errors.extend(_check_keys(item, item_schema, f"{key}[{i}]."))
    return errors


def _check_keys(data: dict, schema: dict, prefix: str) -> list[str]:
    errors = []
    for key, expected in schema.items():
        if key not in data:
            errors.append(f"Missing key: {prefix}{key}")
        elif not isinstance(data[key], expected):
            errors.append(f"Key '{prefix}{key}': got {type(data[key]).__name__}")
    return errors
