"""Move quality classification on a chess.com-style centipawn-loss ladder.

Two pieces:
- normalize_eval() maps any evaluation shape onto one signed centipawn
  scale, saturating forced mates to +/-MATE_SCORE.
- classify_move() walks an ordered rule ladder (first match wins) and
  returns the tier plus centipawn loss.

Usage:
    from gamereview.classifier import classify_move
    result = classify_move(eval_before=35, eval_after=-40, is_best_move=False)
    result.tier  # MoveTier.INACCURACY
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from gamereview.models import CENTIPAWN, MATE, Classification, Evaluation, MoveTier

MATE_SCORE = 10000

# A best move that swings the evaluation at least this much is "great".
GREAT_SWING_THRESHOLD = 300

# Upper bounds (exclusive) of centipawn loss for each non-best tier
_LOSS_LADDER = [
    (50, MoveTier.GOOD),
    (100, MoveTier.INACCURACY),
    (200, MoveTier.MISTAKE),
]


def _saturate_mate(plies) -> int:
    if isinstance(plies, float) and not math.isfinite(plies):
        raise ValueError(f"non-finite mate distance: {plies}")
    return MATE_SCORE if plies > 0 else -MATE_SCORE


def normalize_eval(evaluation) -> int:
    """Convert an evaluation to signed centipawns.

    Accepts an Evaluation, a bare number of centipawns, or a mapping in
    any of the shapes {"cp": n}, {"mate": n}, {"type": "mate", "value": n}
    or {"kind": "cp" | "mate", "value": n}. Mate scores saturate to
    +/-MATE_SCORE regardless of distance. Anything unrecognised, including
    non-numeric or non-finite values, is 0.

    Args:
        evaluation: Evaluation in one of the supported shapes.

    Returns:
        Signed centipawn-equivalent score.
    """
    # int() raises ValueError for NaN and OverflowError for infinities
    try:
        if isinstance(evaluation, Evaluation):
            if evaluation.is_mate:
                return _saturate_mate(evaluation.value)
            return int(evaluation.value)

        if isinstance(evaluation, bool):
            return 0
        if isinstance(evaluation, (int, float)):
            return int(evaluation)

        if not isinstance(evaluation, Mapping):
            return 0

        kind = evaluation.get("kind", evaluation.get("type"))
        if kind == MATE:
            return _saturate_mate(evaluation["value"])
        if kind == CENTIPAWN:
            return int(evaluation["value"])
        if evaluation.get("mate") is not None:
            return _saturate_mate(evaluation["mate"])
        if evaluation.get("cp") is not None:
            return int(evaluation["cp"])
    except (KeyError, TypeError, ValueError, OverflowError):
        return 0
    return 0


@dataclass(frozen=True)
class _MoveFacts:
    cp_loss: int
    is_best_move: bool
    is_sacrifice: bool
    eval_swing: int


# (guard, tier, keeps the measured loss). Order is the tie-break priority.
_RULES: list[tuple[Callable[[_MoveFacts], bool], MoveTier, bool]] = [
    (lambda f: f.is_best_move and f.is_sacrifice, MoveTier.BRILLIANT, False),
    (lambda f: f.is_best_move and f.eval_swing >= GREAT_SWING_THRESHOLD, MoveTier.GREAT, False),
    (lambda f: f.is_best_move or f.cp_loss == 0, MoveTier.BEST, False),
] + [
    (lambda f, bound=bound: f.cp_loss < bound, tier, True)
    for bound, tier in _LOSS_LADDER
]


def classify_move(
    eval_before,
    eval_after,
    best_move_san: str | None = None,
    is_best_move: bool = False,
    is_sacrifice: bool = False,
    eval_swing: int = 0,
) -> Classification:
    """Classify a move from the evaluations either side of it.

    Both evaluations must be from the same perspective; they are run
    through normalize_eval() so raw shapes are accepted too. Sacrifice and
    swing detection are the caller's job.

    Args:
        eval_before: Evaluation of the position before the move.
        eval_after: Evaluation of the position after the move.
        best_move_san: Engine's preferred move (informational).
        is_best_move: Whether the played move was the engine's top move.
        is_sacrifice: Whether the move gives up material.
        eval_swing: Size of the evaluation swing the move creates.

    Returns:
        Classification with tier and centipawn loss. Brilliant, great and
        best moves report a loss of 0; great moves echo eval_swing.
    """
    cp_loss = abs(normalize_eval(eval_before) - normalize_eval(eval_after))
    facts = _MoveFacts(
        cp_loss=cp_loss,
        is_best_move=bool(is_best_move),
        is_sacrifice=bool(is_sacrifice),
        eval_swing=int(eval_swing or 0),
    )

    for guard, tier, keeps_loss in _RULES:
        if guard(facts):
            return Classification(
                tier=tier,
                cp_loss=cp_loss if keeps_loss else 0,
                eval_swing=facts.eval_swing if tier is MoveTier.GREAT else None,
            )

    return Classification(tier=MoveTier.BLUNDER, cp_loss=cp_loss)
