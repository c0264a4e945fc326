"""Tests for move classification and evaluation normalization.

Covers:
- normalize_eval across every accepted shape, mate saturation, bad input
- Tier boundaries on the centipawn-loss ladder (49/50, 99/100, 199/200)
- Rule priority: brilliant > great > best > loss ladder
- Loss symmetry and the reported cp_loss per tier
"""

from __future__ import annotations

import pytest

from gamereview.classifier import GREAT_SWING_THRESHOLD, MATE_SCORE, classify_move, normalize_eval
from gamereview.models import Classification, Evaluation, MoveTier


# ---------------------------------------------------------------------------
# normalize_eval
# ---------------------------------------------------------------------------


class TestNormalizeEval:
    """Every accepted evaluation shape lands on one centipawn scale."""

    def test_bare_number_passes_through(self):
        assert normalize_eval(35) == 35
        assert normalize_eval(-120) == -120

    def test_float_truncates_to_int(self):
        assert normalize_eval(42.9) == 42

    def test_cp_mapping(self):
        assert normalize_eval({"cp": -80}) == -80

    def test_kind_value_mapping(self):
        assert normalize_eval({"kind": "cp", "value": 15}) == 15
        assert normalize_eval({"type": "cp", "value": -15}) == -15

    def test_evaluation_object(self):
        assert normalize_eval(Evaluation.centipawns(64)) == 64

    @pytest.mark.parametrize("mate", [1, 3, 12])
    def test_positive_mate_saturates(self, mate):
        assert normalize_eval({"mate": mate}) == MATE_SCORE
        assert normalize_eval({"type": "mate", "value": mate}) == MATE_SCORE
        assert normalize_eval(Evaluation.mate_in(mate)) == MATE_SCORE

    @pytest.mark.parametrize("mate", [-1, -4])
    def test_negative_mate_saturates(self, mate):
        assert normalize_eval({"mate": mate}) == -MATE_SCORE
        assert normalize_eval({"kind": "mate", "value": mate}) == -MATE_SCORE

    def test_mate_outranks_any_centipawn_score(self):
        assert normalize_eval({"mate": 30}) > normalize_eval({"cp": 9999})

    @pytest.mark.parametrize("bad", [
        None,
        "e4",
        [],
        {},
        {"depth": 30},
        {"cp": "lots"},
        {"kind": "mate"},
        {"mate": "soon"},
        True,
        float("nan"),
        float("inf"),
        float("-inf"),
        {"cp": float("inf")},
        {"cp": float("nan")},
        {"mate": float("nan")},
        {"type": "mate", "value": float("inf")},
        Evaluation(kind="cp", value=float("inf")),
    ])
    def test_malformed_input_is_zero(self, bad):
        assert normalize_eval(bad) == 0


# ---------------------------------------------------------------------------
# Loss ladder
# ---------------------------------------------------------------------------


class TestTierBoundaries:
    """Non-best moves fall on the ladder by centipawn loss."""

    @pytest.mark.parametrize("loss, tier", [
        (1, MoveTier.GOOD),
        (49, MoveTier.GOOD),
        (50, MoveTier.INACCURACY),
        (99, MoveTier.INACCURACY),
        (100, MoveTier.MISTAKE),
        (199, MoveTier.MISTAKE),
        (200, MoveTier.BLUNDER),
        (1500, MoveTier.BLUNDER),
    ])
    def test_ladder(self, loss, tier):
        result = classify_move(eval_before=loss, eval_after=0, is_best_move=False)
        assert result.tier is tier
        assert result.cp_loss == loss

    def test_zero_loss_is_best_even_when_not_engine_move(self):
        result = classify_move(eval_before={"cp": 30}, eval_after={"cp": 30}, is_best_move=False)
        assert result.tier is MoveTier.BEST
        assert result.cp_loss == 0

    def test_loss_is_symmetric(self):
        worse = classify_move(eval_before=100, eval_after=-100)
        better = classify_move(eval_before=-100, eval_after=100)
        assert worse.cp_loss == better.cp_loss == 200
        assert worse.tier is better.tier is MoveTier.BLUNDER

    def test_allowing_mate_is_a_blunder(self):
        result = classify_move(eval_before={"cp": 150}, eval_after={"mate": -2})
        assert result.tier is MoveTier.BLUNDER
        assert result.cp_loss == 150 + MATE_SCORE

    def test_malformed_evaluations_count_as_zero(self):
        result = classify_move(eval_before="??", eval_after={"cp": -60})
        assert result.tier is MoveTier.INACCURACY
        assert result.cp_loss == 60


# ---------------------------------------------------------------------------
# Rule priority
# ---------------------------------------------------------------------------


class TestRulePriority:
    """The first matching rule wins."""

    def test_best_sacrifice_is_brilliant(self):
        result = classify_move(
            eval_before=20, eval_after=-500,
            is_best_move=True, is_sacrifice=True, eval_swing=600,
        )
        assert result == Classification(tier=MoveTier.BRILLIANT, cp_loss=0)

    def test_sacrifice_without_best_falls_to_ladder(self):
        result = classify_move(eval_before=20, eval_after=-130, is_sacrifice=True)
        assert result.tier is MoveTier.MISTAKE
        assert result.cp_loss == 150

    def test_best_with_large_swing_is_great(self):
        result = classify_move(
            eval_before=0, eval_after=0,
            is_best_move=True, eval_swing=GREAT_SWING_THRESHOLD,
        )
        assert result.tier is MoveTier.GREAT
        assert result.cp_loss == 0
        assert result.eval_swing == GREAT_SWING_THRESHOLD

    def test_swing_just_under_threshold_is_best(self):
        result = classify_move(
            eval_before=0, eval_after=0,
            is_best_move=True, eval_swing=GREAT_SWING_THRESHOLD - 1,
        )
        assert result.tier is MoveTier.BEST
        assert result.eval_swing is None

    def test_engine_move_is_best_despite_loss(self):
        result = classify_move(eval_before=300, eval_after=-300, best_move_san="Qxd5", is_best_move=True)
        assert result.tier is MoveTier.BEST
        assert result.cp_loss == 0

    def test_swing_ignored_without_best_move(self):
        result = classify_move(eval_before=0, eval_after=-75, eval_swing=900)
        assert result.tier is MoveTier.INACCURACY
        assert result.eval_swing is None

    def test_best_move_san_does_not_affect_tier(self):
        with_hint = classify_move(eval_before=40, eval_after=0, best_move_san="Nf3")
        without = classify_move(eval_before=40, eval_after=0)
        assert with_hint == without
