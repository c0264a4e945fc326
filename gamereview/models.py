"""Shared data models for the game review core.

Evaluation, PlayedMove and Classification flow from the evaluation
fetcher through the classifier into the GameReport returned by the
orchestrator. GameReport and BatchResult flatten themselves to plain
JSON via to_dict() for the CLI and the MCP server.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

CENTIPAWN = "cp"
MATE = "mate"


class MoveTier(str, Enum):
    """Quality tiers, best first."""

    BRILLIANT = "brilliant"
    GREAT = "great"
    BEST = "best"
    GOOD = "good"
    INACCURACY = "inaccuracy"
    MISTAKE = "mistake"
    BLUNDER = "blunder"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class GameReviewError(Exception):
    """Base class for errors raised by the review core."""


class AnalysisInputError(GameReviewError, ValueError):
    """Moves or evaluations handed to the orchestrator are malformed."""


class BatchRequestError(GameReviewError, ValueError):
    """An evaluation batch is empty, too large, or otherwise malformed."""


class CloudEvalError(GameReviewError):
    """The evaluation service kept failing after all retry attempts."""


# ---------------------------------------------------------------------------
# Evaluations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Evaluation:
    """Engine score for a position: centipawns or signed mate distance."""

    kind: str
    value: int

    @classmethod
    def centipawns(cls, value: int) -> Evaluation:
        return cls(CENTIPAWN, int(value))

    @classmethod
    def mate_in(cls, plies: int) -> Evaluation:
        return cls(MATE, int(plies))

    @property
    def is_mate(self) -> bool:
        return self.kind == MATE


@dataclass
class PositionEval:
    """Outcome of fetching one position from the evaluation service.

    `payload` is the raw service response (fen, depth, knodes, pvs) and is
    None whenever `available` is False.
    """

    fen: str
    available: bool
    from_cache: bool = False
    payload: dict | None = None
    error: str | None = None
    index: int | None = None


@dataclass
class BatchResult:
    """Per-position results for one evaluation batch, in input order."""

    evaluations: list[PositionEval] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.evaluations)

    @property
    def cached(self) -> int:
        return sum(1 for e in self.evaluations if e.from_cache)

    @property
    def unavailable(self) -> int:
        return sum(1 for e in self.evaluations if not e.available)

    def to_dict(self) -> dict:
        """Flatten each payload next to its availability flags."""
        evaluations = []
        for e in self.evaluations:
            record = dict(e.payload or {})
            record.update({
                "fen": e.fen,
                "index": e.index,
                "available": e.available,
                "from_cache": e.from_cache,
            })
            if e.error is not None:
                record["error"] = e.error
            evaluations.append(record)
        return {"evaluations": evaluations, "count": self.count, "cached": self.cached}


# ---------------------------------------------------------------------------
# Moves and classification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlayedMove:
    """One ply as produced by replaying the game."""

    san: str
    ply: int
    color: str
    uci: str | None = None
    from_square: str | None = None
    to_square: str | None = None

    @property
    def move_number(self) -> int:
        return self.ply // 2 + 1


@dataclass(frozen=True)
class Classification:
    """Quality tier and centipawn loss for a single move."""

    tier: MoveTier
    cp_loss: int
    eval_swing: int | None = None


@dataclass
class AnalyzedMove:
    """A played move with its classification, if one could be made."""

    san: str
    ply: int
    move_number: int
    color: str
    uci: str | None = None
    from_square: str | None = None
    to_square: str | None = None
    classification: Classification | None = None
    evaluation: int | None = None
    best_move: str | None = None

    @property
    def is_classified(self) -> bool:
        return self.classification is not None


# ---------------------------------------------------------------------------
# Openings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OpeningEntry:
    """A named opening line from the static catalog."""

    eco: str
    name: str
    moves: tuple[str, ...]
    fun_fact: str | None = None
    famous_games: tuple[dict, ...] = ()
    wiki_url: str | None = None

    @property
    def family(self) -> str:
        return self.name.split(":")[0].strip() if ":" in self.name else self.name


@dataclass
class OpeningMatch:
    """The catalog entry matched against a game, with matched length."""

    eco: str
    name: str
    family: str
    ply: int
    fun_fact: str | None = None
    famous_games: list[dict] = field(default_factory=list)
    wiki_url: str | None = None


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


def empty_tier_counts() -> dict[str, int]:
    """Return a zeroed count for every tier, best first."""
    return {tier.value: 0 for tier in MoveTier}


@dataclass
class GameReport:
    """Full analysis of one game."""

    moves: list[AnalyzedMove] = field(default_factory=list)
    opening: OpeningMatch | None = None
    tier_counts: dict[str, int] = field(default_factory=empty_tier_counts)

    @property
    def total_moves(self) -> int:
        return len(self.moves)

    def to_dict(self) -> dict:
        """Plain-JSON form with string tiers and an explicit total."""
        moves = []
        for move in self.moves:
            record = {
                "san": move.san,
                "uci": move.uci,
                "from_square": move.from_square,
                "to_square": move.to_square,
                "color": move.color,
                "ply": move.ply,
                "move_number": move.move_number,
            }
            if move.classification is not None:
                record["classification"] = move.classification.tier.value
                record["cp_loss"] = move.classification.cp_loss
                if move.classification.eval_swing is not None:
                    record["eval_swing"] = move.classification.eval_swing
                record["evaluation"] = move.evaluation
                record["best_move"] = move.best_move
            moves.append(record)

        opening = None
        if self.opening is not None:
            opening = {
                "eco": self.opening.eco,
                "name": self.opening.name,
                "family": self.opening.family,
                "ply": self.opening.ply,
                "fun_fact": self.opening.fun_fact,
                "famous_games": list(self.opening.famous_games),
                "wiki_url": self.opening.wiki_url,
            }

        return {
            "moves": moves,
            "opening": opening,
            "tier_counts": dict(self.tier_counts),
            "total_moves": self.total_moves,
        }
