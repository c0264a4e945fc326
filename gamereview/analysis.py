"""Game analysis: replay, per-move classification and opening detection.

analyze_game() pairs each move with the evaluation of the position before
it (evaluations[i]) and after it (evaluations[i + 1]), classifies it, then
identifies the opening and tallies tiers. Moves missing either evaluation
stay in the report unclassified.

review_pgn() is the full pipeline: replay the PGN, fetch evaluations for
every position from the cloud evaluator, then analyze.

CLI:
    gamereview review game.pgn
    gamereview evaluate "<fen>" ["<fen>" ...]
    gamereview opening e4 c5 Nf3
"""

from __future__ import annotations

import argparse
import io
import json
import logging
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import chess
import chess.pgn

from gamereview.classifier import classify_move, normalize_eval
from gamereview.cloud_eval import (
    CloudEvalClient,
    best_move_from_payload,
    evaluate_positions,
    evaluation_from_payload,
    get_default_client,
)
from gamereview.config import DEFAULT_MULTI_PV, MAX_BATCH_POSITIONS, configure_logging
from gamereview.models import (
    AnalysisInputError,
    AnalyzedMove,
    Evaluation,
    GameReport,
    GameReviewError,
    PlayedMove,
    PositionEval,
    empty_tier_counts,
)
from gamereview.openings import OpeningBook, detect_opening

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------


@dataclass
class ReplayedGame:
    """Moves of a game plus every position visited, initial one first."""

    moves: list[PlayedMove] = field(default_factory=list)
    fens: list[str] = field(default_factory=list)

    @property
    def san_moves(self) -> list[str]:
        return [m.san for m in self.moves]


def _color_code(color: chess.Color) -> str:
    return "w" if color == chess.WHITE else "b"


def _played_move(board: chess.Board, move: chess.Move, ply: int) -> PlayedMove:
    """Describe `move` in the position on `board` (before pushing it)."""
    return PlayedMove(
        san=board.san(move),
        ply=ply,
        color=_color_code(board.turn),
        uci=move.uci(),
        from_square=chess.square_name(move.from_square),
        to_square=chess.square_name(move.to_square),
    )


def replay_san(san_moves: Sequence[str], starting_fen: str | None = None) -> ReplayedGame:
    """Replay SAN moves, validating legality with python-chess.

    Args:
        san_moves: Moves in SAN.
        starting_fen: Optional starting position (standard start if None).

    Returns:
        ReplayedGame with len(fens) == len(moves) + 1.

    Raises:
        AnalysisInputError: If the FEN is invalid or a move is illegal.
    """
    try:
        board = chess.Board(starting_fen) if starting_fen else chess.Board()
    except ValueError as exc:
        raise AnalysisInputError(f"Invalid FEN: {exc}") from exc

    replayed = ReplayedGame(fens=[board.fen()])
    for ply, san in enumerate(san_moves):
        try:
            move = board.parse_san(san)
        except ValueError as exc:
            raise AnalysisInputError(f"Illegal move at ply {ply + 1}: {san}") from exc
        replayed.moves.append(_played_move(board, move, ply))
        board.push(move)
        replayed.fens.append(board.fen())
    return replayed


def replay_pgn(pgn_text: str) -> ReplayedGame:
    """Replay the mainline of a PGN (comments, clocks and NAGs ignored).

    Raises:
        AnalysisInputError: If no game can be parsed or it has illegal moves.
    """
    if not pgn_text or not pgn_text.strip():
        raise AnalysisInputError("Missing required field: pgn")

    game = chess.pgn.read_game(io.StringIO(pgn_text))
    if game is None:
        raise AnalysisInputError("Could not parse a game from PGN")
    if game.errors:
        raise AnalysisInputError(f"Invalid PGN: {game.errors[0]}")

    board = game.board()
    replayed = ReplayedGame(fens=[board.fen()])
    for ply, move in enumerate(game.mainline_moves()):
        replayed.moves.append(_played_move(board, move, ply))
        board.push(move)
        replayed.fens.append(board.fen())
    return replayed


# ---------------------------------------------------------------------------
# Input coercion
# ---------------------------------------------------------------------------


def _coerce_move(item, ply: int) -> PlayedMove:
    """Accept a PlayedMove, a bare SAN string, or a {san, from, to, color} dict."""
    if isinstance(item, PlayedMove):
        return item
    color = "w" if ply % 2 == 0 else "b"
    if isinstance(item, str) and item.strip():
        return PlayedMove(san=item.strip(), ply=ply, color=color)
    if isinstance(item, Mapping) and isinstance(item.get("san"), str) and item["san"]:
        from_square = item.get("from_square", item.get("from"))
        to_square = item.get("to_square", item.get("to"))
        uci = item.get("uci")
        if uci is None and from_square and to_square:
            uci = f"{from_square}{to_square}{item.get('promotion') or ''}"
        return PlayedMove(
            san=item["san"],
            ply=ply,
            color=item.get("color") or color,
            uci=uci,
            from_square=from_square,
            to_square=to_square,
        )
    raise AnalysisInputError(f"Malformed move at ply {ply + 1}: {item!r}")


def _resolve_evaluation(entry, index: int):
    """Turn one evaluations[] entry into (score, payload) or None if absent.

    `score` is anything normalize_eval() accepts; `payload` is the mapping
    the entry came from (for principal variations), or None.
    """
    if entry is None:
        return None
    if isinstance(entry, PositionEval):
        if not entry.available or entry.payload is None:
            return None
        entry = entry.payload
    if isinstance(entry, Evaluation):
        return entry, None
    if isinstance(entry, bool):
        raise AnalysisInputError(f"Malformed evaluation at index {index}: {entry!r}")
    if isinstance(entry, (int, float)):
        return entry, None
    if isinstance(entry, Mapping):
        if entry.get("available") is False:
            return None
        score = evaluation_from_payload(entry)
        return (score if score is not None else entry), entry
    raise AnalysisInputError(f"Malformed evaluation at index {index}: {entry!r}")


def _best_move_san(payload: Mapping, best_move: str) -> str:
    """Express a UCI best move in SAN when the payload names its position."""
    fen = payload.get("fen")
    if not fen:
        return best_move
    try:
        board = chess.Board(fen)
        move = chess.Move.from_uci(best_move)
    except ValueError:
        return best_move
    if move not in board.legal_moves:
        return best_move
    return board.san(move)


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


def analyze_game(
    moves: Sequence,
    evaluations: Sequence,
    book: OpeningBook | None = None,
) -> GameReport:
    """Classify every move, identify the opening and tally tiers.

    Args:
        moves: Played moves (PlayedMove, SAN strings, or move dicts).
        evaluations: evaluations[i] is the position before moves[i] and
            evaluations[i + 1] the position after it; entries may be None
            or unavailable batch results.
        book: Opening catalog (process default if None).

    Returns:
        GameReport covering every move; unclassified moves are kept but
        not counted.

    Raises:
        AnalysisInputError: If moves or evaluations are malformed. Nothing
            is analyzed in that case.
    """
    for name, value in (("moves", moves), ("evaluations", evaluations)):
        if value is None or isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Sequence):
            raise AnalysisInputError(f"Missing required field: {name} (array)")

    played = [_coerce_move(item, ply) for ply, item in enumerate(moves)]
    resolved = [_resolve_evaluation(entry, i) for i, entry in enumerate(evaluations)]

    report = GameReport(tier_counts=empty_tier_counts())
    for i, move in enumerate(played):
        analyzed = AnalyzedMove(
            san=move.san,
            ply=move.ply,
            move_number=move.move_number,
            color=move.color,
            uci=move.uci,
            from_square=move.from_square,
            to_square=move.to_square,
        )
        before = resolved[i] if i < len(resolved) else None
        after = resolved[i + 1] if i + 1 < len(resolved) else None
        if before is None or after is None:
            logger.debug("No evaluation pair for ply %d (%s); leaving unclassified", i + 1, move.san)
            report.moves.append(analyzed)
            continue

        score_before, payload_before = before
        score_after, _ = after

        best_move = best_move_from_payload(payload_before) if payload_before else None
        if best_move is None:
            is_best = True
        else:
            is_best = best_move in (move.san, move.uci)

        classification = classify_move(
            eval_before=score_before,
            eval_after=score_after,
            best_move_san=best_move,
            is_best_move=is_best,
            is_sacrifice=False,
            eval_swing=0,
        )
        analyzed.classification = classification
        analyzed.evaluation = normalize_eval(score_after)
        if not is_best:
            analyzed.best_move = _best_move_san(payload_before, best_move)

        report.tier_counts[classification.tier.value] += 1
        report.moves.append(analyzed)

    report.opening = detect_opening([m.san for m in played], book=book)
    logger.info(
        "Analyzed %d moves (%d classified), opening: %s",
        report.total_moves,
        sum(report.tier_counts.values()),
        report.opening.name if report.opening else "none",
    )
    return report


def review_pgn(
    pgn_text: str,
    multi_pv: int = DEFAULT_MULTI_PV,
    client: CloudEvalClient | None = None,
    book: OpeningBook | None = None,
) -> GameReport:
    """Replay a PGN, evaluate every position, and analyze the game.

    Positions are fetched in batches of at most MAX_BATCH_POSITIONS, with
    the inter-request delay kept across batch boundaries.
    Positions the evaluator cannot provide leave their neighbouring moves
    unclassified.
    """
    replayed = replay_pgn(pgn_text)
    client = client or get_default_client()

    evaluations: list[PositionEval] = []
    total = len(replayed.fens)
    for start in range(0, total, MAX_BATCH_POSITIONS):
        end = start + MAX_BATCH_POSITIONS
        batch = evaluate_positions(
            replayed.fens[start:end],
            multi_pv=multi_pv,
            client=client,
            trailing_delay=end < total,
        )
        evaluations.extend(batch.evaluations)

    return analyze_game(replayed.moves, evaluations, book=book)


# ---------------------------------------------------------------------------
# CLI interface
# ---------------------------------------------------------------------------


def _cli_review(path: str, multi_pv: int) -> dict:
    if path == "-":
        pgn_text = sys.stdin.read()
    else:
        with open(path, "r", encoding="utf-8") as f:
            pgn_text = f.read()
    return review_pgn(pgn_text, multi_pv=multi_pv).to_dict()


def _cli_evaluate(fens: list[str], multi_pv: int) -> dict:
    return evaluate_positions(fens, multi_pv=multi_pv).to_dict()


def _cli_opening(moves: list[str]) -> dict:
    match = detect_opening(moves)
    if match is None:
        return {"opening": None, "message": "No opening identified"}
    return {
        "eco": match.eco,
        "name": match.name,
        "family": match.family,
        "ply": match.ply,
        "wiki_url": match.wiki_url,
    }


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Prints JSON to stdout."""
    parser = argparse.ArgumentParser(
        description="Chess game review - classify moves, fetch evaluations, identify openings"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    review_parser = subparsers.add_parser("review", help="Review a PGN game")
    review_parser.add_argument("pgn", type=str, help="PGN file path, or - for stdin")
    review_parser.add_argument("--multi-pv", type=int, default=DEFAULT_MULTI_PV)

    evaluate_parser = subparsers.add_parser("evaluate", help="Evaluate FEN positions")
    evaluate_parser.add_argument("fens", nargs="+", help="FEN strings")
    evaluate_parser.add_argument("--multi-pv", type=int, default=DEFAULT_MULTI_PV)

    opening_parser = subparsers.add_parser("opening", help="Identify an opening from SAN moves")
    opening_parser.add_argument("moves", nargs="*", help="SAN moves from the start")

    args = parser.parse_args(argv)
    configure_logging()

    try:
        if args.command == "review":
            output = _cli_review(args.pgn, args.multi_pv)
        elif args.command == "evaluate":
            output = _cli_evaluate(args.fens, args.multi_pv)
        elif args.command == "opening":
            output = _cli_opening(args.moves)
        else:
            parser.print_help()
            return 1
    except (GameReviewError, OSError) as exc:
        print(json.dumps({"error": str(exc)}), file=sys.stderr)
        return 2

    print(json.dumps(output, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
