#!/usr/bin/env python3
"""Rebuild the opening catalog from the Lichess chess-openings TSV files.

Downloads the five TSV files (cached in data/openings_raw/), converts each
line's PGN to the SAN list python-chess produces, carries over narrative
metadata (fun_fact, famous_games, wiki_url) from the current catalog by
(eco, name), and atomically rewrites data/openings.json.

Usage:
    python -m gamereview.build_catalog
"""

from __future__ import annotations

import csv
import io
import json
import logging
import os
import sys
import tempfile

import chess
import chess.pgn
import requests

from gamereview.config import EVAL_REQUEST_TIMEOUT, USER_AGENT, configure_logging

logger = logging.getLogger(__name__)

_BASE_URL = "https://github.com/lichess-org/chess-openings/raw/master"
_TSV_FILES = ["a.tsv", "b.tsv", "c.tsv", "d.tsv", "e.tsv"]

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))
_DATA_DIR = os.path.join(_PACKAGE_DIR, "data")
_RAW_DIR = os.path.join(_DATA_DIR, "openings_raw")
_CATALOG_PATH = os.path.join(_DATA_DIR, "openings.json")

_METADATA_KEYS = ("fun_fact", "famous_games", "wiki_url")


def download_tsvs(raw_dir: str = _RAW_DIR, session: requests.Session | None = None) -> list[str]:
    """Download TSV files from Lichess GitHub, reusing cached copies."""
    os.makedirs(raw_dir, exist_ok=True)
    session = session or requests.Session()
    paths = []
    for fname in _TSV_FILES:
        local_path = os.path.join(raw_dir, fname)
        if os.path.exists(local_path):
            logger.info("Cached: %s", fname)
            paths.append(local_path)
            continue
        url = f"{_BASE_URL}/{fname}"
        logger.info("Downloading: %s", url)
        response = session.get(url, headers={"User-Agent": USER_AGENT}, timeout=EVAL_REQUEST_TIMEOUT * 6)
        response.raise_for_status()
        with open(local_path, "w", encoding="utf-8") as f:
            f.write(response.text)
        paths.append(local_path)
    return paths


def pgn_to_san(pgn_text: str) -> list[str]:
    """Convert PGN move text ("1. e4 c5 2. Nf3") to a SAN list."""
    game = chess.pgn.read_game(io.StringIO(pgn_text))
    if game is None:
        return []
    board = game.board()
    san_moves = []
    for move in game.mainline_moves():
        san_moves.append(board.san(move))
        board.push(move)
    return san_moves


def parse_tsvs(paths: list[str]) -> list[dict]:
    """Parse TSV files into catalog records, skipping unparseable lines."""
    records = []
    for path in paths:
        with open(path, "r", encoding="utf-8") as f:
            reader = csv.DictReader(f, delimiter="\t")
            for row in reader:
                eco = (row.get("eco") or "").strip()
                name = (row.get("name") or "").strip()
                moves = pgn_to_san((row.get("pgn") or "").strip())
                if not eco or not name or not moves:
                    logger.warning("Skipping row without usable line: %r", row)
                    continue
                records.append({"eco": eco, "name": name, "moves": moves})
    return records


def merge_metadata(records: list[dict], existing: list[dict]) -> list[dict]:
    """Copy narrative metadata from existing records with the same eco and name."""
    by_key = {(r.get("eco"), r.get("name")): r for r in existing}
    merged = []
    for record in records:
        previous = by_key.get((record["eco"], record["name"]), {})
        out = dict(record)
        for key in _METADATA_KEYS:
            if previous.get(key):
                out[key] = previous[key]
        merged.append(out)
    return merged


def load_existing(path: str = _CATALOG_PATH) -> list[dict]:
    """Read the current catalog, or an empty list if missing or corrupt."""
    if not os.path.exists(path):
        return []
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return []
    return data if isinstance(data, list) else []


def write_catalog(records: list[dict], path: str = _CATALOG_PATH) -> str:
    """Write the catalog atomically (temp file + os.replace)."""
    directory = os.path.dirname(path)
    os.makedirs(directory, exist_ok=True)
    tmp_fd, tmp_path = tempfile.mkstemp(suffix=".json", dir=directory)
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=1, ensure_ascii=False)
        os.replace(tmp_path, path)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
    return path


def main() -> int:
    configure_logging()
    logger.info("Building opening catalog")

    try:
        paths = download_tsvs()
    except requests.RequestException as exc:
        logger.error("Failed to download opening TSVs: %s", exc)
        return 1

    records = parse_tsvs(paths)
    logger.info("%d openings parsed", len(records))

    merged = merge_metadata(records, load_existing())
    path = write_catalog(merged)
    logger.info("Wrote %s (%d openings, %s bytes)", path, len(merged), f"{os.path.getsize(path):,}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
