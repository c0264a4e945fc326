"""Opening identification against a static catalog of named lines.

The catalog is a JSON list of {eco, name, moves, fun_fact, famous_games,
wiki_url} records in SAN (see data/openings.json, regenerated by
gamereview.build_catalog). It is loaded once into immutable entries and
shared read-only by every request.

Usage:
    from gamereview.openings import detect_opening
    match = detect_opening(["e4", "c5"])
    match.name, match.ply  # ("Sicilian Defense", 2)
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Sequence
from functools import lru_cache

from gamereview.models import OpeningEntry, OpeningMatch

logger = logging.getLogger(__name__)

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))
_DEFAULT_CATALOG = os.path.join(_PACKAGE_DIR, "data", "openings.json")


def _entry_from_record(record: dict) -> OpeningEntry | None:
    """Build an OpeningEntry from a catalog record, None if unusable."""
    eco = record.get("eco")
    name = record.get("name")
    moves = record.get("moves")
    if not eco or not name or not isinstance(moves, list) or not moves:
        return None
    return OpeningEntry(
        eco=eco,
        name=name,
        moves=tuple(str(m) for m in moves),
        fun_fact=record.get("fun_fact"),
        famous_games=tuple(record.get("famous_games") or ()),
        wiki_url=record.get("wiki_url"),
    )


def _is_prefix(prefix: Sequence[str], played: Sequence[str]) -> bool:
    """True if `prefix` matches the start of `played`, ply by ply."""
    if len(played) < len(prefix):
        return False
    return all(played[i] == move for i, move in enumerate(prefix))


class OpeningBook:
    """Read-only opening catalog with longest-prefix identification."""

    def __init__(self, catalog_path: str | None = None, entries=None):
        self._catalog_path = catalog_path or _DEFAULT_CATALOG
        if entries is not None:
            self._entries = tuple(entries)
        else:
            self._entries = self._load_catalog()

    def _load_catalog(self) -> tuple[OpeningEntry, ...]:
        """Load entries from JSON. Returns an empty catalog if unavailable."""
        if not os.path.exists(self._catalog_path):
            logger.warning("Opening catalog not found: %s", self._catalog_path)
            return ()
        try:
            with open(self._catalog_path, "r", encoding="utf-8") as f:
                records = json.load(f)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Could not read opening catalog %s: %s", self._catalog_path, exc)
            return ()

        entries = []
        for record in records if isinstance(records, list) else []:
            entry = _entry_from_record(record) if isinstance(record, dict) else None
            if entry is None:
                logger.warning("Skipping malformed catalog record: %r", record)
                continue
            entries.append(entry)
        logger.debug("Loaded %d openings from %s", len(entries), self._catalog_path)
        return tuple(entries)

    @property
    def entries(self) -> tuple[OpeningEntry, ...]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ── Matching ────────────────────────────────────────────────────

    def identify_opening(self, san_moves: Sequence[str]) -> OpeningMatch | None:
        """Identify the most specific catalog line the game starts with.

        Matching is exact SAN string equality per ply; transpositions and
        notation variants are not recognised. Among matching entries the
        longest wins; on equal length the earlier catalog entry is kept.

        Args:
            san_moves: SAN moves played from the initial position.

        Returns:
            OpeningMatch with ply = matched length, or None if no entry
            matches (including for an empty move list).
        """
        if not san_moves:
            return None

        best: OpeningEntry | None = None
        for entry in self._entries:
            if not _is_prefix(entry.moves, san_moves):
                continue
            if best is None or len(entry.moves) > len(best.moves):
                best = entry

        if best is None:
            return None

        return OpeningMatch(
            eco=best.eco,
            name=best.name,
            family=best.family,
            ply=len(best.moves),
            fun_fact=best.fun_fact,
            famous_games=list(best.famous_games),
            wiki_url=best.wiki_url,
        )

    def get_continuations(self, san_moves: Sequence[str], max_depth: int = 4) -> list[dict]:
        """List named lines that extend the current move sequence.

        Args:
            san_moves: SAN moves played so far.
            max_depth: Maximum number of extra plies to look ahead.

        Returns:
            List of dicts with eco, name and next_moves, shortest first.
        """
        played = list(san_moves)
        results = []
        for entry in self._entries:
            extra = len(entry.moves) - len(played)
            if extra < 1 or extra > max_depth:
                continue
            if not _is_prefix(played, entry.moves):
                continue
            results.append({
                "eco": entry.eco,
                "name": entry.name,
                "next_moves": list(entry.moves[len(played):]),
            })
        results.sort(key=lambda r: (len(r["next_moves"]), r["name"]))
        return results

    # ── Queries ─────────────────────────────────────────────────────

    def get_opening_by_eco(self, eco: str) -> list[OpeningEntry]:
        """Return all entries with the given ECO code, in catalog order."""
        wanted = (eco or "").strip().upper()
        return [e for e in self._entries if e.eco.upper() == wanted]

    def search_openings(self, query: str, eco: str | None = None, limit: int = 20) -> list[OpeningEntry]:
        """Search entries by name or ECO code (case-insensitive substring).

        Args:
            query: Search string matched against name and ECO.
            eco: Optional exact ECO code filter.
            limit: Maximum results to return.

        Returns:
            Matching entries sorted by ECO then name.
        """
        needle = (query or "").strip().lower()
        results = []
        for entry in self._entries:
            if eco and entry.eco.upper() != eco.strip().upper():
                continue
            if needle and needle not in entry.name.lower() and needle not in entry.eco.lower():
                continue
            results.append(entry)
        results.sort(key=lambda e: (e.eco, e.name))
        return results[:limit]


@lru_cache(maxsize=1)
def get_default_book() -> OpeningBook:
    """Return the process-wide catalog loaded from package data."""
    return OpeningBook()


def detect_opening(san_moves: Sequence[str], book: OpeningBook | None = None) -> OpeningMatch | None:
    """Identify the opening of a game using the default catalog."""
    if book is None:
        book = get_default_book()
    return book.identify_opening(san_moves)
