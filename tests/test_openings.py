"""Tests for the opening catalog and longest-prefix identification.

Covers:
- Identification against the bundled catalog (deepest match, out-of-book, empty)
- Longest-prefix and tie-break rules on small hand-built books
- Continuations, ECO lookup and name search
- Graceful degradation with missing or corrupt catalog files
- Catalog integrity: every line is legal SAN as python-chess writes it
"""

from __future__ import annotations

import json

import chess
import pytest

from gamereview.models import OpeningEntry
from gamereview.openings import OpeningBook, detect_opening, get_default_book


ITALIAN = ["e4", "e5", "Nf3", "Nc6", "Bc4"]
ITALIAN_CLASSICAL = ITALIAN + ["Bc5"]


# ── Fixtures ────────────────────────────────────────────────────────


@pytest.fixture()
def book():
    """The bundled catalog."""
    loaded = get_default_book()
    assert len(loaded) > 0
    return loaded


@pytest.fixture()
def tiny_book():
    """A hand-built book for exercising matching rules in isolation."""
    return OpeningBook(entries=[
        OpeningEntry(eco="X01", name="First Short", moves=("e4", "e5")),
        OpeningEntry(eco="X02", name="Second Short", moves=("e4", "e5")),
        OpeningEntry(eco="X03", name="Long Line", moves=("e4", "e5", "Nf3", "Nc6")),
        OpeningEntry(eco="X04", name="Scholar Attempt", moves=("e4", "e5", "Qh5", "Nc6", "Bc4", "Nf6", "Qxf7#")),
    ])


# ── Identification (bundled catalog) ────────────────────────────────


class TestIdentifyOpening:
    """Longest-prefix identification against the bundled catalog."""

    def test_sicilian(self, book):
        result = book.identify_opening(["e4", "c5"])
        assert result is not None
        assert result.eco == "B20"
        assert result.name == "Sicilian Defense"
        assert result.family == "Sicilian Defense"
        assert result.ply == 2

    def test_longer_game_keeps_deepest_match(self, book):
        result = book.identify_opening(["e4", "c5", "Nf3", "Nc6", "d4", "cxd4"])
        assert result.eco == "B20"
        assert result.ply == 2

    def test_longest_prefix_wins(self, book):
        result = book.identify_opening(ITALIAN_CLASSICAL + ["c3", "Nf6"])
        assert result.eco == "C53"
        assert result.name == "Italian Game: Classical Variation"
        assert result.family == "Italian Game"
        assert result.ply == 6

    def test_five_ply_italian(self, book):
        result = book.identify_opening(ITALIAN + ["h6"])
        assert result.eco == "C50"
        assert result.ply == 5

    def test_shorter_than_line_falls_back(self, book):
        result = book.identify_opening(["e4", "e5", "Nf3"])
        assert result.eco == "B00"
        assert result.ply == 1

    def test_empty_moves(self, book):
        assert book.identify_opening([]) is None

    def test_out_of_book(self, book):
        assert book.identify_opening(["a4", "h5"]) is None

    def test_metadata_carried(self, book):
        result = book.identify_opening(["e4", "c5"])
        assert result.fun_fact
        assert result.wiki_url.startswith("https://")
        assert len(result.famous_games) >= 1
        assert {"white", "black", "year"} <= set(result.famous_games[0])

    def test_detect_opening_uses_default_book(self):
        assert detect_opening(["d4", "d5", "c4"]).name == "Queen's Gambit"


class TestMatchingRules:
    """Matching semantics on a tiny book."""

    def test_equal_length_keeps_first_entry(self, tiny_book):
        result = tiny_book.identify_opening(["e4", "e5", "d4"])
        assert result.eco == "X01"

    def test_longer_entry_beats_earlier_shorter(self, tiny_book):
        result = tiny_book.identify_opening(["e4", "e5", "Nf3", "Nc6", "Bb5"])
        assert result.eco == "X03"
        assert result.ply == 4

    def test_exact_string_match_only(self, tiny_book):
        # Missing check/mate suffix means no match for the long line.
        result = tiny_book.identify_opening(["e4", "e5", "Qh5", "Nc6", "Bc4", "Nf6", "Qxf7"])
        assert result.eco == "X01"

    def test_matched_ply_equals_entry_length(self, tiny_book):
        result = tiny_book.identify_opening(["e4", "e5", "Qh5", "Nc6", "Bc4", "Nf6", "Qxf7#"])
        assert result.eco == "X04"
        assert result.ply == 7

    def test_families(self):
        plain = OpeningEntry(eco="C60", name="Ruy Lopez", moves=("e4",))
        variation = OpeningEntry(eco="C70", name="Ruy Lopez: Morphy Defense", moves=("e4",))
        assert plain.family == "Ruy Lopez"
        assert variation.family == "Ruy Lopez"


# ── Queries ─────────────────────────────────────────────────────────


class TestCatalogQueries:
    """Continuations, ECO lookup and search."""

    def test_continuations_after_open_game(self, book):
        results = book.get_continuations(["e4", "e5", "Nf3", "Nc6"])
        names = [r["name"] for r in results]
        assert names[:3] == ["Italian Game", "Ruy Lopez", "Scotch Game"]
        assert "Italian Game: Classical Variation" in names
        italian = results[0]
        assert italian["next_moves"] == ["Bc4"]
        assert italian["eco"] == "C50"

    def test_continuations_respect_depth(self, book):
        results = book.get_continuations(["e4", "e5", "Nf3", "Nc6"], max_depth=1)
        assert all(len(r["next_moves"]) == 1 for r in results)

    def test_continuations_exclude_current_line(self, book):
        results = book.get_continuations(ITALIAN)
        assert all(r["name"] != "Italian Game" for r in results)

    def test_get_by_eco_is_case_insensitive(self, book):
        entries = book.get_opening_by_eco("c50")
        assert [e.name for e in entries] == ["Italian Game"]

    def test_get_by_unknown_eco(self, book):
        assert book.get_opening_by_eco("Z99") == []

    def test_search_by_name(self, book):
        results = book.search_openings("italian")
        assert len(results) == 3
        assert all("Italian" in e.name for e in results)

    def test_search_with_eco_filter(self, book):
        results = book.search_openings("", eco="B20")
        assert [e.eco for e in results] == ["B20"]

    def test_search_limit(self, book):
        assert len(book.search_openings("", limit=2)) == 2


# ── Degradation ─────────────────────────────────────────────────────


class TestCatalogLoading:
    """Missing or bad catalog files leave an empty, usable book."""

    def test_missing_catalog(self, tmp_path):
        empty = OpeningBook(catalog_path=str(tmp_path / "nope.json"))
        assert len(empty) == 0
        assert empty.identify_opening(["e4", "c5"]) is None
        assert empty.search_openings("sicilian") == []

    def test_empty_book_is_not_replaced_by_default(self, tmp_path):
        empty = OpeningBook(catalog_path=str(tmp_path / "nope.json"))
        assert detect_opening(["e4", "c5"], book=empty) is None

    def test_corrupt_catalog(self, tmp_path):
        path = tmp_path / "openings.json"
        path.write_text("{not json", encoding="utf-8")
        assert len(OpeningBook(catalog_path=str(path))) == 0

    def test_malformed_records_skipped(self, tmp_path):
        path = tmp_path / "openings.json"
        path.write_text(json.dumps([
            {"eco": "B20", "name": "Sicilian Defense", "moves": ["e4", "c5"]},
            {"eco": "B00", "name": "No moves"},
            {"name": "No eco", "moves": ["e4"]},
            "garbage",
        ]), encoding="utf-8")
        loaded = OpeningBook(catalog_path=str(path))
        assert len(loaded) == 1
        assert loaded.identify_opening(["e4", "c5"]).eco == "B20"


# ── Catalog integrity ───────────────────────────────────────────────


class TestBundledCatalog:
    """The shipped catalog matches what replay produces."""

    def test_every_line_is_legal_canonical_san(self, book):
        for entry in book.entries:
            board = chess.Board()
            for san in entry.moves:
                move = board.parse_san(san)
                assert board.san(move) == san, f"{entry.name}: {san}"
                board.push(move)

    def test_original_five_present(self, book):
        ecos = {e.eco for e in book.entries}
        assert {"B20", "C50", "C53", "D06", "C60"} <= ecos
