"""Opening-related MCP tools for the game review server.

Registers 4 tools on the provided FastMCP instance:
  - identify_opening
  - search_openings
  - get_opening_details
  - opening_continuations

Called from server.py via register_openings_tools().
"""

from __future__ import annotations

from gamereview.models import OpeningEntry
from gamereview.openings import OpeningBook


def _entry_to_dict(entry: OpeningEntry) -> dict:
    return {
        "eco": entry.eco,
        "name": entry.name,
        "family": entry.family,
        "moves": list(entry.moves),
        "ply": len(entry.moves),
    }


def register_openings_tools(mcp, book: OpeningBook):
    """Register all opening-related MCP tools on the FastMCP instance.

    Args:
        mcp: FastMCP server instance.
        book: Shared read-only opening catalog.
    """
    _EMPTY_CATALOG_ERROR = {"error": "Opening catalog is empty or missing"}

    @mcp.tool()
    def identify_opening(moves: list[str]) -> dict:
        """Identify the most specific named opening a game starts with.

        Args:
            moves: SAN moves from the initial position, e.g. ["e4", "c5"].

        Returns:
            Dict with eco, name, family, ply, or {"opening": None} if no
            catalog line matches.
        """
        if len(book) == 0:
            return dict(_EMPTY_CATALOG_ERROR)

        match = book.identify_opening(moves)
        if match is None:
            return {"opening": None, "message": "No opening identified"}

        return {
            "eco": match.eco,
            "name": match.name,
            "family": match.family,
            "ply": match.ply,
            "wiki_url": match.wiki_url,
        }

    @mcp.tool()
    def search_openings(query: str, eco: str | None = None, limit: int = 20) -> dict:
        """Search the opening catalog by name or ECO code.

        Args:
            query: Search string (matched against name and ECO).
            eco: Optional exact ECO code filter (e.g., "B20").
            limit: Maximum results to return (default 20).

        Returns:
            Dict with results list and total count.
        """
        results = [_entry_to_dict(e) for e in book.search_openings(query, eco=eco, limit=limit)]
        return {"results": results, "total": len(results)}

    @mcp.tool()
    def get_opening_details(eco: str) -> dict:
        """Get all catalog lines for an ECO code, with narrative metadata.

        Args:
            eco: ECO code string (e.g., "C50").

        Returns:
            Dict with eco, family, and variations list.
        """
        entries = book.get_opening_by_eco(eco)
        if not entries:
            return {"eco": eco, "family": None, "variations": []}

        variations = []
        for entry in entries:
            detail = _entry_to_dict(entry)
            detail["fun_fact"] = entry.fun_fact
            detail["famous_games"] = list(entry.famous_games)
            detail["wiki_url"] = entry.wiki_url
            variations.append(detail)
        return {"eco": eco, "family": entries[0].family, "variations": variations}

    @mcp.tool()
    def opening_continuations(moves: list[str]) -> dict:
        """List named lines reachable within 4 plies of the given moves.

        Args:
            moves: SAN moves played so far.

        Returns:
            Dict with continuations list (eco, name, next_moves).
        """
        continuations = book.get_continuations(moves)
        return {"continuations": continuations, "total": len(continuations)}
