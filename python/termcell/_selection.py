"""Read-only queries for the UI: highlights, selections and editor helpers.

Nothing here mutates engine state.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from termcell._address import CellAddress, CellRange, as_address
from termcell.calc._functions import FunctionRegistry
from termcell.calc._lexer import FormulaError, balance_parens
from termcell.calc._parser import compile_formula, flatten_targets, scan_references

logger = logging.getLogger(__name__)

__all__ = [
    "Selection",
    "balance_parens",
    "current_word",
    "highlight_references",
    "selection",
    "suggest_functions",
]


def highlight_references(
    text: str,
    registry: FunctionRegistry | None = None,
    max_cols: int | None = None,
    max_rows: int | None = None,
) -> list[CellAddress]:
    """Addresses an in-progress formula touches, ranges expanded row-major.

    Literal text highlights nothing.  When the formula does not compile yet
    the references are read straight from the tokens so a half-typed
    formula still highlights what it has so far.
    """
    if not text.startswith("="):
        return []
    try:
        targets = list(compile_formula(text, registry).references)
    except FormulaError as e:
        logger.debug("Highlighting incomplete formula %r: %s", text, e)
        targets = scan_references(text)
    return flatten_targets(targets, max_cols, max_rows)


@dataclass(frozen=True)
class Selection:
    """A user-selected block: normalized bounds and members."""

    range: CellRange
    addresses: tuple[CellAddress, ...]

    @property
    def shape(self) -> tuple[int, int]:
        return self.range.shape

    @property
    def start(self) -> CellAddress:
        return self.range.start

    @property
    def end(self) -> CellAddress:
        return self.range.end


def selection(start: CellAddress | str, end: CellAddress | str | None = None) -> Selection:
    """Normalize a selection dragged from *start* to *end* (either corner order)."""
    first = as_address(start)
    last = first if end is None else as_address(end)
    cell_range = CellRange(first, last)
    return Selection(cell_range, tuple(cell_range))


# ---------------------------------------------------------------------------
# Formula editor helpers
# ---------------------------------------------------------------------------

_TRAILING_WORD_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_.]*$")


def current_word(text: str) -> str:
    """The identifier being typed at the end of *text*, or ``""``."""
    m = _TRAILING_WORD_RE.search(text)
    return m.group(0) if m else ""


def _subsequence_score(candidate: str, search: str) -> int | None:
    """Characters skipped before *search* is matched in order, or None."""
    if not candidate:
        return None
    idx = 0
    skipped = 0
    for ch in candidate:
        if ch == search[idx]:
            idx += 1
            if idx == len(search):
                return skipped
        else:
            skipped += 1
    return None


def suggest_functions(
    fragment: str,
    registry: FunctionRegistry | None = None,
    max_distance: int = 2,
) -> list[str]:
    """Function names matching *fragment* as an in-order subsequence.

    A name scores the number of its characters skipped before the last
    fragment character matched; names scoring above *max_distance* are
    dropped and the rest are sorted best first.
    """
    search = fragment.upper()
    if not search:
        return []
    names = (registry if registry is not None else FunctionRegistry()).supported_functions
    scored: list[tuple[int, str]] = []
    for name in names:
        score = _subsequence_score(name, search)
        if score is not None and score <= max_distance:
            scored.append((score, name))
    scored.sort()
    return [name for _, name in scored]
