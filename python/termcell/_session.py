"""Session: the formula engine behind one open sheet.

A Session owns the sheet, the dependency graph, the recalculator and the
undo history.  Every mutating call compiles all of its input first, so a
FormulaError leaves the session exactly as it was; once everything
compiles the edit is applied, recalculated and recorded as one undo entry.

Usage::

    session = Session()
    session.set_cell("A1", "=MEAN(1,2,3)+MEAN(4,5,6)")
    session.value("A1")          # 7.0
    session.rpn("A1")            # "1 2 3 MEAN 4 5 6 MEAN +"
    session.set_cell("B1", "=A1/0")
    session.display("B1")        # "#DIV/0!"
    session.undo()
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from termcell._address import CellAddress, CellRange, as_address
from termcell._config import Settings, get_settings
from termcell._history import CellSnapshot, History, UndoEntry
from termcell._selection import Selection, highlight_references, selection, suggest_functions
from termcell._sheet import Cell, Sheet
from termcell.calc._evaluator import Evaluator
from termcell.calc._functions import FunctionRegistry, to_text
from termcell.calc._graph import DependencyGraph
from termcell.calc._lexer import FormulaError
from termcell.calc._parser import compile_formula
from termcell.calc._protocol import RecalcResult
from termcell.calc._recalc import Recalculator

logger = logging.getLogger(__name__)

_INT_LITERAL_RE = re.compile(r"^[+-]?[0-9]+$")
_FLOAT_LITERAL_RE = re.compile(r"^[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?$")


def parse_literal(text: str) -> int | float | bool | str:
    """Value of non-formula entry text: a number, a boolean, or the text itself."""
    stripped = text.strip()
    if _INT_LITERAL_RE.match(stripped):
        try:
            return int(stripped)
        except ValueError:
            # Too many digits for an int; keep what was typed.
            return text
    if _FLOAT_LITERAL_RE.match(stripped):
        value = float(stripped)
        return value if math.isfinite(value) else text
    if stripped.upper() == "TRUE":
        return True
    if stripped.upper() == "FALSE":
        return False
    return text


class Session:
    """Explicit engine context for one sheet; satisfies ``SpreadsheetEngine``."""

    def __init__(
        self,
        settings: Settings | None = None,
        registry: FunctionRegistry | None = None,
    ) -> None:
        self.settings = settings if settings is not None else get_settings()
        self.registry = registry if registry is not None else FunctionRegistry()
        self.sheet = Sheet(self.settings.max_rows, self.settings.max_cols)
        self.graph = DependencyGraph()
        self.evaluator = Evaluator(self.registry, self.sheet)
        self.recalculator = Recalculator(self.sheet, self.graph, self.evaluator)
        self.history = History(self.settings.history_depth)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def set_cell(self, ref: CellAddress | str, text: str) -> RecalcResult:
        """Commit *text* to a cell; ``""`` clears it.

        Raises FormulaError (and changes nothing) if a formula does not compile.
        """
        return self._commit([self._prepare(as_address(ref), text)])

    def clear_cell(self, ref: CellAddress | str) -> RecalcResult:
        return self.set_cell(ref, "")

    def set_cells(self, entries: Mapping[CellAddress | str, str]) -> RecalcResult:
        """Commit several cells as one atomic, singly-undoable edit."""
        return self._commit([self._prepare(as_address(ref), text) for ref, text in entries.items()])

    def paste(self, top_left: CellAddress | str, rows: Sequence[Sequence[str]]) -> RecalcResult:
        """Write a block of text row by row starting at *top_left*, as one edit."""
        origin = as_address(top_left)
        snapshots = [
            self._prepare(origin.offset(c, r), text)
            for r, row in enumerate(rows)
            for c, text in enumerate(row)
        ]
        return self._commit(snapshots)

    def undo(self) -> RecalcResult | None:
        """Restore the cells of the latest edit; None if there is nothing to undo."""
        entry = self.history.undo()
        if entry is None:
            return None
        return self._replay(entry.before)

    def redo(self) -> RecalcResult | None:
        """Re-apply the latest undone edit; None if there is nothing to redo."""
        entry = self.history.redo()
        if entry is None:
            return None
        return self._replay(entry.after)

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def _prepare(self, addr: CellAddress, text: str) -> CellSnapshot:
        """Compile entry text into the snapshot it would leave behind."""
        if not self.sheet.in_bounds(addr):
            raise ValueError(f"{addr} is outside the sheet")
        if text == "":
            return CellSnapshot(addr, None)
        if not text.startswith("="):
            return CellSnapshot(addr, text)
        try:
            compiled = compile_formula(text, self.registry)
        except FormulaError as e:
            logger.debug("Rejected formula for %s: %s", addr, e)
            raise
        precedents = compiled.precedents(self.sheet.max_cols, self.sheet.max_rows)
        return CellSnapshot(addr, text, compiled, precedents)

    def _snapshot(self, addr: CellAddress) -> CellSnapshot:
        cell = self.sheet.get(addr)
        if cell is None:
            return CellSnapshot(addr, None)
        return CellSnapshot(addr, cell.source, cell.formula, cell.precedents)

    def _commit(self, snapshots: Iterable[CellSnapshot]) -> RecalcResult:
        # Later writes to the same address win.
        latest = {s.address: s for s in snapshots}
        after = tuple(
            s for s in latest.values() if s.source != self._snapshot(s.address).source
        )
        if not after:
            return RecalcResult(edited=())
        before = tuple(self._snapshot(s.address) for s in after)
        result = self._replay(after)
        self.history.push(UndoEntry(before, after))
        return result

    def _replay(self, snapshots: tuple[CellSnapshot, ...]) -> RecalcResult:
        previous = {s.address: self.sheet.read(s.address) for s in snapshots}
        for snap in snapshots:
            self._apply(snap)
        return self.recalculator.recalculate([s.address for s in snapshots], previous)

    def _apply(self, snap: CellSnapshot) -> None:
        addr = snap.address
        if snap.source is None:
            self.sheet.clear(addr)
            self.graph.remove(addr)
        elif snap.formula is None:
            self.sheet.set(addr, Cell(snap.source, value=parse_literal(snap.source)))
            self.graph.remove(addr)
        else:
            self.sheet.set(
                addr, Cell(snap.source, snap.formula, dirty=True, precedents=snap.precedents),
            )
            self.graph.set_precedents(addr, snap.precedents)

    # ------------------------------------------------------------------
    # Queries (cached state only)
    # ------------------------------------------------------------------

    def value(self, ref: CellAddress | str) -> Any:
        """Cached value of a cell; None for a blank cell."""
        return self.sheet.read(as_address(ref))

    def display(self, ref: CellAddress | str) -> str:
        return to_text(self.value(ref))

    def source(self, ref: CellAddress | str) -> str:
        """The text as entered, or ``""`` for a blank cell."""
        cell = self.sheet.get(as_address(ref))
        return "" if cell is None else cell.source

    def is_dirty(self, ref: CellAddress | str) -> bool:
        cell = self.sheet.get(as_address(ref))
        return cell is not None and cell.dirty

    def precedents(self, ref: CellAddress | str) -> list[CellAddress]:
        cell = self.sheet.get(as_address(ref))
        return [] if cell is None else sorted(cell.precedents)

    def dependents(self, ref: CellAddress | str) -> list[CellAddress]:
        return sorted(self.graph.dependents.get(as_address(ref), ()))

    def rpn(self, ref: CellAddress | str) -> str | None:
        """RPN debug text of a formula cell, None for other cells."""
        cell = self.sheet.get(as_address(ref))
        if cell is None or cell.formula is None:
            return None
        return cell.formula.rpn_text()

    def highlight(self, text: str) -> list[CellAddress]:
        return highlight_references(text, self.registry, self.sheet.max_cols, self.sheet.max_rows)

    def select(self, start: CellAddress | str, end: CellAddress | str) -> Selection:
        return selection(start, end)

    def suggest(self, fragment: str) -> list[str]:
        return suggest_functions(fragment, self.registry)

    def copy(self, cell_range: CellRange | str) -> list[list[str]]:
        """Display text of a block, one list per row."""
        if isinstance(cell_range, str):
            cell_range = CellRange.parse(cell_range)
        n_rows, n_cols = cell_range.shape
        start = cell_range.start
        return [
            [self.display(start.offset(c, r)) for c in range(n_cols)]
            for r in range(n_rows)
        ]
