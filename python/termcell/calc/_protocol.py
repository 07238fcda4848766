"""SpreadsheetEngine protocol and result dataclasses."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from termcell._address import CellAddress, CellRange

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from termcell._selection import Selection


@dataclass(frozen=True)
class CellDelta:
    """A single cell's value change from recalculation."""

    address: CellAddress
    old_value: Any
    new_value: Any
    source: str | None = None  # the entered text that produced new_value


@dataclass(frozen=True)
class RecalcResult:
    """Result of one committed edit (or undo/redo replay)."""

    edited: tuple[CellAddress, ...]  # cells whose content was written
    recomputed: tuple[CellAddress, ...] = ()  # formula cells, in evaluation order
    deltas: tuple[CellDelta, ...] = ()  # cells whose value changed
    cycles: tuple[frozenset[CellAddress], ...] = ()
    max_chain_depth: int = 0  # longest dependency chain from the edited cells
    bounds: CellRange | None = None  # edited plus changed cells

    @property
    def changed(self) -> tuple[CellAddress, ...]:
        return tuple(d.address for d in self.deltas)

    @property
    def has_cycles(self) -> bool:
        return bool(self.cycles)


@runtime_checkable
class SpreadsheetEngine(Protocol):
    """What a terminal UI needs from the formula engine.

    The UI only ever reads cached values; every mutating call finishes its
    recalculation before returning.
    """

    def set_cell(self, ref: CellAddress | str, text: str) -> RecalcResult:
        """Commit raw text to a cell, raising FormulaError if it does not compile."""
        ...

    def set_cells(self, entries: Mapping[CellAddress | str, str]) -> RecalcResult:
        """Commit several cells as one undoable edit."""
        ...

    def paste(self, top_left: CellAddress | str, rows: Sequence[Sequence[str]]) -> RecalcResult:
        """Commit a block of text anchored at *top_left* as one undoable edit."""
        ...

    def clear_cell(self, ref: CellAddress | str) -> RecalcResult:
        """Empty a cell."""
        ...

    def undo(self) -> RecalcResult | None:
        """Revert the most recent edit; None when there is nothing to undo."""
        ...

    def redo(self) -> RecalcResult | None:
        """Re-apply the most recently undone edit; None when there is nothing to redo."""
        ...

    def value(self, ref: CellAddress | str) -> Any:
        """Cached computed value of a cell."""
        ...

    def display(self, ref: CellAddress | str) -> str:
        """Text to render for a cell."""
        ...

    def highlight(self, text: str) -> list[CellAddress]:
        """Addresses an in-progress formula refers to."""
        ...

    def select(self, start: CellAddress | str, end: CellAddress | str) -> Selection:
        """Normalized bounds and members of a user selection."""
        ...

    def dependents(self, ref: CellAddress | str) -> Iterable[CellAddress]:
        """Cells whose formulas read *ref*."""
        ...
