"""Sparse cell storage for a single sheet."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from termcell._address import CellAddress, CellRange
from termcell.calc._functions import ExcelError, RangeValue
from termcell.calc._parser import CompiledFormula

# Grid limits of the classic XLSX format.
MAX_ROWS = 1 << 20
MAX_COLS = 1 << 14


@dataclass
class Cell:
    """One written cell: what was typed, its compiled form and its cached value."""

    source: str
    formula: CompiledFormula | None = None
    value: Any = None
    dirty: bool = False
    precedents: frozenset[CellAddress] = field(default_factory=frozenset)

    @property
    def is_formula(self) -> bool:
        return self.formula is not None


class Sheet:
    """Mapping of CellAddress to Cell; absent addresses are blank.

    Also the evaluator's value source: ``read`` and ``read_range`` return
    cached values and ``#REF!`` for anything outside the grid.
    """

    __slots__ = ("max_rows", "max_cols", "_cells")

    def __init__(self, max_rows: int = MAX_ROWS, max_cols: int = MAX_COLS) -> None:
        self.max_rows = max_rows
        self.max_cols = max_cols
        self._cells: dict[CellAddress, Cell] = {}

    def in_bounds(self, address: CellAddress) -> bool:
        return address.row < self.max_rows and address.col < self.max_cols

    def get(self, address: CellAddress) -> Cell | None:
        return self._cells.get(address)

    def set(self, address: CellAddress, cell: Cell) -> None:
        if not self.in_bounds(address):
            raise ValueError(f"{address} is outside the sheet")
        self._cells[address] = cell

    def clear(self, address: CellAddress) -> Cell | None:
        """Remove a cell, returning what was there."""
        return self._cells.pop(address, None)

    def __contains__(self, address: object) -> bool:
        return address in self._cells

    def __iter__(self) -> Iterator[CellAddress]:
        return iter(sorted(self._cells))

    def __len__(self) -> int:
        return len(self._cells)

    def formula_cells(self) -> list[CellAddress]:
        return sorted(a for a, c in self._cells.items() if c.formula is not None)

    # ------------------------------------------------------------------
    # Value source
    # ------------------------------------------------------------------

    def read(self, address: CellAddress) -> Any:
        if not self.in_bounds(address):
            return ExcelError.REF
        cell = self._cells.get(address)
        return None if cell is None else cell.value

    def read_range(self, cell_range: CellRange) -> RangeValue | ExcelError:
        if not self.in_bounds(cell_range.end):
            return ExcelError.REF
        n_rows, n_cols = cell_range.shape
        values = [self.read(addr) for addr in cell_range]
        return RangeValue(values, n_rows, n_cols)
