"""termcell - the formula engine of a terminal spreadsheet.

Usage::

    from termcell import Session

    session = Session()
    session.set_cell("A1", "10")
    session.set_cell("A2", "=A1*2")
    session.value("A2")            # 20
    session.set_cell("A1", "21")   # A2 is recomputed, nothing else is
    session.undo()

    session.highlight("=SUM(A1:A3")   # [A1, A2, A3] while still typing
"""

import logging

from termcell._address import CellAddress, CellRange, column_index, column_letters
from termcell._config import Settings, configure_logging, get_settings
from termcell._history import CellSnapshot, History, UndoEntry
from termcell._selection import (
    Selection,
    balance_parens,
    current_word,
    highlight_references,
    selection,
    suggest_functions,
)
from termcell._session import Session, parse_literal
from termcell._sheet import Cell, Sheet
from termcell.calc import (
    CellDelta,
    ExcelError,
    FormulaError,
    FunctionRegistry,
    FunctionSpec,
    RecalcResult,
    SpreadsheetEngine,
    compile_formula,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "Cell",
    "CellAddress",
    "CellDelta",
    "CellRange",
    "CellSnapshot",
    "ExcelError",
    "FormulaError",
    "FunctionRegistry",
    "FunctionSpec",
    "History",
    "RecalcResult",
    "Selection",
    "Session",
    "Settings",
    "Sheet",
    "SpreadsheetEngine",
    "UndoEntry",
    "balance_parens",
    "column_index",
    "column_letters",
    "compile_formula",
    "configure_logging",
    "current_word",
    "get_settings",
    "highlight_references",
    "parse_literal",
    "selection",
    "suggest_functions",
]
