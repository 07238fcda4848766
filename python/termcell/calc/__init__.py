"""termcell.calc - Formula compiler, evaluator and recalculation engine."""

from termcell.calc._evaluator import Evaluator, ValueSource
from termcell.calc._functions import (
    ExcelError,
    FunctionRegistry,
    FunctionSpec,
    RangeValue,
    is_error,
    is_supported,
)
from termcell.calc._graph import DependencyGraph
from termcell.calc._lexer import FormulaError, Token, TokenType, balance_parens, tokenize
from termcell.calc._parser import (
    BinaryOp,
    CellRef,
    CompiledFormula,
    FormulaParser,
    FunctionCall,
    Instruction,
    Literal,
    OpCode,
    RangeRef,
    UnaryOp,
    all_references,
    collect_references,
    compile_formula,
    expand_range,
)
from termcell.calc._protocol import CellDelta, RecalcResult, SpreadsheetEngine
from termcell.calc._recalc import Recalculator

__all__ = [
    "BinaryOp",
    "CellDelta",
    "CellRef",
    "CompiledFormula",
    "DependencyGraph",
    "Evaluator",
    "ExcelError",
    "FormulaError",
    "FormulaParser",
    "FunctionCall",
    "FunctionRegistry",
    "FunctionSpec",
    "Instruction",
    "Literal",
    "OpCode",
    "RangeRef",
    "RangeValue",
    "RecalcResult",
    "Recalculator",
    "SpreadsheetEngine",
    "Token",
    "TokenType",
    "UnaryOp",
    "ValueSource",
    "all_references",
    "balance_parens",
    "collect_references",
    "compile_formula",
    "expand_range",
    "is_error",
    "is_supported",
    "tokenize",
]
