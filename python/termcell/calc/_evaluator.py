"""Evaluator: a stack machine over compiled RPN instructions.

Cell references are resolved when the formula runs, not when it is parsed,
so a reference always sees the referenced cell's latest recalculated value.
Errors are values: the first error operand of any operator or function
becomes its result.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Protocol

from termcell._address import CellAddress, CellRange
from termcell.calc._functions import (
    ExcelError,
    FunctionRegistry,
    RangeValue,
    first_error,
    power,
    to_number,
    to_text,
)
from termcell.calc._parser import CompiledFormula, Instruction, OpCode

logger = logging.getLogger(__name__)


class ValueSource(Protocol):
    """Where the evaluator reads cell values from."""

    def read(self, address: CellAddress) -> Any:
        """Current value of one cell; ``#REF!`` when out of bounds."""
        ...

    def read_range(self, cell_range: CellRange) -> RangeValue | ExcelError:
        """Current values of a block of cells; ``#REF!`` when out of bounds."""
        ...


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


def _checked(result: int | float | ExcelError) -> int | float | ExcelError:
    if isinstance(result, float) and (math.isinf(result) or math.isnan(result)):
        return ExcelError.NUM
    return result


def _binary_op(left: Any, op: str, right: Any) -> Any:
    """Evaluate an arithmetic, concatenation or comparison operator."""
    # Error propagation: if either operand is an error, propagate it
    err = first_error(left, right)
    if err is not None:
        return err
    # Applying an operator across a range is not supported
    if isinstance(left, RangeValue) or isinstance(right, RangeValue):
        return ExcelError.VALUE
    if op == '&':
        return to_text(left) + to_text(right)
    if op in ('=', '<>', '<', '>', '<=', '>='):
        return _compare(left, right, op)
    try:
        a = to_number(left)
        b = to_number(right)
    except ValueError:
        return ExcelError.VALUE
    if op == '+':
        return _checked(a + b)
    if op == '-':
        return _checked(a - b)
    if op == '*':
        return _checked(a * b)
    if op == '/':
        return ExcelError.DIV0 if b == 0 else _checked(a / b)
    if op == '^':
        return _checked(power(a, b))
    return ExcelError.VALUE


# Numbers sort before text, text before booleans.
_RANK_NUMBER, _RANK_TEXT, _RANK_BOOL = 0, 1, 2


def _rank(val: Any) -> int:
    if isinstance(val, bool):
        return _RANK_BOOL
    if isinstance(val, str):
        return _RANK_TEXT
    return _RANK_NUMBER


def _blank_like(other: Any) -> Any:
    if isinstance(other, bool):
        return False
    if isinstance(other, str):
        return ""
    return 0


def _compare(left: Any, right: Any, op: str) -> bool:
    """Evaluate a comparison operation.

    Numbers compare numerically, text case-insensitively (matching Excel),
    and mixed types order as number < text < boolean.  A blank operand takes
    the type of the other side.
    """
    if left is None:
        left = _blank_like(right)
    if right is None:
        right = _blank_like(left)
    lr, rr = _rank(left), _rank(right)
    if lr != rr:
        cmp = -1 if lr < rr else 1
    else:
        if lr == _RANK_TEXT:
            left, right = left.casefold(), right.casefold()
        cmp = (left > right) - (left < right)
    if op == '=':
        return cmp == 0
    if op == '<>':
        return cmp != 0
    if op == '<':
        return cmp < 0
    if op == '>':
        return cmp > 0
    if op == '<=':
        return cmp <= 0
    return cmp >= 0


def _negate(val: Any) -> Any:
    if isinstance(val, ExcelError):
        return val
    if isinstance(val, RangeValue):
        return first_error(val) or ExcelError.VALUE
    try:
        return -to_number(val)
    except ValueError:
        return ExcelError.VALUE


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class Evaluator:
    """Runs compiled formulas against a value source.

    Usage::

        evaluator = Evaluator(FunctionRegistry(), sheet)
        value = evaluator.evaluate(compile_formula("=MEAN(1,2,3)+A1"))
    """

    def __init__(self, registry: FunctionRegistry, source: ValueSource) -> None:
        self._functions = registry
        self._source = source

    def evaluate(self, formula: CompiledFormula) -> Any:
        """Evaluate a compiled formula to a scalar value or ExcelError."""
        return self.run(formula.rpn)

    def run(self, rpn: tuple[Instruction, ...] | list[Instruction]) -> Any:
        stack: list[Any] = []
        for ins in rpn:
            op = ins.opcode
            if op is OpCode.LITERAL:
                stack.append(ins.value)
            elif op is OpCode.REF:
                stack.append(self._source.read(ins.value))
            elif op is OpCode.RANGE:
                stack.append(self._source.read_range(ins.value))
            elif op is OpCode.UNARY:
                stack.append(_negate(stack.pop()))
            elif op is OpCode.BINARY:
                right = stack.pop()
                left = stack.pop()
                stack.append(_binary_op(left, ins.value, right))
            else:
                args = stack[len(stack) - ins.arity:]
                del stack[len(stack) - ins.arity:]
                stack.append(self._call(ins.value, args))

        if len(stack) != 1:
            raise RuntimeError(f"Malformed RPN program, stack holds {len(stack)} values")
        return self._finish(stack[0])

    @staticmethod
    def _finish(result: Any) -> Any:
        # A bare range (``=A1:B2``) has no single value.
        if isinstance(result, RangeValue):
            return first_error(result) or ExcelError.VALUE
        # A bare reference to a blank cell displays as 0.
        if result is None:
            return 0
        return result

    def _call(self, name: str, args: list[Any]) -> Any:
        """Evaluate a function call with resolved arguments."""
        spec = self._functions.get(name)
        if spec is None:
            logger.debug("Unsupported function: %s", name)
            return ExcelError.NAME
        if not spec.accepts(len(args)):
            return ExcelError.VALUE
        if spec.propagate_errors:
            err = first_error(*args)
            if err is not None:
                return err
        try:
            result = spec(args)
        except ZeroDivisionError:
            return ExcelError.DIV0
        except ArithmeticError as e:
            logger.debug("Error evaluating %s: %s", name, e)
            return ExcelError.NUM
        except Exception as e:
            logger.debug("Error evaluating %s: %s", name, e)
            return ExcelError.VALUE
        if isinstance(result, float):
            return _checked(result)
        return result
