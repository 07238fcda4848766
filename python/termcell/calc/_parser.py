"""Formula compiler: tokens -> RPN (shunting-yard) -> AST -> instructions.

The shunting-yard pass produces a postfix token stream honoring Excel
operator precedence.  The AST is rebuilt from that stream (which is where
ranges and function arities are validated), and the final instruction list
is the post-order walk of the AST, so the tree and the RPN always agree.

Precedence (lowest to highest)::

    1. comparison      (=, <>, <, >, <=, >=)
    2. concatenation   (&)
    3. additive        (+, -)
    4. multiplicative  (*, /)
    5. exponent        (^, right-associative)
    6. unary minus
    7. range           (:)
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from termcell._address import CellAddress, CellRange
from termcell.calc._functions import FunctionRegistry
from termcell.calc._lexer import FormulaError, Token, TokenType, tokenize

# ---------------------------------------------------------------------------
# AST nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Literal:
    value: float | int | str | bool


@dataclass(frozen=True)
class CellRef:
    address: CellAddress
    # Reserved for ``$`` semantics; references are always relative for now.
    absolute: bool = False


@dataclass(frozen=True)
class RangeRef:
    range: CellRange
    absolute: bool = False


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: Node


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: Node
    right: Node


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: tuple[Node, ...]


Node = Union[Literal, CellRef, RangeRef, UnaryOp, BinaryOp, FunctionCall]

# ---------------------------------------------------------------------------
# RPN instructions
# ---------------------------------------------------------------------------


class OpCode(Enum):
    LITERAL = "literal"
    REF = "ref"
    RANGE = "range"
    UNARY = "unary"
    BINARY = "binary"
    CALL = "call"


@dataclass(frozen=True)
class Instruction:
    opcode: OpCode
    value: Any
    arity: int = 0

    def __str__(self) -> str:
        if self.opcode is OpCode.LITERAL:
            return format_literal(self.value)
        if self.opcode is OpCode.RANGE:
            return f"{self.value.start} {self.value.end} :"
        if self.opcode is OpCode.UNARY:
            return "NEG"
        return str(self.value)


def format_literal(value: Any) -> str:
    """Canonical text for a literal in the RPN debug form."""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, str):
        return '"' + value.replace('"', '""') + '"'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ---------------------------------------------------------------------------
# Shunting-yard
# ---------------------------------------------------------------------------

_NEG = "NEG"

# op -> (precedence, right_associative)
_BINARY_OPS: dict[str, tuple[int, bool]] = {
    "=": (1, False),
    "<>": (1, False),
    "<": (1, False),
    ">": (1, False),
    "<=": (1, False),
    ">=": (1, False),
    "&": (2, False),
    "+": (3, False),
    "-": (3, False),
    "*": (4, False),
    "/": (4, False),
    "^": (5, True),
    ":": (7, False),
}
_UNARY_PRECEDENCE = 6


@dataclass
class _Frame:
    """An open parenthesis on the operator stack."""

    token: Token
    function: Token | None
    arg_count: int = 0
    empty: bool = True


@dataclass(frozen=True)
class _Postfix:
    token: Token
    op: str
    arity: int = 0


def _precedence(item: Any) -> int:
    if isinstance(item, _Postfix):
        if item.op == _NEG:
            return _UNARY_PRECEDENCE
        return _BINARY_OPS[item.op][0]
    return -1


def to_postfix(tokens: list[Token]) -> list[_Postfix]:
    """Reorder tokens into postfix order using the shunting-yard algorithm.

    Tracks whether an operand or an operator is expected next, which is how
    missing operands and trailing tokens are detected.
    """
    output: list[_Postfix] = []
    stack: list[_Postfix | _Frame] = []
    pending_function: Token | None = None
    expect_operand = True

    def pop_until_frame() -> _Frame | None:
        while stack:
            top = stack.pop()
            if isinstance(top, _Frame):
                return top
            output.append(top)
        return None

    for tok in tokens:
        kind = tok.type

        if pending_function is not None and kind is not TokenType.LPAREN:
            raise FormulaError(f"Expected '(' after {pending_function.text}", tok.offset)

        if kind in (TokenType.NUMBER, TokenType.STRING, TokenType.BOOLEAN, TokenType.REFERENCE):
            if not expect_operand:
                raise FormulaError(f"Unexpected {tok.text!r}", tok.offset)
            output.append(_Postfix(tok, tok.text))
            if stack and isinstance(stack[-1], _Frame):
                stack[-1].empty = False
            expect_operand = False

        elif kind is TokenType.FUNCTION:
            if not expect_operand:
                raise FormulaError(f"Unexpected function {tok.text}", tok.offset)
            if stack and isinstance(stack[-1], _Frame):
                stack[-1].empty = False
            pending_function = tok

        elif kind is TokenType.LPAREN:
            if not expect_operand:
                raise FormulaError("Unexpected '('", tok.offset)
            if stack and isinstance(stack[-1], _Frame):
                stack[-1].empty = False
            stack.append(_Frame(tok, pending_function))
            pending_function = None
            expect_operand = True

        elif kind is TokenType.RPAREN:
            frame_is_empty_call = (
                bool(stack)
                and isinstance(stack[-1], _Frame)
                and stack[-1].function is not None
                and stack[-1].empty
            )
            if expect_operand and not frame_is_empty_call:
                raise FormulaError("Missing operand before ')'", tok.offset)
            frame = pop_until_frame()
            if frame is None:
                raise FormulaError("Unbalanced ')'", tok.offset)
            if frame.function is not None:
                arity = 0 if frame.empty else frame.arg_count + 1
                output.append(_Postfix(frame.function, frame.function.text, arity))
            expect_operand = False

        elif kind is TokenType.COMMA:
            if expect_operand:
                raise FormulaError("Missing argument before ','", tok.offset)
            while stack and not isinstance(stack[-1], _Frame):
                output.append(stack.pop())  # type: ignore[arg-type]
            if not stack or stack[-1].function is None:  # type: ignore[union-attr]
                raise FormulaError("Argument separator outside a function call", tok.offset)
            stack[-1].arg_count += 1  # type: ignore[union-attr]
            expect_operand = True

        else:  # OPERATOR or COLON
            op = tok.text
            if expect_operand:
                if op in ("+", "-"):
                    if stack and isinstance(stack[-1], _Frame):
                        stack[-1].empty = False
                    # Unary plus is a no-op; prefix minus never pops the stack.
                    if op == "-":
                        stack.append(_Postfix(tok, _NEG))
                    continue
                raise FormulaError(f"Missing operand before {op!r}", tok.offset)
            prec, right_assoc = _BINARY_OPS[op]
            while stack and isinstance(stack[-1], _Postfix):
                top_prec = _precedence(stack[-1])
                if top_prec > prec or (top_prec == prec and not right_assoc):
                    output.append(stack.pop())  # type: ignore[arg-type]
                else:
                    break
            stack.append(_Postfix(tok, op))
            expect_operand = True

    if pending_function is not None:
        raise FormulaError(f"Expected '(' after {pending_function.text}", pending_function.offset)
    if expect_operand:
        if not tokens:
            raise FormulaError("Empty formula", None)
        raise FormulaError("Formula ends unexpectedly", tokens[-1].offset)
    while stack:
        top = stack.pop()
        if isinstance(top, _Frame):
            raise FormulaError("Unbalanced '('", top.token.offset)
        output.append(top)
    return output


# ---------------------------------------------------------------------------
# AST reconstruction
# ---------------------------------------------------------------------------

_INT_RE = re.compile(r"^\d+$")


def _literal_from_token(tok: Token) -> Literal:
    if tok.type is TokenType.NUMBER:
        if _INT_RE.match(tok.text):
            try:
                return Literal(int(tok.text))
            except ValueError:
                raise FormulaError("Number literal is too long", tok.offset) from None
        return Literal(float(tok.text))
    if tok.type is TokenType.STRING:
        return Literal(tok.text[1:-1].replace('""', '"'))
    return Literal(tok.text == "TRUE")


def build_ast(postfix: list[_Postfix], registry: FunctionRegistry) -> Node:
    """Rebuild the expression tree from postfix order, validating as it goes."""
    stack: list[Node] = []
    for item in postfix:
        tok = item.token
        if tok.type is TokenType.REFERENCE:
            try:
                stack.append(CellRef(CellAddress.parse(tok.text)))
            except ValueError:
                raise FormulaError(f"Invalid reference {tok.text}", tok.offset) from None
        elif tok.type in (TokenType.NUMBER, TokenType.STRING, TokenType.BOOLEAN):
            stack.append(_literal_from_token(tok))
        elif tok.type is TokenType.FUNCTION:
            spec = registry.get(item.op)
            if spec is None:
                raise FormulaError(f"Unknown function {item.op}", tok.offset)
            if not spec.accepts(item.arity):
                raise FormulaError(
                    f"{item.op} expects {spec.arity_text()}, got {item.arity}", tok.offset,
                )
            args = tuple(stack[len(stack) - item.arity:])
            del stack[len(stack) - item.arity:]
            stack.append(FunctionCall(item.op, args))
        elif item.op == _NEG:
            stack.append(UnaryOp("-", stack.pop()))
        else:
            right = stack.pop()
            left = stack.pop()
            if item.op == ":":
                if not isinstance(left, CellRef) or not isinstance(right, CellRef):
                    raise FormulaError("Range operator requires two cell references", tok.offset)
                stack.append(RangeRef(CellRange(left.address, right.address)))
            else:
                stack.append(BinaryOp(item.op, left, right))
    if len(stack) != 1:
        raise FormulaError("Malformed expression", None)
    return stack[0]


def emit_rpn(node: Node) -> list[Instruction]:
    """Post-order walk of the AST into executable instructions."""
    out: list[Instruction] = []

    def walk(n: Node) -> None:
        if isinstance(n, Literal):
            out.append(Instruction(OpCode.LITERAL, n.value))
        elif isinstance(n, CellRef):
            out.append(Instruction(OpCode.REF, n.address))
        elif isinstance(n, RangeRef):
            out.append(Instruction(OpCode.RANGE, n.range))
        elif isinstance(n, UnaryOp):
            walk(n.operand)
            out.append(Instruction(OpCode.UNARY, n.op))
        elif isinstance(n, BinaryOp):
            walk(n.left)
            walk(n.right)
            out.append(Instruction(OpCode.BINARY, n.op))
        else:
            for arg in n.args:
                walk(arg)
            out.append(Instruction(OpCode.CALL, n.name, len(n.args)))

    walk(node)
    return out


# ---------------------------------------------------------------------------
# Reference resolution
# ---------------------------------------------------------------------------


def reference_targets(node: Node) -> list[CellAddress | CellRange]:
    """Unique cell and range references in left-to-right order (unexpanded)."""
    found: list[CellAddress | CellRange] = []
    seen: set[CellAddress | CellRange] = set()
    stack: list[Node] = [node]
    while stack:
        n = stack.pop()
        target: CellAddress | CellRange | None = None
        if isinstance(n, CellRef):
            target = n.address
        elif isinstance(n, RangeRef):
            target = n.range
        elif isinstance(n, UnaryOp):
            stack.append(n.operand)
        elif isinstance(n, BinaryOp):
            stack.extend((n.right, n.left))
        elif isinstance(n, FunctionCall):
            stack.extend(reversed(n.args))
        if target is not None and target not in seen:
            seen.add(target)
            found.append(target)
    return found


def flatten_targets(
    targets: Iterable[CellAddress | CellRange],
    max_cols: int | None = None,
    max_rows: int | None = None,
) -> list[CellAddress]:
    """Expand ranges into member addresses, dropping anything out of bounds.

    Ranges are clipped to the bounds before expansion.
    """
    refs: list[CellAddress] = []
    seen: set[CellAddress] = set()

    def in_bounds(addr: CellAddress) -> bool:
        return (max_cols is None or addr.col < max_cols) and (
            max_rows is None or addr.row < max_rows
        )

    for target in targets:
        if isinstance(target, CellAddress):
            members: Iterable[CellAddress] = [target] if in_bounds(target) else []
        else:
            if not in_bounds(target.start):
                continue
            end_col = target.end.col if max_cols is None else min(target.end.col, max_cols - 1)
            end_row = target.end.row if max_rows is None else min(target.end.row, max_rows - 1)
            members = CellRange(target.start, CellAddress(end_col, end_row))
        for addr in members:
            if addr not in seen:
                seen.add(addr)
                refs.append(addr)
    return refs


def collect_references(
    node: Node, max_cols: int | None = None, max_rows: int | None = None,
) -> list[CellAddress]:
    """Flat precedent list for an AST, ranges expanded row-major."""
    return flatten_targets(reference_targets(node), max_cols, max_rows)


def expand_range(range_ref: str) -> list[str]:
    """Expand a range like "A1:B2" into ["A1", "B1", "A2", "B2"].

    Inverted ranges are normalized first.
    """
    return [str(addr) for addr in CellRange.parse(range_ref.replace("$", ""))]


def scan_references(formula: str) -> list[CellAddress | CellRange]:
    """Best-effort reference extraction straight from the token stream.

    Works on incomplete formulas: tokenizing stops at the first bad
    character and no grammar is enforced.
    """
    tokens = tokenize(formula, strict=False)
    found: list[CellAddress | CellRange] = []
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if tok.type is TokenType.REFERENCE:
            try:
                start = CellAddress.parse(tok.text)
            except ValueError:
                i += 1
                continue
            if (
                i + 2 < len(tokens)
                and tokens[i + 1].type is TokenType.COLON
                and tokens[i + 2].type is TokenType.REFERENCE
            ):
                try:
                    end = CellAddress.parse(tokens[i + 2].text)
                except ValueError:
                    end = None
                if end is not None:
                    found.append(CellRange(start, end))
                    i += 3
                    continue
            found.append(start)
        i += 1
    return found


def all_references(formula: str) -> list[str]:
    """All cell references in a formula as A1 text, ranges expanded."""
    return [str(a) for a in flatten_targets(scan_references(formula))]


# ---------------------------------------------------------------------------
# Compiled formula
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompiledFormula:
    """Parsed form of one formula: source text, AST, RPN and references."""

    source: str
    ast: Node
    rpn: tuple[Instruction, ...]
    references: tuple[CellAddress | CellRange, ...]

    def rpn_text(self) -> str:
        return " ".join(str(ins) for ins in self.rpn)

    def precedents(
        self, max_cols: int | None = None, max_rows: int | None = None,
    ) -> frozenset[CellAddress]:
        return frozenset(flatten_targets(self.references, max_cols, max_rows))


def compile_formula(formula: str, registry: FunctionRegistry | None = None) -> CompiledFormula:
    """Compile formula text (with or without the leading ``=``).

    Raises FormulaError when the text is malformed or names a function the
    registry does not know.
    """
    reg = registry if registry is not None else FunctionRegistry()
    tokens = tokenize(formula)
    ast = build_ast(to_postfix(tokens), reg)
    return CompiledFormula(
        source=formula,
        ast=ast,
        rpn=tuple(emit_rpn(ast)),
        references=tuple(reference_targets(ast)),
    )


class FormulaParser:
    """Compiles formulas against one function registry."""

    def __init__(self, registry: FunctionRegistry | None = None) -> None:
        self.registry = registry if registry is not None else FunctionRegistry()

    def compile(self, formula: str) -> CompiledFormula:
        return compile_formula(formula, self.registry)

    def parse_refs(self, formula: str) -> list[str]:
        """Extract all cell references from a formula (always works)."""
        return all_references(formula)
