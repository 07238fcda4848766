"""Formula tokenizer: turns formula text into a flat token stream."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class FormulaError(ValueError):
    """Formula text could not be compiled.

    ``offset`` is the character position in the original text (including a
    leading ``=``) where the problem was detected, or None if unknown.
    """

    def __init__(self, message: str, offset: int | None = None) -> None:
        self.message = message
        self.offset = offset
        if offset is None:
            super().__init__(message)
        else:
            super().__init__(f"{message} (at offset {offset})")


class TokenType(Enum):
    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    REFERENCE = "reference"
    FUNCTION = "function"
    OPERATOR = "operator"
    COLON = "colon"
    COMMA = "comma"
    LPAREN = "lparen"
    RPAREN = "rparen"


@dataclass(frozen=True)
class Token:
    type: TokenType
    text: str
    offset: int


# ---------------------------------------------------------------------------
# Token patterns (tried in order at each position)
# ---------------------------------------------------------------------------

_NUMBER_RE = re.compile(r"(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
_STRING_RE = re.compile(r'"(?:[^"]|"")*"')
# Identifier: letters then digits is a reference; anything else followed by
# "(" is a function name.
_WORD_RE = re.compile(r"\$?[A-Za-z_][A-Za-z0-9_.]*(?:\$?[0-9]+)?")
_REFERENCE_RE = re.compile(r"^\$?([A-Za-z]+)\$?([0-9]+)$")

_DIGITS = "0123456789"
_OPERATORS = ("<=", ">=", "<>", "+", "-", "*", "/", "^", "&", "=", "<", ">")


def tokenize(formula: str, strict: bool = True) -> list[Token]:
    """Split formula text into tokens.

    A leading ``=`` is skipped; offsets still refer to the original text.
    Raises FormulaError on characters that start no valid token or on an
    unterminated string literal.  With ``strict=False`` the tokens read so
    far are returned instead, for half-typed formulas.
    """
    tokens: list[Token] = []
    try:
        _scan(formula, tokens)
    except FormulaError:
        if strict:
            raise
    return tokens


def _scan(formula: str, tokens: list[Token]) -> None:
    pos = 1 if formula.startswith("=") else 0
    length = len(formula)

    while pos < length:
        ch = formula[pos]

        if ch.isspace():
            pos += 1
            continue

        if ch == '"':
            m = _STRING_RE.match(formula, pos)
            if not m:
                raise FormulaError("Unterminated string literal", pos)
            tokens.append(Token(TokenType.STRING, m.group(0), pos))
            pos = m.end()
            continue

        if ch in _DIGITS or (ch == "." and pos + 1 < length and formula[pos + 1] in _DIGITS):
            m = _NUMBER_RE.match(formula, pos)
            assert m is not None
            tokens.append(Token(TokenType.NUMBER, m.group(0), pos))
            pos = m.end()
            continue

        if (ch.isascii() and ch.isalpha()) or ch in "$_":
            m = _WORD_RE.match(formula, pos)
            if not m:
                raise FormulaError(f"Unexpected character {ch!r}", pos)
            word = m.group(0)
            end = m.end()
            # Function names are identifiers directly followed by "(" (spaces allowed)
            look = end
            while look < length and formula[look] == " ":
                look += 1
            if look < length and formula[look] == "(" and "$" not in word:
                tokens.append(Token(TokenType.FUNCTION, word.upper(), pos))
                pos = end
                continue
            if _REFERENCE_RE.match(word):
                tokens.append(Token(TokenType.REFERENCE, word.replace("$", "").upper(), pos))
                pos = end
                continue
            if word.upper() in ("TRUE", "FALSE"):
                tokens.append(Token(TokenType.BOOLEAN, word.upper(), pos))
                pos = end
                continue
            raise FormulaError(f"Unknown name {word!r}", pos)

        if ch == "(":
            tokens.append(Token(TokenType.LPAREN, ch, pos))
            pos += 1
            continue
        if ch == ")":
            tokens.append(Token(TokenType.RPAREN, ch, pos))
            pos += 1
            continue
        if ch == ",":
            tokens.append(Token(TokenType.COMMA, ch, pos))
            pos += 1
            continue
        if ch == ":":
            tokens.append(Token(TokenType.COLON, ch, pos))
            pos += 1
            continue

        for op in _OPERATORS:
            if formula.startswith(op, pos):
                tokens.append(Token(TokenType.OPERATOR, op, pos))
                pos += len(op)
                break
        else:
            raise FormulaError(f"Unexpected character {ch!r}", pos)


def balance_parens(formula: str) -> str:
    """Append the closing parentheses a formula is missing.

    Parentheses inside string literals are ignored. Text with more closing
    than opening parentheses is returned unchanged so the compiler can
    report it.
    """
    depth = 0
    in_string = False
    for ch in formula:
        if ch == '"':
            in_string = not in_string
        elif not in_string:
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
    if depth > 0:
        return formula + ")" * depth
    return formula
