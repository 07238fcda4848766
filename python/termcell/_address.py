"""Cell addresses and rectangular ranges in A1 notation."""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from functools import total_ordering

_A1_RE = re.compile(r"^\$?([A-Za-z]+)\$?([0-9]+)$")


def column_index(letters: str) -> int:
    """Convert column letters (``A``, ``BC``, ``XFD``) to a zero-based index."""
    if not letters or not letters.isalpha() or not letters.isascii():
        raise ValueError(f"Invalid column letters: {letters!r}")
    index = 0
    for ch in letters.upper():
        index = index * 26 + (ord(ch) - ord("A") + 1)
    return index - 1


def column_letters(index: int) -> str:
    """Convert a zero-based column index to its letters."""
    if index < 0:
        raise ValueError(f"Column index must be non-negative, got {index}")
    letters: list[str] = []
    n = index + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        letters.append(chr(ord("A") + rem))
    return "".join(reversed(letters))


@total_ordering
@dataclass(frozen=True)
class CellAddress:
    """Zero-based (col, row) cell position.

    Ordering is row-major to match range iteration: ``row`` is compared
    first even though ``col`` is the first constructor argument.
    """

    col: int
    row: int

    def __post_init__(self) -> None:
        if self.col < 0 or self.row < 0:
            raise ValueError(
                f"Cell address must be non-negative, got ({self.col}, {self.row})"
            )

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, CellAddress):
            return NotImplemented
        return (self.row, self.col) < (other.row, other.col)

    @classmethod
    def parse(cls, text: str) -> CellAddress:
        """Parse ``"B3"`` (case-insensitive, ``$`` ignored) into an address."""
        m = _A1_RE.match(text.strip())
        if not m:
            raise ValueError(f"Invalid cell reference: {text!r}")
        row = int(m.group(2))
        if row < 1:
            raise ValueError(f"Invalid cell reference: {text!r}")
        return cls(column_index(m.group(1)), row - 1)

    def offset(self, dcol: int, drow: int) -> CellAddress:
        return CellAddress(self.col + dcol, self.row + drow)

    def __str__(self) -> str:
        return f"{column_letters(self.col)}{self.row + 1}"

    def __repr__(self) -> str:
        return f"CellAddress({self})"


def as_address(ref: CellAddress | str) -> CellAddress:
    if isinstance(ref, CellAddress):
        return ref
    return CellAddress.parse(ref)


@dataclass(frozen=True)
class CellRange:
    """Rectangular block of cells, normalized so ``start`` is top-left."""

    start: CellAddress
    end: CellAddress

    def __init__(self, start: CellAddress, end: CellAddress) -> None:
        object.__setattr__(
            self, "start",
            CellAddress(min(start.col, end.col), min(start.row, end.row)),
        )
        object.__setattr__(
            self, "end",
            CellAddress(max(start.col, end.col), max(start.row, end.row)),
        )

    @classmethod
    def parse(cls, text: str) -> CellRange:
        """Parse ``"A1:B2"``; a lone ``"A1"`` becomes a one-cell range."""
        parts = text.split(":")
        if len(parts) == 1:
            addr = CellAddress.parse(parts[0])
            return cls(addr, addr)
        if len(parts) != 2:
            raise ValueError(f"Invalid range: {text!r}")
        return cls(CellAddress.parse(parts[0]), CellAddress.parse(parts[1]))

    @classmethod
    def bounding(cls, addresses: Iterable[CellAddress]) -> CellRange | None:
        """Smallest range covering every address, or None if there are none."""
        addrs = list(addresses)
        if not addrs:
            return None
        return cls(
            CellAddress(min(a.col for a in addrs), min(a.row for a in addrs)),
            CellAddress(max(a.col for a in addrs), max(a.row for a in addrs)),
        )

    @property
    def shape(self) -> tuple[int, int]:
        """``(n_rows, n_cols)``."""
        return (self.end.row - self.start.row + 1, self.end.col - self.start.col + 1)

    def __iter__(self) -> Iterator[CellAddress]:
        for row in range(self.start.row, self.end.row + 1):
            for col in range(self.start.col, self.end.col + 1):
                yield CellAddress(col, row)

    def __len__(self) -> int:
        n_rows, n_cols = self.shape
        return n_rows * n_cols

    def __contains__(self, item: object) -> bool:
        if not isinstance(item, CellAddress):
            return False
        return (
            self.start.col <= item.col <= self.end.col
            and self.start.row <= item.row <= self.end.row
        )

    def __str__(self) -> str:
        return f"{self.start}:{self.end}"
