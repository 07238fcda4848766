"""Bounded undo/redo history of committed edits."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field

from termcell._address import CellAddress
from termcell.calc._parser import CompiledFormula

logger = logging.getLogger(__name__)

DEFAULT_DEPTH = 100


@dataclass(frozen=True)
class CellSnapshot:
    """Content of one cell at a point in time; ``source=None`` means empty."""

    address: CellAddress
    source: str | None
    formula: CompiledFormula | None = None
    precedents: frozenset[CellAddress] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return self.source is None


@dataclass(frozen=True)
class UndoEntry:
    """One logical edit: the direct edits' content before and after.

    Derived values are not stored; replaying an entry re-runs
    recalculation for the restored cells.
    """

    before: tuple[CellSnapshot, ...]
    after: tuple[CellSnapshot, ...]

    @property
    def addresses(self) -> tuple[CellAddress, ...]:
        return tuple(s.address for s in self.after)


class History:
    """Undo stack with a bounded depth plus a redo stack.

    Pushing a new entry clears the redo stack; once ``depth`` entries are
    held the oldest is evicted.
    """

    def __init__(self, depth: int = DEFAULT_DEPTH) -> None:
        if depth < 1:
            raise ValueError(f"History depth must be at least 1, got {depth}")
        self.depth = depth
        self._undo: deque[UndoEntry] = deque(maxlen=depth)
        self._redo: list[UndoEntry] = []

    def __len__(self) -> int:
        return len(self._undo)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def redo_depth(self) -> int:
        return len(self._redo)

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    def push(self, entry: UndoEntry) -> None:
        if not entry.after:
            return
        if len(self._undo) == self.depth:
            logger.debug("History full, evicting oldest edit")
        self._undo.append(entry)
        self._redo.clear()

    def undo(self) -> UndoEntry | None:
        """Move the newest entry to the redo stack and return it."""
        if not self._undo:
            return None
        entry = self._undo.pop()
        self._redo.append(entry)
        return entry

    def redo(self) -> UndoEntry | None:
        """Move the newest undone entry back onto the undo stack and return it."""
        if not self._redo:
            return None
        entry = self._redo.pop()
        self._undo.append(entry)
        return entry
