"""Incremental recalculation: dirty marking, ordering and cycle handling.

A formula cell's cached ``value`` is trusted as long as its ``dirty`` flag
is clear.  An edit marks the edited cells and everything reachable through
dependents edges dirty, then recomputes exactly that set in topological
order.  Cells outside the set are never touched.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from termcell._address import CellAddress, CellRange
from termcell.calc._functions import ExcelError
from termcell.calc._graph import DependencyGraph
from termcell.calc._protocol import CellDelta, RecalcResult

if TYPE_CHECKING:
    from termcell._sheet import Sheet
    from termcell.calc._evaluator import Evaluator

logger = logging.getLogger(__name__)


def same_value(a: Any, b: Any) -> bool:
    """Value equality that keeps ``1``, ``1.5`` and ``TRUE`` apart."""
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    return type(a) is type(b) and a == b


class Recalculator:
    """Recomputes stale formula cells after an edit."""

    def __init__(self, sheet: Sheet, graph: DependencyGraph, evaluator: Evaluator) -> None:
        self.sheet = sheet
        self.graph = graph
        self.evaluator = evaluator

    def mark_dirty(self, edited: Iterable[CellAddress]) -> set[CellAddress]:
        """Flag every formula cell downstream of *edited* (inclusive) as dirty."""
        dirty: set[CellAddress] = set()
        for addr in self.graph.dependents_closure(edited):
            cell = self.sheet.get(addr)
            if cell is not None and cell.formula is not None:
                cell.dirty = True
                dirty.add(addr)
        return dirty

    def recalculate(
        self,
        edited: Iterable[CellAddress],
        previous: Mapping[CellAddress, Any] | None = None,
    ) -> RecalcResult:
        """Bring every cell affected by *edited* up to date.

        *previous* maps edited cells to the value they held before the edit,
        so their own change shows up in the result's deltas.
        """
        edited = tuple(dict.fromkeys(edited))
        previous = previous or {}
        deltas: dict[CellAddress, CellDelta] = {}

        for addr in edited:
            if addr in previous:
                self._record(deltas, addr, previous[addr], self.sheet.read(addr))

        dirty = self.mark_dirty(edited)
        order, blocked = self.graph.topological_order(dirty)
        recomputed: list[CellAddress] = []

        for addr in order:
            self._evaluate(addr, deltas, previous)
            recomputed.append(addr)

        cycles: list[frozenset[CellAddress]] = []
        if blocked:
            cycles = [frozenset(c) for c in self.graph.find_cycles(blocked)]
            members = set().union(*cycles)
            logger.warning(
                "Circular reference among %s",
                ", ".join(str(a) for a in sorted(members)),
            )
            for addr in sorted(members):
                cell = self.sheet.get(addr)
                assert cell is not None
                old = previous.get(addr, cell.value)
                cell.value = ExcelError.CIRC
                cell.dirty = False
                self._record(deltas, addr, old, cell.value)
                recomputed.append(addr)
            # Cells downstream of a cycle pick up #CIRC! from their inputs.
            downstream, still_blocked = self.graph.topological_order(blocked - members)
            assert not still_blocked
            for addr in downstream:
                self._evaluate(addr, deltas, previous)
                recomputed.append(addr)

        changed = list(deltas)
        logger.debug(
            "Recalculated %d cell(s) after editing %d, %d changed",
            len(recomputed), len(edited), len(changed),
        )
        return RecalcResult(
            edited=edited,
            recomputed=tuple(recomputed),
            deltas=tuple(deltas[a] for a in sorted(deltas)),
            cycles=tuple(cycles),
            max_chain_depth=self.graph.max_depth(edited),
            bounds=CellRange.bounding([*edited, *changed]),
        )

    def _evaluate(
        self,
        addr: CellAddress,
        deltas: dict[CellAddress, CellDelta],
        previous: Mapping[CellAddress, Any],
    ) -> None:
        cell = self.sheet.get(addr)
        assert cell is not None and cell.formula is not None
        old = previous.get(addr, cell.value)
        cell.value = self.evaluator.evaluate(cell.formula)
        cell.dirty = False
        self._record(deltas, addr, old, cell.value)

    def _record(
        self,
        deltas: dict[CellAddress, CellDelta],
        addr: CellAddress,
        old: Any,
        new: Any,
    ) -> None:
        if same_value(old, new):
            deltas.pop(addr, None)
            return
        cell = self.sheet.get(addr)
        deltas[addr] = CellDelta(addr, old, new, cell.source if cell is not None else None)
