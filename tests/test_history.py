"""Tests for termcell undo/redo history."""

from __future__ import annotations

import pytest

from termcell import Session, Settings
from termcell._address import CellAddress
from termcell._history import CellSnapshot, History, UndoEntry
from termcell.calc._functions import ExcelError


def _entry(ref: str, before: str | None, after: str | None) -> UndoEntry:
    addr = CellAddress.parse(ref)
    return UndoEntry((CellSnapshot(addr, before),), (CellSnapshot(addr, after),))


def _session(**overrides: int) -> Session:
    return Session(Settings(**overrides))


class TestHistoryStack:
    def test_push_undo_redo(self) -> None:
        h = History()
        e = _entry("A1", None, "1")
        h.push(e)
        assert h.can_undo and not h.can_redo
        assert h.undo() is e
        assert not h.can_undo and h.can_redo
        assert h.redo() is e
        assert h.can_undo
        assert h.redo_depth == 0

    def test_redo_depth(self) -> None:
        h = History()
        for i in range(1, 4):
            h.push(_entry(f"A{i}", None, str(i)))
        h.undo()
        h.undo()
        assert h.redo_depth == 2
        assert len(h) == 1

    def test_empty_returns_none(self) -> None:
        h = History()
        assert h.undo() is None
        assert h.redo() is None

    def test_push_clears_redo(self) -> None:
        h = History()
        h.push(_entry("A1", None, "1"))
        h.undo()
        h.push(_entry("A2", None, "2"))
        assert not h.can_redo
        assert h.redo() is None

    def test_depth_evicts_oldest(self) -> None:
        h = History(depth=2)
        entries = [_entry(f"A{i}", None, str(i)) for i in range(1, 4)]
        for e in entries:
            h.push(e)
        assert len(h) == 2
        assert h.undo() is entries[2]
        assert h.undo() is entries[1]
        assert h.undo() is None

    def test_empty_entry_ignored(self) -> None:
        h = History()
        h.push(UndoEntry((), ()))
        assert not h.can_undo

    def test_clear(self) -> None:
        h = History()
        h.push(_entry("A1", None, "1"))
        h.undo()
        h.clear()
        assert not h.can_undo and not h.can_redo

    def test_invalid_depth(self) -> None:
        with pytest.raises(ValueError):
            History(depth=0)

    def test_snapshot_empty(self) -> None:
        assert CellSnapshot(CellAddress(0, 0), None).is_empty
        assert _entry("B2", None, "x").addresses == (CellAddress.parse("B2"),)


class TestSessionUndo:
    def test_undo_restores_formula_and_value(self) -> None:
        s = _session()
        s.set_cell("A1", "2")
        s.set_cell("B1", "=A1*10")
        s.set_cell("B1", "=A1+1")
        s.undo()
        assert s.source("B1") == "=A1*10"
        assert s.value("B1") == 20
        assert s.precedents("B1") == [CellAddress.parse("A1")]

    def test_undo_recomputes_dependents(self) -> None:
        s = _session()
        s.set_cell("A1", "1")
        s.set_cell("B1", "=A1+1")
        s.set_cell("A1", "100")
        result = s.undo()
        assert result is not None
        assert s.value("B1") == 2
        assert CellAddress.parse("B1") in result.changed

    def test_undo_first_write_empties_cell(self) -> None:
        s = _session()
        s.set_cell("A1", "5")
        s.undo()
        assert s.source("A1") == ""
        assert s.value("A1") is None
        assert CellAddress.parse("A1") not in s.sheet

    def test_redo_restores_post_edit_state(self) -> None:
        s = _session()
        s.set_cell("A1", "3")
        s.set_cell("B1", "=A1^2")
        s.undo()
        assert s.value("B1") is None
        s.redo()
        assert s.source("B1") == "=A1^2"
        assert s.value("B1") == 9

    def test_new_edit_clears_redo(self) -> None:
        s = _session()
        s.set_cell("A1", "1")
        s.set_cell("A1", "2")
        s.undo()
        s.set_cell("B1", "x")
        assert s.redo() is None
        assert s.value("A1") == 1

    def test_undo_on_empty_history(self) -> None:
        s = _session()
        assert s.undo() is None
        assert s.redo() is None

    def test_undo_restores_dependency_edges(self) -> None:
        s = _session()
        s.set_cell("B1", "=A1")
        s.set_cell("B1", "=C1")
        s.undo()
        assert s.dependents("A1") == [CellAddress.parse("B1")]
        assert s.dependents("C1") == []
        s.set_cell("A1", "4")
        assert s.value("B1") == 4

    def test_undo_cycle(self) -> None:
        s = _session()
        s.set_cell("A1", "=B1")
        s.set_cell("B1", "=A1")
        assert s.value("A1") is ExcelError.CIRC
        s.undo()
        assert s.value("A1") == 0
        assert s.value("B1") is None
        s.redo()
        assert s.value("A1") is ExcelError.CIRC

    def test_noop_edit_not_recorded(self) -> None:
        s = _session()
        s.set_cell("A1", "=1+1")
        result = s.set_cell("A1", "=1+1")
        assert result.edited == ()
        s.undo()
        assert s.value("A1") is None
        assert not s.can_undo

    def test_clearing_empty_cell_not_recorded(self) -> None:
        s = _session()
        s.clear_cell("A1")
        assert not s.can_undo

    def test_depth_from_settings(self) -> None:
        s = _session(history_depth=2)
        for i in range(1, 5):
            s.set_cell("A1", str(i))
        assert s.undo() is not None
        assert s.undo() is not None
        assert s.undo() is None
        assert s.value("A1") == 2

    def test_undo_returns_bounds(self) -> None:
        s = _session()
        s.set_cell("A1", "1")
        s.set_cell("C2", "=A1")
        s.set_cell("A1", "2")
        result = s.undo()
        assert result is not None
        assert str(result.bounds) == "A1:C2"


class TestAtomicEdits:
    def test_set_cells_single_undo(self) -> None:
        s = _session()
        s.set_cells({"A1": "1", "A2": "2", "A3": "=A1+A2"})
        assert s.value("A3") == 3
        s.undo()
        for ref in ("A1", "A2", "A3"):
            assert s.value(ref) is None
        assert not s.can_undo

    def test_paste_block_single_undo(self) -> None:
        s = _session()
        s.set_cell("B2", "old")
        result = s.paste("B2", [["1", "2"], ["=B2+C2", ""]])
        assert s.value("B3") == 3
        assert result.bounds is not None and str(result.bounds) == "B2:C3"
        s.undo()
        assert s.value("B2") == "old"
        assert s.value("C2") is None
        assert s.value("B3") is None
        s.redo()
        assert s.value("B3") == 3

    def test_failed_batch_changes_nothing(self) -> None:
        s = _session()
        s.set_cell("A1", "1")
        with pytest.raises(ValueError):
            s.set_cells({"A1": "2", "A2": "=SUM(", "A3": "3"})
        assert s.value("A1") == 1
        assert s.value("A3") is None
        s.undo()
        assert not s.can_undo
