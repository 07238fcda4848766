"""End-to-end behaviour of the formula engine through a Session."""

from __future__ import annotations

import pytest

from termcell import Session, Settings
from termcell._address import CellAddress, CellRange
from termcell.calc import ExcelError, compile_formula

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _session() -> Session:
    return Session(Settings(max_rows=1000, max_cols=52))


def _build_budget(s: Session) -> None:
    """Small model: inputs in column A, derived figures in B and C."""
    s.set_cells({
        "A1": "1200",     # revenue
        "A2": "450",      # costs
        "A3": "0.2",      # tax rate
        "B1": "=A1-A2",   # profit
        "B2": "=B1*A3",   # tax
        "B3": "=B1-B2",   # net
        "C1": "=IF(B3>500, \"ok\", \"low\")",
        "C2": "=ROUND(B3/A1*100, 1)",
        "D1": "=MEAN(A5:A7)",
    })


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


class TestRpnProperty:
    def test_mean_example(self) -> None:
        s = _session()
        s.set_cell("A1", "=MEAN(1,2,3)+MEAN(4,5,6)")
        assert s.rpn("A1") == "1 2 3 MEAN 4 5 6 MEAN +"
        assert s.value("A1") == 7

    @pytest.mark.parametrize(
        "text",
        ["=A1+B2*C3", "=SUM(A1:B9)/COUNT(A1:B9)", '=IF(A1<>"", UPPER(A1), "-")', "=-(1+2)^2"],
    )
    def test_reparse_after_noop_edit(self, text: str) -> None:
        s = _session()
        s.set_cell("Z1", text)
        cell = s.sheet.get(CellAddress.parse("Z1"))
        assert cell is not None and cell.formula is not None
        s.set_cell("Z1", text)
        again = compile_formula(text, s.registry)
        assert again.ast == cell.formula.ast
        assert again.rpn == cell.formula.rpn


class TestBudgetModel:
    def test_initial_values(self) -> None:
        s = _session()
        _build_budget(s)
        assert s.value("B3") == pytest.approx(600)
        assert s.value("C1") == "ok"
        assert s.value("C2") == 50
        assert s.value("D1") is ExcelError.DIV0

    def test_edit_input_propagates(self) -> None:
        s = _session()
        _build_budget(s)
        result = s.set_cell("A2", "900")
        assert s.value("B3") == pytest.approx(240)
        assert s.value("C1") == "low"
        assert set(result.recomputed) == {
            CellAddress.parse(r) for r in ("B1", "B2", "B3", "C1", "C2")
        }
        assert CellAddress.parse("D1") not in result.recomputed

    def test_fill_mean_inputs(self) -> None:
        s = _session()
        _build_budget(s)
        s.paste("A5", [["3"], ["4"], ["text"]])
        assert s.value("D1") == 3.5

    def test_undo_all_restores_empty_sheet(self) -> None:
        s = _session()
        _build_budget(s)
        s.set_cell("A1", "5000")
        s.undo()
        assert s.value("B3") == pytest.approx(600)
        s.undo()
        assert len(s.sheet) == 0
        assert s.graph.precedents == {}


class TestInfectiousErrors:
    def test_div_zero_propagates(self) -> None:
        s = _session()
        s.set_cell("A1", "=1/0")
        s.set_cell("B1", "=A1+1")
        s.set_cell("C1", "=SUM(B1, 5)")
        assert s.value("A1") is ExcelError.DIV0
        assert s.value("B1") is ExcelError.DIV0
        assert s.value("C1") is ExcelError.DIV0

    def test_error_cleared_when_fixed(self) -> None:
        s = _session()
        s.set_cell("A1", "=1/A2")
        s.set_cell("B1", "=A1*2")
        s.set_cell("A2", "4")
        assert s.value("B1") == 0.5

    def test_distinct_error_tags(self) -> None:
        s = _session()
        s.set_cells({
            "A1": "=1/0",
            "A2": "=ZZ1",
            "A3": "=A3",
            "A4": '="x"*2',
            "A5": "=SQRT(-1)",
        })
        shown = [s.display(f"A{i}") for i in range(1, 6)]
        assert shown == ["#DIV/0!", "#REF!", "#CIRC!", "#VALUE!", "#NUM!"]


class TestRanges:
    def test_inverted_range_in_formula(self) -> None:
        s = _session()
        s.set_cells({"A1": "1", "B1": "2", "A2": "3", "B2": "4"})
        s.set_cell("C1", "=SUM(B2:A1)")
        assert s.value("C1") == 10
        assert s.precedents("C1") == list(CellRange.parse("A1:B2"))

    def test_range_edge_recalculates(self) -> None:
        s = _session()
        s.set_cell("C1", "=SUM(A1:A3)")
        s.set_cell("A3", "5")
        assert s.value("C1") == 5


class TestCycleProperty:
    def test_mutual_reference(self) -> None:
        s = _session()
        s.set_cell("A1", "=B1")
        s.set_cell("B1", "=A1")
        assert s.value("A1") is ExcelError.CIRC
        assert s.value("B1") is ExcelError.CIRC

    def test_cycle_through_range(self) -> None:
        s = _session()
        s.set_cell("A3", "=SUM(A1:A2)")
        s.set_cell("A1", "=A3")
        assert s.value("A1") is ExcelError.CIRC
        assert s.value("A3") is ExcelError.CIRC
