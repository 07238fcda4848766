"""Tests for termcell.calc function library."""

from __future__ import annotations

import math

import pytest

from termcell.calc._functions import (
    _BUILTINS,
    ExcelError,
    FunctionRegistry,
    FunctionSpec,
    RangeValue,
    first_error,
    is_error,
    is_supported,
    power,
    to_bool,
    to_number,
    to_text,
)


def _call(name: str, *args: object) -> object:
    spec = FunctionRegistry().get(name)
    assert spec is not None
    return spec(list(args))


def _rng(*values: object, n_cols: int = 1) -> RangeValue:
    return RangeValue(list(values), len(values) // n_cols, n_cols)


# ---------------------------------------------------------------------------
# Error values and coercion
# ---------------------------------------------------------------------------


class TestExcelError:
    def test_singletons(self) -> None:
        assert ExcelError.of("#div/0!") is ExcelError.DIV0
        assert ExcelError.CIRC is ExcelError.of("#CIRC!")

    def test_text_is_not_an_error(self) -> None:
        assert ExcelError.REF != "#REF!"
        assert str(ExcelError.NAME) == "#NAME?"
        assert len({ExcelError.DIV0, "#DIV/0!"}) == 2

    def test_tags_distinct(self) -> None:
        tags = {ExcelError.DIV0, ExcelError.REF, ExcelError.CIRC, ExcelError.VALUE,
                ExcelError.NAME, ExcelError.NUM}
        assert len(tags) == 6

    def test_first_error_searches_ranges(self) -> None:
        assert first_error(1, _rng(2, ExcelError.NUM), ExcelError.REF) is ExcelError.NUM
        assert first_error(1, "a", None) is None
        assert is_error(ExcelError.VALUE)
        assert not is_error("#VALUE!")


class TestCoercion:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(None, 0), (True, 1), (False, 0), (3, 3), (2.5, 2.5), (" 4 ", 4.0), ("1e2", 100.0)],
    )
    def test_to_number(self, value: object, expected: float) -> None:
        assert to_number(value) == expected

    @pytest.mark.parametrize("value", ["abc", "", "nan", "inf"])
    def test_to_number_rejects_text(self, value: str) -> None:
        with pytest.raises(ValueError):
            to_number(value)

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(None, ""), (True, "TRUE"), (False, "FALSE"), (3.0, "3"), (2.5, "2.5"), (7, "7"),
         ("x", "x"), (ExcelError.DIV0, "#DIV/0!")],
    )
    def test_to_text(self, value: object, expected: str) -> None:
        assert to_text(value) == expected

    def test_to_bool(self) -> None:
        assert to_bool(1) is True
        assert to_bool(0.0) is False
        assert to_bool("true") is True
        assert to_bool(None) is False
        with pytest.raises(ValueError):
            to_bool("yes")


# ---------------------------------------------------------------------------
# Builtins
# ---------------------------------------------------------------------------


class TestStatistical:
    def test_mean(self) -> None:
        assert _call("MEAN", 1, 2, 3) == 2

    def test_average_alias(self) -> None:
        assert _call("AVERAGE", 4, 5, 6) == 5

    def test_mean_rejects_direct_text(self) -> None:
        with pytest.raises(ValueError):
            _call("MEAN", 1, "abc")

    def test_mean_accepts_numeric_text(self) -> None:
        assert _call("MEAN", "2", 4) == 3

    def test_mean_skips_text_in_range(self) -> None:
        assert _call("MEAN", _rng(1, "x", None, True, 3)) == 2

    def test_mean_of_nothing(self) -> None:
        assert _call("MEAN", _rng(None, "x")) is ExcelError.DIV0

    def test_sum(self) -> None:
        assert _call("SUM", _rng(1, 2, 3, 4, n_cols=2), 10) == 20

    def test_min_max(self) -> None:
        assert _call("MIN", 3, _rng(1, 5)) == 1
        assert _call("MAX", 3, _rng(1, 5)) == 5
        assert _call("MAX", _rng(None)) == 0

    def test_count(self) -> None:
        assert _call("COUNT", _rng(1, "a", None, 2.5, True)) == 2
        assert _call("COUNT", 1, "2", "x") == 2

    def test_counta(self) -> None:
        assert _call("COUNTA", _rng(1, "a", None, False)) == 3


class TestMath:
    def test_abs(self) -> None:
        assert _call("ABS", -3) == 3

    def test_sqrt(self) -> None:
        assert _call("SQRT", 16) == 4
        assert _call("SQRT", -1) is ExcelError.NUM

    @pytest.mark.parametrize(
        ("args", "expected"),
        [((2.5,), 3), ((-2.5,), -3), ((0.125, 2), 0.13), ((1234, -2), 1200)],
    )
    def test_round_half_away_from_zero(self, args: tuple, expected: float) -> None:
        assert _call("ROUND", *args) == pytest.approx(expected)

    @pytest.mark.parametrize(
        ("args", "expected"),
        [((1, 1e12), 1), ((2.5, 400), 2.5), ((1e300, 20), 1e300), ((123, -400), 0), ((-7, -1e12), 0)],
    )
    def test_round_extreme_digits(self, args: tuple, expected: float) -> None:
        assert _call("ROUND", *args) == expected

    def test_int_floors(self) -> None:
        assert _call("INT", -1.5) == -2

    def test_mod_sign_of_divisor(self) -> None:
        assert _call("MOD", -3, 2) == 1
        assert _call("MOD", 3, 0) is ExcelError.DIV0

    def test_power(self) -> None:
        assert _call("POWER", 2, 10) == 1024
        assert power(0, -1) is ExcelError.DIV0
        assert power(-8, 0.5) is ExcelError.NUM
        assert power(10, 400) is ExcelError.NUM

    def test_pi(self) -> None:
        assert _call("PI") == pytest.approx(math.pi)


class TestLogic:
    def test_if(self) -> None:
        assert _call("IF", True, "yes", "no") == "yes"
        assert _call("IF", 0, "yes", "no") == "no"
        assert _call("IF", False, 1) is False

    def test_if_ignores_error_in_other_branch(self) -> None:
        assert _call("IF", True, 1, ExcelError.DIV0) == 1
        assert _call("IF", ExcelError.REF, 1, 2) is ExcelError.REF

    def test_iferror(self) -> None:
        assert _call("IFERROR", ExcelError.DIV0, 0) == 0
        assert _call("IFERROR", 5, 0) == 5

    def test_and_or_not(self) -> None:
        assert _call("AND", True, 1, _rng(True, "x")) is True
        assert _call("OR", False, 0) is False
        assert _call("NOT", False) is True
        assert _call("AND", _rng("x")) is ExcelError.VALUE


class TestText:
    def test_concatenate(self) -> None:
        assert _call("CONCATENATE", "a", 1.0, True, None) == "a1TRUE"

    def test_len_upper_lower(self) -> None:
        assert _call("LEN", "abc") == 3
        assert _call("UPPER", "abc") == "ABC"
        assert _call("LOWER", "ABC") == "abc"

    def test_concatenate_rejects_range(self) -> None:
        with pytest.raises(ValueError):
            _call("CONCATENATE", _rng("a", "b"))


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestFunctionSpec:
    def test_accepts(self) -> None:
        spec = FunctionSpec("X", lambda args: 0, 1, 2)
        assert not spec.accepts(0)
        assert spec.accepts(2)
        assert not spec.accepts(3)

    def test_variadic(self) -> None:
        assert FunctionSpec("X", lambda args: 0, 1).accepts(100)

    @pytest.mark.parametrize(
        ("min_args", "max_args", "text"),
        [(0, 0, "no arguments"), (1, 1, "exactly 1 argument"), (2, 2, "exactly 2 arguments"),
         (1, 3, "1 to 3 arguments"), (1, None, "at least 1 argument")],
    )
    def test_arity_text(self, min_args: int, max_args: int | None, text: str) -> None:
        assert FunctionSpec("X", lambda args: 0, min_args, max_args).arity_text() == text


class TestFunctionRegistry:
    def test_builtins_present(self) -> None:
        reg = FunctionRegistry()
        for name in ("MEAN", "SUM", "SQRT", "IF", "PI", "CONCATENATE"):
            assert reg.has(name)
        assert reg.supported_functions == frozenset(_BUILTINS)

    def test_case_insensitive(self) -> None:
        reg = FunctionRegistry()
        assert reg.get("mean") is reg.get("MEAN")
        assert is_supported("sum")
        assert not is_supported("VLOOKUP")

    def test_register_callable(self) -> None:
        reg = FunctionRegistry()
        reg.register("triple", lambda args: args[0] * 3, 1, 1, "math")
        spec = reg.get("TRIPLE")
        assert spec is not None
        assert spec.name == "TRIPLE"
        assert spec.category == "math"
        assert spec([2]) == 6

    def test_register_spec_renames(self) -> None:
        reg = FunctionRegistry()
        reg.register("avg2", FunctionSpec("ignored", lambda args: 1, 2, 2, "statistical"))
        spec = reg.get("AVG2")
        assert spec is not None
        assert spec.name == "AVG2"
        assert spec.max_args == 2

    def test_unregister(self) -> None:
        reg = FunctionRegistry()
        reg.unregister("mean")
        assert not reg.has("MEAN")
        assert FunctionRegistry().has("MEAN")

    def test_categories(self) -> None:
        reg = FunctionRegistry()
        assert reg.get("MEAN").category == "statistical"  # type: ignore[union-attr]
        assert reg.get("SQRT").category == "math"  # type: ignore[union-attr]
        assert reg.get("IF").propagate_errors is False  # type: ignore[union-attr]
