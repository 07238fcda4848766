"""Function library: error values, range values and the builtin function table."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable


# ---------------------------------------------------------------------------
# ExcelError: typed error values that propagate through formula chains
# ---------------------------------------------------------------------------


class ExcelError:
    """Excel error value that propagates through formula chains.

    Use ``ExcelError.of(code)`` to get a cached singleton for each error code.
    Errors only compare equal to other errors; a text cell holding ``"#DIV/0!"``
    is not ``ExcelError.DIV0``.
    """

    __slots__ = ("code",)
    _cache: dict[str, ExcelError] = {}

    VALUE: ExcelError
    REF: ExcelError
    DIV0: ExcelError
    NUM: ExcelError
    NAME: ExcelError
    CIRC: ExcelError

    def __init__(self, code: str) -> None:
        self.code = code

    @classmethod
    def of(cls, code: str) -> ExcelError:
        canon = code.upper()
        if canon not in cls._cache:
            cls._cache[canon] = cls(canon)
        return cls._cache[canon]

    def __repr__(self) -> str:
        return self.code

    def __str__(self) -> str:
        return self.code

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ExcelError):
            return self.code == other.code
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.code)


# Singletons
ExcelError.VALUE = ExcelError.of("#VALUE!")
ExcelError.REF = ExcelError.of("#REF!")
ExcelError.DIV0 = ExcelError.of("#DIV/0!")
ExcelError.NUM = ExcelError.of("#NUM!")
ExcelError.NAME = ExcelError.of("#NAME?")
ExcelError.CIRC = ExcelError.of("#CIRC!")


def is_error(val: Any) -> bool:
    """Return True if *val* is an ExcelError instance."""
    return isinstance(val, ExcelError)


def first_error(*values: Any) -> ExcelError | None:
    """Return the first ExcelError found in *values* (searching ranges), or None."""
    for v in values:
        if isinstance(v, ExcelError):
            return v
        if isinstance(v, RangeValue):
            err = first_error(*v.values)
            if err is not None:
                return err
    return None


# ---------------------------------------------------------------------------
# RangeValue: shape-aware 2D range container
# ---------------------------------------------------------------------------


@dataclass
class RangeValue:
    """A resolved cell range that preserves 2D shape metadata.

    Values are stored row-major. Iterable and sized.
    """

    values: list[Any]
    n_rows: int
    n_cols: int

    def __iter__(self):
        return iter(self.values)

    def __len__(self):
        return len(self.values)


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


def to_number(val: Any) -> int | float:
    """Coerce a scalar for arithmetic.

    Blank is 0, booleans are 1/0, text must parse as a number.  Raises
    ValueError otherwise (the evaluator reports that as ``#VALUE!``).
    """
    if val is None:
        return 0
    if isinstance(val, bool):
        return int(val)
    if isinstance(val, (int, float)):
        return val
    if isinstance(val, str):
        try:
            num = float(val.strip())
        except ValueError:
            raise ValueError(f"Cannot use text {val!r} as a number") from None
        # float() also accepts "nan" and "inf"
        if not math.isfinite(num):
            raise ValueError(f"Cannot use text {val!r} as a number")
        return num
    raise ValueError(f"Cannot use {type(val).__name__} as a number")


def to_text(val: Any) -> str:
    """Stringify a value the way a cell would display it."""
    if val is None:
        return ""
    if isinstance(val, bool):
        return "TRUE" if val else "FALSE"
    if isinstance(val, float):
        if val.is_integer():
            return str(int(val))
        return format(val, ".15g")
    return str(val)


def to_bool(val: Any) -> bool:
    if val is None:
        return False
    if isinstance(val, (bool, int, float)):
        return val != 0
    if isinstance(val, str):
        upper = val.strip().upper()
        if upper == "TRUE":
            return True
        if upper == "FALSE":
            return False
    raise ValueError(f"Cannot use {val!r} as a logical value")


def _numbers(args: list[Any]) -> list[int | float]:
    """Collect numbers for aggregation.

    Direct arguments must be numeric (or coercible); inside a range, text,
    booleans and blanks are skipped as Excel does.
    """
    nums: list[int | float] = []
    for arg in args:
        if isinstance(arg, RangeValue):
            nums.extend(
                v for v in arg.values
                if isinstance(v, (int, float)) and not isinstance(v, bool)
            )
        else:
            nums.append(to_number(arg))
    return nums


def _single_number(args: list[Any], index: int = 0) -> int | float:
    if isinstance(args[index], RangeValue):
        raise ValueError("Expected a single value, got a range")
    return to_number(args[index])


# ---------------------------------------------------------------------------
# Builtin implementations.
# Each takes a list of already-evaluated argument values.  Raising ValueError
# means "type mismatch"; returning an ExcelError reports a specific error.
# ---------------------------------------------------------------------------


def _builtin_sum(args: list[Any]) -> float:
    return sum(_numbers(args))


def _builtin_mean(args: list[Any]) -> float | ExcelError:
    """MEAN / AVERAGE - arithmetic mean; no numbers at all is #DIV/0!."""
    nums = _numbers(args)
    if not nums:
        return ExcelError.DIV0
    return sum(nums) / len(nums)


def _builtin_min(args: list[Any]) -> float:
    nums = _numbers(args)
    if not nums:
        return 0
    return min(nums)


def _builtin_max(args: list[Any]) -> float:
    nums = _numbers(args)
    if not nums:
        return 0
    return max(nums)


def _builtin_count(args: list[Any]) -> int:
    """COUNT - counts numeric values only."""
    count = 0
    for arg in args:
        if isinstance(arg, RangeValue):
            count += sum(
                1 for v in arg.values
                if isinstance(v, (int, float)) and not isinstance(v, bool)
            )
        else:
            try:
                to_number(arg)
            except ValueError:
                continue
            count += 1
    return count


def _builtin_counta(args: list[Any]) -> int:
    """COUNTA - counts non-empty values."""
    count = 0
    for arg in args:
        if isinstance(arg, RangeValue):
            count += sum(1 for v in arg.values if v is not None)
        elif arg is not None:
            count += 1
    return count


def _builtin_abs(args: list[Any]) -> float:
    return abs(_single_number(args))


def _builtin_sqrt(args: list[Any]) -> float | ExcelError:
    n = _single_number(args)
    if n < 0:
        return ExcelError.NUM
    return math.sqrt(n)


def _builtin_round(args: list[Any]) -> float:
    """ROUND - half away from zero, like Excel (not banker's rounding)."""
    n = _single_number(args)
    digits = int(_single_number(args, 1)) if len(args) > 1 else 0
    # Past float range there is nothing left to round.
    if digits > 308:
        return float(n)
    if digits < -308:
        return math.copysign(0.0, n)
    factor = 10 ** digits
    scaled = float(abs(n)) * factor
    if math.isinf(scaled):
        return float(n)
    rounded = math.floor(scaled + 0.5) / factor
    return math.copysign(rounded, n)


def _builtin_int(args: list[Any]) -> int:
    return math.floor(_single_number(args))


def _builtin_mod(args: list[Any]) -> float | ExcelError:
    a = _single_number(args, 0)
    b = _single_number(args, 1)
    if b == 0:
        return ExcelError.DIV0
    # Excel MOD: result has the sign of the divisor
    return a - b * math.floor(a / b)


def power(base: int | float, exponent: int | float) -> int | float | ExcelError:
    """Shared by POWER and the ``^`` operator."""
    if base == 0 and exponent < 0:
        return ExcelError.DIV0
    # Excel returns #NUM! for negative base with fractional exponent
    if base < 0 and not float(exponent).is_integer():
        return ExcelError.NUM
    try:
        return float(base) ** exponent
    except OverflowError:
        return ExcelError.NUM


def _builtin_power(args: list[Any]) -> float | ExcelError:
    return power(_single_number(args, 0), _single_number(args, 1))


def _builtin_pi(args: list[Any]) -> float:
    return math.pi


def _builtin_if(args: list[Any]) -> Any:
    condition = args[0]
    if isinstance(condition, ExcelError):
        return condition
    if to_bool(condition):
        return args[1]
    return args[2] if len(args) > 2 else False


def _builtin_iferror(args: list[Any]) -> Any:
    value = args[0]
    if isinstance(value, ExcelError) or first_error(value) is not None:
        return args[1]
    return value


def _logical_values(args: list[Any]) -> list[bool]:
    values: list[bool] = []
    for arg in args:
        if isinstance(arg, RangeValue):
            values.extend(
                bool(v) for v in arg.values if isinstance(v, (bool, int, float))
            )
        else:
            values.append(to_bool(arg))
    return values


def _builtin_and(args: list[Any]) -> bool | ExcelError:
    values = _logical_values(args)
    if not values:
        return ExcelError.VALUE
    return all(values)


def _builtin_or(args: list[Any]) -> bool | ExcelError:
    values = _logical_values(args)
    if not values:
        return ExcelError.VALUE
    return any(values)


def _builtin_not(args: list[Any]) -> bool:
    if isinstance(args[0], RangeValue):
        raise ValueError("NOT expects a single value")
    return not to_bool(args[0])


# ---------------------------------------------------------------------------
# Text builtins
# ---------------------------------------------------------------------------


def _single_text(args: list[Any], index: int = 0) -> str:
    if isinstance(args[index], RangeValue):
        raise ValueError("Expected a single value, got a range")
    return to_text(args[index])


def _builtin_concatenate(args: list[Any]) -> str:
    return "".join(_single_text(args, i) for i in range(len(args)))


def _builtin_len(args: list[Any]) -> int:
    return len(_single_text(args))


def _builtin_upper(args: list[Any]) -> str:
    return _single_text(args).upper()


def _builtin_lower(args: list[Any]) -> str:
    return _single_text(args).lower()


# ---------------------------------------------------------------------------
# Function descriptors and registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FunctionSpec:
    """Arity bounds plus a pure evaluation rule.

    ``max_args=None`` means variadic.  When ``propagate_errors`` is set the
    evaluator short-circuits on the first error argument and never calls
    the rule; IF and IFERROR opt out so they can inspect errors themselves.
    """

    name: str
    rule: Callable[[list[Any]], Any]
    min_args: int = 0
    max_args: int | None = None
    category: str = "custom"
    propagate_errors: bool = True

    def accepts(self, n_args: int) -> bool:
        if n_args < self.min_args:
            return False
        return self.max_args is None or n_args <= self.max_args

    def arity_text(self) -> str:
        def plural(n: int) -> str:
            return f"{n} argument" + ("" if n == 1 else "s")

        if self.max_args is None:
            return f"at least {plural(self.min_args)}"
        if self.max_args == 0:
            return "no arguments"
        if self.min_args == self.max_args:
            return f"exactly {plural(self.min_args)}"
        return f"{self.min_args} to {plural(self.max_args)}"

    def __call__(self, args: list[Any]) -> Any:
        return self.rule(args)


_BUILTINS: dict[str, FunctionSpec] = {
    spec.name: spec
    for spec in (
        # Statistical
        FunctionSpec("MEAN", _builtin_mean, 1, None, "statistical"),
        FunctionSpec("AVERAGE", _builtin_mean, 1, None, "statistical"),
        FunctionSpec("SUM", _builtin_sum, 1, None, "statistical"),
        FunctionSpec("MIN", _builtin_min, 1, None, "statistical"),
        FunctionSpec("MAX", _builtin_max, 1, None, "statistical"),
        FunctionSpec("COUNT", _builtin_count, 1, None, "statistical"),
        FunctionSpec("COUNTA", _builtin_counta, 1, None, "statistical"),
        # Math
        FunctionSpec("ABS", _builtin_abs, 1, 1, "math"),
        FunctionSpec("SQRT", _builtin_sqrt, 1, 1, "math"),
        FunctionSpec("ROUND", _builtin_round, 1, 2, "math"),
        FunctionSpec("INT", _builtin_int, 1, 1, "math"),
        FunctionSpec("MOD", _builtin_mod, 2, 2, "math"),
        FunctionSpec("POWER", _builtin_power, 2, 2, "math"),
        FunctionSpec("PI", _builtin_pi, 0, 0, "math"),
        # Logic
        FunctionSpec("IF", _builtin_if, 2, 3, "logic", propagate_errors=False),
        FunctionSpec("IFERROR", _builtin_iferror, 2, 2, "logic", propagate_errors=False),
        FunctionSpec("AND", _builtin_and, 1, None, "logic"),
        FunctionSpec("OR", _builtin_or, 1, None, "logic"),
        FunctionSpec("NOT", _builtin_not, 1, 1, "logic"),
        # Text
        FunctionSpec("CONCATENATE", _builtin_concatenate, 1, None, "text"),
        FunctionSpec("LEN", _builtin_len, 1, 1, "text"),
        FunctionSpec("UPPER", _builtin_upper, 1, 1, "text"),
        FunctionSpec("LOWER", _builtin_lower, 1, 1, "text"),
    )
}


def is_supported(func_name: str) -> bool:
    """Check if a function name is one of the builtins."""
    return func_name.upper() in _BUILTINS


class FunctionRegistry:
    """Registry of function descriptors, looked up case-insensitively.

    Starts with builtins and can be extended with custom functions.
    """

    def __init__(self) -> None:
        self._functions: dict[str, FunctionSpec] = dict(_BUILTINS)

    def register(
        self,
        name: str,
        func: FunctionSpec | Callable[[list[Any]], Any],
        min_args: int = 0,
        max_args: int | None = None,
        category: str = "custom",
    ) -> None:
        key = name.upper()
        if isinstance(func, FunctionSpec):
            spec = FunctionSpec(
                key, func.rule, func.min_args, func.max_args, func.category, func.propagate_errors,
            )
        else:
            spec = FunctionSpec(key, func, min_args, max_args, category)
        self._functions[key] = spec

    def unregister(self, name: str) -> None:
        self._functions.pop(name.upper(), None)

    def get(self, name: str) -> FunctionSpec | None:
        return self._functions.get(name.upper())

    def has(self, name: str) -> bool:
        return name.upper() in self._functions

    @property
    def supported_functions(self) -> frozenset[str]:
        return frozenset(self._functions.keys())
