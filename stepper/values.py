"""Runtime value model — a closed set of JavaScript-like value kinds.

Values are carried by plain Python objects, but every operation classifies
them through ``kind_of`` first, so the set of kinds stays closed:

    NUMBER     int | float  (integral finite floats other than -0 are normalised to int)
    STRING     str
    BOOLEAN    bool
    NULL       None
    UNDEFINED  the UNDEFINED singleton
    ARRAY      list[Value]
    OBJECT     dict[str, Value]  (insertion ordered)
    FUNCTION   FunctionRef (opaque placeholder, not callable as a value)
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from . import constants
from .errors import RuntimeStepFailure

_MAX_SAFE_INTEGER = 2**53
_JS_DECIMAL = re.compile(r"^[+-]?(\d+\.?\d*([eE][+-]?\d+)?|\.\d+([eE][+-]?\d+)?)$")


class _Undefined:
    """The JavaScript ``undefined`` value."""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> _Undefined:
        return self

    def __deepcopy__(self, memo: dict) -> _Undefined:
        return self

    def __reduce__(self):
        return (_Undefined, ())


UNDEFINED = _Undefined()


@dataclass(frozen=True)
class FunctionRef:
    """Opaque stand-in for a function value; only ever displayed."""

    name: str = constants.ANONYMOUS_FUNCTION_NAME

    def placeholder(self) -> str:
        return constants.FUNCTION_PLACEHOLDER_TEMPLATE.format(name=self.name)


Value = Union[int, float, str, bool, None, _Undefined, list, dict, FunctionRef]


class ValueKind(str, Enum):
    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    NULL = "null"
    UNDEFINED = "undefined"
    ARRAY = "array"
    OBJECT = "object"
    FUNCTION = "function"


def kind_of(value: Any) -> ValueKind:
    """Classify *value*; anything outside the closed set is a programming error."""
    # bool first: it is a subclass of int
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if value is None:
        return ValueKind.NULL
    if value is UNDEFINED:
        return ValueKind.UNDEFINED
    if isinstance(value, list):
        return ValueKind.ARRAY
    if isinstance(value, dict):
        return ValueKind.OBJECT
    if isinstance(value, FunctionRef):
        return ValueKind.FUNCTION
    raise TypeError(f"Not a runtime value: {value!r}")


# ── numbers ──────────────────────────────────────────────────────


def normalize_number(n: int | float) -> int | float:
    # negative zero stays a float
    if isinstance(n, float) and n.is_integer() and abs(n) < _MAX_SAFE_INTEGER:
        if n == 0 and math.copysign(1.0, n) < 0:
            return n
        return int(n)
    return n


def parse_number_literal(text: str) -> int | float:
    """Parse a JavaScript numeric literal as written in source."""
    cleaned = text.replace("_", "").rstrip("n")
    lowered = cleaned.lower()
    try:
        if lowered.startswith("0x"):
            return normalize_number(float(int(lowered[2:], 16)))
        if lowered.startswith("0o"):
            return normalize_number(float(int(lowered[2:], 8)))
        if lowered.startswith("0b"):
            return normalize_number(float(int(lowered[2:], 2)))
        if len(lowered) > 1 and lowered.startswith("0") and lowered.isdigit():
            # legacy octal
            return normalize_number(float(int(lowered, 8)))
        return normalize_number(float(cleaned))
    except (ValueError, OverflowError):
        return math.nan


def format_number(n: int | float) -> str:
    """Render a number the way JavaScript's ``String(n)`` does."""
    if isinstance(n, int):
        return str(n)
    if math.isnan(n):
        return "NaN"
    if math.isinf(n):
        return "Infinity" if n > 0 else "-Infinity"
    if n.is_integer() and abs(n) < 1e21:
        return str(int(n))
    text = repr(n)
    if "e" in text:
        mantissa, exponent = text.split("e")
        exp = int(exponent)
        text = f"{mantissa}e{'+' if exp > 0 else '-'}{abs(exp)}"
    return text


def to_number(value: Any) -> int | float:
    kind = kind_of(value)
    if kind == ValueKind.NUMBER:
        return value
    if kind == ValueKind.BOOLEAN:
        return 1 if value else 0
    if kind == ValueKind.NULL:
        return 0
    if kind == ValueKind.STRING:
        return _string_to_number(value)
    if kind == ValueKind.ARRAY:
        return _string_to_number(to_primitive_string(value))
    return math.nan


def _string_to_number(text: str) -> int | float:
    stripped = text.strip()
    if not stripped:
        return 0
    if stripped in ("Infinity", "+Infinity"):
        return math.inf
    if stripped == "-Infinity":
        return -math.inf
    lowered = stripped.lower()
    if lowered.startswith(("0x", "0o", "0b")):
        return parse_number_literal(lowered)
    if _JS_DECIMAL.match(stripped):
        return normalize_number(float(stripped))
    return math.nan


def to_int32(value: Any) -> int:
    n = to_number(value)
    if isinstance(n, float) and (math.isnan(n) or math.isinf(n)):
        return 0
    n = int(n) & 0xFFFFFFFF
    return n - 0x100000000 if n >= 0x80000000 else n


def to_uint32(value: Any) -> int:
    return to_int32(value) & 0xFFFFFFFF


# ── truthiness and typeof ────────────────────────────────────────


def truthy(value: Any) -> bool:
    kind = kind_of(value)
    if kind in (ValueKind.NULL, ValueKind.UNDEFINED):
        return False
    if kind == ValueKind.BOOLEAN:
        return value
    if kind == ValueKind.NUMBER:
        return not (value == 0 or (isinstance(value, float) and math.isnan(value)))
    if kind == ValueKind.STRING:
        return value != ""
    return True


def type_of(value: Any) -> str:
    kind = kind_of(value)
    if kind in (ValueKind.NULL, ValueKind.ARRAY, ValueKind.OBJECT):
        return "object"
    return kind.value


# ── string conversion ────────────────────────────────────────────


def value_to_string(value: Any) -> str:
    """Uniform value-to-string routine used by concatenation, templates and output."""
    kind = kind_of(value)
    if kind == ValueKind.STRING:
        return value
    if kind == ValueKind.NULL:
        return "null"
    if kind == ValueKind.UNDEFINED:
        return "undefined"
    if kind == ValueKind.BOOLEAN:
        return "true" if value else "false"
    if kind == ValueKind.NUMBER:
        return format_number(value)
    if kind == ValueKind.FUNCTION:
        return value.placeholder()
    try:
        return to_json_text(value)
    except (ValueError, RecursionError):
        return "[Object]"


class NodeBudget:
    """Bounds how many containers a single traversal may visit.

    Shared references are walked once per path that reaches them, so a value
    built by repeated ``a = [a, a]`` costs exponential time without a cap.
    """

    def __init__(self, limit: int = constants.MAX_SNAPSHOT_NODES):
        self.remaining = limit

    def spend(self):
        self.remaining -= 1
        if self.remaining < 0:
            raise ValueError("Value too large to traverse")


def to_json_text(value: Any) -> str:
    """``JSON.stringify`` equivalent; raises ValueError on cycles or oversized values."""
    ready = _json_ready(value, set(), NodeBudget())
    return json.dumps(ready, separators=(",", ":"), ensure_ascii=False)


def _json_ready(value: Any, active: set[int], budget: NodeBudget) -> Any:
    kind = kind_of(value)
    if kind == ValueKind.NUMBER:
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None
        return 0 if value == 0 else value
    if kind in (ValueKind.ARRAY, ValueKind.OBJECT):
        if id(value) in active:
            raise ValueError("Converting circular structure to JSON")
        budget.spend()
        active.add(id(value))
        try:
            if kind == ValueKind.ARRAY:
                return [
                    None
                    if kind_of(item) in (ValueKind.UNDEFINED, ValueKind.FUNCTION)
                    else _json_ready(item, active, budget)
                    for item in value
                ]
            return {
                key: _json_ready(item, active, budget)
                for key, item in value.items()
                if kind_of(item) not in (ValueKind.UNDEFINED, ValueKind.FUNCTION)
            }
        finally:
            active.discard(id(value))
    if kind in (ValueKind.UNDEFINED, ValueKind.FUNCTION):
        return None
    return value


def to_primitive_string(value: Any) -> str:
    """JavaScript ``String(value)`` for arrays and objects (used by coercions).

    A cyclic reference joins as the empty string.  Raises RuntimeStepFailure
    when the joined text would be too large to build.
    """
    try:
        return _join(value, set(), NodeBudget())
    except ValueError as exc:
        raise RuntimeStepFailure("RangeError: Invalid string length") from exc


def _join(value: Any, active: set[int], budget: NodeBudget) -> str:
    kind = kind_of(value)
    if kind == ValueKind.ARRAY:
        if id(value) in active:
            return ""
        budget.spend()
        active.add(id(value))
        try:
            return ",".join(
                ""
                if kind_of(item) in (ValueKind.NULL, ValueKind.UNDEFINED)
                else _join(item, active, budget)
                for item in value
            )
        finally:
            active.discard(id(value))
    if kind == ValueKind.OBJECT:
        return "[object Object]"
    return value_to_string(value)


def check_string_length(text: str) -> str:
    """Reject strings past the runtime length cap the way JavaScript engines do."""
    if len(text) > constants.MAX_RUNTIME_STRING_LENGTH:
        raise RuntimeStepFailure("RangeError: Invalid string length")
    return text


# ── operators ────────────────────────────────────────────────────


def js_add(left: Any, right: Any) -> Any:
    if kind_of(left) == ValueKind.STRING or kind_of(right) == ValueKind.STRING:
        left_text, right_text = value_to_string(left), value_to_string(right)
        if len(left_text) + len(right_text) > constants.MAX_RUNTIME_STRING_LENGTH:
            raise RuntimeStepFailure("RangeError: Invalid string length")
        return left_text + right_text
    return _arith(to_number(left), to_number(right), lambda a, b: a + b)


def js_subtract(left: Any, right: Any) -> Any:
    return _arith(to_number(left), to_number(right), lambda a, b: a - b)


def js_multiply(left: Any, right: Any) -> Any:
    return _arith(to_number(left), to_number(right), lambda a, b: a * b)


def js_divide(left: Any, right: Any) -> Any:
    a, b = float(to_number(left)), float(to_number(right))
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return normalize_number(a / b)


def js_modulo(left: Any, right: Any) -> Any:
    a, b = float(to_number(left)), float(to_number(right))
    if b == 0 or math.isnan(a) or math.isnan(b) or math.isinf(a):
        return math.nan
    if math.isinf(b):
        return normalize_number(a)
    return normalize_number(math.fmod(a, b))


def js_power(left: Any, right: Any) -> Any:
    a, b = float(to_number(left)), float(to_number(right))
    try:
        return normalize_number(math.pow(a, b))
    except OverflowError:
        return math.inf
    except ValueError:
        return math.nan


def _arith(a: int | float, b: int | float, op) -> int | float:
    return normalize_number(op(float(a), float(b)))


def compare(op: str, left: Any, right: Any) -> bool:
    """Abstract relational comparison for ``< <= > >=``."""
    if kind_of(left) == ValueKind.STRING and kind_of(right) == ValueKind.STRING:
        a, b = left, right
    else:
        a, b = to_number(left), to_number(right)
        if math.isnan(a) or math.isnan(b):
            return False
    if op == "<":
        return a < b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    return a >= b


def strict_equals(left: Any, right: Any) -> bool:
    left_kind, right_kind = kind_of(left), kind_of(right)
    if left_kind != right_kind:
        return False
    if left_kind in (ValueKind.ARRAY, ValueKind.OBJECT):
        return left is right
    return left == right


def loose_equals(left: Any, right: Any) -> bool:
    left_kind, right_kind = kind_of(left), kind_of(right)
    nullish = (ValueKind.NULL, ValueKind.UNDEFINED)
    if left_kind in nullish or right_kind in nullish:
        return left_kind in nullish and right_kind in nullish
    if left_kind == right_kind:
        return strict_equals(left, right)
    if left_kind == ValueKind.BOOLEAN:
        return loose_equals(to_number(left), right)
    if right_kind == ValueKind.BOOLEAN:
        return loose_equals(left, to_number(right))
    if ValueKind.NUMBER in (left_kind, right_kind) and ValueKind.STRING in (
        left_kind,
        right_kind,
    ):
        return to_number(left) == to_number(right)
    if left_kind in (ValueKind.ARRAY, ValueKind.OBJECT):
        return loose_equals(to_primitive_string(left), right)
    if right_kind in (ValueKind.ARRAY, ValueKind.OBJECT):
        return loose_equals(left, to_primitive_string(right))
    return False


def contains_key(container: Any, key: Any) -> bool:
    """The ``in`` operator: property presence on arrays and objects."""
    kind = kind_of(container)
    if kind == ValueKind.OBJECT:
        return value_to_string(key) in container
    if kind == ValueKind.ARRAY:
        if value_to_string(key) == "length":
            return True
        index = to_number(key)
        return isinstance(index, int) and 0 <= index < len(container)
    return False
