"""Tests for the runtime value model and JavaScript-like coercions."""

import copy
import math

import pytest

from stepper import constants
from stepper.errors import RuntimeStepFailure
from stepper.values import (
    UNDEFINED,
    FunctionRef,
    ValueKind,
    check_string_length,
    compare,
    contains_key,
    format_number,
    js_add,
    js_divide,
    js_modulo,
    js_power,
    js_subtract,
    kind_of,
    loose_equals,
    normalize_number,
    parse_number_literal,
    strict_equals,
    to_json_text,
    to_number,
    to_primitive_string,
    truthy,
    type_of,
    value_to_string,
)


class TestKindOf:
    def test_bool_is_not_a_number(self):
        assert kind_of(True) == ValueKind.BOOLEAN
        assert kind_of(1) == ValueKind.NUMBER

    def test_closed_set(self):
        assert kind_of(None) == ValueKind.NULL
        assert kind_of(UNDEFINED) == ValueKind.UNDEFINED
        assert kind_of([]) == ValueKind.ARRAY
        assert kind_of({}) == ValueKind.OBJECT
        assert kind_of(FunctionRef("f")) == ValueKind.FUNCTION

    def test_foreign_value_rejected(self):
        with pytest.raises(TypeError):
            kind_of(object())

    def test_undefined_is_a_singleton_across_copies(self):
        assert copy.deepcopy(UNDEFINED) is UNDEFINED
        assert copy.copy([UNDEFINED])[0] is UNDEFINED


class TestNumbers:
    def test_literal_bases(self):
        assert parse_number_literal("0x1F") == 31
        assert parse_number_literal("0o17") == 15
        assert parse_number_literal("0b101") == 5
        assert parse_number_literal("017") == 15

    def test_literal_separators_and_bigint_suffix(self):
        assert parse_number_literal("1_000") == 1000
        assert parse_number_literal("10n") == 10

    def test_literal_decimal_and_exponent(self):
        assert parse_number_literal("1.5") == 1.5
        assert parse_number_literal("1e3") == 1000
        assert isinstance(parse_number_literal("1e3"), int)

    def test_normalize_integral_float(self):
        assert normalize_number(3.0) == 3
        assert isinstance(normalize_number(3.0), int)
        assert isinstance(normalize_number(0.5), float)

    def test_negative_zero_stays_a_float(self):
        negative_zero = normalize_number(-0.0)
        assert isinstance(negative_zero, float)
        assert math.copysign(1.0, negative_zero) == -1.0
        assert format_number(negative_zero) == "0"
        assert js_divide(1, negative_zero) == -math.inf

    def test_format_number(self):
        assert format_number(1.5) == "1.5"
        assert format_number(math.inf) == "Infinity"
        assert format_number(-math.inf) == "-Infinity"
        assert format_number(math.nan) == "NaN"
        assert format_number(1e21) == "1e+21"

    def test_to_number_coercions(self):
        assert to_number("  42 ") == 42
        assert to_number("") == 0
        assert to_number(True) == 1
        assert to_number(None) == 0
        assert math.isnan(to_number(UNDEFINED))
        assert math.isnan(to_number("abc"))
        assert to_number("0x10") == 16


class TestArithmetic:
    def test_string_concatenation_wins(self):
        assert js_add("a", 1) == "a1"
        assert js_add(1, "a") == "1a"
        assert js_add("x", None) == "xnull"

    def test_numeric_addition(self):
        assert js_add(1, 2) == 3
        assert js_add(True, 1) == 2
        assert js_add(0.1, 0.2) == pytest.approx(0.3)

    def test_undefined_arithmetic_is_nan(self):
        assert math.isnan(js_add(UNDEFINED, 1))
        assert math.isnan(js_subtract(UNDEFINED, 1))

    def test_division_by_zero(self):
        assert js_divide(1, 0) == math.inf
        assert js_divide(-1, 0) == -math.inf
        assert math.isnan(js_divide(0, 0))

    def test_modulo(self):
        assert js_modulo(7, 3) == 1
        assert js_modulo(-7, 3) == -1
        assert math.isnan(js_modulo(5, 0))

    def test_power(self):
        assert js_power(2, 10) == 1024
        assert js_power(10, 400) == math.inf


class TestComparison:
    def test_strings_compare_lexicographically(self):
        assert compare("<", "a", "b")
        assert compare("<", "10", "9")

    def test_mixed_compares_numerically(self):
        assert compare("<", "9", 10)
        assert not compare("<", UNDEFINED, 1)
        assert not compare(">=", UNDEFINED, 1)

    def test_strict_equality(self):
        assert strict_equals(1, 1)
        assert not strict_equals(1, "1")
        assert not strict_equals(math.nan, math.nan)
        arr = [1]
        assert strict_equals(arr, arr)
        assert not strict_equals([1], [1])

    def test_loose_equality(self):
        assert loose_equals(1, "1")
        assert loose_equals(None, UNDEFINED)
        assert not loose_equals(None, 0)
        assert loose_equals(True, 1)
        assert loose_equals([1, 2], "1,2")

    def test_in_operator(self):
        assert contains_key({"a": 1}, "a")
        assert contains_key([10, 20], 1)
        assert not contains_key([10, 20], 2)
        assert not contains_key("abc", "length")


class TestTruthinessAndStrings:
    @pytest.mark.parametrize("value", [0, "", None, UNDEFINED, False, math.nan])
    def test_falsy(self, value):
        assert not truthy(value)

    @pytest.mark.parametrize("value", [1, "0", [], {}, FunctionRef("f")])
    def test_truthy(self, value):
        assert truthy(value)

    def test_type_of(self):
        assert type_of(None) == "object"
        assert type_of([]) == "object"
        assert type_of(UNDEFINED) == "undefined"
        assert type_of(FunctionRef("f")) == "function"
        assert type_of("s") == "string"

    def test_value_to_string_uses_json_for_containers(self):
        assert value_to_string([1, "a"]) == '[1,"a"]'
        assert value_to_string({"k": True}) == '{"k":true}'

    def test_value_to_string_cycle_falls_back(self):
        cyclic: list = []
        cyclic.append(cyclic)
        assert value_to_string(cyclic) == "[Object]"

    def test_function_placeholder(self):
        assert value_to_string(FunctionRef("add")) == "[Function: add]"
        assert FunctionRef().placeholder() == "[Function: anonymous]"

    def test_primitive_string_of_array_joins(self):
        assert to_primitive_string([1, None, "x"]) == "1,,x"
        assert to_primitive_string({}) == "[object Object]"

    def test_negative_zero_serialises_as_zero(self):
        assert value_to_string([-0.0]) == "[0]"

    def test_widely_shared_value_falls_back(self):
        value: list = []
        for _ in range(40):
            value = [value, value]
        with pytest.raises(ValueError):
            to_json_text(value)
        assert value_to_string(value) == "[Object]"

    def test_cyclic_array_joins_empty(self):
        cyclic: list = [1]
        cyclic.append(cyclic)
        assert to_primitive_string(cyclic) == "1,"


class TestStringLength:
    def test_concatenation_past_cap_raises(self):
        half = "a" * (constants.MAX_RUNTIME_STRING_LENGTH // 2 + 1)
        with pytest.raises(RuntimeStepFailure, match="Invalid string length"):
            js_add(half, half)

    def test_concatenation_at_cap_is_allowed(self):
        half = "a" * (constants.MAX_RUNTIME_STRING_LENGTH // 2)
        assert len(js_add(half, half)) == constants.MAX_RUNTIME_STRING_LENGTH

    def test_check_string_length(self):
        assert check_string_length("ok") == "ok"
        with pytest.raises(RuntimeStepFailure):
            check_string_length("x" * (constants.MAX_RUNTIME_STRING_LENGTH + 1))
