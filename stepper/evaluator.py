"""ExpressionEvaluator — tree-sitter expression node → Value."""

from __future__ import annotations

import logging
import math
import re
from typing import TYPE_CHECKING, Any, Callable

from tree_sitter import Node

from . import constants
from .errors import RuntimeStepFailure
from .parser import named_children, node_line, node_text
from .state_types import ExecutionState
from .values import (
    UNDEFINED,
    FunctionRef,
    ValueKind,
    check_string_length,
    compare,
    contains_key,
    js_add,
    js_divide,
    js_modulo,
    js_multiply,
    js_power,
    js_subtract,
    kind_of,
    loose_equals,
    normalize_number,
    parse_number_literal,
    strict_equals,
    to_int32,
    to_number,
    to_uint32,
    truthy,
    type_of,
    value_to_string,
)

if TYPE_CHECKING:
    from .functions import FunctionInvoker

logger = logging.getLogger(__name__)

_ESCAPE = re.compile(r"\\(u\{[0-9a-fA-F]+\}|u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|\r\n|[\s\S])")
_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
    "\n": "",
    "\r\n": "",
    "\u2028": "",
    "\u2029": "",
}

_BINARY_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "+": js_add,
    "-": js_subtract,
    "*": js_multiply,
    "/": js_divide,
    "%": js_modulo,
    "**": js_power,
    "<": lambda a, b: compare("<", a, b),
    "<=": lambda a, b: compare("<=", a, b),
    ">": lambda a, b: compare(">", a, b),
    ">=": lambda a, b: compare(">=", a, b),
    "===": strict_equals,
    "!==": lambda a, b: not strict_equals(a, b),
    "==": loose_equals,
    "!=": lambda a, b: not loose_equals(a, b),
    "&": lambda a, b: to_int32(to_int32(a) & to_int32(b)),
    "|": lambda a, b: to_int32(to_int32(a) | to_int32(b)),
    "^": lambda a, b: to_int32(to_int32(a) ^ to_int32(b)),
    "<<": lambda a, b: to_int32(to_int32(a) << (to_uint32(b) & 31)),
    ">>": lambda a, b: to_int32(a) >> (to_uint32(b) & 31),
    ">>>": lambda a, b: to_uint32(a) >> (to_uint32(b) & 31),
    "in": lambda a, b: contains_key(b, a),
}

_LOGICAL_OPERATORS: frozenset[str] = frozenset({"&&", "||", "??"})


def decode_js_string(raw: str) -> str:
    """Resolve JavaScript escape sequences in a literal's raw text."""

    def _replace(match: re.Match) -> str:
        body = match.group(1)
        if body.startswith("u{"):
            code = int(body[2:-1], 16)
            return chr(code) if code <= 0x10FFFF else match.group(0)
        if body.startswith("u") and len(body) == 5:
            return chr(int(body[1:], 16))
        if body.startswith("x") and len(body) == 3:
            return chr(int(body[1:], 16))
        return _SIMPLE_ESCAPES.get(body, body)

    return _ESCAPE.sub(_replace, raw)


class ExpressionEvaluator:
    """Evaluates expression nodes against the state's current Environment.

    Unsupported constructs never raise: they log a warning and evaluate to
    ``undefined`` so one bad expression does not abort stepping.  JavaScript
    TypeErrors (writing through ``null``/``undefined``, reassigning a
    ``const``) raise ``RuntimeStepFailure`` for the enclosing statement.
    """

    def __init__(self, state: ExecutionState, invoker: FunctionInvoker):
        self._state = state
        self._invoker = invoker
        self._EXPR_DISPATCH: dict[str, Callable[[Node], Any]] = {
            "identifier": self._eval_identifier,
            "number": self._eval_number,
            "string": self._eval_string,
            "template_string": self._eval_template_string,
            "true": lambda _: True,
            "false": lambda _: False,
            "null": lambda _: None,
            "undefined": lambda _: UNDEFINED,
            "parenthesized_expression": self._eval_unwrap,
            "unary_expression": self._eval_unary,
            "binary_expression": self._eval_binary,
            "ternary_expression": self._eval_ternary,
            "update_expression": self._eval_update,
            "assignment_expression": self._eval_assignment,
            "augmented_assignment_expression": self._eval_augmented_assignment,
            "array": self._eval_array,
            "object": self._eval_object,
            "member_expression": self._eval_member,
            "subscript_expression": self._eval_member,
            "call_expression": self._eval_call,
            "sequence_expression": self._eval_sequence,
            "spread_element": lambda _: constants.SPREAD_PLACEHOLDER,
            "arrow_function": self._eval_function_expression,
            "function_expression": self._eval_function_expression,
            "function": self._eval_function_expression,
            "generator_function": self._eval_function_expression,
            # TypeScript wrappers evaluate to their inner expression
            "as_expression": self._eval_unwrap,
            "satisfies_expression": self._eval_unwrap,
            "non_null_expression": self._eval_unwrap,
            "type_assertion": self._eval_last_named,
        }

    # ── dispatcher ───────────────────────────────────────────────

    def evaluate(self, node: Node | None) -> Any:
        if node is None:
            return UNDEFINED
        handler = self._EXPR_DISPATCH.get(node.type)
        if handler:
            return handler(node)
        # Fallback: unsupported kinds evaluate to undefined
        logger.warning(
            "Unsupported expression type '%s' at line %d", node.type, node_line(node)
        )
        return UNDEFINED

    # ── literals and names ───────────────────────────────────────

    def _eval_identifier(self, node) -> Any:
        name = node_text(node)
        env = self._state.environment
        if env.has(name):
            return env.lookup(name)
        if name in self._state.functions:
            return FunctionRef(name)
        if name == "undefined":
            return UNDEFINED
        if name == "NaN":
            return math.nan
        if name == "Infinity":
            return math.inf
        logger.warning("Variable '%s' is undefined (line %d)", name, node_line(node))
        return UNDEFINED

    def _eval_number(self, node) -> Any:
        return parse_number_literal(node_text(node))

    def _eval_string(self, node) -> str:
        return decode_js_string(node_text(node)[1:-1])

    def _eval_template_string(self, node) -> str:
        raw = node.text
        base = node.start_byte
        pos = base + 1
        parts: list[str] = []
        for child in node.children:
            if child.type != "template_substitution":
                continue
            parts.append(decode_js_string(raw[pos - base : child.start_byte - base].decode("utf-8")))
            inner = named_children(child)
            parts.append(value_to_string(self.evaluate(inner[0]) if inner else UNDEFINED))
            pos = child.end_byte
        parts.append(decode_js_string(raw[pos - base : node.end_byte - base - 1].decode("utf-8")))
        return check_string_length("".join(parts))

    def _eval_unwrap(self, node) -> Any:
        inner = named_children(node)
        return self.evaluate(inner[0]) if inner else UNDEFINED

    def _eval_last_named(self, node) -> Any:
        inner = named_children(node)
        return self.evaluate(inner[-1]) if inner else UNDEFINED

    # ── operators ────────────────────────────────────────────────

    def _eval_unary(self, node) -> Any:
        op = node_text(node.child_by_field_name("operator"))
        operand = self.evaluate(node.child_by_field_name("argument"))
        if op == "-":
            return normalize_number(-float(to_number(operand)))
        if op == "+":
            return to_number(operand)
        if op == "!":
            return not truthy(operand)
        if op == "~":
            return to_int32(~to_int32(operand))
        if op == "typeof":
            return type_of(operand)
        if op == "void":
            return UNDEFINED
        logger.warning("Unsupported unary operator '%s' at line %d", op, node_line(node))
        return UNDEFINED

    def _eval_binary(self, node) -> Any:
        op = node_text(node.child_by_field_name("operator"))
        left = self.evaluate(node.child_by_field_name("left"))
        if op in _LOGICAL_OPERATORS:
            return self._short_circuit(op, left, node.child_by_field_name("right"))
        right = self.evaluate(node.child_by_field_name("right"))
        fn = _BINARY_OPERATORS.get(op)
        if fn is None:
            logger.warning("Unsupported binary operator '%s' at line %d", op, node_line(node))
            return UNDEFINED
        return fn(left, right)

    def _short_circuit(self, op: str, left: Any, right_node) -> Any:
        if op == "&&":
            return self.evaluate(right_node) if truthy(left) else left
        if op == "||":
            return left if truthy(left) else self.evaluate(right_node)
        # ??
        if kind_of(left) in (ValueKind.NULL, ValueKind.UNDEFINED):
            return self.evaluate(right_node)
        return left

    def _eval_ternary(self, node) -> Any:
        if truthy(self.evaluate(node.child_by_field_name("condition"))):
            return self.evaluate(node.child_by_field_name("consequence"))
        return self.evaluate(node.child_by_field_name("alternative"))

    def _eval_sequence(self, node) -> Any:
        result: Any = UNDEFINED
        for child in named_children(node):
            result = self.evaluate(child)
        return result

    # ── assignment ───────────────────────────────────────────────

    def _eval_assignment(self, node) -> Any:
        _read, write = self.resolve_target(node.child_by_field_name("left"))
        return write(self.evaluate(node.child_by_field_name("right")))

    def _eval_augmented_assignment(self, node) -> Any:
        read, write = self.resolve_target(node.child_by_field_name("left"))
        op = node_text(node.child_by_field_name("operator"))[:-1]
        current = read()
        if op in _LOGICAL_OPERATORS:
            if op == "&&" and not truthy(current):
                return current
            if op == "||" and truthy(current):
                return current
            if op == "??" and kind_of(current) not in (ValueKind.NULL, ValueKind.UNDEFINED):
                return current
            return write(self.evaluate(node.child_by_field_name("right")))
        fn = _BINARY_OPERATORS.get(op)
        if fn is None:
            logger.warning(
                "Unsupported assignment operator '%s=' at line %d", op, node_line(node)
            )
            return UNDEFINED
        right = self.evaluate(node.child_by_field_name("right"))
        return write(fn(current, right))

    def _eval_update(self, node) -> Any:
        read, write = self.resolve_target(node.child_by_field_name("argument"))
        op = node_text(node.child_by_field_name("operator"))
        old = to_number(read())
        new = normalize_number(float(old) + (1 if op == "++" else -1))
        write(new)
        is_prefix = node.children[0].type in ("++", "--")
        return new if is_prefix else old

    def resolve_target(self, target) -> tuple[Callable[[], Any], Callable[[Any], Any]]:
        """Evaluate a target's object and key once; return ``(read, write)`` on them."""
        if target.type == "parenthesized_expression":
            inner = named_children(target)
            if inner:
                return self.resolve_target(inner[0])
        if target.type in ("member_expression", "subscript_expression"):
            line = node_line(target)
            obj = self.evaluate(target.child_by_field_name("object"))
            key = self._target_key(target)

            def write(value: Any) -> Any:
                self._set_property(obj, key, value, line)
                return value

            return (lambda: self.get_property(obj, key, line)), write
        return (lambda: self.evaluate(target)), (lambda value: self.assign_to(target, value))

    def _target_key(self, target) -> Any:
        if target.type == "member_expression":
            return node_text(target.child_by_field_name("property"))
        return self.evaluate(target.child_by_field_name("index"))

    def assign_to(self, target, value: Any) -> Any:
        """Store *value* into an identifier, member or subscript target."""
        line = node_line(target)
        if target.type == "identifier":
            self._state.environment.assign(node_text(target), value, line=line)
            return value
        if target.type == "parenthesized_expression":
            inner = named_children(target)
            return self.assign_to(inner[0], value) if inner else value
        if target.type in ("member_expression", "subscript_expression"):
            _read, write = self.resolve_target(target)
            return write(value)
        logger.warning("Unsupported assignment target '%s' at line %d", target.type, line)
        return UNDEFINED

    def _set_property(self, obj: Any, key: Any, value: Any, line: int):
        kind = kind_of(obj)
        if kind in (ValueKind.NULL, ValueKind.UNDEFINED):
            raise RuntimeStepFailure(
                f"TypeError: Cannot set properties of {value_to_string(obj)}"
                f" (setting '{value_to_string(key)}')",
                line=line,
            )
        if kind == ValueKind.OBJECT:
            obj[value_to_string(key)] = value
            return
        if kind == ValueKind.ARRAY:
            if value_to_string(key) == "length":
                self._set_array_length(obj, to_number(value), line)
                return
            index = _array_index(key)
            if index is None:
                logger.warning("Ignoring non-index array property '%s'", key)
                return
            if index >= len(obj):
                if index - len(obj) > constants.MAX_ARRAY_GAP:
                    logger.warning("Array index %d too far past the end; ignored", index)
                    return
                obj.extend([UNDEFINED] * (index - len(obj) + 1))
            obj[index] = value
            return
        logger.warning("Cannot set property on a %s value (line %d)", kind.value, line)

    def _set_array_length(self, arr: list, length: Any, line: int):
        if not isinstance(length, int) or length < 0:
            raise RuntimeStepFailure("RangeError: Invalid array length", line=line)
        if length <= len(arr):
            del arr[length:]
        elif length - len(arr) <= constants.MAX_ARRAY_GAP:
            arr.extend([UNDEFINED] * (length - len(arr)))
        else:
            logger.warning("Array length %d too far past the end; ignored", length)

    # ── literals: arrays and objects ─────────────────────────────

    def _eval_array(self, node) -> list:
        return [self.evaluate(child) for child in named_children(node)]

    def _eval_object(self, node) -> dict:
        result: dict[str, Any] = {}
        for child in named_children(node):
            if child.type == "pair":
                key = self._property_key(child.child_by_field_name("key"))
                result[key] = self.evaluate(child.child_by_field_name("value"))
            elif child.type == "shorthand_property_identifier":
                name = node_text(child)
                result[name] = self._eval_identifier(child)
            elif child.type == "method_definition":
                name = self._property_key(child.child_by_field_name("name"))
                result[name] = FunctionRef(name)
            else:
                logger.warning(
                    "Object member '%s' not supported (line %d)", child.type, node_line(child)
                )
        return result

    def _property_key(self, key_node) -> str:
        if key_node.type == "string":
            return self._eval_string(key_node)
        if key_node.type == "number":
            return value_to_string(self._eval_number(key_node))
        if key_node.type == "computed_property_name":
            return value_to_string(self._eval_unwrap(key_node))
        return node_text(key_node)

    # ── member access ────────────────────────────────────────────

    def _eval_member(self, node) -> Any:
        obj = self.evaluate(node.child_by_field_name("object"))
        return self.get_property(obj, self._target_key(node), node_line(node))

    def get_property(self, obj: Any, key: Any, line: int) -> Any:
        """Read ``obj[key]``; anything missing reads as undefined."""
        kind = kind_of(obj)
        if kind in (ValueKind.ARRAY, ValueKind.STRING):
            if value_to_string(key) == "length":
                return len(obj)
            index = _array_index(key)
            if index is not None and index < len(obj):
                return obj[index]
            return UNDEFINED
        if kind == ValueKind.OBJECT:
            return obj.get(value_to_string(key), UNDEFINED)
        if kind in (ValueKind.NULL, ValueKind.UNDEFINED):
            logger.warning(
                "Member access failed: reading '%s' of %s (line %d)",
                value_to_string(key),
                value_to_string(obj),
                line,
            )
        return UNDEFINED

    # ── calls and functions ──────────────────────────────────────

    def _eval_call(self, node) -> Any:
        callee = node.child_by_field_name("function")
        if _is_console_call(callee):
            args = self.evaluate_arguments(node)
            self._state.pending_output.append(args[0] if len(args) == 1 else args)
            return UNDEFINED
        return self._invoker.invoke(node)

    def evaluate_arguments(self, call_node) -> list[Any]:
        args_node = call_node.child_by_field_name("arguments")
        if args_node is None:
            return []
        return [self.evaluate(arg) for arg in named_children(args_node)]

    def _eval_function_expression(self, node) -> FunctionRef:
        name_node = node.child_by_field_name("name")
        return FunctionRef(node_text(name_node)) if name_node else FunctionRef()


def _is_console_call(callee) -> bool:
    if callee is None or callee.type != "member_expression":
        return False
    obj = callee.child_by_field_name("object")
    prop = callee.child_by_field_name("property")
    return (
        obj is not None
        and obj.type == "identifier"
        and node_text(obj) == constants.CONSOLE_OBJECT
        and prop is not None
        and node_text(prop) in constants.CONSOLE_METHODS
    )


def _array_index(key: Any) -> int | None:
    kind = kind_of(key)
    if kind == ValueKind.NUMBER:
        return key if isinstance(key, int) and key >= 0 else None
    if kind == ValueKind.STRING and key.isdigit():
        return int(key)
    return None
