"""Calls to user functions, run in a fresh flat frame."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from tree_sitter import Node

from .environment import Environment
from .parser import named_children, node_end_line, node_line, node_text
from .recorder import StepRecorder
from .state_types import CallFrame, ExecutionState, FunctionDefinition, SignalKind
from .trace_types import BlockContext, BlockType, StepKind
from .values import UNDEFINED, FunctionRef, ValueKind, kind_of, value_to_string

if TYPE_CHECKING:
    from .statements import StatementExecutor

logger = logging.getLogger(__name__)

FUNCTION_EXPRESSION_TYPES: frozenset[str] = frozenset(
    {"arrow_function", "function_expression", "function", "generator_function"}
)
_PARAMETER_WRAPPERS: frozenset[str] = frozenset({"required_parameter", "optional_parameter"})


def describe_value(value: Any) -> str:
    """Short rendering of a value for call-site and return messages."""
    if kind_of(value) == ValueKind.STRING:
        return json.dumps(value, ensure_ascii=False)
    return value_to_string(value)


def extract_parameters(params_node: Node | None) -> tuple[list[str], dict[str, Node]]:
    """Parameter names and default-value expressions of a function node."""
    names: list[str] = []
    defaults: dict[str, Node] = {}
    if params_node is None:
        return names, defaults
    if params_node.type == "identifier":
        return [node_text(params_node)], defaults
    for child in named_children(params_node):
        pattern, default = child, None
        if child.type in _PARAMETER_WRAPPERS:
            pattern = child.child_by_field_name("pattern")
            default = child.child_by_field_name("value")
        if pattern is not None and pattern.type == "assignment_pattern":
            default = pattern.child_by_field_name("right")
            pattern = pattern.child_by_field_name("left")
        if pattern is None or pattern.type != "identifier":
            logger.warning(
                "Unsupported parameter '%s' at line %d", child.type, node_line(child)
            )
            continue
        name = node_text(pattern)
        names.append(name)
        if default is not None:
            defaults[name] = default
    return names, defaults


class FunctionInvoker:
    """Runs direct calls of user functions in a single flattened frame.

    The caller's Environment, loop depth, labels, block and pending output are
    saved before the call and restored on every exit path, so the callee sees
    only its parameters.
    """

    def __init__(
        self,
        state: ExecutionState,
        recorder: StepRecorder,
        executor: StatementExecutor,
    ):
        self._state = state
        self._recorder = recorder
        self._executor = executor

    def register(self, name: str, node: Node) -> FunctionDefinition:
        """Register a function declaration or a named function expression."""
        params_node = node.child_by_field_name("parameters")
        if params_node is None:
            params_node = node.child_by_field_name("parameter")
        body = node.child_by_field_name("body")
        param_names, defaults = extract_parameters(params_node)

        body_statements: tuple[Node, ...] = ()
        expression_body = None
        if body is not None and body.type == "statement_block":
            body_statements = tuple(named_children(body))
        elif body is not None:
            expression_body = body

        definition = FunctionDefinition(
            name=name,
            param_names=tuple(param_names),
            body_statements=body_statements,
            declaration_line=node_line(node),
            end_line=node_end_line(node),
            param_defaults=defaults,
            expression_body=expression_body,
        )
        self._state.functions[name] = definition
        logger.debug("Registered function %s(%s)", name, ", ".join(param_names))
        return definition

    def resolve(self, name: str) -> FunctionDefinition | None:
        """Find the definition a callee identifier refers to."""
        bound = self._state.environment.lookup(name, None)
        if isinstance(bound, FunctionRef) and bound.name in self._state.functions:
            return self._state.functions[bound.name]
        return self._state.functions.get(name)

    def invoke(self, call_node: Node) -> Any:
        callee = call_node.child_by_field_name("function")
        line = node_line(call_node)
        if callee is None or callee.type != "identifier":
            return self._diagnose(
                line, f"Unsupported call: {node_text(callee) if callee else '?'}(...)"
            )

        name = node_text(callee)
        definition = self.resolve(name)
        if definition is None:
            return self._diagnose(line, f"Function '{name}' is not defined")

        if self._state.call_depth >= self._state.config.max_call_depth:
            return self._overflow(name, line)

        args = self._executor.evaluator.evaluate_arguments(call_node)
        try:
            return self.call(definition, args, line)
        except RecursionError:
            return self._overflow(name, line)

    def call(self, definition: FunctionDefinition, args: list[Any], line: int) -> Any:
        state = self._state
        name = definition.name
        self._check_arity(definition, args, line)
        self._recorder.record(
            line,
            kind=StepKind.CALL,
            message=f"Calling {name}({', '.join(describe_value(a) for a in args)})",
        )

        saved_environment = state.environment
        saved_loop_depth = state.loop_depth
        saved_labels = state.labels
        saved_output = state.pending_output
        saved_block = state.current_block

        state.environment = Environment()
        state.loop_depth = 0
        state.labels = []
        state.pending_output = []
        state.current_block = BlockContext(
            BlockType.FUNCTION, definition.declaration_line, definition.end_line
        )
        frame = CallFrame(function_name=name, call_site_line=line)
        state.call_stack.append(frame)
        state.stats.function_calls += 1
        state.stats.max_call_depth_reached = max(
            state.stats.max_call_depth_reached, state.call_depth
        )
        try:
            self._bind_parameters(definition, args, frame)
            self._recorder.record(
                definition.declaration_line,
                kind=StepKind.FUNCTION_ENTER,
                message=f"Entering {name}",
            )
            frame.return_value = self._run_body(definition)
            if frame.return_value is UNDEFINED:
                message = f"{name} completed"
            else:
                message = f"{name} returned {describe_value(frame.return_value)}"
            self._recorder.record(
                definition.end_line,
                kind=StepKind.FUNCTION_RETURN,
                captured=self._executor.drain_output(),
                message=message,
            )
        finally:
            state.call_stack.pop()
            state.environment = saved_environment
            state.loop_depth = saved_loop_depth
            state.labels = saved_labels
            state.pending_output = saved_output
            state.current_block = saved_block
            self._recorder.record(line, kind=StepKind.FUNCTION_EXIT, message=f"Exiting {name}")
        return frame.return_value

    # ── helpers ──────────────────────────────────────────────────

    def _bind_parameters(self, definition: FunctionDefinition, args: list[Any], frame: CallFrame):
        env = self._state.environment
        for index, param in enumerate(definition.param_names):
            value = args[index] if index < len(args) else UNDEFINED
            if value is UNDEFINED and param in definition.param_defaults:
                value = self._executor.evaluator.evaluate(definition.param_defaults[param])
            env.declare(param, value)
        frame.bound_parameters = dict(env.bindings)

    def _run_body(self, definition: FunctionDefinition) -> Any:
        if definition.expression_body is not None:
            return self._executor.evaluator.evaluate(definition.expression_body)
        signal = self._executor.execute_statements(definition.body_statements)
        if signal.kind == SignalKind.RETURN:
            return signal.value
        return UNDEFINED

    def _check_arity(self, definition: FunctionDefinition, args: list[Any], line: int):
        params = definition.param_names
        missing = [p for p in params[len(args) :] if p not in definition.param_defaults]
        if len(args) <= len(params) and not missing:
            return
        message = (
            f"{definition.name} expects {len(params)} argument"
            f"{'' if len(params) == 1 else 's'}, got {len(args)}"
        )
        logger.warning("Arity mismatch at line %d: %s", line, message)
        self._recorder.record(line, kind=StepKind.DIAGNOSTIC, message=message)

    def _diagnose(self, line: int, message: str) -> Any:
        logger.warning("%s (line %d)", message, line)
        self._recorder.record(line, kind=StepKind.DIAGNOSTIC, message=message)
        return UNDEFINED

    def _overflow(self, name: str, line: int) -> Any:
        return self._diagnose(
            line,
            f"Maximum call stack size exceeded while calling {name}"
            f" (limit {self._state.config.max_call_depth})",
        )
