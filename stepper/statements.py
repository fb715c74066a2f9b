"""StatementExecutor — runs statement nodes and threads control-flow signals."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from tree_sitter import Node

from . import constants
from .errors import RuntimeStepFailure, StaticControlFlowViolation
from .evaluator import ExpressionEvaluator
from .functions import FUNCTION_EXPRESSION_TYPES, FunctionInvoker
from .loops import LoopRunner
from .parser import named_children, node_end_line, node_line, node_text
from .recorder import StepRecorder
from .state_types import NORMAL, ControlFlowSignal, ExecutionState, SignalKind
from .trace_types import BlockContext, BlockType, StepKind
from .values import UNDEFINED, FunctionRef, truthy

logger = logging.getLogger(__name__)

DECLARATION_TYPES: frozenset[str] = frozenset(
    {"lexical_declaration", "variable_declaration"}
)
LOOP_TYPES: frozenset[str] = frozenset({"for_statement", "while_statement", "do_statement"})
_SKIPPED_TYPES: frozenset[str] = (
    frozenset({"empty_statement", "hash_bang_line", "function_signature"})
    | constants.COMMENT_TYPES
    | constants.TYPE_ONLY_STATEMENTS
)


class StatementExecutor:
    """Executes statements against the run's ExecutionState.

    Every handler returns a ``ControlFlowSignal``; a non-normal signal stops
    sibling iteration and propagates to the enclosing loop, function or the
    orchestrator.  The executor owns the evaluator, the invoker and the loop
    runner of a run, since each of them calls back into the others.
    """

    def __init__(self, state: ExecutionState, recorder: StepRecorder):
        self._state = state
        self._recorder = recorder
        self.invoker = FunctionInvoker(state, recorder, self)
        self.evaluator = ExpressionEvaluator(state, self.invoker)
        self.loops = LoopRunner(state, recorder, self)
        self._STMT_DISPATCH: dict[str, Callable[[Node], ControlFlowSignal]] = {
            "lexical_declaration": self._exec_declaration,
            "variable_declaration": self._exec_declaration,
            "expression_statement": self._exec_expression_statement,
            "statement_block": self._exec_block,
            "if_statement": self._exec_if,
            "for_statement": self.loops.run,
            "while_statement": self.loops.run,
            "do_statement": self.loops.run,
            "break_statement": self._exec_break,
            "continue_statement": self._exec_continue,
            "return_statement": self._exec_return,
            "function_declaration": self._exec_function_declaration,
            "generator_function_declaration": self._exec_function_declaration,
            "labeled_statement": self._exec_labeled,
        }

    # ── dispatcher ───────────────────────────────────────────────

    def execute(self, node: Node) -> ControlFlowSignal:
        """Execute one statement, containing runtime failures to it."""
        if node.type in _SKIPPED_TYPES:
            return NORMAL
        self._state.stats.statements += 1
        handler = self._STMT_DISPATCH.get(node.type)
        if handler is None:
            return self._exec_unsupported(node)
        try:
            return handler(node)
        except RuntimeStepFailure as exc:
            self._state.stats.runtime_failures += 1
            logger.warning("Runtime failure at line %d: %s", node_line(node), exc.message)
            self._recorder.record(
                exc.line or node_line(node),
                kind=StepKind.ERROR,
                captured=self.drain_output(),
                message=exc.message,
            )
            return NORMAL

    def execute_statements(self, nodes) -> ControlFlowSignal:
        for node in nodes:
            signal = self.execute(node)
            if not signal.is_normal:
                return signal
        return NORMAL

    def execute_body(self, node: Node) -> ControlFlowSignal:
        """Run a loop/branch body, which may be a block or a bare statement."""
        if node.type == "statement_block":
            return self.execute_statements(named_children(node))
        return self.execute(node)

    @contextmanager
    def block(self, block_type: BlockType, node: Node) -> Iterator[BlockContext]:
        """Tag Steps recorded inside *node* with its block classification."""
        previous = self._state.current_block
        context = BlockContext(block_type, node_line(node), node_end_line(node))
        self._state.current_block = context
        try:
            yield context
        finally:
            self._state.current_block = previous

    def drain_output(self) -> list[Any]:
        """Hand the queued console captures to the Step being recorded."""
        captured = list(self._state.pending_output)
        self._state.pending_output.clear()
        return captured

    # ── declarations ─────────────────────────────────────────────

    def declare_variables(self, node: Node):
        """Bind every declarator of a let/const/var declaration."""
        kind_node = node.child_by_field_name("kind") or node.children[0]
        constant = node_text(kind_node) == "const"
        for declarator in named_children(node):
            if declarator.type != "variable_declarator":
                continue
            name_node = declarator.child_by_field_name("name")
            value_node = declarator.child_by_field_name("value")
            if name_node is None or name_node.type != "identifier":
                logger.warning(
                    "Destructuring declaration not supported (line %d)",
                    node_line(declarator),
                )
                continue
            name = node_text(name_node)
            env = self._state.environment
            if value_node is None:
                if node.type == "variable_declaration" and env.has(name):
                    continue
                value: Any = UNDEFINED
            elif value_node.type in FUNCTION_EXPRESSION_TYPES:
                self.invoker.register(name, value_node)
                value = FunctionRef(name)
            else:
                value = self.evaluator.evaluate(value_node)
            env.declare(name, value, constant=constant)

    def _exec_declaration(self, node) -> ControlFlowSignal:
        self.declare_variables(node)
        self._recorder.record(node_line(node), captured=self.drain_output())
        return NORMAL

    def _exec_expression_statement(self, node) -> ControlFlowSignal:
        inner = named_children(node)
        if inner:
            self.evaluator.evaluate(inner[0])
        self._recorder.record(node_line(node), captured=self.drain_output())
        return NORMAL

    def _exec_function_declaration(self, node) -> ControlFlowSignal:
        name = node_text(node.child_by_field_name("name"))
        self.invoker.register(name, node)
        self._state.environment.declare(name, FunctionRef(name))
        with self.block(BlockType.FUNCTION, node) as context:
            self._recorder.record(node_line(node), block=context)
        return NORMAL

    # ── compound statements ──────────────────────────────────────

    def _exec_block(self, node) -> ControlFlowSignal:
        return self.execute_statements(named_children(node))

    def _exec_if(self, node) -> ControlFlowSignal:
        result = truthy(self.evaluator.evaluate(node.child_by_field_name("condition")))
        self._recorder.record(
            node_line(node),
            kind=StepKind.CONDITION,
            captured=self.drain_output(),
            condition=result,
        )
        if result:
            consequence = node.child_by_field_name("consequence")
            with self.block(BlockType.IF, consequence):
                return self.execute_body(consequence)

        alternative = node.child_by_field_name("alternative")
        if alternative is None:
            return NORMAL
        branch = named_children(alternative)
        if not branch:
            return NORMAL
        with self.block(BlockType.ELSE, alternative):
            return self.execute_body(branch[0])

    def _exec_labeled(self, node) -> ControlFlowSignal:
        label = node_text(node.child_by_field_name("label"))
        body = node.child_by_field_name("body")
        self._state.labels.append(label)
        try:
            if body.type in LOOP_TYPES:
                signal = self.loops.run(body, label=label)
            else:
                signal = self.execute(body)
        finally:
            self._state.labels.pop()
        if signal.kind == SignalKind.BREAK and signal.label == label:
            return NORMAL
        return signal

    # ── jumps ────────────────────────────────────────────────────

    def _exec_break(self, node) -> ControlFlowSignal:
        label = self._jump_label(node, "break")
        self._recorder.record(node_line(node), kind=StepKind.CONTROL)
        return ControlFlowSignal.break_(label)

    def _exec_continue(self, node) -> ControlFlowSignal:
        label = self._jump_label(node, "continue")
        self._recorder.record(node_line(node), kind=StepKind.CONTROL)
        return ControlFlowSignal.continue_(label)

    def _jump_label(self, node, keyword: str) -> str | None:
        label_node = node.child_by_field_name("label")
        label = node_text(label_node) if label_node is not None else None
        if label is not None and label not in self._state.labels:
            raise StaticControlFlowViolation(
                f"Undefined label '{label}' in {keyword} statement", line=node_line(node)
            )
        if self._state.loop_depth == 0 and (keyword == "continue" or label is None):
            raise StaticControlFlowViolation(
                f"Illegal {keyword} statement outside of a loop", line=node_line(node)
            )
        return label

    def _exec_return(self, node) -> ControlFlowSignal:
        inner = named_children(node)
        value = self.evaluator.evaluate(inner[0]) if inner else UNDEFINED
        self._recorder.record(
            node_line(node), kind=StepKind.CONTROL, captured=self.drain_output()
        )
        return ControlFlowSignal.return_(value)

    # ── fallback ─────────────────────────────────────────────────

    def _exec_unsupported(self, node) -> ControlFlowSignal:
        logger.warning(
            "Unsupported statement type '%s' at line %d", node.type, node_line(node)
        )
        self._recorder.record(
            node_line(node),
            kind=StepKind.DIAGNOSTIC,
            message=f"Unsupported statement: {node.type}",
        )
        return NORMAL
