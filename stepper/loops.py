"""LoopRunner — for / while / do-while execution under resource guards."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable

from tree_sitter import Node

from .errors import ResourceGuardTrip
from .parser import named_children, node_end_line, node_line
from .recorder import StepRecorder
from .run_types import StepperConfig
from .state_types import NORMAL, ControlFlowSignal, ExecutionState, SignalKind
from .trace_types import BlockType, StepKind
from .values import truthy

if TYPE_CHECKING:
    from .statements import StatementExecutor

logger = logging.getLogger(__name__)

_ABSENT_CLAUSE_TYPES: frozenset[str] = frozenset({"empty_statement", ";"})


class LoopGuard:
    """Per-loop iteration counter and wall-clock budget.

    ``check()`` runs before each iteration and raises ``ResourceGuardTrip``
    naming the guard that fired; the loop ends early when it does.
    """

    def __init__(self, config: StepperConfig, recorder: StepRecorder, line: int):
        self._config = config
        self._recorder = recorder
        self._line = line
        self.iterations = 0
        self._start = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000

    def check(self):
        if self.iterations >= self._config.max_iterations:
            raise ResourceGuardTrip(
                f"Loop exceeded maximum iterations ({self._config.max_iterations})",
                line=self._line,
                guard="iterations",
            )
        if self.elapsed_ms > self._config.timeout_ms:
            raise ResourceGuardTrip(
                f"Loop exceeded timeout ({self._config.timeout_ms}ms)",
                line=self._line,
                guard="timeout",
            )
        if self._recorder.is_full:
            raise ResourceGuardTrip(
                f"Step cap reached ({self._config.max_steps})",
                line=self._line,
                guard="steps",
            )
        self.iterations += 1


class LoopRunner:
    """Runs loop statements, consuming the break/continue signals aimed at them."""

    def __init__(
        self,
        state: ExecutionState,
        recorder: StepRecorder,
        executor: StatementExecutor,
    ):
        self._state = state
        self._recorder = recorder
        self._executor = executor
        self._LOOP_DISPATCH: dict[
            str, Callable[[Node, str | None, LoopGuard], ControlFlowSignal]
        ] = {
            "for_statement": self._run_for,
            "while_statement": self._run_while,
            "do_statement": self._run_do,
        }

    def run(self, node: Node, label: str | None = None) -> ControlFlowSignal:
        line = node_line(node)
        config = self._state.config
        guard = LoopGuard(config, self._recorder, line)
        if self._state.loop_depth >= config.max_loop_depth:
            trip = ResourceGuardTrip(
                f"Loop nesting exceeded maximum depth ({config.max_loop_depth})",
                line=line,
                guard="depth",
            )
            self._note_trip(trip)
            self._record_completion(node, guard, trip)
            return NORMAL

        tripped: ResourceGuardTrip | None = None
        signal = NORMAL
        self._state.loop_depth += 1
        try:
            signal = self._LOOP_DISPATCH[node.type](node, label, guard)
        except ResourceGuardTrip as trip:
            tripped = trip
            self._note_trip(trip)
        finally:
            self._state.loop_depth -= 1
            self._state.stats.loop_iterations += guard.iterations
        self._record_completion(node, guard, tripped)
        return signal

    # ── loop kinds ───────────────────────────────────────────────

    def _run_for(self, node, label, guard) -> ControlFlowSignal:
        line = node_line(node)
        init = _clause(node, "initializer")
        condition = _clause(node, "condition")
        update = _clause(node, "increment")
        if update is None:
            update = _clause(node, "update")
        body = node.child_by_field_name("body")

        if init is not None:
            if init.type in ("lexical_declaration", "variable_declaration"):
                self._executor.declare_variables(init)
            else:
                self._executor.evaluator.evaluate(init)
            self._recorder.record(
                line, kind=StepKind.LOOP_INIT, captured=self._executor.drain_output()
            )

        while True:
            if condition is not None and not self._test(line, condition):
                return NORMAL
            guard.check()
            signal = self._run_body(body, BlockType.FOR)
            if _exits(signal, label):
                return _settle(signal, label)
            if update is not None:
                self._executor.evaluator.evaluate(update)
                if signal.kind != SignalKind.CONTINUE:
                    self._recorder.record(
                        line,
                        kind=StepKind.LOOP_UPDATE,
                        captured=self._executor.drain_output(),
                    )

    def _run_while(self, node, label, guard) -> ControlFlowSignal:
        line = node_line(node)
        condition = node.child_by_field_name("condition")
        body = node.child_by_field_name("body")
        while self._test(line, condition):
            guard.check()
            signal = self._run_body(body, BlockType.WHILE)
            if _exits(signal, label):
                return _settle(signal, label)
        return NORMAL

    def _run_do(self, node, label, guard) -> ControlFlowSignal:
        condition = node.child_by_field_name("condition")
        body = node.child_by_field_name("body")
        # the test sits after the body, on the `while (...)` line
        test_line = node_line(condition) if condition is not None else node_line(node)
        while True:
            guard.check()
            signal = self._run_body(body, BlockType.WHILE)
            if _exits(signal, label):
                return _settle(signal, label)
            if not self._test(test_line, condition):
                return NORMAL

    # ── helpers ──────────────────────────────────────────────────

    def _test(self, line: int, condition: Node) -> bool:
        result = truthy(self._executor.evaluator.evaluate(condition))
        self._recorder.record(
            line,
            kind=StepKind.CONDITION,
            captured=self._executor.drain_output(),
            condition=result,
        )
        return result

    def _run_body(self, body: Node | None, block_type: BlockType) -> ControlFlowSignal:
        if body is None:
            return NORMAL
        with self._executor.block(block_type, body):
            return self._executor.execute_body(body)

    def _note_trip(self, trip: ResourceGuardTrip):
        self._state.stats.guard_trips += 1
        logger.warning("Loop at line %s stopped early: %s", trip.line, trip.message)

    def _record_completion(self, node, guard: LoopGuard, trip: ResourceGuardTrip | None):
        noun = "iteration" if guard.iterations == 1 else "iterations"
        if trip is None:
            message = f"Loop completed after {guard.iterations} {noun}"
        else:
            message = (
                f"Loop stopped after {guard.iterations} {noun}"
                f" ({trip.guard} guard): {trip.message}"
            )
        self._recorder.record(
            node_end_line(node),
            kind=StepKind.LOOP_COMPLETE,
            captured=self._executor.drain_output(),
            message=message,
        )


def _clause(node: Node, field_name: str) -> Node | None:
    """A for-loop header clause, unwrapped from its statement wrapper."""
    clause = node.child_by_field_name(field_name)
    if clause is None or clause.type in _ABSENT_CLAUSE_TYPES:
        return None
    if clause.type == "expression_statement":
        inner = named_children(clause)
        return inner[0] if inner else None
    return clause


def _exits(signal: ControlFlowSignal, label: str | None) -> bool:
    """Whether *signal* ends the loop carrying *label*."""
    if signal.is_normal:
        return False
    if signal.kind == SignalKind.CONTINUE:
        return not signal.targets(label)
    return True


def _settle(signal: ControlFlowSignal, label: str | None) -> ControlFlowSignal:
    """Consume a break aimed at this loop; anything else propagates."""
    if signal.kind == SignalKind.BREAK and signal.targets(label):
        return NORMAL
    return signal
