"""Shared helpers for the stepper unit tests."""

import tree_sitter_language_pack

from stepper.recorder import StepRecorder
from stepper.run import execute_source
from stepper.run_types import StepperConfig
from stepper.state_types import ExecutionState
from stepper.statements import StatementExecutor
from stepper.trace_types import ExecutionTrace, Step, StepKind


def parse_js(source: str, language: str = "javascript"):
    """Parse *source* with tree-sitter and return the root node."""
    parser = tree_sitter_language_pack.get_parser(language)
    return parser.parse(source.encode("utf-8")).root_node


def run_js(source: str, language: str = "javascript", **config) -> ExecutionTrace:
    """Execute *source* end to end with the given StepperConfig overrides."""
    return execute_source(source, config=StepperConfig(language=language, **config))


def steps_of_kind(trace: ExecutionTrace, kind: StepKind) -> list[Step]:
    return [step for step in trace.steps if step.kind == kind]


def messages(trace: ExecutionTrace) -> list[str]:
    return [step.message for step in trace.steps if step.message]


def make_executor(
    source: str, **config
) -> tuple[StatementExecutor, ExecutionState, StepRecorder]:
    """Build a fresh executor over *source* without running anything."""
    state = ExecutionState(config=StepperConfig(**config))
    recorder = StepRecorder(source, state)
    return StatementExecutor(state, recorder), state, recorder


def evaluate_js(expression: str, bindings: dict | None = None):
    """Evaluate one JavaScript expression against *bindings*."""
    source = f"({expression});"
    executor, state, _recorder = make_executor(source)
    for name, value in (bindings or {}).items():
        state.environment.declare(name, value)
    statement = parse_js(source).named_children[0]
    return executor.evaluator.evaluate(statement.named_children[0])
