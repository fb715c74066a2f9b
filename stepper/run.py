"""Orchestrator — execute_source() entry point."""

from __future__ import annotations

import dataclasses
import logging
import sys
import threading
import time
from contextlib import contextmanager
from typing import Any, Iterator

from tree_sitter import Node

from . import constants
from .errors import ParseFailure, PostRunValidationFailure, StaticControlFlowViolation
from .parser import Parser, ParserFactory, TreeSitterParserFactory, named_children, node_line
from .recorder import StepRecorder
from .run_types import PipelineStats, StepperConfig
from .state_types import ExecutionState, SignalKind
from .statements import StatementExecutor
from .trace_types import ExecutionTrace, StepKind
from .functions import describe_value
from .validation import validate_trace

logger = logging.getLogger(__name__)

# Python frames consumed per nested user-level call, with headroom
_FRAMES_PER_CALL = 40
_FATAL_ERRORS = (ParseFailure, StaticControlFlowViolation, PostRunValidationFailure)


def _resolve_config(language: str | None, config: StepperConfig | None) -> StepperConfig:
    if config is None:
        return StepperConfig(language=language or constants.LANGUAGE_JAVASCRIPT)
    if language and language != config.language:
        return dataclasses.replace(config, language=language)
    return config


class _RecursionHeadroom:
    """The process-wide recursion limit, shared by overlapping runs.

    The first run to enter records the original limit; each run raises it as
    far as its own ``max_call_depth`` needs, and the last run to leave
    restores the original.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._active = 0
        self._original = sys.getrecursionlimit()

    @contextmanager
    def reserve(self, config: StepperConfig) -> Iterator[None]:
        with self._lock:
            if self._active == 0:
                self._original = sys.getrecursionlimit()
            self._active += 1
            needed = self._original + config.max_call_depth * _FRAMES_PER_CALL
            if needed > sys.getrecursionlimit():
                sys.setrecursionlimit(needed)
        try:
            yield
        finally:
            with self._lock:
                self._active -= 1
                if self._active == 0:
                    sys.setrecursionlimit(self._original)


_recursion_headroom = _RecursionHeadroom()


def _execute_program(
    root: Node, executor: StatementExecutor, recorder: StepRecorder
) -> None:
    """Walk the top-level statements; each one is isolated from the others."""
    for node in named_children(root):
        try:
            signal = executor.execute(node)
        except _FATAL_ERRORS:
            raise
        except Exception as exc:
            logger.warning(
                "Top-level statement at line %d failed: %s", node_line(node), exc, exc_info=True
            )
            recorder.record(
                node_line(node),
                kind=StepKind.ERROR,
                captured=executor.drain_output(),
                message=f"{type(exc).__name__}: {exc}",
            )
            continue

        if signal.kind == SignalKind.RETURN:
            recorder.record(
                node_line(node),
                kind=StepKind.PROGRAM_END,
                message=f"Program returned {describe_value(signal.value)}",
            )
            logger.info("Top-level return at line %d; stopping", node_line(node))
            return
        if signal.kind in (SignalKind.BREAK, SignalKind.CONTINUE):
            recorder.record(
                node_line(node),
                kind=StepKind.ERROR,
                message=f"Label '{signal.label}' does not name an enclosing loop",
            )


def run(
    source: str,
    language: str | None = None,
    config: StepperConfig | None = None,
    parser_factory: ParserFactory | None = None,
    verbose: bool = False,
) -> tuple[ExecutionTrace, PipelineStats]:
    """End-to-end: parse → execute → validate, with per-stage timings.

    Args:
        source: Raw source code string.
        language: "javascript" or "typescript"; overrides ``config.language``.
        config: Resource guards and recording options.
        parser_factory: Parser factory for DI/testing.
        verbose: Print the statistics report when done.
    """
    config = _resolve_config(language, config)
    pipeline_start = time.perf_counter()
    stats = PipelineStats(
        source_bytes=len(source.encode("utf-8")),
        source_lines=source.count("\n")
        + (1 if source and not source.endswith("\n") else 0),
        language=config.language,
    )

    # 1. Parse
    t0 = time.perf_counter()
    tree = Parser(parser_factory or TreeSitterParserFactory()).parse(source, config.language)
    stats.parse_time = time.perf_counter() - t0
    stats.top_level_statements = len(named_children(tree.root_node))
    logger.info(
        "Parsed %d top-level statements in %.1fms",
        stats.top_level_statements,
        stats.parse_time * 1000,
    )

    # 2. Execute
    state = ExecutionState(config=config)
    recorder = StepRecorder(source, state)
    executor = StatementExecutor(state, recorder)
    t0 = time.perf_counter()
    with _recursion_headroom.reserve(config):
        _execute_program(tree.root_node, executor, recorder)
    stats.execution_time = time.perf_counter() - t0
    stats.execution = state.stats

    # 3. Validate
    steps = recorder.steps
    t0 = time.perf_counter()
    validate_trace(steps, source)
    stats.validation_time = time.perf_counter() - t0
    stats.total_time = time.perf_counter() - pipeline_start
    logger.info(
        "Recorded %d steps (%d loop iterations, %d calls) in %.1fms",
        len(steps),
        state.stats.loop_iterations,
        state.stats.function_calls,
        stats.total_time * 1000,
    )

    if verbose:
        print(stats.report())

    trace = ExecutionTrace(
        steps=steps, stats=state.stats, source=source, language=config.language
    )
    return trace, stats


def execute_source(
    source: str,
    language: str | None = None,
    config: StepperConfig | None = None,
) -> ExecutionTrace:
    """Execute *source* and return its validated trace."""
    trace, _stats = run(source, language, config)
    return trace


def get_execution_steps(
    source: str,
    language: str | None = None,
    config: StepperConfig | None = None,
) -> list[dict[str, Any]]:
    """Execute *source* and return the trace in wire form."""
    return execute_source(source, language, config).to_dicts()
