"""StepRecorder — turns execution events into the observable trace."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Any, Sequence

from . import constants
from .state_types import ExecutionState
from .trace_types import NO_OUTPUT, BlockContext, Step, StepKind
from .values import UNDEFINED, FunctionRef, NodeBudget

logger = logging.getLogger(__name__)

# kinds a superseding Step never downgrades
_STICKY_KINDS: frozenset[StepKind] = frozenset({StepKind.DIAGNOSTIC, StepKind.ERROR})


class _Unserializable(Exception):
    """Raised while sanitising a value that cannot be snapshotted."""


class StepRecorder:
    """Appends Steps, snapshotting the state's current Environment each time.

    With deduplication on, a record that repeats the previous Step's line and
    variables supersedes that Step instead of appending.  Console captures of
    both are joined on the superseding Step and diagnostic kinds and messages
    are carried over, so neither is ever lost.  Beyond ``max_steps`` records
    are no-ops.
    """

    def __init__(self, source: str, state: ExecutionState):
        self._lines = source.split("\n")
        self._state = state
        self._config = state.config
        self._steps: list[Step] = []
        # snapshotted console captures behind the last Step's output
        self._captures: list[Any] = []
        self._cap_logged = False

    @property
    def steps(self) -> list[Step]:
        return list(self._steps)

    @property
    def is_full(self) -> bool:
        return len(self._steps) >= self._config.max_steps

    def code_at(self, line: int) -> str:
        if 1 <= line <= len(self._lines):
            return self._lines[line - 1]
        return ""

    def record(
        self,
        line: int | None,
        *,
        kind: StepKind = StepKind.STATEMENT,
        block: BlockContext | None = None,
        captured: Sequence[Any] = (),
        message: str | None = None,
        condition: bool | None = None,
    ) -> Step | None:
        """Record one Step at *line*; returns the stored Step or None if dropped.

        *captured* holds the console values the statement produced; each is
        snapshotted here so later writes to the live value cannot reach the
        trace.  *block* defaults to the innermost block currently executing.
        """
        if not line or line < 1:
            return None
        if block is None:
            block = self._state.current_block

        captures = [self.snapshot_value(value) for value in captured]
        step = Step(
            line=line,
            code=self.code_at(line),
            variables=self.snapshot(self._state.environment.bindings),
            kind=kind,
            block=block,
            output=_pack(captures),
            message=message,
            condition=condition,
        )

        previous = self._steps[-1] if self._steps else None
        if (
            self._config.deduplicate
            and previous is not None
            and previous.line == step.line
            and _structurally_equal(previous.variables, step.variables)
        ):
            self._captures = self._captures + captures
            step = _merge(previous, replace(step, output=_pack(self._captures)))
            self._steps[-1] = step
            logger.debug("Coalesced duplicate step at line %d", line)
            return step

        if self.is_full:
            if not self._cap_logged:
                logger.warning(
                    "Step cap of %d reached; further steps are dropped",
                    self._config.max_steps,
                )
                self._cap_logged = True
                self._state.stats.steps_truncated = True
            return None

        self._steps.append(step)
        self._captures = captures
        self._state.stats.steps = len(self._steps)
        return step

    # ── snapshot sanitisation ────────────────────────────────────

    def snapshot(self, bindings: dict[str, Any]) -> dict[str, Any]:
        """Deep, sanitised copy of *bindings* safe to hand to a consumer."""
        result: dict[str, Any] = {}
        for name, value in bindings.items():
            result[name] = self.snapshot_value(value, name)
        return result

    def snapshot_value(self, value: Any, name: str = "<output>") -> Any:
        try:
            return self._sanitize(value, 0, set(), NodeBudget())
        except (_Unserializable, ValueError, RecursionError):
            logger.debug("Value of '%s' could not be snapshotted", name)
            return constants.UNSERIALIZABLE_PLACEHOLDER

    def _sanitize(self, value: Any, depth: int, active: set[int], budget: NodeBudget) -> Any:
        if isinstance(value, FunctionRef):
            return value.placeholder()
        if isinstance(value, str):
            limit = self._config.max_string_length
            if len(value) > limit:
                return value[:limit] + constants.TRUNCATION_MARKER
            return value
        if isinstance(value, (list, dict)):
            if depth >= constants.MAX_SNAPSHOT_DEPTH or id(value) in active:
                raise _Unserializable()
            budget.spend()
            active.add(id(value))
            try:
                if isinstance(value, list):
                    return [self._sanitize(v, depth + 1, active, budget) for v in value]
                return {
                    str(k): self._sanitize(v, depth + 1, active, budget)
                    for k, v in value.items()
                }
            finally:
                active.discard(id(value))
        if value is UNDEFINED or value is None or isinstance(value, (bool, int, float)):
            return value
        raise _Unserializable()


def _pack(captures: list[Any]) -> Any:
    """One capture is the output itself; several form a list."""
    if not captures:
        return NO_OUTPUT
    return captures[0] if len(captures) == 1 else list(captures)


def _merge(previous: Step, step: Step) -> Step:
    """Fold *previous* into the Step superseding it."""
    changes: dict[str, Any] = {}
    if previous.kind in _STICKY_KINDS and step.kind not in _STICKY_KINDS:
        changes["kind"] = previous.kind
        changes["message"] = previous.message
    elif step.message is None:
        changes["message"] = previous.message
    return replace(step, **changes) if changes else step


def _structurally_equal(left: dict[str, Any], right: dict[str, Any]) -> bool:
    """Deep comparison by canonical JSON text; shallow key comparison on failure."""
    try:
        return _canonical(left) == _canonical(right)
    except (TypeError, ValueError, RecursionError):
        return left.keys() == right.keys()


def _canonical(value: Any) -> str:
    return json.dumps(value, default=_encode_opaque, allow_nan=True)


def _encode_opaque(value: Any) -> str:
    if value is UNDEFINED:
        return "<undefined>"
    raise TypeError(f"Cannot compare {type(value).__name__}")
