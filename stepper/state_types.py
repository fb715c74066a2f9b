"""Stepper state — data types (pure data, no business logic)."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from tree_sitter import Node

from .environment import Environment
from .run_types import ExecutionStats, StepperConfig
from .trace_types import BlockContext
from .values import UNDEFINED

# ── Control flow ─────────────────────────────────────────────────


class SignalKind(Enum):
    NORMAL = "normal"
    BREAK = "break"
    CONTINUE = "continue"
    RETURN = "return"


@dataclass(frozen=True)
class ControlFlowSignal:
    """Out-of-band break/continue/return marker returned by every statement."""

    kind: SignalKind = SignalKind.NORMAL
    label: str | None = None
    value: Any = UNDEFINED

    @property
    def is_normal(self) -> bool:
        return self.kind == SignalKind.NORMAL

    def targets(self, label: str | None) -> bool:
        """Whether a loop carrying *label* consumes this break/continue."""
        return self.label is None or self.label == label

    @classmethod
    def break_(cls, label: str | None = None) -> ControlFlowSignal:
        return cls(kind=SignalKind.BREAK, label=label)

    @classmethod
    def continue_(cls, label: str | None = None) -> ControlFlowSignal:
        return cls(kind=SignalKind.CONTINUE, label=label)

    @classmethod
    def return_(cls, value: Any = UNDEFINED) -> ControlFlowSignal:
        return cls(kind=SignalKind.RETURN, value=value)


NORMAL = ControlFlowSignal()

# ── Functions and frames ─────────────────────────────────────────


@dataclass(frozen=True)
class FunctionDefinition:
    name: str
    param_names: tuple[str, ...]
    body_statements: tuple[Node, ...]
    declaration_line: int
    end_line: int
    # default-value expressions keyed by parameter name
    param_defaults: dict[str, Node] = field(default_factory=dict)
    # arrow functions with an expression body return it implicitly
    expression_body: Node | None = None


@dataclass
class CallFrame:
    function_name: str
    bound_parameters: dict[str, Any] = field(default_factory=dict)
    return_value: Any = UNDEFINED
    call_site_line: int | None = None


# ── Run state ────────────────────────────────────────────────────


@dataclass
class ExecutionState:
    """Bookkeeping for one run, kept apart from the user-visible Environment."""

    config: StepperConfig = field(default_factory=StepperConfig)
    environment: Environment = field(default_factory=Environment)
    functions: dict[str, FunctionDefinition] = field(default_factory=dict)
    call_stack: list[CallFrame] = field(default_factory=list)
    loop_depth: int = 0
    labels: list[str] = field(default_factory=list)
    pending_output: list[Any] = field(default_factory=list)
    # innermost block annotating Steps recorded right now
    current_block: BlockContext | None = None
    stats: ExecutionStats = field(default_factory=ExecutionStats)

    @property
    def call_depth(self) -> int:
        return len(self.call_stack)
