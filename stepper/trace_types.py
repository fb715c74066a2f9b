"""Trace data types for step-by-step execution replay."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, model_validator

from .run_types import ExecutionStats
from .values import UNDEFINED, FunctionRef


class BlockType(str, Enum):
    FUNCTION = "function"
    FOR = "for"
    WHILE = "while"
    IF = "if"
    ELSE = "else"


class StepKind(str, Enum):
    """What produced a Step; lets a viewer style diagnostics differently."""

    STATEMENT = "statement"
    CONDITION = "condition"
    LOOP_INIT = "loop_init"
    LOOP_UPDATE = "loop_update"
    LOOP_COMPLETE = "loop_complete"
    CONTROL = "control"
    CALL = "call"
    FUNCTION_ENTER = "function_enter"
    FUNCTION_RETURN = "function_return"
    FUNCTION_EXIT = "function_exit"
    DIAGNOSTIC = "diagnostic"
    ERROR = "error"
    PROGRAM_END = "program_end"


class BlockRange(BaseModel):
    """Inclusive 1-based line span of a block."""

    model_config = ConfigDict(frozen=True)

    start: StrictInt = Field(ge=1)
    end: StrictInt = Field(ge=1)

    @model_validator(mode="after")
    def _ordered(self) -> BlockRange:
        if self.end < self.start:
            raise ValueError(f"block range ends before it starts: {self.start}-{self.end}")
        return self


@dataclass(frozen=True)
class BlockContext:
    """Classification of a source range as function/for/while/if/else."""

    block_type: BlockType
    start: int
    end: int

    @property
    def block_range(self) -> BlockRange:
        return BlockRange(start=self.start, end=self.end)


class _NoOutput:
    """Sentinel: the Step captured no console output (distinct from null)."""

    def __repr__(self) -> str:
        return "NO_OUTPUT"

    def __copy__(self) -> _NoOutput:
        return self

    def __deepcopy__(self, memo: dict) -> _NoOutput:
        return self


NO_OUTPUT = _NoOutput()


@dataclass(frozen=True)
class Step:
    """One recorded, observable point in the execution trace.

    ``variables`` is a sanitised deep copy of the Environment at record time.
    ``output`` carries captured console output only; interpreter diagnostics
    go to ``message``.
    """

    line: int
    code: str
    variables: dict[str, Any]
    kind: StepKind = StepKind.STATEMENT
    block: BlockContext | None = None
    output: Any = NO_OUTPUT
    message: str | None = None
    condition: bool | None = None

    @property
    def has_output(self) -> bool:
        return self.output is not NO_OUTPUT

    @property
    def block_type(self) -> BlockType | None:
        return self.block.block_type if self.block else None

    @property
    def block_range(self) -> BlockRange | None:
        return self.block.block_range if self.block else None

    def to_dict(self) -> dict[str, Any]:
        """Wire form handed to the trace consumer."""
        d: dict[str, Any] = {
            "line": self.line,
            "code": self.code,
            "variables": {k: _wire_value(v) for k, v in self.variables.items()},
            "kind": self.kind.value,
        }
        if self.block:
            d["blockType"] = self.block.block_type.value
            d["blockRange"] = {"start": self.block.start, "end": self.block.end}
        if self.has_output:
            d["output"] = _wire_value(self.output)
        if self.message is not None:
            d["message"] = self.message
        if self.condition is not None:
            d["condition"] = self.condition
        return d


def _wire_value(value: Any) -> Any:
    if value is UNDEFINED:
        return None
    if isinstance(value, FunctionRef):
        return value.placeholder()
    if isinstance(value, list):
        return [_wire_value(v) for v in value]
    if isinstance(value, dict):
        return {k: _wire_value(v) for k, v in value.items()}
    return value


class StepRecord(BaseModel):
    """Schema of a Step's wire form, used to validate a finished trace."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    line: StrictInt = Field(ge=1)
    code: StrictStr
    variables: dict[StrictStr, Any]
    kind: StepKind
    block_type: BlockType | None = Field(default=None, alias="blockType")
    block_range: BlockRange | None = Field(default=None, alias="blockRange")
    output: Any = None
    message: StrictStr | None = None
    condition: bool | None = None

    @model_validator(mode="after")
    def _block_fields_paired(self) -> StepRecord:
        if (self.block_type is None) != (self.block_range is None):
            raise ValueError("blockType and blockRange must be set together")
        return self


@dataclass(frozen=True)
class ExecutionTrace:
    """Complete trace of an execution run."""

    steps: list[Step] = field(default_factory=list)
    stats: ExecutionStats = field(default_factory=ExecutionStats)
    source: str = ""
    language: str = ""

    def outputs(self) -> list[Any]:
        """Captured console output across the run, in order."""
        return [step.output for step in self.steps if step.has_output]

    @property
    def final_variables(self) -> dict[str, Any]:
        return dict(self.steps[-1].variables) if self.steps else {}

    def to_dicts(self) -> list[dict[str, Any]]:
        return [step.to_dict() for step in self.steps]
