"""Execution error taxonomy.

Only ``ParseFailure``, ``StaticControlFlowViolation`` and
``PostRunValidationFailure`` abort a run.  ``RuntimeStepFailure`` and
``ResourceGuardTrip`` are contained at the smallest enclosing construct and
surface as Steps in the trace.
"""

from __future__ import annotations


class ExecutionError(Exception):
    """Base class for every failure the stepper reports to its caller."""

    def __init__(self, message: str, line: int | None = None):
        super().__init__(message)
        self.message = message
        self.line = line

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        return f"{self.message} (line {self.line})"


class ParseFailure(ExecutionError):
    """Malformed source; raised before any Step is produced."""

    def __init__(self, message: str, line: int | None = None, column: int | None = None):
        super().__init__(message, line)
        self.column = column

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        return f"{self.message} (line {self.line}, column {self.column})"


class StaticControlFlowViolation(ExecutionError):
    """``break`` or ``continue`` outside of any loop."""


class RuntimeStepFailure(ExecutionError):
    """A failure while executing one statement or expression."""


class ResourceGuardTrip(ExecutionError):
    """An iteration, timeout, depth or step cap was reached."""

    def __init__(self, message: str, line: int | None = None, guard: str = ""):
        super().__init__(message, line)
        self.guard = guard


class PostRunValidationFailure(ExecutionError):
    """The emitted Step sequence is structurally invalid."""
