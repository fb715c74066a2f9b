"""Post-run validation of an emitted Step sequence."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from .errors import PostRunValidationFailure
from .trace_types import Step, StepRecord

logger = logging.getLogger(__name__)


def validate_trace(steps: list[Step], source: str) -> None:
    """Raise ``PostRunValidationFailure`` on the first structurally invalid Step."""
    lines = source.split("\n")
    for index, step in enumerate(steps):
        _validate_step(index, step, lines)
    logger.debug("Validated %d steps", len(steps))


def _validate_step(index: int, step: Step, lines: list[str]):
    line = step.line
    if isinstance(line, bool) or not isinstance(line, int) or line < 1:
        raise PostRunValidationFailure(f"Step {index} has invalid line {line!r}")
    if line > len(lines):
        raise PostRunValidationFailure(
            f"Step {index} line {line} is past the end of the source ({len(lines)} lines)",
            line=line,
        )
    if step.code != lines[line - 1]:
        raise PostRunValidationFailure(
            f"Step {index} code does not match source line {line}", line=line
        )
    if not isinstance(step.variables, dict) or not all(
        isinstance(name, str) for name in step.variables
    ):
        raise PostRunValidationFailure(
            f"Step {index} variables must map names to values", line=line
        )
    if step.block is not None and step.block.end < step.block.start:
        raise PostRunValidationFailure(
            f"Step {index} block range {step.block.start}-{step.block.end} is reversed",
            line=line,
        )
    try:
        StepRecord.model_validate(step.to_dict())
    except ValidationError as exc:
        raise PostRunValidationFailure(
            f"Step {index} wire form is invalid: {exc.errors()[0]['msg']}", line=line
        ) from exc
    except RecursionError as exc:
        raise PostRunValidationFailure(
            f"Step {index} wire form is not a finite tree", line=line
        ) from exc
