"""Run pipeline data types (pure data, no business logic)."""

from __future__ import annotations

from dataclasses import dataclass, fields

from . import constants


@dataclass(frozen=True)
class StepperConfig:
    """Groups the resource guards and recording options of one run."""

    max_iterations: int = constants.DEFAULT_MAX_ITERATIONS
    max_loop_depth: int = constants.DEFAULT_MAX_LOOP_DEPTH
    timeout_ms: int = constants.DEFAULT_TIMEOUT_MS
    max_call_depth: int = constants.DEFAULT_MAX_CALL_DEPTH
    max_steps: int = constants.DEFAULT_MAX_STEPS
    max_string_length: int = constants.DEFAULT_MAX_STRING_LENGTH
    deduplicate: bool = True
    language: str = constants.LANGUAGE_JAVASCRIPT

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if f.type == "int" and (not isinstance(value, int) or value < 1):
                raise ValueError(f"{f.name} must be a positive integer, got {value!r}")
        if self.language not in constants.SUPPORTED_LANGUAGES:
            raise ValueError(f"Unsupported language: {self.language}")


@dataclass
class ExecutionStats:
    """Returned execution metrics from a stepper run."""

    steps: int = 0
    statements: int = 0
    loop_iterations: int = 0
    function_calls: int = 0
    max_call_depth_reached: int = 0
    guard_trips: int = 0
    runtime_failures: int = 0
    steps_truncated: bool = False


@dataclass
class PipelineStats:
    """Timing and size statistics for each pipeline stage."""

    source_bytes: int = 0
    source_lines: int = 0
    language: str = ""

    parse_time: float = 0.0
    execution_time: float = 0.0
    validation_time: float = 0.0
    total_time: float = 0.0

    top_level_statements: int = 0
    execution: ExecutionStats | None = None

    def report(self) -> str:
        lines = [
            "═══ Pipeline Statistics ═══",
            f"  Source: {self.source_lines} lines, {self.source_bytes} bytes ({self.language})",
            "",
            f"  {'Stage':<20} {'Time':>10}  {'Output':>30}",
            f"  {'─' * 20} {'─' * 10}  {'─' * 30}",
        ]

        execution = self.execution or ExecutionStats()
        stages = [
            ("Parse", self.parse_time, f"{self.top_level_statements} statements"),
            (
                "Execute",
                self.execution_time,
                f"{execution.steps} steps, {execution.loop_iterations} iterations",
            ),
            ("Validate", self.validation_time, ""),
        ]
        for name, t, output in stages:
            time_str = f"{t * 1000:>8.1f}ms"
            lines.append(f"  {name:<20} {time_str:>10}  {output:>30}")

        lines.append(f"  {'─' * 20} {'─' * 10}  {'─' * 30}")
        lines.append(f"  {'Total':<20} {self.total_time * 1000:>8.1f}ms")
        lines.append("")
        lines.append(
            f"  Run: {execution.function_calls} calls"
            f" (max depth {execution.max_call_depth_reached}),"
            f" {execution.guard_trips} guard trips,"
            f" {execution.runtime_failures} runtime failures"
            + (", step cap reached" if execution.steps_truncated else "")
        )
        return "\n".join(lines)
