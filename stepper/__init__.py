"""Step-by-step JavaScript/TypeScript execution tracer."""

from .run import run, execute_source, get_execution_steps  # noqa: F401
from .api import (  # noqa: F401
    parse_source,
    trace_source,
    dump_trace,
    dump_json,
    extract_function_source,
)
from .run_types import StepperConfig  # noqa: F401
from .trace_types import ExecutionTrace, Step, StepKind  # noqa: F401
from .errors import (  # noqa: F401
    ExecutionError,
    ParseFailure,
    PostRunValidationFailure,
    ResourceGuardTrip,
    RuntimeStepFailure,
    StaticControlFlowViolation,
)
