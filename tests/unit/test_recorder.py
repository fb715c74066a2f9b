"""Tests for StepRecorder snapshots, deduplication and the Step cap."""

from stepper import constants
from stepper.recorder import StepRecorder
from stepper.run_types import StepperConfig
from stepper.state_types import ExecutionState
from stepper.trace_types import NO_OUTPUT, BlockContext, BlockType, StepKind
from stepper.values import UNDEFINED, FunctionRef

SOURCE = "let a = 1;\nlet b = 2;\nlet c = 3;\n"


def _recorder(**config) -> tuple[StepRecorder, ExecutionState]:
    state = ExecutionState(config=StepperConfig(**config))
    return StepRecorder(SOURCE, state), state


class TestRecord:
    def test_step_carries_source_line(self):
        recorder, state = _recorder()
        state.environment.declare("a", 1)
        step = recorder.record(1)
        assert step.code == "let a = 1;"
        assert step.variables == {"a": 1}
        assert step.kind == StepKind.STATEMENT
        assert step.output is NO_OUTPUT

    def test_invalid_line_is_ignored(self):
        recorder, _state = _recorder()
        assert recorder.record(0) is None
        assert recorder.record(None) is None
        assert recorder.steps == []

    def test_code_out_of_range_is_empty(self):
        recorder, _state = _recorder()
        assert recorder.code_at(99) == ""
        assert recorder.code_at(0) == ""

    def test_snapshot_is_independent_of_environment(self):
        recorder, state = _recorder()
        items = [1, 2]
        state.environment.declare("items", items)
        recorder.record(1)
        items.append(3)
        assert recorder.steps[0].variables == {"items": [1, 2]}

    def test_block_defaults_to_current_block(self):
        recorder, state = _recorder()
        state.current_block = BlockContext(BlockType.WHILE, 1, 3)
        step = recorder.record(2)
        assert step.block_type == BlockType.WHILE
        assert step.block_range.start == 1


class TestDeduplication:
    def test_identical_step_coalesces(self):
        recorder, state = _recorder()
        state.environment.declare("a", 1)
        recorder.record(1)
        recorder.record(1, kind=StepKind.CONTROL)
        assert len(recorder.steps) == 1
        assert recorder.steps[0].kind == StepKind.CONTROL

    def test_changed_variables_append(self):
        recorder, state = _recorder()
        state.environment.declare("a", 1)
        recorder.record(1)
        state.environment.assign("a", 2)
        recorder.record(1)
        assert len(recorder.steps) == 2

    def test_dedup_can_be_disabled(self):
        recorder, _state = _recorder(deduplicate=False)
        recorder.record(1)
        recorder.record(1)
        assert len(recorder.steps) == 2

    def test_output_carried_over(self):
        recorder, _state = _recorder()
        recorder.record(1, captured=["hello"])
        recorder.record(1)
        assert len(recorder.steps) == 1
        assert recorder.steps[0].output == "hello"

    def test_outputs_of_duplicates_are_joined(self):
        recorder, _state = _recorder()
        recorder.record(1, captured=[1])
        recorder.record(1, captured=[2, 3])
        recorder.record(1)
        assert [s.output for s in recorder.steps] == [[1, 2, 3]]

    def test_distinct_steps_keep_their_own_output(self):
        recorder, _state = _recorder()
        recorder.record(1, captured=[[1, 2]])
        recorder.record(2, captured=[3])
        assert [s.output for s in recorder.steps] == [[1, 2], 3]

    def test_output_is_a_snapshot(self):
        recorder, _state = _recorder()
        live = [1]
        recorder.record(1, captured=[live, FunctionRef("f")])
        live.append(2)
        assert recorder.steps[0].output == [[1], "[Function: f]"]

    def test_cyclic_output_is_placeholder(self):
        recorder, _state = _recorder()
        cyclic: list = []
        cyclic.append(cyclic)
        recorder.record(1, captured=[cyclic])
        assert recorder.steps[0].output == "[Unserializable]"

    def test_diagnostic_survives_superseding_step(self):
        recorder, _state = _recorder()
        recorder.record(1, kind=StepKind.DIAGNOSTIC, message="Function 'g' is not defined")
        recorder.record(1, kind=StepKind.CONTROL)
        assert len(recorder.steps) == 1
        assert recorder.steps[0].kind == StepKind.DIAGNOSTIC
        assert recorder.steps[0].message == "Function 'g' is not defined"

    def test_undefined_values_compare_equal(self):
        recorder, state = _recorder()
        state.environment.declare("a", UNDEFINED)
        recorder.record(1)
        recorder.record(1)
        assert len(recorder.steps) == 1


class TestStepCap:
    def test_records_beyond_cap_are_dropped(self):
        recorder, state = _recorder(max_steps=2)
        for line in (1, 2, 3):
            recorder.record(line)
        assert [s.line for s in recorder.steps] == [1, 2]
        assert recorder.is_full
        assert state.stats.steps_truncated
        assert state.stats.steps == 2

    def test_duplicate_still_coalesces_at_cap(self):
        recorder, _state = _recorder(max_steps=1)
        recorder.record(1)
        assert recorder.record(1, captured=["x"]) is not None
        assert recorder.steps[0].output == "x"


class TestSnapshotSanitising:
    def test_function_placeholder(self):
        recorder, _state = _recorder()
        assert recorder.snapshot({"f": FunctionRef("f")}) == {"f": "[Function: f]"}

    def test_long_string_truncated(self):
        recorder, _state = _recorder(max_string_length=5)
        snap = recorder.snapshot({"s": "abcdefgh"})
        assert snap["s"] == "abcde" + constants.TRUNCATION_MARKER

    def test_cycle_is_unserializable(self):
        recorder, _state = _recorder()
        cyclic: dict = {}
        cyclic["self"] = cyclic
        snap = recorder.snapshot({"o": cyclic, "n": 1})
        assert snap == {"o": constants.UNSERIALIZABLE_PLACEHOLDER, "n": 1}

    def test_shared_reference_is_not_a_cycle(self):
        recorder, _state = _recorder()
        shared = [1]
        assert recorder.snapshot({"pair": [shared, shared]}) == {"pair": [[1], [1]]}

    def test_widely_shared_value_is_bounded(self):
        recorder, _state = _recorder()
        value: list = []
        for _ in range(30):
            value = [value, value]
        snap = recorder.snapshot({"a": value})
        assert snap == {"a": constants.UNSERIALIZABLE_PLACEHOLDER}
