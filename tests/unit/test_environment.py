"""Tests for the flat Environment and the run-state types."""

import pytest

from stepper.environment import Environment
from stepper.errors import RuntimeStepFailure
from stepper.state_types import ControlFlowSignal, ExecutionState, SignalKind
from stepper.values import UNDEFINED


class TestEnvironment:
    def test_lookup_missing_is_undefined(self):
        assert Environment().lookup("nope") is UNDEFINED

    def test_declare_and_assign(self):
        env = Environment()
        env.declare("x", 1)
        env.assign("x", 2)
        assert env.lookup("x") == 2
        assert len(env) == 1

    def test_const_rejects_assignment(self):
        env = Environment()
        env.declare("c", 1, constant=True)
        with pytest.raises(RuntimeStepFailure, match="constant") as excinfo:
            env.assign("c", 2, line=4)
        assert excinfo.value.line == 4
        assert env.lookup("c") == 1

    def test_redeclaring_drops_const(self):
        env = Environment()
        env.declare("c", 1, constant=True)
        env.declare("c", 2)
        env.assign("c", 3)
        assert env.lookup("c") == 3


class TestControlFlowSignal:
    def test_unlabelled_targets_any_loop(self):
        assert ControlFlowSignal.break_().targets("outer")
        assert ControlFlowSignal.continue_().targets(None)

    def test_labelled_targets_only_its_loop(self):
        signal = ControlFlowSignal.continue_("outer")
        assert signal.targets("outer")
        assert not signal.targets(None)
        assert not signal.targets("inner")

    def test_return_carries_value(self):
        signal = ControlFlowSignal.return_(3)
        assert signal.kind == SignalKind.RETURN
        assert not signal.is_normal
        assert signal.value == 3


class TestExecutionState:
    def test_fresh_state(self):
        state = ExecutionState()
        assert state.call_depth == 0
        assert state.loop_depth == 0
        assert len(state.environment) == 0
