"""Tests for FunctionInvoker: calls, scoping and the call-stack bound."""

from stepper.functions import describe_value, extract_parameters
from stepper.trace_types import BlockType, StepKind
from stepper.values import UNDEFINED

from tests.unit.conftest import make_executor, messages, parse_js, run_js, steps_of_kind

ADD = "function add(a, b) {\n  return a + b;\n}\nlet r = add(2, 3);\n"


class TestCalls:
    def test_return_value(self):
        trace = run_js(ADD)
        assert trace.final_variables == {"add": "[Function: add]", "r": 5}
        assert trace.stats.function_calls == 1

    def test_call_site_lists_arguments(self):
        trace = run_js(ADD)
        (call,) = steps_of_kind(trace, StepKind.CALL)
        assert call.message == "Calling add(2, 3)"
        assert call.line == 4

    def test_enter_return_exit_steps(self):
        trace = run_js(ADD)
        (enter,) = steps_of_kind(trace, StepKind.FUNCTION_ENTER)
        assert enter.variables == {"a": 2, "b": 3}
        assert enter.block_type == BlockType.FUNCTION
        assert (enter.block_range.start, enter.block_range.end) == (1, 3)
        (returned,) = steps_of_kind(trace, StepKind.FUNCTION_RETURN)
        assert returned.message == "add returned 5"
        (exited,) = steps_of_kind(trace, StepKind.FUNCTION_EXIT)
        assert exited.message == "Exiting add"
        assert exited.block_type is None

    def test_caller_scope_restored(self):
        source = "let x = 1;\nfunction f() {\n  let x = 99;\n  return x;\n}\nlet y = f();\n"
        trace = run_js(source)
        assert trace.final_variables == {"x": 1, "f": "[Function: f]", "y": 99}
        (enter,) = steps_of_kind(trace, StepKind.FUNCTION_ENTER)
        assert enter.variables == {}

    def test_missing_argument_binds_undefined_with_warning(self):
        trace = run_js("function f(a, b) {\n  return b;\n}\nlet r = f(1);\n")
        assert trace.final_variables["r"] is UNDEFINED
        assert "f expects 2 arguments, got 1" in messages(trace)

    def test_default_parameter(self):
        trace = run_js("function g(a, b = a * 2) {\n  return a + b;\n}\nlet r = g(3);\n")
        assert trace.final_variables["r"] == 9
        assert steps_of_kind(trace, StepKind.DIAGNOSTIC) == []

    def test_void_function_completes(self):
        trace = run_js("function hi() {\n  console.log('in');\n}\nhi();\n")
        assert trace.outputs() == ["in"]
        (returned,) = steps_of_kind(trace, StepKind.FUNCTION_RETURN)
        assert returned.message == "hi completed"

    def test_recursion(self):
        source = (
            "function fact(n) {\n"
            "  if (n <= 1) {\n"
            "    return 1;\n"
            "  }\n"
            "  return n * fact(n - 1);\n"
            "}\n"
            "let r = fact(5);\n"
        )
        trace = run_js(source)
        assert trace.final_variables["r"] == 120
        assert trace.stats.function_calls == 5
        assert trace.stats.max_call_depth_reached == 5


class TestFunctionValues:
    def test_arrow_function_with_expression_body(self):
        trace = run_js("const double = (x) => x * 2;\nlet r = double(4);\n")
        assert trace.final_variables == {"double": "[Function: double]", "r": 8}

    def test_single_parameter_arrow(self):
        trace = run_js("const inc = n => n + 1;\nlet r = inc(1);\n")
        assert trace.final_variables["r"] == 2

    def test_function_expression(self):
        trace = run_js("const sq = function (x) {\n  return x * x;\n};\nlet r = sq(3);\n")
        assert trace.final_variables["r"] == 9

    def test_alias_resolves_to_definition(self):
        trace = run_js("function f() {\n  return 1;\n}\nconst g = f;\nlet r = g();\n")
        assert trace.final_variables["g"] == "[Function: f]"
        assert trace.final_variables["r"] == 1


class TestFailures:
    def test_unknown_function(self):
        trace = run_js("let r = nope(1);\n")
        assert trace.final_variables == {"r": UNDEFINED}
        assert "Function 'nope' is not defined" in messages(trace)

    def test_method_call_unsupported(self):
        trace = run_js("let s = 'abc';\nlet u = s.toUpperCase();\n")
        assert trace.final_variables["u"] is UNDEFINED
        assert "Unsupported call: s.toUpperCase(...)" in messages(trace)

    def test_stack_overflow(self):
        trace = run_js("function down(n) {\n  return down(n + 1);\n}\nlet r = down(0);\n")
        assert trace.final_variables["r"] is UNDEFINED
        overflow = [
            s
            for s in steps_of_kind(trace, StepKind.DIAGNOSTIC)
            if "Maximum call stack size exceeded" in s.message
        ]
        assert len(overflow) == 1
        assert trace.stats.max_call_depth_reached == 50

    def test_call_depth_bound_is_configurable(self):
        trace = run_js(
            "function down(n) {\n  return down(n + 1);\n}\nlet r = down(0);\n", max_call_depth=3
        )
        assert trace.stats.function_calls == 3

    def test_exit_step_recorded_when_body_fails(self):
        trace = run_js("const f = () => null.x = 1;\nf();\n", deduplicate=False)
        kinds = [s.kind for s in trace.steps]
        assert kinds.count(StepKind.FUNCTION_ENTER) == 1
        assert kinds.count(StepKind.FUNCTION_EXIT) == 1
        (exited,) = steps_of_kind(trace, StepKind.FUNCTION_EXIT)
        assert exited.message == "Exiting f"
        assert exited.line == 2
        assert exited.variables == {"f": "[Function: f]"}
        (error,) = steps_of_kind(trace, StepKind.ERROR)
        assert "Cannot set properties of null" in error.message
        assert trace.stats.max_call_depth_reached == 1

    def test_runtime_failure_inside_function_is_contained(self):
        source = "function bad() {\n  const c = 1;\n  c = 2;\n  return c;\n}\nlet r = bad();\n"
        trace = run_js(source)
        (error,) = steps_of_kind(trace, StepKind.ERROR)
        assert error.line == 3
        assert trace.final_variables["r"] == 1


class TestHelpers:
    def test_extract_parameters(self):
        func = parse_js("function f(a, b = 2, {c}) {}").named_children[0]
        names, defaults = extract_parameters(func.child_by_field_name("parameters"))
        assert names == ["a", "b"]
        assert list(defaults) == ["b"]

    def test_typescript_parameters(self):
        func = parse_js("function f(a: number, b?: string, c: number = 1) {}", "typescript")
        names, defaults = extract_parameters(
            func.named_children[0].child_by_field_name("parameters")
        )
        assert names == ["a", "b", "c"]
        assert list(defaults) == ["c"]

    def test_describe_value_quotes_strings(self):
        assert describe_value("x") == '"x"'
        assert describe_value(UNDEFINED) == "undefined"

    def test_register_records_lines(self):
        source = "function f(a) {\n  return a;\n}\n"
        executor, state, _recorder = make_executor(source)
        node = parse_js(source).named_children[0]
        definition = executor.invoker.register("f", node)
        assert state.functions["f"] is definition
        assert (definition.declaration_line, definition.end_line) == (1, 3)
        assert definition.param_names == ("a",)
