"""
Tests for Code Generation and the Evaluator Backend
===================================================

Covers prototype registration rules, name resolution, the consumer-side
ordering contract, and the floating-point semantics of the evaluator.
"""

import math

import pytest

from kaleidoscope.lexer import Lexer, Operator
from kaleidoscope.parser import Parser, parse_source
from kaleidoscope.codegen import Backend, CodeGenerator, FunctionHandle
from kaleidoscope import evaluator
from kaleidoscope.ast import Parameter, Call, Prototype, Definition
from kaleidoscope.evaluator import EvaluatorBackend, Opcode, BINARY_OPERATIONS, is_true
from kaleidoscope.errors import (
    SemanticError,
    PrototypeMismatchError,
    RedefinitionError,
    UndeclaredFunctionError,
    UnknownParameterError,
    ArgumentCountError,
    UndefinedFunctionError,
    EvaluationError,
    CallDepthError,
    NestingTooDeepError,
)


# =============================================================================
# Helper Functions
# =============================================================================

def compile_program(source: str) -> EvaluatorBackend:
    """Generate a whole program into a fresh evaluator backend."""
    backend = EvaluatorBackend()
    CodeGenerator(backend).emit_all(parse_source(source))
    return backend


def evaluate(expression: str, *definitions: str) -> float:
    """Evaluate an expression as the body of a parameterless function."""
    source = "\n".join(definitions + (f"def __eval() {expression}",))
    return compile_program(source).call("__eval")


class TextBackend(Backend):
    """A second backend that renders bodies as fully bracketed text."""

    SYMBOLS = {
        Operator.ADD: "+",
        Operator.SUBTRACT: "-",
        Operator.MULTIPLY: "*",
        Operator.DIVIDE: "/",
        Operator.LOWER_THAN: "<",
    }

    def _create_function(self, handle):
        return {}

    def _finish_function(self, handle, param_names, body):
        handle.native["text"] = f"{handle.name}({', '.join(param_names)}) = {body}"

    def build_constant(self, value):
        return repr(value)

    def build_parameter(self, index, name):
        return f"${index}"

    def build_binary(self, op, lhs, rhs):
        return f"({lhs} {self.SYMBOLS[op]} {rhs})"

    def build_call(self, handle, args):
        return f"{handle.name}({', '.join(args)})"

    def build_conditional(self, condition, build_then, build_else):
        return f"phi({condition}; {build_then()}; {build_else()})"


# =============================================================================
# Prototype Registration Tests
# =============================================================================

class TestPrototypeRegistration:
    """Test the rules shared by every backend."""

    def test_declare_then_define_with_other_names(self):
        backend = compile_program("dec avg(a, b)\ndef avg(x, y) (x + y) / 2")
        assert backend.call("avg", 1, 2) == 1.5

    def test_declarations_after_definition(self):
        backend = compile_program("def f(a) a\ndec f(b)\ndec f(c)")
        assert backend.call("f", 7) == 7.0

    def test_parameter_count_mismatch(self):
        with pytest.raises(PrototypeMismatchError) as exc_info:
            compile_program("dec f(a)\ndef f(a, b) a")
        error = exc_info.value
        assert (error.name, error.expected_count, error.actual_count) == ("f", 1, 2)

    def test_mismatch_between_declarations(self):
        with pytest.raises(PrototypeMismatchError):
            compile_program("dec f()\ndec f(a)")

    def test_redefinition(self):
        with pytest.raises(RedefinitionError) as exc_info:
            compile_program("def f() 1\ndef f() 2")
        assert exc_info.value.name == "f"

    def test_redefinition_with_other_names(self):
        with pytest.raises(RedefinitionError):
            compile_program("def f(a) a\ndef f(b) b")

    def test_declare_prototype_returns_same_handle(self):
        backend = EvaluatorBackend()
        first = backend.declare_prototype("f", 2)
        second = backend.declare_prototype("f", 2)
        assert first is second
        assert backend.lookup_function("f") is first
        assert backend.lookup_function("g") is None

    def test_define_function_twice(self):
        backend = EvaluatorBackend()
        handle = backend.declare_prototype("one", 0)
        backend.define_function(handle, [], lambda params: backend.build_constant(1.0))
        assert handle.defined
        with pytest.raises(RedefinitionError):
            backend.define_function(handle, [], lambda params: backend.build_constant(2.0))
        assert backend.call("one") == 1.0

    def test_backend_is_abstract(self):
        with pytest.raises(TypeError):
            Backend()


# =============================================================================
# Name Resolution Tests
# =============================================================================

class TestNameResolution:
    """Test call and parameter resolution."""

    def test_forward_call(self):
        """run calls avg before its def; names and order do not matter."""
        backend = compile_program("dec avg(a,b)\ndef run()\n avg(1,2)\ndef avg(x,y)\n x+y")
        assert backend.call("run") == 3.0

    def test_call_before_any_prototype(self):
        """emit_all registers every prototype before generating bodies."""
        backend = compile_program("def run() twice(4)\ndef twice(x) x * 2")
        assert backend.call("run") == 8.0

    def test_single_visit_resolves_immediately(self):
        """Visiting one element on its own only sees what is registered."""
        generator = CodeGenerator(EvaluatorBackend())
        (definition,) = parse_source("def run() later()")
        with pytest.raises(UndeclaredFunctionError):
            generator.visit(definition)

    def test_undeclared_function(self):
        with pytest.raises(UndeclaredFunctionError) as exc_info:
            compile_program("def f() g()")
        assert exc_info.value.name == "g"
        assert exc_info.value.location is not None

    def test_argument_count(self):
        with pytest.raises(ArgumentCountError) as exc_info:
            compile_program("dec g(a)\ndef f() g()")
        error = exc_info.value
        assert (error.expected, error.actual) == (1, 0)

    def test_unknown_parameter(self):
        with pytest.raises(UnknownParameterError) as exc_info:
            compile_program("def f(a) b")
        assert exc_info.value.name == "b"

    def test_parameters_do_not_leak_between_functions(self):
        with pytest.raises(UnknownParameterError):
            compile_program("def f(a) a\ndef g() a")

    def test_semantic_errors_share_base(self):
        for error_type in (PrototypeMismatchError, RedefinitionError,
                           UndeclaredFunctionError, ArgumentCountError):
            assert issubclass(error_type, SemanticError)

    def test_emit_all_handles_in_first_appearance_order(self):
        backend = EvaluatorBackend()
        handles = CodeGenerator(backend).emit_all(
            parse_source("dec b()\ndef a() b()\ndef b() 1\ndec c(x)")
        )
        assert [h.name for h in handles] == ["b", "a", "c"]
        assert [h.defined for h in handles] == [True, True, False]
        assert all(isinstance(h, FunctionHandle) for h in handles)

    def test_emit_all_accepts_parser(self):
        backend = EvaluatorBackend()
        parser = Parser(Lexer.from_string("def run() f()\ndef f() 42"))
        CodeGenerator(backend).emit_all(parser)
        assert backend.call("run") == 42.0


# =============================================================================
# Evaluator Semantics Tests
# =============================================================================

class TestEvaluator:
    """Test the floating-point semantics of compiled code."""

    def test_arithmetic(self):
        assert evaluate("1 + 2 * 3") == 7.0
        assert evaluate("(1 + 2) * 3") == 9.0
        assert evaluate("10 - 4 - 3") == 3.0
        assert evaluate("8 / 4 / 2") == 1.0

    @pytest.mark.parametrize("expression,expected", [
        ("1 < 2", 1.0),
        ("2 < 1", 0.0),
        ("2 <= 2", 1.0),
        ("3 > 2", 1.0),
        ("2 >= 3", 0.0),
        ("1 == 1", 1.0),
        ("1 == 2", 0.0),
    ])
    def test_comparisons(self, expression, expected):
        assert evaluate(expression) == expected

    def test_division_by_zero(self):
        assert evaluate("1 / 0") == math.inf
        assert evaluate("(0 - 1) / 0") == -math.inf
        assert math.isnan(evaluate("0 / 0"))

    @pytest.mark.parametrize("expression", [
        "nan() == nan()",
        "nan() < 1",
        "nan() >= 1",
        "1 > nan()",
    ])
    def test_comparisons_with_nan_are_true(self, expression):
        assert evaluate(expression, "def nan() 0 / 0") == 1.0

    def test_conditional(self):
        assert evaluate("if 1 then 2 else 3") == 2.0
        assert evaluate("if 0 then 2 else 3") == 3.0
        assert evaluate("if 0 - 5 then 2 else 3") == 2.0

    def test_conditional_nan_takes_else(self):
        assert evaluate("if nan() then 1 else 2", "def nan() 0 / 0") == 2.0

    def test_conditional_evaluates_one_branch(self):
        assert evaluate("if 1 then 2 else missing()", "dec missing()") == 2.0
        with pytest.raises(UndefinedFunctionError):
            evaluate("if 0 then 2 else missing()", "dec missing()")

    def test_recursion(self):
        backend = compile_program(
            "def fib(n) if n < 2 then n else fib(n - 1) + fib(n - 2)"
        )
        assert backend.call("fib", 10) == 55.0

    def test_mutual_recursion(self):
        backend = compile_program(
            "def even(n) if n == 0 then 1 else odd(n - 1)\n"
            "def odd(n) if n == 0 then 0 else even(n - 1)"
        )
        assert backend.call("even", 6) == 1.0
        assert backend.call("odd", 6) == 0.0

    def test_call_checks(self):
        backend = compile_program("def avg(a, b) (a + b) / 2\ndec other()")
        with pytest.raises(UndeclaredFunctionError):
            backend.call("nothing")
        with pytest.raises(ArgumentCountError):
            backend.call("avg", 1)
        with pytest.raises(UndefinedFunctionError):
            backend.call("other")

    def test_arguments_converted_to_float(self):
        backend = compile_program("def half(x) x / 2")
        assert backend.call("half", 3) == 1.5

    def test_is_true(self):
        assert is_true(1.0)
        assert is_true(-0.5)
        assert not is_true(0.0)
        assert not is_true(-0.0)
        assert not is_true(math.nan)

    def test_every_operator_implemented(self):
        assert set(BINARY_OPERATIONS) == set(Operator)


# =============================================================================
# Alternative Backend Tests
# =============================================================================

class TestTextBackend:
    """The same generator drives any Backend implementation."""

    def test_renders_bodies(self):
        backend = TextBackend()
        CodeGenerator(backend).emit_all(parse_source(
            "dec sq(a)\n"
            "def run(x) if x < 0 then sq(0 - x) else sq(x)\n"
            "def sq(y) y * y"
        ))
        assert backend.functions["sq"].native["text"] == "sq(y) = ($0 * $0)"
        assert backend.functions["run"].native["text"] == (
            "run(x) = phi(($0 < 0.0); sq((0.0 - $0)); sq($0))"
        )

    def test_registration_rules_shared(self):
        with pytest.raises(PrototypeMismatchError):
            CodeGenerator(TextBackend()).emit_all(parse_source("dec f(a)\ndef f() 1"))


# =============================================================================
# Large Program Tests
# =============================================================================

SUM_SOURCE = "def sum(n) if n < 1 then 0 else n + sum(n - 1)"


class TestLargePrograms:
    """Neither long chains nor deep recursion depend on the Python stack."""

    def test_long_operator_chain(self):
        backend = compile_program("def run() " + " + ".join(["1"] * 3000))
        assert backend.call("run") == 3000.0

    def test_long_chain_of_calls(self):
        backend = compile_program(
            "def one() 1\ndef run() " + " * ".join(["one()"] * 1000)
        )
        assert backend.call("run") == 1.0

    def test_deep_recursion(self):
        backend = compile_program(SUM_SOURCE)
        assert backend.call("sum", 300) == 45150.0
        assert backend.call("sum", 20000) == 200010000.0

    def test_recursion_in_both_branches(self):
        backend = compile_program(
            "def count(n) if n < 1 then 0 else if n < 2 then count(n - 1) + 1 "
            "else count(n - 1) + 1"
        )
        assert backend.call("count", 5000) == 5000.0

    def test_unbounded_recursion(self):
        backend = compile_program("def forever(n) forever(n + 1)")
        with pytest.raises(CallDepthError) as exc_info:
            backend.call("forever", 0)
        assert exc_info.value.name == "forever"
        assert isinstance(exc_info.value, EvaluationError)

    def test_call_depth_limit(self, monkeypatch):
        monkeypatch.setattr(evaluator, "MAX_CALL_DEPTH", 50)
        backend = compile_program(SUM_SOURCE)
        assert backend.call("sum", 50) == 1275.0
        with pytest.raises(CallDepthError) as exc_info:
            backend.call("sum", 51)
        assert exc_info.value.limit == 50

    def test_backend_usable_after_depth_error(self, monkeypatch):
        monkeypatch.setattr(evaluator, "MAX_CALL_DEPTH", 10)
        backend = compile_program(SUM_SOURCE)
        with pytest.raises(CallDepthError):
            backend.call("sum", 100)
        assert backend.call("sum", 3) == 6.0

    def test_deeply_nested_tree(self):
        """Nesting built past the parser still fails as a compile error."""
        body = Parameter("x")
        for _ in range(20000):
            body = Call("f", (body,))
        definition = Definition(Prototype("f", ("x",)), body)

        with pytest.raises(NestingTooDeepError):
            CodeGenerator(EvaluatorBackend()).emit_all([definition])


# =============================================================================
# Instruction Tests
# =============================================================================

class TestInstructions:
    """The evaluator's code is a flat instruction sequence."""

    def test_binary_code_order(self):
        backend = EvaluatorBackend()
        code = backend.build_binary(
            Operator.SUBTRACT, backend.build_constant(5.0), backend.build_parameter(0, "x")
        )
        assert [opcode for opcode, _ in code] == [Opcode.CONST, Opcode.PARAM, Opcode.BINARY]

    def test_conditional_jumps(self):
        backend = EvaluatorBackend()
        code = backend.build_conditional(
            backend.build_constant(1.0),
            lambda: backend.build_constant(2.0),
            lambda: backend.build_binary(
                Operator.ADD, backend.build_constant(3.0), backend.build_constant(4.0)
            ),
        )
        assert code[1] == (Opcode.JUMP_IF_FALSE, 2)
        assert code[3] == (Opcode.JUMP, 3)
        assert len(code) == 7
