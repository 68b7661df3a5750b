"""
Tests for the Kaleidoscope AST
==============================

Covers node construction and immutability, visitor double dispatch, the
generic child walk, and the diagnostic printer's text form.
"""

import dataclasses

import pytest

from kaleidoscope.lexer import Operator
from kaleidoscope.parser import parse_source
from kaleidoscope.ast import (
    ASTNode,
    Literal,
    Parameter,
    BinaryOp,
    Call,
    Conditional,
    Prototype,
    Declaration,
    Definition,
    ASTVisitor,
    ASTPrinter,
)
from kaleidoscope.errors import SourceLocation, DuplicateParameterError, KaleidoscopeError


def print_source(source: str) -> list[str]:
    """Print every element of a program, one string per element."""
    printer = ASTPrinter()
    return [printer.print(element) for element in parse_source(source)]


# =============================================================================
# Node Construction Tests
# =============================================================================

class TestNodes:
    """Test node construction rules."""

    def test_nodes_are_immutable(self):
        node = Literal(1.0)
        with pytest.raises(dataclasses.FrozenInstanceError):
            node.value = 2.0

    def test_sequences_become_tuples(self):
        call = Call("f", [Literal(1.0)])
        prototype = Prototype("f", ["a", "b"])
        assert call.args == (Literal(1.0),)
        assert prototype.parameter_names == ("a", "b")

    def test_prototype_arity(self):
        assert Prototype("f").arity == 0
        assert Prototype("f", ("a", "b", "c")).arity == 3

    def test_duplicate_parameter_at_construction(self):
        location = SourceLocation("x.kal", 1, 5)
        with pytest.raises(DuplicateParameterError) as exc_info:
            Prototype("f", ("a", "b", "a"), location=location)
        assert exc_info.value.location == location

    def test_location_ignored_in_equality(self):
        here = SourceLocation("a.kal", 1, 1)
        there = SourceLocation("b.kal", 9, 9)
        assert Parameter("x", location=here) == Parameter("x", location=there)

    def test_location_is_keyword_only(self):
        node = BinaryOp(Literal(1.0), Operator.ADD, Literal(2.0), location=None)
        assert node.location is None

    def test_base_node_cannot_be_visited(self):
        with pytest.raises(NotImplementedError):
            ASTVisitor().visit(ASTNode())


# =============================================================================
# Visitor Tests
# =============================================================================

class CallCounter(ASTVisitor):
    """Counts calls and collects their names."""

    def __init__(self):
        self.names = []

    def visit_Call(self, node):
        self.names.append(node.name)
        self.generic_visit(node)


class NodeRecorder(ASTVisitor):
    """Records the class name of every node visited, in order."""

    def __init__(self):
        self.visited = []

    def visit(self, node):
        self.visited.append(type(node).__name__)
        return super().visit(node)


class TestVisitor:
    """Test double dispatch and the default child walk."""

    def test_dispatch_by_node_class(self):
        class Kind(ASTVisitor):
            def visit_Literal(self, node):
                return "literal"

            def visit_Parameter(self, node):
                return "parameter"

        assert Kind().visit(Literal(1.0)) == "literal"
        assert Kind().visit(Parameter("x")) == "parameter"

    def test_generic_visit_reaches_nested_calls(self):
        (definition,) = parse_source("def f(x) g(h(x), if x then k() else 1)")
        counter = CallCounter()
        counter.visit(definition)
        assert counter.names == ["g", "h", "k"]

    def test_generic_visit_order(self):
        (definition,) = parse_source("def f(a) a + 1")
        recorder = NodeRecorder()
        recorder.visit(definition)
        assert recorder.visited == [
            "Definition",
            "Prototype",
            "BinaryOp",
            "Parameter",
            "Literal",
        ]

    def test_visitors_share_one_tree(self):
        """Independent visitors see the same tree without changing it."""
        (definition,) = parse_source("def f() g() + g()")
        before = repr(definition)

        first, second = CallCounter(), CallCounter()
        first.visit(definition)
        second.visit(definition)

        assert first.names == second.names == ["g", "g"]
        assert repr(definition) == before


# =============================================================================
# Printer Tests
# =============================================================================

class TestPrinter:
    """Test the nested brace dump."""

    def test_declaration(self):
        assert print_source("dec avg(a, b)") == [
            "FunctionDec {\n"
            "  prototype:\n"
            '    Prototype { name: "avg", parameter_names: ["a", "b"] }\n'
            "}"
        ]

    def test_empty_parameter_list(self):
        assert ASTPrinter().print(Prototype("run")) == (
            'Prototype { name: "run", parameter_names: [] }'
        )

    def test_definition(self):
        (text,) = print_source("def avg(a, b) (a + b) / 2")
        assert text.split("\n") == [
            "FunctionDef {",
            "  prototype:",
            '    Prototype { name: "avg", parameter_names: ["a", "b"] }',
            "  body:",
            "    Operator {",
            "      type: Divide,",
            "      left:",
            "        Operator {",
            "          type: Add,",
            "          left:",
            '            Parameter { name: "a" }',
            "          right:",
            '            Parameter { name: "b" }',
            "        }",
            "      right:",
            '        Literal { value: "2" }',
            "    }",
            "}",
        ]

    def test_call_arguments_get_trailing_commas(self):
        """Every argument but the last is followed by a comma."""
        text = ASTPrinter().print(
            Call("f", (Literal(1.0), Parameter("x"), Literal(2.5)))
        )
        assert text.split("\n") == [
            'Call { name: "f", parameters: [',
            '  Literal { value: "1" },',
            '  Parameter { name: "x" },',
            '  Literal { value: "2.5" }',
            "]}",
        ]

    def test_empty_call(self):
        assert ASTPrinter().print(Call("f")) == 'Call { name: "f", parameters: [] }'

    def test_nested_call_argument(self):
        text = ASTPrinter().print(
            Call("f", (Call("g", (Literal(1.0), Literal(2.0))), Literal(3.0)))
        )
        assert text.split("\n") == [
            'Call { name: "f", parameters: [',
            '  Call { name: "g", parameters: [',
            '    Literal { value: "1" },',
            '    Literal { value: "2" }',
            "  ]},",
            '  Literal { value: "3" }',
            "]}",
        ]

    def test_comma_not_inherited_by_operands(self):
        """Only the argument itself gets the comma, not its children."""
        text = ASTPrinter().print(
            Call("f", (BinaryOp(Literal(1.0), Operator.ADD, Literal(2.0)), Literal(3.0)))
        )
        assert text.split("\n") == [
            'Call { name: "f", parameters: [',
            "  Operator {",
            "    type: Add,",
            "    left:",
            '      Literal { value: "1" }',
            "    right:",
            '      Literal { value: "2" }',
            "  },",
            '  Literal { value: "3" }',
            "]}",
        ]

    def test_conditional(self):
        text = ASTPrinter().print(
            Conditional(
                BinaryOp(Parameter("x"), Operator.LOWER_THAN, Literal(0.0)),
                Literal(0.0),
                Parameter("x"),
            )
        )
        assert text.split("\n") == [
            "Conditional {",
            "  condition:",
            "    Operator {",
            "      type: LowerThan,",
            "      left:",
            '        Parameter { name: "x" }',
            "      right:",
            '        Literal { value: "0" }',
            "    }",
            "  then:",
            '    Literal { value: "0" }',
            "  else:",
            '    Parameter { name: "x" }',
            "}",
        ]

    def test_printer_is_reusable(self):
        printer = ASTPrinter()
        first = printer.print(Literal(1.0))
        second = printer.print(Literal(1.0))
        assert first == second == 'Literal { value: "1" }'

    def test_dump_is_not_source(self):
        """The dump is diagnostic output and does not parse back."""
        (text,) = print_source("dec f()")
        with pytest.raises(KaleidoscopeError):
            parse_source(text)

    def test_definition_with_call_body(self):
        (text,) = print_source("def run() avg(1, 2)")
        assert text.split("\n") == [
            "FunctionDef {",
            "  prototype:",
            '    Prototype { name: "run", parameter_names: [] }',
            "  body:",
            '    Call { name: "avg", parameters: [',
            '      Literal { value: "1" },',
            '      Literal { value: "2" }',
            "    ]}",
            "}",
        ]


def test_declaration_equality_through_parse():
    """Structural equality lets tests compare whole trees."""
    assert parse_source("dec f(a)") == [Declaration(Prototype("f", ("a",)))]
    assert parse_source("def f(a) a") == [
        Definition(Prototype("f", ("a",)), Parameter("a"))
    ]


# =============================================================================
# Large Tree Tests
# =============================================================================

def operator_chain(terms: int) -> str:
    """A definition whose body is '1 + 1 + ... + 1'."""
    return "def run() " + " + ".join(["1"] * terms)


class TestLargeTrees:
    """Printing does not depend on the Python stack depth."""

    def test_long_operator_chain(self):
        """Each operator nests one level deeper on the left."""
        (definition,) = parse_source(operator_chain(2000))
        lines = ASTPrinter().print(definition).split("\n")

        # 5 wrapper lines, 6 per operator, 1 for the innermost literal
        assert len(lines) == 5 + 1999 * 6 + 1
        assert sum(line.strip() == 'Literal { value: "1" }' for line in lines) == 2000
        assert lines[3] == "  body:"
        assert lines[4] == "    Operator {"
        assert lines[-1] == "}"

    def test_innermost_operand_indentation(self):
        (definition,) = parse_source(operator_chain(1500))
        lines = ASTPrinter().print(definition).split("\n")
        deepest = max(len(line) - len(line.lstrip(" ")) for line in lines)
        # body at level 2, then two levels per operator
        assert deepest == 2 * (2 + 2 * 1499)

    def test_long_argument_list(self):
        args = ", ".join(str(n) for n in range(1000))
        definition = parse_source(f"dec f()\ndef run() f({args})")[-1]
        lines = ASTPrinter().print(definition).split("\n")
        assert lines[5] == '      Literal { value: "0" },'
        assert lines[-3] == '      Literal { value: "999" }'
