"""
Kaleidoscope Abstract Syntax Tree (AST) Definitions
===================================================

This module defines the AST node types built by the parser, the visitor
base class every tree consumer derives from, and the diagnostic printer.

Node Hierarchy
--------------
ASTNode (base)
├── Expressions
│   ├── Literal - float constant
│   ├── Parameter - reference to a function parameter
│   ├── BinaryOp - binary operator application
│   ├── Call - function call
│   └── Conditional - if/then/else (else is mandatory)
├── Prototype - function name + parameter names
└── Top-level elements
    ├── Declaration - 'dec' prototype
    └── Definition - 'def' prototype body

Design Notes
------------
- All nodes are frozen dataclasses; sequences are stored as tuples, so
  the tree is immutable once built and may be shared by any number of
  visitors without coordination.
- Each node carries its source location for error reporting; the
  location takes no part in equality.
- Prototype checks its parameter names for duplicates when it is
  constructed, so an invalid prototype can never exist.
- Traversal is double dispatch: node.accept(visitor) calls exactly the
  visitor method named after the node's class.
"""

from dataclasses import dataclass, field, fields
from typing import Optional

from kaleidoscope.errors import SourceLocation, DuplicateParameterError
from kaleidoscope.lexer import Operator, format_number


# =============================================================================
# AST Node Base Classes
# =============================================================================

@dataclass(frozen=True)
class ASTNode:
    """
    Base class for all AST nodes.

    Attributes:
        location: Source location where this node starts
    """
    location: Optional[SourceLocation] = field(
        default=None, compare=False, repr=False, kw_only=True
    )

    def accept(self, visitor: "ASTVisitor"):
        """Dispatch to the visitor method for this node's variant."""
        raise NotImplementedError(f"{type(self).__name__} cannot be visited")


@dataclass(frozen=True)
class Expression(ASTNode):
    """Base class for nodes that evaluate to a float."""
    pass


@dataclass(frozen=True)
class TopLevelElement(ASTNode):
    """Base class for the constructs allowed outside an expression."""
    pass


# =============================================================================
# Expression Nodes
# =============================================================================

@dataclass(frozen=True)
class Literal(Expression):
    """
    Number literal.

    Attributes:
        value: The float value
    """
    value: float

    def accept(self, visitor: "ASTVisitor"):
        return visitor.visit_Literal(self)


@dataclass(frozen=True)
class Parameter(Expression):
    """
    Reference to a parameter of the enclosing function.

    Attributes:
        name: The parameter name
    """
    name: str

    def accept(self, visitor: "ASTVisitor"):
        return visitor.visit_Parameter(self)


@dataclass(frozen=True)
class BinaryOp(Expression):
    """
    Binary operation (left op right).

    Attributes:
        left: Left operand expression
        op: The operator
        right: Right operand expression
    """
    left: Expression
    op: Operator
    right: Expression

    def accept(self, visitor: "ASTVisitor"):
        return visitor.visit_BinaryOp(self)


@dataclass(frozen=True)
class Call(Expression):
    """
    Function call.

    Attributes:
        name: Name of the called function
        args: Argument expressions, in order
    """
    name: str
    args: tuple[Expression, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "args", tuple(self.args))

    def accept(self, visitor: "ASTVisitor"):
        return visitor.visit_Call(self)


@dataclass(frozen=True)
class Conditional(Expression):
    """
    Conditional expression (if condition then then else otherwise).

    Both branches are mandatory: every expression yields a value.

    Attributes:
        condition: Tested against 0.0
        then: Value when the condition is non-zero
        otherwise: Value when the condition is zero
    """
    condition: Expression
    then: Expression
    otherwise: Expression

    def accept(self, visitor: "ASTVisitor"):
        return visitor.visit_Conditional(self)


# =============================================================================
# Function Nodes
# =============================================================================

@dataclass(frozen=True)
class Prototype(ASTNode):
    """
    Function name and parameter names.

    Only the number of parameters matters when several prototypes for
    the same name meet; the names themselves are local to each one.

    Attributes:
        name: Function name
        parameter_names: Parameter names, in order, pairwise distinct

    Raises:
        DuplicateParameterError: If a parameter name occurs twice
    """
    name: str
    parameter_names: tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "parameter_names", tuple(self.parameter_names))

        seen = set()
        for parameter_name in self.parameter_names:
            if parameter_name in seen:
                raise DuplicateParameterError(parameter_name, self.name, self.location)
            seen.add(parameter_name)

    @property
    def arity(self) -> int:
        """Number of parameters."""
        return len(self.parameter_names)

    def accept(self, visitor: "ASTVisitor"):
        return visitor.visit_Prototype(self)


@dataclass(frozen=True)
class Declaration(TopLevelElement):
    """
    Body-less function declaration ('dec').

    Attributes:
        prototype: The declared prototype
    """
    prototype: Prototype

    def accept(self, visitor: "ASTVisitor"):
        return visitor.visit_Declaration(self)


@dataclass(frozen=True)
class Definition(TopLevelElement):
    """
    Function definition ('def').

    Attributes:
        prototype: The defined prototype
        body: The expression computing the function's result
    """
    prototype: Prototype
    body: Expression

    def accept(self, visitor: "ASTVisitor"):
        return visitor.visit_Definition(self)


# =============================================================================
# AST Visitor Pattern
# =============================================================================

class ASTVisitor:
    """
    Base class for AST visitors.

    Subclasses override the visit_* methods for the node types they care
    about. All accumulated state (scopes, indentation, results) lives in
    the visitor, never in the tree.

    Usage:
        class CallCounter(ASTVisitor):
            def __init__(self):
                self.calls = 0

            def visit_Call(self, node):
                self.calls += 1
                self.generic_visit(node)

        counter = CallCounter()
        counter.visit(definition)
    """

    def visit(self, node: ASTNode):
        """
        Visit a node by letting it dispatch to the matching method.

        Args:
            node: The AST node to visit

        Returns:
            The result of the visit method (varies by visitor)
        """
        return node.accept(self)

    def generic_visit(self, node: ASTNode) -> None:
        """Default handler: visit all child nodes in field order."""
        for node_field in fields(node):
            value = getattr(node, node_field.name)
            if isinstance(value, ASTNode):
                self.visit(value)
            elif isinstance(value, tuple):
                for item in value:
                    if isinstance(item, ASTNode):
                        self.visit(item)

    def visit_Literal(self, node: Literal): return self.generic_visit(node)
    def visit_Parameter(self, node: Parameter): return self.generic_visit(node)
    def visit_BinaryOp(self, node: BinaryOp): return self.generic_visit(node)
    def visit_Call(self, node: Call): return self.generic_visit(node)
    def visit_Conditional(self, node: Conditional): return self.generic_visit(node)
    def visit_Prototype(self, node: Prototype): return self.generic_visit(node)
    def visit_Declaration(self, node: Declaration): return self.generic_visit(node)
    def visit_Definition(self, node: Definition): return self.generic_visit(node)


# =============================================================================
# AST Pretty Printer
# =============================================================================

class ASTPrinter(ASTVisitor):
    """
    Diagnostic printer producing the nested brace dump of a tree.

    Every node renders as 'Kind { field: value, ... }'; child expressions
    go on their own lines, indented two spaces per level. Call arguments
    other than the last are followed by a comma.

    Visit methods do not recurse: they schedule their lines and children
    on a work stack that print() drains, so an operator chain of any
    length prints without exhausting the Python stack.

    The dump is for humans: it is not Kaleidoscope source and cannot be
    parsed back.

    Usage:
        printer = ASTPrinter()
        output = printer.print(definition)
        print(output)
    """

    def __init__(self):
        self.output: list[str] = []
        self.indent_level = 0

        # Suffix for the node being visited: "," inside a list, else ""
        self._comma = ""

        # Pending (line or node, indent level, comma), last one first
        self._pending: list[tuple] = []

    def print(self, node: ASTNode) -> str:
        """Print the tree rooted at node and return it as a string."""
        self.output = []
        self._pending = [(node, 0, "")]

        while self._pending:
            item, self.indent_level, self._comma = self._pending.pop()
            if isinstance(item, ASTNode):
                self.visit(item)
            else:
                self._emit(item)

        return "\n".join(self.output)

    def _emit(self, text: str) -> None:
        """Emit a line with current indentation."""
        indent = "  " * self.indent_level
        self.output.append(f"{indent}{text}")

    def _schedule(self, *parts: tuple) -> None:
        """
        Queue lines and child nodes to print in the given order.

        Each part is (line or node, extra indent) or (node, extra indent,
        comma); the indent is relative to the node being visited.
        """
        for part in reversed(parts):
            item, depth = part[0], part[1]
            comma = part[2] if len(part) > 2 else ""
            self._pending.append((item, self.indent_level + depth, comma))

    def visit_Literal(self, node: Literal):
        self._emit(f'Literal {{ value: "{format_number(node.value)}" }}{self._comma}')

    def visit_Parameter(self, node: Parameter):
        self._emit(f'Parameter {{ name: "{node.name}" }}{self._comma}')

    def visit_BinaryOp(self, node: BinaryOp):
        self._schedule(
            ("Operator {", 0),
            (f"type: {node.op.value},", 1),
            ("left:", 1),
            (node.left, 2),
            ("right:", 1),
            (node.right, 2),
            (f"}}{self._comma}", 0),
        )

    def visit_Call(self, node: Call):
        if not node.args:
            self._emit(f'Call {{ name: "{node.name}", parameters: [] }}{self._comma}')
            return

        last = len(node.args) - 1
        arguments = [
            (arg, 1, "," if index < last else "")
            for index, arg in enumerate(node.args)
        ]
        self._schedule(
            (f'Call {{ name: "{node.name}", parameters: [', 0),
            *arguments,
            (f"]}}{self._comma}", 0),
        )

    def visit_Conditional(self, node: Conditional):
        self._schedule(
            ("Conditional {", 0),
            ("condition:", 1),
            (node.condition, 2),
            ("then:", 1),
            (node.then, 2),
            ("else:", 1),
            (node.otherwise, 2),
            (f"}}{self._comma}", 0),
        )

    def visit_Prototype(self, node: Prototype):
        names = ", ".join(f'"{name}"' for name in node.parameter_names)
        self._emit(
            f'Prototype {{ name: "{node.name}", parameter_names: [{names}] }}{self._comma}'
        )

    def visit_Declaration(self, node: Declaration):
        self._schedule(
            ("FunctionDec {", 0),
            ("prototype:", 1),
            (node.prototype, 2),
            (f"}}{self._comma}", 0),
        )

    def visit_Definition(self, node: Definition):
        self._schedule(
            ("FunctionDef {", 0),
            ("prototype:", 1),
            (node.prototype, 2),
            ("body:", 1),
            (node.body, 2),
            (f"}}{self._comma}", 0),
        )
