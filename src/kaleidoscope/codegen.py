"""
Kaleidoscope Code Generator
===========================

This module connects the syntax tree to a code-producing backend. It
defines the capability every backend offers (Backend), the prototype
registration rules shared by all backends, and the CodeGenerator visitor
that walks top-level elements and drives a backend.

Backend Capability
------------------
| Operation          | Purpose                                          |
|--------------------|--------------------------------------------------|
| declare_prototype  | register name + parameter count, return handle   |
| define_function    | attach a body to a handle (once)                 |
| build_constant     | float constant                                   |
| build_parameter    | value of the n-th parameter                      |
| build_binary       | arithmetic or comparison                         |
| build_call         | call through a handle                            |
| build_conditional  | two branches merged into one value               |

Prototype Rules
---------------
- Any number of 'dec' for a name, before or after its 'def', is allowed
  as long as the parameter counts agree. Parameter names may differ.
- At most one 'def' per name.

Call targets are resolved by name. CodeGenerator.emit_all() registers
every prototype of the program before generating any body, so a call may
target a function whose declaration appears later in the file.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Sequence

from kaleidoscope.errors import (
    SourceLocation,
    PrototypeMismatchError,
    RedefinitionError,
    UndeclaredFunctionError,
    UnknownParameterError,
    ArgumentCountError,
    NestingTooDeepError,
)
from kaleidoscope.lexer import Operator
from kaleidoscope.ast import (
    ASTVisitor,
    Literal,
    Parameter,
    BinaryOp,
    Call,
    Conditional,
    Prototype,
    TopLevelElement,
    Declaration,
    Definition,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Function Handles
# =============================================================================

@dataclass
class FunctionHandle:
    """
    A registered function.

    Attributes:
        name: Function name
        param_count: Number of parameters every prototype must agree on
        defined: True once a body has been attached
        native: Backend-specific function object
    """
    name: str
    param_count: int
    defined: bool = False
    native: Any = None


# =============================================================================
# Backend Capability
# =============================================================================

class Backend(ABC):
    """
    Base class for code-producing backends.

    Subclasses implement the build_* primitives and the two function
    hooks; prototype registration and the redefinition check live here so
    every backend accepts and rejects exactly the same programs.

    Values produced by the build_* methods are opaque to the caller; they
    are only ever passed back into the same backend.
    """

    def __init__(self):
        self.functions: dict[str, FunctionHandle] = {}

    def declare_prototype(
        self,
        name: str,
        param_count: int,
        location: Optional[SourceLocation] = None,
    ) -> FunctionHandle:
        """
        Register a prototype, or check it against an earlier one.

        Args:
            name: Function name
            param_count: Number of parameters
            location: Source location for error reporting

        Returns:
            The handle for the function

        Raises:
            PrototypeMismatchError: If the name is known with another count
        """
        handle = self.functions.get(name)

        if handle is None:
            handle = FunctionHandle(name, param_count)
            handle.native = self._create_function(handle)
            self.functions[name] = handle
            logger.debug(f"registered prototype {name}/{param_count}")
        elif handle.param_count != param_count:
            raise PrototypeMismatchError(name, handle.param_count, param_count, location)

        return handle

    def define_function(
        self,
        handle: FunctionHandle,
        param_names: Sequence[str],
        build_body: Callable[[list], Any],
        location: Optional[SourceLocation] = None,
    ) -> None:
        """
        Attach a body to a registered function.

        Args:
            handle: Handle returned by declare_prototype
            param_names: Parameter names of this definition
            build_body: Called with one parameter value per name; returns
                the value of the body
            location: Source location for error reporting

        Raises:
            RedefinitionError: If the function already has a body
        """
        if handle.defined:
            raise RedefinitionError(handle.name, location)

        params = [self.build_parameter(index, name) for index, name in enumerate(param_names)]
        body = build_body(params)
        self._finish_function(handle, list(param_names), body)
        handle.defined = True
        logger.debug(f"defined function {handle.name}/{handle.param_count}")

    def lookup_function(self, name: str) -> Optional[FunctionHandle]:
        """Return the handle registered under name, if any."""
        return self.functions.get(name)

    # =========================================================================
    # Backend Hooks
    # =========================================================================

    @abstractmethod
    def _create_function(self, handle: FunctionHandle) -> Any:
        """Create the backend's function object for a new prototype."""

    @abstractmethod
    def _finish_function(self, handle: FunctionHandle, param_names: list[str], body: Any) -> None:
        """Install the generated body into the function object."""

    @abstractmethod
    def build_constant(self, value: float) -> Any:
        """Value of a float constant."""

    @abstractmethod
    def build_parameter(self, index: int, name: str) -> Any:
        """Value of the index-th parameter of the function being defined."""

    @abstractmethod
    def build_binary(self, op: Operator, lhs: Any, rhs: Any) -> Any:
        """Value of lhs op rhs. Comparisons yield 1.0 or 0.0."""

    @abstractmethod
    def build_call(self, handle: FunctionHandle, args: list) -> Any:
        """Value of calling handle with args."""

    @abstractmethod
    def build_conditional(
        self,
        condition: Any,
        build_then: Callable[[], Any],
        build_else: Callable[[], Any],
    ) -> Any:
        """
        Value of a two-way branch.

        The branch builders are invoked by the backend, in whatever
        context it needs them (e.g. separate blocks); the result merges
        both branch values into one.
        """


# =============================================================================
# Code Generator
# =============================================================================

class CodeGenerator(ASTVisitor):
    """
    Visitor that generates code for top-level elements into a backend.

    Visiting a Declaration registers its prototype; visiting a Definition
    registers and then generates it. Expression visits return backend
    values.

    Usage:
        backend = EvaluatorBackend()
        CodeGenerator(backend).emit_all(Parser(lexer))
        backend.call("run")

    Attributes:
        backend: The backend receiving the generated code
    """

    def __init__(self, backend: Backend):
        self.backend = backend

        # Parameter name -> backend value, for the function being generated
        self._named_values: dict[str, Any] = {}

    def emit_all(self, elements: Iterable[TopLevelElement]) -> list[FunctionHandle]:
        """
        Generate a whole program.

        All elements are collected (a Parser is drained to the end) and
        every prototype is registered in file order before any body is
        generated.

        Args:
            elements: Top-level elements in file order, or a Parser

        Returns:
            The handles of all functions, in order of first appearance

        Raises:
            SemanticError: If prototypes, calls or parameters do not resolve
            NestingTooDeepError: If a body is nested too deeply to generate
        """
        elements = list(elements)

        for element in elements:
            self.visit(element.prototype)

        for element in elements:
            if isinstance(element, Definition):
                try:
                    self._generate_definition(element)
                except RecursionError:
                    raise NestingTooDeepError(element.location) from None

        names = dict.fromkeys(element.prototype.name for element in elements)
        return [self.backend.functions[name] for name in names]

    def visit_Declaration(self, node: Declaration) -> FunctionHandle:
        return self.visit(node.prototype)

    def visit_Definition(self, node: Definition) -> FunctionHandle:
        self.visit(node.prototype)
        return self._generate_definition(node)

    def visit_Prototype(self, node: Prototype) -> FunctionHandle:
        return self.backend.declare_prototype(node.name, node.arity, node.location)

    def visit_Literal(self, node: Literal):
        return self.backend.build_constant(node.value)

    def visit_Parameter(self, node: Parameter):
        if node.name not in self._named_values:
            raise UnknownParameterError(node.name, node.location)
        return self._named_values[node.name]

    def visit_BinaryOp(self, node: BinaryOp):
        # Left-associative chains nest on the left: walk that spine in a loop
        spine = []
        while isinstance(node, BinaryOp):
            spine.append(node)
            node = node.left

        value = self.visit(node)
        for binary in reversed(spine):
            rhs = self.visit(binary.right)
            value = self.backend.build_binary(binary.op, value, rhs)
        return value

    def visit_Call(self, node: Call):
        handle = self.backend.lookup_function(node.name)
        if handle is None:
            raise UndeclaredFunctionError(node.name, node.location)

        if handle.param_count != len(node.args):
            raise ArgumentCountError(node.name, handle.param_count, len(node.args), node.location)

        args = [self.visit(arg) for arg in node.args]
        return self.backend.build_call(handle, args)

    def visit_Conditional(self, node: Conditional):
        condition = self.visit(node.condition)
        return self.backend.build_conditional(
            condition,
            lambda: self.visit(node.then),
            lambda: self.visit(node.otherwise),
        )

    def _generate_definition(self, node: Definition) -> FunctionHandle:
        """Generate the body of a definition whose prototype is registered."""
        prototype = node.prototype
        handle = self.backend.functions[prototype.name]

        def build_body(params: list):
            # Prototype guarantees the names are unique
            self._named_values = dict(zip(prototype.parameter_names, params))
            return self.visit(node.body)

        try:
            self.backend.define_function(
                handle, prototype.parameter_names, build_body, node.location
            )
        finally:
            self._named_values = {}

        return handle
