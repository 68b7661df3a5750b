"""
Kaleidoscope Error Hierarchy
============================

This module defines the exception hierarchy for the Kaleidoscope front end.
All exceptions inherit from KaleidoscopeError, allowing callers to catch
every front-end error with a single except clause if desired.

Exception Hierarchy
-------------------
KaleidoscopeError (base)
├── LexError - character-level errors
│   ├── InvalidCharacterError - character that starts no token
│   ├── MalformedNumberError - digit/dot run that is not a float
│   ├── InvalidOperatorError - lone '=' (only '==' exists)
│   └── InvalidStateError - lexing after EndOfFile was produced
├── ParseError - grammar errors
│   └── UnexpectedTokenError - expected construct vs. offending token
├── NestingTooDeepError - source nested beyond the Python stack
├── SemanticError - structural and cross-prototype errors
│   ├── DuplicateParameterError - parameter name used twice
│   ├── PrototypeMismatchError - parameter count differs across dec/def
│   ├── RedefinitionError - second 'def' for the same name
│   ├── UndeclaredFunctionError - call to an unknown function
│   ├── UnknownParameterError - reference to an unknown parameter
│   └── ArgumentCountError - call with the wrong number of arguments
└── EvaluationError - errors raised while running compiled code
    ├── UndefinedFunctionError - call to a declared but undefined function
    └── CallDepthError - unbounded recursion at run time

Error Message Format
--------------------
Errors carrying a location render like this:

    avg.kal:3:9: error: unexpected token Operator(Add)
        def f(a +
                ^
    hint: expected ')' or ',' in function prototype
"""

from dataclasses import dataclass
from typing import Optional


# =============================================================================
# Source Location Tracking
# =============================================================================

@dataclass(frozen=True)
class SourceLocation:
    """
    A position in source code, used for error reporting.

    Attributes:
        filename: Name of the source file (or "<input>" for string input)
        line: Line number (1-indexed)
        column: Column number (1-indexed)
    """
    filename: str
    line: int
    column: int

    def __str__(self) -> str:
        """Format as 'filename:line:column' for error messages."""
        return f"{self.filename}:{self.line}:{self.column}"


# =============================================================================
# Base Exception
# =============================================================================

class KaleidoscopeError(Exception):
    """
    Base exception for all Kaleidoscope errors.

    Every error is a single structured value: a message, an optional
    source location, an optional hint and the optional text of the
    offending source line. The driver decides how to present it.

    Attributes:
        message: The error description
        location: Where in the source the error occurred
        hint: A suggestion for fixing the error
        source_line: The source text at the error location
    """

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.message = message
        self.location = location
        self.hint = hint
        self.source_line = source_line
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the message with location, source context and hint."""
        parts = []

        if self.location:
            parts.append(f"{self.location}: error: {self.message}")
        else:
            parts.append(f"error: {self.message}")

        if self.source_line is not None and self.location is not None:
            parts.append(f"    {self.source_line}")
            if self.location.column > 0:
                padding = " " * (4 + self.location.column - 1)
                parts.append(f"{padding}^")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)


# =============================================================================
# Lexer Errors
# =============================================================================

class LexError(KaleidoscopeError):
    """
    Error while turning characters into tokens.

    Always attributable to the offending character.
    """
    pass


class InvalidCharacterError(LexError):
    """A character that cannot start (or continue) any token."""

    def __init__(
        self,
        char: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.char = char
        super().__init__(
            f"invalid character {char!r} (0x{ord(char):02X})",
            location=location,
            source_line=source_line,
        )


class MalformedNumberError(LexError):
    """A run of digits and dots that is not a valid floating-point literal."""

    def __init__(
        self,
        text: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.text = text
        super().__init__(
            f"malformed number '{text}'",
            location=location,
            hint="numbers look like 42, 3.142 or .5",
            source_line=source_line,
        )


class InvalidOperatorError(LexError):
    """An operator character sequence that forms no operator."""

    def __init__(
        self,
        text: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.text = text
        super().__init__(
            f"invalid operator '{text}'",
            location=location,
            hint="use '==' for equality; there is no assignment",
            source_line=source_line,
        )


class InvalidStateError(LexError):
    """The lexer was asked for a token after it produced EndOfFile."""

    def __init__(self, location: Optional[SourceLocation] = None):
        super().__init__(
            "lexer already produced EndOfFile",
            location=location,
        )


# =============================================================================
# Parser Errors
# =============================================================================

class ParseError(KaleidoscopeError):
    """Error while turning tokens into a syntax tree."""
    pass


class UnexpectedTokenError(ParseError):
    """
    The parser found a token that does not fit the grammar.

    Attributes:
        expected: Description of the construct the parser wanted
        found: The offending token
    """

    def __init__(
        self,
        expected: str,
        found,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.expected = expected
        self.found = found
        super().__init__(
            f"unexpected token {found}",
            location=location,
            hint=f"expected {expected}",
            source_line=source_line,
        )


class NestingTooDeepError(KaleidoscopeError):
    """
    Brackets, calls or conditionals nested deeper than the recursive
    parser (or the code generator following it) can descend.

    Flat operator chains of any length are fine; only nesting counts.
    """

    def __init__(self, location: Optional[SourceLocation] = None):
        super().__init__(
            "expression nested too deeply",
            location=location,
            hint="split the expression into helper functions",
        )


# =============================================================================
# Semantic Errors
# =============================================================================

class SemanticError(KaleidoscopeError):
    """
    Well-formed syntax that violates the language's rules.

    Raised by the parser for duplicate parameter names, and by the
    prototype registration and code generation for everything that
    needs global knowledge about the program.
    """
    pass


class DuplicateParameterError(SemanticError):
    """A prototype lists the same parameter name twice."""

    def __init__(
        self,
        name: str,
        function_name: str,
        location: Optional[SourceLocation] = None,
    ):
        self.name = name
        self.function_name = function_name
        super().__init__(
            f"duplicate parameter '{name}' in prototype of '{function_name}'",
            location=location,
            hint="parameter names must be unique",
        )


class PrototypeMismatchError(SemanticError):
    """A function is declared or defined with differing parameter counts."""

    def __init__(
        self,
        name: str,
        expected_count: int,
        actual_count: int,
        location: Optional[SourceLocation] = None,
    ):
        self.name = name
        self.expected_count = expected_count
        self.actual_count = actual_count
        super().__init__(
            f"parameter count of '{name}' varies across declarations / definition",
            location=location,
            hint=f"first seen with {expected_count}, now with {actual_count}",
        )


class RedefinitionError(SemanticError):
    """A function has more than one 'def'."""

    def __init__(self, name: str, location: Optional[SourceLocation] = None):
        self.name = name
        super().__init__(
            f"redefinition of function '{name}'",
            location=location,
            hint="a function may be declared many times but defined only once",
        )


class UndeclaredFunctionError(SemanticError):
    """A call names a function that was never declared nor defined."""

    def __init__(self, name: str, location: Optional[SourceLocation] = None):
        self.name = name
        super().__init__(
            f"undeclared function '{name}'",
            location=location,
            hint=f"add 'dec {name}(...)' or define it",
        )


class UnknownParameterError(SemanticError):
    """A body references a name that is not one of its parameters."""

    def __init__(self, name: str, location: Optional[SourceLocation] = None):
        self.name = name
        super().__init__(
            f"unknown parameter '{name}'",
            location=location,
        )


class ArgumentCountError(SemanticError):
    """A call passes a different number of arguments than the prototype."""

    def __init__(
        self,
        name: str,
        expected: int,
        actual: int,
        location: Optional[SourceLocation] = None,
    ):
        self.name = name
        self.expected = expected
        self.actual = actual
        word = "argument" if expected == 1 else "arguments"
        super().__init__(
            f"'{name}' expects {expected} {word}, got {actual}",
            location=location,
        )


# =============================================================================
# Evaluation Errors
# =============================================================================

class EvaluationError(KaleidoscopeError):
    """Error raised while running code produced by the evaluator backend."""
    pass


class UndefinedFunctionError(EvaluationError):
    """A declared function without a body was called."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"function '{name}' is declared but never defined",
        )


class CallDepthError(EvaluationError):
    """More calls are active at once than the evaluator allows."""

    def __init__(self, name: str, limit: int):
        self.name = name
        self.limit = limit
        super().__init__(
            f"call depth limit of {limit} exceeded calling '{name}'",
            hint="check that every recursion reaches its base case",
        )
