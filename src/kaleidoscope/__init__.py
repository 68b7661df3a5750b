"""
Kaleidoscope - Compiler Front End
=================================

This package implements the front end of a compiler for Kaleidoscope, a
minimal expression-oriented language: every value is a 64-bit float, every
construct is an expression, and the only top-level constructs are function
declarations ('dec') and definitions ('def').

Main Components
---------------
- **lexer**: pull-based tokenizer over a text stream
- **parser**: one-token-lookahead parser with precedence climbing
- **ast**: immutable syntax tree, visitor base class and dump printer
- **codegen**: backend capability and the code-generating visitor
- **evaluator**: in-process reference backend
- **compiler**: pipeline driver and configuration (kalc)

Quick Start
-----------
>>> from kaleidoscope import compile_source
>>> result = compile_source('''
... dec avg(a, b)
... def run() avg(1, 2)
... def avg(x, y) (x + y) / 2
... ''')
>>> result.backend.call("run")
1.5

Or use the command-line tool:
    $ kalc avg.kal --stage ast
    $ kalc avg.kal --stage run 1 2
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from kaleidoscope.errors import (
    SourceLocation,
    KaleidoscopeError,
    LexError,
    InvalidCharacterError,
    MalformedNumberError,
    InvalidOperatorError,
    InvalidStateError,
    ParseError,
    UnexpectedTokenError,
    NestingTooDeepError,
    SemanticError,
    DuplicateParameterError,
    PrototypeMismatchError,
    RedefinitionError,
    UndeclaredFunctionError,
    UnknownParameterError,
    ArgumentCountError,
    EvaluationError,
    UndefinedFunctionError,
    CallDepthError,
)
from kaleidoscope.lexer import (
    Lexer,
    Token,
    Keyword,
    Bracket,
    Operator,
    EndOfFileToken,
    KeywordToken,
    BracketToken,
    IdentifierToken,
    NumberToken,
    OperatorToken,
    ParameterSeparatorToken,
    CommentToken,
)
from kaleidoscope.ast import (
    ASTNode,
    Expression,
    TopLevelElement,
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
from kaleidoscope.parser import Parser, parse_source
from kaleidoscope.codegen import Backend, FunctionHandle, CodeGenerator
from kaleidoscope.evaluator import EvaluatorBackend
from kaleidoscope.compiler import (
    Stage,
    CompilerOptions,
    CompilerResult,
    KaleidoscopeCompiler,
    compile_source,
)

__all__ = [
    "__version__",
    # Errors
    "SourceLocation",
    "KaleidoscopeError",
    "LexError",
    "InvalidCharacterError",
    "MalformedNumberError",
    "InvalidOperatorError",
    "InvalidStateError",
    "ParseError",
    "UnexpectedTokenError",
    "NestingTooDeepError",
    "SemanticError",
    "DuplicateParameterError",
    "PrototypeMismatchError",
    "RedefinitionError",
    "UndeclaredFunctionError",
    "UnknownParameterError",
    "ArgumentCountError",
    "EvaluationError",
    "UndefinedFunctionError",
    "CallDepthError",
    # Lexer
    "Lexer",
    "Token",
    "Keyword",
    "Bracket",
    "Operator",
    "EndOfFileToken",
    "KeywordToken",
    "BracketToken",
    "IdentifierToken",
    "NumberToken",
    "OperatorToken",
    "ParameterSeparatorToken",
    "CommentToken",
    # AST
    "ASTNode",
    "Expression",
    "TopLevelElement",
    "Literal",
    "Parameter",
    "BinaryOp",
    "Call",
    "Conditional",
    "Prototype",
    "Declaration",
    "Definition",
    "ASTVisitor",
    "ASTPrinter",
    # Parser
    "Parser",
    "parse_source",
    # Code generation
    "Backend",
    "FunctionHandle",
    "CodeGenerator",
    "EvaluatorBackend",
    # Compiler
    "Stage",
    "CompilerOptions",
    "CompilerResult",
    "KaleidoscopeCompiler",
    "compile_source",
]
