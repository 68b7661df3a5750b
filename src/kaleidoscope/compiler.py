"""
Kaleidoscope Compiler Main Module
=================================

This module provides the main compiler interface. It orchestrates the
pipeline and produces the diagnostic dumps:

    Source → Lexer → Parser → AST → CodeGenerator → Backend

Usage
-----
Command line:
    $ kalc avg.kal --stage ast

Programmatic:
    >>> from kaleidoscope import KaleidoscopeCompiler
    >>> result = KaleidoscopeCompiler().compile_source("def run() 1 + 2")
    >>> result.backend.call("run")
    3.0

Stages
------
1. **lex**: Tokenize and dump one token per line (.lex file)
2. **ast**: Parse and dump every top-level element (.ast file)
3. **check**: Parse and generate code, validating all prototypes and calls
4. **run**: Check, then call the entry function with numeric arguments

Error Handling
--------------
Every stage stops at the first error and raises it; nothing is reported
from inside the library.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from kaleidoscope.lexer import Lexer, Token
from kaleidoscope.parser import Parser
from kaleidoscope.ast import ASTPrinter, TopLevelElement
from kaleidoscope.codegen import CodeGenerator, FunctionHandle
from kaleidoscope.evaluator import EvaluatorBackend


logger = logging.getLogger(__name__)


class Stage(Enum):
    """How far the pipeline runs."""
    LEX = "lex"
    AST = "ast"
    CHECK = "check"
    RUN = "run"


@dataclass
class CompilerOptions:
    """
    Compiler configuration options.

    Attributes:
        stage: How far the pipeline runs
        output_path: Directory receiving .lex/.ast dumps. None means the
                     directory of the input file.
        run_function: Function called by the run stage
        verbose: Log every pipeline step
    """
    stage: Stage = Stage.CHECK
    output_path: Optional[Path] = None
    run_function: str = "run"
    verbose: bool = False

    @classmethod
    def from_env(cls) -> "CompilerOptions":
        """
        Create CompilerOptions from environment variables.

        Environment variables (all optional):
            KALC_STAGE: lex, ast, check or run
            KALC_OUTPUT_PATH: Directory for dump files
            KALC_RUN_FUNCTION: Entry function for the run stage
            KALC_VERBOSE: 1, true or yes to log every pipeline step
        """
        options = cls()

        if "KALC_STAGE" in os.environ:
            options.stage = Stage(os.environ["KALC_STAGE"].lower())
        if "KALC_OUTPUT_PATH" in os.environ:
            options.output_path = Path(os.environ["KALC_OUTPUT_PATH"])
        if "KALC_RUN_FUNCTION" in os.environ:
            options.run_function = os.environ["KALC_RUN_FUNCTION"]
        if "KALC_VERBOSE" in os.environ:
            options.verbose = os.environ["KALC_VERBOSE"].lower() in ("1", "true", "yes")

        return options


@dataclass
class CompilerResult:
    """
    Result of compiling one source.

    Attributes:
        filename: Source filename
        elements: Parsed top-level elements, in file order
        functions: Handles of all functions, in order of first appearance
        backend: The backend holding the generated code
    """
    filename: str
    elements: list[TopLevelElement] = field(default_factory=list)
    functions: list[FunctionHandle] = field(default_factory=list)
    backend: Optional[EvaluatorBackend] = None

    @property
    def defined_functions(self) -> list[FunctionHandle]:
        return [handle for handle in self.functions if handle.defined]


class KaleidoscopeCompiler:
    """
    Kaleidoscope compiler front end.

    Example:
        compiler = KaleidoscopeCompiler()
        result = compiler.compile_file("avg.kal")
        print(result.backend.call("avg", 1, 2))

    Attributes:
        options: Compiler configuration options
    """

    def __init__(self, options: Optional[CompilerOptions] = None):
        self.options = options or CompilerOptions()

    # =========================================================================
    # Pipeline
    # =========================================================================

    def lex_source(self, source: str, filename: str = "<input>") -> list[Token]:
        """Tokenize source, up to and including EndOfFile."""
        tokens = list(Lexer.from_string(source, filename).tokenize())
        logger.info(f"{filename}: {len(tokens)} tokens")
        return tokens

    def parse_source(self, source: str, filename: str = "<input>") -> list[TopLevelElement]:
        """Parse source into top-level elements."""
        elements = Parser(Lexer.from_string(source, filename)).parse()
        logger.info(f"{filename}: {len(elements)} top-level elements")
        return elements

    def compile_source(self, source: str, filename: str = "<input>") -> CompilerResult:
        """
        Parse source and generate code into a fresh evaluator backend.

        Args:
            source: Kaleidoscope source code
            filename: Source filename for error messages

        Returns:
            CompilerResult with the elements and the populated backend

        Raises:
            KaleidoscopeError: If any stage fails
        """
        result = CompilerResult(filename=filename)
        result.elements = self.parse_source(source, filename)
        result.backend = EvaluatorBackend()
        result.functions = CodeGenerator(result.backend).emit_all(result.elements)
        logger.info(
            f"{filename}: {len(result.functions)} functions, "
            f"{len(result.defined_functions)} defined"
        )
        return result

    def compile_file(self, path: Path) -> CompilerResult:
        """Compile a source file."""
        path = Path(path)
        with path.open(encoding="utf-8") as reader:
            source = reader.read()
        return self.compile_source(source, str(path))

    def run(self, result: CompilerResult, args: list[float]) -> float:
        """Call the configured entry function of a compiled program."""
        return result.backend.call(self.options.run_function, *args)

    # =========================================================================
    # Diagnostic Dumps
    # =========================================================================

    def dump_tokens(self, tokens: list[Token]) -> str:
        """One token per line, ending with the EndOfFile line."""
        return "".join(f"{token}\n" for token in tokens)

    def dump_ast(self, elements: list[TopLevelElement]) -> str:
        """Every element's tree, each followed by an empty line."""
        printer = ASTPrinter()
        return "".join(f"{printer.print(element)}\n\n" for element in elements)

    def write_dump(self, input_file: Path) -> Path:
        """
        Run the lex or ast stage on a file and write the dump next to it.

        The dump is streamed: tokens or elements are written as they are
        produced, so everything before an error is kept.

        Args:
            input_file: The source file

        Returns:
            Path of the written .lex or .ast file
        """
        input_file = Path(input_file)
        output_dir = self.options.output_path or input_file.parent
        suffix = ".lex" if self.options.stage is Stage.LEX else ".ast"
        output_file = Path(output_dir) / (input_file.stem + suffix)

        with input_file.open(encoding="utf-8") as reader, \
                output_file.open("w", encoding="utf-8") as writer:
            lexer = Lexer(reader, str(input_file))

            if self.options.stage is Stage.LEX:
                for token in lexer.tokenize():
                    writer.write(f"{token}\n")
            else:
                printer = ASTPrinter()
                for element in Parser(lexer):
                    writer.write(f"{printer.print(element)}\n\n")

        logger.info(f"wrote {output_file}")
        return output_file


# =============================================================================
# Convenience Functions
# =============================================================================

def compile_source(source: str, filename: str = "<input>") -> CompilerResult:
    """
    Compile Kaleidoscope source with default options.

    Args:
        source: Kaleidoscope source code
        filename: Source filename for error messages

    Returns:
        CompilerResult whose backend can call the defined functions
    """
    return KaleidoscopeCompiler().compile_source(source, filename)
