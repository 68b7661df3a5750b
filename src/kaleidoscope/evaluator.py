"""
Kaleidoscope Evaluator Backend
==============================

A Backend that compiles function bodies into flat instruction sequences
for a small stack machine and runs them in process. It stands in for a
machine-code backend and follows the same floating-point semantics:

- + - * / are IEEE-754 double operations; dividing by zero yields an
  infinity or NaN instead of raising.
- Comparisons are unordered: they are true when either operand is NaN.
  The result is 1.0 for true and 0.0 for false.
- A conditional takes its then-branch when the condition is ordered and
  not equal to 0.0 (so NaN selects the else-branch), and evaluates only
  the branch it takes.

Execution Model
---------------
Every backend value is a tuple of instructions that leaves exactly one
float on the value stack. A function body is such a tuple; running it
leaves the result. Calls push a frame onto an explicit call stack, so
neither long operator chains nor deep Kaleidoscope recursion consume
Python stack frames. Runaway recursion is stopped at MAX_CALL_DEPTH.

| Opcode         | Operand                  | Effect                         |
|----------------|--------------------------|--------------------------------|
| CONST          | float                    | push the constant              |
| PARAM          | parameter index          | push a parameter of the frame  |
| BINARY         | operation                | pop rhs, pop lhs, push result  |
| CALL           | (function, arg count)    | pop arguments, enter function  |
| JUMP_IF_FALSE  | relative offset          | pop; skip ahead if not true    |
| JUMP           | relative offset          | skip ahead                     |

Example:
    >>> from kaleidoscope.codegen import CodeGenerator
    >>> from kaleidoscope.parser import parse_source
    >>> backend = EvaluatorBackend()
    >>> handles = CodeGenerator(backend).emit_all(parse_source("def avg(a, b) (a + b) / 2"))
    >>> backend.call("avg", 1, 2)
    1.5
"""

import logging
import math
from enum import Enum
from typing import Any, Callable, Optional

from kaleidoscope.errors import (
    UndeclaredFunctionError,
    ArgumentCountError,
    UndefinedFunctionError,
    CallDepthError,
)
from kaleidoscope.lexer import Operator
from kaleidoscope.codegen import Backend, FunctionHandle


logger = logging.getLogger(__name__)


# Deepest chain of active calls before execution is aborted
MAX_CALL_DEPTH = 100_000


# =============================================================================
# Floating-Point Operations
# =============================================================================

def _divide(a: float, b: float) -> float:
    """IEEE division: x/0 is +-inf, 0/0 and nan/0 are nan."""
    try:
        return a / b
    except ZeroDivisionError:
        if math.isnan(a) or a == 0.0:
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)


def _unordered(compare: Callable[[float, float], bool]) -> Callable[[float, float], float]:
    """Wrap a comparison so NaN operands make it true."""
    def op(a: float, b: float) -> float:
        if math.isnan(a) or math.isnan(b):
            return 1.0
        return 1.0 if compare(a, b) else 0.0
    return op


BINARY_OPERATIONS: dict[Operator, Callable[[float, float], float]] = {
    Operator.ADD: lambda a, b: a + b,
    Operator.SUBTRACT: lambda a, b: a - b,
    Operator.MULTIPLY: lambda a, b: a * b,
    Operator.DIVIDE: _divide,
    Operator.EQUAL: _unordered(lambda a, b: a == b),
    Operator.LOWER_THAN: _unordered(lambda a, b: a < b),
    Operator.LOWER_THAN_EQUAL: _unordered(lambda a, b: a <= b),
    Operator.GREATER_THAN: _unordered(lambda a, b: a > b),
    Operator.GREATER_THAN_EQUAL: _unordered(lambda a, b: a >= b),
}


def is_true(value: float) -> bool:
    """Ordered not-equal to 0.0."""
    return not math.isnan(value) and value != 0.0


# =============================================================================
# Instructions
# =============================================================================

class Opcode(Enum):
    """Stack machine operations."""
    CONST = "const"
    PARAM = "param"
    BINARY = "binary"
    CALL = "call"
    JUMP_IF_FALSE = "jump_if_false"
    JUMP = "jump"


# An instruction is (opcode, operand); a value is a sequence of them
Instruction = tuple[Opcode, Any]
Code = tuple[Instruction, ...]


class CompiledFunction:
    """
    The evaluator's function object.

    Created when the prototype is first registered; the code is filled in
    when (and if) the definition is generated, so calls compiled before
    that point still reach it.
    """

    def __init__(self, name: str, param_count: int):
        self.name = name
        self.param_count = param_count
        self.code: Optional[Code] = None

    def invoke(self, args: tuple) -> float:
        """Run the function to completion on the stack machine."""
        return execute(self, args)

    def __repr__(self) -> str:
        state = "defined" if self.code is not None else "declared"
        return f"<CompiledFunction {self.name}/{self.param_count} {state}>"


def execute(function: CompiledFunction, args: tuple) -> float:
    """
    Run a function and every call it makes without Python recursion.

    Args:
        function: The function to enter
        args: One float per parameter

    Returns:
        The function's result

    Raises:
        UndefinedFunctionError: If a function without code is entered
        CallDepthError: If more than MAX_CALL_DEPTH calls are active
    """
    if function.code is None:
        raise UndefinedFunctionError(function.name)

    stack: list[float] = []
    call_stack: list[tuple[Code, int, tuple]] = []
    code, pc, params = function.code, 0, args

    while True:
        if pc == len(code):
            # Body finished; its value is on top of the stack
            if not call_stack:
                return stack.pop()
            code, pc, params = call_stack.pop()
            continue

        opcode, operand = code[pc]
        pc += 1

        if opcode is Opcode.CONST:
            stack.append(operand)
        elif opcode is Opcode.PARAM:
            stack.append(params[operand])
        elif opcode is Opcode.BINARY:
            rhs = stack.pop()
            lhs = stack.pop()
            stack.append(operand(lhs, rhs))
        elif opcode is Opcode.CALL:
            callee, arg_count = operand
            if callee.code is None:
                raise UndefinedFunctionError(callee.name)
            if len(call_stack) >= MAX_CALL_DEPTH:
                raise CallDepthError(callee.name, MAX_CALL_DEPTH)

            if arg_count:
                callee_args = tuple(stack[-arg_count:])
                del stack[-arg_count:]
            else:
                callee_args = ()

            call_stack.append((code, pc, params))
            code, pc, params = callee.code, 0, callee_args
        elif opcode is Opcode.JUMP_IF_FALSE:
            if not is_true(stack.pop()):
                pc += operand
        else:
            pc += operand


# =============================================================================
# Evaluator Backend
# =============================================================================

class EvaluatorBackend(Backend):
    """
    In-process backend producing stack machine code.

    Usage:
        backend = EvaluatorBackend()
        CodeGenerator(backend).emit_all(elements)
        result = backend.call("run", 1.0, 2.0)
    """

    def call(self, name: str, *args: float) -> float:
        """
        Call a defined function.

        Args:
            name: Function name
            *args: Arguments, converted to float

        Returns:
            The function's result

        Raises:
            UndeclaredFunctionError: If no such function exists
            ArgumentCountError: If the argument count is wrong
            UndefinedFunctionError: If the function (or one it calls) has
                no body
            CallDepthError: If the program recurses without bound
        """
        handle = self.lookup_function(name)
        if handle is None:
            raise UndeclaredFunctionError(name)

        if handle.param_count != len(args):
            raise ArgumentCountError(name, handle.param_count, len(args))

        frame = tuple(float(arg) for arg in args)
        logger.debug(f"calling {name}{frame}")
        return handle.native.invoke(frame)

    def _create_function(self, handle: FunctionHandle) -> CompiledFunction:
        return CompiledFunction(handle.name, handle.param_count)

    def _finish_function(self, handle: FunctionHandle, param_names: list[str], body: Code) -> None:
        handle.native.code = body
        logger.debug(f"{handle.name}: {len(body)} instructions")

    def build_constant(self, value: float) -> Code:
        return ((Opcode.CONST, value),)

    def build_parameter(self, index: int, name: str) -> Code:
        return ((Opcode.PARAM, index),)

    def build_binary(self, op: Operator, lhs: Code, rhs: Code) -> Code:
        return lhs + rhs + ((Opcode.BINARY, BINARY_OPERATIONS[op]),)

    def build_call(self, handle: FunctionHandle, args: list) -> Code:
        code: Code = ()
        for arg in args:
            code += arg
        return code + ((Opcode.CALL, (handle.native, len(args))),)

    def build_conditional(
        self,
        condition: Code,
        build_then: Callable[[], Code],
        build_else: Callable[[], Code],
    ) -> Code:
        then = build_then()
        otherwise = build_else()

        # Both branches meet after the else code with one value pushed
        return (
            condition
            + ((Opcode.JUMP_IF_FALSE, len(then) + 1),)
            + then
            + ((Opcode.JUMP, len(otherwise)),)
            + otherwise
        )
