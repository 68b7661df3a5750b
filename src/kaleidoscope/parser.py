"""
Kaleidoscope Recursive Descent Parser
=====================================

This module implements the parser for the Kaleidoscope language. It pulls
tokens from a Lexer on demand, one at a time, and builds one top-level
element (declaration or definition) per call to Parser.parse_top().

Grammar (EBNF)
--------------
program     ::= top_level*
top_level   ::= declaration | definition
declaration ::= 'dec' prototype
definition  ::= 'def' prototype expression
prototype   ::= IDENTIFIER '(' (IDENTIFIER (',' IDENTIFIER)*)? ')'
expression  ::= primary (OPERATOR primary)*
primary     ::= NUMBER
              | '(' expression ')'
              | IDENTIFIER ('(' (expression (',' expression)*)? ')')?
              | 'if' expression 'then' expression 'else' expression

Operator Precedence (higher binds tighter)
------------------------------------------
| Operators            | Precedence |
|----------------------|------------|
| *  /                 | 100        |
| +  -                 | 80         |
| == <  <= >  >=       | 60         |

All operators are left-associative. Binary expressions are built by
precedence climbing: parse a primary, then keep absorbing operators whose
precedence is at least the current minimum, recursing for the right-hand
side only when the following operator binds tighter.

Example Usage
-------------
>>> from kaleidoscope.parser import parse_source
>>> elements = parse_source("def f(x) 1 + 2 * x")
>>> elements[0].body
BinaryOp(left=Literal(value=1.0), op=<Operator.ADD: 'Add'>, right=BinaryOp(...))
"""

import logging
from typing import Iterator, Optional

from kaleidoscope.errors import UnexpectedTokenError, NestingTooDeepError
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
    Expression,
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


# Binary operator precedence table (higher binds tighter)
PRECEDENCE: dict[Operator, int] = {
    Operator.MULTIPLY: 100,
    Operator.DIVIDE: 100,
    Operator.ADD: 80,
    Operator.SUBTRACT: 80,
    Operator.EQUAL: 60,
    Operator.LOWER_THAN: 60,
    Operator.LOWER_THAN_EQUAL: 60,
    Operator.GREATER_THAN: 60,
    Operator.GREATER_THAN_EQUAL: 60,
}


class Parser:
    """
    One-token-lookahead parser for Kaleidoscope.

    The parser owns exactly one buffered token. Comments are skipped
    whenever a token is consumed, so no grammar rule ever sees one. Each
    token is consumed once; nothing is re-read.

    Usage:
        parser = Parser(Lexer.from_string(source))
        for element in parser:
            handle(element)

    Attributes:
        lexer: The token source
    """

    def __init__(self, lexer: Lexer):
        """
        Initialize the parser and load the first token.

        Args:
            lexer: Lexer delivering the tokens to parse
        """
        self.lexer = lexer
        self._token: Token = EndOfFileToken()
        self._advance()

    def parse_top(self) -> Optional[TopLevelElement]:
        """
        Parse the next top-level element.

        Returns:
            A Declaration or Definition, or None at the end of input

        Raises:
            LexError: If the lexer rejects the input
            ParseError: If the tokens do not fit the grammar
            DuplicateParameterError: If a prototype repeats a parameter name
            NestingTooDeepError: If brackets, calls or conditionals nest
                deeper than the parser can descend
        """
        token = self._token

        if isinstance(token, EndOfFileToken):
            return None

        try:
            if self._is_keyword(Keyword.DEC):
                element = self._parse_declaration()
            elif self._is_keyword(Keyword.DEF):
                element = self._parse_definition()
            else:
                raise self._error("declaration, definition, or end of input")
        except RecursionError:
            raise NestingTooDeepError(token.location) from None

        logger.debug(f"parsed {type(element).__name__} '{element.prototype.name}'")
        return element

    def parse(self) -> list[TopLevelElement]:
        """Parse all remaining top-level elements."""
        return list(self)

    def __iter__(self) -> Iterator[TopLevelElement]:
        while True:
            element = self.parse_top()
            if element is None:
                return
            yield element

    # =========================================================================
    # Token Access Methods
    # =========================================================================

    def _advance(self) -> None:
        """Consume the current token and load the next non-comment one."""
        token = self.lexer.lex()
        while isinstance(token, CommentToken):
            token = self.lexer.lex()
        self._token = token

    def _is_keyword(self, keyword: Keyword) -> bool:
        return isinstance(self._token, KeywordToken) and self._token.keyword is keyword

    def _is_bracket(self, bracket: Bracket) -> bool:
        return isinstance(self._token, BracketToken) and self._token.bracket is bracket

    def _expect_keyword(self, keyword: Keyword) -> None:
        """Consume the given keyword or fail naming it."""
        if not self._is_keyword(keyword):
            raise self._error(f"'{keyword.value.lower()}'")
        self._advance()

    def _expect_bracket(self, bracket: Bracket, context: str) -> None:
        """Consume the given bracket or fail naming it."""
        if not self._is_bracket(bracket):
            symbol = "(" if bracket is Bracket.ROUND_START else ")"
            raise self._error(f"'{symbol}' in {context}")
        self._advance()

    def _expect_identifier(self, context: str) -> str:
        """Consume an identifier and return its name."""
        token = self._token
        if not isinstance(token, IdentifierToken):
            raise self._error(f"identifier in {context}")
        self._advance()
        return token.name

    def _error(self, expected: str) -> UnexpectedTokenError:
        """Build an error for the current token, with its source line."""
        return UnexpectedTokenError(
            expected, self._token, self._token.location, self.lexer.current_line()
        )

    def _current_precedence(self) -> int:
        """Precedence of the current token, or -1 if it is no operator."""
        if isinstance(self._token, OperatorToken):
            return PRECEDENCE[self._token.operator]
        return -1

    # =========================================================================
    # Top-Level Parsing
    # =========================================================================

    def _parse_declaration(self) -> Declaration:
        """Parse 'dec' prototype."""
        location = self._token.location
        self._expect_keyword(Keyword.DEC)
        prototype = self._parse_prototype()
        return Declaration(prototype, location=location)

    def _parse_definition(self) -> Definition:
        """Parse 'def' prototype expression."""
        location = self._token.location
        self._expect_keyword(Keyword.DEF)
        prototype = self._parse_prototype()
        body = self._parse_expression()
        return Definition(prototype, body, location=location)

    def _parse_prototype(self) -> Prototype:
        """
        Parse a function prototype.

        A parameter name can never start with '(', so any bracket right
        after the opening one means the list is empty. Call arguments need
        a stricter test (see _parse_call).
        """
        location = self._token.location
        name = self._expect_identifier("function prototype")
        self._expect_bracket(Bracket.ROUND_START, "function prototype")

        parameter_names = []

        if not isinstance(self._token, BracketToken):
            while True:
                parameter_names.append(self._expect_identifier("function prototype"))

                if isinstance(self._token, BracketToken):
                    break

                if not isinstance(self._token, ParameterSeparatorToken):
                    raise self._error("')' or ',' in function prototype")
                self._advance()

        self._expect_bracket(Bracket.ROUND_END, "function prototype")

        return Prototype(name, parameter_names, location=location)

    # =========================================================================
    # Expression Parsing
    # =========================================================================

    def _parse_expression(self) -> Expression:
        """Parse a primary followed by any binary operator chain."""
        lhs = self._parse_primary()
        return self._parse_binary_rhs(0, lhs)

    def _parse_binary_rhs(self, min_precedence: int, lhs: Expression) -> Expression:
        """
        Extend lhs with operators binding at least min_precedence.

        Args:
            min_precedence: Weakest operator precedence to absorb
            lhs: The expression parsed so far
        """
        while True:
            precedence = self._current_precedence()
            if precedence < min_precedence:
                return lhs

            operator = self._token.operator
            self._advance()

            rhs = self._parse_primary()

            # A tighter operator after rhs takes rhs as its left operand
            if precedence < self._current_precedence():
                rhs = self._parse_binary_rhs(precedence + 1, rhs)

            lhs = BinaryOp(lhs, operator, rhs, location=lhs.location)

    def _parse_primary(self) -> Expression:
        """Parse a number, parenthesized expression, identifier or if."""
        token = self._token

        if isinstance(token, NumberToken):
            self._advance()
            return Literal(token.value, location=token.location)

        if self._is_bracket(Bracket.ROUND_START):
            self._advance()
            expr = self._parse_expression()
            self._expect_bracket(Bracket.ROUND_END, "parenthesized expression")
            return expr

        if isinstance(token, IdentifierToken):
            return self._parse_identifier()

        if self._is_keyword(Keyword.IF):
            return self._parse_conditional()

        raise self._error("primary expression")

    def _parse_identifier(self) -> Expression:
        """Parse a parameter reference or, if '(' follows, a call."""
        token = self._token
        self._advance()

        if not self._is_bracket(Bracket.ROUND_START):
            return Parameter(token.name, location=token.location)

        self._advance()
        return self._parse_call(token)

    def _parse_call(self, name_token: IdentifierToken) -> Call:
        """
        Parse call arguments after the opening bracket.

        Only a closing bracket means an empty list: the first argument may
        itself start with '(' as in f((1 + 2), 3).
        """
        args = []

        if not self._is_bracket(Bracket.ROUND_END):
            while True:
                args.append(self._parse_expression())

                if self._is_bracket(Bracket.ROUND_END):
                    break

                if not isinstance(self._token, ParameterSeparatorToken):
                    raise self._error("')' or ',' in argument list")
                self._advance()

        self._advance()  # consume )

        return Call(name_token.name, args, location=name_token.location)

    def _parse_conditional(self) -> Conditional:
        """Parse 'if' condition 'then' expression 'else' expression."""
        location = self._token.location
        self._expect_keyword(Keyword.IF)
        condition = self._parse_expression()
        self._expect_keyword(Keyword.THEN)
        then = self._parse_expression()
        self._expect_keyword(Keyword.ELSE)
        otherwise = self._parse_expression()
        return Conditional(condition, then, otherwise, location=location)


# =============================================================================
# Convenience Functions
# =============================================================================

def parse_source(source: str, filename: str = "<input>") -> list[TopLevelElement]:
    """
    Parse Kaleidoscope source code into top-level elements.

    Args:
        source: The source code
        filename: Source filename for error messages

    Returns:
        Declarations and definitions in file order

    Raises:
        KaleidoscopeError: If lexing or parsing fails
    """
    return Parser(Lexer.from_string(source, filename)).parse()
