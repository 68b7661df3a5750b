"""
Kaleidoscope Lexer (Tokenizer)
==============================

This module implements the lexer for the Kaleidoscope language. It reads
characters from a text stream one at a time and turns them into tokens on
demand: each call to Lexer.lex() returns exactly one token.

Token Variants
--------------
The token set is closed. Every variant is its own immutable class carrying
only the payload relevant to it, so a keyword token simply has no "name"
attribute to access by mistake.

| Variant                  | Payload              | Dump form              |
|--------------------------|----------------------|------------------------|
| EndOfFileToken           | -                    | EndOfFile              |
| KeywordToken             | keyword: Keyword     | Keyword(Def)           |
| BracketToken             | bracket: Bracket     | Bracket(RoundStart)    |
| IdentifierToken          | name: str            | Identifier("avg")      |
| NumberToken              | value: float         | Number(3.142)          |
| OperatorToken            | operator: Operator   | Operator(Add)          |
| ParameterSeparatorToken  | -                    | ParameterSeparator     |
| CommentToken             | text: str            | Comment(" note")       |

Lexical Rules
-------------
- Identifiers start with a letter or '_' and continue with letters, digits
  or '_'. The words dec, def, if, then and else are keywords.
- Numbers are a maximal run of digits and '.', parsed as a float.
- Operators: + - * / < <= > >= ==  (a lone '=' is an error)
- ',' separates parameters and arguments.
- '#' starts a comment that runs to the end of the line; the terminating
  newline belongs to the comment.

Example Usage
-------------
>>> from kaleidoscope.lexer import Lexer
>>> lexer = Lexer.from_string("def avg(a, b) (a + b) / 2")
>>> for token in lexer.tokenize():
...     print(token)
Keyword(Def)
Identifier("avg")
Bracket(RoundStart)
Identifier("a")
ParameterSeparator
Identifier("b")
Bracket(RoundEnd)
Bracket(RoundStart)
Identifier("a")
Operator(Add)
Identifier("b")
Bracket(RoundEnd)
Operator(Divide)
Number(2)
EndOfFile
"""

import io
import logging
import string
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional, TextIO

from kaleidoscope.errors import (
    SourceLocation,
    InvalidCharacterError,
    MalformedNumberError,
    InvalidOperatorError,
    InvalidStateError,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Token Payload Enumerations
# =============================================================================

class Keyword(Enum):
    """The reserved words of the language."""
    DEC = "Dec"
    DEF = "Def"
    IF = "If"
    THEN = "Then"
    ELSE = "Else"


class Bracket(Enum):
    """The only brackets the language knows: round ones."""
    ROUND_START = "RoundStart"     # (
    ROUND_END = "RoundEnd"         # )


class Operator(Enum):
    """Binary operators. Every operator works on and yields a float."""
    ADD = "Add"                                 # +
    SUBTRACT = "Subtract"                       # -
    MULTIPLY = "Multiply"                       # *
    DIVIDE = "Divide"                           # /
    EQUAL = "Equal"                             # ==
    LOWER_THAN = "LowerThan"                    # <
    LOWER_THAN_EQUAL = "LowerThanEqual"         # <=
    GREATER_THAN = "GreaterThan"                # >
    GREATER_THAN_EQUAL = "GreaterThanEqual"     # >=


# Map keyword strings to their Keyword
KEYWORDS: dict[str, Keyword] = {
    "dec": Keyword.DEC,
    "def": Keyword.DEF,
    "if": Keyword.IF,
    "then": Keyword.THEN,
    "else": Keyword.ELSE,
}

# Operators that are complete after a single character
SINGLE_CHAR_OPERATORS: dict[str, Operator] = {
    "+": Operator.ADD,
    "-": Operator.SUBTRACT,
    "*": Operator.MULTIPLY,
    "/": Operator.DIVIDE,
}


def format_number(value: float) -> str:
    """
    Render a float the way both diagnostic dumps show it.

    Integral values print without a fractional part (1, 42), everything
    else uses the shortest representation that round-trips (3.142).
    """
    if value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return repr(value)


# =============================================================================
# Token Variants
# =============================================================================

class Token:
    """
    Base class of the closed set of token variants.

    Every variant is a frozen dataclass. The source location is carried
    along for error reporting but does not take part in equality, so
    IdentifierToken("avg") compares equal to any lexed 'avg'.
    """

    location: Optional[SourceLocation]


@dataclass(frozen=True)
class EndOfFileToken(Token):
    """End of input. Produced exactly once per stream."""
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return "EndOfFile"


@dataclass(frozen=True)
class KeywordToken(Token):
    keyword: Keyword
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"Keyword({self.keyword.value})"


@dataclass(frozen=True)
class BracketToken(Token):
    bracket: Bracket
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"Bracket({self.bracket.value})"


@dataclass(frozen=True)
class IdentifierToken(Token):
    name: str
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f'Identifier("{self.name}")'


@dataclass(frozen=True)
class NumberToken(Token):
    value: float
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"Number({format_number(self.value)})"


@dataclass(frozen=True)
class OperatorToken(Token):
    operator: Operator
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"Operator({self.operator.value})"


@dataclass(frozen=True)
class ParameterSeparatorToken(Token):
    """The comma between parameters or arguments."""
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return "ParameterSeparator"


@dataclass(frozen=True)
class CommentToken(Token):
    """A '#' comment. The text excludes the '#' and the line break."""
    text: str
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f'Comment("{self.text}")'


# =============================================================================
# Lexer Implementation
# =============================================================================

class Lexer:
    """
    Pull-based tokenizer over a text stream.

    The lexer holds exactly one character of lookahead, or None once the
    stream is exhausted, and only ever moves forward. It does not own the
    stream: whoever opened it closes it.

    Usage:
        with open("avg.kal") as reader:
            lexer = Lexer(reader, "avg.kal")
            tokens = list(lexer.tokenize())

    Attributes:
        filename: Name of the source (for error reporting)
    """

    # Characters that can start an identifier
    IDENT_START = string.ascii_letters + "_"

    # Characters that can continue an identifier
    IDENT_CHARS = string.ascii_letters + string.digits + "_"

    # Characters that make up a number run
    NUMBER_CHARS = string.digits + "."

    def __init__(self, reader: TextIO, filename: str = "<input>"):
        """
        Initialize the lexer and load the first lookahead character.

        Args:
            reader: Text stream to read from (file, StringIO, stdin, ...)
            filename: Name of the source (for error messages)
        """
        self._reader = reader
        self.filename = filename

        # Lookahead character and its position
        self._char: Optional[str] = None
        self._line = 1
        self._column = 1

        # Characters of the current line read so far (error context)
        self._line_chars: list[str] = []

        # Set once EndOfFile has been handed out
        self._finished = False

        self._eat_char()

    @classmethod
    def from_string(cls, source: str, filename: str = "<input>") -> "Lexer":
        """Create a lexer over an in-memory string."""
        return cls(io.StringIO(source), filename)

    def lex(self) -> Token:
        """
        Return the next token of the input.

        Returns:
            The next token; EndOfFileToken once the input is exhausted

        Raises:
            LexError: If the input contains an invalid character sequence
            InvalidStateError: If called again after EndOfFileToken
        """
        if self._finished:
            raise InvalidStateError(self._location())

        self._skip_whitespace()

        start = self._location()
        char = self._char

        if char is None:
            self._finished = True
            token = EndOfFileToken(location=start)
        elif char in self.IDENT_START:
            token = self._lex_word(start)
        elif char in self.NUMBER_CHARS:
            token = self._lex_number(start)
        elif char == "(":
            self._eat_char()
            token = BracketToken(Bracket.ROUND_START, location=start)
        elif char == ")":
            self._eat_char()
            token = BracketToken(Bracket.ROUND_END, location=start)
        elif char == ",":
            self._eat_char()
            token = ParameterSeparatorToken(location=start)
        elif char == "#":
            token = self._lex_comment(start)
        elif char in SINGLE_CHAR_OPERATORS or char in "<>=":
            token = self._lex_operator(start)
        else:
            raise InvalidCharacterError(char, start, self.current_line())

        logger.debug(f"{start}: {token}")
        return token

    def tokenize(self) -> Iterator[Token]:
        """
        Generate tokens until, and including, the EndOfFileToken.

        Yields:
            Token objects in source order

        Raises:
            LexError: If invalid input is encountered
        """
        while True:
            token = self.lex()
            yield token
            if isinstance(token, EndOfFileToken):
                return

    # =========================================================================
    # Character Access Methods
    # =========================================================================

    def _eat_char(self) -> None:
        """Consume the lookahead character and load the next one."""
        if self._char == "\n":
            self._line += 1
            self._column = 1
            self._line_chars = []
        elif self._char is not None:
            self._column += 1

        char = self._reader.read(1)
        self._char = char if char else None

        if self._char is not None and self._char != "\n":
            self._line_chars.append(self._char)

    def _location(self) -> SourceLocation:
        """Location of the lookahead character."""
        return SourceLocation(self.filename, self._line, self._column)

    def current_line(self) -> str:
        """
        Text of the line holding the lookahead character, for error context.

        Reads the rest of the line from the stream, so it is only used on
        the error path, after which lexing does not continue.
        """
        if self._char is None or self._char == "\n":
            rest = ""
        else:
            rest = self._reader.readline()
        return ("".join(self._line_chars) + rest).rstrip("\r\n")

    def _skip_whitespace(self) -> None:
        while self._char is not None and self._char.isspace():
            self._eat_char()

    # =========================================================================
    # Token Scanning
    # =========================================================================

    def _lex_word(self, start: SourceLocation) -> Token:
        """Scan an identifier or keyword."""
        chars = []
        while self._char is not None and self._char in self.IDENT_CHARS:
            chars.append(self._char)
            self._eat_char()

        word = "".join(chars)

        if word in KEYWORDS:
            return KeywordToken(KEYWORDS[word], location=start)

        return IdentifierToken(word, location=start)

    def _lex_number(self, start: SourceLocation) -> Token:
        """
        Scan a number: a maximal run of digits and dots.

        A run that runs straight into a letter (e.g. '1e5', '2x') is
        rejected at the letter.
        """
        chars = []
        while self._char is not None and self._char in self.NUMBER_CHARS:
            chars.append(self._char)
            self._eat_char()

        text = "".join(chars)

        if self._char is not None and self._char in self.IDENT_START:
            raise InvalidCharacterError(self._char, self._location(), self.current_line())

        try:
            value = float(text)
        except ValueError:
            raise MalformedNumberError(text, start, self.current_line()) from None

        return NumberToken(value, location=start)

    def _lex_operator(self, start: SourceLocation) -> Token:
        """Scan an operator, using one extra character of lookahead."""
        char = self._char
        self._eat_char()

        if char in SINGLE_CHAR_OPERATORS:
            return OperatorToken(SINGLE_CHAR_OPERATORS[char], location=start)

        if char == "<":
            if self._char == "=":
                self._eat_char()
                return OperatorToken(Operator.LOWER_THAN_EQUAL, location=start)
            return OperatorToken(Operator.LOWER_THAN, location=start)

        if char == ">":
            if self._char == "=":
                self._eat_char()
                return OperatorToken(Operator.GREATER_THAN_EQUAL, location=start)
            return OperatorToken(Operator.GREATER_THAN, location=start)

        # '=' is only valid as the first half of '=='
        if self._char != "=":
            raise InvalidOperatorError(char, start, self.current_line())
        self._eat_char()
        return OperatorToken(Operator.EQUAL, location=start)

    def _lex_comment(self, start: SourceLocation) -> Token:
        """Scan a comment through the end of the line, newline included."""
        self._eat_char()  # consume #

        chars = []
        while self._char is not None and self._char != "\n":
            chars.append(self._char)
            self._eat_char()

        if self._char == "\n":
            self._eat_char()

        return CommentToken("".join(chars).rstrip("\r"), location=start)
