#!/usr/bin/env python3.14
# SPDX-License-Identifier: Apache-2.0

"""
TxScript lexer – converts source text into a list of tokens.
Handles line continuation inside brackets, nested comments, escapes and time
literals. Malformed input never raises: it produces ERROR tokens and LEX
diagnostics, and scanning carries on.
"""

from enum import IntEnum, auto
from typing import List, Optional, Tuple

from txscript.errors import ErrorPhase, ScriptError

DIGITS = "0123456789"
HEX_DIGITS = DIGITS + "abcdefABCDEF"


class TokenType(IntEnum):
    """All token kinds produced by the lexer."""

    # Literals
    NUMBER = auto()
    HEX_NUMBER = auto()
    FLOAT_NUMBER = auto()
    STRING = auto()

    # Identifiers and keywords
    IDENTIFIER = auto()
    VAR = auto()
    SEND = auto()
    DELAY = auto()
    REPEAT = auto()
    LOOP = auto()
    IF = auto()
    ELSE = auto()
    WAIT_FOR = auto()
    RANDOM = auto()
    RANDOM_BYTES = auto()
    FUNCTION = auto()
    RETURN = auto()
    ON_RECEIVE = auto()
    ON_INTERVAL = auto()
    BREAK = auto()
    CONTINUE = auto()
    PRINT = auto()
    EXT = auto()
    TIMEOUT = auto()
    DATA = auto()
    TRUE = auto()
    FALSE = auto()

    # Operators
    PLUS = auto()
    MINUS = auto()
    STAR = auto()
    SLASH = auto()
    PERCENT = auto()
    AMPERSAND = auto()
    PIPE = auto()
    CARET = auto()
    TILDE = auto()
    SHL = auto()
    SHR = auto()
    EQ = auto()
    NE = auto()
    LT = auto()
    LE = auto()
    GT = auto()
    GE = auto()
    AND = auto()
    OR = auto()
    NOT = auto()
    ASSIGN = auto()
    QUESTION = auto()

    # Delimiters
    LPAREN = auto()
    RPAREN = auto()
    LBRACE = auto()
    RBRACE = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    COMMA = auto()
    COLON = auto()
    DOT = auto()
    SEMICOLON = auto()

    # Special
    NEWLINE = auto()
    ERROR = auto()
    EOF = auto()


class Token:
    """A single token with source location."""

    __slots__ = ("type", "text", "line", "column", "value")

    def __init__(
        self,
        type: TokenType,
        text: str,
        line: int,
        column: int,
        value: Optional[str] = None,
    ):
        self.type = type
        self.text = text  # source lexeme
        self.line = line  # 1-based line number
        self.column = column  # 1-based column of the first character
        self.value = value if value is not None else text  # decoded payload

    def __repr__(self):
        return f"Token({self.type.name}, {self.text!r}, {self.line}:{self.column})"


class Lexer:
    """TxScript lexer. tokenize() returns the token list and LEX errors."""

    KEYWORDS = {
        "var": TokenType.VAR,
        "send": TokenType.SEND,
        "delay": TokenType.DELAY,
        "repeat": TokenType.REPEAT,
        "loop": TokenType.LOOP,
        "if": TokenType.IF,
        "else": TokenType.ELSE,
        "wait_for": TokenType.WAIT_FOR,
        "random": TokenType.RANDOM,
        "random_bytes": TokenType.RANDOM_BYTES,
        "function": TokenType.FUNCTION,
        "return": TokenType.RETURN,
        "on_receive": TokenType.ON_RECEIVE,
        "on_interval": TokenType.ON_INTERVAL,
        "break": TokenType.BREAK,
        "continue": TokenType.CONTINUE,
        "print": TokenType.PRINT,
        "ext": TokenType.EXT,
        "timeout": TokenType.TIMEOUT,
        "data": TokenType.DATA,
        "true": TokenType.TRUE,
        "false": TokenType.FALSE,
    }

    # Longest first for maximal munch
    OPERATORS = [
        ("<<", TokenType.SHL),
        (">>", TokenType.SHR),
        ("==", TokenType.EQ),
        ("!=", TokenType.NE),
        ("<=", TokenType.LE),
        (">=", TokenType.GE),
        ("&&", TokenType.AND),
        ("||", TokenType.OR),
        ("+", TokenType.PLUS),
        ("-", TokenType.MINUS),
        ("*", TokenType.STAR),
        ("/", TokenType.SLASH),
        ("%", TokenType.PERCENT),
        ("&", TokenType.AMPERSAND),
        ("|", TokenType.PIPE),
        ("^", TokenType.CARET),
        ("~", TokenType.TILDE),
        ("<", TokenType.LT),
        (">", TokenType.GT),
        ("!", TokenType.NOT),
        ("=", TokenType.ASSIGN),
        ("?", TokenType.QUESTION),
    ]

    DELIMITERS = {
        "(": TokenType.LPAREN,
        ")": TokenType.RPAREN,
        "{": TokenType.LBRACE,
        "}": TokenType.RBRACE,
        "[": TokenType.LBRACKET,
        "]": TokenType.RBRACKET,
        ",": TokenType.COMMA,
        ":": TokenType.COLON,
        ".": TokenType.DOT,
        ";": TokenType.SEMICOLON,
    }

    ESCAPES = {"n": "\n", "t": "\t", '"': '"', "\\": "\\"}

    # Whitespace (skipped except newline)
    WHITESPACE = {" ", "\t", "\r"}

    def __init__(self, source: str):
        self.source = source
        self.pos = 0  # current character index
        self.line = 1  # current line (1-based)
        self.column = 1  # current column (1-based)
        self.len = len(source)

        self.tokens: List[Token] = []
        self.errors: List[ScriptError] = []

        # Open '(' / '[' brackets; newlines inside them are continuations
        self._bracket_depth = 0

    def _current(self) -> Optional[str]:
        """Return the current character or None if at EOF."""
        if self.pos >= self.len:
            return None
        return self.source[self.pos]

    def _peek(self, offset: int = 1) -> Optional[str]:
        """Look ahead without advancing."""
        peek_pos = self.pos + offset
        if peek_pos >= self.len:
            return None
        return self.source[peek_pos]

    def _advance(self, n: int = 1) -> None:
        """Advance the position by n characters, updating line/column."""
        for _ in range(n):
            if self.pos >= self.len:
                return
            ch = self.source[self.pos]
            self.pos += 1
            if ch == "\n":
                self.line += 1
                self.column = 1
            else:
                self.column += 1

    @staticmethod
    def _is_digit(ch: Optional[str]) -> bool:
        # ASCII only
        return ch is not None and ch in DIGITS

    @staticmethod
    def _is_hex_digit(ch: Optional[str]) -> bool:
        return ch is not None and ch in HEX_DIGITS

    @staticmethod
    def _is_word_char(ch: Optional[str]) -> bool:
        return ch is not None and (ch.isalnum() or ch == "_")

    def _add(self, type: TokenType, start_pos: int, line: int, column: int, value=None):
        token = Token(type, self.source[start_pos : self.pos], line, column, value)
        self.tokens.append(token)
        return token

    def _error(self, message: str, start_pos: int, line: int, column: int) -> None:
        """Record a LEX diagnostic and an ERROR token covering start_pos..pos."""
        self.errors.append(ScriptError(line, column, message, ErrorPhase.LEX))
        self._add(TokenType.ERROR, start_pos, line, column)

    def _skip_whitespace(self) -> None:
        """Skip over spaces, tabs, carriage returns, but not newlines."""
        while (ch := self._current()) is not None and ch in self.WHITESPACE:
            self._advance()

    def _skip_line_comment(self) -> None:
        """Skip from // to the end of the line."""
        self._advance(2)  # skip the '//'
        while (ch := self._current()) is not None and ch != "\n":
            self._advance()
        # The newline itself is handled by the main loop

    def _skip_block_comment(self) -> None:
        """Skip a nested block comment /* ... */."""
        start_pos, line, column = self.pos, self.line, self.column
        self._advance(2)  # skip '/*'
        depth = 1
        while depth > 0:
            ch = self._current()
            if ch is None:
                self._error("Unterminated block comment", start_pos, line, column)
                return
            if ch == "/" and self._peek() == "*":
                self._advance(2)
                depth += 1
            elif ch == "*" and self._peek() == "/":
                self._advance(2)
                depth -= 1
            else:
                self._advance()

    def _read_number(self) -> None:
        """Read a hex, float or decimal literal (with optional 's' time suffix)."""
        start_pos, line, column = self.pos, self.line, self.column

        if self._current() == "0" and self._peek() in ("x", "X"):
            self._advance(2)
            if not self._is_hex_digit(self._current()):
                self._error(
                    "Hex literal requires at least one hex digit", start_pos, line, column
                )
                return
            while self._is_hex_digit(self._current()):
                self._advance()
            self._add(TokenType.HEX_NUMBER, start_pos, line, column)
            return

        while self._is_digit(self._current()):
            self._advance()

        nxt = self._peek()
        if self._current() == "." and self._is_digit(nxt):
            self._advance()  # consume '.'
            while self._is_digit(self._current()):
                self._advance()
            self._add(TokenType.FLOAT_NUMBER, start_pos, line, column)
            return

        # Time suffix: 500s (but not 500sec or 500s1)
        if self._current() == "s" and not self._is_word_char(self._peek()):
            self._advance()

        self._add(TokenType.NUMBER, start_pos, line, column)

    def _read_string(self) -> None:
        """Read a single-line string literal with \\n \\t \\" \\\\ escapes."""
        start_pos, line, column = self.pos, self.line, self.column
        self._advance()  # skip opening quote

        content = []
        while True:
            ch = self._current()
            if ch is None or ch == "\n":
                # Resume at the newline (or EOF) so the next line still lexes
                self._error("Unterminated string", start_pos, line, column)
                return
            if ch == '"':
                self._advance()  # skip closing quote
                break
            if ch == "\\":
                esc_line, esc_column = self.line, self.column
                esc = self._peek()
                if esc is None or esc == "\n":
                    self._advance()
                    continue
                self._advance(2)
                if esc in self.ESCAPES:
                    content.append(self.ESCAPES[esc])
                else:
                    self.errors.append(
                        ScriptError(
                            esc_line,
                            esc_column,
                            f"Unknown escape sequence '\\{esc}'",
                            ErrorPhase.LEX,
                        )
                    )
                    content.append(esc)
                continue
            content.append(ch)
            self._advance()

        self._add(TokenType.STRING, start_pos, line, column, value="".join(content))

    def _read_identifier_or_keyword(self) -> None:
        """Read an identifier (or keyword if it matches)."""
        start_pos, line, column = self.pos, self.line, self.column
        while self._is_word_char(self._current()):
            self._advance()
        text = self.source[start_pos : self.pos]
        self._add(self.KEYWORDS.get(text, TokenType.IDENTIFIER), start_pos, line, column)

    def _read_operator(self) -> bool:
        """Read an operator (multi-character if possible)."""
        start_pos, line, column = self.pos, self.line, self.column
        for op, type in self.OPERATORS:
            if self.source.startswith(op, self.pos):
                self._advance(len(op))
                self._add(type, start_pos, line, column)
                return True
        return False

    def _read_delimiter(self) -> bool:
        """Read a single-character delimiter."""
        ch = self._current()
        type = self.DELIMITERS.get(ch)
        if type is None:
            return False
        start_pos, line, column = self.pos, self.line, self.column
        self._advance()
        self._add(type, start_pos, line, column)
        if type in (TokenType.LPAREN, TokenType.LBRACKET):
            self._bracket_depth += 1
        elif type in (TokenType.RPAREN, TokenType.RBRACKET) and self._bracket_depth:
            self._bracket_depth -= 1
        elif type in (TokenType.LBRACE, TokenType.RBRACE):
            # Block boundaries start a fresh statement context
            self._bracket_depth = 0
        return True

    def tokenize(self) -> Tuple[List[Token], List[ScriptError]]:
        """Main lexer entry point: scan the whole source."""
        self.tokens = []
        self.errors = []
        while True:
            self._skip_whitespace()

            ch = self._current()
            if ch is None:
                break

            if ch == "\n":
                start_pos, line, column = self.pos, self.line, self.column
                self._advance()
                if self._bracket_depth == 0:
                    self._add(TokenType.NEWLINE, start_pos, line, column)
                continue

            if ch == "/":
                next_ch = self._peek()
                if next_ch == "/":
                    self._skip_line_comment()
                    continue
                if next_ch == "*":
                    self._skip_block_comment()
                    continue

            if self._is_digit(ch):
                self._read_number()
                continue

            if ch == '"':
                self._read_string()
                continue

            if ch.isalpha() or ch == "_":
                self._read_identifier_or_keyword()
                continue

            if self._read_delimiter() or self._read_operator():
                continue

            start_pos, line, column = self.pos, self.line, self.column
            self._advance()
            self._error(f"Unexpected character '{ch}'", start_pos, line, column)

        self.tokens.append(Token(TokenType.EOF, "", self.line, self.column))
        return self.tokens, self.errors


def tokenize(source: str) -> Tuple[List[Token], List[ScriptError]]:
    """Tokenize source, returning (tokens, errors). The last token is EOF."""
    return Lexer(source).tokenize()
