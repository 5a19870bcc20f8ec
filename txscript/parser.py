#!/usr/bin/env python3.14
# SPDX-License-Identifier: Apache-2.0

"""
TxScript parser – recursive descent parser that consumes tokens from the lexer
and produces a Program with source locations.

Syntax errors do not stop the pass: each one is recorded and the parser
resynchronises at the next statement boundary, so every problem in a script
is reported together.
"""

from typing import List, Optional, Tuple

from txscript.errors import ErrorPhase, ScriptError
from txscript.lexer import Token, TokenType, tokenize
from txscript.script_ast import (
    Assign,
    Binary,
    BoolLiteral,
    BreakStmt,
    BytesLiteral,
    Call,
    ContinueStmt,
    DelayStmt,
    ExprStmt,
    FloatLiteral,
    FunctionDecl,
    Identifier,
    IfStmt,
    Index,
    IntLiteral,
    LoopStmt,
    Member,
    Node,
    OnInterval,
    OnReceive,
    PrintStmt,
    Program,
    RandomBytesCall,
    RandomCall,
    RepeatStmt,
    ReturnStmt,
    SendStmt,
    StringLiteral,
    Ternary,
    Unary,
    VarDecl,
    WaitForStmt,
    Wildcard,
)


class ParseError(Exception):
    """Raised when the parser encounters a syntax error."""

    def __init__(self, message: str, token: Token):
        self.message = message
        self.token = token
        super().__init__(self._format())

    @property
    def reported_by_lexer(self) -> bool:
        return self.token.type == TokenType.ERROR

    def _format(self) -> str:
        near = self.token.text or self.token.type.name
        return f"{self.token.line}:{self.token.column}: error: {self.message} near '{near}'"

    def to_script_error(self) -> ScriptError:
        return ScriptError(
            self.token.line, self.token.column, self.message, ErrorPhase.PARSE
        )


class Parser:
    """Recursive descent parser for TxScript."""

    # Precedence levels for binary operators (higher = tighter)
    PRECEDENCE = {
        TokenType.OR: 1,
        TokenType.AND: 2,
        TokenType.PIPE: 3,
        TokenType.CARET: 4,
        TokenType.AMPERSAND: 5,
        TokenType.EQ: 6,
        TokenType.NE: 6,
        TokenType.LT: 7,
        TokenType.LE: 7,
        TokenType.GT: 7,
        TokenType.GE: 7,
        TokenType.SHL: 8,
        TokenType.SHR: 8,
        TokenType.PLUS: 9,
        TokenType.MINUS: 9,
        TokenType.STAR: 10,
        TokenType.SLASH: 10,
        TokenType.PERCENT: 10,
    }

    UNARY = {TokenType.NOT: "!", TokenType.MINUS: "-", TokenType.TILDE: "~"}

    # Keywords that may also name frame fields in expressions
    FIELD_KEYWORDS = (TokenType.DATA, TokenType.EXT, TokenType.TIMEOUT)

    STATEMENT_END = (TokenType.NEWLINE, TokenType.SEMICOLON)

    # Deepest nesting of expressions and blocks
    MAX_NESTING = 64

    def __init__(self, tokens: List[Token]):
        if not tokens or tokens[-1].type != TokenType.EOF:
            line = tokens[-1].line if tokens else 1
            tokens = list(tokens) + [Token(TokenType.EOF, "", line, 1)]
        self.tokens = tokens
        self.pos = 0
        self.current = self.tokens[0]
        self.errors: List[ScriptError] = []
        self._loop_depth = 0
        self._nesting = 0

    # ------------------------------------------------------------------
    # Token helpers
    # ------------------------------------------------------------------

    def _advance(self) -> Token:
        """Move to the next token and return the one consumed."""
        token = self.current
        if self.current.type != TokenType.EOF:
            self.pos += 1
            self.current = self.tokens[self.pos]
        return token

    def peek_token(self, offset: int = 0) -> Token:
        """Peek ahead without consuming."""
        idx = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[idx]

    def check(self, *types: TokenType) -> bool:
        return self.current.type in types

    def match(self, *types: TokenType) -> Optional[Token]:
        if self.current.type in types:
            return self._advance()
        return None

    def consume(self, expected_type: TokenType, message: str) -> Token:
        """Consume a token of the expected type or raise ParseError."""
        if self.current.type == expected_type:
            return self._advance()
        self._error(message)

    def _error(self, message: str, token: Optional[Token] = None) -> None:
        raise ParseError(message, token or self.current)

    def _record(self, error: ParseError) -> None:
        # Lexer ERROR tokens already carry a LEX diagnostic
        if not error.reported_by_lexer:
            self.errors.append(error.to_script_error())

    def _nest(self, what: str) -> None:
        self._nesting += 1
        if self._nesting > self.MAX_NESTING:
            self._nesting -= 1
            self._error(f"{what} nested too deeply")

    def _skip_newlines(self) -> None:
        """Consume all consecutive NEWLINE / ';' tokens."""
        while self.current.type in self.STATEMENT_END:
            self._advance()

    def _next_significant(self) -> Token:
        """First token after any newlines, without consuming."""
        offset = 0
        while self.peek_token(offset).type in self.STATEMENT_END:
            offset += 1
        return self.peek_token(offset)

    def _end_statement(self) -> None:
        """Statements end at a newline, ';', '}' or EOF.

        A following statement on the same line is tolerated, e.g.
        `{ break } x = x + 1`.
        """
        self.match(*self.STATEMENT_END)

    def _synchronize(self) -> None:
        """Skip to the next statement boundary: newline, ';' (consumed) or '}' (kept).

        Blocks opened while skipping are skipped whole.
        """
        depth = 0
        while not self.check(TokenType.EOF):
            if depth == 0 and self.match(*self.STATEMENT_END):
                return
            if self.check(TokenType.RBRACE):
                if depth == 0:
                    return
                depth -= 1
            elif self.check(TokenType.LBRACE):
                depth += 1
            self._advance()

    # ------------------------------------------------------------------
    # Program
    # ------------------------------------------------------------------

    def parse_program(self) -> Program:
        """Parse a whole TxScript program."""
        program = Program(total_lines=self.tokens[-1].line)
        self._skip_newlines()
        while not self.check(TokenType.EOF):
            try:
                if self.check(TokenType.RBRACE):
                    self._error("Unmatched '}'")
                item = self.parse_top_level()
                self._collect(program, item)
            except ParseError as e:
                self._record(e)
                if self.check(TokenType.RBRACE):
                    self._advance()
                self._synchronize()
            self._skip_newlines()
        return program

    def _collect(self, program: Program, item: Node) -> None:
        if isinstance(item, FunctionDecl):
            if item.name in program.functions:
                self.errors.append(
                    ScriptError(
                        item.line,
                        item.col,
                        f"Function '{item.name}' already defined",
                        ErrorPhase.PARSE,
                    )
                )
                return
            program.functions[item.name] = item
        elif isinstance(item, OnReceive):
            program.receive_handlers.append(item)
        elif isinstance(item, OnInterval):
            program.interval_handlers.append(item)
        else:
            program.statements.append(item)

    def parse_top_level(self) -> Node:
        if self.check(TokenType.FUNCTION):
            return self.parse_function()
        if self.check(TokenType.ON_RECEIVE):
            return self.parse_on_receive()
        if self.check(TokenType.ON_INTERVAL):
            return self.parse_on_interval()
        return self.parse_statement()

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def parse_statement(self) -> Node:
        """Parse a single statement."""
        tok = self.current
        t = tok.type
        if t == TokenType.VAR:
            return self.parse_var()
        if t == TokenType.SEND:
            return self.parse_send()
        if t == TokenType.DELAY:
            return self.parse_delay()
        if t == TokenType.REPEAT:
            return self.parse_repeat()
        if t == TokenType.LOOP:
            return self.parse_loop()
        if t == TokenType.IF:
            return self.parse_if()
        if t == TokenType.WAIT_FOR:
            return self.parse_wait_for()
        if t == TokenType.RETURN:
            return self.parse_return()
        if t in (TokenType.BREAK, TokenType.CONTINUE):
            return self.parse_loop_control()
        if t == TokenType.PRINT:
            return self.parse_print()
        if t in (TokenType.ON_RECEIVE, TokenType.ON_INTERVAL):
            self._error(f"'{tok.text}' is only allowed at top level")
        if t == TokenType.FUNCTION:
            self._error("Function declarations are only allowed at top level")
        if t == TokenType.ELSE:
            self._error("'else' without matching 'if'")
        if t == TokenType.IDENTIFIER and self.peek_token(1).type == TokenType.ASSIGN:
            return self.parse_assign()
        if t in (TokenType.RBRACE, TokenType.EOF):
            self._error(f"Unexpected token '{tok.text or t.name}'")
        expr = self.parse_expression()
        self._end_statement()
        return ExprStmt(expr, line=tok.line, col=tok.column)

    def parse_var(self) -> VarDecl:
        """Parse 'var name = expr'."""
        start = self._advance()  # 'var'
        name = self.consume(TokenType.IDENTIFIER, "Expected variable name").text
        self.consume(TokenType.ASSIGN, "Expected '=' after variable name")
        value = self.parse_expression()
        self._end_statement()
        return VarDecl(name, value, line=start.line, col=start.column)

    def parse_assign(self) -> Assign:
        """Parse 'name = expr'."""
        name_token = self._advance()
        self._advance()  # '='
        value = self.parse_expression()
        self._end_statement()
        return Assign(name_token.text, value, line=name_token.line, col=name_token.column)

    def parse_send(self) -> SendStmt:
        """Parse 'send(id, data[, ext])'."""
        start = self._advance()
        self.consume(TokenType.LPAREN, "Expected '(' after 'send'")
        can_id = self.parse_expression()
        self.consume(TokenType.COMMA, "Expected ',' after CAN ID")
        data = self.parse_expression()
        extended = None
        if self.match(TokenType.COMMA):
            ext = self.match(TokenType.EXT)
            if ext is not None and self.check(TokenType.RPAREN):
                extended = BoolLiteral(True, line=ext.line, col=ext.column)
            else:
                if ext is not None:
                    # 'ext' used as an expression (frame field), e.g. send(id, data, ext && x)
                    self.pos -= 1
                    self.current = self.tokens[self.pos]
                extended = self.parse_expression()
        self.consume(TokenType.RPAREN, "Expected ')' after send arguments")
        self._end_statement()
        return SendStmt(can_id, data, extended, line=start.line, col=start.column)

    def parse_delay(self) -> DelayStmt:
        start = self._advance()
        self.consume(TokenType.LPAREN, "Expected '(' after 'delay'")
        duration = self.parse_expression()
        self.consume(TokenType.RPAREN, "Expected ')' after delay duration")
        self._end_statement()
        return DelayStmt(duration, line=start.line, col=start.column)

    def parse_repeat(self) -> RepeatStmt:
        start = self._advance()
        self.consume(TokenType.LPAREN, "Expected '(' after 'repeat'")
        count = self.parse_expression()
        self.consume(TokenType.RPAREN, "Expected ')' after repeat count")
        body = self.parse_loop_body()
        return RepeatStmt(count, body, line=start.line, col=start.column)

    def parse_loop(self) -> LoopStmt:
        start = self._advance()
        body = self.parse_loop_body()
        return LoopStmt(body, line=start.line, col=start.column)

    def parse_loop_body(self) -> List[Node]:
        self._loop_depth += 1
        try:
            return self.parse_block()
        finally:
            self._loop_depth -= 1

    def parse_if(self) -> IfStmt:
        start = self._advance()
        self.consume(TokenType.LPAREN, "Expected '(' after 'if'")
        cond = self.parse_expression()
        self.consume(TokenType.RPAREN, "Expected ')' after condition")
        then_body = self.parse_block()
        else_body = None
        if self._next_significant().type == TokenType.ELSE:
            self._skip_newlines()
            self._advance()  # 'else'
            self._skip_newlines()
            if self.check(TokenType.IF):
                else_body = [self.parse_if()]
            else:
                else_body = self.parse_block()
        return IfStmt(cond, then_body, else_body, line=start.line, col=start.column)

    def parse_wait_for(self) -> WaitForStmt:
        """Parse 'wait_for(predicate) timeout(ms) [{ fallback }]'."""
        start = self._advance()
        self.consume(TokenType.LPAREN, "Expected '(' after 'wait_for'")
        predicate = self.parse_expression()
        self.consume(TokenType.RPAREN, "Expected ')' after wait_for predicate")
        self.consume(TokenType.TIMEOUT, "Expected 'timeout(ms)' after wait_for")
        self.consume(TokenType.LPAREN, "Expected '(' after 'timeout'")
        timeout = self.parse_expression()
        self.consume(TokenType.RPAREN, "Expected ')' after timeout")
        fallback = None
        if self._next_significant().type == TokenType.LBRACE:
            fallback = self.parse_block()
        else:
            self._end_statement()
        return WaitForStmt(predicate, timeout, fallback, line=start.line, col=start.column)

    def parse_function(self) -> FunctionDecl:
        start = self._advance()
        name = self.consume(TokenType.IDENTIFIER, "Expected function name").text
        self.consume(TokenType.LPAREN, "Expected '(' after function name")
        params: List[str] = []
        if not self.check(TokenType.RPAREN):
            while True:
                param = self.consume(TokenType.IDENTIFIER, "Expected parameter name")
                if param.text in params:
                    self._error(f"Duplicate parameter '{param.text}'", param)
                params.append(param.text)
                if not self.match(TokenType.COMMA):
                    break
        self.consume(TokenType.RPAREN, "Expected ')' after parameters")
        saved = self._loop_depth
        self._loop_depth = 0
        try:
            body = self.parse_block()
        finally:
            self._loop_depth = saved
        return FunctionDecl(name, params, body, line=start.line, col=start.column)

    def parse_on_receive(self) -> OnReceive:
        start = self._advance()
        self.consume(TokenType.LPAREN, "Expected '(' after 'on_receive'")
        predicate = self.parse_expression()
        self.consume(TokenType.RPAREN, "Expected ')' after on_receive predicate")
        body = self.parse_handler_body()
        return OnReceive(predicate, body, line=start.line, col=start.column)

    def parse_on_interval(self) -> OnInterval:
        start = self._advance()
        self.consume(TokenType.LPAREN, "Expected '(' after 'on_interval'")
        period = self.parse_expression()
        self.consume(TokenType.RPAREN, "Expected ')' after interval")
        body = self.parse_handler_body()
        return OnInterval(period, body, line=start.line, col=start.column)

    def parse_handler_body(self) -> List[Node]:
        saved = self._loop_depth
        self._loop_depth = 0
        try:
            return self.parse_block()
        finally:
            self._loop_depth = saved

    def parse_return(self) -> ReturnStmt:
        start = self._advance()
        value = None
        if not self.check(*self.STATEMENT_END, TokenType.RBRACE, TokenType.EOF):
            value = self.parse_expression()
        self._end_statement()
        return ReturnStmt(value, line=start.line, col=start.column)

    def parse_loop_control(self) -> Node:
        tok = self._advance()
        if self._loop_depth == 0:
            self._error(f"'{tok.text}' outside of loop", tok)
        self._end_statement()
        if tok.type == TokenType.BREAK:
            return BreakStmt(line=tok.line, col=tok.column)
        return ContinueStmt(line=tok.line, col=tok.column)

    def parse_print(self) -> PrintStmt:
        """Parse 'print(a, b)' or 'print a, b'."""
        start = self._advance()
        values: List[Node] = []
        if self.match(TokenType.LPAREN):
            if not self.check(TokenType.RPAREN):
                values = self.parse_arguments()
            self.consume(TokenType.RPAREN, "Expected ')' after print arguments")
        else:
            values = self.parse_arguments()
        self._end_statement()
        return PrintStmt(values, line=start.line, col=start.column)

    def parse_block(self) -> List[Node]:
        """Parse '{ statements }', recovering from errors inside the block."""
        self._skip_newlines()
        self._nest("Blocks")
        try:
            self.consume(TokenType.LBRACE, "Expected '{'")
            statements: List[Node] = []
            self._skip_newlines()
            while not self.check(TokenType.RBRACE, TokenType.EOF):
                try:
                    statements.append(self.parse_statement())
                except ParseError as e:
                    self._record(e)
                    self._synchronize()
                self._skip_newlines()
            self.consume(TokenType.RBRACE, "Expected '}'")
        finally:
            self._nesting -= 1
        return statements

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def parse_expression(self) -> Node:
        """Parse an expression (ternary is the lowest precedence)."""
        self._nest("Expression")
        try:
            cond = self.parse_binary(1)
            if self.check(TokenType.QUESTION):
                tok = self._advance()
                then_expr = self.parse_expression()
                self.consume(TokenType.COLON, "Expected ':' in conditional expression")
                else_expr = self.parse_expression()
                return Ternary(cond, then_expr, else_expr, line=tok.line, col=tok.column)
            return cond
        finally:
            self._nesting -= 1

    def parse_binary(self, min_prec: int) -> Node:
        """Parse binary expressions using precedence climbing."""
        lhs = self.parse_unary()
        while True:
            tok = self.current
            prec = self.PRECEDENCE.get(tok.type)
            if prec is None or prec < min_prec:
                break
            self._advance()  # consume operator
            rhs = self.parse_binary(prec + 1)
            lhs = Binary(tok.text, lhs, rhs, line=tok.line, col=tok.column)
        return lhs

    def parse_unary(self) -> Node:
        tok = self.current
        op = self.UNARY.get(tok.type)
        if op is not None:
            self._advance()
            self._nest("Expression")
            try:
                operand = self.parse_unary()
            finally:
                self._nesting -= 1
            return Unary(op, operand, line=tok.line, col=tok.column)
        return self.parse_postfix()

    def parse_postfix(self) -> Node:
        expr = self.parse_primary()
        while True:
            tok = self.current
            if tok.type == TokenType.LPAREN:
                self._advance()
                args = [] if self.check(TokenType.RPAREN) else self.parse_arguments()
                self.consume(TokenType.RPAREN, "Expected ')' after arguments")
                expr = Call(expr, args, line=expr.line, col=expr.col)
            elif tok.type == TokenType.LBRACKET:
                self._advance()
                index = self.parse_expression()
                self.consume(TokenType.RBRACKET, "Expected ']' after index")
                expr = Index(expr, index, line=tok.line, col=tok.column)
            elif tok.type == TokenType.DOT:
                self._advance()
                name = self.match(TokenType.IDENTIFIER, *self.FIELD_KEYWORDS)
                if name is None:
                    self._error("Expected member name after '.'")
                expr = Member(expr, name.text, line=tok.line, col=tok.column)
            else:
                return expr

    def parse_primary(self) -> Node:
        """Parse a literal, identifier, byte array, random call or grouped expression."""
        tok = self.current
        t = tok.type
        if t == TokenType.NUMBER:
            self._advance()
            if tok.text.endswith("s"):
                return IntLiteral(int(tok.text[:-1]) * 1000, tok.text, line=tok.line, col=tok.column)
            return IntLiteral(int(tok.text), tok.text, line=tok.line, col=tok.column)
        if t == TokenType.HEX_NUMBER:
            self._advance()
            return IntLiteral(int(tok.text[2:], 16), tok.text, line=tok.line, col=tok.column)
        if t == TokenType.FLOAT_NUMBER:
            self._advance()
            return FloatLiteral(float(tok.text), line=tok.line, col=tok.column)
        if t == TokenType.STRING:
            self._advance()
            return StringLiteral(tok.value, line=tok.line, col=tok.column)
        if t in (TokenType.TRUE, TokenType.FALSE):
            self._advance()
            return BoolLiteral(t == TokenType.TRUE, line=tok.line, col=tok.column)
        if t == TokenType.IDENTIFIER or t in (TokenType.DATA, TokenType.EXT):
            self._advance()
            return Identifier(tok.text, line=tok.line, col=tok.column)
        if t == TokenType.LBRACKET:
            self._advance()
            elements = [] if self.check(TokenType.RBRACKET) else self.parse_byte_elements()
            self.consume(TokenType.RBRACKET, "Expected ']' after byte array")
            return BytesLiteral(elements, line=tok.line, col=tok.column)
        if t == TokenType.LPAREN:
            self._advance()
            expr = self.parse_expression()
            self.consume(TokenType.RPAREN, "Expected ')' after expression")
            return expr
        if t == TokenType.RANDOM:
            self._advance()
            self.consume(TokenType.LPAREN, "Expected '(' after 'random'")
            low = self.parse_expression()
            self.consume(TokenType.COMMA, "Expected ',' between min and max")
            high = self.parse_expression()
            self.consume(TokenType.RPAREN, "Expected ')' after random arguments")
            return RandomCall(low, high, line=tok.line, col=tok.column)
        if t == TokenType.RANDOM_BYTES:
            self._advance()
            self.consume(TokenType.LPAREN, "Expected '(' after 'random_bytes'")
            length = self.parse_expression()
            self.consume(TokenType.RPAREN, "Expected ')' after random_bytes length")
            return RandomBytesCall(length, line=tok.line, col=tok.column)
        if t == TokenType.STAR:
            self._error("'*' is only allowed inside a byte array")
        self._error("Expected expression")

    def parse_byte_elements(self) -> List[Node]:
        """Parse byte array elements; '*' matches any byte."""
        elements: List[Node] = []
        while True:
            star = self.match(TokenType.STAR)
            if star is not None:
                elements.append(Wildcard(line=star.line, col=star.column))
            else:
                elements.append(self.parse_expression())
            if not self.match(TokenType.COMMA):
                return elements

    def parse_arguments(self) -> List[Node]:
        """Parse comma-separated expressions."""
        args = [self.parse_expression()]
        while self.match(TokenType.COMMA):
            args.append(self.parse_expression())
        return args


def parse(tokens: List[Token]) -> Tuple[Program, List[ScriptError]]:
    """Parse a token list, returning (program, PARSE errors)."""
    parser = Parser(tokens)
    program = parser.parse_program()
    return program, parser.errors


def load(source: str) -> Tuple[Program, List[ScriptError]]:
    """Lex and parse source, returning the program and all LEX/PARSE errors."""
    tokens, lex_errors = tokenize(source)
    program, parse_errors = parse(tokens)
    errors = sorted(lex_errors + parse_errors, key=lambda e: (e.line, e.column))
    return program, errors
