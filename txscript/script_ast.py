#!/usr/bin/env python3.14
# SPDX-License-Identifier: Apache-2.0

"""
Abstract Syntax Tree (AST) node definitions for TxScript.
All nodes store source location (line, col) for error reporting.
"""

from typing import Dict, List, Optional


class Node:
    """Base class for all AST nodes."""

    __slots__ = ("line", "col")

    def __init__(self, line: int = 0, col: int = 0):
        self.line = line
        self.col = col

    def __repr__(self):
        return f"{self.__class__.__name__}()"


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------


class IntLiteral(Node):
    """Integer literal: 42, 0x7DF, or a time literal such as 2s (stored in ms)."""

    __slots__ = ("value", "text")

    def __init__(self, value: int, text: str = "", line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.value = value
        self.text = text or str(value)

    def __repr__(self):
        return f"IntLiteral({self.value})"


class FloatLiteral(Node):
    __slots__ = ("value",)

    def __init__(self, value: float, line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.value = value

    def __repr__(self):
        return f"FloatLiteral({self.value})"


class StringLiteral(Node):
    __slots__ = ("value",)

    def __init__(self, value: str, line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.value = value

    def __repr__(self):
        return f"StringLiteral({self.value!r})"


class BoolLiteral(Node):
    __slots__ = ("value",)

    def __init__(self, value: bool, line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.value = value

    def __repr__(self):
        return f"BoolLiteral({self.value})"


class BytesLiteral(Node):
    """Byte array literal: [0x02, 0x01, 0x0C]."""

    __slots__ = ("elements",)

    def __init__(self, elements: List[Node], line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.elements = elements

    def __repr__(self):
        return f"BytesLiteral({self.elements!r})"


class Wildcard(Node):
    """'*' element of a byte array; the array becomes a data pattern."""

    __slots__ = ()

    def __repr__(self):
        return "Wildcard()"


class Identifier(Node):
    """Variable reference."""

    __slots__ = ("name",)

    def __init__(self, name: str, line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.name = name

    def __repr__(self):
        return f"Identifier({self.name!r})"


class Binary(Node):
    """Binary operation: left op right."""

    __slots__ = ("op", "left", "right")

    def __init__(self, op: str, left: Node, right: Node, line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.op = op
        self.left = left
        self.right = right

    def __repr__(self):
        return f"Binary({self.op!r}, {self.left!r}, {self.right!r})"


class Unary(Node):
    """Prefix operation: ! - ~."""

    __slots__ = ("op", "operand")

    def __init__(self, op: str, operand: Node, line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.op = op
        self.operand = operand

    def __repr__(self):
        return f"Unary({self.op!r}, {self.operand!r})"


class Ternary(Node):
    """Conditional expression: cond ? then : else."""

    __slots__ = ("cond", "then_expr", "else_expr")

    def __init__(
        self, cond: Node, then_expr: Node, else_expr: Node, line: int = 0, col: int = 0
    ):
        super().__init__(line, col)
        self.cond = cond
        self.then_expr = then_expr
        self.else_expr = else_expr

    def __repr__(self):
        return f"Ternary({self.cond!r}, {self.then_expr!r}, {self.else_expr!r})"


class Call(Node):
    """Function call: callee(args)."""

    __slots__ = ("callee", "args")

    def __init__(self, callee: Node, args: List[Node], line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.callee = callee
        self.args = args

    def __repr__(self):
        return f"Call({self.callee!r}, {self.args!r})"


class RandomCall(Node):
    """random(min, max), inclusive on both ends."""

    __slots__ = ("low", "high")

    def __init__(self, low: Node, high: Node, line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.low = low
        self.high = high

    def __repr__(self):
        return f"RandomCall({self.low!r}, {self.high!r})"


class RandomBytesCall(Node):
    __slots__ = ("length",)

    def __init__(self, length: Node, line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.length = length

    def __repr__(self):
        return f"RandomBytesCall({self.length!r})"


class Member(Node):
    """Member access: target.name (frame fields such as response.data)."""

    __slots__ = ("target", "name")

    def __init__(self, target: Node, name: str, line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.target = target
        self.name = name

    def __repr__(self):
        return f"Member({self.target!r}, {self.name!r})"


class Index(Node):
    """Index access: target[index]."""

    __slots__ = ("target", "index")

    def __init__(self, target: Node, index: Node, line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.target = target
        self.index = index

    def __repr__(self):
        return f"Index({self.target!r}, {self.index!r})"


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------


class VarDecl(Node):
    """Variable declaration in the current scope."""

    __slots__ = ("name", "value")

    def __init__(self, name: str, value: Node, line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.name = name
        self.value = value

    def __repr__(self):
        return f"VarDecl({self.name!r}, {self.value!r})"


class Assign(Node):
    """Assignment to an existing variable."""

    __slots__ = ("name", "value")

    def __init__(self, name: str, value: Node, line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.name = name
        self.value = value

    def __repr__(self):
        return f"Assign({self.name!r}, {self.value!r})"


class SendStmt(Node):
    """send(id, data[, ext])."""

    __slots__ = ("can_id", "data", "extended")

    def __init__(
        self,
        can_id: Node,
        data: Node,
        extended: Optional[Node] = None,
        line: int = 0,
        col: int = 0,
    ):
        super().__init__(line, col)
        self.can_id = can_id
        self.data = data
        self.extended = extended

    def __repr__(self):
        return f"SendStmt({self.can_id!r}, {self.data!r}, {self.extended!r})"


class DelayStmt(Node):
    __slots__ = ("duration",)

    def __init__(self, duration: Node, line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.duration = duration

    def __repr__(self):
        return f"DelayStmt({self.duration!r})"


class RepeatStmt(Node):
    """repeat(count) { body }."""

    __slots__ = ("count", "body")

    def __init__(self, count: Node, body: List[Node], line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.count = count
        self.body = body

    def __repr__(self):
        return f"RepeatStmt({self.count!r}, body=[...])"


class LoopStmt(Node):
    """loop { body } – left only through break or stop()."""

    __slots__ = ("body",)

    def __init__(self, body: List[Node], line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.body = body

    def __repr__(self):
        return "LoopStmt(body=[...])"


class IfStmt(Node):
    __slots__ = ("cond", "then_body", "else_body")

    def __init__(
        self,
        cond: Node,
        then_body: List[Node],
        else_body: Optional[List[Node]] = None,
        line: int = 0,
        col: int = 0,
    ):
        super().__init__(line, col)
        self.cond = cond
        self.then_body = then_body
        self.else_body = else_body

    def __repr__(self):
        return f"IfStmt({self.cond!r}, then=[...], else={self.else_body is not None})"


class WaitForStmt(Node):
    """wait_for(predicate) timeout(ms) { fallback }."""

    __slots__ = ("predicate", "timeout", "fallback")

    def __init__(
        self,
        predicate: Node,
        timeout: Node,
        fallback: Optional[List[Node]] = None,
        line: int = 0,
        col: int = 0,
    ):
        super().__init__(line, col)
        self.predicate = predicate
        self.timeout = timeout
        self.fallback = fallback

    def __repr__(self):
        return f"WaitForStmt({self.predicate!r}, {self.timeout!r})"


class FunctionDecl(Node):
    """Function definition."""

    __slots__ = ("name", "params", "body")

    def __init__(
        self, name: str, params: List[str], body: List[Node], line: int = 0, col: int = 0
    ):
        super().__init__(line, col)
        self.name = name
        self.params = params
        self.body = body

    def __repr__(self):
        return f"FunctionDecl({self.name!r}, {self.params!r}, body=[...])"


class ReturnStmt(Node):
    __slots__ = ("value",)

    def __init__(self, value: Optional[Node] = None, line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.value = value

    def __repr__(self):
        return f"ReturnStmt({self.value!r})"


class BreakStmt(Node):
    __slots__ = ()


class ContinueStmt(Node):
    __slots__ = ()


class PrintStmt(Node):
    __slots__ = ("values",)

    def __init__(self, values: List[Node], line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.values = values

    def __repr__(self):
        return f"PrintStmt({self.values!r})"


class ExprStmt(Node):
    """Expression evaluated for its side effects (usually a call)."""

    __slots__ = ("expr",)

    def __init__(self, expr: Node, line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.expr = expr

    def __repr__(self):
        return f"ExprStmt({self.expr!r})"


class OnReceive(Node):
    """on_receive(predicate) { body } – top-level handler."""

    __slots__ = ("predicate", "body")

    def __init__(self, predicate: Node, body: List[Node], line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.predicate = predicate
        self.body = body

    def __repr__(self):
        return f"OnReceive({self.predicate!r}, body=[...])"


class OnInterval(Node):
    """on_interval(ms) { body } – top-level periodic handler."""

    __slots__ = ("period", "body")

    def __init__(self, period: Node, body: List[Node], line: int = 0, col: int = 0):
        super().__init__(line, col)
        self.period = period
        self.body = body

    def __repr__(self):
        return f"OnInterval({self.period!r}, body=[...])"


class Program(Node):
    """Root node of a TxScript program."""

    __slots__ = ("functions", "receive_handlers", "interval_handlers", "statements", "total_lines")

    def __init__(
        self,
        functions: Optional[Dict[str, FunctionDecl]] = None,
        receive_handlers: Optional[List[OnReceive]] = None,
        interval_handlers: Optional[List[OnInterval]] = None,
        statements: Optional[List[Node]] = None,
        total_lines: int = 0,
    ):
        super().__init__(1, 1)
        self.functions = functions if functions is not None else {}
        self.receive_handlers = receive_handlers if receive_handlers is not None else []
        self.interval_handlers = interval_handlers if interval_handlers is not None else []
        self.statements = statements if statements is not None else []
        self.total_lines = total_lines

    @property
    def has_handlers(self) -> bool:
        return bool(self.receive_handlers or self.interval_handlers)

    def __repr__(self):
        return (
            f"Program(functions={list(self.functions)!r}, "
            f"receive={len(self.receive_handlers)}, interval={len(self.interval_handlers)}, "
            f"statements={self.statements!r})"
        )
