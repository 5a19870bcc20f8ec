#!/usr/bin/env python3.14
# SPDX-License-Identifier: Apache-2.0

"""
TxScript interpreter – walks the AST of a parsed Program.

Statements and expressions are dispatched to exec_<Node> / eval_<Node>
methods by class name. Evaluation is asynchronous because user functions may
delay, send or wait. Everything that touches time or the bus goes through the
host (the Executor):

    host.checkpoint()                       yield; hold while paused
    host.sleep_ms(ms)                       pause-aware delay
    host.transmit(can_id, data, ext, line)  write to every target port
    host.await_frame(predicate, timeout_ms) first matching frame or None
    host.emit(text, line)                   print output
    host.report(error)                      record a non-fatal runtime error
    host.track_line(line) / host.track_iteration(i)
"""

import itertools
import random
from typing import Dict, List, Optional

from txscript.can import MAX_EXTENDED_ID, MAX_STANDARD_ID, CanFrame, now_ms
from txscript.environment import Environment, Scope
from txscript.errors import ErrorKind, ScriptRuntimeError
from txscript.script_ast import Call, FunctionDecl, Identifier, Node, Program, Wildcard
from txscript.values import (
    FALSE,
    TRUE,
    VOID,
    Value,
    ValueKind,
    binary_op,
    bool_value,
    bytes_value,
    expect_bool,
    expect_int,
    expect_number,
    float_value,
    frame_value,
    index_access,
    int_value,
    make_bytes,
    member_access,
    string_value,
    to_frame_data,
    unary_op,
)


class BreakSignal(Exception):
    pass


class ContinueSignal(Exception):
    pass


class ReturnSignal(Exception):
    def __init__(self, value: Value):
        self.value = value
        super().__init__()


class StopSignal(Exception):
    """The script called stop()."""


BUILTINS = {
    # name -> accepted argument count
    "abs": 1,
    "min": 2,
    "max": 2,
    "len": 1,
    "now": 0,
    "hex": 1,
    "stop": 0,
}


class Interpreter:
    def __init__(
        self,
        program: Program,
        host,
        env: Optional[Environment] = None,
        max_call_depth: int = 64,
        max_data_length: int = 8,
        rng: Optional[random.Random] = None,
    ):
        self.program = program
        self.host = host
        self.env = env or Environment()
        self.max_call_depth = max_call_depth
        self.max_data_length = max_data_length
        self.rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run_main(self) -> None:
        """Run the top-level statements. A runtime error abandons only its statement."""
        scope = self.env.globals
        try:
            for stmt in self.program.statements:
                try:
                    await self.execute(stmt, scope)
                except ScriptRuntimeError as e:
                    self.host.report(e.locate(stmt.line, stmt.col))
        except ReturnSignal:
            pass

    async def run_handler(self, body: List[Node], scope: Scope) -> None:
        """Run one handler activation. A runtime error abandons the activation."""
        try:
            await self.execute_block(body, scope)
        except ReturnSignal:
            pass
        except ScriptRuntimeError as e:
            self.host.report(e)

    async def frame_matches(self, predicate: Node, scope: Scope, frame: CanFrame) -> bool:
        """Bool predicates decide the match; an Int predicate compares with the frame id."""
        value = await self.evaluate(predicate, scope)
        if value.kind == ValueKind.INT:
            return frame.id == value.data
        return expect_bool(value, "frame predicate")

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    async def execute(self, node: Node, scope: Scope) -> None:
        await self.host.checkpoint()
        self.host.track_line(node.line)
        method = getattr(self, f"exec_{type(node).__name__}")
        try:
            await method(node, scope)
        except ScriptRuntimeError as e:
            raise e.locate(node.line, node.col)

    async def execute_block(self, body: List[Node], scope: Scope) -> None:
        for stmt in body:
            await self.execute(stmt, scope)

    async def exec_VarDecl(self, node, scope: Scope):
        scope.declare(node.name, await self.evaluate(node.value, scope))

    async def exec_Assign(self, node, scope: Scope):
        value = await self.evaluate(node.value, scope)
        scope.assign(node.name, value)

    async def exec_SendStmt(self, node, scope: Scope):
        can_id = expect_int(await self.evaluate(node.can_id, scope), "CAN ID")
        data = to_frame_data(await self.evaluate(node.data, scope), self.max_data_length)
        extended = False
        if node.extended is not None:
            extended = expect_bool(await self.evaluate(node.extended, scope), "extended flag")
        limit = MAX_EXTENDED_ID if extended else MAX_STANDARD_ID
        if not 0 <= can_id <= limit:
            hint = "" if extended else " (use ext for 29-bit ids)"
            raise ScriptRuntimeError(
                f"CAN ID 0x{can_id:X} out of range{hint}", ErrorKind.INVALID_ARGUMENT
            )
        await self.host.transmit(can_id, data, extended, node.line)

    async def exec_DelayStmt(self, node, scope: Scope):
        ms = expect_number(await self.evaluate(node.duration, scope), "delay")
        if ms < 0:
            raise ScriptRuntimeError(f"Negative delay {ms}", ErrorKind.INVALID_ARGUMENT)
        await self.host.sleep_ms(ms)

    async def _run_iterations(self, counter, body: List[Node], scope: Scope) -> None:
        for i in counter:
            await self.host.checkpoint()
            self.host.track_iteration(i)
            iteration_scope = scope.child()
            iteration_scope.declare("iteration", int_value(i))
            try:
                await self.execute_block(body, iteration_scope)
            except BreakSignal:
                break
            except ContinueSignal:
                continue

    async def exec_RepeatStmt(self, node, scope: Scope):
        count = expect_int(await self.evaluate(node.count, scope), "repeat count")
        if count < 0:
            raise ScriptRuntimeError(
                f"Negative repeat count {count}", ErrorKind.INVALID_ARGUMENT
            )
        await self._run_iterations(range(count), node.body, scope)

    async def exec_LoopStmt(self, node, scope: Scope):
        await self._run_iterations(itertools.count(), node.body, scope)

    async def exec_IfStmt(self, node, scope: Scope):
        if expect_bool(await self.evaluate(node.cond, scope), "if condition"):
            await self.execute_block(node.then_body, scope.child())
        elif node.else_body is not None:
            await self.execute_block(node.else_body, scope.child())

    async def exec_WaitForStmt(self, node, scope: Scope):
        timeout = expect_number(await self.evaluate(node.timeout, scope), "timeout")
        if timeout < 0:
            raise ScriptRuntimeError(f"Negative timeout {timeout}", ErrorKind.INVALID_ARGUMENT)

        async def predicate(frame: CanFrame) -> bool:
            return await self.frame_matches(
                node.predicate, self.env.frame_scope(frame, scope), frame
            )

        frame = await self.host.await_frame(predicate, timeout)
        if frame is not None:
            scope.declare("response", frame_value(frame))
        elif node.fallback is not None:
            await self.execute_block(node.fallback, scope.child())
        else:
            self.host.report(
                ScriptRuntimeError(
                    f"wait_for timed out after {timeout} ms",
                    ErrorKind.TIMEOUT,
                    node.line,
                    node.col,
                )
            )

    async def exec_ReturnStmt(self, node, scope: Scope):
        value = VOID if node.value is None else await self.evaluate(node.value, scope)
        raise ReturnSignal(value)

    async def exec_BreakStmt(self, node, scope: Scope):
        raise BreakSignal()

    async def exec_ContinueStmt(self, node, scope: Scope):
        raise ContinueSignal()

    async def exec_PrintStmt(self, node, scope: Scope):
        parts = []
        for expr in node.values:
            parts.append((await self.evaluate(expr, scope)).display())
        self.host.emit("".join(parts), node.line)

    async def exec_ExprStmt(self, node, scope: Scope):
        await self.evaluate(node.expr, scope)

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    async def evaluate(self, node: Node, scope: Scope) -> Value:
        method = getattr(self, f"eval_{type(node).__name__}")
        try:
            return await method(node, scope)
        except ScriptRuntimeError as e:
            raise e.locate(node.line, node.col)

    async def eval_IntLiteral(self, node, scope):
        return int_value(node.value)

    async def eval_FloatLiteral(self, node, scope):
        return float_value(node.value)

    async def eval_StringLiteral(self, node, scope):
        return string_value(node.value)

    async def eval_BoolLiteral(self, node, scope):
        return TRUE if node.value else FALSE

    async def eval_BytesLiteral(self, node, scope):
        elements = []
        for e in node.elements:
            elements.append(None if isinstance(e, Wildcard) else await self.evaluate(e, scope))
        return make_bytes(elements)

    async def eval_Identifier(self, node, scope: Scope):
        return scope.lookup(node.name)

    async def eval_Binary(self, node, scope):
        op = node.op
        left = await self.evaluate(node.left, scope)
        if op in ("&&", "||"):
            lhs = expect_bool(left, f"left operand of '{op}'")
            if lhs == (op == "||"):
                return bool_value(lhs)
            right = await self.evaluate(node.right, scope)
            return bool_value(expect_bool(right, f"right operand of '{op}'"))
        right = await self.evaluate(node.right, scope)
        return binary_op(op, left, right)

    async def eval_Unary(self, node, scope):
        return unary_op(node.op, await self.evaluate(node.operand, scope))

    async def eval_Ternary(self, node, scope):
        if expect_bool(await self.evaluate(node.cond, scope), "conditional"):
            return await self.evaluate(node.then_expr, scope)
        return await self.evaluate(node.else_expr, scope)

    async def eval_Member(self, node, scope):
        return member_access(await self.evaluate(node.target, scope), node.name)

    async def eval_Index(self, node, scope):
        target = await self.evaluate(node.target, scope)
        return index_access(target, await self.evaluate(node.index, scope))

    async def eval_RandomCall(self, node, scope):
        low = expect_int(await self.evaluate(node.low, scope), "random min")
        high = expect_int(await self.evaluate(node.high, scope), "random max")
        if low > high:
            raise ScriptRuntimeError(
                f"random({low}, {high}): min is greater than max",
                ErrorKind.INVALID_ARGUMENT,
            )
        return int_value(self.rng.randint(low, high))

    async def eval_RandomBytesCall(self, node, scope):
        n = expect_int(await self.evaluate(node.length, scope), "random_bytes length")
        if n < 0:
            raise ScriptRuntimeError(
                f"random_bytes length {n} is negative", ErrorKind.INVALID_ARGUMENT
            )
        return bytes_value(bytes(self.rng.randrange(256) for _ in range(n)))

    async def eval_Call(self, node: Call, scope: Scope):
        if not isinstance(node.callee, Identifier):
            raise ScriptRuntimeError("Only named functions can be called", ErrorKind.TYPE)
        name = node.callee.name
        args = [await self.evaluate(a, scope) for a in node.args]

        func = self.program.functions.get(name)
        if func is not None:
            return await self.call_function(func, args, scope)
        if name in BUILTINS:
            self._check_arity(name, BUILTINS[name], len(args))
            return self.call_builtin(name, args)
        if scope.is_bound(name):
            raise ScriptRuntimeError(f"'{name}' is not a function", ErrorKind.TYPE)
        raise ScriptRuntimeError(
            f"Undefined function '{name}'", ErrorKind.UNDEFINED_FUNCTION
        )

    @staticmethod
    def _check_arity(name: str, expected: int, got: int) -> None:
        if expected != got:
            raise ScriptRuntimeError(
                f"Function '{name}' expects {expected} argument(s), got {got}",
                ErrorKind.ARITY,
            )

    async def call_function(self, func: FunctionDecl, args: List[Value], caller: Scope) -> Value:
        self._check_arity(func.name, len(func.params), len(args))
        frame = self.env.function_scope(caller)
        if frame.depth > self.max_call_depth:
            raise ScriptRuntimeError(
                f"Maximum call depth {self.max_call_depth} exceeded in '{func.name}'"
            )
        for param, arg in zip(func.params, args):
            frame.declare(param, arg)
        try:
            await self.execute_block(func.body, frame)
        except ReturnSignal as r:
            return r.value
        return VOID

    def call_builtin(self, name: str, args: List[Value]) -> Value:
        if name == "abs":
            n = expect_number(args[0], "abs()")
            return int_value(abs(n)) if args[0].kind == ValueKind.INT else float_value(abs(n))
        if name in ("min", "max"):
            a = expect_number(args[0], f"{name}()")
            b = expect_number(args[1], f"{name}()")
            pick = min if name == "min" else max
            if ValueKind.FLOAT in (args[0].kind, args[1].kind):
                return float_value(pick(a, b))
            return int_value(pick(a, b))
        if name == "len":
            if args[0].kind not in (ValueKind.BYTES, ValueKind.STRING):
                raise ScriptRuntimeError(
                    f"len() expects Bytes or String, got {args[0].type_name}",
                    ErrorKind.TYPE,
                )
            return int_value(len(args[0].data))
        if name == "now":
            return int_value(now_ms())
        if name == "hex":
            n = expect_int(args[0], "hex()")
            return string_value(f"-0x{-n:X}" if n < 0 else f"0x{n:X}")
        if name == "stop":
            raise StopSignal()
        raise ScriptRuntimeError(f"Undefined function '{name}'", ErrorKind.UNDEFINED_FUNCTION)

    def global_variables(self) -> Dict[str, Value]:
        return self.env.snapshot()
