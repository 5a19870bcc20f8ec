#!/usr/bin/env python3.14
# SPDX-License-Identifier: Apache-2.0

"""
Runtime values for TxScript.

Every value is a tagged Value. Operators check their operand kinds and raise
ScriptRuntimeError(TYPE) on a mismatch instead of coercing. Integers behave
as signed 64-bit numbers: results wrap, / and % truncate toward zero.
"""

import math
from enum import IntEnum, auto
from typing import Union

from txscript.can import CanFrame
from txscript.errors import ErrorKind, ScriptRuntimeError

INT_BITS = 64
INT_MIN = -(1 << (INT_BITS - 1))
INT_MAX = (1 << (INT_BITS - 1)) - 1


class ValueKind(IntEnum):
    INT = auto()
    FLOAT = auto()
    BOOL = auto()
    STRING = auto()
    BYTES = auto()
    FRAME = auto()
    PATTERN = auto()  # byte array with '*' wildcards, for comparisons only
    VOID = auto()


def wrap_int(n: int) -> int:
    """Wrap an arbitrary Python int into the signed 64-bit range."""
    return ((n - INT_MIN) & ((1 << INT_BITS) - 1)) + INT_MIN


class Value:
    """A tagged runtime value."""

    __slots__ = ("kind", "data")

    def __init__(self, kind: ValueKind, data=None):
        self.kind = kind
        self.data = data

    @property
    def type_name(self) -> str:
        return self.kind.name.capitalize()

    @property
    def is_number(self) -> bool:
        return self.kind in (ValueKind.INT, ValueKind.FLOAT)

    def display(self) -> str:
        """Text form used by print()."""
        k = self.kind
        if k == ValueKind.BOOL:
            return "true" if self.data else "false"
        if k == ValueKind.BYTES:
            return "[" + " ".join(f"{b:02X}" for b in self.data) + "]"
        if k == ValueKind.PATTERN:
            return "[" + " ".join("*" if b is None else f"{b:02X}" for b in self.data) + "]"
        if k == ValueKind.FRAME:
            return str(self.data)
        if k == ValueKind.VOID:
            return "void"
        return str(self.data)

    def __eq__(self, other):
        if not isinstance(other, Value):
            return NotImplemented
        return self.kind == other.kind and self.data == other.data

    def __hash__(self):
        return hash((self.kind, self.data))

    def __repr__(self):
        return f"Value({self.kind.name}, {self.data!r})"


def int_value(n: int) -> Value:
    return Value(ValueKind.INT, wrap_int(n))


def float_value(x: float) -> Value:
    return Value(ValueKind.FLOAT, float(x))


def string_value(s: str) -> Value:
    return Value(ValueKind.STRING, s)


def bytes_value(b: Union[bytes, bytearray]) -> Value:
    return Value(ValueKind.BYTES, bytes(b))


def frame_value(frame: CanFrame) -> Value:
    return Value(ValueKind.FRAME, frame)


TRUE = Value(ValueKind.BOOL, True)
FALSE = Value(ValueKind.BOOL, False)
VOID = Value(ValueKind.VOID)


def bool_value(b: bool) -> Value:
    return TRUE if b else FALSE


# ---------------------------------------------------------------------------
# Checked accessors
# ---------------------------------------------------------------------------


def _type_error(message: str) -> ScriptRuntimeError:
    return ScriptRuntimeError(message, ErrorKind.TYPE)


def expect_int(value: Value, what: str = "value") -> int:
    if value.kind != ValueKind.INT:
        raise _type_error(f"Expected Int for {what}, got {value.type_name}")
    return value.data


def expect_bool(value: Value, what: str = "condition") -> bool:
    if value.kind != ValueKind.BOOL:
        raise _type_error(f"Expected Bool for {what}, got {value.type_name}")
    return value.data


def expect_number(value: Value, what: str = "value") -> Union[int, float]:
    if not value.is_number:
        raise _type_error(f"Expected a number for {what}, got {value.type_name}")
    return value.data


def to_frame_data(value: Value, max_length: int = 8) -> bytes:
    """Payload for send(): Bytes, or a single byte given as an Int 0-255."""
    if value.kind == ValueKind.INT:
        if not 0 <= value.data <= 0xFF:
            raise ScriptRuntimeError(
                f"Data byte {value.data} out of range 0-255", ErrorKind.INVALID_ARGUMENT
            )
        return bytes([value.data])
    if value.kind != ValueKind.BYTES:
        raise _type_error(f"Expected Bytes or Int for frame data, got {value.type_name}")
    if len(value.data) > max_length:
        raise ScriptRuntimeError(
            f"Frame data has {len(value.data)} bytes, at most {max_length} allowed",
            ErrorKind.INVALID_ARGUMENT,
        )
    return value.data


def make_bytes(elements) -> Value:
    """Build a Bytes value from Int elements in 0-255.

    None elements are wildcards; any of them makes the result a Pattern.
    """
    out = []
    for i, element in enumerate(elements):
        if element is None:
            out.append(None)
            continue
        n = expect_int(element, f"byte {i}")
        if not 0 <= n <= 0xFF:
            raise ScriptRuntimeError(
                f"Byte {i} value {n} out of range 0-255", ErrorKind.INVALID_ARGUMENT
            )
        out.append(n)
    if None in out:
        return Value(ValueKind.PATTERN, tuple(out))
    return bytes_value(out)


def pattern_matches(pattern, data: bytes) -> bool:
    """Pattern bytes must match data position by position; data may be longer."""
    if len(pattern) > len(data):
        return False
    return all(p is None or p == d for p, d in zip(pattern, data))


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


def _trunc_div(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


def _trunc_mod(a: int, b: int) -> int:
    return a - b * _trunc_div(a, b)


def _arith(op: str, a, b, floating: bool) -> Value:
    if op in ("/", "%") and b == 0:
        raise ScriptRuntimeError("Division by zero")
    if floating:
        a, b = float(a), float(b)
        if op == "+":
            return float_value(a + b)
        if op == "-":
            return float_value(a - b)
        if op == "*":
            return float_value(a * b)
        if op == "/":
            return float_value(a / b)
        return float_value(math.fmod(a, b))
    if op == "+":
        return int_value(a + b)
    if op == "-":
        return int_value(a - b)
    if op == "*":
        return int_value(a * b)
    if op == "/":
        return int_value(_trunc_div(a, b))
    return int_value(_trunc_mod(a, b))


def _bitwise(op: str, a: int, b: int) -> Value:
    if op == "&":
        return int_value(a & b)
    if op == "|":
        return int_value(a | b)
    if op == "^":
        return int_value(a ^ b)
    if b < 0:
        raise ScriptRuntimeError(
            f"Negative shift count {b}", ErrorKind.INVALID_ARGUMENT
        )
    if op == "<<":
        return int_value(a << b) if b < INT_BITS else int_value(0)
    return int_value(a >> min(b, INT_BITS - 1))


def values_equal(left: Value, right: Value) -> bool:
    if left.is_number and right.is_number:
        return left.data == right.data
    kinds = {left.kind, right.kind}
    if kinds == {ValueKind.BYTES, ValueKind.PATTERN}:
        if left.kind == ValueKind.PATTERN:
            left, right = right, left
        return pattern_matches(right.data, left.data)
    if left.kind != right.kind:
        raise _type_error(f"Cannot compare {left.type_name} with {right.type_name}")
    return left.data == right.data


def binary_op(op: str, left: Value, right: Value) -> Value:
    """Apply a non short-circuit binary operator."""
    if op in ("==", "!="):
        equal = values_equal(left, right)
        return bool_value(equal if op == "==" else not equal)

    if op == "+" and left.kind == right.kind and left.kind in (ValueKind.STRING, ValueKind.BYTES):
        joined = left.data + right.data
        return string_value(joined) if left.kind == ValueKind.STRING else bytes_value(joined)

    if op in ("+", "-", "*", "/", "%"):
        if not (left.is_number and right.is_number):
            raise _type_error(
                f"Operator '{op}' not defined for {left.type_name} and {right.type_name}"
            )
        floating = ValueKind.FLOAT in (left.kind, right.kind)
        return _arith(op, left.data, right.data, floating)

    if op in ("<", "<=", ">", ">="):
        if left.is_number and right.is_number:
            a, b = left.data, right.data
        elif left.kind == right.kind == ValueKind.STRING:
            a, b = left.data, right.data
        else:
            raise _type_error(f"Cannot compare {left.type_name} with {right.type_name}")
        if op == "<":
            return bool_value(a < b)
        if op == "<=":
            return bool_value(a <= b)
        if op == ">":
            return bool_value(a > b)
        return bool_value(a >= b)

    if op in ("&", "|", "^", "<<", ">>"):
        if left.kind != ValueKind.INT or right.kind != ValueKind.INT:
            raise _type_error(
                f"Bitwise operator '{op}' requires Int operands, got "
                f"{left.type_name} and {right.type_name}"
            )
        return _bitwise(op, left.data, right.data)

    if op in ("&&", "||"):
        a = expect_bool(left, f"left operand of '{op}'")
        b = expect_bool(right, f"right operand of '{op}'")
        return bool_value(a and b if op == "&&" else a or b)

    raise ScriptRuntimeError(f"Unknown operator '{op}'")


def unary_op(op: str, operand: Value) -> Value:
    if op == "-":
        if operand.kind == ValueKind.INT:
            return int_value(-operand.data)
        if operand.kind == ValueKind.FLOAT:
            return float_value(-operand.data)
        raise _type_error(f"Cannot negate {operand.type_name}")
    if op == "!":
        return bool_value(not expect_bool(operand, "operand of '!'"))
    if op == "~":
        return int_value(~expect_int(operand, "operand of '~'"))
    raise ScriptRuntimeError(f"Unknown operator '{op}'")


# ---------------------------------------------------------------------------
# Index and member access
# ---------------------------------------------------------------------------

def frame_member(frame: CanFrame, name: str) -> Value:
    if name == "id":
        return int_value(frame.id)
    if name == "data":
        return bytes_value(frame.data)
    if name == "ext":
        return bool_value(frame.extended)
    if name == "timestamp":
        return int_value(frame.timestamp)
    if name == "port":
        return int_value(frame.port)
    raise ScriptRuntimeError(f"Frame has no member '{name}'", ErrorKind.UNDEFINED_VARIABLE)


def member_access(target: Value, name: str) -> Value:
    if target.kind == ValueKind.FRAME:
        return frame_member(target.data, name)
    if name == "length" and target.kind in (ValueKind.BYTES, ValueKind.STRING, ValueKind.PATTERN):
        return int_value(len(target.data))
    raise _type_error(f"{target.type_name} has no member '{name}'")


def index_access(target: Value, index: Value) -> Value:
    i = expect_int(index, "index")
    if target.kind not in (ValueKind.BYTES, ValueKind.STRING):
        raise _type_error(f"Cannot index {target.type_name}")
    if not 0 <= i < len(target.data):
        raise ScriptRuntimeError(
            f"Index {i} out of range for length {len(target.data)}",
            ErrorKind.INVALID_ARGUMENT,
        )
    if target.kind == ValueKind.BYTES:
        return int_value(target.data[i])
    return string_value(target.data[i])
