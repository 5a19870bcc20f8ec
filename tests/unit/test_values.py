#!/usr/bin/env python3.14
# SPDX-License-Identifier: Apache-2.0

import unittest

from txscript.can import CanFrame
from txscript.errors import ErrorKind, ScriptRuntimeError
from txscript.values import (
    FALSE,
    INT_MAX,
    INT_MIN,
    TRUE,
    VOID,
    ValueKind,
    binary_op,
    bytes_value,
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


class TestValues(unittest.TestCase):
    def assertRuntimeError(self, kind, fn, *args):
        with self.assertRaises(ScriptRuntimeError) as cm:
            fn(*args)
        self.assertEqual(cm.exception.kind, kind)
        return cm.exception

    def test_int_arithmetic(self):
        cases = [
            ("+", 7, 3, 10),
            ("-", 7, 3, 4),
            ("*", 7, 3, 21),
            ("/", 7, 3, 2),
            ("%", 7, 3, 1),
            ("/", -7, 2, -3),
            ("%", -7, 2, -1),
            ("/", 7, -2, -3),
        ]
        for op, a, b, expected in cases:
            with self.subTest(op=op, a=a, b=b):
                result = binary_op(op, int_value(a), int_value(b))
                self.assertEqual(result, int_value(expected))

    def test_int_wraps_to_64_bits(self):
        self.assertEqual(binary_op("+", int_value(INT_MAX), int_value(1)).data, INT_MIN)
        self.assertEqual(unary_op("-", int_value(INT_MIN)).data, INT_MIN)
        self.assertEqual(binary_op("<<", int_value(1), int_value(63)).data, INT_MIN)

    def test_division_by_zero(self):
        err = self.assertRuntimeError(ErrorKind.RUNTIME, binary_op, "/", int_value(1), int_value(0))
        self.assertIn("Division by zero", err.message)
        self.assertRuntimeError(ErrorKind.RUNTIME, binary_op, "%", float_value(1.0), int_value(0))

    def test_float_promotion(self):
        result = binary_op("+", int_value(1), float_value(0.5))
        self.assertEqual(result.kind, ValueKind.FLOAT)
        self.assertEqual(result.data, 1.5)
        self.assertEqual(binary_op("/", float_value(1.0), int_value(4)).data, 0.25)

    def test_string_and_bytes_concatenation(self):
        self.assertEqual(binary_op("+", string_value("ab"), string_value("c")), string_value("abc"))
        self.assertEqual(
            binary_op("+", bytes_value(b"\x01"), bytes_value(b"\x02")), bytes_value(b"\x01\x02")
        )

    def test_arithmetic_type_mismatch(self):
        self.assertRuntimeError(ErrorKind.TYPE, binary_op, "+", int_value(1), string_value("a"))
        self.assertRuntimeError(ErrorKind.TYPE, binary_op, "*", TRUE, int_value(2))

    def test_bitwise(self):
        self.assertEqual(binary_op("&", int_value(0xF0), int_value(0x3C)).data, 0x30)
        self.assertEqual(binary_op("|", int_value(0xF0), int_value(0x0F)).data, 0xFF)
        self.assertEqual(binary_op("^", int_value(0xFF), int_value(0x0F)).data, 0xF0)
        self.assertEqual(binary_op(">>", int_value(0x100), int_value(4)).data, 0x10)
        self.assertEqual(unary_op("~", int_value(0)).data, -1)

    def test_bitwise_requires_int(self):
        self.assertRuntimeError(ErrorKind.TYPE, binary_op, "&", float_value(1.0), int_value(1))
        self.assertRuntimeError(ErrorKind.TYPE, unary_op, "~", float_value(1.0))
        self.assertRuntimeError(
            ErrorKind.INVALID_ARGUMENT, binary_op, "<<", int_value(1), int_value(-1)
        )

    def test_comparisons(self):
        self.assertIs(binary_op("<", int_value(1), float_value(1.5)), TRUE)
        self.assertIs(binary_op(">=", int_value(2), int_value(3)), FALSE)
        self.assertIs(binary_op("<", string_value("a"), string_value("b")), TRUE)
        self.assertRuntimeError(ErrorKind.TYPE, binary_op, "<", TRUE, FALSE)

    def test_equality(self):
        self.assertIs(binary_op("==", int_value(1), float_value(1.0)), TRUE)
        self.assertIs(binary_op("!=", string_value("a"), string_value("b")), TRUE)
        self.assertIs(binary_op("==", bytes_value(b"\x01"), bytes_value(b"\x01")), TRUE)
        self.assertRuntimeError(ErrorKind.TYPE, binary_op, "==", int_value(1), TRUE)

    def test_logical_requires_bool(self):
        self.assertIs(binary_op("&&", TRUE, FALSE), FALSE)
        self.assertIs(binary_op("||", TRUE, FALSE), TRUE)
        self.assertRuntimeError(ErrorKind.TYPE, binary_op, "&&", int_value(1), TRUE)
        self.assertRuntimeError(ErrorKind.TYPE, unary_op, "!", int_value(0))

    def test_display(self):
        cases = [
            (int_value(-5), "-5"),
            (float_value(2.5), "2.5"),
            (TRUE, "true"),
            (string_value("hi"), "hi"),
            (bytes_value(b"\x02\x01\x0c"), "[02 01 0C]"),
            (frame_value(CanFrame(0x7E8, b"\x06\x41")), "7E8#0641"),
            (VOID, "void"),
        ]
        for value, text in cases:
            with self.subTest(kind=value.kind.name):
                self.assertEqual(value.display(), text)

    def test_to_frame_data(self):
        self.assertEqual(to_frame_data(int_value(0x41)), b"\x41")
        self.assertEqual(to_frame_data(bytes_value(b"\x01\x02")), b"\x01\x02")
        self.assertRuntimeError(ErrorKind.INVALID_ARGUMENT, to_frame_data, int_value(256))
        self.assertRuntimeError(ErrorKind.INVALID_ARGUMENT, to_frame_data, bytes_value(bytes(9)))
        self.assertRuntimeError(ErrorKind.TYPE, to_frame_data, string_value("01"))

    def test_make_bytes(self):
        self.assertEqual(make_bytes([int_value(2), int_value(0xFF)]), bytes_value(b"\x02\xff"))
        self.assertRuntimeError(ErrorKind.INVALID_ARGUMENT, make_bytes, [int_value(-1)])
        self.assertRuntimeError(ErrorKind.TYPE, make_bytes, [string_value("x")])

    def test_index_access(self):
        data = bytes_value(b"\x06\x41\x0c")
        self.assertEqual(index_access(data, int_value(1)), int_value(0x41))
        self.assertEqual(index_access(string_value("abc"), int_value(2)), string_value("c"))
        self.assertRuntimeError(ErrorKind.INVALID_ARGUMENT, index_access, data, int_value(3))
        self.assertRuntimeError(ErrorKind.TYPE, index_access, int_value(3), int_value(0))

    def test_frame_members(self):
        frame = frame_value(CanFrame(0x18DAF110, b"\x01", timestamp=1234, port=2))
        self.assertEqual(member_access(frame, "id"), int_value(0x18DAF110))
        self.assertEqual(member_access(frame, "data"), bytes_value(b"\x01"))
        self.assertIs(member_access(frame, "ext"), TRUE)
        self.assertEqual(member_access(frame, "timestamp"), int_value(1234))
        self.assertEqual(member_access(frame, "port"), int_value(2))
        self.assertRuntimeError(ErrorKind.UNDEFINED_VARIABLE, member_access, frame, "dlc")
        self.assertEqual(member_access(bytes_value(b"ab"), "length"), int_value(2))

    def test_wildcard_pattern(self):
        pattern = make_bytes([int_value(6), None, int_value(0x41)])
        self.assertEqual(pattern.kind, ValueKind.PATTERN)
        self.assertEqual(pattern.display(), "[06 * 41]")
        self.assertEqual(member_access(pattern, "length"), int_value(3))
        self.assertIs(binary_op("==", bytes_value(b"\x06\x99\x41"), pattern), TRUE)
        self.assertIs(binary_op("==", pattern, bytes_value(b"\x06\x00\x41\x0c")), TRUE)
        self.assertIs(binary_op("!=", bytes_value(b"\x07\x00\x41"), pattern), TRUE)
        self.assertIs(binary_op("==", bytes_value(b"\x06\x00"), pattern), FALSE)
        self.assertRuntimeError(ErrorKind.TYPE, binary_op, "==", pattern, int_value(6))
        self.assertRuntimeError(ErrorKind.TYPE, binary_op, "+", pattern, bytes_value(b"\x01"))
        self.assertRuntimeError(ErrorKind.TYPE, to_frame_data, pattern)
        self.assertRuntimeError(ErrorKind.INVALID_ARGUMENT, make_bytes, [None, int_value(256)])


if __name__ == "__main__":
    unittest.main()
