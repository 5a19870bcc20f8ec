#!/usr/bin/env python3.14
# SPDX-License-Identifier: Apache-2.0

import unittest

from txscript.can import CanFrame
from txscript.environment import Environment, Scope
from txscript.errors import ErrorKind, ScriptRuntimeError
from txscript.values import TRUE, ValueKind, int_value


class TestScope(unittest.TestCase):
    def test_declare_and_lookup(self):
        scope = Scope()
        scope.declare("x", int_value(1))
        self.assertEqual(scope.lookup("x"), int_value(1))
        self.assertTrue(scope.is_bound("x"))
        self.assertFalse(scope.is_bound("y"))

    def test_lookup_walks_parents(self):
        root = Scope()
        root.declare("x", int_value(1))
        inner = root.child().child()
        self.assertEqual(inner.lookup("x"), int_value(1))

    def test_shadowing(self):
        root = Scope()
        root.declare("x", int_value(1))
        inner = root.child()
        inner.declare("x", int_value(2))
        self.assertEqual(inner.lookup("x"), int_value(2))
        self.assertEqual(root.lookup("x"), int_value(1))

    def test_assign_updates_innermost_binding(self):
        root = Scope()
        root.declare("x", int_value(1))
        inner = root.child()
        inner.assign("x", int_value(5))
        self.assertEqual(root.lookup("x"), int_value(5))
        self.assertNotIn("x", inner.bindings)

    def test_undefined(self):
        scope = Scope()
        for op in (lambda: scope.lookup("nope"), lambda: scope.assign("nope", TRUE)):
            with self.subTest(op=op):
                with self.assertRaises(ScriptRuntimeError) as cm:
                    op()
                self.assertEqual(cm.exception.kind, ErrorKind.UNDEFINED_VARIABLE)
                self.assertIn("nope", cm.exception.message)

    def test_child_keeps_depth(self):
        scope = Scope(depth=3)
        self.assertEqual(scope.child().depth, 3)


class TestEnvironment(unittest.TestCase):
    def test_function_scope_sees_only_globals(self):
        env = Environment()
        env.globals.declare("g", int_value(1))
        caller = env.globals.child()
        caller.declare("local", int_value(2))
        frame = env.function_scope(caller)
        self.assertIs(frame.parent, env.globals)
        self.assertEqual(frame.depth, 1)
        self.assertTrue(frame.is_bound("g"))
        self.assertFalse(frame.is_bound("local"))
        self.assertEqual(env.function_scope(frame).depth, 2)

    def test_frame_scope_binds_fields(self):
        env = Environment()
        frame = CanFrame(0x7E8, b"\x06\x41", timestamp=99, port=2)
        scope = env.frame_scope(frame)
        self.assertEqual(scope.lookup("id"), int_value(0x7E8))
        self.assertEqual(scope.lookup("data").data, b"\x06\x41")
        self.assertEqual(scope.lookup("ext").data, False)
        self.assertEqual(scope.lookup("timestamp"), int_value(99))
        self.assertEqual(scope.lookup("port"), int_value(2))
        self.assertEqual(scope.lookup("response").kind, ValueKind.FRAME)
        self.assertIs(scope.parent, env.globals)

    def test_snapshot_is_a_copy(self):
        env = Environment()
        env.globals.declare("x", int_value(1))
        snap = env.snapshot()
        env.globals.declare("y", int_value(2))
        self.assertEqual(list(snap), ["x"])


if __name__ == "__main__":
    unittest.main()
