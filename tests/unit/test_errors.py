#!/usr/bin/env python3.14
# SPDX-License-Identifier: Apache-2.0

import unittest

from txscript.errors import ErrorKind, ErrorLog, ErrorPhase, ScriptError, ScriptRuntimeError


class TestErrors(unittest.TestCase):
    def test_default_kind_follows_phase(self):
        self.assertEqual(ScriptError(1, 1, "x", ErrorPhase.LEX).kind, ErrorKind.SYNTAX)
        self.assertEqual(ScriptError(1, 1, "x", ErrorPhase.PARSE).kind, ErrorKind.SYNTAX)
        self.assertEqual(ScriptError(1, 1, "x", ErrorPhase.RUNTIME).kind, ErrorKind.RUNTIME)

    def test_format(self):
        error = ScriptError(3, 7, "Unexpected token", ErrorPhase.PARSE)
        self.assertEqual(str(error), "3:7: error: Unexpected token")
        self.assertEqual(error.location, "Line 3:7")
        self.assertEqual(str(ScriptError(0, 0, "Not connected", ErrorPhase.RUNTIME)), "error: Not connected")
        self.assertEqual(ScriptError(4, 0, "x", ErrorPhase.RUNTIME).location, "Line 4")

    def test_runtime_error_locate_keeps_first_position(self):
        error = ScriptRuntimeError("bad", ErrorKind.TYPE)
        self.assertIs(error.locate(5, 3), error)
        error.locate(9, 1)
        self.assertEqual((error.line, error.col), (5, 3))
        self.assertEqual(str(error), "5:3: error: bad")
        converted = error.to_script_error()
        self.assertEqual(converted.phase, ErrorPhase.RUNTIME)
        self.assertEqual(converted.kind, ErrorKind.TYPE)
        self.assertEqual((converted.line, converted.column), (5, 3))

    def test_error_log(self):
        log = ErrorLog()
        self.assertFalse(log)
        seen = []
        log.subscribe(seen.append)
        log.append(ScriptError(1, 1, "a", ErrorPhase.RUNTIME, ErrorKind.TIMEOUT))
        self.assertFalse(log.blocks_start)
        log.extend([ScriptError(2, 1, "b", ErrorPhase.PARSE)])
        self.assertTrue(log.blocks_start)
        self.assertEqual(len(log), 2)
        self.assertEqual([e.message for e in seen], ["a", "b"])
        self.assertEqual(len(log.by_kind(ErrorKind.TIMEOUT)), 1)
        self.assertEqual(log.by_phase(ErrorPhase.PARSE)[0].message, "b")
        self.assertEqual(log[0].message, "a")

    def test_iteration_is_a_copy(self):
        log = ErrorLog()
        log.append(ScriptError(1, 1, "a", ErrorPhase.RUNTIME))
        it = iter(log)
        log.append(ScriptError(2, 1, "b", ErrorPhase.RUNTIME))
        self.assertEqual(len(list(it)), 1)


if __name__ == "__main__":
    unittest.main()
