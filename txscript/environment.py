#!/usr/bin/env python3.14
# SPDX-License-Identifier: Apache-2.0

"""
Variable scopes for TxScript.

A Scope holds its own bindings and a reference to its parent; lookups walk
the chain outward. The Environment owns the single global scope shared by the
main sequence and every handler activation, and hands out child scopes for
blocks, calls and frame predicates.
"""

from typing import Dict, Optional

from txscript.can import CanFrame
from txscript.errors import ErrorKind, ScriptRuntimeError
from txscript.values import Value, bool_value, bytes_value, frame_value, int_value


class Scope:
    __slots__ = ("bindings", "parent", "depth")

    def __init__(self, parent: Optional["Scope"] = None, depth: int = 0):
        self.bindings: Dict[str, Value] = {}
        self.parent = parent
        self.depth = depth  # call depth of the function activation owning this scope

    def child(self) -> "Scope":
        """Block scope nested in this one."""
        return Scope(self, self.depth)

    def declare(self, name: str, value: Value) -> None:
        """Bind name in this scope, shadowing outer bindings."""
        self.bindings[name] = value

    def _find(self, name: str) -> Optional["Scope"]:
        scope = self
        while scope is not None:
            if name in scope.bindings:
                return scope
            scope = scope.parent
        return None

    def is_bound(self, name: str) -> bool:
        return self._find(name) is not None

    def lookup(self, name: str) -> Value:
        scope = self._find(name)
        if scope is None:
            raise ScriptRuntimeError(
                f"Undefined variable '{name}'", ErrorKind.UNDEFINED_VARIABLE
            )
        return scope.bindings[name]

    def assign(self, name: str, value: Value) -> None:
        """Rebind the innermost existing binding of name."""
        scope = self._find(name)
        if scope is None:
            raise ScriptRuntimeError(
                f"Assignment to undeclared variable '{name}'",
                ErrorKind.UNDEFINED_VARIABLE,
            )
        scope.bindings[name] = value

    def __repr__(self):
        return f"Scope({sorted(self.bindings)!r}, depth={self.depth})"


class Environment:
    """Scope factory rooted at the shared global scope."""

    def __init__(self):
        self.globals = Scope()

    def frame_scope(self, frame: CanFrame, parent: Optional[Scope] = None) -> Scope:
        """Scope exposing an inbound frame's fields to a predicate and its handler body."""
        scope = (parent or self.globals).child()
        scope.declare("id", int_value(frame.id))
        scope.declare("data", bytes_value(frame.data))
        scope.declare("ext", bool_value(frame.extended))
        scope.declare("timestamp", int_value(frame.timestamp))
        scope.declare("port", int_value(frame.port))
        scope.declare("response", frame_value(frame))
        return scope

    def function_scope(self, caller: Scope) -> Scope:
        """Fresh activation scope: sees globals only, one call deeper than caller."""
        return Scope(self.globals, caller.depth + 1)

    def snapshot(self) -> Dict[str, Value]:
        """Copy of the global bindings."""
        return dict(self.globals.bindings)
