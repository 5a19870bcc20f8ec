#!/usr/bin/env python3.14
# SPDX-License-Identifier: Apache-2.0

"""
TxScript diagnostics – error records shared by the lexer, parser and executor.
Errors are collected into an append-only ErrorLog instead of being raised to
the host.
"""

import time
from enum import IntEnum, auto
from typing import Callable, Iterator, List, Optional


class ErrorPhase(IntEnum):
    """Pass that produced a diagnostic."""

    LEX = auto()
    PARSE = auto()
    RUNTIME = auto()


class ErrorKind(IntEnum):
    """Finer classification of a diagnostic."""

    SYNTAX = auto()
    RUNTIME = auto()
    TIMEOUT = auto()
    SEND = auto()
    TYPE = auto()
    UNDEFINED_VARIABLE = auto()
    UNDEFINED_FUNCTION = auto()
    INVALID_ARGUMENT = auto()
    ARITY = auto()
    CONNECTION = auto()


class ScriptError:
    """A single diagnostic with its source position."""

    __slots__ = ("line", "column", "message", "phase", "kind", "timestamp")

    def __init__(
        self,
        line: int,
        column: int,
        message: str,
        phase: ErrorPhase,
        kind: Optional[ErrorKind] = None,
        timestamp: Optional[float] = None,
    ):
        self.line = line
        self.column = column
        self.message = message
        self.phase = phase
        if kind is None:
            kind = ErrorKind.SYNTAX if phase != ErrorPhase.RUNTIME else ErrorKind.RUNTIME
        self.kind = kind
        self.timestamp = time.time() if timestamp is None else timestamp

    @property
    def location(self) -> str:
        if self.column > 0:
            return f"Line {self.line}:{self.column}"
        return f"Line {self.line}"

    def format(self) -> str:
        if self.line:
            return f"{self.line}:{self.column}: error: {self.message}"
        return f"error: {self.message}"

    def __str__(self):
        return self.format()

    def __repr__(self):
        return (
            f"ScriptError({self.phase.name}, {self.kind.name}, "
            f"{self.line}:{self.column}, {self.message!r})"
        )


class ScriptRuntimeError(Exception):
    """Raised inside the interpreter when a statement cannot be evaluated."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.RUNTIME,
        line: int = 0,
        col: int = 0,
    ):
        self.message = message
        self.kind = kind
        self.line = line
        self.col = col
        super().__init__(message)

    def locate(self, line: int, col: int) -> "ScriptRuntimeError":
        """Attach a position unless a more precise one is already set."""
        if not self.line:
            self.line = line
            self.col = col
        return self

    def to_script_error(self) -> ScriptError:
        return ScriptError(
            self.line, self.col, self.message, ErrorPhase.RUNTIME, self.kind
        )

    def __str__(self):
        if self.line:
            return f"{self.line}:{self.col}: error: {self.message}"
        return f"error: {self.message}"


class ErrorLog:
    """Append-only collection of ScriptError records.

    Listeners are called with every appended error, in order.
    """

    def __init__(self):
        self._errors: List[ScriptError] = []
        self._listeners: List[Callable[[ScriptError], None]] = []

    def append(self, error: ScriptError) -> None:
        self._errors.append(error)
        for listener in list(self._listeners):
            listener(error)

    def extend(self, errors) -> None:
        for error in errors:
            self.append(error)

    def subscribe(self, listener: Callable[[ScriptError], None]) -> None:
        self._listeners.append(listener)

    def by_phase(self, phase: ErrorPhase) -> List[ScriptError]:
        return [e for e in self._errors if e.phase == phase]

    def by_kind(self, kind: ErrorKind) -> List[ScriptError]:
        return [e for e in self._errors if e.kind == kind]

    @property
    def blocks_start(self) -> bool:
        """True when a lexer or parser error is present."""
        return any(e.phase != ErrorPhase.RUNTIME for e in self._errors)

    def __iter__(self) -> Iterator[ScriptError]:
        return iter(list(self._errors))

    def __len__(self) -> int:
        return len(self._errors)

    def __getitem__(self, index):
        return self._errors[index]

    def __bool__(self) -> bool:
        return bool(self._errors)

    def __repr__(self):
        return f"ErrorLog({self._errors!r})"
