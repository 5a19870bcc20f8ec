#!/usr/bin/env python3.14
# SPDX-License-Identifier: Apache-2.0

"""
TxScript executor – runs a parsed script against a CAN bus.

The executor owns the run-control state machine (IDLE, RUNNING, PAUSED,
STOPPED, ERROR), the asyncio tasks of a run (main sequence, receive pumps,
interval timers, handler activations), the error log and the bounded debug
log. It is also the host the Interpreter calls for timing, bus I/O and
output. All methods must be called from the thread running the event loop.
"""

import asyncio
import inspect
import logging
import random
from collections import deque
from enum import IntEnum, auto
from typing import Callable, Deque, Dict, List, Optional, Sequence, Set, Tuple

from txscript.can import CanBus, CanFrame, now_ms
from txscript.environment import Environment
from txscript.errors import ErrorKind, ErrorLog, ErrorPhase, ScriptError, ScriptRuntimeError
from txscript.interpreter import Interpreter, StopSignal
from txscript.parser import load
from txscript.scheduler import RunGate, TaskSet
from txscript.script_ast import OnInterval, OnReceive, Program
from txscript.values import Value, expect_number

logger = logging.getLogger(__name__)
logging.getLogger("txscript").addHandler(logging.NullHandler())

# Inbound frames kept for wait_for look-back
RECENT_FRAMES = 256


class ExecutionState(IntEnum):
    IDLE = auto()
    RUNNING = auto()
    PAUSED = auto()
    STOPPED = auto()
    ERROR = auto()


class LogEntryType(IntEnum):
    INFO = auto()
    PRINT = auto()
    WARN = auto()
    ERROR = auto()
    SEND = auto()
    RECEIVE = auto()
    STATE = auto()


class LogEntry:
    __slots__ = ("timestamp", "line", "type", "message")

    def __init__(self, type: LogEntryType, message: str, line: int = 0, timestamp: Optional[int] = None):
        self.type = type
        self.message = message
        self.line = line
        self.timestamp = now_ms() if timestamp is None else timestamp

    def __str__(self):
        where = f"{self.line}: " if self.line else ""
        return f"[{self.type.name}] {where}{self.message}"

    def __repr__(self):
        return f"LogEntry({self.type.name}, {self.line}, {self.message!r})"


class ExecutorOptions:
    """Tunables for a run."""

    __slots__ = ("ports", "max_log_entries", "max_call_depth", "max_data_length", "script_name", "seed")

    def __init__(
        self,
        ports: Sequence[int] = (1, 2),
        max_log_entries: int = 500,
        max_call_depth: int = 64,
        max_data_length: int = 8,
        script_name: str = "script",
        seed: Optional[int] = None,
    ):
        self.ports = tuple(ports)
        self.max_log_entries = max_log_entries
        self.max_call_depth = max_call_depth
        self.max_data_length = max_data_length
        self.script_name = script_name
        self.seed = seed  # random()/random_bytes() seed, None for system entropy

    def __repr__(self):
        return f"ExecutorOptions(ports={self.ports}, script_name={self.script_name!r})"


class ExecutionSnapshot:
    """Point-in-time view of a run for display."""

    __slots__ = (
        "state",
        "script_name",
        "current_line",
        "total_lines",
        "iteration",
        "frames_sent",
        "frames_received",
        "start_time",
        "elapsed_ms",
        "variables",
        "errors",
        "log",
    )

    def __init__(self, **fields):
        for name in self.__slots__:
            setattr(self, name, fields[name])

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def progress(self) -> float:
        return self.current_line / self.total_lines if self.total_lines else 0.0

    @property
    def is_active(self) -> bool:
        return self.state in (ExecutionState.RUNNING, ExecutionState.PAUSED)

    def __repr__(self):
        return (
            f"ExecutionSnapshot({self.state.name}, line={self.current_line}/{self.total_lines}, "
            f"sent={self.frames_sent}, received={self.frames_received}, errors={len(self.errors)})"
        )


def _format_send(can_id: int, data: bytes, extended: bool) -> str:
    payload = " ".join(f"{b:02X}" for b in data)
    return f"send(0x{can_id:X}, [{payload}]{', ext' if extended else ''})"


class Executor:
    """Run control for one script at a time."""

    def __init__(
        self,
        bus: CanBus,
        options: Optional[ExecutorOptions] = None,
        output: Optional[Callable[[str], None]] = None,
    ):
        self.bus = bus
        self.options = options or ExecutorOptions()
        self.output = output
        self.ports: Tuple[int, ...] = self.options.ports

        self._state = ExecutionState.IDLE
        self._listeners: List[Callable[[LogEntry], None]] = []
        self._error_listeners: List[Callable[[ScriptError], None]] = []
        self._log: Deque[LogEntry] = deque(maxlen=self.options.max_log_entries)
        self._finished = asyncio.Event()
        self._finished.set()
        self._port_locks: Dict[int, asyncio.Lock] = {}
        self._reset()

    def _reset(self) -> None:
        self.errors = ErrorLog()
        self.errors.subscribe(self._on_error)
        for listener in self._error_listeners:
            self.errors.subscribe(listener)
        self._log.clear()
        self._program: Optional[Program] = None
        self._interp: Optional[Interpreter] = None
        self._gate = RunGate()
        self._tasks = TaskSet()
        self._main_task: Optional[asyncio.Task] = None
        self._streams: list = []
        self._waiters: Set[asyncio.Queue] = set()
        self._recent: Deque[Tuple[int, CanFrame]] = deque(maxlen=RECENT_FRAMES)
        self._seq = 0
        self._send_mark = 0
        self.current_line = 0
        self.iteration = 0
        self.frames_sent = 0
        self.frames_received = 0
        self.start_time = 0
        self._end_time = 0

    # ------------------------------------------------------------------
    # Host API
    # ------------------------------------------------------------------

    @property
    def state(self) -> ExecutionState:
        return self._state

    @property
    def log(self) -> List[LogEntry]:
        return list(self._log)

    @property
    def program(self) -> Optional[Program]:
        return self._program

    def add_listener(self, callback: Callable[[LogEntry], None]) -> None:
        """Call `callback` with every new debug log entry (including errors and state changes)."""
        self._listeners.append(callback)

    def add_error_listener(self, callback: Callable[[ScriptError], None]) -> None:
        """Call `callback` with every error recorded by this and later runs."""
        self._error_listeners.append(callback)
        self.errors.subscribe(callback)

    def validate(self, source: str) -> List[ScriptError]:
        """Lex and parse source without running it."""
        _, errors = load(source)
        return errors

    def start(self, source: str, ports: Optional[Sequence[int]] = None) -> bool:
        """Parse and launch a script. Must be called with the event loop running."""
        if self._state not in (ExecutionState.IDLE, ExecutionState.STOPPED):
            logger.warning("start() ignored while %s", self._state.name)
            return False

        self._reset()
        self.ports = tuple(ports) if ports else self.options.ports
        self._finished = asyncio.Event()
        self.start_time = now_ms()
        logger.info("starting %s on ports %s", self.options.script_name, self.ports)

        program, errors = load(source)
        self._program = program
        if errors:
            self.errors.extend(errors)
            self._set_state(ExecutionState.ERROR, f"Script has {len(errors)} error(s)")
            return False

        if not self.bus.connected:
            self.errors.append(
                ScriptError(0, 0, "Not connected to CAN bus", ErrorPhase.RUNTIME, ErrorKind.CONNECTION)
            )
            self._set_state(ExecutionState.ERROR, "Not connected")
            return False

        self._interp = Interpreter(
            program,
            self,
            Environment(),
            max_call_depth=self.options.max_call_depth,
            max_data_length=self.options.max_data_length,
            rng=random.Random(self.options.seed),
        )
        self._set_state(ExecutionState.RUNNING, f"Started {self.options.script_name}")

        for port in self.ports:
            stream = self.bus.frames(port)
            self._streams.append(stream)
            self._tasks.spawn(self._pump(stream, port), name=f"txscript-rx-{port}")
        self._main_task = self._tasks.spawn(self._run(), name="txscript-main")
        return True

    def pause(self) -> bool:
        if self._state != ExecutionState.RUNNING:
            return False
        self._gate.pause()
        self._set_state(ExecutionState.PAUSED, "Paused")
        return True

    def resume(self) -> bool:
        if self._state != ExecutionState.PAUSED:
            return False
        self._gate.resume()
        self._set_state(ExecutionState.RUNNING, "Resumed")
        return True

    def stop(self) -> bool:
        """Cancel everything and return to IDLE. No-op when already IDLE."""
        if self._state == ExecutionState.IDLE:
            return False
        self._teardown()
        self._set_state(ExecutionState.IDLE, "Stopped")
        return True

    async def join(self) -> ExecutionState:
        """Wait until the run has ended (STOPPED, ERROR or stopped by the host)."""
        await self._finished.wait()
        return self._state

    def variables(self) -> Dict[str, Value]:
        if self._interp is None:
            return {}
        return self._interp.global_variables()

    @property
    def elapsed_ms(self) -> int:
        if not self.start_time:
            return 0
        end = self._end_time or now_ms()
        return end - self.start_time

    def snapshot(self) -> ExecutionSnapshot:
        return ExecutionSnapshot(
            state=self._state,
            script_name=self.options.script_name,
            current_line=self.current_line,
            total_lines=self._program.total_lines if self._program else 0,
            iteration=self.iteration,
            frames_sent=self.frames_sent,
            frames_received=self.frames_received,
            start_time=self.start_time,
            elapsed_ms=self.elapsed_ms,
            variables={name: v.display() for name, v in self.variables().items()},
            errors=list(self.errors),
            log=self.log,
        )

    # ------------------------------------------------------------------
    # State and bookkeeping
    # ------------------------------------------------------------------

    def _set_state(self, state: ExecutionState, message: str) -> None:
        previous, self._state = self._state, state
        logger.info("%s: %s -> %s (%s)", self.options.script_name, previous.name, state.name, message)
        self._log_entry(LogEntryType.STATE, message)
        if state in (ExecutionState.RUNNING, ExecutionState.PAUSED):
            return
        if not self._end_time:
            self._end_time = now_ms()
        self._finished.set()

    def _log_entry(self, type: LogEntryType, message: str, line: int = 0) -> None:
        entry = LogEntry(type, message, line)
        self._log.append(entry)
        for listener in list(self._listeners):
            listener(entry)

    def _on_error(self, error: ScriptError) -> None:
        if error.phase == ErrorPhase.RUNTIME:
            logger.debug("runtime error: %s", error)
        self._log_entry(LogEntryType.ERROR, error.message, error.line)

    def _teardown(self) -> None:
        self._gate.close()
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        self._tasks.cancel_all(keep=current)
        for stream in self._streams:
            self.bus.release(stream)
        self._streams.clear()
        self._waiters.clear()

    def _finish(self, state: ExecutionState, message: str) -> None:
        if self._state not in (ExecutionState.RUNNING, ExecutionState.PAUSED):
            return
        self._teardown()
        self._set_state(state, message)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        try:
            await self._setup_intervals()
            await self._interp.run_main()
        except StopSignal:
            self._finish(ExecutionState.STOPPED, "Stopped by script")
            return
        except Exception as e:
            logger.exception("main sequence crashed")
            self.errors.append(ScriptError(self.current_line, 0, f"Internal error: {e}", ErrorPhase.RUNTIME))
            self._finish(ExecutionState.ERROR, "Internal error")
            return
        if self._program.has_handlers:
            self._log_entry(LogEntryType.INFO, "Main sequence finished, handlers active")
        else:
            self._finish(ExecutionState.STOPPED, "Script completed")

    async def _setup_intervals(self) -> None:
        globals_ = self._interp.env.globals
        for handler in self._program.interval_handlers:
            try:
                period = expect_number(
                    await self._interp.evaluate(handler.period, globals_), "interval"
                )
                if period <= 0:
                    raise ScriptRuntimeError(
                        f"Interval must be positive, got {period}", ErrorKind.INVALID_ARGUMENT
                    )
            except ScriptRuntimeError as e:
                self.report(e.locate(handler.line, handler.col))
                continue
            self._log_entry(LogEntryType.INFO, f"on_interval({period}ms)", handler.line)
            self._tasks.spawn(self._interval_loop(handler, period), name="txscript-interval")

    async def _interval_loop(self, handler: OnInterval, period_ms) -> None:
        while True:
            await self._gate.sleep(period_ms / 1000)
            await self._gate.checkpoint()
            scope = self._interp.env.globals.child()
            self._tasks.spawn(self._guarded(self._interp.run_handler(handler.body, scope)))

    async def _pump(self, stream, port: int) -> None:
        try:
            async for frame in stream:
                self._on_frame(frame)
        except Exception as e:
            logger.warning("receive on port %d failed: %s", port, e)
            self.errors.append(
                ScriptError(
                    self.current_line,
                    0,
                    f"Receive failed on port {port}: {e}",
                    ErrorPhase.RUNTIME,
                    ErrorKind.CONNECTION,
                )
            )

    def _on_frame(self, frame: CanFrame) -> None:
        self._seq += 1
        self.frames_received += 1
        self._recent.append((self._seq, frame))
        logger.debug("rx %s on port %d", frame, frame.port)
        for waiter in self._waiters:
            waiter.put_nowait((self._seq, frame))
        for handler in self._program.receive_handlers:
            self._tasks.spawn(self._guarded(self._on_receive(handler, frame)))

    async def _on_receive(self, handler: OnReceive, frame: CanFrame) -> None:
        await self._gate.checkpoint()
        scope = self._interp.env.frame_scope(frame)
        try:
            if not await self._interp.frame_matches(handler.predicate, scope, frame):
                return
        except ScriptRuntimeError as e:
            self.report(e.locate(handler.line, handler.col))
            return
        self._log_entry(LogEntryType.RECEIVE, f"on_receive {frame}", handler.line)
        await self._interp.run_handler(handler.body, scope)

    async def _guarded(self, coro) -> None:
        """Run a handler activation; script stop() and internal faults end here."""
        try:
            await coro
        except StopSignal:
            self._finish(ExecutionState.STOPPED, "Stopped by script")
        except Exception as e:
            logger.exception("handler activation crashed")
            self.errors.append(ScriptError(self.current_line, 0, f"Internal error: {e}", ErrorPhase.RUNTIME))

    # ------------------------------------------------------------------
    # Interpreter host interface
    # ------------------------------------------------------------------

    async def checkpoint(self) -> None:
        await self._gate.checkpoint()

    async def sleep_ms(self, ms) -> None:
        await self._gate.sleep(ms / 1000)

    def track_line(self, line: int) -> None:
        self.current_line = line

    def track_iteration(self, iteration: int) -> None:
        self.iteration = iteration

    def emit(self, text: str, line: int) -> None:
        logger.debug("print: %s", text)
        self._log_entry(LogEntryType.PRINT, text, line)
        if self.output is not None:
            self.output(text)

    def report(self, error: ScriptRuntimeError) -> None:
        self.errors.append(error.to_script_error())

    async def transmit(self, can_id: int, data: bytes, extended: bool, line: int) -> None:
        """Write one frame to every target port; failures are recorded, not raised."""
        # Replies arriving from here on are visible to the next wait_for
        self._send_mark = self._seq
        self._log_entry(LogEntryType.SEND, _format_send(can_id, data, extended), line)
        results = await asyncio.gather(
            *(self._write(port, can_id, data, extended, line) for port in self.ports)
        )
        self.frames_sent += sum(results)

    async def _write(self, port: int, can_id: int, data: bytes, extended: bool, line: int) -> bool:
        lock = self._port_locks.setdefault(port, asyncio.Lock())
        async with lock:
            try:
                result = self.bus.send_frame(port, can_id, data, extended)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                logger.warning("send on port %d failed: %s", port, e)
                self.report(ScriptRuntimeError(f"Send failed on port {port}: {e}", ErrorKind.SEND, line))
                return False
        if not result:
            logger.warning("send on port %d rejected", port)
            self.report(ScriptRuntimeError(f"Send failed on port {port}", ErrorKind.SEND, line))
            return False
        logger.debug("tx %s on port %d", CanFrame(can_id, data, port=port, extended=extended), port)
        return True

    async def await_frame(self, predicate, timeout_ms) -> Optional[CanFrame]:
        """First frame since the last send or match that satisfies predicate, or None on timeout."""
        mark = self._send_mark
        backlog = [(seq, frame) for seq, frame in self._recent if seq > mark]
        queue: asyncio.Queue = asyncio.Queue()
        self._waiters.add(queue)

        async def scan():
            for seq, frame in backlog:
                if await predicate(frame):
                    return seq, frame
            while True:
                seq, frame = await queue.get()
                if await predicate(frame):
                    return seq, frame

        try:
            (seq, frame), _ = await self._gate.timed(scan, timeout_ms / 1000)
        except asyncio.TimeoutError:
            return None
        finally:
            self._waiters.discard(queue)
        self._send_mark = max(self._send_mark, seq)
        self._log_entry(LogEntryType.RECEIVE, f"wait_for matched {frame}", self.current_line)
        return frame
