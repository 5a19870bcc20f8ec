#!/usr/bin/env python3.14
# SPDX-License-Identifier: Apache-2.0

"""
CAN collaborator boundary – the frame record, the bus interface the executor
talks to, and an in-process loopback bus used by the command line and tests.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

MAX_STANDARD_ID = 0x7FF
MAX_EXTENDED_ID = 0x1FFFFFFF
MAX_DATA_LENGTH = 8


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class CanFrame:
    """One CAN message as seen on a port."""

    __slots__ = ("id", "data", "timestamp", "port", "extended")

    def __init__(
        self,
        id: int,
        data: bytes = b"",
        timestamp: Optional[int] = None,
        port: int = 1,
        extended: Optional[bool] = None,
    ):
        self.id = id
        self.data = bytes(data)
        self.timestamp = now_ms() if timestamp is None else timestamp
        self.port = port
        self.extended = id > MAX_STANDARD_ID if extended is None else extended

    @classmethod
    def parse(cls, text: str, port: int = 1) -> "CanFrame":
        """Parse the ID[X]#HEX notation, e.g. "7E8#0641" or "18DAF110X#0201"."""
        text = text.strip()
        ident, _, payload = text.partition("#")
        extended = None
        if ident[-1:] in ("X", "x"):
            ident, extended = ident[:-1], True
        if not ident:
            raise ValueError(f"invalid frame '{text}': missing id")
        try:
            can_id = int(ident, 16)
            data = bytes.fromhex(payload)
        except ValueError:
            raise ValueError(f"invalid frame '{text}'") from None
        if len(data) > MAX_DATA_LENGTH:
            raise ValueError(f"invalid frame '{text}': more than {MAX_DATA_LENGTH} data bytes")
        limit = MAX_EXTENDED_ID if extended or can_id > MAX_STANDARD_ID else MAX_STANDARD_ID
        if can_id > limit:
            raise ValueError(f"invalid frame '{text}': id out of range")
        return cls(can_id, data, port=port, extended=extended)

    def copy(self, **changes) -> "CanFrame":
        fields = {name: getattr(self, name) for name in self.__slots__}
        fields.update(changes)
        return CanFrame(**fields)

    def __eq__(self, other):
        if not isinstance(other, CanFrame):
            return NotImplemented
        return (self.id, self.data, self.extended) == (other.id, other.data, other.extended)

    def __hash__(self):
        return hash((self.id, self.data, self.extended))

    def __str__(self):
        text = f"{self.id:X}"
        if self.extended:
            text += "X"
        if self.data:
            text += "#" + self.data.hex().upper()
        return text

    def __repr__(self):
        return f"CanFrame({self}, port={self.port})"


SendResult = Union[bool, Awaitable[bool]]


class CanBus(ABC):
    """The CAN I/O surface a running script needs."""

    @property
    @abstractmethod
    def connected(self) -> bool:
        """False when no interface is available."""

    @abstractmethod
    def send_frame(self, port: int, can_id: int, data: bytes, extended: bool) -> SendResult:
        """Write one frame. Returns (or resolves to) False when the write failed."""

    @abstractmethod
    def frames(self, port: int) -> AsyncIterator[CanFrame]:
        """Inbound frame stream for a port. Frames arriving after this call are delivered."""

    def release(self, stream) -> None:
        """Give back a stream obtained from frames()."""
        close = getattr(stream, "close", None)
        if close is not None:
            close()


class _Subscription:
    """Async iterator over the frames injected on one loopback port."""

    def __init__(self, bus: "LoopbackBus", port: int):
        self.bus = bus
        self.port = port
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def push(self, frame: CanFrame) -> None:
        if not self.closed:
            self._queue.put_nowait(frame)

    def __aiter__(self):
        return self

    async def __anext__(self) -> CanFrame:
        if self.closed:
            raise StopAsyncIteration
        frame = await self._queue.get()
        if frame is None:
            raise StopAsyncIteration
        return frame

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(None)
        self.bus._unsubscribe(self)


class LoopbackBus(CanBus):
    """Virtual bus: records every write and delivers injected frames to readers.

    Responders map a request frame to a reply that is injected on the same port
    right after a matching write, the way an ECU would answer.
    """

    def __init__(
        self,
        connected: bool = True,
        on_send: Optional[Callable[[CanFrame], None]] = None,
    ):
        self._connected = connected
        self.on_send = on_send
        self.sent: List[CanFrame] = []
        self.failing_ports = set()
        self._responders: List[Tuple[CanFrame, CanFrame]] = []
        self._subscriptions: Dict[int, List[_Subscription]] = {}

    @property
    def connected(self) -> bool:
        return self._connected

    @connected.setter
    def connected(self, value: bool) -> None:
        self._connected = value

    @property
    def subscriber_count(self) -> int:
        return sum(len(subs) for subs in self._subscriptions.values())

    def add_responder(self, request: CanFrame, response: CanFrame) -> None:
        """Reply with `response` to writes whose id matches and whose data starts with request.data."""
        self._responders.append((request, response))

    async def send_frame(self, port: int, can_id: int, data: bytes, extended: bool) -> bool:
        if port in self.failing_ports:
            logger.debug("loopback write on port %d rejected", port)
            return False
        frame = CanFrame(can_id, data, port=port, extended=extended)
        self.sent.append(frame)
        if self.on_send is not None:
            self.on_send(frame)
        loop = asyncio.get_running_loop()
        for request, response in self._responders:
            if request.id == can_id and data.startswith(request.data):
                loop.call_soon(self.inject, response.copy(port=port, timestamp=None))
        return True

    def frames(self, port: int) -> _Subscription:
        subscription = _Subscription(self, port)
        self._subscriptions.setdefault(port, []).append(subscription)
        return subscription

    def _unsubscribe(self, subscription: _Subscription) -> None:
        subs = self._subscriptions.get(subscription.port, [])
        if subscription in subs:
            subs.remove(subscription)

    def inject(self, frame: CanFrame) -> None:
        """Deliver an inbound frame to every reader of frame.port."""
        for subscription in list(self._subscriptions.get(frame.port, [])):
            subscription.push(frame)

    def sent_on(self, port: int) -> List[CanFrame]:
        return [f for f in self.sent if f.port == port]
