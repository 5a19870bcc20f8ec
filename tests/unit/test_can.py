#!/usr/bin/env python3.14
# SPDX-License-Identifier: Apache-2.0

import asyncio
import unittest

from txscript.can import CanFrame, LoopbackBus


class TestCanFrame(unittest.TestCase):
    def test_parse_standard(self):
        frame = CanFrame.parse("7E8#0641")
        self.assertEqual(frame.id, 0x7E8)
        self.assertEqual(frame.data, b"\x06\x41")
        self.assertFalse(frame.extended)
        self.assertEqual(str(frame), "7E8#0641")

    def test_parse_extended(self):
        frame = CanFrame.parse("18DAF110X#0201", port=2)
        self.assertTrue(frame.extended)
        self.assertEqual(frame.port, 2)
        self.assertEqual(str(frame), "18DAF110X#0201")

    def test_parse_without_data(self):
        frame = CanFrame.parse("123")
        self.assertEqual(frame.data, b"")
        self.assertEqual(str(frame), "123")

    def test_parse_invalid(self):
        for text in ["", "#01", "ZZZ#01", "7E8#0", "7E8#010203040506070809", "20000000X#01"]:
            with self.subTest(text=text):
                with self.assertRaises(ValueError):
                    CanFrame.parse(text)

    def test_equality_ignores_port_and_time(self):
        a = CanFrame(0x100, b"\x01", timestamp=1, port=1)
        b = CanFrame(0x100, b"\x01", timestamp=2, port=2)
        self.assertEqual(a, b)
        self.assertNotEqual(a, CanFrame(0x100, b"\x02"))


class TestLoopbackBus(unittest.IsolatedAsyncioTestCase):
    async def test_send_records_frames(self):
        seen = []
        bus = LoopbackBus(on_send=seen.append)
        self.assertTrue(await bus.send_frame(1, 0x100, b"\x01", False))
        self.assertEqual(bus.sent, [CanFrame(0x100, b"\x01")])
        self.assertEqual(bus.sent[0].port, 1)
        self.assertEqual(seen, bus.sent)

    async def test_failing_port(self):
        bus = LoopbackBus()
        bus.failing_ports.add(2)
        self.assertFalse(await bus.send_frame(2, 0x100, b"", False))
        self.assertEqual(bus.sent, [])

    async def test_inject_reaches_subscribers_of_port(self):
        bus = LoopbackBus()
        stream = bus.frames(1)
        other = bus.frames(2)
        bus.inject(CanFrame(0x7E8, b"\x01", port=1))
        frame = await asyncio.wait_for(stream.__anext__(), 1)
        self.assertEqual(frame.id, 0x7E8)
        bus.release(stream)
        bus.release(other)
        self.assertEqual(bus.subscriber_count, 0)
        with self.assertRaises(StopAsyncIteration):
            await stream.__anext__()

    async def test_responder(self):
        bus = LoopbackBus()
        bus.add_responder(CanFrame.parse("7DF#0201"), CanFrame.parse("7E8#0641"))
        stream = bus.frames(1)
        await bus.send_frame(1, 0x7DF, b"\x02\x01\x0c", False)
        await bus.send_frame(1, 0x7DF, b"\x03", False)
        frame = await asyncio.wait_for(stream.__anext__(), 1)
        self.assertEqual(str(frame), "7E8#0641")
        self.assertEqual(frame.port, 1)
        await asyncio.sleep(0)
        self.assertTrue(stream._queue.empty())


if __name__ == "__main__":
    unittest.main()
