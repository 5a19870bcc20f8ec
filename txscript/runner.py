#!/usr/bin/env python3.14
# SPDX-License-Identifier: Apache-2.0

"""
TxScript runner – command-line host that checks scripts or runs them on a
virtual loopback bus.

    txscript check script.txs
    txscript run script.txs --duration 2 --inject 7E8#0641@100 --respond 7DF#02=7E8#0641
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

# Add project root to sys.path so that imports from txscript work when running as script
sys.path.insert(0, str(Path(__file__).parent.parent))

from txscript.can import CanFrame, LoopbackBus
from txscript.executor import Executor, ExecutorOptions
from txscript.parser import load


def parse_injection(text: str, port: int) -> Tuple[CanFrame, float]:
    """FRAME[@MS] -> (frame, delay in seconds)."""
    frame_text, _, at = text.partition("@")
    delay = float(at) / 1000 if at else 0.0
    return CanFrame.parse(frame_text, port=port), delay


def parse_responder(text: str) -> Tuple[CanFrame, CanFrame]:
    """REQ=RESP -> (request, response)."""
    request, sep, response = text.partition("=")
    if not sep:
        raise ValueError(f"invalid responder '{text}': expected REQ=RESP")
    return CanFrame.parse(request), CanFrame.parse(response)


def read_source(path: Path) -> str:
    if not path.exists():
        print(f"Error: input file {path} not found", file=sys.stderr)
        sys.exit(1)
    return path.read_text(encoding="utf-8")


def cmd_check(args) -> int:
    source = read_source(Path(args.input))
    program, errors = load(source)
    for error in errors:
        print(f"{args.input}:{error}", file=sys.stderr)
    if errors:
        return 1
    print(
        f"{args.input}: ok ({len(program.statements)} statement(s), "
        f"{len(program.functions)} function(s), "
        f"{len(program.receive_handlers) + len(program.interval_handlers)} handler(s))"
    )
    return 0


async def run_script(source: str, args) -> int:
    ports: List[int] = args.port or [1]
    bus = LoopbackBus(on_send=lambda frame: print(f"tx {frame}", flush=True))
    for spec in args.respond:
        bus.add_responder(*parse_responder(spec))

    options = ExecutorOptions(ports=ports, script_name=args.input, seed=args.seed)
    executor = Executor(bus, options, output=lambda text: print(text, flush=True))
    executor.add_error_listener(lambda error: print(str(error), file=sys.stderr, flush=True))

    injections = [parse_injection(spec, ports[0]) for spec in args.inject]
    if not executor.start(source):
        return 1

    loop = asyncio.get_running_loop()
    for frame, delay in injections:
        loop.call_later(delay, bus.inject, frame)

    try:
        if args.duration is None:
            await executor.join()
        else:
            await asyncio.wait_for(executor.join(), args.duration)
    except asyncio.TimeoutError:
        pass
    finally:
        executor.stop()
    return 1 if executor.errors else 0


def cmd_run(args) -> int:
    source = read_source(Path(args.input))
    try:
        return asyncio.run(run_script(source, args))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(prog="txscript", description="TxScript CAN test scripts")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Report syntax errors without running")
    check.add_argument("input", help="Input .txs file")
    check.set_defaults(func=cmd_check)

    run = sub.add_parser("run", help="Run on a virtual loopback bus")
    run.add_argument("input", help="Input .txs file")
    run.add_argument("--port", type=int, action="append", help="Target port (repeatable, default 1)")
    run.add_argument("--duration", type=float, help="Stop after this many seconds")
    run.add_argument(
        "--inject", action="append", default=[], metavar="FRAME[@MS]",
        help="Deliver an inbound frame, e.g. 7E8#0641@100",
    )
    run.add_argument(
        "--respond", action="append", default=[], metavar="REQ=RESP",
        help="Answer writes matching REQ with RESP, e.g. 7DF#0201=7E8#0641",
    )
    run.add_argument("--seed", type=int, help="Seed for random() and random_bytes()")
    run.add_argument("-v", "--verbose", action="count", default=0, help="Log to stderr (-vv for debug)")
    run.set_defaults(func=cmd_run)

    args = parser.parse_args(argv)
    level = {0: logging.WARNING, 1: logging.INFO}.get(getattr(args, "verbose", 0), logging.DEBUG)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
