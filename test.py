#!/usr/bin/env python3.14
# SPDX-License-Identifier: Apache-2.0

"""
Test harness for TxScript integration tests.
Finds all .txs files under tests/integration/, runs them on the loopback
bus and verifies expected exit code / output / error messages.
"""

import os
import re
import shlex
import subprocess
import sys
from pathlib import Path

RUNNER = [sys.executable, "-m", "txscript.runner"]
TESTS_DIR = Path("tests/integration")


def parse_test_file(path: Path):
    """Extract expectations from the file's leading comment block.

    OUTPUT: lines accumulate, one per expected stdout line. ARGS: holds extra
    runner options (shell-quoted).
    """
    content = path.read_text(encoding="utf-8")

    header_lines = []
    for line in content.splitlines():
        line = line.strip()
        if line.startswith("//"):
            header_lines.append(line[2:].strip())
        else:
            break

    expected = {
        "exit_code": None,
        "output": None,
        "syntax_error": False,
        "error_patterns": [],
        "args": [],
    }
    for line in header_lines:
        m = re.match(r"EXPECTED:\s*exit_code=(\d+)", line, re.IGNORECASE)
        if m:
            expected["exit_code"] = int(m.group(1))
            continue
        m = re.match(r"EXPECTED:\s*syntax_error", line, re.IGNORECASE)
        if m:
            expected["syntax_error"] = True
            continue
        m = re.match(r"OUTPUT:\s?(.*)", line, re.IGNORECASE)
        if m:
            if expected["output"] is None:
                expected["output"] = []
            expected["output"].append(m.group(1).rstrip())
            continue
        m = re.match(r"ERROR:\s*(.*)", line, re.IGNORECASE)
        if m:
            expected["error_patterns"].append(m.group(1).strip())
            continue
        m = re.match(r"ARGS:\s*(.*)", line, re.IGNORECASE)
        if m:
            expected["args"].extend(shlex.split(m.group(1)))
            continue

    return expected


def check_errors(expected, stderr: str):
    for pattern in expected["error_patterns"]:
        if pattern not in stderr:
            return f"Expected error pattern {pattern!r} not found in stderr:\n{stderr}"
    return None


def run_test(test_path: Path):
    """Run a single integration test and return (success, message)."""
    expected = parse_test_file(test_path)

    if expected["syntax_error"]:
        proc = subprocess.run(
            RUNNER + ["check", str(test_path)], capture_output=True, text=True, cwd=Path.cwd()
        )
        if proc.returncode == 0:
            return False, "Expected syntax errors, but check succeeded"
        problem = check_errors(expected, proc.stderr)
        if problem:
            return False, problem
        return True, "Rejected as expected"

    cmd = RUNNER + ["run", str(test_path)] + expected["args"]
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, cwd=Path.cwd(), timeout=30)
    except subprocess.TimeoutExpired:
        return False, "Timed out"

    if expected["exit_code"] is not None and proc.returncode != expected["exit_code"]:
        return (
            False,
            f"Exit code {proc.returncode} != expected {expected['exit_code']}\n{proc.stderr}",
        )

    problem = check_errors(expected, proc.stderr)
    if problem:
        return False, problem

    if expected["output"] is not None:
        got = proc.stdout.rstrip("\n").splitlines()
        want = expected["output"]
        if got != want:
            return False, f"Output mismatch:\n  got:  {got!r}\n  want: {want!r}"

    return True, "OK"


def main():
    tests = sorted(TESTS_DIR.rglob("*.txs"))
    if not tests:
        print("No integration tests found.")
        return 1

    failed = 0
    for test in tests:
        rel = os.path.relpath(str(test), start=str(Path.cwd()))
        print(f"TEST {rel} ... ", end="", flush=True)
        ok, msg = run_test(test)
        if ok:
            print("PASS")
        else:
            print("FAIL")
            print(f"  {msg}")
            failed += 1

    if failed:
        print(f"\n{len(tests) - failed} passed, {failed} failed")
        return 1
    print(f"\nAll {len(tests)} tests passed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
