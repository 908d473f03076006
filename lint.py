#!/usr/bin/env python3
"""
Static checks for the kora package and its tests.

Runs isort and Black in check mode, then Flake8 and mypy. Pass --fix to let
isort and Black rewrite files instead of only reporting.
"""

import os
import subprocess
import sys
from pathlib import Path

TARGETS = ["kora", "tests", "examples"]


def run_tool(command, description):
    """Run one tool; returns its exit code."""
    print(f"\n{description}: {' '.join(command)}")
    result = subprocess.run(command, capture_output=True, text=True)

    output = (result.stdout + result.stderr).strip()
    if output:
        print(output)

    status = "ok" if result.returncode == 0 else f"failed ({result.returncode})"
    print(f"{description}: {status}")
    return result.returncode


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    fix = "--fix" in argv

    os.chdir(Path(__file__).parent.absolute())

    check = [] if fix else ["--check"]
    results = [
        run_tool(["isort", *check, *TARGETS], "isort"),
        run_tool(["black", *check, *TARGETS], "black"),
        run_tool(["flake8", "--max-line-length", "110", *TARGETS], "flake8"),
        run_tool(["mypy", "--ignore-missing-imports", "kora"], "mypy"),
    ]
    return int(any(results))


if __name__ == "__main__":
    sys.exit(main())
