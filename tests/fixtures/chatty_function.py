#!/usr/bin/env python3
"""Fake function for runner tests.

Writes numbered lines to stdout and/or stderr, optionally echoes stdin,
sleeps, and exits with a chosen code.

Usage:
    python chatty_function.py [--stdout N] [--stderr N] [--echo-stdin]
                              [--sleep SECONDS] [--exit-code CODE]
                              [--long-line BYTES] [--no-newline TEXT]
                              [--print-env NAME ...] [--env-count]
"""

from __future__ import annotations

import argparse
import os
import sys
import time
from typing import NoReturn


def main() -> NoReturn:
    parser = argparse.ArgumentParser(description="Fake function for testing")
    parser.add_argument("--stdout", type=int, default=0, help="Lines to write to stdout")
    parser.add_argument("--stderr", type=int, default=0, help="Lines to write to stderr")
    parser.add_argument("--echo-stdin", action="store_true", help="Copy stdin to stdout")
    parser.add_argument("--sleep", type=float, default=0.0, help="Seconds to sleep before exit")
    parser.add_argument("--exit-code", type=int, default=0, help="Exit code")
    parser.add_argument("--long-line", type=int, default=0, help="Write one stdout line of this size")
    parser.add_argument("--no-newline", default=None, help="Final stdout text without newline")
    parser.add_argument("--print-env", action="append", default=[], help="Print NAME=VALUE")
    parser.add_argument("--env-count", action="store_true", help="Print number of env vars")
    args = parser.parse_args()

    # Interleave so both pipes fill concurrently
    for i in range(max(args.stdout, args.stderr)):
        if i < args.stdout:
            sys.stdout.write(f"out {i}\n")
        if i < args.stderr:
            sys.stderr.write(f"err {i}\n")
    sys.stdout.flush()
    sys.stderr.flush()

    if args.long_line:
        sys.stdout.write("x" * args.long_line + "\n")
        sys.stdout.write("after long line\n")
        sys.stdout.flush()

    if args.echo_stdin:
        for line in sys.stdin:
            sys.stdout.write(f"stdin: {line}")
        sys.stdout.flush()

    for name in args.print_env:
        print(f"{name}={os.environ.get(name, '<unset>')}", flush=True)

    if args.env_count:
        # Python itself may add LC_CTYPE when the locale is coerced
        names = [k for k in os.environ if k != "LC_CTYPE"]
        print(f"env_count={len(names)}", flush=True)

    if args.no_newline is not None:
        sys.stdout.write(args.no_newline)
        sys.stdout.flush()

    if args.sleep:
        time.sleep(args.sleep)

    sys.exit(args.exit_code)


if __name__ == "__main__":
    main()
