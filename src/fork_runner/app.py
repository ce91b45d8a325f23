"""fork-runner command-line entry point.

Runs one function invocation from the command line:

    fork-runner [--timeout 10s] [--trace-id ID] [--env KEY=VALUE ...]
                [--inherit-env] [--stdin] [--] PROCESS [ARGS...]

Captured output goes to the configured log sink; the runner's own stdout
receives only the ``Trace-ID`` trailer.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import os
import sys
import uuid

from .config import Config, get_config, parse_duration
from .runtime import (
    ForkFunctionRunner,
    FunctionRequest,
    InvocationResult,
    InvocationStatus,
)
from .sinks import create_sink

__all__ = ["build_parser", "exit_code_for", "main"]

logger = logging.getLogger(__name__)

EXIT_SETUP_FAILED = 126
EXIT_START_FAILED = 127


def configure_logging(config: Config) -> None:
    """Configure console logging for the ``fork_runner`` namespace."""
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # Third-party libraries (fluent, asyncio) stay at WARNING
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("fork_runner").setLevel(log_level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fork-runner",
        description="Run a process, shipping its stdout/stderr lines to a log sink.",
    )
    parser.add_argument(
        "--timeout",
        default=None,
        help="Execution deadline (e.g. 1.5, 100ms, 10s, 2m); 0 = unbounded. "
        "Overrides FR_EXEC_TIMEOUT.",
    )
    parser.add_argument(
        "--trace-id",
        default=None,
        help="Trace identifier tagging every record (default: random)",
    )
    parser.add_argument(
        "--env",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Environment entry for the process (repeatable)",
    )
    parser.add_argument(
        "--inherit-env",
        action="store_true",
        help="Start from this process's environment instead of an empty one",
    )
    parser.add_argument(
        "--stdin",
        action="store_true",
        help="Forward this process's stdin to the function",
    )
    parser.add_argument("process", help="Executable to run")
    parser.add_argument("arguments", nargs=argparse.REMAINDER, help="Process arguments")
    return parser


def _build_environment(args: argparse.Namespace) -> list[str]:
    env: dict[str, str] = dict(os.environ) if args.inherit_env else {}
    for entry in args.env:
        key, sep, value = entry.partition("=")
        if not sep or not key:
            raise ValueError(f"--env expects KEY=VALUE, got {entry!r}")
        env[key] = value
    return [f"{key}={value}" for key, value in env.items()]


def exit_code_for(result: InvocationResult) -> int:
    """Shell-style exit code for an invocation result."""
    if result.status is InvocationStatus.SUCCESS:
        return 0
    if result.status is InvocationStatus.SETUP_FAILED:
        return EXIT_SETUP_FAILED
    if result.status is InvocationStatus.START_FAILED:
        return EXIT_START_FAILED
    returncode = result.returncode if result.returncode is not None else 1
    if returncode < 0:
        return 128 + abs(returncode)
    return returncode


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    config = get_config()
    configure_logging(config)

    parser = build_parser()
    args = parser.parse_args(argv)

    arguments = list(args.arguments)
    if arguments and arguments[0] == "--":
        arguments = arguments[1:]

    runner_config = config.runner_config()
    if args.timeout is not None:
        timeout = parse_duration(args.timeout, default=-1.0)
        if timeout < 0:
            parser.error(f"invalid --timeout: {args.timeout!r}")
        runner_config = dataclasses.replace(runner_config, exec_timeout=timeout)

    output = sys.stdout.buffer
    try:
        request = FunctionRequest(
            process=args.process,
            arguments=arguments,
            environment=_build_environment(args),
            input=sys.stdin.buffer if args.stdin else None,
            output=output,
            trace_id=args.trace_id or uuid.uuid4().hex,
        )
    except ValueError as e:
        parser.error(str(e))

    logger.debug(f"Loaded {config}")

    # One sink for the whole process, closed here rather than by the runner
    sink = create_sink(config)
    try:
        runner = ForkFunctionRunner(sink, runner_config)
        result = asyncio.run(runner.run(request))
    finally:
        sink.close()

    output.flush()
    if result.error is not None:
        logger.error(f"Invocation {result.trace_id} {result.status.value}: {result.error}")
    if result.timed_out:
        logger.warning(
            f"Invocation {result.trace_id} exceeded its {runner_config.exec_timeout}s "
            f"deadline and was killed"
        )
    return exit_code_for(result)


if __name__ == "__main__":
    sys.exit(main())
