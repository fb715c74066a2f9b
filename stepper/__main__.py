"""Command-line entry point: ``python -m stepper [file]``."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from . import constants
from .api import format_step
from .errors import ExecutionError
from .run import run
from .run_types import StepperConfig

DEMO_SOURCE = """\
function factorial(n) {
  if (n <= 1) {
    return 1;
  }
  return n * factorial(n - 1);
}

let total = 0;
for (let i = 1; i <= 3; i++) {
  total += factorial(i);
  console.log(i, total);
}
"""


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stepper", description="Step-by-step JavaScript execution tracer"
    )
    parser.add_argument("file", nargs="?", help="Source file to trace")
    parser.add_argument(
        "--language",
        "-l",
        default=constants.LANGUAGE_JAVASCRIPT,
        choices=constants.SUPPORTED_LANGUAGES,
        help="Source language (default: javascript)",
    )
    parser.add_argument(
        "--max-steps",
        "-n",
        type=int,
        default=constants.DEFAULT_MAX_STEPS,
        help=f"Maximum recorded steps (default: {constants.DEFAULT_MAX_STEPS})",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=constants.DEFAULT_MAX_ITERATIONS,
        help=f"Maximum iterations per loop (default: {constants.DEFAULT_MAX_ITERATIONS})",
    )
    parser.add_argument(
        "--timeout-ms",
        type=int,
        default=constants.DEFAULT_TIMEOUT_MS,
        help=f"Wall-clock budget per loop in ms (default: {constants.DEFAULT_TIMEOUT_MS})",
    )
    parser.add_argument(
        "--no-dedup", action="store_true", help="Keep adjacent duplicate steps"
    )
    parser.add_argument(
        "--json", action="store_true", help="Print the steps in wire form as JSON"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Log pipeline progress"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    if not args.file:
        # Demo mode: use a built-in example
        source = DEMO_SOURCE
        print("No file provided. Using built-in demo:\n")
        print(source)
    else:
        with open(args.file, encoding="utf-8") as f:
            source = f.read()

    try:
        config = StepperConfig(
            max_iterations=args.max_iterations,
            timeout_ms=args.timeout_ms,
            max_steps=args.max_steps,
            deduplicate=not args.no_dedup,
            language=args.language,
        )
        trace, stats = run(source, config=config)
    except (ExecutionError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(trace.to_dicts(), indent=2, ensure_ascii=False))
    else:
        print("═══ Steps ═══")
        for index, step in enumerate(trace.steps):
            print(format_step(index, step))
        print()
        print(stats.report())
    return 0


if __name__ == "__main__":
    sys.exit(main())
