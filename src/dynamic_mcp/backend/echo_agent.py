"""Local stand-in agent for CLI backend integration tests."""

from __future__ import annotations

import argparse
import os
import sys
import time


def main(argv: list[str] | None = None) -> int:
    """Echo the task back, optionally slow or failing."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--exit-code", type=int, default=0)
    parser.add_argument("--sleep-seconds", type=float, default=0.0)
    parser.add_argument("--stderr", default="")
    parser.add_argument("--print-cwd", action="store_true")
    parser.add_argument("task")
    args = parser.parse_args(argv)

    if args.sleep_seconds > 0:
        time.sleep(args.sleep_seconds)
    if args.print_cwd:
        print(os.getcwd())
    print(args.task)
    if args.stderr:
        print(args.stderr, file=sys.stderr)
    return args.exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
