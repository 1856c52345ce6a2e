"""Scripted stand-in agent for CLI backend integration tests."""

from __future__ import annotations

import argparse
import os
import sys
import time

from ralph_thinks_first.orchestrator.events import encode_event


def main(argv: list[str] | None = None) -> int:
    """Read the prompt from stdin and replay the scripted streams."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--stdout", action="append", default=[])
    parser.add_argument("--event", action="append", default=[], help="Raw JSON event line.")
    parser.add_argument("--raw-stderr", action="append", default=[])
    parser.add_argument("--split-event", default=None, help="Event line written in two chunks.")
    parser.add_argument("--echo-prompt", action="store_true")
    parser.add_argument("--skip-stdin", action="store_true")
    parser.add_argument("--hang", type=float, default=0.0)
    parser.add_argument("--exit-code", type=int, default=0)
    parser.add_argument("--model", default=None)
    parser.add_argument("--dangerously-skip-permissions", action="store_true")
    args, _unknown = parser.parse_known_args(argv)

    prompt = "" if args.skip_stdin else sys.stdin.read()
    role = os.getenv("RTF_AGENT_ROLE", "unknown")

    sys.stderr.write(encode_event("status", role, status="starting"))
    for line in args.raw_stderr:
        sys.stderr.write(line + "\n")
    for line in args.event:
        sys.stderr.write(line + "\n")
    if args.split_event:
        middle = len(args.split_event) // 2
        sys.stderr.write(args.split_event[:middle])
        sys.stderr.flush()
        time.sleep(0.05)
        sys.stderr.write(args.split_event[middle:] + "\n")
    sys.stderr.flush()

    if args.echo_prompt:
        sys.stdout.write(prompt)
    if args.model:
        sys.stdout.write(f"model={args.model}\n")
    if args.dangerously_skip_permissions:
        sys.stdout.write("permissions=skipped\n")
    for line in args.stdout:
        sys.stdout.write(line + "\n")
    sys.stdout.flush()

    if args.hang > 0:
        time.sleep(args.hang)

    sys.stderr.write(encode_event("status", role, status="completed"))
    sys.stderr.flush()
    return args.exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
