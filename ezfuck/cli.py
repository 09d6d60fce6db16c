from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Iterable, Optional

from .compiler import EzfuckSyntaxError, compile_source, format_listing
from .debugger import Debugger
from .interpreter import EzfuckInterpreter, ExecutionState, PointerUnderflow, StepLimitExceeded
from .repl import TerminalConsole, run_repl, stdin_bytes


def _read_source(path: str) -> str:
    source_path = Path(path)
    if not source_path.exists():
        raise FileNotFoundError(f"Source file not found: {path}")
    return source_path.read_text(encoding="utf-8")


def _to_input_bytes(data: str) -> Iterable[int]:
    return list(data.encode("utf-8"))


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Ezfuck interpreter")
    parser.add_argument(
        "source",
        nargs="?",
        help="Path to an Ezfuck source file (omit to start the REPL)",
    )
    parser.add_argument(
        "--input",
        help="Input string supplied to the program (default: read from stdin)",
    )
    parser.add_argument(
        "--brainfuck",
        action="store_true",
        help="Treat the source as plain Brainfuck",
    )
    parser.add_argument(
        "--max-steps",
        type=int,
        default=None,
        help="Abort after this many executed instructions",
    )
    parser.add_argument(
        "--dump",
        action="store_true",
        help="Print the compiled instruction listing instead of running",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.source is None:
        run_repl(max_steps=args.max_steps)
        return 0

    try:
        source_text = _read_source(args.source)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    try:
        program = compile_source(source_text, brainfuck=args.brainfuck)
    except EzfuckSyntaxError as exc:
        print(f"Syntax error: {exc}", file=sys.stderr)
        return 1

    if args.dump:
        sys.stdout.write(format_listing(program) + "\n")
        return 0

    interpreter = EzfuckInterpreter(
        debugger=Debugger(TerminalConsole()),
        output_stream=sys.stdout,
    )
    if args.input is not None:
        interpreter.reset(_to_input_bytes(args.input))
    else:
        interpreter.reset(stdin_bytes(sys.stdin))

    try:
        interpreter.execute(program, ExecutionState(), max_steps=args.max_steps)
    except (PointerUnderflow, StepLimitExceeded) as exc:
        sys.stdout.flush()
        print(f"\nRuntime error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
