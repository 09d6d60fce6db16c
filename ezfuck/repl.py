from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, TextIO

from .compiler import TOGGLE_DEBUG_SYMBOL, EzfuckSyntaxError, compile_source
from .debugger import DebugView, Debugger
from .interpreter import EzfuckInterpreter, ExecutionState, PointerUnderflow, StepLimitExceeded

logger = logging.getLogger(__name__)

PROMPT = "EZ> "


def format_tape(tape: List[int], pointer: int) -> str:
    """Render cells as pointer/index/decimal/ASCII rows.

    Cells are shown up to the last non-zero cell or the pointer, whichever
    is further right.
    """
    if not tape:
        return ""
    last = max((i for i, value in enumerate(tape) if value != 0), default=0)
    last = min(max(last, pointer), len(tape) - 1)

    ptr_row = ["  "]
    index_row = ["i "]
    raw_row = ["d "]
    ascii_row = ["a "]
    for index in range(last + 1):
        value = tape[index]
        char = chr(value) if value >= 32 else " "
        ptr_row.append("   V  " if index == pointer else "      ")
        index_row.append(f"| {index:03} ")
        raw_row.append(f"| {value:03} ")
        ascii_row.append(f"|  {char}  ")
    return "\n".join(
        [
            "".join(ptr_row),
            "".join(index_row) + "|",
            "".join(raw_row) + "|",
            "".join(ascii_row) + "|",
        ]
    ) + "\n"


def format_view(view: DebugView) -> str:
    lines = [format_tape(view.tape, view.pointer).rstrip("\n")]
    if view.listing:
        width = len(str(view.listing[-1][0]))
        for index, instruction in view.listing:
            marker = "> " if index == view.pc else "  "
            lines.append(f"{index:0{width}} {marker}{instruction}")
    return "\n".join(lines)


def stdin_bytes(stream: TextIO) -> Iterator[int]:
    """Yield input bytes one character at a time, reading lazily."""
    while True:
        char = stream.read(1)
        if not char:
            return
        yield from char.encode("utf-8")


@dataclass
class TerminalConsole:
    stdin: TextIO = field(default_factory=lambda: sys.stdin)
    stdout: TextIO = field(default_factory=lambda: sys.stdout)

    def read_submission(self, view: DebugView) -> str:
        self.stdout.write("\n" + format_view(view) + "\n" + PROMPT)
        self.stdout.flush()
        line = self.stdin.readline()
        if not line:
            # EOF: stop pausing and let the program run out
            return TOGGLE_DEBUG_SYMBOL
        return line

    def report_error(self, error: Exception) -> None:
        self.stdout.write(f"Error: {error}\n")


class ReplSession:
    """Top-level read-eval loop over one persistent execution state."""

    def __init__(
        self,
        interpreter: Optional[EzfuckInterpreter] = None,
        state: Optional[ExecutionState] = None,
    ) -> None:
        self.interpreter = interpreter or EzfuckInterpreter()
        self.state = state or ExecutionState()

    def submit(self, line: str, max_steps: Optional[int] = None) -> str:
        """Compile and execute one line, returning the output it produced.

        Errors propagate; whatever the line did before failing stays applied.
        """
        self.interpreter.output_buffer.clear()
        self.state.instruction_pointer = 0
        self.state.debugging = False
        try:
            program = compile_source(line)
            self.interpreter.execute(program, self.state, max_steps=max_steps)
        finally:
            self.state.instruction_pointer = 0
            self.state.debugging = False
        return "".join(self.interpreter.output_buffer)


def run_repl(
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
    max_steps: Optional[int] = None,
) -> None:
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    interpreter = EzfuckInterpreter(
        debugger=Debugger(TerminalConsole(stdin, stdout)),
        output_stream=stdout,
    )
    interpreter.reset(stdin_bytes(stdin))
    session = ReplSession(interpreter)

    while True:
        stdout.write(format_tape(session.state.tape, session.state.cell_pointer))
        stdout.write(PROMPT)
        stdout.flush()
        line = stdin.readline()
        if not line or line.strip() == TOGGLE_DEBUG_SYMBOL:
            break
        stdout.write("Output: ")
        try:
            session.submit(line, max_steps=max_steps)
        except (EzfuckSyntaxError, PointerUnderflow, StepLimitExceeded) as exc:
            logger.warning("line failed: %s", exc)
            stdout.write(f"\nError: {exc}")
        stdout.write("\n")


__all__ = [
    "PROMPT",
    "ReplSession",
    "TerminalConsole",
    "format_tape",
    "format_view",
    "run_repl",
    "stdin_bytes",
]
