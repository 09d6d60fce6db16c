from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Protocol, Tuple

from .compiler import TOGGLE_DEBUG_SYMBOL, EzfuckSyntaxError, Instruction, Program, compile_source
from .interpreter import EzfuckInterpreter, ExecutionState, PointerUnderflow

logger = logging.getLogger(__name__)


@dataclass
class DebugView:
    """What a console gets to show before the paused instruction runs."""

    tape: List[int]
    pointer: int
    pc: int
    listing: List[Tuple[int, Instruction]]


class DebugConsole(Protocol):
    def read_submission(self, view: DebugView) -> str:
        ...

    def report_error(self, error: Exception) -> None:
        ...


@dataclass
class Debugger:
    """Single-step sub-loop entered while the debug flag is set.

    Each pause asks the console for one submission. A bare ``!`` leaves debug
    mode, an empty line does nothing, and anything else is compiled and run
    against a fork of the live state so the paused program keeps its own
    instruction and cell pointers.
    """

    console: DebugConsole
    lookahead: int = 3

    def view(self, program: Program, state: ExecutionState) -> DebugView:
        pc = state.instruction_pointer
        start = max(0, pc - self.lookahead)
        end = min(len(program), pc + self.lookahead + 1)
        return DebugView(
            tape=list(state.tape),
            pointer=state.cell_pointer,
            pc=pc,
            listing=[(index, program[index]) for index in range(start, end)],
        )

    def pause(self, interpreter: EzfuckInterpreter, program: Program, state: ExecutionState) -> None:
        submission = self.console.read_submission(self.view(program, state)).strip()
        if submission == TOGGLE_DEBUG_SYMBOL:
            state.debugging = False
            logger.debug("debug mode left by console at instruction %d", state.instruction_pointer)
        elif submission:
            self.inject(interpreter, submission, state)

    def inject(self, interpreter: EzfuckInterpreter, source: str, state: ExecutionState) -> None:
        logger.debug("injecting %r at instruction %d", source, state.instruction_pointer)
        try:
            program = compile_source(source, allow_debugging=False)
            interpreter.execute(program, state.fork())
        except (EzfuckSyntaxError, PointerUnderflow) as exc:
            logger.warning("injected code failed: %s", exc)
            self.console.report_error(exc)


__all__ = ["DebugConsole", "DebugView", "Debugger"]
