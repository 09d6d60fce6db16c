from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from .compiler import Program, compile_source
from .debugger import DebugView, Debugger
from .interpreter import (
    EzfuckInterpreter,
    ExecutionState,
    PointerUnderflow,
    Snapshot,
    StepLimitExceeded,
)


class _CollectingConsole:
    """Debug console for sessions driven from outside a terminal."""

    def __init__(self) -> None:
        self.errors: List[str] = []

    def read_submission(self, view: DebugView) -> str:
        return ""

    def report_error(self, error: Exception) -> None:
        self.errors.append(str(error))


@dataclass
class VisualizerSession:
    code: str
    input_template: List[int]
    tape_window: int = 10
    max_steps: Optional[int] = None
    history_limit: int = 200
    brainfuck: bool = False

    def __post_init__(self) -> None:
        self.program: Program = compile_source(self.code, brainfuck=self.brainfuck)
        self.breakpoints: set[int] = set()
        self.history: List[Snapshot] = []
        self.hit_breakpoint: Optional[int] = None
        self.console = _CollectingConsole()
        self.debugger = Debugger(self.console)
        self._init_interpreter()

    def _init_interpreter(self) -> None:
        self.interpreter = EzfuckInterpreter(tape_window=self.tape_window)
        self.interpreter.reset(list(self.input_template))
        self.state = ExecutionState()
        self.step_iter = self.interpreter.step(
            self.program,
            self.state,
            max_steps=self.max_steps,
        )
        self.finished = False
        self.last_state: Snapshot = self._current_snapshot(step=0)
        self._record_state(self.last_state)

    def restart(self, *, keep_breakpoints: bool = True) -> None:
        """Rewind to step 0 with a fresh tape, history and input."""
        self.history.clear()
        self.hit_breakpoint = None
        if not keep_breakpoints:
            self.breakpoints.clear()
        self._init_interpreter()

    def _current_snapshot(self, step: int) -> Snapshot:
        return self.interpreter.snapshot(self.state, None, step, len(self.program))

    def _record_state(self, state: Snapshot) -> None:
        self.history.append(state)
        if len(self.history) > self.history_limit:
            self.history.pop(0)
        self.last_state = state

    def step_forward(self, count: int = 1) -> Sequence[Snapshot]:
        states: List[Snapshot] = []
        if count <= 0:
            return states
        self.hit_breakpoint = None
        for _ in range(count):
            if self.finished:
                break
            was_debugging = self.state.debugging
            try:
                state = next(self.step_iter)
            except StopIteration:
                self.finished = True
                break
            except (StepLimitExceeded, PointerUnderflow):
                self.finished = True
                raise
            self._record_state(state)
            states.append(state)
            if state.instruction is None and state.pc >= len(self.program):
                self.finished = True
                break
            if state.pc in self.breakpoints:
                self.hit_breakpoint = state.pc
                break
            if state.debugging and not was_debugging:
                # program toggled into debug mode: pause like a breakpoint
                self.hit_breakpoint = state.pc
                break
        if not states and self.finished:
            self.hit_breakpoint = None
        return states

    def run_until_break(self, limit: Optional[int] = None) -> Sequence[Snapshot]:
        states: List[Snapshot] = []
        executed = 0
        while limit is None or executed < limit:
            step_states = self.step_forward(1)
            if not step_states:
                break
            states.extend(step_states)
            executed += 1
            if self.hit_breakpoint is not None:
                break
        return states

    def inject(self, source: str) -> Snapshot:
        """Run ``source`` against the live tape without moving the program."""
        self.console.errors.clear()
        self.debugger.inject(self.interpreter, source, self.state)
        snapshot = self._current_snapshot(step=self.last_state.step)
        self.last_state = snapshot
        return snapshot

    def injection_errors(self) -> List[str]:
        return list(self.console.errors)

    def current_state(self) -> Snapshot:
        return self.last_state

    def add_breakpoint(self, pc: int) -> None:
        self.breakpoints.add(pc)

    def remove_breakpoint(self, pc: int) -> bool:
        if pc in self.breakpoints:
            self.breakpoints.remove(pc)
            return True
        return False

    def clear_breakpoints(self) -> None:
        self.breakpoints.clear()

    def list_breakpoints(self) -> List[int]:
        return sorted(self.breakpoints)

    def is_finished(self) -> bool:
        return self.finished


__all__ = ["VisualizerSession"]
