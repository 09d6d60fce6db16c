from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Iterator, List, Optional, TextIO, Union

from .compiler import (
    ApplyOperatorToCell,
    Direction,
    Input,
    Instruction,
    JumpIf,
    MoveCellPointer,
    Operator,
    Output,
    Program,
    SetCellPointer,
    ToggleDebug,
    compile_source,
)

if TYPE_CHECKING:
    from .debugger import Debugger

logger = logging.getLogger(__name__)

CELL_MODULUS = 256


class StepLimitExceeded(RuntimeError):
    """Raised when Ezfuck execution exceeds the configured step budget."""


class PointerUnderflow(IndexError):
    """Raised when the cell pointer is moved before the start of the tape."""


@dataclass
class ExecutionState:
    tape: List[int] = field(default_factory=lambda: [0])
    cell_pointer: int = 0
    instruction_pointer: int = 0
    debugging: bool = False

    @property
    def current_cell(self) -> int:
        return self.tape[self.cell_pointer]

    @current_cell.setter
    def current_cell(self, value: int) -> None:
        self.tape[self.cell_pointer] = value % CELL_MODULUS

    def move_to(self, index: int) -> None:
        if index < 0:
            raise PointerUnderflow(f"Pointer moved before start of tape (to {index}).")
        if index >= len(self.tape):
            self.tape.extend([0] * (index - len(self.tape) + 1))
        self.cell_pointer = index

    def fork(self) -> "ExecutionState":
        """Return a state sharing this tape but owning its own pointers."""
        return ExecutionState(tape=self.tape, cell_pointer=self.cell_pointer)


@dataclass
class Snapshot:
    step: int
    pc: int
    instruction: Optional[Instruction]
    pointer: int
    tape_start: int
    tape: List[int]
    output: str
    code_length: int
    debugging: bool = False


def apply_operator(operator: Operator, cell: int, value: int) -> int:
    if operator is Operator.ADDITION:
        return (cell + value) % CELL_MODULUS
    if operator is Operator.SUBTRACTION:
        return (cell - value) % CELL_MODULUS
    if operator is Operator.MULTIPLICATION:
        return (cell * value) % CELL_MODULUS
    if operator is Operator.DIVISION:
        if value == 0:
            return cell
        return cell // value
    return value


@dataclass
class EzfuckInterpreter:
    debugger: Optional["Debugger"] = None
    output_stream: Optional[TextIO] = None
    tape_window: int = 10

    output_buffer: List[str] = field(init=False, repr=False)
    input_iter: Iterator[int] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.reset()

    def reset(self, input_data: Optional[Iterable[int]] = None) -> None:
        self.output_buffer = []
        self.input_iter = iter(input_data or [])

    def run(
        self,
        code: Union[str, Program],
        input_data: Optional[Iterable[int]] = None,
        max_steps: Optional[int] = None,
        state: Optional[ExecutionState] = None,
    ) -> str:
        program = compile_source(code) if isinstance(code, str) else code
        self.reset(input_data)
        if state is None:
            state = ExecutionState()
        state.instruction_pointer = 0
        self.execute(program, state, max_steps)
        return "".join(self.output_buffer)

    def execute(
        self,
        program: Program,
        state: ExecutionState,
        max_steps: Optional[int] = None,
    ) -> None:
        for _ in self.step(program, state, max_steps=max_steps):
            pass

    def step(
        self,
        program: Program,
        state: ExecutionState,
        max_steps: Optional[int] = None,
    ) -> Iterator[Snapshot]:
        steps = 0
        code_length = len(program)

        while state.instruction_pointer < code_length:
            if max_steps is not None and steps >= max_steps:
                raise StepLimitExceeded("Ezfuck program exceeded allowed step count")

            if state.debugging and self.debugger is not None:
                self.debugger.pause(self, program, state)

            instruction = program[state.instruction_pointer]
            state.instruction_pointer = self.execute_instruction(instruction, state)
            steps += 1
            yield self.snapshot(state, instruction, steps, code_length)

        # Emit final snapshot indicating completion
        yield self.snapshot(state, None, steps, code_length)

    def execute_instruction(self, instruction: Instruction, state: ExecutionState) -> int:
        new_pc = state.instruction_pointer + 1
        if isinstance(instruction, ApplyOperatorToCell):
            value = instruction.argument.resolve(state.current_cell)
            state.current_cell = apply_operator(instruction.operator, state.current_cell, value)
        elif isinstance(instruction, MoveCellPointer):
            offset = instruction.argument.resolve(state.current_cell)
            if instruction.direction is Direction.LEFT:
                offset = -offset
            state.move_to(state.cell_pointer + offset)
        elif isinstance(instruction, SetCellPointer):
            state.move_to(instruction.argument.resolve(state.current_cell))
        elif isinstance(instruction, JumpIf):
            if instruction.matches(state.current_cell):
                new_pc = instruction.target
        elif isinstance(instruction, Output):
            self._emit(state.current_cell)
        elif isinstance(instruction, Input):
            value = next(self.input_iter, None)
            if value is not None:
                state.current_cell = value
        elif isinstance(instruction, ToggleDebug):
            state.debugging = not state.debugging
            logger.debug(
                "debug mode %s at instruction %d",
                "entered" if state.debugging else "left",
                state.instruction_pointer,
            )
        else:  # pragma: no cover - closed set
            raise TypeError(f"Unknown instruction: {instruction!r}")
        return new_pc

    def _emit(self, value: int) -> None:
        char = chr(value)
        self.output_buffer.append(char)
        if self.output_stream is not None:
            self.output_stream.write(char)
            self.output_stream.flush()

    def snapshot(
        self,
        state: ExecutionState,
        instruction: Optional[Instruction],
        step: int,
        code_length: int,
        tape_window: Optional[int] = None,
    ) -> Snapshot:
        window = self.tape_window if tape_window is None else tape_window
        start = max(0, state.cell_pointer - window)
        end = min(len(state.tape), state.cell_pointer + window + 1)
        return Snapshot(
            step=step,
            pc=state.instruction_pointer,
            instruction=instruction,
            pointer=state.cell_pointer,
            tape_start=start,
            tape=state.tape[start:end].copy(),
            output="".join(self.output_buffer),
            code_length=code_length,
            debugging=state.debugging,
        )


__all__ = [
    "CELL_MODULUS",
    "EzfuckInterpreter",
    "ExecutionState",
    "PointerUnderflow",
    "Snapshot",
    "StepLimitExceeded",
    "apply_operator",
]
