from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

OPERATOR_SYMBOLS = "+-*/^@<>[].,!"
BRAINFUCK_SYMBOLS = "+-<>[].,"
VALUELESS_SYMBOLS = "[].,!"
DIGITS = "0123456789"
CURRENT_CELL_SYMBOL = "V"
TOGGLE_DEBUG_SYMBOL = "!"
MAX_ARGUMENT = 255


class EzfuckSyntaxError(Exception):
    """Raised when source text cannot be compiled."""

    def __init__(self, message: str, position: int) -> None:
        super().__init__(f"{message} (at position {position})")
        self.position = position


# === Arguments ===


@dataclass(frozen=True)
class Literal:
    value: int

    def resolve(self, current_cell: int) -> int:
        return self.value

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class CurrentCellValue:
    def resolve(self, current_cell: int) -> int:
        return current_cell

    def __str__(self) -> str:
        return CURRENT_CELL_SYMBOL


Argument = Union[Literal, CurrentCellValue]

DEFAULT_ARGUMENT = Literal(1)


class Operator(str, Enum):
    ADDITION = "+"
    SUBTRACTION = "-"
    MULTIPLICATION = "*"
    DIVISION = "/"
    SET = "^"


class Direction(str, Enum):
    LEFT = "<"
    RIGHT = ">"


class Comparison(str, Enum):
    EQUAL = "=="
    NOT_EQUAL = "!="


# === Instructions ===


@dataclass(frozen=True)
class ApplyOperatorToCell:
    operator: Operator
    argument: Argument

    def __str__(self) -> str:
        return f"cell {self.operator.value}= {self.argument}"


@dataclass(frozen=True)
class SetCellPointer:
    argument: Argument

    def __str__(self) -> str:
        return f"pointer = {self.argument}"


@dataclass(frozen=True)
class MoveCellPointer:
    direction: Direction
    argument: Argument

    def __str__(self) -> str:
        sign = "-" if self.direction is Direction.LEFT else "+"
        return f"pointer {sign}= {self.argument}"


@dataclass(frozen=True)
class JumpIf:
    target: int
    compare: Comparison
    match_value: int = 0

    def matches(self, cell_value: int) -> bool:
        if self.compare is Comparison.EQUAL:
            return cell_value == self.match_value
        return cell_value != self.match_value

    def __str__(self) -> str:
        return f"jump to {self.target} if cell {self.compare.value} {self.match_value}"


@dataclass(frozen=True)
class Output:
    def __str__(self) -> str:
        return "output"


@dataclass(frozen=True)
class Input:
    def __str__(self) -> str:
        return "input"


@dataclass(frozen=True)
class ToggleDebug:
    def __str__(self) -> str:
        return "toggle debug"


Instruction = Union[
    ApplyOperatorToCell,
    SetCellPointer,
    MoveCellPointer,
    JumpIf,
    Output,
    Input,
    ToggleDebug,
]

Program = Tuple[Instruction, ...]


# === Compiler ===


class Compiler:
    """Single-pass compiler from Ezfuck source to a flat instruction tuple.

    Bracket pairs are resolved while scanning: each ``[`` leaves a placeholder
    jump whose index is pushed on a stack, and the matching ``]`` patches it.
    """

    def __init__(self, *, allow_debugging: bool = True, brainfuck: bool = False) -> None:
        self.allow_debugging = allow_debugging
        self.brainfuck = brainfuck

    def compile(self, source: str) -> Program:
        self.source = source
        self.pos = 0
        symbols = BRAINFUCK_SYMBOLS if self.brainfuck else OPERATOR_SYMBOLS
        instructions: List[Instruction] = []
        # (instruction index, source position) of each open bracket
        pending: List[Tuple[int, int]] = []

        while self.pos < len(source):
            symbol = source[self.pos]
            position = self.pos
            self.pos += 1
            if symbol not in symbols:
                continue

            argument = None if self.brainfuck else self._scan_argument()
            if argument is not None and symbol in VALUELESS_SYMBOLS:
                raise EzfuckSyntaxError(f"'{symbol}' does not take an argument", position)

            if symbol == "[":
                pending.append((len(instructions), position))
                instructions.append(JumpIf(target=-1, compare=Comparison.EQUAL))
            elif symbol == "]":
                if not pending:
                    raise EzfuckSyntaxError("Unmatched ']'", position)
                start, _ = pending.pop()
                instructions.append(JumpIf(target=start + 1, compare=Comparison.NOT_EQUAL))
                instructions[start] = replace(instructions[start], target=len(instructions))
            elif symbol == TOGGLE_DEBUG_SYMBOL:
                if self.allow_debugging:
                    instructions.append(ToggleDebug())
            else:
                if argument is None:
                    argument = DEFAULT_ARGUMENT
                instructions.append(self._build(symbol, argument))

        if pending:
            _, position = pending[-1]
            raise EzfuckSyntaxError("Unmatched '['", position)

        logger.debug("compiled %d characters into %d instructions", len(source), len(instructions))
        return tuple(instructions)

    def _scan_argument(self) -> Optional[Argument]:
        if self.pos >= len(self.source):
            return None
        if self.source[self.pos] == CURRENT_CELL_SYMBOL:
            self.pos += 1
            return CurrentCellValue()

        start = self.pos
        while self.pos < len(self.source) and self.source[self.pos] in DIGITS:
            self.pos += 1
        if self.pos == start:
            return None
        digits = self.source[start : self.pos].lstrip("0") or "0"
        if len(digits) > len(str(MAX_ARGUMENT)) or int(digits) > MAX_ARGUMENT:
            shown = digits if len(digits) <= 12 else digits[:12] + "..."
            raise EzfuckSyntaxError(
                f"Argument {shown} is outside the range 0-{MAX_ARGUMENT}", start
            )
        return Literal(int(digits))

    def _build(self, symbol: str, argument: Argument) -> Instruction:
        if symbol == "@":
            return SetCellPointer(argument)
        if symbol == ".":
            return Output()
        if symbol == ",":
            return Input()
        if symbol in "<>":
            return MoveCellPointer(Direction(symbol), argument)
        return ApplyOperatorToCell(Operator(symbol), argument)


def compile_source(
    source: str,
    *,
    allow_debugging: bool = True,
    brainfuck: bool = False,
) -> Program:
    return Compiler(allow_debugging=allow_debugging, brainfuck=brainfuck).compile(source)


def format_listing(program: Program, start: int = 0, end: Optional[int] = None, marker: Optional[int] = None) -> str:
    """Render ``program[start:end]`` as numbered lines, flagging ``marker``."""
    if not program:
        return "(empty)"
    end = len(program) if end is None else min(end, len(program))
    width = len(str(len(program) - 1))
    lines: List[str] = []
    for index in range(start, end):
        flag = "> " if index == marker else "  "
        lines.append(f"{index:0{width}} {flag}{program[index]}")
    return "\n".join(lines)


__all__ = [
    "Argument",
    "ApplyOperatorToCell",
    "Comparison",
    "Compiler",
    "CurrentCellValue",
    "Direction",
    "EzfuckSyntaxError",
    "Input",
    "Instruction",
    "JumpIf",
    "Literal",
    "MoveCellPointer",
    "Operator",
    "Output",
    "Program",
    "SetCellPointer",
    "ToggleDebug",
    "compile_source",
    "format_listing",
]
