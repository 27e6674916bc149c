"""Binding of raw operand text against a complete symbol table.

Both code generators go through :func:`resolve`, so immediate operands
(literals and label references) and direct operands (variables) are
interpreted in one place. Numeric jump targets must name an instruction
position or the end of the code. Variables live right after the code, in
declaration order, which fixes their absolute addresses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from m86asm.isa import JUMP_ROLES, IsaDescriptor
from m86asm.model import AbstractInstruction, Program
from m86asm.parser import parse_integer


LITERAL = "literal"
LABEL = "label"
VARIABLE = "variable"


class UnresolvedReferenceError(Exception):
    def __init__(self, message: str, line_no: int, text: str) -> None:
        super().__init__(f"{message} (line {line_no})" if line_no else message)
        self.message = message
        self.line_no = line_no
        self.text = text


class UnresolvedLabelError(UnresolvedReferenceError):
    pass


class UnresolvedVariableError(UnresolvedReferenceError):
    pass


@dataclass(frozen=True)
class ResolvedOperand:
    kind: str  # literal, label, variable
    text: str
    value: int


@dataclass(frozen=True)
class ResolvedInstruction:
    instruction: AbstractInstruction
    role: Optional[str]
    immediate: bool
    operand: Optional[ResolvedOperand] = None

    @property
    def position(self) -> int:
        return self.instruction.position

    @property
    def opcode(self) -> int:
        return self.instruction.opcode


def resolve_operand(
    instr: AbstractInstruction, immediate: bool, program: Program
) -> ResolvedOperand:
    text = instr.operand or ""
    if immediate:
        literal = parse_integer(text)
        if literal is not None:
            return ResolvedOperand(LITERAL, text, literal)
        position = program.symbols.get_label(text)
        if position is None:
            raise UnresolvedLabelError(f"Unknown label: {text}", instr.line_no, text)
        return ResolvedOperand(LABEL, text, position)
    address = program.variable_address(text)
    if address is None:
        raise UnresolvedVariableError(f"Unknown variable: {text}", instr.line_no, text)
    return ResolvedOperand(VARIABLE, text, address)


def _check_jump_target(instr: AbstractInstruction, operand: ResolvedOperand, program: Program) -> None:
    if not 0 <= operand.value <= program.instruction_count:
        raise UnresolvedLabelError(f"Jump target out of range: {operand.text}", instr.line_no, operand.text)


def resolve(program: Program, descriptor: IsaDescriptor) -> Tuple[ResolvedInstruction, ...]:
    resolved: List[ResolvedInstruction] = []
    for instr in program.instructions:
        entry = descriptor.entry_for(instr.opcode).unwrap()
        immediate = descriptor.is_immediate(instr.opcode).unwrap()
        operand = None
        if instr.operand is not None:
            operand = resolve_operand(instr, immediate, program)
            if entry.role in JUMP_ROLES and operand.kind == LITERAL:
                _check_jump_target(instr, operand, program)
        resolved.append(ResolvedInstruction(instr, entry.role, immediate, operand))
    return tuple(resolved)
