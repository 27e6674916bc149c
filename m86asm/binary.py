from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Tuple

from m86asm.encoding import OperandRangeError, clamp_u32, encode_word, format_word
from m86asm.isa import IsaDescriptor
from m86asm.model import Program
from m86asm.resolver import resolve


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BinaryImage:
    words: Tuple[int, ...]
    instruction_count: int
    variable_count: int

    @property
    def code(self) -> Tuple[int, ...]:
        return self.words[: self.instruction_count]

    @property
    def data(self) -> Tuple[int, ...]:
        return self.words[self.instruction_count :]

    def lines(self, radix: str = "hex") -> List[str]:
        return [format_word(word, radix) for word in self.words]

    def render(self, radix: str = "hex") -> str:
        return "".join(f"{line}\n" for line in self.lines(radix))


def generate_binary(program: Program, descriptor: IsaDescriptor) -> BinaryImage:
    words: List[int] = []
    for item in resolve(program, descriptor):
        operand = item.operand.value if item.operand is not None else None
        try:
            word = encode_word(item.opcode, operand)
        except OperandRangeError as exc:
            raise OperandRangeError(f"{exc.message} (line {item.instruction.line_no})", exc.value) from exc
        logger.debug("%04d %s %s -> %08X", item.position, item.instruction.mnemonic, operand, word)
        words.append(word)
    for name, value in program.symbols.variables.items():
        words.append(clamp_u32(value))
        logger.debug("%04d %s = %d", program.variable_address(name), name, value)
    return BinaryImage(
        words=tuple(words),
        instruction_count=program.instruction_count,
        variable_count=program.variable_count,
    )
