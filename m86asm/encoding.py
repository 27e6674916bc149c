from __future__ import annotations

from typing import Optional, Tuple


WORD_DIGITS = 8
WORD_BITS = 32
OPERAND_MASK = 0xFFFF
OPERAND_MIN = -0x8000
OPERAND_MAX = 0xFFFF
RADIXES = ("hex", "bin")


class OperandRangeError(ValueError):
    def __init__(self, message: str, value: int) -> None:
        super().__init__(message)
        self.message = message
        self.value = value


def clamp_u32(value: int) -> int:
    return value & 0xFFFFFFFF


def encode_word(opcode: int, operand: Optional[int] = None) -> int:
    """Pack an opcode into the upper half and its operand into the lower half."""
    if not 0 <= opcode <= 0xFFFF:
        raise OperandRangeError(f"Opcode out of range: {opcode}", opcode)
    if operand is None:
        return opcode << 16
    if not OPERAND_MIN <= operand <= OPERAND_MAX:
        raise OperandRangeError(f"Operand does not fit in 16 bits: {operand}", operand)
    return (opcode << 16) | (operand & OPERAND_MASK)


def decode_word(word: int) -> Tuple[int, int]:
    word = clamp_u32(word)
    return word >> 16, word & OPERAND_MASK


def format_word(word: int, radix: str = "hex") -> str:
    if radix == "hex":
        return f"{clamp_u32(word):0{WORD_DIGITS}X}"
    if radix == "bin":
        return f"{clamp_u32(word):0{WORD_BITS}b}"
    raise ValueError(f"Unsupported radix: {radix}")


def parse_word(text: str) -> int:
    return int(text.strip(), 16)
