from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from m86asm.encoding import clamp_u32


ZERO_FLAG = 0x01
SIGN_FLAG = 0x02


def to_int32(value: int) -> int:
    return ((value + 0x80000000) & 0xFFFFFFFF) - 0x80000000


def sign_extend16(value: int) -> int:
    value &= 0xFFFF
    return value - 0x10000 if value & 0x8000 else value


@dataclass
class CPUState:
    memory: List[int] = field(default_factory=list)
    acc: int = 0
    ip: int = 0
    ir: int = 0
    zero: bool = False
    sign: bool = False

    def reset(self, size: int) -> None:
        self.memory = [0] * size
        self.acc = 0
        self.ip = 0
        self.ir = 0
        self.zero = False
        self.sign = False

    @property
    def memory_size(self) -> int:
        return len(self.memory)

    @property
    def flags(self) -> int:
        return (ZERO_FLAG if self.zero else 0) | (SIGN_FLAG if self.sign else 0)

    def in_bounds(self, addr: int) -> bool:
        return 0 <= addr < len(self.memory)

    def read(self, addr: int) -> int:
        return self.memory[addr]

    def write(self, addr: int, value: int) -> None:
        self.memory[addr] = to_int32(value)

    def set_acc(self, value: int) -> None:
        self.acc = to_int32(value)

    def set_flags(self, value: int) -> None:
        value = to_int32(value)
        self.zero = value == 0
        self.sign = value < 0

    def dump(self) -> str:
        return (
            f"Registers: acc: 0x{clamp_u32(self.acc):08X} ip: 0x{self.ip:08X}"
            f" flags: 0x{self.flags:08X} (ir: 0x{clamp_u32(self.ir):08X})"
        )

    def dump_memory(self) -> str:
        """One line per cell; runs of zero cells collapse to a single ellipsis."""
        lines: List[str] = []
        zeros = 0
        last = len(self.memory) - 1
        for addr, value in enumerate(self.memory):
            if value == 0:
                zeros += 1
                if zeros > 1 and addr < last:
                    if zeros == 2:
                        lines.append(". . . . .")
                    continue
            else:
                zeros = 0
            lines.append(f"0x{addr:08X}:\t0x{clamp_u32(value):08X}")
        return "".join(f"{line}\n" for line in lines)
