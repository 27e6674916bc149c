"""Fetch/decode/execute loop for Micro86 machine words.

A program is the word listing produced by the binary generator: code first,
then variable cells. Execution semantics are bound to the statement roles of
the instruction set descriptor, so a renumbered descriptor runs unchanged.
"""

from __future__ import annotations

import logging
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, TextIO

from m86asm.cpu import CPUState, sign_extend16, to_int32
from m86asm.encoding import decode_word, parse_word
from m86asm.isa import JUMP_ROLES, IsaDescriptor
from m86asm.source import read_text


logger = logging.getLogger(__name__)

VERSION = "1.0"
DEFAULT_MEMORY_SIZE = 20
MEMORY_EXTENSION = DEFAULT_MEMORY_SIZE
PROGRAM_COMMENT = "#"
WORD_RE = re.compile(r"^[0-9A-Fa-f]{1,8}$")


class ProgramFormatError(Exception):
    def __init__(self, message: str, line_no: int, text: str, source: str = "<program>") -> None:
        super().__init__(f"{message} (line {line_no} in {source})")
        self.message = message
        self.line_no = line_no
        self.text = text
        self.source = source


class EmulationError(Exception):
    def __init__(self, message: str, address: int, word: int = 0) -> None:
        super().__init__(f"{message} (at 0x{address:08X})")
        self.message = message
        self.address = address
        self.word = word


@dataclass
class ExecResult:
    next_ip: Optional[int] = None
    halt: bool = False
    output: Optional[str] = None


@dataclass
class StepOutcome:
    halted: bool = False
    error: Optional[EmulationError] = None
    output: Optional[str] = None
    trace: Optional[str] = None


Executor = Callable[["Emulator", int, bool], ExecResult]

EXECUTORS: Dict[str, Executor] = {}


def register_executor(role: str, executor: Executor) -> None:
    EXECUTORS[role] = executor


def get_executor(role: Optional[str]) -> Optional[Executor]:
    if role is None:
        return None
    return EXECUTORS.get(role)


def _value(emu: "Emulator", operand: int, immediate: bool) -> int:
    if immediate:
        return sign_extend16(operand)
    return emu.read(operand)


def _divisor(emu: "Emulator", operand: int, immediate: bool) -> int:
    divisor = _value(emu, operand, immediate)
    if divisor == 0:
        raise EmulationError("division by zero", emu.current, emu.cpu.ir)
    return divisor


def _truncated_div(dividend: int, divisor: int) -> int:
    quotient = abs(dividend) // abs(divisor)
    return -quotient if (dividend < 0) != (divisor < 0) else quotient


def _halt(emu: "Emulator", operand: int, immediate: bool) -> ExecResult:
    return ExecResult(halt=True)


def _load(emu: "Emulator", operand: int, immediate: bool) -> ExecResult:
    emu.cpu.set_acc(_value(emu, operand, immediate))
    return ExecResult()


def _store(emu: "Emulator", operand: int, immediate: bool) -> ExecResult:
    emu.write(operand, emu.cpu.acc)
    return ExecResult()


def _arith(op: Callable[[int, int], int]) -> Executor:
    def execute(emu: "Emulator", operand: int, immediate: bool) -> ExecResult:
        emu.cpu.set_acc(op(emu.cpu.acc, _value(emu, operand, immediate)))
        return ExecResult()

    return execute


def _div(emu: "Emulator", operand: int, immediate: bool) -> ExecResult:
    divisor = _divisor(emu, operand, immediate)
    emu.cpu.set_acc(_truncated_div(emu.cpu.acc, divisor))
    return ExecResult()


def _mod(emu: "Emulator", operand: int, immediate: bool) -> ExecResult:
    divisor = _divisor(emu, operand, immediate)
    acc = emu.cpu.acc
    emu.cpu.set_acc(acc - divisor * _truncated_div(acc, divisor))
    return ExecResult()


def _cmp(emu: "Emulator", operand: int, immediate: bool) -> ExecResult:
    emu.cpu.set_flags(emu.cpu.acc - _value(emu, operand, immediate))
    return ExecResult()


def _jump(taken: Callable[[CPUState], bool]) -> Executor:
    def execute(emu: "Emulator", operand: int, immediate: bool) -> ExecResult:
        if taken(emu.cpu):
            return ExecResult(next_ip=operand)
        return ExecResult()

    return execute


def _in(emu: "Emulator", operand: int, immediate: bool) -> ExecResult:
    char = emu.stdin.read(1)
    if not char:
        raise EmulationError("cannot read input", emu.current, emu.cpu.ir)
    emu.cpu.set_acc(ord(char) & 0xFF)
    return ExecResult()


def _out(emu: "Emulator", operand: int, immediate: bool) -> ExecResult:
    return ExecResult(output=f"{chr(emu.cpu.acc & 0xFF)}\n")


register_executor("halt", _halt)
register_executor("load", _load)
register_executor("store", _store)
register_executor("add", _arith(lambda a, b: a + b))
register_executor("sub", _arith(lambda a, b: a - b))
register_executor("mul", _arith(lambda a, b: a * b))
register_executor("div", _div)
register_executor("mod", _mod)
register_executor("cmp", _cmp)
register_executor("jmp", _jump(lambda cpu: True))
register_executor("je", _jump(lambda cpu: cpu.zero))
register_executor("jne", _jump(lambda cpu: not cpu.zero))
register_executor("jl", _jump(lambda cpu: cpu.sign))
register_executor("jle", _jump(lambda cpu: cpu.sign or cpu.zero))
register_executor("jg", _jump(lambda cpu: not cpu.zero and not cpu.sign))
register_executor("jge", _jump(lambda cpu: cpu.zero or not cpu.sign))
register_executor("in", _in)
register_executor("out", _out)


def load_program(text: str, source: str = "<program>") -> List[int]:
    """Parse a word listing: one hex word per line, ``#`` starts a comment."""
    words: List[int] = []
    for line_no, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.split(PROGRAM_COMMENT, 1)[0].strip()
        if not line:
            continue
        if not WORD_RE.match(line):
            raise ProgramFormatError("Invalid instruction", line_no, raw_line, source)
        words.append(parse_word(line))
    logger.debug("%s: %d words read", source, len(words))
    return words


def load_program_file(path: Path | str) -> List[int]:
    resolved = Path(path).expanduser()
    return load_program(read_text(resolved), source=str(resolved))


def boot_banner(source: str) -> str:
    return f"*** Micro86 Emulator V. {VERSION} BOOTING ***\n\nProgram file: {source}\n"


def halted_banner() -> str:
    return f"\n*** Micro86 Emulator V. {VERSION} HALTED ***\n"


class Emulator:
    def __init__(
        self,
        words: Sequence[int],
        descriptor: IsaDescriptor,
        memory_size: int = DEFAULT_MEMORY_SIZE,
        resize: bool = False,
        stdin: Optional[TextIO] = None,
    ) -> None:
        self.program = tuple(to_int32(word) for word in words)
        self.descriptor = descriptor
        self.memory_size = memory_size
        self.resize = resize
        self.stdin = stdin if stdin is not None else sys.stdin
        self.cpu = CPUState()
        self.current = 0
        self.steps = 0
        self.halted = False
        self.reset()

    def reset(self) -> None:
        if not self.program:
            raise EmulationError("no program in memory", 0)
        size = self.memory_size
        if len(self.program) > size:
            if not self.resize:
                raise EmulationError("memory violation", size)
            while size < len(self.program):
                size += MEMORY_EXTENSION
        self.cpu.reset(size)
        for addr, word in enumerate(self.program):
            self.cpu.write(addr, word)
        self.current = 0
        self.steps = 0
        self.halted = False

    def read(self, addr: int) -> int:
        if not self.cpu.in_bounds(addr):
            raise EmulationError("memory violation", addr, self.cpu.ir)
        return self.cpu.read(addr)

    def write(self, addr: int, value: int) -> None:
        if not self.cpu.in_bounds(addr):
            raise EmulationError("memory violation", addr, self.cpu.ir)
        self.cpu.write(addr, value)

    def _fetch(self) -> int:
        ip = self.cpu.ip
        if not self.cpu.in_bounds(ip):
            raise EmulationError("memory violation", ip)
        if ip >= len(self.program):
            raise EmulationError("program end reached", ip)
        self.current = ip
        self.cpu.ip = ip + 1
        self.cpu.ir = self.cpu.read(ip)
        return self.cpu.ir

    def _execute(self, word: int) -> ExecResult:
        opcode, operand = decode_word(word)
        found = self.descriptor.entry_for(opcode)
        executor = get_executor(found.value.role) if found.ok else None
        if executor is None:
            raise EmulationError("invalid instruction", self.current, word)
        return executor(self, operand, found.value.is_immediate)

    def step(self) -> StepOutcome:
        if self.halted:
            return StepOutcome(halted=True)
        try:
            word = self._fetch()
            trace = f"0x{self.current:08X}:\t{self.disassemble(word)}\t\t{self.cpu.dump()}"
            result = self._execute(word)
        except EmulationError as exc:
            return StepOutcome(error=exc)

        self.steps += 1
        if result.halt:
            self.halted = True
            return StepOutcome(halted=True, output=result.output, trace=trace)
        if result.next_ip is not None:
            self.cpu.ip = result.next_ip
        return StepOutcome(output=result.output, trace=trace)

    def run(
        self,
        stdout: Optional[TextIO] = None,
        trace: Optional[TextIO] = None,
        max_steps: Optional[int] = None,
    ) -> StepOutcome:
        while True:
            if max_steps is not None and self.steps >= max_steps:
                return StepOutcome(error=EmulationError(f"step limit of {max_steps} reached", self.cpu.ip))
            outcome = self.step()
            if trace is not None and outcome.trace:
                trace.write(f"{outcome.trace}\n")
            if stdout is not None and outcome.output:
                stdout.write(outcome.output)
            if outcome.halted or outcome.error is not None:
                return outcome

    def disassemble(self, word: int) -> str:
        opcode, operand = decode_word(word)
        found = self.descriptor.entry_for(opcode)
        if not found.ok:
            return f"0x{word & 0xFFFFFFFF:08X}"
        entry = found.value
        if not entry.has_operand:
            return entry.mnemonic
        text = f"{entry.mnemonic}\t\t0x{operand:08X}"
        if entry.is_immediate or entry.role in JUMP_ROLES or not self.cpu.in_bounds(operand):
            return text
        return f"{text}\t\t|0x{operand:08X}: 0x{self.cpu.read(operand) & 0xFFFFFFFF:08X}|"

    def disassembly(self) -> str:
        lines = ["", "=== DISASSEMBLED CODE ===", ""]
        for addr in range(len(self.program)):
            lines.append(f"0x{addr:08X}:\t{self.disassemble(self.cpu.read(addr))}")
        return "".join(f"{line}\n" for line in lines)

    def postmortem(self) -> str:
        return (
            "\n=== POST-MORTEM DUMP ===\n"
            f"\nCPU:\n\n{self.cpu.dump()}\n"
            f"\nMEMORY:\n\n{self.cpu.dump_memory()}"
        )
