from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Dict, FrozenSet, Generic, List, Mapping, Optional, Tuple, TypeVar, Union

from m86asm.source import read_text


logger = logging.getLogger(__name__)

DECLARATION_KEYWORD = "VAR"
DESCRIPTOR_COMMENT = "#"
OPERAND_FLAG = "o"
IMMEDIATE_FLAG = "i"
ROLE_PREFIX = "@"
MAX_OPCODE = 0xFFFF

ROLES = (
    "halt",
    "load",
    "store",
    "add",
    "sub",
    "mul",
    "div",
    "mod",
    "cmp",
    "jmp",
    "je",
    "jne",
    "jl",
    "jle",
    "jg",
    "jge",
    "in",
    "out",
)

JUMP_ROLES = frozenset({"jmp", "je", "jne", "jl", "jle", "jg", "jge"})

# Used when a descriptor line carries no @role token.
DEFAULT_ROLES: Dict[str, str] = {
    "HALT": "halt",
    "LOAD": "load",
    "LOADI": "load",
    "STORE": "store",
    "ADD": "add",
    "ADDI": "add",
    "SUB": "sub",
    "SUBI": "sub",
    "MUL": "mul",
    "MULI": "mul",
    "DIV": "div",
    "DIVI": "div",
    "MOD": "mod",
    "MODI": "mod",
    "CMP": "cmp",
    "CMPI": "cmp",
    "JMP": "jmp",
    "JMPI": "jmp",
    "JE": "je",
    "JEI": "je",
    "JNE": "jne",
    "JNEI": "jne",
    "JL": "jl",
    "JLI": "jl",
    "JLE": "jle",
    "JLEI": "jle",
    "JG": "jg",
    "JGI": "jg",
    "JGE": "jge",
    "JGEI": "jge",
    "IN": "in",
    "OUT": "out",
}

HEX_RE = re.compile(r"^[0-9A-Fa-f]+$")

T = TypeVar("T")


class DescriptorFormatError(Exception):
    def __init__(self, message: str, line_no: int, text: str, source: str = "<descriptor>") -> None:
        super().__init__(f"{message} (line {line_no} in {source})")
        self.message = message
        self.line_no = line_no
        self.text = text
        self.source = source


class UnknownMnemonicError(LookupError):
    def __init__(self, mnemonic: str) -> None:
        super().__init__(f"Unknown mnemonic: {mnemonic}")
        self.message = f"Unknown mnemonic: {mnemonic}"
        self.mnemonic = mnemonic


class UnknownOpcodeError(LookupError):
    def __init__(self, opcode: int) -> None:
        super().__init__(f"Unknown opcode: 0x{opcode:04X}")
        self.message = f"Unknown opcode: 0x{opcode:04X}"
        self.opcode = opcode


@dataclass(frozen=True)
class Lookup(Generic[T]):
    """Outcome of a descriptor query: either a value or the lookup error."""

    value: Optional[T] = None
    error: Optional[LookupError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


@dataclass(frozen=True)
class OpcodeEntry:
    mnemonic: str
    opcode: int
    has_operand: bool
    is_immediate: bool
    role: Optional[str] = None
    line_no: int = 0


@dataclass(frozen=True)
class IsaDescriptor:
    """Read-only instruction set table, shared by every pipeline stage."""

    entries: Tuple[OpcodeEntry, ...]
    by_opcode: Mapping[int, OpcodeEntry]
    by_mnemonic: Mapping[str, OpcodeEntry]
    opcodes: Tuple[int, ...]
    immediate_opcodes: FrozenSet[int]
    mnemonics: Tuple[str, ...]
    reserved_words: FrozenSet[str]
    declaration_keyword: str = DECLARATION_KEYWORD
    source: str = "<descriptor>"

    def is_valid_mnemonic(self, mnemonic: str) -> bool:
        return mnemonic in self.by_mnemonic

    def is_valid_opcode(self, opcode: int) -> bool:
        return opcode in self.by_opcode

    def is_reserved_word(self, word: str) -> bool:
        return word in self.reserved_words

    def opcode_for(self, mnemonic: str) -> Lookup[int]:
        entry = self.by_mnemonic.get(mnemonic)
        if entry is None:
            return Lookup(error=UnknownMnemonicError(mnemonic))
        return Lookup(entry.opcode)

    def mnemonic_for(self, opcode: int) -> Lookup[str]:
        entry = self.by_opcode.get(opcode)
        if entry is None:
            return Lookup(error=UnknownOpcodeError(opcode))
        return Lookup(entry.mnemonic)

    def entry_for(self, key: Union[str, int]) -> Lookup[OpcodeEntry]:
        if isinstance(key, str):
            entry = self.by_mnemonic.get(key)
            if entry is None:
                return Lookup(error=UnknownMnemonicError(key))
            return Lookup(entry)
        entry = self.by_opcode.get(key)
        if entry is None:
            return Lookup(error=UnknownOpcodeError(key))
        return Lookup(entry)

    def has_operand(self, key: Union[str, int]) -> Lookup[bool]:
        found = self.entry_for(key)
        if not found.ok:
            return Lookup(error=found.error)
        return Lookup(found.unwrap().has_operand)

    def is_immediate(self, key: Union[str, int]) -> Lookup[bool]:
        found = self.entry_for(key)
        if not found.ok:
            return Lookup(error=found.error)
        if isinstance(key, int):
            return Lookup(key in self.immediate_opcodes)
        return Lookup(found.unwrap().is_immediate)

    def role_of(self, opcode: int) -> Lookup[Optional[str]]:
        found = self.entry_for(opcode)
        if not found.ok:
            return Lookup(error=found.error)
        return Lookup(found.unwrap().role)


def default_descriptor_path() -> Path:
    return Path(__file__).resolve().parent / "assets" / "micro86.m86db"


def _parse_line(tokens: List[str], line_no: int, raw_line: str, source: str) -> OpcodeEntry:
    role: Optional[str] = None
    if tokens and tokens[-1].startswith(ROLE_PREFIX):
        role = tokens.pop()[len(ROLE_PREFIX):]
        if role not in ROLES:
            raise DescriptorFormatError(f"Unknown role: {role}", line_no, raw_line, source)
    shape_ok = len(tokens) >= 3 and tokens[1] == "=" and (
        len(tokens) == 3
        or (len(tokens) == 4 and tokens[3] == OPERAND_FLAG)
        or (len(tokens) == 5 and tokens[3] == OPERAND_FLAG and tokens[4] == IMMEDIATE_FLAG)
    )
    if not shape_ok:
        raise DescriptorFormatError("Invalid syntax", line_no, raw_line, source)
    if not HEX_RE.match(tokens[0]):
        raise DescriptorFormatError(f"Invalid opcode: {tokens[0]}", line_no, raw_line, source)
    opcode = int(tokens[0], 16)
    if opcode > MAX_OPCODE:
        raise DescriptorFormatError(f"Opcode does not fit in 16 bits: {tokens[0]}", line_no, raw_line, source)
    mnemonic = tokens[2]
    if mnemonic == DECLARATION_KEYWORD:
        raise DescriptorFormatError(f"{mnemonic} is the declaration keyword", line_no, raw_line, source)
    return OpcodeEntry(
        mnemonic=mnemonic,
        opcode=opcode,
        has_operand=len(tokens) >= 4,
        is_immediate=len(tokens) == 5,
        role=role if role is not None else DEFAULT_ROLES.get(mnemonic),
        line_no=line_no,
    )


def load_descriptor(text: str, source: str = "<descriptor>") -> IsaDescriptor:
    entries: List[OpcodeEntry] = []
    by_opcode: Dict[int, OpcodeEntry] = {}
    by_mnemonic: Dict[str, OpcodeEntry] = {}

    for line_no, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.split(DESCRIPTOR_COMMENT, 1)[0].strip()
        if not line:
            continue
        entry = _parse_line(line.split(), line_no, raw_line, source)
        if entry.opcode in by_opcode:
            logger.warning("%s:%d: opcode 0x%04X redefined", source, line_no, entry.opcode)
        if entry.mnemonic in by_mnemonic:
            logger.warning("%s:%d: mnemonic %s redefined", source, line_no, entry.mnemonic)
        by_opcode[entry.opcode] = entry
        by_mnemonic[entry.mnemonic] = entry
        entries.append(entry)
        logger.debug("%s: 0x%04X = %s role=%s", source, entry.opcode, entry.mnemonic, entry.role)

    opcodes = tuple(dict.fromkeys(entry.opcode for entry in entries))
    mnemonics = tuple(dict.fromkeys(entry.mnemonic for entry in entries))
    return IsaDescriptor(
        entries=tuple(entries),
        by_opcode=MappingProxyType(by_opcode),
        by_mnemonic=MappingProxyType(by_mnemonic),
        opcodes=opcodes,
        immediate_opcodes=frozenset(op for op, entry in by_opcode.items() if entry.is_immediate),
        mnemonics=mnemonics,
        reserved_words=frozenset(mnemonics) | {DECLARATION_KEYWORD},
        source=source,
    )


def load_descriptor_file(path: Path | str) -> IsaDescriptor:
    resolved = Path(path).expanduser()
    return load_descriptor(read_text(resolved), source=str(resolved))


def load_default_descriptor() -> IsaDescriptor:
    return load_descriptor_file(default_descriptor_path())
