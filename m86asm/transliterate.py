from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from m86asm.isa import IsaDescriptor
from m86asm.model import Program
from m86asm.parser import InvalidIdentifierError
from m86asm.resolver import LABEL, LITERAL, VARIABLE, ResolvedInstruction, resolve


logger = logging.getLogger(__name__)

ACCUMULATOR = "_acc"
COMPARISON = "_cmp"
BYTE_BUFFER = "_byte"
SYNTHETIC_LABEL_RE = re.compile(r"^_L[0-9]+$")

GENERATED_NAMES = frozenset({ACCUMULATOR, COMPARISON, BYTE_BUFFER, "main", "cin", "cout", "exit", "std", "noskipws"})
CPP_KEYWORDS = frozenset(
    {
        "alignas", "alignof", "and", "and_eq", "asm", "auto", "bitand", "bitor", "bool", "break",
        "case", "catch", "char", "class", "compl", "const", "constexpr", "const_cast", "continue",
        "decltype", "default", "delete", "do", "double", "dynamic_cast", "else", "enum", "explicit",
        "export", "extern", "false", "float", "for", "friend", "goto", "if", "inline", "int", "long",
        "mutable", "namespace", "new", "noexcept", "not", "not_eq", "nullptr", "operator", "or",
        "or_eq", "private", "protected", "public", "register", "reinterpret_cast", "return", "short",
        "signed", "sizeof", "static", "static_assert", "static_cast", "struct", "switch", "template",
        "this", "throw", "true", "try", "typedef", "typeid", "typename", "union", "unsigned", "using",
        "virtual", "void", "volatile", "wchar_t", "while", "xor", "xor_eq",
    }
)

PROLOGUE = [
    "#include <iostream>",
    "#include <cstdlib>",
    "using namespace std;",
    "",
    "int main() {",
    f"int {ACCUMULATOR} = 0, {COMPARISON};",
    f"char {BYTE_BUFFER};",
    "cin >> noskipws;",
]

# Operand expectations of a statement role.
NO_OPERAND = "none"
VALUE = "value"
TARGET = "target"
STORAGE = "storage"


class TransliterationError(Exception):
    def __init__(self, message: str, line_no: int, text: str) -> None:
        super().__init__(f"{message} (line {line_no})" if line_no else message)
        self.message = message
        self.line_no = line_no
        self.text = text


class UnmappedOpcodeError(TransliterationError):
    pass


class OperandKindError(TransliterationError):
    pass


@dataclass(frozen=True)
class StatementDef:
    role: str
    operand: str
    render: Callable[[Optional[str]], List[str]]


STATEMENTS: Dict[str, StatementDef] = {}


def register_statement(role: str, operand: str, render: Callable[[Optional[str]], List[str]]) -> None:
    STATEMENTS[role] = StatementDef(role, operand, render)


def get_statement(role: Optional[str]) -> Optional[StatementDef]:
    if role is None:
        return None
    return STATEMENTS.get(role)


def _halt(_operand: Optional[str]) -> List[str]:
    return ["exit(0);"]


def _load(operand: Optional[str]) -> List[str]:
    return [f"{ACCUMULATOR} = {operand};"]


def _store(operand: Optional[str]) -> List[str]:
    return [f"{operand} = {ACCUMULATOR};"]


def _compound(op: str) -> Callable[[Optional[str]], List[str]]:
    def render(operand: Optional[str]) -> List[str]:
        return [f"{ACCUMULATOR} {op}= {operand};"]

    return render


def _compare(operand: Optional[str]) -> List[str]:
    return [f"{COMPARISON} = {ACCUMULATOR} - {operand};"]


def _jump(operand: Optional[str]) -> List[str]:
    return [f"goto {operand};"]


def _branch(test: str) -> Callable[[Optional[str]], List[str]]:
    def render(operand: Optional[str]) -> List[str]:
        return [f"if ({COMPARISON} {test} 0) goto {operand};"]

    return render


def _read(_operand: Optional[str]) -> List[str]:
    return [f"cin >> {BYTE_BUFFER};", f"{ACCUMULATOR} = (int) {BYTE_BUFFER};"]


def _write(_operand: Optional[str]) -> List[str]:
    return [f"cout << (char) {ACCUMULATOR};"]


register_statement("halt", NO_OPERAND, _halt)
register_statement("load", VALUE, _load)
register_statement("store", STORAGE, _store)
register_statement("add", VALUE, _compound("+"))
register_statement("sub", VALUE, _compound("-"))
register_statement("mul", VALUE, _compound("*"))
register_statement("div", VALUE, _compound("/"))
register_statement("mod", VALUE, _compound("%"))
register_statement("cmp", VALUE, _compare)
register_statement("jmp", TARGET, _jump)
register_statement("je", TARGET, _branch("=="))
register_statement("jne", TARGET, _branch("!="))
register_statement("jl", TARGET, _branch("<"))
register_statement("jle", TARGET, _branch("<="))
register_statement("jg", TARGET, _branch(">"))
register_statement("jge", TARGET, _branch(">="))
register_statement("in", NO_OPERAND, _read)
register_statement("out", NO_OPERAND, _write)


def synthetic_label(position: int) -> str:
    return f"_L{position}"


def _check_names(program: Program) -> None:
    for name in list(program.symbols.variables) + list(program.symbols.labels):
        if name in CPP_KEYWORDS or name in GENERATED_NAMES:
            raise InvalidIdentifierError(f"{name} cannot be used as a C++ identifier", 0, name)
        if SYNTHETIC_LABEL_RE.match(name) and program.symbols.labels.get(name) != int(name[2:]):
            raise InvalidIdentifierError(f"{name} clashes with a generated jump label", 0, name)


def _operand_text(item: ResolvedInstruction, defn: StatementDef) -> Optional[str]:
    instr = item.instruction
    operand = item.operand
    if defn.operand == NO_OPERAND:
        if operand is not None:
            raise OperandKindError(f"{instr.mnemonic} ({defn.role}) takes no operand", instr.line_no, instr.mnemonic)
        return None
    if operand is None:
        raise OperandKindError(f"{instr.mnemonic} ({defn.role}) requires an operand", instr.line_no, instr.mnemonic)
    if defn.operand == STORAGE:
        if operand.kind != VARIABLE:
            raise OperandKindError(
                f"{instr.mnemonic} ({defn.role}) requires a variable, got {operand.text}", instr.line_no, operand.text
            )
        return operand.text
    if defn.operand == TARGET:
        if operand.kind == VARIABLE:
            raise OperandKindError(
                f"{instr.mnemonic} ({defn.role}) requires a label, got variable {operand.text}",
                instr.line_no,
                operand.text,
            )
        if operand.kind == LITERAL:
            return synthetic_label(operand.value)
        return operand.text
    if operand.kind == VARIABLE:
        return operand.text
    return str(operand.value)


def _jump_targets(program: Program, statements: List[Tuple[ResolvedInstruction, StatementDef]]) -> Dict[int, List[str]]:
    targets: Dict[int, List[str]] = {}
    for name, position in program.symbols.labels.items():
        targets.setdefault(position, []).append(name)
    for item, defn in statements:
        if defn.operand == TARGET and item.operand is not None and item.operand.kind == LITERAL:
            name = synthetic_label(item.operand.value)
            names = targets.setdefault(item.operand.value, [])
            if name not in names:
                names.append(name)
    return targets


def _bind(program: Program, descriptor: IsaDescriptor) -> List[Tuple[ResolvedInstruction, StatementDef]]:
    statements: List[Tuple[ResolvedInstruction, StatementDef]] = []
    for item in resolve(program, descriptor):
        defn = get_statement(item.role)
        if defn is None:
            instr = item.instruction
            raise UnmappedOpcodeError(
                f"No C++ statement for {instr.mnemonic} (0x{instr.opcode:04X})", instr.line_no, instr.mnemonic
            )
        statements.append((item, defn))
    return statements


def generate_cpp(program: Program, descriptor: IsaDescriptor) -> str:
    _check_names(program)
    statements = _bind(program, descriptor)
    targets = _jump_targets(program, statements)

    lines = list(PROLOGUE)
    lines += ["", "// === Declarations ===", ""]
    for name, value in program.symbols.variables.items():
        lines.append(f"int {name} = {value};")
    lines += ["", "// === Operations ===", ""]
    for item, defn in statements:
        body = defn.render(_operand_text(item, defn))
        prefix = "".join(f"{name}: " for name in targets.get(item.position, []))
        lines.append(prefix + body[0])
        lines.extend(body[1:])
    lines += ["", "// === HALT Bypassed ===", ""]
    end_prefix = "".join(f"{name}: " for name in targets.get(program.instruction_count, []))
    lines.append(f"{end_prefix}exit(1);")
    lines.append("}")
    logger.debug("translated %d operations into %d lines", len(statements), len(lines))
    return "".join(f"{line}\n" for line in lines)
