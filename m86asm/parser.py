from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence, Union

from m86asm.isa import IsaDescriptor
from m86asm.model import AbstractInstruction, Program, SymbolTable
from m86asm.source import Token, tokenize


logger = logging.getLogger(__name__)

LABEL_DELIMITER = ":"
IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
INTEGER_RE = re.compile(r"^[+-]?[0-9]+$")
INT32_MIN = -(1 << 31)
INT32_MAX = (1 << 31) - 1


class ParseError(Exception):
    def __init__(self, message: str, line_no: int, text: str) -> None:
        super().__init__(f"{message} (line {line_no})" if line_no else message)
        self.message = message
        self.line_no = line_no
        self.text = text


class InvalidIdentifierError(ParseError):
    pass


class DuplicateSymbolError(InvalidIdentifierError):
    pass


class UnknownTokenError(ParseError):
    pass


class UnexpectedEndOfInputError(ParseError):
    pass


class MissingOperandError(UnexpectedEndOfInputError):
    pass


class InvalidLiteralError(ParseError):
    pass


def is_valid_identifier(name: str, descriptor: IsaDescriptor) -> bool:
    return bool(IDENTIFIER_RE.match(name)) and not descriptor.is_reserved_word(name)


def parse_integer(text: str) -> Optional[int]:
    if not INTEGER_RE.match(text):
        return None
    return int(text, 10)


def _as_tokens(tokens: Sequence[Union[Token, str]]) -> List[Token]:
    return [tok if isinstance(tok, Token) else Token(tok, 0) for tok in tokens]


def parse_tokens(tokens: Sequence[Union[Token, str]], descriptor: IsaDescriptor) -> Program:
    """Scan the token stream once, recording labels and variables as they appear.

    Labels get the position of the next instruction immediately, so forward
    references need no second pass; operands stay raw text until resolution.
    """
    stream = _as_tokens(tokens)
    instructions: List[AbstractInstruction] = []
    labels: Dict[str, int] = {}
    variables: Dict[str, int] = {}
    variable_positions: Dict[str, int] = {}
    keyword = descriptor.declaration_keyword

    def _next(index: int, error_cls: type, message: str) -> Token:
        if index >= len(stream):
            last = stream[-1] if stream else Token("", 0)
            raise error_cls(message, last.line_no, last.value)
        return stream[index]

    i = 0
    while i < len(stream):
        tok = stream[i]
        if tok.value.endswith(LABEL_DELIMITER):
            name = tok.value[: -len(LABEL_DELIMITER)]
            if not is_valid_identifier(name, descriptor):
                raise InvalidIdentifierError(f"Invalid label name: {name!r}", tok.line_no, tok.value)
            if name in labels:
                raise DuplicateSymbolError(f"Duplicate label: {name}", tok.line_no, tok.value)
            labels[name] = len(instructions)
            logger.debug("label %s -> %d", name, labels[name])
            i += 1
            tok = _next(i, UnexpectedEndOfInputError, f"Label {name} is not followed by an instruction")
            if tok.value != keyword and not descriptor.is_valid_mnemonic(tok.value):
                raise UnknownTokenError(
                    f"Expected instruction or {keyword} after label {name}, got {tok.value!r}",
                    tok.line_no,
                    tok.value,
                )

        if descriptor.is_valid_mnemonic(tok.value):
            entry = descriptor.entry_for(tok.value).unwrap()
            operand: Optional[str] = None
            if entry.has_operand:
                operand = _next(i + 1, MissingOperandError, f"{tok.value} requires an operand").value
                i += 1
            instructions.append(
                AbstractInstruction(
                    position=len(instructions),
                    opcode=entry.opcode,
                    mnemonic=entry.mnemonic,
                    operand=operand,
                    line_no=tok.line_no,
                )
            )
            i += 1
            continue

        if tok.value == keyword:
            name_tok = _next(i + 1, UnexpectedEndOfInputError, f"{keyword} requires a name")
            if not is_valid_identifier(name_tok.value, descriptor):
                raise InvalidIdentifierError(
                    f"Invalid variable name: {name_tok.value!r}", name_tok.line_no, name_tok.value
                )
            if name_tok.value in variables:
                raise DuplicateSymbolError(
                    f"Duplicate variable: {name_tok.value}", name_tok.line_no, name_tok.value
                )
            value_tok = _next(i + 2, UnexpectedEndOfInputError, f"{keyword} {name_tok.value} requires a value")
            value = parse_integer(value_tok.value)
            if value is None or not INT32_MIN <= value <= INT32_MAX:
                raise InvalidLiteralError(
                    f"Invalid initial value for {name_tok.value}: {value_tok.value!r}",
                    value_tok.line_no,
                    value_tok.value,
                )
            variables[name_tok.value] = value
            variable_positions[name_tok.value] = len(variables)
            logger.debug("variable %s = %d (ordinal %d)", name_tok.value, value, len(variables))
            i += 3
            continue

        raise UnknownTokenError(f"Unknown token: {tok.value!r}", tok.line_no, tok.value)

    for name in sorted(labels.keys() & variables.keys()):
        logger.warning("%s is declared both as a label and as a variable", name)

    return Program(
        instructions=tuple(instructions),
        symbols=SymbolTable.freeze(labels, variables, variable_positions),
    )


def parse_source(text: str, descriptor: IsaDescriptor) -> Program:
    return parse_tokens(tokenize(text), descriptor)
