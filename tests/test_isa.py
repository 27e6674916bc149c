import logging
from pathlib import Path

import pytest

from m86asm.isa import (
    DescriptorFormatError,
    UnknownMnemonicError,
    UnknownOpcodeError,
    default_descriptor_path,
    load_descriptor,
    load_descriptor_file,
)
from m86asm.source import UnreadableInputError


def _write_descriptor(path: Path, text: str) -> None:
    path.write_text(text, encoding="utf-8")


def test_bundled_descriptor_covers_micro86(micro86):
    assert default_descriptor_path().exists()
    assert len(micro86.mnemonics) == 25
    assert micro86.opcode_for("LOADI").unwrap() == 0x0201
    assert micro86.mnemonic_for(0x1200).unwrap() == "OUT"
    assert micro86.has_operand("STORE").unwrap() is True
    assert micro86.has_operand(0x0100).unwrap() is False
    assert micro86.is_immediate("JGEI").unwrap() is True
    assert micro86.is_immediate(0x0202).unwrap() is False
    assert micro86.role_of(0x0C01).unwrap() == "jne"
    assert micro86.declaration_keyword == "VAR"
    assert micro86.is_reserved_word("VAR")
    assert micro86.is_reserved_word("HALT")
    assert not micro86.is_reserved_word("halt")


def test_failed_lookups_carry_typed_errors(micro86):
    missing = micro86.opcode_for("NOPE")
    assert not missing.ok
    assert isinstance(missing.error, UnknownMnemonicError)
    with pytest.raises(UnknownMnemonicError):
        missing.unwrap()

    unknown = micro86.has_operand(0x7777)
    assert isinstance(unknown.error, UnknownOpcodeError)
    assert "0x7777" in unknown.error.message
    assert not micro86.is_valid_opcode(0x7777)
    assert not micro86.is_valid_mnemonic("NOPE")


def test_comments_blank_lines_and_trailing_comments_are_ignored():
    descriptor = load_descriptor("# header\n\n   # indented comment\n0100 = HALT # stop\n0201 = LOADI o i\n")
    assert descriptor.mnemonics == ("HALT", "LOADI")
    assert descriptor.immediate_opcodes == frozenset({0x0201})


@pytest.mark.parametrize(
    "line",
    [
        "0100 HALT",
        "0100 = HALT i",
        "0100 = HALT o x",
        "0100 = HALT o i extra",
        "XYZ = HALT",
        "10000 = BIG",
        "0300 = NOP @nothing",
        "0300 = VAR",
    ],
)
def test_malformed_line_reports_its_line_number(line):
    with pytest.raises(DescriptorFormatError) as exc:
        load_descriptor(f"# ok\n0100 = HALT\n{line}\n", source="bad.m86db")
    assert exc.value.line_no == 3
    assert exc.value.source == "bad.m86db"
    assert "line 3" in str(exc.value)


def test_role_token_overrides_default_role():
    descriptor = load_descriptor("0300 = STOP @halt\n0301 = NOP\n0202 = LOAD o @store\n")
    assert descriptor.role_of(0x0300).unwrap() == "halt"
    assert descriptor.role_of(0x0301).unwrap() is None
    assert descriptor.role_of(0x0202).unwrap() == "store"


def test_duplicate_entries_override_earlier_ones(caplog):
    with caplog.at_level(logging.WARNING, logger="m86asm.isa"):
        descriptor = load_descriptor("0100 = HALT\n0100 = STOP\n")
    assert descriptor.mnemonic_for(0x0100).unwrap() == "STOP"
    assert descriptor.opcode_for("HALT").unwrap() == 0x0100
    assert descriptor.opcodes == (0x0100,)
    assert "redefined" in caplog.text


def test_descriptor_is_read_only(micro86):
    with pytest.raises(TypeError):
        micro86.by_mnemonic["NEW"] = micro86.by_mnemonic["HALT"]


def test_load_descriptor_file(tmp_path: Path):
    path = tmp_path / "tiny.m86db"
    _write_descriptor(path, "0100 = HALT\n")
    descriptor = load_descriptor_file(path)
    assert descriptor.source == str(path)
    assert descriptor.is_valid_mnemonic("HALT")


def test_missing_descriptor_file_is_unreadable(tmp_path: Path):
    with pytest.raises(UnreadableInputError):
        load_descriptor_file(tmp_path / "missing.m86db")
