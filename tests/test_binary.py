import pytest

from m86asm.binary import generate_binary
from m86asm.encoding import OperandRangeError, decode_word, encode_word, format_word, parse_word
from m86asm.parser import parse_source
from m86asm.resolver import (
    LABEL,
    LITERAL,
    VARIABLE,
    UnresolvedLabelError,
    UnresolvedReferenceError,
    UnresolvedVariableError,
    resolve,
)


AVERAGE = """
; Average of two numbers.
VAR X 10
VAR Y 20
VAR TWO 2
VAR AVG 0
LOAD X
ADD Y
DIV TWO
STORE AVG
HALT
"""


def test_word_layout_and_round_trip():
    word = encode_word(0x0201, 5)
    assert word == 0x02010005
    assert decode_word(word) == (0x0201, 5)
    assert format_word(word) == "02010005"
    assert parse_word("02010005") == word

    halt = encode_word(0x0100)
    assert halt == 0x01000000
    assert decode_word(halt) == (0x0100, 0)


def test_negative_operands_use_twos_complement_lower_half():
    word = encode_word(0x0201, -1)
    assert format_word(word) == "0201FFFF"
    assert decode_word(word) == (0x0201, 0xFFFF)


def test_binary_radix():
    assert format_word(0x01000000, "bin") == "00000001000000000000000000000000"
    with pytest.raises(ValueError):
        format_word(1, "oct")


@pytest.mark.parametrize("operand", [0x10000, -0x8001])
def test_operand_must_fit_sixteen_bits(operand):
    with pytest.raises(OperandRangeError):
        encode_word(0x0201, operand)


def test_loop_scenario_encodes_four_words(scenario_isa):
    program = parse_source("loop: LOADI 5 SUB 1 JNE loop HALT", scenario_isa)
    image = generate_binary(program, scenario_isa)

    assert image.lines() == ["02010005", "05010001", "0C010000", "01000000"]
    assert image.data == ()
    assert image.render() == "02010005\n05010001\n0C010000\n01000000\n"


def test_variables_follow_the_code_in_declaration_order(micro86):
    program = parse_source(AVERAGE, micro86)
    image = generate_binary(program, micro86)

    assert image.instruction_count == 5
    assert image.variable_count == 4
    assert image.lines() == [
        "02020005",
        "04020006",
        "07020007",
        "03020008",
        "01000000",
        "0000000A",
        "00000014",
        "00000002",
        "00000000",
    ]


def test_variable_address_formula(scenario_isa):
    program = parse_source("VAR a 7 VAR b -1 LOAD a ADD 1 STORE b", scenario_isa)
    resolved = resolve(program, scenario_isa)

    assert resolved[0].operand.kind == VARIABLE
    assert resolved[0].operand.value == 3 + 1 - 1
    assert resolved[2].operand.value == 3 + 2 - 1
    image = generate_binary(program, scenario_isa)
    assert image.data == (7, 0xFFFFFFFF)
    assert image.lines()[-1] == "FFFFFFFF"


def test_immediate_operands_prefer_literals_over_labels(micro86):
    program = parse_source("LOADI -3 LOADI later JMPI 0 later: HALT", micro86)
    resolved = resolve(program, micro86)

    assert [(item.operand.kind, item.operand.value) for item in resolved[:3]] == [
        (LITERAL, -3),
        (LABEL, 3),
        (LITERAL, 0),
    ]
    assert resolved[3].operand is None
    assert resolved[0].role == "load"
    assert generate_binary(program, micro86).lines()[:2] == ["0201FFFD", "02010003"]


def test_unresolved_label(micro86):
    program = parse_source("JMPI nowhere", micro86)
    with pytest.raises(UnresolvedLabelError) as exc:
        generate_binary(program, micro86)
    assert exc.value.text == "nowhere"


def test_direct_operand_must_be_a_declared_variable(micro86):
    program = parse_source("loop: LOAD loop\nADD 1", micro86)
    with pytest.raises(UnresolvedVariableError) as exc:
        generate_binary(program, micro86)
    assert exc.value.line_no == 1
    assert isinstance(exc.value, UnresolvedReferenceError)


def test_out_of_range_literal_reports_line(micro86):
    program = parse_source("HALT\nLOADI 70000", micro86)
    with pytest.raises(OperandRangeError) as exc:
        generate_binary(program, micro86)
    assert "line 2" in exc.value.message


def test_generation_is_repeatable(micro86):
    first = generate_binary(parse_source(AVERAGE, micro86), micro86).render()
    second = generate_binary(parse_source(AVERAGE, micro86), micro86).render()
    assert first == second


@pytest.mark.parametrize("source", ["JMPI 9 HALT", "JEI -1 HALT"])
def test_numeric_jump_target_must_be_inside_the_program(micro86, source):
    program = parse_source(source, micro86)
    with pytest.raises(UnresolvedLabelError) as exc:
        generate_binary(program, micro86)
    assert "out of range" in exc.value.message


def test_jump_to_the_end_of_the_code_is_allowed(micro86):
    program = parse_source("JMPI 2 HALT", micro86)
    assert generate_binary(program, micro86).lines() == ["0A010002", "01000000"]
