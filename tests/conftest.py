import pytest

from m86asm.isa import load_default_descriptor, load_descriptor


SCENARIO_ISA = """\
# Small instruction set with immediate arithmetic.
0100 = HALT
0202 = LOAD o
0201 = LOADI o i
0302 = STORE o
0401 = ADD o i
0501 = SUB o i
0901 = CMP o i
0A01 = JMP o i
0B01 = JE o i
0C01 = JNE o i
1100 = IN
1200 = OUT
"""


@pytest.fixture(scope="session")
def micro86():
    return load_default_descriptor()


@pytest.fixture(scope="session")
def scenario_isa():
    return load_descriptor(SCENARIO_ISA, source="scenario.m86db")
