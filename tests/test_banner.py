from datetime import datetime

from m86asm.banner import cpp_banner, m86_banner, strip_banner


STAMP = datetime(2014, 10, 24, 14, 50, 12)


def test_m86_banner_layout():
    text = m86_banner("01000000\n", 1, 0, 3, now=STAMP)
    assert text.splitlines() == [
        "# Micro86 instructions.",
        "# Assembled using M86Asm.",
        "# Dated: 14:50:12, 10/24/2014.",
        "# Approx. assembling time: 3 ms.",
        "# Number of instructions: 1.",
        "# Number of memory units allocated: 0.",
        "",
        "# === CODE === #",
        "",
        "01000000",
        "",
        "# === EOF === #",
    ]


def test_cpp_banner_uses_line_comments():
    text = cpp_banner("int main() {\n}\n", 2, 1, 0, now=STAMP)
    assert text.startswith("// C++ code.\n// Translated using M86Asm.\n")
    assert "// Approx. translating time: 0 ms." in text
    assert "// Number of operations: 2." in text
    assert text.endswith("}\n\n// === EOF === //\n")


def test_strip_banner_recovers_the_body():
    body = "02010005\n01000000\n"
    assert strip_banner(m86_banner(body, 2, 0, 1, now=STAMP)) == body
    assert strip_banner(body) == body
