import logging
from pathlib import Path

import pytest

from m86asm.banner import strip_banner
from m86asm.cli import EXIT_IO, EXIT_OK, EXIT_SYNTAX, EXIT_USAGE, main


LOOP = "; count down\nloop: LOADI 5\nSUBI 1\nJNEI loop\nHALT\n"


@pytest.fixture
def loop_source(tmp_path: Path) -> Path:
    path = tmp_path / "loop.asm"
    path.write_text(LOOP, encoding="utf-8")
    return path


def test_a_mode_is_required(loop_source):
    with pytest.raises(SystemExit) as exc:
        main([str(loop_source)])
    assert exc.value.code == EXIT_USAGE


def test_unknown_option_is_a_usage_error(loop_source):
    with pytest.raises(SystemExit) as exc:
        main([str(loop_source), "--m86", "--radix", "oct"])
    assert exc.value.code == EXIT_USAGE


def test_m86_goes_to_stdout(loop_source, capsys):
    assert main([str(loop_source), "--m86"]) == EXIT_OK
    assert capsys.readouterr().out == "02010005\n05010001\n0C010000\n01000000\n"


def test_binary_radix(loop_source, capsys):
    assert main([str(loop_source), "--m86", "--radix", "bin"]) == EXIT_OK
    lines = capsys.readouterr().out.splitlines()
    assert lines[-1] == "00000001000000000000000000000000"


def test_output_file(loop_source, tmp_path, caplog):
    out = tmp_path / "loop.m86"
    with caplog.at_level(logging.INFO, logger="m86asm.cli"):
        assert main([str(loop_source), "--m86", "-o", str(out)]) == EXIT_OK
    assert out.read_text(encoding="utf-8").splitlines()[0] == "02010005"
    assert f"Micro86 instructions written to: {out}" in caplog.text


def test_both_modes_in_one_run(loop_source, capsys):
    assert main([str(loop_source), "--m86", "--cpp"]) == EXIT_OK
    out = capsys.readouterr().out
    assert out.startswith("02010005\n")
    assert "loop: _acc = 5;" in out
    assert out.endswith("}\n")


def test_banner_wraps_identical_bodies(loop_source, tmp_path, capsys):
    assert main([str(loop_source), "--cpp", "--data"]) == EXIT_OK
    first = capsys.readouterr().out
    assert main([str(loop_source), "--cpp", "--data"]) == EXIT_OK
    second = capsys.readouterr().out

    assert first.startswith("// C++ code.\n")
    assert "// Number of operations: 4." in first
    assert strip_banner(first) == strip_banner(second)
    assert main([str(loop_source), "--cpp"]) == EXIT_OK
    assert strip_banner(first) == capsys.readouterr().out


def test_missing_source_is_an_io_error(tmp_path, capsys):
    assert main([str(tmp_path / "nope.asm"), "--m86"]) == EXIT_IO
    assert capsys.readouterr().out == ""


def test_bad_descriptor_is_an_io_error(loop_source, tmp_path):
    isa = tmp_path / "bad.m86db"
    isa.write_text("0100 = HALT\nnot a line\n", encoding="utf-8")
    assert main([str(loop_source), "--m86", "--isa", str(isa)]) == EXIT_IO


def test_syntax_error_writes_nothing(tmp_path, caplog):
    source = tmp_path / "bad.asm"
    source.write_text("LOADI 1\nPUSH 2\n", encoding="utf-8")
    out = tmp_path / "bad.m86"
    with caplog.at_level(logging.ERROR, logger="m86asm.cli"):
        assert main([str(source), "--m86", "--cpp", "-o", str(out)]) == EXIT_SYNTAX
    assert not out.exists()
    assert "line 2" in caplog.text


def test_unresolved_reference_is_a_syntax_error(tmp_path):
    source = tmp_path / "ghost.asm"
    source.write_text("JMPI nowhere\nHALT\n", encoding="utf-8")
    assert main([str(source), "--m86"]) == EXIT_SYNTAX


def test_empty_source_produces_no_output(tmp_path, capsys):
    source = tmp_path / "empty.asm"
    source.write_text("; only a comment\n\n", encoding="utf-8")
    out = tmp_path / "empty.m86"
    assert main([str(source), "--m86", "-o", str(out)]) == EXIT_OK
    assert not out.exists()
    assert capsys.readouterr().out == ""
