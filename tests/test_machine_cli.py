import io
from pathlib import Path

import pytest

from m86asm.cli import EXIT_IO, EXIT_OK, EXIT_USAGE
from m86asm.cli import main as assemble
from m86asm.machine_cli import EXIT_RUNTIME, main


def _assemble(tmp_path: Path, name: str, source: str, *extra: str) -> Path:
    src = tmp_path / f"{name}.asm"
    src.write_text(source, encoding="utf-8")
    out = tmp_path / f"{name}.m86"
    assert assemble([str(src), "--m86", "-o", str(out), *extra]) == EXIT_OK
    return out


@pytest.fixture
def average(tmp_path: Path) -> Path:
    source = "VAR X 10\nVAR Y 20\nVAR TWO 2\nVAR AVG 0\nLOAD X\nADD Y\nDIV TWO\nSTORE AVG\nHALT\n"
    return _assemble(tmp_path, "average", source, "--data")


def test_run_prints_boot_banner_and_postmortem(average, capsys):
    assert main([str(average)]) == EXIT_OK
    out = capsys.readouterr().out
    assert out.startswith("*** Micro86 Emulator V. 1.0 BOOTING ***\n")
    assert f"Program file: {average}" in out
    assert "=== POST-MORTEM DUMP ===" in out
    assert "0x00000008:\t0x0000000F" in out
    assert out.endswith("*** Micro86 Emulator V. 1.0 HALTED ***\n")
    assert "=== EXECUTION TRACE ===" not in out


def test_trace_and_dump(average, capsys):
    assert main([str(average), "--trace", "--dump"]) == EXIT_OK
    out = capsys.readouterr().out
    assert "=== EXECUTION TRACE ===" in out
    assert "0x00000002:\tDIV\t\t0x00000007" in out
    assert "=== DISASSEMBLED CODE ===" in out


def test_program_io_uses_stdin_and_stdout(tmp_path, monkeypatch, capsys):
    program = _assemble(tmp_path, "echo", "IN OUT HALT\n")
    monkeypatch.setattr("sys.stdin", io.StringIO("z"))
    assert main([str(program)]) == EXIT_OK
    assert "z\n" in capsys.readouterr().out


def test_runtime_error_exits_with_postmortem_on_stderr(tmp_path, capsys):
    program = _assemble(tmp_path, "div0", "LOADI 1\nDIVI 0\nHALT\n")
    assert main([str(program)]) == EXIT_RUNTIME
    captured = capsys.readouterr()
    assert "=== POST-MORTEM DUMP ===" in captured.err
    assert "HALTED" not in captured.out


def test_step_limit(tmp_path):
    program = _assemble(tmp_path, "spin", "top: JMPI top\n")
    assert main([str(program), "--max-steps", "100"]) == EXIT_RUNTIME


def test_large_program_needs_resize(tmp_path):
    program = _assemble(tmp_path, "big", "LOADI 1\n" * 24 + "HALT\n")
    assert main([str(program)]) == EXIT_RUNTIME
    assert main([str(program), "--resize"]) == EXIT_OK
    assert main([str(program), "--memory", "30"]) == EXIT_OK


def test_unreadable_or_malformed_program(tmp_path):
    assert main([str(tmp_path / "missing.m86")]) == EXIT_IO
    bad = tmp_path / "bad.m86"
    bad.write_text("01000000\nnot-a-word\n", encoding="utf-8")
    assert main([str(bad)]) == EXIT_IO


def test_bad_memory_size_is_a_usage_error(average):
    with pytest.raises(SystemExit) as exc:
        main([str(average), "--memory", "0"])
    assert exc.value.code == EXIT_USAGE
