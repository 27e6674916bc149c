from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from m86asm.cli import EXIT_IO, EXIT_OK, M86ArgumentParser, configure_logging
from m86asm.emulator import (
    DEFAULT_MEMORY_SIZE,
    EmulationError,
    Emulator,
    ProgramFormatError,
    boot_banner,
    halted_banner,
    load_program_file,
)
from m86asm.isa import DescriptorFormatError, default_descriptor_path, load_descriptor_file
from m86asm.source import UnreadableInputError


logger = logging.getLogger(__name__)

EXIT_RUNTIME = 3


def _positive(text: str) -> int:
    value = int(text)
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {text}")
    return value


def build_parser() -> argparse.ArgumentParser:
    ap = M86ArgumentParser(prog="m86run", description="Run a Micro86 word listing")
    ap.add_argument("program", help="Micro86 program file (one hex word per line)")
    ap.add_argument("-t", "--trace", action="store_true", help="print every executed instruction")
    ap.add_argument("-d", "--dump", action="store_true", help="print the disassembled program after the run")
    ap.add_argument("-r", "--resize", action="store_true", help="grow memory to fit a large program")
    ap.add_argument("--memory", type=_positive, default=DEFAULT_MEMORY_SIZE, help="memory size in words")
    ap.add_argument("--max-steps", type=_positive, help="stop after this many instructions")
    ap.add_argument("--isa", default=str(default_descriptor_path()), help="instruction set descriptor file")
    verbosity = ap.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="log debug details")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="log errors only")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose, args.quiet)

    try:
        descriptor = load_descriptor_file(args.isa)
        words = load_program_file(args.program)
    except UnreadableInputError as exc:
        logger.error(exc.message)
        return EXIT_IO
    except (DescriptorFormatError, ProgramFormatError) as exc:
        logger.error("Invalid syntax in line %d in %s!", exc.line_no, exc.source)
        return EXIT_IO

    try:
        emulator = Emulator(words, descriptor, memory_size=args.memory, resize=args.resize)
    except EmulationError as exc:
        logger.error("Micro86 ERROR: %s", exc)
        return EXIT_RUNTIME

    out = sys.stdout
    out.write(boot_banner(args.program))
    if args.trace:
        out.write("\n=== EXECUTION TRACE ===\n\n")
    outcome = emulator.run(stdout=out, trace=out if args.trace else None, max_steps=args.max_steps)
    if outcome.error is not None:
        logger.error("Micro86 ERROR: %s", outcome.error)
        sys.stderr.write(emulator.postmortem())
        return EXIT_RUNTIME

    if args.dump:
        out.write(emulator.disassembly())
    out.write(emulator.postmortem())
    out.write(halted_banner())
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
