from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

from m86asm.banner import cpp_banner, m86_banner
from m86asm.binary import generate_binary
from m86asm.encoding import RADIXES, OperandRangeError
from m86asm.isa import DescriptorFormatError, IsaDescriptor, default_descriptor_path, load_descriptor_file
from m86asm.parser import ParseError, parse_tokens
from m86asm.resolver import UnresolvedReferenceError
from m86asm.source import Token, UnreadableInputError, read_text, tokenize
from m86asm.transliterate import TransliterationError, generate_cpp


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_IO = 2
EXIT_SYNTAX = 3

SOURCE_ERRORS = (ParseError, UnresolvedReferenceError, TransliterationError, OperandRangeError)


class M86ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def build_parser() -> argparse.ArgumentParser:
    ap = M86ArgumentParser(prog="m86asm", description="Micro86 assembler and C++ translator")
    ap.add_argument("source", help="input assembly file")
    ap.add_argument("--m86", action="store_true", help="emit Micro86 machine words")
    ap.add_argument("--cpp", action="store_true", help="emit an equivalent C++ program")
    ap.add_argument("-o", "--out", help="output file (default: stdout)")
    ap.add_argument("--data", action="store_true", help="wrap output in a metadata banner")
    ap.add_argument("--isa", default=str(default_descriptor_path()), help="instruction set descriptor file")
    ap.add_argument("--radix", choices=RADIXES, default="hex", help="machine word format")
    verbosity = ap.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="log debug details")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="log errors only")
    return ap


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def render_m86(tokens: List[Token], descriptor: IsaDescriptor, radix: str = "hex", data: bool = False) -> str:
    started = time.monotonic()
    program = parse_tokens(tokens, descriptor)
    image = generate_binary(program, descriptor)
    body = image.render(radix)
    if not data:
        return body
    return m86_banner(body, image.instruction_count, image.variable_count, _elapsed_ms(started))


def render_cpp(tokens: List[Token], descriptor: IsaDescriptor, data: bool = False) -> str:
    started = time.monotonic()
    program = parse_tokens(tokens, descriptor)
    body = generate_cpp(program, descriptor)
    if not data:
        return body
    return cpp_banner(body, program.instruction_count, program.variable_count, _elapsed_ms(started))


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    if not (args.m86 or args.cpp):
        ap.error("one of --m86 or --cpp is required")

    configure_logging(args.verbose, args.quiet)

    try:
        descriptor = load_descriptor_file(args.isa)
        text = read_text(args.source)
    except UnreadableInputError as exc:
        logger.error(exc.message)
        return EXIT_IO
    except DescriptorFormatError as exc:
        logger.error("Invalid syntax in line %d in %s!", exc.line_no, exc.source)
        return EXIT_IO

    tokens = tokenize(text)
    if not tokens:
        logger.info("Nothing to translate in %s", args.source)
        return EXIT_OK

    outputs: List[str] = []
    try:
        if args.m86:
            outputs.append(render_m86(tokens, descriptor, args.radix, args.data))
        if args.cpp:
            outputs.append(render_cpp(tokens, descriptor, args.data))
    except SOURCE_ERRORS as exc:
        logger.error("Invalid syntax in %s: %s", args.source, exc)
        return EXIT_SYNTAX

    if not args.out:
        sys.stdout.write("".join(outputs))
        return EXIT_OK
    try:
        Path(args.out).write_text("".join(outputs), encoding="utf-8")
    except OSError as exc:
        logger.error("Failed to write %s: %s", args.out, exc)
        return EXIT_IO
    if args.m86:
        logger.info("Micro86 instructions written to: %s", args.out)
    if args.cpp:
        logger.info("C++ code written to: %s", args.out)
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
