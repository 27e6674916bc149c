from __future__ import annotations

from datetime import datetime
from typing import Optional


TOOL_NAME = "M86Asm"
DATE_FORMAT = "%H:%M:%S, %m/%d/%Y"


def _wrap(
    body: str,
    comment: str,
    title: str,
    verb: str,
    count_label: str,
    count: int,
    variable_count: int,
    elapsed_ms: int,
    now: Optional[datetime],
) -> str:
    stamp = (now or datetime.now()).strftime(DATE_FORMAT)
    header = [
        f"{comment} {title}",
        f"{comment} {verb.capitalize()} using {TOOL_NAME}.",
        f"{comment} Dated: {stamp}.",
        f"{comment} Approx. {verb[:-2]}ing time: {elapsed_ms} ms.",
        f"{comment} Number of {count_label}: {count}.",
        f"{comment} Number of memory units allocated: {variable_count}.",
        "",
        f"{comment} === CODE === {comment}",
        "",
    ]
    footer = f"\n{comment} === EOF === {comment}\n"
    return "\n".join(header) + "\n" + body + footer


def m86_banner(
    body: str,
    instruction_count: int,
    variable_count: int,
    elapsed_ms: int,
    now: Optional[datetime] = None,
) -> str:
    return _wrap(
        body, "#", "Micro86 instructions.", "assembled", "instructions",
        instruction_count, variable_count, elapsed_ms, now,
    )


def cpp_banner(
    body: str,
    operation_count: int,
    variable_count: int,
    elapsed_ms: int,
    now: Optional[datetime] = None,
) -> str:
    return _wrap(
        body, "//", "C++ code.", "translated", "operations",
        operation_count, variable_count, elapsed_ms, now,
    )


def strip_banner(text: str) -> str:
    """Return the body of a bannered output, or the text unchanged."""
    for comment in ("#", "//"):
        start = f"{comment} === CODE === {comment}\n\n"
        end = f"\n{comment} === EOF === {comment}\n"
        if start in text and text.endswith(end):
            return text.split(start, 1)[1][: -len(end)]
    return text
