from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List


SOURCE_COMMENT = ";"


class UnreadableInputError(Exception):
    def __init__(self, message: str, path: str) -> None:
        super().__init__(message)
        self.message = message
        self.path = path


@dataclass(frozen=True)
class Token:
    value: str
    line_no: int


def read_text(path: Path | str) -> str:
    resolved = Path(path)
    if not resolved.exists():
        raise UnreadableInputError(f"File not found: {resolved}", str(resolved))
    try:
        with resolved.open("r", encoding="utf-8") as handle:
            return handle.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise UnreadableInputError(f"Failed to read {resolved}: {exc}", str(resolved)) from exc


def strip_comments(text: str, marker: str = SOURCE_COMMENT) -> str:
    return "\n".join(line.split(marker, 1)[0] for line in text.splitlines())


def tokenize(text: str, marker: str = SOURCE_COMMENT) -> List[Token]:
    tokens: List[Token] = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        for value in line.split(marker, 1)[0].split():
            tokens.append(Token(value, line_no))
    return tokens
