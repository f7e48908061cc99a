"""Progress reporters for console and silent operation."""

from __future__ import annotations

import sys
from typing import TextIO

from sdkup.ports.progress import ProgressReporter


class NullProgressReporter(ProgressReporter):
    def start(self, description: str, total: int) -> None:
        return None

    def advance(self, message: str | None = None, amount: int = 1) -> None:
        return None

    def complete(self, message: str | None = None) -> None:
        return None


class ConsoleProgressReporter(ProgressReporter):
    """Writes one line per step, prefixed with a ``[done/total]`` counter."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stderr
        self._description = ""
        self._total = 1
        self._done = 0

    def start(self, description: str, total: int) -> None:
        self._description = description
        self._total = max(total, 1)
        self._done = 0
        self._stream.write(f"{description}...\n")

    def advance(self, message: str | None = None, amount: int = 1) -> None:
        self._done = min(self._done + amount, self._total)
        if message:
            self._stream.write(f"  [{self._done}/{self._total}] {message}\n")

    def complete(self, message: str | None = None) -> None:
        self._done = self._total
        self._stream.write(f"{message or self._description + ': done'}\n")
        self._stream.flush()


__all__ = ["ConsoleProgressReporter", "NullProgressReporter"]
