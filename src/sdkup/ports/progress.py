"""Port definition for progress notifications."""

from __future__ import annotations

from abc import ABC, abstractmethod


class ProgressReporter(ABC):
    @abstractmethod
    def start(self, description: str, total: int) -> None:
        ...

    @abstractmethod
    def advance(self, message: str | None = None, amount: int = 1) -> None:
        ...

    @abstractmethod
    def complete(self, message: str | None = None) -> None:
        ...
