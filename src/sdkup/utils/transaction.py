"""Guarded execution with rollback on failure."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


def run(action: Callable[[], T], rollback: Callable[[], None]) -> T:
    """Run ``action``; on any error run ``rollback`` and re-raise the original error.

    A failing rollback is logged and never replaces the original error.
    """

    try:
        return action()
    except Exception:
        try:
            rollback()
        except Exception:
            logger.exception("Rollback failed; the original error is re-raised")
        raise


@dataclass
class TransactionContext:
    """Tracks directories created by one operation so rollback can remove them."""

    created: List[Path] = field(default_factory=list)

    def track(self, path: Path) -> Path:
        if path not in self.created:
            self.created.append(path)
        return path

    @property
    def created_directories(self) -> List[Path]:
        return list(self.created)

    def remove_created(self) -> None:
        # newest first so nested directories go before their parents
        for path in reversed(self.created):
            if path.is_dir():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()


def prune_empty_dirs(start: Path, stop: Path, *, keep_stop: bool = False) -> None:
    """Remove ``start`` and its empty parents up to and including ``stop``.

    With ``keep_stop`` the walk ends below ``stop``.
    """

    current = start
    while True:
        if keep_stop and current == stop:
            return
        if current.is_dir():
            if any(current.iterdir()):
                return
            current.rmdir()
        if current == stop or stop not in current.parents:
            return
        current = current.parent


__all__ = ["TransactionContext", "prune_empty_dirs", "run"]
