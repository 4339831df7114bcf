"""
Progress reporters for catalog checks.
"""

from __future__ import annotations

from typing import Optional

from tqdm import tqdm


class NullProgressReporter:
    """Progress reporter that ignores all notifications."""

    def start(self, total: int, description: str = "") -> None:
        pass

    def advance(self, description: str = "") -> None:
        pass

    def finish(self) -> None:
        pass


class TqdmProgressReporter:
    """Render check progress as a tqdm bar on stderr."""

    def __init__(self, disable: bool = False, leave: bool = False) -> None:
        self.disable = disable
        self.leave = leave
        self._bar: Optional[tqdm] = None
        self.completed = 0

    def start(self, total: int, description: str = "") -> None:
        self.finish()
        self.completed = 0
        self._bar = tqdm(
            total=total,
            desc=description or "Checking packages",
            unit="pkg",
            disable=self.disable,
            leave=self.leave,
        )

    def advance(self, description: str = "") -> None:
        self.completed += 1
        if self._bar is None:
            return
        if description:
            self._bar.set_postfix_str(description, refresh=False)
        self._bar.update(1)

    def finish(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None
