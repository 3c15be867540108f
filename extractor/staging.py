# -*- coding: utf-8 -*-

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

DOCUMENT = "document"
FILE = "file"


@dataclass(frozen=True)
class StagedAction:
    action: str
    undo: Callable[[], None]
    kind: str = DOCUMENT


class StagingLog:
    """Record of host mutations that can be undone in reverse order.

    Every successful mutation of the working document appends an entry holding
    the callable that reverts it. Files written to the output folder are
    recorded as well, so a failed run can remove (or restore) them.
    """

    def __init__(self) -> None:
        self._actions: List[StagedAction] = []

    def __len__(self) -> int:
        return len(self._actions)

    @property
    def actions(self) -> List[str]:
        return [a.action for a in self._actions]

    def record(self, action: str, undo: Callable[[], None], kind: str = DOCUMENT) -> None:
        self._actions.append(StagedAction(action, undo, kind))

    def record_file(self, path: Path) -> None:
        """Record that ``path`` is about to be written."""
        path = Path(path)
        previous: Optional[bytes] = path.read_bytes() if path.exists() else None

        def undo() -> None:
            if previous is None:
                path.unlink(missing_ok=True)
            else:
                path.write_bytes(previous)

        self.record(f"write {path.name}", undo, kind=FILE)

    def rollback(self, include_files: bool = True) -> int:
        """Replay undo actions newest first and clear the log.

        Returns the number of undo actions that ran.
        """
        count = 0
        while self._actions:
            staged = self._actions.pop()
            if staged.kind == FILE and not include_files:
                continue
            staged.undo()
            count += 1
        return count

    def clear(self) -> None:
        self._actions.clear()
