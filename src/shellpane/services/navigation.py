"""Browsing state shared by the built-in commands and the session manager."""

from __future__ import annotations

import logging
from pathlib import Path

from shellpane.utils.system import home_directory, is_directory, list_directory

logger = logging.getLogger(__name__)


class ShellContext:
    """Current directory, back/forward history, listing and selection.

    The directory listing is cached and only re-read on navigation or when
    :meth:`refresh` is called (e.g. by a filesystem watcher).
    """

    def __init__(self, start: str | Path | None = None, home: str | Path | None = None) -> None:
        self.home = Path(home) if home is not None else home_directory()
        first = Path(start) if start is not None else self.home
        self.navigation_history: list[Path] = [first]
        self.index = 0
        self.entries: list[Path] = []
        self.selection: set[Path] = set()
        self.refresh()

    @property
    def current_directory(self) -> Path:
        return self.navigation_history[self.index]

    def open(self, directory: str | Path) -> bool:
        """Navigate to ``directory``, dropping any forward history."""
        directory = Path(directory)
        if not is_directory(directory):
            return False
        del self.navigation_history[self.index + 1 :]
        self.navigation_history.append(directory)
        self.index += 1
        self.refresh()
        logger.debug("Changed directory to %s", directory)
        return True

    def can_go_back(self) -> bool:
        return self.index > 0

    def go_back(self) -> bool:
        if not self.can_go_back():
            return False
        self.index -= 1
        self.refresh()
        return True

    def can_go_forward(self) -> bool:
        return self.index < len(self.navigation_history) - 1

    def go_forward(self) -> bool:
        if not self.can_go_forward():
            return False
        self.index += 1
        self.refresh()
        return True

    def refresh(self) -> None:
        self.entries = list_directory(self.current_directory)

    def select(self, entry: Path) -> None:
        self.selection.add(entry)

    def deselect(self, entry: Path) -> None:
        self.selection.discard(entry)

    def selected_entries(self) -> list[Path]:
        return [entry for entry in self.entries if entry in self.selection]

    def unselected_entries(self) -> list[Path]:
        return [entry for entry in self.entries if entry not in self.selection]
