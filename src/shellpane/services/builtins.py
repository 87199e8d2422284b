"""Built-in commands handled without spawning a process."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path

from shellpane.services.navigation import ShellContext
from shellpane.storage.history import HistoryStore
from shellpane.storage.models import Exchange, StructuredPayload, TextFormat
from shellpane.utils.formatting import format_listing
from shellpane.utils.wildcard import matches

logger = logging.getLogger(__name__)

DEFAULT_LISTING_LIMIT = 16


class BuiltinFailure(Exception):
    """A built-in command could not do what was asked."""


class BuiltinDispatcher:
    """Run ``cd``, ``select``, ``deselect``, ``pwd`` and ``history``.

    Results are appended to the stdout history as completed exchanges;
    failures are also appended to the stderr history.
    """

    def __init__(
        self,
        context: ShellContext,
        history: HistoryStore,
        error_history: HistoryStore,
        listing_limit: int = DEFAULT_LISTING_LIMIT,
    ) -> None:
        self.context = context
        self.history = history
        self.error_history = error_history
        self.listing_limit = listing_limit
        self._commands: dict[str, Callable[[list[str]], str]] = {
            "cd": self.chdir,
            "select": self.select,
            "deselect": self.deselect,
            "pwd": self.pwd,
            "history": self.show_history,
        }

    @property
    def names(self) -> frozenset[str]:
        return frozenset(self._commands)

    def dispatch(self, prompt: str, command: str, parts: list[str]) -> Exchange | None:
        """Run a built-in; returns None when ``parts[0]`` is not one."""
        handler = self._commands.get(parts[0])
        if handler is None:
            return None

        args = parts[1:]
        try:
            output = handler(args)
            status = 0
        except BuiltinFailure as e:
            output = str(e)
            status = 1
            logger.info("Built-in %s failed: %s", parts[0], output)
            self.error_history.append(self._result(prompt, command, output, status))

        return self.history.append(self._result(prompt, command, output, status))

    @staticmethod
    def _result(prompt: str, command: str, text: str, status: int) -> Exchange:
        return Exchange(
            prompt=prompt,
            command=command,
            payload=StructuredPayload(text, TextFormat.PLAIN),
            exit_status=status,
            duration_ms=0,
        )

    # --- Commands ---

    def chdir(self, args: list[str]) -> str:
        if not args or not args[0]:
            self.context.open(self.context.home)
            return ""

        target = Path(args[0]).expanduser()
        if not target.is_absolute():
            target = self.context.current_directory / target
        # Unresolvable targets are ignored without an error.
        self.context.open(Path(os.path.normpath(target)))
        return ""

    def select(self, args: list[str]) -> str:
        patterns = [arg for arg in args if arg]
        if not patterns:
            names = [entry.name for entry in self.context.unselected_entries()]
            return format_listing(names) if names else "nothing to select"

        for entry in self._matching(patterns):
            self.context.select(entry)
        return ""

    def deselect(self, args: list[str]) -> str:
        patterns = [arg for arg in args if arg]
        if not patterns:
            names = [entry.name for entry in self.context.selected_entries()]
            return format_listing(names) if names else "nothing to deselect"

        for entry in self._matching(patterns):
            self.context.deselect(entry)
        return ""

    def pwd(self, args: list[str]) -> str:
        if args and args[0].startswith("b"):
            if not self.context.go_back():
                raise BuiltinFailure("no back history")
        elif args and args[0].startswith("f"):
            if not self.context.go_forward():
                raise BuiltinFailure("no forward history")
        return str(self.context.current_directory)

    def show_history(self, args: list[str]) -> str:
        commands = [exchange.command for exchange in self.history]
        if not commands:
            raise BuiltinFailure("no history")

        last = len(commands) - 1
        if args:
            start = _event_number(args[0])
            if start < 0 or start > last:
                raise BuiltinFailure(f"no such event: {args[0]}")
            end = last
            if len(args) > 1:
                end = min(max(_event_number(args[1]), start), last)
        else:
            start = max(0, len(commands) - self.listing_limit)
            end = last

        return "\n".join(f"{index} {commands[index]}" for index in range(start, end + 1))

    def _matching(self, patterns: list[str]) -> list[Path]:
        return [
            entry
            for pattern in patterns
            for entry in self.context.entries
            if matches(entry.name, pattern)
        ]


def _event_number(arg: str) -> int:
    try:
        return int(arg)
    except ValueError:
        raise BuiltinFailure(f"no such event: {arg}") from None
