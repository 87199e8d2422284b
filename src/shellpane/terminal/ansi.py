"""ANSI escape sequence interpreter.

Turns a character stream into a list of :class:`StyledRun` objects. Only the
subset of SGR parameters that command line tools commonly emit is modelled:
bold, italic, underline, the 16 palette colors and their resets. Cursor
movement, private modes and character-set designation are consumed and
discarded.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum, auto

from shellpane.storage.models import (
    BRIGHT_COLORS,
    DEFAULT_STYLE,
    NORMAL_COLORS,
    Color,
    StyledRun,
    TextStyle,
)

logger = logging.getLogger(__name__)

ESC = "\x1b"
CHARSET_DESIGNATORS = frozenset("AB012")


class ParserState(Enum):
    INITIAL = auto()
    ESCAPED = auto()
    FIRST_PARAM = auto()
    SECOND_PARAM = auto()
    XTERM_EXTENSION = auto()
    TERMINAL_MODE_EXTENSION = auto()


def _foreground(code: int) -> Color | None:
    if 30 <= code <= 37:
        return NORMAL_COLORS[code - 30]
    if 90 <= code <= 97:
        return BRIGHT_COLORS[code - 90]
    return None


def _background(code: int) -> Color | None:
    if 40 <= code <= 47:
        return NORMAL_COLORS[code - 40]
    if 100 <= code <= 107:
        return BRIGHT_COLORS[code - 100]
    return None


def apply_first_parameter(style: TextStyle, code: int) -> TextStyle:
    """Apply an SGR parameter in first position. Unknown codes are ignored."""
    if code == 0:
        return DEFAULT_STYLE
    if code == 1:
        return replace(style, bold=True)
    if code == 3:
        return replace(style, italic=True)
    if code == 4:
        return replace(style, underline=True)
    if code == 24:
        return replace(style, underline=False)
    if code == 39:
        return replace(style, foreground=Color.DEFAULT_FOREGROUND)
    color = _foreground(code)
    if color is not None:
        return replace(style, foreground=color)
    return style


def apply_second_parameter(style: TextStyle, code: int) -> TextStyle:
    """Apply an SGR parameter in second position (background colors only)."""
    if code == 49:
        return replace(style, background=Color.DEFAULT_BACKGROUND)
    color = _background(code)
    if color is not None:
        return replace(style, background=color)
    return style


def interpret(text: str) -> list[StyledRun]:
    """Parse ``text`` and return its styled runs.

    Every call starts from a clean state with the default style, so the
    same input always yields the same runs.
    """
    state = ParserState.INITIAL
    style = DEFAULT_STYLE
    runs: list[StyledRun] = []
    pending: list[str] = []
    param: int | None = None

    def flush() -> None:
        if pending:
            runs.append(StyledRun("".join(pending), style))
            pending.clear()

    for char in text:
        if state is ParserState.INITIAL:
            if char == ESC:
                flush()
                param = None
                state = ParserState.ESCAPED
            else:
                pending.append(char)

        elif state is ParserState.ESCAPED:
            if char == "[":
                state = ParserState.FIRST_PARAM
            elif char == "(":
                state = ParserState.TERMINAL_MODE_EXTENSION
            else:
                state = ParserState.INITIAL

        elif state is ParserState.FIRST_PARAM:
            if "0" <= char <= "9":
                param = (param or 0) * 10 + int(char)
            elif char == "?":
                state = ParserState.XTERM_EXTENSION
            elif char in ";m":
                style = apply_first_parameter(style, param or 0)
                if char == ";":
                    param = None
                    state = ParserState.SECOND_PARAM
                else:
                    state = ParserState.INITIAL
            elif char == "J" and param == 2:
                runs.clear()
                state = ParserState.INITIAL
            else:
                state = ParserState.INITIAL

        elif state is ParserState.SECOND_PARAM:
            if "0" <= char <= "9":
                param = (param or 0) * 10 + int(char)
            elif char == "m":
                style = apply_second_parameter(style, param or 0)
                state = ParserState.INITIAL
            else:
                state = ParserState.INITIAL

        elif state is ParserState.XTERM_EXTENSION:
            if char == "h":
                state = ParserState.INITIAL

        elif state is ParserState.TERMINAL_MODE_EXTENSION:
            if char not in CHARSET_DESIGNATORS:
                logger.debug("Unknown character set designator: %r", char)
            state = ParserState.INITIAL

    flush()
    return runs


def strip_escapes(text: str) -> str:
    """Return ``text`` with every recognized escape sequence removed."""
    return "".join(run.text for run in interpret(text))
