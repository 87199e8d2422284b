"""Data models for shellpane."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Union


class Color(Enum):
    """Semantic terminal palette: 8 normal, 8 bright and the two defaults."""

    BLACK = "black"
    RED = "red"
    GREEN = "green"
    YELLOW = "yellow"
    BLUE = "blue"
    MAGENTA = "magenta"
    CYAN = "cyan"
    WHITE = "white"
    BRIGHT_BLACK = "bright_black"
    BRIGHT_RED = "bright_red"
    BRIGHT_GREEN = "bright_green"
    BRIGHT_YELLOW = "bright_yellow"
    BRIGHT_BLUE = "bright_blue"
    BRIGHT_MAGENTA = "bright_magenta"
    BRIGHT_CYAN = "bright_cyan"
    BRIGHT_WHITE = "bright_white"
    DEFAULT_FOREGROUND = "default_foreground"
    DEFAULT_BACKGROUND = "default_background"


NORMAL_COLORS: tuple[Color, ...] = (
    Color.BLACK,
    Color.RED,
    Color.GREEN,
    Color.YELLOW,
    Color.BLUE,
    Color.MAGENTA,
    Color.CYAN,
    Color.WHITE,
)

BRIGHT_COLORS: tuple[Color, ...] = (
    Color.BRIGHT_BLACK,
    Color.BRIGHT_RED,
    Color.BRIGHT_GREEN,
    Color.BRIGHT_YELLOW,
    Color.BRIGHT_BLUE,
    Color.BRIGHT_MAGENTA,
    Color.BRIGHT_CYAN,
    Color.BRIGHT_WHITE,
)


@dataclass(frozen=True)
class TextStyle:
    """Text attributes applied to a run of terminal output."""

    bold: bool = False
    italic: bool = False
    underline: bool = False
    foreground: Color = Color.DEFAULT_FOREGROUND
    background: Color = Color.DEFAULT_BACKGROUND


DEFAULT_STYLE = TextStyle()


@dataclass(frozen=True)
class StyledRun:
    """A contiguous span of text sharing one style."""

    text: str
    style: TextStyle = DEFAULT_STYLE


class TextFormat(Enum):
    PLAIN = "plain"
    MARKDOWN = "markdown"


@dataclass(frozen=True)
class AttributedPayload:
    """Terminal output rendered through the escape sequence interpreter."""

    runs: tuple[StyledRun, ...] = ()


@dataclass(frozen=True)
class StructuredPayload:
    """Text declared by the command itself as plain text or markdown."""

    text: str
    format: TextFormat = TextFormat.PLAIN


@dataclass(frozen=True)
class ImagePayload:
    """Image bytes, or None when the declared body could not be decoded."""

    data: bytes | None = None


Payload = Union[AttributedPayload, StructuredPayload, ImagePayload]


def payload_text(payload: Payload) -> str:
    """Return the plain text shown for a payload."""
    if isinstance(payload, AttributedPayload):
        return "".join(run.text for run in payload.runs)
    if isinstance(payload, StructuredPayload):
        return payload.text
    if payload.data is None:
        return "[image: undecodable]"
    return f"[image: {len(payload.data)} bytes]"


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Exchange:
    """One command submission and its (possibly still pending) output.

    ``exit_status`` stays None while the command runs and is set exactly
    once when it finishes.
    """

    prompt: str
    command: str
    payload: Payload = field(default_factory=AttributedPayload)
    exit_status: int | None = None
    duration_ms: int | None = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def running(self) -> bool:
        return self.exit_status is None

    @property
    def succeeded(self) -> bool:
        return self.exit_status == 0
