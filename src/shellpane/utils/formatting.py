"""Rendering helpers turning exchanges into rich renderables."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from rich.console import RenderableType
from rich.markdown import Markdown
from rich.style import Style
from rich.text import Text

from shellpane.storage.models import (
    AttributedPayload,
    Color,
    Exchange,
    Payload,
    StructuredPayload,
    StyledRun,
    TextFormat,
    TextStyle,
)

logger = logging.getLogger(__name__)

_DEFAULT_COLORS = (Color.DEFAULT_FOREGROUND, Color.DEFAULT_BACKGROUND)


def format_duration(ms: int) -> str:
    """Format milliseconds to human-readable duration."""
    if ms < 1000:
        return f"{ms}ms"
    elif ms < 60000:
        return f"{ms / 1000:.1f}s"
    else:
        minutes = ms // 60000
        seconds = (ms % 60000) // 1000
        return f"{minutes}m {seconds}s"


def format_listing(names: Iterable[str]) -> str:
    """One name per line, as shown by select/deselect without patterns."""
    return "\n".join(names)


def rich_style(style: TextStyle) -> Style:
    return Style(
        bold=style.bold or None,
        italic=style.italic or None,
        underline=style.underline or None,
        color=None if style.foreground in _DEFAULT_COLORS else style.foreground.value,
        bgcolor=None if style.background in _DEFAULT_COLORS else style.background.value,
    )


def to_rich_text(runs: Iterable[StyledRun]) -> Text:
    text = Text()
    for run in runs:
        text.append(run.text, style=rich_style(run.style))
    return text


def render_payload(payload: Payload) -> RenderableType:
    """Pick the renderable for each payload kind."""
    if isinstance(payload, AttributedPayload):
        return to_rich_text(payload.runs)
    if isinstance(payload, StructuredPayload):
        if payload.format is TextFormat.MARKDOWN:
            return Markdown(payload.text)
        return Text(payload.text)
    if payload.data is None:
        return Text("[image could not be decoded]", style="red")
    return Text(f"[image: {len(payload.data)} bytes]", style="cyan")


def status_color(exchange: Exchange, is_error: bool = False) -> str:
    if is_error:
        return "dark_orange"
    if exchange.running:
        return "cyan"
    return "green" if exchange.succeeded else "red"


def format_exchange_header(exchange: Exchange, is_error: bool = False) -> Text:
    """Prompt, command and status line shown above an exchange's output."""
    header = Text(exchange.prompt)
    header.append(exchange.command, style="bold")

    details: list[str] = []
    if exchange.running:
        details.append("running")
    else:
        if exchange.exit_status != 0:
            details.append(f"exit {exchange.exit_status}")
        if exchange.duration_ms is not None:
            details.append(format_duration(exchange.duration_ms))
    if details:
        header.append(f"  [{', '.join(details)}]", style="dim")

    header.stylize(status_color(exchange, is_error), 0, len(exchange.prompt))
    return header
