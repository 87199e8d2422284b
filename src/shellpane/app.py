"""Interactive shell loop and one-shot execution."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path

from rich.console import Console
from rich.live import Live
from rich.text import Text

from shellpane.config import AppConfig
from shellpane.services.navigation import ShellContext
from shellpane.services.session import SessionManager
from shellpane.storage.database import close_db, init_db
from shellpane.storage.history import HistoryEvent
from shellpane.storage.models import Exchange
from shellpane.utils.formatting import format_exchange_header, render_payload

logger = logging.getLogger(__name__)


def shell_prompt(context: ShellContext) -> str:
    name = context.current_directory.name or str(context.current_directory)
    return f"{name} % "


def print_exchange(console: Console, exchange: Exchange, is_error: bool = False) -> None:
    console.print(format_exchange_header(exchange, is_error))
    body = render_payload(exchange.payload)
    if isinstance(body, Text) and not body.plain:
        return
    console.print(body)


async def follow(manager: SessionManager, exchange: Exchange, console: Console) -> None:
    """Show provisional output live until the exchange completes."""
    with Live(render_payload(exchange.payload), console=console, transient=True, refresh_per_second=8) as live:

        def on_change(event: HistoryEvent, changed: Exchange | None) -> None:
            if event is HistoryEvent.UPDATED and changed is not None and changed.id == exchange.id:
                live.update(render_payload(changed.payload))

        unsubscribe = manager.history.subscribe(on_change)
        try:
            await manager.wait(exchange.id)
        finally:
            unsubscribe()


async def _submit_and_show(manager: SessionManager, console: Console, prompt: str, line: str) -> Exchange | None:
    errors_before = len(manager.error_history)
    exchange = await manager.submit(prompt, line)
    if exchange is None:
        return None
    if exchange.running:
        await follow(manager, exchange, console)

    print_exchange(console, exchange)
    for error in manager.error_history.exchanges[errors_before:]:
        print_exchange(console, error, is_error=True)
    return exchange


async def run_shell(config: AppConfig, console: Console, start: Path | None = None) -> None:
    """Read command lines until EOF, forwarding Ctrl-C to running commands."""
    if config.storage.enabled:
        await init_db(config.storage.db_path)

    context = ShellContext(start)
    manager = SessionManager(config, context)

    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, manager.handle_control_key, "c")
    logger.info("Shell started in %s", context.current_directory)

    try:
        while True:
            prompt = shell_prompt(context)
            try:
                line = await asyncio.to_thread(console.input, Text(prompt, style="green"))
            except EOFError:
                break
            await _submit_and_show(manager, console, prompt, line)
    finally:
        loop.remove_signal_handler(signal.SIGINT)
        await manager.shutdown()
        if config.storage.enabled:
            await close_db()
        logger.info("Shell stopped")


async def run_once(config: AppConfig, console: Console, command: str, start: Path | None = None) -> int:
    """Run a single command line and return its exit status."""
    if config.storage.enabled:
        await init_db(config.storage.db_path)

    context = ShellContext(start if start is not None else Path.cwd())
    manager = SessionManager(config, context)
    try:
        exchange = await _submit_and_show(manager, console, shell_prompt(context), command)
    finally:
        await manager.shutdown()
        if config.storage.enabled:
            await close_db()

    if exchange is None or exchange.exit_status is None:
        return 0
    return exchange.exit_status
