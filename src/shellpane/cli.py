"""CLI entry point using typer."""

from __future__ import annotations

import asyncio
import grp
import logging
import mimetypes
import pwd
import stat
import sys
from datetime import datetime
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from shellpane import __version__
from shellpane.app import run_once, run_shell
from shellpane.config import (
    CONFIG_FILE,
    LOG_FILE,
    AppConfig,
    ensure_config_dir,
    get_config,
    load_config,
    reset_config,
    save_config,
)
from shellpane.storage.database import close_db, get_recent_exchanges, init_db
from shellpane.terminal.envelope import build_envelope
from shellpane.utils.formatting import format_duration
from shellpane.utils.system import list_directory

app = typer.Typer(
    name="shellpane",
    help="Run shell commands with classified, filterable output history.",
    add_completion=False,
)
console = Console()


def setup_logging(config: AppConfig, to_console: bool = False) -> None:
    ensure_config_dir()
    log_path = Path(config.logging.file).expanduser().resolve()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(str(log_path)),
            *([logging.StreamHandler()] if to_console else []),
        ],
    )


@app.command()
def shell(
    directory: Path = typer.Argument(None, help="Starting directory (default: home)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Also log to the console"),
) -> None:
    """Start an interactive shell session."""
    config = get_config()
    setup_logging(config, to_console=verbose)

    if directory is not None and not directory.is_dir():
        console.print(f"[red]Not a directory: {directory}[/red]")
        raise typer.Exit(1)

    console.print(f"[bold]shellpane v{__version__}[/bold]  Ctrl-C interrupts, Ctrl-D exits.\n")
    asyncio.run(run_shell(config, console, directory.resolve() if directory else None))


@app.command("exec")
def exec_command(
    command: str = typer.Argument(..., help="Command line to run"),
) -> None:
    """Run one command line and render its classified output."""
    config = get_config()
    setup_logging(config)
    status = asyncio.run(run_once(config, console, command))
    raise typer.Exit(status)


def _permissions(mode: int) -> str:
    return f"`{stat.filemode(mode)}`"


def _size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    value = size / 1024
    for unit in ("KB", "MB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def _owner(uid: int) -> str:
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return "-"


def _group(gid: int) -> str:
    try:
        return grp.getgrgid(gid).gr_name
    except KeyError:
        return "-"


def _table_row(path: Path) -> str:
    info = path.lstat()
    modified = datetime.fromtimestamp(info.st_mtime).strftime("%Y-%m-%d %H:%M")
    name = f"[{path.name}]({path.resolve().as_uri()})" + ("/" if path.is_dir() else "")
    return (
        f"| {_permissions(info.st_mode)} | {info.st_nlink} | {_owner(info.st_uid)} | {_group(info.st_gid)}"
        f" | {_size(info.st_size)} | {modified} | {name} |"
    )


@app.command("ls")
def list_command(
    paths: list[Path] = typer.Argument(None, help="Files or directories to list"),
    all_entries: bool = typer.Option(False, "--all", "-a", help="Include entries starting with '.'"),
) -> None:
    """List files as a markdown table inside an output envelope."""
    rows = [
        "| Permissions | Links | Owner | Group | Size | Modified | Name |",
        "| :---------: | ----: | ----- | ----- | ---: | -------: | ---- |",
    ]
    for path in paths or [Path(".")]:
        if path.is_dir():
            rows.extend(_table_row(entry) for entry in list_directory(path, include_hidden=all_entries))
        elif path.exists():
            rows.append(_table_row(path))
        else:
            print(f"ls: {path}: No such file or directory", file=sys.stderr)

    body = ("\n".join(rows) + "\n").encode("utf-8")
    typer.echo(build_envelope("text/markdown", body), nl=False)


@app.command("cat")
def cat_command(
    file: Path = typer.Argument(..., help="File to show"),
) -> None:
    """Write a file inside an output envelope describing its type."""
    try:
        data = file.read_bytes()
    except OSError as e:
        print(f"cat: {file}: {e.strerror}", file=sys.stderr)
        raise typer.Exit(1)

    content_type, _ = mimetypes.guess_type(file.name)
    if content_type is None and file.suffix.lower() in (".md", ".markdown"):
        content_type = "text/markdown"
    if content_type and content_type.startswith("image/"):
        typer.echo(build_envelope(content_type, data, encode_base64=True), nl=False)
        return

    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        content_type = "application/octet-stream"
    else:
        if content_type != "text/markdown":
            content_type = "text/plain"
    typer.echo(build_envelope(content_type, data), nl=False)


async def _load_history(config: AppConfig, lines: int, grep: str | None, stream: str) -> list[dict]:
    await init_db(config.storage.db_path)
    try:
        return await get_recent_exchanges(limit=lines, query=grep, stream=stream)
    finally:
        await close_db()


@app.command()
def history(
    lines: int = typer.Option(20, "--lines", "-n", help="Number of entries"),
    grep: str = typer.Option(None, "--grep", "-g", help="Only commands containing this text"),
    errors: bool = typer.Option(False, "--errors", "-e", help="Show the error stream history"),
) -> None:
    """Show recently recorded commands."""
    config = get_config()
    if not config.storage.enabled:
        console.print("[yellow]History storage is disabled.[/yellow]")
        return

    rows = asyncio.run(_load_history(config, lines, grep, "stderr" if errors else "stdout"))
    if not rows:
        console.print("[dim]No history.[/dim]")
        return

    table = Table(title="History")
    table.add_column("When", style="dim")
    table.add_column("Command", style="bold")
    table.add_column("Kind", style="cyan")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    for row in reversed(rows):
        status = row["exit_status"]
        table.add_row(
            row["created_at"][:19].replace("T", " "),
            row["command"],
            row["kind"],
            f"[green]{status}[/green]" if status == 0 else f"[red]{status}[/red]",
            format_duration(row["duration_ms"] or 0),
        )
    console.print(table)


@app.command()
def config(
    key: str = typer.Argument(None, help="Config key (e.g., shell.executable)"),
    value: str = typer.Argument(None, help="New value"),
) -> None:
    """View or modify configuration."""
    cfg = load_config()
    sections = {"shell": cfg.shell, "history": cfg.history, "storage": cfg.storage, "logging": cfg.logging}

    if key is None:
        # Show all config
        table = Table(title="Configuration")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for section_name, section in sections.items():
            for attr, current in vars(section).items():
                table.add_row(f"{section_name}.{attr}", str(current))
        console.print(table)
        if not CONFIG_FILE.exists():
            console.print("[dim]Defaults shown; no config file yet.[/dim]")
        return

    if value is None:
        console.print("[red]Usage: shellpane config <key> <value>[/red]")
        raise typer.Exit(1)

    parts = key.split(".")
    if len(parts) != 2:
        console.print("[red]Key format: section.key (e.g., shell.executable)[/red]")
        raise typer.Exit(1)

    section_name, attr = parts
    if section_name not in sections:
        console.print(f"[red]Unknown section: {section_name}[/red]")
        raise typer.Exit(1)

    obj = sections[section_name]
    if not hasattr(obj, attr):
        console.print(f"[red]Unknown key: {key}[/red]")
        raise typer.Exit(1)

    # Type coercion
    current = getattr(obj, attr)
    try:
        if isinstance(current, bool):
            typed_value: object = value.lower() in ("true", "1", "yes")
        elif isinstance(current, int):
            typed_value = int(value)
        else:
            typed_value = value
    except ValueError:
        console.print(f"[red]Invalid value type for {key}[/red]")
        raise typer.Exit(1)

    setattr(obj, attr, typed_value)
    save_config(cfg)
    reset_config()
    console.print(f"[green]{key} = {typed_value}[/green]")


@app.command()
def logs(
    lines: int = typer.Option(50, "--lines", "-n", help="Number of lines"),
) -> None:
    """View the log file."""
    log_path = Path(LOG_FILE).expanduser().resolve()
    if not log_path.exists():
        console.print("[dim]No log file found.[/dim]")
        return

    content = log_path.read_text()
    log_lines = content.strip().split("\n")
    for line in log_lines[-lines:]:
        console.print(line, markup=False, highlight=False)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"shellpane v{__version__}")
    console.print(f"Python: {sys.version.split()[0]}")
    console.print(f"Config: {CONFIG_FILE}")


if __name__ == "__main__":
    app()
