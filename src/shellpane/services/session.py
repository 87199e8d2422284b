"""Pseudo-terminal session manager.

Each external command runs as ``<shell> -c <command>`` with a pty slave as
its stdin and stdout (so colorizing tools behave as in a terminal) and a pipe
for stderr. A supervisor task per session consumes events from a queue: output
chunks pushed by an event-loop reader on the pty master and an exit event
pushed by a process waiter. History is only mutated from that task, on the
event loop thread.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import pty
import signal
import termios
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Union

from shellpane.config import AppConfig
from shellpane.services.builtins import BuiltinDispatcher
from shellpane.services.navigation import ShellContext
from shellpane.storage.database import save_exchange
from shellpane.storage.history import HistoryStore
from shellpane.storage.models import AttributedPayload, Exchange
from shellpane.terminal.ansi import interpret
from shellpane.terminal.envelope import ENVELOPE_MARKER, classify_output, looks_like_envelope, plain_runs

logger = logging.getLogger(__name__)

LAUNCH_FAILURE_STATUS = -1


@dataclass(frozen=True)
class OutputChunk:
    data: bytes


@dataclass(frozen=True)
class ProcessExited:
    returncode: int


SessionEvent = Union[OutputChunk, ProcessExited]


def _utf8_decoder() -> codecs.IncrementalDecoder:
    return codecs.getincrementaldecoder("utf-8")()


@dataclass
class Session:
    """Live resources behind one running external command."""

    exchange_id: str
    process: asyncio.subprocess.Process
    master_fd: int
    stderr_reader: asyncio.Task
    started: float
    events: asyncio.Queue = field(default_factory=asyncio.Queue)
    buffer: bytearray = field(default_factory=bytearray)
    chunks: list[str] = field(default_factory=list)
    decoder: codecs.IncrementalDecoder = field(default_factory=_utf8_decoder)
    task: asyncio.Task | None = None

    @property
    def text(self) -> str:
        return "".join(self.chunks)

    @property
    def looks_enveloped(self) -> bool:
        return looks_like_envelope(bytes(self.buffer[: len(ENVELOPE_MARKER)]))

    def absorb(self, data: bytes) -> None:
        """Add a chunk to the raw buffer and to the decoded text.

        A chunk that is not valid UTF-8 adds nothing to the text. A lead
        byte left pending by the previous chunk is discarded and the chunk
        is decoded on its own.
        """
        self.buffer += data
        try:
            text = self.decoder.decode(data)
        except UnicodeDecodeError:
            self.decoder.reset()
            try:
                text = self.decoder.decode(data)
            except UnicodeDecodeError:
                logger.debug("Dropping undecodable %d byte chunk", len(data))
                self.decoder.reset()
                return
        self.chunks.append(text)


def exit_status(returncode: int) -> int:
    """Shell-style status: the exit code, or 128 + signal number."""
    return returncode if returncode >= 0 else 128 - returncode


def _disable_newline_translation(fd: int) -> None:
    try:
        attrs = termios.tcgetattr(fd)
        attrs[1] = attrs[1] & ~termios.ONLCR
        termios.tcsetattr(fd, termios.TCSANOW, attrs)
    except termios.error:
        logger.debug("Could not adjust pty output flags", exc_info=True)


def _drain(fd: int, size: int) -> Iterator[bytes]:
    while True:
        try:
            data = os.read(fd, size)
        except OSError:
            return
        if not data:
            return
        yield data


class SessionManager:
    """Run submitted commands and keep their exchanges up to date."""

    def __init__(
        self,
        config: AppConfig,
        context: ShellContext,
        history: HistoryStore | None = None,
        error_history: HistoryStore | None = None,
    ) -> None:
        self.config = config
        self.context = context
        self.history = history if history is not None else HistoryStore("stdout")
        self.error_history = error_history if error_history is not None else HistoryStore("stderr")
        self.builtins = BuiltinDispatcher(
            context,
            self.history,
            self.error_history,
            listing_limit=config.history.listing_limit,
        )
        self._sessions: dict[str, Session] = {}

    @property
    def running(self) -> list[str]:
        """Exchange ids of the sessions still in flight."""
        return list(self._sessions)

    def is_running(self, exchange_id: str) -> bool:
        return exchange_id in self._sessions

    async def submit(self, prompt: str, command: str) -> Exchange | None:
        """Run a command line; returns its exchange, or None if it was blank.

        Built-ins complete before this returns. External commands return
        as soon as the process is started, with a running exchange.
        """
        command = command.strip("\r\n")
        # No quoting or escaping: plain whitespace split.
        parts = command.split()
        if not parts:
            return None

        if parts[0] not in self.builtins.names:
            return await self._launch(prompt, command)

        exchange = self.builtins.dispatch(prompt, command, parts)
        if exchange is not None:
            await self._record(exchange)
        return exchange

    def handle_control_key(self, key: str) -> None:
        """Control-key events from the command line; only Ctrl-C is handled."""
        if key == "c":
            self.interrupt()

    def interrupt(self) -> int:
        """Send SIGTERM to every running session. Returns how many."""
        sessions = list(self._sessions.values())
        for session in sessions:
            self._terminate(session)
        return len(sessions)

    def stop(self, exchange_id: str) -> bool:
        """Send SIGTERM to the session owning ``exchange_id``, if running."""
        session = self._sessions.get(exchange_id)
        if session is None:
            return False
        self._terminate(session)
        return True

    async def wait(self, exchange_id: str | None = None) -> None:
        """Wait until one session (or all of them) has been finalized."""
        if exchange_id is not None:
            session = self._sessions.get(exchange_id)
            tasks = [session.task] if session is not None and session.task else []
        else:
            tasks = [s.task for s in self._sessions.values() if s.task is not None]
        if tasks:
            await asyncio.gather(*tasks)

    async def shutdown(self) -> None:
        self.interrupt()
        await self.wait()

    # --- Process lifecycle ---

    def _build_env(self) -> dict[str, str]:
        env = os.environ.copy()
        env["TERM"] = self.config.shell.term
        env["CLICOLOR"] = "1"
        return env

    async def _launch(self, prompt: str, command: str) -> Exchange:
        exchange = self.history.append(Exchange(prompt=prompt, command=command))
        started = time.monotonic()
        cwd = str(self.context.current_directory)

        master_fd: int | None = None
        slave_fd: int | None = None
        try:
            master_fd, slave_fd = pty.openpty()
            _disable_newline_translation(slave_fd)
            process = await asyncio.create_subprocess_exec(
                self.config.shell.executable,
                "-c",
                command,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=self._build_env(),
                start_new_session=True,
            )
        except Exception as e:
            logger.exception("Failed to launch command: %s", command)
            if master_fd is not None:
                os.close(master_fd)
            await self._fail(exchange, str(e) or type(e).__name__, started)
            return exchange
        finally:
            if slave_fd is not None:
                os.close(slave_fd)

        os.set_blocking(master_fd, False)
        assert process.stderr is not None
        session = Session(
            exchange_id=exchange.id,
            process=process,
            master_fd=master_fd,
            stderr_reader=asyncio.create_task(process.stderr.read()),
            started=started,
        )
        self._sessions[exchange.id] = session
        session.task = asyncio.create_task(self._supervise(session))
        logger.info("Started pid %d in %s: %s", process.pid, cwd, command)
        return exchange

    async def _fail(self, exchange: Exchange, message: str, started: float) -> None:
        duration_ms = int((time.monotonic() - started) * 1000)
        self.history.complete(
            exchange.id,
            AttributedPayload(plain_runs(message)),
            LAUNCH_FAILURE_STATUS,
            duration_ms,
        )
        error_exchange = self.error_history.append(
            Exchange(
                prompt=exchange.prompt,
                command=exchange.command,
                payload=AttributedPayload(plain_runs(message)),
                exit_status=LAUNCH_FAILURE_STATUS,
                duration_ms=duration_ms,
            )
        )
        await self._record(exchange, error_exchange)

    def _terminate(self, session: Session) -> None:
        logger.info("Terminating pid %d", session.process.pid)
        try:
            os.killpg(session.process.pid, signal.SIGTERM)
        except ProcessLookupError:
            pass
        except OSError:
            logger.warning("Could not signal pid %d", session.process.pid, exc_info=True)

    async def _wait_for_exit(self, session: Session) -> None:
        returncode = await session.process.wait()
        session.events.put_nowait(ProcessExited(returncode))

    def _on_readable(self, session: Session) -> None:
        try:
            data = os.read(session.master_fd, self.config.shell.read_size)
        except BlockingIOError:
            return
        except OSError:
            # EIO once the child side of the pty is closed.
            data = b""
        if not data:
            asyncio.get_running_loop().remove_reader(session.master_fd)
            return
        session.events.put_nowait(OutputChunk(data))

    async def _supervise(self, session: Session) -> None:
        loop = asyncio.get_running_loop()
        loop.add_reader(session.master_fd, self._on_readable, session)
        waiter = asyncio.create_task(self._wait_for_exit(session))
        try:
            while True:
                event: SessionEvent = await session.events.get()
                if isinstance(event, ProcessExited):
                    returncode = event.returncode
                    break
                self._stream(session, event.data)
        finally:
            loop.remove_reader(session.master_fd)

        while not session.events.empty():
            event = session.events.get_nowait()
            if isinstance(event, OutputChunk):
                session.absorb(event.data)
        for data in _drain(session.master_fd, self.config.shell.read_size):
            session.absorb(data)

        await waiter
        await self._finalize(session, returncode)

    def _stream(self, session: Session, data: bytes) -> None:
        session.absorb(data)
        if session.looks_enveloped:
            return
        # Whole-buffer rerender keeps styles opened early applied to later text.
        runs = tuple(interpret(session.text))
        self.history.update_payload(session.exchange_id, AttributedPayload(runs))

    async def _finalize(self, session: Session, returncode: int) -> None:
        try:
            stderr_bytes = await session.stderr_reader
        except Exception:
            logger.exception("Failed to read stderr of pid %d", session.process.pid)
            stderr_bytes = b""
        stderr_text = stderr_bytes.decode("utf-8", errors="replace").strip("\r\n")

        payload = classify_output(
            bytes(session.buffer),
            stderr_text,
            abnormal=returncode < 0,
            stdout_text=session.text,
        )
        status = exit_status(returncode)
        duration_ms = int((time.monotonic() - session.started) * 1000)

        del self._sessions[session.exchange_id]
        exchange = self.history.complete(session.exchange_id, payload, status, duration_ms)
        os.close(session.master_fd)

        error_exchange = None
        if stderr_text:
            error_exchange = self.error_history.append(
                Exchange(
                    prompt=exchange.prompt,
                    command=exchange.command,
                    payload=AttributedPayload(plain_runs(stderr_text)),
                    exit_status=status,
                    duration_ms=duration_ms,
                )
            )

        logger.info(
            "Finished pid %d with status %d in %dms: %s",
            session.process.pid,
            status,
            duration_ms,
            exchange.command,
        )
        await self._record(exchange, error_exchange)

    async def _record(self, exchange: Exchange, error_exchange: Exchange | None = None) -> None:
        if not self.config.storage.enabled:
            return
        await save_exchange(exchange, "stdout")
        if error_exchange is not None:
            await save_exchange(error_exchange, "stderr")
