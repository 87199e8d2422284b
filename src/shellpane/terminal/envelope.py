"""Output classification.

A command may start its output with a MIME-style header block to ask for
its body to be shown as markdown, plain text or an image::

    MIME-Version: 1.0
    Content-Type: text/markdown

    # Title

Output without such a block is terminal text and goes through the ANSI
interpreter.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass

from shellpane.storage.models import (
    AttributedPayload,
    ImagePayload,
    Payload,
    StructuredPayload,
    StyledRun,
    TextFormat,
)
from shellpane.terminal.ansi import interpret

logger = logging.getLogger(__name__)

ENVELOPE_MARKER = b"MIME-Version:"

_HEADER_LINE = re.compile(rb"^([!-9;-~]+):[ \t]*(.*?)[ \t]*$")


@dataclass(frozen=True)
class Envelope:
    """A parsed header block and the body that follows it."""

    content_type: str
    base64_encoded: bool
    body: bytes


def build_envelope(content_type: str, body: bytes, *, encode_base64: bool = False) -> bytes:
    """Wrap ``body`` in a header block declaring its content type."""
    lines = [b"MIME-Version: 1.0", b"Content-Type: " + content_type.encode("ascii")]
    if encode_base64:
        lines.append(b"Content-Transfer-Encoding: base64")
        body = base64.encodebytes(body)
    return b"\n".join(lines) + b"\n\n" + body


def looks_like_envelope(buffer: bytes) -> bool:
    """Whether streamed output so far may be the start of an envelope."""
    if not buffer:
        return False
    return buffer.startswith(ENVELOPE_MARKER) or ENVELOPE_MARKER.startswith(buffer)


def parse_envelope(data: bytes) -> Envelope | None:
    """Parse the header block at the start of ``data``.

    Returns None unless a complete block (header lines ended by a blank
    line) containing ``MIME-Version`` is found.
    """
    has_version = False
    content_type = ""
    base64_encoded = False
    pos = 0

    while True:
        end = data.find(b"\n", pos)
        if end == -1:
            return None
        line = data[pos:end]
        if line.endswith(b"\r"):
            line = line[:-1]
        pos = end + 1

        if not line:
            break
        match = _HEADER_LINE.match(line)
        if match is None:
            return None

        key = match.group(1).decode("ascii").lower()
        value = match.group(2).decode("utf-8", errors="replace")
        if key == "mime-version":
            has_version = True
        elif key == "content-type":
            content_type = value.split(";", 1)[0].strip().lower()
        elif key == "content-transfer-encoding":
            base64_encoded = value.strip().lower() == "base64"

    if not has_version:
        return None
    return Envelope(content_type=content_type, base64_encoded=base64_encoded, body=data[pos:])


def decode_image(envelope: Envelope) -> bytes | None:
    if not envelope.base64_encoded:
        return envelope.body
    try:
        return base64.b64decode(envelope.body)
    except (binascii.Error, ValueError):
        logger.warning("Undecodable base64 image body (%d bytes)", len(envelope.body))
        return None


def plain_runs(text: str) -> tuple[StyledRun, ...]:
    """Runs for text shown verbatim, without escape interpretation."""
    return (StyledRun(text),) if text else ()


def classify_output(
    stdout: bytes,
    stderr_text: str,
    *,
    abnormal: bool,
    stdout_text: str | None = None,
) -> Payload | None:
    """Decide the final payload for a finished command.

    Args:
        stdout: Raw bytes captured from the terminal.
        stderr_text: Decoded error output.
        abnormal: True when the process was terminated by a signal.
        stdout_text: Already decoded stdout, when the caller decoded it
            while streaming; defaults to a lossy decode of ``stdout``.

    Returns:
        The payload to store, or None when an envelope declares a type that
        is not rendered and the current payload should be kept.
    """
    envelope = parse_envelope(stdout)
    if envelope is not None:
        if envelope.content_type.startswith("image/"):
            return ImagePayload(decode_image(envelope))
        if envelope.content_type == "text/markdown":
            return StructuredPayload(_body_text(envelope.body), TextFormat.MARKDOWN)
        if envelope.content_type == "text/plain":
            return StructuredPayload(_body_text(envelope.body), TextFormat.PLAIN)
        logger.debug("Leaving output with content type %r unrendered", envelope.content_type)
        return None

    if stdout_text is None:
        stdout_text = stdout.decode("utf-8", errors="replace")
    stdout_text = stdout_text.rstrip("\r\n")

    if abnormal and not stdout_text and stderr_text:
        return AttributedPayload(plain_runs(stderr_text))
    return AttributedPayload(tuple(interpret(stdout_text)))


def _body_text(body: bytes) -> str:
    return body.decode("utf-8", errors="replace").rstrip("\r\n")
