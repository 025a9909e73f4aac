"""Server-Sent Events framing over a raw byte stream.

Network reads do not respect line boundaries, and a multi-byte UTF-8
character can be split across two reads. ``LineReader`` buffers both cases
and only hands out complete lines.
"""

from __future__ import annotations

import codecs

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


class LineReader:
    """Feed bytes in, get complete lines out; the partial tail is retained."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text received after the last newline."""
        return self._buffer

    def feed(self, data: bytes) -> list[str]:
        """Consume one chunk and return the lines it completed."""
        self._buffer += self._decoder.decode(data)
        if "\n" not in self._buffer:
            return []
        *lines, self._buffer = self._buffer.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        """Return the unterminated tail, if any, at end of stream."""
        self._buffer += self._decoder.decode(b"", final=True)
        tail, self._buffer = self._buffer.rstrip("\r"), ""
        return [tail] if tail else []


def data_payload(line: str) -> str | None:
    """Return the payload of a ``data:`` line, or None for anything else.

    Blank lines, ``:`` comments and other SSE fields (``event:``, ``id:``)
    carry nothing the adapters need.
    """
    if not line.startswith(DATA_PREFIX):
        return None
    return line[len(DATA_PREFIX) :].strip()
