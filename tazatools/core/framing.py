"""Newline-delimited JSON framing.

The worker writes one JSON document per line, but reads from its stdout pipe
come back in arbitrary chunks: a document may be split across reads and a
single read may carry several documents. ``LineFramer`` buffers the incomplete
tail between ``feed`` calls and yields every complete document.

Lines that are not valid JSON (build chatter, stray prints) are dropped with a
diagnostic and framing continues on the next line.
"""
from __future__ import annotations

import codecs
import json
from typing import Any, Callable, Iterable, Iterator, List, Optional, Union

from .logging import core_logger

Chunk = Union[str, bytes, bytearray]

DEFAULT_MAX_LINE_BYTES = 16 * 1024 * 1024


def encode_frame(obj: Any) -> str:
    """Serialize one document as a single newline-terminated line."""
    # json.dumps escapes control characters, so the only newline is the terminator
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False) + "\n"


class LineFramer:
    def __init__(
        self,
        on_invalid: Optional[Callable[[str, Exception], None]] = None,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
    ):
        self._buf = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._on_invalid = on_invalid
        self._max_line = max_line_bytes
        self._discarding = False
        self.dropped = 0

    def feed(self, chunk: Chunk) -> List[Any]:
        if isinstance(chunk, (bytes, bytearray)):
            chunk = self._decoder.decode(bytes(chunk))
        if not chunk:
            return []
        self._buf += chunk
        frames: List[Any] = []
        while True:
            nl = self._buf.find("\n")
            if nl < 0:
                break
            line, self._buf = self._buf[:nl], self._buf[nl + 1:]
            if self._discarding:
                # tail of an oversized line; resync after its newline
                self._discarding = False
                continue
            self._parse_line(line, frames)
        if len(self._buf) > self._max_line:
            core_logger.warning(f"framer: discarding oversized line ({len(self._buf)} chars without newline)")
            self.dropped += 1
            self._buf = ""
            self._discarding = True
        return frames

    def flush(self) -> List[Any]:
        """Parse whatever is left once the stream has ended."""
        tail = self._buf + self._decoder.decode(b"", final=True)
        self._buf = ""
        frames: List[Any] = []
        if not self._discarding:
            self._parse_line(tail, frames)
        self._discarding = False
        return frames

    def frames(self, chunks: Iterable[Chunk]) -> Iterator[Any]:
        for chunk in chunks:
            yield from self.feed(chunk)
        yield from self.flush()

    @property
    def pending(self) -> str:
        return self._buf

    def _parse_line(self, line: str, out: List[Any]):
        line = line.strip()
        if not line:
            return
        try:
            out.append(json.loads(line))
        except json.JSONDecodeError as e:
            self.dropped += 1
            preview = line if len(line) <= 120 else line[:117] + "..."
            core_logger.debug(f"framer: dropped non-JSON line: {preview!r}")
            if self._on_invalid is not None:
                self._on_invalid(line, e)


__all__ = ["LineFramer", "encode_frame", "DEFAULT_MAX_LINE_BYTES"]
