"""
Incremental splitter that turns an event-stream byte stream into lines.
Handles the three line terminators of the SSE framing (LF, CR and CRLF), also when
a terminator or a line is split across several chunks.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

_TERMINATOR = re.compile(rb"[\r\n]")
_CR = 0x0D
_LF = 0x0A


@dataclass(frozen=True, slots=True)
class Line:
    """
    One line of the event stream, without its terminator.

    `field_boundary` is the index of the first ':' in `raw`, 0 for a comment line
    and -1 when the line has no ':' (which includes the empty line).
    """

    raw: bytes
    field_boundary: int = -1

    def __len__(self) -> int:
        return len(self.raw)


class LineTokenizer:
    """
    Splits byte chunks into `Line` objects and hands each one to `on_line`.

    Bytes after the last terminator of a chunk are kept until the next call to
    `feed`; the scan resumes where the previous one stopped, so no byte is
    searched twice, whatever the number of chunks a line is spread over.
    """

    def __init__(self, on_line: Callable[[Line], None]) -> None:
        self._on_line = on_line
        self._buffer = bytearray()
        # Primer byte del buffer que aún no se ha examinado.
        self._scan_from = 0
        self._field_boundary = -1
        self._skip_lf = False

    def feed(self, chunk: bytes) -> None:
        if not chunk:
            return

        buf = self._buffer
        buf += chunk
        end_of_data = len(buf)
        pos = self._scan_from
        line_start = 0

        # A bare CR closed the previous chunk: a leading LF belongs to that terminator.
        if self._skip_lf:
            self._skip_lf = False
            if buf[pos] == _LF:
                pos += 1
                line_start = pos

        while True:
            match = _TERMINATOR.search(buf, pos)
            line_end = match.start() if match is not None else end_of_data

            if self._field_boundary < 0:
                colon = buf.find(b":", pos, line_end)
                if colon >= 0:
                    self._field_boundary = colon - line_start

            if match is None:
                break

            self._on_line(Line(bytes(buf[line_start:line_end]), self._field_boundary))
            self._field_boundary = -1

            pos = line_end + 1
            if buf[line_end] == _CR:
                if pos < end_of_data:
                    if buf[pos] == _LF:
                        pos += 1
                else:
                    self._skip_lf = True
            line_start = pos

        del buf[:line_start]
        self._scan_from = len(buf)

    @property
    def pending_bytes(self) -> int:
        """Number of buffered bytes that do not form a complete line yet."""
        return len(self._buffer)
