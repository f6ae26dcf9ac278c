"""
Client stream framing.

Client -> router: lines delimited by ``\\n`` or ``\\0`` (trailing ``\\r``
stripped, empty lines skipped except where the reader asks for them).
Router -> client: each reply is one frame terminated by a single ``\\0``.
"""

from __future__ import annotations

import asyncio
import re
from typing import Optional

from stocksim.errors import FrameError

REPLY_TERMINATOR = b"\0"
_DELIMITER = re.compile(rb"[\n\0]")


def encode_reply(text: str) -> bytes:
    return text.encode("utf-8") + REPLY_TERMINATOR


class FrameReader:
    """Splits a byte stream into client frames."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        max_frame_bytes: int = 4096,
        chunk_size: int = 1024,
    ) -> None:
        self._reader = reader
        self._max_frame_bytes = max_frame_bytes
        self._chunk_size = chunk_size
        self._buffer = bytearray()
        self._eof = False

    async def read_frame(self, skip_empty: bool = True) -> Optional[str]:
        """
        Return the next frame, or None at end of stream.

        With ``skip_empty`` (the default) blank lines are dropped; otherwise a
        blank line comes back as ``""``.

        Raises:
            FrameError: A frame exceeds the size limit or is not UTF-8
        """
        while True:
            match = _DELIMITER.search(self._buffer)
            if match is not None and match.start() <= self._max_frame_bytes:
                raw = bytes(self._buffer[: match.start()])
                del self._buffer[: match.end()]
                frame = self._decode(raw)
                if frame or not skip_empty:
                    return frame
                continue

            if len(self._buffer) > self._max_frame_bytes:
                raise FrameError(
                    f"Frame exceeds {self._max_frame_bytes} bytes",
                    component="FrameReader",
                )

            if self._eof:
                # Unterminated tail counts as a final frame
                raw = bytes(self._buffer)
                self._buffer.clear()
                frame = self._decode(raw)
                return frame or None

            chunk = await self._reader.read(self._chunk_size)
            if not chunk:
                self._eof = True
            else:
                self._buffer.extend(chunk)

    def _decode(self, raw: bytes) -> str:
        try:
            return raw.decode("utf-8").rstrip("\r").strip()
        except UnicodeDecodeError as e:
            raise FrameError(f"Frame is not valid UTF-8: {e}", component="FrameReader") from e
