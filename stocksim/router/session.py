"""
Per-connection session state and the client channel.

A Session is owned by exactly one connection task and is never shared.
ClientChannel turns stream failures into ClientDisconnectedError so the
session loop has one place to end the session.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from stocksim.errors import ClientDisconnectedError
from stocksim.transport.framing import FrameReader, encode_reply
from stocksim.types import SessionState

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Server-side state of one connected client."""

    peer: str
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: SessionState = SessionState.CONNECTED
    username: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED and self.username is not None

    def login(self, username: str) -> None:
        self.username = username
        self.state = SessionState.AUTHENTICATED

    def close(self) -> None:
        self.state = SessionState.CLOSED


class ClientChannel:
    """Duplex text channel to one client."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        max_frame_bytes: int = 4096,
    ) -> None:
        self._frames = FrameReader(reader, max_frame_bytes=max_frame_bytes)
        self._writer = writer

    @property
    def peer(self) -> str:
        peername = self._writer.get_extra_info("peername")
        if isinstance(peername, tuple) and len(peername) >= 2:
            return f"{peername[0]}:{peername[1]}"
        return str(peername) if peername else "unknown"

    async def read_line(self, skip_empty: bool = True) -> Optional[str]:
        """Next client line, or None once the client has closed its side."""
        try:
            return await self._frames.read_frame(skip_empty=skip_empty)
        except ConnectionError as e:
            raise ClientDisconnectedError(
                f"Connection lost while reading: {e}", component="ClientChannel"
            ) from e

    async def send(self, text: str) -> None:
        try:
            self._writer.write(encode_reply(text))
            await self._writer.drain()
        except ConnectionError as e:
            raise ClientDisconnectedError(
                f"Connection lost while writing: {e}", component="ClientChannel"
            ) from e

    async def close(self) -> None:
        if self._writer.is_closing():
            return
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except ConnectionError as e:
            logger.debug(f"Connection already reset on close: {e}")
