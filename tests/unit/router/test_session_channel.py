"""
Unit tests for Session and ClientChannel.
"""

import pytest

from stocksim.errors import ClientDisconnectedError
from stocksim.router.session import ClientChannel, Session
from stocksim.types import SessionState
from tests.fixtures.fixtures import FakeWriter, scripted_reader


class TestSession:
    def test_defaults(self) -> None:
        session = Session(peer="p")
        assert session.state == SessionState.CONNECTED
        assert session.username is None
        assert not session.authenticated
        assert len(session.session_id) == 12

    def test_ids_are_unique(self) -> None:
        assert Session(peer="a").session_id != Session(peer="b").session_id

    def test_login_and_close(self) -> None:
        session = Session(peer="p")
        session.login("James")
        assert session.authenticated
        session.close()
        assert session.state == SessionState.CLOSED
        assert not session.authenticated


class TestClientChannel:
    @pytest.mark.asyncio
    async def test_read_and_send(self) -> None:
        writer = FakeWriter()
        channel = ClientChannel(scripted_reader("quote GOOG"), writer)  # type: ignore[arg-type]

        assert await channel.read_line() == "quote GOOG"
        assert await channel.read_line() is None

        await channel.send("GOOG 100.000000")
        assert bytes(writer.buffer) == b"GOOG 100.000000\0"

    @pytest.mark.asyncio
    async def test_peer_formatting(self) -> None:
        channel = ClientChannel(scripted_reader(), FakeWriter(("10.0.0.1", 4242)))  # type: ignore[arg-type]
        assert channel.peer == "10.0.0.1:4242"

        channel = ClientChannel(scripted_reader(), FakeWriter(None))  # type: ignore[arg-type]
        assert channel.peer == "unknown"

    @pytest.mark.asyncio
    async def test_write_failure_becomes_disconnect(self) -> None:
        writer = FakeWriter()
        writer.fail_with = ConnectionResetError("reset by peer")
        channel = ClientChannel(scripted_reader(), writer)  # type: ignore[arg-type]

        with pytest.raises(ClientDisconnectedError):
            await channel.send("hello")

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self) -> None:
        writer = FakeWriter()
        channel = ClientChannel(scripted_reader(), writer)  # type: ignore[arg-type]

        await channel.close()
        await channel.close()

        assert writer.closed
