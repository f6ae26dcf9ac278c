"""
Unit tests for SessionRegistry.
"""

import pytest

from stocksim.router.registry import SessionRegistry
from stocksim.router.session import Session
from stocksim.types import SessionState


class TestSessionRegistry:
    """Tests for SessionRegistry."""

    @pytest.fixture
    def registry(self) -> SessionRegistry:
        return SessionRegistry()

    def test_open_and_close(self, registry: SessionRegistry) -> None:
        session = Session(peer="127.0.0.1:5000")

        info = registry.open(session)

        assert session.session_id in registry
        assert len(registry) == 1
        assert info.peer == "127.0.0.1:5000"
        assert info.state == SessionState.CONNECTED

        registry.close(session.session_id)
        assert session.session_id not in registry
        assert len(registry) == 0
        assert info.state == SessionState.CLOSED

    def test_close_unknown_is_noop(self, registry: SessionRegistry) -> None:
        registry.close("missing")
        assert len(registry) == 0

    def test_login_visible_after_record(self, registry: SessionRegistry) -> None:
        session = Session(peer="p")
        registry.open(session)
        session.login("James")

        assert registry.get(session.session_id).username is None

        registry.record(session)

        info = registry.get(session.session_id)
        assert info is not None
        assert info.username == "James"
        assert info.state == SessionState.AUTHENTICATED
        assert info.commands_handled == 1

    def test_authenticated_users(self, registry: SessionRegistry) -> None:
        for name in ("Mary", "James"):
            session = Session(peer=name)
            registry.open(session)
            session.login(name)
            registry.record(session)
        registry.open(Session(peer="anon"))

        assert registry.authenticated_users() == ["James", "Mary"]

    def test_snapshot_is_serializable(self, registry: SessionRegistry) -> None:
        session = Session(peer="p")
        registry.open(session)

        snapshot = registry.snapshot()

        assert len(snapshot) == 1
        entry = snapshot[0]
        assert entry["session_id"] == session.session_id
        assert entry["state"] == "connected"
        assert entry["username"] is None
        assert isinstance(entry["connected_at"], str)
        assert "password" not in entry
