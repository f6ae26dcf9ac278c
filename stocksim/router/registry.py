"""
Cross-session directory for administrative introspection.

Mutation points are fixed: ``open`` on accept, ``record`` after each handled
command (which is when a login becomes visible), ``close`` on disconnect.
All of them run on the router's event loop, so no further locking applies.
Passwords never enter the registry.
"""

from __future__ import annotations

import logging
from typing import Optional

from stocksim.router.session import Session
from stocksim.types import SessionInfo, SessionState

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(self) -> None:
        self._sessions: dict[str, SessionInfo] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def open(self, session: Session) -> SessionInfo:
        info = SessionInfo(session_id=session.session_id, peer=session.peer)
        self._sessions[session.session_id] = info
        logger.debug(f"Registered session {session.session_id} from {session.peer}")
        return info

    def record(self, session: Session) -> None:
        info = self._sessions.get(session.session_id)
        if info is None:
            return
        info.state = session.state
        info.username = session.username
        info.commands_handled += 1

    def close(self, session_id: str) -> None:
        info = self._sessions.pop(session_id, None)
        if info is not None:
            info.state = SessionState.CLOSED
            logger.debug(f"Removed session {session_id}")

    def get(self, session_id: str) -> Optional[SessionInfo]:
        return self._sessions.get(session_id)

    def authenticated_users(self) -> list[str]:
        return sorted(
            info.username
            for info in self._sessions.values()
            if info.state == SessionState.AUTHENTICATED and info.username
        )

    def snapshot(self) -> list[dict[str, object]]:
        return [info.to_dict() for info in self._sessions.values()]
