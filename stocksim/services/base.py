"""
Base class for backend services.

A service owns one in-memory table and answers one text request with one
text reply. It does no I/O of its own; the datagram transport feeds it
requests one at a time, which is what serializes all access to the table.
"""

from __future__ import annotations

import logging
from abc import ABC
from dataclasses import dataclass, field
from typing import Callable

from stocksim.protocol import ERR_MALFORMED_REQUEST

logger = logging.getLogger(__name__)


@dataclass
class ServiceStats:
    """Statistics for a backend service."""

    requests: int = 0
    malformed: int = 0
    errors: int = 0
    by_verb: dict[str, int] = field(default_factory=dict)


class BaseService(ABC):
    """
    Abstract base class for backend services.

    Subclasses register verb handlers in ``_verbs``; each handler receives the
    whitespace-split request (verb included) and returns the reply text.
    Requests with an unknown verb, or that a handler rejects with ValueError,
    get ``ERROR: Malformed request`` so that every request receives exactly
    one reply.
    """

    name = "service"

    def __init__(self) -> None:
        self._stats = ServiceStats()
        self._verbs: dict[str, Callable[[list[str]], str]] = {}

    @property
    def stats(self) -> ServiceStats:
        """Get service statistics."""
        return self._stats

    def handle(self, request: str) -> str:
        """Compute the reply for one request."""
        self._stats.requests += 1
        parts = request.strip().strip("\0").split()
        if not parts or parts[0] not in self._verbs:
            self._stats.malformed += 1
            logger.warning(f"[{self.name}] Unrecognized request: {request!r}")
            return ERR_MALFORMED_REQUEST

        verb = parts[0]
        self._stats.by_verb[verb] = self._stats.by_verb.get(verb, 0) + 1
        try:
            reply = self._verbs[verb](parts)
        except ValueError as e:
            self._stats.malformed += 1
            logger.warning(f"[{self.name}] Malformed {verb} request: {e}")
            return ERR_MALFORMED_REQUEST

        if reply.startswith("ERROR"):
            self._stats.errors += 1
        return reply
