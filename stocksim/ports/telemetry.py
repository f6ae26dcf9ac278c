"""Telemetry Port Interface.

Contract: Log structured events. Implementations must not raise on sink errors
that would break a client session.
"""
from __future__ import annotations
from typing import Protocol, Any

class Telemetry(Protocol):
    def log(self, event: str, **fields: Any) -> None: ...
