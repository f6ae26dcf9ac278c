"""Backend Port Interface.

Contract: send one request to a backend service and return its one reply.
Raises BackendError (BackendTimeoutError, BackendUnavailableError) when no
reply is obtained. No retries; a late reply is discarded.
"""

from __future__ import annotations

from typing import Protocol


class Backend(Protocol):
    @property
    def name(self) -> str: ...

    async def request(self, message: str) -> str: ...
