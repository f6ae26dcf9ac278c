"""
UDP transport for backend services.

- DatagramServer: binds a service to a UDP endpoint. Each datagram is handled
  synchronously inside the event loop callback, so a service sees requests
  strictly one at a time, in arrival order.
- UdpBackendClient: the router's side. One request, one reply, per call, on a
  fresh connected endpoint so that concurrent sessions never read each
  other's replies. A reply arriving after the timeout is dropped along with
  its endpoint; the backend may already have applied the request.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from stocksim.config import BackendConfig, EndpointConfig
from stocksim.errors import BackendTimeoutError, BackendUnavailableError
from stocksim.protocol import ERR_INTERNAL
from stocksim.services.base import BaseService
from stocksim.types import RouterState

logger = logging.getLogger(__name__)


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace").strip("\0").strip()


class DatagramServiceProtocol(asyncio.DatagramProtocol):
    """Feeds datagrams to a service and sends back its reply."""

    def __init__(self, service: BaseService) -> None:
        self._service = service
        self._transport: Optional[asyncio.DatagramTransport] = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport  # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        request = _decode(data)
        logger.debug(f"[{self._service.name}] Received from {addr[0]}:{addr[1]}: {request!r}")
        try:
            reply = self._service.handle(request)
        except Exception as e:
            logger.error(f"[{self._service.name}] Request handling failed: {e}", exc_info=True)
            reply = ERR_INTERNAL

        if self._transport is not None:
            self._transport.sendto(reply.encode("utf-8"), addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"[{self._service.name}] Socket error: {exc}")


class DatagramServer:
    """
    Lifecycle wrapper for one backend service endpoint.

    Usage:
        server = DatagramServer(QuoteService.from_file(path), EndpointConfig(port=43654))
        await server.start()
        await server.serve_forever()
    """

    def __init__(self, service: BaseService, endpoint: EndpointConfig) -> None:
        self._service = service
        self._endpoint = endpoint
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._state = RouterState.STOPPED
        self._closed = asyncio.Event()

    @property
    def state(self) -> RouterState:
        return self._state

    @property
    def service(self) -> BaseService:
        return self._service

    @property
    def address(self) -> tuple[str, int]:
        """Bound address; resolves port 0 to the actual ephemeral port."""
        if self._transport is None:
            return self._endpoint.address
        sockname = self._transport.get_extra_info("sockname")
        return (sockname[0], sockname[1])

    async def start(self) -> None:
        if self._state == RouterState.RUNNING:
            logger.warning(f"[{self._service.name}] Already running")
            return
        self._state = RouterState.STARTING
        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: DatagramServiceProtocol(self._service),
                local_addr=self._endpoint.address,
            )
        except OSError:
            self._state = RouterState.FAILED
            raise
        self._transport = transport
        self._closed.clear()
        self._state = RouterState.RUNNING
        host, port = self.address
        logger.info(f"[{self._service.name}] Booting up using UDP on {host}:{port}")

    async def serve_forever(self) -> None:
        await self._closed.wait()

    async def stop(self) -> None:
        if self._transport is None:
            return
        self._state = RouterState.STOPPING
        self._transport.close()
        self._transport = None
        self._state = RouterState.STOPPED
        self._closed.set()
        logger.info(f"[{self._service.name}] Stopped")


@dataclass
class BackendMetrics:
    """Round-trip metrics for one backend."""

    requests: int = 0
    replies: int = 0
    timeouts: int = 0
    unavailable: int = 0

    latency_samples: list[float] = field(default_factory=list)
    max_latency_samples: int = 100

    def record_latency(self, latency_ms: float) -> None:
        """Record a latency sample."""
        self.latency_samples.append(latency_ms)
        if len(self.latency_samples) > self.max_latency_samples:
            self.latency_samples.pop(0)

    @property
    def avg_latency_ms(self) -> Optional[float]:
        """Average latency in milliseconds."""
        if not self.latency_samples:
            return None
        return sum(self.latency_samples) / len(self.latency_samples)


class _ReplyProtocol(asyncio.DatagramProtocol):
    """Completes a future with the first datagram received."""

    def __init__(self, reply: asyncio.Future[bytes]) -> None:
        self._reply = reply

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        if not self._reply.done():
            self._reply.set_result(data)

    def error_received(self, exc: Exception) -> None:
        # ICMP port unreachable surfaces here on connected sockets
        if not self._reply.done():
            self._reply.set_exception(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc is not None and not self._reply.done():
            self._reply.set_exception(exc)


class UdpBackendClient:
    """Request/reply client for one backend service."""

    def __init__(self, config: BackendConfig) -> None:
        self._config = config
        self._metrics = BackendMetrics()

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> BackendConfig:
        return self._config

    @property
    def metrics(self) -> BackendMetrics:
        return self._metrics

    async def request(self, message: str) -> str:
        """
        Send one request and wait for one reply.

        Raises:
            BackendTimeoutError: No reply within the configured timeout
            BackendUnavailableError: The request could not be sent
        """
        loop = asyncio.get_running_loop()
        reply: asyncio.Future[bytes] = loop.create_future()
        self._metrics.requests += 1
        started = time.monotonic()

        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _ReplyProtocol(reply),
                remote_addr=self._config.endpoint.address,
            )
        except OSError as e:
            self._metrics.unavailable += 1
            raise BackendUnavailableError(
                f"Cannot reach {self.name} at {self._config.endpoint}: {e}",
                backend=self.name,
                request=message,
                component="UdpBackendClient",
            ) from e

        try:
            transport.sendto(message.encode("utf-8"))
            data = await asyncio.wait_for(reply, timeout=self._config.timeout_s)
        except asyncio.TimeoutError as e:
            self._metrics.timeouts += 1
            raise BackendTimeoutError(
                f"No reply from {self.name} within {self._config.timeout_s}s",
                timeout_s=self._config.timeout_s,
                backend=self.name,
                request=message,
                component="UdpBackendClient",
            ) from e
        except OSError as e:
            self._metrics.unavailable += 1
            raise BackendUnavailableError(
                f"Request to {self.name} failed: {e}",
                backend=self.name,
                request=message,
                component="UdpBackendClient",
            ) from e
        finally:
            transport.close()

        self._metrics.replies += 1
        self._metrics.record_latency((time.monotonic() - started) * 1000)
        return _decode(data)
