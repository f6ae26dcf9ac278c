"""
TCP front end of the router.

Accepts client connections and runs one session task per connection. Each
task reads one command at a time, hands it to the TradeOrchestrator and
awaits the full backend sequence before reading the next line. Sessions
share nothing except the registry, the stats counters and the backend
clients (which open a fresh socket per call).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Optional

from stocksim.adapters.telemetry.jsonl import JsonlTelemetry, NullTelemetry
from stocksim.admin import AdminServer
from stocksim.config import RouterConfig
from stocksim.errors import ClientDisconnectedError, ConfigurationError, FrameError
from stocksim.ports.backend import Backend
from stocksim.ports.telemetry import Telemetry
from stocksim.protocol import ERR_UNKNOWN_COMMAND
from stocksim.router.dispatch import parse_command
from stocksim.router.orchestrator import TradeOrchestrator
from stocksim.router.registry import SessionRegistry
from stocksim.router.session import ClientChannel, Session
from stocksim.transport.datagram import UdpBackendClient
from stocksim.types import RouterState, RouterStats

logger = logging.getLogger(__name__)

BACKEND_NAMES = ("credential", "quote", "ledger")


class RouterServer:
    """
    Front-end router.

    Usage:
        router = RouterServer(RouterConfig())
        await router.start()
        await router.serve_forever()

    Backends default to UDP clients built from the config; tests may inject
    any object satisfying the Backend port.
    """

    def __init__(
        self,
        config: RouterConfig,
        backends: Optional[Mapping[str, Backend]] = None,
        telemetry: Optional[Telemetry] = None,
    ) -> None:
        self._config = config
        self._name = "router"

        if backends is None:
            backends = {b.name: UdpBackendClient(b) for b in config.backends}
        missing = [name for name in BACKEND_NAMES if name not in backends]
        if missing:
            raise ConfigurationError(
                "router needs credential, quote and ledger backends",
                field="backends",
                value=missing,
            )
        self._backends = dict(backends)

        if telemetry is None:
            telemetry = (
                JsonlTelemetry(config.audit_path, component=self._name)
                if config.audit_path is not None
                else NullTelemetry()
            )
        self._telemetry = telemetry

        self._stats = RouterStats()
        self._registry = SessionRegistry()
        self._orchestrator = TradeOrchestrator(
            credential=self._backends["credential"],
            quote=self._backends["quote"],
            ledger=self._backends["ledger"],
            telemetry=self._telemetry,
            stats=self._stats,
        )

        self._state = RouterState.STOPPED
        self._server: Optional[asyncio.Server] = None
        self._admin: Optional[AdminServer] = None
        self._session_tasks: set[asyncio.Task[None]] = set()
        self._closed = asyncio.Event()

    @property
    def config(self) -> RouterConfig:
        return self._config

    @property
    def state(self) -> RouterState:
        return self._state

    @property
    def stats(self) -> RouterStats:
        return self._stats

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def backends(self) -> Mapping[str, Backend]:
        return self._backends

    @property
    def address(self) -> tuple[str, int]:
        """Bound listener address; resolves port 0 to the actual port."""
        if self._server is None or not self._server.sockets:
            return self._config.listen.address
        sockname = self._server.sockets[0].getsockname()
        return (sockname[0], sockname[1])

    async def start(self) -> None:
        if self._state == RouterState.RUNNING:
            logger.warning(f"[{self._name}] Already running")
            return

        self._state = RouterState.STARTING
        try:
            self._server = await asyncio.start_server(
                self.handle_connection,
                host=self._config.listen.host,
                port=self._config.listen.port,
            )
            if self._config.admin is not None:
                self._admin = AdminServer(self, self._config.admin)
                await self._admin.start()
        except OSError as e:
            self._state = RouterState.FAILED
            logger.error(f"[{self._name}] Failed to start: {e}")
            if self._server is not None:
                self._server.close()
                self._server = None
            raise

        self._closed.clear()
        self._state = RouterState.RUNNING
        host, port = self.address
        logger.info(f"[{self._name}] Booting up using TCP on {host}:{port}")
        for backend in self._config.backends:
            logger.info(f"[{self._name}] {backend.name} service at {backend.endpoint}")

    async def serve_forever(self) -> None:
        await self._closed.wait()

    async def stop(self) -> None:
        if self._state not in (RouterState.RUNNING, RouterState.FAILED):
            return

        self._state = RouterState.STOPPING
        logger.info(f"[{self._name}] Stopping ({len(self._session_tasks)} open sessions)")

        if self._admin is not None:
            await self._admin.stop()
            self._admin = None

        if self._server is not None:
            self._server.close()

        tasks = list(self._session_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if self._server is not None:
            await self._server.wait_closed()
            self._server = None

        self._state = RouterState.STOPPED
        self._closed.set()
        logger.info(f"[{self._name}] Stopped")

    async def handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        """Run one client session to completion."""
        task = asyncio.current_task()
        if task is not None:
            self._session_tasks.add(task)  # type: ignore[arg-type]
            task.add_done_callback(self._session_tasks.discard)

        channel = ClientChannel(reader, writer, max_frame_bytes=self._config.max_frame_bytes)
        session = Session(peer=channel.peer)
        self._registry.open(session)
        self._stats.sessions_opened += 1
        logger.info(f"[{self._name}] Connection accepted from {session.peer} ({session.session_id})")
        self._telemetry.log("session_opened", session_id=session.session_id, peer=session.peer)

        try:
            while True:
                line = await channel.read_line()
                if line is None:
                    break
                command = parse_command(line)
                # Raw line is not logged, AUTH carries the password
                logger.debug(f"[{session.session_id}] Received: {command.command_type.value}")
                keep_open = await self._orchestrator.handle(session, channel, command)
                self._registry.record(session)
                if not keep_open:
                    break
        except ClientDisconnectedError as e:
            logger.info(f"[{session.session_id}] Client disconnected: {e}")
        except FrameError as e:
            logger.warning(f"[{session.session_id}] Dropping client: {e}")
            try:
                await channel.send(ERR_UNKNOWN_COMMAND)
            except ClientDisconnectedError:
                pass
        finally:
            session.close()
            self._registry.close(session.session_id)
            self._stats.sessions_closed += 1
            await channel.close()
            logger.info(f"[{self._name}] Connection closed ({session.session_id})")
            self._telemetry.log(
                "session_closed",
                session_id=session.session_id,
                username=session.username,
            )
