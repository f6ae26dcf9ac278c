"""
Client side of the router protocol.

ClientSession speaks the line protocol over one TCP connection: every
command is one line, every router reply is one NUL-terminated frame. For
buy and sell the router answers first with a confirmation prompt; the
session hands it to the caller's ``confirm`` callback and sends back
whatever line it returns.

The client keeps no trading state of its own, only whether it has logged in
and as whom.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from stocksim.config import ClientConfig
from stocksim.errors import ClientDisconnectedError
from stocksim.protocol import AUTH_SUCCESS, LOGOUT_SUCCESS, is_confirm_prompt
from stocksim.transport.framing import REPLY_TERMINATOR

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[str], Awaitable[str]]
InputFn = Callable[[str], str]
OutputFn = Callable[[str], None]

HELP_TEXT = "\n".join(
    [
        "Available commands:",
        "  quote - Show all stock prices",
        "  quote <stock> - Show specific stock price",
        "  buy <stock> <shares> - Buy shares of a stock",
        "  sell <stock> <shares> - Sell shares of a stock",
        "  position - View your current portfolio",
        "  exit - Logout and exit",
    ]
)


class ClientSession:
    """
    One connection to the router.

    Usage:
        async with ClientSession(ClientConfig()) as client:
            if await client.authenticate("James", "SODids392"):
                print(await client.execute("quote GOOG"))
    """

    def __init__(self, config: Optional[ClientConfig] = None) -> None:
        self._config = config or ClientConfig()
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._authenticated = False
        self._username: Optional[str] = None

    async def __aenter__(self) -> "ClientSession":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    @property
    def authenticated(self) -> bool:
        return self._authenticated

    @property
    def username(self) -> Optional[str]:
        return self._username

    async def connect(self) -> None:
        """
        Open the TCP connection to the router.

        Raises:
            ClientDisconnectedError: Router unreachable within connect_timeout_s
        """
        if self.connected:
            return
        endpoint = self._config.router
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(endpoint.host, endpoint.port),
                timeout=self._config.connect_timeout_s,
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise ClientDisconnectedError(
                f"Cannot connect to router at {endpoint}: {e}",
                component="ClientSession",
            ) from e
        logger.info(f"[client] Connected to router at {endpoint}")

    async def authenticate(self, username: str, password: str) -> bool:
        reply = await self.request(f"AUTH {username} {password}")
        if reply == AUTH_SUCCESS:
            self._authenticated = True
            self._username = username
            return True
        logger.debug(f"[client] AUTH rejected: {reply}")
        return False

    async def execute(self, command: str, confirm: Optional[ConfirmCallback] = None) -> str:
        """
        Send one command and return the router's final reply.

        If the router asks for confirmation, ``confirm`` is awaited with the
        prompt and its return value is sent as the answer. Without a callback
        the trade is declined.
        """
        reply = await self.request(command)
        if not is_confirm_prompt(reply):
            return reply

        answer = await confirm(reply) if confirm is not None else "no"
        await self._send_line(answer)
        return await self._read_reply()

    async def logout(self) -> Optional[str]:
        """Log out and close the connection. Returns the router's reply, if any."""
        reply: Optional[str] = None
        if self.connected:
            try:
                reply = await self.request("logout")
            except ClientDisconnectedError as e:
                logger.debug(f"[client] Logout without reply: {e}")
        if reply == LOGOUT_SUCCESS:
            logger.info(f"[client] {self._username} logged out")
        self._authenticated = False
        self._username = None
        await self.close()
        return reply

    async def request(self, line: str) -> str:
        await self._send_line(line)
        return await self._read_reply()

    async def close(self) -> None:
        writer, self._writer, self._reader = self._writer, None, None
        if writer is None or writer.is_closing():
            return
        writer.close()
        try:
            await writer.wait_closed()
        except ConnectionError as e:
            logger.debug(f"[client] Connection already reset on close: {e}")

    async def _send_line(self, line: str) -> None:
        if self._writer is None:
            raise ClientDisconnectedError("Not connected", component="ClientSession")
        try:
            self._writer.write(line.encode("utf-8") + b"\n")
            await self._writer.drain()
        except ConnectionError as e:
            raise ClientDisconnectedError(
                f"Connection lost while sending: {e}", component="ClientSession"
            ) from e

    async def _read_reply(self) -> str:
        if self._reader is None:
            raise ClientDisconnectedError("Not connected", component="ClientSession")
        try:
            data = await asyncio.wait_for(
                self._reader.readuntil(REPLY_TERMINATOR),
                timeout=self._config.reply_timeout_s,
            )
        except asyncio.IncompleteReadError as e:
            raise ClientDisconnectedError(
                "Router closed the connection", component="ClientSession"
            ) from e
        except asyncio.TimeoutError as e:
            raise ClientDisconnectedError(
                f"No reply from router within {self._config.reply_timeout_s}s",
                component="ClientSession",
            ) from e
        except ConnectionError as e:
            raise ClientDisconnectedError(
                f"Connection lost while reading: {e}", component="ClientSession"
            ) from e
        return data[: -len(REPLY_TERMINATOR)].decode("utf-8", errors="replace")


async def run_interactive(
    config: ClientConfig,
    input_fn: InputFn = input,
    output: OutputFn = print,
) -> int:
    """
    Login prompt followed by the command loop; ``exit`` logs out.

    ``input_fn`` runs in a worker thread so a blocking terminal read does not
    stall the event loop. EOF on input is treated like ``exit``.
    """

    async def ask(prompt: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(input_fn, prompt)
        except EOFError:
            return None

    async def confirm(prompt: str) -> str:
        output(prompt)
        side = "buy" if prompt.startswith("BUY") else "sell"
        answer = await ask(f"Confirm {side}? (yes/no): ")
        return answer if answer is not None else "no"

    client = ClientSession(config)
    try:
        await client.connect()
    except ClientDisconnectedError as e:
        output(f"[Client] {e}")
        return 1

    try:
        while not client.authenticated:
            username = await ask("[Client] Enter username: ")
            password = await ask("[Client] Enter password: ") if username is not None else None
            if username is None or password is None:
                await client.close()
                return 0
            if await client.authenticate(username.strip(), password.strip()):
                output("[Client] You have been granted access.")
            else:
                output("[Client] The credentials are incorrect. Please try again.")

        output(HELP_TEXT)
        while True:
            command = await ask("> ")
            if command is None or command.strip() == "exit":
                output("[Client] Exiting...")
                break
            if not command.strip():
                continue
            output(await client.execute(command.strip(), confirm))
    except ClientDisconnectedError as e:
        output(f"[Client] {e}")
        await client.close()
        return 1

    await client.logout()
    return 0
