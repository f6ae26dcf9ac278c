"""
Command orchestration for the router.

For each client command the orchestrator runs a fixed sequence of backend
round-trips, strictly one at a time, and ends with exactly one final reply
to the client. Buy and sell hold a confirmation round-trip with the client
in the middle of the sequence.

Buy:
    QUOTE -> prompt client -> (yes) BUY -> ADVANCE -> forward ledger reply
Sell:
    QUOTE -> CHECK -> prompt client -> (yes) SELL -> ADVANCE -> forward ledger reply
Position:
    PORTFOLIO -> QUOTE per holding -> aggregate

A backend that does not reply ends the command at that step with a
command-specific error. Nothing is rolled back: whatever the last completed
step did to backend state stays. ADVANCE only runs after the ledger has
confirmed the trade, and a declined or failed trade never advances the
price cursor.
"""

from __future__ import annotations

import logging
from typing import Optional

from stocksim import protocol
from stocksim.adapters.telemetry.jsonl import NullTelemetry
from stocksim.errors import BackendError, ClientDisconnectedError
from stocksim.ports.backend import Backend
from stocksim.ports.telemetry import Telemetry
from stocksim.router.session import ClientChannel, Session
from stocksim.types import Command, CommandType, RouterStats, SessionState

logger = logging.getLogger(__name__)


class TradeOrchestrator:
    """
    Runs client commands against the credential, quote and ledger backends.

    Usage:
        orchestrator = TradeOrchestrator(credential, quote, ledger)
        keep_open = await orchestrator.handle(session, channel, parse_command(line))
    """

    def __init__(
        self,
        credential: Backend,
        quote: Backend,
        ledger: Backend,
        telemetry: Optional[Telemetry] = None,
        stats: Optional[RouterStats] = None,
    ) -> None:
        self._credential = credential
        self._quote = quote
        self._ledger = ledger
        self._telemetry: Telemetry = telemetry or NullTelemetry()
        self._stats = stats or RouterStats()

    @property
    def stats(self) -> RouterStats:
        return self._stats

    async def handle(self, session: Session, channel: ClientChannel, command: Command) -> bool:
        """
        Run one command to completion.

        Returns False when the session should end (logout). Raises
        ClientDisconnectedError if the client goes away mid-command.
        """
        self._stats.record_command(command.command_type)

        if command.command_type == CommandType.UNKNOWN:
            await channel.send(protocol.ERR_UNKNOWN_COMMAND)
            return True

        if command.command_type == CommandType.LOGOUT:
            logger.info(f"[{session.session_id}] Logout requested by {session.username}")
            await channel.send(protocol.LOGOUT_SUCCESS)
            return False

        if command.command_type == CommandType.AUTH:
            await self._handle_auth(session, channel, command.args[0], command.args[1])
            return True

        # Everything past this point needs a logged-in session
        username = session.username
        if username is None or not session.authenticated:
            await channel.send(protocol.ERR_NOT_AUTHENTICATED)
            return True

        if command.command_type == CommandType.QUOTE:
            await self._handle_quote(session, channel, command.args[0] if command.args else None)
        elif command.command_type == CommandType.BUY:
            await self._handle_buy(session, channel, username, command.args[0], command.args[1])
        elif command.command_type == CommandType.SELL:
            await self._handle_sell(session, channel, username, command.args[0], command.args[1])
        elif command.command_type == CommandType.POSITION:
            await self._handle_position(session, channel, username)
        return True

    # --- AUTH ---

    async def _handle_auth(
        self, session: Session, channel: ClientChannel, username: str, password: str
    ) -> None:
        if session.authenticated:
            await channel.send(protocol.ERR_ALREADY_AUTHENTICATED)
            return

        session.state = SessionState.AUTHENTICATING
        request = protocol.auth_request(username, protocol.obfuscate_password(password))
        try:
            reply: Optional[str] = await self._credential.request(request)
        except BackendError as e:
            self._backend_failed(session, "AUTH", e)
            reply = None

        if reply == protocol.AUTH_SUCCESS:
            session.login(username)
            logger.info(f"[{session.session_id}] {username} authenticated")
            self._telemetry.log("auth_succeeded", session_id=session.session_id, username=username)
            await channel.send(protocol.AUTH_SUCCESS)
            return

        session.state = SessionState.CONNECTED
        logger.info(f"[{session.session_id}] Authentication failed for {username}")
        self._telemetry.log("auth_failed", session_id=session.session_id, username=username)
        await channel.send(protocol.AUTH_FAILED)

    # --- quote ---

    async def _handle_quote(
        self, session: Session, channel: ClientChannel, symbol: Optional[str]
    ) -> None:
        logger.debug(f"[{session.session_id}] {session.username} requested quote {symbol or '*'}")
        try:
            reply = await self._quote.request(protocol.quote_request(symbol))
        except BackendError as e:
            self._backend_failed(session, "QUOTE", e)
            await channel.send(protocol.ERR_QUOTE_FAILED)
            return
        await channel.send(reply)

    # --- buy ---

    async def _handle_buy(
        self,
        session: Session,
        channel: ClientChannel,
        username: str,
        symbol: str,
        quantity_raw: str,
    ) -> None:
        quantity = protocol.parse_share_count(quantity_raw)
        if quantity is None:
            await channel.send(protocol.ERR_INVALID_SHARES)
            return

        price = await self._current_price(session, channel, symbol, protocol.ERR_BUY_QUOTE_FAILED)
        if price is None:
            return

        prompt = protocol.confirm_prompt("BUY", symbol, quantity, price)
        if not await self._confirm(channel, prompt):
            self._trade_cancelled(session, "buy", symbol, quantity)
            await channel.send(protocol.BUY_CANCELLED)
            return

        try:
            reply = await self._ledger.request(
                protocol.buy_request(username, symbol, quantity, price)
            )
        except BackendError as e:
            self._backend_failed(session, "BUY", e)
            await channel.send(protocol.ERR_BUY_CONFIRM_FAILED)
            return

        if not protocol.is_error(reply):
            await self._advance(session, symbol)
            self._trade_completed(session, "buy", symbol, quantity, price)
        await channel.send(reply)

    # --- sell ---

    async def _handle_sell(
        self,
        session: Session,
        channel: ClientChannel,
        username: str,
        symbol: str,
        quantity_raw: str,
    ) -> None:
        quantity = protocol.parse_share_count(quantity_raw)
        if quantity is None:
            await channel.send(protocol.ERR_INVALID_SHARES)
            return

        price = await self._current_price(
            session, channel, symbol, protocol.ERR_SELL_QUOTE_FAILED
        )
        if price is None:
            return

        try:
            check = await self._ledger.request(
                protocol.check_request(username, symbol, quantity)
            )
        except BackendError as e:
            self._backend_failed(session, "CHECK", e)
            await channel.send(protocol.ERR_CHECK_FAILED)
            return

        if check == protocol.INSUFFICIENT_SHARES:
            logger.info(
                f"[{session.session_id}] {session.username} lacks {quantity} {symbol} to sell"
            )
            await channel.send(protocol.ERR_NOT_ENOUGH_TO_SELL)
            return
        if check != protocol.SUFFICIENT_SHARES:
            logger.warning(f"[{session.session_id}] Unexpected CHECK reply: {check!r}")
            await channel.send(check if protocol.is_error(check) else protocol.ERR_CHECK_FAILED)
            return

        prompt = protocol.confirm_prompt("SELL", symbol, quantity, price)
        if not await self._confirm(channel, prompt):
            # The ledger is not told about declined sales
            self._trade_cancelled(session, "sell", symbol, quantity)
            await channel.send(protocol.SELL_CANCELLED)
            return

        try:
            reply = await self._ledger.request(
                protocol.sell_request(username, symbol, quantity, price)
            )
        except BackendError as e:
            self._backend_failed(session, "SELL", e)
            await channel.send(protocol.ERR_SELL_CONFIRM_FAILED)
            return

        if not protocol.is_error(reply):
            await self._advance(session, symbol)
            self._trade_completed(session, "sell", symbol, quantity, price)
        await channel.send(reply)

    # --- position ---

    async def _handle_position(
        self, session: Session, channel: ClientChannel, username: str
    ) -> None:
        try:
            reply = await self._ledger.request(protocol.portfolio_request(username))
        except BackendError as e:
            self._backend_failed(session, "PORTFOLIO", e)
            await channel.send(protocol.ERR_PORTFOLIO_FAILED)
            return

        holdings = protocol.parse_portfolio_reply(reply)
        if holdings is None:
            logger.warning(f"[{session.session_id}] Invalid PORTFOLIO reply: {reply!r}")
            await channel.send(protocol.ERR_INVALID_PORTFOLIO)
            return

        lines: list[str] = []
        total_gain = 0.0
        for holding in holdings:
            if holding.quantity <= 0:
                continue
            try:
                quote_reply = await self._quote.request(protocol.quote_request(holding.symbol))
            except BackendError as e:
                self._backend_failed(session, "QUOTE", e)
                continue

            price = protocol.parse_quote_reply(quote_reply, holding.symbol)
            if price is None:
                logger.debug(f"[{session.session_id}] Skipping {holding.symbol}: {quote_reply!r}")
                continue

            total_gain += holding.quantity * (price - holding.avg_cost)
            lines.append(
                f"{holding.symbol} {holding.quantity} {protocol.format_price(holding.avg_cost)}"
            )

        lines.append(f"Total unrealized gain/loss: ${protocol.format_money(total_gain)}")
        await channel.send("\n".join(lines))

    # --- shared steps ---

    async def _current_price(
        self, session: Session, channel: ClientChannel, symbol: str, failure_reply: str
    ) -> Optional[float]:
        """
        Fetch the unit price for a trade.

        On any outcome other than a usable price the client has already been
        answered and None is returned.
        """
        try:
            reply = await self._quote.request(protocol.quote_request(symbol))
        except BackendError as e:
            self._backend_failed(session, "QUOTE", e)
            await channel.send(failure_reply)
            return None

        if protocol.is_error(reply):
            await channel.send(reply)
            return None

        price = protocol.parse_quote_reply(reply, symbol)
        if price is None:
            logger.warning(f"[{session.session_id}] Unparseable quote reply: {reply!r}")
            await channel.send(protocol.ERR_INVALID_QUOTE)
        return price

    async def _confirm(self, channel: ClientChannel, prompt: str) -> bool:
        await channel.send(prompt)
        # A blank answer is still the answer, and it declines
        answer = await channel.read_line(skip_empty=False)
        if answer is None:
            raise ClientDisconnectedError(
                "Client closed the connection during confirmation",
                component="TradeOrchestrator",
            )
        return protocol.is_affirmative(answer)

    async def _advance(self, session: Session, symbol: str) -> None:
        try:
            reply = await self._quote.request(protocol.advance_request(symbol))
        except BackendError as e:
            # The trade is already booked, so the client still gets the ledger reply
            self._backend_failed(session, "ADVANCE", e)
            return
        logger.debug(f"[{session.session_id}] {reply}")

    def _backend_failed(self, session: Session, verb: str, error: BackendError) -> None:
        self._stats.backend_failures += 1
        logger.warning(f"[{session.session_id}] {verb} failed: {error}")
        self._telemetry.log(
            "backend_failed",
            session_id=session.session_id,
            username=session.username,
            verb=verb,
            backend=error.backend,
            error=type(error).__name__,
        )

    def _trade_completed(
        self, session: Session, side: str, symbol: str, quantity: int, price: float
    ) -> None:
        self._stats.trades_completed += 1
        logger.info(
            f"[{session.session_id}] {session.username} {side} {quantity} {symbol} "
            f"at ${protocol.format_money(price)}"
        )
        self._telemetry.log(
            "trade_completed",
            session_id=session.session_id,
            username=session.username,
            side=side,
            symbol=symbol,
            quantity=quantity,
            price=price,
        )

    def _trade_cancelled(self, session: Session, side: str, symbol: str, quantity: int) -> None:
        self._stats.trades_cancelled += 1
        logger.info(f"[{session.session_id}] {session.username} declined {side} {quantity} {symbol}")
        self._telemetry.log(
            "trade_cancelled",
            session_id=session.session_id,
            username=session.username,
            side=side,
            symbol=symbol,
            quantity=quantity,
        )
