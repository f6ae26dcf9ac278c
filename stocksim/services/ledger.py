"""
Ledger service: per-user holdings.

Requests:
    BUY <user> <symbol> <qty> <price>
    SELL <user> <symbol> <qty> <price>
    CHECK <user> <symbol> <qty>
    PORTFOLIO <user>

Holdings that reach zero shares stay in the table but are left out of
PORTFOLIO snapshots and never satisfy a CHECK.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Optional

from stocksim.errors import DataFileError
from stocksim.protocol import (
    BUY_CONFIRMED,
    ERR_INSUFFICIENT_SHARES,
    ERR_USER_NOT_FOUND,
    INSUFFICIENT_SHARES,
    PORTFOLIO_MARKER,
    SELL_CONFIRMED,
    SUFFICIENT_SHARES,
    format_money,
    format_price,
)
from stocksim.services.base import BaseService
from stocksim.types import Holding

logger = logging.getLogger(__name__)

Portfolio = dict[str, Holding]


def load_portfolios(path: Path) -> dict[str, Portfolio]:
    """
    Read a portfolios file.

    A line with a single token opens a user block; ``<symbol> <qty> <avg>``
    lines that follow belong to that user.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DataFileError(f"Cannot read portfolios file: {exc}", path=str(path)) from exc

    portfolios: dict[str, Portfolio] = {}
    current: Optional[Portfolio] = None
    for line_no, line in enumerate(text.splitlines(), start=1):
        parts = line.split()
        if not parts:
            continue
        if len(parts) == 1:
            current = portfolios.setdefault(parts[0], {})
            continue
        if len(parts) != 3 or current is None:
            raise DataFileError(
                "expected '<username>' or '<symbol> <qty> <avg_cost>' inside a user block",
                path=str(path),
                line_no=line_no,
            )
        symbol = parts[0]
        try:
            quantity = int(parts[1])
            avg_cost = float(parts[2])
        except ValueError as exc:
            raise DataFileError(
                f"invalid holding: {exc}", path=str(path), line_no=line_no
            ) from exc
        if quantity < 0 or avg_cost < 0:
            raise DataFileError(
                "quantity and average cost must be non-negative",
                path=str(path),
                line_no=line_no,
            )
        current[symbol] = Holding(symbol=symbol, quantity=quantity, avg_cost=avg_cost)
    logger.info(f"Loaded {len(portfolios)} user portfolios from {path}")
    return portfolios


def _positive_int(value: str) -> int:
    quantity = int(value)
    if quantity <= 0:
        raise ValueError(f"share count must be positive, got {quantity}")
    return quantity


def _price(value: str) -> float:
    price = float(value)
    if price < 0:
        raise ValueError(f"price must be non-negative, got {price}")
    return price


class LedgerService(BaseService):
    """Owns username -> (symbol -> Holding)."""

    name = "ledger"

    def __init__(self, portfolios: Optional[Mapping[str, Portfolio]] = None) -> None:
        super().__init__()
        # Usernames are matched case-insensitively, like the credential table
        self._portfolios: dict[str, Portfolio] = {
            user.lower(): dict(holdings) for user, holdings in (portfolios or {}).items()
        }
        self._verbs = {
            "BUY": self._handle_buy,
            "SELL": self._handle_sell,
            "CHECK": self._handle_check,
            "PORTFOLIO": self._handle_portfolio,
        }

    @classmethod
    def from_file(cls, path: Path) -> "LedgerService":
        return cls(load_portfolios(path))

    def holding(self, username: str, symbol: str) -> Optional[Holding]:
        return self._portfolios.get(username.lower(), {}).get(symbol)

    def has_shares(self, username: str, symbol: str, quantity: int) -> bool:
        holding = self.holding(username, symbol)
        return holding is not None and holding.quantity > 0 and holding.quantity >= quantity

    def snapshot(self, username: str) -> list[Holding]:
        """Positive-quantity holdings, sorted by symbol."""
        portfolio = self._portfolios.get(username.lower(), {})
        return [portfolio[s] for s in sorted(portfolio) if portfolio[s].quantity > 0]

    def _handle_buy(self, parts: list[str]) -> str:
        if len(parts) != 5:
            raise ValueError("BUY takes <user> <symbol> <qty> <price>")
        _, username, symbol, qty_raw, price_raw = parts
        quantity = _positive_int(qty_raw)
        price = _price(price_raw)

        portfolio = self._portfolios.setdefault(username.lower(), {})
        holding = portfolio.setdefault(symbol, Holding(symbol=symbol))
        holding.buy(quantity, price)
        logger.info(
            f"[{self.name}] {username} bought {quantity} {symbol} at ${price:.2f}; "
            f"holding {holding.quantity} @ {holding.avg_cost:.2f}"
        )
        return f"{BUY_CONFIRMED}: {quantity} shares of {symbol} at ${format_money(price)}"

    def _handle_sell(self, parts: list[str]) -> str:
        if len(parts) != 5:
            raise ValueError("SELL takes <user> <symbol> <qty> <price>")
        _, username, symbol, qty_raw, price_raw = parts
        quantity = _positive_int(qty_raw)
        price = _price(price_raw)

        if username.lower() not in self._portfolios:
            return ERR_USER_NOT_FOUND
        if not self.has_shares(username, symbol, quantity):
            return ERR_INSUFFICIENT_SHARES

        holding = self._portfolios[username.lower()][symbol]
        realized = holding.sell(quantity, price)
        logger.info(
            f"[{self.name}] {username} sold {quantity} {symbol} at ${price:.2f}; "
            f"realized {realized:.2f}, {holding.quantity} left"
        )
        return (
            f"{SELL_CONFIRMED}: {quantity} shares of {symbol} at ${format_money(price)}, "
            f"profit/loss: ${format_money(realized)}"
        )

    def _handle_check(self, parts: list[str]) -> str:
        if len(parts) != 4:
            raise ValueError("CHECK takes <user> <symbol> <qty>")
        _, username, symbol, qty_raw = parts
        quantity = _positive_int(qty_raw)
        if self.has_shares(username, symbol, quantity):
            return SUFFICIENT_SHARES
        return INSUFFICIENT_SHARES

    def _handle_portfolio(self, parts: list[str]) -> str:
        if len(parts) != 2:
            raise ValueError("PORTFOLIO takes <user>")
        lines = [PORTFOLIO_MARKER]
        for holding in self.snapshot(parts[1]):
            lines.append(f"{holding.symbol} {holding.quantity} {format_price(holding.avg_cost)}")
        return "\n".join(lines)
