"""
Shared types, enums, and data structures for the trading simulation.

This module contains types that are used across the router, the backend
services and the client driver.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class RouterState(str, Enum):
    """State machine for RouterServer."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    FAILED = "failed"


class SessionState(str, Enum):
    """State machine for a single client session."""

    CONNECTED = "connected"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


class CommandType(str, Enum):
    """Client commands understood by the router."""

    AUTH = "AUTH"
    QUOTE = "quote"
    BUY = "buy"
    SELL = "sell"
    POSITION = "position"
    LOGOUT = "logout"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class Command:
    """Parsed client command."""

    command_type: CommandType
    args: tuple[str, ...] = ()
    raw: str = ""


@dataclass
class Holding:
    """A user's position in one symbol."""

    symbol: str
    quantity: int = 0
    avg_cost: float = 0.0

    def buy(self, quantity: int, price: float) -> None:
        """Blend new shares into the quantity-weighted average cost."""
        total = self.quantity + quantity
        self.avg_cost = (self.quantity * self.avg_cost + quantity * price) / total
        self.quantity = total

    def sell(self, quantity: int, price: float) -> float:
        """Remove shares and return the realized profit/loss.

        Average cost of the remaining shares is unchanged.
        """
        if quantity > self.quantity:
            raise ValueError(f"cannot sell {quantity} of {self.quantity} shares")
        realized = quantity * (price - self.avg_cost)
        self.quantity -= quantity
        return realized


@dataclass
class QuoteRecord:
    """Cyclic price series for one symbol."""

    symbol: str
    prices: tuple[float, ...]
    cursor: int = 0

    def __post_init__(self) -> None:
        if not self.prices:
            raise ValueError(f"{self.symbol}: price series must not be empty")
        self.cursor %= len(self.prices)

    @property
    def cycle_length(self) -> int:
        return len(self.prices)

    @property
    def current_price(self) -> float:
        return self.prices[self.cursor]

    def advance(self) -> int:
        """Move the cursor one tick forward, wrapping. Returns the new cursor."""
        self.cursor = (self.cursor + 1) % len(self.prices)
        return self.cursor


@dataclass(frozen=True, slots=True)
class PortfolioLine:
    """One holding line of a PORTFOLIO reply."""

    symbol: str
    quantity: int
    avg_cost: float


@dataclass
class SessionInfo:
    """Snapshot of one session as seen by the session registry."""

    session_id: str
    peer: str
    state: SessionState = SessionState.CONNECTED
    username: Optional[str] = None
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    commands_handled: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "session_id": self.session_id,
            "peer": self.peer,
            "state": self.state.value,
            "username": self.username,
            "connected_at": self.connected_at.isoformat(),
            "commands_handled": self.commands_handled,
        }


@dataclass
class RouterStats:
    """Counters for the router."""

    sessions_opened: int = 0
    sessions_closed: int = 0
    commands: int = 0
    backend_failures: int = 0
    trades_completed: int = 0
    trades_cancelled: int = 0
    by_command: dict[str, int] = field(default_factory=dict)

    def record_command(self, command_type: CommandType) -> None:
        self.commands += 1
        key = command_type.value
        self.by_command[key] = self.by_command.get(key, 0) + 1
