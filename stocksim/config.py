"""
Configuration types for the trading simulation.

Provides immutable, validated configuration dataclasses for the router,
the three backend services and the client driver.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from stocksim.errors import ConfigurationError

DEFAULT_HOST = "127.0.0.1"

# Reference port layout
CREDENTIAL_PORT = 41654
LEDGER_PORT = 42654
QUOTE_PORT = 43654
ROUTER_PORT = 45654


@dataclass(frozen=True)
class EndpointConfig:
    """Host/port pair."""

    host: str = DEFAULT_HOST
    port: int = 0

    def __post_init__(self) -> None:
        if not self.host:
            raise ConfigurationError("host must be non-empty", field="host")
        if not (0 <= self.port <= 65535):
            raise ConfigurationError(
                "port must be between 0 and 65535",
                field="port",
                value=self.port,
            )

    @property
    def address(self) -> tuple[str, int]:
        return (self.host, self.port)

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class BackendConfig:
    """How the router reaches one backend service."""

    name: str
    endpoint: EndpointConfig
    timeout_s: float = 5.0
    max_datagram_bytes: int = 65507

    def __post_init__(self) -> None:
        if self.timeout_s <= 0:
            raise ConfigurationError(
                "timeout_s must be positive",
                field="timeout_s",
                value=self.timeout_s,
            )
        if self.max_datagram_bytes <= 0:
            raise ConfigurationError(
                "max_datagram_bytes must be positive",
                field="max_datagram_bytes",
                value=self.max_datagram_bytes,
            )


@dataclass(frozen=True)
class RouterConfig:
    """Configuration for the front-end router."""

    listen: EndpointConfig = field(default_factory=lambda: EndpointConfig(port=ROUTER_PORT))
    credential: BackendConfig = field(
        default_factory=lambda: BackendConfig("credential", EndpointConfig(port=CREDENTIAL_PORT))
    )
    quote: BackendConfig = field(
        default_factory=lambda: BackendConfig("quote", EndpointConfig(port=QUOTE_PORT))
    )
    ledger: BackendConfig = field(
        default_factory=lambda: BackendConfig("ledger", EndpointConfig(port=LEDGER_PORT))
    )

    # Client framing
    max_frame_bytes: int = 4096

    # Optional admin HTTP endpoint (None = disabled)
    admin: Optional[EndpointConfig] = None

    # JSON-lines audit sink (None = disabled)
    audit_path: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.max_frame_bytes <= 0:
            raise ConfigurationError(
                "max_frame_bytes must be positive",
                field="max_frame_bytes",
                value=self.max_frame_bytes,
            )
        names = [b.name for b in self.backends]
        if len(set(names)) != len(names):
            raise ConfigurationError("backend names must be unique", field="name", value=names)

    @property
    def backends(self) -> tuple[BackendConfig, ...]:
        return (self.credential, self.quote, self.ledger)


@dataclass(frozen=True)
class ServiceConfig:
    """Configuration for one backend service process."""

    name: str
    listen: EndpointConfig
    data_path: Path
    # members.txt only: obfuscate plaintext passwords at load time
    plaintext_passwords: bool = False

    def __post_init__(self) -> None:
        if self.name not in ("credential", "quote", "ledger"):
            raise ConfigurationError(
                "name must be one of credential, quote, ledger",
                field="name",
                value=self.name,
            )


@dataclass(frozen=True)
class ClientConfig:
    """Configuration for the client driver."""

    router: EndpointConfig = field(default_factory=lambda: EndpointConfig(port=ROUTER_PORT))
    connect_timeout_s: float = 10.0
    reply_timeout_s: Optional[float] = 30.0

    def __post_init__(self) -> None:
        if self.connect_timeout_s <= 0:
            raise ConfigurationError(
                "connect_timeout_s must be positive",
                field="connect_timeout_s",
                value=self.connect_timeout_s,
            )
        if self.reply_timeout_s is not None and self.reply_timeout_s <= 0:
            raise ConfigurationError(
                "reply_timeout_s must be positive",
                field="reply_timeout_s",
                value=self.reply_timeout_s,
            )


@dataclass(frozen=True)
class StockSimConfig:
    """
    Immutable top-level configuration.

    Example:
        config = StockSimConfig(
            data_dir=Path("data"),
            router=RouterConfig(listen=EndpointConfig(port=45654)),
        )
    """

    data_dir: Path = field(default_factory=lambda: Path("data"))
    router: RouterConfig = field(default_factory=RouterConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    members_file: str = "members.txt"
    quotes_file: str = "quotes.txt"
    portfolios_file: str = "portfolios.txt"
    plaintext_passwords: bool = False

    def service(self, name: str) -> ServiceConfig:
        """Build the ServiceConfig for a backend by name."""
        files = {
            "credential": self.members_file,
            "quote": self.quotes_file,
            "ledger": self.portfolios_file,
        }
        if name not in files:
            raise ConfigurationError("unknown service", field="name", value=name)
        backend = {b.name: b for b in self.router.backends}[name]
        return ServiceConfig(
            name=name,
            listen=backend.endpoint,
            data_path=self.data_dir / files[name],
            plaintext_passwords=self.plaintext_passwords,
        )
