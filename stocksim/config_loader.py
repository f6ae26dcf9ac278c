"""
Purpose:
    - Load a TOML config file
    - Merge layers (file, then CLI overrides) and validate the result
    - Build the immutable StockSimConfig

Example file:

    data_dir = "data"

    [router]
    port = 45654
    admin_port = 8080

    [backends.quote]
    port = 43654
    timeout_s = 2.5
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from stocksim.config import (
    CREDENTIAL_PORT,
    DEFAULT_HOST,
    LEDGER_PORT,
    QUOTE_PORT,
    ROUTER_PORT,
    BackendConfig,
    ClientConfig,
    EndpointConfig,
    RouterConfig,
    StockSimConfig,
)
from stocksim.errors import ConfigurationError
from stocksim.utility import deep_merge, validation_error_parser

logger = logging.getLogger(__name__)


class BackendSection(BaseModel):
    model_config = ConfigDict(extra="forbid")
    host: str = Field(default=DEFAULT_HOST, description="backend host")
    port: int = Field(ge=0, le=65535, description="backend UDP port")
    timeout_s: float = Field(default=5.0, gt=0, description="reply timeout per request")


class BackendsSection(BaseModel):
    model_config = ConfigDict(extra="forbid")
    credential: BackendSection = Field(
        default_factory=lambda: BackendSection(port=CREDENTIAL_PORT)
    )
    quote: BackendSection = Field(default_factory=lambda: BackendSection(port=QUOTE_PORT))
    ledger: BackendSection = Field(default_factory=lambda: BackendSection(port=LEDGER_PORT))


class RouterSection(BaseModel):
    model_config = ConfigDict(extra="forbid")
    host: str = Field(default=DEFAULT_HOST, description="router listen host")
    port: int = Field(default=ROUTER_PORT, ge=0, le=65535, description="router TCP port")
    max_frame_bytes: int = Field(default=4096, gt=0, description="max client line size")
    admin_port: Optional[int] = Field(
        default=None, ge=0, le=65535, description="admin HTTP port, disabled when unset"
    )
    audit_path: Optional[Path] = Field(default=None, description="JSON-lines audit file")


class ClientSection(BaseModel):
    model_config = ConfigDict(extra="forbid")
    connect_timeout_s: float = Field(default=10.0, gt=0)
    reply_timeout_s: Optional[float] = Field(default=30.0, gt=0)


class FileConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    data_dir: Path = Field(default=Path("data"), description="directory holding data files")
    members_file: str = "members.txt"
    quotes_file: str = "quotes.txt"
    portfolios_file: str = "portfolios.txt"
    plaintext_passwords: bool = Field(
        default=False, description="members file stores plaintext passwords"
    )
    router: RouterSection = Field(default_factory=RouterSection)
    backends: BackendsSection = Field(default_factory=BackendsSection)
    client: ClientSection = Field(default_factory=ClientSection)


class ConfigLoader:
    """
    Config-loader; loading toml file.
    """

    def __init__(self, base_dir: str = ".") -> None:
        self._base_dir = base_dir

    def load(self, file_name: str | Path) -> dict[str, Any]:
        path = Path(file_name)
        if not path.is_absolute():
            path = Path(self._base_dir) / path

        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}", field="config")

        with path.open("rb") as f:
            try:
                return tomllib.load(f)
            except tomllib.TOMLDecodeError as exc:
                raise ConfigurationError(
                    f"Invalid TOML in {path}: {exc}", field="config"
                ) from exc

    def resolve(
        self,
        file_cfg: Optional[Mapping[str, Any]] = None,
        cli_overrides: Optional[Mapping[str, Any]] = None,
    ) -> StockSimConfig:
        """Merge file and CLI layers over the defaults and build the config."""
        # Defaults are merged in first so a partial backend section keeps its port
        defaults = FileConfig().model_dump()
        merged = deep_merge(deep_merge(defaults, file_cfg or {}), cli_overrides or {})
        try:
            parsed = FileConfig.model_validate(merged)
        except ValidationError as exc:
            issues = validation_error_parser(exc)
            logger.error(f"Config validation failed: {issues}")
            first = issues[0] if issues else {"path": "", "message": str(exc)}
            raise ConfigurationError(
                f"Invalid configuration at '{first['path']}': {first['message']}",
                field=first["path"],
                details={"issues": issues},
            ) from exc
        return self._build(parsed)

    def load_config(
        self,
        file_name: Optional[str | Path] = None,
        cli_overrides: Optional[Mapping[str, Any]] = None,
    ) -> StockSimConfig:
        file_cfg = self.load(file_name) if file_name else {}
        return self.resolve(file_cfg, cli_overrides)

    def _build(self, parsed: FileConfig) -> StockSimConfig:
        data_dir = parsed.data_dir
        if not data_dir.is_absolute():
            data_dir = Path(self._base_dir) / data_dir

        r = parsed.router
        router = RouterConfig(
            listen=EndpointConfig(host=r.host, port=r.port),
            credential=self._backend("credential", parsed.backends.credential),
            quote=self._backend("quote", parsed.backends.quote),
            ledger=self._backend("ledger", parsed.backends.ledger),
            max_frame_bytes=r.max_frame_bytes,
            admin=EndpointConfig(host=r.host, port=r.admin_port)
            if r.admin_port is not None
            else None,
            audit_path=r.audit_path,
        )
        client = ClientConfig(
            router=EndpointConfig(host=r.host, port=r.port),
            connect_timeout_s=parsed.client.connect_timeout_s,
            reply_timeout_s=parsed.client.reply_timeout_s,
        )
        return StockSimConfig(
            data_dir=data_dir,
            router=router,
            client=client,
            members_file=parsed.members_file,
            quotes_file=parsed.quotes_file,
            portfolios_file=parsed.portfolios_file,
            plaintext_passwords=parsed.plaintext_passwords,
        )

    @staticmethod
    def _backend(name: str, section: BackendSection) -> BackendConfig:
        return BackendConfig(
            name=name,
            endpoint=EndpointConfig(host=section.host, port=section.port),
            timeout_s=section.timeout_s,
        )
