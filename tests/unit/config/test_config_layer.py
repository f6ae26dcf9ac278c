from __future__ import annotations

from pathlib import Path

import pytest

from stocksim.config import CREDENTIAL_PORT, LEDGER_PORT, QUOTE_PORT, ROUTER_PORT
from stocksim.config_loader import ConfigLoader
from stocksim.errors import ConfigurationError
from stocksim.utility import deep_merge, insert_path, parse_overrides


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "stocksim.toml"
    path.write_text(text)
    return path


def test_defaults_without_file(tmp_path: Path) -> None:
    config = ConfigLoader(base_dir=str(tmp_path)).load_config()

    assert config.router.listen.port == ROUTER_PORT
    assert config.router.credential.endpoint.port == CREDENTIAL_PORT
    assert config.router.ledger.endpoint.port == LEDGER_PORT
    assert config.router.quote.endpoint.port == QUOTE_PORT
    assert config.router.quote.timeout_s == 5.0
    assert config.router.admin is None
    assert config.data_dir == tmp_path / "data"


def test_file_layer(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
data_dir = "fixtures"

[router]
port = 5000
admin_port = 8081

[backends.quote]
port = 6000
timeout_s = 0.5
""",
    )

    config = ConfigLoader(base_dir=str(tmp_path)).load_config(path)

    assert config.data_dir == tmp_path / "fixtures"
    assert config.router.listen.port == 5000
    assert config.router.admin is not None
    assert config.router.admin.port == 8081
    assert config.router.quote.endpoint.port == 6000
    assert config.router.quote.timeout_s == 0.5
    # Untouched sections keep their defaults
    assert config.router.ledger.endpoint.port == LEDGER_PORT
    # The client follows the router endpoint
    assert config.client.router.port == 5000


def test_cli_overrides_win(tmp_path: Path) -> None:
    path = _write(tmp_path, "[router]\nport = 5000\n")
    overrides = parse_overrides(["router.port=5001", "backends.ledger.host=10.0.0.2"])

    config = ConfigLoader(base_dir=str(tmp_path)).load_config(path, overrides)

    assert config.router.listen.port == 5001
    assert config.router.ledger.endpoint.host == "10.0.0.2"


def test_service_config(tmp_path: Path) -> None:
    config = ConfigLoader(base_dir=str(tmp_path)).load_config(
        None, {"plaintext_passwords": True}
    )

    service = config.service("credential")
    assert service.listen.port == CREDENTIAL_PORT
    assert service.data_path == tmp_path / "data" / "members.txt"
    assert service.plaintext_passwords is True
    assert config.service("quote").data_path.name == "quotes.txt"
    assert config.service("ledger").data_path.name == "portfolios.txt"


def test_unknown_key_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        ConfigLoader(base_dir=str(tmp_path)).resolve({"router": {"colour": "blue"}})
    assert exc_info.value.field == "router.colour"


def test_invalid_value_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        ConfigLoader(base_dir=str(tmp_path)).resolve({"backends": {"quote": {"timeout_s": 0}}})
    assert "backends.quote.timeout_s" in str(exc_info.value)


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        ConfigLoader(base_dir=str(tmp_path)).load("missing.toml")


def test_invalid_toml(tmp_path: Path) -> None:
    path = _write(tmp_path, "[router\nport = 1")
    with pytest.raises(ConfigurationError):
        ConfigLoader(base_dir=str(tmp_path)).load(path)


def test_deep_merge_nested() -> None:
    merged = deep_merge({"a": {"b": 1, "c": 2}, "d": 3}, {"a": {"b": 9}})
    assert merged == {"a": {"b": 9, "c": 2}, "d": 3}


def test_insert_path_conflict() -> None:
    tree: dict = {"router": 1}
    with pytest.raises(ValueError):
        insert_path(tree, "router.port", 5)


def test_parse_overrides_requires_equals() -> None:
    with pytest.raises(ValueError):
        parse_overrides(["router.port"])
