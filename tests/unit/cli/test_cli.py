from pathlib import Path

import pytest

from stocksim.cli.main import _cli_overrides, build_parser, build_service, main
from stocksim.config_loader import ConfigLoader
from stocksim.services import CredentialService, LedgerService, QuoteService


def test_build_parser():
    p = build_parser()
    assert p.prog == "stocksim"
    args = p.parse_args(
        [
            "quote",
            "--data",
            "some_dir",
            "--port",
            "5000",
            "--config",
            "stocksim.toml",
            "--set",
            "backends.quote.timeout_s=2",
            "--debug",
        ]
    )
    assert args.command == "quote"
    assert args.data == Path("some_dir")
    assert args.port == 5000
    assert args.config == Path("stocksim.toml")
    assert args.config_overrides == ["backends.quote.timeout_s=2"]
    assert args.debug is True


def test_subcommand_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_service_flags_map_to_backend_section():
    args = build_parser().parse_args(["ledger", "--host", "0.0.0.0", "--port", "7000", "--data", "d"])
    assert _cli_overrides(args) == {
        "data_dir": "d",
        "backends": {"ledger": {"host": "0.0.0.0", "port": 7000}},
    }


def test_router_and_client_flags_map_to_router_section():
    args = build_parser().parse_args(["router", "--port", "7001", "--admin-port", "8081"])
    assert _cli_overrides(args) == {"router": {"port": 7001, "admin_port": 8081}}

    args = build_parser().parse_args(["client", "--host", "10.0.0.5"])
    assert _cli_overrides(args) == {"router": {"host": "10.0.0.5"}}


def test_plaintext_flag_only_for_credential():
    args = build_parser().parse_args(["credential", "--plaintext-passwords"])
    assert _cli_overrides(args) == {"plaintext_passwords": True}
    with pytest.raises(SystemExit):
        build_parser().parse_args(["quote", "--plaintext-passwords"])


def test_build_service_from_shipped_data():
    repo_data = Path(__file__).resolve().parents[3] / "data"
    config = ConfigLoader().resolve({"data_dir": str(repo_data)})

    assert isinstance(build_service(config.service("credential")), CredentialService)
    quote = build_service(config.service("quote"))
    assert isinstance(quote, QuoteService)
    assert quote.handle("QUOTE GOOG") == "GOOG 100.000000"
    ledger = build_service(config.service("ledger"))
    assert isinstance(ledger, LedgerService)

    credential = build_service(config.service("credential"))
    assert credential.handle("AUTH James VRGlgv625") == "AUTH_SUCCESS"


def test_bad_override_exits_nonzero(capsys):
    assert main(["router", "--set", "router.port"]) == 1
    assert "KEY=VALUE" in capsys.readouterr().err


def test_invalid_config_exits_nonzero(capsys):
    assert main(["router", "--set", "router.port=notaport"]) == 1
    assert "router.port" in capsys.readouterr().err


def test_missing_data_file_exits_nonzero(tmp_path, capsys):
    assert main(["quote", "--data", str(tmp_path), "--port", "0"]) == 1
    assert "quotes" in capsys.readouterr().err
