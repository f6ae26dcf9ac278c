"""
Unit tests for client line classification.
"""

import pytest

from stocksim.router.dispatch import parse_command
from stocksim.types import CommandType


class TestParseCommand:
    """Tests for parse_command."""

    @pytest.mark.parametrize(
        "line, expected_type, expected_args",
        [
            ("AUTH James secret", CommandType.AUTH, ("James", "secret")),
            ("quote", CommandType.QUOTE, ()),
            ("quote GOOG", CommandType.QUOTE, ("GOOG",)),
            ("buy GOOG 2", CommandType.BUY, ("GOOG", "2")),
            ("sell AAPL 10", CommandType.SELL, ("AAPL", "10")),
            ("position", CommandType.POSITION, ()),
            ("logout", CommandType.LOGOUT, ()),
        ],
    )
    def test_known_commands(
        self, line: str, expected_type: CommandType, expected_args: tuple[str, ...]
    ) -> None:
        command = parse_command(line)
        assert command.command_type == expected_type
        assert command.args == expected_args
        assert command.raw == line

    @pytest.mark.parametrize(
        "line",
        [
            "",
            "   ",
            "hello",
            "auth James secret",
            "QUOTE GOOG",
            "AUTH James",
            "AUTH James a b",
            "quote GOOG AAPL",
            "buy GOOG",
            "buy GOOG 2 3",
            "sell",
            "position now",
            "logout please",
        ],
    )
    def test_unknown_or_wrong_arity(self, line: str) -> None:
        assert parse_command(line).command_type == CommandType.UNKNOWN

    def test_extra_whitespace_ignored(self) -> None:
        command = parse_command("  buy   GOOG\t2 ")
        assert command.command_type == CommandType.BUY
        assert command.args == ("GOOG", "2")
