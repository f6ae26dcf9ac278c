"""
Command classification for client lines.

The leading keyword selects the command; the argument count must match
exactly, otherwise the line is classified as UNKNOWN and answered with the
generic format error without any backend contact.
"""

from __future__ import annotations

import logging

from stocksim.types import Command, CommandType

logger = logging.getLogger(__name__)

# keyword -> (command type, allowed argument counts)
COMMAND_TABLE: dict[str, tuple[CommandType, frozenset[int]]] = {
    "AUTH": (CommandType.AUTH, frozenset({2})),
    "quote": (CommandType.QUOTE, frozenset({0, 1})),
    "buy": (CommandType.BUY, frozenset({2})),
    "sell": (CommandType.SELL, frozenset({2})),
    "position": (CommandType.POSITION, frozenset({0})),
    "logout": (CommandType.LOGOUT, frozenset({0})),
}


def parse_command(line: str) -> Command:
    """Classify one client line."""
    parts = line.split()
    if not parts:
        return Command(CommandType.UNKNOWN, raw=line)

    keyword, args = parts[0], tuple(parts[1:])
    entry = COMMAND_TABLE.get(keyword)
    if entry is None:
        logger.debug(f"Unknown command keyword: {keyword!r}")
        return Command(CommandType.UNKNOWN, args, raw=line)

    command_type, arities = entry
    if len(args) not in arities:
        logger.debug(f"Wrong argument count for {keyword}: {len(args)}")
        return Command(CommandType.UNKNOWN, args, raw=line)

    return Command(command_type, args, raw=line)
