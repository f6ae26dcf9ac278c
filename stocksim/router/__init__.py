"""
Front-end router.

- dispatch: client line classification
- session: per-connection state and client channel
- orchestrator: backend round-trip sequences per command
- registry: cross-session directory for admin views
- server: TCP listener and session tasks
"""

from stocksim.router.dispatch import COMMAND_TABLE, parse_command
from stocksim.router.orchestrator import TradeOrchestrator
from stocksim.router.registry import SessionRegistry
from stocksim.router.server import RouterServer
from stocksim.router.session import ClientChannel, Session

__all__ = [
    "COMMAND_TABLE",
    "ClientChannel",
    "RouterServer",
    "Session",
    "SessionRegistry",
    "TradeOrchestrator",
    "parse_command",
]
