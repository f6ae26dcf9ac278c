"""
Backend services.

Each service owns one table and answers one request with one reply:
- CredentialService: username -> obfuscated password
- QuoteService: symbol -> cyclic price series with a cursor
- LedgerService: username -> symbol -> holding
"""

from stocksim.services.base import BaseService, ServiceStats
from stocksim.services.credential import CredentialService, load_members
from stocksim.services.ledger import LedgerService, load_portfolios
from stocksim.services.quote import QuoteService, load_quotes

__all__ = [
    "BaseService",
    "ServiceStats",
    "CredentialService",
    "QuoteService",
    "LedgerService",
    "load_members",
    "load_quotes",
    "load_portfolios",
]
