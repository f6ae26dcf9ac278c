import asyncio
from dataclasses import dataclass
from typing import Any, Optional

from stocksim.errors import BackendTimeoutError, BackendUnavailableError
from stocksim.protocol import obfuscate_password
from stocksim.services import BaseService, CredentialService, LedgerService, QuoteService
from stocksim.types import Holding, QuoteRecord

GOOG_PRICES = tuple(float(p) for p in range(100, 110))
AAPL_PRICES = (150.0, 151.0, 152.0)
JAMES_PASSWORD = "SODids392"


def make_credential_service() -> CredentialService:
    return CredentialService(
        {
            "James": obfuscate_password(JAMES_PASSWORD),
            "Mary": obfuscate_password("Mary2024"),
        }
    )


def make_quote_service() -> QuoteService:
    return QuoteService(
        [
            QuoteRecord(symbol="GOOG", prices=GOOG_PRICES),
            QuoteRecord(symbol="AAPL", prices=AAPL_PRICES),
        ]
    )


def make_ledger_service() -> LedgerService:
    return LedgerService(
        {
            "James": {"AAPL": Holding(symbol="AAPL", quantity=10, avg_cost=150.0)},
            "Mary": {},
        }
    )


class RecordingBackend:
    """
    In-process Backend double.

    Feeds each request straight into a service and records it. Verbs listed
    in ``fail_on`` raise instead of replying; ``replies`` overrides the reply
    for a verb.
    """

    def __init__(self, service: BaseService, name: Optional[str] = None) -> None:
        self.service = service
        self._name = name or service.name
        self.requests: list[str] = []
        self.fail_on: dict[str, type] = {}
        self.replies: dict[str, str] = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def verbs(self) -> list[str]:
        return [r.split(" ", 1)[0] for r in self.requests]

    async def request(self, message: str) -> str:
        self.requests.append(message)
        verb = message.split(" ", 1)[0]
        if verb in self.fail_on:
            error = self.fail_on[verb]
            if error is BackendUnavailableError:
                raise BackendUnavailableError("unreachable", backend=self._name, request=message)
            raise BackendTimeoutError(
                "no reply", timeout_s=5.0, backend=self._name, request=message
            )
        if verb in self.replies:
            return self.replies[verb]
        return self.service.handle(message)


@dataclass
class Backends:
    credential: RecordingBackend
    quote: RecordingBackend
    ledger: RecordingBackend

    def as_mapping(self) -> dict[str, RecordingBackend]:
        return {"credential": self.credential, "quote": self.quote, "ledger": self.ledger}

    @property
    def quote_service(self) -> QuoteService:
        return self.quote.service  # type: ignore[return-value]

    @property
    def ledger_service(self) -> LedgerService:
        return self.ledger.service  # type: ignore[return-value]


def make_backends() -> Backends:
    return Backends(
        credential=RecordingBackend(make_credential_service()),
        quote=RecordingBackend(make_quote_service()),
        ledger=RecordingBackend(make_ledger_service()),
    )


class FakeWriter:
    """Stands in for asyncio.StreamWriter and captures everything written."""

    def __init__(self, peer: Any = ("127.0.0.1", 50000)) -> None:
        self.buffer = bytearray()
        self.closed = False
        self.fail_with: Optional[Exception] = None
        self._peer = peer

    def write(self, data: bytes) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.buffer.extend(data)

    async def drain(self) -> None:
        return None

    def close(self) -> None:
        self.closed = True

    def is_closing(self) -> bool:
        return self.closed

    async def wait_closed(self) -> None:
        return None

    def get_extra_info(self, name: str, default: Any = None) -> Any:
        return self._peer if name == "peername" else default

    def replies(self) -> list[str]:
        """NUL-terminated frames written so far."""
        return bytes(self.buffer).decode("utf-8").split("\0")[:-1]


def scripted_reader(*lines: str, eof: bool = True) -> asyncio.StreamReader:
    """StreamReader preloaded with newline-terminated lines. Call inside a running loop."""
    reader = asyncio.StreamReader()
    for line in lines:
        reader.feed_data(line.encode("utf-8") + b"\n")
    if eof:
        reader.feed_eof()
    return reader
