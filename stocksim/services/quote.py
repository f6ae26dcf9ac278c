"""Quote service: cyclic per-symbol price series with an advance operation."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from stocksim.errors import DataFileError
from stocksim.protocol import ERR_STOCK_NOT_FOUND, format_price
from stocksim.services.base import BaseService
from stocksim.types import QuoteRecord

logger = logging.getLogger(__name__)


def load_quotes(path: Path) -> list[QuoteRecord]:
    """Read ``<symbol> <p0> <p1> ...`` lines. Cursors start at 0."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DataFileError(f"Cannot read quotes file: {exc}", path=str(path)) from exc

    records: list[QuoteRecord] = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        parts = line.split()
        if not parts:
            continue
        if len(parts) < 2:
            raise DataFileError(
                "expected '<symbol> <price> [<price> ...]'", path=str(path), line_no=line_no
            )
        try:
            prices = tuple(float(p) for p in parts[1:])
        except ValueError as exc:
            raise DataFileError(
                f"invalid price: {exc}", path=str(path), line_no=line_no
            ) from exc
        records.append(QuoteRecord(symbol=parts[0], prices=prices))
    logger.info(f"Loaded {len(records)} stock quotes from {path}")
    return records


class QuoteService(BaseService):
    """Answers QUOTE and ADVANCE against symbol -> QuoteRecord."""

    name = "quote"

    def __init__(self, records: Iterable[QuoteRecord]) -> None:
        super().__init__()
        self._quotes: dict[str, QuoteRecord] = {r.symbol: r for r in records}
        self._verbs = {"QUOTE": self._handle_quote, "ADVANCE": self._handle_advance}

    @classmethod
    def from_file(cls, path: Path) -> "QuoteService":
        return cls(load_quotes(path))

    def record(self, symbol: str) -> Optional[QuoteRecord]:
        return self._quotes.get(symbol)

    def listing(self) -> str:
        return "\n".join(
            f"{symbol} {format_price(self._quotes[symbol].current_price)}"
            for symbol in sorted(self._quotes)
        )

    def _handle_quote(self, parts: list[str]) -> str:
        if len(parts) == 1:
            logger.debug(f"[{self.name}] Quote request for all symbols")
            return self.listing()
        if len(parts) != 2:
            raise ValueError("QUOTE takes at most one symbol")

        symbol = parts[1]
        record = self._quotes.get(symbol)
        if record is None:
            logger.debug(f"[{self.name}] Quote request for unknown symbol {symbol}")
            return ERR_STOCK_NOT_FOUND
        return f"{symbol} {format_price(record.current_price)}"

    def _handle_advance(self, parts: list[str]) -> str:
        if len(parts) != 2:
            raise ValueError("ADVANCE takes one symbol")

        symbol = parts[1]
        record = self._quotes.get(symbol)
        if record is None:
            return ERR_STOCK_NOT_FOUND

        old_cursor = record.cursor
        old_price = record.current_price
        new_cursor = record.advance()
        logger.info(
            f"[{self.name}] Time forward for {symbol}: price {old_price:.2f} at time "
            f"{old_cursor} -> {record.current_price:.2f} at time {new_cursor}"
        )
        return (
            f"ADVANCED {symbol} to index {new_cursor}, "
            f"new price: {format_price(record.current_price)}"
        )
