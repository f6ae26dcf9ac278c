"""
Unit tests for the quote service and quotes file loader.
"""

from pathlib import Path

import pytest

from stocksim.errors import DataFileError
from stocksim.protocol import ERR_MALFORMED_REQUEST, ERR_STOCK_NOT_FOUND
from stocksim.services.quote import QuoteService, load_quotes
from tests.fixtures.fixtures import make_quote_service


class TestLoadQuotes:
    def test_loads_series(self, tmp_path: Path) -> None:
        path = tmp_path / "quotes.txt"
        path.write_text("GOOG 100 101 102\n\nAAPL 150.5 151\n")

        records = load_quotes(path)

        assert [r.symbol for r in records] == ["GOOG", "AAPL"]
        assert records[0].prices == (100.0, 101.0, 102.0)
        assert all(r.cursor == 0 for r in records)

    def test_symbol_without_prices(self, tmp_path: Path) -> None:
        path = tmp_path / "quotes.txt"
        path.write_text("GOOG 100\nAAPL\n")
        with pytest.raises(DataFileError) as exc_info:
            load_quotes(path)
        assert exc_info.value.line_no == 2

    def test_bad_price(self, tmp_path: Path) -> None:
        path = tmp_path / "quotes.txt"
        path.write_text("GOOG 100 abc\n")
        with pytest.raises(DataFileError):
            load_quotes(path)


class TestQuoteService:
    @pytest.fixture
    def service(self) -> QuoteService:
        return make_quote_service()

    def test_single_quote(self, service: QuoteService) -> None:
        assert service.handle("QUOTE GOOG") == "GOOG 100.000000"

    def test_listing_sorted(self, service: QuoteService) -> None:
        assert service.handle("QUOTE") == "AAPL 150.000000\nGOOG 100.000000"

    def test_unknown_symbol(self, service: QuoteService) -> None:
        assert service.handle("QUOTE ZZZZ") == ERR_STOCK_NOT_FOUND

    def test_symbol_is_case_sensitive(self, service: QuoteService) -> None:
        assert service.handle("QUOTE goog") == ERR_STOCK_NOT_FOUND

    def test_advance(self, service: QuoteService) -> None:
        reply = service.handle("ADVANCE GOOG")
        assert reply == "ADVANCED GOOG to index 1, new price: 101.000000"
        assert service.handle("QUOTE GOOG") == "GOOG 101.000000"

    def test_advance_only_moves_one_symbol(self, service: QuoteService) -> None:
        service.handle("ADVANCE GOOG")
        assert service.handle("QUOTE AAPL") == "AAPL 150.000000"

    def test_advance_full_cycle(self, service: QuoteService) -> None:
        record = service.record("AAPL")
        assert record is not None
        for _ in range(record.cycle_length):
            service.handle("ADVANCE AAPL")
        assert service.handle("QUOTE AAPL") == "AAPL 150.000000"

    def test_advance_unknown(self, service: QuoteService) -> None:
        assert service.handle("ADVANCE ZZZZ") == ERR_STOCK_NOT_FOUND

    @pytest.mark.parametrize("request_text", ["QUOTE GOOG AAPL", "ADVANCE", "ADVANCE GOOG 2", "quote GOOG"])
    def test_malformed(self, service: QuoteService, request_text: str) -> None:
        assert service.handle(request_text) == ERR_MALFORMED_REQUEST
