"""
Wire protocol for client<->router and router<->backend messages.

All messages are plain text. Backend requests are one space-separated line;
backend replies are one datagram that may span several lines.
"""

from __future__ import annotations

from typing import Optional

from stocksim.types import PortfolioLine

# --- Credential service ---

AUTH_SUCCESS = "AUTH_SUCCESS"
AUTH_FAILED = "AUTH_FAILED"

# --- Ledger service ---

SUFFICIENT_SHARES = "SUFFICIENT_SHARES"
INSUFFICIENT_SHARES = "INSUFFICIENT_SHARES"
PORTFOLIO_MARKER = "PORTFOLIO"
BUY_CONFIRMED = "BUY_CONFIRMED"
SELL_CONFIRMED = "SELL_CONFIRMED"

# --- Errors (backend and router) ---

ERROR_PREFIX = "ERROR"
ERR_STOCK_NOT_FOUND = "ERROR: Stock not found"
ERR_INSUFFICIENT_SHARES = "ERROR: Insufficient shares"
ERR_USER_NOT_FOUND = "ERROR: User portfolio not found"
ERR_MALFORMED_REQUEST = "ERROR: Malformed request"
ERR_INTERNAL = "ERROR: Internal service error"

ERR_NOT_AUTHENTICATED = "ERROR: Not authenticated"
ERR_ALREADY_AUTHENTICATED = "ERROR: Already authenticated"
ERR_UNKNOWN_COMMAND = "ERROR: Unknown command or incorrect format"
ERR_INVALID_SHARES = "ERROR: Invalid number of shares"
ERR_INVALID_QUOTE = "ERROR: Invalid quote response"
ERR_INVALID_PORTFOLIO = "ERROR: Invalid portfolio response"
ERR_NOT_ENOUGH_TO_SELL = "ERROR: You do not have enough shares to sell"
ERR_QUOTE_FAILED = "ERROR: Failed to get quote"
ERR_BUY_QUOTE_FAILED = "ERROR: Failed to get quote for buy"
ERR_SELL_QUOTE_FAILED = "ERROR: Failed to get quote for sell"
ERR_BUY_CONFIRM_FAILED = "ERROR: Failed to confirm buy"
ERR_SELL_CONFIRM_FAILED = "ERROR: Failed to confirm sell"
ERR_CHECK_FAILED = "ERROR: Failed to check shares"
ERR_PORTFOLIO_FAILED = "ERROR: Failed to get portfolio"

BUY_CANCELLED = "Buy transaction cancelled"
SELL_CANCELLED = "Sell transaction cancelled"
LOGOUT_SUCCESS = "LOGOUT_SUCCESS"

AFFIRMATIVE = frozenset({"yes", "y"})


def obfuscate_password(password: str) -> str:
    """
    Rotate letters by 3 within their case and digits by 3 mod 10.

    This is the shared storage convention between the router and the
    credential table, not a security measure. Non-ASCII characters pass
    through unchanged.
    """
    out = []
    for ch in password:
        if "a" <= ch <= "z":
            out.append(chr((ord(ch) - ord("a") + 3) % 26 + ord("a")))
        elif "A" <= ch <= "Z":
            out.append(chr((ord(ch) - ord("A") + 3) % 26 + ord("A")))
        elif "0" <= ch <= "9":
            out.append(chr((ord(ch) - ord("0") + 3) % 10 + ord("0")))
        else:
            out.append(ch)
    return "".join(out)


def is_error(reply: str) -> bool:
    return reply.startswith(ERROR_PREFIX)


def is_affirmative(reply: Optional[str]) -> bool:
    return reply is not None and reply.strip().lower() in AFFIRMATIVE


def format_price(value: float) -> str:
    """Fixed six-decimal price as used on the backend wire."""
    return f"{value:f}"


def format_money(value: float) -> str:
    return f"{value:.2f}"


# --- Request builders ---


def auth_request(username: str, obfuscated: str) -> str:
    return f"AUTH {username} {obfuscated}"


def quote_request(symbol: Optional[str] = None) -> str:
    return f"QUOTE {symbol}" if symbol else "QUOTE"


def advance_request(symbol: str) -> str:
    return f"ADVANCE {symbol}"


def buy_request(username: str, symbol: str, quantity: int, price: float) -> str:
    return f"BUY {username} {symbol} {quantity} {format_price(price)}"


def sell_request(username: str, symbol: str, quantity: int, price: float) -> str:
    return f"SELL {username} {symbol} {quantity} {format_price(price)}"


def check_request(username: str, symbol: str, quantity: int) -> str:
    return f"CHECK {username} {symbol} {quantity}"


def portfolio_request(username: str) -> str:
    return f"PORTFOLIO {username}"


# --- Client prompts ---


def confirm_prompt(action: str, symbol: str, quantity: int, price: float) -> str:
    """``BUY CONFIRM: GOOG 2 shares at $100.00 = $200.00``"""
    total = price * quantity
    return (
        f"{action} CONFIRM: {symbol} {quantity} shares at "
        f"${format_money(price)} = ${format_money(total)}"
    )


def is_confirm_prompt(reply: str) -> bool:
    return reply.startswith("BUY CONFIRM:") or reply.startswith("SELL CONFIRM:")


# --- Reply parsers ---


def parse_quote_reply(reply: str, symbol: Optional[str] = None) -> Optional[float]:
    """
    Extract the unit price from a single-symbol quote reply.

    Returns None if the reply is not a ``<symbol> <price>`` line, or names a
    different symbol than the one asked for.
    """
    parts = reply.strip().split()
    if len(parts) != 2:
        return None
    if symbol is not None and parts[0] != symbol:
        return None
    try:
        return float(parts[1])
    except ValueError:
        return None


def parse_portfolio_reply(reply: str) -> Optional[list[PortfolioLine]]:
    """
    Parse a PORTFOLIO reply into holding lines.

    Returns None when the marker line is missing. Holding lines that do not
    have exactly three well-formed fields are skipped.
    """
    lines = [line.strip() for line in reply.splitlines() if line.strip()]
    if not lines or lines[0] != PORTFOLIO_MARKER:
        return None

    holdings: list[PortfolioLine] = []
    for line in lines[1:]:
        parts = line.split()
        if len(parts) != 3:
            continue
        try:
            quantity = int(parts[1])
            avg_cost = float(parts[2])
        except ValueError:
            continue
        holdings.append(PortfolioLine(symbol=parts[0], quantity=quantity, avg_cost=avg_cost))
    return holdings


def parse_share_count(value: str) -> Optional[int]:
    """Positive integer share count in plain ASCII digits, or None."""
    # int() alone would take "+5", "1_0" and non-ASCII digits
    if not (value.isascii() and value.isdigit()):
        return None
    quantity = int(value)
    return quantity if quantity > 0 else None
