"""
Custom exceptions for the trading simulation.

Exception hierarchy:
- StockSimError (base)
  - ConfigurationError: Invalid configuration
  - DataFileError: Malformed members/quotes/portfolios file
  - FrameError: Oversized or undecodable client frame
  - ClientDisconnectedError: Client connection lost mid-session
  - BackendError: A router->backend round-trip did not produce a reply
    - BackendTimeoutError: No reply within the configured timeout
    - BackendUnavailableError: The request could not be sent at all

None of these travel on the wire. Inside the router they are converted to
one plain-text error reply per command.
"""

from __future__ import annotations

from typing import Any, Optional


class StockSimError(Exception):
    """Base exception for all simulation errors."""

    def __init__(
        self,
        message: str,
        *,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.component = component
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.component:
            parts.append(f"[component={self.component}]")
        if self.details:
            parts.append(f"[details={self.details}]")
        return " ".join(parts)


class ConfigurationError(StockSimError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.field = field
        self.value = value
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, component=component, details=details)


class DataFileError(StockSimError):
    """Raised when a service data file cannot be parsed."""

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        line_no: Optional[int] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.path = path
        self.line_no = line_no
        details = details or {}
        if path:
            details["path"] = path
        if line_no is not None:
            details["line"] = line_no
        super().__init__(message, component=component, details=details)


class FrameError(StockSimError):
    """Raised when a client frame exceeds the size limit or is not valid UTF-8."""


class BackendError(StockSimError):
    """Raised when a backend round-trip fails."""

    def __init__(
        self,
        message: str,
        *,
        backend: Optional[str] = None,
        request: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.backend = backend
        self.request = request
        details = details or {}
        if backend:
            details["backend"] = backend
        # Request verb only, AUTH requests carry the obfuscated password
        if request:
            details["verb"] = request.split(" ", 1)[0]
        super().__init__(message, component=component, details=details)


class BackendTimeoutError(BackendError):
    """Raised when a backend does not reply within the timeout."""

    def __init__(
        self,
        message: str,
        *,
        timeout_s: Optional[float] = None,
        backend: Optional[str] = None,
        request: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.timeout_s = timeout_s
        details = details or {}
        if timeout_s is not None:
            details["timeout_s"] = timeout_s
        super().__init__(
            message, backend=backend, request=request, component=component, details=details
        )


class BackendUnavailableError(BackendError):
    """Raised when a request cannot be delivered to a backend."""


class ClientDisconnectedError(StockSimError):
    """Raised inside a session when the client connection goes away."""
