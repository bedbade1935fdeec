"""Error taxonomy for signal generation and execution."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from signal_core.models.trade import Trade


class SignalEngineError(Exception):
    """Base class for all errors raised by the signal pipeline."""

    retryable: bool = False


class ValidationError(SignalEngineError, ValueError):
    """Malformed input, rejected before any network or storage call."""


class CredentialsNotFound(ValidationError):
    """No usable venue credentials for the requested context."""


class NoModelAvailable(SignalEngineError):
    """The model registry has no active model to synthesize with."""


class SignalNotFound(SignalEngineError):
    """No signal exists with the given id."""

    def __init__(self, signal_id: str):
        super().__init__(f"Signal {signal_id} not found")
        self.signal_id = signal_id


class SignalExpired(SignalEngineError):
    """The signal's validity window has closed (or it was deactivated)."""

    def __init__(self, signal_id: str, trade: Trade | None = None):
        super().__init__(f"Signal {signal_id} has expired")
        self.signal_id = signal_id
        self.trade = trade


class AlreadyExecuted(SignalEngineError):
    """The signal has already been executed.

    When raised after an order reached the venue, ``trade`` holds the
    orphan trade recorded for reconciliation.
    """

    def __init__(self, signal_id: str, trade: Trade | None = None):
        super().__init__(f"Signal {signal_id} already executed")
        self.signal_id = signal_id
        self.trade = trade


class GatewayTimeout(SignalEngineError):
    """Venue call did not complete in time. Safe to retry."""

    retryable = True

    def __init__(self, message: str, endpoint: str | None = None):
        super().__init__(message)
        self.endpoint = endpoint


class ExchangeError(SignalEngineError):
    """Venue rejected or failed the request after receiving it.

    Not blindly retryable: the order may have partially applied.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: Any = None,
        endpoint: str | None = None,
    ):
        super().__init__(f"Binance API Error: {message}")
        self.venue_message = message
        self.status_code = status_code
        self.code = code
        self.endpoint = endpoint


class StorageError(SignalEngineError):
    """Persistence failure; fatal for the current operation."""
