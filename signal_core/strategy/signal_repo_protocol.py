"""Storage and collaborator protocols for strategy-agnostic persistence.

Any storage backend (SQL database, in-memory fake, etc.) can implement
these protocols to be used by the lifecycle manager and services.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from signal_core.models import (
    Candle,
    ExchangeCredentials,
    OrderResult,
    OrderSpec,
    OrderStatus,
    Signal,
    SignalType,
    Trade,
)


@runtime_checkable
class SignalRepository(Protocol):
    """Protocol that signal storage backends must implement."""

    async def save(self, signal: Signal) -> None:
        """Persist a new signal."""
        ...

    async def get_by_id(self, signal_id: str) -> Signal | None:
        """Get a single signal by its ID."""
        ...

    async def get_active(
        self,
        now: datetime,
        symbol: str | None = None,
        signal_type: SignalType | None = None,
        limit: int = 20,
    ) -> list[Signal]:
        """Active, unexecuted, unexpired signals by confidence then recency."""
        ...

    async def get_history(
        self,
        symbol: str | None = None,
        signal_type: SignalType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Signal]:
        """All signals, newest first."""
        ...

    async def try_mark_executed(self, signal_id: str, now: datetime) -> bool:
        """Atomically set executed=true if still executable; True on success."""
        ...

    async def deactivate(self, signal_id: str, now: datetime) -> bool:
        """Withdraw an unexecuted signal; True if a row changed."""
        ...

    async def get_performance(
        self, since: datetime, symbol: str | None = None
    ) -> list[dict[str, Any]]:
        """Per signal_type counts and averages since ``since``."""
        ...

    async def get_model_stats(
        self, since: datetime | None = None
    ) -> dict[str, dict[str, Any]]:
        """Generated/executed counts and average confidence per model_version."""
        ...


@runtime_checkable
class TradeRepository(Protocol):
    """Protocol that trade storage backends must implement."""

    async def save(self, trade: Trade) -> Trade:
        """Insert a trade; raises AlreadyExecuted on a duplicate signal_id."""
        ...

    async def detach_signal(self, trade_id: int) -> Trade:
        """Turn a linked trade into an orphan of its signal."""
        ...

    async def get_by_signal(self, signal_id: str) -> Trade | None:
        """The trade linked to a signal, if any."""
        ...

    async def get_orphans(self, limit: int = 50) -> list[Trade]:
        """Trades carrying an orphan_signal_id, newest first."""
        ...

    async def update_status(self, order_id: str, status: OrderStatus) -> bool:
        """Update the status of a recorded order."""
        ...

    async def record_fill(self, result: OrderResult, now: datetime) -> bool:
        """Copy venue status and fills onto the recorded order."""
        ...

    async def get_stats(self, since: datetime, symbol: str | None = None) -> dict[str, Any]:
        """Trade totals and FILLED breakdowns by symbol and side."""
        ...

    async def get_recent(
        self, symbol: str | None = None, limit: int = 50, offset: int = 0
    ) -> list[Trade]:
        """Recorded trades, newest first."""
        ...


@runtime_checkable
class MarketDataSource(Protocol):
    """Supplier of ordered candles."""

    async def get_klines(self, symbol: str, interval: str, limit: int = 500) -> list[Candle]:
        ...


@runtime_checkable
class CredentialStore(Protocol):
    """Resolves a calling context to venue credentials."""

    def resolve_credentials(self, account: str | None = None) -> ExchangeCredentials:
        ...


@runtime_checkable
class OrderGateway(Protocol):
    """Venue transport bound to one credential context."""

    async def place_order(self, spec: OrderSpec) -> OrderResult:
        ...

    async def cancel_order(self, symbol: str, order_id: str) -> OrderResult:
        ...
