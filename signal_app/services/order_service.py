"""Manual order management on Binance Futures."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from signal_app.clients.binance_rest import BinanceRestClient
from signal_app.services.notifier import EventPublisher
from signal_core.errors import ExchangeError, GatewayTimeout, StorageError
from signal_core.models import (
    ExchangeCredentials,
    OrderResult,
    OrderSpec,
    OrderStatus,
    Trade,
)
from signal_core.strategy import CredentialStore, TradeRepoProtocol

logger = logging.getLogger(__name__)


class OrderService:
    """
    Service for orders placed outside the signal flow.

    Supports:
    - Market, limit and stop orders (recorded as trades without a signal)
    - Cancellation and fill reconciliation
    - Positions, balance, open orders and venue order history
    - Trade analytics over recorded trades
    """

    def __init__(
        self,
        gateways: Callable[[ExchangeCredentials], BinanceRestClient],
        credentials: CredentialStore,
        trade_repo: TradeRepoProtocol,
        publisher: EventPublisher | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._gateways = gateways
        self._credentials = credentials
        self.trade_repo = trade_repo
        self.publisher = publisher
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _client(self, account: str | None) -> tuple[BinanceRestClient, ExchangeCredentials]:
        credentials = self._credentials.resolve_credentials(account)
        return self._gateways(credentials), credentials

    async def place_order(self, spec: OrderSpec, account: str | None = None) -> Trade:
        """
        Place a manual order and record it.

        Args:
            spec: Order specification
            account: Credential context name

        Returns:
            Recorded trade (signal_id is None)
        """
        spec.validate_spec()
        client, credentials = self._client(account)

        try:
            result = await client.place_order(spec)
        except (GatewayTimeout, ExchangeError) as e:
            logger.error(
                f"Manual {spec.side.value} {spec.type.value} order on {spec.symbol} failed: {e}"
            )
            raise

        trade = Trade.from_order(
            spec, result, self._clock(), is_testnet=credentials.is_testnet
        )
        try:
            trade = await self.trade_repo.save(trade)
        except StorageError:
            logger.critical(
                f"Manual order {result.order_id} ({spec.symbol} {spec.side.value}) "
                f"was placed but could not be recorded"
            )
            raise
        if self.publisher:
            await self.publisher.send_trade(trade)
        return trade

    async def cancel_order(
        self, symbol: str, order_id: str, account: str | None = None
    ) -> OrderResult:
        """Cancel on the venue, then mark the recorded trade CANCELED."""
        client, _ = self._client(account)
        result = await client.cancel_order(symbol, order_id)
        if not await self.trade_repo.update_status(order_id, OrderStatus.CANCELED):
            logger.info(f"Cancelled order {order_id} has no recorded trade")
        return result

    async def sync_order(
        self, symbol: str, order_id: str, account: str | None = None
    ) -> OrderResult:
        """Refresh a recorded order from the venue (status, fills)."""
        client, _ = self._client(account)
        result = await client.get_order(symbol, order_id)
        if await self.trade_repo.record_fill(result, self._clock()):
            logger.info(
                f"Order {order_id} synced: {result.status.value} "
                f"{result.executed_qty} @ {result.avg_price}"
            )
        else:
            logger.info(f"Order {order_id} has no recorded trade")
        return result

    async def order_history(
        self, symbol: str, limit: int = 50, account: str | None = None
    ) -> list[OrderResult]:
        """Venue-side order history for a symbol, newest first."""
        client, _ = self._client(account)
        orders = await client.get_all_orders(symbol, limit=limit)
        return list(reversed(orders))

    async def get_open_orders(
        self, symbol: str | None = None, account: str | None = None
    ) -> list[OrderResult]:
        client, _ = self._client(account)
        return await client.get_open_orders(symbol)

    async def get_positions(self, account: str | None = None) -> list[dict[str, Any]]:
        client, _ = self._client(account)
        return await client.get_positions()

    async def get_balance(self, account: str | None = None) -> list[dict[str, Any]]:
        client, _ = self._client(account)
        return await client.get_balance()

    async def trade_history(
        self, symbol: str | None = None, limit: int = 50, offset: int = 0
    ) -> list[Trade]:
        """Recorded trades, newest first."""
        return await self.trade_repo.get_recent(symbol=symbol, limit=limit, offset=offset)

    async def trade_stats(self, symbol: str | None = None, days: int = 30) -> dict[str, Any]:
        """Recorded trade totals and breakdowns over the last ``days`` days."""
        since = self._clock() - timedelta(days=days)
        return await self.trade_repo.get_stats(since, symbol=symbol)
