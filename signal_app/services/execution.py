"""Execution coordinator: turn an active signal into exactly one venue order.

Flow per signal (serialized by a per-signal lock):
1. Lifecycle guards (not found / expired / already executed)
2. Market order from the signal direction
3. Venue placement; any venue error leaves the signal untouched
4. Trade row linked to the signal
5. Compare-and-set executed=true; on a lost race the trade becomes an orphan
"""

import asyncio
import logging
import weakref
from decimal import Decimal
from typing import Callable

from signal_app.services.notifier import EventPublisher
from signal_app.services.signal_lifecycle import SignalLifecycleManager
from signal_core.errors import (
    AlreadyExecuted,
    ExchangeError,
    GatewayTimeout,
    SignalExpired,
    StorageError,
    ValidationError,
)
from signal_core.models import (
    ExchangeCredentials,
    OrderSide,
    OrderSpec,
    OrderType,
    Trade,
)
from signal_core.strategy import CredentialStore, OrderGateway

logger = logging.getLogger(__name__)


class ExecutionCoordinator:
    """Executes stored signals against the venue, at most once per signal."""

    def __init__(
        self,
        lifecycle: SignalLifecycleManager,
        gateways: Callable[[ExchangeCredentials], OrderGateway],
        credentials: CredentialStore,
        publisher: EventPublisher | None = None,
        default_quantity: Decimal = Decimal("0.001"),
    ):
        """
        Args:
            lifecycle: Signal and trade persistence
            gateways: Returns the venue client for a credential context
                (e.g. GatewayPool.get)
            credentials: Resolves an account name to venue credentials
            publisher: Receives a trade event per recorded trade, orphans included
            default_quantity: Order size when no override is given
        """
        self.lifecycle = lifecycle
        self._gateways = gateways
        self._credentials = credentials
        self.publisher = publisher
        self.default_quantity = default_quantity
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, signal_id: str) -> asyncio.Lock:
        lock = self._locks.get(signal_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[signal_id] = lock
        return lock

    async def execute(
        self,
        signal_id: str,
        quantity: Decimal | None = None,
        account: str | None = None,
    ) -> Trade:
        """
        Execute a stored signal with a market order.

        Args:
            signal_id: Signal to execute
            quantity: Order size override
            account: Credential context name (default account when None)

        Returns:
            The trade linked to the signal

        Raises:
            ValidationError: Bad quantity or unusable credentials.
            SignalNotFound, SignalExpired, AlreadyExecuted: Lifecycle guards.
                When raised after the order reached the venue, ``trade``
                on the exception holds the orphan trade.
            GatewayTimeout, ExchangeError: Venue failures; nothing recorded.
            StorageError: The order reached the venue but was not recorded.
        """
        qty = quantity if quantity is not None else self.default_quantity
        if qty <= 0:
            raise ValidationError(f"Order quantity must be positive, got {qty}")
        credentials = self._credentials.resolve_credentials(account)

        lock = self._lock_for(signal_id)
        async with lock:
            signal = await self.lifecycle.require_executable(signal_id)

            spec = OrderSpec(
                symbol=signal.symbol,
                side=OrderSide(signal.signal_type.value),
                type=OrderType.MARKET,
                quantity=qty,
            )
            gateway = self._gateways(credentials)
            try:
                result = await gateway.place_order(spec)
            except (GatewayTimeout, ExchangeError) as e:
                logger.error(
                    f"Order for signal {signal_id} ({signal.symbol} "
                    f"{signal.signal_type.value}) failed, signal stays active: {e}"
                )
                raise

            trade = Trade.from_order(
                spec,
                result,
                self.lifecycle.now(),
                signal_id=signal_id,
                is_testnet=credentials.is_testnet,
            ).model_copy(update={"is_automated": True})

            try:
                trade = await self.lifecycle.record_execution_trade(trade)
            except AlreadyExecuted as e:
                orphan = await self.lifecycle.record_orphan_trade(trade, signal_id)
                await self._publish(orphan)
                raise AlreadyExecuted(signal_id, trade=orphan) from e
            except StorageError:
                logger.critical(
                    f"Order {result.order_id} for signal {signal_id} ({signal.symbol}) "
                    f"was placed but could not be recorded"
                )
                raise

            try:
                await self.lifecycle.mark_executed(signal_id)
            except (AlreadyExecuted, SignalExpired) as e:
                e.trade = await self.lifecycle.orphan_trade(trade)
                logger.error(
                    f"Signal {signal_id} ({signal.symbol}) could not be marked executed "
                    f"after order {result.order_id}: {e}"
                )
                await self._publish(e.trade)
                raise

        logger.info(
            f"Executed signal {signal_id}: {spec.side.value} {qty} {signal.symbol} "
            f"order {trade.order_id} status={trade.status.value}"
        )
        await self._publish(trade)
        return trade

    async def _publish(self, trade: Trade) -> None:
        if self.publisher:
            await self.publisher.send_trade(trade)
