"""Signal lifecycle: storage of directional signals and the executed transition.

State per signal: ACTIVE while is_active, not executed and now < expires_at.
EXPIRED is evaluated at read time only. EXECUTED is the single stored
mutation and goes through an atomic compare-and-set in the repository.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from signal_core.errors import AlreadyExecuted, SignalExpired, SignalNotFound
from signal_core.models import Signal, SignalState, SignalType, Trade
from signal_core.strategy import ModelRegistry, SignalRepoProtocol, TradeRepoProtocol

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SignalLifecycleManager:
    """Owns signal persistence and the at-most-once executed transition."""

    def __init__(
        self,
        signal_repo: SignalRepoProtocol,
        trade_repo: TradeRepoProtocol,
        clock: Callable[[], datetime] | None = None,
    ):
        self.signal_repo = signal_repo
        self.trade_repo = trade_repo
        self._clock = clock or _utcnow

    def now(self) -> datetime:
        return self._clock()

    async def store(self, signal: Signal) -> Signal | None:
        """Persist a directional signal. HOLD signals are never stored.

        Returns:
            The stored signal, or None for HOLD
        """
        if not signal.is_directional:
            logger.debug(f"Skipping HOLD signal for {signal.symbol}")
            return None

        await self.signal_repo.save(signal)
        logger.info(
            f"Stored {signal.signal_type.value} signal {signal.id} for {signal.symbol} "
            f"(confidence {signal.confidence_score}, expires {signal.expires_at.isoformat()})"
        )
        return signal

    async def get_by_id(self, signal_id: str) -> Signal | None:
        return await self.signal_repo.get_by_id(signal_id)

    async def list_active(
        self,
        symbol: str | None = None,
        signal_type: SignalType | None = None,
        limit: int = 20,
    ) -> list[Signal]:
        """Signals passing the ACTIVE predicate, by confidence then recency."""
        return await self.signal_repo.get_active(
            self.now(), symbol=symbol, signal_type=signal_type, limit=limit
        )

    async def list_history(
        self,
        symbol: str | None = None,
        signal_type: SignalType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Signal]:
        """Every stored signal, newest first."""
        return await self.signal_repo.get_history(
            symbol=symbol, signal_type=signal_type, limit=limit, offset=offset
        )

    async def require_executable(self, signal_id: str) -> Signal:
        """Load a signal and check the lifecycle guards.

        Raises:
            SignalNotFound: No such signal.
            AlreadyExecuted: The signal was executed before.
            SignalExpired: The validity window closed or the signal was withdrawn.
        """
        signal = await self.signal_repo.get_by_id(signal_id)
        if signal is None:
            raise SignalNotFound(signal_id)
        self._raise_for_state(signal)
        return signal

    async def mark_executed(self, signal_id: str) -> None:
        """Atomically set executed=true.

        Raises:
            SignalNotFound, AlreadyExecuted, SignalExpired: When the
                compare-and-set did not apply; the reason is read afterwards.
        """
        if await self.signal_repo.try_mark_executed(signal_id, self.now()):
            logger.info(f"Signal {signal_id} marked executed")
            return

        signal = await self.signal_repo.get_by_id(signal_id)
        if signal is None:
            raise SignalNotFound(signal_id)
        self._raise_for_state(signal)
        # Guard passed on re-read but the update did not apply
        raise AlreadyExecuted(signal_id)

    async def deactivate(self, signal_id: str) -> None:
        """Withdraw an unexecuted signal."""
        if await self.signal_repo.deactivate(signal_id, self.now()):
            logger.info(f"Signal {signal_id} deactivated")
            return

        signal = await self.signal_repo.get_by_id(signal_id)
        if signal is None:
            raise SignalNotFound(signal_id)
        raise AlreadyExecuted(signal_id)

    def _raise_for_state(self, signal: Signal) -> None:
        state = signal.state(self.now())
        if state == SignalState.EXECUTED:
            raise AlreadyExecuted(signal.id)
        if state in (SignalState.EXPIRED, SignalState.INACTIVE):
            raise SignalExpired(signal.id)

    # ---------- Trades ----------

    async def record_execution_trade(self, trade: Trade) -> Trade:
        """Persist the trade linked to its signal.

        Raises:
            AlreadyExecuted: Another trade already holds this signal_id.
        """
        return await self.trade_repo.save(trade)

    async def record_orphan_trade(self, trade: Trade, signal_id: str) -> Trade:
        """Persist a trade whose signal transition was lost."""
        orphan = trade.model_copy(update={"signal_id": None, "orphan_signal_id": signal_id})
        stored = await self.trade_repo.save(orphan)
        logger.warning(
            f"Orphan trade {stored.id} (order {stored.order_id}) recorded for signal "
            f"{signal_id}; needs manual reconciliation"
        )
        return stored

    async def orphan_trade(self, trade: Trade) -> Trade:
        """Detach an already linked trade from its signal."""
        orphan = await self.trade_repo.detach_signal(trade.id)
        logger.warning(
            f"Trade {orphan.id} (order {orphan.order_id}) detached from signal "
            f"{orphan.orphan_signal_id}; needs manual reconciliation"
        )
        return orphan

    async def list_orphan_trades(self, limit: int = 50) -> list[Trade]:
        return await self.trade_repo.get_orphans(limit=limit)

    # ---------- Analytics ----------

    async def performance_stats(
        self, symbol: str | None = None, days: int = 30
    ) -> list[dict[str, Any]]:
        """Per signal_type counts and averages over the last ``days`` days."""
        since = self.now() - timedelta(days=days)
        return await self.signal_repo.get_performance(since, symbol=symbol)

    async def model_stats(
        self, registry: ModelRegistry, days: int | None = None
    ) -> list[dict[str, Any]]:
        """Signal counts per active model, highest accuracy first.

        Signals are matched to models by version; a model with no stored
        signals reports zeros.
        """
        since = self.now() - timedelta(days=days) if days else None
        by_version = await self.signal_repo.get_model_stats(since)
        empty = {"signals_generated": 0, "signals_executed": 0, "avg_confidence": None}
        return [
            {
                "name": model.name,
                "version": model.version,
                "accuracy": model.accuracy,
                **by_version.get(model.version, empty),
            }
            for model in registry.active_models()
        ]
