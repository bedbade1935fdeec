"""Signal repository."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import case, func, insert, select, update
from sqlalchemy.exc import IntegrityError

from signal_app.storage.database import Database, SignalTable, get_database, to_utc
from signal_core.errors import StorageError
from signal_core.models import (
    IndicatorSet,
    MarketConditions,
    Signal,
    SignalType,
)

logger = logging.getLogger(__name__)


def _dec(value: Any) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


class SignalRepository:
    """Repository for signal data operations."""

    def __init__(self, db: Database | None = None):
        self._db = db

    @property
    def db(self) -> Database:
        return self._db or get_database()

    async def save(self, signal: Signal) -> None:
        """Save a new signal record."""
        try:
            async with self.db.session() as session:
                stmt = insert(SignalTable).values(
                    id=signal.id,
                    symbol=signal.symbol,
                    timeframe=signal.timeframe,
                    signal_type=signal.signal_type.value,
                    strength=signal.strength,
                    confidence_score=signal.confidence_score,
                    entry_price=signal.entry_price,
                    stop_loss=signal.stop_loss,
                    take_profit=signal.take_profit,
                    risk_reward_ratio=signal.risk_reward_ratio,
                    technical_indicators=signal.technical_indicators.model_dump(mode="json"),
                    market_conditions=signal.market_conditions.model_dump(mode="json"),
                    model_version=signal.model_version,
                    created_at=to_utc(signal.created_at),
                    expires_at=to_utc(signal.expires_at),
                    is_active=signal.is_active,
                    executed=signal.executed,
                )
                await session.execute(stmt)
        except IntegrityError as e:
            raise StorageError(f"Signal {signal.id} already stored") from e

    async def get_by_id(self, signal_id: str) -> Signal | None:
        """Get a signal by ID."""
        async with self.db.session() as session:
            stmt = select(SignalTable).where(SignalTable.id == signal_id)
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()

            if row is None:
                return None
            return self._row_to_signal(row)

    async def get_active(
        self,
        now: datetime,
        symbol: str | None = None,
        signal_type: SignalType | None = None,
        limit: int = 20,
    ) -> list[Signal]:
        """Get executable signals, highest confidence first, then newest."""
        async with self.db.session() as session:
            stmt = select(SignalTable).where(
                SignalTable.is_active.is_(True),
                SignalTable.executed.is_(False),
                SignalTable.expires_at > to_utc(now),
            )
            if symbol:
                stmt = stmt.where(SignalTable.symbol == symbol)
            if signal_type:
                stmt = stmt.where(SignalTable.signal_type == signal_type.value)
            stmt = stmt.order_by(
                SignalTable.confidence_score.desc(),
                SignalTable.created_at.desc(),
            ).limit(limit)

            result = await session.execute(stmt)
            return [self._row_to_signal(row) for row in result.scalars().all()]

    async def get_history(
        self,
        symbol: str | None = None,
        signal_type: SignalType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Signal]:
        """Get all signals regardless of state, newest first."""
        async with self.db.session() as session:
            stmt = select(SignalTable)
            if symbol:
                stmt = stmt.where(SignalTable.symbol == symbol)
            if signal_type:
                stmt = stmt.where(SignalTable.signal_type == signal_type.value)
            stmt = (
                stmt.order_by(SignalTable.created_at.desc())
                .limit(limit)
                .offset(offset)
            )

            result = await session.execute(stmt)
            return [self._row_to_signal(row) for row in result.scalars().all()]

    async def try_mark_executed(self, signal_id: str, now: datetime) -> bool:
        """Compare-and-set executed=true in a single conditional UPDATE.

        Returns:
            True when this call performed the transition, False when the
            signal is missing, already executed, inactive or expired.
        """
        now = to_utc(now)
        async with self.db.session() as session:
            stmt = (
                update(SignalTable)
                .where(
                    SignalTable.id == signal_id,
                    SignalTable.executed.is_(False),
                    SignalTable.is_active.is_(True),
                    SignalTable.expires_at > now,
                )
                .values(executed=True, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def deactivate(self, signal_id: str, now: datetime) -> bool:
        """Withdraw a signal without executing it."""
        async with self.db.session() as session:
            stmt = (
                update(SignalTable)
                .where(SignalTable.id == signal_id, SignalTable.executed.is_(False))
                .values(is_active=False, updated_at=to_utc(now))
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def get_performance(
        self, since: datetime, symbol: str | None = None
    ) -> list[dict[str, Any]]:
        """Per signal_type totals and averages for signals created since ``since``.

        Returns:
            List of dicts with signal_type, total, executed, avg_confidence,
            avg_strength, ordered by signal_type
        """
        async with self.db.session() as session:
            stmt = (
                select(
                    SignalTable.signal_type,
                    func.count().label("total"),
                    func.sum(case((SignalTable.executed.is_(True), 1), else_=0)).label(
                        "executed"
                    ),
                    func.avg(SignalTable.confidence_score).label("avg_confidence"),
                    func.avg(SignalTable.strength).label("avg_strength"),
                )
                .where(SignalTable.created_at >= to_utc(since))
                .group_by(SignalTable.signal_type)
                .order_by(SignalTable.signal_type)
            )
            if symbol:
                stmt = stmt.where(SignalTable.symbol == symbol)

            result = await session.execute(stmt)
            return [
                {
                    "signal_type": SignalType(row.signal_type),
                    "total": int(row.total),
                    "executed": int(row.executed or 0),
                    "avg_confidence": _dec(row.avg_confidence).quantize(Decimal("0.01")),
                    "avg_strength": _dec(row.avg_strength).quantize(Decimal("0.0001")),
                }
                for row in result.all()
            ]

    async def get_model_stats(self, since: datetime | None = None) -> dict[str, dict[str, Any]]:
        """Signals generated and executed per model_version.

        Returns:
            Mapping of model_version to signals_generated, signals_executed
            and avg_confidence
        """
        async with self.db.session() as session:
            stmt = select(
                SignalTable.model_version,
                func.count().label("generated"),
                func.sum(case((SignalTable.executed.is_(True), 1), else_=0)).label("executed"),
                func.avg(SignalTable.confidence_score).label("avg_confidence"),
            ).group_by(SignalTable.model_version)
            if since is not None:
                stmt = stmt.where(SignalTable.created_at >= to_utc(since))

            result = await session.execute(stmt)
            return {
                row.model_version: {
                    "signals_generated": int(row.generated),
                    "signals_executed": int(row.executed or 0),
                    "avg_confidence": _dec(row.avg_confidence).quantize(Decimal("0.01")),
                }
                for row in result.all()
            }

    def _row_to_signal(self, row: SignalTable) -> Signal:
        """Convert database row to Signal model."""
        return Signal(
            id=row.id,
            symbol=row.symbol,
            timeframe=row.timeframe,
            signal_type=SignalType(row.signal_type),
            strength=_dec(row.strength),
            confidence_score=_dec(row.confidence_score),
            entry_price=_dec(row.entry_price),
            stop_loss=_dec(row.stop_loss),
            take_profit=_dec(row.take_profit),
            risk_reward_ratio=_dec(row.risk_reward_ratio),
            technical_indicators=IndicatorSet.model_validate(row.technical_indicators or {}),
            market_conditions=MarketConditions.model_validate(row.market_conditions or {}),
            model_version=row.model_version,
            created_at=to_utc(row.created_at),
            expires_at=to_utc(row.expires_at),
            is_active=row.is_active,
            executed=row.executed,
        )
