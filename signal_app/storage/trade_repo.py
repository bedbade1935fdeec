"""Trade repository."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import case, func, literal, select, update
from sqlalchemy.exc import IntegrityError

from signal_app.storage.database import Database, TradeTable, get_database, to_utc
from signal_core.errors import AlreadyExecuted, StorageError
from signal_core.models import OrderResult, OrderSide, OrderStatus, OrderType, Trade

logger = logging.getLogger(__name__)

_Q8 = Decimal("0.00000001")


def _sum(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(_Q8)


class TradeRepository:
    """Repository for recorded venue orders."""

    def __init__(self, db: Database | None = None):
        self._db = db

    @property
    def db(self) -> Database:
        return self._db or get_database()

    async def save(self, trade: Trade) -> Trade:
        """Insert a trade and return it with its database id.

        Raises:
            AlreadyExecuted: Another trade is already linked to trade.signal_id.
            StorageError: Any other persistence failure.
        """
        try:
            async with self.db.session() as session:
                row = TradeTable(
                    order_id=trade.order_id,
                    signal_id=trade.signal_id,
                    orphan_signal_id=trade.orphan_signal_id,
                    symbol=trade.symbol,
                    side=trade.side.value,
                    order_type=trade.order_type.value,
                    requested_quantity=trade.requested_quantity,
                    executed_quantity=trade.executed_quantity,
                    executed_price=trade.executed_price,
                    status=trade.status.value,
                    commission=trade.commission,
                    commission_asset=trade.commission_asset,
                    is_automated=trade.is_automated,
                    is_testnet=trade.is_testnet,
                    created_at=to_utc(trade.created_at),
                    executed_at=to_utc(trade.executed_at),
                )
                session.add(row)
                await session.flush()
                trade_id = row.id
        except IntegrityError as e:
            if trade.signal_id is not None:
                logger.warning(
                    f"Trade for order {trade.order_id} collides on signal {trade.signal_id}"
                )
                raise AlreadyExecuted(trade.signal_id) from e
            raise StorageError(f"Failed to store trade for order {trade.order_id}: {e}") from e

        return trade.model_copy(update={"id": trade_id})

    async def detach_signal(self, trade_id: int) -> Trade:
        """Move a trade's signal link into orphan_signal_id."""
        async with self.db.session() as session:
            stmt = (
                update(TradeTable)
                .where(TradeTable.id == trade_id)
                .values(orphan_signal_id=TradeTable.signal_id, signal_id=None)
                .execution_options(synchronize_session=False)
            )
            await session.execute(stmt)

            result = await session.execute(select(TradeTable).where(TradeTable.id == trade_id))
            row = result.scalar_one_or_none()
            if row is None:
                raise StorageError(f"Trade {trade_id} not found")
            return self._row_to_trade(row)

    async def get_by_signal(self, signal_id: str) -> Trade | None:
        """Get the trade linked to a signal."""
        async with self.db.session() as session:
            stmt = select(TradeTable).where(TradeTable.signal_id == signal_id)
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()
            return self._row_to_trade(row) if row else None

    async def get_orphans(self, limit: int = 50) -> list[Trade]:
        """Trades awaiting manual reconciliation, newest first."""
        async with self.db.session() as session:
            stmt = (
                select(TradeTable)
                .where(TradeTable.orphan_signal_id.is_not(None))
                .order_by(TradeTable.created_at.desc(), TradeTable.id.desc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [self._row_to_trade(row) for row in result.scalars().all()]

    async def update_status(self, order_id: str, status: OrderStatus) -> bool:
        """Update the status of a recorded order."""
        async with self.db.session() as session:
            stmt = (
                update(TradeTable)
                .where(TradeTable.order_id == order_id)
                .values(status=status.value)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            return result.rowcount > 0

    async def record_fill(self, result: OrderResult, now: datetime) -> bool:
        """Copy the venue's status and fills onto the recorded order.

        executed_at is set once, the first time the order is seen FILLED.
        """
        values: dict[str, Any] = {
            "status": result.status.value,
            "executed_quantity": result.executed_qty,
            "executed_price": result.avg_price,
        }
        if result.status == OrderStatus.FILLED:
            values["executed_at"] = func.coalesce(
                TradeTable.executed_at, literal(to_utc(now), TradeTable.executed_at.type)
            )
        async with self.db.session() as session:
            stmt = (
                update(TradeTable)
                .where(TradeTable.order_id == result.order_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            updated = await session.execute(stmt)
            return updated.rowcount > 0

    async def get_stats(self, since: datetime, symbol: str | None = None) -> dict[str, Any]:
        """Trade totals since ``since`` with FILLED breakdowns by symbol and side.

        Returns:
            Dict with total_trades, filled_trades, canceled_trades, total_fees,
            avg_quantity, total_volume, by_symbol (top 10 by count) and by_side
        """
        volume = TradeTable.executed_quantity * TradeTable.executed_price
        filters = [TradeTable.created_at >= to_utc(since)]
        if symbol:
            filters.append(TradeTable.symbol == symbol)
        filled = [*filters, TradeTable.status == OrderStatus.FILLED.value]

        async with self.db.session() as session:
            totals = (
                await session.execute(
                    select(
                        func.count().label("total"),
                        func.sum(
                            case((TradeTable.status == OrderStatus.FILLED.value, 1), else_=0)
                        ).label("filled"),
                        func.sum(
                            case((TradeTable.status == OrderStatus.CANCELED.value, 1), else_=0)
                        ).label("canceled"),
                        func.sum(TradeTable.commission).label("fees"),
                        func.avg(TradeTable.executed_quantity).label("avg_quantity"),
                        func.sum(volume).label("volume"),
                    ).where(*filters)
                )
            ).one()

            by_symbol = await session.execute(
                select(
                    TradeTable.symbol,
                    func.count().label("trade_count"),
                    func.sum(volume).label("volume"),
                    func.sum(TradeTable.commission).label("fees"),
                )
                .where(*filled)
                .group_by(TradeTable.symbol)
                .order_by(func.count().desc(), TradeTable.symbol)
                .limit(10)
            )
            by_side = await session.execute(
                select(
                    TradeTable.side,
                    func.count().label("side_count"),
                    func.sum(volume).label("volume"),
                )
                .where(*filled)
                .group_by(TradeTable.side)
                .order_by(TradeTable.side)
            )

            return {
                "total_trades": int(totals.total),
                "filled_trades": int(totals.filled or 0),
                "canceled_trades": int(totals.canceled or 0),
                "total_fees": _sum(totals.fees),
                "avg_quantity": _sum(totals.avg_quantity),
                "total_volume": _sum(totals.volume),
                "by_symbol": [
                    {
                        "symbol": row.symbol,
                        "trade_count": int(row.trade_count),
                        "volume": _sum(row.volume),
                        "fees": _sum(row.fees),
                    }
                    for row in by_symbol.all()
                ],
                "by_side": [
                    {
                        "side": OrderSide(row.side),
                        "count": int(row.side_count),
                        "volume": _sum(row.volume),
                    }
                    for row in by_side.all()
                ],
            }

    async def get_recent(
        self, symbol: str | None = None, limit: int = 50, offset: int = 0
    ) -> list[Trade]:
        """Get recorded trades, newest first."""
        async with self.db.session() as session:
            stmt = select(TradeTable)
            if symbol:
                stmt = stmt.where(TradeTable.symbol == symbol)
            stmt = (
                stmt.order_by(TradeTable.created_at.desc(), TradeTable.id.desc())
                .limit(limit)
                .offset(offset)
            )
            result = await session.execute(stmt)
            return [self._row_to_trade(row) for row in result.scalars().all()]

    def _row_to_trade(self, row: TradeTable) -> Trade:
        """Convert database row to Trade model."""
        return Trade(
            id=row.id,
            order_id=row.order_id,
            signal_id=row.signal_id,
            orphan_signal_id=row.orphan_signal_id,
            symbol=row.symbol,
            side=OrderSide(row.side),
            order_type=OrderType(row.order_type),
            requested_quantity=Decimal(str(row.requested_quantity)),
            executed_quantity=Decimal(str(row.executed_quantity or 0)),
            executed_price=Decimal(str(row.executed_price or 0)),
            status=OrderStatus(row.status),
            commission=Decimal(str(row.commission or 0)),
            commission_asset=row.commission_asset,
            is_automated=row.is_automated,
            is_testnet=row.is_testnet,
            created_at=to_utc(row.created_at),
            executed_at=to_utc(row.executed_at),
        )
