"""Tests for signal storage and the executed transition (SQLite-backed)."""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from signal_core.errors import AlreadyExecuted, SignalExpired, SignalNotFound
from signal_core.models import (
    ModelDescriptor,
    OrderResult,
    OrderSide,
    OrderStatus,
    OrderType,
    SignalType,
    Trade,
)
from signal_core.strategy import ModelRegistry
from tests.factories import T0, make_signal


def make_trade(signal_id=None, order_id="1001", **overrides) -> Trade:
    fields = dict(
        order_id=order_id,
        signal_id=signal_id,
        symbol="BTCUSDT",
        side=OrderSide.BUY,
        requested_quantity=Decimal("0.001"),
        executed_quantity=Decimal("0.001"),
        executed_price=Decimal("64000"),
        status=OrderStatus.FILLED,
        created_at=T0,
        executed_at=T0,
    )
    fields.update(overrides)
    return Trade(**fields)


class TestStore:
    @pytest.mark.asyncio
    async def test_round_trip(self, lifecycle):
        signal = make_signal()
        await lifecycle.store(signal)

        loaded = await lifecycle.get_by_id(signal.id)
        assert loaded.id == signal.id
        assert loaded.signal_type == SignalType.BUY
        assert loaded.entry_price == Decimal("105")
        assert loaded.risk_reward_ratio == Decimal("1.5")
        assert loaded.created_at == T0
        assert loaded.expires_at == signal.expires_at
        assert loaded.technical_indicators == signal.technical_indicators
        assert not loaded.executed

    @pytest.mark.asyncio
    async def test_hold_not_stored(self, lifecycle):
        hold = make_signal(
            signal_type=SignalType.HOLD,
            entry_price=None,
            stop_loss=None,
            take_profit=None,
            risk_reward_ratio=None,
        )
        assert await lifecycle.store(hold) is None
        assert await lifecycle.get_by_id(hold.id) is None

    @pytest.mark.asyncio
    async def test_unknown_id(self, lifecycle):
        assert await lifecycle.get_by_id("nope") is None


class TestListActive:
    @pytest.mark.asyncio
    async def test_order_and_filters(self, lifecycle, clock):
        low = make_signal(confidence="55", created_at=T0 - timedelta(minutes=30))
        high = make_signal(confidence="80", created_at=T0 - timedelta(minutes=20))
        newer_tie = make_signal(confidence="80", created_at=T0 - timedelta(minutes=10))
        eth = make_signal(symbol="ETHUSDT", signal_type=SignalType.SELL, confidence="90")
        for s in (low, high, newer_tie, eth):
            await lifecycle.store(s)

        active = await lifecycle.list_active()
        assert [s.id for s in active] == [eth.id, newer_tie.id, high.id, low.id]

        btc = await lifecycle.list_active(symbol="BTCUSDT", limit=2)
        assert [s.id for s in btc] == [newer_tie.id, high.id]

        sells = await lifecycle.list_active(signal_type=SignalType.SELL)
        assert [s.id for s in sells] == [eth.id]

    @pytest.mark.asyncio
    async def test_expired_excluded_at_read_time(self, lifecycle, clock):
        old = make_signal(created_at=T0 - timedelta(hours=4))
        fresh = make_signal(created_at=T0 - timedelta(hours=3, minutes=59))
        await lifecycle.store(old)
        await lifecycle.store(fresh)

        assert [s.id for s in await lifecycle.list_active()] == [fresh.id]
        clock.advance(minutes=1)
        assert await lifecycle.list_active() == []

    @pytest.mark.asyncio
    async def test_executed_and_inactive_excluded(self, lifecycle):
        executed = make_signal(symbol="BTCUSDT")
        withdrawn = make_signal(symbol="ETHUSDT")
        await lifecycle.store(executed)
        await lifecycle.store(withdrawn)

        await lifecycle.mark_executed(executed.id)
        await lifecycle.deactivate(withdrawn.id)

        assert await lifecycle.list_active() == []
        assert len(await lifecycle.list_history()) == 2


class TestMarkExecuted:
    @pytest.mark.asyncio
    async def test_transition(self, lifecycle):
        signal = make_signal()
        await lifecycle.store(signal)

        await lifecycle.mark_executed(signal.id)

        loaded = await lifecycle.get_by_id(signal.id)
        assert loaded.executed

    @pytest.mark.asyncio
    async def test_second_call_already_executed(self, lifecycle):
        signal = make_signal()
        await lifecycle.store(signal)
        await lifecycle.mark_executed(signal.id)

        with pytest.raises(AlreadyExecuted):
            await lifecycle.mark_executed(signal.id)

    @pytest.mark.asyncio
    async def test_expired(self, lifecycle, clock):
        signal = make_signal()
        await lifecycle.store(signal)
        clock.advance(hours=4)

        with pytest.raises(SignalExpired):
            await lifecycle.mark_executed(signal.id)
        assert not (await lifecycle.get_by_id(signal.id)).executed

    @pytest.mark.asyncio
    async def test_deactivated_behaves_as_expired(self, lifecycle):
        signal = make_signal()
        await lifecycle.store(signal)
        await lifecycle.deactivate(signal.id)

        with pytest.raises(SignalExpired):
            await lifecycle.mark_executed(signal.id)

    @pytest.mark.asyncio
    async def test_not_found(self, lifecycle):
        with pytest.raises(SignalNotFound):
            await lifecycle.mark_executed("missing")

    @pytest.mark.asyncio
    async def test_concurrent_calls_exactly_one_wins(self, lifecycle):
        signal = make_signal()
        await lifecycle.store(signal)

        results = await asyncio.gather(
            *(lifecycle.mark_executed(signal.id) for _ in range(100)),
            return_exceptions=True,
        )

        successes = [r for r in results if r is None]
        already = [r for r in results if isinstance(r, AlreadyExecuted)]
        assert len(successes) == 1
        assert len(already) == 99


class TestRequireExecutable:
    @pytest.mark.asyncio
    async def test_guards(self, lifecycle, clock):
        signal = make_signal()
        await lifecycle.store(signal)
        assert (await lifecycle.require_executable(signal.id)).id == signal.id

        with pytest.raises(SignalNotFound):
            await lifecycle.require_executable("missing")

        clock.advance(hours=5)
        with pytest.raises(SignalExpired):
            await lifecycle.require_executable(signal.id)


class TestTrades:
    @pytest.mark.asyncio
    async def test_one_linked_trade_per_signal(self, lifecycle):
        signal = make_signal()
        await lifecycle.store(signal)

        first = await lifecycle.record_execution_trade(make_trade(signal.id, "1"))
        assert first.id is not None

        with pytest.raises(AlreadyExecuted):
            await lifecycle.record_execution_trade(make_trade(signal.id, "2"))

        linked = await lifecycle.trade_repo.get_by_signal(signal.id)
        assert linked.order_id == "1"

    @pytest.mark.asyncio
    async def test_manual_trades_do_not_collide(self, trade_repo):
        await trade_repo.save(make_trade(None, "1"))
        await trade_repo.save(make_trade(None, "2"))
        assert len(await trade_repo.get_recent()) == 2

    @pytest.mark.asyncio
    async def test_orphan_paths(self, lifecycle):
        signal = make_signal()
        await lifecycle.store(signal)

        recorded = await lifecycle.record_orphan_trade(make_trade(signal.id, "7"), signal.id)
        assert recorded.signal_id is None
        assert recorded.orphan_signal_id == signal.id

        linked = await lifecycle.record_execution_trade(make_trade(signal.id, "8"))
        detached = await lifecycle.orphan_trade(linked)
        assert detached.signal_id is None
        assert detached.orphan_signal_id == signal.id
        assert await lifecycle.trade_repo.get_by_signal(signal.id) is None

        orphans = await lifecycle.list_orphan_trades()
        assert {t.order_id for t in orphans} == {"7", "8"}

    @pytest.mark.asyncio
    async def test_update_status_and_history(self, trade_repo):
        await trade_repo.save(make_trade(None, "1", status=OrderStatus.NEW, executed_at=None))
        await trade_repo.save(
            make_trade(None, "2", symbol="ETHUSDT", created_at=T0 + timedelta(minutes=1))
        )

        assert await trade_repo.update_status("1", OrderStatus.CANCELED)
        assert not await trade_repo.update_status("999", OrderStatus.CANCELED)

        recent = await trade_repo.get_recent()
        assert [t.order_id for t in recent] == ["2", "1"]
        assert recent[1].status == OrderStatus.CANCELED
        assert [t.order_id for t in await trade_repo.get_recent(symbol="ETHUSDT")] == ["2"]


class TestHistoryAndStats:
    @pytest.mark.asyncio
    async def test_history_newest_first_with_paging(self, lifecycle):
        signals = [make_signal(created_at=T0 - timedelta(minutes=m)) for m in (30, 20, 10)]
        for s in signals:
            await lifecycle.store(s)

        history = await lifecycle.list_history()
        assert [s.id for s in history] == [s.id for s in reversed(signals)]

        page = await lifecycle.list_history(limit=1, offset=1)
        assert [s.id for s in page] == [signals[1].id]

    @pytest.mark.asyncio
    async def test_performance_by_type(self, lifecycle):
        buy_a = make_signal(confidence="70", created_at=T0 - timedelta(minutes=1))
        buy_b = make_signal(confidence="80", created_at=T0 - timedelta(minutes=2))
        sell = make_signal(signal_type=SignalType.SELL, confidence="60")
        stale = make_signal(confidence="10", created_at=T0 - timedelta(days=40))
        for s in (buy_a, buy_b, sell, stale):
            await lifecycle.store(s)
        await lifecycle.mark_executed(buy_a.id)

        stats = {row["signal_type"]: row for row in await lifecycle.performance_stats(days=30)}

        assert stats[SignalType.BUY]["total"] == 2
        assert stats[SignalType.BUY]["executed"] == 1
        assert stats[SignalType.BUY]["avg_confidence"] == Decimal("75")
        assert stats[SignalType.SELL]["total"] == 1
        assert stats[SignalType.SELL]["avg_strength"] == Decimal("0.75")

    @pytest.mark.asyncio
    async def test_model_stats_joined_to_registry(self, lifecycle):
        registry = ModelRegistry(
            [
                ModelDescriptor(name="baseline", version="1.0.0", accuracy=0.55),
                ModelDescriptor(name="tuned", version="2.0.0", accuracy=0.61),
                ModelDescriptor(name="idle", version="3.0.0", accuracy=0.40),
                ModelDescriptor(name="retired", version="0.9.0", is_active=False),
            ]
        )
        base_a = make_signal(confidence="70", created_at=T0 - timedelta(minutes=1))
        base_b = make_signal(confidence="80", created_at=T0 - timedelta(minutes=2))
        tuned = make_signal(confidence="60", model_version="2.0.0")
        tuned_stale = make_signal(
            confidence="10", model_version="2.0.0", created_at=T0 - timedelta(days=40)
        )
        old = make_signal(model_version="0.9.0")
        for s in (base_a, base_b, tuned, tuned_stale, old):
            await lifecycle.store(s)
        await lifecycle.mark_executed(base_a.id)

        rows = await lifecycle.model_stats(registry, days=30)

        assert [r["name"] for r in rows] == ["tuned", "baseline", "idle"]
        tuned_row, base_row, idle_row = rows
        assert tuned_row["version"] == "2.0.0"
        assert tuned_row["accuracy"] == 0.61
        assert tuned_row["signals_generated"] == 1
        assert tuned_row["avg_confidence"] == Decimal("60")
        assert base_row["signals_generated"] == 2
        assert base_row["signals_executed"] == 1
        assert base_row["avg_confidence"] == Decimal("75")
        assert idle_row["signals_generated"] == 0
        assert idle_row["signals_executed"] == 0
        assert idle_row["avg_confidence"] is None

        all_time = {r["name"]: r for r in await lifecycle.model_stats(registry)}
        assert all_time["tuned"]["signals_generated"] == 2
        assert all_time["tuned"]["avg_confidence"] == Decimal("35")


def venue_state(order_id: str, status: OrderStatus, qty: str, price: str) -> OrderResult:
    return OrderResult(
        order_id=order_id,
        symbol="BTCUSDT",
        side=OrderSide.BUY,
        type=OrderType.LIMIT,
        venue_type="LIMIT",
        status=status,
        orig_qty=Decimal("0.5"),
        executed_qty=Decimal(qty),
        avg_price=Decimal(price),
    )


class TestTradeAnalytics:
    @pytest.mark.asyncio
    async def test_record_fill(self, trade_repo):
        await trade_repo.save(
            make_trade(
                None,
                "1",
                order_type=OrderType.LIMIT,
                requested_quantity=Decimal("0.5"),
                executed_quantity=Decimal("0"),
                executed_price=Decimal("0"),
                status=OrderStatus.NEW,
                executed_at=None,
            )
        )

        partial = venue_state("1", OrderStatus.PARTIALLY_FILLED, "0.25", "64000")
        assert await trade_repo.record_fill(partial, T0)
        trade = (await trade_repo.get_recent())[0]
        assert trade.status == OrderStatus.PARTIALLY_FILLED
        assert trade.executed_quantity == Decimal("0.25")
        assert trade.executed_at is None

        done = venue_state("1", OrderStatus.FILLED, "0.5", "64010")
        assert await trade_repo.record_fill(done, T0 + timedelta(minutes=1))
        assert await trade_repo.record_fill(done, T0 + timedelta(minutes=5))
        trade = (await trade_repo.get_recent())[0]
        assert trade.status == OrderStatus.FILLED
        assert trade.executed_quantity == Decimal("0.5")
        assert trade.executed_price == Decimal("64010")
        assert trade.executed_at == T0 + timedelta(minutes=1)

        assert not await trade_repo.record_fill(venue_state("999", OrderStatus.FILLED, "1", "1"), T0)

    @pytest.mark.asyncio
    async def test_stats(self, trade_repo):
        await trade_repo.save(
            make_trade(None, "1", executed_quantity=Decimal("0.5"), commission=Decimal("1.5"))
        )
        await trade_repo.save(
            make_trade(
                None,
                "2",
                side=OrderSide.SELL,
                executed_quantity=Decimal("0.25"),
                commission=Decimal("0.25"),
            )
        )
        await trade_repo.save(
            make_trade(
                None,
                "3",
                symbol="ETHUSDT",
                executed_quantity=Decimal("2"),
                executed_price=Decimal("3000"),
                commission=Decimal("0.5"),
            )
        )
        await trade_repo.save(
            make_trade(
                None,
                "4",
                executed_quantity=Decimal("0"),
                executed_price=Decimal("0"),
                status=OrderStatus.CANCELED,
                executed_at=None,
            )
        )
        await trade_repo.save(
            make_trade(None, "5", commission=Decimal("9"), created_at=T0 - timedelta(days=40))
        )

        stats = await trade_repo.get_stats(T0 - timedelta(days=30))

        assert stats["total_trades"] == 4
        assert stats["filled_trades"] == 3
        assert stats["canceled_trades"] == 1
        assert stats["total_fees"] == Decimal("2.25")
        assert stats["avg_quantity"] == Decimal("0.6875")
        assert stats["total_volume"] == Decimal("54000")
        assert stats["by_symbol"] == [
            {"symbol": "BTCUSDT", "trade_count": 2, "volume": Decimal("48000"), "fees": Decimal("1.75")},
            {"symbol": "ETHUSDT", "trade_count": 1, "volume": Decimal("6000"), "fees": Decimal("0.5")},
        ]
        assert stats["by_side"] == [
            {"side": OrderSide.BUY, "count": 2, "volume": Decimal("38000")},
            {"side": OrderSide.SELL, "count": 1, "volume": Decimal("16000")},
        ]

        btc = await trade_repo.get_stats(T0 - timedelta(days=30), symbol="BTCUSDT")
        assert btc["total_trades"] == 3
        assert [s["symbol"] for s in btc["by_symbol"]] == ["BTCUSDT"]

    @pytest.mark.asyncio
    async def test_stats_empty(self, trade_repo):
        stats = await trade_repo.get_stats(T0)

        assert stats["total_trades"] == 0
        assert stats["filled_trades"] == 0
        assert stats["total_volume"] == Decimal("0")
        assert stats["by_symbol"] == []
        assert stats["by_side"] == []
