"""CLI entry point for the signal pipeline.

Usage:
    python -m signal_app init-db
    python -m signal_app generate BTCUSDT ETHUSDT --timeframe 1h
    python -m signal_app active --symbol BTCUSDT
    python -m signal_app history --limit 20
    python -m signal_app stats --days 30
    python -m signal_app models --days 30
    python -m signal_app execute <signal-id> --account main
    python -m signal_app order BTCUSDT BUY 0.001 --type LIMIT --price 60000
    python -m signal_app cancel BTCUSDT 123456
    python -m signal_app orders --symbol BTCUSDT --all
    python -m signal_app sync BTCUSDT 123456
    python -m signal_app trades --orphans
    python -m signal_app trade-stats --symbol BTCUSDT --days 7
    python -m signal_app positions --account main
    python -m signal_app balance --account main
"""

import argparse
import asyncio
import logging
import sys
from decimal import Decimal, InvalidOperation

from signal_app.main import Application, create_application
from signal_core.errors import AlreadyExecuted, SignalEngineError, SignalExpired
from signal_core.models import (
    OrderResult,
    OrderSide,
    OrderSpec,
    OrderType,
    Signal,
    SignalType,
    Trade,
)


def parse_decimal(value: str) -> Decimal:
    """Parse a decimal CLI argument."""
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"Invalid number: {value}")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m signal_app",
        description="Technical signal generation and execution",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables")

    p = sub.add_parser("generate", help="Generate signals for symbols")
    p.add_argument("symbols", nargs="+")
    p.add_argument("--timeframe", "-t", default=None, help="Kline interval (default: settings)")
    p.add_argument("--model", default=None, help="Model name (default: best active)")

    p = sub.add_parser("active", help="List active signals")
    p.add_argument("--symbol", default=None)
    p.add_argument("--type", dest="signal_type", choices=["BUY", "SELL"], default=None)
    p.add_argument("--limit", type=int, default=20)

    p = sub.add_parser("history", help="List stored signals, newest first")
    p.add_argument("--symbol", default=None)
    p.add_argument("--type", dest="signal_type", choices=["BUY", "SELL"], default=None)
    p.add_argument("--limit", type=int, default=50)
    p.add_argument("--offset", type=int, default=0)

    p = sub.add_parser("stats", help="Signal performance by type")
    p.add_argument("--symbol", default=None)
    p.add_argument("--days", type=int, default=30)

    p = sub.add_parser("models", help="Signal counts per active model")
    p.add_argument("--days", type=int, default=None, help="Look-back window (default: all time)")

    p = sub.add_parser("execute", help="Execute a stored signal")
    p.add_argument("signal_id")
    p.add_argument("--quantity", type=parse_decimal, default=None)
    p.add_argument("--account", default=None)

    p = sub.add_parser("order", help="Place a manual order")
    p.add_argument("symbol")
    p.add_argument("side", choices=[s.value for s in OrderSide])
    p.add_argument("quantity", type=parse_decimal)
    p.add_argument("--type", dest="order_type", choices=[t.value for t in OrderType], default="MARKET")
    p.add_argument("--price", type=parse_decimal, default=None)
    p.add_argument("--stop-price", type=parse_decimal, default=None)
    p.add_argument("--reduce-only", action="store_true")
    p.add_argument("--account", default=None)

    p = sub.add_parser("cancel", help="Cancel an open order")
    p.add_argument("symbol")
    p.add_argument("order_id")
    p.add_argument("--account", default=None)

    p = sub.add_parser("orders", help="List venue orders (open by default)")
    p.add_argument("--symbol", default=None)
    p.add_argument("--all", dest="all_orders", action="store_true", help="Full order history (needs --symbol)")
    p.add_argument("--limit", type=int, default=50)
    p.add_argument("--account", default=None)

    p = sub.add_parser("sync", help="Refresh a recorded order from the venue")
    p.add_argument("symbol")
    p.add_argument("order_id")
    p.add_argument("--account", default=None)

    p = sub.add_parser("trades", help="List recorded trades")
    p.add_argument("--symbol", default=None)
    p.add_argument("--limit", type=int, default=50)
    p.add_argument("--orphans", action="store_true", help="Only trades awaiting reconciliation")

    p = sub.add_parser("trade-stats", help="Recorded trade totals and breakdowns")
    p.add_argument("--symbol", default=None)
    p.add_argument("--days", type=int, default=30)

    p = sub.add_parser("positions", help="Show open positions")
    p.add_argument("--account", default=None)

    p = sub.add_parser("balance", help="Show futures balances")
    p.add_argument("--account", default=None)

    return parser.parse_args(argv)


def print_signals(signals: list[Signal]) -> None:
    if not signals:
        print("No signals found.")
        return

    print(
        f"\n{'ID':<34} {'Symbol':<10} {'TF':<4} {'Type':<5} {'Conf':>6} "
        f"{'Entry':>12} {'Stop':>12} {'Target':>12} {'Expires':<17} {'Exec':<4}"
    )
    print("-" * 124)
    for s in signals:
        print(
            f"{s.id:<34} {s.symbol:<10} {s.timeframe:<4} {s.signal_type.value:<5} "
            f"{float(s.confidence_score):>6.1f} {_fmt(s.entry_price):>12} "
            f"{_fmt(s.stop_loss):>12} {_fmt(s.take_profit):>12} "
            f"{s.expires_at:%Y-%m-%d %H:%M}  {'yes' if s.executed else 'no':<4}"
        )
    print()


def print_trades(trades: list[Trade]) -> None:
    if not trades:
        print("No trades found.")
        return

    print(
        f"\n{'ID':>5} {'Order':<14} {'Symbol':<10} {'Side':<4} {'Type':<12} "
        f"{'Qty':>10} {'Price':>12} {'Status':<16} {'Signal'}"
    )
    print("-" * 110)
    for t in trades:
        link = t.signal_id or (f"orphan:{t.orphan_signal_id}" if t.is_orphan else "-")
        print(
            f"{t.id or 0:>5} {t.order_id:<14} {t.symbol:<10} {t.side.value:<4} "
            f"{t.order_type.value:<12} {_fmt(t.executed_quantity):>10} "
            f"{_fmt(t.executed_price):>12} {t.status.value:<16} {link}"
        )
    print()


def print_orders(orders: list[OrderResult]) -> None:
    if not orders:
        print("No orders found.")
        return

    print(
        f"\n{'Order':<14} {'Symbol':<10} {'Side':<4} {'Type':<22} "
        f"{'Qty':>10} {'Filled':>10} {'Price':>12} {'Status'}"
    )
    print("-" * 100)
    for o in orders:
        print(
            f"{o.order_id:<14} {o.symbol:<10} {o.side.value:<4} {o.venue_type or '-':<22} "
            f"{_fmt(o.orig_qty):>10} {_fmt(o.executed_qty):>10} {_fmt(o.avg_price):>12} "
            f"{o.status.value}"
        )
    print()


def _fmt(value: Decimal | None) -> str:
    return "-" if value is None else f"{value:.4f}"


async def run_command(args: argparse.Namespace, app: Application) -> int:
    """Dispatch one CLI command. Returns the process exit code."""
    cmd = args.command

    if cmd == "init-db":
        await app.db.create_tables()
        print("Database initialized: tables signals, trades")

    elif cmd == "generate":
        timeframe = args.timeframe or app.settings.default_timeframe
        signals = await app.signal_service.generate_many(args.symbols, timeframe, args.model)
        for symbol in args.symbols:
            s = signals.get(symbol)
            if s is None:
                print(f"{symbol}: failed (see log)")
                continue
            stored = "stored" if s.is_directional else "not stored"
            print(
                f"{symbol} {timeframe}: {s.signal_type.value} "
                f"confidence={s.confidence_score} strength={s.strength} ({stored})"
            )
        if len(signals) < len(args.symbols):
            return 1

    elif cmd == "active":
        signal_type = SignalType(args.signal_type) if args.signal_type else None
        print_signals(await app.lifecycle.list_active(args.symbol, signal_type, args.limit))

    elif cmd == "history":
        signal_type = SignalType(args.signal_type) if args.signal_type else None
        print_signals(
            await app.lifecycle.list_history(args.symbol, signal_type, args.limit, args.offset)
        )

    elif cmd == "stats":
        rows = await app.lifecycle.performance_stats(args.symbol, args.days)
        if not rows:
            print("No signals in range.")
        for r in rows:
            print(
                f"{r['signal_type'].value:<5} total={r['total']:<5} executed={r['executed']:<5} "
                f"avg_confidence={r['avg_confidence']} avg_strength={r['avg_strength']}"
            )

    elif cmd == "models":
        for m in await app.lifecycle.model_stats(app.registry, args.days):
            print(
                f"{m['name']:<16} v{m['version']:<8} accuracy={m['accuracy']} "
                f"generated={m['signals_generated']} executed={m['signals_executed']} "
                f"avg_confidence={m['avg_confidence']}"
            )

    elif cmd == "execute":
        try:
            trade = await app.executor.execute(args.signal_id, args.quantity, args.account)
        except (AlreadyExecuted, SignalExpired) as e:
            print(f"Error: {e}")
            if e.trade is not None:
                print(f"Order reached the venue; orphan trade {e.trade.id} recorded")
            return 1
        print_trades([trade])

    elif cmd == "order":
        spec = OrderSpec(
            symbol=args.symbol,
            side=OrderSide(args.side),
            type=OrderType(args.order_type),
            quantity=args.quantity,
            price=args.price,
            stop_price=args.stop_price,
            reduce_only=args.reduce_only,
        )
        print_trades([await app.order_service.place_order(spec, args.account)])

    elif cmd == "cancel":
        result = await app.order_service.cancel_order(args.symbol, args.order_id, args.account)
        print(f"Order {result.order_id}: {result.status.value}")

    elif cmd == "orders":
        if args.all_orders:
            if not args.symbol:
                print("Error: --all needs --symbol")
                return 1
            orders = await app.order_service.order_history(args.symbol, args.limit, args.account)
        else:
            orders = await app.order_service.get_open_orders(args.symbol, args.account)
        print_orders(orders)

    elif cmd == "sync":
        result = await app.order_service.sync_order(args.symbol, args.order_id, args.account)
        print_orders([result])

    elif cmd == "trades":
        if args.orphans:
            print_trades(await app.lifecycle.list_orphan_trades(args.limit))
        else:
            print_trades(await app.order_service.trade_history(args.symbol, args.limit))

    elif cmd == "trade-stats":
        stats = await app.order_service.trade_stats(args.symbol, args.days)
        print(
            f"trades={stats['total_trades']} filled={stats['filled_trades']} "
            f"canceled={stats['canceled_trades']} volume={stats['total_volume']} "
            f"fees={stats['total_fees']} avg_quantity={stats['avg_quantity']}"
        )
        for s in stats["by_symbol"]:
            print(f"  {s['symbol']:<10} trades={s['trade_count']} volume={s['volume']} fees={s['fees']}")
        for s in stats["by_side"]:
            print(f"  {s['side'].value:<10} trades={s['count']} volume={s['volume']}")

    elif cmd == "positions":
        positions = await app.order_service.get_positions(args.account)
        if not positions:
            print("No open positions.")
        for p in positions:
            print(
                f"{p['symbol']:<10} amt={p.get('positionAmt')} entry={p.get('entryPrice')} "
                f"upnl={p.get('unRealizedProfit')} lev={p.get('leverage')}"
            )

    elif cmd == "balance":
        for b in await app.order_service.get_balance(args.account):
            if float(b.get("balance", 0)) != 0:
                print(f"{b['asset']:<6} balance={b['balance']} available={b.get('availableBalance')}")

    return 0


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    for name in ("sqlalchemy", "httpx", "httpcore", "asyncio"):
        logging.getLogger(name).setLevel(logging.WARNING)

    app = create_application()
    try:
        return await run_command(args, app)
    except SignalEngineError as e:
        print(f"Error: {e}")
        return 1
    finally:
        await app.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
