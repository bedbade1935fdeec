"""Storage layer."""

from signal_app.storage.database import (
    Base,
    Database,
    SignalTable,
    TradeTable,
    get_database,
    init_database,
)
from signal_app.storage.signal_repo import SignalRepository
from signal_app.storage.trade_repo import TradeRepository

__all__ = [
    "Base",
    "Database",
    "SignalTable",
    "TradeTable",
    "get_database",
    "init_database",
    "SignalRepository",
    "TradeRepository",
]
