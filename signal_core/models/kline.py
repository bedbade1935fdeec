"""Candle (OHLCV bar) data model."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict


class Candle(BaseModel):
    """One OHLCV bar for a fixed time interval."""

    model_config = ConfigDict(frozen=True)

    open_time: datetime
    close_time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal

    @classmethod
    def from_binance(cls, item: Sequence[Any]) -> "Candle":
        """Build a candle from a Binance kline array.

        Layout: [open_time_ms, open, high, low, close, volume, close_time_ms, ...]
        """
        return cls(
            open_time=datetime.fromtimestamp(item[0] / 1000, tz=timezone.utc),
            open=Decimal(str(item[1])),
            high=Decimal(str(item[2])),
            low=Decimal(str(item[3])),
            close=Decimal(str(item[4])),
            volume=Decimal(str(item[5])),
            close_time=datetime.fromtimestamp(item[6] / 1000, tz=timezone.utc),
        )
