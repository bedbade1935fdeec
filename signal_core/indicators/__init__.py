"""Technical indicators (pure math, no I/O)."""

from signal_core.indicators.indicators import (
    MIN_CANDLES,
    atr,
    bollinger_bands,
    compute,
    ema,
    macd,
    rsi,
    sma,
    stochastic,
    true_range,
)

__all__ = [
    "MIN_CANDLES",
    "atr",
    "bollinger_bands",
    "compute",
    "ema",
    "macd",
    "rsi",
    "sma",
    "stochastic",
    "true_range",
]
