"""Technical indicators for signal synthesis (pure math, no I/O).

Series functions return one value per input bar (NaN until the lookback
is satisfied), computed with NumPy and surfaced as Decimal. ``compute``
snapshots the latest bar of every series into an IndicatorSet.
"""

from decimal import Decimal
from typing import Sequence

import numpy as np

from signal_core.models import Candle, IndicatorSet

# Minimum run length for a populated indicator set (longest lookback: SMA 50)
MIN_CANDLES = 50

SMA_FAST_PERIOD = 20
SMA_SLOW_PERIOD = 50
EMA_FAST_PERIOD = 12
EMA_SLOW_PERIOD = 26
MACD_SIGNAL_PERIOD = 9
RSI_PERIOD = 14
BOLLINGER_PERIOD = 20
BOLLINGER_K = 2.0
STOCHASTIC_K_PERIOD = 14
STOCHASTIC_D_PERIOD = 3
ATR_PERIOD = 14


# =============================================================================
# NumPy kernels
# =============================================================================

def _to_array(values: Sequence[Decimal | float]) -> np.ndarray:
    return np.array([float(v) for v in values], dtype=np.float64)


def _to_decimals(arr: np.ndarray) -> list[Decimal]:
    return [Decimal(str(float(v))) if not np.isnan(v) else Decimal("NaN") for v in arr]


def _sma_array(arr: np.ndarray, period: int) -> np.ndarray:
    result = np.full(len(arr), np.nan)
    if len(arr) < period:
        return result

    for i in range(period - 1, len(arr)):
        result[i] = np.mean(arr[i - period + 1 : i + 1])

    return result


def _ema_array(arr: np.ndarray, period: int) -> np.ndarray:
    """EMA seeded with the SMA of the first ``period`` values."""
    result = np.full(len(arr), np.nan)
    if len(arr) < period:
        return result

    multiplier = 2.0 / (period + 1)
    result[period - 1] = np.mean(arr[:period])

    for i in range(period, len(arr)):
        result[i] = arr[i] * multiplier + result[i - 1] * (1 - multiplier)

    return result


def _macd_arrays(
    closes: np.ndarray,
    fast_period: int,
    slow_period: int,
    signal_period: int,
) -> tuple[np.ndarray, np.ndarray]:
    macd_line = _ema_array(closes, fast_period) - _ema_array(closes, slow_period)
    signal_line = np.full(len(closes), np.nan)

    first = slow_period - 1
    if len(closes) > first:
        signal_line[first:] = _ema_array(macd_line[first:], signal_period)

    return macd_line, signal_line


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return np.nan
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def _rsi_array(closes: np.ndarray, period: int) -> np.ndarray:
    """RSI with Wilder smoothing."""
    result = np.full(len(closes), np.nan)
    if len(closes) < period + 1:
        return result

    deltas = np.diff(closes)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = float(np.mean(gains[:period]))
    avg_loss = float(np.mean(losses[:period]))
    result[period] = _rsi_value(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        result[i + 1] = _rsi_value(avg_gain, avg_loss)

    return result


def _true_range_array(
    highs: np.ndarray, lows: np.ndarray, closes: np.ndarray
) -> np.ndarray:
    """True Range; undefined for the first bar (no previous close)."""
    result = np.full(len(closes), np.nan)
    if len(closes) < 2:
        return result

    prev_close = closes[:-1]
    hl = highs[1:] - lows[1:]
    hc = np.abs(highs[1:] - prev_close)
    lc = np.abs(lows[1:] - prev_close)
    result[1:] = np.maximum(hl, np.maximum(hc, lc))
    return result


def _stochastic_arrays(
    highs: np.ndarray,
    lows: np.ndarray,
    closes: np.ndarray,
    k_period: int,
    d_period: int,
) -> tuple[np.ndarray, np.ndarray]:
    k_values = np.full(len(closes), np.nan)

    for i in range(k_period - 1, len(closes)):
        highest_high = np.max(highs[i - k_period + 1 : i + 1])
        lowest_low = np.min(lows[i - k_period + 1 : i + 1])
        span = highest_high - lowest_low
        if span > 0:
            k_values[i] = (closes[i] - lowest_low) / span * 100.0

    return k_values, _sma_array(k_values, d_period)


# =============================================================================
# Public series API
# =============================================================================

def sma(values: Sequence[Decimal], period: int) -> list[Decimal]:
    """
    Calculate Simple Moving Average.

    Args:
        values: Sequence of price values
        period: SMA period

    Returns:
        List of SMA values (NaN until ``period`` values exist)
    """
    return _to_decimals(_sma_array(_to_array(values), period))


def ema(values: Sequence[Decimal], period: int) -> list[Decimal]:
    """
    Calculate Exponential Moving Average.

    Seed is the SMA of the first ``period`` values, then
    ``ema = value * k + ema * (1 - k)`` with ``k = 2 / (period + 1)``.

    Args:
        values: Sequence of price values
        period: EMA period

    Returns:
        List of EMA values (NaN until ``period`` values exist)
    """
    return _to_decimals(_ema_array(_to_array(values), period))


def macd(
    closes: Sequence[Decimal],
    fast_period: int = EMA_FAST_PERIOD,
    slow_period: int = EMA_SLOW_PERIOD,
    signal_period: int = MACD_SIGNAL_PERIOD,
) -> tuple[list[Decimal], list[Decimal]]:
    """
    Calculate the MACD line and its signal line.

    The signal line is the EMA of the MACD line taken over every bar
    where the slow EMA exists. Each MACD point equals EMA(fast) - EMA(slow)
    recomputed over the closes up to that bar, so the series and the
    per-point recomputation agree exactly.

    Returns:
        Tuple of (macd_line, signal_line) lists
    """
    macd_line, signal_line = _macd_arrays(
        _to_array(closes), fast_period, slow_period, signal_period
    )
    return _to_decimals(macd_line), _to_decimals(signal_line)


def rsi(closes: Sequence[Decimal], period: int = RSI_PERIOD) -> list[Decimal]:
    """
    Calculate Relative Strength Index with Wilder smoothing.

    Average gain/loss start as the mean of the first ``period`` deltas and
    are then updated as ``avg = (avg * (period - 1) + new) / period``.
    RSI is NaN where the average loss is zero.

    Args:
        closes: Sequence of close prices
        period: RSI period

    Returns:
        List of RSI values
    """
    return _to_decimals(_rsi_array(_to_array(closes), period))


def bollinger_bands(
    closes: Sequence[Decimal],
    period: int = BOLLINGER_PERIOD,
    k: float = BOLLINGER_K,
) -> tuple[list[Decimal], list[Decimal], list[Decimal]]:
    """
    Calculate Bollinger Bands.

    upper/lower = SMA(period) +/- k * population stddev over the same window.

    Returns:
        Tuple of (upper, middle, lower) lists
    """
    arr = _to_array(closes)
    middle = _sma_array(arr, period)
    std = np.full(len(arr), np.nan)
    for i in range(period - 1, len(arr)):
        std[i] = np.std(arr[i - period + 1 : i + 1])

    return (
        _to_decimals(middle + k * std),
        _to_decimals(middle),
        _to_decimals(middle - k * std),
    )


def stochastic(
    highs: Sequence[Decimal],
    lows: Sequence[Decimal],
    closes: Sequence[Decimal],
    k_period: int = STOCHASTIC_K_PERIOD,
    d_period: int = STOCHASTIC_D_PERIOD,
) -> tuple[list[Decimal], list[Decimal]]:
    """
    Calculate the Stochastic Oscillator.

    %K = (close - lowest_low) / (highest_high - lowest_low) * 100 over the
    trailing ``k_period`` bars (NaN for a flat window); %D = SMA(d_period) of %K.

    Returns:
        Tuple of (k, d) lists
    """
    k_values, d_values = _stochastic_arrays(
        _to_array(highs), _to_array(lows), _to_array(closes), k_period, d_period
    )
    return _to_decimals(k_values), _to_decimals(d_values)


def true_range(
    highs: Sequence[Decimal],
    lows: Sequence[Decimal],
    closes: Sequence[Decimal],
) -> list[Decimal]:
    """
    Calculate True Range.

    TR = max(high - low, abs(high - prev_close), abs(low - prev_close)),
    NaN for the first bar.
    """
    return _to_decimals(
        _true_range_array(_to_array(highs), _to_array(lows), _to_array(closes))
    )


def atr(
    highs: Sequence[Decimal],
    lows: Sequence[Decimal],
    closes: Sequence[Decimal],
    period: int = ATR_PERIOD,
) -> list[Decimal]:
    """
    Calculate Average True Range as the SMA of the True Range series.

    Needs ``period + 1`` bars for the first value.
    """
    tr = _true_range_array(_to_array(highs), _to_array(lows), _to_array(closes))
    result = np.full(len(tr), np.nan)
    for i in range(period, len(tr)):
        result[i] = np.mean(tr[i - period + 1 : i + 1])
    return _to_decimals(result)


# =============================================================================
# Snapshot
# =============================================================================

def _last(series: list[Decimal]) -> Decimal | None:
    if not series or series[-1].is_nan():
        return None
    return series[-1]


def compute(candles: Sequence[Candle]) -> IndicatorSet:
    """
    Compute the indicator set at the latest candle.

    Never raises for short input: fewer than MIN_CANDLES candles yields an
    IndicatorSet with every field None.

    Args:
        candles: Candles ordered ascending by open time

    Returns:
        IndicatorSet snapshot
    """
    if len(candles) < MIN_CANDLES:
        return IndicatorSet()

    closes = [c.close for c in candles]
    highs = [c.high for c in candles]
    lows = [c.low for c in candles]

    macd_line, signal_line = macd(closes)
    upper, _, lower = bollinger_bands(closes)
    k_values, d_values = stochastic(highs, lows, closes)

    return IndicatorSet(
        sma_20=_last(sma(closes, SMA_FAST_PERIOD)),
        sma_50=_last(sma(closes, SMA_SLOW_PERIOD)),
        ema_12=_last(ema(closes, EMA_FAST_PERIOD)),
        ema_26=_last(ema(closes, EMA_SLOW_PERIOD)),
        macd=_last(macd_line),
        macd_signal=_last(signal_line),
        rsi=_last(rsi(closes)),
        bollinger_upper=_last(upper),
        bollinger_lower=_last(lower),
        stochastic_k=_last(k_values),
        stochastic_d=_last(d_values),
        atr=_last(atr(highs, lows, closes)),
    )
