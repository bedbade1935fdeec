"""Domain models."""

from signal_core.models.kline import Candle
from signal_core.models.signal import (
    SIGNAL_TTL,
    IndicatorSet,
    MarketConditions,
    RuleVote,
    Signal,
    SignalState,
    SignalType,
    generate_signal_id,
)
from signal_core.models.trade import (
    PRICE_REQUIRED,
    STOP_PRICE_REQUIRED,
    ExchangeCredentials,
    OrderResult,
    OrderSide,
    OrderSpec,
    OrderStatus,
    OrderType,
    Trade,
)
from signal_core.models.config import DEFAULT_MODEL, ModelDescriptor

__all__ = [
    "Candle",
    "SIGNAL_TTL",
    "IndicatorSet",
    "MarketConditions",
    "RuleVote",
    "Signal",
    "SignalState",
    "SignalType",
    "generate_signal_id",
    "PRICE_REQUIRED",
    "STOP_PRICE_REQUIRED",
    "ExchangeCredentials",
    "OrderResult",
    "OrderSide",
    "OrderSpec",
    "OrderStatus",
    "OrderType",
    "Trade",
    "DEFAULT_MODEL",
    "ModelDescriptor",
]
