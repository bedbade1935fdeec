"""Signal, indicator snapshot and rule vote models."""

import hashlib
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Fixed validity window for every stored signal
SIGNAL_TTL = timedelta(hours=4)


class SignalType(str, Enum):
    """Directional call of a signal."""

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class SignalState(str, Enum):
    """Lifecycle state of a stored signal, evaluated at read time."""

    ACTIVE = "active"
    EXPIRED = "expired"
    EXECUTED = "executed"
    INACTIVE = "inactive"


class IndicatorSet(BaseModel):
    """Snapshot of the indicator values at the latest bar.

    A field is None when its lookback was not satisfied by the input
    (or, for rsi and stochastic, when the value is mathematically undefined).
    """

    model_config = ConfigDict(frozen=True)

    sma_20: Decimal | None = None
    sma_50: Decimal | None = None
    ema_12: Decimal | None = None
    ema_26: Decimal | None = None
    macd: Decimal | None = None
    macd_signal: Decimal | None = None
    rsi: Decimal | None = None
    bollinger_upper: Decimal | None = None
    bollinger_lower: Decimal | None = None
    stochastic_k: Decimal | None = None
    stochastic_d: Decimal | None = None
    atr: Decimal | None = None

    @property
    def is_empty(self) -> bool:
        return all(v is None for v in self.model_dump().values())

    @property
    def is_complete(self) -> bool:
        return all(v is not None for v in self.model_dump().values())

    def missing(self) -> list[str]:
        """Names of the fields that are None."""
        return [name for name, v in self.model_dump().items() if v is None]


class RuleVote(BaseModel):
    """Vote cast by one fired rule during synthesis (never persisted alone)."""

    model_config = ConfigDict(frozen=True)

    rule: str
    direction: SignalType
    weight: Decimal
    reason: str


class MarketConditions(BaseModel):
    """Vote breakdown and aggregate weights behind a signal."""

    model_config = ConfigDict(frozen=True)

    votes: list[RuleVote] = Field(default_factory=list)
    buy_weight: Decimal = Decimal("0")
    sell_weight: Decimal = Decimal("0")
    price_source: str = "sma_20"
    note: str | None = None


def generate_signal_id(
    symbol: str,
    timeframe: str,
    created_at: datetime,
    signal_type: str,
    model_version: str,
) -> str:
    """Generate a deterministic signal ID from its identifying attributes."""
    ts_str = created_at.strftime("%Y%m%d%H%M%S%f")
    key = f"{symbol}:{timeframe}:{ts_str}:{signal_type}:{model_version}"
    return hashlib.sha256(key.encode()).hexdigest()[:32]


class Signal(BaseModel):
    """Directional trading recommendation with confidence and risk levels."""

    model_config = ConfigDict(frozen=True)

    id: str = ""  # Set in model_post_init
    symbol: str
    timeframe: str
    signal_type: SignalType
    strength: Decimal
    confidence_score: Decimal

    entry_price: Decimal | None = None
    stop_loss: Decimal | None = None
    take_profit: Decimal | None = None
    risk_reward_ratio: Decimal | None = None

    technical_indicators: IndicatorSet = Field(default_factory=IndicatorSet)
    market_conditions: MarketConditions = Field(default_factory=MarketConditions)
    model_version: str = ""

    created_at: datetime
    expires_at: datetime | None = None  # created_at + SIGNAL_TTL when omitted
    is_active: bool = True
    executed: bool = False

    @model_validator(mode="after")
    def _check_risk_payload(self):
        legs = (self.entry_price, self.stop_loss, self.take_profit)
        if self.signal_type == SignalType.HOLD:
            if any(v is not None for v in legs) or self.risk_reward_ratio is not None:
                raise ValueError("HOLD signals carry no risk levels")
        elif any(v is None for v in legs):
            raise ValueError(
                f"{self.signal_type.value} signal requires entry_price, stop_loss and take_profit"
            )
        return self

    def model_post_init(self, __context) -> None:
        """Fill derived identity and expiry after validation."""
        if self.expires_at is None:
            object.__setattr__(self, "expires_at", self.created_at + SIGNAL_TTL)
        if not self.id:
            object.__setattr__(
                self,
                "id",
                generate_signal_id(
                    self.symbol,
                    self.timeframe,
                    self.created_at,
                    self.signal_type.value,
                    self.model_version,
                ),
            )

    @property
    def is_directional(self) -> bool:
        return self.signal_type != SignalType.HOLD

    def is_expired(self, now: datetime) -> bool:
        """Read-time expiry predicate: now >= expires_at."""
        return now >= self.expires_at

    def state(self, now: datetime) -> SignalState:
        """Evaluate the lifecycle state at ``now``."""
        if self.executed:
            return SignalState.EXECUTED
        if not self.is_active:
            return SignalState.INACTIVE
        if self.is_expired(now):
            return SignalState.EXPIRED
        return SignalState.ACTIVE
