"""Order, trade and venue credential models."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from signal_core.errors import ValidationError


class OrderSide(str, Enum):
    """Order side enum."""

    BUY = "BUY"
    SELL = "SELL"


class OrderType(str, Enum):
    """Order types accepted by the futures venue."""

    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP = "STOP"
    STOP_MARKET = "STOP_MARKET"
    TAKE_PROFIT = "TAKE_PROFIT"
    TAKE_PROFIT_MARKET = "TAKE_PROFIT_MARKET"

    @classmethod
    def from_venue(cls, value: str) -> "OrderType | None":
        # Venue-only types (TRAILING_STOP_MARKET and friends) are not placeable here
        try:
            return cls(value)
        except ValueError:
            return None


# Types that rest on the book at a limit price
PRICE_REQUIRED = frozenset({OrderType.LIMIT, OrderType.STOP, OrderType.TAKE_PROFIT})

# Types triggered by a stop price
STOP_PRICE_REQUIRED = frozenset(
    {
        OrderType.STOP,
        OrderType.STOP_MARKET,
        OrderType.TAKE_PROFIT,
        OrderType.TAKE_PROFIT_MARKET,
    }
)


class OrderStatus(str, Enum):
    """Order status as reported by the venue."""

    NEW = "NEW"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELED = "CANCELED"
    REJECTED = "REJECTED"

    @classmethod
    def from_venue(cls, value: str) -> "OrderStatus":
        # EXPIRED (IOC/FOK leftovers, self-trade prevention) is terminal without further fills
        if value in ("EXPIRED", "EXPIRED_IN_MATCH"):
            return cls.CANCELED
        return cls(value)


class ExchangeCredentials(BaseModel):
    """Venue credentials for one calling context. Never persisted."""

    model_config = ConfigDict(frozen=True)

    api_key: str
    secret_key: str = Field(repr=False)
    is_testnet: bool = True

    @property
    def context_key(self) -> tuple[str, bool]:
        """Key identifying the credential context (rate limiting, pooling)."""
        return (self.api_key, self.is_testnet)


class OrderSpec(BaseModel):
    """Order request sent to the venue."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    side: OrderSide
    type: OrderType = OrderType.MARKET
    quantity: Decimal
    price: Decimal | None = None
    stop_price: Decimal | None = None
    time_in_force: str = "GTC"
    reduce_only: bool = False

    def validate_spec(self) -> "OrderSpec":
        """Reject malformed orders before any network call.

        Raises:
            ValidationError: If a required field is missing or invalid.
        """
        if not self.symbol or not self.symbol.strip():
            raise ValidationError("Order requires a symbol")
        if self.quantity <= 0:
            raise ValidationError(f"Order quantity must be positive, got {self.quantity}")
        if self.type in PRICE_REQUIRED and (self.price is None or self.price <= 0):
            raise ValidationError(f"{self.type.value} order requires a price")
        if self.type in STOP_PRICE_REQUIRED and (
            self.stop_price is None or self.stop_price <= 0
        ):
            raise ValidationError(f"{self.type.value} order requires a stop price")
        return self

    def to_params(self) -> dict[str, str]:
        """Venue query parameters for this order."""
        params = {
            "symbol": self.symbol,
            "side": self.side.value,
            "type": self.type.value,
            "quantity": str(self.quantity),
            # Default ACK carries no fill quantity or price
            "newOrderRespType": "RESULT",
        }
        if self.type in PRICE_REQUIRED:
            params["price"] = str(self.price)
            params["timeInForce"] = self.time_in_force
        if self.type in STOP_PRICE_REQUIRED:
            params["stopPrice"] = str(self.stop_price)
        if self.reduce_only:
            params["reduceOnly"] = "true"
        return params


def _decimal(value: Any) -> Decimal:
    if value in (None, ""):
        return Decimal("0")
    return Decimal(str(value))


class OrderResult(BaseModel):
    """Venue acknowledgement of a placed, queried or cancelled order."""

    model_config = ConfigDict(frozen=True)

    order_id: str
    symbol: str
    side: OrderSide
    type: OrderType | None = None  # None for venue types this client does not place
    venue_type: str = ""
    status: OrderStatus
    orig_qty: Decimal = Decimal("0")
    executed_qty: Decimal = Decimal("0")
    avg_price: Decimal = Decimal("0")
    commission: Decimal = Decimal("0")
    commission_asset: str | None = None
    update_time: datetime | None = None
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @classmethod
    def from_venue(cls, data: dict[str, Any]) -> "OrderResult":
        """Parse a Binance futures order response."""
        update_ms = data.get("updateTime")
        venue_type = data.get("type") or data.get("origType") or "MARKET"
        return cls(
            order_id=str(data["orderId"]),
            symbol=data["symbol"],
            side=OrderSide(data["side"]),
            type=OrderType.from_venue(venue_type),
            venue_type=venue_type,
            status=OrderStatus.from_venue(data["status"]),
            orig_qty=_decimal(data.get("origQty")),
            executed_qty=_decimal(data.get("executedQty")),
            avg_price=_decimal(data.get("avgPrice")),
            commission=_decimal(data.get("commission")),
            commission_asset=data.get("commissionAsset"),
            update_time=(
                datetime.fromtimestamp(update_ms / 1000, tz=timezone.utc)
                if update_ms
                else None
            ),
            raw=data,
        )


class Trade(BaseModel):
    """Recorded result of an order, optionally linked to the signal it executed."""

    id: int | None = None
    order_id: str
    signal_id: str | None = None
    orphan_signal_id: str | None = None  # order sent, signal transition lost
    symbol: str
    side: OrderSide
    order_type: OrderType = OrderType.MARKET
    requested_quantity: Decimal
    executed_quantity: Decimal = Decimal("0")
    executed_price: Decimal = Decimal("0")
    status: OrderStatus
    commission: Decimal = Decimal("0")
    commission_asset: str | None = None
    is_automated: bool = False
    is_testnet: bool = True
    created_at: datetime
    executed_at: datetime | None = None

    @classmethod
    def from_order(
        cls,
        spec: OrderSpec,
        result: OrderResult,
        now: datetime,
        signal_id: str | None = None,
        is_testnet: bool = True,
    ) -> "Trade":
        """Build the trade record for a venue order acknowledgement."""
        return cls(
            order_id=result.order_id,
            signal_id=signal_id,
            symbol=spec.symbol,
            side=spec.side,
            order_type=spec.type,
            requested_quantity=spec.quantity,
            executed_quantity=result.executed_qty,
            executed_price=result.avg_price,
            status=result.status,
            commission=result.commission,
            commission_asset=result.commission_asset,
            is_testnet=is_testnet,
            created_at=now,
            executed_at=now if result.status == OrderStatus.FILLED else None,
        )

    @property
    def is_orphan(self) -> bool:
        return self.orphan_signal_id is not None
