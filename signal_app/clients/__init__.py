"""Exchange clients."""

from signal_app.clients.binance_rest import (
    BinanceRestClient,
    GatewayPool,
    RateLimiter,
    sign,
)

__all__ = [
    "BinanceRestClient",
    "GatewayPool",
    "RateLimiter",
    "sign",
]
