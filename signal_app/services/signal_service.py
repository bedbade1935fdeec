"""Signal generation: klines -> indicators -> synthesis -> storage -> event."""

import asyncio
import logging
from typing import Literal

from signal_app.services.notifier import EventPublisher
from signal_app.services.signal_lifecycle import SignalLifecycleManager
from signal_core.indicators import compute
from signal_core.models import ModelDescriptor, Signal
from signal_core.strategy import MarketDataSource, SignalSynthesizer

logger = logging.getLogger(__name__)


class SignalService:
    """Generates, stores and announces signals for one or more symbols."""

    def __init__(
        self,
        market_data: MarketDataSource,
        synthesizer: SignalSynthesizer,
        lifecycle: SignalLifecycleManager,
        publisher: EventPublisher | None = None,
        kline_limit: int = 100,
        price_source: Literal["sma_20", "last_close"] = "sma_20",
    ):
        self.market_data = market_data
        self.synthesizer = synthesizer
        self.lifecycle = lifecycle
        self.publisher = publisher
        self.kline_limit = kline_limit
        self.price_source = price_source

    async def generate(
        self,
        symbol: str,
        timeframe: str = "1h",
        model: ModelDescriptor | str | None = None,
    ) -> Signal:
        """
        Generate a signal for a symbol.

        Directional signals are stored and published; HOLD is returned
        without being stored.

        Raises:
            NoModelAvailable: No usable model; nothing stored.
            GatewayTimeout, ExchangeError: Klines could not be fetched.
        """
        candles = await self.market_data.get_klines(symbol, timeframe, self.kline_limit)
        indicators = compute(candles)
        if indicators.is_empty:
            logger.info(
                f"{symbol} {timeframe}: only {len(candles)} candles, indicators unavailable"
            )

        reference_price = None
        if self.price_source == "last_close" and candles:
            reference_price = candles[-1].close

        signal = self.synthesizer.synthesize(
            symbol,
            indicators,
            model=model,
            timeframe=timeframe,
            reference_price=reference_price,
        )

        stored = await self.lifecycle.store(signal)
        if stored is not None and self.publisher:
            await self.publisher.send_signal(stored)
        return signal

    async def generate_many(
        self,
        symbols: list[str],
        timeframe: str = "1h",
        model: ModelDescriptor | str | None = None,
    ) -> dict[str, Signal]:
        """Generate signals for several symbols concurrently.

        A failing symbol is logged and left out of the result.
        """
        results = await asyncio.gather(
            *(self.generate(s, timeframe, model) for s in symbols),
            return_exceptions=True,
        )

        signals: dict[str, Signal] = {}
        for symbol, result in zip(symbols, results):
            if isinstance(result, BaseException):
                logger.error(f"Signal generation failed for {symbol} {timeframe}: {result}")
                continue
            signals[symbol] = result
        return signals
