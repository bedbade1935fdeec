"""Signal synthesizer: weighted rule voting over an indicator snapshot.

Pure business logic with no I/O. The model registry is injected at
construction; persistence is the caller's concern.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Sequence

from signal_core.errors import ValidationError
from signal_core.models import (
    IndicatorSet,
    MarketConditions,
    ModelDescriptor,
    Signal,
    SignalType,
)
from signal_core.strategy.registry import ModelRegistry
from signal_core.strategy.rules import DEFAULT_RULES, Rule, evaluate_rules

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SignalSynthesizer:
    """
    Fuse rule votes into a directional call with confidence and risk levels.

    Decision:
    - BUY if buy_weight > sell_weight and buy_weight > threshold
    - SELL under the symmetric condition
    - HOLD otherwise

    Risk levels (BUY; SELL mirrors):
    - entry = reference price (sma_20 unless a price is supplied)
    - stop = entry - stop_multiple * ATR, target = entry + target_multiple * ATR
    - ATR falls back to entry * atr_fallback_pct when missing or zero
    """

    def __init__(
        self,
        registry: ModelRegistry,
        rules: Sequence[Rule] = DEFAULT_RULES,
        clock: Clock | None = None,
    ):
        self.registry = registry
        self.rules = tuple(rules)
        self._rule_names = {r.name for r in self.rules}
        self._clock = clock or _utcnow

    def synthesize(
        self,
        symbol: str,
        indicators: IndicatorSet,
        model: ModelDescriptor | str | None = None,
        timeframe: str = "1h",
        reference_price: Decimal | None = None,
    ) -> Signal:
        """
        Produce an unpersisted signal candidate.

        Args:
            symbol: Trading pair
            indicators: Indicator snapshot at the latest bar
            model: Descriptor, registered model name, or None for the best model
            timeframe: Candle interval the indicators were computed on
            reference_price: Price used by band rules and as entry; defaults
                to indicators.sma_20

        Returns:
            Signal candidate (HOLD included)

        Raises:
            NoModelAvailable: If no usable model can be resolved.
            ValidationError: If the symbol is empty or the model overrides
                weights of unknown rules.
        """
        if not symbol:
            raise ValidationError("Signal synthesis requires a symbol")

        descriptor = self._resolve_model(model)
        weights = self._weights_for(descriptor)

        if reference_price is not None:
            price, price_source = reference_price, "last_close"
        else:
            price, price_source = indicators.sma_20, "sma_20"

        votes = evaluate_rules(indicators, price, self.rules, weights)
        buy_weight = sum(
            (v.weight for v in votes if v.direction == SignalType.BUY), Decimal("0")
        )
        sell_weight = sum(
            (v.weight for v in votes if v.direction == SignalType.SELL), Decimal("0")
        )
        strength = min(buy_weight + sell_weight, Decimal("1"))

        signal_type = self._decide(buy_weight, sell_weight, descriptor.decision_threshold)
        note = None
        if signal_type != SignalType.HOLD and price is None:
            note = "no reference price for a directional call"
            signal_type = SignalType.HOLD

        if signal_type == SignalType.HOLD:
            confidence = descriptor.hold_confidence
            entry = stop = target = rr = None
        else:
            winning = buy_weight if signal_type == SignalType.BUY else sell_weight
            confidence = min(winning * 100, descriptor.confidence_cap)
            entry = price
            stop, target, rr = self._risk_levels(
                signal_type, entry, indicators.atr, descriptor
            )

        signal = Signal(
            symbol=symbol,
            timeframe=timeframe,
            signal_type=signal_type,
            strength=strength,
            confidence_score=confidence,
            entry_price=entry,
            stop_loss=stop,
            take_profit=target,
            risk_reward_ratio=rr,
            technical_indicators=indicators,
            market_conditions=MarketConditions(
                votes=votes,
                buy_weight=buy_weight,
                sell_weight=sell_weight,
                price_source=price_source,
                note=note,
            ),
            model_version=descriptor.version,
            created_at=self._clock(),
        )

        logger.debug(
            f"{symbol} {timeframe}: {signal_type.value} buy={buy_weight} "
            f"sell={sell_weight} confidence={confidence} ({len(votes)} votes)"
        )
        return signal

    def _resolve_model(self, model: ModelDescriptor | str | None) -> ModelDescriptor:
        if isinstance(model, ModelDescriptor):
            if not model.is_active:
                return self.registry.get(model.name)
            return model
        return self.registry.resolve(model)

    def _weights_for(self, model: ModelDescriptor) -> dict[str, Decimal]:
        unknown = set(model.rule_weights) - self._rule_names
        if unknown:
            raise ValidationError(
                f"Model '{model.name}' overrides unknown rules: {sorted(unknown)}"
            )
        return dict(model.rule_weights)

    @staticmethod
    def _decide(
        buy_weight: Decimal, sell_weight: Decimal, threshold: Decimal
    ) -> SignalType:
        if buy_weight > sell_weight and buy_weight > threshold:
            return SignalType.BUY
        if sell_weight > buy_weight and sell_weight > threshold:
            return SignalType.SELL
        return SignalType.HOLD

    @staticmethod
    def _risk_levels(
        signal_type: SignalType,
        entry: Decimal,
        atr: Decimal | None,
        model: ModelDescriptor,
    ) -> tuple[Decimal, Decimal, Decimal | None]:
        atr_eff = atr if atr else entry * model.atr_fallback_pct
        stop_distance = model.stop_atr_multiple * atr_eff
        target_distance = model.target_atr_multiple * atr_eff

        if signal_type == SignalType.BUY:
            stop, target = entry - stop_distance, entry + target_distance
        else:
            stop, target = entry + stop_distance, entry - target_distance

        risk = abs(entry - stop)
        rr = abs(target - entry) / risk if risk else None
        return stop, target, rr
