"""Data-driven voting rules for signal synthesis.

Each rule names the indicator fields it needs; a rule whose inputs are
missing is skipped. Adding a rule means adding an entry to DEFAULT_RULES.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Sequence

from signal_core.models import IndicatorSet, RuleVote, SignalType

# (indicators, reference price) -> fired?
RuleCondition = Callable[[IndicatorSet, "Decimal | None"], bool]

RSI_OVERSOLD = Decimal("30")
RSI_OVERBOUGHT = Decimal("70")


@dataclass(frozen=True)
class Rule:
    """A single weighted vote for one direction."""

    name: str
    direction: SignalType
    weight: Decimal
    requires: tuple[str, ...]
    condition: RuleCondition
    reason: str
    uses_price: bool = False

    def applies(self, indicators: IndicatorSet, price: Decimal | None) -> bool:
        """True when every input of this rule is available."""
        if self.uses_price and price is None:
            return False
        return all(getattr(indicators, field) is not None for field in self.requires)


DEFAULT_RULES: tuple[Rule, ...] = (
    Rule(
        name="rsi_oversold",
        direction=SignalType.BUY,
        weight=Decimal("0.30"),
        requires=("rsi",),
        condition=lambda ind, _: ind.rsi < RSI_OVERSOLD,
        reason="RSI oversold",
    ),
    Rule(
        name="rsi_overbought",
        direction=SignalType.SELL,
        weight=Decimal("0.30"),
        requires=("rsi",),
        condition=lambda ind, _: ind.rsi > RSI_OVERBOUGHT,
        reason="RSI overbought",
    ),
    Rule(
        name="macd_bullish",
        direction=SignalType.BUY,
        weight=Decimal("0.25"),
        requires=("macd", "macd_signal"),
        condition=lambda ind, _: ind.macd > ind.macd_signal,
        reason="MACD bullish crossover",
    ),
    Rule(
        name="macd_bearish",
        direction=SignalType.SELL,
        weight=Decimal("0.25"),
        requires=("macd", "macd_signal"),
        condition=lambda ind, _: ind.macd <= ind.macd_signal,
        reason="MACD bearish crossover",
    ),
    Rule(
        name="trend_up",
        direction=SignalType.BUY,
        weight=Decimal("0.20"),
        requires=("sma_20", "sma_50"),
        condition=lambda ind, _: ind.sma_20 > ind.sma_50,
        reason="SMA 20 > SMA 50",
    ),
    Rule(
        name="trend_down",
        direction=SignalType.SELL,
        weight=Decimal("0.20"),
        requires=("sma_20", "sma_50"),
        condition=lambda ind, _: ind.sma_20 <= ind.sma_50,
        reason="SMA 20 <= SMA 50",
    ),
    Rule(
        name="band_breach_low",
        direction=SignalType.BUY,
        weight=Decimal("0.15"),
        requires=("bollinger_lower",),
        condition=lambda ind, price: price < ind.bollinger_lower,
        reason="Price below Bollinger lower band",
        uses_price=True,
    ),
    Rule(
        name="band_breach_high",
        direction=SignalType.SELL,
        weight=Decimal("0.15"),
        requires=("bollinger_upper",),
        condition=lambda ind, price: price > ind.bollinger_upper,
        reason="Price above Bollinger upper band",
        uses_price=True,
    ),
)

RULE_NAMES = frozenset(rule.name for rule in DEFAULT_RULES)


def evaluate_rules(
    indicators: IndicatorSet,
    price: Decimal | None,
    rules: Sequence[Rule] = DEFAULT_RULES,
    weights: dict[str, Decimal] | None = None,
) -> list[RuleVote]:
    """
    Evaluate every applicable rule and collect the votes that fired.

    Args:
        indicators: Indicator snapshot
        price: Reference price for price-based rules (None skips them)
        rules: Rule table to evaluate
        weights: Optional per-rule weight overrides

    Returns:
        Votes of the fired rules, in rule-table order
    """
    weights = weights or {}
    votes = []
    for rule in rules:
        if not rule.applies(indicators, price):
            continue
        if rule.condition(indicators, price):
            votes.append(
                RuleVote(
                    rule=rule.name,
                    direction=rule.direction,
                    weight=weights.get(rule.name, rule.weight),
                    reason=rule.reason,
                )
            )
    return votes
