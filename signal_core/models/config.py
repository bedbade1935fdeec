"""Model descriptor configuration."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field


class ModelDescriptor(BaseModel):
    """Named weighting parameters used by the signal synthesizer.

    ``rule_weights`` overrides the default weight of a rule by rule name
    (e.g. {"rsi_oversold": "0.35"}); unknown names are rejected by the
    synthesizer.
    """

    name: str
    version: str = "1.0.0"
    accuracy: float = 0.0
    is_active: bool = True

    rule_weights: dict[str, Decimal] = Field(default_factory=dict)

    # Minimum winning weight for a directional call
    decision_threshold: Decimal = Decimal("0.4")
    confidence_cap: Decimal = Decimal("95")
    hold_confidence: Decimal = Decimal("30")

    # Risk levels (ATR multiples)
    stop_atr_multiple: Decimal = Decimal("2")
    target_atr_multiple: Decimal = Decimal("3")
    # ATR fallback as a fraction of the entry price
    atr_fallback_pct: Decimal = Decimal("0.02")


DEFAULT_MODEL = ModelDescriptor(
    name="technical_rules",
    version="1.0.0",
    accuracy=0.0,
)
