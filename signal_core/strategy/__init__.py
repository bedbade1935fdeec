"""Signal synthesis: rule table, model registry and synthesizer.

Public API:
- SignalSynthesizer: weighted rule voting into a Signal candidate
- ModelRegistry: explicit registry of model descriptors
- Rule, DEFAULT_RULES, evaluate_rules: data-driven rule table
- SignalRepoProtocol, TradeRepoProtocol, MarketDataSource, OrderGateway,
  CredentialStore
"""

from signal_core.strategy.registry import ModelRegistry
from signal_core.strategy.rules import (
    DEFAULT_RULES,
    RULE_NAMES,
    Rule,
    evaluate_rules,
)
from signal_core.strategy.signal_repo_protocol import (
    CredentialStore,
    MarketDataSource,
    OrderGateway,
    SignalRepository as SignalRepoProtocol,
    TradeRepository as TradeRepoProtocol,
)
from signal_core.strategy.synthesizer import SignalSynthesizer

__all__ = [
    "ModelRegistry",
    "DEFAULT_RULES",
    "RULE_NAMES",
    "Rule",
    "evaluate_rules",
    "CredentialStore",
    "MarketDataSource",
    "OrderGateway",
    "SignalRepoProtocol",
    "TradeRepoProtocol",
    "SignalSynthesizer",
]
