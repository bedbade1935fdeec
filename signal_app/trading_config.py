"""Trading configuration loaded from trading.yaml.

Supports:
- Named venue accounts (credential contexts); secrets come from env vars
- Model descriptors for the signal synthesizer
- No YAML file = built-in model, no accounts
"""

import logging
import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, model_validator

from signal_core.errors import CredentialsNotFound
from signal_core.models import DEFAULT_MODEL, ExchangeCredentials, ModelDescriptor
from signal_core.strategy import ModelRegistry

logger = logging.getLogger(__name__)


class AccountConfig(BaseModel):
    """A venue account configuration."""

    name: str
    api_key_env: str = ""
    api_secret_env: str = ""
    testnet: bool = True
    enabled: bool = True

    @staticmethod
    def _from_env(var: str) -> str:
        return os.environ.get(var, "") if var else ""

    @property
    def api_key(self) -> str:
        return self._from_env(self.api_key_env)

    @property
    def api_secret(self) -> str:
        return self._from_env(self.api_secret_env)

    def to_credentials(self) -> ExchangeCredentials:
        return ExchangeCredentials(
            api_key=self.api_key,
            secret_key=self.api_secret,
            is_testnet=self.testnet,
        )


class TradingConfig(BaseModel):
    """Top-level trading.yaml configuration."""

    accounts: list[AccountConfig] = []
    models: list[ModelDescriptor] = []
    default_account: str | None = None

    @model_validator(mode="after")
    def _validate(self):
        names = [a.name for a in self.accounts]
        if len(names) != len(set(names)):
            raise ValueError("account names must be unique")
        if self.default_account and self.default_account not in names:
            raise ValueError(
                f"default_account '{self.default_account}' is not a configured account"
            )
        return self

    def get_enabled_accounts(self) -> list[AccountConfig]:
        """Return accounts with enabled=True."""
        return [a for a in self.accounts if a.enabled]

    def resolve_credentials(self, account: str | None = None) -> ExchangeCredentials:
        """Resolve an account name (or the default account) to credentials.

        Raises:
            CredentialsNotFound: If the account is unknown, disabled, or
                its env vars are not set.
        """
        name = account or self.default_account
        if name is None and len(self.accounts) == 1:
            name = self.accounts[0].name

        acct = next((a for a in self.accounts if a.name == name), None)
        if acct is None or not acct.enabled:
            raise CredentialsNotFound(f"No active API keys found for account '{name}'")
        if not acct.api_key or not acct.api_secret:
            raise CredentialsNotFound(
                f"Account '{acct.name}': env vars not set "
                f"({acct.api_key_env}, {acct.api_secret_env})"
            )
        return acct.to_credentials()

    def build_registry(self) -> ModelRegistry:
        """Model registry from configured models (built-in model if none)."""
        return ModelRegistry(self.models or [DEFAULT_MODEL])


_DEFAULT_PATH = Path("trading.yaml")


def load_trading_config(path: Path | str | None = None) -> TradingConfig:
    """Load trading config from YAML file.

    Falls back to defaults (built-in model, no accounts) if file doesn't exist.
    """
    config_path = Path(path) if path else _DEFAULT_PATH

    # Load .env into os.environ so AccountConfig.api_key/api_secret can read them
    env_path = config_path.parent / ".env"
    load_dotenv(env_path, override=False)

    if not config_path.exists():
        logger.info(f"No trading.yaml found at {config_path}, using defaults (built-in model, no accounts)")
        return TradingConfig()

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    config = TradingConfig(**raw)
    logger.info(
        f"Loaded trading config: {len(config.accounts)} accounts "
        f"({len(config.get_enabled_accounts())} enabled), {len(config.models)} models"
    )
    return config
