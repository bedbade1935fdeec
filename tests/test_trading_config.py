"""Tests for trading.yaml loading and credential resolution."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from signal_app.trading_config import AccountConfig, TradingConfig, load_trading_config
from signal_core.errors import CredentialsNotFound, NoModelAvailable


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("MAIN_KEY", "main-key")
    monkeypatch.setenv("MAIN_SECRET", "main-secret")
    monkeypatch.setenv("LIVE_KEY", "live-key")
    monkeypatch.setenv("LIVE_SECRET", "live-secret")
    monkeypatch.delenv("EMPTY_KEY", raising=False)
    monkeypatch.delenv("EMPTY_SECRET", raising=False)


def account(name, prefix, **kw) -> AccountConfig:
    return AccountConfig(
        name=name, api_key_env=f"{prefix}_KEY", api_secret_env=f"{prefix}_SECRET", **kw
    )


class TestResolveCredentials:
    def test_named_account(self, env):
        config = TradingConfig(
            accounts=[account("main", "MAIN"), account("live", "LIVE", testnet=False)]
        )
        creds = config.resolve_credentials("live")
        assert creds.api_key == "live-key"
        assert creds.secret_key == "live-secret"
        assert not creds.is_testnet

    def test_default_account(self, env):
        config = TradingConfig(
            accounts=[account("main", "MAIN"), account("live", "LIVE")],
            default_account="main",
        )
        assert config.resolve_credentials().api_key == "main-key"

    def test_single_account_is_implicit_default(self, env):
        config = TradingConfig(accounts=[account("main", "MAIN")])
        assert config.resolve_credentials().is_testnet

    def test_ambiguous_without_default(self, env):
        config = TradingConfig(accounts=[account("main", "MAIN"), account("live", "LIVE")])
        with pytest.raises(CredentialsNotFound):
            config.resolve_credentials()

    def test_unknown_and_disabled(self, env):
        config = TradingConfig(
            accounts=[account("main", "MAIN"), account("live", "LIVE", enabled=False)]
        )
        with pytest.raises(CredentialsNotFound, match="ghost"):
            config.resolve_credentials("ghost")
        with pytest.raises(CredentialsNotFound):
            config.resolve_credentials("live")

    def test_env_vars_missing(self, env):
        config = TradingConfig(accounts=[account("empty", "EMPTY")])
        with pytest.raises(CredentialsNotFound, match="EMPTY_KEY"):
            config.resolve_credentials()

    def test_secret_hidden_from_repr(self, env):
        creds = TradingConfig(accounts=[account("main", "MAIN")]).resolve_credentials()
        assert "main-secret" not in repr(creds)


class TestValidation:
    def test_account_names_unique(self):
        with pytest.raises(PydanticValidationError, match="unique"):
            TradingConfig(accounts=[AccountConfig(name="a"), AccountConfig(name="a")])

    def test_default_account_must_exist(self):
        with pytest.raises(PydanticValidationError, match="default_account"):
            TradingConfig(accounts=[AccountConfig(name="a")], default_account="b")


class TestLoad:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_trading_config(tmp_path / "trading.yaml")
        assert config.accounts == []
        registry = config.build_registry()
        assert registry.resolve().name == "technical_rules"

    def test_yaml_accounts_and_models(self, tmp_path, env):
        path = tmp_path / "trading.yaml"
        path.write_text(
            """
default_account: main
accounts:
  - name: main
    api_key_env: MAIN_KEY
    api_secret_env: MAIN_SECRET
    testnet: true
  - name: live
    api_key_env: LIVE_KEY
    api_secret_env: LIVE_SECRET
    testnet: false
    enabled: false
models:
  - name: technical_rules
    accuracy: 0.6
  - name: momentum_tilt
    version: "1.1.0"
    accuracy: 0.7
    is_active: false
    rule_weights:
      macd_bullish: "0.30"
"""
        )
        config = load_trading_config(str(path))

        assert [a.name for a in config.get_enabled_accounts()] == ["main"]
        assert config.resolve_credentials().api_key == "main-key"

        registry = config.build_registry()
        assert registry.list_models() == ["technical_rules"]
        assert registry.resolve().name == "technical_rules"
        with pytest.raises(NoModelAvailable):
            registry.resolve("momentum_tilt")

    def test_dotenv_beside_config(self, tmp_path, monkeypatch):
        # Registered so teardown removes what load_dotenv writes
        for name in ("DOTENV_KEY", "DOTENV_SECRET"):
            monkeypatch.setenv(name, "")
            monkeypatch.delenv(name)
        (tmp_path / ".env").write_text("DOTENV_KEY=from-file\nDOTENV_SECRET=shh\n")
        path = tmp_path / "trading.yaml"
        path.write_text(
            "accounts:\n"
            "  - name: main\n"
            "    api_key_env: DOTENV_KEY\n"
            "    api_secret_env: DOTENV_SECRET\n"
        )

        config = load_trading_config(path)

        assert config.resolve_credentials().api_key == "from-file"
