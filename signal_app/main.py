"""Application wiring: settings, storage, venue clients and services."""

import logging
from dataclasses import dataclass

from signal_app.clients import GatewayPool
from signal_app.config import Settings, get_settings
from signal_app.services import (
    EventPublisher,
    ExecutionCoordinator,
    OrderService,
    SignalLifecycleManager,
    SignalService,
)
from signal_app.storage import Database, SignalRepository, TradeRepository
from signal_app.trading_config import TradingConfig, load_trading_config
from signal_core.strategy import ModelRegistry, SignalSynthesizer

logger = logging.getLogger(__name__)


@dataclass
class Application:
    """Services wired against one database and one gateway pool."""

    settings: Settings
    trading_config: TradingConfig
    db: Database
    gateways: GatewayPool
    publisher: EventPublisher
    lifecycle: SignalLifecycleManager
    signal_service: SignalService
    executor: ExecutionCoordinator
    order_service: OrderService
    registry: ModelRegistry

    async def close(self) -> None:
        await self.gateways.close()
        await self.db.close()


def create_application(
    settings: Settings | None = None,
    trading_config: TradingConfig | None = None,
    gateways: GatewayPool | None = None,
) -> Application:
    """Build the service graph. No network or database call is made here."""
    settings = settings or get_settings()
    if trading_config is None:
        trading_config = load_trading_config(settings.trading_config_path)

    db = Database(settings.database_url)
    gateways = gateways or GatewayPool(
        timeout=settings.venue_timeout_seconds,
        calls_per_minute=settings.venue_calls_per_minute,
    )
    publisher = EventPublisher()

    lifecycle = SignalLifecycleManager(SignalRepository(db), TradeRepository(db))
    registry = trading_config.build_registry()
    logger.info(f"Model registry: {registry.list_models()}")

    signal_service = SignalService(
        market_data=gateways.public(testnet=settings.market_data_testnet),
        synthesizer=SignalSynthesizer(registry),
        lifecycle=lifecycle,
        publisher=publisher,
        kline_limit=settings.kline_limit,
        price_source=settings.price_source,
    )
    executor = ExecutionCoordinator(
        lifecycle=lifecycle,
        gateways=gateways.get,
        credentials=trading_config,
        publisher=publisher,
        default_quantity=settings.default_order_quantity,
    )
    order_service = OrderService(
        gateways=gateways.get,
        credentials=trading_config,
        trade_repo=lifecycle.trade_repo,
        publisher=publisher,
    )

    return Application(
        settings=settings,
        trading_config=trading_config,
        db=db,
        gateways=gateways,
        publisher=publisher,
        lifecycle=lifecycle,
        signal_service=signal_service,
        executor=executor,
        order_service=order_service,
        registry=registry,
    )
