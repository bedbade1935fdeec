"""Database connection and table definitions."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from signal_app.config import get_settings
from signal_core.errors import StorageError

Base = declarative_base()


class SignalTable(Base):
    """Directional signal records."""

    __tablename__ = "signals"

    id = Column(String(64), primary_key=True)
    symbol = Column(String(20), nullable=False)
    timeframe = Column(String(10), nullable=False)
    signal_type = Column(String(4), nullable=False)
    strength = Column(Numeric(10, 6), nullable=False)
    confidence_score = Column(Numeric(10, 4), nullable=False)
    entry_price = Column(Numeric(20, 8), nullable=True)
    stop_loss = Column(Numeric(20, 8), nullable=True)
    take_profit = Column(Numeric(20, 8), nullable=True)
    risk_reward_ratio = Column(Numeric(10, 4), nullable=True)
    technical_indicators = Column(JSON, nullable=False, default=dict)
    market_conditions = Column(JSON, nullable=False, default=dict)
    model_version = Column(String(50), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    executed = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_signals_symbol_created", "symbol", "created_at"),
        Index("idx_signals_active", "is_active", "executed", "expires_at"),
    )


class TradeTable(Base):
    """Recorded venue orders, linked to at most one signal."""

    __tablename__ = "trades"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(64), nullable=False)
    signal_id = Column(String(64), ForeignKey("signals.id"), nullable=True)
    orphan_signal_id = Column(String(64), nullable=True)
    symbol = Column(String(20), nullable=False)
    side = Column(String(4), nullable=False)
    order_type = Column(String(20), nullable=False)
    requested_quantity = Column(Numeric(30, 8), nullable=False)
    executed_quantity = Column(Numeric(30, 8), nullable=False, default=0)
    executed_price = Column(Numeric(20, 8), nullable=False, default=0)
    status = Column(String(20), nullable=False)
    commission = Column(Numeric(20, 8), nullable=False, default=0)
    commission_asset = Column(String(10), nullable=True)
    is_automated = Column(Boolean, nullable=False, default=False)
    is_testnet = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    executed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # NULLs do not collide: manual and orphan trades carry no signal_id
        Index("idx_trades_signal_id", "signal_id", unique=True),
        Index("idx_trades_order_id", "order_id"),
        Index("idx_trades_symbol_created", "symbol", "created_at"),
    )


def to_utc(value: datetime | None) -> datetime | None:
    """Normalize to aware UTC. Naive values (SQLite) are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str | None = None):
        settings = get_settings()
        url = database_url or settings.database_url

        # Convert postgresql:// to postgresql+asyncpg://
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        self.url = url

        if url.startswith("sqlite"):
            # Writers serialize on the file lock; wait instead of failing
            self.engine = create_async_engine(
                url,
                echo=settings.debug,
                connect_args={"timeout": 30},
            )
        else:
            self.engine = create_async_engine(
                url,
                echo=settings.debug,
                pool_size=10,
                max_overflow=20,
                pool_pre_ping=True,
                pool_recycle=3600,
                pool_timeout=30,
                connect_args={
                    "timeout": 10,
                    "command_timeout": 60,
                    "server_settings": {
                        "statement_timeout": "60000",
                    },
                },
            )
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_tables(self) -> None:
        """Create all tables."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create tables: {e}") from e

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session.

        Commits on success. IntegrityError propagates unchanged so callers
        can map constraint violations; other SQLAlchemy errors surface as
        StorageError.
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise
            except SQLAlchemyError as e:
                await session.rollback()
                raise StorageError(str(e)) from e
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close database connection."""
        await self.engine.dispose()


# Global database instance
_db: Database | None = None


def get_database() -> Database:
    """Get the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db


async def init_database(database_url: str | None = None) -> Database:
    """Initialize the database and create tables."""
    global _db
    if database_url is not None:
        _db = Database(database_url)
    db = get_database()
    await db.create_tables()
    return db
