"""
Database Connection and Session Management

The queue lives in a single SQLite file (or ``:memory:`` in tests). Unlike a
server database the engine is owned by the bridge instance, so the helpers
here build engines instead of exposing a module-level one.
"""
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from discord_notify.core.logging import get_logger

logger = get_logger(__name__)

MEMORY_DB_PATH = ":memory:"

Base = declarative_base()


def build_database_url(db_path: str) -> str:
    """SQLAlchemy URL for the aiosqlite driver"""
    if db_path == MEMORY_DB_PATH:
        return "sqlite+aiosqlite:///:memory:"
    return f"sqlite+aiosqlite:///{db_path}"


def _enable_wal(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode = WAL")
    finally:
        cursor.close()


def build_engine(db_path: str, *, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the queue database.

    File databases get their parent directory created on demand and run in
    WAL journal mode. ``:memory:`` shares one connection (StaticPool) so that
    every session sees the same tables.
    """
    if db_path == MEMORY_DB_PATH:
        return create_async_engine(
            build_database_url(db_path),
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo,
        )

    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(
        build_database_url(str(path)),
        echo=echo,
    )
    event.listen(engine.sync_engine, "connect", _enable_wal)
    logger.debug(
        "Queue database engine created",
        extra_data={"db_path": str(path)}
    )
    return engine


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


async def init_database(engine: AsyncEngine) -> None:
    """Create the queue table and index when missing"""
    # Registers the model on Base.metadata
    from discord_notify.db.models import queued_message  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
