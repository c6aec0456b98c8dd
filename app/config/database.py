import asyncio
import logging

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from .settings import settings

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    """Opciones de pool: sqlite no acepta pool_size / max_overflow"""
    options = {"echo": settings.debug, "future": True, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(
            pool_recycle=1200,
            pool_size=20,
            max_overflow=40,
            pool_timeout=10,
            connect_args={
                "server_settings": {"application_name": "vm_backend"},
                "command_timeout": 60,
            },
        )
    return options


def _sqlite_transacciones_explicitas(engine: AsyncEngine) -> None:
    """
    pysqlite abre sus transacciones por su cuenta y no respeta SAVEPOINT:
    sin esto un begin_nested() liberado queda confirmado aunque la transacción
    externa hiciera rollback. Se desactiva su manejo y se emite BEGIN.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, **overrides) -> AsyncEngine:
    """Engine de la app; los tests solo cambian el pool"""
    options = _engine_options(url)
    options.update(overrides)
    new_engine = create_async_engine(url, **options)
    if url.startswith("sqlite"):
        _sqlite_transacciones_explicitas(new_engine)
    return new_engine


engine = build_engine(settings.database_url)

# Create session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=True,
    autocommit=False,
)

Base = declarative_base()


async def get_db() -> AsyncSession:
    """Get database session with proper error handling"""
    session = None
    try:
        session = async_session_factory()
        yield session
    except Exception:
        if session:
            await session.rollback()
        raise
    finally:
        if session:
            await session.close()


async def test_connection(max_retries: int = 5, delay: float = 2.0) -> bool:
    """Test database connection with retries"""
    for attempt in range(max_retries):
        try:
            async with async_session_factory() as session:
                await session.execute(text("SELECT 1"))
                logger.info("Database connection successful on attempt %s", attempt + 1)
                return True
        except Exception as e:
            logger.warning("Database connection attempt %s failed: %s", attempt + 1, e)
            if attempt < max_retries - 1:
                await asyncio.sleep(delay)
    logger.error("All database connection attempts failed")
    return False


async def wait_for_db(max_wait: int = 60) -> bool:
    """Wait for database to be ready"""
    logger.info("Waiting for database to be ready...")
    loop = asyncio.get_running_loop()
    start_time = loop.time()

    while True:
        if await test_connection(max_retries=1):
            return True

        if loop.time() - start_time > max_wait:
            logger.error("Timeout waiting for database after %s seconds", max_wait)
            return False

        await asyncio.sleep(2)


async def init_db():
    """Initialize database tables with connection verification"""
    # Import models so every table is registered on Base.metadata
    import app.models  # noqa: F401

    if not await wait_for_db():
        raise RuntimeError("Database is not ready")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables initialized successfully")
    return True


async def close_db():
    """Close database connections"""
    await engine.dispose()
    logger.info("Database connections closed")
