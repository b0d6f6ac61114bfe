from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import AsyncAdaptedQueuePool
from sqlalchemy import text
from sleep_service.core.config import settings
from sleep_service.core.logger import get_logger

logger = get_logger("database")


def _engine_options(url: str) -> dict:
    """Pool and driver options for the configured dialect."""
    if url.startswith("sqlite"):
        return {"echo": False, "future": True}

    # Determine SSL requirement based on environment
    ssl_config = {} if settings.ENVIRONMENT == "development" else {"ssl": "require"}
    return {
        "echo": False,
        "connect_args": {
            **ssl_config,
            "server_settings": {
                "application_name": "soulence_sleep_service",
                "jit": "off",
            },
            "command_timeout": 30,
        },
        "poolclass": AsyncAdaptedQueuePool,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": 30,
        "pool_recycle": 1800,
        "pool_pre_ping": True,
        "future": True,
    }


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False
)

async def get_db():
    """Dependency for getting database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


class DatabaseQueries:

    @staticmethod
    async def get_pipeline_stats(db: AsyncSession):
        """Row counts for the sleep analysis pipeline tables."""
        stats_query = text("""
        SELECT
            (SELECT COUNT(*) FROM sleep_sessions) as total_sleep_sessions,
            (SELECT COUNT(*) FROM sleep_patterns) as total_sleep_patterns,
            (SELECT COUNT(*) FROM cross_service_events WHERE processed = false) as pending_events,
            (SELECT COUNT(*) FROM sleep_interventions WHERE status = 'pending') as pending_interventions
        """)

        result = await db.execute(stats_query)
        row = result.first()

        return {
            'total_sleep_sessions': row.total_sleep_sessions or 0,
            'total_sleep_patterns': row.total_sleep_patterns or 0,
            'pending_events': row.pending_events or 0,
            'pending_interventions': row.pending_interventions or 0,
        }
