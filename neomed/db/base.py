"""
Database engine, session factory and the per-process application context.
"""

import asyncio
from typing import Optional, Any, Dict
from sqlmodel import SQLModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.pool import StaticPool

from neomed.core.config import Settings
from neomed.core.logging import get_logger
from neomed.core.security import SecurityManager
from neomed.services.mevo_client import MevoClient

# Importing the models registers their tables on SQLModel.metadata
from neomed.models import utcnow

logger = get_logger(__name__)


def create_engine_for(settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured database URL."""
    if settings.is_sqlite:
        return create_async_engine(
            settings.database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=settings.debug,
        )

    return create_async_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=settings.debug,
    )


def dialect_insert(db: AsyncSession, model):
    """``INSERT`` construct that supports ``ON CONFLICT`` for the session's dialect."""
    if db.bind.dialect.name == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)


class AppContext:
    """Everything a request handler shares with the rest of the process.

    Built once by ``create_app`` and kept on ``app.state.context``.
    """

    def __init__(
        self,
        settings: Settings,
        engine: Optional[AsyncEngine] = None,
        mevo_client: Optional[MevoClient] = None,
    ):
        self.settings = settings
        self.engine = engine or create_engine_for(settings)
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self.security = SecurityManager(settings)
        self.mevo_client = mevo_client or MevoClient(settings)
        self._schema_task: Optional[asyncio.Task] = None

    async def _create_schema(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("Database schema ready")

    async def ensure_schema(self):
        """Create tables once per process; a failed attempt is retried on the next call."""
        if self._schema_task is None:
            self._schema_task = asyncio.ensure_future(self._create_schema())
        try:
            await asyncio.shield(self._schema_task)
        except Exception:
            self._schema_task = None
            logger.error("Database schema setup failed", exc_info=True)
            raise

    async def close(self):
        """Release pooled connections and the outbound HTTP client."""
        await self.mevo_client.aclose()
        await self.engine.dispose()


# Health check utilities
async def check_database_health(context: AppContext) -> Dict[str, Any]:
    """Check database connectivity and health."""
    try:
        async with context.session_factory() as session:
            await session.execute(text("SELECT 1"))
            return {
                "status": "healthy",
                "database": "connected",
                "timestamp": utcnow().isoformat()
            }
    except Exception as e:
        return {
            "status": "unhealthy",
            "database": "disconnected",
            "error": str(e),
            "timestamp": utcnow().isoformat()
        }
