"""Database engine, session factory, and declarative base.

Only one table lives here today (`onboarding_progress`), used by the
database-backed progress gateway.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from clinic_onboarding.config import settings

# SQLite (used in tests and local runs) has no connection pool to size
_pool_kwargs = {} if settings.database_url.startswith("sqlite") else {
    "pool_size": 20,
    "max_overflow": 10,
}

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_pool_kwargs,
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    pass
