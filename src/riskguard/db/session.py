"""
Async engine and session factory.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from riskguard.config import Settings, settings as default_settings


def create_session_factory(settings: Optional[Settings] = None) -> async_sessionmaker:
    """Build the session factory for settings.database_url."""
    settings = settings or default_settings
    engine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_pre_ping=True,
    )
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
