"""Database engine and session utilities."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create the async engine used by the store."""

    return create_async_engine(database_url, echo=echo, future=True)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory whose objects stay usable after commit."""

    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


__all__ = ["build_engine", "build_session_factory"]
