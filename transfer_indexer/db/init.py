"""Database schema initialization helpers."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from transfer_indexer.db.base import Base

# Import models so that SQLAlchemy is aware of all tables before create_all runs.
import transfer_indexer.models  # noqa: F401  # pylint: disable=unused-import

logger = logging.getLogger(__name__)


async def init_database(engine: AsyncEngine) -> None:
    """Ensure all indexer tables exist."""

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except SQLAlchemyError:
        logger.exception("Failed to initialise database schema")
        raise


__all__ = ["init_database"]
