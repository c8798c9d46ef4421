"""Persistence for accounts, historical balances and transfers."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any, Protocol

from sqlalchemy import inspect, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from transfer_indexer.core.errors import AccountLoadFailure, DuplicateRecordId, PersistenceFailure
from transfer_indexer.models import Account, HistoricalBalance, Transfer

logger = logging.getLogger(__name__)

AppendOnlyRecord = HistoricalBalance | Transfer


class BatchStore(Protocol):
    async def load_accounts(self, ids: Iterable[str]) -> dict[str, Account]:
        ...

    async def persist_batch(
        self,
        accounts: Sequence[Account],
        historical_balances: Sequence[HistoricalBalance],
        transfers: Sequence[Transfer],
    ) -> None:
        ...


def _row(record: Any) -> dict[str, Any]:
    return {attr.key: getattr(record, attr.key) for attr in inspect(type(record)).column_attrs}


class TransferStore:
    """SQLAlchemy-backed store; ``persist_batch`` commits everything or nothing."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def load_accounts(self, ids: Iterable[str]) -> dict[str, Account]:
        wanted = sorted(set(ids))
        if not wanted:
            return {}
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(Account).where(Account.id.in_(wanted)))
                return {account.id: account for account in result.scalars()}
        except (SQLAlchemyError, OSError) as exc:
            raise AccountLoadFailure(f"Failed to load {len(wanted)} accounts: {exc}") from exc

    async def upsert_accounts(self, accounts: Sequence[Account]) -> None:
        await self.persist_batch(accounts, [], [])

    async def append_records(self, records: Sequence[AppendOnlyRecord]) -> None:
        historical = [r for r in records if isinstance(r, HistoricalBalance)]
        transfers = [r for r in records if isinstance(r, Transfer)]
        await self.persist_batch([], historical, transfers)

    async def persist_batch(
        self,
        accounts: Sequence[Account],
        historical_balances: Sequence[HistoricalBalance],
        transfers: Sequence[Transfer],
    ) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await self._upsert_accounts(session, accounts)
                    await self._insert(session, HistoricalBalance, historical_balances)
                    await self._insert(session, Transfer, transfers)
        except IntegrityError as exc:
            raise DuplicateRecordId(f"Append-only record already exists: {exc.orig}") from exc
        except (SQLAlchemyError, OSError) as exc:
            raise PersistenceFailure(f"Failed to persist batch: {exc}") from exc
        logger.debug(
            "Persisted %d accounts, %d historical balances, %d transfers",
            len(accounts),
            len(historical_balances),
            len(transfers),
        )

    async def _upsert_accounts(self, session: AsyncSession, accounts: Sequence[Account]) -> None:
        if not accounts:
            return
        insert = sqlite.insert if session.bind.dialect.name == "sqlite" else postgresql.insert
        stmt = insert(Account).values([{"id": a.id, "balance": a.balance} for a in accounts])
        stmt = stmt.on_conflict_do_update(
            index_elements=[Account.id],
            set_={"balance": stmt.excluded.balance},
        )
        await session.execute(stmt)

    async def _insert(self, session: AsyncSession, model: type[Any], records: Sequence[Any]) -> None:
        if not records:
            return
        await session.execute(model.__table__.insert(), [_row(record) for record in records])


__all__ = ["AppendOnlyRecord", "BatchStore", "TransferStore"]
