"""Store tests against a throwaway SQLite database."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import func, select

from transfer_indexer.core.errors import AccountLoadFailure, DuplicateRecordId
from transfer_indexer.db.init import init_database
from transfer_indexer.db.session import build_engine, build_session_factory
from transfer_indexer.models import Account, HistoricalBalance, Transfer
from transfer_indexer.services.store import TransferStore

WHEN = datetime(2022, 3, 1, 12, tzinfo=timezone.utc)


async def _open_store(tmp_path: Path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'indexer.db'}")
    await init_database(engine)
    return engine, TransferStore(build_session_factory(engine))


def _history(event_id: str, account_id: str, balance: int) -> list[HistoricalBalance]:
    return [HistoricalBalance(id=f"{event_id}-{side}", account_id=account_id, balance=balance, date=WHEN) for side in ("from", "to")]


def _transfer(event_id: str) -> Transfer:
    return Transfer(
        id=f"{event_id}-transfer",
        from_id="A",
        to_id="B",
        amount=100,
        date=WHEN,
        price=Decimal("2.5"),
    )


async def _count(engine, model) -> int:
    async with build_session_factory(engine)() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.mark.asyncio
async def test_load_missing_ids_is_not_an_error(tmp_path: Path):
    engine, store = await _open_store(tmp_path)
    try:
        assert await store.load_accounts(["nobody"]) == {}
        assert await store.load_accounts([]) == {}
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_persist_then_load_round_trip(tmp_path: Path):
    engine, store = await _open_store(tmp_path)
    try:
        await store.persist_batch(
            [Account(id="A", balance=-100), Account(id="B", balance=100)],
            _history("e1", "A", -100),
            [_transfer("e1")],
        )

        loaded = await store.load_accounts({"A", "B", "C"})

        assert {k: v.balance for k, v in loaded.items()} == {"A": -100, "B": 100}
        assert await _count(engine, HistoricalBalance) == 2
        assert await _count(engine, Transfer) == 1
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_upsert_updates_existing_balances(tmp_path: Path):
    engine, store = await _open_store(tmp_path)
    try:
        await store.upsert_accounts([Account(id="A", balance=10)])
        await store.upsert_accounts([Account(id="A", balance=25), Account(id="B", balance=-5)])

        loaded = await store.load_accounts({"A", "B"})

        assert loaded["A"].balance == 25
        assert loaded["B"].balance == -5
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_duplicate_record_rolls_back_whole_batch(tmp_path: Path):
    engine, store = await _open_store(tmp_path)
    try:
        await store.persist_batch([Account(id="A", balance=1)], [], [_transfer("e1")])

        with pytest.raises(DuplicateRecordId):
            await store.persist_batch(
                [Account(id="A", balance=999)],
                _history("e2", "A", 999),
                [_transfer("e1")],
            )

        loaded = await store.load_accounts({"A"})
        assert loaded["A"].balance == 1
        assert await _count(engine, HistoricalBalance) == 0
        assert await _count(engine, Transfer) == 1
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_append_records_accepts_mixed_records(tmp_path: Path):
    engine, store = await _open_store(tmp_path)
    try:
        await store.upsert_accounts([Account(id="A", balance=0), Account(id="B", balance=0)])
        await store.append_records([*_history("e1", "A", 0), _transfer("e1")])

        assert await _count(engine, HistoricalBalance) == 2
        assert await _count(engine, Transfer) == 1
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_load_failure_is_reported(tmp_path: Path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing-schema.db'}")
    store = TransferStore(build_session_factory(engine))
    try:
        with pytest.raises(AccountLoadFailure):
            await store.load_accounts({"A"})
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_extreme_amounts_and_prices_round_trip_exactly(tmp_path: Path):
    engine, store = await _open_store(tmp_path)
    top, bottom = 2**127 - 1, -(2**127)
    price = Decimal("12345678901234567890.123456789012345678")
    try:
        await store.persist_batch(
            [Account(id="A", balance=top), Account(id="B", balance=bottom)],
            _history("e1", "A", top),
            [Transfer(id="e1-transfer", from_id="B", to_id="A", amount=2**128 - 1, date=WHEN, price=price)],
        )

        loaded = await store.load_accounts({"A", "B"})
        async with build_session_factory(engine)() as session:
            history = (await session.execute(select(HistoricalBalance.balance))).scalars().all()
            transfer = (await session.execute(select(Transfer))).scalar_one()

        assert loaded["A"].balance == top
        assert loaded["B"].balance == bottom
        assert history == [top, top]
        assert transfer.amount == 2**128 - 1
        assert transfer.price == price
    finally:
        await engine.dispose()
