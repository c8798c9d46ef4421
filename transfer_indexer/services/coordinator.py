"""Run processing cycles: load accounts, process a batch, persist the result."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from opentelemetry import metrics, trace

from transfer_indexer.ingest.feed import RawTransferEvent
from transfer_indexer.services.processor import TransferProcessor
from transfer_indexer.services.store import BatchStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)
meter = metrics.get_meter(__name__)

_transfers_counter = meter.create_counter(
    "indexer.transfers",
    unit="1",
    description="Transfers committed by the indexer",
)


@dataclass(frozen=True)
class CycleResult:
    events: int
    accounts: int
    historical_balances: int
    transfers: int
    priced_transfers: int


EMPTY_CYCLE = CycleResult(events=0, accounts=0, historical_balances=0, transfers=0, priced_transfers=0)


class BatchCoordinator:
    """Drive one cycle at a time over a batch of raw events.

    Nothing is written until the whole batch has been processed in memory, so
    a cycle that fails (account load, bulk price warm, persistence) leaves the
    store untouched and the same batch can be delivered again.
    """

    def __init__(self, store: BatchStore, processor: TransferProcessor) -> None:
        self._store = store
        self._processor = processor
        self._lock = asyncio.Lock()

    async def run_cycle(self, events: Sequence[RawTransferEvent]) -> CycleResult:
        if not events:
            return EMPTY_CYCLE

        async with self._lock:
            with tracer.start_as_current_span("indexer.cycle") as span:
                span.set_attribute("indexer.events", len(events))
                first_id, last_id = events[0].id, events[-1].id
                try:
                    account_ids = {event.from_ for event in events} | {event.to for event in events}
                    accounts = await self._store.load_accounts(account_ids)
                    output = await self._processor.process_batch(events, accounts)
                    await self._store.persist_batch(
                        output.accounts,
                        output.historical_balances,
                        output.transfers,
                    )
                except Exception as exc:
                    span.record_exception(exc)
                    logger.exception("Cycle for events %s..%s failed; batch not committed", first_id, last_id)
                    raise

                result = CycleResult(
                    events=len(events),
                    accounts=len(output.accounts),
                    historical_balances=len(output.historical_balances),
                    transfers=len(output.transfers),
                    priced_transfers=output.priced_transfers,
                )
                span.set_attribute("indexer.accounts", result.accounts)
                span.set_attribute("indexer.priced_transfers", result.priced_transfers)

        _transfers_counter.add(result.transfers)
        logger.info(
            "Committed events %s..%s: %d transfers (%d priced), %d accounts",
            first_id,
            last_id,
            result.transfers,
            result.priced_transfers,
            result.accounts,
        )
        return result

    async def run(self, feed: Iterable[Sequence[RawTransferEvent]]) -> list[CycleResult]:
        """Process every batch of ``feed`` in order, stopping at the first failure."""

        results: list[CycleResult] = []
        for batch in feed:
            results.append(await self.run_cycle(batch))
        return results


__all__ = ["BatchCoordinator", "CycleResult", "EMPTY_CYCLE"]
