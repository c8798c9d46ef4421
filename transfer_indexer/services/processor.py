"""Apply a batch of raw transfers to account balances and price them."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date

from transfer_indexer.ingest.feed import RawTransferEvent
from transfer_indexer.models import UNKNOWN_PRICE, Account, HistoricalBalance, Transfer
from transfer_indexer.services.ledger import BalanceLedger
from transfer_indexer.services.price_resolver import PriceResolver, day_key

logger = logging.getLogger(__name__)


@dataclass
class BatchOutput:
    """Records produced by one batch, ready to be persisted as a unit."""

    accounts: list[Account] = field(default_factory=list)
    historical_balances: list[HistoricalBalance] = field(default_factory=list)
    transfers: list[Transfer] = field(default_factory=list)

    @property
    def priced_transfers(self) -> int:
        return sum(1 for transfer in self.transfers if transfer.price != UNKNOWN_PRICE)


class TransferProcessor:
    """Consume events strictly in arrival order.

    Each event sees the balance effects of every earlier event in the batch.
    Record ids are derived from the event id, so reprocessing an event yields
    the same ids even though balances would be applied twice.
    """

    def __init__(self, resolver: PriceResolver, *, quotes_begin: date | None = None) -> None:
        self._resolver = resolver
        self._quotes_begin = quotes_begin or resolver.quotes_begin

    async def process_batch(
        self,
        events: Sequence[RawTransferEvent],
        accounts: Mapping[str, Account],
    ) -> BatchOutput:
        ledger = BalanceLedger(accounts)
        output = BatchOutput()

        for event in events:
            sender, recipient = ledger.apply_transfer(event.from_, event.to, event.amount)
            occurred_at = event.occurred_at

            output.historical_balances.append(
                HistoricalBalance(
                    id=f"{event.id}-from",
                    account_id=sender.id,
                    balance=sender.balance,
                    date=occurred_at,
                )
            )
            output.historical_balances.append(
                HistoricalBalance(
                    id=f"{event.id}-to",
                    account_id=recipient.id,
                    balance=recipient.balance,
                    date=occurred_at,
                )
            )

            if day_key(occurred_at) < self._quotes_begin:
                price = UNKNOWN_PRICE
            else:
                price = await self._resolver.resolve_price(occurred_at)

            output.transfers.append(
                Transfer(
                    id=f"{event.id}-transfer",
                    from_id=sender.id,
                    to_id=recipient.id,
                    amount=event.amount,
                    date=occurred_at,
                    price=price,
                )
            )

        output.accounts = list(ledger.accounts.values())
        logger.debug(
            "Processed %d events touching %d accounts (%d priced)",
            len(events),
            len(output.accounts),
            output.priced_transfers,
        )
        return output


__all__ = ["BatchOutput", "TransferProcessor"]
