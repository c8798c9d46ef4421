"""In-memory account balances for one processing cycle."""

from __future__ import annotations

from collections.abc import Mapping

from transfer_indexer.models import Account


class BalanceLedger:
    """Authoritative account map for the accounts touched by a batch.

    Seeded with persisted accounts; unknown ids are created at balance 0 the
    first time they are referenced. Balances are not clamped, so a negative
    balance means the feed delivered events out of causal order.
    """

    def __init__(self, accounts: Mapping[str, Account] | None = None) -> None:
        self._accounts: dict[str, Account] = dict(accounts or {})

    def __contains__(self, account_id: object) -> bool:
        return account_id in self._accounts

    def __len__(self) -> int:
        return len(self._accounts)

    @property
    def accounts(self) -> dict[str, Account]:
        return self._accounts

    def get_account(self, account_id: str) -> Account:
        account = self._accounts.get(account_id)
        if account is None:
            account = Account(id=account_id, balance=0)
            self._accounts[account_id] = account
        elif account.balance is None:
            account.balance = 0
        return account

    def apply_transfer(self, from_id: str, to_id: str, amount: int) -> tuple[Account, Account]:
        """Debit ``from_id`` and credit ``to_id``; a self-transfer nets to zero."""

        sender = self.get_account(from_id)
        recipient = self.get_account(to_id)
        sender.balance -= amount
        recipient.balance += amount
        return sender, recipient

    def total_balance(self) -> int:
        return sum(account.balance for account in self._accounts.values())


__all__ = ["BalanceLedger"]
