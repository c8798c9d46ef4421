"""Account, historical balance and transfer models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator, TypeEngine

from transfer_indexer.db.base import Base

# Price recorded when no quote exists for a transfer's day.
UNKNOWN_PRICE = Decimal("0")


class TokenAmount(TypeDecorator):
    """Signed 128-bit integer stored as NUMERIC(39, 0).

    SQLite has no exact decimal storage and binds NUMERIC through float, so
    there the value is kept as its decimal text instead.
    """

    impl = Numeric(39, 0)
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine[Any]:
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(40))
        return dialect.type_descriptor(Numeric(39, 0))

    def process_bind_param(self, value: Any, dialect: Dialect) -> Any:
        if value is None:
            return None
        if dialect.name == "sqlite":
            return str(int(value))
        return Decimal(int(value))

    def process_result_value(self, value: Any, dialect: Dialect) -> int | None:
        if value is None:
            return None
        return int(value)


class QuotePrice(TypeDecorator):
    """Quote with 18 fractional digits; decimal text on SQLite like :class:`TokenAmount`."""

    impl = Numeric(38, 18)
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine[Any]:
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(48))
        return dialect.type_descriptor(Numeric(38, 18))

    def process_bind_param(self, value: Any, dialect: Dialect) -> Any:
        if value is None:
            return None
        price = Decimal(value)
        if dialect.name == "sqlite":
            return str(price)
        return price

    def process_result_value(self, value: Any, dialect: Dialect) -> Decimal | None:
        if value is None:
            return None
        return Decimal(str(value))


class Account(Base):
    __tablename__ = "account"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    balance: Mapped[int] = mapped_column(TokenAmount, default=0)

    def __repr__(self) -> str:
        return f"Account(id={self.id!r}, balance={self.balance})"


class HistoricalBalance(Base):
    __tablename__ = "historical_balance"
    __table_args__ = (Index("ix_historical_balance_account_date", "account_id", "date"),)

    id: Mapped[str] = mapped_column(String(160), primary_key=True)
    account_id: Mapped[str] = mapped_column(ForeignKey("account.id"))
    balance: Mapped[int] = mapped_column(TokenAmount)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    account: Mapped[Account] = relationship(viewonly=True)


class Transfer(Base):
    __tablename__ = "transfer"
    __table_args__ = (
        Index("ix_transfer_from_id", "from_id"),
        Index("ix_transfer_to_id", "to_id"),
        Index("ix_transfer_date", "date"),
    )

    id: Mapped[str] = mapped_column(String(160), primary_key=True)
    from_id: Mapped[str] = mapped_column(ForeignKey("account.id"))
    to_id: Mapped[str] = mapped_column(ForeignKey("account.id"))
    amount: Mapped[int] = mapped_column(TokenAmount)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    price: Mapped[Decimal] = mapped_column(QuotePrice, default=UNKNOWN_PRICE)

    sender: Mapped[Account] = relationship(foreign_keys=[from_id], viewonly=True)
    recipient: Mapped[Account] = relationship(foreign_keys=[to_id], viewonly=True)


__all__ = ["Account", "HistoricalBalance", "QuotePrice", "Transfer", "TokenAmount", "UNKNOWN_PRICE"]
