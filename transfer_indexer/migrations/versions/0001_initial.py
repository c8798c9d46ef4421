"""Initial schema for the transfer indexer."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

from transfer_indexer.models.ledger import QuotePrice, TokenAmount

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "account",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column("balance", TokenAmount(), nullable=False, server_default="0"),
    )

    op.create_table(
        "historical_balance",
        sa.Column("id", sa.String(length=160), primary_key=True),
        sa.Column("account_id", sa.String(length=128), sa.ForeignKey("account.id"), nullable=False),
        sa.Column("balance", TokenAmount(), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_historical_balance_account_date", "historical_balance", ["account_id", "date"])

    op.create_table(
        "transfer",
        sa.Column("id", sa.String(length=160), primary_key=True),
        sa.Column("from_id", sa.String(length=128), sa.ForeignKey("account.id"), nullable=False),
        sa.Column("to_id", sa.String(length=128), sa.ForeignKey("account.id"), nullable=False),
        sa.Column("amount", TokenAmount(), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("price", QuotePrice(), nullable=False, server_default="0"),
    )
    op.create_index("ix_transfer_from_id", "transfer", ["from_id"])
    op.create_index("ix_transfer_to_id", "transfer", ["to_id"])
    op.create_index("ix_transfer_date", "transfer", ["date"])


def downgrade() -> None:
    op.drop_index("ix_transfer_date", table_name="transfer")
    op.drop_index("ix_transfer_to_id", table_name="transfer")
    op.drop_index("ix_transfer_from_id", table_name="transfer")
    op.drop_table("transfer")
    op.drop_index("ix_historical_balance_account_date", table_name="historical_balance")
    op.drop_table("historical_balance")
    op.drop_table("account")
