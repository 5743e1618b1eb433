"""Wallet transaction model."""

from __future__ import annotations

from enum import StrEnum

from anprtoll.models._base import StoreTimestamp, TollBaseModel


class TransactionType(StrEnum):
    DEBIT = "debit"


class Transaction(TollBaseModel):
    """Append-only ledger entry written once per charged trip.

    ``user_id`` and ``trip_id`` are weak references kept for audit.
    """

    id: str = ""
    amount: float
    type: TransactionType = TransactionType.DEBIT
    timestamp: StoreTimestamp = None
    user_id: str
    plate: str
    description: str = ""
    trip_id: str = ""
