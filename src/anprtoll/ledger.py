"""Billing ledger.

A charge is a single store batch with three writes:

1. the trip moves to ``completed``, guarded on it still being in progress;
2. the owner's wallet is decremented by a signed increment;
3. a debit transaction is appended.

The guard makes the batch idempotent per trip: two concurrent resolutions
of the same trip can both reach the ledger, but only one batch commits and
the other is rejected with :class:`TollConflictError` without writing
anything.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable

from anprtoll._constants import OWNERS_COLLECTION, TRANSACTIONS_COLLECTION, TRIPS_COLLECTION
from anprtoll.exceptions import TollCommitError, TollNotFoundError, TollStoreError
from anprtoll.models.transaction import Transaction, TransactionType
from anprtoll.models.trip import TripStatus
from anprtoll.store.base import SERVER_TIMESTAMP, DocumentStore, Increment, SetWrite, UpdateWrite, Write

_logger = logging.getLogger(__name__)


def _new_transaction_id() -> str:
    return uuid.uuid4().hex


def describe_charge(zone_name: str) -> str:
    return f"Toll Finalized - {zone_name} (ANPR Backup)"


class BillingLedger:
    """Moves money for exited trips, atomically and at most once per trip."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        id_factory: Callable[[], str] = _new_transaction_id,
    ) -> None:
        self._store = store
        self._id_factory = id_factory

    async def charge(
        self,
        *,
        trip_id: str,
        owner_id: str,
        amount: float,
        plate: str,
        zone_name: str,
    ) -> Transaction | None:
        """Debit *owner_id* for trip *trip_id* and complete the trip.

        A zero amount completes the trip without touching the wallet and
        returns ``None``.

        Raises
        ------
        TollConflictError
            The trip is no longer in progress; nothing was written.
        TollCommitError
            The batch could not be committed; nothing was written and the
            trip is still in progress.
        """
        transaction: Transaction | None = None
        trip_fields: dict[str, object] = {
            "status": TripStatus.COMPLETED,
            "resolvedAt": SERVER_TIMESTAMP,
        }
        money_writes: list[Write] = []

        if amount > 0:
            transaction = Transaction(
                id=self._id_factory(),
                amount=amount,
                type=TransactionType.DEBIT,
                user_id=owner_id,
                plate=plate,
                description=describe_charge(zone_name),
                trip_id=trip_id,
            )
            trip_fields["transactionId"] = transaction.id
            record = transaction.to_record()
            record["timestamp"] = SERVER_TIMESTAMP
            money_writes.append(UpdateWrite(OWNERS_COLLECTION, owner_id, {"walletBalance": Increment(-amount)}))
            money_writes.append(SetWrite(TRANSACTIONS_COLLECTION, transaction.id, record))

        # Guard first: a lost race rejects the batch before any money write is staged.
        writes: list[Write] = [
            UpdateWrite(
                TRIPS_COLLECTION,
                trip_id,
                trip_fields,
                expected={"status": TripStatus.IN_PROGRESS},
            ),
            *money_writes,
        ]

        try:
            await self._store.run_batch(writes)
        except (TollStoreError, TollNotFoundError) as exc:
            _logger.error("Failed to process payment for %s (trip %s): %s", plate, trip_id, exc)
            raise TollCommitError(f"Charge for trip {trip_id} was not committed: {exc}", trip_id=trip_id) from exc

        if transaction is None:
            _logger.info("Trip %s completed without charge (amount %.2f)", trip_id, amount)
        else:
            _logger.info(
                "Trip %s finalized: wallet of %s debited %.2f for %s (transaction %s)",
                trip_id,
                owner_id,
                amount,
                plate,
                transaction.id,
            )
        return transaction
