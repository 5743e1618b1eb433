"""Exit resolution.

Deciding what an exited trip owes is the same three-way choice whether the
trip exits immediately (GPS already active at the first sighting) or after
going idle:

* no owner → the trip waits for an invoice;
* owner with active GPS → the camera toll is bypassed;
* owner without GPS → the flat-rate toll is charged to the wallet.

:func:`decide_exit` is that choice and nothing else; :class:`ExitResolver`
applies it to a stored trip using a fresh read of the owner's GPS status.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import Any

from anprtoll._constants import TRIPS_COLLECTION
from anprtoll.exceptions import TollCommitError, TollConflictError, TollNotFoundError, TollStoreError
from anprtoll.ledger import BillingLedger
from anprtoll.models.owner import GpsStatus
from anprtoll.models.trip import Trip, TripStatus
from anprtoll.registry import VehicleRegistry
from anprtoll.store.base import SERVER_TIMESTAMP, DocumentStore, UpdateWrite

_logger = logging.getLogger(__name__)


class ExitDecision(StrEnum):
    INVOICE = "invoice"
    BYPASS = "bypass"
    CHARGE = "charge"


class ExitOutcome(StrEnum):
    INVOICED = "invoiced"
    BYPASSED = "bypassed"
    CHARGED = "charged"
    ALREADY_RESOLVED = "already-resolved"


def decide_exit(owner_id: str | None, gps_status: GpsStatus) -> ExitDecision:
    """The single bypass/charge/defer rule shared by every exit path."""
    if owner_id is None:
        return ExitDecision.INVOICE
    if gps_status.is_active:
        return ExitDecision.BYPASS
    return ExitDecision.CHARGE


def bypass_reason(gps_status: GpsStatus) -> str:
    return f"GPS {gps_status.value}"


class ExitResolver:
    """Drives an in-progress trip into its terminal state."""

    def __init__(self, store: DocumentStore, registry: VehicleRegistry, ledger: BillingLedger) -> None:
        self._store = store
        self._registry = registry
        self._ledger = ledger

    async def resolve(self, trip: Trip) -> ExitOutcome:
        """Resolve one exited trip.

        Raises
        ------
        TollUpstreamError
            The owner record could not be read; the trip is left untouched.
        TollCommitError
            The terminal transition could not be committed; the trip stays
            in progress and can be resolved again later.
        """
        if not trip.is_open:
            return ExitOutcome.ALREADY_RESOLVED

        owner_id = trip.owner_id
        gps_status = GpsStatus.UNKNOWN
        if owner_id is not None:
            owner = await self._registry.get_owner(owner_id)
            if owner is None:
                _logger.warning("Trip %s references missing owner %s; deferring to invoice", trip.id, owner_id)
                owner_id = None
            else:
                gps_status = owner.gps_status

        decision = decide_exit(owner_id, gps_status)

        if decision is ExitDecision.INVOICE or owner_id is None:
            if not await self._finalize(trip, {"status": TripStatus.INVOICE_PENDING}):
                return ExitOutcome.ALREADY_RESOLVED
            _logger.info("Unregistered vehicle %s finalized: trip %s awaiting invoice", trip.plate, trip.id)
            return ExitOutcome.INVOICED

        if decision is ExitDecision.BYPASS:
            fields = {
                "status": TripStatus.BYPASSED,
                "totalToll": 0.0,
                "bypassReason": bypass_reason(gps_status),
            }
            if not await self._finalize(trip, fields):
                return ExitOutcome.ALREADY_RESOLVED
            _logger.info("Trip %s bypassed: GPS %s at exit", trip.id, gps_status.value)
            return ExitOutcome.BYPASSED

        try:
            await self._ledger.charge(
                trip_id=trip.id,
                owner_id=owner_id,
                amount=trip.total_toll,
                plate=trip.plate,
                zone_name=trip.toll_zone_name,
            )
        except TollConflictError:
            _logger.info("Trip %s was resolved concurrently; charge skipped", trip.id)
            return ExitOutcome.ALREADY_RESOLVED
        return ExitOutcome.CHARGED

    async def _finalize(self, trip: Trip, fields: dict[str, Any]) -> bool:
        """Guarded terminal transition; ``False`` if the trip already left in-progress."""
        write = UpdateWrite(
            TRIPS_COLLECTION,
            trip.id,
            {**fields, "resolvedAt": SERVER_TIMESTAMP},
            expected={"status": TripStatus.IN_PROGRESS},
        )
        try:
            await self._store.run_batch([write])
        except TollConflictError:
            _logger.info("Trip %s was resolved concurrently; nothing to do", trip.id)
            return False
        except (TollStoreError, TollNotFoundError) as exc:
            raise TollCommitError(f"Could not finalize trip {trip.id}: {exc}", trip_id=trip.id) from exc
        return True
