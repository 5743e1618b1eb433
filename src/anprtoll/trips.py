"""Trip state machine.

Lifecycle::

    (none) ──sighting──▶ in-progress ──exit──▶ completed | bypassed | invoice-pending
       │                    ▲   │
       │                    └───┘ later sighting: extend
       └──sighting, GPS active──▶ bypassed

Only the exit resolver moves a stored trip out of ``in-progress``.  The
single exception is a vehicle whose owner's GPS is already active at the
first sighting: that trip is written directly as bypassed, using the same
exit decision as the resolver.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

from anprtoll._constants import DEFAULT_FLAT_RATE, TRIPS_COLLECTION, ZONES_COLLECTION
from anprtoll.exceptions import TollConflictError, TollNotFoundError, TollUpstreamError
from anprtoll.ingestion.cooldown import CooldownFilter
from anprtoll.models.owner import GpsStatus, Registration
from anprtoll.models.trip import Trip, TripStatus
from anprtoll.models.zone import TollZone
from anprtoll.registry import VehicleRegistry
from anprtoll.resolver import ExitDecision, bypass_reason, decide_exit
from anprtoll.store.base import SERVER_TIMESTAMP, DocumentStore, Filter, Increment, UpdateWrite

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SightingKind(StrEnum):
    DUPLICATE = "duplicate"
    EXTENDED = "extended"
    CREATED = "created"
    BYPASSED = "bypassed"


@dataclass(frozen=True, slots=True)
class SightingOutcome:
    """What one sighting did to the trip table."""

    kind: SightingKind
    plate: str
    trip: Trip | None = None
    registration: Registration | None = None

    @property
    def is_registered(self) -> bool:
        if self.registration is not None:
            return True
        return self.trip is not None and self.trip.owner_id is not None


class TripStateMachine:
    """Consumes normalized sightings and creates or extends trips."""

    def __init__(
        self,
        store: DocumentStore,
        registry: VehicleRegistry,
        cooldown: CooldownFilter,
        *,
        default_flat_rate: float = DEFAULT_FLAT_RATE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._registry = registry
        self._cooldown = cooldown
        self._default_flat_rate = default_flat_rate
        self._clock = clock

    async def record_sighting(self, plate: str, zone_id: str, zone_name: str = "") -> SightingOutcome:
        """Apply one sighting of a normalized *plate* in zone *zone_id*.

        Raises
        ------
        TollNotFoundError
            The zone does not exist; nothing was written.
        """
        now = self._clock()
        if await self._cooldown.is_duplicate(plate, zone_id, now):
            return SightingOutcome(kind=SightingKind.DUPLICATE, plate=plate)

        active = await self.find_active(plate, zone_id)
        if active is not None:
            extended = await self._extend(active)
            if extended is not None:
                return SightingOutcome(kind=SightingKind.EXTENDED, plate=plate, trip=extended)

        return await self._open(plate, zone_id, zone_name)

    async def find_active(self, plate: str, zone_id: str) -> Trip | None:
        """The in-progress trip for (plate, zone), if any."""
        docs = await self._store.query(
            TRIPS_COLLECTION,
            Filter("plate", "==", plate),
            Filter("status", "==", TripStatus.IN_PROGRESS),
            Filter("tollZoneId", "==", zone_id),
            order_by="lastSightingTimestamp",
            descending=True,
            limit=1,
        )
        return Trip.from_document(docs[0]) if docs else None

    async def get_trip(self, trip_id: str) -> Trip:
        doc = await self._store.get(TRIPS_COLLECTION, trip_id)
        if doc is None:
            raise TollNotFoundError(f"Trip {trip_id} not found", collection=TRIPS_COLLECTION, doc_id=trip_id)
        return Trip.from_document(doc)

    async def get_zone(self, zone_id: str) -> TollZone:
        doc = await self._store.get(ZONES_COLLECTION, zone_id)
        if doc is None:
            raise TollNotFoundError(f"Toll zone {zone_id} not found", collection=ZONES_COLLECTION, doc_id=zone_id)
        return TollZone.from_document(doc)

    async def _extend(self, trip: Trip) -> Trip | None:
        """Extend *trip*; ``None`` if it was resolved in the meantime."""
        write = UpdateWrite(
            TRIPS_COLLECTION,
            trip.id,
            {"lastSightingTimestamp": SERVER_TIMESTAMP, "cameraCount": Increment(1)},
            expected={"status": TripStatus.IN_PROGRESS},
        )
        try:
            await self._store.run_batch([write])
        except TollConflictError:
            _logger.info("Trip %s for %s closed before it could be extended; starting a new one", trip.id, trip.plate)
            return None
        _logger.debug("Trip %s extended (camera %d) for %s", trip.id, trip.camera_count + 1, trip.plate)
        return await self.get_trip(trip.id)

    async def _lookup(self, plate: str) -> Registration | None:
        try:
            return await self._registry.lookup(plate)
        except TollUpstreamError as exc:
            _logger.warning("Registry lookup failed for %s, treating as unregistered: %s", plate, exc)
            return None

    async def _open(self, plate: str, zone_id: str, zone_name: str) -> SightingOutcome:
        zone = await self.get_zone(zone_id)
        registration = await self._lookup(plate)

        owner_id = registration.owner_id if registration is not None else None
        gps_status = registration.gps_status if registration is not None else GpsStatus.UNKNOWN

        trip = Trip.open(
            plate=plate,
            toll_zone_id=zone_id,
            toll_zone_name=zone_name or zone.name,
            total_toll=zone.rate(self._default_flat_rate),
            owner_id=owner_id,
            owner_name=registration.owner_name if registration is not None else None,
        )
        record = trip.to_record()
        record["startTime"] = SERVER_TIMESTAMP
        record["lastSightingTimestamp"] = SERVER_TIMESTAMP

        kind = SightingKind.CREATED
        if decide_exit(owner_id, gps_status) is ExitDecision.BYPASS:
            kind = SightingKind.BYPASSED
            record.update(
                status=TripStatus.BYPASSED,
                totalToll=0.0,
                bypassReason=bypass_reason(gps_status),
                resolvedAt=SERVER_TIMESTAMP,
            )

        trip_id = await self._store.put(TRIPS_COLLECTION, record)
        stored = await self.get_trip(trip_id)

        if kind is SightingKind.BYPASSED:
            _logger.info("Trip %s for %s bypassed at entry: GPS %s", trip_id, plate, gps_status.value)
        else:
            _logger.info(
                "Trip %s started for %s in zone %s (toll %.2f, %s)",
                trip_id,
                plate,
                zone_id,
                stored.total_toll,
                "registered" if owner_id else "unregistered",
            )
        return SightingOutcome(kind=kind, plate=plate, trip=stored, registration=registration)
