from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import timedelta

import pytest

from anprtoll.exceptions import TollNotFoundError, TollStoreError
from anprtoll.ingestion.cooldown import CooldownFilter
from anprtoll.models.trip import TripStatus
from anprtoll.registry import VehicleRegistry
from anprtoll.store.base import Document
from anprtoll.store.memory import InMemoryDocumentStore
from anprtoll.trips import SightingKind, TripStateMachine

from conftest import FakeClock


class _OwnerlessStore(InMemoryDocumentStore):
    """Fails every read of the plate index."""

    async def get(self, collection: str, doc_id: str) -> Document | None:
        if collection == "plate_index":
            raise TollStoreError("index unavailable")
        return await super().get(collection, doc_id)


def _machine(store: InMemoryDocumentStore, clock: FakeClock, *, window: float = 3.0) -> TripStateMachine:
    return TripStateMachine(
        store,
        VehicleRegistry(store),
        CooldownFilter(store, window=window),
        default_flat_rate=150.0,
        clock=clock,
    )


@pytest.mark.asyncio
async def test_first_sighting_opens_trip(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    machine = _machine(store, clock)

    outcome = await machine.record_sighting("KA01AB1234", "Z1")

    assert outcome.kind is SightingKind.CREATED
    assert outcome.is_registered
    trip = outcome.trip
    assert trip is not None
    assert trip.status is TripStatus.IN_PROGRESS
    assert trip.owner_id == "owner-1"
    assert trip.owner_name == "John Doe"
    assert trip.toll_zone_name == "City Gateway"
    assert trip.total_toll == 150.0
    assert trip.camera_count == 1
    assert trip.start_time == clock.now
    assert trip.last_sighting_timestamp == clock.now


@pytest.mark.asyncio
async def test_sighting_within_cooldown_is_duplicate(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    machine = _machine(store, clock)
    await machine.record_sighting("KA01AB1234", "Z1")

    clock.advance(2.9)
    outcome = await machine.record_sighting("KA01AB1234", "Z1")

    assert outcome.kind is SightingKind.DUPLICATE
    assert outcome.trip is None
    trips = store.dump()["vehicle_trips"]
    assert len(trips) == 1
    assert next(iter(trips.values()))["cameraCount"] == 1


@pytest.mark.asyncio
async def test_later_sighting_extends_trip(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    machine = _machine(store, clock)
    created = await machine.record_sighting("KA01AB1234", "Z1")

    clock.advance(30)
    outcome = await machine.record_sighting("KA01AB1234", "Z1")

    assert outcome.kind is SightingKind.EXTENDED
    assert outcome.trip is not None
    assert created.trip is not None
    assert outcome.trip.id == created.trip.id
    assert outcome.trip.camera_count == 2
    assert outcome.trip.last_sighting_timestamp == clock.now
    assert outcome.trip.start_time == clock.now - timedelta(seconds=30)


@pytest.mark.asyncio
async def test_zones_are_tracked_separately(
    clock: FakeClock,
    make_store: Callable[..., InMemoryDocumentStore],
) -> None:
    store = make_store()
    await store.put("tollZones", {"name": "Ring Road", "flatRate": 80}, doc_id="Z2")
    machine = _machine(store, clock)

    first = await machine.record_sighting("KA01AB1234", "Z1")
    second = await machine.record_sighting("KA01AB1234", "Z2")

    assert first.kind is SightingKind.CREATED
    assert second.kind is SightingKind.CREATED
    assert second.trip is not None
    assert second.trip.total_toll == 80.0


@pytest.mark.asyncio
async def test_unregistered_plate_opens_unregistered_trip(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    machine = _machine(store, clock)

    outcome = await machine.record_sighting("XY99ZZ0000", "Z1")

    assert outcome.kind is SightingKind.CREATED
    assert not outcome.is_registered
    assert outcome.trip is not None
    assert outcome.trip.owner_id is None
    assert outcome.trip.owner_name == "Unregistered"
    assert outcome.trip.is_registered is False


@pytest.mark.parametrize("gps", ["Connected", "Searching"])
@pytest.mark.asyncio
async def test_active_gps_bypasses_at_creation(
    gps: str,
    clock: FakeClock,
    make_store: Callable[..., InMemoryDocumentStore],
) -> None:
    store = make_store(gps_status=gps)
    machine = _machine(store, clock)

    outcome = await machine.record_sighting("KA01AB1234", "Z1")

    assert outcome.kind is SightingKind.BYPASSED
    trip = outcome.trip
    assert trip is not None
    assert trip.status is TripStatus.BYPASSED
    assert trip.total_toll == 0.0
    assert trip.bypass_reason == f"GPS {gps}"
    assert trip.resolved_at == clock.now
    assert store.dump()["users"]["owner-1"]["walletBalance"] == 5000.0


@pytest.mark.asyncio
async def test_sighting_after_bypass_opens_new_bypassed_trip(
    clock: FakeClock,
    make_store: Callable[..., InMemoryDocumentStore],
) -> None:
    store = make_store(gps_status="Connected")
    machine = _machine(store, clock)
    await machine.record_sighting("KA01AB1234", "Z1")

    clock.advance(60)
    outcome = await machine.record_sighting("KA01AB1234", "Z1")

    assert outcome.kind is SightingKind.BYPASSED
    assert len(store.dump()["vehicle_trips"]) == 2


@pytest.mark.asyncio
async def test_extend_of_concurrently_resolved_trip_opens_new_one(
    store: InMemoryDocumentStore,
    clock: FakeClock,
) -> None:
    machine = _machine(store, clock)
    created = await machine.record_sighting("KA01AB1234", "Z1")
    assert created.trip is not None
    stale = created.trip
    await store.update("vehicle_trips", stale.id, {"status": "completed"})

    clock.advance(30)
    outcome = await machine._extend(stale)

    assert outcome is None
    reopened = await machine.record_sighting("KA01AB1234", "Z1")
    assert reopened.kind is SightingKind.CREATED
    assert reopened.trip is not None
    assert reopened.trip.id != stale.id


@pytest.mark.asyncio
async def test_unknown_zone_writes_nothing(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    machine = _machine(store, clock)

    with pytest.raises(TollNotFoundError):
        await machine.record_sighting("KA01AB1234", "NOPE")

    assert "vehicle_trips" not in store.dump()


@pytest.mark.asyncio
async def test_registry_failure_opens_unregistered_trip(
    clock: FakeClock,
    make_store: Callable[..., InMemoryDocumentStore],
) -> None:
    store = make_store(_OwnerlessStore)
    machine = _machine(store, clock)

    outcome = await machine.record_sighting("KA01AB1234", "Z1")

    assert outcome.kind is SightingKind.CREATED
    assert outcome.trip is not None
    assert outcome.trip.owner_id is None


@pytest.mark.asyncio
async def test_get_trip_missing(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    with pytest.raises(TollNotFoundError):
        await _machine(store, clock).get_trip("missing")


@pytest.mark.asyncio
async def test_malformed_owner_record_opens_unregistered_trip(
    store: InMemoryDocumentStore,
    clock: FakeClock,
    caplog: pytest.LogCaptureFixture,
) -> None:
    await store.update("users", "owner-1", {"vehicles": ["KA01AB1234"]})
    machine = _machine(store, clock)

    with caplog.at_level(logging.WARNING, logger="anprtoll.trips"):
        outcome = await machine.record_sighting("KA01AB1234", "Z1")

    assert outcome.kind is SightingKind.CREATED
    assert outcome.trip is not None
    assert outcome.trip.owner_id is None
    assert "treating as unregistered" in caplog.text
