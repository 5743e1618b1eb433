from __future__ import annotations

import asyncio
import base64
from collections.abc import Callable
from typing import Any

import pytest

from anprtoll.config import TollConfig
from anprtoll.engine import TollEngine
from anprtoll.exceptions import TollError, TollNotFoundError, TollUpstreamError, TollValidationError
from anprtoll.models.sighting import PlateRead
from anprtoll.resolver import ExitOutcome
from anprtoll.store.memory import InMemoryDocumentStore

from conftest import FakeClock, FakePlateReader, seed_data

_IMAGE = base64.b64encode(b"\xff\xd8\xff\xe0frame").decode()


class _HangingReader:
    async def read_plates(self, image: bytes) -> list[PlateRead]:
        await asyncio.Event().wait()
        return []


def _config(**overrides: Any) -> TollConfig:
    values: dict[str, Any] = {"sweep_enabled": False, "recognition_timeout": 0.05}
    values.update(overrides)
    return TollConfig(**values)


def _payload(zone_id: str = "Z1", zone_name: str = "City Gateway") -> dict[str, Any]:
    return {"base64Image": _IMAGE, "operator": {"tollZoneId": zone_id, "tollZoneName": zone_name}}


def _body(result: Any) -> dict[str, Any]:
    return result.model_dump(by_alias=True, exclude_none=True)


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_registered_vehicle_is_charged_after_exit(
    store: InMemoryDocumentStore,
    clock: FakeClock,
    reader: FakePlateReader,
) -> None:
    async with TollEngine(_config(), store=store, reader=reader, clock=clock) as engine:
        first = await engine.process_sighting(_payload())
        clock.advance(1)
        duplicate = await engine.process_sighting(_payload())
        clock.advance(4)
        extended = await engine.process_sighting(_payload())
        clock.advance(601)
        report = await engine.sweep_once()

    assert _body(first) == {
        "success": True,
        "message": "New session started. Charge pending exit.",
        "plate": "KA01AB1234",
        "isDuplicate": False,
        "isRegistered": True,
    }
    assert _body(duplicate) == {
        "success": True,
        "message": "Duplicate ignored.",
        "plate": "KA01AB1234",
        "isDuplicate": True,
    }
    assert extended.message == "Session updated. No charge yet."
    assert report.outcomes == {ExitOutcome.CHARGED: 1}

    dump = store.dump()
    assert dump["users"]["owner-1"]["walletBalance"] == 4850.0
    ((trip_id, trip),) = dump["vehicle_trips"].items()
    assert trip["status"] == "completed"
    assert trip["cameraCount"] == 2
    ((transaction_id, transaction),) = dump["transactions"].items()
    assert trip["transactionId"] == transaction_id
    assert transaction["amount"] == 150.0
    assert transaction["description"] == "Toll Finalized - City Gateway (ANPR Backup)"
    assert transaction["tripId"] == trip_id


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_owner_is_charged_without_prebuilt_plate_index(clock: FakeClock, reader: FakePlateReader) -> None:
    initial = seed_data()
    del initial["plate_index"]
    store = InMemoryDocumentStore(clock=clock, initial=initial)

    async with TollEngine(_config(), store=store, reader=reader, clock=clock) as engine:
        result = await engine.process_sighting(_payload())
        clock.advance(660)
        report = await engine.sweep_once()

    assert result.is_registered is True
    assert report.outcomes == {ExitOutcome.CHARGED: 1}
    dump = store.dump()
    (trip,) = dump["vehicle_trips"].values()
    assert trip["status"] == "completed"
    assert dump["users"]["owner-1"]["walletBalance"] == 4850.0
    assert len(dump["transactions"]) == 1
    assert dump["plate_index"]["KA01AB1234"]["ownerId"] == "owner-1"


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_gps_connected_vehicle_is_bypassed_at_entry(
    clock: FakeClock,
    make_store: Callable[..., InMemoryDocumentStore],
    reader: FakePlateReader,
) -> None:
    store = make_store(gps_status="Connected")
    async with TollEngine(_config(), store=store, reader=reader, clock=clock) as engine:
        result = await engine.process_sighting(_payload())
        clock.advance(601)
        report = await engine.sweep_once()

    assert _body(result) == {
        "success": True,
        "message": "GPS Connected: Bypass applied.",
        "plate": "KA01AB1234",
        "isDuplicate": False,
        "isRegistered": True,
    }
    assert report.scanned == 0
    dump = store.dump()
    (trip,) = dump["vehicle_trips"].values()
    assert trip["status"] == "bypassed"
    assert trip["totalToll"] == 0.0
    assert dump["users"]["owner-1"]["walletBalance"] == 5000.0


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_unregistered_vehicle_awaits_invoice(store: InMemoryDocumentStore, clock: FakeClock) -> None:
    reader = FakePlateReader(plates=["xy 99 zz 0000"])
    async with TollEngine(_config(), store=store, reader=reader, clock=clock) as engine:
        result = await engine.process_sighting(_payload())
        clock.advance(601)
        report = await engine.sweep_once()

    assert result.plate == "XY99ZZ0000"
    assert result.is_registered is False
    assert report.outcomes == {ExitOutcome.INVOICED: 1}
    (trip,) = store.dump()["vehicle_trips"].values()
    assert trip["status"] == "invoice-pending"
    assert trip["ownerName"] == "Unregistered"


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_cooldown_is_per_zone(
    clock: FakeClock,
    make_store: Callable[..., InMemoryDocumentStore],
    reader: FakePlateReader,
) -> None:
    store = make_store()
    await store.put("tollZones", {"name": "Ring Road", "flat_rate": 80}, doc_id="Z2")
    async with TollEngine(_config(), store=store, reader=reader, clock=clock) as engine:
        first = await engine.process_sighting(_payload("Z1"))
        second = await engine.process_sighting(_payload("Z2", "Ring Road"))

    assert first.is_duplicate is False
    assert second.is_duplicate is False
    assert len(store.dump()["vehicle_trips"]) == 2


@pytest.mark.asyncio
async def test_missing_operator_is_rejected(store: InMemoryDocumentStore, reader: FakePlateReader) -> None:
    async with TollEngine(_config(), store=store, reader=reader) as engine:
        with pytest.raises(TollValidationError):
            await engine.process_sighting({"base64Image": _IMAGE})

    assert reader.calls == 0


@pytest.mark.asyncio
async def test_no_plate_detected(store: InMemoryDocumentStore) -> None:
    async with TollEngine(_config(), store=store, reader=FakePlateReader(plates=["--"])) as engine:
        result = await engine.process_sighting(_payload())

    assert _body(result) == {"success": False, "message": "No plate detected."}
    assert "vehicle_trips" not in store.dump()


@pytest.mark.asyncio
async def test_recognition_timeout_writes_nothing(store: InMemoryDocumentStore) -> None:
    async with TollEngine(_config(), store=store, reader=_HangingReader()) as engine:
        with pytest.raises(TollUpstreamError) as excinfo:
            await engine.process_sighting(_payload())

    assert excinfo.value.service == "recognition"
    assert "vehicle_trips" not in store.dump()


@pytest.mark.asyncio
async def test_unknown_zone_writes_nothing(store: InMemoryDocumentStore, reader: FakePlateReader) -> None:
    async with TollEngine(_config(), store=store, reader=reader) as engine:
        with pytest.raises(TollNotFoundError):
            await engine.process_sighting(_payload("NOPE"))

    assert "vehicle_trips" not in store.dump()


@pytest.mark.asyncio
async def test_engine_requires_context_manager(store: InMemoryDocumentStore) -> None:
    engine = TollEngine(_config(), store=store)

    with pytest.raises(TollError, match="not initialized"):
        await engine.process_sighting(_payload())


@pytest.mark.asyncio
async def test_engine_starts_and_stops_sweep(store: InMemoryDocumentStore, reader: FakePlateReader) -> None:
    engine = TollEngine(_config(sweep_enabled=True), store=store, reader=reader)

    async with engine:
        assert engine.sweep.is_running
    assert not engine.sweep.is_running


@pytest.mark.asyncio
async def test_engine_owns_http_session_only_when_created(store: InMemoryDocumentStore) -> None:
    async with TollEngine(_config(), store=store) as engine:
        session = engine._http_session
        assert session is not None
    assert session.closed
