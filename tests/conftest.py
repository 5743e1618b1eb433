from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from anprtoll.models.sighting import PlateRead
from anprtoll.registry import build_plate_index
from anprtoll.store.memory import InMemoryDocumentStore


class FakeClock:
    """Manually advanced clock shared by the engine and the store."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 8, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@dataclass
class FakePlateReader:
    """Returns the configured plates for every frame."""

    plates: list[str] = field(default_factory=list)
    calls: int = 0

    async def read_plates(self, image: bytes) -> list[PlateRead]:
        self.calls += 1
        return [PlateRead(plate=plate, score=0.9) for plate in self.plates]


def seed_data(
    *,
    gps_status: str | None = "Disconnected",
    wallet: float = 5000.0,
    flat_rate: Any = 150,
) -> dict[str, dict[str, dict[str, Any]]]:
    owners: dict[str, dict[str, Any]] = {
        "owner-1": {
            "name": "John Doe",
            "walletBalance": wallet,
            "gpsStatus": gps_status,
            "vehicles": [{"vehicleNumber": "KA-01-AB-1234", "vehicleModel": "Tesla Model 3"}],
        },
    }
    return {
        "users": owners,
        "plate_index": build_plate_index(owners),
        "tollZones": {
            "Z1": {"name": "City Gateway", "flat_rate": flat_rate, "max_distance": 5000},
        },
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_store(clock: FakeClock) -> Callable[..., InMemoryDocumentStore]:
    def _make(
        store_cls: type[InMemoryDocumentStore] = InMemoryDocumentStore,
        **kwargs: Any,
    ) -> InMemoryDocumentStore:
        return store_cls(clock=clock, initial=seed_data(**kwargs))

    return _make


@pytest.fixture
def store(make_store: Callable[..., InMemoryDocumentStore]) -> InMemoryDocumentStore:
    return make_store()


@pytest.fixture
def reader() -> FakePlateReader:
    return FakePlateReader(plates=["KA01AB1234"])
