#!/usr/bin/env python3
"""Replay camera sightings against an in-memory toll network.

Runs the engine end to end without a recognition service or a database:
plates are supplied on the command line, time is simulated, and the final
store contents are printed as JSON.

Usage
-----
::

    python scripts/simulate_trip.py
    python scripts/simulate_trip.py --plate "KA-01-AB-1234" --gps Connected
    python scripts/simulate_trip.py --plate XY99ZZ0000 --sightings 0 1 5 40

Options::

    --plate PLATE        Plate the camera reads (default: KA-01-AB-1234)
    --gps STATUS         GPS status of the registered owner (default: Disconnected)
    --sightings S [S..]  Seconds after start at which the camera fires
    --idle SECS          Silence after the last sighting before sweeping (default: 601)
    --verbose / -v       Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import json
import logging
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from anprtoll import InMemoryDocumentStore, PlateRead, TollConfig, TollEngine  # noqa: E402

_FRAME = base64.b64encode(b"\xff\xd8\xff\xe0simulated-frame").decode()


class SimulatedClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 8, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance_to(self, start: datetime, offset: float) -> None:
        self.now = start + timedelta(seconds=offset)


class FixedPlateReader:
    """Pretends every frame shows *plate*."""

    def __init__(self, plate: str) -> None:
        self._plate = plate

    async def read_plates(self, image: bytes) -> list[PlateRead]:
        return [PlateRead(plate=self._plate, score=0.99)]


def _seed(gps_status: str) -> dict[str, dict[str, dict[str, object]]]:
    owners: dict[str, dict[str, object]] = {
        "owner-1": {
            "name": "John Doe",
            "walletBalance": 5000.0,
            "gpsStatus": gps_status,
            "vehicles": [{"vehicleNumber": "KA-01-AB-1234", "vehicleModel": "Tesla Model 3"}],
        },
    }
    return {
        "users": owners,
        "tollZones": {"Z1": {"name": "City Gateway", "flat_rate": 150}},
    }


async def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate one vehicle passing a toll camera.")
    parser.add_argument("--plate", default="KA-01-AB-1234")
    parser.add_argument("--gps", default="Disconnected")
    parser.add_argument("--sightings", nargs="+", type=float, default=[0.0, 1.0, 5.0])
    parser.add_argument("--idle", type=float, default=601.0)
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    clock = SimulatedClock()
    start = clock.now
    store = InMemoryDocumentStore(clock=clock, initial=_seed(args.gps))
    config = TollConfig(sweep_enabled=False)
    payload = {"base64Image": _FRAME, "operator": {"tollZoneId": "Z1", "tollZoneName": "City Gateway"}}

    async with TollEngine(config, store=store, reader=FixedPlateReader(args.plate), clock=clock) as engine:
        offsets = sorted(args.sightings)
        for offset in offsets:
            clock.advance_to(start, offset)
            result = await engine.process_sighting(payload)
            print(f"t+{offset:>6.1f}s  {result.message}", file=sys.stderr)

        clock.advance_to(start, offsets[-1] + args.idle)
        report = await engine.sweep_once()
        print(
            f"t+{offsets[-1] + args.idle:>6.1f}s  sweep: {report.scanned} idle, "
            f"{dict(report.outcomes)} resolved, {len(report.failed)} failed",
            file=sys.stderr,
        )

    print(json.dumps(store.dump(), indent=2, default=str, ensure_ascii=False))


if __name__ == "__main__":
    asyncio.run(main())
