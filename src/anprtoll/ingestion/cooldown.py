"""Duplicate-frame suppression.

One physical pass past a camera produces a burst of frames.  Only the first
frame may move a trip; the rest fall inside the cooldown window of the most
recent trip for the same plate and zone and are dropped.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from anprtoll._constants import TRIPS_COLLECTION
from anprtoll.models.trip import Trip
from anprtoll.store.base import DocumentStore, Filter

_logger = logging.getLogger(__name__)


class CooldownFilter:
    """Per plate+zone cooldown backed by the trips collection."""

    def __init__(self, store: DocumentStore, *, window: float) -> None:
        self._store = store
        self._window = timedelta(seconds=window)

    async def latest_trip(self, plate: str, zone_id: str) -> Trip | None:
        """Most recently sighted trip for (plate, zone), whatever its status."""
        docs = await self._store.query(
            TRIPS_COLLECTION,
            Filter("plate", "==", plate),
            Filter("tollZoneId", "==", zone_id),
            order_by="lastSightingTimestamp",
            descending=True,
            limit=1,
        )
        return Trip.from_document(docs[0]) if docs else None

    async def is_duplicate(self, plate: str, zone_id: str, now: datetime) -> bool:
        latest = await self.latest_trip(plate, zone_id)
        if latest is None or latest.last_sighting_timestamp is None:
            return False
        elapsed = now - latest.last_sighting_timestamp
        if elapsed < self._window:
            _logger.debug(
                "Duplicate sighting of %s in zone %s (%.2fs after trip %s)",
                plate,
                zone_id,
                elapsed.total_seconds(),
                latest.id,
            )
            return True
        return False
