"""Vehicle registry lookup.

Resolves a normalized plate to its owner through a plate index kept in
its own collection (document id = normalized plate), so a sighting costs
two point reads instead of a scan over every owner.  Index entries are
verified against the owner record on read; an entry whose owner is gone
or no longer lists the plate is treated as unregistered.

A plate missing from the index falls back to a scan of the owners
collection, and a hit is written back to the index.  Stores seeded with
owners only therefore index themselves as vehicles are sighted.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from anprtoll._constants import OWNERS_COLLECTION, PLATE_INDEX_COLLECTION
from anprtoll.exceptions import TollStoreError, TollUpstreamError
from anprtoll.ingestion.normalize import normalize_plate
from anprtoll.models.owner import Owner, Registration
from anprtoll.store.base import Document, DocumentStore, SetWrite

_logger = logging.getLogger(__name__)


def build_plate_index(owners: Mapping[str, Mapping[str, Any]]) -> dict[str, dict[str, Any]]:
    """Build plate index documents from raw owner records.

    The first owner listing a plate keeps it; later claims are logged and
    skipped.
    """
    index: dict[str, dict[str, Any]] = {}
    for owner_id, data in owners.items():
        try:
            owner = Owner.model_validate({**data, "id": owner_id})
        except ValidationError as exc:
            _logger.warning("Skipping malformed owner record %s: %s", owner_id, exc)
            continue
        for vehicle in owner.vehicles:
            plate = normalize_plate(vehicle.vehicle_number)
            if not plate:
                continue
            claimed = index.get(plate)
            if claimed is not None and claimed["ownerId"] != owner_id:
                _logger.warning(
                    "Plate %s is listed by owners %s and %s; keeping %s",
                    plate,
                    claimed["ownerId"],
                    owner_id,
                    claimed["ownerId"],
                )
                continue
            index[plate] = {"ownerId": owner_id, "vehicleNumber": vehicle.vehicle_number}
    return index


def _parse_owner(document: Document) -> Owner:
    try:
        return Owner.from_document(document)
    except ValidationError as exc:
        raise TollUpstreamError(f"Owner record {document.id} is malformed: {exc}", service="registry") from exc


class VehicleRegistry:
    """Plate → owner lookups with a bounded timeout per call."""

    def __init__(self, store: DocumentStore, *, timeout: float = 5.0) -> None:
        self._store = store
        self._timeout = timeout

    async def lookup(self, plate: str) -> Registration | None:
        """Return the registration for *plate*, or ``None`` if unregistered.

        Raises
        ------
        TollUpstreamError
            If the store fails, the lookup exceeds the timeout or the owner
            record is malformed.
        """
        normalized = normalize_plate(plate)
        if not normalized:
            return None
        try:
            async with asyncio.timeout(self._timeout):
                owner_doc = await self._owner_document(normalized)
        except TimeoutError as exc:
            raise TollUpstreamError(f"Registry lookup for {normalized} timed out", service="registry") from exc
        except TollStoreError as exc:
            raise TollUpstreamError(f"Registry lookup for {normalized} failed: {exc}", service="registry") from exc

        if owner_doc is None:
            return None

        owner = _parse_owner(owner_doc)
        vehicle = next(
            (v for v in owner.vehicles if normalize_plate(v.vehicle_number) == normalized),
            None,
        )
        if vehicle is None:
            _logger.warning("Owner %s no longer lists plate %s; treating as unregistered", owner.id, normalized)
            return None

        return Registration(
            owner_id=owner.id,
            owner_name=owner.name,
            gps_status=owner.gps_status,
            vehicle_number=vehicle.vehicle_number,
        )

    async def _owner_document(self, plate: str) -> Document | None:
        entry = await self._store.get(PLATE_INDEX_COLLECTION, plate)
        if entry is None:
            return await self._scan_owners(plate)
        owner_id = str(entry.data.get("ownerId") or "")
        owner_doc = await self._store.get(OWNERS_COLLECTION, owner_id) if owner_id else None
        if owner_doc is None:
            _logger.warning("Plate index entry for %s points to missing owner %r", plate, owner_id)
        return owner_doc

    async def _scan_owners(self, plate: str) -> Document | None:
        """Index miss: scan every owner for *plate* and index the hit."""
        owners = await self._store.query(OWNERS_COLLECTION)
        entry = build_plate_index({doc.id: doc.data for doc in owners}).get(plate)
        if entry is None:
            return None
        try:
            await self._store.run_batch([SetWrite(PLATE_INDEX_COLLECTION, plate, entry)])
        except TollStoreError as exc:
            _logger.warning("Could not index plate %s: %s", plate, exc)
        else:
            _logger.info("Indexed plate %s for owner %s", plate, entry["ownerId"])
        return next(doc for doc in owners if doc.id == entry["ownerId"])

    async def get_owner(self, owner_id: str) -> Owner | None:
        """Fresh read of an owner record (wallet, GPS status).

        Raises
        ------
        TollUpstreamError
            If the store fails or the read exceeds the timeout.
        """
        try:
            async with asyncio.timeout(self._timeout):
                doc = await self._store.get(OWNERS_COLLECTION, owner_id)
        except TimeoutError as exc:
            raise TollUpstreamError(f"Owner read for {owner_id} timed out", service="registry") from exc
        except TollStoreError as exc:
            raise TollUpstreamError(f"Owner read for {owner_id} failed: {exc}", service="registry") from exc
        return _parse_owner(doc) if doc is not None else None

    async def index_owner(self, owner_id: str) -> list[str]:
        """(Re)index the plates of one owner after its vehicles changed."""
        doc = await self._store.get(OWNERS_COLLECTION, owner_id)
        if doc is None:
            return []
        entries = build_plate_index({owner_id: doc.data})
        if entries:
            await self._store.run_batch(
                [SetWrite(PLATE_INDEX_COLLECTION, plate, entry) for plate, entry in entries.items()]
            )
        return sorted(entries)

    async def rebuild_index(self) -> int:
        """Index every owner's plates; returns the number of index entries written."""
        owners = await self._store.query(OWNERS_COLLECTION)
        entries = build_plate_index({doc.id: doc.data for doc in owners})
        if entries:
            await self._store.run_batch(
                [SetWrite(PLATE_INDEX_COLLECTION, plate, entry) for plate, entry in entries.items()]
            )
        _logger.info("Plate index rebuilt: %d plates from %d owners", len(entries), len(owners))
        return len(entries)
