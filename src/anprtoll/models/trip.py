"""Trip model and lifecycle states."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import field_validator

from anprtoll.ingestion.normalize import safe_float, safe_int
from anprtoll.models._base import StoreTimestamp, TollBaseModel


class TripStatus(StrEnum):
    """Trip lifecycle state.

    ``IN_PROGRESS`` is the only non-terminal state.  Terminal states are
    reached one way and never left.
    """

    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    BYPASSED = "bypassed"
    INVOICE_PENDING = "invoice-pending"

    @property
    def is_terminal(self) -> bool:
        return self is not TripStatus.IN_PROGRESS

    @classmethod
    def _missing_(cls, value: object) -> TripStatus | None:
        # Older records carry labels such as "Bypassed (GPS Connected)"
        # and "Invoice Pending".
        if not isinstance(value, str):
            return None
        label = value.strip().lower().replace(" ", "-")
        if label.startswith("bypassed"):
            return cls.BYPASSED
        for member in cls:
            if member.value == label:
                return member
        return None


class Trip(TollBaseModel):
    """One vehicle's continuous presence in a toll zone.

    Parameters
    ----------
    id : str
        Document id in the trips collection.
    plate : str
        Normalized plate.
    owner_id : str or None
        Owner of the vehicle, ``None`` for unregistered vehicles.
    status : TripStatus
        Lifecycle state.
    total_toll : float
        Flat-rate toll fixed at creation; ``0`` once bypassed.
    camera_count : int
        Number of accepted sightings that make up the trip.
    start_time, last_sighting_timestamp : datetime or None
        First and latest accepted sighting, assigned by the store.
    bypass_reason : str or None
        Human readable reason recorded with a GPS bypass.
    resolved_at : datetime or None
        When the trip reached a terminal state.
    transaction_id : str or None
        Ledger transaction created when the trip was charged.
    """

    id: str = ""
    plate: str
    owner_id: str | None = None
    owner_name: str = "Unregistered"
    is_registered: bool = False
    toll_zone_id: str
    toll_zone_name: str = ""
    status: TripStatus = TripStatus.IN_PROGRESS
    total_toll: float = 0.0
    camera_count: int = 1
    start_time: StoreTimestamp = None
    last_sighting_timestamp: StoreTimestamp = None
    bypass_reason: str | None = None
    resolved_at: StoreTimestamp = None
    transaction_id: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status is TripStatus.IN_PROGRESS

    @field_validator("owner_id", mode="before")
    @classmethod
    def _empty_owner_is_absent(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("total_toll", mode="before")
    @classmethod
    def _coerce_toll(cls, value: Any) -> float:
        return safe_float(value) or 0.0

    @field_validator("camera_count", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int:
        parsed = safe_int(value)
        return 1 if parsed is None else parsed

    @field_validator("owner_name", mode="before")
    @classmethod
    def _default_owner_name(cls, value: Any) -> str:
        return str(value) if value else "Unregistered"

    @classmethod
    def open(
        cls,
        *,
        plate: str,
        toll_zone_id: str,
        toll_zone_name: str,
        total_toll: float,
        owner_id: str | None = None,
        owner_name: str | None = None,
    ) -> Trip:
        """Draft a new in-progress trip (not yet stored)."""
        return cls(
            plate=plate,
            owner_id=owner_id,
            owner_name=owner_name or "Unregistered",
            is_registered=owner_id is not None,
            toll_zone_id=toll_zone_id,
            toll_zone_name=toll_zone_name,
            status=TripStatus.IN_PROGRESS,
            total_toll=total_toll,
            camera_count=1,
        )

