"""Data models for stored toll records and sighting payloads."""

from anprtoll.models._base import StoreTimestamp, TollBaseModel, parse_store_timestamp
from anprtoll.models.owner import GpsStatus, Owner, RegisteredVehicle, Registration
from anprtoll.models.sighting import Operator, PlateRead, SightingRequest, SightingResult
from anprtoll.models.transaction import Transaction, TransactionType
from anprtoll.models.trip import Trip, TripStatus
from anprtoll.models.zone import TollZone

__all__ = [
    "GpsStatus",
    "Operator",
    "Owner",
    "PlateRead",
    "RegisteredVehicle",
    "Registration",
    "SightingRequest",
    "SightingResult",
    "StoreTimestamp",
    "TollBaseModel",
    "TollZone",
    "Transaction",
    "TransactionType",
    "Trip",
    "TripStatus",
    "parse_store_timestamp",
]
