"""Owner, registered vehicle and GPS status models."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from anprtoll.ingestion.normalize import safe_float
from anprtoll.models._base import TollBaseModel


class GpsStatus(StrEnum):
    """GPS telemetry state of an owner's on-board unit.

    Written out-of-band by the GPS telemetry service.  Values without a
    mapped member (including a missing field) resolve to ``UNKNOWN``
    instead of raising.
    """

    CONNECTED = "Connected"
    SEARCHING = "Searching"
    DISCONNECTED = "Disconnected"
    UNKNOWN = "Unknown"

    @property
    def is_active(self) -> bool:
        """Whether GPS-based billing applies, so the camera toll is bypassed."""
        return self in (GpsStatus.CONNECTED, GpsStatus.SEARCHING)

    @classmethod
    def _missing_(cls, value: object) -> GpsStatus:
        if isinstance(value, str):
            wanted = value.strip().lower()
            for member in cls:
                if member.value.lower() == wanted:
                    return member
        return cls.UNKNOWN


class RegisteredVehicle(BaseModel):
    """A vehicle listed on an owner's account."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    vehicle_number: str = Field(default="", validation_alias=AliasChoices("vehicleNumber", "vehicle_number"))
    """Plate as entered by the owner (not normalized)."""
    vehicle_model: str = Field(default="", validation_alias=AliasChoices("vehicleModel", "vehicle_model"))
    vehicle_type: str = Field(default="", validation_alias=AliasChoices("vehicleType", "vehicle_type"))


class Owner(TollBaseModel):
    """Account holder with an internal wallet."""

    id: str = ""
    name: str = Field(default="", validation_alias=AliasChoices("name", "ownerName", "owner_name"))
    wallet_balance: float = 0.0
    gps_status: GpsStatus = GpsStatus.UNKNOWN
    vehicles: list[RegisteredVehicle] = Field(default_factory=list)

    @field_validator("wallet_balance", mode="before")
    @classmethod
    def _coerce_balance(cls, value: Any) -> float:
        return safe_float(value) or 0.0

    @field_validator("gps_status", mode="before")
    @classmethod
    def _coerce_gps(cls, value: Any) -> GpsStatus:
        return GpsStatus(value) if value is not None else GpsStatus.UNKNOWN

    @field_validator("vehicles", mode="before")
    @classmethod
    def _coerce_vehicles(cls, value: Any) -> list[Any]:
        return value if isinstance(value, list) else []


class Registration(BaseModel):
    """Result of a registry lookup for a plate."""

    model_config = ConfigDict(frozen=True)

    owner_id: str
    owner_name: str = ""
    gps_status: GpsStatus = GpsStatus.UNKNOWN
    vehicle_number: str = ""
