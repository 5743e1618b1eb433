"""Toll zone model."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator

from anprtoll.ingestion.normalize import safe_float
from anprtoll.models._base import TollBaseModel


class TollZone(TollBaseModel):
    """A toll zone as far as billing is concerned.

    Zone geometry (polygon, center, operators) is managed elsewhere and
    ignored here.
    """

    id: str = ""
    name: str = ""
    flat_rate: float | None = Field(default=None, validation_alias=AliasChoices("flat_rate", "flatRate"))

    @field_validator("flat_rate", mode="before")
    @classmethod
    def _coerce_rate(cls, value: Any) -> float | None:
        return safe_float(value)

    def rate(self, default: float) -> float:
        """Flat rate of the zone, or *default* when unset or not positive."""
        if self.flat_rate is None or self.flat_rate <= 0:
            return default
        return self.flat_rate
