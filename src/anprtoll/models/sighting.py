"""Sighting request/response models and plate reads."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from anprtoll.exceptions import TollValidationError
from anprtoll.ingestion.normalize import safe_float, safe_str

_DATA_URL_MARKER = ";base64,"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )


class Operator(_WireModel):
    """The camera operator reporting a sighting, bound to one toll zone."""

    toll_zone_id: str
    toll_zone_name: str = ""

    @field_validator("toll_zone_id", mode="before")
    @classmethod
    def _require_zone(cls, value: Any) -> str:
        text = safe_str(value)
        if text is None:
            raise ValueError("tollZoneId must be non-empty")
        return text

    @field_validator("toll_zone_name", mode="before")
    @classmethod
    def _strip_name(cls, value: Any) -> str:
        return safe_str(value) or ""


class SightingRequest(_WireModel):
    """Body of a camera sighting: one frame plus the reporting operator."""

    base64_image: str = Field(alias="base64Image")
    operator: Operator

    @field_validator("base64_image", mode="before")
    @classmethod
    def _require_image(cls, value: Any) -> str:
        text = safe_str(value)
        if text is None:
            raise ValueError("base64Image must be non-empty")
        return text

    @classmethod
    def parse(cls, payload: Any) -> SightingRequest:
        """Validate a raw request body.

        Raises
        ------
        TollValidationError
            If the operator or the image is missing or malformed.
        """
        if isinstance(payload, SightingRequest):
            return payload
        if not isinstance(payload, dict):
            raise TollValidationError("Missing data.")
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
            raise TollValidationError(f"Missing data: {fields}") from exc

    def image_bytes(self) -> bytes:
        """Decode the frame, accepting both bare base64 and ``data:`` URLs."""
        encoded = self.base64_image
        if encoded.startswith("data:") and _DATA_URL_MARKER in encoded:
            encoded = encoded.split(_DATA_URL_MARKER, 1)[1]
        try:
            decoded = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise TollValidationError("base64Image is not valid base64") from exc
        if not decoded:
            raise TollValidationError("base64Image decodes to an empty image")
        return decoded


class PlateRead(BaseModel):
    """One candidate plate returned by the recognition service."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    plate: str
    score: float | None = None
    raw: dict[str, Any] = Field(default_factory=dict)

    @field_validator("score", mode="before")
    @classmethod
    def _coerce_score(cls, value: Any) -> float | None:
        return safe_float(value)


class SightingResult(_WireModel):
    """Outcome of one sighting as reported back to the camera.

    ``model_dump(by_alias=True, exclude_none=True)`` is the response body.
    """

    success: bool
    message: str
    plate: str | None = None
    is_duplicate: bool | None = None
    is_registered: bool | None = None
