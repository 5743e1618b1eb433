"""Base model and helpers for stored toll records.

Every stored record model inherits from :class:`TollBaseModel` which
provides:

* ``alias_generator=to_camel`` so the camelCase document keys map
  automatically to snake_case fields.
* ``from_document`` / ``to_record`` to move between store documents and
  models without leaking the document id into the record body.

Store timestamps come back either as ``datetime`` objects or as epoch
numbers (seconds or milliseconds, depending on the writer); the
:data:`StoreTimestamp` annotated type coerces both to aware UTC datetimes.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Annotated, Any, Self

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from anprtoll.store.base import Document

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def parse_store_timestamp(value: Any) -> datetime | None:
    """Convert a stored timestamp to an aware UTC datetime.

    Naive datetimes are assumed to be UTC.  Epoch values may be seconds
    **or** milliseconds.  Returns ``None`` for ``None`` and empty strings.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
    if isinstance(value, str):
        return parse_store_timestamp(datetime.fromisoformat(value))
    ts = float(value)
    if ts >= _MS_THRESHOLD:
        ts /= 1000.0
    return datetime.fromtimestamp(ts, tz=UTC)


StoreTimestamp = Annotated[datetime | None, BeforeValidator(parse_store_timestamp)]
"""Annotated type that coerces stored timestamps to aware UTC datetimes."""


class TollBaseModel(BaseModel):
    """Base for records kept in the document store."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @classmethod
    def from_document(cls, document: Document) -> Self:
        """Build a model from a store document, using the document id as ``id``."""
        values = dict(document.data)
        values["id"] = document.id
        return cls.model_validate(values)

    def to_record(self) -> dict[str, Any]:
        """Return the camelCase document body (without ``id``) for the store."""
        return self.model_dump(by_alias=True, exclude={"id"})
