"""Custom exception hierarchy for anprtoll."""

from __future__ import annotations


class TollError(Exception):
    """Base exception for all anprtoll errors."""


class TollConfigError(TollError):
    """Invalid or missing configuration."""


class TollValidationError(TollError):
    """A sighting request is malformed or missing required fields."""


class TollUpstreamError(TollError):
    """An external collaborator (recognition, registry) failed or timed out.

    No state has been mutated when this is raised, so the caller may
    safely retry the whole request.
    """

    def __init__(
        self,
        message: str,
        *,
        service: str = "",
        status_code: int | None = None,
    ) -> None:
        self.service = service
        self.status_code = status_code
        super().__init__(message)


class TollNotFoundError(TollError):
    """A referenced record (zone, trip, owner) does not exist."""

    def __init__(
        self,
        message: str,
        *,
        collection: str = "",
        doc_id: str = "",
    ) -> None:
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(message)


class TollStoreError(TollError):
    """Infrastructure failure inside the document store."""


class TollConflictError(TollError):
    """A conditional write was rejected because its guard no longer holds.

    This is not an infrastructure fault: the record was changed by a
    concurrent writer (typically a trip resolved by another sweep tick).
    """

    def __init__(
        self,
        message: str,
        *,
        collection: str = "",
        doc_id: str = "",
    ) -> None:
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(message)


class TollCommitError(TollError):
    """A ledger commit failed; nothing was applied.

    The trip stays in progress and is picked up again by the next sweep.
    """

    def __init__(self, message: str, *, trip_id: str = "") -> None:
        self.trip_id = trip_id
        super().__init__(message)
