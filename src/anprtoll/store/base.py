"""Abstract transactional document store.

Every component receives a :class:`DocumentStore` instead of reaching for a
shared database handle.  The protocol mirrors what a hosted document
database offers: field queries, single-document reads and writes, signed
increments, all-or-nothing batches with per-write guards, and timestamps
assigned at commit time.
"""

from __future__ import annotations

import operator
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Final, Protocol

from anprtoll.models._base import parse_store_timestamp


class _ServerTimestamp:
    """Placeholder resolved to the store's clock when a write commits."""

    _instance: _ServerTimestamp | None = None

    def __new__(cls) -> _ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"

    def __deepcopy__(self, memo: dict[int, Any]) -> _ServerTimestamp:
        return self


SERVER_TIMESTAMP: Final = _ServerTimestamp()


@dataclass(frozen=True, slots=True)
class Increment:
    """Field transform adding *delta* to the stored numeric value at commit."""

    delta: float


_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def as_timestamp(value: Any) -> datetime | None:
    """Read a stored timestamp (datetime, ISO string, epoch s/ms) for comparison.

    Returns ``None`` when *value* is not a timestamp.
    """
    try:
        return parse_store_timestamp(value)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


@dataclass(frozen=True, slots=True)
class Filter:
    """A ``field op value`` predicate for :meth:`DocumentStore.query`."""

    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _OPERATORS:
            raise ValueError(f"unsupported filter operator {self.op!r}")

    def matches(self, data: Mapping[str, Any]) -> bool:
        if self.field not in data:
            return False
        current = data[self.field]
        if current is None and self.op not in ("==", "!="):
            return False
        if isinstance(self.value, datetime):
            current = as_timestamp(current)
            if current is None:
                return False
        try:
            return _OPERATORS[self.op](current, self.value)
        except TypeError:
            return False


@dataclass(frozen=True, slots=True)
class Document:
    """A stored record: its id plus a copy of its body."""

    id: str
    data: dict[str, Any]


@dataclass(frozen=True, slots=True)
class SetWrite:
    """Create or replace a whole document."""

    collection: str
    doc_id: str
    data: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class UpdateWrite:
    """Update fields of an existing document.

    ``expected`` holds ``field -> value`` guards checked at commit time; if
    any guard fails the whole batch is rejected with
    :class:`~anprtoll.exceptions.TollConflictError`.
    """

    collection: str
    doc_id: str
    fields: Mapping[str, Any]
    expected: Mapping[str, Any] = field(default_factory=dict)


Write = SetWrite | UpdateWrite


class DocumentStore(Protocol):
    """Structural store interface used by every engine component.

    Implementations raise :class:`~anprtoll.exceptions.TollStoreError` for
    infrastructure faults, :class:`~anprtoll.exceptions.TollNotFoundError`
    when updating a missing document and
    :class:`~anprtoll.exceptions.TollConflictError` when a batch guard fails.
    """

    async def query(
        self,
        collection: str,
        *filters: Filter,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        ...

    async def get(self, collection: str, doc_id: str) -> Document | None:
        ...

    async def put(self, collection: str, data: Mapping[str, Any], doc_id: str | None = None) -> str:
        ...

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        ...

    async def increment(self, collection: str, doc_id: str, field_name: str, delta: float) -> None:
        ...

    async def run_batch(self, writes: Sequence[Write]) -> None:
        ...

    def server_timestamp(self) -> Any:
        ...
