"""Deterministic in-memory document store.

Reference implementation of :class:`~anprtoll.store.base.DocumentStore`
used by tests, the demo script and single-process deployments.  Batches
are validated against a staged copy and only swapped in once every write
and guard succeeded, so a failing batch leaves no trace.
"""

from __future__ import annotations

import asyncio
import copy
import uuid
from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from anprtoll.exceptions import TollConflictError, TollNotFoundError
from anprtoll.store.base import (
    SERVER_TIMESTAMP,
    Document,
    Filter,
    Increment,
    SetWrite,
    UpdateWrite,
    Write,
    as_timestamp,
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid.uuid4().hex[:20]


def _resolve(value: Any, current: Any, now: datetime) -> Any:
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, Increment):
        base = current if isinstance(current, (int, float)) and not isinstance(current, bool) else 0
        return base + value.delta
    return copy.deepcopy(value)


class InMemoryDocumentStore:
    """In-memory store keyed by ``collection -> doc_id -> body``.

    Parameters
    ----------
    clock : callable
        Returns the commit time used for ``SERVER_TIMESTAMP`` fields.
    initial : mapping, optional
        Seed documents as ``{collection: {doc_id: body}}``.
    id_factory : callable, optional
        Generates ids for documents added without one.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        initial: Mapping[str, Mapping[str, Mapping[str, Any]]] | None = None,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self._clock = clock
        self._id_factory = id_factory
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._commit_lock = asyncio.Lock()
        for collection, documents in (initial or {}).items():
            bucket = self._collections.setdefault(collection, {})
            for doc_id, data in documents.items():
                bucket[doc_id] = copy.deepcopy(dict(data))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def query(
        self,
        collection: str,
        *filters: Filter,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        await asyncio.sleep(0)
        bucket = self._collections.get(collection, {})
        matches = [
            (doc_id, data) for doc_id, data in bucket.items() if all(flt.matches(data) for flt in filters)
        ]
        if order_by is not None:
            # Documents without the ordering field are not part of an ordered result.
            matches = [item for item in matches if item[1].get(order_by) is not None]
            if any(isinstance(item[1][order_by], datetime) for item in matches):
                # Mixed writers: order epoch and ISO values alongside datetimes.
                matches = [item for item in matches if as_timestamp(item[1][order_by]) is not None]
                matches.sort(key=lambda item: as_timestamp(item[1][order_by]), reverse=descending)
            else:
                matches.sort(key=lambda item: item[1][order_by], reverse=descending)
        if limit is not None:
            matches = matches[:limit]
        return [Document(id=doc_id, data=copy.deepcopy(data)) for doc_id, data in matches]

    async def get(self, collection: str, doc_id: str) -> Document | None:
        await asyncio.sleep(0)
        data = self._collections.get(collection, {}).get(doc_id)
        if data is None:
            return None
        return Document(id=doc_id, data=copy.deepcopy(data))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def put(self, collection: str, data: Mapping[str, Any], doc_id: str | None = None) -> str:
        resolved_id = doc_id or self._id_factory()
        await self.run_batch([SetWrite(collection, resolved_id, data)])
        return resolved_id

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        await self.run_batch([UpdateWrite(collection, doc_id, fields)])

    async def increment(self, collection: str, doc_id: str, field_name: str, delta: float) -> None:
        await self.run_batch([UpdateWrite(collection, doc_id, {field_name: Increment(delta)})])

    async def run_batch(self, writes: Sequence[Write]) -> None:
        """Apply *writes* atomically.

        Raises
        ------
        TollNotFoundError
            An update targets a document that does not exist.
        TollConflictError
            An ``expected`` guard does not hold.
        """
        await asyncio.sleep(0)
        async with self._commit_lock:
            now = self._clock()
            staged: dict[tuple[str, str], dict[str, Any]] = {}
            for write in writes:
                key = (write.collection, write.doc_id)
                if isinstance(write, SetWrite):
                    staged[key] = {name: _resolve(value, None, now) for name, value in write.data.items()}
                    continue

                current = staged.get(key)
                if current is None:
                    existing = self._collections.get(write.collection, {}).get(write.doc_id)
                    if existing is None:
                        raise TollNotFoundError(
                            f"{write.collection}/{write.doc_id} does not exist",
                            collection=write.collection,
                            doc_id=write.doc_id,
                        )
                    current = copy.deepcopy(existing)

                for name, wanted in write.expected.items():
                    if current.get(name) != wanted:
                        raise TollConflictError(
                            f"{write.collection}/{write.doc_id}: expected {name}={wanted!r}, found {current.get(name)!r}",
                            collection=write.collection,
                            doc_id=write.doc_id,
                        )
                for name, value in write.fields.items():
                    current[name] = _resolve(value, current.get(name), now)
                staged[key] = current

            for (collection, doc_id), data in staged.items():
                self._collections.setdefault(collection, {})[doc_id] = data

    def server_timestamp(self) -> Any:
        return SERVER_TIMESTAMP

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def dump(self) -> dict[str, dict[str, dict[str, Any]]]:
        """Deep copy of every collection, for debugging and demos."""
        return copy.deepcopy(self._collections)
