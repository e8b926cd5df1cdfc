"""In-memory document store.

Deterministic dict-backed implementation of
:class:`pytripsync.store.base.DocumentStore`, used by tests and the
replay script.
"""

from __future__ import annotations

import copy
from collections.abc import Collection, Iterable, Mapping
from typing import Any

from pytripsync.exceptions import NotFoundError, StoreConflictError, StoreError

_ETAG_KEY = "_etag"


class InMemoryDocumentStore:
    """Documents keyed by ``(partition_key, id)``.

    Every write stamps a new ``_etag``. A replace carrying an ``_etag``
    that no longer matches the stored one fails with
    :class:`StoreConflictError`, mirroring optimistic concurrency in a
    real document store.

    Documents are deep-copied on the way in and out so callers can never
    mutate stored state by accident.
    """

    def __init__(self, documents: Iterable[tuple[str, Mapping[str, Any]]] = ()) -> None:
        self._documents: dict[tuple[str, str], dict[str, Any]] = {}
        self._etag_counter = 0
        self._failures: dict[tuple[str, str], list[StoreError]] = {}
        self.calls: list[tuple[str, str, str]] = []
        for partition_key, document in documents:
            self.seed(partition_key, document)

    def _next_etag(self) -> str:
        self._etag_counter += 1
        return f'"{self._etag_counter}"'

    def _store(self, partition_key: str, document_id: str, document: Mapping[str, Any]) -> dict[str, Any]:
        stored = copy.deepcopy(dict(document))
        stored["id"] = document_id
        stored[_ETAG_KEY] = self._next_etag()
        self._documents[(partition_key, document_id)] = stored
        return copy.deepcopy(stored)

    def _check_failure(self, operation: str, document_id: str) -> None:
        queued = self._failures.get((operation, document_id))
        if queued:
            raise queued.pop(0)

    def seed(self, partition_key: str, document: Mapping[str, Any]) -> dict[str, Any]:
        """Insert a document without recording a call."""
        document_id = str(document["id"])
        return self._store(partition_key, document_id, document)

    def fail_next(self, operation: str, document_id: str, error: StoreError) -> None:
        """Make the next ``operation`` (``read``/``replace``/``upsert``/``query``) on ``document_id`` raise."""
        self._failures.setdefault((operation, document_id), []).append(error)

    def get(self, document_id: str, partition_key: str) -> dict[str, Any] | None:
        """Inspect a stored document without recording a call."""
        stored = self._documents.get((partition_key, document_id))
        return copy.deepcopy(stored) if stored is not None else None

    def documents(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(doc) for doc in self._documents.values()]

    async def query_partition(
        self,
        partition_key: str,
        *,
        entity_type: str,
        exclude_statuses: Collection[str] = (),
    ) -> list[dict[str, Any]]:
        self.calls.append(("query", partition_key, entity_type))
        self._check_failure("query", partition_key)
        excluded = {str(status) for status in exclude_statuses}
        return [
            copy.deepcopy(doc)
            for (pk, _doc_id), doc in self._documents.items()
            if pk == partition_key and doc.get("entityType") == entity_type and doc.get("status") not in excluded
        ]

    async def read(self, document_id: str, partition_key: str) -> dict[str, Any]:
        self.calls.append(("read", partition_key, document_id))
        self._check_failure("read", document_id)
        stored = self._documents.get((partition_key, document_id))
        if stored is None:
            raise NotFoundError(
                f"Document {document_id} not found in partition {partition_key}",
                document_id=document_id,
                partition_key=partition_key,
                status_code=404,
            )
        return copy.deepcopy(stored)

    async def replace(self, document_id: str, partition_key: str, document: Mapping[str, Any]) -> dict[str, Any]:
        self.calls.append(("replace", partition_key, document_id))
        self._check_failure("replace", document_id)
        stored = self._documents.get((partition_key, document_id))
        if stored is None:
            raise NotFoundError(
                f"Cannot replace missing document {document_id} in partition {partition_key}",
                document_id=document_id,
                partition_key=partition_key,
                status_code=404,
            )
        incoming_etag = document.get(_ETAG_KEY)
        if incoming_etag is not None and incoming_etag != stored.get(_ETAG_KEY):
            raise StoreConflictError(
                f"Document {document_id} changed since it was read",
                document_id=document_id,
                partition_key=partition_key,
                status_code=412,
            )
        return self._store(partition_key, document_id, document)

    async def upsert(self, document_id: str, partition_key: str, document: Mapping[str, Any]) -> dict[str, Any]:
        self.calls.append(("upsert", partition_key, document_id))
        self._check_failure("upsert", document_id)
        return self._store(partition_key, document_id, document)
