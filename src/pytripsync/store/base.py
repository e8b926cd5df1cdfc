"""Document store interface."""

from __future__ import annotations

from collections.abc import Collection, Mapping
from typing import Any, Protocol


class DocumentStore(Protocol):
    """Structural interface of the metadata document store.

    Every operation is scoped by partition key. Documents are plain JSON
    dicts with camelCase keys; mutation is always a whole-document
    replace, never a field-level patch. The store offers no transaction
    spanning more than one document.

    Implementations raise :class:`pytripsync.exceptions.NotFoundError`,
    :class:`~pytripsync.exceptions.StoreConflictError`, or
    :class:`~pytripsync.exceptions.StoreUnavailableError`.
    """

    async def query_partition(
        self,
        partition_key: str,
        *,
        entity_type: str,
        exclude_statuses: Collection[str] = (),
    ) -> list[dict[str, Any]]:
        """Documents of ``entity_type`` in the partition whose status is not excluded, in no particular order."""
        ...

    async def read(self, document_id: str, partition_key: str) -> dict[str, Any]:
        """Point read; raises ``NotFoundError`` if absent."""
        ...

    async def replace(self, document_id: str, partition_key: str, document: Mapping[str, Any]) -> dict[str, Any]:
        """Replace an existing document; raises ``NotFoundError`` if absent."""
        ...

    async def upsert(self, document_id: str, partition_key: str, document: Mapping[str, Any]) -> dict[str, Any]:
        """Create or replace a document."""
        ...
