"""Base model for metadata documents.

Every stored document model inherits from :class:`DocumentModel` which
provides:

* ``alias_generator=to_camel`` so camelCase document keys map
  automatically to snake_case fields.
* ``extra="allow"`` so store-managed or foreign keys (``_etag``,
  ``_ts``, fields written by other services) survive a read/replace
  round trip. Replace always writes the whole document.
* :meth:`DocumentModel.to_document` producing the wire dict.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from pytripsync.ingestion.normalize import parse_timestamp

UtcTimestamp = Annotated[datetime, BeforeValidator(parse_timestamp)]
"""RFC 3339 or epoch (seconds or ms) coerced to a tz-aware UTC datetime."""

OptionalUtcTimestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]


class DocumentModel(BaseModel):
    """Base for documents read from and written to the document store."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    id: str

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        doc_id = value.strip()
        if not doc_id:
            raise ValueError("id must be non-empty")
        return doc_id

    @property
    def partition_key(self) -> str:
        return self.id

    def to_document(self) -> dict[str, Any]:
        """Full JSON-ready document, camelCase keys, ``None`` fields kept."""
        return self.model_dump(by_alias=True, mode="json")
