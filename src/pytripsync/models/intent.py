"""Reconciliation intent document.

An intent records both target documents of one Trip/Consignment decision
before either is written. The store offers no multi-document transaction;
the intent makes a retried batch either skip an already-applied pair or
finish a partially-applied one with the exact documents first computed.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import Field

from pytripsync.models._base import DocumentModel, OptionalUtcTimestamp
from pytripsync.models.alerts import AlertKind
from pytripsync.models.status import EntityType


class IntentState(StrEnum):
    PENDING = "pending"
    ALERTED = "alerted"
    APPLIED = "applied"


class ReconciliationIntent(DocumentModel):
    """Outbox entry keyed by ``(trip id, resulting status, odometer high)``.

    ``id`` is the idempotency key; the partition key is the Trip id.
    ``state`` moves ``pending`` -> ``alerted`` -> ``applied``; ``alerted``
    means the alerts went out and only the Trip write is left. ``ttl`` is
    the store-side expiry in seconds.
    """

    entity_type: EntityType = EntityType.RECONCILIATION_INTENT
    trip_id: str
    odometer_high: float
    state: IntentState = IntentState.PENDING
    trip_document: dict[str, Any] | None = None
    consignment_document: dict[str, Any] | None = None
    alerts: list[AlertKind] = Field(default_factory=list)
    created_at: OptionalUtcTimestamp = None
    applied_at: OptionalUtcTimestamp = None
    ttl: int | None = None

    @property
    def partition_key(self) -> str:
        return self.trip_id
