"""Trip and Consignment repository over a :class:`DocumentStore`."""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from pytripsync.exceptions import MalformedDocumentError, NotFoundError
from pytripsync.models.consignment import Consignment
from pytripsync.models.intent import ReconciliationIntent
from pytripsync.models.status import TERMINAL_TRIP_STATUSES, EntityType
from pytripsync.models.trip import Trip
from pytripsync.store.base import DocumentStore

_logger = logging.getLogger(__name__)

_ETAG_KEY = "_etag"

TModel = TypeVar("TModel", bound=BaseModel)


def _validate(model_cls: type[TModel], document: dict[str, Any], *, partition_key: str) -> TModel:
    try:
        return model_cls.model_validate(document)
    except ValidationError as exc:
        raise MalformedDocumentError(
            f"Malformed {model_cls.__name__} document {document.get('id')}: {exc.error_count()} validation error(s)",
            document_id=str(document.get("id", "")),
            partition_key=partition_key,
        ) from exc


def strip_etag(document: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``document`` without its concurrency token."""
    return {key: value for key, value in document.items() if key != _ETAG_KEY}


def rebase_document(document: dict[str, Any], current: Trip | Consignment) -> dict[str, Any]:
    """``document`` carrying the concurrency token of the currently stored version."""
    rebased = strip_etag(document)
    etag = current.to_document().get(_ETAG_KEY)
    if etag is not None:
        rebased[_ETAG_KEY] = etag
    return rebased


class TripRepository:
    """Typed reads and whole-document writes for reconciliation."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def find_active_trip(self, vin: str) -> Trip | None:
        """The single non-terminal Trip for ``vin``, or ``None``.

        More than one candidate violates the one-active-trip-per-vehicle
        invariant kept by trip creation. That is logged and the Trip with
        the lowest id is returned so the outcome stays deterministic.
        """
        documents = await self._store.query_partition(
            vin,
            entity_type=EntityType.TRIP,
            exclude_statuses=TERMINAL_TRIP_STATUSES,
        )
        trips: list[Trip] = []
        for document in documents:
            try:
                trip = Trip.model_validate(document)
            except ValidationError as exc:
                _logger.warning(
                    "Ignoring malformed trip document id=%s vin=%s: %s",
                    document.get("id"),
                    vin,
                    exc.errors(include_url=False),
                )
                continue
            if trip.is_terminal or trip.entity_type != EntityType.TRIP:
                continue
            trips.append(trip)

        if not trips:
            return None
        trips.sort(key=lambda t: t.id)
        if len(trips) > 1:
            _logger.warning(
                "Vehicle %s has %d active trips (%s); using %s",
                vin,
                len(trips),
                ", ".join(t.id for t in trips),
                trips[0].id,
            )
        return trips[0]

    async def load_consignment(self, consignment_id: str) -> Consignment:
        """Point read of a Consignment; ``NotFoundError`` propagates."""
        document = await self._store.read(consignment_id, consignment_id)
        return _validate(Consignment, document, partition_key=consignment_id)

    async def replace_trip(self, trip: Trip) -> Trip:
        return await self.replace_trip_document(trip.to_document())

    async def replace_trip_document(self, document: dict[str, Any]) -> Trip:
        trip = _validate(Trip, document, partition_key=str(document.get("vin", "")))
        stored = await self._store.replace(trip.id, trip.partition_key, document)
        return _validate(Trip, stored, partition_key=trip.partition_key)

    async def replace_consignment(self, consignment: Consignment) -> Consignment:
        return await self.replace_consignment_document(consignment.to_document())

    async def replace_consignment_document(self, document: dict[str, Any]) -> Consignment:
        consignment = _validate(Consignment, document, partition_key=str(document.get("id", "")))
        stored = await self._store.replace(consignment.id, consignment.partition_key, document)
        return _validate(Consignment, stored, partition_key=consignment.partition_key)

    async def load_intent(self, key: str, trip_id: str) -> ReconciliationIntent | None:
        try:
            document = await self._store.read(key, trip_id)
        except NotFoundError:
            return None
        return _validate(ReconciliationIntent, document, partition_key=trip_id)

    async def save_intent(self, intent: ReconciliationIntent) -> ReconciliationIntent:
        stored = await self._store.upsert(intent.id, intent.partition_key, intent.to_document())
        return _validate(ReconciliationIntent, stored, partition_key=intent.partition_key)
