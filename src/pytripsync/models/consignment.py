"""Consignment document model."""

from __future__ import annotations

from pytripsync.models._base import DocumentModel, UtcTimestamp
from pytripsync.models.status import ConsignmentStatus, EntityType


class Consignment(DocumentModel):
    """A shipment whose delivery status mirrors its active Trip.

    The Consignment is its own partition: ``partition_key == id``.
    """

    entity_type: EntityType = EntityType.CONSIGNMENT
    status: ConsignmentStatus = ConsignmentStatus.CREATED
    delivery_due_date: UtcTimestamp
