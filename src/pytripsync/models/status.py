"""Closed status enumerations shared by Trip and Consignment documents."""

from __future__ import annotations

from enum import StrEnum


class EntityType(StrEnum):
    TRIP = "Trip"
    CONSIGNMENT = "Consignment"
    RECONCILIATION_INTENT = "ReconciliationIntent"


class TripStatus(StrEnum):
    """Trip lifecycle.

    ``CANCELED`` and ``INACTIVE`` are set by other services and are never
    produced or consumed by the reconciler.
    """

    CREATED = "Created"
    ACTIVE = "Active"
    DELAYED = "Delayed"
    COMPLETED = "Completed"
    CANCELED = "Canceled"
    INACTIVE = "Inactive"


class ConsignmentStatus(StrEnum):
    """Consignment lifecycle, mirrored from the active Trip."""

    CREATED = "Created"
    ACTIVE = "Active"
    DELAYED = "Delayed"
    COMPLETED = "Completed"


TERMINAL_TRIP_STATUSES: frozenset[TripStatus] = frozenset(
    {TripStatus.COMPLETED, TripStatus.CANCELED, TripStatus.INACTIVE}
)
