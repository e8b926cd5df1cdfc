"""Deterministic reconciliation policy.

Legal status-transition tables, the odometer high-water-mark check, and
intent idempotency keys.
"""

from __future__ import annotations

import hashlib
from enum import StrEnum

from pytripsync.exceptions import InvalidTransitionError
from pytripsync.models.status import ConsignmentStatus, EntityType, TripStatus
from pytripsync.models.trip import Trip

# Unchanged status is always legal and not listed.
TRIP_TRANSITIONS: dict[TripStatus, frozenset[TripStatus]] = {
    TripStatus.CREATED: frozenset({TripStatus.ACTIVE, TripStatus.DELAYED, TripStatus.COMPLETED}),
    TripStatus.ACTIVE: frozenset({TripStatus.DELAYED, TripStatus.COMPLETED}),
    # Delayed -> Active only through the first-observation step.
    TripStatus.DELAYED: frozenset({TripStatus.ACTIVE, TripStatus.COMPLETED}),
    TripStatus.COMPLETED: frozenset(),
}

CONSIGNMENT_TRANSITIONS: dict[ConsignmentStatus, frozenset[ConsignmentStatus]] = {
    ConsignmentStatus.CREATED: frozenset(
        {ConsignmentStatus.ACTIVE, ConsignmentStatus.DELAYED, ConsignmentStatus.COMPLETED}
    ),
    ConsignmentStatus.ACTIVE: frozenset({ConsignmentStatus.DELAYED, ConsignmentStatus.COMPLETED}),
    ConsignmentStatus.DELAYED: frozenset({ConsignmentStatus.ACTIVE, ConsignmentStatus.COMPLETED}),
    ConsignmentStatus.COMPLETED: frozenset(),
}


def _table(entity: EntityType) -> dict[StrEnum, frozenset[StrEnum]]:
    if entity == EntityType.TRIP:
        return TRIP_TRANSITIONS  # type: ignore[return-value]
    if entity == EntityType.CONSIGNMENT:
        return CONSIGNMENT_TRANSITIONS  # type: ignore[return-value]
    raise ValueError(f"no transition table for {entity}")


def can_transition(entity: EntityType, old: StrEnum, new: StrEnum) -> bool:
    if old == new:
        return True
    return new in _table(entity).get(old, frozenset())


def check_transition(entity: EntityType, old: StrEnum, new: StrEnum) -> None:
    """Raise :class:`InvalidTransitionError` unless ``old -> new`` is legal."""
    if not can_transition(entity, old, new):
        raise InvalidTransitionError(
            f"{entity} status may not change from {old} to {new}",
            entity=str(entity),
            old=str(old),
            new=str(new),
        )


def check_source_status(entity: EntityType, status: StrEnum) -> None:
    """Raise unless the reconciler is allowed to act on a document in ``status``.

    Only statuses listed in the table are reconcilable. ``Completed`` is
    listed with no way out, so re-evaluating a completed document is a
    no-op change; ``Canceled`` and ``Inactive`` belong to other writers.
    """
    if status not in _table(entity):
        raise InvalidTransitionError(
            f"{entity} in status {status} is not reconcilable",
            entity=str(entity),
            old=str(status),
            new=str(status),
        )


def accept_odometer(trip: Trip, odometer_high: float) -> bool:
    """Whether ``odometer_high`` is not a regression against the stored high-water mark.

    An equal reading is accepted so a redelivered batch reproduces the same result.
    """
    if trip.odometer_high_water is None:
        return True
    return odometer_high >= trip.odometer_high_water


def advance_high_water(trip: Trip, odometer_high: float) -> tuple[Trip, bool]:
    """Return the Trip with its high-water mark raised to ``odometer_high`` if higher."""
    if trip.odometer_high_water is not None and odometer_high <= trip.odometer_high_water:
        return trip, False
    return trip.model_copy(update={"odometer_high_water": odometer_high}), True


def intent_key(trip_id: str, status: StrEnum, odometer_high: float) -> str:
    """Idempotency key for one Trip/Consignment decision."""
    material = f"{trip_id}|{status}|{float(odometer_high)!r}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()
