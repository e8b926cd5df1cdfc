"""State transition engine.

:func:`evaluate_transition` is a pure function of its arguments. It reads
no clock and never mutates the documents it is given; callers inject
``now`` so repeated evaluation with the same inputs is reproducible.

Decision sequence, in this exact order:

1. ``miles_driven = odometer_high - trip.odometer_begin``.
2. If ``miles_driven >= trip.planned_trip_distance`` the Trip and its
   Consignment become ``Completed``; ``odometer_end`` and ``trip_ended``
   are recorded and a ``CompletedAlert`` is raised.
3. Otherwise, if the delivery due date has passed and the Trip is not
   already ``Delayed``, both become ``Delayed`` and a ``DelayedAlert`` is
   raised.
4. Independently of 2-3, if ``trip_started`` is unset it is set to
   ``now`` and both documents become ``Active``.

Step 4 overwrites the status written by step 2 or 3 on the very first
observation of a Trip. The alert raised by that earlier step is kept.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pytripsync.ingestion.normalize import ensure_utc
from pytripsync.models.alerts import AlertKind
from pytripsync.models.consignment import Consignment
from pytripsync.models.status import ConsignmentStatus, EntityType, TripStatus
from pytripsync.models.transition import TransitionResult
from pytripsync.models.trip import Trip
from pytripsync.state.policy import check_source_status, check_transition

_logger = logging.getLogger(__name__)


def evaluate_transition(
    trip: Trip,
    consignment: Consignment,
    odometer_high: float,
    now: datetime,
) -> TransitionResult:
    """Decide the next Trip/Consignment state for one vehicle group.

    Raises
    ------
    InvalidTransitionError
        The Trip or Consignment is in a status the reconciler may not act
        on, or the computed change is not in the legal transition table.
    ValueError
        ``consignment`` is not the one ``trip`` references.
    """
    if consignment.id != trip.consignment_id:
        raise ValueError(f"consignment {consignment.id} does not belong to trip {trip.id}")
    check_source_status(EntityType.TRIP, trip.status)
    check_source_status(EntityType.CONSIGNMENT, consignment.status)

    now = ensure_utc(now)
    trip_update: dict[str, Any] = {}
    consignment_update: dict[str, Any] = {}
    alerts: list[AlertKind] = []

    miles_driven = odometer_high - trip.odometer_begin
    if miles_driven >= trip.planned_trip_distance:
        trip_update.update(
            status=TripStatus.COMPLETED,
            odometer_end=odometer_high,
            trip_ended=now,
        )
        consignment_update["status"] = ConsignmentStatus.COMPLETED
        alerts.append(AlertKind.COMPLETED)
    elif now >= consignment.delivery_due_date and trip.status != TripStatus.DELAYED:
        trip_update["status"] = TripStatus.DELAYED
        consignment_update["status"] = ConsignmentStatus.DELAYED
        alerts.append(AlertKind.DELAYED)

    if trip.trip_started is None:
        if trip_update.get("status") not in (None, TripStatus.ACTIVE):
            _logger.debug(
                "First observation of trip %s overrides %s with Active",
                trip.id,
                trip_update["status"],
            )
        trip_update.update(trip_started=now, status=TripStatus.ACTIVE)
        consignment_update["status"] = ConsignmentStatus.ACTIVE

    new_trip = trip.model_copy(update=trip_update, deep=True) if trip_update else trip
    new_consignment = (
        consignment.model_copy(update=consignment_update, deep=True) if consignment_update else consignment
    )

    check_transition(EntityType.TRIP, trip.status, new_trip.status)
    check_transition(EntityType.CONSIGNMENT, consignment.status, new_consignment.status)

    return TransitionResult(
        trip=new_trip,
        consignment=new_consignment,
        trip_dirty=bool(trip_update),
        consignment_dirty=bool(consignment_update),
        alerts=tuple(alerts),
    )
