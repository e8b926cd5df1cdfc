"""Trip document model."""

from __future__ import annotations

from pydantic import Field, field_validator

from pytripsync.models._base import DocumentModel, OptionalUtcTimestamp
from pytripsync.models.status import TERMINAL_TRIP_STATUSES, EntityType, TripStatus


class Trip(DocumentModel):
    """A tracked journey for one vehicle, bound to a Consignment.

    Parameters
    ----------
    id : str
        Trip id.
    vin : str
        Vehicle identifier; the Trip's partition key.
    consignment_id : str
        Id (and partition key) of the associated Consignment.
    status : TripStatus
        Current lifecycle status.
    odometer_begin : float
        Odometer reading when the Trip was created.
    odometer_end : float or None
        Odometer reading that completed the Trip.
    planned_trip_distance : float
        Distance after which the Trip counts as completed.
    trip_started : datetime or None
        Set once, on the first telemetry observed for the Trip.
    trip_ended : datetime or None
        Set on completion.
    odometer_high_water : float or None
        Highest odometer reading accepted for this Trip so far.
    """

    entity_type: EntityType = EntityType.TRIP
    vin: str
    consignment_id: str
    status: TripStatus = TripStatus.CREATED
    odometer_begin: float = 0.0
    odometer_end: float | None = None
    planned_trip_distance: float = Field(default=0.0, ge=0.0)
    trip_started: OptionalUtcTimestamp = None
    trip_ended: OptionalUtcTimestamp = None
    odometer_high_water: float | None = None

    @field_validator("vin", "consignment_id")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("must be non-empty")
        return text

    @property
    def partition_key(self) -> str:
        return self.vin

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TRIP_STATUSES
