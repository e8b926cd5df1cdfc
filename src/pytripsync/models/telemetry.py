"""Telemetry event model."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from pytripsync.ingestion.normalize import safe_float, safe_str
from pytripsync.models._base import OptionalUtcTimestamp


class TelemetryEvent(BaseModel):
    """A single odometer reading for a vehicle at a point in time.

    Only the fields the reconciler needs are modelled; the rest of the
    change-feed document is ignored.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    vin: str = Field(validation_alias=AliasChoices("vin", "vehicleId", "vehicle_id"))
    odometer: float
    timestamp: OptionalUtcTimestamp = Field(
        default=None,
        validation_alias=AliasChoices("timestamp", "timeStamp", "_ts"),
    )

    @field_validator("vin", mode="before")
    @classmethod
    def _normalize_vin(cls, value: Any) -> str:
        vin = safe_str(value)
        if vin is None:
            raise ValueError("vin must be non-empty")
        return vin

    @field_validator("odometer", mode="before")
    @classmethod
    def _coerce_odometer(cls, value: Any) -> float:
        odometer = safe_float(value)
        if odometer is None:
            raise ValueError(f"odometer is not a finite number: {value!r}")
        return odometer
