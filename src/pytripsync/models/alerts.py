"""Alert signal model."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class AlertKind(StrEnum):
    COMPLETED = "CompletedAlert"
    DELAYED = "DelayedAlert"


class AlertSignal(BaseModel):
    """What the notification collaborator receives: who, which trip, what happened."""

    model_config = ConfigDict(frozen=True)

    vin: str
    trip_id: str
    kind: AlertKind
