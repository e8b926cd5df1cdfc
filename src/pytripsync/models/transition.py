"""Result of one state-transition evaluation."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from pytripsync.models.alerts import AlertKind
from pytripsync.models.consignment import Consignment
from pytripsync.models.trip import Trip


class TransitionResult(BaseModel):
    """Updated documents, their dirty flags, and the alerts the decision raised.

    ``alerts`` may be non-empty even when the final Trip status does not
    match the alert: the first-observation step runs last and can revert a
    just-completed or just-delayed Trip to ``Active``.
    """

    model_config = ConfigDict(frozen=True)

    trip: Trip
    consignment: Consignment
    trip_dirty: bool = False
    consignment_dirty: bool = False
    alerts: tuple[AlertKind, ...] = ()

    @property
    def dirty(self) -> bool:
        return self.trip_dirty or self.consignment_dirty
