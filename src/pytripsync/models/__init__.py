"""Document, event, and signal models."""

from pytripsync.models._base import DocumentModel, OptionalUtcTimestamp, UtcTimestamp
from pytripsync.models.alerts import AlertKind, AlertSignal
from pytripsync.models.consignment import Consignment
from pytripsync.models.intent import IntentState, ReconciliationIntent
from pytripsync.models.status import TERMINAL_TRIP_STATUSES, ConsignmentStatus, EntityType, TripStatus
from pytripsync.models.telemetry import TelemetryEvent
from pytripsync.models.transition import TransitionResult
from pytripsync.models.trip import Trip

__all__ = [
    "AlertKind",
    "AlertSignal",
    "Consignment",
    "ConsignmentStatus",
    "DocumentModel",
    "EntityType",
    "IntentState",
    "OptionalUtcTimestamp",
    "ReconciliationIntent",
    "TERMINAL_TRIP_STATUSES",
    "TelemetryEvent",
    "TransitionResult",
    "Trip",
    "TripStatus",
    "UtcTimestamp",
]
