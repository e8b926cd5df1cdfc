"""pytripsync - Async Trip/Consignment reconciliation from vehicle telemetry."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pytripsync")
except PackageNotFoundError:
    __version__ = "0+local"
from pytripsync.alerts import AlertChannel, CollectingAlertChannel, LoggingAlertChannel
from pytripsync.config import ReconcilerConfig
from pytripsync.exceptions import (
    AlertDeliveryError,
    ConfigError,
    InvalidTransitionError,
    MalformedDocumentError,
    NotFoundError,
    PyTripSyncError,
    StoreConflictError,
    StoreError,
    StoreUnavailableError,
)
from pytripsync.models import (
    AlertKind,
    AlertSignal,
    Consignment,
    ConsignmentStatus,
    EntityType,
    ReconciliationIntent,
    TelemetryEvent,
    TransitionResult,
    Trip,
    TripStatus,
)
from pytripsync.reconciler import BatchReport, GroupOutcome, GroupStatus, TripReconciler
from pytripsync.state.transitions import evaluate_transition
from pytripsync.store import DocumentStore, HttpDocumentStore, InMemoryDocumentStore

__all__ = [
    "__version__",
    "AlertChannel",
    "AlertDeliveryError",
    "AlertKind",
    "AlertSignal",
    "BatchReport",
    "CollectingAlertChannel",
    "ConfigError",
    "Consignment",
    "ConsignmentStatus",
    "DocumentStore",
    "EntityType",
    "GroupOutcome",
    "GroupStatus",
    "HttpDocumentStore",
    "InMemoryDocumentStore",
    "InvalidTransitionError",
    "LoggingAlertChannel",
    "MalformedDocumentError",
    "NotFoundError",
    "PyTripSyncError",
    "ReconcilerConfig",
    "ReconciliationIntent",
    "StoreConflictError",
    "StoreError",
    "StoreUnavailableError",
    "TelemetryEvent",
    "TransitionResult",
    "Trip",
    "TripReconciler",
    "TripStatus",
    "evaluate_transition",
]
