from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from pytripsync.alerts import CollectingAlertChannel
from pytripsync.config import ReconcilerConfig
from pytripsync.exceptions import AlertDeliveryError, NotFoundError, StoreUnavailableError
from pytripsync.models.alerts import AlertKind, AlertSignal
from pytripsync.models.intent import IntentState, ReconciliationIntent
from pytripsync.models.status import TripStatus
from pytripsync.reconciler import GroupStatus, TripReconciler
from pytripsync.state.policy import intent_key
from pytripsync.store.memory import InMemoryDocumentStore


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


def _seed(
    store: InMemoryDocumentStore,
    *,
    vin: str = "VIN123",
    trip_id: str = "trip-1",
    consignment_id: str = "cons-1",
    trip: dict[str, Any] | None = None,
    consignment: dict[str, Any] | None = None,
) -> None:
    trip_doc: dict[str, Any] = {
        "id": trip_id,
        "entityType": "Trip",
        "vin": vin,
        "consignmentId": consignment_id,
        "status": "Active",
        "odometerBegin": 0.0,
        "odometerEnd": None,
        "plannedTripDistance": 100.0,
        "tripStarted": _iso(_now() - timedelta(hours=4)),
        "tripEnded": None,
    }
    trip_doc.update(trip or {})
    consignment_doc: dict[str, Any] = {
        "id": consignment_id,
        "entityType": "Consignment",
        "status": "Active",
        "deliveryDueDate": _iso(_now() + timedelta(days=1)),
    }
    consignment_doc.update(consignment or {})
    store.seed(vin, trip_doc)
    store.seed(consignment_id, consignment_doc)


def _seed_orphan_trip(store: InMemoryDocumentStore, vin: str, trip_id: str) -> None:
    """A Trip whose Consignment does not exist."""
    store.seed(
        vin,
        {
            "id": trip_id,
            "entityType": "Trip",
            "vin": vin,
            "consignmentId": "cons-missing",
            "status": "Active",
            "odometerBegin": 0.0,
            "plannedTripDistance": 100.0,
        },
    )


def _batch(vin: str, *odometers: float) -> list[dict[str, Any]]:
    return [
        {"id": f"{vin}-{i}", "vin": vin, "odometer": odometer, "timestamp": _iso(_now())}
        for i, odometer in enumerate(odometers)
    ]


def _reconciler(
    store: InMemoryDocumentStore,
    alerts: CollectingAlertChannel,
    **config: Any,
) -> TripReconciler:
    return TripReconciler(store, alerts, config=ReconcilerConfig(**config), clock=_now)


@pytest.mark.asyncio
async def test_completes_trip_with_highest_reading_in_batch() -> None:
    store = InMemoryDocumentStore()
    _seed(store)
    alerts = CollectingAlertChannel()

    report = await _reconciler(store, alerts).process_batch(_batch("VIN123", 50.0, 150.0, 120.0))

    trip = store.get("trip-1", "VIN123")
    consignment = store.get("cons-1", "cons-1")
    assert trip["status"] == "Completed"
    assert trip["odometerEnd"] == 150.0
    assert trip["tripEnded"] == "2026-03-01T12:00:00Z"
    assert trip["odometerHighWater"] == 150.0
    assert consignment["status"] == "Completed"
    assert alerts.signals == [AlertSignal(vin="VIN123", trip_id="trip-1", kind=AlertKind.COMPLETED)]
    assert report.event_count == 3
    [outcome] = report.outcomes
    assert outcome.status == GroupStatus.UPDATED
    assert outcome.trip_status == TripStatus.COMPLETED
    assert outcome.alerts == (AlertKind.COMPLETED,)
    assert report.alerts == alerts.signals


@pytest.mark.asyncio
async def test_delays_trip_once() -> None:
    store = InMemoryDocumentStore()
    _seed(store, consignment={"deliveryDueDate": _iso(_now() - timedelta(hours=2))})
    alerts = CollectingAlertChannel()
    reconciler = _reconciler(store, alerts)

    await reconciler.process_batch(_batch("VIN123", 40.0))
    redelivered = await reconciler.process_batch(_batch("VIN123", 40.0))

    assert store.get("trip-1", "VIN123")["status"] == "Delayed"
    assert store.get("cons-1", "cons-1")["status"] == "Delayed"
    assert [s.kind for s in alerts.signals] == [AlertKind.DELAYED]
    assert redelivered.outcomes[0].status == GroupStatus.UNCHANGED


@pytest.mark.asyncio
async def test_first_observation_overwrites_completion() -> None:
    store = InMemoryDocumentStore()
    _seed(store, trip={"status": "Created", "tripStarted": None}, consignment={"status": "Created"})
    alerts = CollectingAlertChannel()

    report = await _reconciler(store, alerts).process_batch(_batch("VIN123", 150.0))

    trip = store.get("trip-1", "VIN123")
    assert trip["status"] == "Active"
    assert trip["tripStarted"] == "2026-03-01T12:00:00Z"
    assert store.get("cons-1", "cons-1")["status"] == "Active"
    assert [s.kind for s in alerts.signals] == [AlertKind.COMPLETED]
    assert report.outcomes[0].trip_status == TripStatus.ACTIVE


@pytest.mark.asyncio
async def test_vehicle_without_active_trip_only_queries() -> None:
    store = InMemoryDocumentStore()
    _seed(store, trip={"status": "Completed"})
    alerts = CollectingAlertChannel()

    report = await _reconciler(store, alerts).process_batch(_batch("VIN123", 500.0))

    assert store.calls == [("query", "VIN123", "Trip")]
    assert alerts.signals == []
    assert report.outcomes[0].status == GroupStatus.NO_ACTIVE_TRIP
    assert report.failed == []


@pytest.mark.asyncio
async def test_empty_batch_touches_nothing() -> None:
    store = InMemoryDocumentStore()

    report = await _reconciler(store, CollectingAlertChannel()).process_batch([])

    assert report.outcomes == []
    assert store.calls == []


@pytest.mark.asyncio
async def test_malformed_events_are_skipped() -> None:
    store = InMemoryDocumentStore()
    _seed(store)
    alerts = CollectingAlertChannel()

    report = await _reconciler(store, alerts).process_batch(
        [{"id": "junk", "odometer": 1000.0}, *_batch("VIN123", 150.0)]
    )

    assert report.event_count == 2
    assert [o.vin for o in report.outcomes] == ["VIN123"]
    assert store.get("trip-1", "VIN123")["status"] == "Completed"


@pytest.mark.asyncio
async def test_missing_consignment_fails_only_its_group() -> None:
    store = InMemoryDocumentStore()
    _seed(store, vin="VIN-A", trip_id="trip-a", consignment_id="cons-a")
    _seed(store, vin="VIN-B", trip_id="trip-b", consignment_id="cons-b")
    _seed_orphan_trip(store, "VIN-C", "trip-c")
    alerts = CollectingAlertChannel()

    report = await _reconciler(store, alerts).process_batch(
        _batch("VIN-C", 150.0) + _batch("VIN-A", 150.0) + _batch("VIN-B", 150.0)
    )

    statuses = {o.vin: o.status for o in report.outcomes}
    assert statuses == {"VIN-C": GroupStatus.FAILED, "VIN-A": GroupStatus.UPDATED, "VIN-B": GroupStatus.UPDATED}
    assert "NotFoundError" in (report.failed[0].error or "")
    assert store.get("trip-c", "VIN-C")["status"] == "Active"
    assert {s.trip_id for s in alerts.signals} == {"trip-a", "trip-b"}


@pytest.mark.asyncio
async def test_raise_on_group_error_after_all_groups_attempted() -> None:
    store = InMemoryDocumentStore()
    _seed_orphan_trip(store, "VIN-C", "trip-c")
    _seed(store, vin="VIN-A", trip_id="trip-a", consignment_id="cons-a")
    reconciler = _reconciler(store, CollectingAlertChannel(), raise_on_group_error=True)

    with pytest.raises(NotFoundError):
        await reconciler.process_batch(_batch("VIN-C", 150.0) + _batch("VIN-A", 150.0))

    assert store.get("trip-a", "VIN-A")["status"] == "Completed"


@pytest.mark.asyncio
async def test_store_outage_is_surfaced_not_retried() -> None:
    store = InMemoryDocumentStore()
    _seed(store)
    store.fail_next("query", "VIN123", StoreUnavailableError("store down", partition_key="VIN123"))

    report = await _reconciler(store, CollectingAlertChannel()).process_batch(_batch("VIN123", 150.0))

    assert report.outcomes[0].status == GroupStatus.FAILED
    assert store.calls == [("query", "VIN123", "Trip")]


@pytest.mark.asyncio
async def test_stale_odometer_is_ignored() -> None:
    store = InMemoryDocumentStore()
    _seed(store, trip={"odometerHighWater": 90.0}, consignment={"deliveryDueDate": _iso(_now() - timedelta(days=1))})
    alerts = CollectingAlertChannel()

    report = await _reconciler(store, alerts).process_batch(_batch("VIN123", 40.0))

    assert report.outcomes[0].status == GroupStatus.STALE_ODOMETER
    assert store.calls == [("query", "VIN123", "Trip")]
    assert alerts.signals == []
    assert store.get("trip-1", "VIN123")["status"] == "Active"


@pytest.mark.asyncio
async def test_stale_odometer_accepted_when_high_water_mark_disabled() -> None:
    store = InMemoryDocumentStore()
    _seed(store, trip={"odometerHighWater": 90.0}, consignment={"deliveryDueDate": _iso(_now() - timedelta(days=1))})

    report = await _reconciler(store, CollectingAlertChannel(), enforce_high_water_mark=False).process_batch(
        _batch("VIN123", 40.0)
    )

    assert report.outcomes[0].status == GroupStatus.UPDATED
    assert store.get("trip-1", "VIN123")["status"] == "Delayed"
    assert store.get("trip-1", "VIN123")["odometerHighWater"] == 90.0


@pytest.mark.asyncio
async def test_progress_without_status_change_persists_high_water_mark_only() -> None:
    store = InMemoryDocumentStore()
    _seed(store)
    alerts = CollectingAlertChannel()

    report = await _reconciler(store, alerts).process_batch(_batch("VIN123", 40.0))

    assert report.outcomes[0].status == GroupStatus.UPDATED
    assert ("replace", "cons-1", "cons-1") not in store.calls
    assert store.get("trip-1", "VIN123")["odometerHighWater"] == 40.0
    assert store.get("trip-1", "VIN123")["status"] == "Active"
    assert alerts.signals == []
    assert not any(doc["entityType"] == "ReconciliationIntent" for doc in store.documents())


@pytest.mark.asyncio
async def test_intent_recorded_and_marked_applied() -> None:
    store = InMemoryDocumentStore()
    _seed(store)

    await _reconciler(store, CollectingAlertChannel()).process_batch(_batch("VIN123", 150.0))

    key = intent_key("trip-1", TripStatus.COMPLETED, 150.0)
    intent = store.get(key, "trip-1")
    assert intent is not None
    assert intent["state"] == IntentState.APPLIED
    assert intent["alerts"] == ["CompletedAlert"]
    assert intent["tripDocument"]["status"] == "Completed"
    assert intent["consignmentDocument"]["status"] == "Completed"
    assert intent["appliedAt"] == "2026-03-01T12:00:00Z"
    assert intent["ttl"] == 7 * 24 * 3600


@pytest.mark.asyncio
async def test_applied_intent_is_not_reapplied() -> None:
    store = InMemoryDocumentStore()
    _seed(store)
    key = intent_key("trip-1", TripStatus.COMPLETED, 150.0)
    applied = ReconciliationIntent(id=key, trip_id="trip-1", odometer_high=150.0, state=IntentState.APPLIED)
    store.seed("trip-1", applied.to_document())
    alerts = CollectingAlertChannel()

    report = await _reconciler(store, alerts).process_batch(_batch("VIN123", 150.0))

    assert report.outcomes[0].status == GroupStatus.ALREADY_APPLIED
    assert alerts.signals == []
    assert not any(call[0] == "replace" for call in store.calls)


@pytest.mark.asyncio
async def test_partially_applied_pair_is_completed_on_redelivery() -> None:
    store = InMemoryDocumentStore()
    _seed(store)
    store.fail_next("replace", "trip-1", StoreUnavailableError("write timed out", document_id="trip-1"))
    alerts = CollectingAlertChannel()

    first = await _reconciler(store, alerts).process_batch(_batch("VIN123", 150.0))

    assert first.outcomes[0].status == GroupStatus.FAILED
    assert store.get("cons-1", "cons-1")["status"] == "Completed"
    assert store.get("trip-1", "VIN123")["status"] == "Active"
    assert [s.kind for s in alerts.signals] == [AlertKind.COMPLETED]

    later = _now() + timedelta(minutes=10)
    second = await TripReconciler(store, alerts, clock=lambda: later).process_batch(_batch("VIN123", 150.0))

    trip = store.get("trip-1", "VIN123")
    assert second.outcomes[0].status == GroupStatus.UPDATED
    assert trip["status"] == "Completed"
    # The pair written is the one first decided, not a recomputation.
    assert trip["tripEnded"] == "2026-03-01T12:00:00Z"
    # Alerts went out before the failed Trip write and are not sent twice.
    assert [s.kind for s in alerts.signals] == [AlertKind.COMPLETED]
    assert second.outcomes[0].alerts == ()
    key = intent_key("trip-1", TripStatus.COMPLETED, 150.0)
    assert store.get(key, "trip-1")["state"] == IntentState.APPLIED


@pytest.mark.asyncio
async def test_without_intents_writes_directly() -> None:
    store = InMemoryDocumentStore()
    _seed(store)
    alerts = CollectingAlertChannel()

    await _reconciler(store, alerts, use_intents=False).process_batch(_batch("VIN123", 150.0))

    assert store.get("trip-1", "VIN123")["status"] == "Completed"
    assert [call[0] for call in store.calls] == ["query", "read", "replace", "replace"]
    assert not any(doc["entityType"] == "ReconciliationIntent" for doc in store.documents())
    assert len(alerts.signals) == 1


class _FailingAlertChannel:
    async def send(self, signal: AlertSignal) -> None:
        raise AlertDeliveryError(f"cannot deliver {signal.kind}")


class _FailOnceAlertChannel(CollectingAlertChannel):
    def __init__(self) -> None:
        super().__init__()
        self._failed = False

    async def send(self, signal: AlertSignal) -> None:
        if not self._failed:
            self._failed = True
            raise AlertDeliveryError(f"cannot deliver {signal.kind}")
        await super().send(signal)


@pytest.mark.asyncio
async def test_alert_failure_fails_group_before_trip_write() -> None:
    store = InMemoryDocumentStore()
    _seed(store)

    report = await TripReconciler(store, _FailingAlertChannel(), clock=_now).process_batch(_batch("VIN123", 150.0))

    assert report.outcomes[0].status == GroupStatus.FAILED
    assert "AlertDeliveryError" in (report.outcomes[0].error or "")
    assert store.get("cons-1", "cons-1")["status"] == "Completed"
    assert store.get("trip-1", "VIN123")["status"] == "Active"


@pytest.mark.asyncio
@pytest.mark.parametrize("use_intents", [True, False])
@pytest.mark.parametrize(
    ("consignment", "odometer", "expected_trip_status", "expected_alert"),
    [
        ({}, 150.0, "Completed", AlertKind.COMPLETED),
        ({"deliveryDueDate": _iso(_now() - timedelta(hours=2))}, 40.0, "Delayed", AlertKind.DELAYED),
    ],
)
async def test_undelivered_alert_is_sent_on_redelivery(
    use_intents: bool,
    consignment: dict[str, Any],
    odometer: float,
    expected_trip_status: str,
    expected_alert: AlertKind,
) -> None:
    store = InMemoryDocumentStore()
    _seed(store, consignment=consignment)
    alerts = _FailOnceAlertChannel()
    reconciler = _reconciler(store, alerts, use_intents=use_intents)

    first = await reconciler.process_batch(_batch("VIN123", odometer))
    second = await reconciler.process_batch(_batch("VIN123", odometer))
    third = await reconciler.process_batch(_batch("VIN123", odometer))

    assert first.outcomes[0].status == GroupStatus.FAILED
    assert second.outcomes[0].status == GroupStatus.UPDATED
    assert second.alerts == [AlertSignal(vin="VIN123", trip_id="trip-1", kind=expected_alert)]
    assert third.outcomes[0].status in (GroupStatus.UNCHANGED, GroupStatus.NO_ACTIVE_TRIP)
    assert alerts.signals == [AlertSignal(vin="VIN123", trip_id="trip-1", kind=expected_alert)]
    assert store.get("trip-1", "VIN123")["status"] == expected_trip_status


@pytest.mark.asyncio
async def test_explicit_now_overrides_clock() -> None:
    store = InMemoryDocumentStore()
    _seed(store)
    fixed = datetime(2026, 3, 5, 9, 30, tzinfo=UTC)

    await _reconciler(store, CollectingAlertChannel()).process_batch(_batch("VIN123", 150.0), now=fixed)

    assert store.get("trip-1", "VIN123")["tripEnded"] == "2026-03-05T09:30:00Z"
