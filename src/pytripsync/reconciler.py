"""Batch reconciler.

Turns one change-feed batch of telemetry into Trip/Consignment updates
and alert signals::

    batch -> group by vehicle (max odometer)
          -> for each vehicle, sequentially:
             find active Trip -> load Consignment -> evaluate transition
             -> write Consignment -> send alerts -> write Trip

Vehicle groups are isolated from each other: a failure while handling one
vehicle is logged and recorded in the :class:`BatchReport`, and the
remaining groups still run. Nothing is retried here; retry is the
redelivery of the whole batch by the change-feed runtime.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pytripsync.alerts import AlertChannel, LoggingAlertChannel
from pytripsync.config import ReconcilerConfig
from pytripsync.exceptions import PyTripSyncError
from pytripsync.ingestion.grouping import group_odometer_high, parse_events
from pytripsync.models.alerts import AlertKind, AlertSignal
from pytripsync.models.consignment import Consignment
from pytripsync.models.intent import IntentState, ReconciliationIntent
from pytripsync.models.status import TripStatus
from pytripsync.models.telemetry import TelemetryEvent
from pytripsync.models.transition import TransitionResult
from pytripsync.models.trip import Trip
from pytripsync.repository import TripRepository, rebase_document, strip_etag
from pytripsync.state.policy import accept_odometer, advance_high_water, intent_key
from pytripsync.state.transitions import evaluate_transition
from pytripsync.store.base import DocumentStore

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class GroupStatus(StrEnum):
    NO_ACTIVE_TRIP = "no_active_trip"
    STALE_ODOMETER = "stale_odometer"
    UNCHANGED = "unchanged"
    UPDATED = "updated"
    ALREADY_APPLIED = "already_applied"
    FAILED = "failed"


class GroupOutcome(BaseModel):
    """What happened to one ``(vin, odometer_high)`` group."""

    model_config = ConfigDict(frozen=True)

    vin: str
    odometer_high: float
    status: GroupStatus
    trip_id: str | None = None
    trip_status: TripStatus | None = None
    alerts: tuple[AlertKind, ...] = ()
    error: str | None = None


class BatchReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_count: int = 0
    outcomes: list[GroupOutcome] = Field(default_factory=list)

    @property
    def failed(self) -> list[GroupOutcome]:
        return [o for o in self.outcomes if o.status == GroupStatus.FAILED]

    @property
    def alerts(self) -> list[AlertSignal]:
        return [
            AlertSignal(vin=o.vin, trip_id=o.trip_id, kind=kind)
            for o in self.outcomes
            if o.trip_id is not None
            for kind in o.alerts
        ]


class TripReconciler:
    """Reconciles Trip and Consignment documents from telemetry batches.

    Usage::

        reconciler = TripReconciler(store, alerts)
        report = await reconciler.process_batch(documents)

    The store, alert channel, configuration, and clock are all injected;
    the reconciler keeps no state between batches.
    """

    def __init__(
        self,
        store: DocumentStore,
        alerts: AlertChannel | None = None,
        *,
        config: ReconcilerConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = TripRepository(store)
        self._alerts: AlertChannel = alerts if alerts is not None else LoggingAlertChannel()
        self._config = config if config is not None else ReconcilerConfig()
        self._clock = clock

    async def process_batch(
        self,
        raw_batch: Iterable[Mapping[str, Any] | TelemetryEvent],
        *,
        now: datetime | None = None,
    ) -> BatchReport:
        """Process one delivered batch.

        Parameters
        ----------
        raw_batch
            Change-feed documents (or already-parsed events), in any order.
        now
            Decision time used for every group. When omitted the injected
            clock is read once per group.

        Raises
        ------
        PyTripSyncError
            Only when ``config.raise_on_group_error`` is set: the first
            group failure, after every group has been attempted.
        """
        batch = list(raw_batch)
        _logger.info(
            "Evaluating %d events to optionally update Trip and Consignment metadata",
            len(batch),
        )
        if not batch:
            return BatchReport()

        highs = group_odometer_high(parse_events(batch))
        outcomes: list[GroupOutcome] = []
        first_error: PyTripSyncError | None = None

        for vin, odometer_high in highs.items():
            try:
                outcome = await self.process_vehicle(
                    vin,
                    odometer_high,
                    now if now is not None else self._clock(),
                )
            except PyTripSyncError as exc:
                _logger.error("Reconciliation failed for vin=%s odometer=%s", vin, odometer_high, exc_info=True)
                outcome = GroupOutcome(
                    vin=vin,
                    odometer_high=odometer_high,
                    status=GroupStatus.FAILED,
                    error=f"{type(exc).__name__}: {exc}",
                )
                if first_error is None:
                    first_error = exc
            outcomes.append(outcome)

        report = BatchReport(event_count=len(batch), outcomes=outcomes)
        _logger.info(
            "Batch complete: %d vehicles, %d updated, %d failed",
            len(outcomes),
            sum(1 for o in outcomes if o.status == GroupStatus.UPDATED),
            len(report.failed),
        )
        if first_error is not None and self._config.raise_on_group_error:
            raise first_error
        return report

    async def process_vehicle(self, vin: str, odometer_high: float, now: datetime) -> GroupOutcome:
        """Reconcile the active Trip of one vehicle against its highest odometer reading."""
        trip = await self._repository.find_active_trip(vin)
        if trip is None:
            _logger.debug("No active trip for vin=%s", vin)
            return GroupOutcome(vin=vin, odometer_high=odometer_high, status=GroupStatus.NO_ACTIVE_TRIP)

        if self._config.enforce_high_water_mark and not accept_odometer(trip, odometer_high):
            _logger.warning(
                "Ignoring stale odometer %s for trip %s (vin=%s, high water %s)",
                odometer_high,
                trip.id,
                vin,
                trip.odometer_high_water,
            )
            return GroupOutcome(
                vin=vin,
                odometer_high=odometer_high,
                status=GroupStatus.STALE_ODOMETER,
                trip_id=trip.id,
                trip_status=trip.status,
            )

        consignment = await self._repository.load_consignment(trip.consignment_id)
        result = evaluate_transition(trip, consignment, odometer_high, now)

        new_trip = result.trip
        trip_dirty = result.trip_dirty
        if self._config.enforce_high_water_mark:
            new_trip, advanced = advance_high_water(new_trip, odometer_high)
            trip_dirty = trip_dirty or advanced

        if not (trip_dirty or result.consignment_dirty):
            _logger.debug("Trip %s unchanged (vin=%s, status=%s)", trip.id, vin, trip.status)
            return GroupOutcome(
                vin=vin,
                odometer_high=odometer_high,
                status=GroupStatus.UNCHANGED,
                trip_id=trip.id,
                trip_status=trip.status,
            )

        if self._config.use_intents and result.dirty:
            return await self._apply_with_intent(
                vin=vin,
                odometer_high=odometer_high,
                now=now,
                current_trip=trip,
                current_consignment=consignment,
                new_trip=new_trip,
                trip_dirty=trip_dirty,
                result=result,
            )

        if result.consignment_dirty:
            await self._repository.replace_consignment(result.consignment)
        # Trip last: it must stay locatable until its alerts are delivered.
        await self._send_alerts(vin, trip.id, result.alerts)
        if trip_dirty:
            await self._repository.replace_trip(new_trip)
        _logger.debug("Trip %s updated to %s (vin=%s)", trip.id, new_trip.status, vin)
        return GroupOutcome(
            vin=vin,
            odometer_high=odometer_high,
            status=GroupStatus.UPDATED,
            trip_id=trip.id,
            trip_status=new_trip.status,
            alerts=result.alerts,
        )

    async def _apply_with_intent(
        self,
        *,
        vin: str,
        odometer_high: float,
        now: datetime,
        current_trip: Trip,
        current_consignment: Consignment,
        new_trip: Trip,
        trip_dirty: bool,
        result: TransitionResult,
    ) -> GroupOutcome:
        key = intent_key(current_trip.id, new_trip.status, odometer_high)
        intent = await self._repository.load_intent(key, current_trip.id)

        if intent is not None and intent.state == IntentState.APPLIED:
            _logger.info("Intent %s for trip %s already applied; skipping", key, current_trip.id)
            return GroupOutcome(
                vin=vin,
                odometer_high=odometer_high,
                status=GroupStatus.ALREADY_APPLIED,
                trip_id=current_trip.id,
                trip_status=current_trip.status,
            )

        if intent is None:
            intent = await self._repository.save_intent(
                ReconciliationIntent(
                    id=key,
                    trip_id=current_trip.id,
                    odometer_high=odometer_high,
                    trip_document=strip_etag(new_trip.to_document()) if trip_dirty else None,
                    consignment_document=(
                        strip_etag(result.consignment.to_document()) if result.consignment_dirty else None
                    ),
                    alerts=list(result.alerts),
                    created_at=now,
                    ttl=self._config.intent_ttl,
                )
            )
        else:
            # A previous delivery wrote part of the pair and then failed.
            _logger.info("Resuming %s intent %s for trip %s", intent.state, key, current_trip.id)

        if intent.consignment_document is not None:
            await self._repository.replace_consignment_document(
                rebase_document(intent.consignment_document, current_consignment)
            )

        sent: tuple[AlertKind, ...] = ()
        if intent.state == IntentState.PENDING and intent.alerts:
            sent = tuple(intent.alerts)
            await self._send_alerts(vin, current_trip.id, sent)
            intent = await self._repository.save_intent(intent.model_copy(update={"state": IntentState.ALERTED}))

        final_status = current_trip.status
        if intent.trip_document is not None:
            written = await self._repository.replace_trip_document(
                rebase_document(intent.trip_document, current_trip)
            )
            final_status = written.status

        await self._repository.save_intent(
            intent.model_copy(update={"state": IntentState.APPLIED, "applied_at": now})
        )
        _logger.debug("Trip %s updated to %s via intent %s (vin=%s)", current_trip.id, final_status, key, vin)
        return GroupOutcome(
            vin=vin,
            odometer_high=odometer_high,
            status=GroupStatus.UPDATED,
            trip_id=current_trip.id,
            trip_status=final_status,
            alerts=sent,
        )

    async def _send_alerts(self, vin: str, trip_id: str, alerts: Iterable[AlertKind]) -> None:
        for kind in alerts:
            await self._alerts.send(AlertSignal(vin=vin, trip_id=trip_id, kind=kind))
