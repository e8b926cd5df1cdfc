"""Event grouping.

Reduces a change-feed batch to one ``(vin, odometer_high)`` pair per
vehicle. Taking the maximum is commutative and idempotent, so the order
of events inside a batch does not matter. It does nothing against a stale
batch whose maximum is below a reading persisted by an earlier batch; that
is handled by :func:`pytripsync.state.policy.accept_odometer`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from pytripsync.models.telemetry import TelemetryEvent

_logger = logging.getLogger(__name__)


def parse_events(raw_batch: Iterable[Mapping[str, Any] | TelemetryEvent]) -> list[TelemetryEvent]:
    """Validate raw change-feed documents into :class:`TelemetryEvent`.

    Entries without a vehicle id or a finite odometer are skipped with a
    warning; the telemetry container may carry other document kinds.
    """
    events: list[TelemetryEvent] = []
    skipped = 0
    for raw in raw_batch:
        if isinstance(raw, TelemetryEvent):
            events.append(raw)
            continue
        try:
            events.append(TelemetryEvent.model_validate(raw))
        except ValidationError as exc:
            skipped += 1
            _logger.warning(
                "Skipping change-feed document id=%s: %s",
                raw.get("id") if isinstance(raw, Mapping) else None,
                exc.errors(include_url=False),
            )
    if skipped:
        _logger.debug("Parsed %d telemetry events, skipped %d", len(events), skipped)
    return events


def group_odometer_high(events: Iterable[TelemetryEvent]) -> dict[str, float]:
    """Highest odometer reading per vehicle.

    Keys keep the order in which each vehicle first appears in the batch.
    """
    highs: dict[str, float] = {}
    for event in events:
        current = highs.get(event.vin)
        if current is None or event.odometer > current:
            highs[event.vin] = event.odometer
    return highs
