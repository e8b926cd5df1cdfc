"""Alert channels.

The reconciler only decides *that* an alert fires. Getting it to a
person is the job of whatever implements :class:`AlertChannel`.
"""

from __future__ import annotations

import logging
from typing import Protocol

from pytripsync.models.alerts import AlertSignal

_logger = logging.getLogger(__name__)


class AlertChannel(Protocol):
    """Accepts one signal per call. Raise ``AlertDeliveryError`` on refusal."""

    async def send(self, signal: AlertSignal) -> None:
        ...


class LoggingAlertChannel:
    """Default channel: writes each signal to the log."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or _logger

    async def send(self, signal: AlertSignal) -> None:
        self._logger.info("%s for trip %s (vin=%s)", signal.kind, signal.trip_id, signal.vin)


class CollectingAlertChannel:
    """Keeps every signal in memory."""

    def __init__(self) -> None:
        self.signals: list[AlertSignal] = []

    async def send(self, signal: AlertSignal) -> None:
        self.signals.append(signal)
