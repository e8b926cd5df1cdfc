"""Custom exception hierarchy for pytripsync."""

from __future__ import annotations


class PyTripSyncError(Exception):
    """Base exception for all pytripsync errors."""


class ConfigError(PyTripSyncError):
    """Invalid or missing configuration."""


class StoreError(PyTripSyncError):
    """Document store failure."""

    def __init__(
        self,
        message: str,
        *,
        document_id: str = "",
        partition_key: str = "",
        status_code: int | None = None,
    ) -> None:
        self.document_id = document_id
        self.partition_key = partition_key
        self.status_code = status_code
        super().__init__(message)


class NotFoundError(StoreError):
    """Point read found no document for the id/partition key.

    For a Consignment referenced by a located Trip this signals
    referential corruption upstream and blocks reconciliation for
    that vehicle.
    """


class StoreConflictError(StoreError):
    """Replace rejected because the stored document changed underneath us."""


class StoreUnavailableError(StoreError):
    """Network failure, timeout, or unexpected store response."""


class InvalidTransitionError(PyTripSyncError):
    """A status change outside the legal transition table."""

    def __init__(self, message: str, *, entity: str, old: str, new: str) -> None:
        self.entity = entity
        self.old = old
        self.new = new
        super().__init__(message)


class AlertDeliveryError(PyTripSyncError):
    """An alert channel could not accept a signal."""


class MalformedDocumentError(StoreError):
    """A stored document does not validate against its model."""
