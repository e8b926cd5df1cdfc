"""Ingestion layer.

This package turns raw change-feed documents into typed telemetry events
and reduces a batch to one odometer reading per vehicle.
"""

__all__: list[str] = []
