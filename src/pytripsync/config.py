"""Reconciler configuration for pytripsync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pytripsync.exceptions import ConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class ReconcilerConfig:
    """Reconciler configuration.

    Parameters
    ----------
    use_intents : bool
        Record a reconciliation intent before the Trip/Consignment pair is
        written, so a redelivered batch can neither double-apply nor leave
        the pair half-applied.
    enforce_high_water_mark : bool
        Ignore odometer readings lower than the highest reading already
        persisted on the Trip.
    raise_on_group_error : bool
        Re-raise the first per-vehicle failure after the whole batch was
        attempted. Use when the change-feed runtime needs all-or-nothing
        batch semantics to trigger redelivery.
    store_base_url : str or None
        Base URL of the JSON document service used by
        :class:`pytripsync.store.http.HttpDocumentStore`.
    store_timeout : float
        Total timeout in seconds for a single store request.
    store_api_key : str or None
        Sent as ``x-api-key`` with every store request when set.
    intent_ttl : int or None
        Expiry in seconds written to reconciliation intent documents as
        ``ttl`` so the store reclaims them. ``None`` keeps intents forever.
    """

    use_intents: bool = True
    enforce_high_water_mark: bool = True
    raise_on_group_error: bool = False
    store_base_url: str | None = None
    store_timeout: float = 10.0
    store_api_key: str | None = None
    intent_ttl: int | None = 7 * 24 * 3600

    def __post_init__(self) -> None:
        if self.store_timeout <= 0:
            raise ConfigError(f"store_timeout must be positive, got {self.store_timeout!r}")
        if self.intent_ttl is not None and self.intent_ttl <= 0:
            raise ConfigError(f"intent_ttl must be positive or None, got {self.intent_ttl!r}")

    @classmethod
    def from_env(cls, **overrides: Any) -> ReconcilerConfig:
        """Create configuration from ``TRIPSYNC_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        _ENV_BOOL_MAP = {
            "TRIPSYNC_USE_INTENTS": ("use_intents", True),
            "TRIPSYNC_ENFORCE_HIGH_WATER_MARK": ("enforce_high_water_mark", True),
            "TRIPSYNC_RAISE_ON_GROUP_ERROR": ("raise_on_group_error", False),
        }
        for env_key, (field_name, default) in _ENV_BOOL_MAP.items():
            if field_name not in overrides:
                config_kwargs[field_name] = _env_bool(env.get(env_key), default)

        base_url = env.get("TRIPSYNC_STORE_BASE_URL")
        if base_url:
            config_kwargs["store_base_url"] = base_url.rstrip("/")

        api_key = env.get("TRIPSYNC_STORE_API_KEY")
        if api_key:
            config_kwargs["store_api_key"] = api_key

        timeout_env = env.get("TRIPSYNC_STORE_TIMEOUT")
        if timeout_env is not None and "store_timeout" not in overrides:
            try:
                config_kwargs["store_timeout"] = float(timeout_env)
            except ValueError as exc:
                raise ConfigError(f"TRIPSYNC_STORE_TIMEOUT is not a number: {timeout_env!r}") from exc

        ttl_env = env.get("TRIPSYNC_INTENT_TTL")
        if ttl_env is not None and "intent_ttl" not in overrides:
            if not ttl_env.strip():
                config_kwargs["intent_ttl"] = None
            else:
                try:
                    config_kwargs["intent_ttl"] = int(ttl_env)
                except ValueError as exc:
                    raise ConfigError(f"TRIPSYNC_INTENT_TTL is not an integer: {ttl_env!r}") from exc

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
