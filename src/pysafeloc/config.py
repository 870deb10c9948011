"""Client configuration for pysafeloc."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pysafeloc._constants import (
    DEFAULT_BACKOFF_MAX_INTERVAL_MS,
    DEFAULT_CENTER,
    DEFAULT_GEOCODE_TIMEOUT_S,
    DEFAULT_MAX_CACHE_AGE_MS,
    DEFAULT_MAX_RESULTS_PER_CATEGORY,
    DEFAULT_POSITION_TIMEOUT_MS,
    DEFAULT_SEARCH_RADIUS_M,
    DEFAULT_SEARCH_TIMEOUT_S,
    DEFAULT_TRACKING_INTERVAL_MS,
    NOMINATIM_REVERSE_URL,
    USER_AGENT,
)
from pysafeloc.exceptions import SafelocConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _default_emergency_numbers() -> dict[str, str]:
    return {"police": "100", "hospital": "108"}


@dataclasses.dataclass(frozen=True)
class SafelocConfig:
    """Engine configuration.

    The host supplies this once per tracking session; nothing here is
    persisted by the library.

    Parameters
    ----------
    google_maps_api_key : str or None
        Enables the Google Geocoding and Places providers. Without a key
        reverse geocoding goes through Nominatim and live nearby search is
        disabled (only seed facilities are listed).
    nominatim_url : str
        Reverse geocoding endpoint used when no Google key is configured.
    user_agent : str
        User-Agent sent to directory providers (required by Nominatim).
    tracking_interval_ms : int
        Milliseconds between scheduled position requests.
    high_accuracy : bool
        Request GPS-grade fixes.
    auto_start : bool
        Start tracking as soon as the client is entered.
    position_timeout_ms : int
        Operation-level timeout of a single position request.
    max_cache_age_ms : int
        Maximum age of a cached fix the device may return.
    geocode_timeout : float
        Seconds before a reverse geocode is abandoned for coordinate text.
    search_radius_m : int
        Nearby-search radius in metres.
    max_results_per_category : int
        Accepted live hits per category and refresh.
    search_timeout : float
        Seconds before a single category search counts as failed.
    auto_refresh_services : bool
        Re-run the nearby search on every new snapshot instead of only
        re-ranking the cached set.
    backoff_enabled : bool
        Grow the tick interval exponentially after consecutive retryable
        failures instead of retrying at the fixed interval.
    backoff_max_interval_ms : int
        Upper bound of the backed-off interval.
    default_center : tuple of float
        Centre used before the first fix arrives.
    emergency_numbers : dict
        Fallback phone number per category for hits without one.
    """

    google_maps_api_key: str | None = None
    nominatim_url: str = NOMINATIM_REVERSE_URL
    user_agent: str = USER_AGENT
    tracking_interval_ms: int = DEFAULT_TRACKING_INTERVAL_MS
    high_accuracy: bool = True
    auto_start: bool = False
    position_timeout_ms: int = DEFAULT_POSITION_TIMEOUT_MS
    max_cache_age_ms: int = DEFAULT_MAX_CACHE_AGE_MS
    geocode_timeout: float = DEFAULT_GEOCODE_TIMEOUT_S
    search_radius_m: int = DEFAULT_SEARCH_RADIUS_M
    max_results_per_category: int = DEFAULT_MAX_RESULTS_PER_CATEGORY
    search_timeout: float = DEFAULT_SEARCH_TIMEOUT_S
    auto_refresh_services: bool = False
    backoff_enabled: bool = False
    backoff_max_interval_ms: int = DEFAULT_BACKOFF_MAX_INTERVAL_MS
    default_center: tuple[float, float] = DEFAULT_CENTER
    emergency_numbers: dict[str, str] = dataclasses.field(default_factory=_default_emergency_numbers)

    def __post_init__(self) -> None:
        if self.tracking_interval_ms <= 0:
            raise SafelocConfigError(f"tracking_interval_ms must be > 0, got {self.tracking_interval_ms}")
        if self.position_timeout_ms <= 0:
            raise SafelocConfigError(f"position_timeout_ms must be > 0, got {self.position_timeout_ms}")
        if self.search_radius_m <= 0:
            raise SafelocConfigError(f"search_radius_m must be > 0, got {self.search_radius_m}")
        if self.max_results_per_category <= 0:
            raise SafelocConfigError(
                f"max_results_per_category must be > 0, got {self.max_results_per_category}"
            )
        if self.backoff_max_interval_ms < self.tracking_interval_ms:
            raise SafelocConfigError("backoff_max_interval_ms must not be smaller than tracking_interval_ms")

    @classmethod
    def from_env(cls, **overrides: Any) -> SafelocConfig:
        """Create configuration from environment variables.

        Reads optional ``SAFELOC_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        SafelocConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "SAFELOC_GOOGLE_MAPS_API_KEY": "google_maps_api_key",
            "SAFELOC_NOMINATIM_URL": "nominatim_url",
            "SAFELOC_USER_AGENT": "user_agent",
        }
        _ENV_INT_MAP = {
            "SAFELOC_TRACKING_INTERVAL_MS": "tracking_interval_ms",
            "SAFELOC_POSITION_TIMEOUT_MS": "position_timeout_ms",
            "SAFELOC_MAX_CACHE_AGE_MS": "max_cache_age_ms",
            "SAFELOC_SEARCH_RADIUS_M": "search_radius_m",
            "SAFELOC_MAX_RESULTS_PER_CATEGORY": "max_results_per_category",
            "SAFELOC_BACKOFF_MAX_INTERVAL_MS": "backoff_max_interval_ms",
        }
        _ENV_FLOAT_MAP = {
            "SAFELOC_GEOCODE_TIMEOUT": "geocode_timeout",
            "SAFELOC_SEARCH_TIMEOUT": "search_timeout",
        }
        _ENV_BOOL_MAP = {
            "SAFELOC_HIGH_ACCURACY": ("high_accuracy", True),
            "SAFELOC_AUTO_START": ("auto_start", False),
            "SAFELOC_AUTO_REFRESH_SERVICES": ("auto_refresh_services", False),
            "SAFELOC_BACKOFF_ENABLED": ("backoff_enabled", False),
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val:
                config_kwargs[field_name] = val

        try:
            for env_key, field_name in _ENV_INT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = int(val)
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = float(val)
        except ValueError as exc:
            raise SafelocConfigError(f"Invalid numeric environment value: {exc}") from exc

        for env_key, (field_name, default) in _ENV_BOOL_MAP.items():
            if field_name not in overrides:
                config_kwargs[field_name] = _env_bool(env.get(env_key), default)

        # "28.6139,77.2090"
        center_env = env.get("SAFELOC_DEFAULT_CENTER")
        if center_env and "default_center" not in overrides:
            lat_text, _, lng_text = center_env.partition(",")
            try:
                config_kwargs["default_center"] = (float(lat_text), float(lng_text))
            except ValueError as exc:
                raise SafelocConfigError(f"Invalid SAFELOC_DEFAULT_CENTER: {center_env!r}") from exc

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
