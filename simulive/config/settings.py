"""Centralized configuration via pydantic-settings.

All ``SIMULIVE_*`` environment variables are read, validated, and exposed here.
Logging env vars (``SIMULIVE_LOG_FORMAT``, ``SIMULIVE_LOG_LEVEL``) are
intentionally excluded: they stay in ``simulive.logging`` for bootstrap-safety.

Usage::

    from simulive.config.settings import get_settings

    settings = get_settings()
    print(settings.clock.resync_interval_s)     # float, validated
    print(settings.playback.drift_threshold_s)  # float, validated

``.env`` files in the working directory are loaded automatically.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from simulive._constants import (
    DEFAULT_CLOCK_CACHE_TTL_S,
    DEFAULT_CORRECTION_INTERVAL_S,
    DEFAULT_DRIFT_THRESHOLD_S,
    DEFAULT_FALLBACK_HORIZON_S,
    DEFAULT_FEED_PAGE_SIZE,
    DEFAULT_FEED_WINDOW_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PHASE_TICK_INTERVAL_S,
    DEFAULT_PLAY_TIMEOUT_S,
    DEFAULT_RESYNC_INTERVAL_S,
    DEFAULT_RETRY_BASE_DELAY_S,
    DEFAULT_RETRY_JITTER_S,
    DEFAULT_RETRY_MAX_DELAY_S,
    DEFAULT_ROUND_TRIP_TIMEOUT_S,
)
from simulive._types import PhasePolicy


class ClockSettings(BaseSettings):
    """Server clock synchronization tuning."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    resync_interval_s: float = Field(
        default=DEFAULT_RESYNC_INTERVAL_S,
        gt=0,
        le=3600,
        validation_alias="SIMULIVE_CLOCK_RESYNC_INTERVAL_S",
    )
    cache_ttl_s: float = Field(
        default=DEFAULT_CLOCK_CACHE_TTL_S,
        gt=0,
        le=3600,
        validation_alias="SIMULIVE_CLOCK_CACHE_TTL_S",
    )
    fallback_horizon_s: float = Field(
        default=DEFAULT_FALLBACK_HORIZON_S,
        gt=0,
        le=86_400,
        validation_alias="SIMULIVE_CLOCK_FALLBACK_HORIZON_S",
    )
    round_trip_timeout_s: float = Field(
        default=DEFAULT_ROUND_TRIP_TIMEOUT_S,
        gt=0,
        le=120,
        validation_alias="SIMULIVE_CLOCK_ROUND_TRIP_TIMEOUT_S",
    )

    @model_validator(mode="after")
    def _ttl_le_horizon(self) -> ClockSettings:
        if self.cache_ttl_s > self.fallback_horizon_s:
            msg = "cache_ttl_s must be <= fallback_horizon_s"
            raise ValueError(msg)
        return self


class PlaybackSettings(BaseSettings):
    """Drift correction tuning for managed media streams."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    drift_threshold_s: float = Field(
        default=DEFAULT_DRIFT_THRESHOLD_S,
        gt=0,
        le=60,
        validation_alias="SIMULIVE_PLAYBACK_DRIFT_THRESHOLD_S",
    )
    correction_interval_s: float = Field(
        default=DEFAULT_CORRECTION_INTERVAL_S,
        gt=0,
        le=300,
        validation_alias="SIMULIVE_PLAYBACK_CORRECTION_INTERVAL_S",
    )
    play_timeout_s: float = Field(
        default=DEFAULT_PLAY_TIMEOUT_S,
        gt=0,
        le=60,
        validation_alias="SIMULIVE_PLAYBACK_PLAY_TIMEOUT_S",
    )


class PhaseSettings(BaseSettings):
    """Session phase derivation settings."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    tick_interval_s: float = Field(
        default=DEFAULT_PHASE_TICK_INTERVAL_S,
        gt=0,
        le=60,
        validation_alias="SIMULIVE_PHASE_TICK_INTERVAL_S",
    )
    policy: str = Field(
        default=PhasePolicy.FLAG.value,
        validation_alias="SIMULIVE_PHASE_POLICY",
    )

    @model_validator(mode="after")
    def _validate_policy(self) -> PhaseSettings:
        valid = {p.value for p in PhasePolicy}
        normalized = self.policy.lower()
        if normalized not in valid:
            msg = f"policy must be one of {valid}, got {self.policy!r}"
            raise ValueError(msg)
        object.__setattr__(self, "policy", normalized)
        return self

    @property
    def phase_policy(self) -> PhasePolicy:
        """Return the PhasePolicy enum for use in phase resolution."""
        return PhasePolicy(self.policy)


class FeedSettings(BaseSettings):
    """Live feed window and pagination settings."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    window_size: int = Field(
        default=DEFAULT_FEED_WINDOW_SIZE,
        ge=1,
        le=1000,
        validation_alias="SIMULIVE_FEED_WINDOW_SIZE",
    )
    page_size: int = Field(
        default=DEFAULT_FEED_PAGE_SIZE,
        ge=1,
        le=1000,
        validation_alias="SIMULIVE_FEED_PAGE_SIZE",
    )


class RetrySettings(BaseSettings):
    """Exponential backoff for transient document store failures."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES,
        ge=0,
        le=10,
        validation_alias="SIMULIVE_RETRY_MAX_RETRIES",
    )
    base_delay_s: float = Field(
        default=DEFAULT_RETRY_BASE_DELAY_S,
        gt=0,
        le=60,
        validation_alias="SIMULIVE_RETRY_BASE_DELAY_S",
    )
    max_delay_s: float = Field(
        default=DEFAULT_RETRY_MAX_DELAY_S,
        gt=0,
        le=300,
        validation_alias="SIMULIVE_RETRY_MAX_DELAY_S",
    )
    jitter_s: float = Field(
        default=DEFAULT_RETRY_JITTER_S,
        ge=0,
        le=10,
        validation_alias="SIMULIVE_RETRY_JITTER_S",
    )

    @model_validator(mode="after")
    def _base_lt_max_delay(self) -> RetrySettings:
        if self.base_delay_s >= self.max_delay_s:
            msg = "base_delay_s must be < max_delay_s"
            raise ValueError(msg)
        return self


class SimuliveSettings(BaseSettings):
    """Root settings: aggregates all subsystem settings.

    Loads ``.env`` from the current directory when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    clock: ClockSettings = Field(default_factory=ClockSettings)
    playback: PlaybackSettings = Field(default_factory=PlaybackSettings)
    phase: PhaseSettings = Field(default_factory=PhaseSettings)
    feed: FeedSettings = Field(default_factory=FeedSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)


@lru_cache(maxsize=1)
def get_settings() -> SimuliveSettings:
    """Return the singleton ``SimuliveSettings`` instance.

    The result is cached: subsequent calls return the same object.
    Call ``get_settings.cache_clear()`` in tests to reset.
    """
    return SimuliveSettings()
