"""Position, snapshot and tracking status models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import AliasChoices, Field, field_validator

from pysafeloc.models._base import SafelocBaseModel


class TrackingState(StrEnum):
    """Lifecycle of a tracking session.

    ``IDLE -> REQUESTING -> {ACTIVE | DENIED}``; ``ACTIVE`` re-enters
    ``REQUESTING`` on every scheduled refresh and ``DENIED`` only leaves
    through an explicit restart.
    """

    IDLE = "idle"
    REQUESTING = "requesting"
    ACTIVE = "active"
    DENIED = "denied"


class TrackingErrorKind(StrEnum):
    PERMISSION_DENIED = "permission_denied"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    TIMEOUT = "timeout"


class Coordinate(SafelocBaseModel):
    """A WGS84 point."""

    latitude: float = Field(ge=-90.0, le=90.0, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(ge=-180.0, le=180.0, validation_alias=AliasChoices("longitude", "lng", "lon"))

    @classmethod
    def of(cls, latitude: float, longitude: float) -> Coordinate:
        return cls(latitude=latitude, longitude=longitude)

    def as_tuple(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


class PositionOptions(SafelocBaseModel):
    """Options passed to the device position provider on every request.

    Parameters
    ----------
    high_accuracy : bool
        Ask for GPS-grade accuracy instead of network positioning.
    timeout_ms : int
        Operation-level timeout; the provider call is abandoned after it.
    max_cache_age_ms : int
        Maximum age of a cached fix the provider may return. ``0`` forces
        a fresh fix.
    """

    high_accuracy: bool = True
    timeout_ms: int = Field(default=15_000, gt=0)
    max_cache_age_ms: int = Field(default=0, ge=0)


class PositionFix(SafelocBaseModel):
    """Raw answer of a device position provider."""

    latitude: float = Field(ge=-90.0, le=90.0, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(ge=-180.0, le=180.0, validation_alias=AliasChoices("longitude", "lng", "lon"))
    accuracy_meters: float = Field(ge=0.0, validation_alias=AliasChoices("accuracy_meters", "accuracyMeters", "accuracy"))


class PositionSnapshot(SafelocBaseModel):
    """An immutable captured device position.

    Snapshots are only ever built from a real :class:`PositionFix`; a new
    snapshot replaces the previous one.
    """

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    accuracy_meters: float = Field(ge=0.0)
    captured_at_epoch_ms: int
    resolved_address: str | None = None

    @classmethod
    def from_fix(cls, fix: PositionFix, *, captured_at_epoch_ms: int, resolved_address: str | None = None) -> PositionSnapshot:
        return cls(
            latitude=fix.latitude,
            longitude=fix.longitude,
            accuracy_meters=fix.accuracy_meters,
            captured_at_epoch_ms=captured_at_epoch_ms,
            resolved_address=resolved_address,
        )

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude)


class TrackingStatus(SafelocBaseModel):
    """Published on every state change and every failed request."""

    state: TrackingState
    error: TrackingErrorKind | None = None
    message: str = ""
    retryable: bool = False
    at_epoch_ms: int

    @field_validator("message", mode="before")
    @classmethod
    def _coerce_message(cls, value: object) -> str:
        return "" if value is None else str(value)

    @property
    def action_required(self) -> bool:
        """Tracking is inactive until the user grants access and restarts it."""
        return self.state == TrackingState.DENIED
