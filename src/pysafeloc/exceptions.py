"""Custom exception hierarchy for pysafeloc."""

from __future__ import annotations

from pysafeloc.models.position import TrackingErrorKind


class SafelocError(Exception):
    """Base exception for all pysafeloc errors."""


class SafelocConfigError(SafelocError):
    """Invalid or missing configuration."""


class SafelocTransportError(SafelocError):
    """HTTP-level failure (network, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class PositionError(SafelocError):
    """The device position provider could not produce a fix.

    Every subclass carries the :class:`TrackingErrorKind` it maps to so the
    tracking controller can publish it without inspecting the type.
    """

    kind: TrackingErrorKind = TrackingErrorKind.PROVIDER_UNAVAILABLE

    @property
    def retryable(self) -> bool:
        return self.kind != TrackingErrorKind.PERMISSION_DENIED


class PositionPermissionDeniedError(PositionError):
    """The user (or the platform) refused location access.

    Fatal for the tracking session until the caller explicitly restarts it.
    """

    kind = TrackingErrorKind.PERMISSION_DENIED


class PositionUnavailableError(PositionError):
    """No position could be determined right now (no signal, provider down)."""

    kind = TrackingErrorKind.PROVIDER_UNAVAILABLE


class PositionTimeoutError(PositionError):
    """The provider did not answer within the operation timeout."""

    kind = TrackingErrorKind.TIMEOUT


class GeocodeError(SafelocError):
    """Reverse geocoding failed.

    Never escapes :class:`pysafeloc.geocode.GeocodeResolver`; providers raise
    it and the resolver degrades to coordinate text.
    """


class DirectoryProviderError(SafelocError):
    """A directory provider answered with an application-level error."""

    def __init__(
        self,
        message: str,
        *,
        status: str = "",
        category: str | None = None,
    ) -> None:
        self.status = status
        self.category = category
        super().__init__(message)
