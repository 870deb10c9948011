"""Live position tracking state machine.

:class:`TrackingController` drives a :class:`PositionSource` on a
schedule, resolves addresses for new fixes and publishes immutable
:class:`PositionSnapshot` objects plus :class:`TrackingStatus` changes.

All methods must be called from the event loop that owns the controller;
no locks are used.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from typing import Any

from pysafeloc._constants import (
    DEFAULT_BACKOFF_MAX_INTERVAL_MS,
    DEFAULT_MAX_CACHE_AGE_MS,
    DEFAULT_POSITION_TIMEOUT_MS,
    DEFAULT_TRACKING_INTERVAL_MS,
    MIN_RECOMMENDED_INTERVAL_MS,
)
from pysafeloc.exceptions import PositionError
from pysafeloc.geocode import GeocodeResolver
from pysafeloc.models.position import (
    PositionOptions,
    PositionSnapshot,
    TrackingErrorKind,
    TrackingState,
    TrackingStatus,
)
from pysafeloc.policy import next_tick_delay
from pysafeloc.position import PositionProvider, PositionSource
from pysafeloc.schedule import Generation, RecurringTicker

_logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[PositionSnapshot], None]
StatusCallback = Callable[[TrackingStatus], None]


def _now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


class TrackingController:
    """Poll the device position and publish snapshots.

    Usage::

        controller = TrackingController(provider, GeocodeResolver(geocoder))
        controller.subscribe(on_snapshot)
        controller.start(15_000, high_accuracy=True)
        ...
        controller.stop()

    Only one position request is outstanding at a time. Ticks that fire
    while a request is pending are dropped, and results that arrive after
    :meth:`stop` or a restart are discarded.
    """

    def __init__(
        self,
        source: PositionSource | PositionProvider,
        geocoder: GeocodeResolver | None = None,
        *,
        position_timeout_ms: int = DEFAULT_POSITION_TIMEOUT_MS,
        max_cache_age_ms: int = DEFAULT_MAX_CACHE_AGE_MS,
        backoff_enabled: bool = False,
        backoff_max_interval_ms: int = DEFAULT_BACKOFF_MAX_INTERVAL_MS,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._source = source if isinstance(source, PositionSource) else PositionSource(source)
        self._geocoder = geocoder if geocoder is not None else GeocodeResolver()
        self._options = PositionOptions(timeout_ms=position_timeout_ms, max_cache_age_ms=max_cache_age_ms)
        self._backoff_enabled = backoff_enabled
        self._backoff_max_interval_ms = backoff_max_interval_ms
        self._clock = clock

        self._state = TrackingState.IDLE
        self._snapshot: PositionSnapshot | None = None
        self._last_status: TrackingStatus | None = None
        self._generation = Generation()
        self._ticker: RecurringTicker | None = None
        self._interval_ms = DEFAULT_TRACKING_INTERVAL_MS
        self._inflight: asyncio.Task[PositionSnapshot | None] | None = None
        self._inflight_token = 0
        self._consecutive_failures = 0
        self._coalesced_ticks = 0

        self._snapshot_callbacks: list[SnapshotCallback] = []
        self._status_callbacks: list[StatusCallback] = []

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def state(self) -> TrackingState:
        return self._state

    @property
    def snapshot(self) -> PositionSnapshot | None:
        """Most recent snapshot, shared by reference (immutable)."""
        return self._snapshot

    @property
    def last_status(self) -> TrackingStatus | None:
        return self._last_status

    @property
    def is_tracking(self) -> bool:
        return self._ticker is not None and self._ticker.running

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def coalesced_ticks(self) -> int:
        return self._coalesced_ticks

    @property
    def request_pending(self) -> bool:
        """A request issued by the current run is still outstanding.

        Requests left over from before a :meth:`stop` or restart do not count;
        their results are discarded when they arrive.
        """
        task = self._inflight
        return task is not None and not task.done() and self._generation.is_current(self._inflight_token)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Register a snapshot observer; returns an unsubscribe callable."""
        self._snapshot_callbacks.append(callback)
        return lambda: self._remove(self._snapshot_callbacks, callback)

    def subscribe_status(self, callback: StatusCallback) -> Callable[[], None]:
        """Register a status observer; returns an unsubscribe callable."""
        self._status_callbacks.append(callback)
        return lambda: self._remove(self._status_callbacks, callback)

    @staticmethod
    def _remove(callbacks: list[Any], callback: Any) -> None:
        with contextlib.suppress(ValueError):
            callbacks.remove(callback)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, interval_ms: int | None = None, high_accuracy: bool = True) -> None:
        """Begin tracking: request a fix now and then every *interval_ms*.

        A no-op while already tracking, except after a permission denial,
        where calling ``start`` again is the explicit user retry.

        Raises
        ------
        ValueError
            If *interval_ms* is not positive.
        RuntimeError
            If called without a running event loop.
        """
        interval = self._interval_ms if interval_ms is None else int(interval_ms)
        if interval <= 0:
            raise ValueError(f"interval_ms must be > 0, got {interval}")
        if self.is_tracking and self._state != TrackingState.DENIED:
            _logger.debug("start() ignored: already tracking")
            return
        if interval < MIN_RECOMMENDED_INTERVAL_MS:
            _logger.warning(
                "Tracking interval %d ms is below the recommended %d ms floor",
                interval,
                MIN_RECOMMENDED_INTERVAL_MS,
            )

        self._cancel_ticker()
        # Anything still in flight belongs to the previous run.
        self._generation.advance()
        self._interval_ms = interval
        self._options = self._options.model_copy(update={"high_accuracy": high_accuracy})
        self._consecutive_failures = 0
        self._set_state(TrackingState.REQUESTING)

        self._ticker = RecurringTicker(self._on_tick, self._next_delay, name="pysafeloc-tracking")
        self._ticker.start(immediate=True)
        _logger.debug("Tracking started interval=%dms high_accuracy=%s", interval, high_accuracy)

    def stop(self) -> None:
        """Cancel the schedule and fall back to the last known good state.

        Idempotent. In-flight requests are not aborted; their results are
        discarded when they arrive.
        """
        was_tracking = self._ticker is not None
        self._cancel_ticker()
        self._generation.advance()
        target = TrackingState.ACTIVE if self._snapshot is not None else TrackingState.IDLE
        if self._state != target:
            self._set_state(target)
        if was_tracking:
            _logger.debug("Tracking stopped state=%s", target)

    async def request_once(self) -> PositionSnapshot | None:
        """Request a single fix outside the schedule.

        Does not reset the schedule's timer. When a request of the current
        run is outstanding this joins it instead of issuing a second one;
        one left over from before a stop or restart is not joined.

        Returns
        -------
        PositionSnapshot or None
            The new snapshot, or ``None`` when the request failed or its
            result was superseded.
        """
        task = self._inflight
        if task is None or not self.request_pending:
            task = self._spawn_request()
        return await asyncio.shield(task)

    async def aclose(self) -> None:
        """Stop tracking and cancel any outstanding request (shutdown only)."""
        self.stop()
        task = self._inflight
        self._inflight = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _cancel_ticker(self) -> None:
        ticker = self._ticker
        self._ticker = None
        if ticker is not None:
            ticker.cancel()

    def _next_delay(self) -> float:
        return next_tick_delay(
            interval_s=self._interval_ms / 1000,
            consecutive_failures=self._consecutive_failures,
            backoff_enabled=self._backoff_enabled,
            max_interval_s=self._backoff_max_interval_ms / 1000,
        )

    def _on_tick(self) -> None:
        if self._state == TrackingState.DENIED:
            _logger.debug("Tick skipped: location permission denied")
            return
        if self.request_pending:
            self._coalesced_ticks += 1
            _logger.debug("Tick coalesced: previous position request still outstanding")
            return
        self._spawn_request()

    def _spawn_request(self) -> asyncio.Task[PositionSnapshot | None]:
        token = self._generation.current
        prior = self._state
        if prior != TrackingState.REQUESTING:
            self._set_state(TrackingState.REQUESTING)
        task = asyncio.get_running_loop().create_task(self._request(token, prior), name="pysafeloc-position")
        self._inflight = task
        self._inflight_token = token
        return task

    async def _request(self, token: int, prior: TrackingState) -> PositionSnapshot | None:
        try:
            fix = await self._source.request(self._options)
        except PositionError as exc:
            if not self._generation.is_current(token):
                _logger.debug("Discarding stale position failure: %s", exc)
                return None
            self._handle_failure(exc, prior)
            return None

        captured_at = self._clock()
        address: str | None
        if self._geocoder.has_provider:
            address = await self._geocoder.try_resolve(fix.latitude, fix.longitude)
        else:
            address = await self._geocoder.resolve(fix.latitude, fix.longitude)

        if not self._generation.is_current(token):
            _logger.debug("Discarding stale position result")
            return None

        snapshot = PositionSnapshot.from_fix(fix, captured_at_epoch_ms=captured_at, resolved_address=address)
        self._snapshot = snapshot
        self._consecutive_failures = 0
        self._set_state(TrackingState.ACTIVE)
        self._publish_snapshot(snapshot)
        return snapshot

    def _handle_failure(self, exc: PositionError, prior: TrackingState) -> None:
        if exc.kind == TrackingErrorKind.PERMISSION_DENIED:
            _logger.warning("Location permission denied; tracking inactive until restarted")
            self._set_state(TrackingState.DENIED, error=exc.kind, message=str(exc))
            return

        self._consecutive_failures += 1
        _logger.warning(
            "Position request failed (%s, attempt %d): %s",
            exc.kind,
            self._consecutive_failures,
            exc,
        )
        self._set_state(prior, error=exc.kind, message=str(exc), retryable=True)

    def _set_state(
        self,
        state: TrackingState,
        *,
        error: TrackingErrorKind | None = None,
        message: str = "",
        retryable: bool = False,
    ) -> None:
        self._state = state
        status = TrackingStatus(
            state=state,
            error=error,
            message=message,
            retryable=retryable,
            at_epoch_ms=self._clock(),
        )
        self._last_status = status
        for callback in list(self._status_callbacks):
            try:
                callback(status)
            except Exception:
                _logger.debug("Tracking status callback failed", exc_info=True)

    def _publish_snapshot(self, snapshot: PositionSnapshot) -> None:
        for callback in list(self._snapshot_callbacks):
            try:
                callback(snapshot)
            except Exception:
                _logger.debug("Snapshot callback failed", exc_info=True)
