"""High-level async client composing tracking and discovery."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any, Protocol

import aiohttp

from pysafeloc._api import NearbySearcher, ReverseGeocoder
from pysafeloc._api.google import GoogleMapsDirectory
from pysafeloc._api.nominatim import NominatimGeocoder
from pysafeloc._transport import JsonTransport
from pysafeloc.config import SafelocConfig
from pysafeloc.discovery import DEFAULT_SEEDS, ServiceDiscoveryEngine
from pysafeloc.exceptions import SafelocError
from pysafeloc.geocode import GeocodeResolver
from pysafeloc.intents import CallIntent, DirectionsIntent, IntentDispatcher, dispatch_intent
from pysafeloc.models.position import Coordinate, PositionSnapshot, TrackingState, TrackingStatus
from pysafeloc.models.service import ALL_CATEGORIES, DiscoverySession, ServiceCategory, ServiceRecord
from pysafeloc.position import PositionProvider
from pysafeloc.tracking import StatusCallback, TrackingController

_logger = logging.getLogger(__name__)


class PresentationSurface(Protocol):
    """External map/list surface. Owns markers and camera; never mutates its inputs."""

    def render(self, snapshot: PositionSnapshot | None, records: tuple[ServiceRecord, ...]) -> None:
        ...


class SafetyClient:
    """Async client wiring one tracking controller to one discovery engine.

    Usage::

        async with SafetyClient(config, device_provider, surface=map_view) as client:
            client.start_tracking()
            await client.refresh_services()
            client.call_service(client.services[0].id)
    """

    def __init__(
        self,
        config: SafelocConfig,
        position_provider: PositionProvider,
        *,
        session: aiohttp.ClientSession | None = None,
        surface: PresentationSurface | None = None,
        dispatcher: IntentDispatcher | None = None,
        geocoder: ReverseGeocoder | None = None,
        searcher: NearbySearcher | None = None,
        seeds: Iterable[ServiceRecord] = DEFAULT_SEEDS,
        on_status: StatusCallback | None = None,
    ) -> None:
        self._config = config
        self._position_provider = position_provider
        self._external_session = session is not None
        self._http_session = session
        self._surface = surface
        self._dispatcher = dispatcher
        self._geocoder = geocoder
        self._searcher = searcher
        self._seeds = tuple(seeds)
        self._on_status = on_status
        self._tracking: TrackingController | None = None
        self._discovery: ServiceDiscoveryEngine | None = None
        self._background: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SafetyClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        transport = JsonTransport(
            self._http_session,
            user_agent=self._config.user_agent,
            timeout=max(self._config.search_timeout, self._config.geocode_timeout),
        )
        geocoder, searcher = self._build_providers(transport)

        self._tracking = TrackingController(
            self._position_provider,
            GeocodeResolver(geocoder, timeout=self._config.geocode_timeout),
            position_timeout_ms=self._config.position_timeout_ms,
            max_cache_age_ms=self._config.max_cache_age_ms,
            backoff_enabled=self._config.backoff_enabled,
            backoff_max_interval_ms=self._config.backoff_max_interval_ms,
        )
        self._discovery = ServiceDiscoveryEngine(
            searcher,
            radius_m=self._config.search_radius_m,
            max_results_per_category=self._config.max_results_per_category,
            search_timeout=self._config.search_timeout,
            seeds=self._seeds,
            emergency_numbers=self._config.emergency_numbers,
            default_center=self._config.default_center,
        )
        self._tracking.subscribe(self._on_snapshot)
        if self._on_status is not None:
            self._tracking.subscribe_status(self._on_status)
        self._discovery.subscribe(self._on_session)

        if self._config.auto_start:
            self.start_tracking()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        # Pending refreshes and intent dispatches.
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()
        if self._tracking is not None:
            await self._tracking.aclose()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._tracking = None
        self._discovery = None

    def _build_providers(self, transport: JsonTransport) -> tuple[ReverseGeocoder | None, NearbySearcher | None]:
        geocoder = self._geocoder
        searcher = self._searcher
        api_key = self._config.google_maps_api_key
        if api_key and (geocoder is None or searcher is None):
            google = GoogleMapsDirectory(transport, api_key)
            geocoder = geocoder or google
            searcher = searcher or google
        if geocoder is None:
            geocoder = NominatimGeocoder(transport, url=self._config.nominatim_url)
        if searcher is None:
            _logger.info("No nearby-search provider configured; listing seed facilities only")
        return geocoder, searcher

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_tracking(self) -> TrackingController:
        if self._tracking is None:
            raise SafelocError("Client not initialized. Use 'async with SafetyClient(...) as client:'")
        return self._tracking

    def _require_discovery(self) -> ServiceDiscoveryEngine:
        if self._discovery is None:
            raise SafelocError("Client not initialized. Use 'async with SafetyClient(...) as client:'")
        return self._discovery

    def _center(self) -> Coordinate:
        snapshot = self.snapshot
        if snapshot is not None:
            return snapshot.coordinate
        return Coordinate.of(*self._config.default_center)

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _on_snapshot(self, snapshot: PositionSnapshot) -> None:
        discovery = self._require_discovery()
        if self._config.auto_refresh_services:
            self._spawn(discovery.refresh(snapshot))
        else:
            discovery.re_rank(snapshot, sort=discovery.session.sorted_by_distance)
        _logger.debug("Snapshot applied: %s", discovery.describe())

    def _on_session(self, session: DiscoverySession) -> None:
        self._render(session.visible)

    def _render(self, records: tuple[ServiceRecord, ...]) -> None:
        if self._surface is None:
            return
        try:
            self._surface.render(self.snapshot, records)
        except Exception:
            _logger.debug("Presentation surface render failed", exc_info=True)

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    @property
    def tracking(self) -> TrackingController:
        return self._require_tracking()

    @property
    def discovery(self) -> ServiceDiscoveryEngine:
        return self._require_discovery()

    @property
    def state(self) -> TrackingState:
        return self._require_tracking().state

    @property
    def status(self) -> TrackingStatus | None:
        return self._require_tracking().last_status

    @property
    def snapshot(self) -> PositionSnapshot | None:
        return self._tracking.snapshot if self._tracking is not None else None

    def start_tracking(self, interval_ms: int | None = None, *, high_accuracy: bool | None = None) -> None:
        """Start (or, after a denial, restart) periodic position updates."""
        self._require_tracking().start(
            interval_ms if interval_ms is not None else self._config.tracking_interval_ms,
            self._config.high_accuracy if high_accuracy is None else high_accuracy,
        )

    def stop_tracking(self) -> None:
        self._require_tracking().stop()

    async def locate_once(self) -> PositionSnapshot | None:
        return await self._require_tracking().request_once()

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    @property
    def services(self) -> tuple[ServiceRecord, ...]:
        """Currently visible (filtered) services."""
        return self._require_discovery().visible()

    async def refresh_services(
        self,
        categories: Iterable[ServiceCategory | str] | str = ALL_CATEGORIES,
        *,
        sort: bool = True,
    ) -> DiscoverySession | None:
        """Search around the latest snapshot (or the default centre)."""
        return await self._require_discovery().refresh(self._center(), categories, sort=sort)

    def set_filter(self, category: ServiceCategory | str) -> tuple[ServiceRecord, ...]:
        return self._require_discovery().set_filter(category)

    def set_query(self, text: str | None) -> tuple[ServiceRecord, ...]:
        return self._require_discovery().set_query(text)

    def select(self, service_id: str) -> ServiceRecord | None:
        """Resolve a tap on the presentation surface to its record."""
        record = self._require_discovery().get(service_id)
        if record is None:
            _logger.debug("Tap on unknown service id=%s", service_id)
        return record

    # ------------------------------------------------------------------
    # Outbound intents
    # ------------------------------------------------------------------

    def _require_record(self, service_id: str) -> ServiceRecord:
        record = self.select(service_id)
        if record is None:
            raise KeyError(service_id)
        return record

    def call_service(self, service_id: str) -> CallIntent:
        """Dispatch a call to the service; does not wait for the host."""
        intent = CallIntent(phone=self._require_record(service_id).phone)
        dispatch_intent(self._dispatcher, intent, pending=self._background)
        return intent

    def get_directions(self, service_id: str) -> DirectionsIntent:
        """Dispatch a directions request from the current position."""
        record = self._require_record(service_id)
        origin = self.snapshot.coordinate if self.snapshot is not None else None
        intent = DirectionsIntent(origin=origin, destination=record.coordinate)
        dispatch_intent(self._dispatcher, intent, pending=self._background)
        return intent
