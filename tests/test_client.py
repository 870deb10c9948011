"""End-to-end tests for SafetyClient with in-memory providers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

import pytest

from pysafeloc.client import SafetyClient
from pysafeloc.config import SafelocConfig
from pysafeloc.exceptions import SafelocError
from pysafeloc.intents import CallIntent, DirectionsIntent, Intent
from pysafeloc.models.position import Coordinate, PositionFix, PositionOptions, PositionSnapshot, TrackingState, TrackingStatus
from pysafeloc.models.service import RawHit, ServiceCategory, ServiceRecord


@dataclass
class _Device:
    latitude: float = 28.6139
    longitude: float = 77.2090

    async def request_position(self, options: PositionOptions) -> PositionFix:
        return PositionFix(latitude=self.latitude, longitude=self.longitude, accuracy_meters=15.0)


class _Geocoder:
    async def reverse_geocode(self, latitude: float, longitude: float) -> str | None:
        return "Janpath, New Delhi"


@dataclass
class _Directory:
    calls: int = 0

    async def nearby_search(self, center: Coordinate, radius_m: int, category: ServiceCategory) -> list[RawHit]:
        self.calls += 1
        if category == ServiceCategory.POLICE:
            return [RawHit(place_ref="p1", name="Connaught Place Police Station", lat=28.62, lng=77.21)]
        if category == ServiceCategory.HOSPITAL:
            return [RawHit(place_ref="h1", name="RML Hospital", lat=28.70, lng=77.30, phone="011-2336 5525")]
        return []


@dataclass
class _Surface:
    renders: list[tuple[PositionSnapshot | None, tuple[ServiceRecord, ...]]] = field(default_factory=list)

    def render(self, snapshot: PositionSnapshot | None, records: tuple[ServiceRecord, ...]) -> None:
        self.renders.append((snapshot, records))


@dataclass
class _Host:
    intents: list[Intent] = field(default_factory=list)

    def dispatch(self, intent: Intent) -> None:
        self.intents.append(intent)


async def _wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)


def _client(config: SafelocConfig | None = None, **kwargs: object) -> SafetyClient:
    kwargs.setdefault("geocoder", _Geocoder())
    kwargs.setdefault("searcher", _Directory())
    kwargs.setdefault("seeds", ())
    device = kwargs.pop("device", None) or _Device()
    return SafetyClient(config or SafelocConfig(), device, **kwargs)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_locate_refresh_filter_and_contact() -> None:
    device = _Device()
    surface = _Surface()
    host = _Host()

    async with _client(device=device, surface=surface, dispatcher=host) as client:
        snapshot = await client.locate_once()
        assert snapshot is not None
        assert snapshot.resolved_address == "Janpath, New Delhi"
        assert client.state == TrackingState.ACTIVE

        session = await client.refresh_services()
        assert session is not None
        assert [r.id for r in client.services] == ["place:p1", "place:h1"]
        assert surface.renders[-1] == (snapshot, session.records)

        assert [r.id for r in client.set_filter("hospital")] == ["place:h1"]
        assert client.set_query("nothing here") == ()
        client.set_filter("all")
        client.set_query("")

        call = client.call_service("place:h1")
        directions = client.get_directions("place:p1")

    assert call == CallIntent(phone="011-2336 5525")
    assert call.uri == "tel:01123365525"
    assert isinstance(directions, DirectionsIntent)
    assert directions.origin == Coordinate(latitude=28.6139, longitude=77.2090)
    assert directions.destination == Coordinate(latitude=28.62, longitude=77.21)
    assert host.intents == [call, directions]


@pytest.mark.asyncio
async def test_new_snapshot_re_ranks_without_searching() -> None:
    device = _Device()
    directory = _Directory()

    async with _client(device=device, searcher=directory) as client:
        await client.locate_once()
        await client.refresh_services()
        calls = directory.calls

        device.latitude, device.longitude = 28.70, 77.30
        await client.locate_once()

        assert directory.calls == calls
        assert [r.id for r in client.services] == ["place:h1", "place:p1"]
        assert client.services[0].distance_km == 0.0


@pytest.mark.asyncio
async def test_auto_refresh_searches_on_every_snapshot() -> None:
    directory = _Directory()
    config = SafelocConfig(auto_refresh_services=True)

    async with _client(config, searcher=directory) as client:
        await client.locate_once()
        await _wait_until(lambda: len(client.discovery.session.records) == 2)
        assert directory.calls == len(ServiceCategory)


@pytest.mark.asyncio
async def test_auto_start_tracks_and_reports_status() -> None:
    statuses: list[TrackingStatus] = []
    config = SafelocConfig(auto_start=True, tracking_interval_ms=5_000)

    async with _client(config, on_status=statuses.append) as client:
        assert client.tracking.is_tracking
        await _wait_until(lambda: client.state == TrackingState.ACTIVE)
        assert client.snapshot is not None

    assert [s.state for s in statuses[:2]] == [TrackingState.REQUESTING, TrackingState.ACTIVE]


@pytest.mark.asyncio
async def test_refresh_before_first_fix_uses_default_center() -> None:
    config = SafelocConfig(default_center=(28.62, 77.21))
    async with _client(config) as client:
        await client.refresh_services()
        assert client.discovery.session.center == Coordinate(latitude=28.62, longitude=77.21)
        assert client.services[0].distance_km == 0.0


@pytest.mark.asyncio
async def test_unknown_service_ids() -> None:
    host = _Host()
    async with _client(dispatcher=host) as client:
        assert client.select("place:missing") is None
        with pytest.raises(KeyError):
            client.call_service("place:missing")
    assert host.intents == []


@pytest.mark.asyncio
async def test_directions_without_fix_have_no_origin() -> None:
    async with _client() as client:
        await client.refresh_services()
        intent = client.get_directions("place:p1")
    assert intent.origin is None


@pytest.mark.asyncio
async def test_surface_errors_do_not_break_updates() -> None:
    class _BrokenSurface:
        def render(self, snapshot: PositionSnapshot | None, records: tuple[ServiceRecord, ...]) -> None:
            raise RuntimeError("map not ready")

    async with _client(surface=_BrokenSurface()) as client:
        assert await client.refresh_services() is not None
        assert len(client.services) == 2


def test_client_requires_context() -> None:
    client = _client()
    with pytest.raises(SafelocError):
        _ = client.state
    assert client.snapshot is None


@pytest.mark.asyncio
async def test_async_dispatch_is_tracked_per_client() -> None:
    release = asyncio.Event()

    class _AsyncHost:
        def __init__(self) -> None:
            self.intents: list[Intent] = []

        async def dispatch(self, intent: Intent) -> None:
            await release.wait()
            self.intents.append(intent)

    first_host, second_host = _AsyncHost(), _AsyncHost()
    async with _client(dispatcher=first_host) as first, _client(dispatcher=second_host) as second:
        await first.refresh_services()
        await second.refresh_services()

        first.call_service("place:p1")
        assert len(first._background) == 1
        assert second._background == set()

        release.set()
        await _wait_until(lambda: not first._background)

    assert [i.uri for i in first_host.intents] == ["tel:100"]  # type: ignore[union-attr]
    assert second_host.intents == []
