"""Tests for the nearby service discovery engine."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import pytest

from pysafeloc._constants import ADDRESS_NOT_AVAILABLE
from pysafeloc.discovery import DEFAULT_SEEDS, ServiceDiscoveryEngine, resolve_categories
from pysafeloc.exceptions import DirectoryProviderError
from pysafeloc.models.position import Coordinate
from pysafeloc.models.service import DiscoverySession, RawHit, ServiceCategory, ServiceRecord

CENTER = Coordinate(latitude=28.6139, longitude=77.2090)


@dataclass
class FakeSearcher:
    hits: dict[ServiceCategory, list[RawHit]] = field(default_factory=dict)
    errors: dict[ServiceCategory, Exception] = field(default_factory=dict)
    delays: dict[ServiceCategory, float] = field(default_factory=dict)
    gates: list[asyncio.Event] = field(default_factory=list)
    calls: list[ServiceCategory] = field(default_factory=list)

    async def nearby_search(self, center: Coordinate, radius_m: int, category: ServiceCategory) -> list[RawHit]:
        self.calls.append(category)
        if self.gates:
            await self.gates.pop(0).wait()
        if category in self.delays:
            await asyncio.sleep(self.delays[category])
        if category in self.errors:
            raise self.errors[category]
        return list(self.hits.get(category, []))


def _hit(ref: str | None, name: str, lat: float | None, lng: float | None, **extra: str) -> RawHit:
    return RawHit(place_ref=ref, name=name, latitude=lat, longitude=lng, **extra)


def _scenario_searcher() -> FakeSearcher:
    return FakeSearcher(
        hits={
            ServiceCategory.POLICE: [_hit("p1", "Connaught Place Police Station", 28.62, 77.21, vicinity="Block A")],
            ServiceCategory.HOSPITAL: [_hit("h1", "Ram Manohar Lohia Hospital", 28.70, 77.30, phone="011-2336")],
        }
    )


def _engine(searcher: FakeSearcher | None, **kwargs: object) -> ServiceDiscoveryEngine:
    kwargs.setdefault("seeds", ())
    return ServiceDiscoveryEngine(searcher, clock=lambda: 42, **kwargs)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_refresh_ranks_filters_and_searches() -> None:
    engine = _engine(_scenario_searcher())

    session = await engine.refresh(CENTER, sort=True)

    assert session is not None
    assert [r.id for r in session.records] == ["place:p1", "place:h1"]
    police, hospital = session.records
    assert police.distance_km == pytest.approx(0.685, abs=0.01)
    assert 12.0 < hospital.distance_km < 13.5
    assert session.refreshed_at_epoch_ms == 42
    assert session.sorted_by_distance

    assert [r.name for r in engine.set_filter("hospital")] == ["Ram Manohar Lohia Hospital"]
    assert engine.set_query("xyz") == ()
    assert engine.set_filter("all") == ()
    assert [r.id for r in engine.set_query("  POLICE ")] == ["place:p1"]
    assert [r.id for r in engine.set_query("block a")] == ["place:p1"]


@pytest.mark.asyncio
async def test_filter_and_query_never_call_provider() -> None:
    searcher = _scenario_searcher()
    engine = _engine(searcher)
    await engine.refresh(CENTER)
    calls = len(searcher.calls)

    engine.set_filter(ServiceCategory.POLICE)
    engine.set_query("station")
    engine.sort_by_distance()

    assert len(searcher.calls) == calls


@pytest.mark.asyncio
async def test_refresh_keeps_filter_and_query() -> None:
    engine = _engine(_scenario_searcher())
    engine.set_filter("police")
    engine.set_query("connaught")

    session = await engine.refresh(CENTER)

    assert session is not None
    assert session.category_filter == ServiceCategory.POLICE
    assert [r.id for r in engine.visible()] == ["place:p1"]


def test_invalid_filter_is_rejected() -> None:
    engine = _engine(None)
    with pytest.raises(ValueError):
        engine.set_filter("fire")


@pytest.mark.asyncio
async def test_missing_fields_use_defaults() -> None:
    searcher = FakeSearcher(hits={ServiceCategory.POLICE: [_hit(None, "", 28.62, 77.21)]})
    engine = _engine(searcher, emergency_numbers={"police": "112"})

    session = await engine.refresh(CENTER, ["police"])

    assert session is not None
    (record,) = session.records
    assert record.name == "Police Station"
    assert record.address == ADDRESS_NOT_AVAILABLE
    assert record.phone == "112"
    assert record.id.startswith("hit:")
    assert record.provider_ref is None


@pytest.mark.asyncio
async def test_same_place_from_two_categories_is_merged() -> None:
    shared = _hit("both", "AIIMS Trauma Centre", 28.567, 77.21)
    searcher = FakeSearcher(
        hits={
            ServiceCategory.POLICE: [shared, _hit("p2", "Lodhi Colony Police", 28.58, 77.22)],
            ServiceCategory.HOSPITAL: [shared],
        }
    )
    engine = _engine(searcher)

    session = await engine.refresh(CENTER)

    assert session is not None
    ids = [r.id for r in session.records]
    assert ids == ["place:both", "place:p2"]
    assert session.get("place:both").category == ServiceCategory.POLICE  # type: ignore[union-attr]


@pytest.mark.asyncio
async def test_hits_without_place_ref_dedupe_on_name_and_position() -> None:
    searcher = FakeSearcher(
        hits={
            ServiceCategory.POLICE: [
                _hit(None, "Chanakyapuri PS", 28.5977, 77.1855),
                _hit(None, "chanakyapuri ps ", 28.5977, 77.1855),
                _hit(None, "Chanakyapuri PS", 28.6, 77.19),
            ]
        }
    )
    session = await _engine(searcher).refresh(CENTER, "police")
    assert session is not None
    assert len(session.records) == 2


@pytest.mark.asyncio
async def test_cap_counts_only_usable_hits() -> None:
    police = [_hit("nocoord", "No Location", None, None), _hit("bad", "Bad", 128.0, 77.2)]
    police += [_hit(f"p{i}", f"Station {i}", 28.61 + i / 100, 77.2) for i in range(7)]
    searcher = FakeSearcher(hits={ServiceCategory.POLICE: police})
    engine = _engine(searcher, max_results_per_category=5)

    session = await engine.refresh(CENTER, ["police"])

    assert session is not None
    assert [r.id for r in session.records] == [f"place:p{i}" for i in range(5)]


@pytest.mark.asyncio
async def test_seeds_are_appended_and_not_capped() -> None:
    seeds = [
        ServiceRecord(
            id=f"seed:{i}",
            name=f"Seed {i}",
            category=ServiceCategory.FIXED_FACILITY,
            coordinate=Coordinate(latitude=28.65 + i / 100, longitude=77.24),
            address="Delhi",
            phone="+91-11-0000",
        )
        for i in range(3)
    ]
    searcher = FakeSearcher(hits={ServiceCategory.POLICE: [_hit("p1", "Station", 28.62, 77.21)]})
    engine = _engine(searcher, seeds=seeds, max_results_per_category=1)

    session = await engine.refresh(CENTER, ["police"])

    assert session is not None
    assert [r.id for r in session.records] == ["place:p1", "seed:0", "seed:1", "seed:2"]
    assert all(r.distance_km > 0 for r in session.records)


@pytest.mark.asyncio
async def test_without_searcher_only_default_seeds_are_listed() -> None:
    engine = ServiceDiscoveryEngine()

    session = await engine.refresh(CENTER)

    assert session is not None
    assert [r.id for r in session.records] == [seed.id for seed in DEFAULT_SEEDS]
    assert session.records[0].distance_km == pytest.approx(5.65, abs=0.1)


@pytest.mark.asyncio
async def test_failing_category_does_not_block_others() -> None:
    searcher = _scenario_searcher()
    searcher.errors[ServiceCategory.POLICE] = DirectoryProviderError("OVER_QUERY_LIMIT", status="OVER_QUERY_LIMIT")
    engine = _engine(searcher)

    session = await engine.refresh(CENTER)

    assert session is not None
    assert [r.id for r in session.records] == ["place:h1"]


@pytest.mark.asyncio
async def test_slow_category_times_out_alone() -> None:
    searcher = _scenario_searcher()
    searcher.delays[ServiceCategory.HOSPITAL] = 1.0
    engine = _engine(searcher, search_timeout=0.05)

    session = await engine.refresh(CENTER)

    assert session is not None
    assert [r.id for r in session.records] == ["place:p1"]


@pytest.mark.asyncio
async def test_stale_refresh_is_discarded() -> None:
    first_gate, second_gate = asyncio.Event(), asyncio.Event()
    searcher = _scenario_searcher()
    searcher.gates = [first_gate, second_gate]
    engine = _engine(searcher)
    committed: list[DiscoverySession] = []
    engine.subscribe(committed.append)

    first = asyncio.create_task(engine.refresh(CENTER, ["police"]))
    await asyncio.sleep(0)
    second = asyncio.create_task(engine.refresh(Coordinate(latitude=28.7, longitude=77.3), ["police"]))
    await asyncio.sleep(0)
    assert engine.refresh_pending

    second_gate.set()
    newer = await second
    first_gate.set()
    older = await first

    assert older is None
    assert newer is not None
    assert engine.session is newer
    assert committed == [newer]
    assert not engine.refresh_pending


@pytest.mark.asyncio
async def test_re_rank_keeps_order_unless_sorting() -> None:
    engine = _engine(_scenario_searcher())
    await engine.refresh(CENTER, ["hospital", "police"])
    assert [r.id for r in engine.session.records] == ["place:h1", "place:p1"]

    near_hospital = Coordinate(latitude=28.70, longitude=77.30)
    session = engine.re_rank(near_hospital)
    assert [r.id for r in session.records] == ["place:h1", "place:p1"]
    assert session.records[0].distance_km == 0.0
    assert session.center == near_hospital

    session = engine.re_rank(CENTER, sort=True)
    assert [r.id for r in session.records] == ["place:p1", "place:h1"]
    assert session.sorted_by_distance


@pytest.mark.asyncio
async def test_sort_ties_are_broken_by_id() -> None:
    searcher = FakeSearcher(
        hits={ServiceCategory.POLICE: [_hit("b", "Twin B", 28.62, 77.21), _hit("a", "Twin A", 28.62, 77.21)]}
    )
    engine = _engine(searcher)
    await engine.refresh(CENTER, ["police"])

    assert [r.id for r in engine.sort_by_distance()] == ["place:a", "place:b"]


@pytest.mark.asyncio
async def test_subscriber_errors_do_not_break_commit() -> None:
    engine = _engine(_scenario_searcher())
    seen: list[int] = []

    def _boom(_session: DiscoverySession) -> None:
        raise RuntimeError("renderer crashed")

    engine.subscribe(_boom)
    unsubscribe = engine.subscribe(lambda session: seen.append(len(session.records)))

    await engine.refresh(CENTER)
    unsubscribe()
    engine.set_query("x")

    assert seen == [2]
    assert engine.session.query == "x"


@pytest.mark.parametrize(
    ("categories", "expected"),
    [
        ("all", list(ServiceCategory)),
        (" Hospital ", [ServiceCategory.HOSPITAL]),
        (["police", ServiceCategory.POLICE, "hospital"], [ServiceCategory.POLICE, ServiceCategory.HOSPITAL]),
    ],
)
def test_resolve_categories(categories: object, expected: list[ServiceCategory]) -> None:
    assert resolve_categories(categories) == expected  # type: ignore[arg-type]
