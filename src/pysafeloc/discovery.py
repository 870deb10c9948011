"""Nearby emergency service discovery.

:class:`ServiceDiscoveryEngine` queries a directory provider once per
category, merges the hits with static seed facilities into a single
de-duplicated set, and keeps that set ranked against the latest centre.
Filtering and text search work on the cached set only.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from pysafeloc._api import NearbySearcher
from pysafeloc._constants import (
    ADDRESS_NOT_AVAILABLE,
    DEFAULT_CENTER,
    DEFAULT_MAX_RESULTS_PER_CATEGORY,
    DEFAULT_SEARCH_RADIUS_M,
    DEFAULT_SEARCH_TIMEOUT_S,
)
from pysafeloc.geo import distance_between
from pysafeloc.models.position import Coordinate, PositionSnapshot
from pysafeloc.models.service import (
    ALL_CATEGORIES,
    DiscoverySession,
    RawHit,
    ServiceCategory,
    ServiceRecord,
    parse_category_filter,
)
from pysafeloc.schedule import Generation

_logger = logging.getLogger(__name__)

SessionCallback = Callable[[DiscoverySession], None]

#: Facilities the live directory does not list.
DEFAULT_SEEDS: tuple[ServiceRecord, ...] = (
    ServiceRecord(
        id="seed:ncc-delhi-hq",
        name="Delhi NCC Headquarters",
        category=ServiceCategory.FIXED_FACILITY,
        coordinate=Coordinate(latitude=28.6562, longitude=77.2410),
        address="Red Fort, Delhi",
        phone="+91-11-23011234",
    ),
)

DEFAULT_EMERGENCY_NUMBERS: dict[str, str] = {
    ServiceCategory.POLICE: "100",
    ServiceCategory.HOSPITAL: "108",
}

_DEFAULT_NAMES: dict[ServiceCategory, str] = {
    ServiceCategory.POLICE: "Police Station",
    ServiceCategory.HOSPITAL: "Hospital",
    ServiceCategory.FIXED_FACILITY: "Facility",
}


def _now_ms() -> int:
    return int(time.time() * 1000)


def _as_coordinate(center: Coordinate | PositionSnapshot | tuple[float, float]) -> Coordinate:
    if isinstance(center, Coordinate):
        return center
    if isinstance(center, PositionSnapshot):
        return center.coordinate
    latitude, longitude = center
    return Coordinate(latitude=latitude, longitude=longitude)


def resolve_categories(categories: Iterable[ServiceCategory | str] | str) -> list[ServiceCategory]:
    """Expand ``"all"`` and de-duplicate while keeping the requested order."""
    if isinstance(categories, str):
        parsed = parse_category_filter(categories)
        return list(ServiceCategory) if parsed == ALL_CATEGORIES else [ServiceCategory(parsed)]
    resolved: list[ServiceCategory] = []
    for item in categories:
        category = ServiceCategory(str(item).strip().lower())
        if category not in resolved:
            resolved.append(category)
    return resolved


def record_id_for(hit: RawHit, category: ServiceCategory) -> str:
    """Identity of a hit within a session.

    The provider reference identifies a facility regardless of which
    category query returned it. Without one, the name and the coordinate
    rounded to ~1 m are hashed.
    """
    if hit.place_ref:
        return f"place:{hit.place_ref}"
    name = (hit.name or _DEFAULT_NAMES[category]).strip().lower()
    key = f"{name}|{hit.latitude:.5f}|{hit.longitude:.5f}"
    return "hit:" + hashlib.sha1(key.encode("utf-8"), usedforsecurity=False).hexdigest()[:16]


def sort_by_distance(records: Sequence[ServiceRecord]) -> tuple[ServiceRecord, ...]:
    """Ascending distance, ties broken by ``id`` so the order is deterministic."""
    return tuple(sorted(records, key=lambda record: (record.distance_km, record.id)))


class ServiceDiscoveryEngine:
    """Owns the current :class:`DiscoverySession`.

    Sessions are immutable; every operation builds a replacement and swaps
    it in with one assignment, so observers never see a half-updated set.

    Parameters
    ----------
    searcher : NearbySearcher or None
        Live directory. ``None`` lists seed facilities only.
    radius_m : int
        Search radius in metres.
    max_results_per_category : int
        Accepted live hits per category and refresh.
    search_timeout : float
        Seconds before a category search counts as failed.
    seeds : iterable of ServiceRecord
        Static facilities appended after the live results of every refresh.
    emergency_numbers : mapping
        Phone number per category for hits that carry none.
    """

    def __init__(
        self,
        searcher: NearbySearcher | None = None,
        *,
        radius_m: int = DEFAULT_SEARCH_RADIUS_M,
        max_results_per_category: int = DEFAULT_MAX_RESULTS_PER_CATEGORY,
        search_timeout: float = DEFAULT_SEARCH_TIMEOUT_S,
        seeds: Iterable[ServiceRecord] = DEFAULT_SEEDS,
        emergency_numbers: Mapping[str, str] | None = None,
        default_center: tuple[float, float] = DEFAULT_CENTER,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._searcher = searcher
        self._radius_m = radius_m
        self._limit = max_results_per_category
        self._search_timeout = search_timeout
        self._seeds = tuple(seeds)
        self._numbers = dict(DEFAULT_EMERGENCY_NUMBERS)
        if emergency_numbers:
            self._numbers.update({str(key).lower(): value for key, value in emergency_numbers.items()})
        self._clock = clock
        self._generation = Generation()
        self._session = DiscoverySession(center=_as_coordinate(default_center))
        self._callbacks: list[SessionCallback] = []

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def session(self) -> DiscoverySession:
        return self._session

    @property
    def refresh_pending(self) -> bool:
        return self._session.generation != self._generation.current

    def visible(self) -> tuple[ServiceRecord, ...]:
        """Records passing the active category filter and text query."""
        return self._session.visible

    def get(self, service_id: str) -> ServiceRecord | None:
        return self._session.get(service_id)

    def subscribe(self, callback: SessionCallback) -> Callable[[], None]:
        """Register a session observer; returns an unsubscribe callable."""
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._callbacks.remove(callback)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def refresh(
        self,
        center: Coordinate | PositionSnapshot | tuple[float, float],
        categories: Iterable[ServiceCategory | str] | str = ALL_CATEGORIES,
        *,
        sort: bool = False,
    ) -> DiscoverySession | None:
        """Re-query the directory around *center* and replace the set.

        Category searches run concurrently; a failing category contributes
        no records and does not abort the others. Seed facilities are
        appended after the live results.

        Returns
        -------
        DiscoverySession or None
            The committed session, or ``None`` when a newer refresh was
            issued before this one completed (its results are dropped).
        """
        origin = _as_coordinate(center)
        wanted = resolve_categories(categories)
        token = self._generation.advance()

        results = await asyncio.gather(*(self._search_category(origin, category) for category in wanted))

        if not self._generation.is_current(token):
            _logger.debug("Discarding stale discovery refresh generation=%d", token)
            return None

        records = self._merge(origin, zip(wanted, results, strict=True))
        current = self._session
        session = DiscoverySession(
            records=sort_by_distance(records) if sort else tuple(records),
            center=origin,
            category_filter=current.category_filter,
            query=current.query,
            generation=token,
            refreshed_at_epoch_ms=self._clock(),
            sorted_by_distance=sort,
        )
        _logger.debug("Discovery refresh generation=%d records=%d", token, len(session.records))
        self._commit(session)
        return session

    def re_rank(self, center: Coordinate | PositionSnapshot | tuple[float, float], *, sort: bool = False) -> DiscoverySession:
        """Recompute every distance against *center* without re-fetching.

        The order is kept unless *sort* is set.
        """
        origin = _as_coordinate(center)
        current = self._session
        records = tuple(
            record.model_copy(update={"distance_km": distance_between(origin, record.coordinate)})
            for record in current.records
        )
        session = current.model_copy(
            update={
                "records": sort_by_distance(records) if sort else records,
                "center": origin,
                "sorted_by_distance": sort,
            }
        )
        self._commit(session)
        return session

    def sort_by_distance(self) -> tuple[ServiceRecord, ...]:
        current = self._session
        if not current.sorted_by_distance:
            self._commit(
                current.model_copy(update={"records": sort_by_distance(current.records), "sorted_by_distance": True})
            )
        return self._session.visible

    def set_filter(self, category: ServiceCategory | str) -> tuple[ServiceRecord, ...]:
        """Show only *category* (or ``"all"``). No provider call is made."""
        parsed = parse_category_filter(category)
        self._commit(self._session.model_copy(update={"category_filter": parsed}))
        return self._session.visible

    def set_query(self, text: str | None) -> tuple[ServiceRecord, ...]:
        """Case-insensitive substring search over name or address.

        Surrounding whitespace in *text* is ignored, so a query of only
        spaces shows every record.
        """
        self._commit(self._session.model_copy(update={"query": text or ""}))
        return self._session.visible

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _search_category(self, center: Coordinate, category: ServiceCategory) -> list[RawHit]:
        if self._searcher is None:
            return []
        try:
            hits = await asyncio.wait_for(
                self._searcher.nearby_search(center, self._radius_m, category),
                self._search_timeout,
            )
        except TimeoutError:
            _logger.warning("Nearby search for %s timed out after %.1fs", category, self._search_timeout)
            return []
        except Exception:
            _logger.warning("Nearby search for %s failed", category, exc_info=True)
            return []
        return list(hits or [])

    def _merge(
        self,
        center: Coordinate,
        results: Iterable[tuple[ServiceCategory, list[RawHit]]],
    ) -> list[ServiceRecord]:
        records: list[ServiceRecord] = []
        seen: set[str] = set()

        for category, hits in results:
            accepted = 0
            for hit in hits:
                if accepted >= self._limit:
                    break
                coordinate = hit.coordinate
                if coordinate is None:
                    _logger.debug("Dropping %s hit without coordinates: %s", category, hit.name)
                    continue
                record_id = record_id_for(hit, category)
                if record_id in seen:
                    continue
                seen.add(record_id)
                records.append(self._to_record(record_id, category, hit, coordinate, center))
                accepted += 1

        for seed in self._seeds:
            if seed.id in seen:
                continue
            seen.add(seed.id)
            records.append(seed.model_copy(update={"distance_km": distance_between(center, seed.coordinate)}))
        return records

    def _to_record(
        self,
        record_id: str,
        category: ServiceCategory,
        hit: RawHit,
        coordinate: Coordinate,
        center: Coordinate,
    ) -> ServiceRecord:
        return ServiceRecord(
            id=record_id,
            name=(hit.name or _DEFAULT_NAMES[category]).strip(),
            category=category,
            coordinate=coordinate,
            address=hit.address or ADDRESS_NOT_AVAILABLE,
            phone=hit.phone or self._numbers.get(category, "112"),
            distance_km=distance_between(center, coordinate),
            provider_ref=hit.place_ref,
        )

    def _commit(self, session: DiscoverySession) -> None:
        self._session = session
        for callback in list(self._callbacks):
            try:
                callback(session)
            except Exception:
                _logger.debug("Discovery session callback failed", exc_info=True)

    def describe(self) -> dict[str, Any]:
        """Small summary used in debug logs by the client."""
        session = self._session
        return {
            "generation": session.generation,
            "records": len(session.records),
            "visible": len(session.visible),
            "filter": str(session.category_filter),
            "query": session.query,
        }
