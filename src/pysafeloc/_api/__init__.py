"""Directory provider adapters.

Each module adapts one external directory (geocoding and/or nearby
search) to the :class:`ReverseGeocoder` / :class:`NearbySearcher`
protocols consumed by the engine.
"""

from __future__ import annotations

from typing import Protocol

from pysafeloc.models.position import Coordinate
from pysafeloc.models.service import RawHit, ServiceCategory


class ReverseGeocoder(Protocol):
    async def reverse_geocode(self, latitude: float, longitude: float) -> str | None:
        """Return a human readable address, or ``None`` when nothing is known."""
        ...


class NearbySearcher(Protocol):
    async def nearby_search(
        self,
        center: Coordinate,
        radius_m: int,
        category: ServiceCategory,
    ) -> list[RawHit]:
        ...
