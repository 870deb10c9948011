"""Google Maps Platform directory.

Endpoints:
  - /maps/api/geocode/json (reverse geocoding)
  - /maps/api/place/nearbysearch/json (police / hospital search)
"""

from __future__ import annotations

import logging
from typing import Any

from pysafeloc._constants import GOOGLE_GEOCODE_URL, GOOGLE_NEARBY_SEARCH_URL
from pysafeloc._transport import Transport
from pysafeloc.exceptions import DirectoryProviderError, GeocodeError, SafelocConfigError
from pysafeloc.models.position import Coordinate
from pysafeloc.models.service import RawHit, ServiceCategory

_logger = logging.getLogger(__name__)

#: Places API ``type`` searched for each live category. Categories absent
#: here are not served by Google and only come from seed data.
PLACE_TYPES: dict[ServiceCategory, str] = {
    ServiceCategory.POLICE: "police",
    ServiceCategory.HOSPITAL: "hospital",
}

_EMPTY_STATUSES = frozenset({"ZERO_RESULTS"})


def _check_status(payload: Any, *, endpoint: str, category: ServiceCategory | None = None) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise DirectoryProviderError(f"{endpoint} returned a non-object payload", category=category)
    status = str(payload.get("status", ""))
    if status != "OK" and status not in _EMPTY_STATUSES:
        message = payload.get("error_message", "")
        raise DirectoryProviderError(
            f"{endpoint} failed: status={status} message={message}",
            status=status,
            category=category,
        )
    return payload


def _parse_place(place: Any) -> RawHit | None:
    """Flatten a Places result; ``geometry.location`` becomes lat/lng."""
    if not isinstance(place, dict):
        return None
    location = (place.get("geometry") or {}).get("location") or {}
    return RawHit.model_validate(
        {
            "name": place.get("name"),
            "lat": location.get("lat"),
            "lng": location.get("lng"),
            "vicinity": place.get("vicinity") or place.get("formatted_address"),
            "place_id": place.get("place_id"),
            "formatted_phone_number": place.get("formatted_phone_number"),
        }
    )


class GoogleMapsDirectory:
    """Reverse geocoding and nearby search backed by Google Maps Platform."""

    def __init__(self, transport: Transport, api_key: str, *, language: str | None = None) -> None:
        if not api_key:
            raise SafelocConfigError("GoogleMapsDirectory requires an API key")
        self._transport = transport
        self._api_key = api_key
        self._language = language

    async def reverse_geocode(self, latitude: float, longitude: float) -> str | None:
        params = {
            "latlng": f"{latitude},{longitude}",
            "key": self._api_key,
            "language": self._language,
        }
        try:
            payload = _check_status(
                await self._transport.get_json(GOOGLE_GEOCODE_URL, params),
                endpoint="geocode",
            )
        except DirectoryProviderError as exc:
            raise GeocodeError(str(exc)) from exc

        results = payload.get("results") or []
        if not results or not isinstance(results[0], dict):
            return None
        address = results[0].get("formatted_address")
        return address if isinstance(address, str) and address.strip() else None

    async def nearby_search(
        self,
        center: Coordinate,
        radius_m: int,
        category: ServiceCategory,
    ) -> list[RawHit]:
        place_type = PLACE_TYPES.get(category)
        if place_type is None:
            return []
        params = {
            "location": f"{center.latitude},{center.longitude}",
            "radius": radius_m,
            "type": place_type,
            "key": self._api_key,
            "language": self._language,
        }
        payload = _check_status(
            await self._transport.get_json(GOOGLE_NEARBY_SEARCH_URL, params),
            endpoint="nearbysearch",
            category=category,
        )
        hits = [hit for hit in (_parse_place(place) for place in payload.get("results") or []) if hit is not None]
        _logger.debug("Nearby search category=%s hits=%d", category, len(hits))
        return hits
