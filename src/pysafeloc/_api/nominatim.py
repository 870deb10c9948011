"""OpenStreetMap Nominatim reverse geocoding.

No API key required; the usage policy requires an identifying
User-Agent, which :class:`pysafeloc._transport.JsonTransport` sends.
"""

from __future__ import annotations

from typing import Any

from pysafeloc._constants import NOMINATIM_REVERSE_URL
from pysafeloc._transport import Transport
from pysafeloc.exceptions import GeocodeError


class NominatimGeocoder:
    """Reverse geocoder backed by a Nominatim instance."""

    def __init__(self, transport: Transport, *, url: str = NOMINATIM_REVERSE_URL, zoom: int = 18) -> None:
        self._transport = transport
        self._url = url
        self._zoom = zoom

    async def reverse_geocode(self, latitude: float, longitude: float) -> str | None:
        params = {
            "lat": latitude,
            "lon": longitude,
            "format": "jsonv2",
            "zoom": self._zoom,
            "addressdetails": 0,
        }
        payload: Any = await self._transport.get_json(self._url, params)
        if not isinstance(payload, dict):
            raise GeocodeError("Nominatim returned a non-object payload")
        if "error" in payload:
            raise GeocodeError(f"Nominatim reverse failed: {payload['error']}")
        name = payload.get("display_name")
        return name if isinstance(name, str) and name.strip() else None
