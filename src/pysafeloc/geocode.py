"""Best-effort coordinate to address resolution."""

from __future__ import annotations

import asyncio
import logging

from pysafeloc._api import ReverseGeocoder
from pysafeloc._constants import DEFAULT_GEOCODE_TIMEOUT_S
from pysafeloc.geo import format_coordinates

_logger = logging.getLogger(__name__)


class GeocodeResolver:
    """Resolve coordinates to address text without ever failing the caller.

    Parameters
    ----------
    geocoder : ReverseGeocoder or None
        External provider. ``None`` means every lookup degrades to the
        coordinate fallback.
    timeout : float
        Seconds before a provider call is treated as failed.
    """

    def __init__(self, geocoder: ReverseGeocoder | None = None, *, timeout: float = DEFAULT_GEOCODE_TIMEOUT_S) -> None:
        self._geocoder = geocoder
        self._timeout = timeout

    @property
    def has_provider(self) -> bool:
        return self._geocoder is not None

    async def try_resolve(self, latitude: float, longitude: float) -> str | None:
        """Return the provider's address or ``None`` on any failure."""
        if self._geocoder is None:
            return None
        try:
            address = await asyncio.wait_for(self._geocoder.reverse_geocode(latitude, longitude), self._timeout)
        except TimeoutError:
            _logger.debug("Reverse geocode timed out after %.1fs", self._timeout)
            return None
        except Exception:
            _logger.debug("Reverse geocode failed", exc_info=True)
            return None
        if not isinstance(address, str) or not address.strip():
            return None
        return address.strip()

    async def resolve(self, latitude: float, longitude: float) -> str:
        """Return an address, falling back to ``"lat, lng"`` text (4 decimals)."""
        address = await self.try_resolve(latitude, longitude)
        if address is None:
            return format_coordinates(latitude, longitude)
        return address
