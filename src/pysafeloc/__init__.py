"""pysafeloc - Live location tracking and nearby emergency service discovery."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pysafeloc")
except PackageNotFoundError:
    __version__ = "0+local"
from pysafeloc._api import NearbySearcher, ReverseGeocoder
from pysafeloc._api.google import GoogleMapsDirectory
from pysafeloc._api.nominatim import NominatimGeocoder
from pysafeloc.client import PresentationSurface, SafetyClient
from pysafeloc.config import SafelocConfig
from pysafeloc.discovery import DEFAULT_SEEDS, ServiceDiscoveryEngine
from pysafeloc.exceptions import (
    DirectoryProviderError,
    GeocodeError,
    PositionError,
    PositionPermissionDeniedError,
    PositionTimeoutError,
    PositionUnavailableError,
    SafelocConfigError,
    SafelocError,
    SafelocTransportError,
)
from pysafeloc.geo import distance_between, distance_km, format_coordinates, format_distance
from pysafeloc.geocode import GeocodeResolver
from pysafeloc.intents import CallIntent, DirectionsIntent, IntentDispatcher
from pysafeloc.models import (
    Coordinate,
    DiscoverySession,
    PositionFix,
    PositionOptions,
    PositionSnapshot,
    RawHit,
    ServiceCategory,
    ServiceRecord,
    TrackingErrorKind,
    TrackingState,
    TrackingStatus,
)
from pysafeloc.position import PositionProvider, PositionSource
from pysafeloc.tracking import TrackingController

__all__ = [
    "__version__",
    "CallIntent",
    "Coordinate",
    "DEFAULT_SEEDS",
    "DirectionsIntent",
    "DirectoryProviderError",
    "DiscoverySession",
    "GeocodeError",
    "GeocodeResolver",
    "GoogleMapsDirectory",
    "IntentDispatcher",
    "NearbySearcher",
    "NominatimGeocoder",
    "PositionError",
    "PositionFix",
    "PositionOptions",
    "PositionPermissionDeniedError",
    "PositionProvider",
    "PositionSnapshot",
    "PositionSource",
    "PositionTimeoutError",
    "PositionUnavailableError",
    "PresentationSurface",
    "RawHit",
    "ReverseGeocoder",
    "SafelocConfig",
    "SafelocConfigError",
    "SafelocError",
    "SafelocTransportError",
    "SafetyClient",
    "ServiceCategory",
    "ServiceDiscoveryEngine",
    "ServiceRecord",
    "TrackingController",
    "TrackingErrorKind",
    "TrackingState",
    "TrackingStatus",
    "distance_between",
    "distance_km",
    "format_coordinates",
    "format_distance",
]
