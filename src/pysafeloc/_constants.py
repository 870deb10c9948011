"""Internal constants shared across the library."""

USER_AGENT = "pysafeloc/0 (+https://github.com/pysafeloc/pysafeloc)"

#: Mean Earth radius used by the haversine distance, in kilometres.
EARTH_RADIUS_KM = 6371.0

#: Decimal places used when an address falls back to raw coordinates.
COORDINATE_TEXT_PRECISION = 4

# ------------------------------------------------------------------
# Tracking defaults
# ------------------------------------------------------------------

DEFAULT_TRACKING_INTERVAL_MS = 15_000
#: Below this interval providers start rate limiting and batteries drain.
MIN_RECOMMENDED_INTERVAL_MS = 5_000
DEFAULT_POSITION_TIMEOUT_MS = 15_000
DEFAULT_MAX_CACHE_AGE_MS = 0
DEFAULT_GEOCODE_TIMEOUT_S = 3.0
DEFAULT_BACKOFF_MAX_INTERVAL_MS = 120_000

# ------------------------------------------------------------------
# Discovery defaults
# ------------------------------------------------------------------

DEFAULT_SEARCH_RADIUS_M = 5_000
DEFAULT_MAX_RESULTS_PER_CATEGORY = 5
DEFAULT_SEARCH_TIMEOUT_S = 10.0

#: New Delhi, used when no device position is known yet.
DEFAULT_CENTER: tuple[float, float] = (28.6139, 77.2090)

ADDRESS_NOT_AVAILABLE = "Address not available"

# ------------------------------------------------------------------
# Provider endpoints
# ------------------------------------------------------------------

GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
GOOGLE_NEARBY_SEARCH_URL = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"
GOOGLE_DIRECTIONS_URL = "https://www.google.com/maps/dir/"
NOMINATIM_REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"
