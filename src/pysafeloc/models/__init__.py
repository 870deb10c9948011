"""Data models for positions, tracking status and emergency services."""

from pysafeloc.models._base import SafelocBaseModel
from pysafeloc.models.position import (
    Coordinate,
    PositionFix,
    PositionOptions,
    PositionSnapshot,
    TrackingErrorKind,
    TrackingState,
    TrackingStatus,
)
from pysafeloc.models.service import (
    ALL_CATEGORIES,
    CategoryFilter,
    DiscoverySession,
    RawHit,
    ServiceCategory,
    ServiceRecord,
    parse_category_filter,
)

__all__ = [
    "ALL_CATEGORIES",
    "CategoryFilter",
    "Coordinate",
    "DiscoverySession",
    "PositionFix",
    "PositionOptions",
    "PositionSnapshot",
    "RawHit",
    "SafelocBaseModel",
    "ServiceCategory",
    "ServiceRecord",
    "TrackingErrorKind",
    "TrackingState",
    "TrackingStatus",
    "parse_category_filter",
]
