"""Emergency service records and the discovery session."""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import AliasChoices, Field, field_validator

from pysafeloc.models._base import SafelocBaseModel
from pysafeloc.models.position import Coordinate


class ServiceCategory(StrEnum):
    """Closed set of facility categories so filtering stays exhaustive."""

    POLICE = "police"
    HOSPITAL = "hospital"
    FIXED_FACILITY = "fixed_facility"


ALL_CATEGORIES = "all"
CategoryFilter = ServiceCategory | Literal["all"]


def parse_category_filter(value: str | ServiceCategory) -> CategoryFilter:
    """Normalise a user supplied filter (``"Hospital"``, ``"all"``...)."""
    if isinstance(value, ServiceCategory):
        return value
    text = str(value).strip().lower()
    if text == ALL_CATEGORIES:
        return ALL_CATEGORIES
    return ServiceCategory(text)


class RawHit(SafelocBaseModel):
    """A single nearby-search result as returned by a directory provider.

    Coordinates are optional here; hits without them are discarded by the
    discovery engine rather than placed at a made-up location.
    """

    name: str | None = None
    latitude: float | None = Field(default=None, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float | None = Field(default=None, validation_alias=AliasChoices("longitude", "lng", "lon"))
    address: str | None = Field(default=None, validation_alias=AliasChoices("address", "vicinity", "formatted_address"))
    place_ref: str | None = Field(default=None, validation_alias=AliasChoices("place_ref", "placeRef", "place_id"))
    phone: str | None = Field(
        default=None,
        validation_alias=AliasChoices("phone", "formatted_phone_number", "international_phone_number"),
    )

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_float(cls, value: object) -> float | None:
        if value is None:
            return None
        try:
            return float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None

    @property
    def coordinate(self) -> Coordinate | None:
        if self.latitude is None or self.longitude is None:
            return None
        if not (-90.0 <= self.latitude <= 90.0 and -180.0 <= self.longitude <= 180.0):
            return None
        return Coordinate(latitude=self.latitude, longitude=self.longitude)


class ServiceRecord(SafelocBaseModel):
    """A nearby facility ready for display and one-tap contact.

    ``distance_km`` is relative to the centre of the session the record
    belongs to; re-ranking produces new records rather than editing these.
    """

    id: str
    name: str
    category: ServiceCategory
    coordinate: Coordinate
    address: str
    phone: str
    distance_km: float = Field(default=0.0, ge=0.0)
    provider_ref: str | None = None

    def matches(self, needle: str) -> bool:
        """Case-insensitive substring match against name or address."""
        if not needle:
            return True
        return needle in self.name.lower() or needle in self.address.lower()


class DiscoverySession(SafelocBaseModel):
    """The merged result set of the most recent refresh plus the view state."""

    records: tuple[ServiceRecord, ...] = ()
    center: Coordinate
    category_filter: CategoryFilter = ALL_CATEGORIES
    query: str = ""
    generation: int = 0
    refreshed_at_epoch_ms: int = 0
    sorted_by_distance: bool = False

    @property
    def visible(self) -> tuple[ServiceRecord, ...]:
        """Records passing both the category filter and the text query."""
        needle = self.query.strip().lower()
        return tuple(
            record
            for record in self.records
            if (self.category_filter == ALL_CATEGORIES or record.category == self.category_filter)
            and record.matches(needle)
        )

    def get(self, service_id: str) -> ServiceRecord | None:
        for record in self.records:
            if record.id == service_id:
                return record
        return None
