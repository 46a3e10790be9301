"""
Record types passed into and out of the trip synthesis engine.

``Capture`` mirrors one photo entry produced by the metadata stage of the
archive build. ``Trip`` is the finished, immutable output consumed by the
page renderer; :meth:`Trip.to_record` produces the camelCase mapping the
templates expect.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any

# Reference-system (camelCase) keys accepted by Capture.from_mapping
CAPTURE_KEY_ALIASES: dict[str, str] = {
    "bird": "species",
    "name": "species",
    "speciesHref": "species_href",
    "thumbSrc": "thumb_src",
    "captureDateIso": "captured_at",
    "captureDateRaw": "captured_at",
    "capture_date_iso": "captured_at",
    "captureOffset": "capture_offset",
    "offsetTimeOriginal": "capture_offset",
    "lat": "latitude",
    "lon": "longitude",
    "lng": "longitude",
    "locationLabel": "location_label",
}


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    text = str(value).strip()
    return text or None


def _clean_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


@dataclass(frozen=True)
class Capture:
    """One photographic observation of a species."""

    species: str
    filename: str
    captured_at: str | datetime | None = None
    capture_offset: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    src: str | None = None
    thumb_src: str | None = None
    species_href: str | None = None
    camera: str | None = None
    lens: str | None = None
    exposure: str | None = None
    aperture: str | None = None
    iso: str | None = None
    park: str | None = None
    site: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    location_label: str | None = None
    family: str | None = None
    status: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        """Composite identity used to de-duplicate merged captures."""
        return (self.species, self.filename)

    @property
    def is_geotagged(self) -> bool:
        return (
            self.latitude is not None
            and self.longitude is not None
            and math.isfinite(self.latitude)
            and math.isfinite(self.longitude)
            and -90 <= self.latitude <= 90
            and -180 <= self.longitude <= 180
        )

    @classmethod
    def from_mapping(cls, record: Mapping[str, Any]) -> Capture:
        """
        Build a capture from a loosely-typed mapping.

        Both snake_case field names and the camelCase keys written by the
        archive build (``bird``, ``captureDateIso``, ``lat``/``lon`` ...)
        are accepted. Unknown keys are ignored.
        """
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in record.items():
            name = CAPTURE_KEY_ALIASES.get(key, key)
            if name in known and values.get(name) is None:
                values[name] = value

        species = _clean_text(values.get("species"))
        filename = _clean_text(values.get("filename"))
        if species is None or filename is None:
            raise ValueError(f"Capture record needs both species and filename: {dict(record)!r}")

        captured_at = values.get("captured_at")
        if not isinstance(captured_at, datetime):
            captured_at = _clean_text(captured_at)

        kwargs: dict[str, Any] = {
            "species": species,
            "filename": filename,
            "captured_at": captured_at,
            "latitude": _clean_float(values.get("latitude")),
            "longitude": _clean_float(values.get("longitude")),
        }
        for name in known - kwargs.keys():
            kwargs[name] = _clean_text(values.get(name))
        return cls(**kwargs)


@dataclass(frozen=True)
class TripImage:
    """Pass-through image entry for the renderer."""

    src: str | None
    thumb_src: str | None
    species: str
    species_href: str
    filename: str
    capture_date: str
    capture_date_iso: str | None
    latitude: float | None
    longitude: float | None

    def to_record(self) -> dict[str, Any]:
        return {
            "src": self.src,
            "thumbSrc": self.thumb_src,
            "bird": self.species,
            "speciesHref": self.species_href,
            "filename": self.filename,
            "captureDate": self.capture_date,
            "captureDateIso": self.capture_date_iso,
            "lat": self.latitude,
            "lon": self.longitude,
        }


@dataclass(frozen=True)
class GeoCluster:
    """Same-day geotagged captures connected through the radius graph."""

    cluster_id: int
    day_key: str
    capture_indices: tuple[int, ...]
    centroid: tuple[float, float]
    max_spread_km: float

    @property
    def size(self) -> int:
        return len(self.capture_indices)


@dataclass(frozen=True)
class Trip:
    """A detected field outing with its display facts."""

    id: str
    day_key: str
    captures: tuple[Capture, ...]
    images: tuple[TripImage, ...]
    location_title: str
    locations: tuple[str, ...]
    date_label: str
    time_range: str
    duration_minutes: int
    duration_label: str
    species: tuple[str, ...]
    top_species_label: str
    new_species: tuple[str, ...]
    new_species_label: str
    gear_label: str
    centroid: tuple[float, float]
    max_spread_km: float
    map_href: str
    started_at: Any = field(default=None, compare=False, repr=False)

    @property
    def image_count(self) -> int:
        return len(self.images)

    @property
    def species_count(self) -> int:
        return len(self.species)

    @property
    def has_new_species(self) -> bool:
        return bool(self.new_species)

    @property
    def cover_index(self) -> int:
        return len(self.images) - 1

    @property
    def cover(self) -> TripImage:
        """Chronologically last image."""
        return self.images[-1]

    def to_record(self) -> dict[str, Any]:
        """Mapping in the shape the trips page template consumes."""
        return {
            "id": self.id,
            "dayKey": self.day_key,
            "locationTitle": self.location_title,
            "dateLabel": self.date_label,
            "durationLabel": self.duration_label,
            "timeRange": self.time_range,
            "imageCount": self.image_count,
            "speciesCount": self.species_count,
            "topSpeciesLabel": self.top_species_label,
            "hasNewSpecies": self.has_new_species,
            "newSpeciesLabel": self.new_species_label,
            "gearLabel": self.gear_label,
            "species": list(self.species),
            "locations": list(self.locations),
            "centroid": {"lat": self.centroid[0], "lon": self.centroid[1]},
            "maxSpreadKm": self.max_spread_km,
            "images": [image.to_record() for image in self.images],
            "coverIndex": self.cover_index,
            "cover": self.cover.to_record(),
            "mapHref": self.map_href,
        }
