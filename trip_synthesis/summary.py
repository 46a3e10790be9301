"""
Per-trip facts shown on the trips page.

Most of the aggregates are "the most common value, ties broken
alphabetically": :func:`top_by_count` is the one place that rule lives.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from urllib.parse import quote

import pandas as pd

from .config import TripConfig
from .geo import centroid, max_spread_km
from .labels import build_location_list, build_location_title
from .models import Capture, GeoCluster, Trip, TripImage

UNKNOWN_VALUES = frozenset({"", "unknown"})
# encodeURIComponent leaves these unescaped
URI_COMPONENT_SAFE = "-_.!~*'()"
PATH_SEGMENT_SAFE = "-_.!~*()"


def alphabetical_key(value: str) -> tuple[str, str]:
    """Case-insensitive ordering with the raw string as a final tie-break."""
    return (value.casefold(), value)


def top_by_count(values: Iterable[str], skip_unknown: bool = True) -> tuple[str, int] | None:
    """
    Most frequent value and its count; ties go to the alphabetically first.

    Blank values are never counted; with ``skip_unknown`` the literal
    ``"Unknown"`` placeholder written by the EXIF stage is dropped too.
    """
    skipped = UNKNOWN_VALUES if skip_unknown else frozenset({""})
    kept = [v for v in values if isinstance(v, str) and v.strip().casefold() not in skipped]
    series = pd.Series(kept, dtype=object)
    if series.empty:
        return None
    counts = series.value_counts()
    ranked = sorted(counts.items(), key=lambda item: (-item[1], *alphabetical_key(item[0])))
    value, count = ranked[0]
    return value, int(count)


def format_duration_minutes(total_minutes) -> str:
    if total_minutes is None or pd.isna(total_minutes) or total_minutes <= 0:
        return "0m"
    hours, minutes = divmod(int(total_minutes), 60)
    if not hours:
        return f"{minutes}m"
    if not minutes:
        return f"{hours}h"
    return f"{hours}h {minutes}m"


def format_display_date(local_time) -> str:
    if local_time is None or pd.isna(local_time):
        return "Unknown"
    return local_time.strftime("%B %d, %Y")


def format_time_range(start, end) -> str:
    return f"{start:%H:%M}–{end:%H:%M}"


def encode_uri_component(value: str) -> str:
    return quote(str(value), safe=URI_COMPONENT_SAFE)


def species_page_href(species: str, root: str = "birdopedia") -> str:
    """Site path of a species page; apostrophes are escaped as well."""
    parts = (root, species, "index.html")
    return "/" + "/".join(quote(str(part), safe=PATH_SEGMENT_SAFE) for part in parts)


def build_map_href(species: str, filename: str, base: str = "/birdopedia/map/index.html") -> str:
    return f"{base}?species={encode_uri_component(species)}&focus=all&image={encode_uri_component(filename)}"


def build_geo_cluster(cluster_id: int, geo_rows: pd.DataFrame) -> GeoCluster:
    lats = geo_rows["latitude"].to_numpy(dtype=float)
    lons = geo_rows["longitude"].to_numpy(dtype=float)
    center = centroid(lats, lons)
    return GeoCluster(
        cluster_id=int(cluster_id),
        day_key=str(geo_rows["day_key"].iloc[0]),
        capture_indices=tuple(int(i) for i in geo_rows["capture_index"]),
        centroid=center,
        max_spread_km=max_spread_km(center, lats, lons),
    )


def _iso_text(value) -> str | None:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def build_trip_image(capture: Capture, row, config: TripConfig) -> TripImage:
    return TripImage(
        src=capture.src,
        thumb_src=capture.thumb_src or capture.src,
        species=capture.species,
        species_href=capture.species_href or species_page_href(capture.species, config.species_href_root),
        filename=capture.filename,
        capture_date=format_display_date(row["local_time"]),
        capture_date_iso=_iso_text(capture.captured_at),
        latitude=capture.latitude if capture.is_geotagged else None,
        longitude=capture.longitude if capture.is_geotagged else None,
    )


def summarize_trip(
    trip_rows: pd.DataFrame,
    captures: Sequence[Capture],
    first_seen_day_by_species: Mapping[str, str],
    config: TripConfig,
) -> Trip:
    """
    Build a :class:`Trip` (with an empty id) from one merged cluster.

    ``trip_rows`` are the cluster's rows from the merged frame, already in
    time order; ``captures`` is the full input list indexed by
    ``capture_index``.
    """
    geo_rows = trip_rows[~trip_rows["is_extra"]]
    cluster = build_geo_cluster(trip_rows["trip_cluster_id"].iloc[0], geo_rows)
    day_key = cluster.day_key
    trip_captures = tuple(captures[i] for i in trip_rows["capture_index"])
    records = trip_rows.to_dict("records")
    images = tuple(build_trip_image(capture, row, config) for capture, row in zip(trip_captures, records))

    first, last = trip_rows.iloc[0], trip_rows.iloc[-1]
    elapsed = (last["instant"] - first["instant"]).total_seconds() / 60
    duration_minutes = max(0, math.floor(elapsed + 0.5))

    species = tuple(sorted(set(trip_rows["species"]), key=alphabetical_key))
    top_species = top_by_count(trip_rows["species"], skip_unknown=False)
    new_species = tuple(name for name in species if first_seen_day_by_species.get(name) == day_key)

    camera = top_by_count(trip_rows["camera"])
    lens = top_by_count(trip_rows["lens"])
    gear_label = f"{camera[0] if camera else 'Unknown camera'} + {lens[0] if lens else 'Unknown lens'}"

    cover = images[-1]
    return Trip(
        id="",
        day_key=day_key,
        captures=trip_captures,
        images=images,
        location_title=build_location_title(
            geo_rows,
            cluster.centroid,
            dedup_miles=config.title_dedup_miles,
            max_park_anchors=config.max_park_anchors,
            max_title_labels=config.max_title_labels,
        ),
        locations=tuple(build_location_list(geo_rows.to_dict("records"))),
        date_label=format_display_date(first["local_time"]),
        time_range=format_time_range(first["local_time"], last["local_time"]),
        duration_minutes=duration_minutes,
        duration_label=format_duration_minutes(duration_minutes),
        species=species,
        top_species_label=f"{top_species[0]} ({top_species[1]})" if top_species else "Unknown",
        new_species=new_species,
        new_species_label=", ".join(new_species) if new_species else "None",
        gear_label=gear_label,
        centroid=cluster.centroid,
        max_spread_km=cluster.max_spread_km,
        map_href=build_map_href(cover.species, cover.filename, config.map_href_base),
        started_at=first["instant"],
    )


def summarize_trip_collection(trips: Sequence[Trip]) -> dict:
    """Headline numbers for the trips page."""
    largest = max(trips, key=lambda trip: trip.image_count, default=None)
    return {
        "trips": len(trips),
        "tripPhotos": sum(trip.image_count for trip in trips),
        "species": len({name for trip in trips for name in trip.species}),
        "tripDays": len({trip.day_key for trip in trips}),
        "largestTrip": f"{largest.date_label} ({largest.image_count})" if largest else None,
    }
