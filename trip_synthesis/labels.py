"""
Location titles and detail lists for trips.

Place labels come from the reverse-geocoding cache and are noisy: the same
park shows up as "Jamaica Bay Wildlife Refuge" and "jamaica bay  wildlife
refuge", cities arrive as "Town of Hempstead" or "Nassau County". The
helpers here pick the best-written variant of each place, prefer named
parks and sites over administrative names, and avoid listing two places
that are practically on top of each other.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import pandas as pd

from .geo import centroid, min_distance_miles

APOSTROPHE_PATTERN = re.compile(r"[’‘`ʼ′]")
WHITESPACE_PATTERN = re.compile(r"\s+")
GENERIC_ADMIN_PREFIXES = ("town of ", "city of ")
GENERIC_ADMIN_SUFFIXES = (" county", " township")


@dataclass(frozen=True)
class LabelCandidate:
    label: str
    normalized: str
    count: int
    centroid: tuple[float, float]


def normalize_location_token(value) -> str:
    """Comparison key: unified apostrophes, collapsed whitespace, lower case."""
    text = "" if value is None or (isinstance(value, float) and pd.isna(value)) else str(value)
    text = APOSTROPHE_PATTERN.sub("'", text)
    return WHITESPACE_PATTERN.sub(" ", text).strip().lower()


def label_quality(value) -> int:
    """Prefer longer, properly capitalised spellings of the same place."""
    text = "" if value is None else str(value)
    return sum(ch.isupper() for ch in text) * 10 + len(text)


def is_generic_admin(value) -> bool:
    token = normalize_location_token(value)
    return token.startswith(GENERIC_ADMIN_PREFIXES) or token.endswith(GENERIC_ADMIN_SUFFIXES)


def _display_label(value) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return WHITESPACE_PATTERN.sub(" ", str(value)).strip()


def rank_label_candidates(geo_rows: pd.DataFrame, labels: pd.Series) -> list[LabelCandidate]:
    """
    Group geotagged rows by normalised label and rank the groups.

    Ranking is by member count, then by the quality of the best spelling;
    remaining ties keep first-appearance order.
    """
    groups: dict[str, dict] = {}
    latitudes = geo_rows["latitude"].to_numpy(dtype=float)
    longitudes = geo_rows["longitude"].to_numpy(dtype=float)
    for value, lat, lon in zip(labels.tolist(), latitudes, longitudes):
        label = _display_label(value)
        key = normalize_location_token(label)
        if not key:
            continue
        group = groups.setdefault(key, {"best": label, "lats": [], "lons": []})
        if label_quality(label) > label_quality(group["best"]):
            group["best"] = label
        group["lats"].append(lat)
        group["lons"].append(lon)

    candidates = [
        LabelCandidate(
            label=group["best"],
            normalized=key,
            count=len(group["lats"]),
            centroid=centroid(group["lats"], group["lons"]),
        )
        for key, group in groups.items()
    ]
    candidates.sort(key=lambda c: (-c.count, -label_quality(c.label)))
    return candidates


def park_site_labels(geo_rows: pd.DataFrame) -> pd.Series:
    """Per-capture park label, falling back to the site label when the park is blank."""
    park = geo_rows["park"].fillna("").astype(str).str.strip()
    site = geo_rows["site"].fillna("").astype(str).str.strip()
    return park.where(park != "", site)


def select_anchors(candidates: list[LabelCandidate], max_anchors: int, dedup_miles: float) -> list[LabelCandidate]:
    """
    Greedy anchor choice: the top candidate always, later ones only when
    at least ``dedup_miles`` from every anchor already chosen.
    """
    anchors: list[LabelCandidate] = []
    for candidate in candidates:
        if len(anchors) >= max_anchors:
            break
        if anchors and min_distance_miles(candidate.centroid, [a.centroid for a in anchors]) < dedup_miles:
            continue
        anchors.append(candidate)
    return anchors


def build_location_title(
    geo_rows: pd.DataFrame,
    trip_centroid: tuple[float, float],
    dedup_miles: float = 3.0,
    max_park_anchors: int = 2,
    max_title_labels: int = 4,
) -> str:
    """
    Display title for a trip built from its geotagged captures.

    Fallback chain: park/site anchors extended with distinct cities, then
    city names alone, then up to two free-form location labels, then the
    centroid as ``"lat, lon"`` with three decimals.
    """
    parks = rank_label_candidates(geo_rows, park_site_labels(geo_rows))
    cities = rank_label_candidates(geo_rows, geo_rows["city"])
    specific_cities = [c for c in cities if not is_generic_admin(c.label)]

    anchors = select_anchors(parks, max_park_anchors, dedup_miles)
    if anchors:
        title = list(anchors)
        for city in specific_cities:
            if len(title) >= max_title_labels:
                break
            if any(entry.normalized == city.normalized for entry in title):
                continue
            if min_distance_miles(city.centroid, [entry.centroid for entry in title]) >= dedup_miles:
                title.append(city)
        preferred = [entry.label for entry in title if not is_generic_admin(entry.label)]
        return ", ".join(preferred or [entry.label for entry in title])

    if specific_cities or cities:
        return ", ".join(c.label for c in (specific_cities or cities)[:2])

    free_form = []
    for value in geo_rows["location_label"].fillna(""):
        label = _display_label(value)
        if label and label not in free_form:
            free_form.append(label)
        if len(free_form) == 2:
            break
    if free_form:
        return ", ".join(free_form)

    return format_coordinates(*trip_centroid)


def format_coordinates(lat: float, lon: float) -> str:
    return f"{lat:.3f}, {lon:.3f}"


def capture_location_label(row) -> str:
    """Best single label for one capture: free-form label, admin parts, or coordinates."""
    label = _display_label(row["location_label"])
    if label:
        return label
    parts = [_display_label(row[name]) for name in ("city", "state", "country")]
    joined = ", ".join(part for part in parts if part)
    if joined:
        return joined
    if pd.notna(row["latitude"]) and pd.notna(row["longitude"]):
        return format_coordinates(row["latitude"], row["longitude"])
    return ""


def build_location_list(rows) -> list[str]:
    """Distinct per-capture labels in capture order; ``rows`` are mappings such as frame records."""
    locations = []
    for row in rows:
        label = capture_location_label(row)
        if label and label not in locations:
            locations.append(label)
    return locations
