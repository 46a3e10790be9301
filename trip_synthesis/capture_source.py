"""
Capture data sources for trip synthesis.

This module loads the capture list written by the archive's metadata
stage (CSV or JSON) and joins the reverse-geocoding cache onto it, so the
engine can be run from the command line without the rest of the build.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pandas as pd

from .models import Capture

# Mapping from archive export columns to Capture fields
CAPTURE_COLUMN_MAPPING = {
    "bird": "species",
    "species": "species",
    "filename": "filename",
    "src": "src",
    "thumbSrc": "thumb_src",
    "speciesHref": "species_href",
    "captureDateIso": "captured_at",
    "captureDateRaw": "captured_at",
    "captured_at": "captured_at",
    "captureOffset": "capture_offset",
    "camera": "camera",
    "lens": "lens",
    "exposure": "exposure",
    "aperture": "aperture",
    "iso": "iso",
    "lat": "latitude",
    "latitude": "latitude",
    "lon": "longitude",
    "lng": "longitude",
    "longitude": "longitude",
    "park": "park",
    "site": "site",
    "city": "city",
    "state": "state",
    "country": "country",
    "locationLabel": "location_label",
    "location_label": "location_label",
    "family": "family",
    "status": "status",
}

GEOCODE_FIELDS = {
    "label": "location_label",
    "park": "park",
    "site": "site",
    "city": "city",
    "state": "state",
    "country": "country",
}

REQUIRED_FIELDS = ("species", "filename")


def geocode_key(lat, lon) -> str | None:
    """Cache key used by the reverse-geocoding step: 4-decimal ``lat,lon``."""
    if lat is None or lon is None or pd.isna(lat) or pd.isna(lon):
        return None
    return f"{float(lat):.4f},{float(lon):.4f}"


def load_capture_frame(
    path: Path | str,
    limit: int | None = None,
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    """
    Load a capture export into a DataFrame keyed by Capture field names.

    JSON files may hold a list of records or an object with a
    ``captures`` list. Columns are renamed with
    :data:`CAPTURE_COLUMN_MAPPING`; unknown columns are dropped.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Capture file not found: {path}")

    if logger:
        logger.info("Loading captures from %s...", path)

    suffix = path.suffix.lower()
    if suffix == ".csv":
        df = pd.read_csv(path, nrows=limit, dtype=str, keep_default_na=False)
    elif suffix == ".json":
        with path.open(encoding="utf-8") as handle:
            payload = json.load(handle)
        records = payload.get("captures", []) if isinstance(payload, dict) else payload
        df = pd.DataFrame.from_records(records[:limit] if limit else records)
    else:
        raise ValueError(f"Unsupported capture file type {path.suffix!r}; expected .csv or .json")

    df = _rename_capture_columns(df)
    missing = [name for name in REQUIRED_FIELDS if name not in df.columns]
    if missing:
        raise ValueError(f"Capture file {path} is missing required columns: {missing}")

    if logger:
        logger.info("Loaded %d captures", len(df))
    return df


def _rename_capture_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Rename to Capture fields; later aliases of a field only fill its blanks."""
    result = pd.DataFrame(index=df.index)
    for column in df.columns:
        target = CAPTURE_COLUMN_MAPPING.get(column)
        if not target:
            continue
        if target not in result.columns:
            result[target] = df[column]
            continue
        current = result[target]
        blank = current.isna() | (current.astype(str).str.strip() == "")
        result[target] = current.where(~blank, df[column])
    return result


def load_geocode_cache(path: Path | str, logger: logging.Logger | None = None) -> dict[str, dict]:
    """Read the ``points`` table of the reverse-geocoding cache."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Geocode cache not found: {path}")
    with path.open(encoding="utf-8") as handle:
        payload = json.load(handle)
    points = payload.get("points", {}) if isinstance(payload, dict) else {}
    if logger:
        logger.info("Loaded %d geocoded points from %s", len(points), path)
    return points


def attach_geocode_labels(
    df: pd.DataFrame,
    points: dict[str, dict],
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    """
    Fill missing place labels from the geocode cache.

    Values already present in ``df`` win over the cache.
    """
    result = df.copy()
    for target in GEOCODE_FIELDS.values():
        if target not in result.columns:
            result[target] = None
        result[target] = result[target].astype(object)
    if "latitude" not in result.columns or "longitude" not in result.columns:
        return result

    latitudes = pd.to_numeric(result["latitude"], errors="coerce")
    longitudes = pd.to_numeric(result["longitude"], errors="coerce")
    keys = [geocode_key(lat, lon) for lat, lon in zip(latitudes, longitudes)]
    matched = 0
    for position, key in enumerate(keys):
        entry = points.get(key) if key else None
        if not entry:
            continue
        matched += 1
        row = result.index[position]
        for source, target in GEOCODE_FIELDS.items():
            current = result.at[row, target]
            if (current is None or pd.isna(current) or str(current).strip() == "") and entry.get(source):
                result.at[row, target] = entry[source]

    if logger:
        logger.info("Matched %d of %d captures to geocoded places", matched, len(result))
    return result


def captures_from_frame(df: pd.DataFrame) -> list[Capture]:
    """Convert a loaded frame to Capture records (blank strings become None)."""
    records = df.astype(object).where(df.notna(), None).to_dict(orient="records")
    return [Capture.from_mapping(record) for record in records]


def load_captures(
    path: Path | str,
    geocode_path: Path | str | None = None,
    limit: int | None = None,
    logger: logging.Logger | None = None,
) -> list[Capture]:
    """
    Load captures and optionally enrich them from the geocode cache.

    This is the main entry point for file-based capture loading.
    """
    df = load_capture_frame(path, limit=limit, logger=logger)
    if geocode_path is not None:
        df = attach_geocode_labels(df, load_geocode_cache(geocode_path, logger=logger), logger=logger)
    return captures_from_frame(df)
