"""
Turn capture records into the tabular form the clustering pipeline uses.

Timestamp handling follows the archive build:
1. EXIF dates (``2024:05:01 07:15:00``) are rewritten to ISO form.
2. A separate EXIF offset (``-04:00``) is appended when the value has none.
3. The local calendar day is read off the capture's own wall clock, while
   ordering and durations use absolute instants. Naive values are pinned to
   the configured default zone only for that absolute conversion.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from typing import Any

import numpy as np
import pandas as pd

from .models import Capture

EXIF_DATE_PATTERN = re.compile(r"^(\d{4}):(\d{2}):(\d{2})")
OFFSET_SUFFIX_PATTERN = re.compile(r"(Z|[+-]\d{2}:?\d{2})$")
OFFSET_PATTERN = re.compile(r"^[+-]\d{2}:\d{2}$")

TEXT_COLUMNS: Sequence[str] = (
    "species",
    "filename",
    "camera",
    "lens",
    "park",
    "site",
    "city",
    "state",
    "country",
    "location_label",
)

CAPTURE_FRAME_COLUMNS: Sequence[str] = (
    "capture_index",
    *TEXT_COLUMNS,
    "latitude",
    "longitude",
    "local_time",
    "instant",
    "day_key",
    "is_geotagged",
)


def exif_to_iso(value: Any, offset: str | None = None) -> str | None:
    """
    Rewrite an EXIF-style timestamp string into ISO 8601.

    ``offset`` is appended only when the value does not already end with a
    zone designator.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    base = EXIF_DATE_PATTERN.sub(r"\1-\2-\3", value.strip())
    base = base.replace(" ", "T", 1)
    if offset and OFFSET_PATTERN.match(offset.strip()) and not OFFSET_SUFFIX_PATTERN.search(base):
        base = f"{base}{offset.strip()}"
    return base


def normalize_exif_timestamp(value: Any, offset: str | None = None) -> pd.Timestamp | None:
    """Parse a capture timestamp, returning ``None`` when it cannot be resolved."""
    if value is None:
        return None
    if isinstance(value, datetime):
        stamp = pd.Timestamp(value)
        if offset and stamp.tzinfo is None and OFFSET_PATTERN.match(offset.strip()):
            return normalize_exif_timestamp(stamp.isoformat(), offset)
        return stamp
    iso = exif_to_iso(value, offset)
    if iso is None:
        return None
    try:
        stamp = pd.Timestamp(iso)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(stamp):
        return None
    return stamp


def resolve_capture_time(
    value: Any,
    offset: str | None = None,
    default_timezone: str = "UTC",
) -> tuple[pd.Timestamp, pd.Timestamp] | None:
    """
    Resolve a capture timestamp into ``(local_wall_time, utc_instant)``.

    The local wall time is naive and drives the DayKey and display labels.
    """
    stamp = normalize_exif_timestamp(value, offset)
    if stamp is None:
        return None
    if stamp.tzinfo is not None:
        return stamp.tz_localize(None), stamp.tz_convert("UTC")
    try:
        instant = stamp.tz_localize(default_timezone, ambiguous=False, nonexistent="shift_forward")
    except (ValueError, TypeError):
        return None
    return stamp, instant.tz_convert("UTC")


def to_day_key(local_time: pd.Timestamp | None) -> str | None:
    """Calendar date string (``YYYY-MM-DD``) of a local wall time."""
    if local_time is None or pd.isna(local_time):
        return None
    return local_time.strftime("%Y-%m-%d")


def captures_to_frame(
    captures: Iterable[Capture],
    default_timezone: str = "UTC",
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    """
    Flatten captures into one row per capture.

    ``capture_index`` is the position in the input and is the stable handle
    used to get back to the original :class:`Capture`. Rows with an
    unresolvable timestamp are kept here with ``NaT``/``None`` so that the
    pipeline can count them; coordinates outside the valid ranges or
    non-finite are treated as missing.
    """
    rows = []
    for index, capture in enumerate(captures):
        resolved = resolve_capture_time(capture.captured_at, capture.capture_offset, default_timezone)
        local_time, instant = resolved if resolved else (pd.NaT, pd.NaT)
        geotagged = capture.is_geotagged
        row = {name: getattr(capture, name) or "" for name in TEXT_COLUMNS}
        row.update(
            {
                "capture_index": index,
                "latitude": capture.latitude if geotagged else np.nan,
                "longitude": capture.longitude if geotagged else np.nan,
                "local_time": local_time,
                "instant": instant,
                "day_key": to_day_key(local_time if resolved else None),
                "is_geotagged": geotagged,
            }
        )
        rows.append(row)

    frame = pd.DataFrame(rows, columns=list(CAPTURE_FRAME_COLUMNS))
    frame["capture_index"] = frame["capture_index"].astype(int)
    frame["latitude"] = pd.to_numeric(frame["latitude"], errors="coerce").astype(float)
    frame["longitude"] = pd.to_numeric(frame["longitude"], errors="coerce").astype(float)
    frame["local_time"] = pd.to_datetime(frame["local_time"])
    frame["instant"] = pd.to_datetime(frame["instant"], utc=True)
    frame["is_geotagged"] = frame["is_geotagged"].astype(bool)
    if logger:
        logger.debug(
            "Capture frame rows=%s (geotagged=%s, timestamped=%s)",
            len(frame),
            int(frame["is_geotagged"].sum()),
            int(frame["day_key"].notna().sum()),
        )
    return frame


def compute_first_seen_days(
    captures: Iterable[Capture],
    default_timezone: str = "UTC",
) -> dict[str, str]:
    """
    Earliest DayKey per species over the whole archive.

    Every capture with a resolvable timestamp counts, geotagged or not; the
    earliest absolute instant decides which local day is reported.
    """
    earliest: dict[str, tuple[pd.Timestamp, str]] = {}
    for capture in captures:
        resolved = resolve_capture_time(capture.captured_at, capture.capture_offset, default_timezone)
        if resolved is None:
            continue
        local_time, instant = resolved
        current = earliest.get(capture.species)
        if current is None or instant < current[0]:
            earliest[capture.species] = (instant, to_day_key(local_time))
    return {species: day_key for species, (_instant, day_key) in earliest.items()}


def captures_from_records(records: Iterable[Mapping[str, Any]]) -> list[Capture]:
    """Convenience wrapper over :meth:`Capture.from_mapping`."""
    return [Capture.from_mapping(record) for record in records]
