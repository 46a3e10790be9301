"""
Configuration for the trip synthesis engine.

Every knob the engine reads is carried explicitly on :class:`TripConfig`
instead of living in module globals, so tests and the command-line can
construct the exact setup they need.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import pandas as pd

EXTRA_CAPTURE_POLICIES: tuple[str, ...] = ("all", "largest")


@dataclass(frozen=True)
class TripConfig:
    """
    Tunables for trip detection and labelling.

    The defaults reproduce the archive build: a 30 km connectivity radius,
    title anchors de-duplicated at 3 miles, and non-geotagged photos
    attached to every geo-cluster of their day.
    """

    cluster_radius_km: float = 30.0
    title_dedup_miles: float = 3.0
    default_timezone: str = "UTC"
    extra_capture_policy: str = "all"
    max_title_labels: int = 4
    max_park_anchors: int = 2
    map_href_base: str = "/birdopedia/map/index.html"
    species_href_root: str = "birdopedia"

    def __post_init__(self) -> None:
        for name in ("cluster_radius_km", "title_dedup_miles"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
                raise ValueError(f"{name} must be a positive finite number, got {value!r}")
        if self.extra_capture_policy not in EXTRA_CAPTURE_POLICIES:
            raise ValueError(
                f"extra_capture_policy must be one of {EXTRA_CAPTURE_POLICIES}, "
                f"got {self.extra_capture_policy!r}"
            )
        if self.max_title_labels < 1 or self.max_park_anchors < 1:
            raise ValueError("max_title_labels and max_park_anchors must be at least 1")
        try:
            pd.Timestamp("2000-01-01").tz_localize(self.default_timezone)
        except Exception as exc:
            raise ValueError(f"Unknown default_timezone: {self.default_timezone!r}") from exc
