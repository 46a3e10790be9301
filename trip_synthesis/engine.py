"""
Trip synthesis: captures in, ranked trips out.

:func:`synthesize_trips` is a pure function of its inputs. It runs the
clustering pipeline over the capture frame, summarises each merged
cluster, and orders the result deterministically before handing out
positional ids.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

import pandas as pd

from .config import TripConfig
from .models import Capture, Trip
from .pipeline import create_pipeline
from .preprocessing import captures_to_frame, compute_first_seen_days
from .summary import summarize_trip

module_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TripSynthesisResult:
    trips: list[Trip]
    skipped_captures: int
    unattached_extras: int
    clustered: pd.DataFrame

    def to_records(self) -> list[dict]:
        return [trip.to_record() for trip in self.trips]


def _instant_key(trip: Trip) -> float:
    if trip.started_at is None or pd.isna(trip.started_at):
        return float("-inf")
    return float(pd.Timestamp(trip.started_at).value)


def rank_trips(trips: Iterable[Trip]) -> list[Trip]:
    """
    Most recent day first, larger trips first within a day.

    Equal (day, size) pairs fall back to the earliest capture instant,
    the title, and finally the centroid so the order never depends on
    discovery order.
    """
    ordered = sorted(
        trips,
        key=lambda trip: (_instant_key(trip), trip.location_title, trip.centroid[1], trip.centroid[0]),
    )
    # Stable sort: the secondary order above survives for equal keys
    ordered = sorted(ordered, key=lambda trip: (trip.day_key, trip.image_count), reverse=True)
    return [dataclasses.replace(trip, id=f"trip-{index}") for index, trip in enumerate(ordered, start=1)]


def synthesize_trips(
    captures: Iterable[Capture],
    first_seen_day_by_species: Mapping[str, str] | None = None,
    cluster_radius_km: float | None = None,
    title_dedup_miles: float | None = None,
    *,
    config: TripConfig | None = None,
    logger: logging.Logger | None = None,
) -> TripSynthesisResult:
    """
    Infer field trips from a flat list of captures.

    Parameters
    ----------
    captures:
        Every capture in the archive; geotagged or not.
    first_seen_day_by_species:
        Earliest DayKey per species across the archive. Computed from
        ``captures`` when omitted.
    cluster_radius_km, title_dedup_miles:
        Override the corresponding :class:`TripConfig` fields.
    config:
        Remaining engine settings (time zone, extra-capture policy, links).
    """
    logger = logger or module_logger
    config = config or TripConfig()
    overrides = {
        name: value
        for name, value in (("cluster_radius_km", cluster_radius_km), ("title_dedup_miles", title_dedup_miles))
        if value is not None
    }
    if overrides:
        config = dataclasses.replace(config, **overrides)

    captures = list(captures)
    if first_seen_day_by_species is None:
        first_seen_day_by_species = compute_first_seen_days(captures, config.default_timezone)

    frame = captures_to_frame(captures, default_timezone=config.default_timezone, logger=logger)
    pipeline = create_pipeline(
        cluster_radius_km=config.cluster_radius_km,
        extra_capture_policy=config.extra_capture_policy,
    )
    clustered = pipeline.fit_transform(frame)
    skipped = pipeline.named_steps["preprocessor"].skipped_captures_
    unattached = pipeline.named_steps["capture_merger"].unattached_extras_

    trips = [
        summarize_trip(rows, captures, first_seen_day_by_species, config)
        for _cluster_id, rows in clustered.groupby("trip_cluster_id", sort=True)
    ]
    trips = rank_trips(trips)

    logger.info(
        "Synthesized %s trips from %s captures (radius=%skm, skipped=%s, unattached extras=%s)",
        len(trips),
        len(captures),
        config.cluster_radius_km,
        skipped,
        unattached,
    )
    return TripSynthesisResult(
        trips=trips,
        skipped_captures=skipped,
        unattached_extras=unattached,
        clustered=clustered,
    )
