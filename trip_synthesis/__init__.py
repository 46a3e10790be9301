"""
Trip Synthesis - Group wildlife photo captures into field trips.

Main functionality:
    synthesize_trips: Captures in, ranked and labelled trips out

Data loading:
    load_captures: Read a capture export (CSV/JSON) with optional geocode cache

For advanced usage (notebooks):
    Preprocessing: captures_to_frame, compute_first_seen_days, resolve_capture_time
    Pipeline components: CapturePreprocessor, DayPartitioner, SpatialDBSCAN,
        ValidateGeoClusters, CaptureMerger
    Labelling: build_location_title, rank_label_candidates

Visualization lives in ``trip_synthesis.plotting`` (needs the ``plot`` extra).

Basic usage:
    >>> from trip_synthesis import load_captures, synthesize_trips
    >>> result = synthesize_trips(load_captures("data/captures.json"))
    >>> records = result.to_records()
"""

# Core functionality (most users only need this)
from .engine import TripSynthesisResult, rank_trips, synthesize_trips
from .config import TripConfig

# Data model
from .models import Capture, GeoCluster, Trip, TripImage

# Data loading
from .capture_source import attach_geocode_labels, load_captures, load_geocode_cache

# Preprocessing utilities (for advanced users and notebooks)
from .preprocessing import (
    captures_to_frame,
    compute_first_seen_days,
    normalize_exif_timestamp,
    resolve_capture_time,
)

# Pipeline components (for customization)
from .pipeline import (
    CaptureMerger,
    CapturePreprocessor,
    DayPartitioner,
    SpatialDBSCAN,
    ValidateGeoClusters,
    create_pipeline,
)

# Labels and summaries
from .labels import build_location_title, rank_label_candidates
from .summary import summarize_trip, summarize_trip_collection, top_by_count

__all__ = [
    # Core API
    "synthesize_trips",
    "rank_trips",
    "TripSynthesisResult",
    "TripConfig",
    # Data model
    "Capture",
    "GeoCluster",
    "Trip",
    "TripImage",
    # Data loading
    "attach_geocode_labels",
    "load_captures",
    "load_geocode_cache",
    # Preprocessing
    "captures_to_frame",
    "compute_first_seen_days",
    "normalize_exif_timestamp",
    "resolve_capture_time",
    # Pipeline components
    "CaptureMerger",
    "CapturePreprocessor",
    "DayPartitioner",
    "SpatialDBSCAN",
    "ValidateGeoClusters",
    "create_pipeline",
    # Labels and summaries
    "build_location_title",
    "rank_label_candidates",
    "summarize_trip",
    "summarize_trip_collection",
    "top_by_count",
]

__version__ = "0.1.0"
