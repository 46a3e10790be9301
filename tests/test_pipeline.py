import tracemalloc

import numpy as np
import pandas as pd
import pytest

from trip_synthesis.models import Capture
from trip_synthesis.pipeline import (
    CaptureMerger,
    CapturePreprocessor,
    SpatialDBSCAN,
    ValidateGeoClusters,
    create_pipeline,
)
from trip_synthesis.preprocessing import captures_to_frame


def _frame(rows):
    captures = [
        Capture(species=species, filename=filename, captured_at=when, latitude=lat, longitude=lon)
        for species, filename, when, lat, lon in rows
    ]
    return captures_to_frame(captures)


def test_preprocessor_counts_and_drops_undated_rows():
    frame = _frame(
        [
            ("Robin", "a.jpg", "2024-05-01T08:00:00", 40.0, -74.0),
            ("Robin", "b.jpg", None, 40.0, -74.0),
            ("Robin", "c.jpg", "unreadable", None, None),
        ]
    )
    preprocessor = CapturePreprocessor()
    processed = preprocessor.transform(frame)

    assert preprocessor.skipped_captures_ == 2
    assert processed["filename"].tolist() == ["a.jpg"]


def test_preprocessor_requires_frame_columns():
    with pytest.raises(ValueError, match="missing required columns"):
        CapturePreprocessor().transform(pd.DataFrame({"species": ["Robin"]}))


def test_chain_links_points_beyond_radius():
    """A and B are ~33 km apart but both within 30 km of C, so one cluster."""
    frame = _frame(
        [
            ("Robin", "a.jpg", "2024-05-01T08:00:00", 40.0, -74.0),
            ("Robin", "b.jpg", "2024-05-01T09:00:00", 40.3, -74.0),
            ("Robin", "c.jpg", "2024-05-01T10:00:00", 40.15, -74.0),
        ]
    )
    clustered = create_pipeline(cluster_radius_km=30).fit_transform(frame)

    assert clustered["trip_cluster_id"].nunique() == 1
    assert len(clustered) == 3


def test_same_place_on_different_days_is_separate():
    frame = _frame(
        [
            ("Robin", "a.jpg", "2024-05-01T08:00:00", 40.0, -74.0),
            ("Robin", "b.jpg", "2024-05-02T08:00:00", 40.0, -74.0),
        ]
    )
    clustered = create_pipeline().fit_transform(frame)
    assert clustered["trip_cluster_id"].nunique() == 2


def test_spatial_dbscan_ids_are_global_and_extras_unlabelled():
    frame = CapturePreprocessor().transform(
        _frame(
            [
                ("Robin", "a.jpg", "2024-05-01T08:00:00", 40.0, -74.0),
                ("Robin", "b.jpg", "2024-05-01T09:00:00", 41.5, -75.5),
                ("Robin", "c.jpg", "2024-05-02T08:00:00", 40.0, -74.0),
                ("Robin", "d.jpg", "2024-05-02T09:00:00", None, None),
            ]
        )
    )
    labelled = SpatialDBSCAN(cluster_radius_km=30).transform(frame)

    ids = dict(zip(labelled["filename"], labelled["geo_cluster_id"]))
    assert len({ids["a.jpg"], ids["b.jpg"], ids["c.jpg"]}) == 3
    assert ids["d.jpg"] == -1


def test_validate_geo_clusters_raises_for_disconnected_cluster():
    disconnected = pd.DataFrame(
        {
            "day_key": ["2024-05-01", "2024-05-01"],
            "latitude": [0.0, 0.0],
            "longitude": [0.0, 2.0],  # ~222 km apart
            "is_geotagged": [True, True],
            "geo_cluster_id": [0, 0],
        }
    )
    with pytest.raises(ValueError, match="spatially disconnected"):
        ValidateGeoClusters(cluster_radius_km=30).transform(disconnected)


def test_validate_geo_clusters_raises_for_unseparated_clusters():
    too_close = pd.DataFrame(
        {
            "day_key": ["2024-05-01", "2024-05-01"],
            "latitude": [0.0, 0.0],
            "longitude": [0.0, 0.01],  # ~1 km apart
            "is_geotagged": [True, True],
            "geo_cluster_id": [0, 1],
        }
    )
    with pytest.raises(ValueError, match="closer than radius"):
        ValidateGeoClusters(cluster_radius_km=30).transform(too_close)


def test_validate_geo_clusters_finds_close_pair_across_row_blocks():
    """Neighbours in different lookup blocks are still compared."""
    too_close = pd.DataFrame(
        {
            "day_key": ["2024-05-01"] * 3,
            "latitude": [0.0, 5.0, 0.0],
            "longitude": [0.0, 5.0, 0.01],
            "is_geotagged": [True, True, True],
            "geo_cluster_id": [0, 1, 2],
        }
    )
    with pytest.raises(ValueError, match=r"closer than radius.*\(0, 2\)"):
        ValidateGeoClusters(cluster_radius_km=30, block_size=1).transform(too_close)


def test_validate_geo_clusters_memory_does_not_grow_with_day_size_squared():
    """A busy day of well-separated captures validates without an n-by-n distance matrix."""
    lats, lons = np.meshgrid(np.arange(64) * 0.05, np.arange(63) * 0.05)
    n = lats.size
    frame = pd.DataFrame(
        {
            "day_key": ["2024-05-01"] * n,
            "latitude": lats.ravel(),
            "longitude": lons.ravel(),
            "is_geotagged": [True] * n,
            "geo_cluster_id": np.arange(n),
        }
    )

    tracemalloc.start()
    try:
        validated = ValidateGeoClusters(cluster_radius_km=1).transform(frame)
        _, peak = tracemalloc.get_traced_memory()
    finally:
        tracemalloc.stop()

    assert len(validated) == n
    # A dense float64 matrix alone would need n * n * 8 bytes (~130 MB)
    assert peak < 50 * 1024 * 1024


class TestCaptureMerger:
    def _two_cluster_day(self):
        return _frame(
            [
                ("Robin", "a.jpg", "2024-05-01T08:00:00", 40.0, -74.0),
                ("Robin", "b.jpg", "2024-05-01T08:30:00", 40.01, -74.0),
                ("Wren", "c.jpg", "2024-05-01T12:00:00", 41.5, -75.5),
                ("Heron", "d.jpg", "2024-05-01T10:00:00", None, None),
                ("Heron", "d.jpg", "2024-05-01T10:00:00", None, None),
            ]
        )

    def test_all_policy_attaches_extra_to_every_cluster_once(self):
        pipeline = create_pipeline(extra_capture_policy="all")
        merged = pipeline.fit_transform(self._two_cluster_day())

        extras = merged[merged["is_extra"]]
        assert len(extras) == 2  # duplicate (species, filename) collapsed
        assert extras["trip_cluster_id"].nunique() == 2
        assert pipeline.named_steps["capture_merger"].unattached_extras_ == 0

    def test_largest_policy_attaches_extra_to_biggest_cluster(self):
        merged = create_pipeline(extra_capture_policy="largest").fit_transform(self._two_cluster_day())

        extras = merged[merged["is_extra"]]
        assert len(extras) == 1
        cluster_of_a = merged.loc[merged["filename"] == "a.jpg", "trip_cluster_id"].iloc[0]
        assert extras["trip_cluster_id"].iloc[0] == cluster_of_a

    def test_extras_without_geo_day_are_counted(self):
        frame = _frame(
            [
                ("Robin", "a.jpg", "2024-05-01T08:00:00", 40.0, -74.0),
                ("Heron", "z.jpg", "2024-05-03T10:00:00", None, None),
            ]
        )
        pipeline = create_pipeline()
        merged = pipeline.fit_transform(frame)

        assert merged["filename"].tolist() == ["a.jpg"]
        assert pipeline.named_steps["capture_merger"].unattached_extras_ == 1

    def test_rows_are_in_time_order_within_cluster(self):
        merged = create_pipeline().fit_transform(self._two_cluster_day())
        first_cluster = merged[merged["trip_cluster_id"] == merged["trip_cluster_id"].min()]
        assert first_cluster["filename"].tolist() == ["a.jpg", "b.jpg", "d.jpg"]

    def test_rejects_unknown_policy(self):
        with pytest.raises(ValueError, match="Unknown extra capture policy"):
            CaptureMerger(policy="nearest").transform(pd.DataFrame())
