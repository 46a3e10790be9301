import math

import pandas as pd
import pytest

from trip_synthesis.config import TripConfig
from trip_synthesis.models import Capture
from trip_synthesis.preprocessing import (
    captures_from_records,
    captures_to_frame,
    compute_first_seen_days,
    exif_to_iso,
    normalize_exif_timestamp,
    resolve_capture_time,
    to_day_key,
)


class TestExifTimestamps:
    def test_exif_date_is_rewritten_to_iso(self):
        """EXIF colons in the date part become dashes and the space becomes T."""
        assert exif_to_iso("2024:05:01 07:15:00") == "2024-05-01T07:15:00"

    def test_offset_is_appended_only_without_zone(self):
        assert exif_to_iso("2024:05:01 07:15:00", "-04:00") == "2024-05-01T07:15:00-04:00"
        assert exif_to_iso("2024-05-01T07:15:00Z", "-04:00") == "2024-05-01T07:15:00Z"
        assert exif_to_iso("2024-05-01T07:15:00+02:00", "-04:00") == "2024-05-01T07:15:00+02:00"

    def test_malformed_offset_is_ignored(self):
        assert exif_to_iso("2024:05:01 07:15:00", "garbage") == "2024-05-01T07:15:00"

    def test_blank_values_are_none(self):
        assert exif_to_iso("") is None
        assert exif_to_iso(None) is None
        assert normalize_exif_timestamp("   ") is None

    def test_unparseable_value_is_none(self):
        assert normalize_exif_timestamp("not a date") is None


class TestResolveCaptureTime:
    def test_local_day_uses_own_offset(self):
        """A late-evening capture west of UTC keeps its local calendar day."""
        local, instant = resolve_capture_time("2024:05:01 22:30:00", "-04:00")
        assert to_day_key(local) == "2024-05-01"
        assert instant == pd.Timestamp("2024-05-02T02:30:00Z")

    def test_naive_value_uses_default_timezone_for_instant(self):
        local, instant = resolve_capture_time("2024-05-01T08:00:00", default_timezone="America/New_York")
        assert local == pd.Timestamp("2024-05-01T08:00:00")
        assert instant == pd.Timestamp("2024-05-01T12:00:00Z")

    def test_unresolvable_returns_none(self):
        assert resolve_capture_time(None) is None
        assert resolve_capture_time("2024-13-45") is None


class TestCapturesToFrame:
    def test_frame_columns_and_flags(self):
        captures = [
            Capture(species="Blue Jay", filename="a.jpg", captured_at="2024-05-01T08:00:00", latitude=40.0, longitude=-74.0),
            Capture(species="Robin", filename="b.jpg", captured_at="2024-05-01T09:00:00"),
            Capture(species="Robin", filename="c.jpg", captured_at=None, latitude=40.0, longitude=-74.0),
            Capture(species="Wren", filename="d.jpg", captured_at="2024-05-01T10:00:00", latitude=95.0, longitude=-74.0),
        ]
        frame = captures_to_frame(captures)

        assert frame["capture_index"].tolist() == [0, 1, 2, 3]
        assert frame["is_geotagged"].tolist() == [True, False, True, False]
        assert frame["day_key"].tolist() == ["2024-05-01", "2024-05-01", None, "2024-05-01"]
        assert math.isnan(frame.loc[3, "latitude"])
        assert frame.loc[1, "camera"] == ""

    def test_empty_input_gives_empty_frame(self):
        frame = captures_to_frame([])
        assert frame.empty
        assert "day_key" in frame.columns


def test_first_seen_day_uses_earliest_instant():
    captures = [
        Capture(species="Robin", filename="late.jpg", captured_at="2024-06-01T09:00:00"),
        Capture(species="Robin", filename="early.jpg", captured_at="2024-05-01T09:00:00"),
        Capture(species="Wren", filename="undated.jpg"),
        Capture(species="Wren", filename="w.jpg", captured_at="2024:04:30 23:30:00", capture_offset="-05:00"),
    ]
    days = compute_first_seen_days(captures)
    assert days == {"Robin": "2024-05-01", "Wren": "2024-04-30"}


def test_captures_from_records_accepts_archive_keys():
    captures = captures_from_records(
        [{"bird": "Blue Jay", "filename": "a.jpg", "captureDateIso": "2024-05-01T08:00:00", "lat": "40.5", "lon": -74}]
    )
    assert captures[0].species == "Blue Jay"
    assert captures[0].latitude == 40.5
    assert captures[0].is_geotagged


def test_capture_requires_species_and_filename():
    with pytest.raises(ValueError, match="species and filename"):
        Capture.from_mapping({"bird": "Blue Jay"})


class TestTripConfig:
    def test_defaults(self):
        config = TripConfig()
        assert config.cluster_radius_km == 30.0
        assert config.title_dedup_miles == 3.0
        assert config.extra_capture_policy == "all"

    @pytest.mark.parametrize("radius", [0, -5, float("nan"), float("inf")])
    def test_rejects_bad_radius(self, radius):
        with pytest.raises(ValueError, match="cluster_radius_km"):
            TripConfig(cluster_radius_km=radius)

    def test_rejects_unknown_policy(self):
        with pytest.raises(ValueError, match="extra_capture_policy"):
            TripConfig(extra_capture_policy="nearest")

    def test_rejects_unknown_timezone(self):
        with pytest.raises(ValueError, match="default_timezone"):
            TripConfig(default_timezone="Mars/Olympus_Mons")
