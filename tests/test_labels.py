import pandas as pd

from trip_synthesis.labels import (
    LabelCandidate,
    build_location_list,
    build_location_title,
    is_generic_admin,
    label_quality,
    normalize_location_token,
    rank_label_candidates,
    select_anchors,
)


def _geo_rows(rows):
    columns = ["latitude", "longitude", "park", "site", "city", "state", "country", "location_label"]
    return pd.DataFrame(
        [dict(zip(columns, row)) for row in rows],
        columns=columns,
    ).fillna("")


def test_normalize_location_token():
    assert normalize_location_token("  Jamaica   Bay’s  Refuge ") == "jamaica bay's refuge"
    assert normalize_location_token(None) == ""


def test_label_quality_prefers_capitalised_spelling():
    assert label_quality("Jamaica Bay") > label_quality("jamaica bay")


def test_is_generic_admin():
    assert is_generic_admin("Town of Hempstead")
    assert is_generic_admin("Nassau County")
    assert not is_generic_admin("Brooklyn")


def test_rank_label_candidates_merges_spellings_and_orders_by_count():
    rows = _geo_rows(
        [
            (40.0, -74.0, "", "", "hoboken", "", "", ""),
            (40.0, -74.0, "", "", "Jersey City", "", "", ""),
            (40.0, -74.0, "", "", "jersey  city", "", "", ""),
        ]
    )
    candidates = rank_label_candidates(rows, rows["city"])
    assert [c.label for c in candidates] == ["Jersey City", "hoboken"]
    assert candidates[0].count == 2


def test_select_anchors_skips_nearby_second_anchor():
    first = LabelCandidate("Park A", "park a", 5, (40.0, -74.0))
    near = LabelCandidate("Park B", "park b", 3, (40.01, -74.0))  # under a mile away
    far = LabelCandidate("Park C", "park c", 1, (40.2, -74.0))
    anchors = select_anchors([first, near, far], max_anchors=2, dedup_miles=3.0)
    assert [a.label for a in anchors] == ["Park A", "Park C"]


class TestBuildLocationTitle:
    def test_park_anchor_extended_with_distant_city(self):
        rows = _geo_rows(
            [
                (40.60, -73.82, "Jamaica Bay Wildlife Refuge", "", "Queens", "NY", "USA", ""),
                (40.60, -73.82, "Jamaica Bay Wildlife Refuge", "", "Queens", "NY", "USA", ""),
                (40.80, -73.95, "", "", "Manhattan", "NY", "USA", ""),
            ]
        )
        title = build_location_title(rows, (40.67, -73.86))
        assert title == "Jamaica Bay Wildlife Refuge, Manhattan"

    def test_site_used_when_park_blank(self):
        rows = _geo_rows([(40.0, -74.0, "", "Boardwalk Trail", "Hoboken", "", "", "")])
        assert build_location_title(rows, (40.0, -74.0)) == "Boardwalk Trail"

    def test_city_fallback_drops_generic_admin_names(self):
        rows = _geo_rows(
            [
                (40.0, -74.0, "", "", "Town of Hempstead", "", "", ""),
                (40.0, -74.0, "", "", "Town of Hempstead", "", "", ""),
                (40.1, -74.0, "", "", "Freeport", "", "", ""),
            ]
        )
        assert build_location_title(rows, (40.03, -74.0)) == "Freeport"

    def test_city_only_title_ranks_by_count_not_capture_order(self):
        rows = _geo_rows(
            [
                (40.0, -74.0, "", "", "Hoboken", "", "", ""),
                (40.1, -74.0, "", "", "Jersey City", "", "", ""),
                (40.1, -74.0, "", "", "Jersey City", "", "", ""),
                (40.2, -74.0, "", "", "Bayonne", "", "", ""),
                (40.2, -74.0, "", "", "Bayonne", "", "", ""),
                (40.2, -74.0, "", "", "Bayonne", "", "", ""),
            ]
        )
        assert build_location_title(rows, (40.13, -74.0)) == "Bayonne, Jersey City"

    def test_free_form_then_coordinates(self):
        labelled = _geo_rows([(40.0, -74.0, "", "", "", "", "", "Somewhere, NJ")])
        assert build_location_title(labelled, (40.0, -74.0)) == "Somewhere, NJ"

        bare = _geo_rows([(40.12345, -74.98765, "", "", "", "", "", "")])
        assert build_location_title(bare, (40.12345, -74.98765)) == "40.123, -74.988"


def test_location_list_is_distinct_and_ordered():
    rows = _geo_rows(
        [
            (40.0, -74.0, "", "", "Hoboken", "NJ", "USA", ""),
            (40.0, -74.0, "", "", "Hoboken", "NJ", "USA", ""),
            (40.5, -74.5, "", "", "", "", "", "Pine Barrens"),
            (40.25, -74.25, "", "", "", "", "", ""),
        ]
    )
    assert build_location_list(rows.to_dict("records")) == ["Hoboken, NJ, USA", "Pine Barrens", "40.250, -74.250"]
