#!/usr/bin/env python3
"""
Build the trips table from one or more capture exports.

Usage:
    # Single export
    python scripts/build_trips.py data/captures.json -o data/trips.csv

    # Several exports (e.g. one per camera body), shared geocode cache
    python scripts/build_trips.py r5.json r7.csv --geocode data/geocode.json -o data/trips.csv
"""

import argparse
import sys
from pathlib import Path

import pandas as pd

from trip_synthesis.capture_source import attach_geocode_labels, captures_from_frame, load_capture_frame, load_geocode_cache
from trip_synthesis.config import EXTRA_CAPTURE_POLICIES, TripConfig
from trip_synthesis.engine import synthesize_trips


def load_multiple_exports(inputs: list[Path], limit: int | None = None) -> pd.DataFrame:
    """Load and combine captures from several exports, dropping repeated (species, filename) pairs."""
    all_dfs = []

    for input_path in inputs:
        print(f"Loading {input_path.name}...")
        df = load_capture_frame(input_path, limit=limit)
        all_dfs.append(df)
        print(f"  Loaded {len(df)} captures from {input_path.name}")

    combined = pd.concat(all_dfs, ignore_index=True)
    before = len(combined)
    combined = combined.drop_duplicates(subset=["species", "filename"], keep="first").reset_index(drop=True)
    print(f"Combined total: {len(combined)} captures from {len(inputs)} exports ({before - len(combined)} repeats dropped)")
    return combined


def trips_table(trips) -> pd.DataFrame:
    """One row per trip with the headline facts."""
    return pd.DataFrame(
        [
            {
                "id": trip.id,
                "day_key": trip.day_key,
                "location_title": trip.location_title,
                "time_range": trip.time_range,
                "duration": trip.duration_label,
                "images": trip.image_count,
                "species": trip.species_count,
                "new_species": trip.new_species_label,
                "gear": trip.gear_label,
                "centroid_lat": trip.centroid[0],
                "centroid_lon": trip.centroid[1],
                "max_spread_km": round(trip.max_spread_km, 3),
            }
            for trip in trips
        ]
    )


def main():
    parser = argparse.ArgumentParser(description="Build the trips table from capture exports")
    parser.add_argument("input", type=Path, nargs="+", help="Capture export(s), .csv or .json")
    parser.add_argument("-o", "--output", type=Path, required=True, help="Output CSV path")
    parser.add_argument("--geocode", type=Path, default=None, help="Reverse-geocoding cache JSON")
    parser.add_argument("--radius-km", type=float, default=30.0, help="Trip connectivity radius in km")
    parser.add_argument("--dedup-miles", type=float, default=3.0, help="Title de-duplication distance in miles")
    parser.add_argument("--extra-policy", choices=EXTRA_CAPTURE_POLICIES, default="all")
    parser.add_argument("--limit", type=int, default=None, help="Limit number of captures per export")

    args = parser.parse_args()

    df = load_multiple_exports(args.input, limit=args.limit)
    if args.geocode:
        df = attach_geocode_labels(df, load_geocode_cache(args.geocode))

    if df.empty:
        print("Error: No captures to process")
        sys.exit(1)

    config = TripConfig(
        cluster_radius_km=args.radius_km,
        title_dedup_miles=args.dedup_miles,
        extra_capture_policy=args.extra_policy,
    )
    print(f"Synthesizing trips from {len(df)} captures (radius={config.cluster_radius_km}km)...")
    result = synthesize_trips(captures_from_frame(df), config=config)
    table = trips_table(result.trips)

    print("\nResults:")
    print(f"  Trips: {len(table)}")
    print(f"  Skipped (no capture time): {result.skipped_captures}")
    print(f"  Non-geotagged without a trip: {result.unattached_extras}")
    if len(table):
        print(f"  Avg photos per trip: {table['images'].mean():.1f}")
        print(f"  Largest: {table['images'].max()}")

        print("\nBusiest days:")
        per_day = table.groupby("day_key")["images"].sum().sort_values(ascending=False)
        for day_key, images in per_day.head(10).items():
            print(f"  {day_key}: {images} photos")

    args.output.parent.mkdir(parents=True, exist_ok=True)
    table.to_csv(args.output, index=False)
    print(f"\nSaved to {args.output}")


if __name__ == "__main__":
    main()
