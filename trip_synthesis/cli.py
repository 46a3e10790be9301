#!/usr/bin/env python3
"""
Command-line tool to detect field trips in a wildlife photo archive.

Features:
- Same-day spatial clustering of geotagged captures
- Optional reverse-geocoding cache join for trip titles
- JSON output in the shape the trips page renders

Usage:
    trip-synth data/captures.json --geocode data/geocode.json --output data/trips.json
    trip-synth captures.csv --radius-km 20 --extra-policy largest
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from trip_synthesis.capture_source import load_captures
from trip_synthesis.config import EXTRA_CAPTURE_POLICIES, TripConfig
from trip_synthesis.engine import synthesize_trips
from trip_synthesis.summary import summarize_trip_collection


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Group wildlife photo captures into field trips using same-day geodesic connectivity"
    )
    parser.add_argument("captures", type=Path, help="Capture export (.csv or .json)")
    parser.add_argument(
        "--geocode",
        type=Path,
        default=None,
        help="Reverse-geocoding cache JSON used to fill place labels",
    )

    # Clustering parameters
    parser.add_argument(
        "--radius-km",
        type=float,
        default=30.0,
        help="Max distance in kilometers between linked captures of the same trip (default: 30.0)",
    )
    parser.add_argument(
        "--dedup-miles",
        type=float,
        default=3.0,
        help="Minimum distance in miles between places listed in one trip title (default: 3.0)",
    )
    parser.add_argument(
        "--default-timezone",
        default="UTC",
        help="Time zone for timestamps without an offset, used for ordering and durations (default: UTC)",
    )
    parser.add_argument(
        "--extra-policy",
        choices=EXTRA_CAPTURE_POLICIES,
        default="all",
        help="How non-geotagged captures join trips: every same-day trip, or the largest one (default: all)",
    )

    # Data options
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Limit number of captures to load (for testing)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("data/trips.json"),
        help="Output JSON file path (default: data/trips.json)",
    )
    parser.add_argument(
        "--clusters-csv",
        type=Path,
        default=None,
        help="Also write the per-capture cluster assignments to this CSV",
    )
    parser.add_argument(
        "--plot",
        type=Path,
        default=None,
        help="Save a map of the detected trips (needs the plot extra)",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def write_json(path, payload):
    output_path = path.expanduser().resolve()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, ensure_ascii=False)
    return output_path


def main(argv=None):
    args = parse_args(argv)

    # Setup logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    logger = logging.getLogger(__name__)

    try:
        config = TripConfig(
            cluster_radius_km=args.radius_km,
            title_dedup_miles=args.dedup_miles,
            default_timezone=args.default_timezone,
            extra_capture_policy=args.extra_policy,
        )
        captures = load_captures(args.captures, geocode_path=args.geocode, limit=args.limit, logger=logger)

        if not captures:
            logger.error("No captures loaded from %s!", args.captures)
            sys.exit(1)

        logger.info(
            "Running trip synthesis (radius=%skm, dedup=%smi, extras=%s)...",
            config.cluster_radius_km,
            config.title_dedup_miles,
            config.extra_capture_policy,
        )
        result = synthesize_trips(captures, config=config, logger=logger)
        stats = summarize_trip_collection(result.trips)

        # Report results
        logger.info("=" * 60)
        logger.info("Trip Results:")
        logger.info("  Total captures: %d", len(captures))
        logger.info("  Skipped (no capture time): %d", result.skipped_captures)
        logger.info("  Non-geotagged without a trip: %d", result.unattached_extras)
        logger.info("  Trips detected: %d", stats["trips"])
        logger.info("  Trip days: %d", stats["tripDays"])
        logger.info("  Trip photos: %d", stats["tripPhotos"])
        logger.info("  Species across trips: %d", stats["species"])
        logger.info("  Largest trip: %s", stats["largestTrip"] or "None yet")
        logger.info("=" * 60)

        payload = {"trips": result.to_records(), "stats": {**stats, "skippedCaptures": result.skipped_captures}}
        output_path = write_json(args.output, payload)
        logger.info("Trips saved to: %s", output_path)

        if args.clusters_csv:
            csv_path = args.clusters_csv.expanduser().resolve()
            csv_path.parent.mkdir(parents=True, exist_ok=True)
            result.clustered.to_csv(csv_path, index=False)
            logger.info("Cluster assignments saved to: %s", csv_path)

        if args.plot:
            from trip_synthesis.plotting import plot_trip_positions

            plot_path = args.plot.expanduser().resolve()
            plot_path.parent.mkdir(parents=True, exist_ok=True)
            plot_trip_positions(result.trips).savefig(plot_path, dpi=150)
            logger.info("Trip map saved to: %s", plot_path)

        for trip in result.trips[:10]:
            logger.info("  %s  %s  %s (%d photos)", trip.id, trip.day_key, trip.location_title, trip.image_count)

    except (FileNotFoundError, ValueError):
        logger.exception("Could not build trips from the given input")
        sys.exit(1)

    except Exception:
        logger.exception("Error during trip synthesis run")
        sys.exit(1)


if __name__ == "__main__":
    main()
