#!/usr/bin/env python3
"""
Render a USNG grid overlay for a bounding box.

Writes the zone boundaries and the 100km / 10km / 1km grid lines visible at
the given zoom level as GeoJSON and/or an SVG preview.

Usage:
    # Grid for central Texas at zoom 13, as GeoJSON
    python render_usng_grid.py --bbox 30 40 -100 -90 --zoom 13 --geojson grid.geojson

    # 100km grid only, NAD27, with an SVG preview
    python render_usng_grid.py --bbox 30 40 -100 -90 --zoom 8 --intervals 100000 \\
        --datum NAD27 --svg grid.svg

    # Settings from a JSON file
    python render_usng_grid.py --bbox 55 65 0 12 --zoom 10 --config grid_config.json

    # Compare the projection series against PROJ for every cell
    python render_usng_grid.py --bbox 30 40 -100 -90 --zoom 6 --check

    # Print the USNG reference of a point
    python render_usng_grid.py --usng 38.8895 -77.0352
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from usng_export import render_svg, write_geojson
from usng_overlay import GridConfig, GridOverlay, SUPPORTED_INTERVALS, build_overlay, load_config
from usng_projection import UsngError, reference_deviation
from usng_viewport import BoundingBox, ViewPort, split_antimeridian
from usng_zone_lines import GZD_GRID_INTERVAL

# Deviation from PROJ above which --check reports a failure, meters
CHECK_TOLERANCE_M = 1.0


def build_config(args: argparse.Namespace) -> GridConfig:
    """Merge a config file with command-line overrides."""
    config = load_config(args.config) if args.config else GridConfig()

    overrides = {}
    if args.datum is not None:
        overrides["datum"] = args.datum
    if args.intervals is not None:
        overrides["intervals"] = tuple(args.intervals)
    if args.margin is not None:
        overrides["margin_deg"] = args.margin
    if args.workers is not None:
        overrides["max_workers"] = args.workers
    if args.no_zone_lines:
        overrides["include_zone_lines"] = False

    if not overrides:
        return config
    return GridConfig(
        datum=overrides.get("datum", config.datum),
        intervals=overrides.get("intervals", config.intervals),
        include_zone_lines=overrides.get("include_zone_lines", config.include_zone_lines),
        margin_deg=overrides.get("margin_deg", config.margin_deg),
        max_workers=overrides.get("max_workers", config.max_workers),
        drop_empty=config.drop_empty,
    )


def print_summary(overlay: GridOverlay):
    """Print line counts per interval."""
    for interval in sorted(overlay.lines):
        name = "Zone lines" if interval == GZD_GRID_INTERVAL else f"{interval // 1000}km lines"
        print(f"  {name}: {len(overlay.lines[interval])}")
    if overlay.labels:
        print(f"  Square labels: {len(overlay.labels)}")
    if overlay.skipped_cells:
        print(f"  Skipped cells: {overlay.skipped_cells}")


def check_projection(bbox: BoundingBox, config: GridConfig) -> int:
    """Compare the series with PROJ at every cell center.

    Returns:
        Number of cells deviating more than CHECK_TOLERANCE_M
    """
    engine = config.engine
    failures = 0
    worst = 0.0

    for part in split_antimeridian(bbox):
        try:
            viewport = ViewPort(part, config.margin_deg)
        except UsngError as e:
            print(f"  Warning: {e}")
            continue

        for rect in viewport.rectangles:
            center = rect.center
            if center is None:
                continue
            deviation = reference_deviation(engine, center.lat, center.lon)
            worst = max(worst, deviation)
            if deviation > CHECK_TOLERANCE_M:
                failures += 1
                print(f"    ({center.lat:.4f}, {center.lon:.4f}): {deviation:.3f}m")

    print(f"  Largest deviation from PROJ: {worst:.4f}m")
    return failures


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Render a USNG grid overlay")
    parser.add_argument("--bbox", nargs=4, type=float, metavar=("SOUTH", "NORTH", "WEST", "EAST"),
                        help="Viewport bounds in degrees")
    parser.add_argument("--zoom", type=int, default=10,
                        help="Map zoom level; selects intervals and sampling (default: 10)")
    parser.add_argument("--datum", choices=["NAD83", "NAD27"],
                        help="Datum of the projection (default: NAD83)")
    parser.add_argument("--intervals", nargs="+", type=int, choices=SUPPORTED_INTERVALS,
                        help="Grid intervals in meters (default: chosen by zoom)")
    parser.add_argument("--config", type=Path, help="JSON file with grid settings")
    parser.add_argument("--margin", type=float, help="Push the viewport out by this many degrees")
    parser.add_argument("--workers", type=int, help="Worker threads for cell computation")
    parser.add_argument("--no-zone-lines", action="store_true", help="Leave out GZD boundaries")
    parser.add_argument("--geojson", type=Path, help="Write the overlay as GeoJSON")
    parser.add_argument("--svg", type=Path, help="Write an SVG preview")
    parser.add_argument("--width", type=int, default=1024, help="SVG width in pixels (default: 1024)")
    parser.add_argument("--check", action="store_true",
                        help="Compare the projection against PROJ for every cell")
    parser.add_argument("--usng", nargs=2, type=float, metavar=("LAT", "LON"),
                        help="Print the USNG reference of a coordinate")

    args = parser.parse_args(argv)

    if args.usng is None and args.bbox is None:
        parser.error("--bbox is required unless --usng is given")

    try:
        config = build_config(args)
    except (OSError, ValueError) as e:
        print(f"Error: invalid configuration: {e}")
        return 1

    if args.usng:
        lat, lon = args.usng
        try:
            print(config.engine.to_usng(lat, lon))
        except UsngError as e:
            print(f"Error: {e}")
            return 1
        if args.bbox is None:
            return 0

    try:
        bbox = BoundingBox(*args.bbox)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    print("=" * 60)
    print("USNG Grid Overlay")
    print("=" * 60)
    print(f"Bounds: {bbox.south:.4f} to {bbox.north:.4f} N, {bbox.west:.4f} to {bbox.east:.4f} E")
    print(f"Zoom: {args.zoom}, datum: {config.datum}")

    if args.check:
        print("\nChecking projection against PROJ...")
        failures = check_projection(bbox, config)
        if failures:
            print(f"  {failures} cell(s) exceed {CHECK_TOLERANCE_M}m")
            return 1

    print("\nBuilding overlay...")
    overlay = build_overlay(bbox, args.zoom, config)
    print_summary(overlay)

    if args.geojson:
        count = write_geojson(overlay, args.geojson)
        print(f"\nWrote {count} features to {args.geojson}")

    if args.svg:
        try:
            count = render_svg(overlay, args.svg, args.width)
        except ValueError as e:
            print(f"Error: {e}")
            return 1
        print(f"\nRendered {count} lines to {args.svg}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
