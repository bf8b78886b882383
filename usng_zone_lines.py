"""
usng_zone_lines.py - Grid zone designator boundary lines

GZD boundaries are parallels and meridians, so they are drawn straight
through the viewport's boundary sequences without any projection.
"""

from typing import List

from usng_grids import GridLine
from usng_projection import GeoPoint, latitude_band, zone_number
from usng_viewport import ViewPort

# Interval key of zone boundary lines; sorts after every metric interval
GZD_GRID_INTERVAL = 2 ** 31 - 1


def zone_lines(viewport: ViewPort) -> List[GridLine]:
    """Build the GZD boundary lines of a viewport.

    One line per latitude boundary running west to east through every
    longitude boundary, then one line per longitude boundary running south
    to north. Norway/Svalbard meridians are drawn at their nominal
    longitudes.

    Returns:
        GridLines keyed with GZD_GRID_INTERVAL; value is the boundary in
        degrees, zone/band describe the cell north-east of the line start
    """
    lat_coords = viewport.lat_coords
    lng_coords = viewport.lng_coords
    lines = []

    for lat in lat_coords:
        points = [GeoPoint(lat, lng) for lng in lng_coords]
        lines.append(_boundary_line(points, "ew", lat))

    for lng in lng_coords:
        points = [GeoPoint(lat, lng) for lat in lat_coords]
        lines.append(_boundary_line(points, "ns", lng))

    return lines


def _boundary_line(points: List[GeoPoint], orientation: str, value: float) -> GridLine:
    start = points[0]
    return GridLine(
        points=points,
        interval=GZD_GRID_INTERVAL,
        orientation=orientation,
        value=value,
        zone=zone_number(start.lat, start.lon) or 0,
        band=latitude_band(start.lat),
    )
