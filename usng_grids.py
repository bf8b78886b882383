"""
usng_grids.py - USNG grid lines for one grid zone cell

Grid lines are straight in UTM space but curved in geographic space, so each
line is sampled in UTM at a zoom-dependent step, converted back to lat/lon and
clipped to the cell it belongs to.

Lines are generated with one interval of overedge on every side; the clipper
then trims them so they end on the cell boundary.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional

import numpy as np

from usng_projection import (
    BLOCK_SIZE,
    DEFAULT_ENGINE,
    NORTHING_OFFSET,
    GeoPoint,
    ProjectionEngine,
    UsngError,
    ZoneLookupError,
    grid_square_letters,
    latitude_band,
    zone_number,
)
from usng_viewport import GeoRectangle, ViewPort

logger = logging.getLogger(__name__)

# Intervals below this size don't label the zone boundaries
LABEL_EDGE_MIN_INTERVAL = 1000

# Label anchors are sampled this many intervals in from the overedge corner,
# roughly offsetting grid convergence
LABEL_ANCHOR_OFFSET_INTERVALS = 2


class OutCode:
    """Outcode bits of a point relative to a clip rectangle."""
    INSIDE = 0
    WEST = 1
    EAST = 2
    SOUTH = 4
    NORTH = 8


class SegmentClip(NamedTuple):
    """Result of clipping one segment.

    Attributes:
        keep: Whether any part of the segment is drawn
        point: Replacement for the segment's first point in the clipped line
    """
    keep: bool
    point: GeoPoint


@dataclass
class GridLine:
    """One clipped grid line.

    Attributes:
        points: Clipped points in generation order
        interval: Grid interval in meters
        orientation: "ew" (constant northing) or "ns" (constant easting)
        value: The constant UTM northing or easting in meters (degrees
            for zone boundary lines)
        zone: UTM zone the line was computed in
        band: Latitude band of the owning cell
    """
    points: List[GeoPoint]
    interval: int
    orientation: str
    value: float
    zone: int
    band: str

    @property
    def is_empty(self) -> bool:
        """True if nothing of the line is drawable."""
        return len(self.points) < 2


@dataclass
class LabelAnchors:
    """Label seed positions along the cell.

    Attributes:
        northings: Latitudes where E-W lines cross the cell, south to north
        eastings: Longitudes where N-S lines cross the cell, west to east
    """
    northings: List[float] = field(default_factory=list)
    eastings: List[float] = field(default_factory=list)


class GridLabel(NamedTuple):
    """A 100km square identifier placed at a point."""
    position: GeoPoint
    text: str


# === Clipping ===

def outcode(rect: GeoRectangle, lat: float, lon: float) -> int:
    """Compute the outcode of a point relative to a rectangle."""
    code = OutCode.INSIDE
    if lat < rect.south:
        code |= OutCode.SOUTH
    if lat > rect.north:
        code |= OutCode.NORTH
    if lon < rect.west:
        code |= OutCode.WEST
    if lon > rect.east:
        code |= OutCode.EAST
    return code


def clip_segment(rect: GeoRectangle, p1: GeoPoint, p2: GeoPoint) -> SegmentClip:
    """Clip the segment p1-p2 to a rectangle, one edge per pass.

    The outside endpoint is moved onto the first edge it violates, checked in
    the order north, south, west, east. A segment crossing two edges is only
    clipped at one of them.

    Args:
        rect: Clip rectangle
        p1: First point of the segment
        p2: Second point; never changed

    Returns:
        SegmentClip with keep=False if the segment lies outside on one side,
        otherwise the point that takes p1's place
    """
    code1 = outcode(rect, p1.lat, p1.lon)
    code2 = outcode(rect, p2.lat, p2.lon)

    if code1 & code2:
        return SegmentClip(False, p1)
    if not (code1 | code2):
        return SegmentClip(True, p1)

    lat1, lon1 = p1
    lat2, lon2 = p2

    # Make endpoint 1 the one that needs adjusting
    if code1 == OutCode.INSIDE:
        lat1, lon1, lat2, lon2 = lat2, lon2, lat1, lon1
        code1, code2 = code2, code1

    if code1 & OutCode.NORTH:
        t = (rect.north - lat1) / (lat2 - lat1)
        lon1 += t * (lon2 - lon1)
        lat1 = rect.north
    elif code1 & OutCode.SOUTH:
        t = (rect.south - lat1) / (lat2 - lat1)
        lon1 += t * (lon2 - lon1)
        lat1 = rect.south
    elif code1 & OutCode.WEST:
        t = (rect.west - lon1) / (lon2 - lon1)
        lat1 += t * (lat2 - lat1)
        lon1 = rect.west
    elif code1 & OutCode.EAST:
        t = (rect.east - lon1) / (lon2 - lon1)
        lat1 += t * (lat2 - lat1)
        lon1 = rect.east

    return SegmentClip(True, GeoPoint(lat1, lon1))


def clip_line(rect: GeoRectangle, points: List[GeoPoint]) -> List[GeoPoint]:
    """Clip a polyline to a rectangle.

    Each segment (points[i], points[i+1]) is clipped; for every kept segment
    the (possibly moved) first point is emitted. The input list is not
    modified.
    """
    clipped = []
    for p1, p2 in zip(points, points[1:]):
        result = clip_segment(rect, p1, p2)
        if result.keep:
            clipped.append(result.point)
    return clipped


# === Line generation ===

def sampling_precision(zoom: int) -> int:
    """Distance in meters between samples along a grid line.

    Zoomed out a long way the curvature is barely visible; zoomed in it
    needs dense points.
    """
    if zoom < 12:
        return 10000
    if zoom > 15:
        return 100
    return 1000


class GridCell:
    """Grid lines of one interval inside one GZD rectangle.

    Attributes:
        rectangle: The owning cell
        interval: Grid spacing in meters
        zoom: Map zoom level, selects the sampling precision
        zone: UTM zone the whole cell is computed in (set by compute)
        band: Latitude band of the cell (set by compute)
        lines: Clipped grid lines (set by compute)
        label_anchors: Label seed positions (set by compute)
        labels: 100km square identifiers, only for the 100km interval
    """

    def __init__(
        self,
        rectangle: GeoRectangle,
        interval: int,
        zoom: int,
        engine: ProjectionEngine = DEFAULT_ENGINE
    ):
        if interval <= 0:
            raise ValueError(f"Grid interval must be positive, got {interval}")
        self.rectangle = rectangle
        self.interval = int(interval)
        self.zoom = zoom
        self.engine = engine

        self.zone: Optional[int] = None
        self.band: Optional[str] = None
        self.lines: List[GridLine] = []
        self.label_anchors = LabelAnchors()
        self.labels: List[GridLabel] = []

    def compute(self) -> List[GridLine]:
        """Generate and clip the cell's grid lines.

        Returns:
            E-W lines south to north followed by N-S lines west to east

        Raises:
            UsngError: the cell lies outside the USNG domain
        """
        rect = self.rectangle
        interval = self.interval

        # Midpoint, not center: the degenerate 80S row still gets a zone
        mid = rect.midpoint
        zone = zone_number(mid.lat, mid.lon)
        if zone is None:
            raise ZoneLookupError("No UTM zone for cell", mid.lat, mid.lon)
        band = latitude_band(mid.lat)
        self.zone = zone
        self.band = band

        sw = self.engine.geographic_to_utm(rect.south, rect.west, zone)
        ne = self.engine.geographic_to_utm(rect.north, rect.east, zone)

        # Round out to the interval, plus one interval of overedge
        sw_e = int(math.floor(sw.easting / interval) * interval - interval)
        sw_n = int(math.floor(sw.northing / interval) * interval - interval)
        ne_e = int(math.floor(ne.easting / interval + 1) * interval + interval)
        ne_n = int(math.floor(ne.northing / interval + 1) * interval + interval)

        precision = sampling_precision(self.zoom)
        sample_eastings = np.arange(sw_e, ne_e + 1, precision, dtype=float)
        sample_northings = np.arange(sw_n, ne_n + 1, precision, dtype=float)

        anchors = LabelAnchors()
        label_edges = interval > LABEL_EDGE_MIN_INTERVAL
        anchor_offset = LABEL_ANCHOR_OFFSET_INTERVALS * interval
        lines = []

        # E-W lines (constant northing)
        if label_edges:
            anchors.northings.append(rect.south)
        for northing in range(sw_n, ne_n, interval):
            anchor = self.engine.utm_to_geographic(northing, sw_e + anchor_offset, zone)
            if rect.south < anchor.lat < rect.north:
                anchors.northings.append(anchor.lat)

            lats, lons = self.engine.utm_to_geographic_array(northing, sample_eastings, zone)
            lines.append(GridLine(
                points=clip_line(rect, _to_points(lats, lons)),
                interval=interval,
                orientation="ew",
                value=northing,
                zone=zone,
                band=band,
            ))
        anchors.northings.append(rect.north)

        # N-S lines (constant easting)
        if label_edges:
            anchors.eastings.append(rect.west)
        for easting in range(sw_e, ne_e, interval):
            anchor = self.engine.utm_to_geographic(sw_n + anchor_offset, easting, zone)
            if rect.west < anchor.lon < rect.east:
                anchors.eastings.append(anchor.lon)

            lats, lons = self.engine.utm_to_geographic_array(sample_northings, easting, zone)
            lines.append(GridLine(
                points=clip_line(rect, _to_points(lats, lons)),
                interval=interval,
                orientation="ns",
                value=easting,
                zone=zone,
                band=band,
            ))
        anchors.eastings.append(rect.east)

        self.lines = lines
        self.label_anchors = anchors
        if interval == BLOCK_SIZE and not rect.is_degenerate:
            self.labels = self._square_labels()

        logger.debug(
            "Cell %s%s %s: %d lines at %dm (precision %dm)",
            zone, band, rect.as_tuple(), len(lines), interval, precision
        )
        return lines

    def _square_labels(self) -> List[GridLabel]:
        """Place a 100km square identifier in each anchor quad."""
        northings = self.label_anchors.northings
        eastings = self.label_anchors.eastings
        labels = []
        for south, north in zip(northings, northings[1:]):
            for west, east in zip(eastings, eastings[1:]):
                position = GeoPoint((south + north) / 2, (west + east) / 2)
                utm = self.engine.geographic_to_utm(position.lat, position.lon, self.zone)
                northing = utm.northing + NORTHING_OFFSET if position.lat < 0 else utm.northing
                text = grid_square_letters(self.zone, northing, utm.easting)
                labels.append(GridLabel(position, text))
        return labels


def _to_points(lats: np.ndarray, lons: np.ndarray) -> List[GeoPoint]:
    return [GeoPoint(float(lat), float(lon)) for lat, lon in zip(lats, lons)]


def compute_cell(cell: GridCell) -> Optional[GridCell]:
    """Compute one cell, returning None if it lies outside the USNG domain."""
    try:
        cell.compute()
    except UsngError as e:
        logger.warning("Skipping cell %s at %dm: %s", cell.rectangle.as_tuple(), cell.interval, e)
        return None
    return cell


def generate_grid(
    viewport: ViewPort,
    zoom: int,
    interval: int,
    engine: ProjectionEngine = DEFAULT_ENGINE,
    max_workers: int = 1
) -> List[GridCell]:
    """Compute grid lines of one interval for every cell in a viewport.

    Cells are independent; with max_workers > 1 they are computed on a
    thread pool. Cells outside the USNG domain are logged and skipped.

    Args:
        viewport: Decomposed map view
        zoom: Map zoom level
        interval: Grid spacing in meters
        engine: Projection engine for the selected datum
        max_workers: Number of worker threads (1 = compute inline)

    Returns:
        Computed GridCells in viewport rectangle order
    """
    cells = [GridCell(rect, interval, zoom, engine) for rect in viewport.rectangles]

    if max_workers > 1 and len(cells) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(compute_cell, cell) for cell in cells]
            results = [future.result() for future in futures]
    else:
        results = [compute_cell(cell) for cell in cells]

    return [cell for cell in results if cell is not None]
