"""
usng_viewport.py - Decompose a map viewport into USNG grid zone rectangles

A viewport is cut along UTM zone meridians (every 6 degrees) and latitude band
parallels (every 8 degrees, 12 for band X). Each resulting cell is one grid
zone designator (GZD), or the part of one that is visible.

Usage:
    from usng_viewport import BoundingBox, ViewPort

    viewport = ViewPort(BoundingBox(south=30, north=40, west=-100, east=-90))
    for rect in viewport.rectangles:
        print(rect.as_tuple())
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from usng_projection import GeoPoint, InvalidLatitudeError, USNG_MAX_LAT, USNG_MIN_LAT

# Zone and band sizes in degrees
ZONE_WIDTH_DEG = 6
BAND_HEIGHT_DEG = 8
# Last stepped band boundary before X widens to 84N
LAST_REGULAR_BAND_LAT = 72

# West edges north of 72N with no Svalbard sub-zone of their own
SVALBARD_SKIPPED_WEST_EDGES = (6, 18, 30)


@dataclass
class BoundingBox:
    """Geographic bounds of a map view in decimal degrees.

    Attributes:
        south: Southern boundary latitude
        north: Northern boundary latitude
        west: Western boundary longitude
        east: Eastern boundary longitude
    """
    south: float
    north: float
    west: float
    east: float

    def __post_init__(self):
        if self.south > self.north:
            raise ValueError(f"South edge {self.south} is north of north edge {self.north}")

    def expand(self, margin_deg: float) -> 'BoundingBox':
        """Return a new BoundingBox pushed out by margin_deg, clamped to the globe."""
        return BoundingBox(
            south=max(-90.0, self.south - margin_deg),
            north=min(90.0, self.north + margin_deg),
            west=max(-180.0, self.west - margin_deg),
            east=min(180.0, self.east + margin_deg),
        )

    def as_tuple(self) -> Tuple[float, float, float, float]:
        """Return bounds as (south, north, west, east)."""
        return (self.south, self.north, self.west, self.east)


def split_antimeridian(bbox: BoundingBox) -> List[BoundingBox]:
    """Split a box whose west edge lies east of its east edge.

    Map views spanning the 180th meridian report west > east; each half can
    then be decomposed on its own.
    """
    if bbox.west <= bbox.east:
        return [bbox]
    return [
        BoundingBox(bbox.south, bbox.north, bbox.west, 180.0),
        BoundingBox(bbox.south, bbox.north, -180.0, bbox.east),
    ]


@dataclass(frozen=True)
class GeoRectangle:
    """One GZD cell (or its visible part) in geographic coordinates.

    Build with from_corners() so the Norway/Svalbard width adjustments are
    applied.
    """
    south: float
    north: float
    west: float
    east: float

    @classmethod
    def from_corners(cls, south: float, north: float, west: float, east: float) -> 'GeoRectangle':
        """Create a rectangle, shifting the edges of the irregular cells.

        The Norway (56N) and Svalbard (72N) cells are narrowed or widened by
        3 degrees so they match their special zones.
        """
        if south == 56 and west == 0:
            east -= 3
        elif south == 56 and west == 6:
            west -= 3
        elif south == 72 and west == 0:
            east += 3
        elif south == 72 and west == 12:
            west -= 3
            east += 3
        elif south == 72 and west == 36:
            west -= 3
        return cls(south=south, north=north, west=west, east=east)

    @property
    def is_degenerate(self) -> bool:
        """True for the zero-height row kept at the 80S limit."""
        return self.south == self.north

    @property
    def center(self) -> Optional[GeoPoint]:
        """Center point, or None for a degenerate rectangle."""
        if self.is_degenerate:
            return None
        return GeoPoint((self.north + self.south) / 2, (self.west + self.east) / 2)

    @property
    def midpoint(self) -> GeoPoint:
        """Middle of the rectangle, defined for degenerate rows too."""
        return GeoPoint((self.north + self.south) / 2, (self.west + self.east) / 2)

    def as_tuple(self) -> Tuple[float, float, float, float]:
        """Return bounds as (south, north, west, east)."""
        return (self.south, self.north, self.west, self.east)


class ViewPort:
    """Boundary sequences and GZD rectangles covering one map view.

    Attributes:
        bbox: The viewport after margin push-out and clamping
        lat_coords: Ascending latitude boundaries
        lng_coords: Ascending longitude boundaries
        rectangles: GeoRectangles tiling the viewport, south to north,
            west to east
    """

    def __init__(self, bbox: BoundingBox, margin_deg: float = 0.0):
        """Decompose a bounding box.

        Args:
            bbox: Map view bounds
            margin_deg: Push the bounds out by this many degrees so lines
                extend past the visible edge (0 allowed)

        Raises:
            ValueError: west edge east of east edge (split the box first)
            InvalidLatitudeError: viewport entirely outside 80S..84N
        """
        if bbox.west > bbox.east:
            raise ValueError(
                f"Viewport crosses the antimeridian (west={bbox.west}, east={bbox.east}); "
                "split it with split_antimeridian()"
            )

        pushed = bbox.expand(margin_deg)
        if pushed.south >= USNG_MAX_LAT or pushed.north <= USNG_MIN_LAT:
            raise InvalidLatitudeError(
                "Viewport lies outside the USNG range 80S..84N",
                pushed.south, pushed.west
            )

        north = min(pushed.north, USNG_MAX_LAT)
        self.bbox = BoundingBox(pushed.south, north, pushed.west, pushed.east)

        self.lat_coords = self._latitude_boundaries(pushed.south, north)
        self.lng_coords = self._longitude_boundaries(pushed.west, pushed.east)

        if len(self.lat_coords) < 2 or len(self.lng_coords) < 2:
            raise RuntimeError(
                f"Viewport decomposition produced too few boundaries: "
                f"lat={self.lat_coords} lng={self.lng_coords}"
            )

        self.rectangles = self._build_rectangles()

    @staticmethod
    def _latitude_boundaries(south: float, north: float) -> List[float]:
        """Compute band boundaries from south to north edge."""
        if south < USNG_MIN_LAT:
            # Southern limit of UTM; -80 is both the edge and the first step,
            # leaving a zero-height row
            coords = [USNG_MIN_LAT]
            lat = USNG_MIN_LAT
        else:
            coords = [south]
            lat = (math.floor(south / BAND_HEIGHT_DEG) + 1) * BAND_HEIGHT_DEG

        # Band X is 12 degrees high: the 80N step clamps to 84N, which is
        # never below the (clamped) north edge, so no boundary is added
        while lat < north and lat <= LAST_REGULAR_BAND_LAT:
            coords.append(lat)
            lat += BAND_HEIGHT_DEG

        coords.append(north)
        return coords

    @staticmethod
    def _longitude_boundaries(west: float, east: float) -> List[float]:
        """Compute zone meridians from west to east edge."""
        coords = [west]
        lng = (math.floor(west / ZONE_WIDTH_DEG) + 1) * ZONE_WIDTH_DEG
        while lng < east:
            coords.append(lng)
            lng += ZONE_WIDTH_DEG
        coords.append(east)
        return coords

    def _build_rectangles(self) -> List[GeoRectangle]:
        rectangles = []
        for south, north in zip(self.lat_coords, self.lat_coords[1:]):
            for west, east in zip(self.lng_coords, self.lng_coords[1:]):
                if south >= LAST_REGULAR_BAND_LAT and west in SVALBARD_SKIPPED_WEST_EDGES:
                    continue
                rectangles.append(GeoRectangle.from_corners(south, north, west, east))
        return rectangles

    def __repr__(self) -> str:
        return (f"ViewPort(lat={self.lat_coords}, lng={self.lng_coords}, "
                f"rectangles={len(self.rectangles)})")
