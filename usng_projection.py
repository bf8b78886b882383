"""
usng_projection.py - Geographic <-> UTM conversion for USNG grids

Hand-rolled ellipsoidal Transverse Mercator series (USGS Bulletin 1532 /
Snyder, "Map Projections - A Working Manual") with the UTM zone and latitude
band rules used by the United States National Grid.

Usage:
    from usng_projection import ProjectionEngine, NAD27, zone_number

    engine = ProjectionEngine()          # NAD83 / GRS80
    utm = engine.geographic_to_utm(38.8895, -77.0352)
    point = engine.utm_to_geographic(utm.northing, utm.easting, utm.zone)

    clarke = ProjectionEngine(NAD27)     # NAD27 / Clarke 1866
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, NamedTuple, Optional, Tuple

import numpy as np
from pyproj import Transformer

logger = logging.getLogger(__name__)

# === UTM constants ===
K0 = 0.9996                  # scale factor of central meridian
EASTING_OFFSET = 500000.0    # meters
NORTHING_OFFSET = 10000000.0 # meters, southern hemisphere false northing

# USNG is only defined between these latitudes
USNG_MIN_LAT = -80.0
USNG_MAX_LAT = 84.0

# Size of a 100km square identifier, meters
BLOCK_SIZE = 100000

# Square identifier letter cycles (see "United States National Grid" white paper, p. 10)
GRIDSQUARE_SET_COL_SIZE = 8
GRIDSQUARE_SET_ROW_SIZE = 20
GRIDSQUARE_COLUMN_IDS = {
    1: "ABCDEFGH",
    2: "JKLMNPQR",
    3: "STUVWXYZ",
    4: "ABCDEFGH",
    5: "JKLMNPQR",
    6: "STUVWXYZ",
}
GRIDSQUARE_ROW_IDS = {
    1: "ABCDEFGHJKLMNPQRSTUV",
    2: "FGHJKLMNPQRSTUVABCDE",
    3: "ABCDEFGHJKLMNPQRSTUV",
    4: "FGHJKLMNPQRSTUVABCDE",
    5: "ABCDEFGHJKLMNPQRSTUV",
    6: "FGHJKLMNPQRSTUVABCDE",
}

# Latitude bands C..X, 8 degrees each from -80 (X is 12 degrees high)
LATITUDE_BANDS = "CDEFGHJKLMNPQRSTUVWX"
OUT_OF_RANGE_BAND = "Z"


# === Errors ===

class UsngError(ValueError):
    """A coordinate that cannot be placed on the USNG grid."""

    def __init__(self, message: str, lat: float, lon: float):
        super().__init__(f"{message} (lat={lat}, lon={lon})")
        self.lat = lat
        self.lon = lon


class InvalidLatitudeError(UsngError):
    """Latitude outside the projection's domain (90 sanity, 80S/84N for USNG)."""


class InvalidLongitudeError(UsngError):
    """Longitude outside [-180, 360]."""


class ZoneLookupError(UsngError):
    """No UTM zone could be determined for the coordinate."""


# === Value types ===

class GeoPoint(NamedTuple):
    """Geographic coordinate in decimal degrees."""
    lat: float
    lon: float


class UtmCoordinate(NamedTuple):
    """UTM coordinate.

    Northing is hemisphere-relative (negative south of the equator) unless it
    was produced with ``false_northing=True``.
    """
    easting: float
    northing: float
    zone: int
    letter: str


@dataclass(frozen=True)
class Ellipsoid:
    """Reference ellipsoid used by the projection series.

    Attributes:
        name: Datum name the ellipsoid is selected by
        equatorial_radius: Semi-major axis in meters
        ecc_squared: First eccentricity squared
    """
    name: str
    equatorial_radius: float
    ecc_squared: float

    @property
    def ecc_prime_squared(self) -> float:
        """Second eccentricity squared."""
        return self.ecc_squared / (1 - self.ecc_squared)

    @property
    def e1(self) -> float:
        """Auxiliary term of the footprint latitude series."""
        root = math.sqrt(1 - self.ecc_squared)
        return (1 - root) / (1 + root)

    @property
    def proj_ellps(self) -> str:
        """PROJ ellipsoid name for the same figure."""
        return "clrk66" if self.name == "NAD27" else "GRS80"


NAD83 = Ellipsoid("NAD83", 6378137.0, 0.006694380023)     # GRS80
NAD27 = Ellipsoid("NAD27", 6378206.4, 0.006768658)        # Clarke 1866

ELLIPSOIDS: Dict[str, Ellipsoid] = {
    NAD83.name: NAD83,
    NAD27.name: NAD27,
}


def get_ellipsoid(name: str) -> Ellipsoid:
    """Look up an ellipsoid by datum name (case-insensitive)."""
    try:
        return ELLIPSOIDS[name.upper()]
    except KeyError:
        available = ", ".join(sorted(ELLIPSOIDS))
        raise ValueError(f"Unknown datum: {name}. Available: {available}") from None


# === Zone and band lookup (datum independent) ===

def normalize_longitude(lon: float) -> float:
    """Wrap a longitude into [-180, 180)."""
    return (lon + 180.0) % 360.0 - 180.0


def zone_number(lat: float, lon: float) -> Optional[int]:
    """Get the UTM zone number for a coordinate.

    Zones are 6 degrees wide, numbered 1-60 from -180. The west coast of
    Norway and Svalbard have irregular zones.

    Returns:
        Zone number, or None if lat/lon are outside the USNG domain
    """
    if lon > 360 or lon < -180 or lat > USNG_MAX_LAT or lat < USNG_MIN_LAT:
        return None

    lon_temp = normalize_longitude(lon)
    zone = int((lon_temp + 180) // 6) + 1

    # West coast of Norway
    if 56.0 <= lat < 64.0 and 3.0 <= lon_temp < 12.0:
        zone = 32

    # Svalbard
    if 72.0 <= lat < 84.0:
        if 0.0 <= lon_temp < 9.0:
            zone = 31
        elif 9.0 <= lon_temp < 21.0:
            zone = 33
        elif 21.0 <= lon_temp < 33.0:
            zone = 35
        elif 33.0 <= lon_temp < 42.0:
            zone = 37

    return zone


def latitude_band(lat: float) -> str:
    """Get the grid zone designator letter for a latitude.

    Letters run from C (-80) to X (84); 'Z' flags a latitude outside the
    UTM limits.
    """
    if lat > USNG_MAX_LAT or lat < USNG_MIN_LAT:
        return OUT_OF_RANGE_BAND
    if lat >= 72:
        return "X"
    return LATITUDE_BANDS[int((lat - USNG_MIN_LAT) // 8)]


def central_meridian(zone: int) -> float:
    """Longitude of the central meridian of a zone."""
    return (zone - 1) * 6 - 180 + 3


def is_southern(letter: str) -> bool:
    """True for latitude bands south of the equator (C..M)."""
    return letter < "N"


# === Projection engine ===

class ProjectionEngine:
    """Geographic <-> UTM conversion on a fixed ellipsoid.

    One engine is built per datum choice; it carries no other state and is
    safe to share between threads.
    """

    def __init__(self, ellipsoid: Ellipsoid = NAD83):
        self.ellipsoid = ellipsoid

        # Cache series terms used on every call
        a = ellipsoid.equatorial_radius
        e2 = ellipsoid.ecc_squared
        self._a = a
        self._e2 = e2
        self._ep2 = ellipsoid.ecc_prime_squared
        self._e1 = ellipsoid.e1
        self._m1 = 1 - e2 / 4 - 3 * e2 ** 2 / 64 - 5 * e2 ** 3 / 256
        self._m2 = 3 * e2 / 8 + 3 * e2 ** 2 / 32 + 45 * e2 ** 3 / 1024
        self._m3 = 15 * e2 ** 2 / 256 + 45 * e2 ** 3 / 1024
        self._m4 = 35 * e2 ** 3 / 3072

    def __repr__(self) -> str:
        return f"ProjectionEngine({self.ellipsoid.name})"

    def meridian_arc(self, lat_rad: float) -> float:
        """True distance along the central meridian from the equator to lat."""
        return self._a * (
            self._m1 * lat_rad
            - self._m2 * math.sin(2 * lat_rad)
            + self._m3 * math.sin(4 * lat_rad)
            - self._m4 * math.sin(6 * lat_rad)
        )

    def geographic_to_utm(
        self,
        lat: float,
        lon: float,
        zone: Optional[int] = None,
        false_northing: bool = False
    ) -> UtmCoordinate:
        """Convert latitude/longitude to UTM.

        Args:
            lat: Latitude in degrees (north positive)
            lon: Longitude in degrees (east positive), [-180, 360]
            zone: Force the computation into this zone instead of the
                point's natural zone
            false_northing: Add 10,000,000 m to southern northings

        Returns:
            UtmCoordinate with the zone used and the point's latitude band

        Raises:
            InvalidLatitudeError: lat outside [-80, 84]
            InvalidLongitudeError: lon outside [-180, 360]
            ZoneLookupError: no zone could be determined
        """
        if lat > USNG_MAX_LAT or lat < USNG_MIN_LAT:
            raise InvalidLatitudeError("Latitude outside the USNG range 80S..84N", lat, lon)
        if lat > 90 or lat < -90:
            raise InvalidLatitudeError("Latitude outside [-90, 90]", lat, lon)
        if lon > 360 or lon < -180:
            raise InvalidLongitudeError("Longitude outside [-180, 360]", lat, lon)

        if zone is None:
            zone = zone_number(lat, lon)
            if zone is None:
                raise ZoneLookupError("No UTM zone for coordinate", lat, lon)

        lat_rad = math.radians(lat)
        # Offset from the central meridian, wrapped so 180E in zone 60 stays +3
        dlon_rad = math.radians(normalize_longitude(lon - central_meridian(zone)))

        sin_lat = math.sin(lat_rad)
        cos_lat = math.cos(lat_rad)
        tan_lat = math.tan(lat_rad)

        n = self._a / math.sqrt(1 - self._e2 * sin_lat * sin_lat)
        t = tan_lat * tan_lat
        c = self._ep2 * cos_lat * cos_lat
        a = cos_lat * dlon_rad

        # M0 drops out: the UTM origin latitude is the equator
        m = self.meridian_arc(lat_rad)

        easting = K0 * n * (
            a
            + (1 - t + c) * a ** 3 / 6
            + (5 - 18 * t + t * t + 72 * c - 58 * self._ep2) * a ** 5 / 120
        ) + EASTING_OFFSET

        northing = K0 * (m + n * tan_lat * (
            a * a / 2
            + (5 - t + 9 * c + 4 * c * c) * a ** 4 / 24
            + (61 - 58 * t + t * t + 600 * c - 330 * self._ep2) * a ** 6 / 720
        ))

        letter = latitude_band(lat)
        if false_northing and lat < 0:
            northing += NORTHING_OFFSET

        return UtmCoordinate(easting, northing, zone, letter)

    def utm_to_geographic_array(
        self,
        northings,
        eastings,
        zone: int
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Inverse series over arrays of hemisphere-relative northings.

        Args:
            northings: Northings in meters (negative south of the equator)
            eastings: Eastings in meters, same shape as northings
            zone: UTM zone the coordinates belong to

        Returns:
            Tuple of (latitudes, longitudes) in degrees
        """
        x = np.asarray(eastings, dtype=float) - EASTING_OFFSET
        y = np.asarray(northings, dtype=float)
        e1 = self._e1
        ep2 = self._ep2

        mu = (y / K0) / (self._a * self._m1)

        # Footprint latitude: latitude on the central meridian with the same y
        phi1 = (
            mu
            + (3 * e1 / 2 - 27 * e1 ** 3 / 32) * np.sin(2 * mu)
            + (21 * e1 ** 2 / 16 - 55 * e1 ** 4 / 32) * np.sin(4 * mu)
            + (151 * e1 ** 3 / 96) * np.sin(6 * mu)
        )

        sin_phi1 = np.sin(phi1)
        cos_phi1 = np.cos(phi1)
        tan_phi1 = np.tan(phi1)

        n1 = self._a / np.sqrt(1 - self._e2 * sin_phi1 * sin_phi1)
        t1 = tan_phi1 * tan_phi1
        c1 = ep2 * cos_phi1 * cos_phi1
        r1 = self._a * (1 - self._e2) / np.power(1 - self._e2 * sin_phi1 * sin_phi1, 1.5)
        d = x / (n1 * K0)

        lat = phi1 - (n1 * tan_phi1 / r1) * (
            d * d / 2
            - (5 + 3 * t1 + 10 * c1 - 4 * c1 * c1 - 9 * ep2) * d ** 4 / 24
            + (61 + 90 * t1 + 298 * c1 + 45 * t1 * t1 - 252 * ep2 - 3 * c1 * c1) * d ** 6 / 720
        )

        lon = (
            d
            - (1 + 2 * t1 + c1) * d ** 3 / 6
            + (5 - 2 * c1 + 28 * t1 - 3 * c1 * c1 + 8 * ep2 + 24 * t1 * t1) * d ** 5 / 120
        ) / cos_phi1

        return np.degrees(lat), central_meridian(zone) + np.degrees(lon)

    def utm_to_geographic(
        self,
        northing: float,
        easting: float,
        zone: int,
        letter: Optional[str] = None,
        false_northing: bool = False
    ) -> GeoPoint:
        """Convert a UTM coordinate to latitude/longitude.

        Args:
            northing: Northing in meters, hemisphere-relative unless
                false_northing is set
            easting: Easting in meters
            zone: UTM zone number
            letter: Latitude band; only consulted with false_northing
            false_northing: Remove the 10,000,000 m offset for southern bands

        Returns:
            GeoPoint in decimal degrees
        """
        if false_northing and letter is not None and is_southern(letter):
            northing -= NORTHING_OFFSET
        lat, lon = self.utm_to_geographic_array(northing, easting, zone)
        return GeoPoint(float(lat), float(lon))

    def to_usng(self, lat: float, lon: float, precision: int = 5) -> str:
        """Format a coordinate as a USNG reference.

        Number of digits per axis:
            1: 10 km    "18S UJ 2 0"
            2: 1 km     "18S UJ 23 06"
            4: 10 m     "18S UJ 2348 0648"
            5: 1 m      "18S UJ 23487 06483"

        Raises:
            ValueError: precision outside 0..5
            UsngError: coordinate outside the USNG domain
        """
        if not 0 <= precision <= 5:
            raise ValueError(f"USNG precision must be 0-5 digits, got {precision}")

        utm = self.geographic_to_utm(lat, lon, false_northing=True)
        letters = grid_square_letters(utm.zone, utm.northing, utm.easting)

        divisor = 10 ** (5 - precision)
        usng_northing = (round(utm.northing) % BLOCK_SIZE) // divisor
        usng_easting = (round(utm.easting) % BLOCK_SIZE) // divisor

        reference = f"{utm.zone}{utm.letter} {letters}"
        if precision == 0:
            return reference
        return f"{reference} {usng_easting:0{precision}d} {usng_northing:0{precision}d}"


DEFAULT_ENGINE = ProjectionEngine(NAD83)


def geographic_to_utm(
    lat: float,
    lon: float,
    zone: Optional[int] = None,
    false_northing: bool = False
) -> UtmCoordinate:
    """Convert latitude/longitude to UTM on NAD83."""
    return DEFAULT_ENGINE.geographic_to_utm(lat, lon, zone, false_northing)


def utm_to_geographic(
    northing: float,
    easting: float,
    zone: int,
    letter: Optional[str] = None,
    false_northing: bool = False
) -> GeoPoint:
    """Convert UTM to latitude/longitude on NAD83."""
    return DEFAULT_ENGINE.utm_to_geographic(northing, easting, zone, letter, false_northing)


def to_usng(lat: float, lon: float, precision: int = 5) -> str:
    """Format a coordinate as a USNG reference on NAD83."""
    return DEFAULT_ENGINE.to_usng(lat, lon, precision)


# === 100km square identifiers ===

def find_set(zone: int) -> int:
    """Get the square identifier set (1-6) for a zone.

    Zones 1-6 each have a unique set; the sets repeat for 7-12, 13-18, ...
    """
    zone_mod = zone % 6
    return 6 if zone_mod == 0 else zone_mod


def grid_square_letters(zone: int, northing: float, easting: float) -> str:
    """Get the two-letter 100km square identifier.

    Args:
        zone: UTM zone number
        northing: Northing in meters, with false northing in the south
        easting: Easting in meters

    Returns:
        Column letter followed by row letter, e.g. "UJ"
    """
    row = (int(round(northing)) // BLOCK_SIZE + 1) % GRIDSQUARE_SET_ROW_SIZE
    col = (int(round(easting)) // BLOCK_SIZE) % GRIDSQUARE_SET_COL_SIZE

    # Cycles wrap: position 0 is the last letter of the set
    row = GRIDSQUARE_SET_ROW_SIZE - 1 if row == 0 else row - 1
    col = GRIDSQUARE_SET_COL_SIZE - 1 if col == 0 else col - 1

    square_set = find_set(zone)
    return GRIDSQUARE_COLUMN_IDS[square_set][col] + GRIDSQUARE_ROW_IDS[square_set][row]


# === PROJ cross-check ===

def reference_transformer(zone: int, ellipsoid: Ellipsoid = NAD83) -> Transformer:
    """Build a PROJ lon/lat -> UTM transformer matching the series.

    The transformer uses the same ellipsoid and zone and, without +south,
    emits hemisphere-relative northings, so its output is directly
    comparable to ProjectionEngine.geographic_to_utm.
    """
    utm_proj = f"+proj=utm +zone={zone} +ellps={ellipsoid.proj_ellps} +units=m +no_defs"
    geog_proj = f"+proj=longlat +ellps={ellipsoid.proj_ellps} +no_defs"
    return Transformer.from_crs(geog_proj, utm_proj, always_xy=True)


def reference_deviation(engine: ProjectionEngine, lat: float, lon: float) -> float:
    """Distance in meters between the series and PROJ for one coordinate."""
    utm = engine.geographic_to_utm(lat, lon)
    transformer = reference_transformer(utm.zone, engine.ellipsoid)
    easting, northing = transformer.transform(normalize_longitude(lon), lat)
    deviation = math.hypot(easting - utm.easting, northing - utm.northing)
    logger.debug("PROJ deviation at (%s, %s) zone %s: %.4f m", lat, lon, utm.zone, deviation)
    return deviation
