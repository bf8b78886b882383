"""
Tests for usng_projection module.

Run with: pytest tests/test_usng_projection.py -v
"""

import re

import mgrs
import numpy as np
import pytest
from pyproj import Transformer

from usng_projection import (
    DEFAULT_ENGINE,
    NAD27,
    NAD83,
    NORTHING_OFFSET,
    InvalidLatitudeError,
    InvalidLongitudeError,
    ProjectionEngine,
    UsngError,
    central_meridian,
    find_set,
    geographic_to_utm,
    get_ellipsoid,
    grid_square_letters,
    is_southern,
    latitude_band,
    normalize_longitude,
    reference_deviation,
    to_usng,
    utm_to_geographic,
    zone_number,
)

WASHINGTON_MONUMENT = (38.8895, -77.0352)


def mgrs_reference(lat, lon):
    """MGRS string from the mgrs package (str or bytes depending on version)."""
    result = mgrs.MGRS().toMGRS(lat, lon)
    if isinstance(result, bytes):
        result = result.decode("ascii")
    return result


class TestZoneNumber:
    """Tests for UTM zone lookup."""

    def test_zones_increase_from_antimeridian(self):
        """Test that 6 degree steps from -180 give zones 1..60 in order."""
        zones = [zone_number(0.0, lon + 0.5) for lon in range(-180, 180, 6)]
        assert zones == list(range(1, 61))

    def test_zone_edges(self):
        """Test zone boundaries fall on multiples of 6 degrees."""
        assert zone_number(0.0, -180.0) == 1
        assert zone_number(0.0, -174.0) == 2
        assert zone_number(0.0, 179.99) == 60
        assert zone_number(0.0, 0.0) == 31

    def test_longitude_above_180_wraps(self):
        """Test longitudes up to 360 are normalized first."""
        assert zone_number(0.0, 180.0) == 1
        assert zone_number(0.0, 360.0) == 31
        assert zone_number(0.0, 183.5) == zone_number(0.0, -176.5)

    def test_out_of_domain(self):
        """Test coordinates outside USNG have no zone."""
        assert zone_number(84.1, 0.0) is None
        assert zone_number(-80.1, 0.0) is None
        assert zone_number(0.0, 360.1) is None
        assert zone_number(0.0, -180.1) is None

    def test_norway(self):
        """Test the widened zone 32 off the Norwegian coast."""
        assert zone_number(60.0, 5.0) == 32
        assert zone_number(56.0, 3.0) == 32
        assert zone_number(60.0, 2.9) == 31
        assert zone_number(64.0, 5.0) == 31
        assert zone_number(55.9, 5.0) == 31

    def test_svalbard(self):
        """Test the Svalbard zones."""
        assert zone_number(75.0, 10.0) == 33
        assert zone_number(75.0, 4.0) == 31
        assert zone_number(78.0, 8.9) == 31
        assert zone_number(78.0, 25.0) == 35
        assert zone_number(78.0, 40.0) == 37

    def test_svalbard_outside_special_bands(self):
        """Test longitudes outside 0..42 keep their regular zone."""
        assert zone_number(78.0, 45.0) == 38
        assert zone_number(78.0, -3.0) == 30

    def test_no_override_at_equator(self):
        """Test Norway longitudes use regular zones at the equator."""
        assert zone_number(0.0, 5.0) == 31
        assert zone_number(0.0, 10.0) == 32


class TestLatitudeBand:
    """Tests for latitude band letters."""

    def test_known_bands(self):
        """Test band letters for sample latitudes."""
        assert latitude_band(38.9) == "S"
        assert latitude_band(0.0) == "N"
        assert latitude_band(-0.1) == "M"
        assert latitude_band(-80.0) == "C"
        assert latitude_band(71.9) == "W"

    def test_band_x_is_twelve_degrees(self):
        """Test band X covers 72 through 84 inclusive."""
        assert latitude_band(72.0) == "X"
        assert latitude_band(80.0) == "X"
        assert latitude_band(84.0) == "X"

    def test_out_of_range(self):
        """Test 'Z' flags latitudes outside the UTM limits."""
        assert latitude_band(84.1) == "Z"
        assert latitude_band(-80.1) == "Z"

    def test_no_i_or_o(self):
        """Test the letters I and O are never produced."""
        letters = {latitude_band(lat) for lat in np.arange(-80, 84, 0.5)}
        assert "I" not in letters
        assert "O" not in letters
        assert len(letters) == 20

    def test_is_southern(self):
        """Test hemisphere from band letter."""
        assert is_southern("M") is True
        assert is_southern("C") is True
        assert is_southern("N") is False
        assert is_southern("X") is False


class TestEllipsoid:
    """Tests for Ellipsoid values and lookup."""

    def test_lookup_by_name(self):
        """Test datum lookup is case-insensitive."""
        assert get_ellipsoid("NAD83") is NAD83
        assert get_ellipsoid("nad27") is NAD27

    def test_unknown_datum(self):
        """Test unknown datum raises ValueError."""
        with pytest.raises(ValueError, match="Unknown datum"):
            get_ellipsoid("WGS72")

    def test_derived_terms(self):
        """Test second eccentricity and e1."""
        assert NAD83.ecc_prime_squared == pytest.approx(0.0067394968, rel=1e-6)
        assert 0 < NAD83.e1 < NAD83.ecc_squared

    def test_proj_names(self):
        """Test PROJ ellipsoid names."""
        assert NAD83.proj_ellps == "GRS80"
        assert NAD27.proj_ellps == "clrk66"


class TestForwardProjection:
    """Tests for geographic to UTM conversion."""

    def test_washington_monument(self):
        """Test a well known coordinate."""
        utm = geographic_to_utm(*WASHINGTON_MONUMENT)
        assert utm.zone == 18
        assert utm.letter == "S"
        assert utm.easting == pytest.approx(323487, abs=10)
        assert utm.northing == pytest.approx(4306483, abs=10)

    def test_central_meridian_easting(self):
        """Test points on the central meridian have easting 500000."""
        for zone in (1, 18, 31, 60):
            utm = geographic_to_utm(45.0, central_meridian(zone))
            assert utm.zone == zone
            assert utm.easting == pytest.approx(500000.0, abs=1e-6)

    def test_equator_northing(self):
        """Test the equator has northing 0."""
        utm = geographic_to_utm(0.0, 3.0)
        assert utm.northing == pytest.approx(0.0, abs=1e-6)

    def test_southern_northing_is_negative(self):
        """Test southern northings are hemisphere-relative by default."""
        utm = geographic_to_utm(-33.9, 18.4)
        assert utm.northing < 0
        assert utm.letter == "H"

    def test_false_northing(self):
        """Test false_northing adds 10,000,000m in the south only."""
        plain = geographic_to_utm(-33.9, 18.4)
        offset = geographic_to_utm(-33.9, 18.4, false_northing=True)
        assert offset.northing == pytest.approx(plain.northing + NORTHING_OFFSET)

        north = geographic_to_utm(33.9, 18.4, false_northing=True)
        assert north.northing == pytest.approx(geographic_to_utm(33.9, 18.4).northing)

    def test_forced_zone(self):
        """Test a supplied zone overrides the point's natural zone."""
        natural = geographic_to_utm(38.0, -77.5)
        forced = geographic_to_utm(38.0, -77.5, zone=17)
        assert natural.zone == 18
        assert forced.zone == 17
        assert forced.easting > natural.easting

    def test_forced_zone_at_antimeridian(self):
        """Test 180E computed in zone 60 lies east of its central meridian."""
        utm = geographic_to_utm(8.0, 180.0, zone=60)
        same = geographic_to_utm(8.0, -180.0, zone=60)
        assert 500000 < utm.easting < 900000
        assert utm.easting == pytest.approx(same.easting)

    def test_latitude_errors(self):
        """Test latitudes outside USNG raise InvalidLatitudeError."""
        with pytest.raises(InvalidLatitudeError):
            geographic_to_utm(84.5, 0.0)
        with pytest.raises(InvalidLatitudeError):
            geographic_to_utm(-80.5, 0.0)
        with pytest.raises(InvalidLatitudeError):
            geographic_to_utm(91.0, 0.0)

    def test_longitude_errors(self):
        """Test longitudes outside [-180, 360] raise InvalidLongitudeError."""
        with pytest.raises(InvalidLongitudeError):
            geographic_to_utm(0.0, 361.0)
        with pytest.raises(InvalidLongitudeError):
            geographic_to_utm(0.0, -181.0)

    def test_error_carries_coordinate(self):
        """Test errors keep the offending coordinate and are ValueErrors."""
        with pytest.raises(UsngError) as exc_info:
            geographic_to_utm(85.0, 12.0)
        assert isinstance(exc_info.value, ValueError)
        assert exc_info.value.lat == 85.0
        assert exc_info.value.lon == 12.0

    def test_nad27_differs_from_nad83(self):
        """Test the datum changes the result."""
        nad83 = geographic_to_utm(*WASHINGTON_MONUMENT)
        nad27 = ProjectionEngine(NAD27).geographic_to_utm(*WASHINGTON_MONUMENT)
        assert nad27.zone == nad83.zone
        assert abs(nad27.northing - nad83.northing) > 1.0


class TestInverseProjection:
    """Tests for UTM to geographic conversion."""

    @pytest.mark.parametrize("lat", [-79.5, -45.0, -10.0, 0.0, 12.5, 38.8895, 60.0, 83.5])
    @pytest.mark.parametrize("offset", [-2.9, -1.0, 0.0, 1.5, 2.9])
    def test_round_trip(self, lat, offset):
        """Test forward then inverse reproduces lat/lon to 1e-6 degrees."""
        lon = central_meridian(14) + offset
        utm = geographic_to_utm(lat, lon)
        point = utm_to_geographic(utm.northing, utm.easting, utm.zone)
        assert point.lat == pytest.approx(lat, abs=1e-6)
        assert point.lon == pytest.approx(lon, abs=1e-6)

    def test_round_trip_nad27(self):
        """Test the round trip on Clarke 1866."""
        engine = ProjectionEngine(NAD27)
        utm = engine.geographic_to_utm(45.5, -122.7)
        point = engine.utm_to_geographic(utm.northing, utm.easting, utm.zone)
        assert point.lat == pytest.approx(45.5, abs=1e-6)
        assert point.lon == pytest.approx(-122.7, abs=1e-6)

    def test_false_northing_round_trip(self):
        """Test the false northing is removed for southern bands."""
        utm = geographic_to_utm(-33.9, 18.4, false_northing=True)
        point = utm_to_geographic(utm.northing, utm.easting, utm.zone, utm.letter, false_northing=True)
        assert point.lat == pytest.approx(-33.9, abs=1e-6)
        assert point.lon == pytest.approx(18.4, abs=1e-6)

    def test_false_northing_ignored_in_north(self):
        """Test northern bands keep their northing."""
        utm = geographic_to_utm(33.9, 18.4)
        point = utm_to_geographic(utm.northing, utm.easting, utm.zone, utm.letter, false_northing=True)
        assert point.lat == pytest.approx(33.9, abs=1e-6)

    def test_array_matches_scalar(self):
        """Test the vectorized inverse agrees with the scalar one."""
        eastings = np.array([300000.0, 450000.0, 500000.0, 620000.0])
        lats, lons = DEFAULT_ENGINE.utm_to_geographic_array(4300000.0, eastings, 18)
        assert lats.shape == eastings.shape
        for lat, lon, easting in zip(lats, lons, eastings):
            point = utm_to_geographic(4300000.0, easting, 18)
            assert lat == pytest.approx(point.lat, abs=1e-12)
            assert lon == pytest.approx(point.lon, abs=1e-12)

    def test_normalize_longitude(self):
        """Test longitudes wrap into [-180, 180)."""
        assert normalize_longitude(180.0) == -180.0
        assert normalize_longitude(190.0) == pytest.approx(-170.0)
        assert normalize_longitude(-77.0) == pytest.approx(-77.0)
        assert normalize_longitude(360.0) == pytest.approx(0.0)


class TestReferenceComparison:
    """Tests comparing the series with PROJ."""

    @pytest.mark.parametrize("lat,lon", [
        (38.8895, -77.0352),
        (-33.9, 20.0),
        (60.0, 10.0),
        (78.0, 16.0),
        (0.5, -98.0),
    ])
    def test_series_matches_proj(self, lat, lon):
        """Test deviation from PROJ stays below 10cm near the central meridian."""
        assert reference_deviation(DEFAULT_ENGINE, lat, lon) < 0.1

    def test_series_matches_proj_nad27(self):
        """Test the Clarke 1866 series against PROJ."""
        assert reference_deviation(ProjectionEngine(NAD27), 45.5, -122.7) < 0.1

    def test_epsg_south_uses_false_northing(self):
        """Test the southern EPSG zone agrees with false-northing output."""
        utm = geographic_to_utm(-33.9, 20.0, false_northing=True)
        transformer = Transformer.from_crs("EPSG:4326", f"EPSG:327{utm.zone:02d}", always_xy=True)
        easting, northing = transformer.transform(20.0, -33.9)
        assert easting == pytest.approx(utm.easting, abs=0.1)
        assert northing == pytest.approx(utm.northing, abs=0.1)


class TestGridSquareLetters:
    """Tests for 100km square identifiers."""

    def test_find_set(self):
        """Test letter sets repeat every six zones."""
        assert [find_set(z) for z in range(1, 13)] == [1, 2, 3, 4, 5, 6, 1, 2, 3, 4, 5, 6]
        assert find_set(60) == 6

    def test_washington_square(self):
        """Test the square identifier of the Washington Monument."""
        assert grid_square_letters(18, 4306483, 323487) == "UJ"

    @pytest.mark.parametrize("lat,lon", [
        WASHINGTON_MONUMENT,
        (51.5007, -0.1246),
        (-33.8568, 151.2153),
        (35.6586, 139.7454),
        (-22.9519, -43.2105),
        (47.6205, -122.3493),
    ])
    def test_matches_mgrs(self, lat, lon):
        """Test zone, band and square letters agree with the mgrs package."""
        reference = mgrs_reference(lat, lon)
        assert to_usng(lat, lon).replace(" ", "")[:5] == reference[:5]


class TestToUsng:
    """Tests for USNG reference formatting."""

    def test_full_precision_format(self):
        """Test the default five digit reference."""
        reference = to_usng(*WASHINGTON_MONUMENT)
        assert re.fullmatch(r"18S UJ \d{5} \d{5}", reference)

    def test_precision_digits(self):
        """Test each precision gives that many digits per axis."""
        for precision in range(1, 6):
            reference = to_usng(*WASHINGTON_MONUMENT, precision=precision)
            assert re.fullmatch(rf"18S UJ \d{{{precision}}} \d{{{precision}}}", reference)

    def test_precision_truncates(self):
        """Test lower precisions are prefixes of the full reference digits."""
        full = to_usng(*WASHINGTON_MONUMENT).split()
        short = to_usng(*WASHINGTON_MONUMENT, precision=2).split()
        assert short[2] == full[2][:2]
        assert short[3] == full[3][:2]

    def test_precision_zero(self):
        """Test precision 0 gives only the square identifier."""
        assert to_usng(*WASHINGTON_MONUMENT, precision=0) == "18S UJ"

    def test_invalid_precision(self):
        """Test precision outside 0..5 raises ValueError."""
        with pytest.raises(ValueError):
            to_usng(*WASHINGTON_MONUMENT, precision=6)
        with pytest.raises(ValueError):
            to_usng(*WASHINGTON_MONUMENT, precision=-1)

    def test_southern_hemisphere(self):
        """Test southern references use the false northing."""
        reference = to_usng(-33.8568, 151.2153)
        assert reference.startswith("56H")

    def test_outside_domain(self):
        """Test coordinates outside USNG raise UsngError."""
        with pytest.raises(UsngError):
            to_usng(85.0, 0.0)
