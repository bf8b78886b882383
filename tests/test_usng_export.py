"""
Tests for usng_export module.

Run with: pytest tests/test_usng_export.py -v
"""

import json

import pytest
from shapely.geometry import shape

from usng_export import GRID_STYLES, make_to_svg, overlay_to_geojson, render_svg, write_geojson
from usng_overlay import GridOverlay, build_overlay
from usng_viewport import BoundingBox
from usng_zone_lines import GZD_GRID_INTERVAL


@pytest.fixture(scope="module")
def overlay():
    """100km grid and zone lines for central Texas."""
    return build_overlay(BoundingBox(30, 40, -100, -90), 8)


class TestGeoJson:
    """Tests for GeoJSON conversion."""

    def test_feature_counts(self, overlay):
        """Test one feature per line and per label."""
        collection = overlay_to_geojson(overlay)
        assert collection["type"] == "FeatureCollection"

        kinds = [f["properties"]["kind"] for f in collection["features"]]
        assert kinds.count("zone") == len(overlay.lines[GZD_GRID_INTERVAL])
        assert kinds.count("grid") == len(overlay.lines[100000])
        assert kinds.count("label") == len(overlay.labels)

    def test_lon_lat_order(self, overlay):
        """Test coordinates are written as (lon, lat)."""
        collection = overlay_to_geojson(overlay)
        zone_feature = next(f for f in collection["features"] if f["properties"]["kind"] == "zone")
        lon, lat = zone_feature["geometry"]["coordinates"][0]
        assert lon == -100
        assert lat == 30

    def test_geometries_parse(self, overlay):
        """Test every geometry is valid for shapely."""
        collection = overlay_to_geojson(overlay)
        for feature in collection["features"]:
            geom = shape(feature["geometry"])
            assert geom.geom_type in ("LineString", "Point")

    def test_line_properties(self, overlay):
        """Test grid line metadata is carried over."""
        collection = overlay_to_geojson(overlay)
        grid = next(f for f in collection["features"] if f["properties"]["kind"] == "grid")
        props = grid["properties"]
        assert props["interval"] == 100000
        assert props["orientation"] in ("ew", "ns")
        assert props["zone"] in (14, 15)
        assert props["value"] % 100000 == 0

    def test_collection_properties(self, overlay):
        """Test the request is recorded on the collection."""
        collection = overlay_to_geojson(overlay)
        assert collection["properties"] == {
            "bbox": [30, 40, -100, -90],
            "zoom": 8,
            "datum": "NAD83",
        }

    def test_write(self, overlay, tmp_path):
        """Test writing a GeoJSON file."""
        path = tmp_path / "grid.geojson"
        count = write_geojson(overlay, path)

        with open(path) as f:
            data = json.load(f)
        assert len(data["features"]) == count
        assert count == overlay.line_count + len(overlay.labels)


class TestSvg:
    """Tests for the SVG preview."""

    def test_transform(self, overlay):
        """Test the equirectangular mapping of the bbox corners."""
        to_svg, height = make_to_svg(overlay, 500)
        assert height == 500
        assert to_svg(-100, 40) == (0, 0)
        assert to_svg(-90, 30) == (pytest.approx(500), pytest.approx(500))

    def test_aspect_ratio(self):
        """Test height follows the bbox shape."""
        overlay = GridOverlay(bbox=BoundingBox(30, 35, -100, -90), zoom=8, datum="NAD83")
        _, height = make_to_svg(overlay, 1000)
        assert height == 500

    def test_empty_bbox(self):
        """Test a zero-height bbox cannot be rendered."""
        overlay = GridOverlay(bbox=BoundingBox(30, 30, -100, -90), zoom=8, datum="NAD83")
        with pytest.raises(ValueError):
            make_to_svg(overlay, 500)

    def test_antimeridian_transform(self):
        """Test a box crossing 180 degrees is drawn as one strip."""
        overlay = GridOverlay(bbox=BoundingBox(0, 10, 170, -170), zoom=6, datum="NAD83")
        to_svg, height = make_to_svg(overlay, 1000)
        assert height == 500
        assert to_svg(170, 10) == (0, 0)
        assert to_svg(180, 0) == (pytest.approx(500), pytest.approx(500))
        assert to_svg(-180, 0) == (pytest.approx(500), pytest.approx(500))
        assert to_svg(-175, 5) == (pytest.approx(750), pytest.approx(250))
        assert to_svg(-170, 0) == (pytest.approx(1000), pytest.approx(500))

    def test_antimeridian_render(self, tmp_path):
        """Test every line of a box crossing 180 degrees lands in the image."""
        overlay = build_overlay(BoundingBox(0, 10, 170, -170), 6)
        path = tmp_path / "grid.svg"
        count = render_svg(overlay, path, 1000)

        assert count == overlay.line_count
        to_svg, height = make_to_svg(overlay, 1000)
        for lines in overlay.lines.values():
            for line in lines:
                for p in line.points:
                    x, y = to_svg(p.lon, p.lat)
                    assert -25 <= x <= 1025
                    assert -25 <= y <= height + 25

    def test_render(self, overlay, tmp_path):
        """Test rendering writes every line."""
        path = tmp_path / "grid.svg"
        count = render_svg(overlay, path, 500)

        assert count == overlay.line_count
        content = path.read_text()
        assert content.count("<polyline") == count
        assert 'id="zones"' in content
        assert 'id="grid_100000m"' in content
        assert overlay.labels[0].text in content

    def test_zone_style(self, overlay, tmp_path):
        """Test zone lines use the heaviest stroke."""
        path = tmp_path / "grid.svg"
        render_svg(overlay, path, 500)
        color, width = GRID_STYLES[GZD_GRID_INTERVAL]
        assert f'stroke="{color}"' in path.read_text()
        assert width == max(w for _, w in GRID_STYLES.values())
