"""
usng_export.py - Write a USNG overlay as GeoJSON or an SVG preview

GeoJSON coordinates are (lon, lat) as the format requires. The SVG preview
uses a plain equirectangular mapping of the overlay's bounding box.
"""

import json
from pathlib import Path
from typing import Any, Callable, Dict, Tuple

import svgwrite
from shapely.geometry import LineString, Point, mapping

from usng_overlay import GridOverlay
from usng_zone_lines import GZD_GRID_INTERVAL

# Stroke (color, width in px) per interval
GRID_STYLES: Dict[int, Tuple[str, float]] = {
    GZD_GRID_INTERVAL: ("black", 4),
    100000: ("red", 3),
    10000: ("green", 2),
    1000: ("black", 1),
}
DEFAULT_STYLE = ("gray", 1)

LABEL_FONT_SIZE_PX = 12
LABEL_COLOR = "red"


def overlay_to_geojson(overlay: GridOverlay) -> Dict[str, Any]:
    """Convert an overlay to a GeoJSON FeatureCollection.

    One LineString feature per drawable line, then one Point feature per
    square label.
    """
    features = []

    for interval, lines in overlay.lines.items():
        for line in lines:
            if line.is_empty:
                continue
            geom = LineString([(p.lon, p.lat) for p in line.points])
            features.append({
                "type": "Feature",
                "geometry": mapping(geom),
                "properties": {
                    "kind": "zone" if interval == GZD_GRID_INTERVAL else "grid",
                    "interval": interval,
                    "orientation": line.orientation,
                    "value": line.value,
                    "zone": line.zone,
                    "band": line.band,
                },
            })

    for label in overlay.labels:
        features.append({
            "type": "Feature",
            "geometry": mapping(Point(label.position.lon, label.position.lat)),
            "properties": {"kind": "label", "text": label.text},
        })

    return {
        "type": "FeatureCollection",
        "features": features,
        "properties": {
            "bbox": list(overlay.bbox.as_tuple()),
            "zoom": overlay.zoom,
            "datum": overlay.datum,
        },
    }


def write_geojson(overlay: GridOverlay, path: Path) -> int:
    """Write an overlay to a GeoJSON file.

    Returns:
        Number of features written
    """
    collection = overlay_to_geojson(overlay)
    with open(path, "w") as f:
        json.dump(collection, f)
    return len(collection["features"])


def make_to_svg(overlay: GridOverlay, width_px: int) -> Tuple[Callable, int]:
    """Build the lon/lat -> pixel transform for an overlay.

    A box crossing the antimeridian (west > east) is drawn as one strip, with
    longitudes past 180 shifted by 360 degrees.

    Returns:
        Tuple of (transform function, image height in pixels)
    """
    south, north, west, east = overlay.bbox.as_tuple()
    crosses_antimeridian = west > east
    lon_span = east - west + 360 if crosses_antimeridian else east - west
    lat_span = north - south
    if lon_span <= 0 or lat_span <= 0:
        raise ValueError(f"Cannot render an empty bounding box {overlay.bbox.as_tuple()}")

    scale = width_px / lon_span
    height_px = max(1, int(round(lat_span * scale)))

    def to_svg(lon: float, lat: float) -> Tuple[float, float]:
        offset = lon - west
        if crosses_antimeridian:
            # Points just outside either edge stay next to it
            offset %= 360
            if offset > (lon_span + 360) / 2:
                offset -= 360
        # SVG y grows downward
        return (offset * scale, (north - lat) * scale)

    return to_svg, height_px


def render_svg(overlay: GridOverlay, path: Path, width_px: int = 1024) -> int:
    """Render an overlay as an SVG preview.

    Coarser intervals are drawn last so zone lines stay on top.

    Args:
        overlay: Overlay to draw
        path: Output SVG file
        width_px: Image width; height follows the bbox aspect ratio

    Returns:
        Number of polylines rendered
    """
    to_svg, height_px = make_to_svg(overlay, width_px)

    dwg = svgwrite.Drawing(
        str(path),
        size=(f"{width_px}px", f"{height_px}px"),
        viewBox=f"0 0 {width_px} {height_px}",
    )
    clip_path = dwg.defs.add(dwg.clipPath(id="viewport-clip"))
    clip_path.add(dwg.rect((0, 0), (width_px, height_px)))

    count = 0
    for interval in sorted(overlay.lines):
        color, width = GRID_STYLES.get(interval, DEFAULT_STYLE)
        name = "zones" if interval == GZD_GRID_INTERVAL else f"grid_{interval}m"
        layer = dwg.g(id=name, clip_path="url(#viewport-clip)")

        for line in overlay.lines[interval]:
            if line.is_empty:
                continue
            layer.add(dwg.polyline(
                points=[to_svg(p.lon, p.lat) for p in line.points],
                stroke=color,
                stroke_width=width,
                fill="none",
            ))
            count += 1
        dwg.add(layer)

    if overlay.labels:
        labels = dwg.g(id="labels", font_size=LABEL_FONT_SIZE_PX, fill=LABEL_COLOR,
                       font_family="sans-serif", text_anchor="middle")
        for label in overlay.labels:
            labels.add(dwg.text(label.text, insert=to_svg(label.position.lon, label.position.lat)))
        dwg.add(labels)

    dwg.save()
    return count
