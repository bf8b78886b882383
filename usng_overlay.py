"""
usng_overlay.py - Assemble a full USNG overlay for a map view

Combines the GZD boundary lines and the per-cell grid lines of every
requested interval into one collection keyed by interval.

Usage:
    from usng_overlay import GridConfig, build_overlay
    from usng_viewport import BoundingBox

    overlay = build_overlay(BoundingBox(30, 40, -100, -90), zoom=13)
    for interval, lines in overlay.lines.items():
        print(interval, len(lines))
"""

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from usng_grids import GridLabel, GridLine, generate_grid
from usng_projection import ProjectionEngine, UsngError, get_ellipsoid
from usng_viewport import BoundingBox, ViewPort, split_antimeridian
from usng_zone_lines import GZD_GRID_INTERVAL, zone_lines

logger = logging.getLogger(__name__)

# === Configuration defaults ===
DEFAULT_DATUM = "NAD83"
SUPPORTED_INTERVALS = (100000, 10000, 1000)

# Zoom thresholds (exclusive) at which each layer is drawn
ZOOM_1K = 12
ZOOM_10K = 9
ZOOM_100K = 5
ZOOM_ZONE_LINES = 2


@dataclass
class GridConfig:
    """Settings for one overlay render.

    Attributes:
        datum: "NAD83" (GRS80) or "NAD27" (Clarke 1866)
        intervals: Grid intervals in meters to draw, or None to choose them
            from the zoom level
        include_zone_lines: Draw the GZD boundary lines
        margin_deg: Push the viewport out by this many degrees
        max_workers: Worker threads for cell computation (1 = serial)
        drop_empty: Leave out lines with fewer than two points
    """
    datum: str = DEFAULT_DATUM
    intervals: Optional[Tuple[int, ...]] = None
    include_zone_lines: bool = True
    margin_deg: float = 0.0
    max_workers: int = 1
    drop_empty: bool = True

    engine: ProjectionEngine = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        self.datum = self.datum.upper()
        self.engine = ProjectionEngine(get_ellipsoid(self.datum))

        if self.intervals is not None:
            self.intervals = tuple(int(i) for i in self.intervals)
            unsupported = [i for i in self.intervals if i not in SUPPORTED_INTERVALS]
            if unsupported:
                raise ValueError(
                    f"Unsupported grid intervals {unsupported}; choose from {SUPPORTED_INTERVALS}"
                )
        if self.margin_deg < 0:
            raise ValueError(f"margin_deg must not be negative, got {self.margin_deg}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")

    def resolve_intervals(self, zoom: int) -> Tuple[int, ...]:
        """Intervals to draw at a zoom level."""
        if self.intervals is not None:
            return self.intervals
        return intervals_for_zoom(zoom)


def load_config(path: Path) -> GridConfig:
    """Load a GridConfig from a JSON file.

    Keys match the GridConfig attributes; all are optional.

    Raises:
        ValueError: unknown keys or invalid values
    """
    with open(path) as f:
        data = json.load(f)

    allowed = {fld.name for fld in fields(GridConfig) if fld.init}
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"Unknown config keys in {path}: {sorted(unknown)}")

    if data.get("intervals") is not None:
        data["intervals"] = tuple(data["intervals"])
    return GridConfig(**data)


def intervals_for_zoom(zoom: int) -> Tuple[int, ...]:
    """Grid intervals drawn at a zoom level, finest first."""
    intervals = []
    if zoom > ZOOM_1K:
        intervals.append(1000)
    if zoom > ZOOM_10K:
        intervals.append(10000)
    if zoom > ZOOM_100K:
        intervals.append(100000)
    return tuple(intervals)


@dataclass
class GridOverlay:
    """Clipped grid lines of one render pass.

    Attributes:
        bbox: Requested map view
        zoom: Zoom level the lines were sampled for
        datum: Datum of the projection engine
        lines: Grid lines per interval; GZD_GRID_INTERVAL holds zone lines
        labels: 100km square identifiers
        skipped_cells: GZD cells left out of at least one interval because
            they fell outside USNG; each cell counts once
    """
    bbox: BoundingBox
    zoom: int
    datum: str
    lines: Dict[int, List[GridLine]] = field(default_factory=dict)
    labels: List[GridLabel] = field(default_factory=list)
    skipped_cells: int = 0

    @property
    def line_count(self) -> int:
        """Total number of lines over all intervals."""
        return sum(len(lines) for lines in self.lines.values())

    def all_lines(self) -> List[GridLine]:
        """Lines of every interval, in drawing order."""
        return [line for lines in self.lines.values() for line in lines]


def build_overlay(
    bbox: BoundingBox,
    zoom: int,
    config: Optional[GridConfig] = None
) -> GridOverlay:
    """Build the USNG overlay for a map view.

    Boxes crossing the antimeridian are split and decomposed separately. A
    viewport or cell outside the USNG domain is skipped, never fatal.

    Args:
        bbox: Map view bounds in degrees
        zoom: Map zoom level
        config: Render settings (defaults to GridConfig())

    Returns:
        GridOverlay with finer intervals first and zone lines last
    """
    if config is None:
        config = GridConfig()

    overlay = GridOverlay(bbox=bbox, zoom=zoom, datum=config.datum)
    intervals = config.resolve_intervals(zoom)

    for part in split_antimeridian(bbox):
        try:
            viewport = ViewPort(part, config.margin_deg)
        except UsngError as e:
            logger.warning("Skipping viewport %s: %s", part.as_tuple(), e)
            continue

        skipped = set()
        for interval in intervals:
            cells = generate_grid(viewport, zoom, interval, config.engine, config.max_workers)
            drawn = {cell.rectangle for cell in cells}
            skipped.update(rect for rect in viewport.rectangles if rect not in drawn)

            interval_lines = overlay.lines.setdefault(interval, [])
            for cell in cells:
                interval_lines.extend(_keep(cell.lines, config))
                overlay.labels.extend(cell.labels)
        overlay.skipped_cells += len(skipped)

        if config.include_zone_lines and zoom > ZOOM_ZONE_LINES:
            overlay.lines.setdefault(GZD_GRID_INTERVAL, []).extend(
                _keep(zone_lines(viewport), config)
            )

    logger.debug(
        "Overlay %s zoom %d (%s): %d lines, %d labels, %d cells skipped",
        bbox.as_tuple(), zoom, config.datum, overlay.line_count,
        len(overlay.labels), overlay.skipped_cells
    )
    return overlay


def _keep(lines: List[GridLine], config: GridConfig) -> List[GridLine]:
    if not config.drop_empty:
        return lines
    return [line for line in lines if not line.is_empty]
