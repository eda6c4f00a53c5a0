from typing import List, Optional, Sequence, Tuple

from .models import BoundingBox, Coordinate, RoutePreviewImage


def project(coord: Coordinate, bbox: BoundingBox, width: float, height: float) -> Tuple[float, float]:
    """
    Map a coordinate into a width x height viewport covering bbox.

    North is up, so y grows as latitude falls. A zero-span axis is treated
    as a span of 1. Nothing is clamped: points outside bbox land outside
    the viewport.
    """
    span_lng = (bbox.max_lng - bbox.min_lng) or 1
    span_lat = (bbox.max_lat - bbox.min_lat) or 1
    x = (coord.lng - bbox.min_lng) / span_lng * width
    y = (1 - (coord.lat - bbox.min_lat) / span_lat) * height
    return x, y


# Route preview: 100x100 viewBox, 1 unit margin on every side
PREVIEW_SIZE = 100.0
PREVIEW_MARGIN = 1.0
PREVIEW_MIN_SPAN = 0.0001
RISKY_SCORE = 0.25


def _preview_xy(coord: Coordinate, bbox: BoundingBox) -> Tuple[float, float]:
    inner = PREVIEW_SIZE - 2 * PREVIEW_MARGIN
    dx = (bbox.max_lng - bbox.min_lng) or PREVIEW_MIN_SPAN
    dy = (bbox.max_lat - bbox.min_lat) or PREVIEW_MIN_SPAN
    x = (coord.lng - bbox.min_lng) / dx * inner + PREVIEW_MARGIN
    y = PREVIEW_SIZE - PREVIEW_MARGIN - (coord.lat - bbox.min_lat) / dy * inner
    return x, y


def preview_path(geometry: Sequence[Coordinate], score: Optional[float] = None) -> Optional[RoutePreviewImage]:
    """Build the static SVG preview of a route, used when no map widget is available."""
    if not geometry:
        return None
    bbox = BoundingBox.envelope(geometry)
    points: List[Tuple[float, float]] = [_preview_xy(c, bbox) for c in geometry]
    path = " ".join(
        f"{'M' if i == 0 else 'L'} {x:.2f} {y:.2f}" for i, (x, y) in enumerate(points)
    )
    color = "#f87171" if score is not None and score >= RISKY_SCORE else "#34d399"
    return RoutePreviewImage(path=path, start=points[0], end=points[-1], color=color)
