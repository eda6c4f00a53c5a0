"""
Dual-layer safety heatmap.

Samples carry a danger weight and a safety weight. Each channel becomes
its own layer so the two can be styled and toggled independently:

Native path: the map host draws weighted heat layers itself. We hand it
  two point sets and a radius that follows the zoom level; on zoom only
  the radius is re-applied, the point sets are kept.
Fallback path: no heat layer support, so every sample becomes up to two
  circles in a fixed 600x360 viewport, safety beneath danger. Circles are
  recomputed on zoom, following the host when there is one.

Whatever the path, rendering a new sample set or tearing down first
detaches everything the previous render attached to the host.
"""

import logging
from typing import Any, Callable, List, NamedTuple, Optional, Protocol, Sequence, Tuple

from . import config
from .errors import SafeRouteError
from .models import BoundingBox, Circle, HeatmapSample
from .projection import project

logger = logging.getLogger(__name__)

DANGER = "danger"
SAFE = "safe"

DANGER_GRADIENT = [
    "rgba(255,255,255,0)",
    "rgba(255,235,205,0.6)",
    "rgba(255,200,140,0.7)",
    "rgba(249,115,22,0.8)",
    "rgba(220,50,30,0.9)",
]
SAFE_GRADIENT = [
    "rgba(255,255,255,0)",
    "rgba(212,255,230,0.5)",
    "rgba(144,238,144,0.6)",
    "rgba(34,197,94,0.8)",
]

LEGEND = [
    (DANGER, "Danger (more incidents)", "linear-gradient(90deg, rgba(255,235,205,0.6), rgba(220,50,30,0.9))"),
    (SAFE, "Safe (positive reports)", "linear-gradient(90deg, rgba(212,255,230,0.6), rgba(34,197,94,0.9))"),
]

DEFAULT_ZOOM = 13
REFERENCE_ZOOM = 13

# native weights: (scale, floor)
DANGER_WEIGHT = (10.0, 0.1)
SAFE_WEIGHT = (8.0, 0.05)

FALLBACK_WIDTH = 600
FALLBACK_HEIGHT = 360
DANGER_FILL = "rgba(249,115,22,0.95)"
SAFE_FILL = "rgba(34,197,94,0.9)"


def danger_radius(zoom: float) -> float:
    return max(20.0, min(60.0, zoom * 3))


def safe_radius(zoom: float) -> float:
    return max(12.0, min(48.0, zoom * 2.2))


def zoom_scale(zoom: float) -> float:
    """Geometric growth around zoom 13, roughly matching how the native layer densifies."""
    return 1.15 ** (zoom - REFERENCE_ZOOM)


class WeightedPoint(NamedTuple):
    lng: float
    lat: float
    weight: float


def build_weighted_points(samples: Sequence[HeatmapSample]) -> Tuple[List[WeightedPoint], List[WeightedPoint]]:
    """Split samples into (danger, safe) point sets, dropping zero weights per channel."""
    d_scale, d_floor = DANGER_WEIGHT
    s_scale, s_floor = SAFE_WEIGHT
    danger = [
        WeightedPoint(s.centroid.lng, s.centroid.lat, max(d_floor, s.danger_weight * d_scale))
        for s in samples
        if s.danger_weight > 0
    ]
    safe = [
        WeightedPoint(s.centroid.lng, s.centroid.lat, max(s_floor, s.safe_weight * s_scale))
        for s in samples
        if s.safe_weight > 0
    ]
    return danger, safe


def fallback_circles(
    samples: Sequence[HeatmapSample],
    bbox: Optional[BoundingBox] = None,
    zoom: float = DEFAULT_ZOOM,
    width: float = FALLBACK_WIDTH,
    height: float = FALLBACK_HEIGHT,
) -> List[Circle]:
    """Circles in paint order: for each sample its safety circle, then its danger circle."""
    bbox = bbox or BoundingBox.envelope(s.centroid for s in samples)
    if bbox is None:
        return []
    scale = zoom_scale(zoom)
    circles: List[Circle] = []
    for s in samples:
        x, y = project(s.centroid, bbox, width, height)
        if s.safe_weight > 0:
            circles.append(
                Circle(
                    channel=SAFE,
                    cx=x,
                    cy=y,
                    r=(6 + s.safe_weight * 30) * scale,
                    opacity=min(0.85, 0.12 + s.safe_weight * 0.7),
                    fill=SAFE_FILL,
                )
            )
        if s.danger_weight > 0:
            circles.append(
                Circle(
                    channel=DANGER,
                    cx=x,
                    cy=y,
                    r=(6 + s.danger_weight * 30) * scale,
                    opacity=min(0.9, 0.18 + s.danger_weight * 0.85),
                    fill=DANGER_FILL,
                )
            )
    return circles


def render_svg(circles: Sequence[Circle], width: float = FALLBACK_WIDTH, height: float = FALLBACK_HEIGHT) -> str:
    body = "".join(
        f'<circle cx="{c.cx:.2f}" cy="{c.cy:.2f}" r="{c.r:.2f}" fill="{c.fill}" '
        f'opacity="{c.opacity:.3f}" data-channel="{c.channel}"/>'
        for c in circles
    )
    return (
        f'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 {width} {height}" '
        f'preserveAspectRatio="none">{body}</svg>'
    )


class MapHost(Protocol):
    """The bits of the map widget the heatmap and route preview need."""

    supports_heatmap: bool

    def get_bounds(self) -> Optional[BoundingBox]: ...

    def get_zoom(self) -> Optional[float]: ...

    def add_heatmap_layer(self, points: List[WeightedPoint], radius: float, gradient: List[str]) -> Any: ...

    def set_layer_radius(self, layer: Any, radius: float) -> None: ...

    def remove_layer(self, layer: Any) -> None: ...

    def add_zoom_listener(self, callback: Callable[[float], None]) -> Any: ...

    def remove_listener(self, listener: Any) -> None: ...

    def add_polyline(self, path: List[Tuple[float, float]], color: str, weight: int) -> Any: ...

    def add_marker(self, position: Tuple[float, float]) -> Any: ...

    def remove_overlay(self, overlay: Any) -> None: ...


def _host_zoom(host: Optional[MapHost]) -> float:
    if host is None:
        return DEFAULT_ZOOM
    zoom = host.get_zoom()
    return DEFAULT_ZOOM if zoom is None else zoom


class NativeHeatmap:
    def __init__(self, host: MapHost, danger: List[WeightedPoint], safe: List[WeightedPoint]):
        self.host = host
        self.danger_points = danger
        self.safe_points = safe
        zoom = _host_zoom(host)
        self.zoom = zoom
        self.danger_layer = host.add_heatmap_layer(danger, danger_radius(zoom), DANGER_GRADIENT)
        self.safe_layer = host.add_heatmap_layer(safe, safe_radius(zoom), SAFE_GRADIENT)
        self.listener = host.add_zoom_listener(self.apply_zoom)

    def apply_zoom(self, zoom: float) -> None:
        self.zoom = zoom
        if self.danger_layer is not None:
            self.host.set_layer_radius(self.danger_layer, danger_radius(zoom))
        if self.safe_layer is not None:
            self.host.set_layer_radius(self.safe_layer, safe_radius(zoom))

    def detach(self) -> None:
        if self.danger_layer is not None:
            self.host.remove_layer(self.danger_layer)
            self.danger_layer = None
        if self.safe_layer is not None:
            self.host.remove_layer(self.safe_layer)
            self.safe_layer = None
        if self.listener is not None:
            self.host.remove_listener(self.listener)
            self.listener = None


class FallbackHeatmap:
    def __init__(
        self,
        samples: Sequence[HeatmapSample],
        bbox: Optional[BoundingBox],
        zoom: float,
        host: Optional[MapHost] = None,
    ):
        self.host = host
        self.samples = list(samples)
        self.bbox = bbox or BoundingBox.envelope(s.centroid for s in self.samples)
        self.zoom = zoom
        self.circles = fallback_circles(self.samples, self.bbox, zoom)
        # hosts without heat layers still report zoom
        self.listener = host.add_zoom_listener(self.apply_zoom) if host is not None else None

    def apply_zoom(self, zoom: float) -> None:
        self.zoom = zoom
        self.circles = fallback_circles(self.samples, self.bbox, zoom)

    def svg(self) -> str:
        return render_svg(self.circles)

    def detach(self) -> None:
        if self.listener is not None:
            self.host.remove_listener(self.listener)
            self.listener = None
        self.samples = []
        self.circles = []


class HeatmapRenderer:
    def __init__(self, host: Optional[MapHost] = None):
        self.host = host
        self.current = None

    @property
    def native(self) -> bool:
        return self.host is not None and bool(getattr(self.host, "supports_heatmap", False))

    def render(self, samples: Sequence[HeatmapSample], bbox: Optional[BoundingBox] = None):
        """Replace whatever is on screen with the given samples."""
        self.detach()
        if self.native:
            danger, safe = build_weighted_points(samples)
            self.current = NativeHeatmap(self.host, danger, safe)
        else:
            self.current = FallbackHeatmap(samples, bbox, _host_zoom(self.host), self.host)
        return self.current

    def on_zoom(self, zoom: float) -> None:
        if self.current is not None:
            self.current.apply_zoom(zoom)

    def detach(self) -> None:
        if self.current is not None:
            self.current.detach()
            self.current = None


class HeatmapController:
    """
    Keeps the heatmap in step with the viewport.

    Every refresh() gets a generation number; a fetch that lands after a
    newer refresh started is dropped on arrival.
    """

    def __init__(
        self,
        backend,
        renderer: HeatmapRenderer,
        lookback_days: int = config.LOOKBACK_DAYS,
        tile_size_meters: Optional[float] = None,
    ):
        self.backend = backend
        self.renderer = renderer
        self.lookback_days = lookback_days
        self.tile_size_meters = tile_size_meters
        self._generation = 0
        self.samples: List[HeatmapSample] = []

    async def refresh(self, bbox: Optional[BoundingBox] = None) -> bool:
        """Fetch and render samples for bbox (or the host viewport). True when rendered."""
        self._generation += 1
        generation = self._generation

        if bbox is None and self.renderer.host is not None:
            bbox = self.renderer.host.get_bounds()
        if bbox is None:
            logger.info("[HEATMAP] No bounding box available, skipping fetch")
            return False

        try:
            samples = await self.backend.fetch_heatmap(bbox, self.lookback_days, self.tile_size_meters)
        except SafeRouteError as e:
            logger.warning(f"[HEATMAP] Fetch failed: {e.message}")
            return False

        if generation != self._generation:
            logger.info(f"[HEATMAP] Dropping superseded fetch #{generation}")
            return False

        self.samples = samples
        self.renderer.render(samples, bbox)
        return True

    def close(self) -> None:
        self._generation += 1
        self.renderer.detach()
        self.samples = []
