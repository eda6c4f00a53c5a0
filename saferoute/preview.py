import logging
from typing import Optional

from .heatmap import MapHost
from .models import RouteCandidate
from .projection import RoutePreviewImage, preview_path

logger = logging.getLogger(__name__)

ROUTE_COLOR = "#FF5733"
ROUTE_WEIGHT = 5


class RoutePreview:
    """Draws the selected route and its start/end markers, replacing the previous drawing."""

    def __init__(self, host: Optional[MapHost] = None):
        self.host = host
        self.polyline = None
        self.start_marker = None
        self.end_marker = None

    def show(self, candidate: Optional[RouteCandidate]) -> Optional[RoutePreviewImage]:
        """
        Draw candidate on the host map. Without a host, return the static SVG
        preview instead.
        """
        self.clear()
        if candidate is None or not candidate.geometry:
            return None
        if self.host is None:
            return preview_path(candidate.geometry, candidate.score)

        path = [(c.lat, c.lng) for c in candidate.geometry]
        self.polyline = self.host.add_polyline(path, ROUTE_COLOR, ROUTE_WEIGHT)
        self.start_marker = self.host.add_marker(path[0])
        self.end_marker = self.host.add_marker(path[-1])
        logger.debug(f"[PREVIEW] Drew route {candidate.id} with {len(path)} vertices")
        return None

    def clear(self) -> None:
        if self.host is None:
            return
        for attr in ("polyline", "start_marker", "end_marker"):
            overlay = getattr(self, attr)
            if overlay is not None:
                self.host.remove_overlay(overlay)
                setattr(self, attr, None)
