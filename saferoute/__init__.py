"""Lowest-risk route finding and safety heatmaps for city maps."""

__version__ = "0.1.0"

from .heatmap import HeatmapController, HeatmapRenderer
from .orchestrator import RouteSearch
from .preview import RoutePreview

__all__ = ["HeatmapController", "HeatmapRenderer", "RoutePreview", "RouteSearch"]
