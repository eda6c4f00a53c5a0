"""Shared fakes for the saferoute test suite.

Nothing here touches the network: the risk backend, the mapping provider
and the map widget are all replaced by small in-memory doubles.
"""

import asyncio
from typing import Dict, List, Optional

import pytest

from saferoute.clients import ProviderRoute, ServerRoute
from saferoute.errors import NetworkError
from saferoute.models import BoundingBox, Coordinate
from saferoute.polyline import encode


def line(*pairs) -> List[Coordinate]:
    """Build a geometry from (lng, lat) pairs."""
    return [Coordinate(lng=lng, lat=lat) for lng, lat in pairs]


def provider_route(summary: str, *pairs) -> ProviderRoute:
    return ProviderRoute(encoded_geometry=encode(line(*pairs)), summary=summary)


class FakeBackend:
    def __init__(self):
        self.scores: Dict[str, float] = {}
        self.fail_on_call: Optional[int] = None
        self.score_calls: List[List[Coordinate]] = []
        self.server_routes: List[ServerRoute] = []
        self.directions_error: Optional[Exception] = None
        self.directions_calls = 0
        self.heatmap_samples = []
        self.heatmap_error: Optional[Exception] = None
        self.heatmap_calls: List[BoundingBox] = []
        # geometries whose first vertex is in here wait for `gate` before scoring
        self.blocked_starts = set()
        self.gate = None

    async def score_geometry(self, geometry, lookback_days=90):
        self.score_calls.append(list(geometry))
        call_no = len(self.score_calls)
        if self.gate is not None and geometry[0] in self.blocked_starts:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.fail_on_call is not None and call_no == self.fail_on_call:
            raise NetworkError("score-geometry exploded", status_code=500)
        score = self.scores.get(geometry[0].to_param(), 0.1)
        return score, 7

    async def fetch_directions(self, start, end, lookback_days=90):
        self.directions_calls += 1
        await asyncio.sleep(0)
        if self.directions_error is not None:
            raise self.directions_error
        return list(self.server_routes)

    async def fetch_heatmap(self, bbox, lookback_days=90, tile_size_meters=None):
        self.heatmap_calls.append(bbox)
        await asyncio.sleep(0)
        if self.heatmap_error is not None:
            raise self.heatmap_error
        return list(self.heatmap_samples)


class FakeProvider:
    def __init__(self, routes: Optional[Dict[str, List[ProviderRoute]]] = None, error: Optional[Exception] = None):
        self.routes = routes or {}
        self.error = error
        self.calls = []

    async def route(self, origin, destination, mode="driving", alternatives=True):
        self.calls.append((origin, destination, mode, alternatives))
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.routes.get(origin.to_param(), [])


class FakeHost:
    def __init__(self, supports_heatmap=True, zoom=13, bounds=None):
        self.supports_heatmap = supports_heatmap
        self.zoom = zoom
        self.bounds = bounds
        self.layers = {}
        self.listeners = {}
        self.overlays = {}
        self._next = 0

    def _id(self):
        self._next += 1
        return self._next

    def get_bounds(self):
        return self.bounds

    def get_zoom(self):
        return self.zoom

    def add_heatmap_layer(self, points, radius, gradient):
        handle = self._id()
        self.layers[handle] = {"points": list(points), "radius": radius, "gradient": gradient}
        return handle

    def set_layer_radius(self, layer, radius):
        self.layers[layer]["radius"] = radius

    def remove_layer(self, layer):
        del self.layers[layer]

    def add_zoom_listener(self, callback):
        handle = self._id()
        self.listeners[handle] = callback
        return handle

    def remove_listener(self, listener):
        del self.listeners[listener]

    def set_zoom(self, zoom):
        self.zoom = zoom
        for cb in list(self.listeners.values()):
            cb(zoom)

    def add_polyline(self, path, color, weight):
        handle = self._id()
        self.overlays[handle] = ("polyline", path, color, weight)
        return handle

    def add_marker(self, position):
        handle = self._id()
        self.overlays[handle] = ("marker", position)
        return handle

    def remove_overlay(self, overlay):
        del self.overlays[overlay]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def host():
    return FakeHost()
