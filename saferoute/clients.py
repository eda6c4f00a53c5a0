"""
HTTP clients for the risk backend and the mapping providers.

The risk backend exposes three endpoints under SAFEROUTE_API_URL:
- GET  /reports/heatmap          weighted danger/safety samples in a bbox
- GET  /reports/directions       server-computed, already scored routes
- POST /reports/score-geometry   risk score of one decoded route geometry

Mapping providers turn (origin, destination) into encoded route polylines.
Google Directions is preferred when a key is configured, OpenRouteService
otherwise; with neither the provider reports itself as unavailable.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from pydantic import BaseModel

from . import config
from .errors import CapabilityError, CapabilityUnavailable, DataError, NetworkError
from .models import BoundingBox, Coordinate, HeatmapSample

logger = logging.getLogger(__name__)


def _error_message(resp: httpx.Response, fallback: str) -> str:
    """Prefer the backend's structured `message` field over the raw body."""
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        msg = data.get("message")
        if not msg and isinstance(data.get("error"), dict):
            msg = data["error"].get("message")
        elif not msg and isinstance(data.get("error"), str):
            msg = data["error"]
        if msg:
            return str(msg)
    return f"{fallback} (HTTP {resp.status_code})"


def _parse_coordinate(raw: Any) -> Coordinate:
    if isinstance(raw, dict):
        return Coordinate(lng=float(raw["lng"]), lat=float(raw["lat"]))
    lng, lat = raw
    return Coordinate(lng=float(lng), lat=float(lat))


class ServerRoute(BaseModel):
    geometry: List[Coordinate]
    summary: str
    score: float = 0.0
    tiles_evaluated: int = 0


class RiskBackend:
    def __init__(
        self,
        base_url: str = config.SAFEROUTE_API_URL,
        timeout: float = config.HTTP_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _request(self, method: str, path: str, what: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        async with self._client() as client:
            try:
                resp = await client.request(method, url, **kwargs)
            except httpx.HTTPError as e:
                raise NetworkError(f"{what} failed: {e}") from e
        if resp.status_code != 200:
            raise NetworkError(_error_message(resp, f"{what} failed"), status_code=resp.status_code)
        try:
            return resp.json()
        except ValueError as e:
            raise DataError(f"{what} returned invalid JSON") from e

    async def fetch_heatmap(
        self,
        bbox: BoundingBox,
        lookback_days: int = config.LOOKBACK_DAYS,
        tile_size_meters: Optional[float] = None,
    ) -> List[HeatmapSample]:
        params: Dict[str, Any] = {"bbox": bbox.to_param(), "days": lookback_days}
        if tile_size_meters:
            params["tileSizeMeters"] = tile_size_meters

        logger.info(f"[HEATMAP] bbox={params['bbox']} days={lookback_days}")
        data = await self._request("GET", "/reports/heatmap", "Heatmap fetch", params=params)

        items = data.get("items") if isinstance(data, dict) else None
        if items is None:
            return []
        if not isinstance(items, list):
            raise DataError("Heatmap items is not a list")
        try:
            return [
                HeatmapSample(
                    centroid=_parse_coordinate(item["centroid"]),
                    danger_weight=float(item.get("dangerWeight") or 0),
                    safe_weight=float(item.get("safeWeight") or 0),
                )
                for item in items
            ]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise DataError(f"Malformed heatmap item: {e}") from e

    async def fetch_directions(
        self,
        start: Coordinate,
        end: Coordinate,
        lookback_days: int = config.LOOKBACK_DAYS,
    ) -> List[ServerRoute]:
        params = {"start": start.to_param(), "end": end.to_param(), "days": lookback_days}
        logger.info(f"[FALLBACK] Server directions {params['start']} → {params['end']}")
        data = await self._request("GET", "/reports/directions", "Server directions", params=params)

        routes = data.get("routes") if isinstance(data, dict) else None
        if routes is None:
            return []
        if not isinstance(routes, list):
            raise DataError("Server directions routes is not a list")
        parsed: List[ServerRoute] = []
        try:
            for idx, r in enumerate(routes):
                parsed.append(
                    ServerRoute(
                        geometry=[_parse_coordinate(p) for p in (r.get("geometry") or [])],
                        summary=r.get("name") or r.get("summary") or f"route-{idx}",
                        score=float(r.get("score") or 0),
                        tiles_evaluated=int(r.get("tilesEvaluated") or 0),
                    )
                )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise DataError(f"Malformed server route: {e}") from e
        return parsed

    async def score_geometry(
        self,
        geometry: Sequence[Coordinate],
        lookback_days: int = config.LOOKBACK_DAYS,
    ) -> Tuple[float, int]:
        body = {"geometry": [list(c.as_pair()) for c in geometry], "days": lookback_days}
        data = await self._request("POST", "/reports/score-geometry", "Geometry scoring", json=body)
        if not isinstance(data, dict):
            raise DataError("Geometry scoring returned a non-object payload")
        try:
            score = float(data.get("score") or 0)
            tiles = int(data.get("tilesEvaluated") or 0)
        except (TypeError, ValueError) as e:
            raise DataError(f"Malformed score payload: {e}") from e
        if score < 0 or tiles < 0:
            raise DataError(f"Negative score payload: score={score}, tiles={tiles}")
        return score, tiles


# ---- mapping providers ----


class ProviderRoute(BaseModel):
    encoded_geometry: Optional[str]
    summary: str


class GoogleDirectionsProvider:
    """Google Directions web service; returns the overview polyline of each alternative."""

    def __init__(
        self,
        api_key: str = config.GOOGLE_MAPS_API_KEY,
        base_url: str = config.GOOGLE_MAPS_BASE_URL,
        timeout: float = config.DIRECTIONS_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise CapabilityUnavailable("GOOGLE_MAPS_API_KEY not configured")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        mode: str = "driving",
        alternatives: bool = True,
    ) -> List[ProviderRoute]:
        # Google wants "lat,lng"
        params = {
            "origin": f"{origin.lat},{origin.lng}",
            "destination": f"{destination.lat},{destination.lng}",
            "mode": mode,
            "alternatives": "true" if alternatives else "false",
            "key": self.api_key,
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                resp = await client.get(f"{self.base_url}/directions/json", params=params)
            except httpx.HTTPError as e:
                raise CapabilityError(f"Directions request failed: {e}") from e

        if resp.status_code != 200:
            raise CapabilityError(f"Directions request failed: HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise CapabilityError("Directions response was not JSON") from e
        if not isinstance(data, dict):
            raise CapabilityError("Directions response was not an object")
        status = data.get("status")
        if status != "OK":
            raise CapabilityError(f"Directions request failed: {status}")

        try:
            return [
                ProviderRoute(
                    encoded_geometry=(r.get("overview_polyline") or {}).get("points"),
                    summary=r.get("summary") or f"route-{idx}",
                )
                for idx, r in enumerate(data.get("routes") or [])
            ]
        except (AttributeError, TypeError, ValueError) as e:
            raise CapabilityError(f"Malformed directions route: {e}") from e


class OpenRouteServiceProvider:
    """ORS v2 directions. The default (non-geojson) response carries encoded polylines."""

    PROFILES = {"driving": "driving-car", "walking": "foot-walking", "cycling": "cycling-regular"}

    def __init__(
        self,
        api_key: str = config.ORS_API_KEY,
        base_url: str = config.ORS_BASE_URL,
        timeout: float = config.DIRECTIONS_TIMEOUT_S,
        max_alternatives: int = config.MAX_ALTERNATIVES,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise CapabilityUnavailable("ORS_API_KEY not configured")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_alternatives = max_alternatives
        self._transport = transport

    async def route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        mode: str = "driving",
        alternatives: bool = True,
    ) -> List[ProviderRoute]:
        profile = self.PROFILES.get(mode, mode)
        body: dict = {"coordinates": [list(origin.as_pair()), list(destination.as_pair())]}
        if alternatives and self.max_alternatives > 1:
            body["alternative_routes"] = {
                "target_count": self.max_alternatives,
                "share_factor": 0.6,
                "weight_factor": 1.4,
            }
        headers = {"Authorization": self.api_key, "Content-Type": "application/json"}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                resp = await client.post(
                    f"{self.base_url}/v2/directions/{profile}", json=body, headers=headers
                )
            except httpx.HTTPError as e:
                raise CapabilityError(f"Routing failed: {e}") from e

        if resp.status_code != 200:
            raise CapabilityError(_error_message(resp, "Routing failed"))
        try:
            data = resp.json()
        except ValueError as e:
            raise CapabilityError("Routing response was not JSON") from e
        if not isinstance(data, dict):
            raise CapabilityError("Routing response was not an object")
        if "error" in data:
            raise CapabilityError(_error_message(resp, "ORS API error"))

        routes = []
        try:
            for idx, r in enumerate(data.get("routes") or []):
                summary = r.get("summary") or {}
                distance_km = (summary.get("distance") or 0) / 1000.0
                routes.append(
                    ProviderRoute(
                        encoded_geometry=r.get("geometry"),
                        summary=f"route-{idx} ({distance_km:.1f} km)",
                    )
                )
        except (AttributeError, TypeError, ValueError) as e:
            raise CapabilityError(f"Malformed ORS route: {e}") from e
        return routes


class UnavailableProvider:
    async def route(self, origin, destination, mode="driving", alternatives=True) -> List[ProviderRoute]:
        raise CapabilityUnavailable("No client-side directions provider configured")


def provider_from_config():
    """Pick the mapping provider the current configuration allows."""
    if config.GOOGLE_MAPS_API_KEY:
        return GoogleDirectionsProvider(api_key=config.GOOGLE_MAPS_API_KEY)
    if config.ORS_API_KEY:
        return OpenRouteServiceProvider(api_key=config.ORS_API_KEY)
    return UnavailableProvider()
