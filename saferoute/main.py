import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from saferoute import config
from saferoute.clients import RiskBackend, provider_from_config
from saferoute.endpoints import NAMED_PLACES, StaticDeviceLocation, check_endpoints
from saferoute.errors import SafeRouteError
from saferoute.heatmap import (
    DANGER,
    DANGER_GRADIENT,
    SAFE,
    SAFE_GRADIENT,
    build_weighted_points,
    danger_radius,
    fallback_circles,
    safe_radius,
)
from saferoute.models import (
    BoundingBox,
    HeatmapLayerResponse,
    HeatmapResponse,
    NamedPlace,
    RouteCandidateResponse,
    RouteSearchRequest,
    SearchPhase,
    SearchState,
    SearchStateResponse,
)
from saferoute.orchestrator import RouteSearch
from saferoute.preview import RoutePreview

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="SafeRoute", version="0.1.0")

# CORS: allow frontend dev server on localhost:3000, adjust as needed
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_backend() -> RiskBackend:
    return RiskBackend()


def get_provider():
    return provider_from_config()


def _to_response(state: SearchState) -> SearchStateResponse:
    selected = state.selected
    return SearchStateResponse(
        phase=state.phase,
        source=state.source,
        selected_id=selected.id if selected else None,
        center=state.center,
        error=state.error,
        routes=[
            RouteCandidateResponse(
                id=c.id,
                label=c.label,
                safety=c.safety_label,
                score=c.score,
                tiles_evaluated=c.tiles_evaluated,
                source=c.source,
                coordinates=c.geometry,
            )
            for c in state.candidates
        ],
        preview=RoutePreview().show(selected),
    )


@app.get("/api/places", response_model=List[NamedPlace])
async def list_places() -> List[NamedPlace]:
    return [NamedPlace(name=name, coordinate=coord) for name, coord in NAMED_PLACES.items()]


@app.post("/api/routes", response_model=SearchStateResponse)
async def find_routes(
    payload: RouteSearchRequest,
    backend: RiskBackend = Depends(get_backend),
    provider=Depends(get_provider),
) -> SearchStateResponse:
    """
    Find and score candidate routes between the requested endpoints.

    Form problems are rejected up front with 400 and never start a search.
    Otherwise the client path (provider directions + parallel scoring) is
    tried first and the backend's own directions are the fallback.
    """
    ok, reason = check_endpoints(payload)
    if not ok:
        raise HTTPException(status_code=400, detail=reason)

    search = RouteSearch(backend, provider)
    state = await search.run(payload, StaticDeviceLocation(payload.device_location))
    logger.info(f"[API_REQUEST] Search finished in phase {state.phase.value}, source={state.source}")

    if state.phase == SearchPhase.FAILED:
        raise HTTPException(status_code=502, detail=state.error or "Failed to find routes")
    return _to_response(state)


@app.get("/api/heatmap", response_model=HeatmapResponse)
async def get_heatmap(
    bbox: str = Query(..., description="minLon,minLat,maxLon,maxLat"),
    zoom: float = Query(13, ge=0, le=30),
    days: int = Query(config.LOOKBACK_DAYS, ge=1),
    tile_size_meters: Optional[float] = Query(None, alias="tileSizeMeters", gt=0),
    backend: RiskBackend = Depends(get_backend),
) -> HeatmapResponse:
    """
    Danger/safety heatmap for a viewport: both native layer specs and the
    fallback circles, so the caller can draw whichever its map supports.
    """
    try:
        box = BoundingBox.from_param(bbox)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid bbox: {e}")

    try:
        samples = await backend.fetch_heatmap(box, days, tile_size_meters)
    except SafeRouteError as e:
        raise HTTPException(status_code=502, detail=e.message)

    danger, safe = build_weighted_points(samples)
    layers = [
        HeatmapLayerResponse(
            channel=DANGER,
            radius=danger_radius(zoom),
            gradient=DANGER_GRADIENT,
            points=[tuple(p) for p in danger],
        ),
        HeatmapLayerResponse(
            channel=SAFE,
            radius=safe_radius(zoom),
            gradient=SAFE_GRADIENT,
            points=[tuple(p) for p in safe],
        ),
    ]
    return HeatmapResponse(
        bbox=box,
        zoom=zoom,
        samples=samples,
        layers=layers,
        fallback=fallback_circles(samples, box, zoom),
    )
