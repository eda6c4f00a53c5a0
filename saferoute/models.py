from enum import Enum
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Coordinate(BaseModel):
    """WGS84 position. Longitude comes first everywhere in this package."""

    model_config = ConfigDict(frozen=True)

    lng: float = Field(ge=-180.0, le=180.0)
    lat: float = Field(ge=-90.0, le=90.0)

    def to_param(self) -> str:
        return f"{self.lng},{self.lat}"

    def as_pair(self) -> Tuple[float, float]:
        return (self.lng, self.lat)


class BoundingBox(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_lng: float
    min_lat: float
    max_lng: float
    max_lat: float

    @model_validator(mode="after")
    def _check_order(self) -> "BoundingBox":
        if self.min_lng > self.max_lng or self.min_lat > self.max_lat:
            raise ValueError("bounding box min must not exceed max")
        return self

    @classmethod
    def envelope(cls, coords: Iterable[Coordinate]) -> Optional["BoundingBox"]:
        """Min/max envelope of the given coordinates, None when there are none."""
        coords = list(coords)
        if not coords:
            return None
        lngs = [c.lng for c in coords]
        lats = [c.lat for c in coords]
        return cls(min_lng=min(lngs), min_lat=min(lats), max_lng=max(lngs), max_lat=max(lats))

    @classmethod
    def from_param(cls, value: str) -> "BoundingBox":
        parts = [float(p.strip()) for p in value.split(",")]
        if len(parts) != 4:
            raise ValueError("bbox needs four comma-separated numbers")
        return cls(min_lng=parts[0], min_lat=parts[1], max_lng=parts[2], max_lat=parts[3])

    def to_param(self) -> str:
        return f"{self.min_lng},{self.min_lat},{self.max_lng},{self.max_lat}"


# (upper bound, label); a score of exactly 0 means the backend had no reports
SAFETY_BANDS = (
    (0.05, "Very Safe"),
    (0.12, "Safe"),
    (0.25, "Moderate"),
)


def safety_label(score: float) -> str:
    """Map a risk score to its display label. Same table for client and server routes."""
    if score == 0:
        return "No data"
    for upper, label in SAFETY_BANDS:
        if score < upper:
            return label
    return "Risky"


class RouteSource(str, Enum):
    CLIENT = "client"
    SERVER = "server"


class RouteCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=0)
    geometry: List[Coordinate] = Field(default_factory=list)
    label: str
    score: Optional[float] = Field(default=None, ge=0.0)
    tiles_evaluated: Optional[int] = Field(default=None, ge=0)
    source: RouteSource

    @property
    def safety_label(self) -> Optional[str]:
        if self.score is None:
            return None
        return safety_label(self.score)


class HeatmapSample(BaseModel):
    model_config = ConfigDict(frozen=True)

    centroid: Coordinate
    danger_weight: float = Field(default=0.0, ge=0.0)
    safe_weight: float = Field(default=0.0, ge=0.0)


class SearchPhase(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    CLIENT_ATTEMPT = "client_attempt"
    SCORING_CANDIDATES = "scoring_candidates"
    SERVER_FALLBACK = "server_fallback"
    DONE = "done"
    FAILED = "failed"


class SearchState(BaseModel):
    """Working state of one search. A new search always starts from a fresh one."""

    phase: SearchPhase = SearchPhase.IDLE
    candidates: List[RouteCandidate] = Field(default_factory=list)
    selected: Optional[RouteCandidate] = None
    error: Optional[str] = None
    source: Optional[RouteSource] = None
    center: Optional[Coordinate] = None
    generation: int = 0


class EndpointInput(BaseModel):
    """Raw form input for a search, before any resolution."""

    named_start: Optional[str] = None
    named_end: Optional[str] = None
    use_device_location: bool = False
    raw_start: Optional[str] = None
    raw_end: Optional[str] = None


class Endpoints(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: Coordinate
    end: Coordinate


# ---- HTTP surface ----


class RouteSearchRequest(EndpointInput):
    device_location: Optional[Coordinate] = Field(
        default=None,
        description="Position reported by the caller's device; required when use_device_location is set.",
    )


class RouteCandidateResponse(BaseModel):
    id: int
    label: str
    safety: Optional[str]
    score: Optional[float]
    tiles_evaluated: Optional[int]
    source: RouteSource
    coordinates: List[Coordinate]


class RoutePreviewImage(BaseModel):
    """Static SVG preview of a route in a 100x100 viewBox."""

    path: str
    start: Tuple[float, float]
    end: Tuple[float, float]
    color: str


class SearchStateResponse(BaseModel):
    phase: SearchPhase
    source: Optional[RouteSource]
    selected_id: Optional[int]
    center: Optional[Coordinate]
    error: Optional[str]
    routes: List[RouteCandidateResponse]
    preview: Optional[RoutePreviewImage] = None


class NamedPlace(BaseModel):
    name: str
    coordinate: Coordinate


class HeatmapLayerResponse(BaseModel):
    channel: str
    radius: float
    gradient: List[str]
    points: List[Tuple[float, float, float]]


class Circle(BaseModel):
    """One fallback heatmap circle in viewport units."""

    channel: str
    cx: float
    cy: float
    r: float
    opacity: float
    fill: str


class HeatmapResponse(BaseModel):
    bbox: BoundingBox
    zoom: float
    samples: List[HeatmapSample]
    layers: List[HeatmapLayerResponse]
    fallback: List[Circle]
