"""
Endpoint resolution and validation.

validate_endpoints() is the single rule set used both for live validation
while the user edits the form and for the authoritative check at submit
time, so a form that looks valid never fails later for a different reason.
"""

import logging
import math
from typing import Dict, Optional, Protocol, Tuple

from .errors import (
    CapabilityUnavailable,
    PermissionDenied,
    ValidationError,
)
from .models import Coordinate, EndpointInput, Endpoints

logger = logging.getLogger(__name__)

DEFAULT_START_COORD = "75.7873,26.9124"
DEFAULT_END_COORD = "75.7970,26.9150"

# Named Jaipur places; names must match the ones seeded in the risk backend
NAMED_PLACES: Dict[str, Coordinate] = {
    "Jaipur Junction": Coordinate(lng=75.7878, lat=26.9196),
    "MI Road": Coordinate(lng=75.7960, lat=26.9190),
    "Badi Chaupar": Coordinate(lng=75.8215, lat=26.9235),
    "Sanganer": Coordinate(lng=75.7879, lat=26.8394),
    "C Scheme": Coordinate(lng=75.8060, lat=26.9193),
    "Rambagh Palace": Coordinate(lng=75.7877, lat=26.9050),
    "Vaishali Nagar": Coordinate(lng=75.7436, lat=26.9112),
    "Bapu Bazaar": Coordinate(lng=75.8260, lat=26.9239),
    "Tonk Phatak": Coordinate(lng=75.8090, lat=26.9128),
    "Station Road": Coordinate(lng=75.7927, lat=26.9179),
}

METERS_PER_DEGREE = 111320.0
MIN_SEPARATION_M = 5.0

REASON_MISSING = "both endpoints required"
REASON_INVALID = "invalid coordinates"
REASON_TOO_CLOSE = "endpoints too close"

DEVICE_TIMEOUT_MS = 10_000


def parse_coordinate(text: Optional[str]) -> Optional[Coordinate]:
    """Parse "lon,lat". Anything other than two in-range numbers gives None."""
    if not text or not isinstance(text, str):
        return None
    parts = text.split(",")
    if len(parts) != 2:
        return None
    try:
        lng, lat = (float(p.strip()) for p in parts)
    except ValueError:
        return None
    if not (math.isfinite(lng) and math.isfinite(lat)):
        return None
    if not (-180 <= lng <= 180 and -90 <= lat <= 90):
        return None
    return Coordinate(lng=lng, lat=lat)


def distance_m(a: Coordinate, b: Coordinate) -> float:
    """Equirectangular distance in meters; fine for points inside one city."""
    mean_lat = math.radians((a.lat + b.lat) / 2)
    dx = (a.lng - b.lng) * METERS_PER_DEGREE * math.cos(mean_lat)
    dy = (a.lat - b.lat) * METERS_PER_DEGREE
    return math.sqrt(dx * dx + dy * dy)


def _is_explicit(form: EndpointInput) -> Tuple[bool, bool]:
    start = (
        form.use_device_location
        or bool(form.named_start)
        or bool(form.raw_start and form.raw_start != DEFAULT_START_COORD)
    )
    end = bool(form.named_end) or bool(form.raw_end and form.raw_end != DEFAULT_END_COORD)
    return start, end


def _effective(form: EndpointInput) -> Tuple[Optional[str], Optional[str]]:
    start = form.raw_start if form.raw_start is not None else DEFAULT_START_COORD
    end = form.raw_end if form.raw_end is not None else DEFAULT_END_COORD
    if not form.use_device_location and form.named_start in NAMED_PLACES:
        start = NAMED_PLACES[form.named_start].to_param()
    if form.named_end in NAMED_PLACES:
        end = NAMED_PLACES[form.named_end].to_param()
    return start, end


def validate_endpoints(form: EndpointInput) -> Endpoints:
    """
    Resolve named places and check the endpoints.

    Raises ValidationError with one of REASON_MISSING, REASON_INVALID or
    REASON_TOO_CLOSE. When device location is requested the returned start
    is only provisional; resolve_endpoints() replaces it with the device fix.
    """
    start_explicit, end_explicit = _is_explicit(form)
    if not start_explicit or not end_explicit:
        raise ValidationError(REASON_MISSING)

    start_text, end_text = _effective(form)
    start = parse_coordinate(start_text)
    end = parse_coordinate(end_text)
    if start is None or end is None:
        raise ValidationError(REASON_INVALID)

    if distance_m(start, end) <= MIN_SEPARATION_M:
        raise ValidationError(REASON_TOO_CLOSE)

    return Endpoints(start=start, end=end)


def check_endpoints(form: EndpointInput) -> Tuple[bool, Optional[str]]:
    """Non-raising variant for live form validation."""
    try:
        validate_endpoints(form)
    except ValidationError as e:
        return False, e.reason
    return True, None


class DeviceLocation(Protocol):
    async def get_current_position(self, high_accuracy: bool, timeout_ms: int) -> Coordinate:
        """Single-shot position fix. Raises PermissionDenied, LocationTimeout or CapabilityError."""
        ...


class UnavailableDeviceLocation:
    async def get_current_position(self, high_accuracy: bool, timeout_ms: int) -> Coordinate:
        raise CapabilityUnavailable("Geolocation not supported")


class StaticDeviceLocation:
    """Device position reported by the caller, e.g. the browser posting its own fix."""

    def __init__(self, coordinate: Optional[Coordinate]):
        self.coordinate = coordinate

    async def get_current_position(self, high_accuracy: bool, timeout_ms: int) -> Coordinate:
        if self.coordinate is None:
            raise CapabilityUnavailable("Device location was requested but not provided")
        return self.coordinate


async def resolve_endpoints(form: EndpointInput, device: Optional[DeviceLocation] = None) -> Endpoints:
    """
    Validate the form and, when requested, replace the start with the device position.

    ValidationError is raised for form problems; CapabilityError (with a
    human-readable message) when the device location cannot be obtained.
    """
    endpoints = validate_endpoints(form)
    if not form.use_device_location:
        return endpoints

    device = device or UnavailableDeviceLocation()
    try:
        start = await device.get_current_position(high_accuracy=True, timeout_ms=DEVICE_TIMEOUT_MS)
    except PermissionDenied as e:
        raise PermissionDenied(
            "User denied Geolocation. Please allow location access in your browser settings."
        ) from e
    logger.info(f"[LOCATION] Device start resolved to {start.lng:.5f},{start.lat:.5f}")

    if distance_m(start, endpoints.end) <= MIN_SEPARATION_M:
        raise ValidationError(REASON_TOO_CLOSE)
    return Endpoints(start=start, end=endpoints.end)
