"""Error kinds raised by the route and heatmap core.

Every error is scoped to a single search or heatmap refresh; none of them
is fatal to the process.
"""

from typing import Optional


class SafeRouteError(Exception):
    """Base class for all saferoute errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SafeRouteError):
    """Bad or missing endpoints, endpoints too close, unparsable coordinates."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class DecodeError(SafeRouteError):
    """Raised when an encoded polyline is malformed."""

    pass


class CapabilityError(SafeRouteError):
    """Mapping-provider or device-location failure."""

    pass


class CapabilityUnavailable(CapabilityError):
    """The host environment does not offer the capability at all."""

    pass


class PermissionDenied(CapabilityError):
    pass


class LocationTimeout(CapabilityError):
    pass


class NetworkError(SafeRouteError):
    """Any failed call to the risk backend or a mapping provider."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DataError(SafeRouteError):
    """The backend answered, but the payload could not be understood."""

    pass
