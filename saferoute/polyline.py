"""
Encoded polyline codec (Google's polyline algorithm).

Each vertex is stored as a latitude delta followed by a longitude delta,
zig-zag encoded and split into 5-bit chunks offset by 63. Decoding yields
Coordinates in (lng, lat) order.
"""

from typing import Iterable, List, Optional

from .errors import DecodeError
from .models import Coordinate


def _read_value(encoded: str, i: int) -> tuple:
    """Read one zig-zag encoded integer starting at index i. Returns (value, next_index)."""
    shift = 0
    result = 0
    while True:
        if i >= len(encoded):
            raise DecodeError(f"Polyline ends inside a value at offset {i}")
        byte_val = ord(encoded[i]) - 63
        if byte_val < 0 or byte_val > 0x3F:
            raise DecodeError(f"Invalid polyline character {encoded[i]!r} at offset {i}")
        i += 1
        result |= (byte_val & 0x1F) << shift
        shift += 5
        if not (byte_val & 0x20):
            break

    if result & 1:
        return ~(result >> 1), i
    return result >> 1, i


def decode(encoded: Optional[str], precision: int = 5) -> List[Coordinate]:
    """
    Decode a polyline string into a list of Coordinates.

    None or "" decode to an empty list. A string that stops halfway through
    a value or a vertex raises DecodeError.
    """
    if not encoded:
        return []

    inv = 1.0 / (10 ** precision)
    decoded: List[Coordinate] = []
    lat = 0
    lng = 0
    i = 0

    while i < len(encoded):
        dlat, i = _read_value(encoded, i)
        if i >= len(encoded):
            raise DecodeError("Polyline has a latitude without a matching longitude")
        dlng, i = _read_value(encoded, i)
        lat += dlat
        lng += dlng
        try:
            decoded.append(Coordinate(lng=lng * inv, lat=lat * inv))
        except ValueError as e:
            raise DecodeError(f"Polyline vertex out of range: {lng * inv}, {lat * inv}") from e

    return decoded


def _encode_value(value: int) -> str:
    value = ~(value << 1) if value < 0 else value << 1
    chunks = []
    while value >= 0x20:
        chunks.append(chr((0x20 | (value & 0x1F)) + 63))
        value >>= 5
    chunks.append(chr(value + 63))
    return "".join(chunks)


def encode(coords: Iterable[Coordinate], precision: int = 5) -> str:
    """Inverse of decode()."""
    factor = 10 ** precision
    out = []
    prev_lat = 0
    prev_lng = 0
    for c in coords:
        lat = int(round(c.lat * factor))
        lng = int(round(c.lng * factor))
        out.append(_encode_value(lat - prev_lat))
        out.append(_encode_value(lng - prev_lng))
        prev_lat, prev_lng = lat, lng
    return "".join(out)
