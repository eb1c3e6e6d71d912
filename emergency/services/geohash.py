"""Hierarchical geohash cells used to pre-filter donors by proximity.

A cell is a base-32 string; each extra character narrows the rectangle and a
prefix of a cell is its coarser parent. The ring expansion in
``cells_within_radius`` over-includes the square corners of the search area, so
callers must treat its output as a candidate superset, never a final answer.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Set, Union

from django.conf import settings
from geopy.distance import great_circle

from emergency.exceptions import InvalidCoordinate

LOGGER = logging.getLogger(__name__)

Number = Union[int, float, Decimal]

BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
_BITS = (16, 8, 4, 2, 1)
MAX_PRECISION = 12
KM_PER_DEGREE = 111.32

_NEIGHBORS = {
    "right": {"even": "bc01fg45238967deuvhjyznpkmstqrwx", "odd": "p0r21436x8zb9dcf5h7kjnmqesgutwvy"},
    "left": {"even": "238967debc01fg45kmstqrwxuvhjyznp", "odd": "14365h7k9dcfesgujnmqp0r2twvyx8zb"},
    "top": {"even": "p0r21436x8zb9dcf5h7kjnmqesgutwvy", "odd": "bc01fg45238967deuvhjyznpkmstqrwx"},
    "bottom": {"even": "14365h7k9dcfesgujnmqp0r2twvyx8zb", "odd": "238967debc01fg45kmstqrwxuvhjyznp"},
}

_BORDERS = {
    "right": {"even": "bcfguvyz", "odd": "prxz"},
    "left": {"even": "0145hjnp", "odd": "028b"},
    "top": {"even": "prxz", "odd": "bcfguvyz"},
    "bottom": {"even": "028b", "odd": "0145hjnp"},
}


@dataclass(frozen=True)
class CellBounds:
    """Rectangle covered by a cell, with its center point."""

    cell: str
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    @property
    def latitude(self) -> float:
        return (self.min_lat + self.max_lat) / 2

    @property
    def longitude(self) -> float:
        return (self.min_lng + self.max_lng) / 2


def _as_float(value: Number, label: str) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise InvalidCoordinate(f"{label} must be a number, got {value!r}") from None
    if math.isnan(result) or math.isinf(result):
        raise InvalidCoordinate(f"{label} must be finite, got {value!r}")
    return result


def _check_precision(precision: int) -> int:
    if not isinstance(precision, int) or isinstance(precision, bool) or not 1 <= precision <= MAX_PRECISION:
        raise InvalidCoordinate(f"precision must be between 1 and {MAX_PRECISION}, got {precision!r}")
    return precision


def validate_cell(cell: str) -> str:
    if not isinstance(cell, str) or not cell or len(cell) > MAX_PRECISION:
        raise InvalidCoordinate(f"Not a valid geohash cell: {cell!r}")
    normalized = cell.strip().lower()
    if not normalized or any(ch not in BASE32 for ch in normalized):
        raise InvalidCoordinate(f"Not a valid geohash cell: {cell!r}")
    return normalized


def encode(lat: Number, lng: Number, precision: int = 5) -> str:
    """Encode a point into the cell of the requested precision."""

    latitude = _as_float(lat, "latitude")
    longitude = _as_float(lng, "longitude")
    if not -90.0 <= latitude <= 90.0:
        raise InvalidCoordinate(f"latitude {latitude} outside [-90, 90]")
    if not -180.0 <= longitude <= 180.0:
        raise InvalidCoordinate(f"longitude {longitude} outside [-180, 180]")
    _check_precision(precision)

    lat_range = [-90.0, 90.0]
    lng_range = [-180.0, 180.0]
    chars = []
    is_even = True
    bit = 0
    ch = 0
    while len(chars) < precision:
        if is_even:
            mid = (lng_range[0] + lng_range[1]) / 2
            if longitude > mid:
                ch |= _BITS[bit]
                lng_range[0] = mid
            else:
                lng_range[1] = mid
        else:
            mid = (lat_range[0] + lat_range[1]) / 2
            if latitude > mid:
                ch |= _BITS[bit]
                lat_range[0] = mid
            else:
                lat_range[1] = mid
        is_even = not is_even
        if bit < 4:
            bit += 1
        else:
            chars.append(BASE32[ch])
            bit = 0
            ch = 0
    return "".join(chars)


def decode(cell: str) -> CellBounds:
    cell = validate_cell(cell)
    lat_range = [-90.0, 90.0]
    lng_range = [-180.0, 180.0]
    is_even = True
    for char in cell:
        cd = BASE32.index(char)
        for mask in _BITS:
            target = lng_range if is_even else lat_range
            mid = (target[0] + target[1]) / 2
            if cd & mask:
                target[0] = mid
            else:
                target[1] = mid
            is_even = not is_even
    return CellBounds(cell, lat_range[0], lat_range[1], lng_range[0], lng_range[1])


def _adjacent(cell: str, direction: str) -> Optional[str]:
    # None means the step would cross a pole; longitude simply wraps.
    if not cell:
        return None if direction in ("top", "bottom") else ""
    last = cell[-1]
    parity = "odd" if len(cell) % 2 else "even"
    base: Optional[str] = cell[:-1]
    if last in _BORDERS[direction][parity]:
        base = _adjacent(base, direction)
        if base is None:
            return None
    return base + BASE32[_NEIGHBORS[direction][parity].index(last)]


def neighbors(cell: str) -> Set[str]:
    """The 8-connected ring around ``cell`` at the same precision."""

    cell = validate_cell(cell)
    ring: Set[str] = set()
    for vertical in ("top", None, "bottom"):
        row = _adjacent(cell, vertical) if vertical else cell
        if row is None:
            continue
        if vertical:
            ring.add(row)
        for horizontal in ("left", "right"):
            ring.add(_adjacent(row, horizontal))
    ring.discard(cell)
    return ring


def cell_size_km(cell: str) -> tuple:
    """(height_km, width_km) of ``cell`` measured at its center latitude."""

    bounds = decode(cell)
    height = (bounds.max_lat - bounds.min_lat) * KM_PER_DEGREE
    width = (bounds.max_lng - bounds.min_lng) * KM_PER_DEGREE * math.cos(math.radians(bounds.latitude))
    return height, width


def cells_within_radius(center: str, radius_km: Number, precision: int = 5) -> Set[str]:
    """Expand ``center`` ring by ring until the block reaches ``radius_km``.

    After ``k`` rings every point within ``k`` cell widths of the center cell
    is covered, so expansion stops at ``ceil(radius / cell_width)`` rings.
    """

    _check_precision(precision)
    center = validate_cell(center)
    radius = _as_float(radius_km, "radius_km")
    if radius < 0:
        raise InvalidCoordinate(f"radius_km must not be negative, got {radius_km!r}")

    if len(center) > precision:
        center = center[:precision]
    elif len(center) < precision:
        bounds = decode(center)
        center = encode(bounds.latitude, bounds.longitude, precision)

    height, width = cell_size_km(center)
    step = max(min(height, width), 1e-6)
    rings = math.ceil(radius / step)
    max_rings = int(getattr(settings, "EMERGENCY_MAX_RING_EXPANSION", 40))
    if rings > max_rings:
        LOGGER.warning(
            "Ring expansion for %s (%.1f km at precision %s) capped at %s rings",
            center,
            radius,
            precision,
            max_rings,
        )
        rings = max_rings

    found = {center}
    frontier = {center}
    for _ in range(rings):
        next_frontier = set()
        for cell in frontier:
            next_frontier.update(n for n in neighbors(cell) if n not in found)
        if not next_frontier:
            break
        found.update(next_frontier)
        frontier = next_frontier

    LOGGER.debug("Expanded %s into %s cells for %.1f km", center, len(found), radius)
    return found


def distance_km(lat1: Number, lng1: Number, lat2: Number, lng2: Number) -> float:
    """Great-circle distance; only meaningful downstream of the cell filter."""

    return float(great_circle((float(lat1), float(lng1)), (float(lat2), float(lng2))).km)


__all__ = [
    "BASE32",
    "CellBounds",
    "encode",
    "decode",
    "neighbors",
    "cell_size_km",
    "cells_within_radius",
    "distance_km",
    "validate_cell",
]
