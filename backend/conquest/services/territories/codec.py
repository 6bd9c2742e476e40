"""Conversions between boundary points and engine geometry.

Points crossing the API are latitude-first dicts
(``{'latitude': .., 'longitude': .., 'timestamp': ..}``); geometry inside the
engine is shapely, longitude-first. This module is the only place the axis
order flips.
"""
import math
from typing import Dict, List

from shapely import wkb
from shapely.errors import ShapelyError
from shapely.geometry import LinearRing, LineString

from .errors import InvalidGeometry


def validate_point(point) -> tuple:
    """Return ``(lng, lat)`` for a boundary point or raise InvalidGeometry."""
    try:
        lat = point['latitude']
        lng = point['longitude']
    except (KeyError, TypeError):
        raise InvalidGeometry('each point needs latitude and longitude')
    if isinstance(lat, bool) or isinstance(lng, bool) or not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        raise InvalidGeometry('latitude and longitude must be numbers')
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise InvalidGeometry('latitude and longitude must be finite')
    if not -90 <= lat <= 90:
        raise InvalidGeometry(f'latitude out of range: {lat}')
    if not -180 <= lng <= 180:
        raise InvalidGeometry(f'longitude out of range: {lng}')
    return float(lng), float(lat)


def _coords(points) -> List[tuple]:
    if not points or len(points) < 2:
        raise InvalidGeometry('at least 2 points are required')
    # Order encodes the route; never sort or dedupe here
    return [validate_point(p) for p in points]


def points_to_line(points) -> LineString:
    return LineString(_coords(points))


def points_to_ring(points) -> LinearRing:
    coords = _coords(points)
    if coords[0] != coords[-1]:
        coords.append(coords[0])
    try:
        return LinearRing(coords)
    except (ValueError, ShapelyError) as exc:
        raise InvalidGeometry(f'cannot build ring: {exc}')


def ring_to_points(geom) -> List[Dict[str, float]]:
    """Exterior ring of a polygon (or a bare ring) as ordered points."""
    ring = getattr(geom, 'exterior', geom)
    return [{'latitude': y, 'longitude': x} for x, y in (c[:2] for c in ring.coords)]


def to_wkb(geom) -> bytes:
    return wkb.dumps(geom)


def from_wkb(data: bytes):
    return wkb.loads(data)


def to_geojson(polygon) -> dict:
    rings = [polygon.exterior, *polygon.interiors]
    return {
        'type': 'Polygon',
        'coordinates': [[[c[0], c[1]] for c in ring.coords] for ring in rings],
    }
