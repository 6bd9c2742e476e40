"""Projection and measurement helpers shared by the engine.

Stored geometry is geographic (EPSG:4326, lng/lat). Anything measured in
meters goes through a local projection centred on the geometry first:
azimuthal equidistant for buffering, Lambert azimuthal equal-area for area.
"""
import math
from functools import lru_cache

import shapely
from pyproj import CRS, Transformer
from shapely import make_valid
from shapely.geometry import Polygon

from .errors import InvalidGeometry

EARTH_RADIUS_M = 6371008.8
MIN_TERRITORY_AREA_M2 = 5.0

_WGS84 = 'EPSG:4326'


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


@lru_cache(maxsize=256)
def _transformers(proj: str, lat0: float, lon0: float):
    local = CRS.from_proj4(f"+proj={proj} +lat_0={lat0} +lon_0={lon0} +datum=WGS84 +units=m +no_defs")
    forward = Transformer.from_crs(_WGS84, local, always_xy=True)
    inverse = Transformer.from_crs(local, _WGS84, always_xy=True)
    return forward, inverse


def _centre(geom):
    minx, miny, maxx, maxy = geom.bounds
    # Rounded so nearby geometries share a cached transformer
    return round((miny + maxy) / 2, 4), round((minx + maxx) / 2, 4)


def _reproject(transformer, geom):
    def apply(x, y):
        return transformer.transform(x, y)

    return shapely.transform(geom, apply, interleaved=False)


class LocalProjection:
    """Round-trips a geometry through a projection centred on it."""

    def __init__(self, geom, proj='aeqd'):
        lat0, lon0 = _centre(geom)
        self._forward, self._inverse = _transformers(proj, lat0, lon0)

    def to_meters(self, geom):
        return _reproject(self._forward, geom)

    def to_degrees(self, geom):
        return _reproject(self._inverse, geom)


def area_m2(geom) -> float:
    if geom is None or geom.is_empty:
        return 0.0
    return LocalProjection(geom, proj='laea').to_meters(geom).area


def repair(geom):
    if geom.is_valid:
        return geom
    return make_valid(geom)


def polygon_parts(geom):
    """Flatten any geometry into its non-empty polygonal components."""
    if geom is None or geom.is_empty:
        return []
    if isinstance(geom, Polygon):
        return [geom]
    parts = []
    for sub in getattr(geom, 'geoms', []):
        parts.extend(polygon_parts(sub))
    return parts


def largest_polygon(geom):
    """Keep only the component with the largest area.

    The remaining components are dropped, never persisted.
    """
    parts = polygon_parts(geom)
    if not parts:
        raise InvalidGeometry('geometry has no polygonal area')
    return max(parts, key=area_m2)
