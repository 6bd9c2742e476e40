from dataclasses import dataclass

from shapely.geometry import Polygon

from . import codec
from .errors import InvalidBoundary, InvalidGeometry
from .geometry import (
    MIN_TERRITORY_AREA_M2,
    LocalProjection,
    area_m2,
    haversine_m,
    largest_polygon,
    polygon_parts,
    repair,
)

CLOSED_LOOP_MAX_DISTANCE_M = 30.0
BUFFER_DISTANCE_M = 10.0


@dataclass
class BuiltBoundary:
    polygon: Polygon
    is_closed_loop: bool
    area: float
    endpoint_distance: float


def endpoint_distance(points) -> float:
    if len(points) < 2:
        return 0.0
    first, last = points[0], points[-1]
    return haversine_m(first['latitude'], first['longitude'], last['latitude'], last['longitude'])


def is_closed_loop(points) -> bool:
    """A path whose start and end are within 30 m encloses ground."""
    if len(points) < 2:
        return False
    return endpoint_distance(points) <= CLOSED_LOOP_MAX_DISTANCE_M


class BoundaryBuilder:
    """Turns a GPS path into the buffered polygon it claims."""

    def __init__(self, buffer_m: float = BUFFER_DISTANCE_M):
        self.buffer_m = buffer_m

    def build(self, points) -> BuiltBoundary:
        if not points or len(points) < 2:
            raise InvalidBoundary('boundary needs at least 2 points')
        try:
            line = codec.points_to_line(points)
        except InvalidGeometry as exc:
            raise InvalidBoundary(str(exc)) from exc

        distance = endpoint_distance(points)
        closed = is_closed_loop(points)

        projection = LocalProjection(line)
        line_m = projection.to_meters(line)
        if line_m.length == 0:
            raise InvalidBoundary('boundary has zero length')

        shape_m = self._closed_shape(points, projection) if closed else None
        if shape_m is None:
            shape_m = line_m

        buffered_m = shape_m.buffer(self.buffer_m, cap_style='flat', join_style='mitre')
        try:
            polygon = largest_polygon(repair(projection.to_degrees(buffered_m)))
        except InvalidGeometry as exc:
            raise InvalidBoundary(f'boundary does not enclose any area: {exc}') from exc
        if not polygon.is_valid:
            raise InvalidBoundary('buffered boundary is not a valid polygon')

        area = area_m2(polygon)
        if area < MIN_TERRITORY_AREA_M2:
            raise InvalidBoundary(f'boundary area {area:.2f} m2 is below the minimum')

        return BuiltBoundary(polygon=polygon, is_closed_loop=closed, area=area, endpoint_distance=distance)

    def _closed_shape(self, points, projection):
        """Polygon enclosed by a closed loop, in meters, or None when it has no area."""
        try:
            ring = codec.points_to_ring(points)
        except InvalidGeometry:
            return None
        polygon = repair(projection.to_meters(Polygon(ring)))
        parts = polygon_parts(polygon)
        if not parts or sum(p.area for p in parts) == 0:
            return None
        return polygon
