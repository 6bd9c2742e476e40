import math
import warnings

import pytest
from shapely.geometry import Polygon

from conquest.services.territories.builder import BoundaryBuilder, is_closed_loop
from conquest.services.territories.errors import InvalidBoundary
from conquest.services.territories.geometry import EARTH_RADIUS_M, LocalProjection

from geo import ORIGIN, path, rect, square_loop


def _north_of_origin(meters):
    lat0, lng0 = ORIGIN
    return [
        {'latitude': lat0, 'longitude': lng0},
        {'latitude': lat0 + 0.0002, 'longitude': lng0 + 0.0003},
        {'latitude': lat0 + math.degrees(meters / EARTH_RADIUS_M), 'longitude': lng0},
    ]


def test_closed_loop_threshold():
    assert is_closed_loop(_north_of_origin(29.99))
    assert is_closed_loop(_north_of_origin(30.0))
    assert not is_closed_loop(_north_of_origin(30.01))


def test_closed_square_claims_interior_plus_buffer():
    built = BoundaryBuilder().build(path(square_loop(0, 0, 50)))
    assert built.is_closed_loop
    assert isinstance(built.polygon, Polygon)
    assert built.polygon.is_valid
    # 50 m square grown by 10 m on every side with square corners
    assert built.area == pytest.approx(70 * 70, rel=0.02)


def test_open_line_claims_corridor():
    built = BoundaryBuilder().build(path([(0, 0), (50, 0), (100, 0)]))
    assert not built.is_closed_loop
    # flat caps: 100 m long, 10 m either side
    assert built.area == pytest.approx(100 * 20, rel=0.02)


def test_nearly_closed_path_is_treated_as_loop():
    built = BoundaryBuilder().build(path([(0, 0), (60, 0), (60, 60), (0, 60), (0, 20)]))
    assert built.is_closed_loop
    assert built.area == pytest.approx(80 * 80, rel=0.03)


def test_area_grows_with_prefix_of_open_path():
    coords = [(0, 0), (100, 0), (100, 80), (40, 120)]
    builder = BoundaryBuilder()
    areas = [builder.build(path(coords[:n])).area for n in range(2, len(coords) + 1)]
    assert areas == sorted(areas)


def test_self_crossing_loop_yields_single_valid_polygon():
    figure_eight = [(0, 0), (60, 60), (60, 0), (0, 60), (0, 0)]
    built = BoundaryBuilder().build(path(figure_eight))
    assert isinstance(built.polygon, Polygon)
    assert built.polygon.is_valid
    assert built.area >= 5


@pytest.mark.parametrize('points', [
    [],
    path([(0, 0)]),
    path([(0, 0), (0, 0), (0, 0)]),
    [{'latitude': 95, 'longitude': 0}, {'latitude': 0, 'longitude': 0}],
])
def test_degenerate_boundaries_are_rejected(points):
    with pytest.raises(InvalidBoundary):
        BoundaryBuilder().build(points)


def test_local_projection_round_trips_without_deprecation_warnings():
    polygon = rect(0, 0, 100, 50)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter('always')
        projection = LocalProjection(polygon)
        meters = projection.to_meters(polygon)
        back = projection.to_degrees(meters)
        BoundaryBuilder().build(path(square_loop(0, 0, 50)))

    assert meters.area == pytest.approx(5000, rel=0.01)
    assert back.equals_exact(polygon, 1e-9)
    deprecated = [w for w in caught if issubclass(w.category, DeprecationWarning) and 'transform' in str(w.message)]
    assert deprecated == []
