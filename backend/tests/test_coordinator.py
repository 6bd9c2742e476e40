import time
from datetime import datetime
from itertools import combinations

import pytest
from shapely.geometry import Polygon

from conquest import db
from conquest.models import Run, Territory
from conquest.services.territories.cleanup import CleanupEngine
from conquest.services.territories.coordinator import DEFAULT_AREA_NAME, ConquestCoordinator
from conquest.services.territories.errors import InvalidBoundary, StealStepFailed, TransactionTimeout
from conquest.services.territories.geometry import area_m2
from conquest.services.territories.steal import StealEngine

from geo import path, square_loop


def conquer(user, coords, coordinator=None, **kwargs):
    coordinator = coordinator or ConquestCoordinator()
    return coordinator.conquer(
        owner_id=user.id,
        owner_display_name=user.name,
        owner_color=user.color,
        display_name=kwargs.pop('display_name', None),
        boundary_path=path(coords),
        **kwargs,
    )


def owned(user):
    return Territory.query.filter_by(owner_id=user.id).order_by(Territory.id).all()


def assert_map_is_consistent():
    territories = Territory.query.all()
    for territory in territories:
        shape = territory.shape
        assert isinstance(shape, Polygon)
        assert shape.is_valid
        assert territory.area_square_meters >= 5
    for a, b in combinations(territories, 2):
        if a.owner_id == b.owner_id:
            assert not a.shape.intersects(b.shape)
        else:
            assert area_m2(a.shape.intersection(b.shape)) < 0.01


def test_simple_claim(alice):
    result = conquer(alice, square_loop(0, 0, 50), captured_at='2026-03-01T07:30:00Z')

    assert result.is_closed_loop
    assert result.area_square_meters == pytest.approx(4900, rel=0.02)
    assert result.merged_territory_ids == []
    assert result.stolen == {}
    assert result.display_name == DEFAULT_AREA_NAME
    assert result.owner_color == alice.color
    assert result.captured_at == datetime(2026, 3, 1, 7, 30)
    assert result.boundary_points[0] == result.boundary_points[-1]
    assert [t.id for t in owned(alice)] == [result.territory_id]
    assert_map_is_consistent()


def test_claim_writes_linked_run(alice):
    coords = square_loop(0, 0, 50)
    result = conquer(alice, coords, activity={'profile': {'weightKg': 70, 'heightCm': 175, 'age': 30}})

    run = db.session.get(Run, result.linked_activity_id)
    assert run.territory_id == result.territory_id
    assert run.user_id == alice.id
    assert run.duration == len(coords) - 1
    assert run.distance == pytest.approx(200, rel=0.01)
    assert [p.sequence_order for p in run.path_points] == list(range(len(coords)))
    assert run.calories is not None


def test_overlapping_claims_by_same_owner_merge(alice):
    first = conquer(alice, [(0, 0), (100, 0)])
    second = conquer(alice, [(50, 8), (150, 8)])

    assert second.merged_territory_ids == [first.territory_id]
    territories = owned(alice)
    assert [t.id for t in territories] == [second.territory_id]
    # two 2000 m2 corridors overlapping on 50 m x 12 m
    assert territories[0].area_square_meters == pytest.approx(3400, rel=0.02)
    assert territories[0].area_square_meters < first.area_square_meters + 2000
    assert_map_is_consistent()


def test_enclosing_claim_steals_whole_territory(alice, bob):
    victim = conquer(alice, [(0, 0), (40, 0)])
    result = conquer(bob, [(-20, -30), (60, -30), (60, 30), (-20, 30), (-20, -30)])

    assert result.stolen == {victim.territory_id: 0}
    assert owned(alice) == []
    assert len(owned(bob)) == 1
    # the run outlives the territory it claimed
    assert db.session.get(Run, victim.linked_activity_id).territory_id is None
    assert_map_is_consistent()


def test_cut_through_splits_rival(alice, bob):
    victim = conquer(alice, [(0, 0), (200, 0), (200, 60), (0, 60), (0, 0)])
    original_area = victim.area_square_meters
    assert original_area == pytest.approx(220 * 80, rel=0.02)

    result = conquer(bob, [(100, -40), (100, 110)])

    assert result.stolen == {victim.territory_id: 2}
    pieces = owned(alice)
    assert len(pieces) == 2
    for piece in pieces:
        assert piece.area_square_meters == pytest.approx(100 * 80, rel=0.02)
    assert sum(p.area_square_meters for p in pieces) == pytest.approx(original_area - 20 * 80, rel=0.02)
    assert_map_is_consistent()


def test_invalid_boundary_persists_nothing(alice):
    with pytest.raises(InvalidBoundary):
        conquer(alice, [(0, 0), (0, 0)])
    assert Territory.query.count() == 0
    assert Run.query.count() == 0


def test_timeout_rolls_back_every_step(alice, bob):
    victim = conquer(bob, square_loop(0, 0, 50))

    class SlowCleanup(CleanupEngine):
        def sweep(self, since=None):
            time.sleep(0.2)
            return super().sweep(since)

    coordinator = ConquestCoordinator(cleanup=SlowCleanup(), timeout=0.1)
    with pytest.raises(TransactionTimeout):
        conquer(alice, square_loop(20, 20, 60), coordinator=coordinator)

    assert owned(alice) == []
    survivors = owned(bob)
    assert [t.id for t in survivors] == [victim.territory_id]
    assert survivors[0].area_square_meters == pytest.approx(victim.area_square_meters)
    assert Run.query.filter_by(user_id=alice.id).count() == 0


def test_failed_cut_does_not_abort_conquest(alice, bob, monkeypatch):
    victim = conquer(bob, square_loop(0, 0, 50))

    def always_fail(self, enemy, claim):
        raise StealStepFailed(enemy.id, ValueError('boom'))

    monkeypatch.setattr(StealEngine, '_surviving_fragments', always_fail)
    result = conquer(alice, square_loop(20, 20, 60))

    assert result.stolen == {}
    assert db.session.get(Territory, victim.territory_id).area_square_meters == pytest.approx(victim.area_square_meters)
    assert [t.id for t in owned(alice)] == [result.territory_id]


def test_read_map_returns_feature_collection(alice, bob):
    conquer(alice, square_loop(0, 0, 50), display_name='Plaza')
    conquer(bob, square_loop(1000, 1000, 50))

    collection = ConquestCoordinator().read_map()
    assert collection['type'] == 'FeatureCollection'
    assert len(collection['features']) == 2
    names = {f['properties']['areaName'] for f in collection['features']}
    assert names == {'Plaza', DEFAULT_AREA_NAME}
    for feature in collection['features']:
        assert feature['geometry']['type'] == 'Polygon'
