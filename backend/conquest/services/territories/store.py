from typing import List, Optional, Tuple

from flask import current_app
from shapely.errors import ShapelyError
from shapely.geometry import Polygon, box as make_box
from shapely.validation import explain_validity

from conquest import db
from conquest.models import Territory, utcnow
from .errors import InvalidGeometry, TerritoryNotFound
from .geometry import area_m2

BoundingBox = Tuple[float, float, float, float]  # min_lng, min_lat, max_lng, max_lat


class TerritoryStore:
    """Sole gateway to persisted territories.

    Writes are flushed into the current session but never committed; the
    caller owns the transaction.
    """

    def validate(self, polygon) -> Polygon:
        if polygon is None or polygon.is_empty:
            raise InvalidGeometry('geometry is empty')
        if not isinstance(polygon, Polygon):
            raise InvalidGeometry(f'expected a single polygon, got {polygon.geom_type}')
        if not polygon.is_valid:
            raise InvalidGeometry(f'invalid polygon: {explain_validity(polygon)}')
        return polygon

    def get(self, territory_id: int) -> Optional[Territory]:
        return db.session.get(Territory, territory_id)

    def _get_or_raise(self, territory_id: int) -> Territory:
        territory = self.get(territory_id)
        if territory is None:
            raise TerritoryNotFound(f'territory {territory_id} not found')
        return territory

    def all(self) -> List[Territory]:
        return Territory.query.order_by(Territory.id).all()

    def written_since(self, since, below_area=None) -> List[Territory]:
        """Rows created or changed at or after ``since``, plus any stored under ``below_area``."""
        condition = Territory.updated_at >= since
        if below_area is not None:
            condition = condition | (Territory.area_square_meters < below_area)
        return Territory.query.filter(condition).order_by(Territory.id).all()

    def intersecting(self, polygon, owner_id=None, exclude_owner_id=None, exclude_id=None, lock=True) -> List[Territory]:
        """Territories whose geometry intersects ``polygon``, oldest first.

        The bounding box columns narrow the candidates in SQL; the exact test
        runs on the decoded shapes. With ``lock`` the candidate rows are
        selected FOR UPDATE so concurrent conquests serialize on them.
        """
        minx, miny, maxx, maxy = polygon.bounds
        query = Territory.query.filter(
            Territory.min_lng <= maxx,
            Territory.max_lng >= minx,
            Territory.min_lat <= maxy,
            Territory.max_lat >= miny,
        )
        if owner_id is not None:
            query = query.filter(Territory.owner_id == owner_id)
        if exclude_owner_id is not None:
            query = query.filter(Territory.owner_id != exclude_owner_id)
        if exclude_id is not None:
            query = query.filter(Territory.id != exclude_id)
        query = query.order_by(Territory.created_at, Territory.id)
        if lock:
            query = query.with_for_update()

        matches = []
        for territory in query.all():
            try:
                if territory.shape.intersects(polygon):
                    matches.append(territory)
            except ShapelyError as exc:
                current_app.logger.warning(f"[store-skip] territory={territory.id} unreadable geometry: {exc}")
        return matches

    def find_by_bounding_box(self, bbox: Optional[BoundingBox] = None) -> List[Territory]:
        query = Territory.query
        area = None
        if bbox is not None:
            min_lng, min_lat, max_lng, max_lat = bbox
            query = query.filter(
                Territory.min_lng <= max_lng,
                Territory.max_lng >= min_lng,
                Territory.min_lat <= max_lat,
                Territory.max_lat >= min_lat,
            )
            area = make_box(min_lng, min_lat, max_lng, max_lat)
        territories = query.order_by(Territory.captured_at.desc(), Territory.id.desc()).all()
        if area is None:
            return territories
        return [t for t in territories if t.shape.intersects(area)]

    def create(self, owner_id, owner_display_name, owner_color, display_name, polygon, captured_at=None) -> Territory:
        self.validate(polygon)
        now = utcnow()
        territory = Territory(
            owner_id=owner_id,
            owner_display_name=owner_display_name,
            owner_color=owner_color,
            display_name=display_name,
            captured_at=captured_at or now,
            created_at=now,
            updated_at=now,
        )
        territory.set_shape(polygon, area_m2(polygon))
        db.session.add(territory)
        db.session.flush()
        return territory

    def replace_geometry(self, territory_id, polygon) -> Territory:
        self.validate(polygon)
        territory = self._get_or_raise(territory_id)
        territory.set_shape(polygon, area_m2(polygon))
        territory.updated_at = utcnow()
        db.session.flush()
        return territory

    def delete(self, territory_id) -> None:
        territory = self._get_or_raise(territory_id)
        db.session.delete(territory)
        db.session.flush()
