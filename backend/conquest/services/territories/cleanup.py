from flask import current_app
from shapely.errors import ShapelyError
from shapely.geometry import Polygon

from .geometry import MIN_TERRITORY_AREA_M2, area_m2
from .store import TerritoryStore


class CleanupEngine:
    def __init__(self, store: TerritoryStore = None):
        self.store = store or TerritoryStore()

    def sweep(self, since=None) -> int:
        """Delete every territory that is empty, invalid, multi-part or under 5 m2.

        Without ``since`` every row is decoded and checked. With ``since``
        only rows written at or after that time, plus rows whose stored area
        is already under the minimum, are checked; everything else went
        through store validation when it was written.
        """
        removed = 0
        for territory in self._candidates(since):
            reason = self._defect(territory)
            if reason is None:
                continue
            self.store.delete(territory.id)
            removed += 1
            current_app.logger.info(f"[cleanup] territory={territory.id} owner={territory.owner_id} removed: {reason}")
        return removed

    def _candidates(self, since):
        if since is None:
            return self.store.all()
        return self.store.written_since(since, below_area=MIN_TERRITORY_AREA_M2)

    def _defect(self, territory):
        try:
            shape = territory.shape
        except ShapelyError:
            return 'unreadable geometry'
        if shape.is_empty:
            return 'empty geometry'
        if not isinstance(shape, Polygon):
            return f'{shape.geom_type} is not a single polygon'
        if not shape.is_valid:
            return 'invalid geometry'
        if area_m2(shape) < MIN_TERRITORY_AREA_M2:
            return 'below minimum area'
        return None
