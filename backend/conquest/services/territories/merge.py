from dataclasses import dataclass, field
from typing import List

from flask import current_app
from shapely.errors import ShapelyError

from .errors import InvalidGeometry, MergeStepFailed, TerritoryNotFound
from .geometry import area_m2, largest_polygon, repair
from .store import TerritoryStore


@dataclass
class MergeResult:
    polygon: object
    area: float
    merged_ids: List[int] = field(default_factory=list)
    skipped_ids: List[int] = field(default_factory=list)


class MergeEngine:
    def __init__(self, store: TerritoryStore = None):
        self.store = store or TerritoryStore()

    def merge_with_own_territories(self, owner_id, new_territory_id, polygon, deadline=None) -> MergeResult:
        """Fold every intersecting territory of ``owner_id`` into the new one.

        Each union keeps only its largest component. A neighbour whose union
        fails is logged and left alone; the rest still merge.
        """
        neighbours = self.store.intersecting(polygon, owner_id=owner_id, exclude_id=new_territory_id)
        result = MergeResult(polygon=polygon, area=area_m2(polygon))
        if not neighbours:
            return result

        accumulated = polygon
        merged = []
        for neighbour in neighbours:
            if deadline is not None:
                deadline.check('merge')
            try:
                accumulated = self._union(accumulated, neighbour)
            except MergeStepFailed as exc:
                current_app.logger.warning(f"[merge-skip] owner={owner_id} {exc}")
                result.skipped_ids.append(neighbour.id)
                continue
            merged.append(neighbour.id)

        if not merged:
            return result

        territory = self.store.replace_geometry(new_territory_id, accumulated)
        for territory_id in merged:
            try:
                self.store.delete(territory_id)
            except TerritoryNotFound as exc:
                current_app.logger.warning(f"[merge-skip] owner={owner_id} {MergeStepFailed(territory_id, exc)}")
                continue
            result.merged_ids.append(territory_id)

        result.polygon = accumulated
        result.area = territory.area_square_meters
        current_app.logger.info(
            f"[merge] owner={owner_id} territory={new_territory_id} merged={result.merged_ids} area={result.area:.2f}"
        )
        return result

    def _union(self, accumulated, neighbour):
        try:
            unioned = repair(accumulated.union(neighbour.shape))
            merged = largest_polygon(unioned)
            self.store.validate(merged)
            return merged
        except (ShapelyError, InvalidGeometry, ValueError) as exc:
            raise MergeStepFailed(neighbour.id, exc) from exc
