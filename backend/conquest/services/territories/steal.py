from dataclasses import dataclass, field
from typing import Dict, List

from flask import current_app
from shapely.errors import ShapelyError

from .errors import InvalidGeometry, StealStepFailed
from .geometry import MIN_TERRITORY_AREA_M2, area_m2, polygon_parts, repair
from .store import TerritoryStore


@dataclass
class StealResult:
    fragments: Dict[int, int] = field(default_factory=dict)
    deleted_ids: List[int] = field(default_factory=list)
    created_ids: List[int] = field(default_factory=list)
    skipped_ids: List[int] = field(default_factory=list)

    @property
    def territories_hit(self) -> int:
        return len(self.fragments)


class StealEngine:
    def __init__(self, store: TerritoryStore = None):
        self.store = store or TerritoryStore()

    def steal_from_others(self, owner_id, new_territory_id, polygon, deadline=None) -> StealResult:
        """Cut ``polygon`` out of every rival territory it touches."""
        result = StealResult()
        enemies = self.store.intersecting(polygon, exclude_owner_id=owner_id, exclude_id=new_territory_id)
        for enemy in enemies:
            if deadline is not None:
                deadline.check('steal')
            try:
                fragments = self._surviving_fragments(enemy, polygon)
            except StealStepFailed as exc:
                current_app.logger.warning(f"[steal-skip] owner={owner_id} {exc}")
                result.skipped_ids.append(enemy.id)
                continue
            self._apply(enemy, fragments, result)
        if enemies:
            current_app.logger.info(
                f"[steal] owner={owner_id} territory={new_territory_id} hit={result.territories_hit} "
                f"deleted={len(result.deleted_ids)} created={len(result.created_ids)}"
            )
        return result

    def _surviving_fragments(self, enemy, claim):
        """Pieces of ``enemy`` left after removing ``claim``, largest first, slivers dropped."""
        try:
            difference = repair(repair(enemy.shape).difference(claim))
            measured = [(area_m2(p), p) for p in polygon_parts(difference)]
            kept = [(a, p) for a, p in measured if a >= MIN_TERRITORY_AREA_M2]
            kept.sort(key=lambda item: item[0], reverse=True)
            for _, fragment in kept:
                self.store.validate(fragment)
            return [p for _, p in kept]
        except (ShapelyError, InvalidGeometry, ValueError) as exc:
            raise StealStepFailed(enemy.id, exc) from exc

    def _apply(self, enemy, fragments, result: StealResult) -> None:
        enemy_id = enemy.id
        result.fragments[enemy_id] = len(fragments)
        if not fragments:
            self.store.delete(enemy_id)
            result.deleted_ids.append(enemy_id)
            return

        self.store.replace_geometry(enemy_id, fragments[0])
        for fragment in fragments[1:]:
            created = self.store.create(
                owner_id=enemy.owner_id,
                owner_display_name=enemy.owner_display_name,
                owner_color=enemy.owner_color,
                display_name=enemy.display_name,
                polygon=fragment,
                captured_at=enemy.captured_at,
            )
            result.created_ids.append(created.id)
        if len(fragments) > 1:
            current_app.logger.info(f"[steal-split] territory={enemy_id} fragments={len(fragments)}")
