from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy import text

from conquest import db
from conquest.models import utcnow
from . import codec
from .activity import RunRecordWriter, calculate_run_stats, estimate_calories, parse_timestamp
from .builder import BoundaryBuilder
from .cleanup import CleanupEngine
from .deadline import Deadline
from .errors import InvalidGeometry
from .events import publish_conquest
from .merge import MergeEngine
from .steal import StealEngine
from .store import TerritoryStore

DEFAULT_AREA_NAME = 'Conquered Territory'


@dataclass
class ConquestResult:
    territory_id: int
    owner_id: int
    owner_display_name: str
    owner_color: str
    display_name: str
    area_square_meters: float
    boundary_points: List[dict]
    captured_at: datetime
    linked_activity_id: Optional[int]
    is_closed_loop: bool = False
    merged_territory_ids: List[int] = field(default_factory=list)
    stolen: Dict[int, int] = field(default_factory=dict)
    removed_fragments: int = 0

    def to_dict(self):
        return {
            'territory_id': self.territory_id,
            'owner_id': self.owner_id,
            'owner_display_name': self.owner_display_name,
            'owner_color': self.owner_color,
            'display_name': self.display_name,
            'area_square_meters': self.area_square_meters,
            'boundary_points': self.boundary_points,
            'captured_at': self.captured_at.isoformat(),
            'linked_activity_id': self.linked_activity_id,
            'is_closed_loop': self.is_closed_loop,
            'merged_territory_ids': self.merged_territory_ids,
            'stolen': {str(k): v for k, v in self.stolen.items()},
            'removed_fragments': self.removed_fragments,
        }


class ConquestCoordinator:
    """Runs one conquest as a single atomic unit of work."""

    def __init__(self, store=None, builder=None, merge=None, steal=None, cleanup=None,
                 activity_writer=None, timeout=None):
        self.store = store or TerritoryStore()
        self.builder = builder or BoundaryBuilder()
        self.merge = merge or MergeEngine(self.store)
        self.steal = steal or StealEngine(self.store)
        self.cleanup = cleanup or CleanupEngine(self.store)
        self.activity_writer = activity_writer or RunRecordWriter()
        self.timeout = timeout

    def conquer(self, owner_id, owner_display_name, owner_color, display_name, boundary_path,
                captured_at=None, activity=None) -> ConquestResult:
        """Claim the area described by ``boundary_path`` for ``owner_id``.

        Build, persist, merge, steal and sweep run in one transaction. Any
        failure other than a single skipped merge or steal rolls everything
        back and propagates. ``activity`` carries optional run data
        (distance, duration, averagePace, maxSpeed, elevationGain, calories,
        profile) for the linked run record.
        """
        timeout = self.timeout or float(current_app.config.get('CONQUEST_TIMEOUT_SEC', 60))
        deadline = Deadline(timeout)
        started = utcnow()
        captured = parse_timestamp(captured_at) or utcnow()
        activity = activity or {}
        logger = current_app.logger
        logger.info(f"[conquest-start] owner={owner_id} points={len(boundary_path or [])}")

        try:
            self._apply_statement_timeout(deadline)

            built = self.builder.build(boundary_path)
            logger.debug(
                f"[conquest-build] owner={owner_id} closed={built.is_closed_loop} "
                f"endpoints={built.endpoint_distance:.2f}m area={built.area:.2f}"
            )
            deadline.check('build')

            territory = self.store.create(
                owner_id=owner_id,
                owner_display_name=owner_display_name,
                owner_color=owner_color,
                display_name=display_name or DEFAULT_AREA_NAME,
                polygon=built.polygon,
                captured_at=captured,
            )
            territory_id = territory.id

            merged = self.merge.merge_with_own_territories(owner_id, territory_id, built.polygon, deadline)
            deadline.check('merge')

            stolen = self.steal.steal_from_others(owner_id, territory_id, merged.polygon, deadline)
            deadline.check('steal')

            removed = self.cleanup.sweep(since=started)
            deadline.check('cleanup')

            stats = calculate_run_stats(boundary_path, activity, start_time=captured)
            calories = activity.get('calories') or estimate_calories(stats.distance, stats.duration, activity.get('profile'))
            run = self.activity_writer.write(
                owner_id,
                boundary_path,
                stats,
                territory_id=territory_id,
                max_speed=activity.get('maxSpeed'),
                elevation_gain=activity.get('elevationGain'),
                calories=calories,
            )

            final = self.store.get(territory_id)
            if final is None:
                raise InvalidGeometry(f'territory {territory_id} did not survive the conquest')
            result = ConquestResult(
                territory_id=territory_id,
                owner_id=owner_id,
                owner_display_name=final.owner_display_name,
                owner_color=final.owner_color,
                display_name=final.display_name,
                area_square_meters=final.area_square_meters,
                boundary_points=codec.ring_to_points(final.shape),
                captured_at=captured,
                linked_activity_id=run.id,
                is_closed_loop=built.is_closed_loop,
                merged_territory_ids=list(merged.merged_ids),
                stolen=dict(stolen.fragments),
                removed_fragments=removed,
            )
            deadline.check('finalize')
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(
            f"[conquest-done] owner={owner_id} territory={result.territory_id} area={result.area_square_meters:.2f} "
            f"merged={len(result.merged_territory_ids)} stolen={len(result.stolen)} removed={result.removed_fragments}"
        )
        publish_conquest(result)
        return result

    def read_map(self, bbox=None) -> dict:
        territories = self.store.find_by_bounding_box(bbox)
        return {
            'type': 'FeatureCollection',
            'features': [t.to_feature() for t in territories],
        }

    def _apply_statement_timeout(self, deadline: Deadline) -> None:
        if db.session.get_bind().dialect.name != 'postgresql':
            return
        db.session.execute(
            text("SELECT set_config('statement_timeout', :value, true)"),
            {'value': f"{int(deadline.seconds * 1000)}ms"},
        )
