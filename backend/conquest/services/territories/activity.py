"""Run (activity) records written alongside a conquest.

Only the run id flows back into the conquest result; everything else here
is bookkeeping for the activity feed.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from conquest import db
from conquest.models import Run, RunPathPoint
from .geometry import haversine_m


@dataclass
class RunStats:
    distance: float
    duration: int
    average_pace: float
    start_time: datetime
    end_time: datetime


def as_number(value):
    """``value`` when it is an int or float (bools excluded), else None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def numeric_fields(data, keys) -> dict:
    """Subset of ``data`` whose values under ``keys`` are numbers."""
    return {k: data[k] for k in keys if as_number(data.get(k)) is not None}


def parse_timestamp(value) -> Optional[datetime]:
    """ISO-8601 string or datetime -> naive UTC datetime."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def path_distance_m(points) -> float:
    total = 0.0
    for a, b in zip(points, points[1:]):
        total += haversine_m(a['latitude'], a['longitude'], b['latitude'], b['longitude'])
    return total


def average_pace(distance_m: float, duration_s: float) -> float:
    """Minutes per kilometre."""
    if not distance_m or distance_m <= 0 or not duration_s or duration_s <= 0:
        return 0.0
    return (duration_s / 60) / (distance_m / 1000)


def _running_met(speed_kmh: float) -> float:
    if speed_kmh < 8:
        return 8.3
    if speed_kmh < 9.7:
        return 9.8
    if speed_kmh < 11.3:
        return 11.0
    if speed_kmh < 12.9:
        return 11.8
    return 12.8


def estimate_calories(distance_m, duration_s, profile) -> Optional[int]:
    """MET-based estimate; needs weight, height and age in ``profile``."""
    profile = profile or {}
    weight = as_number(profile.get('weightKg'))
    if not weight or not as_number(profile.get('heightCm')) or not as_number(profile.get('age')):
        return None
    if not distance_m or not duration_s or distance_m <= 0 or duration_s <= 0:
        return None
    hours = duration_s / 3600
    speed_kmh = (distance_m / 1000) / hours
    return round(_running_met(speed_kmh) * weight * hours)


def calculate_run_stats(path, provided=None, start_time=None, end_time=None) -> RunStats:
    """Fill in whatever the client did not send: distance, duration, pace."""
    provided = provided or {}
    start_time = start_time or datetime.now(timezone.utc).replace(tzinfo=None)

    distance = provided.get('distance')
    if not distance and len(path) > 1:
        distance = path_distance_m(path)

    duration = provided.get('duration')
    if not duration and len(path) > 1:
        first = parse_timestamp(path[0].get('timestamp')) or start_time
        last = parse_timestamp(path[-1].get('timestamp')) or end_time
        duration = max(0, int((last - first).total_seconds())) if last else 0

    pace = provided.get('averagePace')
    if not pace:
        pace = average_pace(distance, duration)

    if end_time is None:
        end_time = start_time + timedelta(seconds=duration or 0)

    return RunStats(
        distance=float(distance or 0),
        duration=int(duration or 0),
        average_pace=float(pace or 0),
        start_time=start_time,
        end_time=end_time,
    )


class RunRecordWriter:
    def write(self, user_id, path, stats: RunStats, territory_id=None, max_speed=None,
              elevation_gain=None, calories=None, caption=None) -> Run:
        run = Run(
            user_id=user_id,
            territory_id=territory_id,
            start_time=stats.start_time,
            end_time=stats.end_time,
            distance=stats.distance,
            duration=stats.duration,
            average_pace=stats.average_pace,
            max_speed=max_speed,
            elevation_gain=elevation_gain,
            calories=calories,
            caption=caption,
        )
        for index, point in enumerate(path or []):
            stamp = parse_timestamp(point.get('timestamp')) or stats.start_time + timedelta(seconds=index)
            run.path_points.append(RunPathPoint(
                latitude=point['latitude'],
                longitude=point['longitude'],
                timestamp=stamp,
                sequence_order=index,
            ))
        db.session.add(run)
        db.session.flush()
        return run
