from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from conquest import db
from conquest.services.territories import codec
from conquest.services.territories.activity import (
    RunRecordWriter,
    as_number,
    calculate_run_stats,
    estimate_calories,
    numeric_fields,
    parse_timestamp,
)
from conquest.services.territories.errors import InvalidGeometry

runs = Blueprint('runs', __name__)


@runs.route('', methods=['POST'])
@login_required
def create_run():
    """
    Records a run without claiming any territory.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'request body must be a JSON object'}), 400
    path = data.get('path')
    if not isinstance(path, list) or len(path) < 2:
        return jsonify({'error': 'path must be a list of at least 2 points'}), 400
    try:
        for point in path:
            codec.validate_point(point)
    except InvalidGeometry as exc:
        return jsonify({'error': str(exc)}), 400

    stats = calculate_run_stats(
        path,
        numeric_fields(data, ('distance', 'duration', 'averagePace')),
        start_time=parse_timestamp(data.get('startTime')),
        end_time=parse_timestamp(data.get('endTime')),
    )
    profile = data.get('profile') if isinstance(data.get('profile'), dict) else None
    calories = as_number(data.get('calories')) or estimate_calories(stats.distance, stats.duration, profile)
    try:
        run = RunRecordWriter().write(
            current_user.id,
            path,
            stats,
            max_speed=as_number(data.get('maxSpeed')),
            elevation_gain=as_number(data.get('elevationGain')),
            calories=calories,
            caption=data['caption'] if isinstance(data.get('caption'), str) else None,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return jsonify(run.to_dict()), 201
