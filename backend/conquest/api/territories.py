from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
import json

from conquest.services.territories.activity import numeric_fields
from conquest.services.territories.coordinator import ConquestCoordinator
from conquest.services.territories.errors import ConquestError
from conquest.services.territories.path_correction import PathCorrector
from conquest.services.territories.store import TerritoryStore

territories = Blueprint('territories', __name__)

ACTIVITY_FIELDS = ('distance', 'duration', 'averagePace', 'maxSpeed', 'elevationGain', 'calories')


@territories.errorhandler(ConquestError)
def handle_conquest_error(exc):
    return jsonify({'error': str(exc)}), exc.status_code


def _payload():
    """Request body as a dict, or None when it is not a JSON object."""
    # multipart/form-data clients send the JSON body in a 'data' field
    if request.form.get('data'):
        try:
            data = json.loads(request.form['data'])
        except ValueError:
            return None
    else:
        data = request.get_json(silent=True)
        if data is None:
            data = {}
    return data if isinstance(data, dict) else None


def parse_bbox(raw):
    """'minLng,minLat,maxLng,maxLat' -> tuple, or ValueError."""
    parts = raw.split(',')
    if len(parts) != 4:
        raise ValueError('bbox needs 4 comma separated values')
    min_lng, min_lat, max_lng, max_lat = (float(p) for p in parts)
    if min_lng >= max_lng or min_lat >= max_lat:
        raise ValueError('bbox min must be lower than max')
    if min_lng < -180 or max_lng > 180 or min_lat < -90 or max_lat > 90:
        raise ValueError('bbox outside geographic limits')
    return min_lng, min_lat, max_lng, max_lat


@territories.route('', methods=['POST'])
@login_required
def conquer():
    """
    Claims the area described by a submitted boundary for the current user.
    """
    data = _payload()
    if data is None:
        return jsonify({'error': 'request body must be a JSON object'}), 400
    boundary = data.get('boundary')
    if not isinstance(boundary, list) or len(boundary) < 2:
        return jsonify({'error': 'boundary must be a list of at least 2 points'}), 400

    cfg = current_app.config
    corrected = PathCorrector.from_config(cfg).correct(boundary, cfg.get('MAP_MATCHING_PROFILE', 'walking'))

    activity = numeric_fields(data, ACTIVITY_FIELDS)
    if isinstance(data.get('profile'), dict):
        activity['profile'] = data['profile']

    result = ConquestCoordinator().conquer(
        owner_id=current_user.id,
        owner_display_name=current_user.name,
        owner_color=current_user.color,
        display_name=data.get('areaName'),
        boundary_path=corrected,
        captured_at=data.get('capturedAt'),
        activity=activity,
    )
    return jsonify(result.to_dict()), 201


@territories.route('/map', methods=['GET'])
def read_map():
    bbox = None
    raw = request.args.get('bbox')
    if raw:
        try:
            bbox = parse_bbox(raw)
        except ValueError as exc:
            return jsonify({'error': f'Invalid bbox: {exc}'}), 400
    return jsonify(ConquestCoordinator().read_map(bbox))


@territories.route('/<int:territory_id>', methods=['GET'])
def get_territory(territory_id):
    territory = TerritoryStore().get(territory_id)
    if territory is None:
        return jsonify({'error': 'Territory not found'}), 404
    return jsonify(territory.to_feature())
