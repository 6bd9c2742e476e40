"""Best-effort GPS path correction through the Mapbox Map Matching API.

``correct`` never raises: when the service is disabled, slow, failing or
unsure of its answer, the original points come back unchanged.
"""
from datetime import datetime, timedelta, timezone

import requests
from flask import current_app

from .activity import parse_timestamp

MAPBOX_BASE_URL = 'https://api.mapbox.com'
MIN_CONFIDENCE = 0.3
MAX_COORDINATES = 100
PROFILES = ('walking', 'cycling', 'driving')


class PathCorrector:
    def __init__(self, token: str = '', timeout: float = 30.0, base_url: str = MAPBOX_BASE_URL):
        self.token = token or ''
        self.timeout = timeout
        self.base_url = base_url

    @classmethod
    def from_config(cls, config):
        return cls(
            token=config.get('MAPBOX_ACCESS_TOKEN', ''),
            timeout=float(config.get('MAP_MATCHING_TIMEOUT_SEC', 30)),
        )

    def is_available(self) -> bool:
        return bool(self.token)

    def correct(self, points, profile: str = 'walking'):
        if not self.is_available():
            return points
        if not points or len(points) < 2 or len(points) > MAX_COORDINATES:
            current_app.logger.info(f"[path-correction] skipped for {len(points or [])} points")
            return points
        if profile not in PROFILES:
            profile = 'walking'

        try:
            coordinates = ';'.join(f"{p['longitude']},{p['latitude']}" for p in points)
            params = {
                'access_token': self.token,
                'geometries': 'geojson',
                'overview': 'full',
                'steps': 'false',
            }
            stamps = [parse_timestamp(p.get('timestamp')) for p in points]
            if all(stamps):
                params['timestamps'] = ';'.join(str(int(s.replace(tzinfo=timezone.utc).timestamp())) for s in stamps)
            response = requests.get(
                f"{self.base_url}/matching/v5/mapbox/{profile}/{coordinates}",
                params=params,
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
            current_app.logger.warning(f"[path-correction] failed, keeping original points: {exc}")
            return points

        matchings = payload.get('matchings') or []
        if not matchings:
            current_app.logger.warning("[path-correction] no matchings returned, keeping original points")
            return points
        best = matchings[0]
        confidence = float(best.get('confidence') or 0)
        if confidence < MIN_CONFIDENCE:
            current_app.logger.warning(f"[path-correction] low confidence {confidence:.2f}, keeping original points")
            return points
        coords = (best.get('geometry') or {}).get('coordinates') or []
        if len(coords) < 2:
            return points

        corrected = self._with_timestamps(coords, points)
        current_app.logger.info(
            f"[path-correction] {len(points)} -> {len(corrected)} points confidence={confidence:.2f}"
        )
        return corrected

    def _with_timestamps(self, coords, original):
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        start = parse_timestamp(original[0].get('timestamp')) or now
        end = parse_timestamp(original[-1].get('timestamp')) or now
        span = (end - start).total_seconds()
        last_index = len(coords) - 1
        corrected = []
        for index, coord in enumerate(coords):
            stamp = start + timedelta(seconds=span * index / last_index)
            corrected.append({
                'latitude': coord[1],
                'longitude': coord[0],
                'timestamp': stamp.isoformat() + 'Z',
            })
        return corrected
