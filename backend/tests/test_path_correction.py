import requests

from conquest.services.territories import path_correction
from conquest.services.territories.path_correction import PathCorrector

from geo import path


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f'{self.status} error')

    def json(self):
        return self.payload


def _points():
    return path([(0, 0), (30, 0), (60, 5)])


def test_disabled_without_token(flask_app, monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError('map matching should not be called')

    monkeypatch.setattr(path_correction.requests, 'get', fail)
    points = _points()
    corrector = PathCorrector.from_config(flask_app.config)
    assert not corrector.is_available()
    assert corrector.correct(points) is points


def test_network_failure_keeps_original(flask_app, monkeypatch):
    def boom(*args, **kwargs):
        raise requests.ConnectionError('unreachable')

    monkeypatch.setattr(path_correction.requests, 'get', boom)
    points = _points()
    assert PathCorrector(token='pk.test').correct(points) is points


def test_http_error_keeps_original(flask_app, monkeypatch):
    monkeypatch.setattr(path_correction.requests, 'get', lambda *a, **k: FakeResponse({}, status=422))
    points = _points()
    assert PathCorrector(token='pk.test').correct(points) is points


def test_low_confidence_keeps_original(flask_app, monkeypatch):
    payload = {'matchings': [{'confidence': 0.1, 'geometry': {'coordinates': [[0, 0], [1, 1]]}}]}
    monkeypatch.setattr(path_correction.requests, 'get', lambda *a, **k: FakeResponse(payload))
    points = _points()
    assert PathCorrector(token='pk.test').correct(points) is points


def test_confident_match_replaces_points(flask_app, monkeypatch):
    points = _points()
    snapped = [
        [points[0]['longitude'], points[0]['latitude']],
        [points[1]['longitude'], points[1]['latitude'] + 0.00001],
        [points[1]['longitude'] + 0.0001, points[1]['latitude']],
        [points[2]['longitude'], points[2]['latitude']],
    ]
    calls = []

    def fake_get(url, params=None, timeout=None):
        calls.append((url, params, timeout))
        return FakeResponse({'matchings': [{'confidence': 0.9, 'geometry': {'coordinates': snapped}}]})

    monkeypatch.setattr(path_correction.requests, 'get', fake_get)
    corrected = PathCorrector(token='pk.test', timeout=5).correct(points, profile='cycling')

    url, params, timeout = calls[0]
    assert '/matching/v5/mapbox/cycling/' in url
    assert params['access_token'] == 'pk.test'
    assert len(params['timestamps'].split(';')) == len(points)
    assert timeout == 5

    assert [(p['longitude'], p['latitude']) for p in corrected] == [tuple(c) for c in snapped]
    assert corrected[0]['timestamp'] == points[0]['timestamp']
    assert corrected[-1]['timestamp'] == points[-1]['timestamp']


def test_unknown_profile_falls_back_to_walking(flask_app, monkeypatch):
    urls = []

    def fake_get(url, params=None, timeout=None):
        urls.append(url)
        return FakeResponse({'matchings': []})

    monkeypatch.setattr(path_correction.requests, 'get', fake_get)
    points = _points()
    assert PathCorrector(token='pk.test').correct(points, profile='skating') is points
    assert '/mapbox/walking/' in urls[0]
