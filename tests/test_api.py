"""
Tests for the HTTP API.
"""

import io

import pytest

from app.services.authoring_sessions import SessionNotFound, SessionRegistry
import treasure_hunt.validator as validator_module
from treasure_hunt.capture import encode_png
from treasure_hunt.hunt import TreasureHunt
from treasure_hunt.workflow import WorkflowState


@pytest.fixture
def score(monkeypatch):
    """Validator tool double; set ``score['value']`` to change the result."""
    state = {'value': 82}

    def fake_run(self, image_path):
        return state['value']

    monkeypatch.setattr(validator_module.ImageQualityValidator, '_run', fake_run)
    return state


def post_frame(client, session_id, frame, latitude='51.5007', longitude='-0.1246'):
    return client.post(
        f'/api/authoring/sessions/{session_id}/frame',
        data={
            'frame': (io.BytesIO(encode_png(frame)), 'frame.png'),
            'latitude': latitude,
            'longitude': longitude,
        },
        content_type='multipart/form-data',
    )


class TestHealth:

    def test_health(self, client):
        resp = client.get('/api/health')
        assert resp.status_code == 200
        assert resp.get_json() == {'status': 'ok', 'serverConfigured': False, 'activeSessions': 0}


class TestTreasures:
    """Configuration publish/delete endpoints."""

    treasure = {
        'imageName': 'clue_0_lighthouse',
        'fileName': 'Lighthouse.png',
        'clueIndex': 0,
        'clueName': 'Lighthouse',
        'clueText': 'Look up',
        'latitude': 51.5,
        'longitude': -0.12,
        'hasPhysicalGame': False,
        'physicalGameInstruction': '',
        'physicalGameSecretCode': '',
    }

    def test_empty_configuration(self, client):
        data = client.get('/api/treasures').get_json()
        assert data['images'] == [] and data['totalTreasures'] == 0

    def test_publish_then_get(self, client):
        resp = client.post('/api/treasures/publish', json={'treasures': [self.treasure]})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['success'] and body['totalTreasures'] == 1
        assert body['steps']['remote']['status'] == 'skipped'

        data = client.get('/api/treasures').get_json()
        assert data['images'][0]['imageName'] == 'clue_0_lighthouse'
        assert data['totalTreasures'] == 1

    def test_publish_requires_list(self, client):
        resp = client.post('/api/treasures/publish', json={'treasures': 'nope'})
        assert resp.status_code == 400

    def test_publish_invalid_record(self, client):
        resp = client.post('/api/treasures/publish', json={'treasures': [{'imageName': 'x'}]})
        assert resp.status_code == 400
        assert resp.get_json()['error'] == 'invalid_request'

    def test_publish_duplicate(self, client):
        resp = client.post('/api/treasures/publish', json={'treasures': [self.treasure, self.treasure]})
        assert resp.status_code == 409
        assert resp.get_json()['error'] == 'duplicate_image_name'

    def test_delete(self, client):
        client.post('/api/treasures/publish', json={'treasures': [self.treasure]})
        resp = client.post('/api/treasures/delete', json={'imageName': 'clue_0_lighthouse'})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['success'] and body['treasureRemoved'] == 'clue_0_lighthouse'
        assert client.get('/api/treasures').get_json()['totalTreasures'] == 0

    def test_delete_unknown(self, client):
        resp = client.post('/api/treasures/delete', json={'imageName': 'clue_5_nothing'})
        assert resp.status_code == 404
        assert resp.get_json()['error'] == 'treasure_not_found'

    def test_server_check_without_server(self, client):
        resp = client.get('/api/treasures/server-check')
        assert resp.status_code == 503
        assert resp.get_json()['error'] == 'remote_not_configured'

    def test_image_url(self, client):
        data = client.get('/api/treasures/image-url/Lighthouse.png').get_json()
        assert data['url'] == '/images/Lighthouse.png'


class TestAuthoring:
    """A full authoring session over HTTP."""

    def test_lighthouse_session(self, client, frame, score):
        resp = client.post('/api/authoring/sessions', json={'maxTreasures': 1, 'latitude': 51.5, 'longitude': -0.12})
        assert resp.status_code == 201
        session_id = resp.get_json()['sessionId']
        assert resp.get_json()['state'] == 'capturing'

        resp = post_frame(client, session_id, frame)
        assert resp.status_code == 200
        assert resp.get_json()['imageSize'] == {'width': 640, 'height': 480}
        assert resp.get_json()['state'] == 'naming'

        resp = client.post(f'/api/authoring/sessions/{session_id}/name', json={'label': 'Lighthouse'})
        assert resp.get_json()['state'] == 'cropping'
        assert resp.get_json()['cropRegion']['width'] == 200

        resp = client.post(f'/api/authoring/sessions/{session_id}/crop', json={
            'region': {'x': 10, 'y': 10, 'width': 150, 'height': 100},
            'displaySize': {'width': 320, 'height': 240},
        })
        body = resp.get_json()
        assert body['validation']['accepted']
        assert body['validation']['uploadStatus'] == 'not_configured'
        assert body['state'] == 'authoring'

        code = client.post(f'/api/authoring/sessions/{session_id}/secret-code').get_json()['code']
        resp = client.post(f'/api/authoring/sessions/{session_id}/save', json={
            'clueText': 'Look up where ships are warned',
            'hasPhysicalGame': True,
            'physicalGameInstruction': 'Lift the rock',
            'physicalGameSecretCode': code,
        })
        body = resp.get_json()
        assert resp.status_code == 200
        assert body['saved']['sessionComplete']
        assert body['saved']['record']['latitude'] == 51.5007
        assert body['state'] == 'complete'

        images = client.get('/api/treasures').get_json()['images']
        assert images[0]['imageName'] == 'clue_0_lighthouse'
        assert images[0]['physicalGameSecretCode'] == code

    def test_rejected_marker(self, client, frame, score):
        score['value'] = 40
        session_id = client.post('/api/authoring/sessions', json={'latitude': 1, 'longitude': 2}).get_json()['sessionId']
        post_frame(client, session_id, frame)
        client.post(f'/api/authoring/sessions/{session_id}/name', json={'label': 'Lighthouse'})

        body = client.post(f'/api/authoring/sessions/{session_id}/crop', json={}).get_json()
        assert not body['validation']['accepted']
        assert body['state'] == 'capturing'

    def test_start_without_location(self, client):
        resp = client.post('/api/authoring/sessions', json={})
        assert resp.status_code == 403
        assert resp.get_json()['error'] == 'location_permission_denied'

    def test_invalid_transition(self, client, frame):
        session_id = client.post('/api/authoring/sessions', json={'latitude': 1, 'longitude': 2}).get_json()['sessionId']
        resp = client.post(f'/api/authoring/sessions/{session_id}/save', json={'clueText': 'x'})
        assert resp.status_code == 409
        assert resp.get_json()['error'] == 'invalid_transition'

    def test_unknown_session(self, client):
        resp = client.get('/api/authoring/sessions/nope')
        assert resp.status_code == 404

    def test_end_session(self, client):
        session_id = client.post('/api/authoring/sessions', json={'latitude': 1, 'longitude': 2}).get_json()['sessionId']
        body = client.post(f'/api/authoring/sessions/{session_id}/end').get_json()
        assert body['state'] == 'complete'
        assert client.get('/api/health').get_json()['activeSessions'] == 0

    def test_discard_session(self, client):
        session_id = client.post('/api/authoring/sessions', json={'latitude': 1, 'longitude': 2}).get_json()['sessionId']
        resp = client.delete(f'/api/authoring/sessions/{session_id}')
        assert resp.status_code == 200
        assert client.get(f'/api/authoring/sessions/{session_id}').status_code == 404


class TestTeams:
    """Roster and scoring endpoints."""

    def put_team(self, client, uid, number, name):
        return client.put(f'/api/teams/{uid}', json={'teamNumber': number, 'teamName': name, 'score': 3})

    def test_roster(self, client):
        self.put_team(client, 'b', 2, 'Bravo')
        self.put_team(client, 'a', 1, 'Alpha')
        teams = client.get('/api/teams').get_json()
        assert [t['uid'] for t in teams] == ['a', 'b']

    def test_put_requires_team_name(self, client):
        resp = client.put('/api/teams/x', json={'teamNumber': 1})
        assert resp.status_code == 400

    def test_physical_score(self, client):
        self.put_team(client, 'a', 1, 'Alpha')
        resp = client.patch('/api/teams/a/physical-score', json={'physicalScore': 12, 'physicalScoreComment': 'Fast'})
        assert resp.status_code == 200
        assert resp.get_json()['physicalScore'] == 12
        assert resp.get_json()['score'] == 3

        resp = client.patch('/api/teams/zzz/physical-score', json={'physicalScore': 1})
        assert resp.status_code == 404

    def test_ledger(self, client):
        self.put_team(client, 'a', 1, 'Alpha')
        first = client.post('/api/teams/a/score-entries', json={'score': 6, 'volunteerName': 'Sam'}).get_json()
        second = client.post('/api/teams/a/score-entries', json={'score': 4}).get_json()

        client.post(f"/api/teams/a/score-entries/{first['id']}/finalize")
        resp = client.post(f"/api/teams/a/score-entries/{second['id']}/finalize")
        assert resp.get_json()['physicalScore'] == 10

        resp = client.patch(f"/api/teams/a/score-entries/{first['id']}", json={'score': 99})
        assert resp.status_code == 409

        listing = client.get('/api/teams/a/score-entries').get_json()
        assert listing['netPhysicalScore'] == 10
        assert all(e['isAdded'] for e in listing['entries'])


class TestAuthoringInput:
    """Malformed requests are refused with 400 and leave the session where it was."""

    def start(self, client, **body):
        body.setdefault('latitude', 1)
        body.setdefault('longitude', 2)
        return client.post('/api/authoring/sessions', json=body)

    def to_cropping(self, client, frame):
        session_id = self.start(client).get_json()['sessionId']
        post_frame(client, session_id, frame)
        client.post(f'/api/authoring/sessions/{session_id}/name', json={'label': 'Lighthouse'})
        return session_id

    @pytest.mark.parametrize('body', [
        {'latitude': 200},
        {'latitude': 10, 'longitude': -181},
        {'latitude': 'north'},
    ])
    def test_bad_coordinates(self, client, body):
        resp = self.start(client, **body)
        assert resp.status_code == 400
        assert resp.get_json()['error'] == 'invalid_request'
        assert client.get('/api/health').get_json()['activeSessions'] == 0

    @pytest.mark.parametrize('quota', ['3', -1, 0, 1.5])
    def test_bad_quota(self, client, quota):
        resp = self.start(client, maxTreasures=quota)
        assert resp.status_code == 400
        assert resp.get_json()['error'] == 'invalid_request'

    def test_bad_frame_coordinates(self, client, frame):
        session_id = self.start(client).get_json()['sessionId']
        resp = post_frame(client, session_id, frame, latitude='95', longitude='0')
        assert resp.status_code == 400
        assert client.get(f'/api/authoring/sessions/{session_id}').get_json()['state'] == 'capturing'

    @pytest.mark.parametrize('body', [
        {'region': {'x': 'left'}},
        {'region': 'everything'},
        {'region': {'x': 0, 'y': 0, 'width': 10, 'height': 10}, 'displaySize': {'width': 320}},
        {'region': {'x': 0, 'y': 0, 'width': 10, 'height': 10}, 'displaySize': {'width': 0, 'height': 240}},
        {'confirm': 'no'},
    ])
    def test_bad_crop(self, client, frame, score, body):
        session_id = self.to_cropping(client, frame)
        resp = client.post(f'/api/authoring/sessions/{session_id}/crop', json=body)
        assert resp.status_code == 400
        assert resp.get_json()['error'] == 'invalid_request'
        assert client.get(f'/api/authoring/sessions/{session_id}').get_json()['state'] == 'cropping'

    def test_physical_game_flag_must_be_boolean(self, client, frame, score):
        session_id = self.to_cropping(client, frame)
        client.post(f'/api/authoring/sessions/{session_id}/crop', json={})

        resp = client.post(f'/api/authoring/sessions/{session_id}/save', json={
            'clueText': 'Look up',
            'hasPhysicalGame': 'false',
        })
        assert resp.status_code == 400
        assert client.get(f'/api/authoring/sessions/{session_id}').get_json()['state'] == 'authoring'


class TestUnreadableLocalDocument:
    """A damaged local configuration file is reported, not a crash."""

    @pytest.fixture(autouse=True)
    def damage(self, hunt_config):
        hunt_config.publisher.local_path.write_text('{"images": [')

    def test_get_treasures(self, client):
        resp = client.get('/api/treasures')
        assert resp.status_code == 500
        assert resp.get_json()['error'] == 'local_config_corrupt'

    def test_session_still_starts(self, client):
        resp = client.post('/api/authoring/sessions', json={'latitude': 1, 'longitude': 2})
        assert resp.status_code == 201


class TestSessionRegistry:
    """Completed sessions are kept only up to a limit."""

    def test_oldest_completed_sessions_are_forgotten(self, hunt_config):
        registry = SessionRegistry(TreasureHunt(config=hunt_config), max_completed=1)
        first = registry.start(latitude=1, longitude=2)
        second = registry.start(latitude=1, longitude=2)
        live = registry.start(latitude=1, longitude=2)

        registry.end(first.id)
        registry.end(second.id)

        assert registry.get(second.id).workflow.state == WorkflowState.COMPLETE
        assert registry.get(live.id) is live
        with pytest.raises(SessionNotFound):
            registry.get(first.id)
        assert registry.active_count() == 1
