"""
Tests for the treasure server client.
"""

import pytest
import requests

from conftest import BASE_URL, FakeResponse, FakeSession
from treasure_hunt.config import ServerConfig
from treasure_hunt.errors import (
    RemoteConfigUnavailable,
    RemoteError,
    RemoteNotConfigured,
    UploadRejected,
    UploadUnreachable,
)
from treasure_hunt.records import TreasureConfiguration, TreasureRecord
from treasure_hunt.remote import TreasureServerClient

UPLOAD = f'{BASE_URL}/upload-treasure-image'


def make_client(routes=None, **server):
    session = FakeSession(routes)
    config = ServerConfig(base_url=BASE_URL, **server)
    return TreasureServerClient(config, session=session), session


def upload(client):
    return client.upload_marker(
        b'\x89PNG...',
        image_name='clue_0_lighthouse',
        file_name='Lighthouse.png',
        latitude=51.5,
        longitude=-0.12,
        validation_score=82,
    )


class TestMarkerUpload:
    """Multipart upload and asset URL resolution."""

    def test_server_url_is_used(self):
        client, session = make_client({
            ('POST', UPLOAD): FakeResponse(200, {'url': 'https://cdn.example.com/Lighthouse.png'}),
        })
        asset = upload(client)
        assert asset.url == 'https://cdn.example.com/Lighthouse.png'
        assert asset.from_server

        call = session.calls_to(UPLOAD)[0]
        assert call['files']['image'][0] == 'Lighthouse.png'
        assert call['data']['imageName'] == 'clue_0_lighthouse'
        assert call['data']['validationScore'] == '82'
        assert call['timeout'] == 15

    def test_plain_text_body_uses_fallback_url(self):
        client, _ = make_client({('POST', UPLOAD): FakeResponse(200, None, text='stored')})
        asset = upload(client)
        assert asset.url == f'{BASE_URL}/images/Lighthouse.png'
        assert not asset.from_server

    def test_json_without_url_uses_fallback_url(self):
        client, _ = make_client({('POST', UPLOAD): FakeResponse(200, {'ok': True})})
        assert upload(client).url == f'{BASE_URL}/images/Lighthouse.png'

    def test_unreachable(self):
        client, _ = make_client()
        with pytest.raises(UploadUnreachable):
            upload(client)

    def test_timeout_is_unreachable(self):
        client, _ = make_client({('POST', UPLOAD): requests.Timeout('slow')})
        with pytest.raises(UploadUnreachable):
            upload(client)

    def test_rejected(self):
        client, _ = make_client({('POST', UPLOAD): FakeResponse(413, None, text='too large')})
        with pytest.raises(UploadRejected) as exc_info:
            upload(client)
        assert exc_info.value.status == 413
        assert exc_info.value.body == 'too large'

    def test_custom_headers_applied(self):
        client, session = make_client(headers={'X-Api-Key': 'k'})
        assert session.headers['X-Api-Key'] == 'k'


class TestConfigEndpoints:
    """Fetch/push/delete against the server."""

    def test_fetch_config(self):
        doc = {
            'images': [{
                'imageName': 'clue_3_tree',
                'fileName': 'Tree.png',
                'clueIndex': 3,
                'clueName': 'Tree',
            }],
            'lastUpdated': '2024-01-01T00:00:00Z',
            'totalTreasures': 99,
        }
        client, _ = make_client({('GET', f'{BASE_URL}/config'): FakeResponse(200, doc)})
        config = client.fetch_config()
        assert config.total_treasures == 1
        assert config.images[0].clue_index == 3

    def test_fetch_config_failure(self):
        client, _ = make_client({('GET', f'{BASE_URL}/config'): FakeResponse(500, None)})
        with pytest.raises(RemoteConfigUnavailable):
            client.fetch_config()

    def test_push_config(self):
        record = TreasureRecord(image_name='clue_0_a', file_name='a.png', clue_index=0, clue_name='a')
        client, session = make_client({('POST', f'{BASE_URL}/upload-web-config'): FakeResponse(200, {})})
        client.push_config(TreasureConfiguration.build([record]))

        sent = session.calls[0]['json']
        assert sent['totalTreasures'] == 1
        assert sent['images'][0]['imageName'] == 'clue_0_a'

    def test_delete_image_failure(self):
        client, _ = make_client({('POST', f'{BASE_URL}/delete-image'): FakeResponse(404, None)})
        with pytest.raises(RemoteError):
            client.delete_image('a.png')

    def test_not_configured(self):
        client = TreasureServerClient(ServerConfig(), session=FakeSession())
        assert not client.configured
        with pytest.raises(RemoteNotConfigured):
            client.fetch_config()
        assert client.image_url('a.png') == '/images/a.png'


class TestConnectionCheck:
    def test_reports_each_probe(self):
        client, _ = make_client({
            ('GET', BASE_URL): FakeResponse(200, None),
            ('POST', UPLOAD): FakeResponse(400, None, text='missing image'),
        })
        report = client.check_connection()
        assert report.server_reachable
        assert '200' in report.server_result
        assert '400' in report.upload_result and 'missing image' in report.upload_result

    def test_unreachable_server(self):
        client, _ = make_client()
        report = client.check_connection()
        assert not report.server_reachable
        assert report.to_dict()['serverReachable'] is False
