"""
Shared fixtures and fakes for the test suite.
"""

from typing import Any, Dict, List, Optional

import numpy as np
import pytest
import requests

from treasure_hunt.config import HuntConfig
from treasure_hunt.errors import ValidatorFailed
from treasure_hunt.validator import ImageQualityValidator


class FakeResponse:
    """Just enough of ``requests.Response``."""

    def __init__(self, status_code: int = 200, json_data: Any = None, text: str = ''):
        self.status_code = status_code
        self._json = json_data
        self.text = text

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


class FakeSession:
    """
    Stand-in for ``requests.Session``.

    ``routes`` maps ``(method, url)`` to a FakeResponse or an exception
    instance to raise. Unrouted calls raise ``requests.ConnectionError``.
    """

    def __init__(self, routes: Optional[Dict] = None):
        self.headers: Dict[str, str] = {}
        self.routes = dict(routes or {})
        self.calls: List[Dict[str, Any]] = []

    def _dispatch(self, method: str, url: str, **kwargs):
        self.calls.append({'method': method, 'url': url, **kwargs})
        result = self.routes.get((method, url))
        if result is None:
            raise requests.ConnectionError(f"unreachable: {url}")
        if isinstance(result, Exception):
            raise result
        return result

    def get(self, url, **kwargs):
        return self._dispatch('GET', url, **kwargs)

    def post(self, url, **kwargs):
        return self._dispatch('POST', url, **kwargs)

    def calls_to(self, url: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c['url'] == url]


class ScriptedValidator(ImageQualityValidator):
    """Validator whose tool run returns queued scores instead of running a binary."""

    def __init__(self, scores, config=None):
        super().__init__(config)
        self.scores = list(scores)
        self.runs = 0

    def _run(self, image_path):
        self.runs += 1
        score = self.scores.pop(0)
        if isinstance(score, Exception):
            raise score
        return score


BASE_URL = 'https://hunt.example.com'


@pytest.fixture
def frame():
    """A 640x480 BGR frame with enough texture to encode meaningfully."""
    rng = np.random.default_rng(42)
    return rng.integers(0, 255, size=(480, 640, 3), dtype=np.uint8)


@pytest.fixture
def hunt_config(tmp_path):
    """Configuration publishing into a temporary directory, no server."""
    return HuntConfig(
        publisher={
            'local_path': tmp_path / 'Web-config.JSON',
            'public_path': tmp_path / 'public' / 'Web-config.JSON',
        },
    )


@pytest.fixture
def server_config(hunt_config):
    """``hunt_config`` pointed at a treasure server."""
    return hunt_config.model_copy(
        update={'server': hunt_config.server.model_copy(update={'base_url': BASE_URL})}
    )


@pytest.fixture
def app(hunt_config):
    """Flask app in testing mode with an in-memory database."""
    from app import create_app
    from app.extensions import db

    application = create_app('testing', hunt_config=hunt_config)
    with application.app_context():
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()
