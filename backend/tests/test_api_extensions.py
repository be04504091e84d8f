"""HTTP surface tests against the real application and a local build location."""

import pytest
from fastapi.testclient import TestClient

from conftest import SAMPLE_CONFIG
from extension_stager.core.config import settings
from extension_stager.main import app

PATH = '/api/v1/extensions/{ext}/jobs/{job}/entities'


@pytest.fixture
def client(monkeypatch, stage_dir):
    monkeypatch.setattr(settings, 'stage_dir', stage_dir)
    monkeypatch.setattr(settings, 'remote_fs', 'local')
    monkeypatch.setattr(settings, 'debug_entities', True)
    with TestClient(app) as test_client:
        yield test_client


def _post(client, location, ext='sample-ext', job='nightly', body=SAMPLE_CONFIG):
    return client.post(PATH.format(ext=ext, job=job), params={'build_location': str(location)}, content=body)


class TestBuildEntitiesAPI:

    def test_builds_sample_extension(self, client, sample_build_location, stage_dir):
        response = _post(client, sample_build_location)
        assert response.status_code == 200
        data = response.json()
        assert data['extension'] == 'sample-ext'
        assert data['job'] == 'nightly'
        assert data['entities'] == [{'entity_type': 'PROCESS', 'name': 'nightly-clicks'}]
        assert data['stage_path'].startswith(str(stage_dir))
        assert data['debug_staging'] == {'staged': 1, 'failures': 0, 'blocked': False}
        assert any(uri.endswith('/resources/') for uri in data['artifacts'])

    def test_invalid_config_is_422(self, client, sample_build_location):
        response = _post(client, sample_build_location, body=b'frequency: days(1)\n')
        assert response.status_code == 422
        assert response.json()['detail']['error'] == 'ConfigValidationError'

    def test_package_without_builder_is_404(self, client, make_build_location):
        location = make_build_location(libs={'helpers/__init__.py': ''}, resources={})
        response = _post(client, location, ext='empty-ext')
        assert response.status_code == 404
        assert response.json()['detail']['error'] == 'ExtensionNotFoundError'

    def test_unreachable_location_is_502(self, client, tmp_path):
        response = _post(client, tmp_path / 'absent')
        assert response.status_code == 502
        assert response.json()['detail']['error'] == 'StagingError'

    def test_build_location_is_required(self, client):
        response = client.post(PATH.format(ext='sample-ext', job='nightly'), content=SAMPLE_CONFIG)
        assert response.status_code == 422


def test_root_and_version(client):
    assert client.get('/').json()['status'] == 'ok'
    data = client.get('/api/v1/version').json()
    assert data['version'] == settings.version
    assert data['remote_fs'] == 'local'
    assert data['debug_entities'] is True
