import re

from fastapi.testclient import TestClient

from huebrief.main import app
from huebrief.version import APP_VERSION


def test_fastapi_uses_centralized_app_version() -> None:
    assert app.version == APP_VERSION


def test_app_version_is_semver() -> None:
    assert re.fullmatch(r"\d+\.\d+\.\d+", APP_VERSION)


def test_root_reports_version() -> None:
    with TestClient(app) as client:
        payload = client.get("/").json()
    assert payload["version"] == APP_VERSION
