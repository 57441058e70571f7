import pytest
from fastapi.testclient import TestClient

from huebrief.config import Settings
from huebrief.main import create_app


def test_health_endpoint(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_ready_endpoint(client) -> None:
    response = client.get("/ready")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ready"
    assert payload["checks"]["model"]["gateway"] == "BedrockModelGateway"
    assert payload["checks"]["settings"]["titleMaxLength"] >= 30


def test_ready_reports_missing_model_configuration() -> None:
    app = create_app(runtime_settings=Settings(bedrock_model_id=""))
    with TestClient(app) as client:
        response = client.get("/ready")
    assert response.status_code == 503
    payload = response.json()
    assert payload["status"] == "not_ready"
    assert payload["checks"]["model"]["ok"] is False


def test_cors_wildcard_with_credentials_is_refused() -> None:
    with pytest.raises(RuntimeError):
        create_app(runtime_settings=Settings(cors_origins="*", cors_allow_credentials=True))
