import logging
from uuid import UUID

from fastapi.testclient import TestClient

from huebrief.main import app
from huebrief.observability import sanitize_for_logging


def test_request_id_header_is_generated_when_missing() -> None:
    with TestClient(app) as client:
        response = client.get("/health")
    assert response.status_code == 200
    request_id = response.headers.get("X-Request-ID")
    assert request_id is not None
    UUID(request_id)


def test_request_id_header_is_preserved_when_provided() -> None:
    with TestClient(app) as client:
        response = client.get("/ready", headers={"X-Request-ID": "demo-request-123"})
    assert response.status_code == 200
    assert response.headers.get("X-Request-ID") == "demo-request-123"


def test_malformed_request_id_is_replaced() -> None:
    with TestClient(app) as client:
        response = client.get("/health", headers={"X-Request-ID": "bad id with spaces"})
    UUID(response.headers["X-Request-ID"])


def test_request_started_log_redacts_sensitive_query_values(caplog) -> None:
    with TestClient(app) as client:
        with caplog.at_level(logging.INFO, logger="huebrief.api"):
            response = client.get("/health?token=supersecret&email=user@example.org&q=public")
    assert response.status_code == 200

    request_started_logs = [
        record for record in caplog.records if getattr(record, "event", None) == "request_started"
    ]
    assert request_started_logs
    query = request_started_logs[-1].query
    assert query["token"] == "[REDACTED]"
    assert query["email"] == "[REDACTED]"
    assert query["q"] == "public"


def test_admin_settings_update_is_audited(caplog) -> None:
    with TestClient(app) as client:
        with caplog.at_level(logging.INFO, logger="huebrief.settings"):
            client.put(
                "/api/admin/ai-draft/settings",
                json={"titleMaxLength": 64},
                headers={"x-actor-id": "editor-7", "x-actor-role": "admin"},
            )
            client.put("/api/admin/ai-draft/settings", json={"titleMaxLength": 60})

    audits = [record for record in caplog.records if getattr(record, "event", None) == "admin_settings_updated"]
    assert audits
    assert audits[0].actor == "editor-7"
    assert audits[0].after["title_max_length"] == 64


def test_sanitize_for_logging_redacts_korean_personal_data() -> None:
    aws_access_key = "AKIA" "ABCDEFGHIJKLMNOP"
    payload = {
        "notes": (
            "연락처 010-1234-5678, 주민번호 900101-1234567, "
            "계좌 1002-345-678901, 메일 reader@example.org, "
            f"token Bearer abc123, key {aws_access_key}"
        ),
        "api_key": "plain-value",
        "account_number": "1002-345-678901",
    }

    sanitized = sanitize_for_logging(payload, max_string_length=2000)
    notes = sanitized["notes"]
    assert "010-1234-5678" not in notes
    assert "900101-1234567" not in notes
    assert "1002-345-678901" not in notes
    assert "reader@example.org" not in notes
    assert "[REDACTED_PHONE]" in notes
    assert "[REDACTED_RRN]" in notes
    assert "[REDACTED_ACCOUNT]" in notes
    assert "[REDACTED_EMAIL]" in notes
    assert "Bearer [REDACTED]" in notes
    assert "[REDACTED_AWS_ACCESS_KEY]" in notes
    assert sanitized["api_key"] == "[REDACTED]"
    assert sanitized["account_number"] == "[REDACTED]"


def test_sanitize_for_logging_truncates_long_strings() -> None:
    sanitized = sanitize_for_logging("가" * 300, max_string_length=10)
    assert sanitized == "가" * 10 + "...[truncated]"
