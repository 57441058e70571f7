from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from huebrief.main import create_app
from huebrief.model_gateway import ModelCall, ModelInvocationError

SCENARIO_HEADER = "x-ai-draft-scenario"


class FailingGateway:
    configured = True

    def __init__(self) -> None:
        self.calls = 0

    async def complete(self, call: ModelCall, *, timeout_ms: int, use_fallback_model: bool = False) -> str:
        self.calls += 1
        raise ModelInvocationError("upstream unavailable")


def _draft_body(reference_article: dict[str, str], mode: str = "draft") -> dict[str, object]:
    return {"keyword": "물가", "mode": mode, "selectedArticle": reference_article}


def _generate(client: TestClient, scenario: str, body: dict[str, object]):
    return client.post("/api/ai/generate-draft", json=body, headers={SCENARIO_HEADER: scenario})


def test_successful_draft_has_every_required_field(client, test_mode, reference_article) -> None:
    response = _generate(client, "draft-success", _draft_body(reference_article))

    assert response.status_code == 200
    assert response.headers["X-Generation-Outcome"] == "success"
    payload = response.json()
    assert payload["title"]
    assert payload["content"]
    assert "[출처" not in payload["content"]
    assert "출처:" not in payload["content"]
    assert payload["sections"]["core"]
    assert payload["sections"]["deepDive"]
    assert payload["sections"]["conclusion"]
    assert payload["compliance"]["riskLevel"] == "low"
    assert payload["sourceCitation"]["url"] == reference_article["url"]
    assert payload["sourceCitation"]["source"] == reference_article["source"]
    assert len(payload["mediaSlots"]) <= 1


def test_mode_switch_keeps_media_slot_rules_per_call(client, test_mode, reference_article) -> None:
    longform = _generate(client, "longform-success", _draft_body(reference_article, "interactive-longform"))
    draft = _generate(client, "draft-success", _draft_body(reference_article, "draft"))

    assert longform.status_code == 200
    assert draft.status_code == 200
    assert len(longform.json()["mediaSlots"]) >= 3
    assert len(draft.json()["mediaSlots"]) <= 1


@pytest.mark.parametrize("scenario", ["draft-schema-block", "longform-schema-block"])
def test_schema_block_returns_502_with_issues(client, test_mode, reference_article, scenario: str) -> None:
    response = _generate(client, scenario, _draft_body(reference_article))

    assert response.status_code == 502
    payload = response.json()
    assert payload["code"] == "AI_DRAFT_SCHEMA_INVALID"
    assert payload["issues"]
    assert all(issue["code"] and issue["message"] for issue in payload["issues"])


@pytest.mark.parametrize(
    ("scenario", "status_code", "code"),
    [
        ("parse-failure", 502, "AI_DRAFT_SCHEMA_INVALID"),
        ("model-empty", 502, "AI_NEWS_MODEL_EMPTY"),
        ("model-timeout", 504, "AI_NEWS_MODEL_TIMEOUT"),
        ("model-error", 502, "AI_NEWS_MODEL_ERROR"),
        ("title-copy", 502, "AI_NEWS_TITLE_COPY_DETECTED"),
        ("content-copy", 502, "AI_NEWS_CONTENT_COPY_DETECTED"),
        ("reference-out-of-scope", 502, "AI_NEWS_REFERENCE_OUT_OF_SCOPE"),
        ("weak-grounding", 502, "AI_NEWS_REFERENCE_WEAK_GROUNDING"),
        ("compliance-block", 502, "AI_DRAFT_COMPLIANCE_BLOCKED"),
    ],
)
def test_failure_scenarios_surface_structured_codes(
    client, test_mode, reference_article, scenario: str, status_code: int, code: str
) -> None:
    response = _generate(client, scenario, _draft_body(reference_article))

    assert response.status_code == status_code
    payload = response.json()
    assert payload["code"] == code
    assert payload["issues"]
    assert "X-Generation-Outcome" not in response.headers


def test_compliance_block_includes_report(client, test_mode, reference_article) -> None:
    payload = _generate(client, "compliance-block", _draft_body(reference_article)).json()

    assert payload["compliance"]["riskLevel"] in {"medium", "high"}
    assert payload["compliance"]["flags"]
    assert payload["issues"][0]["code"].startswith("AI_DRAFT_COMPLIANCE_")


def test_missing_reference_is_grounding_block(client, test_mode) -> None:
    response = _generate(client, "draft-success", {"keyword": "물가", "mode": "draft"})

    assert response.status_code == 502
    assert response.json()["code"] == "AI_NEWS_REFERENCE_REQUIRED"


def test_parse_then_success_is_marked_fallback_recovered(client, test_mode, reference_article) -> None:
    response = _generate(client, "parse-then-success", _draft_body(reference_article))

    assert response.status_code == 200
    assert response.headers["X-Generation-Outcome"] == "fallback-recovered"


def test_unknown_scenario_is_rejected(client, test_mode, reference_article) -> None:
    response = _generate(client, "does-not-exist", _draft_body(reference_article))

    assert response.status_code == 400
    payload = response.json()
    assert payload["code"] == "AI_DRAFT_SCENARIO_UNKNOWN"
    assert "draft-success" in payload["scenarios"]


def test_scenario_header_is_ignored_outside_test_mode(reference_article) -> None:
    gateway = FailingGateway()
    client = TestClient(create_app(model_gateway=gateway))

    response = _generate(client, "draft-success", _draft_body(reference_article))

    assert response.status_code == 502
    assert response.json()["code"] == "AI_NEWS_MODEL_ERROR"
    assert gateway.calls == 2


def test_request_validation_rejects_missing_keyword(client) -> None:
    response = client.post("/api/ai/generate-draft", json={"mode": "draft"})
    assert response.status_code == 422


def test_paragraph_index_out_of_range_returns_400(client, test_mode, reference_article) -> None:
    response = client.post(
        "/api/ai/regenerate-draft-paragraph",
        json={
            **_draft_body(reference_article),
            "title": "물가 쟁점 정리",
            "paragraphs": ["첫 문단", "둘째 문단"],
            "paragraphIndex": 4,
        },
        headers={SCENARIO_HEADER: "draft-success"},
    )

    assert response.status_code == 400
    payload = response.json()
    assert payload["code"] == "AI_DRAFT_PARAGRAPH_INVALID"
    assert payload["issues"][0]["code"] == "AI_DRAFT_PARAGRAPH_INVALID"


def test_paragraph_regeneration_returns_paragraph(client, test_mode, reference_article) -> None:
    response = client.post(
        "/api/ai/regenerate-draft-paragraph",
        json={
            **_draft_body(reference_article),
            "title": "물가 쟁점 정리",
            "paragraphs": ["첫 문단", "둘째 문단"],
            "paragraphIndex": 1,
        },
        headers={SCENARIO_HEADER: "draft-success"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["paragraph"]
    assert payload["paragraphIndex"] == 1
    assert payload["compliance"]["riskLevel"] == "low"


def test_chat_always_answers_even_when_model_fails() -> None:
    client = TestClient(create_app(model_gateway=FailingGateway()))

    response = client.post("/api/ai/chat", json={"message": "요즘 뉴스 때문에 너무 불안해요"})

    assert response.status_code == 200
    assert response.headers["X-Generation-Outcome"] == "fallback-recovered"
    payload = response.json()
    assert payload["text"]
    assert payload["intent"] == "anxiety"
    assert payload["recommendation"] == "serenity"
    assert "biasWarning" not in payload


def test_chat_scenario_reply_and_bias_warning(client, test_mode) -> None:
    response = client.post(
        "/api/ai/chat",
        json={"message": "저 집단은 항상 틀렸어"},
        headers={SCENARIO_HEADER: "draft-success"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["recommendation"] == "serenity"
    assert payload["biasWarning"]
    assert payload["neutralPrompt"]


def test_compliance_check_flags_regulated_claims(client) -> None:
    response = client.post("/api/ai/compliance-check", json={"content": "원금 보장, 무조건 수익, 100% 치료 가능"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["riskLevel"] in {"medium", "high"}
    assert payload["flags"]
    assert {"category", "severity", "reason", "suggestion", "evidenceSnippet"} <= set(payload["flags"][0])


def test_compliance_check_clean_text_is_low_risk(client) -> None:
    payload = client.post("/api/ai/compliance-check", json={"content": "시의회가 교통 예산안을 통과시켰다."}).json()
    assert payload["riskLevel"] == "low"
    assert payload["flags"] == []


@pytest.mark.parametrize(
    "body",
    [
        {"keywords": ["safety"], "rawHtml": "<div onclick=alert(1)>unsafe</div>"},
        {"spec": {"intents": ["intro", "context", "tension", "interpretation", "closure"]}},
        "<html><body>raw markup</body></html>",
    ],
)
def test_interactive_article_is_always_spec_only(client, body) -> None:
    if isinstance(body, str):
        response = client.post(
            "/api/ai/generate/interactive-article",
            content=body,
            headers={"Content-Type": "text/html"},
        )
    else:
        response = client.post("/api/ai/generate/interactive-article", json=body)

    assert response.status_code == 400
    payload = response.json()
    assert payload["code"] == "INTERACTIVE_STORY_SPEC_ONLY"
    assert payload["specVersion"] == "interactive-generation.v1"
    assert payload["requiredIntents"] == ["intro", "context", "tension", "interpretation", "closure"]


def test_batch_of_outcomes_moves_telemetry_counters(client, test_mode, reference_article) -> None:
    before = client.get("/api/admin/stats").json()["aiDraftOps"]
    successes, blocks = 3, 2
    for _ in range(successes):
        assert _generate(client, "draft-success", _draft_body(reference_article)).status_code == 200
    for _ in range(blocks):
        assert _generate(client, "draft-schema-block", _draft_body(reference_article)).status_code == 502

    after = client.get("/api/admin/stats").json()["aiDraftOps"]

    def delta(section: dict[str, int], previous: dict[str, int], bucket: str) -> int:
        return section[bucket] - previous[bucket]

    assert delta(after["totals"], before["totals"], "requests") >= successes + blocks
    assert delta(after["totals"], before["totals"], "success") >= successes
    assert delta(after["totals"], before["totals"], "schemaBlocks") >= blocks
    assert delta(after["byMode"]["draft"], before["byMode"]["draft"], "success") >= successes
    assert delta(after["byMode"]["draft"], before["byMode"]["draft"], "schemaBlocks") >= blocks


def test_unexpected_gateway_failure_returns_structured_500(reference_article) -> None:
    class BrokenGateway:
        async def complete(self, call: ModelCall, *, timeout_ms: int, use_fallback_model: bool = False) -> str:
            raise KeyError("unexpected")

    client = TestClient(create_app(model_gateway=BrokenGateway()), raise_server_exceptions=False)

    response = client.post("/api/ai/generate-draft", json=_draft_body(reference_article))

    assert response.status_code == 500
    payload = response.json()
    assert payload["code"] == "INTERNAL_ERROR"
    assert payload["issues"]


def test_reference_body_is_prompted_and_does_not_weaken_grounding(client, test_mode, reference_article) -> None:
    reference = {
        **reference_article,
        "content": (
            "가계부채 증가세가 석 달째 이어지고 있다. "
            "금융당국은 대출 규제를 강화하는 방안을 검토 중이다. "
            "전문가들은 금리 인하 기대가 주택 수요를 자극했다고 분석한다."
        ),
    }

    response = _generate(client, "draft-success", _draft_body(reference))

    assert response.status_code == 200
    assert response.json()["sourceCitation"]["url"] == reference_article["url"]


def test_allowed_citation_pool_stands_in_for_missing_reference(client, test_mode) -> None:
    response = _generate(
        client,
        "draft-success",
        {"keyword": "물가", "mode": "draft", "allowedCitationUrls": ["https://example.com/allowed"]},
    )

    assert response.status_code == 200
    assert response.json()["sourceCitation"]["url"] == "https://example.com/allowed"
