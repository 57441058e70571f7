from __future__ import annotations

import json
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from huebrief.config import settings
from huebrief.main import create_app

REFERENCE_ARTICLE: dict[str, str] = {
    "title": "Reference headline",
    "summary": "Reference summary",
    "url": "https://example.com/reference",
    "source": "Regression Source",
}


@pytest.fixture
def reference_article() -> dict[str, str]:
    return dict(REFERENCE_ARTICLE)


@pytest.fixture
def draft_json() -> Callable[..., str]:
    """Builds a model response that passes every gate check against REFERENCE_ARTICLE."""

    def build(**overrides: Any) -> str:
        payload: dict[str, Any] = {
            "title": "물가 쟁점 정리",
            "content": (
                "물가 관련 핵심 사실을 먼저 정리합니다. "
                "Reference headline 흐름과 Reference summary 내용을 바탕으로 배경을 설명합니다. "
                "[출처: Regression Source]"
            ),
            "sections": {
                "core": "물가 핵심 사실 요약",
                "deepDive": "배경과 맥락에 대한 해설",
                "conclusion": "후속 확인 포인트 두 가지",
            },
            "compliance": {"riskLevel": "low", "flags": []},
            "mediaSlots": [
                {"id": "m1", "type": "image", "anchorLabel": "core", "position": "after", "caption": "차트"},
                {"id": "m2", "type": "video", "anchorLabel": "deepDive", "position": "before", "caption": "영상"},
            ],
            "sourceCitation": {
                "title": REFERENCE_ARTICLE["title"],
                "url": REFERENCE_ARTICLE["url"],
                "source": REFERENCE_ARTICLE["source"],
            },
        }
        for key, value in overrides.items():
            if value is None:
                payload.pop(key, None)
            else:
                payload[key] = value
        return json.dumps(payload, ensure_ascii=False)

    return build


@pytest.fixture
def test_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "enable_ai_draft_test_scenario", True)


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app())
