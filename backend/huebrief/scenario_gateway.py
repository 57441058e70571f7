"""Scripted model gateway for regression drills.

Wired in only when ``ENABLE_AI_DRAFT_TEST_SCENARIO`` is on and the request names a
scenario. Outputs are built from the call metadata so that success scenarios pass
grounding against whatever reference the caller supplied.
"""

from __future__ import annotations

import json
from typing import Any

from huebrief.model_gateway import ModelCall, ModelInvocationError, ModelTimeoutError

SCENARIOS: frozenset[str] = frozenset(
    {
        "draft-success",
        "draft-schema-block",
        "longform-success",
        "longform-schema-block",
        "parse-failure",
        "parse-then-success",
        "model-empty",
        "model-timeout",
        "model-error",
        "title-copy",
        "content-copy",
        "compliance-block",
        "reference-out-of-scope",
        "weak-grounding",
    }
)

MALFORMED_OUTPUT = 'result follows {"title": "broken", "content": this is not json } trailing'
PLACEHOLDER_CITATION_URL = "https://newsroom.invalid/unreferenced"
PLACEHOLDER_CITATION_SOURCE = "HueBrief Desk"


class ScenarioModelGateway:
    def __init__(self, scenario: str) -> None:
        self.scenario = scenario
        self.calls: list[dict[str, Any]] = []

    async def complete(self, call: ModelCall, *, timeout_ms: int, use_fallback_model: bool = False) -> str:
        self.calls.append({"purpose": call.purpose, "timeout_ms": timeout_ms, "fallback": use_fallback_model})
        scenario = self.scenario

        if scenario == "model-timeout":
            raise ModelTimeoutError(f"Scripted timeout after {timeout_ms}ms.")
        if scenario == "model-error":
            raise ModelInvocationError("Scripted upstream failure.")
        if scenario == "model-empty":
            return ""
        if scenario == "parse-failure":
            return MALFORMED_OUTPUT
        if scenario == "parse-then-success" and not use_fallback_model:
            return MALFORMED_OUTPUT

        if call.purpose == "paragraph-regeneration":
            return json.dumps(self._paragraph_payload(call), ensure_ascii=False)
        if call.purpose == "chat":
            return json.dumps(
                {"text": "천천히 숨을 고르고, 지금 느끼는 감정을 한 문장으로 적어보세요.", "recommendation": "serenity"},
                ensure_ascii=False,
            )
        return json.dumps(self._draft_payload(call), ensure_ascii=False)

    def _paragraph_payload(self, call: ModelCall) -> dict[str, Any]:
        keyword = str(call.metadata.get("keyword") or "이슈")
        if self.scenario.endswith("schema-block"):
            return {"text": "paragraph key is missing"}
        if self.scenario == "compliance-block":
            return {"paragraph": f"{keyword} 투자는 원금 보장과 무조건 수익을 약속합니다."}
        return {"paragraph": f"{keyword} 관련 쟁점을 다시 정리했습니다. 확인된 사실과 남은 질문을 나눠 설명합니다."}

    def _draft_payload(self, call: ModelCall) -> dict[str, Any]:
        keyword = str(call.metadata.get("keyword") or "이슈")
        mode = str(call.metadata.get("mode") or "draft")
        reference = call.metadata.get("reference") or {}
        ref_title = str(reference.get("title") or "")
        ref_summary = str(reference.get("summary") or "")
        allowed_urls = [str(url) for url in call.metadata.get("allowed_citation_urls") or []]
        # A citation is always emitted; without any reference it falls outside every pool.
        ref_url = str(reference.get("url") or (allowed_urls[0] if allowed_urls else PLACEHOLDER_CITATION_URL))
        ref_source = str(reference.get("source") or PLACEHOLDER_CITATION_SOURCE)

        if self.scenario.endswith("schema-block"):
            return {"title": f"{keyword} 초안", "content": f"{keyword} 본문만 있고 나머지 필드가 없습니다."}

        title = f"{keyword} 쟁점 정리"
        content = (
            f"{keyword} 관련 핵심 사실을 먼저 정리합니다. "
            f"참고 이슈 {ref_title}의 흐름을 바탕으로 {ref_summary} 내용을 확인했습니다. "
            "배경과 맥락을 함께 살펴보고 다음 확인 포인트를 제시합니다. "
            f"[출처: {ref_source}]"
        )
        citation_url = ref_url

        if self.scenario == "title-copy":
            title = ref_title
        elif self.scenario == "content-copy":
            content = ref_summary
        elif self.scenario == "compliance-block":
            content = f"{content} 이 상품은 원금 보장과 무조건 수익을 약속합니다."
        elif self.scenario == "reference-out-of-scope":
            citation_url = "https://unlisted.example.org/story"
        elif self.scenario == "weak-grounding":
            content = "오늘 날씨는 맑고 선선하며 주말에는 비 소식이 있습니다."

        slot_count = 3 if mode == "interactive-longform" else 2
        anchors = ("core", "deepDive", "conclusion")
        return {
            "title": title,
            "content": content,
            "sections": {
                "core": f"{keyword} 핵심 사실 요약",
                "deepDive": "배경과 맥락에 대한 해설",
                "conclusion": "후속 확인 포인트 두 가지",
            },
            "compliance": {"riskLevel": "low", "flags": []},
            "mediaSlots": [
                {
                    "id": f"m{index + 1}",
                    "type": "image",
                    "anchorLabel": anchors[index % len(anchors)],
                    "position": "after",
                    "caption": f"{keyword} 시각 자료 {index + 1}",
                }
                for index in range(slot_count)
            ],
            "sourceCitation": {"title": ref_title, "url": citation_url, "source": ref_source},
        }
