from __future__ import annotations

import pytest

from huebrief.compliance import detect_group_bias, max_risk, risk_at_least, screen_compliance


def test_guarantee_and_absolute_medical_claims_are_at_least_medium() -> None:
    report = screen_compliance("원금 보장, 무조건 수익, 100% 치료 가능")

    assert risk_at_least(report.risk_level, "medium")
    assert report.flags
    categories = {flag.category for flag in report.flags}
    assert {"financial", "medical"} <= categories
    assert all(flag.evidence_snippet for flag in report.flags)


def test_sensitive_identifier_mentions_are_high_risk() -> None:
    report = screen_compliance("주민등록번호와 계좌번호를 공개한다.")

    assert report.risk_level == "high"
    assert {flag.category for flag in report.flags} == {"privacy"}


@pytest.mark.parametrize(
    "text",
    [
        "연락처 900101-1234567 을 남겼다.",
        "입금 계좌는 110-234-567890 입니다.",
        "카드 1234-5678-9012-3456 로 결제했다.",
        "call 010-1234-5678 now",
    ],
)
def test_literal_identifiers_are_high_risk(text: str) -> None:
    assert screen_compliance(text).risk_level == "high"


def test_english_guarantee_language_is_flagged() -> None:
    report = screen_compliance("This fund offers guaranteed returns and is completely risk-free.")
    assert report.risk_level == "medium"
    assert report.flags[0].category == "financial"


def test_neutral_text_is_low_risk() -> None:
    report = screen_compliance("2026-10-19 발표된 물가 지표는 전월 대비 0.3% 올랐다.")
    assert report.risk_level == "low"
    assert report.flags == []
    assert report.summary


def test_risk_ordering_helpers() -> None:
    assert max_risk([]) == "low"
    assert max_risk(["low", "high", "medium"]) == "high"
    assert risk_at_least("high", "medium")
    assert not risk_at_least("low", "medium")


def test_group_absolute_language_gets_bias_warning() -> None:
    result = detect_group_bias("저 집단은 무조건 틀렸어. 모두 나빠.")
    assert result is not None
    warning, neutral_prompt = result
    assert warning
    assert neutral_prompt


@pytest.mark.parametrize("message", ["걱정되고 불안해.", "저 집단의 주장도 들어보고 싶어.", "항상 피곤해."])
def test_bias_screen_needs_group_and_absolute_terms(message: str) -> None:
    assert detect_group_bias(message) is None
