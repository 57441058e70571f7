"""Regulated-claim, sensitive-disclosure and bias screening.

Risk levels are ordered low < medium < high. Sensitive identifiers are always
``high``; guarantee and absolute-efficacy language is ``medium``.
"""

from __future__ import annotations

from dataclasses import dataclass
import re

from huebrief.drafting import ComplianceFlag, ComplianceReport, RiskLevel

RISK_RANK: dict[str, int] = {"low": 1, "medium": 2, "high": 3}


@dataclass(frozen=True)
class ClaimRule:
    category: str
    severity: RiskLevel
    pattern: re.Pattern[str]
    reason: str
    suggestion: str


def _rule(category: str, severity: RiskLevel, pattern: str, reason: str, suggestion: str) -> ClaimRule:
    return ClaimRule(
        category=category,
        severity=severity,
        pattern=re.compile(pattern, flags=re.IGNORECASE),
        reason=reason,
        suggestion=suggestion,
    )


CLAIM_RULES: tuple[ClaimRule, ...] = (
    _rule(
        "privacy",
        "high",
        r"주민\s*등록\s*번호|\b\d{6}-[1-4]\d{6}\b|resident registration number",
        "Resident registration number disclosure.",
        "Remove the identifier or replace it with an anonymized description.",
    ),
    _rule(
        "privacy",
        "high",
        r"계좌\s*번호|\b\d{3,6}-\d{2,6}-\d{4,8}\b|bank account number",
        "Bank account number disclosure.",
        "Remove account details; describe the transaction without identifiers.",
    ),
    _rule(
        "privacy",
        "high",
        r"(?:신용)?카드\s*번호|\b(?:\d{4}[- ]){3}\d{4}\b|credit card number",
        "Payment card number disclosure.",
        "Remove the card number entirely.",
    ),
    _rule(
        "privacy",
        "high",
        r"여권\s*번호|passport number|\b01[016789]-\d{3,4}-\d{4}\b",
        "Personal identifier or contact number disclosure.",
        "Remove personal identifiers and direct contact numbers.",
    ),
    _rule(
        "financial",
        "medium",
        r"원금\s*보장|무조건\s*수익|확정\s*수익|수익\s*보장|손실\s*없는|guaranteed\s+(?:returns?|profits?)|risk[- ]free",
        "Guaranteed-return or loss-free investment claim.",
        "State that returns are not guaranteed and describe the risks.",
    ),
    _rule(
        "medical",
        "medium",
        r"100\s*%\s*(?:치료|완치)|완치\s*보장|무조건\s*낫|부작용\s*(?:전혀\s*)?없|100\s*%\s*cure|cures?\s+all|guaranteed\s+cure",
        "Absolute medical efficacy claim.",
        "Attribute efficacy to a cited study and describe limitations.",
    ),
    _rule(
        "defamation",
        "medium",
        r"(?:사기꾼|범죄자)(?:이다|임이\s*확실)|is\s+definitely\s+a\s+(?:fraud|criminal)",
        "Unverified accusation stated as fact.",
        "Attribute the allegation to its source and use neutral wording.",
    ),
)

GROUP_TERMS = re.compile(
    r"(?:저|그|이)\s*(?:집단|사람들|무리|놈들|세대|지역)|\bthose people\b|\bthat group\b|\bthey all\b",
    flags=re.IGNORECASE,
)
ABSOLUTE_TERMS = re.compile(
    r"무조건|모두|전부|다\s*(?:나빠|틀렸)|항상|절대|\balways\b|\bnever\b|\ball of them\b|\bevery one of them\b",
    flags=re.IGNORECASE,
)

NEUTRAL_PROMPT = "이 주제에 대해 서로 다른 입장을 가진 사람들의 근거는 각각 무엇인가요?"
BIAS_WARNING = "특정 집단 전체를 단정하는 표현이 감지되었습니다. 개별 사례와 근거를 구분해 보세요."


def max_risk(levels: list[str]) -> RiskLevel:
    best: RiskLevel = "low"
    for level in levels:
        if RISK_RANK.get(level, 0) > RISK_RANK[best]:
            best = level  # type: ignore[assignment]
    return best


def risk_at_least(level: str, threshold: str) -> bool:
    return RISK_RANK.get(level, 0) >= RISK_RANK.get(threshold, RISK_RANK["medium"])


def _evidence_snippet(text: str, start: int, end: int, radius: int = 24) -> str:
    left = max(0, start - radius)
    right = min(len(text), end + radius)
    return " ".join(text[left:right].split())


def screen_compliance(text: str) -> ComplianceReport:
    flags: list[ComplianceFlag] = []
    for rule in CLAIM_RULES:
        match = rule.pattern.search(text)
        if match is None:
            continue
        flags.append(
            ComplianceFlag(
                category=rule.category,
                severity=rule.severity,
                reason=rule.reason,
                suggestion=rule.suggestion,
                evidence_snippet=_evidence_snippet(text, match.start(), match.end()),
            )
        )

    risk_level = max_risk([flag.severity for flag in flags])
    if not flags:
        summary = "No regulated claims or sensitive disclosures detected."
    else:
        categories = sorted({flag.category for flag in flags})
        summary = f"{len(flags)} issue(s) detected in {', '.join(categories)} screening."
    return ComplianceReport(risk_level=risk_level, summary=summary, flags=flags)


def detect_group_bias(message: str) -> tuple[str, str] | None:
    if GROUP_TERMS.search(message) and ABSOLUTE_TERMS.search(message):
        return BIAS_WARNING, NEUTRAL_PROMPT
    return None
