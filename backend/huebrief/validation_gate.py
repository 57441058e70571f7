"""Classifies raw model output for the generation endpoints.

Checks run in a fixed order and the first failure wins: emptiness, JSON parsing,
schema, reference grounding, copy detection, then compliance screening. Every
verdict other than :class:`Accepted` carries at least one :class:`ValidationIssue`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import re
from typing import Any, ClassVar, Union

from pydantic import Field, ValidationError

from huebrief.compliance import risk_at_least, screen_compliance
from huebrief.config import Settings
from huebrief.drafting import (
    CamelModel,
    ComplianceReport,
    GeneratedDraft,
    GenerationRequest,
    RawDraftPayload,
    shape_draft,
    strip_inline_citations,
)
from huebrief.grounding import (
    citation_pool,
    content_copy_score,
    grounding_overlap,
    normalize_url,
    title_copy_score,
)
from huebrief.settings_store import AdminSettings

SCHEMA_INVALID = "AI_DRAFT_SCHEMA_INVALID"
PARSE_FAILED = "AI_DRAFT_PARSE_FAILED"
FIELD_MISSING = "AI_DRAFT_FIELD_MISSING"
FIELD_INVALID = "AI_DRAFT_FIELD_INVALID"
CONTENT_EMPTY = "AI_DRAFT_CONTENT_EMPTY"
COMPLIANCE_BLOCKED = "AI_DRAFT_COMPLIANCE_BLOCKED"
MODEL_EMPTY = "AI_NEWS_MODEL_EMPTY"
REFERENCE_REQUIRED = "AI_NEWS_REFERENCE_REQUIRED"
REFERENCE_OUT_OF_SCOPE = "AI_NEWS_REFERENCE_OUT_OF_SCOPE"
REFERENCE_WEAK_GROUNDING = "AI_NEWS_REFERENCE_WEAK_GROUNDING"
TITLE_COPY_DETECTED = "AI_NEWS_TITLE_COPY_DETECTED"
CONTENT_COPY_DETECTED = "AI_NEWS_CONTENT_COPY_DETECTED"

NEAR_EMPTY_OUTPUTS = frozenset({"{}", "[]", "null", '""', "''"})
MIN_OUTPUT_CHARS = 2


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


@dataclass(frozen=True)
class Accepted:
    draft: GeneratedDraft

    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class AcceptedParagraph:
    text: str
    compliance: ComplianceReport

    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Rejection:
    issues: tuple[ValidationIssue, ...]

    ok: ClassVar[bool] = False
    code: ClassVar[str] = SCHEMA_INVALID
    message: ClassVar[str] = "Model output was rejected."
    status_code: ClassVar[int] = 502
    bucket: ClassVar[str] = "schemaBlocks"
    # Transient rejections get the single retry; terminal ones are returned as-is.
    transient: ClassVar[bool] = False


@dataclass(frozen=True)
class SchemaInvalid(Rejection):
    message: ClassVar[str] = "Model output did not match the draft schema."


@dataclass(frozen=True)
class ParseFailed(Rejection):
    message: ClassVar[str] = "Model output could not be parsed as JSON."
    bucket: ClassVar[str] = "parseFailures"
    transient: ClassVar[bool] = True


@dataclass(frozen=True)
class ModelEmpty(Rejection):
    code: ClassVar[str] = MODEL_EMPTY
    message: ClassVar[str] = "Model returned an empty response."
    bucket: ClassVar[str] = "modelEmpty"
    transient: ClassVar[bool] = True


@dataclass(frozen=True)
class ReferenceRequired(Rejection):
    code: ClassVar[str] = REFERENCE_REQUIRED
    message: ClassVar[str] = "A reference article or citation pool is required."
    bucket: ClassVar[str] = "groundingBlocks"


@dataclass(frozen=True)
class ReferenceOutOfScope(Rejection):
    code: ClassVar[str] = REFERENCE_OUT_OF_SCOPE
    message: ClassVar[str] = "Cited URL is outside the offered reference set."
    bucket: ClassVar[str] = "groundingBlocks"


@dataclass(frozen=True)
class ReferenceWeakGrounding(Rejection):
    code: ClassVar[str] = REFERENCE_WEAK_GROUNDING
    message: ClassVar[str] = "Generated text does not overlap the reference enough."
    bucket: ClassVar[str] = "groundingBlocks"


@dataclass(frozen=True)
class SimilarityBlocked(Rejection):
    message: ClassVar[str] = "Generated text reuses the reference too closely."
    bucket: ClassVar[str] = "similarityBlocks"

    @property
    def code(self) -> str:  # type: ignore[override]
        return self.issues[0].code if self.issues else TITLE_COPY_DETECTED


@dataclass(frozen=True)
class ComplianceBlocked(Rejection):
    report: ComplianceReport = field(default_factory=ComplianceReport)

    code: ClassVar[str] = COMPLIANCE_BLOCKED
    message: ClassVar[str] = "Generated text failed compliance screening."
    bucket: ClassVar[str] = "complianceBlocks"


GateVerdict = Union[Accepted, Rejection]
ParagraphVerdict = Union[AcceptedParagraph, Rejection]


class RawParagraphPayload(CamelModel):
    paragraph: str = Field(..., min_length=1)


def parse_model_json(raw: str) -> Any:
    """Decode model output that may be wrapped in a markdown fence or prose."""
    candidate = raw.strip()
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    fenced = re.search(r"```(?:json)?\s*(.*?)\s*```", candidate, flags=re.IGNORECASE | re.DOTALL)
    if fenced:
        try:
            return json.loads(fenced.group(1))
        except json.JSONDecodeError:
            pass

    start = candidate.find("{")
    end = candidate.rfind("}")
    if start != -1 and end != -1 and end > start:
        try:
            return json.loads(candidate[start : end + 1])
        except json.JSONDecodeError as exc:
            raise ValueError("Model response contained malformed JSON content.") from exc

    raise ValueError("Model response was not valid JSON.")


def is_empty_output(raw: str | None) -> bool:
    candidate = (raw or "").strip()
    return len(candidate) < MIN_OUTPUT_CHARS or candidate in NEAR_EMPTY_OUTPUTS


def _schema_issues(err: ValidationError) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    seen: set[str] = set()
    for error in err.errors():
        path = ".".join(str(part) for part in error.get("loc", ())) or "$"
        if path in seen:
            continue
        seen.add(path)
        code = FIELD_MISSING if error.get("type") == "missing" else FIELD_INVALID
        issues.append(ValidationIssue(code=code, message=f"{path}: {error.get('msg', 'invalid value')}"))
    return issues


def _blank_field_issues(payload: RawDraftPayload) -> list[ValidationIssue]:
    fields = {
        "title": payload.title,
        "sections.core": payload.sections.core,
        "sections.deepDive": payload.sections.deep_dive,
        "sections.conclusion": payload.sections.conclusion,
        "sourceCitation.url": payload.source_citation.url,
        "sourceCitation.source": payload.source_citation.source,
    }
    return [
        ValidationIssue(code=FIELD_INVALID, message=f"{path}: must not be blank")
        for path, value in fields.items()
        if not value.strip()
    ]


def _parse_object(raw: str) -> tuple[dict[str, Any] | None, ParseFailed | None]:
    try:
        parsed = parse_model_json(raw)
    except ValueError as exc:
        return None, ParseFailed(issues=(ValidationIssue(code=PARSE_FAILED, message=str(exc)),))
    if not isinstance(parsed, dict):
        issue = ValidationIssue(code=PARSE_FAILED, message="Model response must be a JSON object.")
        return None, ParseFailed(issues=(issue,))
    return parsed, None


class ValidationGate:
    def __init__(
        self,
        *,
        title_max_length: int,
        grounding_min_overlap: float = 0.35,
        title_copy_threshold: float = 0.8,
        content_copy_threshold: float = 0.6,
        citation_allowlist: list[str] | None = None,
        compliance_block_level: str = "medium",
    ) -> None:
        self.title_max_length = title_max_length
        self.grounding_min_overlap = grounding_min_overlap
        self.title_copy_threshold = title_copy_threshold
        self.content_copy_threshold = content_copy_threshold
        self.citation_allowlist = list(citation_allowlist or [])
        self.compliance_block_level = compliance_block_level

    @classmethod
    def from_settings(cls, runtime_settings: Settings, admin: AdminSettings) -> ValidationGate:
        return cls(
            title_max_length=admin.title_max_length,
            grounding_min_overlap=runtime_settings.ai_grounding_min_overlap,
            title_copy_threshold=runtime_settings.ai_title_copy_threshold,
            content_copy_threshold=runtime_settings.ai_content_copy_threshold,
            citation_allowlist=runtime_settings.citation_allowlist,
            compliance_block_level=runtime_settings.ai_compliance_block_level,
        )

    def validate(self, raw: str | None, request: GenerationRequest) -> GateVerdict:
        if is_empty_output(raw):
            return ModelEmpty(issues=(ValidationIssue(code=MODEL_EMPTY, message="Model returned no usable text."),))

        parsed, parse_failure = _parse_object(raw or "")
        if parse_failure is not None:
            return parse_failure

        try:
            payload = RawDraftPayload.model_validate(parsed)
        except ValidationError as err:
            return SchemaInvalid(issues=tuple(_schema_issues(err)))

        clean_content = strip_inline_citations(payload.content)
        schema_issues = _blank_field_issues(payload)
        if not clean_content:
            schema_issues.append(
                ValidationIssue(code=CONTENT_EMPTY, message="content is empty once citation markers are removed")
            )
        if schema_issues:
            return SchemaInvalid(issues=tuple(schema_issues))

        generated_text = "\n".join(
            [
                payload.title,
                clean_content,
                payload.sections.core,
                payload.sections.deep_dive,
                payload.sections.conclusion,
            ]
        )

        grounding_failure = self._check_grounding(payload, generated_text, request)
        if grounding_failure is not None:
            return grounding_failure

        similarity_failure = self._check_similarity(payload.title, clean_content, request)
        if similarity_failure is not None:
            return similarity_failure

        report = screen_compliance(generated_text)
        if risk_at_least(report.risk_level, self.compliance_block_level):
            return self._compliance_block(report)

        return Accepted(
            draft=shape_draft(
                payload,
                mode=request.mode,
                keyword=request.keyword,
                title_max_length=self.title_max_length,
                compliance=report,
            )
        )

    def validate_paragraph(self, raw: str | None, request: GenerationRequest) -> ParagraphVerdict:
        if is_empty_output(raw):
            return ModelEmpty(issues=(ValidationIssue(code=MODEL_EMPTY, message="Model returned no usable text."),))

        parsed, parse_failure = _parse_object(raw or "")
        if parse_failure is not None:
            return parse_failure

        try:
            payload = RawParagraphPayload.model_validate(parsed)
        except ValidationError as err:
            return SchemaInvalid(issues=tuple(_schema_issues(err)))

        text = strip_inline_citations(payload.paragraph)
        if not text:
            issue = ValidationIssue(code=CONTENT_EMPTY, message="paragraph is empty once citation markers are removed")
            return SchemaInvalid(issues=(issue,))

        report = screen_compliance(text)
        if risk_at_least(report.risk_level, self.compliance_block_level):
            return self._compliance_block(report)
        return AcceptedParagraph(text=text, compliance=report)

    def _check_grounding(
        self,
        payload: RawDraftPayload,
        generated_text: str,
        request: GenerationRequest,
    ) -> Rejection | None:
        reference = request.reference_article
        pool = citation_pool(reference, request.allowed_citation_urls, self.citation_allowlist)
        if not pool:
            issue = ValidationIssue(
                code=REFERENCE_REQUIRED,
                message="No reference article or allowed citation URL was supplied.",
            )
            return ReferenceRequired(issues=(issue,))

        cited = normalize_url(payload.source_citation.url)
        if cited not in pool:
            issue = ValidationIssue(
                code=REFERENCE_OUT_OF_SCOPE,
                message=f"sourceCitation.url '{payload.source_citation.url}' is not among the offered references.",
            )
            return ReferenceOutOfScope(issues=(issue,))

        if reference is None:
            return None
        overlap = grounding_overlap(generated_text, reference)
        if overlap is not None and overlap < self.grounding_min_overlap:
            issue = ValidationIssue(
                code=REFERENCE_WEAK_GROUNDING,
                message=f"Reference overlap {overlap:.2f} is below {self.grounding_min_overlap:.2f}.",
            )
            return ReferenceWeakGrounding(issues=(issue,))
        return None

    def _check_similarity(self, title: str, content: str, request: GenerationRequest) -> SimilarityBlocked | None:
        reference = request.reference_article
        if reference is None:
            return None

        issues: list[ValidationIssue] = []
        title_score = title_copy_score(title, reference)
        if title_score >= self.title_copy_threshold:
            issues.append(
                ValidationIssue(
                    code=TITLE_COPY_DETECTED,
                    message=f"Title matches the reference title (score {title_score:.2f}).",
                )
            )
        content_score = content_copy_score(content, reference)
        if content_score >= self.content_copy_threshold:
            issues.append(
                ValidationIssue(
                    code=CONTENT_COPY_DETECTED,
                    message=f"Content reproduces the reference body (score {content_score:.2f}).",
                )
            )
        if issues:
            return SimilarityBlocked(issues=tuple(issues))
        return None

    @staticmethod
    def _compliance_block(report: ComplianceReport) -> ComplianceBlocked:
        issues = tuple(
            ValidationIssue(code=f"AI_DRAFT_COMPLIANCE_{flag.category.upper()}", message=flag.reason)
            for flag in report.flags
        ) or (ValidationIssue(code=COMPLIANCE_BLOCKED, message=report.summary),)
        return ComplianceBlocked(issues=issues, report=report)
