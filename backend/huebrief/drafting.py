from __future__ import annotations

import re
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

DraftMode = Literal["draft", "interactive-longform"]
RiskLevel = Literal["low", "medium", "high"]

DRAFT_MAX_MEDIA_SLOTS = 1
LONGFORM_MIN_MEDIA_SLOTS = 3
LONGFORM_MAX_MEDIA_SLOTS = 5
SECTION_ANCHORS: tuple[str, ...] = ("core", "deepDive", "conclusion")

INLINE_CITATION_PATTERNS = (
    re.compile(r"[\[(【]\s*(?:출처|source|sources|ref)\s*(?:[:：][^\])】\n]*)?[\])】]", flags=re.IGNORECASE),
    re.compile(r"^\s*(?:출처|source)\s*[:：].*$", flags=re.IGNORECASE | re.MULTILINE),
    re.compile(r"https?://\S+", flags=re.IGNORECASE),
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())


class ReferenceArticle(CamelModel):
    title: str = ""
    summary: str = ""
    url: str = ""
    source: str = ""
    content: str = ""


class GenerationRequest(CamelModel):
    keyword: str = Field(..., min_length=1, max_length=200)
    mode: DraftMode = "draft"
    reference_article: ReferenceArticle | None = Field(
        default=None,
        validation_alias=AliasChoices("referenceArticle", "selectedArticle", "reference_article"),
    )
    allowed_citation_urls: list[str] = Field(default_factory=list, max_length=20)
    emotion: str | None = None

    @field_validator("mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value: object) -> str:
        return "interactive-longform" if value == "interactive-longform" else "draft"


class SourceCitation(CamelModel):
    title: str | None = None
    url: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)


class DraftSections(CamelModel):
    core: str = Field(..., min_length=1)
    deep_dive: str = Field(..., min_length=1)
    conclusion: str = Field(..., min_length=1)


class MediaSlot(CamelModel):
    id: str = Field(..., min_length=1)
    type: Literal["image", "video"] = "image"
    anchor_label: Literal["core", "deepDive", "conclusion"] = "core"
    position: Literal["before", "after"] = "after"
    caption: str = ""


class ComplianceFlag(CamelModel):
    category: Literal["privacy", "defamation", "medical", "financial", "violent", "factual"]
    severity: RiskLevel
    reason: str
    suggestion: str
    evidence_snippet: str | None = None


class ComplianceReport(CamelModel):
    risk_level: RiskLevel = "low"
    summary: str = ""
    flags: list[ComplianceFlag] = Field(default_factory=list)


class ModelComplianceHint(CamelModel):
    risk_level: RiskLevel
    flags: list[Any] = Field(default_factory=list)


class RawDraftPayload(CamelModel):
    """Shape the model must return for draft and interactive-longform generation."""

    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    sections: DraftSections
    compliance: ModelComplianceHint
    source_citation: SourceCitation
    media_slots: list[Any] = Field(default_factory=list)


class GeneratedDraft(CamelModel):
    mode: DraftMode
    keyword: str
    title: str
    content: str
    sections: DraftSections
    compliance: ComplianceReport
    source_citation: SourceCitation
    media_slots: list[MediaSlot] = Field(default_factory=list)


def strip_inline_citations(text: str) -> str:
    cleaned = text
    for pattern in INLINE_CITATION_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    lines = [" ".join(line.split()) for line in cleaned.splitlines()]
    collapsed = "\n".join(line for line in lines if line)
    return collapsed.strip()


def clip_title(title: str, max_length: int) -> str:
    clean = " ".join(title.split())
    if len(clean) <= max_length:
        return clean
    return clean[:max_length].rstrip()


def _coerce_media_slots(raw_slots: list[Any]) -> list[MediaSlot]:
    slots: list[MediaSlot] = []
    seen_ids: set[str] = set()
    for index, item in enumerate(raw_slots, start=1):
        if not isinstance(item, dict):
            continue
        candidate = dict(item)
        candidate.setdefault("id", f"m{index}")
        try:
            slot = MediaSlot.model_validate(candidate)
        except ValidationError:
            continue
        if slot.id in seen_ids:
            continue
        seen_ids.add(slot.id)
        slots.append(slot)
    return slots


def shape_media_slots(raw_slots: list[Any], mode: DraftMode, *, keyword: str) -> list[MediaSlot]:
    slots = _coerce_media_slots(raw_slots)
    if mode == "draft":
        return slots[:DRAFT_MAX_MEDIA_SLOTS]

    slots = slots[:LONGFORM_MAX_MEDIA_SLOTS]
    used_ids = {slot.id for slot in slots}
    anchor_index = 0
    while len(slots) < LONGFORM_MIN_MEDIA_SLOTS:
        anchor = SECTION_ANCHORS[anchor_index % len(SECTION_ANCHORS)]
        anchor_index += 1
        slot_id = f"m{len(slots) + 1}"
        while slot_id in used_ids:
            slot_id = f"{slot_id}x"
        used_ids.add(slot_id)
        slots.append(
            MediaSlot(
                id=slot_id,
                type="image",
                anchor_label=anchor,
                position="after",
                caption=f"{keyword} {anchor} visual",
            )
        )
    return slots


def shape_draft(
    payload: RawDraftPayload,
    *,
    mode: DraftMode,
    keyword: str,
    title_max_length: int,
    compliance: ComplianceReport,
) -> GeneratedDraft:
    sections = DraftSections(
        core=strip_inline_citations(payload.sections.core) or payload.sections.core.strip(),
        deep_dive=strip_inline_citations(payload.sections.deep_dive) or payload.sections.deep_dive.strip(),
        conclusion=strip_inline_citations(payload.sections.conclusion) or payload.sections.conclusion.strip(),
    )
    return GeneratedDraft(
        mode=mode,
        keyword=keyword,
        title=clip_title(payload.title, title_max_length),
        content=strip_inline_citations(payload.content),
        sections=sections,
        compliance=compliance,
        source_citation=payload.source_citation.model_copy(),
        media_slots=shape_media_slots(list(payload.media_slots), mode, keyword=keyword),
    )
