from __future__ import annotations

import json

from huebrief.drafting import GenerationRequest
from huebrief.grounding import reference_body_excerpt
from huebrief.model_gateway import ModelCall

DRAFT_SYSTEM_PROMPT = (
    "You are the HueBrief newsroom assistant. Return strict JSON only, without markdown or prose. "
    "Keep facts anchored to the reference issue and avoid exaggerated, inflammatory or absolute wording. "
    "The reference article is context only: never copy its title wording, sentence flow or paragraph rhythm."
)

DRAFT_SCHEMA_LINE = json.dumps(
    {
        "title": "...",
        "content": "...",
        "sections": {"core": "...", "deepDive": "...", "conclusion": "..."},
        "compliance": {"riskLevel": "low|medium|high", "flags": []},
        "mediaSlots": [{"id": "m1", "type": "image", "anchorLabel": "core", "position": "after", "caption": "..."}],
        "sourceCitation": {"title": "...", "url": "...", "source": "..."},
    },
    ensure_ascii=False,
)


def _reference_lines(request: GenerationRequest) -> list[str]:
    reference = request.reference_article
    lines = [
        f"Reference title: {reference.title if reference else ''}",
        f"Reference summary: {reference.summary if reference else ''}",
        f"Reference source: {reference.source if reference else ''}",
        f"Reference URL: {reference.url if reference else ''}",
    ]
    excerpt = reference_body_excerpt(reference) if reference else ""
    if excerpt:
        lines.append(f"Reference body (excerpt): {excerpt}")
    if request.allowed_citation_urls:
        lines.append(f"Other citable URLs: {', '.join(request.allowed_citation_urls)}")
    return lines


def _request_metadata(request: GenerationRequest) -> dict[str, object]:
    reference = request.reference_article
    return {
        "keyword": request.keyword,
        "mode": request.mode,
        "emotion": request.emotion,
        "allowed_citation_urls": list(request.allowed_citation_urls),
        "reference": reference.model_dump() if reference else None,
    }


def build_draft_call(request: GenerationRequest, *, title_max_length: int) -> ModelCall:
    if request.mode == "interactive-longform":
        mode_rules = [
            "- mode: interactive-longform",
            "- content: at least 15 sentences, context and explanation focused",
            "- sections.core, sections.deepDive and sections.conclusion are independent paragraphs",
            "- mediaSlots: 3 to 5 entries (image or video, anchorLabel core/deepDive/conclusion)",
        ]
    else:
        mode_rules = [
            "- mode: draft",
            "- content: concise article body of about 500 Korean characters",
            "- mediaSlots: at most 1 entry (image or video, anchorLabel core/deepDive/conclusion)",
        ]

    user_prompt = "\n".join(
        [
            "Return schema:",
            DRAFT_SCHEMA_LINE,
            "Writing rules:",
            *mode_rules,
            f"- title: at most {title_max_length} characters, factual headline",
            "- structure: key facts -> background/context -> conclusion with 2-3 follow-up points",
            "- write in Korean with a balanced, neutral register",
            "- never write citation markers such as [출처] or URLs inside content; use sourceCitation only",
            "- sourceCitation.url must be one of the reference URLs below",
            f"Keyword: {request.keyword}",
            *_reference_lines(request),
        ]
    )
    return ModelCall(
        purpose=request.mode,
        system_prompt=DRAFT_SYSTEM_PROMPT,
        user_prompt=user_prompt,
        metadata=_request_metadata(request),
    )


def build_paragraph_call(
    request: GenerationRequest,
    *,
    title: str,
    paragraphs: list[str],
    paragraph_index: int,
) -> ModelCall:
    neighbours = []
    if paragraph_index > 0:
        neighbours.append(f"Previous paragraph: {paragraphs[paragraph_index - 1]}")
    if paragraph_index + 1 < len(paragraphs):
        neighbours.append(f"Next paragraph: {paragraphs[paragraph_index + 1]}")

    user_prompt = "\n".join(
        [
            'Return JSON only: {"paragraph": "..."}',
            "Rewrite the target paragraph in Korean. Keep its facts, improve flow, and keep it consistent with its neighbours.",
            "Do not add citation markers or URLs.",
            f"Article title: {title}",
            f"Keyword: {request.keyword}",
            f"Target paragraph: {paragraphs[paragraph_index]}",
            *neighbours,
            *_reference_lines(request),
        ]
    )
    metadata = _request_metadata(request)
    metadata["paragraph_index"] = paragraph_index
    return ModelCall(
        purpose="paragraph-regeneration",
        system_prompt=DRAFT_SYSTEM_PROMPT,
        user_prompt=user_prompt,
        metadata=metadata,
    )


def build_chat_call(message: str, *, intent: str, suggested_emotion: str) -> ModelCall:
    user_prompt = "\n".join(
        [
            'Return JSON only: {"text": "...", "recommendation": "vibrance|immersion|clarity|gravity|serenity|spectrum"}',
            "Respond in Korean with empathy in at most three sentences.",
            "Recommend one emotion color that fits the reader's state.",
            f"Detected intent: {intent}",
            f"Suggested emotion: {suggested_emotion}",
            f"User message: {message}",
        ]
    )
    return ModelCall(
        purpose="chat",
        system_prompt="You are Pulse Bot, a color psychology counselor for a news reader. Return strict JSON only.",
        user_prompt=user_prompt,
        metadata={"intent": intent},
    )
