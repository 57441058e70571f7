from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from huebrief.api.contracts import ChatRequest, ComplianceCheckRequest, ParagraphRegenerationRequest
from huebrief.api.runtime import (
    AppServices,
    get_model_gateway,
    get_services,
    outcome_error_response,
    outcome_success_response,
)
from huebrief.drafting import GenerationRequest
from huebrief.model_gateway import ModelGateway
from huebrief.orchestrator import Blocked, UpstreamFailed


def build_ai_router() -> APIRouter:
    router = APIRouter(prefix="/api/ai", tags=["ai"])

    @router.post("/generate-draft", response_model=None)
    async def generate_draft(
        payload: GenerationRequest,
        services: AppServices = Depends(get_services),
        gateway: ModelGateway = Depends(get_model_gateway),
    ) -> JSONResponse:
        outcome = await services.orchestrator.generate(payload, gateway)
        if isinstance(outcome, (Blocked, UpstreamFailed)):
            return outcome_error_response(outcome)
        return outcome_success_response(outcome, outcome.value.model_dump(mode="json", by_alias=True))

    @router.post("/regenerate-draft-paragraph", response_model=None)
    async def regenerate_draft_paragraph(
        payload: ParagraphRegenerationRequest,
        services: AppServices = Depends(get_services),
        gateway: ModelGateway = Depends(get_model_gateway),
    ) -> JSONResponse:
        outcome = await services.orchestrator.regenerate_paragraph(
            payload,
            gateway,
            title=payload.title,
            paragraphs=payload.paragraphs,
            paragraph_index=payload.paragraph_index,
        )
        if isinstance(outcome, (Blocked, UpstreamFailed)):
            return outcome_error_response(outcome)
        return outcome_success_response(
            outcome,
            {
                "paragraph": outcome.value.text,
                "paragraphIndex": payload.paragraph_index,
                "compliance": outcome.value.compliance.model_dump(mode="json", by_alias=True),
            },
        )

    @router.post("/chat", response_model=None)
    async def chat(
        payload: ChatRequest,
        services: AppServices = Depends(get_services),
        gateway: ModelGateway = Depends(get_model_gateway),
    ) -> JSONResponse:
        outcome = await services.orchestrator.chat(payload.message, gateway, emotion=payload.emotion)
        return outcome_success_response(outcome, outcome.value.model_dump(by_alias=True, exclude_none=True))

    @router.post("/compliance-check")
    def compliance_check(
        payload: ComplianceCheckRequest,
        services: AppServices = Depends(get_services),
    ) -> dict[str, object]:
        report = services.orchestrator.compliance_check(payload.content)
        return report.model_dump(mode="json", by_alias=True)

    @router.post("/generate/interactive-article", response_model=None)
    async def generate_interactive_article(
        request: Request,
        services: AppServices = Depends(get_services),
    ) -> JSONResponse:
        # The body is read loosely: malformed input must still get the spec-only refusal.
        body = await request.body()
        payload: dict[str, Any] = {}
        if body:
            try:
                decoded = json.loads(body)
            except ValueError:
                decoded = None
            if isinstance(decoded, dict):
                payload = decoded
        services.orchestrator.generate_interactive_spec(payload)

    return router
