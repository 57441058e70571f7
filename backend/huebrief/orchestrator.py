from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import re
import time
from typing import Any, Callable, NoReturn, Union

from pydantic import ValidationError

from huebrief.alerts import AlertMonitor, OutcomeSample
from huebrief.compliance import detect_group_bias, screen_compliance
from huebrief.config import Settings, settings
from huebrief.drafting import CamelModel, ComplianceReport, GenerationRequest
from huebrief.emotions import normalize_emotion
from huebrief.model_gateway import ModelCall, ModelGateway, ModelGatewayError, ModelKeyMissingError, ModelTimeoutError
from huebrief.prompts import build_chat_call, build_draft_call, build_paragraph_call
from huebrief.settings_store import SettingsStore
from huebrief.telemetry import TelemetryAggregator
from huebrief.validation_gate import (
    Accepted,
    GateVerdict,
    ModelEmpty,
    Rejection,
    ValidationGate,
    is_empty_output,
    parse_model_json,
)

logger = logging.getLogger("huebrief.orchestrator")

PARAGRAPH_INVALID = "AI_DRAFT_PARAGRAPH_INVALID"
INTERACTIVE_SPEC_ONLY = "INTERACTIVE_STORY_SPEC_ONLY"
INTERACTIVE_SPEC_VERSION = "interactive-generation.v1"
INTERACTIVE_REQUIRED_INTENTS: tuple[str, ...] = ("intro", "context", "tension", "interpretation", "closure")


class GenerationRequestError(ValueError):
    """Caller input the orchestrator refuses before any model call."""

    status_code = 400

    def __init__(self, code: str, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}


@dataclass(frozen=True)
class Success:
    value: Any
    duration_ms: float = 0.0


@dataclass(frozen=True)
class FallbackRecovered:
    """Accepted on the single retry against the fallback model."""

    value: Any
    recovered_from: str
    duration_ms: float = 0.0


@dataclass(frozen=True)
class Blocked:
    rejection: Rejection
    duration_ms: float = 0.0

    @property
    def code(self) -> str:
        return self.rejection.code

    @property
    def status_code(self) -> int:
        return self.rejection.status_code


@dataclass(frozen=True)
class UpstreamFailed:
    error: ModelGatewayError
    duration_ms: float = 0.0

    @property
    def code(self) -> str:
        return self.error.reason_code

    @property
    def status_code(self) -> int:
        return self.error.status_code


GenerationOutcome = Union[Success, FallbackRecovered, Blocked, UpstreamFailed]
AttemptResult = Union[Any, Rejection, ModelGatewayError]


class ChatReply(CamelModel):
    text: str
    intent: str
    recommendation: str
    bias_warning: str | None = None
    neutral_prompt: str | None = None


def _intent_pattern(korean: tuple[str, ...], english: tuple[str, ...]) -> re.Pattern[str]:
    parts = [re.escape(term) for term in korean]
    parts.extend(rf"\b{re.escape(term)}\b" for term in english)
    return re.compile("|".join(parts), flags=re.IGNORECASE)


INTENT_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("anxiety", _intent_pattern(("불안", "걱정", "무서", "두려", "초조"), ("anxious", "worried", "scared", "afraid"))),
    ("fatigue", _intent_pattern(("피곤", "지쳐", "지친", "힘들", "무기력"), ("tired", "exhausted", "burnout"))),
    ("urgency", _intent_pattern(("긴급", "속보", "당장", "서둘"), ("urgent", "breaking", "asap"))),
    ("curiosity", _intent_pattern(("궁금", "알고 싶", "어떻게", "왜 "), ("curious", "why", "how come"))),
    ("reflection", _intent_pattern(("생각", "돌아보", "의미", "성찰", "회고"), ("reflect", "meaning", "looking back"))),
)

INTENT_EMOTIONS: dict[str, str] = {
    "anxiety": "serenity",
    "fatigue": "vibrance",
    "curiosity": "clarity",
    "urgency": "immersion",
    "reflection": "gravity",
    "general": "spectrum",
}

FALLBACK_REPLIES: dict[str, str] = {
    "anxiety": "불안한 마음이 드는 건 자연스러운 일이에요. 잠시 호흡을 고르고 차분한 이야기부터 읽어보세요.",
    "fatigue": "많이 지치셨군요. 가볍고 활기찬 소식으로 기분을 환기해 보는 건 어떨까요?",
    "curiosity": "궁금한 점을 차근차근 풀어볼게요. 배경과 맥락을 정리한 기사부터 살펴보세요.",
    "urgency": "급한 소식일수록 확인된 사실부터 보는 게 좋아요. 핵심만 빠르게 정리해 드릴게요.",
    "reflection": "생각을 정리하기 좋은 때예요. 여운이 남는 깊이 있는 이야기를 추천해 드릴게요.",
    "general": "이야기해 주셔서 고마워요. 지금 기분에 맞는 다양한 관점의 뉴스를 골라 드릴게요.",
}


def classify_intent(message: str) -> str:
    for intent, pattern in INTENT_PATTERNS:
        if pattern.search(message):
            return intent
    return "general"


def _unwrap(verdict: GateVerdict) -> Any:
    return verdict.draft if isinstance(verdict, Accepted) else verdict


def _outcome_bucket(outcome: GenerationOutcome) -> str:
    if isinstance(outcome, (Success, FallbackRecovered)):
        return "success"
    if isinstance(outcome, Blocked):
        return outcome.rejection.bucket
    return "modelErrors"


def _outcome_kind(outcome: GenerationOutcome) -> str:
    return {
        Success: "success",
        FallbackRecovered: "fallback_recovered",
        Blocked: "blocked",
        UpstreamFailed: "upstream_failed",
    }[type(outcome)]


class GenerationOrchestrator:
    """Runs one generation request end to end.

    Each call builds the prompt, invokes the gateway under the admin timeout,
    classifies the output with a :class:`ValidationGate` built from the current
    admin settings, and retries once against the fallback model for transient
    failures. Telemetry and the alert sample are written once per finalized
    request, after the terminal outcome is known.
    """

    def __init__(
        self,
        *,
        settings_store: SettingsStore,
        telemetry: TelemetryAggregator,
        alerts: AlertMonitor,
        runtime_settings: Settings = settings,
    ) -> None:
        self.settings_store = settings_store
        self.telemetry = telemetry
        self.alerts = alerts
        self.runtime_settings = runtime_settings

    def build_gate(self) -> ValidationGate:
        return ValidationGate.from_settings(self.runtime_settings, self.settings_store.get())

    async def generate(self, request: GenerationRequest, gateway: ModelGateway) -> GenerationOutcome:
        gate = self.build_gate()
        call = build_draft_call(request, title_max_length=gate.title_max_length)
        return await self._run(
            mode=request.mode,
            emotion=request.emotion,
            gateway=gateway,
            call=call,
            check=lambda raw: _unwrap(gate.validate(raw, request)),
        )

    async def regenerate_paragraph(
        self,
        request: GenerationRequest,
        gateway: ModelGateway,
        *,
        title: str,
        paragraphs: list[str],
        paragraph_index: int,
    ) -> GenerationOutcome:
        mode = "paragraph-regeneration"
        if not 0 <= paragraph_index < len(paragraphs) or not paragraphs[paragraph_index].strip():
            self.telemetry.increment(mode, "requests", request.emotion)
            logger.info(
                "paragraph_regeneration_rejected",
                extra={
                    "event": "paragraph_regeneration_rejected",
                    "paragraph_index": paragraph_index,
                    "paragraph_count": len(paragraphs),
                },
            )
            raise GenerationRequestError(
                PARAGRAPH_INVALID,
                f"paragraphIndex {paragraph_index} does not select a non-empty paragraph among {len(paragraphs)}.",
            )

        gate = self.build_gate()
        call = build_paragraph_call(request, title=title, paragraphs=paragraphs, paragraph_index=paragraph_index)
        return await self._run(
            mode=mode,
            emotion=request.emotion,
            gateway=gateway,
            call=call,
            check=lambda raw: gate.validate_paragraph(raw, request),
        )

    async def chat(self, message: str, gateway: ModelGateway, *, emotion: str | None = None) -> GenerationOutcome:
        """Conversational reply; model failures fall back to a canned reply, never an error."""
        started = time.perf_counter()
        intent = classify_intent(message)
        suggested = INTENT_EMOTIONS[intent]
        bias = detect_group_bias(message)
        call = build_chat_call(message, intent=intent, suggested_emotion=suggested)

        failure: str | None = None
        text = ""
        recommendation = suggested
        try:
            raw = await self._complete(gateway, call, use_fallback_model=False)
        except ModelGatewayError as exc:
            failure = exc.reason_code
        else:
            text, recommendation, failure = self._read_chat_payload(raw, suggested)

        reply = ChatReply(
            text=text if failure is None else FALLBACK_REPLIES[intent],
            intent=intent,
            recommendation=recommendation,
            bias_warning=bias[0] if bias else None,
            neutral_prompt=bias[1] if bias else None,
        )
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        outcome: GenerationOutcome
        if failure is None:
            outcome = Success(value=reply, duration_ms=duration_ms)
        else:
            outcome = FallbackRecovered(value=reply, recovered_from=failure, duration_ms=duration_ms)
        self._finalize(
            "chat",
            outcome,
            emotion=emotion or recommendation,
            retried=False,
            ai_error=failure not in (None, "AI_DRAFT_PARSE_FAILED", ModelKeyMissingError.reason_code),
        )
        return outcome

    def compliance_check(self, content: str) -> ComplianceReport:
        report = screen_compliance(content)
        self.telemetry.record_outcome("compliance-check", "success")
        logger.info(
            "compliance_check_completed",
            extra={
                "event": "compliance_check_completed",
                "risk_level": report.risk_level,
                "flag_count": len(report.flags),
                "content_chars": len(content),
            },
        )
        return report

    def generate_interactive_spec(self, payload: dict[str, Any]) -> NoReturn:
        """Always refuses: interactive stories are authored from a story spec, never rendered here."""
        self.telemetry.increment("interactive-spec-only", "requests")
        logger.info(
            "interactive_spec_rejected",
            extra={
                "event": "interactive_spec_rejected",
                "payload_keys": sorted(str(key) for key in payload),
            },
        )
        raise GenerationRequestError(
            INTERACTIVE_SPEC_ONLY,
            "Interactive article generation only accepts a story spec; renderable markup is never produced.",
            details={
                "specVersion": INTERACTIVE_SPEC_VERSION,
                "requiredIntents": list(INTERACTIVE_REQUIRED_INTENTS),
            },
        )

    async def _run(
        self,
        *,
        mode: str,
        emotion: str | None,
        gateway: ModelGateway,
        call: ModelCall,
        check: Callable[[str], Any],
    ) -> GenerationOutcome:
        started = time.perf_counter()
        first = await self._attempt(gateway, call, check, use_fallback_model=False)
        if not self._retryable(first):
            return self._conclude(mode, emotion, first, started, retried_from=None)

        try:
            second = await self._attempt(gateway, call, check, use_fallback_model=True)
        except asyncio.CancelledError:
            self._conclude(mode, emotion, first, started, retried_from=None, retried=True)
            raise
        return self._conclude(mode, emotion, second, started, retried_from=self._result_code(first))

    async def _attempt(
        self,
        gateway: ModelGateway,
        call: ModelCall,
        check: Callable[[str], Any],
        *,
        use_fallback_model: bool,
    ) -> AttemptResult:
        try:
            raw = await self._complete(gateway, call, use_fallback_model=use_fallback_model)
        except ModelGatewayError as exc:
            return exc
        return check(raw)

    async def _complete(self, gateway: ModelGateway, call: ModelCall, *, use_fallback_model: bool) -> str:
        timeout_ms = self.settings_store.get().model_timeout_ms
        try:
            return await asyncio.wait_for(
                gateway.complete(call, timeout_ms=timeout_ms, use_fallback_model=use_fallback_model),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError as exc:
            raise ModelTimeoutError(f"Model call exceeded {timeout_ms}ms.") from exc

    @staticmethod
    def _retryable(result: AttemptResult) -> bool:
        if isinstance(result, ModelKeyMissingError):
            return False
        if isinstance(result, ModelGatewayError):
            return True
        return isinstance(result, Rejection) and result.transient

    @staticmethod
    def _result_code(result: AttemptResult) -> str:
        if isinstance(result, ModelGatewayError):
            return result.reason_code
        if isinstance(result, Rejection):
            return result.code
        return "OK"

    def _conclude(
        self,
        mode: str,
        emotion: str | None,
        result: AttemptResult,
        started: float,
        *,
        retried_from: str | None,
        retried: bool | None = None,
    ) -> GenerationOutcome:
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        outcome: GenerationOutcome
        if isinstance(result, ModelGatewayError):
            outcome = UpstreamFailed(error=result, duration_ms=duration_ms)
        elif isinstance(result, Rejection):
            outcome = Blocked(rejection=result, duration_ms=duration_ms)
        elif retried_from is not None:
            outcome = FallbackRecovered(value=result, recovered_from=retried_from, duration_ms=duration_ms)
        else:
            outcome = Success(value=result, duration_ms=duration_ms)

        # Missing model configuration is an operator error, not a model failure.
        if isinstance(outcome, UpstreamFailed):
            ai_error = not isinstance(outcome.error, ModelKeyMissingError)
        else:
            ai_error = isinstance(outcome, Blocked) and isinstance(outcome.rejection, ModelEmpty)
        self._finalize(
            mode,
            outcome,
            emotion=emotion,
            retried=retried if retried is not None else retried_from is not None,
            ai_error=ai_error,
        )
        return outcome

    def _finalize(
        self,
        mode: str,
        outcome: GenerationOutcome,
        *,
        emotion: str | None,
        retried: bool,
        ai_error: bool,
    ) -> None:
        if retried:
            self.telemetry.increment(mode, "retries", emotion)
        self.telemetry.record_outcome(
            mode,
            _outcome_bucket(outcome),
            emotion=emotion,
            fallback_recovered=isinstance(outcome, FallbackRecovered),
        )
        self.alerts.record(
            OutcomeSample(
                recorded_at=datetime.now(timezone.utc),
                mode=mode,
                ok=isinstance(outcome, (Success, FallbackRecovered)),
                latency_ms=outcome.duration_ms,
                ai_error=ai_error,
            )
        )

        extra: dict[str, Any] = {
            "event": "generation_finalized",
            "mode": mode,
            "outcome": _outcome_kind(outcome),
            "retried": retried,
            "duration_ms": outcome.duration_ms,
            "emotion": normalize_emotion(emotion),
        }
        if isinstance(outcome, (Blocked, UpstreamFailed)):
            extra["code"] = outcome.code
        if isinstance(outcome, Blocked):
            extra["issue_codes"] = [issue.code for issue in outcome.rejection.issues]
        if isinstance(outcome, FallbackRecovered):
            extra["recovered_from"] = outcome.recovered_from
        level = logging.INFO if isinstance(outcome, (Success, FallbackRecovered)) else logging.WARNING
        logger.log(level, "generation_finalized", extra=extra)

    @staticmethod
    def _read_chat_payload(raw: str, suggested: str) -> tuple[str, str, str | None]:
        if is_empty_output(raw):
            return "", suggested, "AI_NEWS_MODEL_EMPTY"
        try:
            parsed = parse_model_json(raw)
            reply = _ChatPayload.model_validate(parsed)
        except (ValueError, ValidationError):
            return "", suggested, "AI_DRAFT_PARSE_FAILED"
        text = " ".join(reply.text.split())
        if not text:
            return "", suggested, "AI_NEWS_MODEL_EMPTY"
        return text, normalize_emotion(reply.recommendation) or suggested, None


class _ChatPayload(CamelModel):
    text: str
    recommendation: str | None = None
