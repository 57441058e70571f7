from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import threading
import time
from typing import Any, Protocol

from huebrief.config import Settings

logger = logging.getLogger("huebrief.model")


class ModelGatewayError(RuntimeError):
    """Raised when the generative model cannot produce output for a call."""

    reason_code = "AI_NEWS_MODEL_ERROR"
    status_code = 502


class ModelKeyMissingError(ModelGatewayError):
    reason_code = "AI_NEWS_KEY_MISSING"
    status_code = 503


class ModelTimeoutError(ModelGatewayError):
    reason_code = "AI_NEWS_MODEL_TIMEOUT"
    status_code = 504


class ModelInvocationError(ModelGatewayError):
    reason_code = "AI_NEWS_MODEL_ERROR"
    status_code = 502


@dataclass(frozen=True)
class ModelCall:
    purpose: str
    system_prompt: str
    user_prompt: str
    metadata: dict[str, Any] = field(default_factory=dict)


class ModelGateway(Protocol):
    async def complete(self, call: ModelCall, *, timeout_ms: int, use_fallback_model: bool = False) -> str:
        ...


class BedrockModelGateway:
    def __init__(self, settings: Settings, client: Any | None = None) -> None:
        self._settings = settings
        self._client = client
        self._clients_by_timeout: dict[int, Any] = {}
        self._clients_lock = threading.Lock()

    @property
    def configured(self) -> bool:
        return bool(self._settings.bedrock_model_id.strip())

    async def complete(self, call: ModelCall, *, timeout_ms: int, use_fallback_model: bool = False) -> str:
        model_id = (
            self._settings.bedrock_fallback_model_id if use_fallback_model else self._settings.bedrock_model_id
        ).strip()
        if not model_id:
            raise ModelKeyMissingError("Bedrock model ID is not configured.")

        started = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self._converse, model_id, call, timeout_ms),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError as exc:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            logger.warning(
                "model_invoke_timeout",
                extra={
                    "event": "model_invoke_timeout",
                    "model_id": model_id,
                    "purpose": call.purpose,
                    "timeout_ms": timeout_ms,
                    "duration_ms": duration_ms,
                },
            )
            raise ModelTimeoutError(f"Model '{model_id}' did not respond within {timeout_ms}ms.") from exc
        except ModelGatewayError:
            raise
        except Exception as exc:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            if "ReadTimeout" in type(exc).__name__:
                raise ModelTimeoutError(f"Model '{model_id}' read timed out after {timeout_ms}ms.") from exc
            logger.warning(
                "model_invoke_failed",
                extra={
                    "event": "model_invoke_failed",
                    "model_id": model_id,
                    "purpose": call.purpose,
                    "duration_ms": duration_ms,
                    "error": str(exc),
                },
            )
            raise ModelInvocationError(f"Bedrock invocation failed for model '{model_id}': {exc}") from exc

        text = self._extract_text(response)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            "model_invoke_completed",
            extra={
                "event": "model_invoke_completed",
                "model_id": model_id,
                "purpose": call.purpose,
                "fallback_model": use_fallback_model,
                "duration_ms": duration_ms,
                "system_prompt_chars": len(call.system_prompt),
                "user_prompt_chars": len(call.user_prompt),
                "response_chars": len(text),
            },
        )
        return text

    def _converse(self, model_id: str, call: ModelCall, timeout_ms: int) -> Any:
        client = self._client or self._client_for_timeout(timeout_ms)
        return client.converse(
            modelId=model_id,
            system=[{"text": call.system_prompt}],
            messages=[{"role": "user", "content": [{"text": call.user_prompt}]}],
            inferenceConfig={
                "temperature": self._settings.agent_temperature,
                "maxTokens": self._settings.agent_max_tokens,
            },
        )

    def _client_for_timeout(self, timeout_ms: int) -> Any:
        # botocore fixes the read timeout at client creation, so one client per budget.
        read_timeout = max(1, round(timeout_ms / 1000))
        with self._clients_lock:
            client = self._clients_by_timeout.get(read_timeout)
            if client is None:
                client = self._create_bedrock_client(read_timeout)
                self._clients_by_timeout[read_timeout] = client
            return client

    def _create_bedrock_client(self, read_timeout: int) -> Any:
        try:
            import boto3  # type: ignore
            from botocore.config import Config  # type: ignore
        except ImportError as exc:
            raise ModelKeyMissingError("boto3 is required for the Bedrock model gateway.") from exc

        return boto3.client(
            "bedrock-runtime",
            region_name=self._settings.aws_region,
            config=Config(read_timeout=read_timeout, connect_timeout=5, retries={"max_attempts": 1}),
        )

    @staticmethod
    def _extract_text(response: Any) -> str:
        outputs = response.get("output", {}).get("message", {}).get("content", [])
        parts: list[str] = []
        for item in outputs:
            text = item.get("text")
            if isinstance(text, str) and text.strip():
                parts.append(text)
        return "\n".join(parts).strip()
