"""
Gemini REST client.

Thin wrapper around the Generative Language `generateContent` endpoint.
Each call takes the API key explicitly so concurrent jobs can use different
keys from the pool (the SDK's global `configure()` cannot).

Hardening:
- Quota / rate-limit responses raise QuotaExceeded so the caller can fail the key over
- Blocked prompts and empty candidates raise GenerationError instead of returning ""
- Token usage is logged when the API reports it
"""

from __future__ import annotations

import base64
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import requests
from loguru import logger

from config import get_settings
from mockgen.errors import GenerationError, QuotaExceeded

QUOTA_MARKERS = ("quota", "resource_exhausted", "rate limit", "rate-limit", "too many requests")

SUPPORTED_EXTENSIONS = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".txt": "text/plain",
}


@dataclass
class GenerationResponse:
    """Text returned by one generateContent call."""

    text: str
    finish_reason: str | None = None
    usage: dict[str, Any] = field(default_factory=dict)

    @property
    def truncated(self) -> bool:
        return self.finish_reason == "MAX_TOKENS"


def is_quota_error(error: BaseException) -> bool:
    """Classify an exception as quota / rate-limit related."""
    if isinstance(error, QuotaExceeded):
        return True
    if isinstance(error, GenerationError) and error.status_code == 429:
        return True
    message = str(error).lower()
    return any(marker in message for marker in QUOTA_MARKERS)


class GeminiClient:
    """
    Best-effort wrapper around the Gemini generateContent API.

    Usage:
        client = GeminiClient()
        response = client.generate(key.credential, parts, system_prompt=SYSTEM_PROMPT)
    """

    def __init__(
        self,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        settings = get_settings()
        self.model = model or settings.gemini_model
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.timeout = timeout or settings.request_timeout
        self.session = session or requests.Session()

        logger.debug(f"Initialized Gemini client: model={self.model}, timeout={self.timeout}s")

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def generate(
        self,
        api_key: str,
        parts: list[dict[str, Any]],
        system_prompt: str | None = None,
        max_output_tokens: int | None = None,
        temperature: float | None = None,
        thinking_budget: int | None = None,
    ) -> GenerationResponse:
        """
        Run one generateContent round-trip.

        Raises:
            QuotaExceeded: On HTTP 429 or a RESOURCE_EXHAUSTED / quota error body.
            GenerationError: On any other HTTP error, blocked prompt or empty output.
        """
        payload = self._build_payload(parts, system_prompt, max_output_tokens, temperature, thinking_budget)

        try:
            response = self.session.post(
                self.endpoint,
                json=payload,
                headers={"x-goog-api-key": api_key},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise GenerationError(f"Gemini request failed: {e}") from e

        if response.status_code >= 400:
            self._raise_for_error(response)

        try:
            data = response.json()
        except ValueError as e:
            raise GenerationError(
                f"Invalid JSON from Gemini: {e}", status_code=response.status_code
            ) from e
        return self._extract(data)

    # ========================================
    # Request / Response
    # ========================================

    @staticmethod
    def _build_payload(
        parts: list[dict[str, Any]],
        system_prompt: str | None,
        max_output_tokens: int | None,
        temperature: float | None,
        thinking_budget: int | None,
    ) -> dict[str, Any]:
        generation_config: dict[str, Any] = {"responseMimeType": "application/json"}
        if max_output_tokens is not None:
            generation_config["maxOutputTokens"] = max_output_tokens
        if temperature is not None:
            generation_config["temperature"] = temperature
        if thinking_budget is not None:
            generation_config["thinkingConfig"] = {"thinkingBudget": thinking_budget}

        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        return payload

    @staticmethod
    def _raise_for_error(response: requests.Response) -> None:
        try:
            error = response.json().get("error", {})
        except ValueError:
            error = {}
        status = error.get("status", "")
        message = error.get("message") or response.text[:300]
        detail = f"Gemini API error {response.status_code} {status}: {message}".strip()

        if response.status_code == 429 or status == "RESOURCE_EXHAUSTED":
            raise QuotaExceeded(detail, status_code=response.status_code)
        if any(marker in message.lower() for marker in QUOTA_MARKERS):
            raise QuotaExceeded(detail, status_code=response.status_code)
        raise GenerationError(detail, status_code=response.status_code)

    @staticmethod
    def _extract(data: dict[str, Any]) -> GenerationResponse:
        feedback = data.get("promptFeedback") or {}
        if feedback.get("blockReason"):
            raise GenerationError(f"Prompt blocked: {feedback['blockReason']}")

        candidates = data.get("candidates") or []
        if not candidates:
            raise GenerationError("No response received from API")

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        # Thought summaries are not part of the answer
        text = "".join(p.get("text", "") for p in parts if not p.get("thought"))
        if not text.strip():
            raise GenerationError("Empty response received from API")

        usage = data.get("usageMetadata") or {}
        if usage:
            logger.debug(
                "Tokens - Input: {}, Output: {}, Thinking: {}",
                usage.get("promptTokenCount", "N/A"),
                usage.get("candidatesTokenCount", "N/A"),
                usage.get("thoughtsTokenCount", "N/A"),
            )

        return GenerationResponse(text=text, finish_reason=candidate.get("finishReason"), usage=usage)


# ============================================================================
# Source files
# ============================================================================


def find_source_files(directory: str | Path) -> list[Path]:
    """Recursively collect supported input files, sorted for stable prompts."""
    directory = Path(directory)
    return sorted(
        path for path in directory.rglob("*")
        if path.is_file() and path.suffix.lower() in SUPPORTED_EXTENSIONS
    )


def file_to_part(path: str | Path) -> dict[str, Any]:
    """Encode a file as an inline_data request part."""
    path = Path(path)
    mime_type = SUPPORTED_EXTENSIONS.get(path.suffix.lower()) or mimetypes.guess_type(path.name)[0]
    if mime_type is None:
        raise GenerationError(f"Unsupported file type: {path.name}")

    data = base64.b64encode(path.read_bytes()).decode("ascii")
    return {"inline_data": {"mime_type": mime_type, "data": data}}
