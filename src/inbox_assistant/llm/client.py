"""Ollama client implementation.

This module provides the language model used to judge AI rule conditions and
to fill ``{{...}}`` placeholders in action fields.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Optional

import requests
import structlog

from inbox_assistant.config import Settings
from inbox_assistant.exceptions import LLMConnectionError, ModelInferenceError
from inbox_assistant.utils import retry_async

logger = structlog.get_logger()

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.S)


class LanguageModel:
    """Minimal text-generation interface used by the rule engine."""

    async def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        json_format: bool = False,
    ) -> str:
        raise NotImplementedError


class OllamaClient(LanguageModel):
    """Ollama LLM client for AI inference.

    This client handles communication with the Ollama API
    for language model inference tasks.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize Ollama client.

        Args:
            settings: Application settings. If None, uses default settings.
            session: HTTP session to use. If None, a new one is created.
        """
        from inbox_assistant.config import get_settings

        self.settings = settings or get_settings()
        self.base_url = self.settings.llm_host.rstrip("/")
        self._session = session or requests.Session()
        logger.info(
            "ollama_client_initialized",
            host=self.settings.llm_host,
            model=self.settings.llm_model,
        )

    async def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        json_format: bool = False,
        model: Optional[str] = None,
    ) -> str:
        """Generate text using Ollama.

        Args:
            prompt: The prompt to send to the model.
            system: Optional system prompt.
            json_format: Ask Ollama to constrain the output to JSON.
            model: Model name to use. If None, uses default from settings.

        Returns:
            The generated text, stripped.

        Raises:
            LLMConnectionError: If Ollama stays unreachable after retries.
            ModelInferenceError: If inference fails.
        """
        model = model or self.settings.llm_model
        payload: dict[str, Any] = {"model": model, "prompt": prompt, "stream": False}
        if system:
            payload["system"] = system
        if json_format:
            payload["format"] = "json"

        logger.info("generating_text", model=model, prompt_length=len(prompt))

        async def attempt() -> str:
            return await asyncio.to_thread(self._post_generate, payload)

        return await retry_async(
            attempt,
            max_retries=self.settings.llm_max_retries,
            delay=self.settings.retry_delay,
            backoff=self.settings.retry_backoff,
            retry_on=(LLMConnectionError,),
            operation="ollama.generate",
        )

    def _post_generate(self, payload: dict[str, Any]) -> str:
        try:
            resp = self._session.post(
                f"{self.base_url}/api/generate",
                json=payload,
                timeout=self.settings.llm_timeout,
            )
        except requests.RequestException as exc:
            raise LLMConnectionError(f"Ollama request failed: {exc}") from exc

        if resp.status_code >= 500:
            raise LLMConnectionError(f"Ollama HTTP {resp.status_code}: {resp.text[:200]}")
        if resp.status_code != 200:
            raise ModelInferenceError(f"Ollama HTTP {resp.status_code}: {resp.text[:200]}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise ModelInferenceError("Ollama returned a non-JSON body") from exc
        return (data.get("response") or "").strip()


def extract_json_object(raw: str) -> dict[str, Any]:
    """Extract the first JSON object from a raw model response."""

    raw = (raw or "").strip()
    if not raw:
        raise ModelInferenceError("empty model response")

    # Fast path: direct JSON.
    try:
        obj = json.loads(raw)
        if isinstance(obj, dict):
            return obj
    except json.JSONDecodeError:
        pass

    # Tolerant path: find {...} region.
    m = _JSON_OBJECT_RE.search(raw)
    if not m:
        raise ModelInferenceError("model response did not contain a JSON object")

    try:
        obj = json.loads(m.group(0))
    except json.JSONDecodeError as exc:
        raise ModelInferenceError(f"model response was not valid JSON: {exc}") from exc
    if not isinstance(obj, dict):
        raise ModelInferenceError("extracted JSON was not an object")
    return obj
