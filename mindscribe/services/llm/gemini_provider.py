"""Gemini LLM provider using Google's Generative AI API."""
from __future__ import annotations

import requests

from mindscribe.services.llm.base import (
    BaseLLMProvider,
    LLMProviderError,
    TransientProviderError,
)


class GeminiProvider(BaseLLMProvider):
    """LLM provider for Google Gemini models."""

    name = "gemini"

    def __init__(
        self, api_key: str, model: str, base_url: str = "https://generativelanguage.googleapis.com"
    ) -> None:
        super().__init__(model, logger_name="mindscribe.llm.gemini")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    def _call_api(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float,
        timeout: float,
        system_prompt: str | None = None,
    ) -> str:
        """Make a call to the Gemini API and return the response text."""
        # Handle model name format (may include "models/" prefix)
        model_name = self._model
        if not model_name.startswith("models/"):
            model_name = f"models/{model_name}"

        url = f"{self._base_url}/v1beta/{model_name}:generateContent"

        full_prompt = prompt
        if system_prompt:
            full_prompt = f"{system_prompt}\n\n{prompt}"

        try:
            response = requests.post(
                url,
                params={"key": self._api_key},
                headers={"Content-Type": "application/json"},
                json={
                    "contents": [{"parts": [{"text": full_prompt}]}],
                    "generationConfig": {
                        "temperature": temperature,
                        "maxOutputTokens": max_tokens,
                    },
                },
                timeout=timeout,
            )
        except requests.Timeout as exc:
            raise TransientProviderError("Gemini request timed out") from exc
        except requests.RequestException as exc:
            raise TransientProviderError("Failed to reach Gemini API") from exc

        if response.status_code != 200:
            self._logger.error("Gemini error: %s - %s", response.status_code, response.text[:500])
            raise self._classify_status(response.status_code, response.text)

        data = response.json()
        candidates = data.get("candidates", [])
        if not candidates:
            raise LLMProviderError("Gemini response missing candidates")

        content = candidates[0].get("content", {})
        parts = content.get("parts", [])
        if not parts:
            raise LLMProviderError("Gemini response missing parts")

        return parts[0].get("text", "").strip()
