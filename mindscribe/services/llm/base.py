from __future__ import annotations

import logging
from abc import ABC, abstractmethod


class LLMProviderError(RuntimeError):
    pass


class ModelUnavailableError(LLMProviderError):
    """The model id is not valid or not enabled for this account/region. Try the next one."""


class ProviderUnauthorizedError(LLMProviderError):
    """Credentials are missing, invalid or expired. No other model will fare better."""


class TransientProviderError(LLMProviderError):
    """Timeout, throttling, 5xx or connection trouble. Worth retrying the same model."""


class LLMProvider(ABC):
    name = "llm"

    @abstractmethod
    def prompt(
        self,
        prompt: str,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        timeout: float = 5.0,
    ) -> str:
        """Send a single-turn prompt and return the response text."""
        raise NotImplementedError


class BaseLLMProvider(LLMProvider):
    """Shared response handling and HTTP status classification.

    Subclasses only need to implement _call_api() for their specific API client.
    """

    SYSTEM_PROMPT = (
        "You are a meeting assistant. Return only valid JSON objects, no markdown formatting."
    )

    def __init__(self, model: str, logger_name: str = "mindscribe.llm") -> None:
        self._model = model
        self._logger = logging.getLogger(logger_name)

    @property
    def model(self) -> str:
        return self._model

    @abstractmethod
    def _call_api(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float,
        timeout: float,
        system_prompt: str | None = None,
    ) -> str:
        """Make an API call and return the raw response text.

        Raises one of the typed LLMProviderError subclasses on failure.
        """
        raise NotImplementedError

    @staticmethod
    def _strip_markdown_code_blocks(text: str) -> str:
        """Remove markdown code block wrappers from text."""
        text = text.strip()
        if not text.startswith("```"):
            return text

        lines = text.split("\n")
        kept = []
        in_block = False
        for line in lines:
            if line.startswith("```"):
                in_block = not in_block
                continue
            kept.append(line)
        return "\n".join(kept).strip()

    def _classify_status(self, status_code: int, body: str) -> LLMProviderError:
        lowered = body.lower()
        if status_code in (401, 403) or "security token" in lowered or "api key not valid" in lowered:
            return ProviderUnauthorizedError(f"{self.name} rejected credentials ({status_code})")
        if status_code == 404 or "not found" in lowered or "not supported" in lowered:
            return ModelUnavailableError(f"{self.name} model unavailable: {self._model}")
        if status_code == 429 or status_code >= 500:
            return TransientProviderError(f"{self.name} error: {status_code}")
        return LLMProviderError(f"{self.name} error: {status_code}")

    def prompt(
        self,
        prompt: str,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        timeout: float = 5.0,
    ) -> str:
        content = self._call_api(
            prompt,
            max_tokens=max_tokens,
            temperature=temperature,
            timeout=timeout,
            system_prompt=self.SYSTEM_PROMPT,
        )
        return self._strip_markdown_code_blocks(content)
