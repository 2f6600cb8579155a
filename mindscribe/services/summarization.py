import asyncio
import logging
import os
from typing import Callable, Optional, Sequence

from mindscribe.models import Insights, TranscriptEntry
from mindscribe.services.config import ServiceConfig
from mindscribe.services.key_points import MockInsightsGenerator, parse_insights
from mindscribe.services.llm import (
    BedrockProvider,
    GeminiProvider,
    LLMProvider,
    LLMProviderError,
    ModelUnavailableError,
    ProviderUnauthorizedError,
    TransientProviderError,
)

EMPTY_TRANSCRIPT_MESSAGE = "The transcript is empty. No content to analyze."
UNAUTHORIZED_MESSAGE = "AI service credentials are invalid or expired. Please renew them in Settings."
UNAVAILABLE_MESSAGE = "AI analysis is unavailable right now. Showing sample insights instead."

ProviderFactory = Callable[[str, str], Optional[LLMProvider]]


class SummarizationService:
    """Key point extraction over a prioritized list of models.

    Model candidates are read from the shared :class:`ServiceConfig` on every
    call, in the form "provider:model_id" (e.g. "bedrock:anthropic.claude-v2").
    ``generate_key_points`` never raises; every failure ends up in the
    returned :class:`Insights`.
    """

    def __init__(
        self,
        config: ServiceConfig,
        prompts_dir: Optional[str] = None,
        provider_factory: Optional[ProviderFactory] = None,
        mock: Optional[MockInsightsGenerator] = None,
        sleep: Callable = asyncio.sleep,
    ) -> None:
        self._config = config
        self._prompts_dir = prompts_dir or os.path.join(os.path.dirname(__file__), "..", "prompts")
        self._provider_factory = provider_factory or self._default_provider
        self._mock = mock or MockInsightsGenerator()
        self._sleep = sleep
        self._logger = logging.getLogger("mindscribe.summarization")

    def _default_provider(self, provider_name: str, model_id: str) -> Optional[LLMProvider]:
        """Build a provider, or None when its credentials are still unconfigured."""
        if provider_name == "bedrock":
            if not self._config.aws.has_credentials():
                return None
            return BedrockProvider(self._config.aws, model_id)
        if provider_name == "gemini":
            if not self._config.llm.has_gemini_key():
                return None
            return GeminiProvider(api_key=self._config.llm.gemini_api_key, model=model_id)
        self._logger.warning("Unknown provider in candidate list: %s", provider_name)
        return None

    def _candidates(self) -> list[tuple[str, LLMProvider]]:
        resolved = []
        for candidate in self._config.llm.candidates:
            if ":" not in candidate:
                self._logger.warning("Invalid model format '%s'. Expected 'provider:model_id'.", candidate)
                continue
            provider_name, model_id = candidate.split(":", 1)
            provider = self._provider_factory(provider_name.lower(), model_id)
            if provider is not None:
                resolved.append((candidate, provider))
        return resolved

    def _load_template(self) -> str:
        prompt_path = os.path.join(self._prompts_dir, "key_points_prompt.txt")
        with open(prompt_path, "r", encoding="utf-8") as f:
            return f.read()

    def build_prompt(self, entries: Sequence[TranscriptEntry]) -> str:
        window = entries[-self._config.llm.window_entries:]
        text = "\n".join(entry.display_line() for entry in window)
        return self._load_template().replace("{{transcript}}", text)

    async def generate_key_points(self, entries: Sequence[TranscriptEntry]) -> Insights:
        speech = [entry for entry in entries if not entry.is_error]
        if not speech:
            return Insights(source="none")

        settings = self._config.llm
        window = speech[-settings.window_entries:]
        if len(" ".join(entry.text for entry in window)) < settings.min_chars:
            self._logger.debug("Transcript window too short for analysis: entries=%d", len(window))
            return Insights(source="none")

        candidates = self._candidates()
        if not candidates:
            self._logger.info("No AI provider configured; using mock insights")
            return self._mock.generate(speech)

        try:
            prompt = self.build_prompt(speech)
        except OSError as exc:
            self._logger.error("Missing key points prompt file: %s", exc)
            return Insights(source="fallback", error=f"Missing prompt template: {exc}", error_kind="analysis")

        for label, provider in candidates:
            attempts = settings.transient_retries + 1
            for attempt in range(attempts):
                try:
                    content = await asyncio.wait_for(
                        asyncio.to_thread(
                            provider.prompt,
                            prompt,
                            settings.max_tokens,
                            settings.temperature,
                            settings.timeout_seconds,
                        ),
                        timeout=settings.timeout_seconds,
                    )
                except ProviderUnauthorizedError as exc:
                    self._logger.error("Model %s unauthorized; aborting candidate list: %s", label, exc)
                    return Insights(source="none", error=UNAUTHORIZED_MESSAGE, error_kind="unauthorized")
                except ModelUnavailableError as exc:
                    self._logger.warning("Model %s unavailable: %s", label, exc)
                    break
                except (TransientProviderError, asyncio.TimeoutError) as exc:
                    reason = str(exc) or f"timed out after {settings.timeout_seconds}s"
                    if attempt + 1 < attempts:
                        delay = settings.backoff_seconds * (2 ** attempt)
                        self._logger.warning(
                            "Model %s transient failure (%s); retrying in %.1fs", label, reason, delay
                        )
                        await self._sleep(delay)
                        continue
                    self._logger.warning("Model %s failed after %d attempts: %s", label, attempts, reason)
                    break
                except LLMProviderError as exc:
                    self._logger.warning("Model %s failed: %s", label, exc)
                    break
                except Exception as exc:
                    self._logger.exception("Model %s crashed: %s", label, exc)
                    break

                insights = parse_insights(content)
                self._logger.info(
                    "Analysis via %s: points=%d actions=%d source=%s",
                    label,
                    len(insights.key_points),
                    len(insights.action_items),
                    insights.source,
                )
                return insights

        self._logger.warning("All %d model candidates failed; using mock insights", len(candidates))
        fallback = self._mock.generate(speech)
        fallback.error = UNAVAILABLE_MESSAGE
        fallback.error_kind = "unavailable"
        return fallback
