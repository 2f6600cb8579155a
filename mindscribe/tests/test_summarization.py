"""Tests for SummarizationService candidate fallback, retries and guards."""

from __future__ import annotations

import asyncio
import random
import time

import pytest

from mindscribe.models import ERROR, TranscriptEntry
from mindscribe.services.key_points import MockInsightsGenerator
from mindscribe.services.llm import (
    LLMProvider,
    ModelUnavailableError,
    ProviderUnauthorizedError,
    TransientProviderError,
)
from mindscribe.services.summarization import UNAUTHORIZED_MESSAGE, UNAVAILABLE_MESSAGE, SummarizationService

GOOD_RESPONSE = '{"keyPoints": ["Launch moved to May"], "actionItems": ["Email the client"]}'


class FakeProvider(LLMProvider):
    """Replays a list of outcomes: strings are returned, exceptions raised."""

    def __init__(self, *outcomes, delay: float = 0.0) -> None:
        self.outcomes = list(outcomes)
        self.delay = delay
        self.prompts: list[str] = []

    def prompt(self, prompt, max_tokens=1000, temperature=0.7, timeout=5.0):
        self.prompts.append(prompt)
        if self.delay:
            time.sleep(self.delay)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def transcript():
    return [
        TranscriptEntry(text="We agreed the launch has to move to May.", speaker="You"),
        TranscriptEntry(text="I will email the client about the new date today.", speaker="Team Member"),
    ]


def _service(config, providers, sleep=None):
    config.llm.candidates = [f"{name.split('-')[0]}:{name}" for name in providers]
    return SummarizationService(
        config,
        provider_factory=lambda provider_name, model_id: providers.get(model_id),
        mock=MockInsightsGenerator(random.Random(3)),
        sleep=sleep or SleepRecorder(),
    )


class TestGuards:
    def test_no_speech_entries(self, config):
        service = SummarizationService(config, provider_factory=lambda *_: FakeProvider(GOOD_RESPONSE))
        insights = asyncio.run(service.generate_key_points([TranscriptEntry(text="Mic denied", kind=ERROR)]))
        assert insights.source == "none"
        assert insights.is_empty

    def test_window_too_short(self, config):
        provider = FakeProvider(GOOD_RESPONSE)
        service = _service(config, {"bedrock-a": provider})
        insights = asyncio.run(service.generate_key_points([TranscriptEntry(text="Hi")]))
        assert insights.source == "none"
        assert provider.prompts == []

    def test_unconfigured_uses_mock(self, config, transcript):
        service = SummarizationService(config, mock=MockInsightsGenerator(random.Random(3)))
        insights = asyncio.run(service.generate_key_points(transcript * 2))
        assert insights.source == "mock"
        assert insights.error is None
        assert len(insights.key_points) == 1


class TestCandidates:
    def test_first_model_success(self, config, transcript):
        first, second = FakeProvider(GOOD_RESPONSE), FakeProvider(GOOD_RESPONSE)
        service = _service(config, {"bedrock-a": first, "gemini-b": second})

        insights = asyncio.run(service.generate_key_points(transcript))

        assert insights.key_points == ["Launch moved to May"]
        assert insights.action_items == ["Email the client"]
        assert len(first.prompts) == 1 and second.prompts == []
        assert "You: We agreed the launch has to move to May." in first.prompts[0]

    def test_unavailable_moves_to_next(self, config, transcript):
        first = FakeProvider(ModelUnavailableError("no such model"))
        second = FakeProvider(GOOD_RESPONSE)
        service = _service(config, {"bedrock-a": first, "gemini-b": second})

        insights = asyncio.run(service.generate_key_points(transcript))

        assert insights.source == "llm"
        assert len(first.prompts) == 1
        assert len(second.prompts) == 1

    def test_unauthorized_aborts_list(self, config, transcript):
        first = FakeProvider(ProviderUnauthorizedError("expired token"))
        second = FakeProvider(GOOD_RESPONSE)
        service = _service(config, {"bedrock-a": first, "gemini-b": second})

        insights = asyncio.run(service.generate_key_points(transcript))

        assert insights.error == UNAUTHORIZED_MESSAGE
        assert insights.error_kind == "unauthorized"
        assert insights.is_empty
        assert second.prompts == []

    def test_transient_retried_with_backoff(self, config, transcript):
        config.llm.transient_retries = 2
        config.llm.backoff_seconds = 0.5
        sleep = SleepRecorder()
        provider = FakeProvider(TransientProviderError("429"), TransientProviderError("503"), GOOD_RESPONSE)
        service = _service(config, {"bedrock-a": provider}, sleep=sleep)

        insights = asyncio.run(service.generate_key_points(transcript))

        assert insights.source == "llm"
        assert len(provider.prompts) == 3
        assert sleep.delays == [0.5, 1.0]

    def test_timeout_counts_as_transient(self, config, transcript):
        config.llm.timeout_seconds = 0.05
        config.llm.transient_retries = 0
        slow = FakeProvider(GOOD_RESPONSE, delay=0.3)
        fast = FakeProvider(GOOD_RESPONSE)
        service = _service(config, {"bedrock-a": slow, "gemini-b": fast})

        insights = asyncio.run(service.generate_key_points(transcript))

        assert insights.source == "llm"
        assert len(fast.prompts) == 1

    def test_all_fail_falls_back_to_mock_with_error(self, config, transcript):
        config.llm.transient_retries = 0
        service = _service(
            config,
            {
                "bedrock-a": FakeProvider(ModelUnavailableError("gone")),
                "gemini-b": FakeProvider(TransientProviderError("503")),
            },
        )

        insights = asyncio.run(service.generate_key_points(transcript * 3))

        assert insights.source == "mock"
        assert insights.error == UNAVAILABLE_MESSAGE
        assert insights.error_kind == "unavailable"
        assert insights.key_points and insights.action_items

    def test_unparseable_response_returns_apology(self, config, transcript):
        service = _service(config, {"bedrock-a": FakeProvider("Sorry, I can't help with that.")})
        insights = asyncio.run(service.generate_key_points(transcript))
        assert insights.error_kind == "analysis"
        assert insights.is_empty

    def test_malformed_candidate_skipped(self, config, transcript):
        provider = FakeProvider(GOOD_RESPONSE)
        service = SummarizationService(config, provider_factory=lambda name, model: provider)
        config.llm.candidates = ["no-colon-here", "bedrock:a"]
        insights = asyncio.run(service.generate_key_points(transcript))
        assert insights.source == "llm"
        assert len(provider.prompts) == 1


class TestBuildPrompt:
    def test_window_limits_entries(self, config):
        config.llm.window_entries = 2
        service = SummarizationService(config)
        entries = [TranscriptEntry(text=f"line {i}") for i in range(5)]
        prompt = service.build_prompt(entries)
        assert "line 4" in prompt and "line 3" in prompt
        assert "line 2" not in prompt
        assert "{{transcript}}" not in prompt
