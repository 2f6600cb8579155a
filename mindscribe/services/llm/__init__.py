from mindscribe.services.llm.base import (
    LLMProvider,
    LLMProviderError,
    ModelUnavailableError,
    ProviderUnauthorizedError,
    TransientProviderError,
)
from mindscribe.services.llm.bedrock_provider import BedrockProvider
from mindscribe.services.llm.gemini_provider import GeminiProvider

__all__ = [
    "LLMProvider",
    "LLMProviderError",
    "ModelUnavailableError",
    "ProviderUnauthorizedError",
    "TransientProviderError",
    "BedrockProvider",
    "GeminiProvider",
]
