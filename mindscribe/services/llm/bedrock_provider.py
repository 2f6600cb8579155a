"""Anthropic models hosted on Amazon Bedrock."""
from __future__ import annotations

import json
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, ConnectTimeoutError, ReadTimeoutError

from mindscribe.services.config import AwsSettings
from mindscribe.services.llm.base import (
    BaseLLMProvider,
    LLMProviderError,
    ModelUnavailableError,
    ProviderUnauthorizedError,
    TransientProviderError,
)

UNAUTHORIZED_CODES = {
    "UnrecognizedClientException",
    "InvalidSignatureException",
    "ExpiredTokenException",
    "ExpiredToken",
    "AccessDeniedException",
}
UNAVAILABLE_CODES = {"ResourceNotFoundException", "ValidationException"}
TRANSIENT_CODES = {
    "ThrottlingException",
    "ServiceUnavailableException",
    "InternalServerException",
    "ModelTimeoutException",
    "ModelNotReadyException",
}


class BedrockProvider(BaseLLMProvider):
    name = "bedrock"

    def __init__(self, aws: AwsSettings, model: str, client: Any = None) -> None:
        super().__init__(model, logger_name="mindscribe.llm.bedrock")
        self._aws = aws
        self._client = client

    def _get_client(self, timeout: float) -> Any:
        if self._client is None:
            self._client = boto3.client(
                "bedrock-runtime",
                config=Config(
                    connect_timeout=timeout,
                    read_timeout=timeout,
                    retries={"max_attempts": 1},
                ),
                **self._aws.client_kwargs(),
            )
        return self._client

    def _uses_messages_api(self) -> bool:
        return "claude-3" in self._model or "claude-sonnet" in self._model

    def _build_body(
        self, prompt: str, max_tokens: int, temperature: float, system_prompt: str | None
    ) -> dict:
        if self._uses_messages_api():
            body = {
                "anthropic_version": "bedrock-2023-05-31",
                "max_tokens": max_tokens,
                "temperature": temperature,
                "messages": [{"role": "user", "content": prompt}],
            }
            if system_prompt:
                body["system"] = system_prompt
            return body
        # Legacy text-completion models (claude-v2 and older).
        text = prompt if not system_prompt else f"{system_prompt}\n\n{prompt}"
        return {
            "prompt": f"\n\nHuman: {text}\n\nAssistant:",
            "max_tokens_to_sample": max_tokens,
            "temperature": temperature,
        }

    @staticmethod
    def _extract_text(data: dict) -> str:
        if "content" in data:
            parts = [part.get("text", "") for part in data.get("content") or [] if part.get("type") == "text"]
            return "".join(parts).strip()
        if "completion" in data:
            return str(data["completion"]).strip()
        raise LLMProviderError("Bedrock response missing content")

    def _classify_client_error(self, exc: ClientError) -> LLMProviderError:
        error = exc.response.get("Error", {})
        code = error.get("Code", "")
        message = error.get("Message", "")
        if code in UNAUTHORIZED_CODES or "security token" in message.lower():
            return ProviderUnauthorizedError(f"Bedrock rejected credentials: {code}")
        if code in UNAVAILABLE_CODES:
            return ModelUnavailableError(f"Bedrock model unavailable: {self._model} ({code})")
        if code in TRANSIENT_CODES:
            return TransientProviderError(f"Bedrock transient error: {code}")
        return LLMProviderError(f"Bedrock error: {code or message}")

    def _call_api(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float,
        timeout: float,
        system_prompt: str | None = None,
    ) -> str:
        body = self._build_body(prompt, max_tokens, temperature, system_prompt)
        try:
            response = self._get_client(timeout).invoke_model(
                modelId=self._model,
                contentType="application/json",
                accept="application/json",
                body=json.dumps(body),
            )
        except ClientError as exc:
            error = self._classify_client_error(exc)
            self._logger.error("Bedrock invoke failed: model=%s error=%s", self._model, error)
            raise error from exc
        except (ConnectTimeoutError, ReadTimeoutError) as exc:
            raise TransientProviderError("Bedrock request timed out") from exc
        except BotoCoreError as exc:
            raise TransientProviderError(f"Failed to reach Bedrock: {exc}") from exc

        payload = response["body"].read()
        data = json.loads(payload)
        return self._extract_text(data)
