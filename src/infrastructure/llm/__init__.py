"""
LLM Client Infrastructure
==========================

Wrapper for LLM providers (OpenAI, Z.AI) providing clean interface for LLM operations.

This module abstracts the LLM client implementation following the
Dependency Inversion Principle - the triage module depends on the
``chat_completion`` contract (system instruction + user message in, free-form
text out), not on a concrete SDK.
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from typing import List, Optional

import openai
from openai import AsyncOpenAI
from zai import ZaiClient

from src.config import Settings, settings
from src.core import ConfigurationException, LLMTimeoutException, LLMUnavailableException


class ChatCompletionResult:
    """Result of a chat completion."""

    def __init__(
        self,
        content: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int
    ):
        self.content = content
        self.model = model
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.total_tokens = prompt_tokens + completion_tokens
        self.latency_ms = latency_ms


class ILLMClient(ABC):
    """
    Interface for LLM client operations.

    Following Interface Segregation Principle - only methods
    actually needed by the application are defined.
    """

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.2,
        max_tokens: int = 1024,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """Generate chat completion."""

    async def close(self) -> None:
        """Release network resources held by the client."""


class OpenAILLMClient(ILLMClient):
    """
    OpenAI client implementation for GPT models.

    Provides async wrapper around OpenAI SDK operations.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        base_url: Optional[str] = None,
    ):
        self._api_key = api_key or settings.openai_api_key
        if not self._api_key:
            raise ConfigurationException("OpenAI API key not configured")

        self._timeout = timeout_seconds or settings.llm_timeout_seconds
        # Retries belong to the job queue, not the SDK
        self._client = AsyncOpenAI(
            api_key=self._api_key,
            base_url=base_url,
            timeout=self._timeout,
            max_retries=0,
        )
        self._model = model or settings.llm_model

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.2,
        max_tokens: int = 1024,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """
        Generate chat completion using OpenAI GPT.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            operation: Operation type for logging (chat_completion, triage)

        Returns:
            ChatCompletionResult with generated text

        Raises:
            LLMTimeoutException: If the request timed out
            LLMUnavailableException: If the API call failed
        """
        start_time = time.perf_counter()

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens
            )
        except openai.APITimeoutError:
            raise LLMTimeoutException(self._timeout)
        except openai.OpenAIError as e:
            raise LLMUnavailableException(f"Chat completion failed: {str(e)}")

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        content = response.choices[0].message.content or ""
        usage = response.usage

        return ChatCompletionResult(
            content=content,
            model=self._model,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            latency_ms=latency_ms
        )

    async def close(self) -> None:
        await self._client.close()


class ZAIILLMClient(ILLMClient):
    """
    Z.AI SDK client implementation for GLM models.

    The SDK is synchronous; calls run in a worker thread so the event loop
    (and the other triage handlers) keep running. The SDK-level timeout ends
    the HTTP call inside that thread.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self._api_key = api_key or settings.zai_api_key
        if not self._api_key:
            raise ConfigurationException("Z.AI API key not configured")

        self._timeout = timeout_seconds or settings.llm_timeout_seconds
        # Retries belong to the job queue, not the SDK
        self._client = ZaiClient(api_key=self._api_key, timeout=self._timeout, max_retries=0)
        self._model = model or settings.llm_model

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.2,
        max_tokens: int = 1024,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """
        Generate chat completion using GLM.

        Raises:
            LLMUnavailableException: If completion fails
        """
        start_time = time.perf_counter()

        try:
            response = await asyncio.to_thread(
                self._client.chat.completions.create,
                model=self._model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens
            )
        except Exception as e:
            raise LLMUnavailableException(f"Chat completion failed: {str(e)}")

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        content = response.choices[0].message.content or ""

        # Z.AI doesn't return token usage, so we estimate
        return ChatCompletionResult(
            content=content,
            model=self._model,
            prompt_tokens=len(str(messages)),
            completion_tokens=len(content),
            latency_ms=latency_ms
        )


class MockLLMClient(ILLMClient):
    """
    Mock LLM client for local development.

    Returns a fenced, well-formed triage object without calling external APIs.
    """

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.2,
        max_tokens: int = 1024,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        user_content = str(messages[-1].get("content", "")) if messages else ""
        ticket_id = ""
        for line in user_content.splitlines():
            if line.startswith("ticket_id:"):
                ticket_id = line.split(":", 1)[1].strip()
                break

        mock_response = {
            "ticket_id": ticket_id,
            "category": "Technical",
            "sentiment_score": 5,
            "urgency": "Medium",
            "response_draft": (
                "Thank you for contacting us. We have received your request "
                "and our team is looking into it."
            ),
        }
        content = f"```json\n{json.dumps(mock_response, indent=2)}\n```"

        return ChatCompletionResult(
            content=content,
            model="mock-model",
            prompt_tokens=100,
            completion_tokens=len(content.split()),
            latency_ms=1
        )


def create_llm_client(config: Optional[Settings] = None) -> ILLMClient:
    """
    Build the model client selected by ``llm_provider``.

    Raises:
        ConfigurationException: If the selected provider has no API key
    """
    config = config or settings

    if config.llm_provider == "mock":
        return MockLLMClient()
    if config.llm_provider == "zai":
        return ZAIILLMClient(
            api_key=config.zai_api_key,
            model=config.llm_model,
            timeout_seconds=config.llm_timeout_seconds,
        )
    return OpenAILLMClient(
        api_key=config.openai_api_key,
        model=config.llm_model,
        timeout_seconds=config.llm_timeout_seconds,
    )
