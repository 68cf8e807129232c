"""
LLM Client Infrastructure
==========================

Thin async wrapper around the OpenAI SDK.

The triage layer depends on ``ILLMClient``; only this module knows about
the vendor SDK.
"""

import time
from abc import ABC, abstractmethod
from typing import List, Optional

from openai import AsyncOpenAI

from helpdesk_ai.config import settings
from helpdesk_ai.core.exceptions import ConfigurationException, LLMException
from helpdesk_ai.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


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
    """Interface for chat completion."""

    model: str

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.2,
        max_tokens: int = 1200,
        operation: str = "chat_completion",
        json_mode: bool = False,
    ) -> ChatCompletionResult:
        """Generate a chat completion."""


class OpenAILLMClient(ILLMClient):
    """
    OpenAI client implementation for GPT models.

    Provides async wrapper around OpenAI SDK operations.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self._api_key = api_key or settings.openai_api_key
        if not self._api_key:
            raise ConfigurationException("OpenAI API key not configured")

        self._client = AsyncOpenAI(api_key=self._api_key)
        self.model = model or settings.llm_model

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.2,
        max_tokens: int = 1200,
        operation: str = "chat_completion",
        json_mode: bool = False,
    ) -> ChatCompletionResult:
        """
        Generate chat completion.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens to generate
            operation: Operation name for logging (classification, draft)
            json_mode: Ask the model for a JSON object response

        Returns:
            ChatCompletionResult with generated text

        Raises:
            LLMException: If completion fails
        """
        start_time = time.perf_counter()
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
        except Exception as e:
            raise LLMException(f"Chat completion failed: {e}")

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        usage = response.usage
        result = ChatCompletionResult(
            content=response.choices[0].message.content or "",
            model=self.model,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            latency_ms=latency_ms,
        )
        logger.info(
            "LLM call completed",
            extra={
                "operation": operation,
                "model": self.model,
                "latency_ms": latency_ms,
                "total_tokens": result.total_tokens,
            }
        )
        return result
