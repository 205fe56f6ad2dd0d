"""
LLM Service Module

Sends the assembled message list to the OpenAI chat-completions endpoint.
Generation is deterministic (temperature 0) and non-streaming.

Usage:
    llm = LLMService(client=client)
    response = await llm.complete([
        {"role": "system", "content": "You are an Nx expert."},
        {"role": "user", "content": "What is a project graph?"},
    ])
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from openai import APIStatusError, AsyncOpenAI

from config.settings import get_settings, OpenAIConfig
from nx_docs_ai.errors import ApplicationError, ConfigurationError
from nx_docs_ai.response_utils import get_message_from_response

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """
    Standardized response from the completion endpoint.

    Attributes:
        content: The generated text response
        model: Model name used for generation
        usage: Token usage statistics (if available)
        finish_reason: Why generation stopped
    """

    content: str
    model: str
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None

    def __str__(self) -> str:
        return self.content


def _usage_to_dict(usage: Any) -> Optional[Dict[str, int]]:
    if usage is None:
        return None
    return {
        "prompt_tokens": usage.prompt_tokens,
        "completion_tokens": usage.completion_tokens,
        "total_tokens": usage.total_tokens,
    }


class OpenAIProvider:
    """
    OpenAI provider for GPT models.

    Models:
    - gpt-3.5-turbo-16k: Long context, used for docs answers
    - gpt-4: Most capable
    """

    def __init__(
        self,
        model: str = "gpt-3.5-turbo-16k",
        api_key: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize OpenAI provider.

        Args:
            model: OpenAI model name
            api_key: API key (or from settings)
            client: Shared AsyncOpenAI client
        """
        self._model = model
        self._api_key = api_key
        self._client = client

        logger.info(f"Initializing OpenAIProvider: model={model}")

    def _get_client(self) -> AsyncOpenAI:
        """Get or create OpenAI client."""
        if self._client is None:
            api_key = self._api_key or get_settings().openai.api_key
            if not api_key:
                raise ConfigurationError("Missing environment variable NX_OPENAI_KEY")
            self._client = AsyncOpenAI(api_key=api_key, max_retries=0)
            logger.info("OpenAI client initialized")
        return self._client

    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.0,
    ) -> LLMResponse:
        """Generate response using OpenAI."""
        client = self._get_client()

        try:
            response = await client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=temperature,
                stream=False,
            )
        except APIStatusError as e:
            raise ApplicationError(
                "Failed to generate completion",
                {"status_code": e.status_code, "body": e.body},
            ) from e

        content = get_message_from_response(response)
        return LLMResponse(
            content=content,
            model=getattr(response, "model", None) or self._model,
            usage=_usage_to_dict(getattr(response, "usage", None)),
            finish_reason=response.choices[0].finish_reason,
        )

    @property
    def model_name(self) -> str:
        return self._model


class LLMService:
    """
    Main LLM Service with unified interface.

    This is the class that other components should use.

    Example:
        llm = LLMService()
        response = await llm.complete(messages)
        print(response.content, response.usage)
    """

    def __init__(
        self,
        config: Optional[OpenAIConfig] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize the LLM service.

        Args:
            config: Optional OpenAIConfig instance
            client: Shared AsyncOpenAI client
        """
        self.config = config or get_settings().openai

        self._provider = OpenAIProvider(
            model=self.config.chat_model,
            api_key=self.config.api_key,
            client=client,
        )
        logger.info(f"LLMService initialized: model={self.config.chat_model}")

    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
    ) -> LLMResponse:
        """
        Generate a reply to a message list.

        Args:
            messages: Chat messages, oldest first
            temperature: Defaults to the configured temperature (0)

        Returns:
            LLMResponse object
        """
        if temperature is None:
            temperature = self.config.temperature
        return await self._provider.complete(messages=messages, temperature=temperature)

    @property
    def model_name(self) -> str:
        """Return the model name."""
        return self._provider.model_name
