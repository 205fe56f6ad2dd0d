"""
Embedding Service Module

Turns the user's query into an embedding vector for page-section retrieval,
using the OpenAI embeddings API (text-embedding-ada-002, 1536 dimensions).

Whether the previous assistant answer is embedded together with the query is
a policy switch (``RetrievalConfig.embed_prior_answer``). Including it may
surface sections that match the ongoing conversation better, at the cost of
more embedding tokens.
"""

import logging
from typing import List, Optional

from openai import APIStatusError, AsyncOpenAI

from config.settings import get_settings
from nx_docs_ai.errors import ApplicationError, ConfigurationError

# Configure logging
logger = logging.getLogger(__name__)


def build_embedding_input(
    query: str,
    prior_answer: Optional[str] = None,
    include_prior_answer: bool = True,
) -> str:
    """
    Build the text that gets embedded for retrieval.

    Args:
        query: Sanitized (trimmed) user query
        prior_answer: Previous assistant answer, if any
        include_prior_answer: Embedding policy switch

    Returns:
        The query alone, or the query followed by the prior answer
    """
    if include_prior_answer and prior_answer and prior_answer.strip():
        return f"{query}\n\n{prior_answer.strip()}"
    return query


class EmbeddingService:
    """
    OpenAI embedding provider.

    Models:
    - text-embedding-ada-002: 1536 dims (what the page sections were indexed with)
    - text-embedding-3-small: 1536 dims
    - text-embedding-3-large: 3072 dims

    Example:
        service = EmbeddingService(client=client)
        vector = await service.embed_query("How do I configure caching?")
    """

    # Model dimensions mapping
    MODEL_DIMENSIONS = {
        "text-embedding-ada-002": 1536,
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
    }

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model_name: Optional[str] = None,
        api_key: Optional[str] = None,
        include_prior_answer: Optional[bool] = None,
    ):
        """
        Initialize the embedding service.

        Args:
            client: Shared AsyncOpenAI client (created lazily if omitted)
            model_name: Embedding model (default from config)
            api_key: OpenAI API key (default from config)
            include_prior_answer: Embedding policy (default from config)
        """
        settings = get_settings()

        self._client = client
        self._api_key = api_key
        self._model_name = model_name or settings.openai.embedding_model
        if include_prior_answer is None:
            include_prior_answer = settings.retrieval.embed_prior_answer
        self.include_prior_answer = include_prior_answer

        if self._model_name not in self.MODEL_DIMENSIONS:
            logger.warning(
                f"Unknown model {self._model_name}, assuming 1536 dimensions. "
                f"Known models: {list(self.MODEL_DIMENSIONS.keys())}"
            )

        logger.info(
            f"EmbeddingService initialized: model={self._model_name}, "
            f"include_prior_answer={self.include_prior_answer}"
        )

    def _get_client(self) -> AsyncOpenAI:
        """Get or create the OpenAI client."""
        if self._client is None:
            api_key = self._api_key or get_settings().openai.api_key
            if not api_key:
                raise ConfigurationError("Missing environment variable NX_OPENAI_KEY")
            self._client = AsyncOpenAI(api_key=api_key, max_retries=0)
            logger.info("OpenAI client initialized")
        return self._client

    async def embed_text(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Input text to embed

        Returns:
            Embedding vector as list of floats

        Raises:
            ApplicationError: If the embeddings endpoint answers with a
                non-success status
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        client = self._get_client()

        try:
            response = await client.embeddings.create(
                model=self._model_name,
                input=text,
            )
        except APIStatusError as e:
            raise ApplicationError(
                "Failed to create embedding for question",
                {"status_code": e.status_code, "body": e.body},
            ) from e

        return response.data[0].embedding

    async def embed_query(
        self,
        query: str,
        prior_answer: Optional[str] = None,
    ) -> List[float]:
        """
        Embed a user query for retrieval, applying the prior-answer policy.

        Args:
            query: Sanitized user query
            prior_answer: Previous assistant answer, if any

        Returns:
            Query embedding vector
        """
        text = build_embedding_input(query, prior_answer, self.include_prior_answer)
        return await self.embed_text(text)

    @property
    def dimension(self) -> int:
        """Return embedding dimension."""
        return self.MODEL_DIMENSIONS.get(self._model_name, 1536)

    @property
    def model_name(self) -> str:
        """Return model name."""
        return self._model_name
