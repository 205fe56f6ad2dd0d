"""
Moderation Gate

Runs the user's query through the OpenAI moderation endpoint before any
other work is done. Flagged content is rejected with a UserError that carries
the category breakdown; this is a terminal rejection, not an upstream fault.
"""

import logging
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from config.settings import get_settings
from nx_docs_ai.errors import ConfigurationError, UserError

logger = logging.getLogger(__name__)


def _categories_to_dict(categories: Any) -> Dict[str, bool]:
    if categories is None:
        return {}
    if isinstance(categories, dict):
        return dict(categories)
    return categories.model_dump(by_alias=True)


class ModerationService:
    """
    Thin wrapper over ``moderations.create``.

    Example:
        moderation = ModerationService(client=client)
        await moderation.check("How do I add a Vite app?")
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        api_key: Optional[str] = None,
    ):
        self._client = client
        self._api_key = api_key

    def _get_client(self) -> AsyncOpenAI:
        """Get or create the OpenAI client."""
        if self._client is None:
            api_key = self._api_key or get_settings().openai.api_key
            if not api_key:
                raise ConfigurationError("Missing environment variable NX_OPENAI_KEY")
            self._client = AsyncOpenAI(api_key=api_key, max_retries=0)
        return self._client

    async def check(self, text: str) -> None:
        """
        Reject flagged content.

        Args:
            text: Trimmed user query

        Raises:
            UserError: If the moderation model flags the text
        """
        client = self._get_client()
        response = await client.moderations.create(input=text)

        results = response.results[0]
        if results.flagged:
            categories = _categories_to_dict(results.categories)
            flagged: List[str] = sorted(name for name, hit in categories.items() if hit)
            logger.info(f"Query flagged by moderation: {flagged}")
            raise UserError(
                "Flagged content",
                {
                    "flagged": True,
                    "categories": categories,
                    "flagged_categories": flagged,
                },
            )

        logger.debug("Query passed moderation")
