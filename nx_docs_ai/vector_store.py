"""
Vector Store Module

Retrieves documentation page sections from Supabase. The similarity search
itself lives in the database as a Postgres function (``match_page_sections_2``
by default) that pgvector-matches the query embedding against the stored
section embeddings and returns rows ranked by similarity.

Row schema returned by the function:
- id: Section id
- heading: Section heading
- url_partial: Path of the page on the docs site (``url`` also accepted)
- content: Section text
- similarity: Cosine similarity to the query (0-1, higher is better)
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client

from config.settings import get_settings, SupabaseConfig
from nx_docs_ai.errors import ApplicationError, ConfigurationError

# Configure logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageSection:
    """
    A retrieved documentation fragment.

    Attributes:
        heading: Section heading
        url: Page url (usually relative to the docs site)
        content: Section text
        similarity: Similarity score (0-1, higher is better)
    """

    heading: str
    url: str
    content: str
    similarity: float = 0.0

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PageSection":
        """Create from a row returned by the match function."""
        return cls(
            heading=row.get("heading") or "",
            url=row.get("url_partial") or row.get("url") or "",
            content=row.get("content") or "",
            similarity=float(row.get("similarity") or 0.0),
        )

    def __repr__(self) -> str:
        return f"PageSection(heading='{self.heading}', similarity={self.similarity:.4f})"


class SupabaseVectorStore:
    """
    Page-section matcher backed by a Supabase RPC.

    Example:
        store = SupabaseVectorStore()
        sections = await store.match_page_sections(embedding)
    """

    def __init__(
        self,
        client: Optional[AsyncClient] = None,
        config: Optional[SupabaseConfig] = None,
    ):
        """
        Initialize the vector store.

        Args:
            client: Pre-built async Supabase client (created lazily if omitted)
            config: Optional SupabaseConfig instance
        """
        self.config = config or get_settings().supabase
        self._client = client

        logger.info(f"SupabaseVectorStore initialized: function={self.config.match_function}")

    async def _get_client(self) -> AsyncClient:
        """Get or create the async Supabase client."""
        if self._client is None:
            if not self.config.url or not self.config.service_role_key:
                raise ConfigurationError(
                    "Supabase credentials not configured. Set NX_NEXT_PUBLIC_SUPABASE_URL "
                    "and NX_SUPABASE_SERVICE_ROLE_KEY environment variables."
                )
            self._client = await acreate_client(self.config.url, self.config.service_role_key)
            logger.info("Supabase client initialized")
        return self._client

    async def match_page_sections(
        self,
        embedding: List[float],
        match_threshold: float = 0.78,
        match_count: int = 15,
        min_content_length: int = 50,
    ) -> List[PageSection]:
        """
        Find the page sections most similar to an embedding.

        Args:
            embedding: Query vector
            match_threshold: Minimum similarity score
            match_count: Maximum number of sections
            min_content_length: Skip sections shorter than this (characters)

        Returns:
            Sections ranked by similarity, best first (may be empty)

        Raises:
            ApplicationError: If the stored procedure fails
        """
        client = await self._get_client()

        try:
            response = await client.rpc(
                self.config.match_function,
                {
                    "embedding": embedding,
                    "match_threshold": match_threshold,
                    "match_count": match_count,
                    "min_content_length": min_content_length,
                },
            ).execute()
        except APIError as e:
            raise ApplicationError(
                "Failed to match page sections",
                {
                    "message": e.message,
                    "code": e.code,
                    "details": e.details,
                    "hint": e.hint,
                },
            ) from e

        rows = response.data or []
        sections = [PageSection.from_row(row) for row in rows]

        logger.debug(f"Match function returned {len(sections)} sections")
        return sections
