"""
RAG Chain Module

Runs one question through the retrieval-augmented generation pipeline:

    Config check → Moderation → Query Embedding → Page-section Match
    → Context Assembly → Prompt + History → Chat Completion
    → Link Sanitizing + Sources → Session Update

Every step awaits the previous one; any failure stops the turn. Failures are
logged here and re-raised unchanged, there are no retries or fallbacks.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from config.settings import get_settings, Settings
from nx_docs_ai.context import ContextBuilder
from nx_docs_ai.embeddings import EmbeddingService
from nx_docs_ai.errors import ApplicationError, ConfigurationError, UserError
from nx_docs_ai.llm_service import LLMService
from nx_docs_ai.memory import ChatItem, ChatSession, build_chat_messages
from nx_docs_ai.moderation import ModerationService
from nx_docs_ai.prompts import build_system_prompt
from nx_docs_ai.response_utils import (
    get_list_of_sources,
    sanitize_links_in_response,
    to_markdown_list,
)
from nx_docs_ai.vector_store import SupabaseVectorStore

logger = logging.getLogger(__name__)

NOTHING_RELEVANT_MESSAGE = (
    "Nothing relevant found in the Nx documentation! Please try another query."
)


def check_env_variables(
    openai_key: Optional[str],
    supabase_url: Optional[str],
    supabase_service_key: Optional[str],
) -> None:
    """
    Make sure the credentials every network call needs are present.

    Raises:
        ConfigurationError: Naming the first missing variable
    """
    required = (
        ("NX_OPENAI_KEY", openai_key),
        ("NX_NEXT_PUBLIC_SUPABASE_URL", supabase_url),
        ("NX_SUPABASE_SERVICE_ROLE_KEY", supabase_service_key),
    )
    for name, value in required:
        if not value or not value.strip():
            raise ConfigurationError(f"Missing environment variable {name}")


@dataclass
class AssistantResponse:
    """
    Answer returned to the caller.

    Attributes:
        text_response: Markdown answer with sanitized links
        usage: Completion token usage (if reported)
        sources: Deduplicated {"heading", "url"} pairs
        sources_markdown: Sources rendered as a markdown list
        metadata: Timings and retrieval stats
    """

    text_response: str
    usage: Optional[Dict[str, int]]
    sources: List[Dict[str, str]]
    sources_markdown: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (for API response)."""
        return {
            "text_response": self.text_response,
            "usage": self.usage,
            "sources": self.sources,
            "sources_markdown": self.sources_markdown,
        }


def log_failure(error: BaseException) -> None:
    """Log a pipeline failure according to its kind."""
    if isinstance(error, UserError):
        logger.info(error.message)
    elif isinstance(error, ApplicationError):
        logger.error(f"{error.message}: {json.dumps(error.data, default=str)}")
    else:
        logger.exception(f"Unexpected error while answering query: {error!r}")


class RAGChain:
    """
    Main RAG Chain that orchestrates retrieval and generation.

    Example:
        chain = RAGChain(
            moderation=ModerationService(client=client),
            embedding_service=EmbeddingService(client=client),
            vector_store=SupabaseVectorStore(),
            llm_service=LLMService(client=client),
        )
        session = ChatSession()
        response = await chain.query("How do I use Nx Cloud?", session=session)
    """

    def __init__(
        self,
        moderation: ModerationService,
        embedding_service: EmbeddingService,
        vector_store: SupabaseVectorStore,
        llm_service: LLMService,
        context_builder: Optional[ContextBuilder] = None,
        settings: Optional[Settings] = None,
        system_prompt: Optional[str] = None,
    ):
        """
        Initialize the RAG Chain.

        Args:
            moderation: Moderation gate
            embedding_service: Query embedder
            vector_store: Page-section matcher
            llm_service: Completion requester
            context_builder: Context assembler (default from config)
            settings: Settings (default from environment)
            system_prompt: Custom system prompt
        """
        self.settings = settings or get_settings()

        self.moderation = moderation
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.llm_service = llm_service
        self.context_builder = context_builder or ContextBuilder(
            max_tokens=self.settings.retrieval.max_context_tokens,
            encoding_name=self.settings.retrieval.tokenizer_encoding,
        )
        self.system_prompt = system_prompt or build_system_prompt()

        retrieval = self.settings.retrieval
        logger.info(
            f"RAGChain initialized: threshold={retrieval.match_threshold}, "
            f"count={retrieval.match_count}, max_context_tokens={self.context_builder.max_tokens}"
        )

    def _check_configuration(self) -> None:
        check_env_variables(
            self.settings.openai.api_key,
            self.settings.supabase.url,
            self.settings.supabase.service_role_key,
        )

    async def query(
        self,
        query: str,
        session: ChatSession,
        prior_answer: Optional[str] = None,
    ) -> AssistantResponse:
        """
        Answer a query and record the turn in ``session``.

        Args:
            query: User's question
            session: Conversation state to read and update
            prior_answer: Previous assistant answer, for multi-turn grounding

        Returns:
            AssistantResponse

        Raises:
            ConfigurationError, UserError, ApplicationError
        """
        try:
            return await self._run(query, session, prior_answer)
        except Exception as e:
            log_failure(e)
            raise

    async def _run(
        self,
        query: str,
        session: ChatSession,
        prior_answer: Optional[str],
    ) -> AssistantResponse:
        start_time = time.time()
        retrieval = self.settings.retrieval

        # Step 1: Configuration and input checks, before any network call
        self._check_configuration()

        sanitized_query = (query or "").strip()
        if not sanitized_query:
            raise UserError("Missing query in request data")

        # Step 2: Moderation
        await self.moderation.check(sanitized_query)

        # Step 3: Embed
        embedding = await self.embedding_service.embed_query(sanitized_query, prior_answer)

        # Step 4: Match page sections
        sections = await self.vector_store.match_page_sections(
            embedding,
            match_threshold=retrieval.match_threshold,
            match_count=retrieval.match_count,
            min_content_length=retrieval.min_content_length,
        )
        if not sections:
            raise UserError(NOTHING_RELEVANT_MESSAGE)

        retrieval_time = time.time() - start_time
        logger.debug(f"Matched {len(sections)} sections in {retrieval_time:.2f}s")

        # Step 5: Context
        context = self.context_builder.build(sections)

        # Step 6: Prompt + history
        messages, history = build_chat_messages(
            session.history,
            sanitized_query,
            context.text,
            self.system_prompt,
            prior_answer=prior_answer,
            max_history_length=session.max_history_length,
        )

        # Step 7: Completion
        generation_start = time.time()
        llm_response = await self.llm_service.complete(messages)
        generation_time = time.time() - generation_start

        # Step 8: Post-process
        base_url = self.settings.chat.docs_base_url
        text_response = sanitize_links_in_response(llm_response.content, base_url)
        sources = get_list_of_sources(sections, base_url)

        # Step 9: Session update
        session.update(
            history + [ChatItem(role="assistant", content=text_response)],
            llm_response.usage,
        )

        total_time = time.time() - start_time
        logger.info(
            f"RAG query completed in {total_time:.2f}s "
            f"(retrieval: {retrieval_time:.2f}s, generation: {generation_time:.2f}s), "
            f"session tokens so far: {session.total_tokens}"
        )

        return AssistantResponse(
            text_response=text_response,
            usage=llm_response.usage,
            sources=sources,
            sources_markdown=to_markdown_list(sources),
            metadata={
                "retrieval_time": retrieval_time,
                "generation_time": generation_time,
                "total_time": total_time,
                "sections_found": len(sections),
                "sections_used": len(context),
                "context_tokens": context.token_count,
                "model": llm_response.model,
            },
        )
