"""
RAG Agent Module

Public entry point of the Nx documentation assistant.

API:
    class DocsAssistant:
        async def ask(self, query, prior_answer=None, session_id=None) -> AssistantResponse
        async def query(self, query, prior_answer=None, session_id=None) -> QueryOutcome
        async def reset_history(self, session_id=None) -> None
        def end_session(self, session_id) -> bool
        def get_history(self, session_id=None) -> list[ChatItem]

``ask`` raises the typed errors from ``nx_docs_ai.errors``; ``query`` returns
them as a QueryFailure value instead, so callers can branch on
``outcome.error.kind``.

The module-level ``nx_dev_data_access_ai``, ``reset_history`` and
``get_history`` functions work on a lazily created default assistant and its
default session.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from config.settings import get_settings, Settings
from nx_docs_ai.context import ContextBuilder
from nx_docs_ai.embeddings import EmbeddingService
from nx_docs_ai.errors import QueryFailure
from nx_docs_ai.llm_service import LLMService
from nx_docs_ai.memory import ChatItem, ChatSession, SessionManager
from nx_docs_ai.moderation import ModerationService
from nx_docs_ai.rag_chain import AssistantResponse, RAGChain
from nx_docs_ai.vector_store import SupabaseVectorStore

logger = logging.getLogger(__name__)


@dataclass
class QueryOutcome:
    """Either a response or a failure, never both."""

    response: Optional[AssistantResponse] = None
    error: Optional[QueryFailure] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return {"ok": False, "error": self.error.to_dict()}
        return {"ok": True, "response": self.response.to_dict()}


class DocsAssistant:
    """
    Main assistant - the public API for answering Nx documentation questions.

    Example:
        assistant = DocsAssistant()

        response = await assistant.ask("How do I set up module boundaries?")
        print(response.text_response)
        print(response.sources_markdown)

        # Follow-up in the same conversation
        response = await assistant.ask(
            "Can you show an eslint config for it?",
            prior_answer=response.text_response,
        )
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        chain: Optional[RAGChain] = None,
        session_manager: Optional[SessionManager] = None,
    ):
        """
        Initialize the assistant.

        Args:
            settings: Settings (default from environment)
            chain: Pre-built RAG chain (built from settings if omitted)
            session_manager: Session store (a fresh one if omitted)
        """
        self.settings = settings or get_settings()

        logger.info("Initializing DocsAssistant...")

        self._chain = chain or self._build_chain()
        self._session_manager = session_manager or SessionManager(
            max_history_length=self.settings.chat.max_history_length
        )

        logger.info(
            f"DocsAssistant initialized: "
            f"embedding={self._chain.embedding_service.model_name}, "
            f"llm={self._chain.llm_service.model_name}"
        )

    def _build_chain(self) -> RAGChain:
        """Wire the services around one shared OpenAI client."""
        client = None
        if self.settings.openai.api_key:
            client = AsyncOpenAI(api_key=self.settings.openai.api_key, max_retries=0)

        return RAGChain(
            moderation=ModerationService(client=client),
            embedding_service=EmbeddingService(
                client=client,
                model_name=self.settings.openai.embedding_model,
                include_prior_answer=self.settings.retrieval.embed_prior_answer,
            ),
            vector_store=SupabaseVectorStore(config=self.settings.supabase),
            llm_service=LLMService(config=self.settings.openai, client=client),
            context_builder=ContextBuilder(
                max_tokens=self.settings.retrieval.max_context_tokens,
                encoding_name=self.settings.retrieval.tokenizer_encoding,
            ),
            settings=self.settings,
        )

    def get_session(self, session_id: Optional[str] = None) -> ChatSession:
        return self._session_manager.get_session(session_id)

    async def ask(
        self,
        query: str,
        prior_answer: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> AssistantResponse:
        """
        Answer a question about the Nx documentation.

        Turns on the same session run one at a time. Sessions idle for longer
        than ``chat.session_idle_hours`` are dropped before the turn starts.

        Args:
            query: User's question
            prior_answer: Previous assistant answer, for follow-ups
            session_id: Conversation ID (default session when omitted)

        Returns:
            AssistantResponse

        Raises:
            UserError: The query was rejected or nothing relevant was found
            ApplicationError: Configuration or upstream failure
        """
        self._session_manager.cleanup_idle_sessions(self.settings.chat.session_idle_hours)
        session = self.get_session(session_id)
        async with session.lock:
            return await self._chain.query(query, session=session, prior_answer=prior_answer)

    async def query(
        self,
        query: str,
        prior_answer: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> QueryOutcome:
        """
        Like ``ask``, but failures come back as a QueryFailure value.

        Example:
            outcome = await assistant.query("What is Nx Cloud?")
            if outcome.ok:
                print(outcome.response.text_response)
            elif outcome.error.kind == ErrorKind.USER:
                print(outcome.error.message)
        """
        try:
            response = await self.ask(query, prior_answer=prior_answer, session_id=session_id)
        except Exception as e:
            return QueryOutcome(error=QueryFailure.from_exception(e))
        return QueryOutcome(response=response)

    async def reset_history(self, session_id: Optional[str] = None) -> None:
        """Clear a session's history and token counter once any running turn ends."""
        session = self.get_session(session_id)
        async with session.lock:
            session.reset()

    def end_session(self, session_id: str) -> bool:
        """Forget a session entirely. Returns False if it did not exist."""
        return self._session_manager.delete_session(session_id)

    def get_history(self, session_id: Optional[str] = None) -> List[ChatItem]:
        """Return a session's history, oldest first."""
        return self.get_session(session_id).history

    def get_total_tokens(self, session_id: Optional[str] = None) -> int:
        """Return the tokens a session has consumed so far."""
        return self.get_session(session_id).total_tokens

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the assistant.

        Returns:
            Dictionary with system statistics
        """
        return {
            "embedding": {
                "model": self._chain.embedding_service.model_name,
                "dimension": self._chain.embedding_service.dimension,
                "include_prior_answer": self._chain.embedding_service.include_prior_answer,
            },
            "llm": {
                "model": self._chain.llm_service.model_name,
            },
            "retrieval": {
                "match_threshold": self.settings.retrieval.match_threshold,
                "match_count": self.settings.retrieval.match_count,
                "max_context_tokens": self._chain.context_builder.max_tokens,
            },
            "sessions": {
                "active": len(self._session_manager),
            },
        }


_default_assistant: Optional[DocsAssistant] = None


def get_assistant() -> DocsAssistant:
    """Get the process-wide default assistant."""
    global _default_assistant
    if _default_assistant is None:
        _default_assistant = DocsAssistant()
    return _default_assistant


async def nx_dev_data_access_ai(
    query: str,
    ai_response: Optional[str] = None,
) -> AssistantResponse:
    """Answer ``query`` in the default session."""
    return await get_assistant().ask(query, prior_answer=ai_response)


async def reset_history() -> None:
    """Reset the default session."""
    await get_assistant().reset_history()


def get_history() -> List[ChatItem]:
    """History of the default session."""
    return get_assistant().get_history()


def get_total_tokens() -> int:
    """Tokens consumed by the default session."""
    return get_assistant().get_total_tokens()
