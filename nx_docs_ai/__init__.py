"""
Nx Docs AI - Core Source Module

Retrieval-augmented question answering over the Nx documentation:
- ModerationService: Rejects flagged queries
- EmbeddingService: Query embeddings (OpenAI)
- SupabaseVectorStore: Page-section matching via a Supabase RPC
- ContextBuilder: Token-bounded documentation context
- LLMService: Chat completions (OpenAI)
- ChatSession / SessionManager: Bounded conversation history
- RAGChain: Orchestrates the pipeline
- DocsAssistant: Public API
"""

from .errors import (
    ApplicationError,
    ConfigurationError,
    ErrorKind,
    QueryFailure,
    UserError,
)
from .vector_store import PageSection, SupabaseVectorStore
from .embeddings import EmbeddingService
from .moderation import ModerationService
from .context import ContextBuilder, ContextWindow
from .llm_service import LLMService, LLMResponse
from .memory import ChatItem, ChatSession, SessionManager
from .rag_chain import AssistantResponse, RAGChain, check_env_variables
from .rag_agent import (
    DocsAssistant,
    QueryOutcome,
    get_history,
    nx_dev_data_access_ai,
    reset_history,
)

__all__ = [
    # Errors
    "ApplicationError",
    "ConfigurationError",
    "ErrorKind",
    "QueryFailure",
    "UserError",
    # Components
    "PageSection",
    "SupabaseVectorStore",
    "EmbeddingService",
    "ModerationService",
    "ContextBuilder",
    "ContextWindow",
    "LLMService",
    "LLMResponse",
    "ChatItem",
    "ChatSession",
    "SessionManager",
    # Pipeline
    "AssistantResponse",
    "RAGChain",
    "check_env_variables",
    "DocsAssistant",
    "QueryOutcome",
    # Default-session API
    "nx_dev_data_access_ai",
    "reset_history",
    "get_history",
]
